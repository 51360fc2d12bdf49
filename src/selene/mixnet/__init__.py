"""Threshold mix network shared by the tellers.

- storage: file based exchange area keyed by election and teller
- threshold: Feldman key sharing and threshold ElGamal decryption
- shuffle: re-encryption shuffle with a cut-and-choose proof
- helper: MixnetHelper, the operations each teller runs
"""

from .helper import MixnetHelper
from .storage import TellerStorage

__all__ = ["MixnetHelper", "TellerStorage"]
