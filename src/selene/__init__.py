"""Selene: end-to-end verifiable voting with tracker numbers.

- config: defaults and environment overrides
- data: records and their named views
- dsa, elgamal, nizkp: the algorithm helpers
- mixnet: threshold key generation, shuffling and decryption for tellers
- steps: SeleneSteps, the election flow
"""

from .exceptions import (
    CryptographyError,
    DecodeError,
    MalformedInputError,
    MissingKeyError,
    ProofPreconditionError,
    UnsupportedOperationError,
)
from .steps import SeleneSteps

__all__ = [
    "CryptographyError",
    "DecodeError",
    "MalformedInputError",
    "MissingKeyError",
    "ProofPreconditionError",
    "SeleneSteps",
    "UnsupportedOperationError",
]
