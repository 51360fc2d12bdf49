"""Capability contract shared by every cryptographic algorithm.

Each helper offers the same eight operations. An algorithm that cannot do
something (DSA encryption, ElGamal signing, proofs from either) raises
UnsupportedOperationError instead of quietly returning.
"""

from typing import List, Optional, Tuple

from .data import KeyPair, Parameters, Proof, Statement
from .exceptions import MalformedInputError, MissingKeyError, UnsupportedOperationError


class AlgorithmHelper:
    """Base class: every operation is refused unless a subclass provides it."""

    name = "Unknown"
    parameters_type = Parameters

    def _refuse(self, capability: str):
        raise UnsupportedOperationError(f"{self.name} algorithm cannot be used for {capability}")

    def create_parameters(self, random, *args) -> Parameters:
        self._refuse("parameter creation")

    def create_keys(self, random, parameters: Parameters) -> KeyPair:
        self._refuse("key creation")

    def encrypt(self, random, parameters: Parameters, key_pair: KeyPair, data: bytes) -> Tuple[bytes, int]:
        self._refuse("encryption/decryption")

    def decrypt(self, parameters: Parameters, key_pair: KeyPair, data: bytes) -> bytes:
        self._refuse("encryption/decryption")

    def sign(self, random, parameters: Parameters, key_pair: KeyPair, data: bytes) -> bytes:
        self._refuse("sign/verify")

    def verify(self, parameters: Parameters, key_pair: KeyPair, data: bytes, signature: bytes) -> bool:
        self._refuse("sign/verify")

    def generate_proof(
        self, random, parameters: Parameters, witness: Optional[int], statements: List[Statement]
    ) -> Proof:
        self._refuse("non-interactive zero-knowledge proof of knowledge")

    def verify_proof(self, parameters: Parameters, proof: Proof, statements: List[Statement]) -> bool:
        self._refuse("non-interactive zero-knowledge proof of knowledge")

    def check_parameters(self, parameters) -> Parameters:
        """Return `parameters` if they describe a subgroup of prime order q mod p.

        Raises UnsupportedOperationError for the wrong type and
        MalformedInputError when g does not generate the order q subgroup.
        """
        if not isinstance(parameters, self.parameters_type):
            raise UnsupportedOperationError(
                f"{self.name} algorithm requires {self.parameters_type.__name__} parameters"
            )
        p, q, g = parameters.p, parameters.q, parameters.g
        if not (p and q and g) or (p - 1) % q or not 1 < g < p or pow(g, q, p) != 1:
            raise MalformedInputError(f"{self.name} parameters do not describe a subgroup of order q")
        return parameters


def require_private_key(key_pair: Optional[KeyPair]) -> int:
    if key_pair is None or key_pair.private_key is None:
        raise MissingKeyError("Missing private key")
    return key_pair.private_key


def require_public_key(key_pair: Optional[KeyPair]) -> int:
    if key_pair is None or key_pair.public_key is None:
        raise MissingKeyError("Missing public key")
    return key_pair.public_key
