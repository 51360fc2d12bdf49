"""ElGamal encryption over a safe prime group.

Plaintexts are group elements given as unsigned big-endian bytes. Every
encryption draws fresh randomness, so encrypting the same message twice gives
two different ciphertexts. Ciphertexts travel in the CipherText byte layout.
"""

import logging
from typing import Optional, Tuple

from Crypto.PublicKey import ElGamal

from . import config
from .algorithm import AlgorithmHelper, require_private_key, require_public_key
from .ciphertext import CipherText
from .data import KeyPair, Parameters
from .exceptions import CryptographyError, MalformedInputError
from .primitives import bytes_to_int, generate_random, int_to_bytes, is_probable_prime, random_bytes_function
from .progress import ProgressNotifier

logger = logging.getLogger(__name__)


def encrypt_element(random, parameters: Parameters, public_key: int, m: int) -> Tuple[CipherText, int]:
    """Encrypt the group element m, returning the ciphertext and its randomness k."""
    if m >= parameters.p:
        raise MalformedInputError("Number too large to be in group")
    k = generate_random(random, parameters.p)
    alpha = pow(parameters.g, k, parameters.p)
    beta = (pow(public_key, k, parameters.p) * m) % parameters.p
    return CipherText(alpha, beta), k


def decrypt_element(parameters: Parameters, private_key: int, cipher_text: CipherText) -> int:
    # alpha^(p-1-x) == alpha^-x by Fermat
    p = parameters.p
    return (pow(cipher_text.alpha, p - 1 - private_key, p) * cipher_text.beta) % p


def reencrypt(random, parameters: Parameters, public_key: int, cipher_text: CipherText, r: Optional[int] = None):
    """Multiply in an encryption of 1, returning the new ciphertext and r."""
    if r is None:
        r = generate_random(random, parameters.q)
    p = parameters.p
    return (
        CipherText(
            (cipher_text.alpha * pow(parameters.g, r, p)) % p,
            (cipher_text.beta * pow(public_key, r, p)) % p,
        ),
        r,
    )


class ElGamalAlgorithmHelper(AlgorithmHelper):
    """ElGamal encryption. Signing and proofs are refused."""

    name = "ElGamal"

    def create_parameters(
        self,
        random,
        length_l: Optional[int] = None,
        certainty: Optional[int] = None,
        notifier: Optional[ProgressNotifier] = None,
    ) -> Parameters:
        """Generate a safe prime p = 2q+1 and a generator of the order q subgroup."""
        length_l = length_l or config.DEFAULT_LENGTH_L
        certainty = certainty or config.DEFAULT_PRIME_CERTAINTY
        notifier = notifier or ProgressNotifier()
        randfunc = random_bytes_function(random)

        logger.info("Creating ElGamal parameters L=%d certainty=%d", length_l, certainty)
        notifier.start("create-parameters")
        try:
            attempts = 0
            while True:
                attempts += 1
                notifier.progress("create-parameters", attempts)
                key = ElGamal.generate(length_l, randfunc)
                p, g = int(key.p), int(key.g)
                q = (p - 1) // 2
                if is_probable_prime(p, certainty, randfunc) and is_probable_prime(q, certainty, randfunc):
                    break
        except ValueError as e:
            raise CryptographyError("Could not create ElGamal parameters", e) from e
        finally:
            notifier.end("create-parameters")
        return self.check_parameters(Parameters(p=p, q=q, g=g, l=length_l, m=q.bit_length()))

    def check_parameters(self, parameters) -> Parameters:
        parameters = super().check_parameters(parameters)
        if parameters.p != 2 * parameters.q + 1:
            raise MalformedInputError("ElGamal parameters need a safe prime p = 2q + 1")
        return parameters

    def create_keys(self, random, parameters: Parameters) -> KeyPair:
        self.check_parameters(parameters)
        x = generate_random(random, parameters.q)
        return KeyPair(private_key=x, public_key=pow(parameters.g, x, parameters.p))

    def encrypt(self, random, parameters: Parameters, key_pair: KeyPair, data: bytes) -> Tuple[bytes, int]:
        """Encrypt `data` read as an unsigned integer.

        Returns the encoded ciphertext and the randomness k used, which later
        proofs of correct encryption need.
        """
        public_key = require_public_key(key_pair)
        cipher_text, k = encrypt_element(random, parameters, public_key, bytes_to_int(data))
        return cipher_text.to_bytes(), k

    def decrypt(self, parameters: Parameters, key_pair: KeyPair, data: bytes) -> bytes:
        private_key = require_private_key(key_pair)
        return int_to_bytes(decrypt_element(parameters, private_key, CipherText.from_bytes(data)))

    def sign(self, random, parameters, key_pair, data):
        self._refuse("sign/verify")

    def verify(self, parameters, key_pair, data, signature):
        self._refuse("sign/verify")
