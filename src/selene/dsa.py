"""DSA: parameter and key generation, signing and verification.

Parameters follow FIPS 186-4 appendix A.1.1.2 (probable primes from a hashed
seed) with the unverifiable generator of A.2.1. Signatures are produced by
pycryptodome's FIPS 186-3 DSS scheme over a digest matched to q and are DER
encoded.
"""

import logging
from math import ceil
from typing import Optional, Tuple

from Crypto.PublicKey import DSA
from Crypto.Signature import DSS

from . import config
from .algorithm import AlgorithmHelper, require_private_key, require_public_key
from .data import KeyPair, Parameters
from .exceptions import CryptographyError, MalformedInputError
from .primitives import (
    bytes_to_int,
    digest_for_length,
    generate_random,
    is_probable_prime,
    random_bytes_function,
)
from .progress import ProgressNotifier

logger = logging.getLogger(__name__)


def _generate_pq(random, length_l: int, length_n: int, certainty: int, notifier: ProgressNotifier) -> Tuple[int, int]:
    digest = digest_for_length(length_n)
    outlen = digest.digest_size * 8
    n = ceil(length_l / outlen) - 1
    b = length_l - 1 - n * outlen
    seedlen = length_n
    seed_modulus = 1 << seedlen
    seed_size = (seedlen + 7) // 8
    randfunc = random_bytes_function(random)

    def hash_seed(value: int) -> int:
        return bytes_to_int(digest.new(value.to_bytes(seed_size, "big")).digest())

    attempts = 0
    while True:
        attempts += 1
        notifier.progress("create-parameters", attempts)
        seed = random.getrandbits(seedlen)
        u = hash_seed(seed) % (1 << (length_n - 1))
        q = (1 << (length_n - 1)) + u + 1 - (u % 2)
        if not is_probable_prime(q, certainty, randfunc):
            continue
        offset = 1
        for _ in range(4 * length_l):
            w = 0
            for j in range(n + 1):
                v = hash_seed((seed + offset + j) % seed_modulus)
                if j == n:
                    v %= 1 << b
                w += v << (j * outlen)
            x = w + (1 << (length_l - 1))
            p = x - (x % (2 * q) - 1)
            if p >= 1 << (length_l - 1) and is_probable_prime(p, certainty, randfunc):
                logger.debug("Found DSA primes after %d seeds", attempts)
                return p, q
            offset += n + 1


def _generator(p: int, q: int) -> int:
    e = (p - 1) // q
    h = 2
    while True:
        g = pow(h, e, p)
        if g != 1:
            return g
        h += 1


class DSAAlgorithmHelper(AlgorithmHelper):
    """DSA signing. Encryption and proofs are refused."""

    name = "DSA"

    def create_parameters(
        self,
        random,
        length_l: Optional[int] = None,
        length_n: Optional[int] = None,
        certainty: Optional[int] = None,
        notifier: Optional[ProgressNotifier] = None,
    ) -> Parameters:
        length_l = length_l or config.DEFAULT_LENGTH_L
        length_n = length_n or config.DEFAULT_LENGTH_N
        certainty = certainty or config.DEFAULT_PRIME_CERTAINTY
        if (length_l, length_n) not in config.DSA_LENGTHS:
            raise MalformedInputError(f"Unsupported DSA key lengths L={length_l}, N={length_n}")
        notifier = notifier or ProgressNotifier()

        logger.info("Creating DSA parameters L=%d N=%d certainty=%d", length_l, length_n, certainty)
        notifier.start("create-parameters")
        try:
            p, q = _generate_pq(random, length_l, length_n, certainty, notifier)
        finally:
            notifier.end("create-parameters")
        return self.check_parameters(Parameters(p=p, q=q, g=_generator(p, q), l=length_l, m=length_n))

    def check_parameters(self, parameters) -> Parameters:
        parameters = super().check_parameters(parameters)
        p, q = parameters.p, parameters.q
        if (p.bit_length(), q.bit_length()) not in config.DSA_LENGTHS:
            raise MalformedInputError(f"Unsupported DSA key lengths L={p.bit_length()}, N={q.bit_length()}")
        return parameters

    def create_keys(self, random, parameters: Parameters) -> KeyPair:
        self.check_parameters(parameters)
        x = generate_random(random, parameters.q)
        return KeyPair(private_key=x, public_key=pow(parameters.g, x, parameters.p))

    def encrypt(self, random, parameters, key_pair, data):
        self._refuse("encryption/decryption")

    def decrypt(self, parameters, key_pair, data):
        self._refuse("encryption/decryption")

    def sign(self, random, parameters: Parameters, key_pair: KeyPair, data: bytes) -> bytes:
        x = require_private_key(key_pair)
        y = key_pair.public_key or pow(parameters.g, x, parameters.p)
        try:
            # parameters are checked when created, skip pycryptodome's primality re-check
            key = DSA.construct((y, parameters.g, parameters.p, parameters.q, x), consistency_check=False)
            signer = DSS.new(key, "fips-186-3", encoding="der", randfunc=random_bytes_function(random))
            return signer.sign(digest_for_length(parameters.q.bit_length()).new(data))
        except ValueError as e:
            raise CryptographyError("Could not sign data", e) from e

    def verify(self, parameters: Parameters, key_pair: KeyPair, data: bytes, signature: bytes) -> bool:
        y = require_public_key(key_pair)
        try:
            key = DSA.construct((y, parameters.g, parameters.p, parameters.q), consistency_check=False)
            verifier = DSS.new(key, "fips-186-3", encoding="der")
        except ValueError as e:
            raise CryptographyError("Could not verify data", e) from e
        try:
            verifier.verify(digest_for_length(parameters.q.bit_length()).new(data), signature)
        except (ValueError, TypeError):
            return False
        return True
