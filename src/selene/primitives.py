"""Numeric helpers shared by every algorithm.

- random residues drawn from a caller supplied secure source
- Fiat-Shamir hashing of big integers into a challenge
- digest selection matched to a group's bit length
- minimal two's complement byte encoding of integers
"""

from typing import Callable

from Crypto.Hash import SHA1, SHA256, SHA384, SHA512
from Crypto.Math.Primality import COMPOSITE, miller_rabin_test, test_probable_prime


def digest_for_length(length: int):
    """Return the Crypto.Hash module whose output matches a bit length."""
    if length <= 160:
        return SHA1
    if length <= 256:
        return SHA256
    if length <= 384:
        return SHA384
    return SHA512


def int_to_bytes(value: int) -> bytes:
    # minimal two's complement big-endian, so 0 -> b"\x00" and 128 -> b"\x00\x80"
    return value.to_bytes(value.bit_length() // 8 + 1, "big", signed=True)


def bytes_to_int(data: bytes) -> int:
    return int.from_bytes(data, "big")


def generate_random(random, limit: int) -> int:
    """Sample uniformly in [1 to limit-1] using the supplied random source."""
    if limit < 2:
        raise ValueError("limit must be at least 2")
    return random.randrange(1, limit)


def random_bytes_function(random) -> Callable[[int], bytes]:
    """Adapt a random.Random style source to pycryptodome's randfunc."""

    def randfunc(n: int) -> bytes:
        return random.getrandbits(n * 8).to_bytes(n, "big") if n else b""

    return randfunc


def is_probable_prime(candidate: int, certainty: int, randfunc=None) -> bool:
    """Primality test with error probability at most 2^-certainty."""
    if test_probable_prime(candidate, randfunc) == COMPOSITE:
        return False
    iterations = max(1, (certainty + 1) // 2)
    return miller_rabin_test(candidate, iterations, randfunc) != COMPOSITE


def hash_values(bit_length: int, *values: int) -> int:
    """Hash big integers into an unsigned integer challenge.

    The digest is chosen by `bit_length` so the challenge has roughly the
    size of the group order it will be combined with.
    """
    h = digest_for_length(bit_length).new()
    for value in values:
        h.update(int_to_bytes(value))
    return bytes_to_int(h.digest())
