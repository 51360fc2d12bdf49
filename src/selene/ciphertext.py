"""Two component ElGamal ciphertext and its byte encoding.

Layout: [4 byte big-endian length][alpha][4 byte big-endian length][beta]
where alpha and beta are minimal two's complement big-endian integers. The
same layout is used for every ciphertext stored in the election records.
"""

import struct
from dataclasses import dataclass

from .exceptions import DecodeError
from .primitives import bytes_to_int, int_to_bytes

_LENGTH = struct.Struct(">i")


@dataclass(frozen=True)
class CipherText:
    """ElGamal ciphertext (alpha, beta) = (g^k, y^k * m) mod p."""

    alpha: int
    beta: int

    def to_bytes(self) -> bytes:
        alpha = int_to_bytes(self.alpha)
        beta = int_to_bytes(self.beta)
        return _LENGTH.pack(len(alpha)) + alpha + _LENGTH.pack(len(beta)) + beta

    @classmethod
    def from_bytes(cls, data: bytes) -> "CipherText":
        """Decode a ciphertext, raising DecodeError on a truncated buffer."""
        try:
            offset = 0
            alpha, offset = _read_value(data, offset, "alpha")
            beta, offset = _read_value(data, offset, "beta")
        except DecodeError:
            raise
        except (TypeError, ValueError, struct.error) as e:
            raise DecodeError("Could not decode ciphertext", e) from e
        return cls(alpha, beta)

    def multiply(self, other: "CipherText", p: int) -> "CipherText":
        """Component-wise product, an encryption of the product of plaintexts."""
        return CipherText((self.alpha * other.alpha) % p, (self.beta * other.beta) % p)


def _read_value(data: bytes, offset: int, name: str):
    if len(data) - offset < _LENGTH.size:
        raise DecodeError(f"Missing {name} length")
    (length,) = _LENGTH.unpack_from(data, offset)
    offset += _LENGTH.size
    if length < 0:
        raise DecodeError("Could not decode ciphertext")
    if len(data) - offset < length:
        raise DecodeError(f"Missing {name}")
    return bytes_to_int(data[offset:offset + length]), offset + length
