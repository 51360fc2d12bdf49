"""Errors raised by the cryptographic helpers and the Selene steps.

Every failure is a CryptographyError. The subclasses only narrow down why an
operation refused to run; verification mismatches are not errors and are
reported as False by the verify functions.
"""

from typing import Optional


class CryptographyError(Exception):
    """A cryptographic operation could not be completed.

    Attributes
    - message: human readable cause
    - cause: the wrapped lower level exception, if any
    """

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause


class UnsupportedOperationError(CryptographyError):
    """The algorithm does not provide the requested capability."""


class MissingKeyError(CryptographyError):
    """A private or public key needed by the operation is absent."""


class MalformedInputError(CryptographyError):
    """Input data is out of range, truncated or inconsistent."""


class DecodeError(MalformedInputError):
    """An encoded ciphertext could not be decoded."""


class ProofPreconditionError(CryptographyError):
    """A proof was requested without a witness or with the wrong statements."""
