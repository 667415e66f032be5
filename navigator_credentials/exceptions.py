"""
Credentials Exceptions — Typed error taxonomy for the credential store.

Every error carries an ``ErrorKind`` so callers can tell an expected
absence (``NOT_FOUND``) apart from a security-relevant failure
(``INTEGRITY``) without string matching.

Security Note:
    Messages never include key material, plaintext or ciphertext.
"""
from enum import Enum
from typing import Optional


class ErrorKind(Enum):
    INVALID_KEY_SIZE = "invalid_key_size"
    NOT_FOUND = "not_found"
    INTEGRITY = "integrity"
    MALFORMED_ENVELOPE = "malformed_envelope"
    NO_MATCHING_KEY = "no_matching_key"
    PAYLOAD_ENCODING = "payload_encoding"
    INVALID_NAME = "invalid_name"


class CredentialsError(Exception):
    """Base class for every error raised by navigator_credentials."""

    kind: ErrorKind

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class InvalidKeySizeError(CredentialsError, ValueError):
    """Key length is not 16, 24 or 32 bytes."""

    kind = ErrorKind.INVALID_KEY_SIZE

    def __init__(self, size: Optional[int]) -> None:
        self.size = size
        super().__init__(f"Invalid key size({size})")


class NotFoundError(CredentialsError, KeyError):
    """No entry file exists for the requested name."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"No such credentials '{name}'")


class IntegrityError(CredentialsError):
    """Authentication tag did not verify: wrong key or tampered envelope."""

    kind = ErrorKind.INTEGRITY


class MalformedEnvelopeError(CredentialsError, ValueError):
    """Stored bytes are too short to hold a nonce and a tag."""

    kind = ErrorKind.MALFORMED_ENVELOPE


class NoMatchingKeyError(CredentialsError):
    """None of the candidate keys validates the check marker."""

    kind = ErrorKind.NO_MATCHING_KEY


class PayloadEncodingError(CredentialsError):
    """Structured payload could not be encoded or decoded."""

    kind = ErrorKind.PAYLOAD_ENCODING


class InvalidNameError(CredentialsError, ValueError):
    """Entry name cannot be mapped to a single file in the store directory."""

    kind = ErrorKind.INVALID_NAME

    def __init__(self, name: object, reason: str) -> None:
        self.name = name
        super().__init__(f"Invalid credentials name {name!r}: {reason}")
