"""Navigator Credentials — Encrypted credential files under one master key.

Security Note (Threat Model):
    Decrypted secrets and the active key live in process memory while a
    CredentialStore is open. Anyone able to read the store directory sees
    only entry names and envelope sizes. Key distribution is out of scope.
"""

from .version import __version__
from .store import CredentialStore, ENTRY_SUFFIX, MARKER_NAME
from .config import StoreConfig, load_keys, generate_key, decode_key
from .envelope import seal, unseal, Envelope
from .exceptions import (
    ErrorKind,
    CredentialsError,
    InvalidKeySizeError,
    NotFoundError,
    IntegrityError,
    MalformedEnvelopeError,
    NoMatchingKeyError,
    PayloadEncodingError,
    InvalidNameError,
)

__all__ = [
    "__version__",
    "CredentialStore",
    "ENTRY_SUFFIX",
    "MARKER_NAME",
    "StoreConfig",
    "load_keys",
    "generate_key",
    "decode_key",
    "seal",
    "unseal",
    "Envelope",
    "ErrorKind",
    "CredentialsError",
    "InvalidKeySizeError",
    "NotFoundError",
    "IntegrityError",
    "MalformedEnvelopeError",
    "NoMatchingKeyError",
    "PayloadEncodingError",
    "InvalidNameError",
]
