"""
Credentials Configuration — Key loading and validated store settings.

Reads key material from environment variables in the format:
    CREDENTIALS_KEY = <hex or base64 encoded 16/24/32-byte key>
    CREDENTIALS_KEY_{N} = <older/newer candidate keys, tried in order of N>
    CREDENTIALS_DIR = <store directory, defaults to ./credentials>

Hex is recognised when the value is 32, 48 or 64 hex digits; any other
value is decoded as base64.

Security Note:
    Never log key material. Only log key counts.
"""
import os
import re
import base64
import binascii
import secrets
import string
import logging
from pathlib import Path
from typing import Mapping, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from .envelope import KEY_SIZES, validate_key
from .exceptions import InvalidKeySizeError

logger = logging.getLogger("navigator.credentials")

CREDENTIALS_KEY_ENV = "CREDENTIALS_KEY"
CREDENTIALS_DIR_ENV = "CREDENTIALS_DIR"
DEFAULT_DIR = "credentials"

_KEY_ENV_PATTERN = re.compile(rf"^{CREDENTIALS_KEY_ENV}(?:_(\d+))?$")
_HEX_LENGTHS = {size * 2 for size in KEY_SIZES}


def decode_key(value: str) -> bytes:
    """Decode a textual key (hex or base64) into raw bytes.

    Raises:
        ValueError: If the text is neither valid hex nor valid base64.
    """
    value = value.strip()
    if len(value) in _HEX_LENGTHS and all(c in string.hexdigits for c in value):
        return bytes.fromhex(value)
    try:
        return base64.b64decode(value, validate=True)
    except binascii.Error as err:
        raise ValueError("Key is neither hex nor base64 encoded") from err


def load_keys(environ: Optional[Mapping[str, str]] = None) -> list[bytes]:
    """Load candidate keys from CREDENTIALS_KEY / CREDENTIALS_KEY_{N}.

    The unsuffixed key comes first, followed by the numbered keys in
    ascending order of N.

    Args:
        environ: Mapping to read from, defaults to ``os.environ``.

    Returns:
        Ordered list of raw candidate keys.

    Raises:
        RuntimeError: If no key variable is set.
        InvalidKeySizeError: If a key does not decode to 16, 24 or 32 bytes.
    """
    if environ is None:
        environ = os.environ
    found: list[tuple[int, bytes]] = []
    for name, value in environ.items():
        match = _KEY_ENV_PATTERN.match(name)
        if match:
            order = int(match.group(1)) if match.group(1) is not None else -1
            found.append((order, validate_key(decode_key(value))))
    if not found:
        raise RuntimeError(
            "No credentials key found in environment. "
            f"Set {CREDENTIALS_KEY_ENV}=<hex-encoded-32-byte-key>"
        )
    found.sort(key=lambda item: item[0])
    logger.debug("Loaded %d candidate credentials key(s)", len(found))
    return [key for _, key in found]


def generate_key(size: int = 32) -> str:
    """Generate a random key and return it hex encoded.

    This is a utility for operators to generate new keys.
    """
    if size not in KEY_SIZES:
        raise InvalidKeySizeError(size)
    return secrets.token_bytes(size).hex()


class StoreConfig(BaseModel):
    """Validated credential store configuration.

    A key of the wrong size raises :class:`InvalidKeySizeError` itself
    rather than a pydantic ``ValidationError``, so ``err.kind`` works the
    same as for :class:`~navigator_credentials.store.CredentialStore`.
    """

    directory: Path = Field(default=Path(DEFAULT_DIR), validate_default=True)
    keys: list[bytes] = Field(min_length=1)
    create_marker: bool = True

    def __init__(self, **data) -> None:
        try:
            super().__init__(**data)
        except ValidationError as err:
            for error in err.errors():
                cause = error.get("ctx", {}).get("error")
                if isinstance(cause, InvalidKeySizeError):
                    raise cause from err
            raise

    @field_validator("directory")
    @classmethod
    def absolute_directory(cls, v: Path) -> Path:
        """Resolve the store directory against the current directory."""
        return v.expanduser().absolute()

    @field_validator("keys", mode="before")
    @classmethod
    def decode_text_keys(cls, v):
        """Accept hex/base64 text keys next to raw bytes."""
        if isinstance(v, (list, tuple)):
            return [decode_key(k) if isinstance(k, str) else k for k in v]
        return v

    @field_validator("keys")
    @classmethod
    def validate_key_sizes(cls, v: list[bytes]) -> list[bytes]:
        """Every candidate must be 16, 24 or 32 bytes."""
        return [validate_key(k) for k in v]

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "StoreConfig":
        """Create StoreConfig by loading values from environment.

        Returns:
            Populated StoreConfig instance.
        """
        if environ is None:
            environ = os.environ
        keys = load_keys(environ)
        directory = environ.get(CREDENTIALS_DIR_ENV, DEFAULT_DIR)
        return cls(directory=Path(directory), keys=keys)
