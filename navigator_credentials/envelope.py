"""
Envelope Codec — AES-GCM sealing of credential payloads.

On-disk format (bit-compatible with existing credential stores):
    [nonce 16B][GCM tag 16B][ciphertext, same length as plaintext]

The AES variant (128/192/256) is selected by the key length. Associated
data is always empty.

Security Note:
    Never log plaintext, ciphertext or key values. Only sizes.
    Nonces come from os.urandom and are never reused; with 128-bit random
    nonces collision probability is negligible.
"""
import os
import logging
from dataclasses import dataclass

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .exceptions import (
    InvalidKeySizeError,
    IntegrityError,
    MalformedEnvelopeError,
)

logger = logging.getLogger("navigator.credentials")

NONCE_SIZE = 16
TAG_SIZE = 16
HEADER_SIZE = NONCE_SIZE + TAG_SIZE

# key length (bytes) -> AES strength (bits)
KEY_SIZES = {16: 128, 24: 192, 32: 256}


# ---------------------------------------------------------------------------
# Key validation
# ---------------------------------------------------------------------------

def cipher_strength(key: bytes) -> int:
    """Return the AES-GCM strength selected by the length of ``key``.

    Raises:
        InvalidKeySizeError: If the key is not 16, 24 or 32 bytes long.
    """
    try:
        return KEY_SIZES[len(key)]
    except KeyError:
        raise InvalidKeySizeError(len(key)) from None


def validate_key(key: bytes) -> bytes:
    """Check that ``key`` is usable raw key material and return it as bytes.

    Args:
        key: bytes, bytearray or memoryview holding 16, 24 or 32 bytes.

    Returns:
        An immutable ``bytes`` copy of the key.

    Raises:
        InvalidKeySizeError: If ``key`` is not bytes-like or has a bad length.
    """
    if not isinstance(key, (bytes, bytearray, memoryview)):
        # text keys must be decoded by the caller (see config.decode_key)
        raise InvalidKeySizeError(None)
    key = bytes(key)
    cipher_strength(key)
    return key


# ---------------------------------------------------------------------------
# Envelope layout
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Envelope:
    """Parsed view of a sealed credential payload."""

    nonce: bytes
    tag: bytes
    ciphertext: bytes

    @classmethod
    def parse(cls, data: bytes) -> "Envelope":
        """Split raw envelope bytes into nonce, tag and ciphertext.

        Raises:
            MalformedEnvelopeError: If ``data`` is shorter than the header.
        """
        if len(data) < HEADER_SIZE:
            raise MalformedEnvelopeError(
                f"envelope too short: {len(data)} bytes "
                f"(minimum {HEADER_SIZE})"
            )
        return cls(
            nonce=bytes(data[:NONCE_SIZE]),
            tag=bytes(data[NONCE_SIZE:HEADER_SIZE]),
            ciphertext=bytes(data[HEADER_SIZE:]),
        )

    def __bytes__(self) -> bytes:
        return self.nonce + self.tag + self.ciphertext


# ---------------------------------------------------------------------------
# Seal / unseal
# ---------------------------------------------------------------------------

def seal(key: bytes, plaintext: bytes) -> bytes:
    """Encrypt and authenticate ``plaintext`` under ``key``.

    Args:
        key: Already validated 16/24/32-byte key.
        plaintext: Payload to protect (may be empty).

    Returns:
        Envelope bytes: nonce || tag || ciphertext.
    """
    nonce = os.urandom(NONCE_SIZE)
    # AESGCM returns ciphertext || tag
    sealed = AESGCM(key).encrypt(nonce, plaintext, None)
    ciphertext, tag = sealed[:-TAG_SIZE], sealed[-TAG_SIZE:]
    logger.debug(
        "Sealed %d byte(s) with AES-%d-GCM", len(plaintext), cipher_strength(key)
    )
    return bytes(Envelope(nonce=nonce, tag=tag, ciphertext=ciphertext))


def unseal(key: bytes, data: bytes) -> bytes:
    """Verify and decrypt envelope bytes produced by :func:`seal`.

    Args:
        key: Already validated 16/24/32-byte key.
        data: Envelope bytes as read from disk.

    Returns:
        The original plaintext.

    Raises:
        MalformedEnvelopeError: If ``data`` cannot hold a nonce and a tag.
        IntegrityError: If the tag does not verify (wrong key or tampering).
    """
    envelope = Envelope.parse(data)
    try:
        return AESGCM(key).decrypt(
            envelope.nonce, envelope.ciphertext + envelope.tag, None
        )
    except InvalidTag as err:
        raise IntegrityError("Could not decrypt credentials envelope") from err
