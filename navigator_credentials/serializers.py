"""
Structured payload serialization for credential entries.

Values are encoded with orjson. JSON is a subset of YAML, so encoded
entries stay readable by tools expecting the ``.yml`` payloads of a
credentials directory.
"""
import base64
import binascii
from typing import Any, Protocol

import orjson

from .exceptions import PayloadEncodingError

_BYTES_WRAPPER_KEY = "__credentials_bytes_b64__"


class Serializer(Protocol):
    """Anything exposing stateless ``encode``/``decode`` functions."""

    def encode(self, value: Any) -> bytes:
        ...

    def decode(self, data: bytes) -> Any:
        ...


def encode(value: Any) -> bytes:
    """Serialize a Python value to bytes for encryption.

    Supports: str, int, float, dict, list, bytes, bool, None.
    bytes values are wrapped as {"__credentials_bytes_b64__": "<base64>"}
    for safe JSON round-trip.

    Raises:
        PayloadEncodingError: If orjson cannot serialize the value.
    """
    if isinstance(value, bytes):
        value = {_BYTES_WRAPPER_KEY: base64.b64encode(value).decode("ascii")}
    try:
        return orjson.dumps(value)
    except orjson.JSONEncodeError as err:
        raise PayloadEncodingError(
            f"Cannot encode value of type {type(value).__name__}"
        ) from err


def decode(data: bytes) -> Any:
    """Deserialize bytes produced by :func:`encode`.

    Raises:
        PayloadEncodingError: If ``data`` is not valid JSON or carries a
            broken bytes wrapper.
    """
    try:
        parsed = orjson.loads(data)
    except orjson.JSONDecodeError as err:
        raise PayloadEncodingError("Cannot decode credentials payload") from err
    if isinstance(parsed, dict) and _BYTES_WRAPPER_KEY in parsed and len(parsed) == 1:
        try:
            return base64.b64decode(parsed[_BYTES_WRAPPER_KEY], validate=True)
        except (binascii.Error, TypeError) as err:
            raise PayloadEncodingError("Invalid bytes wrapper in payload") from err
    return parsed
