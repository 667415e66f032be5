"""
Tests for structured payload serialization.
"""
import pytest

from navigator_credentials import serializers
from navigator_credentials.exceptions import PayloadEncodingError


class TestSerializers:
    """Tests for encode/decode."""

    @pytest.mark.parametrize("value", [
        "text",
        42,
        1.5,
        True,
        None,
        [1, "two", None],
        {"host": "db", "port": 5432, "nested": {"a": [1, 2]}},
    ])
    def test_roundtrip(self, value):
        """Test supported values survive encode/decode."""
        assert serializers.decode(serializers.encode(value)) == value

    def test_encode_returns_bytes(self):
        """Test encoded payloads are bytes ready for sealing."""
        assert serializers.encode({"a": 1}) == b'{"a":1}'

    def test_bytes_wrapped(self):
        """Test raw bytes go through the base64 wrapper."""
        encoded = serializers.encode(b"\x00\x01")
        assert b"__credentials_bytes_b64__" in encoded
        assert serializers.decode(encoded) == b"\x00\x01"

    def test_dict_with_extra_keys_not_unwrapped(self):
        """Test only a lone wrapper key is treated as bytes."""
        value = {"__credentials_bytes_b64__": "AA==", "other": 1}
        assert serializers.decode(serializers.encode(value)) == value

    def test_unsupported_type(self):
        """Test unserializable values raise PayloadEncodingError."""
        with pytest.raises(PayloadEncodingError):
            serializers.encode({1, 2})

    def test_invalid_json(self):
        """Test invalid input raises PayloadEncodingError."""
        with pytest.raises(PayloadEncodingError):
            serializers.decode(b"{broken")

    def test_invalid_bytes_wrapper(self):
        """Test a corrupt base64 wrapper raises PayloadEncodingError."""
        with pytest.raises(PayloadEncodingError):
            serializers.decode(b'{"__credentials_bytes_b64__": "***"}')

    def test_error_keeps_cause(self):
        """Test the orjson error is chained."""
        with pytest.raises(PayloadEncodingError) as exc:
            serializers.decode(b"")
        assert exc.value.__cause__ is not None
