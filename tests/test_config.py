"""
Tests for key loading and StoreConfig validation.
"""
import base64
import os
import pytest
from pydantic import ValidationError

from navigator_credentials.config import (
    DEFAULT_DIR,
    StoreConfig,
    decode_key,
    generate_key,
    load_keys,
)
from navigator_credentials.exceptions import ErrorKind, InvalidKeySizeError


@pytest.fixture
def raw_key():
    return os.urandom(32)


class TestDecodeKey:
    """Tests for textual key decoding."""

    @pytest.mark.parametrize("size", [16, 24, 32])
    def test_hex(self, size):
        """Test hex keys of every size."""
        key = os.urandom(size)
        assert decode_key(key.hex()) == key
        assert decode_key(key.hex().upper()) == key

    def test_base64(self, raw_key):
        """Test base64 keys."""
        assert decode_key(base64.b64encode(raw_key).decode()) == raw_key

    def test_surrounding_whitespace(self, raw_key):
        """Test trailing newlines from files/env are ignored."""
        assert decode_key(f"  {raw_key.hex()}\n") == raw_key

    def test_invalid(self):
        """Test garbage is rejected."""
        with pytest.raises(ValueError):
            decode_key("not a key!")


class TestLoadKeys:
    """Tests for environment key loading."""

    def test_single_key(self, raw_key):
        """Test the unsuffixed variable alone."""
        assert load_keys({"CREDENTIALS_KEY": raw_key.hex()}) == [raw_key]

    def test_ordering(self):
        """Test unsuffixed key first, then numbered keys ascending."""
        k0, k1, k2, k10 = (os.urandom(16) for _ in range(4))
        environ = {
            "CREDENTIALS_KEY_10": k10.hex(),
            "CREDENTIALS_KEY_2": k2.hex(),
            "CREDENTIALS_KEY": k0.hex(),
            "CREDENTIALS_KEY_1": k1.hex(),
            "CREDENTIALS_KEYRING": "ignored",
        }
        assert load_keys(environ) == [k0, k1, k2, k10]

    def test_missing(self):
        """Test an environment without keys fails."""
        with pytest.raises(RuntimeError):
            load_keys({"PATH": "/bin"})

    def test_invalid_size(self):
        """Test a key of the wrong size fails."""
        with pytest.raises(InvalidKeySizeError):
            load_keys({"CREDENTIALS_KEY": os.urandom(20).hex()})

    def test_reads_os_environ(self, monkeypatch, raw_key):
        """Test os.environ is the default source."""
        monkeypatch.setenv("CREDENTIALS_KEY", raw_key.hex())
        assert load_keys()[0] == raw_key


class TestGenerateKey:
    """Tests for the operator key generator."""

    @pytest.mark.parametrize("size", [16, 24, 32])
    def test_sizes(self, size):
        """Test generated keys decode to the requested size."""
        assert len(decode_key(generate_key(size))) == size

    def test_default_is_256_bit(self):
        """Test the default size is 32 bytes."""
        assert len(bytes.fromhex(generate_key())) == 32

    def test_random(self):
        """Test consecutive keys differ."""
        assert generate_key() != generate_key()

    def test_invalid_size(self):
        """Test unsupported sizes are rejected."""
        with pytest.raises(InvalidKeySizeError):
            generate_key(20)


class TestStoreConfig:
    """Tests for validated store configuration."""

    def test_defaults(self, raw_key):
        """Test default directory and marker setting."""
        config = StoreConfig(keys=[raw_key])
        assert config.directory.is_absolute()
        assert config.directory.name == DEFAULT_DIR
        assert config.create_marker is True

    def test_text_keys_decoded(self, raw_key):
        """Test hex keys are decoded into bytes."""
        config = StoreConfig(keys=[raw_key.hex()])
        assert config.keys == [raw_key]

    def test_requires_a_key(self):
        """Test an empty key list is invalid."""
        with pytest.raises(ValidationError):
            StoreConfig(keys=[])

    def test_invalid_key_size(self):
        """Test bad key sizes raise InvalidKeySizeError, not ValidationError."""
        with pytest.raises(InvalidKeySizeError) as exc:
            StoreConfig(keys=[os.urandom(32), os.urandom(17)])
        assert exc.value.kind is ErrorKind.INVALID_KEY_SIZE
        assert exc.value.size == 17

    def test_invalid_text_key_size(self):
        """Test text keys decoding to a bad size raise InvalidKeySizeError."""
        with pytest.raises(InvalidKeySizeError):
            StoreConfig(keys=[os.urandom(20).hex()])

    def test_other_errors_stay_validation_errors(self, raw_key):
        """Test unrelated field errors are still reported by pydantic."""
        with pytest.raises(ValidationError):
            StoreConfig(keys=[raw_key], create_marker="maybe")

    def test_from_env(self, tmp_path):
        """Test building the configuration from an environment mapping."""
        k0, k1 = os.urandom(32), os.urandom(24)
        config = StoreConfig.from_env({
            "CREDENTIALS_KEY": k0.hex(),
            "CREDENTIALS_KEY_1": base64.b64encode(k1).decode(),
            "CREDENTIALS_DIR": str(tmp_path / "store"),
        })
        assert config.keys == [k0, k1]
        assert config.directory == tmp_path / "store"

    def test_from_env_default_directory(self, raw_key):
        """Test CREDENTIALS_DIR is optional."""
        config = StoreConfig.from_env({"CREDENTIALS_KEY": raw_key.hex()})
        assert config.directory.name == DEFAULT_DIR
