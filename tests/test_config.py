"""
Tests for key ring configuration loading.

Tests cover:
- Loading keys from environment variables
- Loading keys from a configuration section
- Startup failures for malformed configuration
- Key ring lookups and immutability
- Operator key generation
"""
import os
import base64

import pytest

from navigator_integrations.vault import (
    KeyRing,
    KeyRingConfig,
    StartupConfigurationError,
    generate_master_key,
    load_keys_from_env,
)


class TestEnvironmentLoading:
    """Tests for INTEGRATION_SECRETS_* environment variables."""

    def test_load_keys(self, key_v1, key_v2, b64key):
        """Test every INTEGRATION_SECRETS_KEY_<id> variable is loaded."""
        env = {
            "INTEGRATION_SECRETS_KEY_v1": b64key(key_v1),
            "INTEGRATION_SECRETS_KEY_v2": b64key(key_v2),
            "UNRELATED": "value",
        }
        keys = load_keys_from_env(env)
        assert keys == {"v1": key_v1, "v2": key_v2}

    def test_no_keys(self):
        """Test an environment without keys refuses to start."""
        with pytest.raises(StartupConfigurationError):
            load_keys_from_env({"PATH": "/usr/bin"})

    def test_wrong_length(self, b64key):
        """Test a key that is not 32 bytes refuses to start."""
        env = {"INTEGRATION_SECRETS_KEY_v1": b64key(os.urandom(16))}
        with pytest.raises(StartupConfigurationError, match="32 bytes"):
            load_keys_from_env(env)

    def test_invalid_base64(self):
        """Test a key that is not base64 refuses to start."""
        env = {"INTEGRATION_SECRETS_KEY_v1": "not base64 at all!"}
        with pytest.raises(StartupConfigurationError, match="base64"):
            load_keys_from_env(env)

    def test_from_env(self, key_v1, b64key):
        """Test full config from environment."""
        env = {
            "INTEGRATION_SECRETS_KEY_v1": b64key(key_v1),
            "INTEGRATION_SECRETS_ACTIVE_KEY_ID": "v1",
            "INTEGRATION_SECRETS_CIPHER": "CHACHA20",
        }
        config = KeyRingConfig.from_env(env)
        assert config.active_key_id == "v1"
        assert config.cipher_backend == "chacha20"

    def test_from_env_missing_active(self, key_v1, b64key):
        """Test missing active key id refuses to start."""
        env = {"INTEGRATION_SECRETS_KEY_v1": b64key(key_v1)}
        with pytest.raises(StartupConfigurationError, match="ACTIVE_KEY_ID"):
            KeyRingConfig.from_env(env)

    def test_from_env_unknown_active(self, key_v1, b64key):
        """Test an active id with no key refuses to start."""
        env = {
            "INTEGRATION_SECRETS_KEY_v1": b64key(key_v1),
            "INTEGRATION_SECRETS_ACTIVE_KEY_ID": "v9",
        }
        with pytest.raises(StartupConfigurationError, match="v9"):
            KeyRingConfig.from_env(env)

    def test_key_ring_from_env(self, key_v1, b64key, monkeypatch):
        """Test KeyRing.from_env reads the process environment."""
        monkeypatch.setenv("INTEGRATION_SECRETS_KEY_main", b64key(key_v1))
        monkeypatch.setenv("INTEGRATION_SECRETS_ACTIVE_KEY_ID", "main")
        ring = KeyRing.from_env()
        assert ring.get_active().key == key_v1


class TestMappingLoading:
    """Tests for the encryption configuration section."""

    def test_from_mapping(self, key_v1, key_v2, b64key):
        """Test activeKeyId and keys entries are read."""
        config = KeyRingConfig.from_mapping({
            "activeKeyId": "2024-06",
            "keys": [
                {"id": "2024-01", "base64Key": b64key(key_v1)},
                {"id": "2024-06", "base64Key": b64key(key_v2)},
            ],
        })
        ring = KeyRing.from_config(config)
        assert ring.active_key_id == "2024-06"
        assert ring.key_ids == ["2024-01", "2024-06"]
        assert ring.cipher_backend == "aesgcm"

    def test_missing_active(self, key_v1, b64key):
        """Test a section without activeKeyId refuses to start."""
        with pytest.raises(StartupConfigurationError):
            KeyRingConfig.from_mapping({
                "keys": [{"id": "a", "base64Key": b64key(key_v1)}],
            })

    def test_duplicate_ids(self, key_v1, b64key):
        """Test the same key id twice refuses to start."""
        with pytest.raises(StartupConfigurationError, match="Duplicate"):
            KeyRingConfig.from_mapping({
                "activeKeyId": "a",
                "keys": [
                    {"id": "a", "base64Key": b64key(key_v1)},
                    {"id": "a", "base64Key": b64key(key_v1)},
                ],
            })

    def test_missing_key_value(self):
        """Test an entry without base64Key refuses to start."""
        with pytest.raises(StartupConfigurationError):
            KeyRingConfig.from_mapping({
                "activeKeyId": "a",
                "keys": [{"id": "a"}],
            })

    def test_unsupported_cipher(self, key_v1, b64key):
        """Test an unknown cipher backend refuses to start."""
        with pytest.raises(StartupConfigurationError):
            KeyRingConfig.from_mapping({
                "activeKeyId": "a",
                "cipher": "des",
                "keys": [{"id": "a", "base64Key": b64key(key_v1)}],
            })


class TestKeyRing:
    """Tests for KeyRing behaviour."""

    def test_active_missing(self, key_v1):
        """Test the active id must be in the ring."""
        with pytest.raises(StartupConfigurationError):
            KeyRing(keys={"v1": key_v1}, active_key_id="v2")

    def test_short_key(self):
        """Test direct construction also checks key length."""
        with pytest.raises(StartupConfigurationError):
            KeyRing(keys={"v1": b"short"}, active_key_id="v1")

    def test_empty_ring(self):
        """Test an empty ring refuses to start."""
        with pytest.raises(StartupConfigurationError):
            KeyRing(keys={}, active_key_id="v1")

    def test_lookup(self, rotated_ring, key_v1):
        """Test retired keys stay available for lookup."""
        assert rotated_ring.get_active().key_id == "v2"
        assert rotated_ring.lookup("v1").key == key_v1
        assert rotated_ring.lookup("v3") is None
        assert "v1" in rotated_ring
        assert len(rotated_ring) == 2

    def test_ring_is_immutable(self, ring):
        """Test entries cannot be swapped at runtime."""
        with pytest.raises(TypeError):
            ring._entries["v9"] = None

    def test_entry_repr_hides_key(self, ring):
        """Test key material never shows up in repr."""
        entry = ring.get_active()
        assert entry.key.hex() not in repr(entry)
        assert "v1" in repr(entry)
        assert entry.key.hex() not in repr(ring)


class TestKeyGeneration:
    """Tests for operator key generation."""

    def test_generate_master_key(self):
        """Test generated keys decode to 32 bytes."""
        key = generate_master_key()
        assert len(base64.b64decode(key)) == 32

    def test_generated_keys_differ(self):
        """Test two generated keys are different."""
        assert generate_master_key() != generate_master_key()

    def test_generated_key_is_loadable(self):
        """Test a generated key is accepted by the loader."""
        env = {"INTEGRATION_SECRETS_KEY_new": generate_master_key()}
        assert len(load_keys_from_env(env)["new"]) == 32
