"""
Vault Configuration: Key ring loading and validated settings.

Reads keys from environment variables in the format:
    INTEGRATION_SECRETS_KEY_{ID} = <base64-encoded 32-byte key>
    INTEGRATION_SECRETS_ACTIVE_KEY_ID = <ID>
    INTEGRATION_SECRETS_CIPHER = aesgcm | chacha20   (optional)

or from a configuration section shaped like::

    {
        "activeKeyId": "2024-06",
        "cipher": "aesgcm",
        "keys": [{"id": "2024-06", "base64Key": "..."}]
    }

Security Note:
    Never log key material. Only log key IDs.
"""
import os
import re
import base64
import binascii
import secrets
import logging
from typing import Any, Mapping

from pydantic import BaseModel, Field, ValidationError as PydanticValidationError
from pydantic import field_validator, model_validator

from .exceptions import StartupConfigurationError

logger = logging.getLogger("navigator.integrations")

KEY_LENGTH = 32  # AES-256
MAX_KEY_ID_LENGTH = 255

ENV_KEY_PREFIX = "INTEGRATION_SECRETS_KEY_"
ENV_ACTIVE_KEY_ID = "INTEGRATION_SECRETS_ACTIVE_KEY_ID"
ENV_CIPHER = "INTEGRATION_SECRETS_CIPHER"

_KEY_ENV_PATTERN = re.compile(rf"^{ENV_KEY_PREFIX}(.+)$")

SUPPORTED_CIPHERS = ("aesgcm", "chacha20")


def decode_key(name: str, value: str) -> bytes:
    """Decode a base64 key and check it is exactly 32 bytes.

    Raises:
        StartupConfigurationError: If the value is not base64 or has the
            wrong length.
    """
    try:
        key_bytes = base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as err:
        raise StartupConfigurationError(
            f"Key {name!r} is not valid base64"
        ) from err
    if len(key_bytes) != KEY_LENGTH:
        raise StartupConfigurationError(
            f"Key {name!r} must decode to exactly {KEY_LENGTH} bytes, "
            f"got {len(key_bytes)}"
        )
    return key_bytes


def load_keys_from_env(environ: Mapping[str, str] = None) -> dict[str, bytes]:
    """Load keys from INTEGRATION_SECRETS_KEY_{ID} environment variables.

    Returns:
        Mapping of key id to raw 32-byte key.

    Raises:
        StartupConfigurationError: If no key is found or a key is malformed.
    """
    environ = os.environ if environ is None else environ
    keys: dict[str, bytes] = {}
    for name, value in environ.items():
        match = _KEY_ENV_PATTERN.match(name)
        if match:
            keys[match.group(1)] = decode_key(match.group(1), value)
    if not keys:
        raise StartupConfigurationError(
            "No integration secret keys found in environment. "
            f"Set {ENV_KEY_PREFIX}<id>=<base64-encoded-32-byte-key>"
        )
    logger.debug("Loaded %d key(s): %s", len(keys), sorted(keys))
    return keys


def generate_master_key() -> str:
    """Generate a random 32-byte key and return it as a base64 string.

    This is a utility for operators to generate new keys, the service never
    generates its own key material.
    """
    return base64.b64encode(secrets.token_bytes(KEY_LENGTH)).decode("ascii")


class KeyRingConfig(BaseModel):
    """Validated key ring configuration."""

    keys: dict[str, bytes]
    active_key_id: str
    cipher_backend: str = Field(default="aesgcm")

    model_config = {"frozen": True}

    @field_validator("keys")
    @classmethod
    def validate_keys(cls, v: dict[str, bytes]) -> dict[str, bytes]:
        """Every key id must be usable and every key must be 32 bytes."""
        if not v:
            raise ValueError("key ring must contain at least one key")
        for key_id, key in v.items():
            if not key_id or len(key_id.encode("utf-8")) > MAX_KEY_ID_LENGTH:
                raise ValueError(
                    f"key id must be 1-{MAX_KEY_ID_LENGTH} bytes: {key_id!r}"
                )
            if len(key) != KEY_LENGTH:
                raise ValueError(
                    f"key {key_id!r} must be exactly {KEY_LENGTH} bytes, "
                    f"got {len(key)}"
                )
        return v

    @field_validator("cipher_backend")
    @classmethod
    def validate_cipher(cls, v: str) -> str:
        """Validate cipher backend is supported."""
        v = v.lower()
        if v not in SUPPORTED_CIPHERS:
            raise ValueError(f"Unsupported cipher backend: {v}")
        return v

    @model_validator(mode="after")
    def validate_active_key_exists(self) -> "KeyRingConfig":
        """Ensure active_key_id is present in keys."""
        if self.active_key_id not in self.keys:
            raise ValueError(
                f"active_key_id {self.active_key_id!r} not found in "
                f"keys (available: {sorted(self.keys)})"
            )
        return self

    @classmethod
    def create(cls, **kwargs: Any) -> "KeyRingConfig":
        """Build a config, turning validation failures into startup errors."""
        try:
            return cls(**kwargs)
        except PydanticValidationError as err:
            raise StartupConfigurationError(
                f"Invalid key ring configuration: {err}"
            ) from err

    @classmethod
    def from_env(cls, environ: Mapping[str, str] = None) -> "KeyRingConfig":
        """Create KeyRingConfig by loading values from environment."""
        environ = os.environ if environ is None else environ
        keys = load_keys_from_env(environ)
        active_key_id = environ.get(ENV_ACTIVE_KEY_ID)
        if not active_key_id:
            raise StartupConfigurationError(
                f"{ENV_ACTIVE_KEY_ID} environment variable is not set"
            )
        return cls.create(
            keys=keys,
            active_key_id=active_key_id,
            cipher_backend=environ.get(ENV_CIPHER, "aesgcm"),
        )

    @classmethod
    def from_mapping(cls, section: Mapping[str, Any]) -> "KeyRingConfig":
        """Create KeyRingConfig from an ``encryption`` configuration section."""
        active_key_id = section.get("activeKeyId")
        if not active_key_id:
            raise StartupConfigurationError(
                "encryption.activeKeyId is not configured"
            )
        keys: dict[str, bytes] = {}
        for entry in section.get("keys") or []:
            key_id = entry.get("id")
            if not key_id:
                raise StartupConfigurationError(
                    "encryption.keys entries require an 'id'"
                )
            if key_id in keys:
                raise StartupConfigurationError(
                    f"Duplicate key id in encryption.keys: {key_id!r}"
                )
            keys[key_id] = decode_key(key_id, entry.get("base64Key") or "")
        return cls.create(
            keys=keys,
            active_key_id=active_key_id,
            cipher_backend=section.get("cipher", "aesgcm"),
        )
