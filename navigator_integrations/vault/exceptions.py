"""Exceptions raised by the integration secrets vault."""
from typing import Optional


class VaultError(Exception):
    """Base class for every vault error."""


class StartupConfigurationError(VaultError, RuntimeError):
    """Key ring configuration is missing or malformed.

    Raised while loading configuration; the process must not serve traffic.
    """


class SecretSerializationError(VaultError):
    """A secret bundle could not be serialized for encryption."""


class DecryptionError(VaultError):
    """A stored blob could not be turned back into a secret bundle."""

    def __init__(self, message: str, key_id: Optional[str] = None):
        super().__init__(message)
        self.key_id = key_id


class KeyNotFound(DecryptionError):
    """The blob references a key id that is not in the key ring."""


class InvalidCiphertext(DecryptionError):
    """Authentication failed or the blob is corrupted."""


class ValidationError(VaultError, ValueError):
    """Caller supplied input that cannot be accepted."""


class IntegrationNotFound(VaultError, LookupError):
    """No integration exists with the requested id."""


class WebhookSecretMismatch(VaultError):
    """Inbound webhook did not present a valid secret.

    Covers both a wrong secret and an unknown integration, callers must
    not be able to tell them apart.
    """
