"""Integration Secrets Vault: Encrypted credentials for third-party app integrations.

Security Note (Threat Model):
    Secrets are decrypted in process memory for the duration of a request.
    A memory dump of the application process could expose them, as well as
    the key ring loaded at startup. This is an accepted limitation;
    mitigation requires HSM/KMS integration which is out of scope.
"""

from .exceptions import (
    VaultError,
    StartupConfigurationError,
    SecretSerializationError,
    DecryptionError,
    KeyNotFound,
    InvalidCiphertext,
    ValidationError,
    IntegrationNotFound,
    WebhookSecretMismatch,
)
from .config import KeyRingConfig, load_keys_from_env, generate_master_key
from .keyring import KeyRing, KeyRingEntry
from .crypto import SecretCipher, EncryptedBlob
from .masking import mask, mask_value
from .migration import extract
from .models import AppIntegration, SecretsStatus
from .store import (
    IntegrationSecretStore,
    InMemoryIntegrationRepository,
    generate_webhook_secret,
)
from .guard import WebhookSecretGuard, WebhookValidation

__all__ = [
    "VaultError",
    "StartupConfigurationError",
    "SecretSerializationError",
    "DecryptionError",
    "KeyNotFound",
    "InvalidCiphertext",
    "ValidationError",
    "IntegrationNotFound",
    "WebhookSecretMismatch",
    "KeyRingConfig",
    "load_keys_from_env",
    "generate_master_key",
    "KeyRing",
    "KeyRingEntry",
    "SecretCipher",
    "EncryptedBlob",
    "mask",
    "mask_value",
    "extract",
    "AppIntegration",
    "SecretsStatus",
    "IntegrationSecretStore",
    "InMemoryIntegrationRepository",
    "generate_webhook_secret",
    "WebhookSecretGuard",
    "WebhookValidation",
]
