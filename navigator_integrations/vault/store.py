"""
IntegrationSecretStore: Encrypting decorator over an integration repository.

Provides the public API for integration secrets:
- ``create(integration)``: migrate legacy fields, encrypt, persist
- ``update(integration)``: merge onto the stored bundle, keep the webhook secret
- ``get_by_id(id)`` / ``get_all(**filters)``: load and decrypt
- ``rotate_webhook_secret(id)``: explicit webhook secret rotation
- ``delete(id)``: remove the record together with its blob

Every write builds the complete record (sanitized configuration plus the
encrypted blob) before a single ``put``. A failure before that call leaves
the previous record untouched.

Security Note:
    Never log plaintext or ciphertext values. Only log integration ids,
    key ids, field names and counts.
"""
import copy
import string
import secrets
import logging
from typing import Any, Mapping, Optional, Protocol

from .models import (
    WEBHOOK_SECRET_FIELD,
    AppIntegration,
    SecretsStatus,
    utcnow,
)
from .crypto import SecretCipher
from .exceptions import (
    IntegrationNotFound,
    InvalidCiphertext,
    KeyNotFound,
    ValidationError,
)
from .keyring import KeyRing
from .migration import SUPPORTED_PLATFORMS, extract, normalize_platform

logger = logging.getLogger("navigator.integrations")

WEBHOOK_SECRET_LENGTH = 32
# path segment safe, the secret is embedded in the webhook URL
WEBHOOK_SECRET_ALPHABET = string.ascii_letters + string.digits + "-_"

# computed by AppIntegration.webhook_path(), it embeds the webhook secret
DERIVED_CONFIGURATION_FIELDS = ("outgoingWebhookUrl",)


def generate_webhook_secret(length: int = WEBHOOK_SECRET_LENGTH) -> str:
    """Return a random webhook secret drawn from the URL-safe alphabet."""
    return "".join(secrets.choice(WEBHOOK_SECRET_ALPHABET) for _ in range(length))


def strip_derived(configuration: Mapping[str, Any]) -> dict[str, Any]:
    """Drop configuration keys that are computed from secrets."""
    return {
        k: v for k, v in configuration.items()
        if k not in DERIVED_CONFIGURATION_FIELDS
    }


def validate_webhook_secret(value: str) -> str:
    """Check a caller-supplied webhook secret.

    Raises:
        ValidationError: If the length or character set is wrong.
    """
    if not isinstance(value, str) or len(value) != WEBHOOK_SECRET_LENGTH:
        raise ValidationError(
            f"{WEBHOOK_SECRET_FIELD} must be exactly "
            f"{WEBHOOK_SECRET_LENGTH} characters"
        )
    if any(ch not in WEBHOOK_SECRET_ALPHABET for ch in value):
        raise ValidationError(
            f"{WEBHOOK_SECRET_FIELD} may only contain letters, digits, '-' and '_'"
        )
    return value


class IntegrationRepository(Protocol):
    """Document store holding integration records as plain dicts."""

    async def get(self, integration_id: str) -> Optional[dict[str, Any]]:
        ...

    async def get_all(
        self, filters: Optional[Mapping[str, Any]] = None,
    ) -> list[dict[str, Any]]:
        ...

    async def put(self, record: dict[str, Any]) -> None:
        ...

    async def delete(self, integration_id: str) -> bool:
        ...


class InMemoryIntegrationRepository:
    """Dict-backed repository, last write wins."""

    def __init__(self):
        self.records: dict[str, dict[str, Any]] = {}

    async def get(self, integration_id: str) -> Optional[dict[str, Any]]:
        record = self.records.get(integration_id)
        return copy.deepcopy(record) if record is not None else None

    async def get_all(
        self, filters: Optional[Mapping[str, Any]] = None,
    ) -> list[dict[str, Any]]:
        filters = filters or {}
        return [
            copy.deepcopy(record)
            for record in self.records.values()
            if all(record.get(k) == v for k, v in filters.items())
        ]

    async def put(self, record: dict[str, Any]) -> None:
        self.records[record["id"]] = copy.deepcopy(record)

    async def delete(self, integration_id: str) -> bool:
        return self.records.pop(integration_id, None) is not None


class IntegrationSecretStore:
    """Encrypts secrets on write and decrypts them on read.

    Decryption failures are contained here: the affected integration is
    returned with an empty bundle and ``secrets_status`` naming the failure.
    """

    def __init__(
        self,
        repository: IntegrationRepository,
        key_ring: KeyRing,
        cipher: Optional[SecretCipher] = None,
    ):
        self._repository = repository
        self._ring = key_ring
        self._cipher = cipher or SecretCipher.for_ring(key_ring)
        self.stats = {"key_not_found": 0, "invalid_ciphertext": 0}
        self._decoy: Optional[str] = None

    def decoy_decrypt(self) -> None:
        """Decrypt a throwaway bundle, so a miss costs about what a hit does."""
        if self._decoy is None:
            self._decoy = self._cipher.encrypt_to_string(
                {WEBHOOK_SECRET_FIELD: generate_webhook_secret()}, self._ring,
            )
        self._cipher.decrypt_from_string(self._decoy, self._ring)

    # ------------------------------------------------------------------
    # Read path
    # ------------------------------------------------------------------

    def _decrypt(self, integration: AppIntegration) -> AppIntegration:
        """Populate ``secrets`` and ``secrets_status`` from the stored blob."""
        bundle: dict[str, str] = {}
        status = SecretsStatus.EMPTY
        if integration.secrets_encrypted:
            try:
                bundle = self._cipher.decrypt_from_string(
                    integration.secrets_encrypted, self._ring,
                )
                status = SecretsStatus.OK
            except KeyNotFound as err:
                self.stats["key_not_found"] += 1
                status = SecretsStatus.KEY_NOT_FOUND
                logger.error(
                    "Secrets unavailable for integration=%s: key id %s "
                    "is not in the key ring",
                    integration.id, err.key_id,
                )
            except InvalidCiphertext as err:
                self.stats["invalid_ciphertext"] += 1
                status = SecretsStatus.INVALID_CIPHERTEXT
                logger.error(
                    "Secrets failed authentication for integration=%s "
                    "key_id=%s: %s",
                    integration.id, err.key_id, err,
                )
        configuration = integration.configuration
        if integration.platform_id.lower() in SUPPORTED_PLATFORMS:
            integration.platform_id = normalize_platform(integration.platform_id)
            # records written before encryption still carry secrets inline
            legacy, configuration = extract(
                integration.platform_id, integration.configuration,
            )
            if legacy:
                bundle = {**legacy, **bundle}
                if status is SecretsStatus.EMPTY:
                    status = SecretsStatus.OK
        integration.configuration = strip_derived(configuration)
        integration.secrets = bundle
        integration.secrets_status = status
        return integration

    async def get_by_id(self, integration_id: str) -> Optional[AppIntegration]:
        """Load and decrypt a single integration, None if it does not exist."""
        record = await self._repository.get(integration_id)
        if record is None:
            return None
        return self._decrypt(AppIntegration.from_record(record))

    async def get_all(self, **filters: Any) -> list[AppIntegration]:
        """Load and decrypt every integration matching ``filters``."""
        records = await self._repository.get_all(filters)
        return [self._decrypt(AppIntegration.from_record(r)) for r in records]

    # ------------------------------------------------------------------
    # Write path
    # ------------------------------------------------------------------

    def _seal(
        self,
        integration: AppIntegration,
        existing: Mapping[str, str],
        **changes: Any,
    ) -> AppIntegration:
        """Build the record to persist: migrate, merge, encrypt.

        Nothing is written here; validation and encryption errors surface
        before the repository is touched.
        """
        platform = normalize_platform(integration.platform_id)
        extracted, configuration = extract(platform, integration.configuration)
        configuration = strip_derived(configuration)
        supplied = {k: v for k, v in integration.secrets.items() if v}

        bundle = {**existing, **extracted, **supplied}
        if WEBHOOK_SECRET_FIELD in supplied:
            validate_webhook_secret(supplied[WEBHOOK_SECRET_FIELD])
        elif not bundle.get(WEBHOOK_SECRET_FIELD):
            bundle[WEBHOOK_SECRET_FIELD] = generate_webhook_secret()

        blob = self._cipher.encrypt_to_string(bundle, self._ring)
        return integration.model_copy(update={
            "platform_id": platform,
            "configuration": configuration,
            "secrets": bundle,
            "secrets_encrypted": blob,
            "secrets_status": SecretsStatus.OK,
            "webhook_secret_changed": False,
            **changes,
        })

    async def create(self, integration: AppIntegration) -> AppIntegration:
        """Encrypt and persist a new integration.

        Returns:
            The stored integration with its decrypted bundle (including the
            generated webhook secret).

        Raises:
            ValidationError: Unsupported platform, bad webhook secret, or an
                integration with the same id already exists.
        """
        if await self._repository.get(integration.id) is not None:
            raise ValidationError(f"Integration {integration.id} already exists")
        now = utcnow()
        sealed = self._seal(integration, {}, created_at=now, updated_at=now)
        await self._repository.put(sealed.to_record())
        logger.info(
            "Created integration %s for tenant %s (platform=%s, key_id=%s)",
            sealed.id, sealed.tenant_id, sealed.platform_id,
            self._ring.active_key_id,
        )
        return sealed

    async def _load_existing(
        self, integration_id: str, tenant_id: Optional[str] = None,
    ) -> AppIntegration:
        existing = await self.get_by_id(integration_id)
        if existing is None or (
            tenant_id is not None and existing.tenant_id != tenant_id
        ):
            raise IntegrationNotFound(f"Integration {integration_id} not found")
        if existing.secrets_status in (
            SecretsStatus.KEY_NOT_FOUND, SecretsStatus.INVALID_CIPHERTEXT,
        ):
            logger.warning(
                "Replacing undecryptable secrets of integration %s (%s)",
                integration_id, existing.secrets_status.value,
            )
        return existing

    async def update(self, integration: AppIntegration) -> AppIntegration:
        """Re-encrypt and persist changes to an existing integration.

        Supplied configuration keys and secret fields are merged onto the
        stored ones. The stored webhook secret is kept unless the caller
        supplies a replacement. The platform cannot change.

        Raises:
            IntegrationNotFound: If no integration with this id and tenant exists.
            ValidationError: Unsupported platform, a platform change, or a
                bad webhook secret.
        """
        existing = await self._load_existing(integration.id, integration.tenant_id)
        if normalize_platform(integration.platform_id) != existing.platform_id:
            raise ValidationError(
                f"Integration {integration.id} belongs to platform "
                f"{existing.platform_id!r} and cannot be moved to "
                f"{integration.platform_id!r}"
            )
        integration = integration.model_copy(update={
            "configuration": {
                **existing.configuration, **integration.configuration,
            },
        })
        sealed = self._seal(
            integration,
            existing.secrets,
            created_at=existing.created_at,
            created_by=existing.created_by,
            updated_at=utcnow(),
        )
        sealed.webhook_secret_changed = (
            sealed.webhook_secret != existing.webhook_secret
        )
        if sealed.webhook_secret_changed and (
            WEBHOOK_SECRET_FIELD not in integration.secrets
        ):
            logger.warning(
                "Generated a new webhook secret for integration %s, "
                "its webhook URL must be reconfigured",
                integration.id,
            )
        await self._repository.put(sealed.to_record())
        logger.info(
            "Updated integration %s (key_id=%s)",
            sealed.id, self._ring.active_key_id,
        )
        return sealed

    async def rotate_webhook_secret(
        self,
        integration_id: str,
        tenant_id: Optional[str] = None,
        updated_by: Optional[str] = None,
    ) -> str:
        """Replace the webhook secret and return the new value.

        The old webhook URL stops working as soon as the record is written.
        """
        existing = await self._load_existing(integration_id, tenant_id)
        new_secret = generate_webhook_secret()
        request = existing.model_copy(update={
            "secrets": {WEBHOOK_SECRET_FIELD: new_secret},
        })
        sealed = self._seal(
            request,
            existing.secrets,
            updated_at=utcnow(),
            updated_by=updated_by or existing.updated_by,
        )
        await self._repository.put(sealed.to_record())
        logger.info("Rotated webhook secret of integration %s", integration_id)
        return new_secret

    async def delete(self, integration_id: str, tenant_id: Optional[str] = None) -> bool:
        """Delete an integration; its encrypted secrets go with the record."""
        if tenant_id is not None:
            record = await self._repository.get(integration_id)
            if record is None or record.get("tenant_id") != tenant_id:
                return False
        deleted = await self._repository.delete(integration_id)
        if deleted:
            logger.info("Deleted integration %s", integration_id)
        return deleted
