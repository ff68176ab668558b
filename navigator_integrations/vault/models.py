"""App integration aggregate and its API representation."""
import uuid
from enum import Enum
from typing import Any, Optional
from datetime import datetime, timezone

from pydantic import BaseModel, Field

from .masking import mask

WEBHOOK_SECRET_FIELD = "webhookSecret"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SecretsStatus(str, Enum):
    """Outcome of decrypting an integration's stored secrets."""

    OK = "ok"
    EMPTY = "empty"
    KEY_NOT_FOUND = "key_not_found"
    INVALID_CIPHERTEXT = "invalid_ciphertext"


class AppIntegration(BaseModel):
    """An external platform (Slack, Teams, ...) connected for a tenant.

    ``secrets`` holds the plaintext bundle while a request is being served
    and is excluded from every dump. Only ``secrets_encrypted`` is stored.
    """

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    tenant_id: str
    platform_id: str
    name: str
    description: Optional[str] = None
    is_enabled: bool = True
    configuration: dict[str, Any] = Field(default_factory=dict)
    secrets: dict[str, str] = Field(default_factory=dict, exclude=True, repr=False)
    secrets_encrypted: Optional[str] = Field(default=None, repr=False)
    secrets_status: SecretsStatus = Field(default=SecretsStatus.EMPTY, exclude=True)
    # set by an update that replaced the webhook secret, the old URL is dead
    webhook_secret_changed: bool = Field(default=False, exclude=True)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    created_by: Optional[str] = None
    updated_by: Optional[str] = None

    # fields owned by other parts of the platform pass through untouched
    model_config = {"extra": "allow"}

    @property
    def webhook_secret(self) -> Optional[str]:
        return self.secrets.get(WEBHOOK_SECRET_FIELD)

    def webhook_path(self) -> Optional[str]:
        """Relative URL the tenant configures in the external platform."""
        if not self.webhook_secret:
            return None
        return f"/webhooks/{self.platform_id}/{self.id}/{self.webhook_secret}"

    def to_record(self) -> dict[str, Any]:
        """Document written to the repository; never carries plaintext secrets."""
        return self.model_dump(mode="json")

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "AppIntegration":
        data = dict(record)
        # a record is never trusted to carry plaintext or a decrypt outcome
        data.pop("secrets", None)
        data.pop("secrets_status", None)
        data.pop("webhook_secret_changed", None)
        return cls.model_validate(data)

    def to_response(self) -> dict[str, Any]:
        """JSON-safe API payload with masked secrets and without the blob."""
        data = self.model_dump(mode="json", exclude={"secrets_encrypted"})
        data["secrets"] = mask(self.secrets)
        data["secrets_status"] = self.secrets_status.value
        data["webhook_secret_changed"] = self.webhook_secret_changed
        return data
