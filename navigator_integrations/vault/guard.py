"""
WebhookSecretGuard: First check on every inbound webhook delivery.

The webhook secret travels as a URL path segment. It is compared against the
decrypted ``webhookSecret`` before the body is read or any platform-specific
signature check runs. Unknown integrations and wrong secrets produce the
same result so the HTTP layer can answer 404 for both.
"""
import hmac
import logging
from typing import NamedTuple, Optional

from .models import AppIntegration
from .exceptions import ValidationError, WebhookSecretMismatch
from .migration import normalize_platform
from .store import IntegrationSecretStore, generate_webhook_secret

logger = logging.getLogger("navigator.integrations")

# compared against when there is nothing to compare, keeps both paths alike
_DECOY_SECRET = generate_webhook_secret()


class WebhookValidation(NamedTuple):
    integration: Optional[AppIntegration]
    ok: bool


def _platform_matches(requested: Optional[str], stored: str) -> bool:
    if requested is None:
        return True
    try:
        return normalize_platform(requested) == normalize_platform(stored)
    except ValidationError:
        return False


class WebhookSecretGuard:
    """Validates webhook secrets without revealing which check failed."""

    def __init__(self, store: IntegrationSecretStore):
        self._store = store

    async def validate(
        self,
        integration_id: str,
        supplied_secret: str,
        platform: Optional[str] = None,
    ) -> WebhookValidation:
        """Check ``supplied_secret`` against the stored webhook secret.

        Args:
            integration_id: Integration id from the webhook URL.
            supplied_secret: Secret path segment from the webhook URL.
            platform: Platform segment of the URL, if the route has one.

        Returns:
            ``(integration, True)`` when the secret matches, otherwise
            ``(None, False)``.
        """
        integration = None
        if integration_id:
            integration = await self._store.get_by_id(integration_id)
        if integration is None:
            self._store.decoy_decrypt()
        expected = integration.webhook_secret if integration else None
        matched = hmac.compare_digest(
            (expected or _DECOY_SECRET).encode("utf-8"),
            (supplied_secret or "").encode("utf-8"),
        )
        ok = (
            matched
            and expected is not None
            and _platform_matches(platform, integration.platform_id)
        )
        if not ok:
            logger.debug(
                "Webhook secret check failed for integration %s", integration_id,
            )
            return WebhookValidation(None, False)
        return WebhookValidation(integration, True)

    async def require(
        self,
        integration_id: str,
        supplied_secret: str,
        platform: Optional[str] = None,
    ) -> AppIntegration:
        """Like ``validate`` but raises instead of returning a flag.

        Raises:
            WebhookSecretMismatch: Unknown integration or wrong secret.
        """
        integration, ok = await self.validate(
            integration_id, supplied_secret, platform=platform,
        )
        if not ok:
            raise WebhookSecretMismatch("webhook secret rejected")
        return integration
