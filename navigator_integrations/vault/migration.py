"""
Legacy Migration: Move plaintext secrets out of integration configuration.

Older clients send credentials inside the generic ``configuration`` map.
``extract`` pulls the known secret fields for a platform into a secret bundle
and returns the configuration without them. It is run on every create and
update, so integrations stored in the old shape heal on their next write.
"""
import logging
from typing import Any, Mapping

from .exceptions import ValidationError

logger = logging.getLogger("navigator.integrations")

# platform -> ordered secret field names
SECRET_FIELDS: dict[str, tuple[str, ...]] = {
    "slack": ("signingSecret", "botToken", "incomingWebhookUrl"),
    "teams": ("appPassword",),
    "outlook": ("clientSecret",),
    "generic": ("secret",),
}

PLATFORM_ALIASES = {
    "msteams": "teams",
    "webhook": "generic",
}

# legacy spellings still found in stored configuration
FIELD_ALIASES: dict[str, dict[str, tuple[str, ...]]] = {
    "slack": {"incomingWebhookUrl": ("incomingWekhookUrl",)},
}

SUPPORTED_PLATFORMS = frozenset(SECRET_FIELDS) | frozenset(PLATFORM_ALIASES)


def normalize_platform(platform: str) -> str:
    """Lower-case and resolve aliases.

    Raises:
        ValidationError: If the platform is not supported.
    """
    name = (platform or "").strip().lower()
    if name not in SUPPORTED_PLATFORMS:
        raise ValidationError(
            f"Unsupported platform: {platform!r}. "
            f"Supported platforms: {', '.join(sorted(SUPPORTED_PLATFORMS))}"
        )
    return PLATFORM_ALIASES.get(name, name)


def secret_fields(platform: str) -> tuple[str, ...]:
    return SECRET_FIELDS[normalize_platform(platform)]


def extract(
    platform: str,
    configuration: Mapping[str, Any],
) -> tuple[dict[str, str], dict[str, Any]]:
    """Split ``configuration`` into a secret bundle and the remaining settings.

    Neither input is modified. Empty values are dropped from the remaining
    configuration without entering the bundle.

    Returns:
        Tuple of (secret bundle, remaining configuration).

    Raises:
        ValidationError: If the platform is not supported.
    """
    name = normalize_platform(platform)
    remaining = dict(configuration or {})
    bundle: dict[str, str] = {}
    aliases = FIELD_ALIASES.get(name, {})
    for field in SECRET_FIELDS[name]:
        for key in (field, *aliases.get(field, ())):
            if key not in remaining:
                continue
            value = remaining.pop(key)
            if value is None or value == "":
                continue
            bundle.setdefault(field, str(value))
    if bundle:
        logger.info(
            "Migrated %d secret field(s) out of %s configuration: %s",
            len(bundle), name, sorted(bundle),
        )
    return bundle, remaining
