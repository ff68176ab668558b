"""Display-safe masking of secret bundles for API responses."""
from typing import Mapping, Optional

MASK = "****"
_VISIBLE = 4


def mask_value(value: Optional[str]) -> Optional[str]:
    """Keep the first and last four characters of long values.

    Values of eight characters or fewer collapse to a constant mask.
    """
    if not value:
        return value
    if len(value) > 2 * _VISIBLE:
        return value[:_VISIBLE] + MASK + value[-_VISIBLE:]
    return MASK


def mask(bundle: Mapping[str, Optional[str]]) -> dict[str, str]:
    """Return a masked copy of ``bundle``; empty or missing values are dropped."""
    return {
        name: mask_value(str(value))
        for name, value in bundle.items()
        if value
    }
