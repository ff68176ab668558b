"""Navigator Integrations.

Encrypted secrets for third-party app integrations and webhook guarding.
"""
from .version import __version__

__all__ = ["__version__"]
