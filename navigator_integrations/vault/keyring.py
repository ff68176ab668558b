"""
Key Ring: the immutable set of keys a process can encrypt and decrypt with.

Built once at startup from a validated ``KeyRingConfig``. One entry is active
and used for every new encryption; every entry (active or retired) remains
available for decrypt-by-id lookups.
"""
import logging
from types import MappingProxyType
from typing import Iterator, Optional

from pydantic import BaseModel

from .config import KeyRingConfig
from .exceptions import StartupConfigurationError

logger = logging.getLogger("navigator.integrations")


class KeyRingEntry(BaseModel):
    """A named symmetric key."""

    key_id: str
    key: bytes

    model_config = {"frozen": True}

    def __repr__(self) -> str:
        # key material must never reach logs or tracebacks
        return f"KeyRingEntry(key_id={self.key_id!r})"

    __str__ = __repr__


class KeyRing:
    """Immutable key ring with a single active key."""

    __slots__ = ("_entries", "_active_id", "_cipher_backend")

    def __init__(
        self,
        keys: dict[str, bytes],
        active_key_id: str,
        cipher_backend: str = "aesgcm",
    ):
        config = KeyRingConfig.create(
            keys=dict(keys),
            active_key_id=active_key_id,
            cipher_backend=cipher_backend,
        )
        self._entries = MappingProxyType({
            key_id: KeyRingEntry(key_id=key_id, key=key)
            for key_id, key in config.keys.items()
        })
        self._active_id = config.active_key_id
        self._cipher_backend = config.cipher_backend
        logger.info(
            "Key ring loaded: %d key(s), active key id %s",
            len(self._entries), self._active_id,
        )

    @classmethod
    def from_config(cls, config: KeyRingConfig) -> "KeyRing":
        return cls(
            keys=config.keys,
            active_key_id=config.active_key_id,
            cipher_backend=config.cipher_backend,
        )

    @classmethod
    def from_env(cls) -> "KeyRing":
        """Load the key ring from INTEGRATION_SECRETS_* environment variables."""
        return cls.from_config(KeyRingConfig.from_env())

    @property
    def active_key_id(self) -> str:
        return self._active_id

    @property
    def cipher_backend(self) -> str:
        return self._cipher_backend

    @property
    def key_ids(self) -> list[str]:
        return sorted(self._entries)

    def get_active(self) -> KeyRingEntry:
        """Return the entry used for all new encryptions."""
        try:
            return self._entries[self._active_id]
        except KeyError as err:  # pragma: no cover - guarded at construction
            raise StartupConfigurationError(
                f"Active key id {self._active_id!r} missing from key ring"
            ) from err

    def lookup(self, key_id: str) -> Optional[KeyRingEntry]:
        """Return the entry for ``key_id``, or None if it is not in the ring."""
        return self._entries.get(key_id)

    def __contains__(self, key_id: object) -> bool:
        return key_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __repr__(self) -> str:
        return (
            f"<KeyRing active={self._active_id!r} keys={self.key_ids!r} "
            f"cipher={self._cipher_backend!r}>"
        )
