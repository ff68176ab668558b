import os
import base64

import pytest

from navigator_integrations.vault import (
    InMemoryIntegrationRepository,
    IntegrationSecretStore,
    KeyRing,
    SecretCipher,
    WebhookSecretGuard,
)


@pytest.fixture
def key_v1() -> bytes:
    return os.urandom(32)


@pytest.fixture
def key_v2() -> bytes:
    return os.urandom(32)


@pytest.fixture
def ring(key_v1) -> KeyRing:
    """Key ring with a single active key."""
    return KeyRing(keys={"v1": key_v1}, active_key_id="v1")


@pytest.fixture
def rotated_ring(key_v1, key_v2) -> KeyRing:
    """Key ring after rotation: v2 active, v1 retired."""
    return KeyRing(keys={"v1": key_v1, "v2": key_v2}, active_key_id="v2")


@pytest.fixture
def cipher() -> SecretCipher:
    return SecretCipher()


@pytest.fixture
def repository() -> InMemoryIntegrationRepository:
    return InMemoryIntegrationRepository()


@pytest.fixture
def store(repository, ring) -> IntegrationSecretStore:
    return IntegrationSecretStore(repository, ring)


@pytest.fixture
def guard(store) -> WebhookSecretGuard:
    return WebhookSecretGuard(store)


@pytest.fixture
def b64key():
    """Return a helper that base64-encodes key bytes."""
    def _encode(key: bytes) -> str:
        return base64.b64encode(key).decode("ascii")
    return _encode
