"""
Vault Crypto Core: Key derivation, bundle encryption/decryption, blob format.

Blob layout (base64 of)::

    [key_id length 1B][key_id utf-8][nonce 12B][encrypted_payload + tag 16B]

The key id is also passed to the AEAD as associated data, so a blob cannot be
relabelled to another key without failing authentication.

Security Note:
    Never log plaintext or ciphertext values.
    Nonces are random 96-bit; collision probability negligible under normal usage.
"""
import os
import base64
import binascii
import logging
from typing import Any, Mapping

import orjson
from pydantic import BaseModel
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from cryptography.hazmat.primitives.ciphers.aead import AESGCM, ChaCha20Poly1305

from .config import KEY_LENGTH, MAX_KEY_ID_LENGTH
from .exceptions import (
    InvalidCiphertext,
    KeyNotFound,
    SecretSerializationError,
)
from .keyring import KeyRing, KeyRingEntry

logger = logging.getLogger("navigator.integrations")

NONCE_SIZE = 12  # 96-bit nonce
TAG_SIZE = 16
KEY_ID_LEN_SIZE = 1

_CIPHERS = {
    "aesgcm": AESGCM,
    "chacha20": ChaCha20Poly1305,
}


# ---------------------------------------------------------------------------
# Key derivation
# ---------------------------------------------------------------------------

def derive_key(seed: bytes, context: str) -> bytes:
    """Derive a 32-byte encryption key using HKDF-SHA256.

    Args:
        seed: Input key material (key ring entry bytes).
        context: Context string for domain separation.

    Returns:
        32-byte derived key.
    """
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=None,  # deterministic: the same key id must always derive the same key
        info=context.encode("utf-8"),
    )
    return hkdf.derive(seed)


def _context_for(key_id: str) -> str:
    return f"integration-secrets-{key_id}"


# ---------------------------------------------------------------------------
# Encrypted blob
# ---------------------------------------------------------------------------

class EncryptedBlob(BaseModel):
    """Persisted, self-describing ciphertext of a secret bundle."""

    key_id: str
    iv: bytes
    ciphertext: bytes

    model_config = {"frozen": True}

    def to_bytes(self) -> bytes:
        key_id_bytes = self.key_id.encode("utf-8")
        return (
            len(key_id_bytes).to_bytes(KEY_ID_LEN_SIZE, "big")
            + key_id_bytes + self.iv + self.ciphertext
        )

    def serialize(self) -> str:
        """Return the single base64 string stored in the document."""
        return base64.b64encode(self.to_bytes()).decode("ascii")

    @classmethod
    def from_bytes(cls, data: bytes) -> "EncryptedBlob":
        """Parse the binary blob layout.

        Raises:
            InvalidCiphertext: If the blob is truncated or malformed.
        """
        if len(data) < KEY_ID_LEN_SIZE:
            raise InvalidCiphertext("encrypted blob is empty")
        id_len = data[0]
        header = KEY_ID_LEN_SIZE + id_len
        _min = header + NONCE_SIZE + TAG_SIZE
        if id_len == 0 or len(data) < _min:
            raise InvalidCiphertext(
                f"encrypted blob too short: {len(data)} bytes (minimum {_min})"
            )
        try:
            key_id = data[KEY_ID_LEN_SIZE:header].decode("utf-8")
        except UnicodeDecodeError as err:
            raise InvalidCiphertext("encrypted blob has a malformed key id") from err
        return cls(
            key_id=key_id,
            iv=data[header:header + NONCE_SIZE],
            ciphertext=data[header + NONCE_SIZE:],
        )

    @classmethod
    def parse(cls, value: str) -> "EncryptedBlob":
        """Parse the stored base64 representation."""
        try:
            raw = base64.b64decode(value, validate=True)
        except (binascii.Error, ValueError, TypeError) as err:
            raise InvalidCiphertext("encrypted blob is not valid base64") from err
        return cls.from_bytes(raw)


# ---------------------------------------------------------------------------
# Bundle serialization
# ---------------------------------------------------------------------------

def serialize_bundle(bundle: Mapping[str, Any]) -> bytes:
    """Serialize a secret bundle to bytes for encryption.

    Raises:
        SecretSerializationError: If the bundle is not a str -> str mapping.
    """
    for name, value in bundle.items():
        if not isinstance(name, str) or not isinstance(value, str):
            raise SecretSerializationError(
                f"secret field {name!r} must map a string name to a string value"
            )
    try:
        return orjson.dumps(dict(bundle))
    except orjson.JSONEncodeError as err:
        raise SecretSerializationError(str(err)) from err


def deserialize_bundle(data: bytes) -> dict[str, str]:
    """Deserialize bytes back to a secret bundle.

    Raises:
        InvalidCiphertext: If the payload is not a str -> str JSON object.
    """
    try:
        parsed = orjson.loads(data)
    except orjson.JSONDecodeError as err:
        raise InvalidCiphertext("decrypted payload is not valid JSON") from err
    if not isinstance(parsed, dict) or not all(
        isinstance(v, str) for v in parsed.values()
    ):
        raise InvalidCiphertext("decrypted payload is not a secret bundle")
    return parsed


# ---------------------------------------------------------------------------
# Cipher
# ---------------------------------------------------------------------------

class SecretCipher:
    """Stateless AEAD encryption of secret bundles.

    The backend is fixed at construction so encryption and decryption can
    never disagree within a process.
    """

    def __init__(self, cipher_backend: str = "aesgcm"):
        try:
            self._cipher_cls = _CIPHERS[cipher_backend.lower()]
        except KeyError as err:
            raise ValueError(f"Unsupported cipher backend: {cipher_backend}") from err
        self.cipher_backend = cipher_backend.lower()

    @classmethod
    def for_ring(cls, ring: KeyRing) -> "SecretCipher":
        return cls(ring.cipher_backend)

    def _aead(self, entry: KeyRingEntry):
        return self._cipher_cls(derive_key(entry.key, _context_for(entry.key_id)))

    def encrypt(self, bundle: Mapping[str, str], active_key: KeyRingEntry) -> EncryptedBlob:
        """Encrypt a bundle with the active key and a fresh random nonce.

        Args:
            bundle: Secret field name to value mapping.
            active_key: Key ring entry used for new encryptions.

        Returns:
            EncryptedBlob tagged with the key id.
        """
        if len(active_key.key_id.encode("utf-8")) > MAX_KEY_ID_LENGTH:
            raise ValueError(f"key id too long: {active_key.key_id!r}")
        plaintext = serialize_bundle(bundle)
        nonce = os.urandom(NONCE_SIZE)
        aad = active_key.key_id.encode("utf-8")
        ct = self._aead(active_key).encrypt(nonce, plaintext, aad)
        return EncryptedBlob(key_id=active_key.key_id, iv=nonce, ciphertext=ct)

    def decrypt(self, blob: EncryptedBlob, ring: KeyRing) -> dict[str, str]:
        """Decrypt a blob using the key its id names.

        Raises:
            KeyNotFound: If ``blob.key_id`` is not in the ring.
            InvalidCiphertext: If authentication fails or the payload is
                malformed.
        """
        entry = ring.lookup(blob.key_id)
        if entry is None:
            raise KeyNotFound(
                f"Key id {blob.key_id!r} not found in key ring",
                key_id=blob.key_id,
            )
        if len(blob.iv) != NONCE_SIZE:
            raise InvalidCiphertext(
                f"nonce must be {NONCE_SIZE} bytes", key_id=blob.key_id,
            )
        try:
            plaintext = self._aead(entry).decrypt(
                blob.iv, blob.ciphertext, blob.key_id.encode("utf-8"),
            )
        except InvalidTag as err:
            raise InvalidCiphertext(
                "ciphertext failed authentication", key_id=blob.key_id,
            ) from err
        try:
            return deserialize_bundle(plaintext)
        except InvalidCiphertext as err:
            err.key_id = blob.key_id
            raise

    def encrypt_to_string(self, bundle: Mapping[str, str], ring: KeyRing) -> str:
        """Encrypt with the ring's active key and return the stored form."""
        return self.encrypt(bundle, ring.get_active()).serialize()

    def decrypt_from_string(self, value: str, ring: KeyRing) -> dict[str, str]:
        """Parse and decrypt the stored form."""
        return self.decrypt(EncryptedBlob.parse(value), ring)
