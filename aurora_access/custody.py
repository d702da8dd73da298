"""
Aurora Access Key Custodian.

Envelope encryption of per-resource content keys. A 32-byte master key is
derived from ARTICLE_KEY_ENCRYPTION_SECRET with a single SHA-256, and each
content key is sealed with AES-256-GCM:

    base64( IV[12] || TAG[16] || CIPHERTEXT[32] )

The GCM tag authenticates IV and ciphertext together; there is no separate
checksum.
"""

import os
import base64
import asyncio
import binascii
import hashlib
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from aurora_access.config import get_key_encryption_secret
from aurora_access.errors import InvalidInput, InvalidKeyLength, InvalidPayload, NotFound

logger = logging.getLogger(__name__)

KEY_LENGTH = 32
IV_LENGTH = 12
TAG_LENGTH = 16
MIN_PAYLOAD_LENGTH = IV_LENGTH + TAG_LENGTH + 1


@dataclass(frozen=True)
class ResourceSecret:
    """The wrapped content key of one resource."""

    resource_id: str
    encrypted_key: str


class SecretStoreInterface(ABC):
    """Abstract interface for resource secret storage. Secrets are write-once."""

    @abstractmethod
    async def get(self, resource_id: str) -> Optional[ResourceSecret]:
        """Get the secret for resource_id."""
        pass

    @abstractmethod
    async def create(self, secret: ResourceSecret) -> bool:
        """Store secret if none exists yet. Returns False if one already exists."""
        pass


class MemorySecretStore(SecretStoreInterface):
    """In-memory secret store for testing and single-instance deployments."""

    def __init__(self):
        self._secrets: Dict[str, ResourceSecret] = {}
        self._lock = asyncio.Lock()

    async def get(self, resource_id: str) -> Optional[ResourceSecret]:
        async with self._lock:
            return self._secrets.get(resource_id)

    async def create(self, secret: ResourceSecret) -> bool:
        async with self._lock:
            if secret.resource_id in self._secrets:
                return False
            self._secrets[secret.resource_id] = secret
            return True


class RedisSecretStore(SecretStoreInterface):
    """
    Redis-backed secret store. Uses SET NX so a secret is never overwritten.

    Example:
        >>> import redis.asyncio as redis
        >>> client = redis.Redis(host='localhost', port=6379)
        >>> store = RedisSecretStore(client)
    """

    def __init__(self, redis_client, key_prefix: str = "aurora:secret:"):
        self._redis = redis_client
        self._prefix = key_prefix

    def _key(self, resource_id: str) -> str:
        """Generate prefixed key."""
        return f"{self._prefix}{resource_id}"

    async def get(self, resource_id: str) -> Optional[ResourceSecret]:
        try:
            data = await self._redis.get(self._key(resource_id))
        except Exception as e:
            logger.error(f"Redis secret get error: {e}")
            raise
        if not data:
            return None
        if isinstance(data, bytes):
            data = data.decode()
        return ResourceSecret(resource_id=resource_id, encrypted_key=data)

    async def create(self, secret: ResourceSecret) -> bool:
        try:
            created = await self._redis.set(
                self._key(secret.resource_id), secret.encrypted_key, nx=True
            )
        except Exception as e:
            logger.error(f"Redis secret write error: {e}")
            raise
        return bool(created)


def derive_master_key(secret: str) -> bytes:
    """SHA-256 of the configured passphrase (see DESIGN.md on this derivation)."""
    return hashlib.sha256(secret.encode("utf-8")).digest()


def generate_content_key() -> bytes:
    """A fresh random 32-byte content key."""
    return os.urandom(KEY_LENGTH)


class KeyCustodian:
    """
    Wraps and unwraps content keys under the server master key.

    Example:
        >>> custodian = KeyCustodian(secret="passphrase")
        >>> blob = custodian.wrap(os.urandom(32))
        >>> len(custodian.unwrap(blob))
        32
    """

    def __init__(self, secret: Optional[str] = None, store: Optional[SecretStoreInterface] = None):
        """
        Initialize the custodian.

        Args:
            secret: Master passphrase; read from ARTICLE_KEY_ENCRYPTION_SECRET when omitted.
            store: Resource secret storage backend.
        """
        self._secret = secret
        self._store = store or MemorySecretStore()

    def _master_key(self) -> bytes:
        return derive_master_key(self._secret or get_key_encryption_secret())

    def wrap(self, content_key: bytes) -> str:
        """
        Encrypt a content key.

        Raises:
            InvalidKeyLength: If content_key is not 32 bytes.
            Misconfigured: If no master secret is configured.
        """
        if not isinstance(content_key, (bytes, bytearray)) or len(content_key) != KEY_LENGTH:
            raise InvalidKeyLength("Content key must be 32 bytes")
        iv = os.urandom(IV_LENGTH)
        # AESGCM appends the tag; the wire layout puts it before the ciphertext
        sealed = AESGCM(self._master_key()).encrypt(iv, bytes(content_key), None)
        ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
        return base64.b64encode(iv + tag + ciphertext).decode("ascii")

    def unwrap(self, encrypted_key: str) -> bytes:
        """
        Decrypt a wrapped content key.

        Raises:
            InvalidPayload: Malformed base64, truncated payload or failed tag check.
            InvalidKeyLength: If the plaintext is not 32 bytes.
            Misconfigured: If no master secret is configured.
        """
        try:
            payload = base64.b64decode(encrypted_key, validate=True)
        except (binascii.Error, ValueError, TypeError):
            raise InvalidPayload("Invalid encrypted key payload")
        if len(payload) < MIN_PAYLOAD_LENGTH:
            raise InvalidPayload("Invalid encrypted key payload")

        iv = payload[:IV_LENGTH]
        tag = payload[IV_LENGTH : IV_LENGTH + TAG_LENGTH]
        ciphertext = payload[IV_LENGTH + TAG_LENGTH :]
        try:
            plain = AESGCM(self._master_key()).decrypt(iv, ciphertext + tag, None)
        except InvalidTag:
            raise InvalidPayload("Encrypted key failed authentication")

        if len(plain) != KEY_LENGTH:
            raise InvalidKeyLength("Decrypted key must be 32 bytes")
        return plain

    async def seal(self, resource_id: str, content_key: Optional[bytes] = None) -> bytes:
        """
        Create the ResourceSecret of a restricted resource at publish time.

        Args:
            resource_id: Resource being published.
            content_key: Key the content was encrypted with; generated when omitted.

        Returns:
            The raw content key, for the publisher to encrypt content with.

        Raises:
            InvalidInput: If the resource already has a secret.
        """
        if not resource_id:
            raise InvalidInput("articleId is required")
        key = content_key if content_key is not None else generate_content_key()
        secret = ResourceSecret(resource_id=resource_id, encrypted_key=self.wrap(key))
        if not await self._store.create(secret):
            raise InvalidInput(f"Resource {resource_id} already has a content key")
        logger.info(f"Sealed content key for {resource_id}")
        return bytes(key)

    async def open(self, resource_id: str) -> bytes:
        """
        Unwrap the stored content key of a resource.

        Raises:
            NotFound: If the resource has no secret.
        """
        secret = await self._store.get(resource_id)
        if secret is None:
            raise NotFound(f"No content key for {resource_id}")
        return self.unwrap(secret.encrypted_key)

    async def has_secret(self, resource_id: str) -> bool:
        return await self._store.get(resource_id) is not None
