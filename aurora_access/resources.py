"""
Resource owner directory.

Access control only needs to know who owns a resource and whether it is
public. Owners register a resource id once; the first registration binds the
id to that wallet and later registrations by anyone else are refused.
Supports memory and Redis backends; a deployment whose article metadata lives
elsewhere can implement ResourceDirectoryInterface over that store instead.
"""

import json
import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, asdict
from typing import Dict, Iterable, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResourceRecord:
    """Ownership facts about one resource (article)."""

    resource_id: str
    owner_wallet: str
    is_public: bool = False

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "ResourceRecord":
        """Create from dictionary."""
        return cls(**data)

    def to_api(self) -> dict:
        return {
            "articleId": self.resource_id,
            "ownerWallet": self.owner_wallet,
            "isPublic": self.is_public,
        }


class ResourceDirectoryInterface(ABC):
    """Owner lookup for resources."""

    @abstractmethod
    async def get(self, resource_id: str) -> Optional[ResourceRecord]:
        """Return the record for resource_id, or None if unknown."""
        pass

    @abstractmethod
    async def register(self, record: ResourceRecord) -> None:
        """Record (or replace) a resource."""
        pass

    @abstractmethod
    async def create(self, record: ResourceRecord) -> bool:
        """Record a resource only if its id is unknown. Returns False if it exists."""
        pass


class MemoryResourceDirectory(ResourceDirectoryInterface):
    """In-memory directory for tests and single-instance deployments."""

    def __init__(self, records: Iterable[ResourceRecord] = ()):
        self._records: Dict[str, ResourceRecord] = {r.resource_id: r for r in records}
        self._lock = asyncio.Lock()

    async def get(self, resource_id: str) -> Optional[ResourceRecord]:
        async with self._lock:
            return self._records.get(resource_id)

    async def register(self, record: ResourceRecord) -> None:
        async with self._lock:
            self._records[record.resource_id] = record
            logger.debug(f"Registered resource {record.resource_id} owned by {record.owner_wallet}")

    async def create(self, record: ResourceRecord) -> bool:
        async with self._lock:
            if record.resource_id in self._records:
                return False
            self._records[record.resource_id] = record
            logger.debug(f"Registered resource {record.resource_id} owned by {record.owner_wallet}")
            return True


class RedisResourceDirectory(ResourceDirectoryInterface):
    """
    Redis-backed directory shared by every API instance.

    Each record is a JSON value under ``<prefix><resource>``. ``create`` uses
    SET NX so two owners racing for one id cannot both win.

    Example:
        >>> import redis.asyncio as redis
        >>> client = redis.Redis(host='localhost', port=6379)
        >>> directory = RedisResourceDirectory(client)
    """

    def __init__(self, redis_client, key_prefix: str = "aurora:resource:"):
        self._redis = redis_client
        self._prefix = key_prefix

    def _key(self, resource_id: str) -> str:
        """Generate prefixed key."""
        return f"{self._prefix}{resource_id}"

    async def get(self, resource_id: str) -> Optional[ResourceRecord]:
        try:
            data = await self._redis.get(self._key(resource_id))
        except Exception as e:
            logger.error(f"Redis resource get error: {e}")
            raise
        if not data:
            return None
        return ResourceRecord.from_dict(json.loads(data))

    async def register(self, record: ResourceRecord) -> None:
        try:
            await self._redis.set(self._key(record.resource_id), json.dumps(record.to_dict()))
        except Exception as e:
            logger.error(f"Redis resource write error: {e}")
            raise

    async def create(self, record: ResourceRecord) -> bool:
        try:
            created = await self._redis.set(
                self._key(record.resource_id), json.dumps(record.to_dict()), nx=True
            )
        except Exception as e:
            logger.error(f"Redis resource write error: {e}")
            raise
        return bool(created)
