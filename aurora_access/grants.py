"""
Aurora Access Grant Registry.

Durable per-viewer access grants: one record per (resource, viewer) with an
optional expiry and a one-way revocation timestamp. Supports memory and Redis
backends.
"""

import time
import json
import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, asdict, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from aurora_access.errors import InvalidInput, NotFound, NotOwner
from aurora_access.resources import (
    MemoryResourceDirectory,
    ResourceDirectoryInterface,
    ResourceRecord,
)
from aurora_access.signature import decode_wallet

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 200


class GrantDuration(str, Enum):
    """How long a grant lasts, as offered to resource owners."""

    HOURS_24 = "24h"
    DAYS_7 = "7d"
    DAYS_30 = "30d"
    UNLIMITED = "unlimited"

    @classmethod
    def parse(cls, value) -> "GrantDuration":
        """
        Parse a request-facing duration string.

        Raises:
            InvalidInput: If value is not one of 24h, 7d, 30d, unlimited.
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            options = ", ".join(d.value for d in cls)
            raise InvalidInput(f"expiresIn must be one of: {options}")

    def to_timedelta(self) -> Optional[timedelta]:
        """Lifetime of the grant, or None for unlimited."""
        return _DURATIONS[self]

    def expires_at(self, now: float) -> Optional[float]:
        """Absolute expiry (epoch seconds) for a grant made at now."""
        delta = self.to_timedelta()
        return None if delta is None else now + delta.total_seconds()


_DURATIONS: Dict[GrantDuration, Optional[timedelta]] = {
    GrantDuration.HOURS_24: timedelta(hours=24),
    GrantDuration.DAYS_7: timedelta(days=7),
    GrantDuration.DAYS_30: timedelta(days=30),
    GrantDuration.UNLIMITED: None,
}


@dataclass(frozen=True)
class AccessGrant:
    """
    Permission for one viewer wallet to access one resource.

    Attributes:
        resource_id: The protected resource (article id).
        owner_wallet: Wallet of the resource owner who issued the grant.
        viewer_wallet: Wallet allowed to view.
        expires_at: Epoch seconds, or None for unlimited.
        revoked_at: Epoch seconds of revocation, or None.
        created_at: Epoch seconds the grant was first made.
        updated_at: Epoch seconds of the last upsert or revocation.
    """

    resource_id: str
    owner_wallet: str
    viewer_wallet: str
    expires_at: Optional[float] = None
    revoked_at: Optional[float] = None
    created_at: float = 0.0
    updated_at: float = 0.0

    def is_active(self, now: Optional[float] = None) -> bool:
        return is_active(self, now)

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "AccessGrant":
        """Create from dictionary."""
        return cls(**data)

    @property
    def id(self) -> str:
        """Stable identifier, one per (resource, viewer)."""
        return f"{self.resource_id}:{self.viewer_wallet}"

    def to_api(self, now: Optional[float] = None) -> dict:
        """Wire form with ISO-8601 timestamps."""
        return {
            "id": self.id,
            "articleId": self.resource_id,
            "ownerWallet": self.owner_wallet,
            "viewerWallet": self.viewer_wallet,
            "expiresAt": _iso(self.expires_at),
            "revokedAt": _iso(self.revoked_at),
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
            "active": self.is_active(now),
        }


def is_active(grant: AccessGrant, now: Optional[float] = None) -> bool:
    """A grant is active iff it is not revoked and not past its expiry."""
    if now is None:
        now = time.time()
    if grant.revoked_at is not None:
        return False
    return grant.expires_at is None or grant.expires_at > now


def _iso(ts: Optional[float]) -> Optional[str]:
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


# =============================================================================
# Storage
# =============================================================================


class GrantStoreInterface(ABC):
    """Abstract interface for grant storage backends."""

    @abstractmethod
    async def get(self, resource_id: str, viewer_wallet: str) -> Optional[AccessGrant]:
        """Get the grant for (resource, viewer)."""
        pass

    @abstractmethod
    async def put(self, grant: AccessGrant) -> None:
        """Insert or replace the grant for (resource, viewer) in one write."""
        pass

    @abstractmethod
    async def list_by_owner(
        self, owner_wallet: str, resource_id: Optional[str] = None
    ) -> List[AccessGrant]:
        """List grants issued by owner_wallet, optionally for one resource."""
        pass


class MemoryGrantStore(GrantStoreInterface):
    """
    In-memory grant store for testing and single-instance deployments.

    Example:
        >>> store = MemoryGrantStore()
        >>> await store.put(AccessGrant("article-1", owner, viewer))
        >>> await store.get("article-1", viewer)
        AccessGrant(resource_id='article-1', ...)
    """

    def __init__(self):
        self._grants: Dict[Tuple[str, str], AccessGrant] = {}
        self._lock = asyncio.Lock()

    async def get(self, resource_id: str, viewer_wallet: str) -> Optional[AccessGrant]:
        async with self._lock:
            return self._grants.get((resource_id, viewer_wallet))

    async def put(self, grant: AccessGrant) -> None:
        async with self._lock:
            self._grants[(grant.resource_id, grant.viewer_wallet)] = grant

    async def list_by_owner(
        self, owner_wallet: str, resource_id: Optional[str] = None
    ) -> List[AccessGrant]:
        async with self._lock:
            return [
                g
                for g in self._grants.values()
                if g.owner_wallet == owner_wallet
                and (resource_id is None or g.resource_id == resource_id)
            ]


class RedisGrantStore(GrantStoreInterface):
    """
    Redis-backed grant store.

    Each grant is a JSON value under ``<prefix><resource>:<viewer>``; a set per
    owner under ``<index_prefix><wallet>`` indexes the grants that owner
    issued. Both are written in one MULTI/EXEC transaction. The index prefix
    defaults to the key prefix with ``-owner`` appended to its last segment
    (``aurora:grant-owner:``), a shape no grant key can take.

    Example:
        >>> import redis.asyncio as redis
        >>> client = redis.Redis(host='localhost', port=6379)
        >>> store = RedisGrantStore(client)
    """

    def __init__(
        self,
        redis_client,
        key_prefix: str = "aurora:grant:",
        index_prefix: Optional[str] = None,
    ):
        self._redis = redis_client
        self._prefix = key_prefix
        self._owner_prefix = index_prefix or f"{key_prefix.rstrip(':')}-owner:"

    def _key(self, resource_id: str, viewer_wallet: str) -> str:
        """Generate prefixed key."""
        return f"{self._prefix}{resource_id}:{viewer_wallet}"

    async def get(self, resource_id: str, viewer_wallet: str) -> Optional[AccessGrant]:
        try:
            data = await self._redis.get(self._key(resource_id, viewer_wallet))
        except Exception as e:
            logger.error(f"Redis grant get error: {e}")
            raise
        if not data:
            return None
        return AccessGrant.from_dict(json.loads(data))

    async def put(self, grant: AccessGrant) -> None:
        key = self._key(grant.resource_id, grant.viewer_wallet)
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.set(key, json.dumps(grant.to_dict()))
                pipe.sadd(f"{self._owner_prefix}{grant.owner_wallet}", key)
                await pipe.execute()
        except Exception as e:
            logger.error(f"Redis grant write error: {e}")
            raise

    async def list_by_owner(
        self, owner_wallet: str, resource_id: Optional[str] = None
    ) -> List[AccessGrant]:
        try:
            keys = await self._redis.smembers(f"{self._owner_prefix}{owner_wallet}")
            keys = sorted(k.decode() if isinstance(k, bytes) else k for k in keys)
            values = await self._redis.mget(keys) if keys else []
        except Exception as e:
            logger.error(f"Redis grant list error: {e}")
            raise

        grants = []
        for raw in values:
            if not raw:
                continue
            grant = AccessGrant.from_dict(json.loads(raw))
            if resource_id is None or grant.resource_id == resource_id:
                grants.append(grant)
        return grants


# =============================================================================
# Registry
# =============================================================================


class AccessGrantRegistry:
    """
    Owner-managed access grants.

    Example:
        >>> registry = AccessGrantRegistry(directory=directory)
        >>> grant = await registry.upsert(owner, "article-1", viewer, "7d")
        >>> await registry.has_active_grant("article-1", viewer)
        True
        >>> await registry.revoke(owner, "article-1", viewer)
    """

    def __init__(
        self,
        store: Optional[GrantStoreInterface] = None,
        directory: Optional[ResourceDirectoryInterface] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the registry.

        Args:
            store: Grant storage backend.
            directory: Resource owner lookup.
            clock: Source of the current time (epoch seconds).
        """
        self._store = store or MemoryGrantStore()
        self._directory = directory or MemoryResourceDirectory()
        self._clock = clock

    @property
    def directory(self) -> ResourceDirectoryInterface:
        return self._directory

    def now(self) -> float:
        """Current time on the registry clock."""
        return self._clock()

    async def register_resource(
        self, caller: str, resource_id: str, is_public: bool = False
    ) -> ResourceRecord:
        """
        Register caller as the owner of resource_id.

        The first registration binds the id to caller. The owner may register
        again to change visibility; anyone else is refused.

        Raises:
            InvalidInput: Missing resource id.
            NotOwner: The id is already registered to another wallet.
        """
        if not resource_id:
            raise InvalidInput("articleId is required")
        decode_wallet(caller)

        record = ResourceRecord(resource_id=resource_id, owner_wallet=caller, is_public=is_public)
        if await self._directory.create(record):
            logger.info(f"Resource {resource_id} registered to {caller}")
            return record

        existing = await self._directory.get(resource_id)
        if existing is None or existing.owner_wallet != caller:
            raise NotOwner()
        if existing.is_public != is_public:
            await self._directory.register(record)
            visibility = "public" if is_public else "restricted"
            logger.info(f"Resource {resource_id} is now {visibility}")
        return record

    async def upsert(
        self, caller: str, resource_id: str, viewer_wallet: str, expires_in
    ) -> AccessGrant:
        """
        Grant (or re-grant) viewer_wallet access to a resource.

        Calling again for the same viewer replaces the expiry and clears any
        revocation.

        Args:
            caller: Wallet of the authenticated caller.
            resource_id: Resource to grant access to.
            viewer_wallet: Wallet receiving access.
            expires_in: GrantDuration or one of "24h", "7d", "30d", "unlimited".

        Raises:
            InvalidInput: Missing resource id or unknown duration.
            InvalidWallet: Malformed viewer wallet.
            NotFound: Unknown resource.
            NotOwner: Caller does not own the resource.
        """
        if not resource_id:
            raise InvalidInput("articleId is required")
        duration = GrantDuration.parse(expires_in)
        decode_wallet(viewer_wallet)

        resource = await self._directory.get(resource_id)
        if resource is None:
            raise NotFound(f"Resource {resource_id} not found")
        if resource.owner_wallet != caller:
            raise NotOwner()

        now = self._clock()
        existing = await self._store.get(resource_id, viewer_wallet)
        grant = AccessGrant(
            resource_id=resource_id,
            owner_wallet=resource.owner_wallet,
            viewer_wallet=viewer_wallet,
            expires_at=duration.expires_at(now),
            revoked_at=None,
            created_at=existing.created_at if existing else now,
            updated_at=now,
        )
        await self._store.put(grant)

        logger.info(f"Granted {viewer_wallet} access to {resource_id} for {duration.value}")
        return grant

    async def revoke(self, caller: str, resource_id: str, viewer_wallet: str) -> AccessGrant:
        """
        Revoke a grant. Revocation is one-way; only a new upsert restores access.

        Raises:
            NotFound: No grant exists for (resource, viewer).
            NotOwner: Caller did not issue the grant.
        """
        grant = await self._store.get(resource_id, viewer_wallet)
        if grant is None:
            raise NotFound("Grant not found")
        if grant.owner_wallet != caller:
            raise NotOwner()
        if grant.revoked_at is not None:
            return grant

        now = self._clock()
        revoked = replace(grant, revoked_at=now, updated_at=now)
        await self._store.put(revoked)

        logger.info(f"Revoked {viewer_wallet} access to {resource_id}")
        return revoked

    async def list(
        self, caller: str, resource_id: Optional[str] = None, limit: int = DEFAULT_PAGE_SIZE
    ) -> List[AccessGrant]:
        """Grants issued by caller, newest first, at most MAX_PAGE_SIZE."""
        limit = max(1, min(int(limit), MAX_PAGE_SIZE))
        grants = await self._store.list_by_owner(caller, resource_id)
        grants.sort(key=lambda g: g.updated_at, reverse=True)
        return grants[:limit]

    async def get(self, resource_id: str, viewer_wallet: str) -> Optional[AccessGrant]:
        """Get the grant for (resource, viewer), active or not."""
        return await self._store.get(resource_id, viewer_wallet)

    async def has_active_grant(self, resource_id: str, viewer_wallet: str) -> bool:
        """Check whether viewer_wallet currently holds an active grant."""
        grant = await self._store.get(resource_id, viewer_wallet)
        return grant is not None and is_active(grant, self._clock())

    async def can_view(self, resource_id: str, wallet: Optional[str]) -> bool:
        """
        Metadata-read authorization: public resources, the owner, or an active grant.

        Raises:
            NotFound: Unknown resource.
        """
        resource = await self._directory.get(resource_id)
        if resource is None:
            raise NotFound(f"Resource {resource_id} not found")
        if resource.is_public:
            return True
        if not wallet:
            return False
        if resource.owner_wallet == wallet:
            return True
        return await self.has_active_grant(resource_id, wallet)
