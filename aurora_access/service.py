"""
Service wiring.

Builds one consistent set of components over either in-memory or Redis
backends. The Redis backends are required once more than one API instance
serves traffic, otherwise a challenge issued on one instance cannot be
consumed on another.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from aurora_access import config
from aurora_access.challenges import (
    ChallengeStoreInterface,
    MemoryChallengeStore,
    RedisChallengeStore,
)
from aurora_access.custody import KeyCustodian, MemorySecretStore, RedisSecretStore
from aurora_access.grants import AccessGrantRegistry, MemoryGrantStore, RedisGrantStore
from aurora_access.release import KeyReleaseProtocol
from aurora_access.resources import (
    MemoryResourceDirectory,
    RedisResourceDirectory,
    ResourceDirectoryInterface,
)
from aurora_access.session import SessionIssuer

logger = logging.getLogger(__name__)


@dataclass
class AccessServices:
    """The access-control components of one service instance."""

    challenges: ChallengeStoreInterface
    sessions: SessionIssuer
    grants: AccessGrantRegistry
    custodian: KeyCustodian
    release: KeyReleaseProtocol

    @property
    def directory(self) -> ResourceDirectoryInterface:
        return self.grants.directory

    @classmethod
    def in_memory(
        cls,
        jwt_secret: Optional[str] = None,
        key_secret: Optional[str] = None,
        directory: Optional[ResourceDirectoryInterface] = None,
        clock=None,
    ) -> "AccessServices":
        """Single-process wiring for development and tests."""
        extra = {"clock": clock} if clock is not None else {}
        challenges = MemoryChallengeStore(**extra)
        grants = AccessGrantRegistry(
            MemoryGrantStore(), directory or MemoryResourceDirectory(), **extra
        )
        custodian = KeyCustodian(key_secret, MemorySecretStore())
        return cls(
            challenges=challenges,
            sessions=SessionIssuer(challenges, jwt_secret, **extra),
            grants=grants,
            custodian=custodian,
            release=KeyReleaseProtocol(challenges, grants, custodian),
        )

    @classmethod
    def with_redis(
        cls,
        redis_client,
        jwt_secret: Optional[str] = None,
        key_secret: Optional[str] = None,
        directory: Optional[ResourceDirectoryInterface] = None,
        key_prefix: str = config.REDIS_KEY_PREFIX,
    ) -> "AccessServices":
        """Shared-state wiring for multi-instance deployments."""
        challenges = RedisChallengeStore(redis_client, key_prefix=f"{key_prefix}challenge:")
        grants = AccessGrantRegistry(
            RedisGrantStore(
                redis_client,
                key_prefix=f"{key_prefix}grant:",
                index_prefix=f"{key_prefix}grant-owner:",
            ),
            directory
            or RedisResourceDirectory(redis_client, key_prefix=f"{key_prefix}resource:"),
        )
        custodian = KeyCustodian(
            key_secret, RedisSecretStore(redis_client, key_prefix=f"{key_prefix}secret:")
        )
        return cls(
            challenges=challenges,
            sessions=SessionIssuer(challenges, jwt_secret),
            grants=grants,
            custodian=custodian,
            release=KeyReleaseProtocol(challenges, grants, custodian),
        )

    @classmethod
    def from_env(cls, directory: Optional[ResourceDirectoryInterface] = None) -> "AccessServices":
        """
        Wire from the environment: Redis when AURORA_REDIS_URL is set, memory otherwise.

        Secrets are resolved per request, so a missing secret surfaces as
        Misconfigured (500) on the first call that needs it.
        """
        if config.REDIS_URL:
            import redis.asyncio as redis

            logger.info("Using Redis-backed challenge, grant and secret stores")
            return cls.with_redis(redis.from_url(config.REDIS_URL), directory=directory)

        logger.warning("AURORA_REDIS_URL not set; challenges are valid on this instance only")
        return cls.in_memory(directory=directory)
