"""
Aurora Access Nonce Challenges.

Short-lived, single-use challenges keyed by a logical subject: the wallet for
session challenges, ``<resourceId>:<wallet>`` for key-release challenges.
Supports both in-memory and Redis-backed storage.
"""

import hmac
import json
import time
import asyncio
import logging
import secrets
from abc import ABC, abstractmethod
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Dict

from aurora_access.config import CHALLENGE_TTL_SECONDS
from aurora_access.errors import ChallengeExpired, InvalidNonce, NoActiveChallenge

logger = logging.getLogger(__name__)

NONCE_BYTES = 16


@dataclass(frozen=True)
class Challenge:
    """A live challenge for one subject."""

    subject: str
    nonce: str
    expires_at: float

    def to_dict(self) -> dict:
        """Wire form; expiresAt is epoch milliseconds."""
        return {"nonce": self.nonce, "expiresAt": int(self.expires_at * 1000)}


def session_subject(wallet: str) -> str:
    """Subject key of a session challenge."""
    return wallet


def key_release_subject(resource_id: str, wallet: str) -> str:
    """Subject key of a key-release challenge."""
    return f"{resource_id}:{wallet}"


def new_nonce() -> str:
    """16 random bytes, hex encoded."""
    return secrets.token_hex(NONCE_BYTES)


def _nonce_matches(stored: str, presented) -> bool:
    if not isinstance(presented, str):
        return False
    return hmac.compare_digest(stored.encode("utf-8"), presented.encode("utf-8"))


class ChallengeStoreInterface(ABC):
    """Abstract interface for challenge store implementations."""

    @abstractmethod
    async def issue(self, subject: str) -> Challenge:
        """Create a challenge for subject, replacing any live one."""
        pass

    @abstractmethod
    async def consume(self, subject: str, nonce: str) -> bool:
        """
        Redeem the challenge for subject exactly once.

        Raises:
            NoActiveChallenge: Nothing is stored for subject.
            ChallengeExpired: The challenge is past its expiry (it is deleted).
            InvalidNonce: The stored nonce differs (it is kept).
        """
        pass


class MemoryChallengeStore(ChallengeStoreInterface):
    """
    In-memory challenge store guarded by a single lock.

    Exactly-once holds within one process only. For multi-instance
    deployments, use RedisChallengeStore.

    Example:
        >>> store = MemoryChallengeStore()
        >>> challenge = await store.issue("7xKX...wallet")
        >>> await store.consume("7xKX...wallet", challenge.nonce)
        True
    """

    def __init__(
        self,
        ttl: int = CHALLENGE_TTL_SECONDS,
        max_size: int = 100000,
        cleanup_interval: int = 60,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the memory challenge store.

        Args:
            ttl: Challenge lifetime in seconds.
            max_size: Maximum live challenges before the oldest is evicted.
            cleanup_interval: Seconds between expired-entry sweeps.
            clock: Source of the current time (epoch seconds).
        """
        self._challenges: "OrderedDict[str, Challenge]" = OrderedDict()
        self._ttl = ttl
        self._max_size = max_size
        self._cleanup_interval = cleanup_interval
        self._clock = clock
        self._lock = asyncio.Lock()
        self._last_cleanup = clock()
        self._stats = {"issued": 0, "consumed": 0, "expired": 0, "rejected": 0, "evicted": 0}

    async def issue(self, subject: str) -> Challenge:
        """Issue a fresh challenge, invalidating any previous one for subject."""
        async with self._lock:
            await self._maybe_cleanup()

            self._challenges.pop(subject, None)
            while len(self._challenges) >= self._max_size:
                oldest = next(iter(self._challenges))
                del self._challenges[oldest]
                self._stats["evicted"] += 1

            challenge = Challenge(
                subject=subject, nonce=new_nonce(), expires_at=self._clock() + self._ttl
            )
            self._challenges[subject] = challenge
            self._stats["issued"] += 1
            return challenge

    async def consume(self, subject: str, nonce: str) -> bool:
        """Redeem the challenge for subject."""
        async with self._lock:
            challenge = self._challenges.get(subject)
            if challenge is None:
                raise NoActiveChallenge(f"No active challenge for {subject}")

            if self._clock() > challenge.expires_at:
                del self._challenges[subject]
                self._stats["expired"] += 1
                logger.warning(f"Expired challenge presented for {subject}")
                raise ChallengeExpired()

            if not _nonce_matches(challenge.nonce, nonce):
                self._stats["rejected"] += 1
                raise InvalidNonce()

            del self._challenges[subject]
            self._stats["consumed"] += 1
            return True

    async def cleanup_expired(self) -> int:
        """Remove all expired challenges. Returns count removed."""
        async with self._lock:
            return await self._cleanup_internal()

    async def _cleanup_internal(self) -> int:
        """Internal cleanup without lock."""
        now = self._clock()
        expired = [s for s, c in self._challenges.items() if now > c.expires_at]

        for subject in expired:
            del self._challenges[subject]

        return len(expired)

    async def _maybe_cleanup(self) -> None:
        """Run cleanup if interval has passed."""
        now = self._clock()
        if now - self._last_cleanup >= self._cleanup_interval:
            await self._cleanup_internal()
            self._last_cleanup = now

    @property
    def stats(self) -> Dict[str, int]:
        """Return store statistics."""
        return {**self._stats, "active": len(self._challenges), "max_size": self._max_size}


# Read, compare and delete in one server-side step so two instances cannot
# both redeem the same challenge.
_CONSUME_SCRIPT = """
local raw = redis.call('GET', KEYS[1])
if not raw then
  return 'missing'
end
local entry = cjson.decode(raw)
if tonumber(ARGV[2]) > tonumber(entry['expires_at']) then
  redis.call('DEL', KEYS[1])
  return 'expired'
end
if entry['nonce'] ~= ARGV[1] then
  return 'mismatch'
end
redis.call('DEL', KEYS[1])
return 'ok'
"""


class RedisChallengeStore(ChallengeStoreInterface):
    """
    Redis-backed challenge store for distributed deployments.

    Entries are kept a grace period past their logical expiry so an expired
    challenge is reported as ChallengeExpired rather than NoActiveChallenge;
    Redis drops them afterwards.

    Example:
        >>> import redis.asyncio as redis
        >>> client = redis.Redis(host='localhost', port=6379)
        >>> store = RedisChallengeStore(client)
    """

    def __init__(
        self,
        redis_client,
        ttl: int = CHALLENGE_TTL_SECONDS,
        key_prefix: str = "aurora:challenge:",
        grace_period: int = 60,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize Redis challenge store.

        Args:
            redis_client: An async Redis client (redis.asyncio.Redis).
            ttl: Challenge lifetime in seconds.
            key_prefix: Prefix for challenge keys.
            grace_period: Extra seconds Redis keeps an expired entry.
            clock: Source of the current time (epoch seconds).
        """
        self._redis = redis_client
        self._ttl = ttl
        self._prefix = key_prefix
        self._grace_period = grace_period
        self._clock = clock

    def _key(self, subject: str) -> str:
        """Generate prefixed key."""
        return f"{self._prefix}{subject}"

    async def issue(self, subject: str) -> Challenge:
        """Issue a challenge; SET overwrites any live one."""
        challenge = Challenge(
            subject=subject, nonce=new_nonce(), expires_at=self._clock() + self._ttl
        )
        try:
            await self._redis.set(
                self._key(subject),
                json.dumps({"nonce": challenge.nonce, "expires_at": challenge.expires_at}),
                ex=self._ttl + self._grace_period,
            )
        except Exception as e:
            logger.error(f"Redis challenge issue error: {e}")
            raise
        return challenge

    async def consume(self, subject: str, nonce: str) -> bool:
        """Redeem the challenge atomically."""
        if not isinstance(nonce, str):
            nonce = ""
        try:
            outcome = await self._redis.eval(
                _CONSUME_SCRIPT, 1, self._key(subject), nonce, repr(self._clock())
            )
        except Exception as e:
            logger.error(f"Redis challenge consume error: {e}")
            raise

        if isinstance(outcome, bytes):
            outcome = outcome.decode()

        if outcome == "ok":
            return True
        if outcome == "expired":
            logger.warning(f"Expired challenge presented for {subject}")
            raise ChallengeExpired()
        if outcome == "mismatch":
            raise InvalidNonce()
        raise NoActiveChallenge(f"No active challenge for {subject}")

    async def ping(self) -> bool:
        """Check Redis connectivity."""
        try:
            return await self._redis.ping()
        except Exception:
            return False
