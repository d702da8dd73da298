"""
Shared pytest fixtures for Aurora Access tests.
"""

import pytest

from aurora_access import generate_wallet, WalletKeyPair
from aurora_access.challenges import MemoryChallengeStore
from aurora_access.custody import KeyCustodian, MemorySecretStore
from aurora_access.grants import AccessGrantRegistry, MemoryGrantStore
from aurora_access.resources import MemoryResourceDirectory, ResourceRecord
from aurora_access.service import AccessServices
from aurora_access.session import SessionIssuer

# Long enough for HS512 forgeries in the session tests
JWT_SECRET = "aurora-access-test-jwt-secret-0123456789abcdef0123456789abcdef01"
KEY_SECRET = "test-article-key-secret"

ARTICLE_ID = "article-1"
PUBLIC_ARTICLE_ID = "article-public"


class FakeClock:
    """Manually advanced clock (epoch seconds)."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def owner() -> WalletKeyPair:
    """Wallet that owns the test articles."""
    return generate_wallet()


@pytest.fixture
def viewer() -> WalletKeyPair:
    """Wallet that receives grants."""
    return generate_wallet()


@pytest.fixture
def stranger() -> WalletKeyPair:
    """Wallet with no relation to the test articles."""
    return generate_wallet()


@pytest.fixture
def directory(owner: WalletKeyPair) -> MemoryResourceDirectory:
    return MemoryResourceDirectory(
        records=[
            ResourceRecord(resource_id=ARTICLE_ID, owner_wallet=owner.wallet),
            ResourceRecord(
                resource_id=PUBLIC_ARTICLE_ID, owner_wallet=owner.wallet, is_public=True
            ),
        ]
    )


@pytest.fixture
def challenge_store(clock: FakeClock) -> MemoryChallengeStore:
    return MemoryChallengeStore(ttl=300, clock=clock)


@pytest.fixture
def issuer(challenge_store: MemoryChallengeStore, clock: FakeClock) -> SessionIssuer:
    return SessionIssuer(challenge_store, secret=JWT_SECRET, ttl=7200, clock=clock)


@pytest.fixture
def registry(directory: MemoryResourceDirectory, clock: FakeClock) -> AccessGrantRegistry:
    return AccessGrantRegistry(MemoryGrantStore(), directory, clock=clock)


@pytest.fixture
def custodian() -> KeyCustodian:
    return KeyCustodian(secret=KEY_SECRET, store=MemorySecretStore())


@pytest.fixture
def services(directory: MemoryResourceDirectory, clock: FakeClock) -> AccessServices:
    """Fully wired in-memory services sharing one clock."""
    return AccessServices.in_memory(
        jwt_secret=JWT_SECRET, key_secret=KEY_SECRET, directory=directory, clock=clock
    )
