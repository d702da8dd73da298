"""
Aurora Access - wallet-authenticated access control and content-key custody.

Proves control of an Ed25519 wallet with signed challenges, issues bounded
bearer sessions, manages per-viewer access grants and releases per-article
content keys only to holders of an active grant.
"""

__version__ = "0.4.0"

# Errors
from .errors import (
    AccessError,
    InvalidInput,
    InvalidWallet,
    NoActiveChallenge,
    ChallengeExpired,
    InvalidNonce,
    InvalidSignature,
    Unauthorized,
    SessionExpired,
    NotOwner,
    AccessDenied,
    NotFound,
    InvalidPayload,
    InvalidKeyLength,
    Misconfigured,
)

# Core
from .canonical import canonical_json, canonical_bytes, auth_message, access_key_message
from .signature import verify_signature, decode_wallet, is_valid_wallet
from .challenges import Challenge, MemoryChallengeStore, ChallengeStoreInterface
from .session import SessionIssuer, Session, SessionClaims
from .grants import AccessGrant, AccessGrantRegistry, GrantDuration, is_active
from .custody import KeyCustodian
from .release import KeyReleaseProtocol
from .keys import WalletKeyPair, generate_wallet


# Optional backends and adapters (lazy imports to avoid requiring optional deps)
def __getattr__(name):
    """Lazy loading of Redis backends and the HTTP adapter."""
    if name == "RedisChallengeStore":
        from .challenges import RedisChallengeStore

        return RedisChallengeStore
    elif name in ("RedisResourceDirectory", "MemoryResourceDirectory", "ResourceRecord"):
        from . import resources

        return getattr(resources, name)
    elif name in ("RedisGrantStore", "MemoryGrantStore"):
        from . import grants

        return getattr(grants, name)
    elif name in ("RedisSecretStore", "MemorySecretStore"):
        from . import custody

        return getattr(custody, name)
    elif name == "AccessServices":
        from .service import AccessServices

        return AccessServices
    elif name == "create_app":
        from .server import create_app

        return create_app
    raise AttributeError(f"module 'aurora_access' has no attribute '{name}'")


__all__ = [
    "__version__",
    # Errors
    "AccessError",
    "InvalidInput",
    "InvalidWallet",
    "NoActiveChallenge",
    "ChallengeExpired",
    "InvalidNonce",
    "InvalidSignature",
    "Unauthorized",
    "SessionExpired",
    "NotOwner",
    "AccessDenied",
    "NotFound",
    "InvalidPayload",
    "InvalidKeyLength",
    "Misconfigured",
    # Core
    "canonical_json",
    "canonical_bytes",
    "auth_message",
    "access_key_message",
    "verify_signature",
    "decode_wallet",
    "is_valid_wallet",
    "Challenge",
    "ChallengeStoreInterface",
    "MemoryChallengeStore",
    "RedisChallengeStore",
    "SessionIssuer",
    "Session",
    "SessionClaims",
    "AccessGrant",
    "AccessGrantRegistry",
    "GrantDuration",
    "is_active",
    "MemoryGrantStore",
    "RedisGrantStore",
    "KeyCustodian",
    "MemorySecretStore",
    "RedisSecretStore",
    "KeyReleaseProtocol",
    "WalletKeyPair",
    "generate_wallet",
    # Wiring / HTTP (lazy loaded)
    "AccessServices",
    "create_app",
]
