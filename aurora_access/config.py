# aurora_access/config.py
"""
Centralized configuration for Aurora Access.

All configurable values are read from environment variables with sensible
defaults, so dev, staging and production differ only in their environment.

Usage:
    from aurora_access.config import CHALLENGE_TTL_SECONDS, get_jwt_secret

    secret = get_jwt_secret()

Environment Variables:
    API_JWT_SECRET: Secret used to sign session tokens, at least 32 bytes (required)
    ARTICLE_KEY_ENCRYPTION_SECRET: Passphrase the content-key master key is derived from (required)
    AURORA_REDIS_URL: Redis URL; when set, challenges, grants and secrets live in Redis
    AURORA_CHALLENGE_TTL: Challenge lifetime in seconds (default: 300)
    AURORA_SESSION_TTL: Session lifetime in seconds (default: 7200)
    AURORA_SIGNING_DOMAIN: "domain" field of signed payloads (default: aurora-scholar)
    AURORA_API_HOST / AURORA_API_PORT: HTTP bind address (default: 127.0.0.1:4000)
    AURORA_LOG_LEVEL: Logging level (default: INFO)
"""

import os
from typing import Final, Optional

from aurora_access.errors import Misconfigured

# =============================================================================
# Protocol Configuration
# =============================================================================

# Domain separator embedded in every signed payload
SIGNING_DOMAIN: Final[str] = os.getenv("AURORA_SIGNING_DOMAIN", "aurora-scholar")

# Single-use challenges (session and key-release) live this long
CHALLENGE_TTL_SECONDS: Final[int] = int(os.getenv("AURORA_CHALLENGE_TTL", "300"))

# Bearer sessions are not revocable, only bounded
SESSION_TTL_SECONDS: Final[int] = int(os.getenv("AURORA_SESSION_TTL", "7200"))

# =============================================================================
# Storage Configuration
# =============================================================================

REDIS_URL: Final[Optional[str]] = os.getenv("AURORA_REDIS_URL") or None

REDIS_KEY_PREFIX: Final[str] = os.getenv("AURORA_REDIS_PREFIX", "aurora:")

# =============================================================================
# API Configuration
# =============================================================================

API_HOST: Final[str] = os.getenv("AURORA_API_HOST", "127.0.0.1")

API_PORT: Final[int] = int(os.getenv("AURORA_API_PORT", "4000"))

LOG_LEVEL: Final[str] = os.getenv("AURORA_LOG_LEVEL", "INFO")

# =============================================================================
# Secrets
# =============================================================================

# Secrets are read on every call so a misconfigured process fails per request
# with Misconfigured instead of at import time.


# HS256 keys shorter than the hash output are refused by jwcrypto
MIN_JWT_SECRET_BYTES: Final[int] = 32


def check_jwt_secret(secret: Optional[str]) -> str:
    """
    Validate a session signing secret.

    Raises:
        Misconfigured: If the secret is empty or shorter than 32 bytes.
    """
    if not secret:
        raise Misconfigured("API_JWT_SECRET is not configured")
    if len(secret.encode("utf-8")) < MIN_JWT_SECRET_BYTES:
        raise Misconfigured(f"API_JWT_SECRET must be at least {MIN_JWT_SECRET_BYTES} bytes")
    return secret


def get_jwt_secret() -> str:
    """
    Return the session signing secret.

    Raises:
        Misconfigured: If API_JWT_SECRET is not set or too short.
    """
    return check_jwt_secret(os.getenv("API_JWT_SECRET"))


def get_key_encryption_secret() -> str:
    """
    Return the passphrase the content-key master key is derived from.

    Raises:
        Misconfigured: If ARTICLE_KEY_ENCRYPTION_SECRET is not set.
    """
    secret = os.getenv("ARTICLE_KEY_ENCRYPTION_SECRET")
    if not secret:
        raise Misconfigured("ARTICLE_KEY_ENCRYPTION_SECRET is not configured")
    return secret


# =============================================================================
# Configuration Summary (for debugging)
# =============================================================================


def print_config() -> None:
    """Print current non-secret configuration (useful for debugging)."""
    print("Aurora Access Configuration:")
    print(f"  SIGNING_DOMAIN:  {SIGNING_DOMAIN}")
    print(f"  CHALLENGE_TTL:   {CHALLENGE_TTL_SECONDS}s")
    print(f"  SESSION_TTL:     {SESSION_TTL_SECONDS}s")
    print(f"  REDIS:           {'enabled' if REDIS_URL else 'disabled (in-memory)'}")
    print(f"  API:             {API_HOST}:{API_PORT}")
    print(f"  LOG_LEVEL:       {LOG_LEVEL}")


if __name__ == "__main__":
    print_config()
