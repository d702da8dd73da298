"""
Aurora Access Session Issuer.

Turns a verified wallet signature into a stateless bearer session: an HS256
JWT carrying the wallet as ``sub`` plus ``iat``/``exp``. Validity is a pure
function of the token's signature and expiry; nothing is stored server-side
and a session cannot be revoked before it expires.
"""

import re
import json
import time
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from jwcrypto import jwk, jwt
from jwcrypto.common import JWException, base64url_encode

from aurora_access.canonical import auth_message
from aurora_access.challenges import Challenge, ChallengeStoreInterface, session_subject
from aurora_access.config import SESSION_TTL_SECONDS, check_jwt_secret, get_jwt_secret
from aurora_access.errors import InvalidSignature, SessionExpired, Unauthorized
from aurora_access.signature import decode_wallet, verify_signature

logger = logging.getLogger(__name__)

_BEARER = re.compile(r"^Bearer\s+(.+)$", re.IGNORECASE)


@dataclass(frozen=True)
class SessionClaims:
    """The identity a valid session token proves."""

    wallet: str
    issued_at: int
    expires_at: int


@dataclass(frozen=True)
class Session:
    """A freshly issued session token and its claims."""

    token: str
    claims: SessionClaims

    @property
    def wallet(self) -> str:
        return self.claims.wallet

    def to_dict(self) -> dict:
        lifetime = self.claims.expires_at - self.claims.issued_at
        return {"token": self.token, "wallet": self.wallet, "expiresIn": _format_lifetime(lifetime)}


def parse_bearer(header: Optional[str]) -> str:
    """
    Extract the token from an ``Authorization: Bearer <token>`` header.

    Raises:
        Unauthorized: If the header is missing or not a Bearer credential.
    """
    match = _BEARER.match((header or "").strip())
    if not match:
        raise Unauthorized("Missing Authorization Bearer token")
    return match.group(1).strip()


class SessionIssuer:
    """
    Issues wallet sessions from signed challenges.

    Example:
        >>> issuer = SessionIssuer(MemoryChallengeStore(), secret=os.urandom(32).hex())
        >>> challenge = await issuer.challenge(wallet)
        >>> session = await issuer.verify(wallet, challenge.nonce, signature)
        >>> issuer.authenticate(session.token).wallet == wallet
        True
    """

    def __init__(
        self,
        store: ChallengeStoreInterface,
        secret: Optional[str] = None,
        ttl: int = SESSION_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the issuer.

        Args:
            store: Challenge store shared with the rest of the service.
            secret: Token signing secret; read from API_JWT_SECRET when omitted.
            ttl: Session lifetime in seconds.
            clock: Source of the current time (epoch seconds).
        """
        self._store = store
        self._secret = secret
        self._ttl = ttl
        self._clock = clock

    def _key(self) -> jwk.JWK:
        secret = check_jwt_secret(self._secret) if self._secret else get_jwt_secret()
        return jwk.JWK(kty="oct", k=base64url_encode(secret.encode("utf-8")))

    async def challenge(self, wallet: str) -> Challenge:
        """
        Issue a session challenge for wallet.

        Raises:
            InvalidWallet: If wallet is not a base58 32-byte public key.
        """
        decode_wallet(wallet)
        challenge = await self._store.issue(session_subject(wallet))
        logger.debug(f"Issued session challenge for {wallet}")
        return challenge

    async def verify(self, wallet: str, nonce: str, signature: bytes) -> Session:
        """
        Redeem a signed session challenge.

        The nonce is consumed before the signature is checked, so a captured
        (wallet, nonce, signature) triple is useless after the first attempt.

        Args:
            wallet: Base58 wallet address.
            nonce: Nonce from the challenge.
            signature: Raw 64-byte signature over auth_message(wallet, nonce).

        Returns:
            The issued Session.

        Raises:
            NoActiveChallenge, ChallengeExpired, InvalidNonce: From the store.
            InvalidSignature: If the signature does not verify.
        """
        await self._store.consume(session_subject(wallet), nonce)

        if not verify_signature(auth_message(wallet, nonce), signature, wallet):
            logger.warning(f"Rejected session signature for {wallet}")
            raise InvalidSignature()

        return self.issue(wallet)

    def issue(self, wallet: str) -> Session:
        """Sign a session token for an already verified wallet."""
        now = int(self._clock())
        claims = SessionClaims(wallet=wallet, issued_at=now, expires_at=now + self._ttl)

        token = jwt.JWT(
            header={"alg": "HS256", "typ": "JWT"},
            claims={"sub": claims.wallet, "iat": claims.issued_at, "exp": claims.expires_at},
        )
        token.make_signed_token(self._key())

        logger.info(f"Session issued for {wallet}")
        return Session(token=token.serialize(), claims=claims)

    def authenticate(self, token: str) -> SessionClaims:
        """
        Validate a bearer token.

        Raises:
            SessionExpired: If the token is authentic but past its expiry.
            Unauthorized: For any other invalid token.
            Misconfigured: If no signing secret is configured.
        """
        if not token:
            raise Unauthorized("Missing session token")
        key = self._key()
        try:
            # Claims are checked below against our own clock
            parsed = jwt.JWT(
                jwt=token, key=key, algs=["HS256"], check_claims=False, expected_type="JWS"
            )
            payload = json.loads(parsed.claims)
        except (JWException, ValueError, TypeError) as e:
            raise Unauthorized(f"Invalid token: {e}")

        wallet = payload.get("sub") if isinstance(payload, dict) else None
        exp = payload.get("exp") if isinstance(payload, dict) else None
        if not isinstance(wallet, str) or not wallet or not isinstance(exp, int):
            raise Unauthorized("Invalid token")
        if self._clock() >= exp:
            raise SessionExpired()

        return SessionClaims(wallet=wallet, issued_at=int(payload.get("iat", 0)), expires_at=exp)

    def authenticate_header(self, header: Optional[str]) -> SessionClaims:
        """authenticate() applied to an Authorization header value."""
        return self.authenticate(parse_bearer(header))


def _format_lifetime(seconds: int) -> str:
    if seconds % 3600 == 0:
        return f"{seconds // 3600}h"
    if seconds % 60 == 0:
        return f"{seconds // 60}m"
    return f"{seconds}s"
