"""
Aurora Access error taxonomy.

Every failure raised by the access-control core derives from AccessError and
carries a stable machine-readable ``code`` plus the HTTP status the API
adapter answers with. Nothing in the core retries on these errors; they are
the terminal outcome of the current request.
"""


class AccessError(Exception):
    """Base exception for access-control errors."""

    status_code = 500
    code = "access_error"
    default_message = "Access control error"

    def __init__(self, message: str = ""):
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self)

    def to_dict(self) -> dict:
        """Error body used by the HTTP adapter."""
        return {"success": False, "error": self.code, "message": self.message}


# =============================================================================
# Input errors (400)
# =============================================================================


class InvalidInput(AccessError):
    """Raised when a required field is missing or malformed."""

    status_code = 400
    code = "invalid_input"
    default_message = "Invalid input"


class InvalidWallet(InvalidInput):
    """Raised when a wallet string is not a valid base58 Ed25519 public key."""

    code = "invalid_wallet"
    default_message = "Invalid wallet public key"


# =============================================================================
# Challenge errors
# =============================================================================


class NoActiveChallenge(AccessError):
    """Raised when no challenge is stored for the subject."""

    status_code = 400
    code = "no_active_challenge"
    default_message = "No active challenge"


class ChallengeExpired(AccessError):
    """Raised when the stored challenge outlived its TTL (the entry is deleted)."""

    status_code = 400
    code = "challenge_expired"
    default_message = "Challenge expired"


class InvalidNonce(AccessError):
    """Raised when the presented nonce differs from the stored one."""

    status_code = 400
    code = "invalid_nonce"
    default_message = "Invalid nonce"


# =============================================================================
# Authentication / authorization errors
# =============================================================================


class InvalidSignature(AccessError):
    """Raised when a wallet signature does not verify."""

    status_code = 401
    code = "invalid_signature"
    default_message = "Invalid signature"


class Unauthorized(AccessError):
    """Raised when a session credential is missing or invalid."""

    status_code = 401
    code = "unauthorized"
    default_message = "Unauthorized"


class SessionExpired(Unauthorized):
    """Raised when a session token is past its expiry, so clients can re-authenticate."""

    code = "session_expired"
    default_message = "Session expired"


class NotOwner(Unauthorized):
    """Raised when an authenticated caller does not own the resource or grant."""

    status_code = 403
    code = "not_owner"
    default_message = "Caller is not the resource owner"


class AccessDenied(AccessError):
    """Raised when the caller holds no active grant for the resource."""

    status_code = 403
    code = "access_denied"
    default_message = "No active access grant"


class NotFound(AccessError):
    """Raised when a resource, grant or resource secret does not exist."""

    status_code = 404
    code = "not_found"
    default_message = "Not found"


# =============================================================================
# Key custody errors
# =============================================================================


class InvalidPayload(AccessError):
    """Raised when a wrapped key is truncated, malformed or fails authentication."""

    status_code = 500
    code = "invalid_payload"
    default_message = "Invalid encrypted key payload"


class InvalidKeyLength(AccessError):
    """Raised when a content key is not exactly 32 bytes."""

    status_code = 500
    code = "invalid_key_length"
    default_message = "Content key must be 32 bytes"


class Misconfigured(AccessError):
    """Raised when required server secret material is not configured."""

    status_code = 500
    code = "misconfigured"
    default_message = "Server is not configured"
