"""
Aurora Access Key Release Protocol.

A second challenge-response, scoped to one (resource, viewer) pair, that
gates the Key Custodian behind both an active grant and a fresh wallet
signature:

    request_challenge  grant active? -> issue challenge "<resource>:<wallet>"
    claim_key          consume -> verify signature -> grant still active?
                       -> secret exists? -> unwrap

The grant is checked again at claim time because the owner may revoke it
between issuance and redemption.
"""

import logging

from aurora_access.canonical import access_key_message
from aurora_access.challenges import Challenge, ChallengeStoreInterface, key_release_subject
from aurora_access.custody import KeyCustodian
from aurora_access.errors import AccessDenied, InvalidInput, InvalidSignature
from aurora_access.grants import AccessGrantRegistry
from aurora_access.session import SessionClaims
from aurora_access.signature import verify_signature

logger = logging.getLogger(__name__)


class KeyReleaseProtocol:
    """
    Releases content keys to wallets holding an active grant.

    Example:
        >>> protocol = KeyReleaseProtocol(challenges, registry, custodian)
        >>> challenge = await protocol.request_challenge(session, "article-1")
        >>> signature = wallet.sign(access_key_message(wallet, "article-1", challenge.nonce))
        >>> key = await protocol.claim_key(session, "article-1", challenge.nonce, signature)
    """

    def __init__(
        self,
        challenges: ChallengeStoreInterface,
        grants: AccessGrantRegistry,
        custodian: KeyCustodian,
    ):
        self._challenges = challenges
        self._grants = grants
        self._custodian = custodian

    async def request_challenge(self, session: SessionClaims, resource_id: str) -> Challenge:
        """
        Issue a key-release challenge for the session wallet.

        Raises:
            InvalidInput: Missing resource id.
            AccessDenied: No active grant for (resource, wallet).
        """
        if not resource_id:
            raise InvalidInput("articleId is required")
        wallet = session.wallet
        if not await self._grants.has_active_grant(resource_id, wallet):
            raise AccessDenied()

        challenge = await self._challenges.issue(key_release_subject(resource_id, wallet))
        logger.debug(f"Issued key-release challenge for {wallet} on {resource_id}")
        return challenge

    async def claim_key(
        self, session: SessionClaims, resource_id: str, nonce: str, signature: bytes
    ) -> bytes:
        """
        Redeem a key-release challenge and return the raw 32-byte content key.

        Raises:
            InvalidInput: Missing resource id.
            NoActiveChallenge, ChallengeExpired, InvalidNonce: From the store.
            InvalidSignature: Signature does not verify.
            AccessDenied: Grant revoked or expired since the challenge.
            NotFound: The resource has no content key.
            InvalidPayload, InvalidKeyLength: The stored key is corrupt.
        """
        if not resource_id:
            raise InvalidInput("articleId is required")
        wallet = session.wallet

        await self._challenges.consume(key_release_subject(resource_id, wallet), nonce)

        if not verify_signature(access_key_message(wallet, resource_id, nonce), signature, wallet):
            logger.warning(f"Rejected key-release signature for {wallet} on {resource_id}")
            raise InvalidSignature()

        if not await self._grants.has_active_grant(resource_id, wallet):
            logger.warning(f"Grant no longer active for {wallet} on {resource_id}")
            raise AccessDenied()

        key = await self._custodian.open(resource_id)
        logger.info(f"Released content key of {resource_id} to {wallet}")
        return key
