#!/usr/bin/env python3
"""
Aurora Access HTTP API.

FastAPI adapter over the access-control core. Routes mirror the Aurora
Scholar API:

    POST /api/auth/challenge              - Session challenge for a wallet
    POST /api/auth/verify                 - Signed challenge -> bearer session
    POST /api/access-control/resources    - Register the caller as an article owner
    GET  /api/access-control/grants       - Grants issued by the caller
    POST /api/access-control/grants       - Grant / re-grant a viewer
    POST /api/access-control/grants/revoke- Revoke a viewer
    GET  /api/access-control/check        - Can the caller view an article?
    POST /api/access-control/secrets      - Seal an article's content key (owner)
    POST /api/access-control/key/challenge- Key-release challenge
    POST /api/access-control/key/claim    - Signed challenge -> content key
    GET  /status                          - Health check

Usage:
    uvicorn --factory aurora_access.server:create_app --host 127.0.0.1 --port 4000
"""

import base64
import binascii
import logging
import time
from typing import Optional

from fastapi import Depends, FastAPI, Header, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from aurora_access import __version__, config
from aurora_access.errors import AccessError, InvalidInput, NotOwner, NotFound, Unauthorized
from aurora_access.grants import DEFAULT_PAGE_SIZE, GrantDuration
from aurora_access.service import AccessServices
from aurora_access.session import SessionClaims
from aurora_access.signature import decode_signature

logger = logging.getLogger("aurora-access")

_started_at = time.time()


# =============================================================================
# Request Models
# =============================================================================


class _Body(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class WalletRequest(_Body):
    wallet: str


class VerifyRequest(_Body):
    wallet: str
    nonce: str
    signature: str = Field(description="Base64 signature over the canonical auth payload")


class ResourceRequest(_Body):
    article_id: str = Field(alias="articleId")
    is_public: bool = Field(default=False, alias="isPublic")


class GrantRequest(_Body):
    article_id: str = Field(alias="articleId")
    viewer_wallet: str = Field(alias="viewerWallet")
    expires_in: GrantDuration = Field(alias="expiresIn")


class RevokeRequest(_Body):
    article_id: str = Field(alias="articleId")
    viewer_wallet: str = Field(alias="viewerWallet")


class SealRequest(_Body):
    article_id: str = Field(alias="articleId")
    key: Optional[str] = Field(default=None, description="Base64 content key; generated if omitted")


class KeyChallengeRequest(_Body):
    article_id: str = Field(alias="articleId")


class KeyClaimRequest(_Body):
    article_id: str = Field(alias="articleId")
    nonce: str
    signature: str = Field(description="Base64 signature over the canonical access-key payload")


# =============================================================================
# Dependencies
# =============================================================================


def get_services(request: Request) -> AccessServices:
    return request.app.state.services


def require_session(
    services: AccessServices = Depends(get_services),  # noqa: B008
    authorization: Optional[str] = Header(default=None),  # noqa: B008
) -> SessionClaims:
    """Authenticate the Authorization: Bearer header."""
    return services.sessions.authenticate_header(authorization)


def optional_session(
    services: AccessServices = Depends(get_services),  # noqa: B008
    authorization: Optional[str] = Header(default=None),  # noqa: B008
) -> Optional[SessionClaims]:
    """Like require_session, but anonymous callers get None."""
    if not authorization:
        return None
    return services.sessions.authenticate_header(authorization)


def _ok(data) -> dict:
    return {"success": True, "data": data}


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


# =============================================================================
# Error Handling
# =============================================================================


async def _access_error_handler(request: Request, exc: AccessError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.code}: {exc}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc.code}")
    headers = None
    if isinstance(exc, Unauthorized) and exc.status_code == 401:
        headers = {"WWW-Authenticate": "Bearer"}
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = ", ".join(".".join(str(p) for p in err.get("loc", ())[1:]) for err in exc.errors())
    error = InvalidInput(f"Missing or invalid fields: {fields}" if fields else "Invalid request")
    return JSONResponse(status_code=400, content=error.to_dict())


# =============================================================================
# Application
# =============================================================================


def create_app(services: Optional[AccessServices] = None) -> FastAPI:
    """
    Build the API.

    Args:
        services: Component wiring; AccessServices.from_env() when omitted.
    """
    app = FastAPI(
        title="Aurora Access",
        description="Wallet-authenticated access control and content-key custody",
        version=__version__,
    )
    app.state.services = services or AccessServices.from_env()
    app.add_exception_handler(AccessError, _access_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)

    @app.get("/status")
    async def get_status():
        return {"status": "ok", "version": __version__, "uptime": int(time.time() - _started_at)}

    # -------------------------------------------------------------------------
    # Auth
    # -------------------------------------------------------------------------

    @app.post("/api/auth/challenge")
    async def auth_challenge(
        body: WalletRequest, services: AccessServices = Depends(get_services)  # noqa: B008
    ):
        challenge = await services.sessions.challenge(body.wallet)
        return _ok(challenge.to_dict())

    @app.post("/api/auth/verify")
    async def auth_verify(
        body: VerifyRequest, services: AccessServices = Depends(get_services)  # noqa: B008
    ):
        signature = decode_signature(body.signature)
        session = await services.sessions.verify(body.wallet, body.nonce, signature)
        return _ok(session.to_dict())

    # -------------------------------------------------------------------------
    # Resources
    # -------------------------------------------------------------------------

    @app.post("/api/access-control/resources")
    async def register_resource(
        body: ResourceRequest,
        session: SessionClaims = Depends(require_session),  # noqa: B008
        services: AccessServices = Depends(get_services),  # noqa: B008
    ):
        record = await services.grants.register_resource(
            session.wallet, body.article_id, body.is_public
        )
        return _ok(record.to_api())

    # -------------------------------------------------------------------------
    # Grants
    # -------------------------------------------------------------------------

    @app.get("/api/access-control/grants")
    async def list_grants(
        articleId: Optional[str] = None,  # noqa: N803
        limit: int = DEFAULT_PAGE_SIZE,
        session: SessionClaims = Depends(require_session),  # noqa: B008
        services: AccessServices = Depends(get_services),  # noqa: B008
    ):
        grants = await services.grants.list(session.wallet, articleId, limit)
        now = services.grants.now()
        return _ok({"items": [g.to_api(now) for g in grants]})

    @app.post("/api/access-control/grants")
    async def upsert_grant(
        body: GrantRequest,
        session: SessionClaims = Depends(require_session),  # noqa: B008
        services: AccessServices = Depends(get_services),  # noqa: B008
    ):
        grant = await services.grants.upsert(
            session.wallet, body.article_id, body.viewer_wallet, body.expires_in
        )
        return _ok(grant.to_api(services.grants.now()))

    @app.post("/api/access-control/grants/revoke")
    async def revoke_grant(
        body: RevokeRequest,
        session: SessionClaims = Depends(require_session),  # noqa: B008
        services: AccessServices = Depends(get_services),  # noqa: B008
    ):
        grant = await services.grants.revoke(session.wallet, body.article_id, body.viewer_wallet)
        return _ok(grant.to_api(services.grants.now()))

    @app.get("/api/access-control/check")
    async def check_access(
        articleId: str,  # noqa: N803
        session: Optional[SessionClaims] = Depends(optional_session),  # noqa: B008
        services: AccessServices = Depends(get_services),  # noqa: B008
    ):
        wallet = session.wallet if session else None
        allowed = await services.grants.can_view(articleId, wallet)
        return _ok({"articleId": articleId, "canView": allowed})

    # -------------------------------------------------------------------------
    # Key custody and release
    # -------------------------------------------------------------------------

    @app.post("/api/access-control/secrets")
    async def seal_secret(
        body: SealRequest,
        session: SessionClaims = Depends(require_session),  # noqa: B008
        services: AccessServices = Depends(get_services),  # noqa: B008
    ):
        resource = await services.directory.get(body.article_id)
        if resource is None:
            raise NotFound(f"Resource {body.article_id} not found")
        if resource.owner_wallet != session.wallet:
            raise NotOwner()

        content_key = None
        if body.key is not None:
            try:
                content_key = base64.b64decode(body.key, validate=True)
            except (binascii.Error, ValueError):
                raise InvalidInput("key must be base64")
            if len(content_key) != 32:
                raise InvalidInput("key must decode to 32 bytes")

        key = await services.custodian.seal(body.article_id, content_key)
        return _ok({"articleId": body.article_id, "key": _b64(key)})

    @app.post("/api/access-control/key/challenge")
    async def key_challenge(
        body: KeyChallengeRequest,
        session: SessionClaims = Depends(require_session),  # noqa: B008
        services: AccessServices = Depends(get_services),  # noqa: B008
    ):
        challenge = await services.release.request_challenge(session, body.article_id)
        return _ok(challenge.to_dict())

    @app.post("/api/access-control/key/claim")
    async def key_claim(
        body: KeyClaimRequest,
        session: SessionClaims = Depends(require_session),  # noqa: B008
        services: AccessServices = Depends(get_services),  # noqa: B008
    ):
        signature = decode_signature(body.signature)
        key = await services.release.claim_key(session, body.article_id, body.nonce, signature)
        return _ok({"articleId": body.article_id, "key": _b64(key)})

    return app


def main(host: str = config.API_HOST, port: int = config.API_PORT) -> None:
    """Run the API under uvicorn."""
    import uvicorn

    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(message)s",
    )
    logger.info(f"Starting Aurora Access API on {host}:{port}")
    uvicorn.run(create_app(), host=host, port=port)


if __name__ == "__main__":
    main()
