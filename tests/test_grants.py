"""
Unit tests for the access grant registry.
"""

import pytest

from aurora_access.errors import InvalidInput, InvalidWallet, NotFound, NotOwner, Unauthorized
from aurora_access.grants import (
    AccessGrant,
    GrantDuration,
    MAX_PAGE_SIZE,
    is_active,
)
from aurora_access.keys import generate_wallet
from aurora_access.resources import MemoryResourceDirectory, ResourceRecord

ARTICLE_ID = "article-1"
HOUR = 3600
DAY = 24 * HOUR


class TestGrantDuration:
    """Duration options."""

    @pytest.mark.parametrize(
        "value,seconds",
        [("24h", DAY), ("7d", 7 * DAY), ("30d", 30 * DAY)],
    )
    def test_bounded(self, value, seconds):
        assert GrantDuration.parse(value).expires_at(1000.0) == 1000.0 + seconds

    def test_unlimited(self):
        assert GrantDuration.parse("unlimited").expires_at(1000.0) is None

    def test_enum_passthrough(self):
        assert GrantDuration.parse(GrantDuration.DAYS_7) is GrantDuration.DAYS_7

    @pytest.mark.parametrize("value", ["1h", "", None, "forever", "24H"])
    def test_unknown(self, value):
        with pytest.raises(InvalidInput, match="expiresIn"):
            GrantDuration.parse(value)


class TestIsActive:
    """Grant activity predicate."""

    def _grant(self, **kwargs):
        return AccessGrant(resource_id="r", owner_wallet="o", viewer_wallet="v", **kwargs)

    def test_unlimited_unrevoked(self):
        assert is_active(self._grant(), now=1e12) is True

    def test_before_and_at_expiry(self):
        grant = self._grant(expires_at=100.0)
        assert is_active(grant, now=99.0) is True
        assert is_active(grant, now=100.0) is False

    def test_revoked_never_active(self):
        assert is_active(self._grant(revoked_at=5.0), now=0.0) is False
        assert is_active(self._grant(expires_at=100.0, revoked_at=5.0), now=50.0) is False

    def test_method_matches_function(self):
        grant = self._grant(expires_at=100.0)
        assert grant.is_active(50.0) == is_active(grant, 50.0)

    def test_dict_roundtrip(self):
        grant = self._grant(expires_at=100.0, created_at=1.0, updated_at=2.0)
        assert AccessGrant.from_dict(grant.to_dict()) == grant

    def test_api_form(self):
        grant = self._grant(expires_at=None, created_at=0.0, updated_at=0.0)
        data = grant.to_api(now=1.0)
        assert data["id"] == "r:v"
        assert data["articleId"] == "r"
        assert data["viewerWallet"] == "v"
        assert data["expiresAt"] is None
        assert data["createdAt"] == "1970-01-01T00:00:00+00:00"
        assert data["active"] is True


class TestUpsert:
    """Granting access."""

    @pytest.mark.asyncio
    async def test_grant(self, registry, owner, viewer, clock):
        grant = await registry.upsert(owner.wallet, ARTICLE_ID, viewer.wallet, "24h")

        assert grant.owner_wallet == owner.wallet
        assert grant.viewer_wallet == viewer.wallet
        assert grant.expires_at == clock.now + DAY
        assert grant.created_at == grant.updated_at == clock.now
        assert await registry.has_active_grant(ARTICLE_ID, viewer.wallet)

    @pytest.mark.asyncio
    async def test_grant_expires(self, registry, owner, viewer, clock):
        await registry.upsert(owner.wallet, ARTICLE_ID, viewer.wallet, "24h")
        clock.advance(DAY)
        assert not await registry.has_active_grant(ARTICLE_ID, viewer.wallet)

    @pytest.mark.asyncio
    async def test_regrant_replaces_expiry(self, registry, owner, viewer, clock):
        first = await registry.upsert(owner.wallet, ARTICLE_ID, viewer.wallet, "24h")
        clock.advance(HOUR)
        second = await registry.upsert(owner.wallet, ARTICLE_ID, viewer.wallet, "unlimited")

        assert second.expires_at is None
        assert second.created_at == first.created_at
        assert second.updated_at == clock.now

    @pytest.mark.asyncio
    async def test_regrant_clears_revocation(self, registry, owner, viewer):
        await registry.upsert(owner.wallet, ARTICLE_ID, viewer.wallet, "7d")
        await registry.revoke(owner.wallet, ARTICLE_ID, viewer.wallet)
        grant = await registry.upsert(owner.wallet, ARTICLE_ID, viewer.wallet, "7d")

        assert grant.revoked_at is None
        assert await registry.has_active_grant(ARTICLE_ID, viewer.wallet)

    @pytest.mark.asyncio
    async def test_not_owner(self, registry, viewer, stranger):
        with pytest.raises(NotOwner):
            await registry.upsert(stranger.wallet, ARTICLE_ID, viewer.wallet, "24h")
        assert await registry.get(ARTICLE_ID, viewer.wallet) is None

    @pytest.mark.asyncio
    async def test_not_owner_is_unauthorized(self, registry, viewer, stranger):
        with pytest.raises(Unauthorized):
            await registry.upsert(stranger.wallet, ARTICLE_ID, viewer.wallet, "24h")

    @pytest.mark.asyncio
    async def test_unknown_resource(self, registry, owner, viewer):
        with pytest.raises(NotFound):
            await registry.upsert(owner.wallet, "missing", viewer.wallet, "24h")

    @pytest.mark.asyncio
    async def test_invalid_inputs(self, registry, owner, viewer):
        with pytest.raises(InvalidInput):
            await registry.upsert(owner.wallet, "", viewer.wallet, "24h")
        with pytest.raises(InvalidInput):
            await registry.upsert(owner.wallet, ARTICLE_ID, viewer.wallet, "1y")
        with pytest.raises(InvalidWallet):
            await registry.upsert(owner.wallet, ARTICLE_ID, "bogus", "24h")


class TestRevoke:
    """Revoking access."""

    @pytest.mark.asyncio
    async def test_revoke(self, registry, owner, viewer, clock):
        await registry.upsert(owner.wallet, ARTICLE_ID, viewer.wallet, "unlimited")
        clock.advance(60)
        grant = await registry.revoke(owner.wallet, ARTICLE_ID, viewer.wallet)

        assert grant.revoked_at == clock.now
        assert not await registry.has_active_grant(ARTICLE_ID, viewer.wallet)

    @pytest.mark.asyncio
    async def test_revoke_is_one_way(self, registry, owner, viewer, clock):
        await registry.upsert(owner.wallet, ARTICLE_ID, viewer.wallet, "unlimited")
        first = await registry.revoke(owner.wallet, ARTICLE_ID, viewer.wallet)
        clock.advance(60)
        second = await registry.revoke(owner.wallet, ARTICLE_ID, viewer.wallet)

        assert second.revoked_at == first.revoked_at

    @pytest.mark.asyncio
    async def test_revoke_missing(self, registry, owner, viewer):
        with pytest.raises(NotFound):
            await registry.revoke(owner.wallet, ARTICLE_ID, viewer.wallet)

    @pytest.mark.asyncio
    async def test_revoke_not_owner(self, registry, owner, viewer, stranger):
        await registry.upsert(owner.wallet, ARTICLE_ID, viewer.wallet, "unlimited")

        with pytest.raises(NotOwner):
            await registry.revoke(stranger.wallet, ARTICLE_ID, viewer.wallet)
        with pytest.raises(NotOwner):
            await registry.revoke(viewer.wallet, ARTICLE_ID, viewer.wallet)
        assert await registry.has_active_grant(ARTICLE_ID, viewer.wallet)


class TestList:
    """Listing an owner's grants."""

    @pytest.mark.asyncio
    async def test_newest_first(self, registry, owner, clock):
        viewers = [generate_wallet().wallet for _ in range(3)]
        for wallet in viewers:
            await registry.upsert(owner.wallet, ARTICLE_ID, wallet, "7d")
            clock.advance(1)

        grants = await registry.list(owner.wallet)

        assert [g.viewer_wallet for g in grants] == list(reversed(viewers))

    @pytest.mark.asyncio
    async def test_only_callers_grants(self, registry, directory, owner, viewer, stranger):
        await directory.register(ResourceRecord("article-2", stranger.wallet))
        await registry.upsert(owner.wallet, ARTICLE_ID, viewer.wallet, "7d")
        await registry.upsert(stranger.wallet, "article-2", viewer.wallet, "7d")

        owned = await registry.list(owner.wallet)

        assert [g.resource_id for g in owned] == [ARTICLE_ID]
        assert await registry.list(viewer.wallet) == []

    @pytest.mark.asyncio
    async def test_filter_by_resource(self, registry, directory, owner, viewer):
        await directory.register(ResourceRecord("article-2", owner.wallet))
        await registry.upsert(owner.wallet, ARTICLE_ID, viewer.wallet, "7d")
        await registry.upsert(owner.wallet, "article-2", viewer.wallet, "7d")

        grants = await registry.list(owner.wallet, resource_id="article-2")

        assert [g.resource_id for g in grants] == ["article-2"]

    @pytest.mark.asyncio
    async def test_limit(self, registry, owner, clock):
        for _ in range(5):
            await registry.upsert(owner.wallet, ARTICLE_ID, generate_wallet().wallet, "7d")
            clock.advance(1)

        assert len(await registry.list(owner.wallet, limit=2)) == 2
        assert len(await registry.list(owner.wallet, limit=0)) == 1
        assert len(await registry.list(owner.wallet, limit=MAX_PAGE_SIZE + 50)) == 5

    @pytest.mark.asyncio
    async def test_revoked_grants_listed(self, registry, owner, viewer):
        await registry.upsert(owner.wallet, ARTICLE_ID, viewer.wallet, "7d")
        await registry.revoke(owner.wallet, ARTICLE_ID, viewer.wallet)

        grants = await registry.list(owner.wallet)

        assert len(grants) == 1
        assert grants[0].revoked_at is not None


class TestCanView:
    """Metadata-read authorization."""

    @pytest.mark.asyncio
    async def test_public_resource(self, registry):
        assert await registry.can_view("article-public", None) is True

    @pytest.mark.asyncio
    async def test_owner(self, registry, owner):
        assert await registry.can_view(ARTICLE_ID, owner.wallet) is True

    @pytest.mark.asyncio
    async def test_anonymous_restricted(self, registry):
        assert await registry.can_view(ARTICLE_ID, None) is False

    @pytest.mark.asyncio
    async def test_grant_holder(self, registry, owner, viewer, stranger):
        await registry.upsert(owner.wallet, ARTICLE_ID, viewer.wallet, "24h")

        assert await registry.can_view(ARTICLE_ID, viewer.wallet) is True
        assert await registry.can_view(ARTICLE_ID, stranger.wallet) is False

    @pytest.mark.asyncio
    async def test_unknown_resource(self, registry, owner):
        with pytest.raises(NotFound):
            await registry.can_view("missing", owner.wallet)


class TestRegisterResource:
    """Owner registration in the resource directory."""

    @pytest.mark.asyncio
    async def test_new_resource(self, registry, directory, stranger):
        record = await registry.register_resource(stranger.wallet, "article-new")

        assert record == ResourceRecord("article-new", stranger.wallet, is_public=False)
        assert await directory.get("article-new") == record

    @pytest.mark.asyncio
    async def test_owner_can_grant_after_registering(self, registry, stranger, viewer):
        await registry.register_resource(stranger.wallet, "article-new")

        grant = await registry.upsert(stranger.wallet, "article-new", viewer.wallet, "7d")

        assert grant.owner_wallet == stranger.wallet
        assert await registry.can_view("article-new", viewer.wallet) is True

    @pytest.mark.asyncio
    async def test_reregister_is_idempotent(self, registry, owner):
        record = await registry.register_resource(owner.wallet, ARTICLE_ID)
        assert record.owner_wallet == owner.wallet

    @pytest.mark.asyncio
    async def test_owner_changes_visibility(self, registry, directory, owner, stranger):
        await registry.register_resource(owner.wallet, ARTICLE_ID, is_public=True)

        assert (await directory.get(ARTICLE_ID)).is_public is True
        assert await registry.can_view(ARTICLE_ID, stranger.wallet) is True

    @pytest.mark.asyncio
    async def test_taken_by_another_wallet(self, registry, directory, owner, stranger):
        with pytest.raises(NotOwner):
            await registry.register_resource(stranger.wallet, ARTICLE_ID, is_public=True)

        record = await directory.get(ARTICLE_ID)
        assert record.owner_wallet == owner.wallet
        assert record.is_public is False

    @pytest.mark.asyncio
    async def test_missing_id(self, registry, owner):
        with pytest.raises(InvalidInput):
            await registry.register_resource(owner.wallet, "")

    @pytest.mark.asyncio
    async def test_malformed_caller(self, registry):
        with pytest.raises(InvalidWallet):
            await registry.register_resource("nope", "article-new")


class TestMemoryResourceDirectory:
    """Insert-only create on the in-memory directory."""

    @pytest.mark.asyncio
    async def test_create_once(self):
        directory = MemoryResourceDirectory()
        first = ResourceRecord("r", "owner-a")

        assert await directory.create(first) is True
        assert await directory.create(ResourceRecord("r", "owner-b")) is False
        assert await directory.get("r") == first

    def test_record_dict_roundtrip(self):
        record = ResourceRecord("r", "owner-a", is_public=True)
        assert ResourceRecord.from_dict(record.to_dict()) == record
