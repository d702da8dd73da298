"""
Unit tests for content-key wrapping and the write-once secret store.
"""

import base64
import os

import pytest
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from aurora_access.custody import (
    IV_LENGTH,
    KeyCustodian,
    MemorySecretStore,
    ResourceSecret,
    TAG_LENGTH,
    derive_master_key,
)
from aurora_access.errors import (
    InvalidInput,
    InvalidKeyLength,
    InvalidPayload,
    Misconfigured,
    NotFound,
)


class TestWrap:
    """Wrap/unwrap of single content keys."""

    def test_roundtrip(self, custodian):
        key = os.urandom(32)
        assert custodian.unwrap(custodian.wrap(key)) == key

    def test_layout(self, custodian):
        """IV, then tag, then ciphertext, base64 encoded."""
        payload = base64.b64decode(custodian.wrap(os.urandom(32)))
        assert len(payload) == IV_LENGTH + TAG_LENGTH + 32

    def test_interoperable_layout(self):
        """A blob assembled by hand from AES-GCM parts unwraps."""
        key = os.urandom(32)
        iv = os.urandom(12)
        sealed = AESGCM(derive_master_key("s")).encrypt(iv, key, None)
        blob = base64.b64encode(iv + sealed[-16:] + sealed[:-16]).decode()

        assert KeyCustodian(secret="s").unwrap(blob) == key

    def test_fresh_iv_per_wrap(self, custodian):
        key = os.urandom(32)
        assert custodian.wrap(key) != custodian.wrap(key)

    @pytest.mark.parametrize("key", [b"", os.urandom(16), os.urandom(31), os.urandom(33), "x" * 32])
    def test_wrong_key_length(self, custodian, key):
        with pytest.raises(InvalidKeyLength):
            custodian.wrap(key)

    def test_other_master_key(self, custodian):
        blob = custodian.wrap(os.urandom(32))
        with pytest.raises(InvalidPayload):
            KeyCustodian(secret="a-different-secret").unwrap(blob)

    def test_master_key_is_sha256(self):
        assert derive_master_key("abc").hex() == (
            "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"
        )


class TestTamper:
    """Any modification of the wrapped key is detected."""

    def test_every_byte_flip_detected(self, custodian):
        payload = base64.b64decode(custodian.wrap(os.urandom(32)))
        for index in range(len(payload)):
            mutated = bytearray(payload)
            mutated[index] ^= 0x01
            with pytest.raises(InvalidPayload):
                custodian.unwrap(base64.b64encode(bytes(mutated)).decode())

    def test_truncated(self, custodian):
        payload = base64.b64decode(custodian.wrap(os.urandom(32)))
        with pytest.raises(InvalidPayload):
            custodian.unwrap(base64.b64encode(payload[: IV_LENGTH + TAG_LENGTH]).decode())

    @pytest.mark.parametrize("blob", ["", "!!!not-base64!!!", "YWJj"])
    def test_malformed(self, custodian, blob):
        with pytest.raises(InvalidPayload):
            custodian.unwrap(blob)

    def test_wrong_plaintext_length(self):
        """A well-formed blob around a 16-byte key is rejected after decryption."""
        iv = os.urandom(12)
        sealed = AESGCM(derive_master_key("s")).encrypt(iv, os.urandom(16), None)
        blob = base64.b64encode(iv + sealed[-16:] + sealed[:-16]).decode()

        with pytest.raises(InvalidKeyLength):
            KeyCustodian(secret="s").unwrap(blob)


class TestMisconfigured:
    """Missing master secret."""

    def test_wrap_without_secret(self, monkeypatch):
        monkeypatch.delenv("ARTICLE_KEY_ENCRYPTION_SECRET", raising=False)
        with pytest.raises(Misconfigured):
            KeyCustodian().wrap(os.urandom(32))

    def test_secret_from_environment(self, monkeypatch):
        monkeypatch.setenv("ARTICLE_KEY_ENCRYPTION_SECRET", "env-secret")
        key = os.urandom(32)
        blob = KeyCustodian().wrap(key)
        assert KeyCustodian(secret="env-secret").unwrap(blob) == key


class TestSealAndOpen:
    """Publish-time sealing and custody lookup."""

    @pytest.mark.asyncio
    async def test_seal_generates_key(self, custodian):
        key = await custodian.seal("article-1")

        assert len(key) == 32
        assert await custodian.has_secret("article-1")
        assert await custodian.open("article-1") == key

    @pytest.mark.asyncio
    async def test_seal_supplied_key(self, custodian):
        key = os.urandom(32)
        assert await custodian.seal("article-1", key) == key
        assert await custodian.open("article-1") == key

    @pytest.mark.asyncio
    async def test_secret_is_write_once(self, custodian):
        key = await custodian.seal("article-1")

        with pytest.raises(InvalidInput):
            await custodian.seal("article-1")
        assert await custodian.open("article-1") == key

    @pytest.mark.asyncio
    async def test_seal_requires_resource(self, custodian):
        with pytest.raises(InvalidInput):
            await custodian.seal("")

    @pytest.mark.asyncio
    async def test_seal_bad_key_stores_nothing(self, custodian):
        with pytest.raises(InvalidKeyLength):
            await custodian.seal("article-1", os.urandom(8))
        assert not await custodian.has_secret("article-1")

    @pytest.mark.asyncio
    async def test_open_missing(self, custodian):
        with pytest.raises(NotFound):
            await custodian.open("article-1")

    @pytest.mark.asyncio
    async def test_open_corrupt(self):
        store = MemorySecretStore()
        await store.create(ResourceSecret("article-1", "AAAA"))

        with pytest.raises(InvalidPayload):
            await KeyCustodian(secret="s", store=store).open("article-1")


class TestMemorySecretStore:
    """Write-once storage."""

    @pytest.mark.asyncio
    async def test_create_once(self):
        store = MemorySecretStore()
        assert await store.create(ResourceSecret("r", "first")) is True
        assert await store.create(ResourceSecret("r", "second")) is False
        assert (await store.get("r")).encrypted_key == "first"

    @pytest.mark.asyncio
    async def test_get_missing(self):
        assert await MemorySecretStore().get("r") is None
