"""
Wallet keypairs and client-side signing helpers.

The server never holds wallet private keys. These helpers exist for
integrators, the CLI and the test-suite: they produce exactly the signatures
a browser wallet produces over the canonical payloads.
"""

import base64
from dataclasses import dataclass

import base58
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from aurora_access.canonical import access_key_message, auth_message


@dataclass(frozen=True)
class WalletKeyPair:
    """
    An Ed25519 wallet keypair.

    Attributes:
        private_key: Raw 32-byte Ed25519 seed.
        wallet: Base58-encoded public key (the wallet address).
    """

    private_key: bytes
    wallet: str

    @classmethod
    def from_private_bytes(cls, private_key: bytes) -> "WalletKeyPair":
        key = Ed25519PrivateKey.from_private_bytes(private_key)
        public = key.public_key().public_bytes_raw()
        return cls(private_key=private_key, wallet=base58.b58encode(public).decode("ascii"))

    @classmethod
    def from_base58(cls, secret: str) -> "WalletKeyPair":
        """
        Load from a base58 secret.

        Accepts either a 32-byte seed or the 64-byte seed+public form that
        Solana wallets export.
        """
        raw = base58.b58decode(secret)
        if len(raw) not in (32, 64):
            raise ValueError("Wallet secret must decode to 32 or 64 bytes")
        return cls.from_private_bytes(raw[:32])

    @property
    def public_key(self) -> bytes:
        return base58.b58decode(self.wallet)

    def export_secret(self) -> str:
        """Base58 of the 32-byte seed."""
        return base58.b58encode(self.private_key).decode("ascii")

    def sign(self, message: bytes) -> bytes:
        """Sign raw bytes, returning the 64-byte signature."""
        return Ed25519PrivateKey.from_private_bytes(self.private_key).sign(message)

    def sign_auth(self, nonce: str) -> str:
        """Base64 signature over the session proof for nonce."""
        return _b64(self.sign(auth_message(self.wallet, nonce)))

    def sign_access_key(self, article_id: str, nonce: str) -> str:
        """Base64 signature over the key-release proof for article_id."""
        return _b64(self.sign(access_key_message(self.wallet, article_id, nonce)))


def generate_wallet() -> WalletKeyPair:
    """Generate a fresh wallet keypair."""
    key = Ed25519PrivateKey.generate()
    return WalletKeyPair.from_private_bytes(key.private_bytes_raw())


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")
