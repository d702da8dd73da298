"""
Ed25519 wallet signature verification.

Wallets are identified by their base58-encoded 32-byte Ed25519 public key.
Verification fails closed: malformed keys, wrong-length signatures and decode
errors all come back as ``False``, indistinguishable from a bad signature.
"""

import base64
import binascii
import logging

import base58
from cryptography.exceptions import InvalidSignature as _CryptoInvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey

from aurora_access.errors import InvalidInput, InvalidWallet

logger = logging.getLogger(__name__)

PUBLIC_KEY_LENGTH = 32
SIGNATURE_LENGTH = 64


def decode_wallet(wallet: str) -> bytes:
    """
    Decode a base58 wallet address to its raw public key bytes.

    Args:
        wallet: Base58 public key string.

    Returns:
        The 32 raw public key bytes.

    Raises:
        InvalidWallet: If the string is empty, not base58, or not 32 bytes.
    """
    if not wallet or not isinstance(wallet, str):
        raise InvalidWallet("wallet is required")
    try:
        raw = base58.b58decode(wallet)
    except ValueError:
        raise InvalidWallet("Invalid wallet public key")
    if len(raw) != PUBLIC_KEY_LENGTH:
        raise InvalidWallet("Invalid wallet public key")
    return raw


def is_valid_wallet(wallet: str) -> bool:
    """Return True if wallet decodes to a 32-byte public key."""
    try:
        decode_wallet(wallet)
        return True
    except InvalidWallet:
        return False


def decode_signature(signature_b64: str) -> bytes:
    """
    Decode a base64 signature received over the wire.

    Length is not checked here; verify_signature rejects anything but 64 bytes.

    Raises:
        InvalidInput: If the value is missing or not valid base64.
    """
    if not signature_b64 or not isinstance(signature_b64, str):
        raise InvalidInput("signature is required")
    try:
        return base64.b64decode(signature_b64, validate=True)
    except (binascii.Error, ValueError):
        raise InvalidInput("signature must be base64")


def verify_signature(message: bytes, signature: bytes, wallet: str) -> bool:
    """
    Verify an Ed25519 signature over message for the given wallet.

    Args:
        message: Exact signed bytes (see aurora_access.canonical).
        signature: Raw 64-byte signature.
        wallet: Base58 public key of the claimed signer.

    Returns:
        True only if the signature is valid. Every other outcome is False.
    """
    if not isinstance(signature, (bytes, bytearray)) or len(signature) != SIGNATURE_LENGTH:
        logger.debug("Rejected signature with invalid length")
        return False
    try:
        public_key = Ed25519PublicKey.from_public_bytes(decode_wallet(wallet))
        public_key.verify(bytes(signature), message)
        return True
    except (InvalidWallet, _CryptoInvalidSignature, ValueError, TypeError):
        return False
