"""
Canonical message encoding for signed payloads.

The wallet (a browser client) and this service build the "same" message
independently, so both must produce byte-identical input to Ed25519. The
encoding matches a key-sorted ``JSON.stringify`` walk:

- objects: keys sorted by UTF-16 code units, encoded recursively
- arrays: order preserved
- strings: ``JSON.stringify`` escaping (non-ASCII emitted literally)
- numbers: ECMAScript number-to-string rules
- no whitespace anywhere

The contract, with golden vectors, is published in docs/CANONICAL.md.
"""

import json
import math
from decimal import Decimal
from typing import Any

from aurora_access.config import SIGNING_DOMAIN
from aurora_access.errors import InvalidInput

CANONICAL_VERSION = "1"

AUTH_ACTION = "auth"
ACCESS_KEY_ACTION = "access-key"


def canonical_json(value: Any) -> str:
    """
    Encode a JSON-compatible value deterministically.

    Args:
        value: dict / list / tuple / str / int / float / bool / None.

    Returns:
        The canonical JSON text.

    Raises:
        InvalidInput: For non-string keys, NaN/Infinity or unsupported types.
    """
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return _format_number(value)
    if isinstance(value, str):
        return _format_string(value)
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(canonical_json(item) for item in value) + "]"
    if isinstance(value, dict):
        for key in value:
            if not isinstance(key, str):
                raise InvalidInput(f"Object keys must be strings, got {type(key).__name__}")
        keys = sorted(value, key=_utf16_sort_key)
        return "{" + ",".join(f"{_format_string(k)}:{canonical_json(value[k])}" for k in keys) + "}"
    raise InvalidInput(f"Cannot canonically encode {type(value).__name__}")


def canonical_bytes(value: Any) -> bytes:
    """UTF-8 bytes of canonical_json(value), the exact input to the signature."""
    try:
        return canonical_json(value).encode("utf-8")
    except UnicodeEncodeError as e:
        # Lone surrogates have no UTF-8 form
        raise InvalidInput(f"Payload is not valid Unicode: {e.reason}")


def auth_message(wallet: str, nonce: str) -> bytes:
    """Bytes a wallet signs to open a session."""
    return canonical_bytes(
        {"domain": SIGNING_DOMAIN, "action": AUTH_ACTION, "wallet": wallet, "nonce": nonce}
    )


def access_key_message(wallet: str, article_id: str, nonce: str) -> bytes:
    """Bytes a wallet signs to claim the content key of one article."""
    return canonical_bytes(
        {
            "domain": SIGNING_DOMAIN,
            "action": ACCESS_KEY_ACTION,
            "wallet": wallet,
            "articleId": article_id,
            "nonce": nonce,
        }
    )


def _utf16_sort_key(key: str) -> bytes:
    # JS compares strings by UTF-16 code units, not code points
    return key.encode("utf-16-be", "surrogatepass")


def _format_string(value: str) -> str:
    # ensure_ascii=False escapes exactly what JSON.stringify escapes:
    # quote, backslash, \b \f \n \r \t and other C0 controls as \u00xx
    return json.dumps(value, ensure_ascii=False)


def _format_number(value: Any) -> str:
    if isinstance(value, int):
        return str(value)
    if math.isnan(value) or math.isinf(value):
        raise InvalidInput("NaN and Infinity are not valid JSON numbers")
    text = repr(value)
    if value.is_integer() and abs(value) < 1e21:
        if value == 0:
            return "0"
        # Shortest round-trip digits, zero padded past 2**53
        return format(Decimal(text), "f").partition(".")[0]

    if "e" not in text:
        return text
    mantissa, exponent = text.split("e")
    exp = int(exponent)
    if -7 < exp < 21:
        return format(Decimal(text), "f")
    return f"{mantissa}e{'+' if exp > 0 else '-'}{abs(exp)}"
