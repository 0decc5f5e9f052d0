"""
experiment_sdk.tier2_reliability.crypto
───────────────────────────────────────
HMAC helpers that make client-held values tamper-evident. The visitor
cookie is stored as ``<token>.<signature>`` when a signing key is
configured; a value whose signature does not verify is treated as absent.

Signatures are truncated HMAC-SHA256 (128 bits), url-safe base64, so the
signed value is still a legal cookie token.
"""
from __future__ import annotations

import base64
import hashlib
import hmac

_SEPARATOR = "."
_SIGNATURE_BYTES = 16


def hmac_sign(key: str | bytes, data: str | bytes) -> str:
    """Url-safe base64 HMAC-SHA256 signature of *data*, truncated to 128 bits."""
    k = key.encode() if isinstance(key, str) else key
    d = data.encode() if isinstance(data, str) else data
    digest = hmac.new(k, d, hashlib.sha256).digest()[:_SIGNATURE_BYTES]
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode()


def hmac_verify(key: str | bytes, data: str | bytes, signature: str) -> bool:
    """Verify a signature produced by hmac_sign, in constant time."""
    return hmac.compare_digest(hmac_sign(key, data), signature)


def sign_value(key: str | bytes, value: str) -> str:
    """Return ``value.signature``."""
    return f"{value}{_SEPARATOR}{hmac_sign(key, value)}"


def unsign_value(key: str | bytes, signed: str) -> str | None:
    """Return the original value if the signature verifies, else None."""
    value, sep, signature = signed.rpartition(_SEPARATOR)
    if not sep or not value or not signature:
        return None
    if not hmac_verify(key, value, signature):
        return None
    return value


__all__ = ["hmac_sign", "hmac_verify", "sign_value", "unsign_value"]
