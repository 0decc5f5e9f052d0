"""
experiment_sdk.tier0_core.ids
─────────────────────────────
Identifier generation. Visitor tokens are the seed of every bucketing
decision, so they are minted from the OS CSPRNG with 128 bits of entropy
and must never be derived from request data.
"""
from __future__ import annotations

import re
import secrets
import uuid

# 16 random bytes → 22 url-safe base64 characters
VISITOR_TOKEN_BYTES = 16

# Accepts url-safe tokens and UUID strings; anything else is treated as tampered
_TOKEN_RE = re.compile(r"^[A-Za-z0-9_-]{16,64}$")


def new_visitor_id() -> str:
    """Mint a fresh anonymous visitor token (128 bits, url-safe)."""
    return secrets.token_urlsafe(VISITOR_TOKEN_BYTES)


def new_event_id() -> str:
    """Random UUID v4 string used to de-duplicate tracked events at the sink."""
    return str(uuid.uuid4())


def is_well_formed_token(value: str | None) -> bool:
    """True when *value* looks like a token this module (or a UUID generator) produced."""
    if not value:
        return False
    return bool(_TOKEN_RE.match(value))


__all__ = ["new_visitor_id", "new_event_id", "is_well_formed_token", "VISITOR_TOKEN_BYTES"]
