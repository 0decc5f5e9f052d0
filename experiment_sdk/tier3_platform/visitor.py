"""
experiment_sdk.tier3_platform.visitor
─────────────────────────────────────
Anonymous visitor identity. The visitor id is the only input to bucketing
besides the experiment id, so it must be stable for as long as the cookie
lives and must never be derived from anything the client controls.

With ``EXPERIMENTS_COOKIE_SECRET`` set the cookie holds ``<token>.<sig>``
and a value that fails verification is replaced, not trusted.
"""
from __future__ import annotations

from experiment_sdk.tier0_core.config import ExperimentsConfig, get_config
from experiment_sdk.tier0_core.errors import CookieWriteError
from experiment_sdk.tier0_core.ids import is_well_formed_token, new_visitor_id
from experiment_sdk.tier0_core.logging import get_logger
from experiment_sdk.tier1_runtime.cookies import CookieJar, CookieOptions
from experiment_sdk.tier2_reliability.crypto import sign_value, unsign_value

logger = get_logger(__name__)


def read_visitor_id(cookie_jar: CookieJar, *, config: ExperimentsConfig | None = None) -> str | None:
    """The visitor id carried by the request, or None if absent or untrustworthy."""
    cfg = config or get_config()
    raw = cookie_jar.get(cfg.visitor_cookie_name)
    if not raw:
        return None

    key = cfg.signing_key
    token = unsign_value(key, raw) if key else raw
    if token is None:
        logger.warning("visitor.bad_signature", cookie=cfg.visitor_cookie_name)
        return None
    if not is_well_formed_token(token):
        logger.warning("visitor.malformed_token", cookie=cfg.visitor_cookie_name)
        return None
    return token


def visitor_cookie_options(config: ExperimentsConfig) -> CookieOptions:
    # Readable from client-side scripts so analytics snippets can attach it
    return CookieOptions(
        max_age=config.visitor_cookie_max_age,
        path="/",
        secure=bool(config.cookie_secure),
        httponly=False,
        samesite=config.cookie_samesite,
    )


def get_or_create_visitor_id(cookie_jar: CookieJar, *, config: ExperimentsConfig | None = None) -> str:
    """
    Return the visitor's id, minting and persisting a new one when the
    request carries none.

    Persistence failures are logged and swallowed: the id is still returned
    and used for this request, the visitor simply gets a new one next time.
    """
    cfg = config or get_config()
    existing = read_visitor_id(cookie_jar, config=cfg)
    if existing is not None:
        return existing

    visitor_id = new_visitor_id()
    key = cfg.signing_key
    value = sign_value(key, visitor_id) if key else visitor_id
    try:
        cookie_jar.set(cfg.visitor_cookie_name, value, visitor_cookie_options(cfg))
    except CookieWriteError as exc:
        logger.warning("visitor.cookie_write_failed", error=exc.detail)
    else:
        logger.debug("visitor.created")
    return visitor_id


__all__ = ["get_or_create_visitor_id", "read_visitor_id", "visitor_cookie_options"]
