"""
experiment_sdk.tier3_platform.assignments
─────────────────────────────────────────
The assignment cookie: a URL-encoded JSON map of
``experimentId -> {experimentId, variantId, variantName, assignedAt}``.

The visitor's browser is the only durable record of an assignment. A
corrupt or foreign cookie is read as "no assignments" and is overwritten
by the next decision; it never fails the request.
"""
from __future__ import annotations

from collections.abc import Iterable

from experiment_sdk.tier0_core.config import ExperimentsConfig, get_config
from experiment_sdk.tier0_core.errors import ValidationError
from experiment_sdk.tier0_core.logging import get_logger
from experiment_sdk.tier1_runtime.cookies import CookieJar, CookieOptions
from experiment_sdk.tier1_runtime.serialize import from_cookie_value, to_cookie_value
from experiment_sdk.tier3_platform.models import Assignment, StoredAssignment

logger = get_logger(__name__)

AssignmentMap = dict[str, StoredAssignment]


def get_assignments(cookie_jar: CookieJar, *, config: ExperimentsConfig | None = None) -> AssignmentMap:
    """Every stored assignment keyed by experiment id. Unreadable data yields ``{}``."""
    cfg = config or get_config()
    raw = cookie_jar.get(cfg.assignment_cookie_name)
    if not raw:
        return {}
    try:
        stored = from_cookie_value(raw, AssignmentMap)
    except ValidationError as exc:
        logger.warning(
            "assignments.malformed_cookie",
            cookie=cfg.assignment_cookie_name,
            fields=list(exc.fields),
        )
        return {}
    # Entries filed under the wrong key are not trusted
    return {key: value for key, value in stored.items() if value.experiment_id == key}


def assignment_cookie_options(config: ExperimentsConfig) -> CookieOptions:
    return CookieOptions(
        max_age=config.assignment_cookie_max_age,
        path="/",
        secure=bool(config.cookie_secure),
        httponly=False,
        samesite=config.cookie_samesite,
    )


def store_assignment(
    cookie_jar: CookieJar,
    assignment: Assignment,
    *,
    active_ids: Iterable[str] | None = None,
    config: ExperimentsConfig | None = None,
) -> AssignmentMap:
    """
    Record *assignment* in the cookie, keeping assignments for other
    experiments. With *active_ids*, entries for experiments that are no
    longer active are dropped so the cookie does not grow without bound.

    Raises CookieWriteError when the jar no longer accepts writes.
    """
    cfg = config or get_config()
    stored = get_assignments(cookie_jar, config=cfg)
    if active_ids is not None:
        keep = set(active_ids)
        stored = {key: value for key, value in stored.items() if key in keep}
    stored[assignment.experiment_id] = assignment.to_stored()

    cookie_jar.set(
        cfg.assignment_cookie_name,
        to_cookie_value(stored, AssignmentMap),
        assignment_cookie_options(cfg),
    )
    return stored


def clear_assignments(cookie_jar: CookieJar, *, config: ExperimentsConfig | None = None) -> None:
    """
    Forget every stored assignment. The next evaluation re-runs bucketing
    from scratch (and, bucketing being deterministic, usually lands on the
    same variant unless the experiment changed).
    """
    cfg = config or get_config()
    cookie_jar.delete(cfg.assignment_cookie_name, path="/")
    logger.info("assignments.cleared", cookie=cfg.assignment_cookie_name)


__all__ = [
    "AssignmentMap",
    "get_assignments",
    "store_assignment",
    "clear_assignments",
    "assignment_cookie_options",
]
