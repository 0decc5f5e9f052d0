"""
experiment_sdk.tier0_core.errors
─────────────────────────────────
Error taxonomy for the experimentation engine, stable error codes, and
optional Sentry capture. Constructing an ExperimentsError reports it if an
error backend is configured.

None of these errors is allowed to reach the page renderer: the engine
catches them at its public boundary and falls back to the default
(no-experiment) experience.

Minimal stack: Sentry
Select via:    EXPERIMENTS_ERROR_BACKEND=sentry|none
"""
from __future__ import annotations

import os
from typing import Any

from experiment_sdk.tier0_core.logging import get_logger

logger = get_logger(__name__)


# ── Base error ────────────────────────────────────────────────────────────────

class ExperimentsError(Exception):
    """
    Base class for all engine errors. Every error has:
    - code: stable machine-readable string (snake_case)
    - user_message: safe to surface to end users
    - detail: internal context, never shown to users
    - status_code: HTTP status code when an integration maps it to a response
    """

    status_code: int = 500
    code: str = "internal_error"

    def __init__(
        self,
        code: str | None = None,
        user_message: str = "An unexpected error occurred.",
        detail: str | None = None,
        **metadata: Any,
    ) -> None:
        self.code = code or self.__class__.code
        self.user_message = user_message
        self.detail = detail or user_message
        self.metadata = metadata
        super().__init__(self.detail)
        _capture(self)

    def to_dict(self) -> dict:
        return {
            "error": {
                "code": self.code,
                "message": self.user_message,
            }
        }


# ── Typed error classes ───────────────────────────────────────────────────────

class ValidationError(ExperimentsError):
    """Payload or stored data failed schema validation."""
    status_code = 422
    code = "validation_error"

    def __init__(
        self,
        code: str | None = None,
        user_message: str = "Validation failed.",
        fields: dict | None = None,
        **metadata: Any,
    ) -> None:
        self.fields = fields or {}
        super().__init__(code, user_message, **metadata)

    def to_dict(self) -> dict:
        d = super().to_dict()
        if self.fields:
            d["error"]["fields"] = self.fields
        return d


class ConfigurationError(ExperimentsError):
    """Misconfiguration detected at construction time."""
    status_code = 500
    code = "configuration_error"


class DataStoreError(ExperimentsError):
    """The experiment store could not be queried (connection, timeout, SQL)."""
    status_code = 503
    code = "data_store_unavailable"


class CookieWriteError(ExperimentsError):
    """A cookie could not be written, usually because the response already started."""
    status_code = 500
    code = "cookie_write_failed"


class TrackingError(ExperimentsError):
    """The analytics sink rejected an event or could not be reached."""
    status_code = 502
    code = "tracking_failed"


# ── Error capture backend ─────────────────────────────────────────────────────

def _backend() -> str:
    return os.getenv("EXPERIMENTS_ERROR_BACKEND", "none").lower()


def _capture(error: ExperimentsError) -> None:
    """Send error to configured backend. Called automatically by ExperimentsError.__init__."""
    if _backend() == "sentry":
        _capture_sentry(error)


def _capture_sentry(error: ExperimentsError) -> None:
    import sentry_sdk

    if error.status_code >= 500:
        sentry_sdk.capture_exception(error)
    else:
        sentry_sdk.capture_message(
            str(error),
            level="warning",
            extras={"code": error.code, **error.metadata},
        )


def report_error(exc: BaseException, **context: Any) -> None:
    """
    Report an exception that was recovered locally.

    The engine calls this wherever it fails open (data store down,
    malformed experiment rows) so the failure is still visible to whoever
    operates the service.
    """
    logger.error(
        "error.reported",
        error=str(exc),
        error_type=type(exc).__name__,
        **context,
    )
    if _backend() == "sentry" and not isinstance(exc, ExperimentsError):
        # ExperimentsError instances were already captured on construction
        import sentry_sdk

        sentry_sdk.capture_exception(exc, extras=context)


def configure_sentry(dsn: str, **kwargs: Any) -> None:
    """Initialize Sentry. Call once at application startup."""
    import sentry_sdk

    sentry_sdk.init(dsn=dsn, **kwargs)
    os.environ["EXPERIMENTS_ERROR_BACKEND"] = "sentry"


__all__ = [
    "ExperimentsError",
    "ValidationError",
    "ConfigurationError",
    "DataStoreError",
    "CookieWriteError",
    "TrackingError",
    "report_error",
    "configure_sentry",
]
