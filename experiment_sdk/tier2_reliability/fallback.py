"""
experiment_sdk.tier2_reliability.fallback
─────────────────────────────────────────
Fail-open behavior. Experimentation must never block page rendering or a
user interaction, so public engine entry points are wrapped here: on any
exception they log and return a default (no experiment, no event) instead
of raising.

``asyncio.CancelledError`` is a BaseException and passes straight through;
cancellation is the caller's decision, not a failure to hide.
"""
from __future__ import annotations

import functools
import inspect
from typing import Any, Callable, TypeVar

from experiment_sdk.tier0_core.logging import get_logger

F = TypeVar("F", bound=Callable[..., Any])

logger = get_logger(__name__)


def with_fallback(
    default: Any = None,
    *,
    default_factory: Callable[[], Any] | None = None,
    event: str = "fallback.triggered",
    log_errors: bool = True,
    reraise: type[Exception] | tuple[type[Exception], ...] | None = None,
    on_error: Callable[[Exception], None] | None = None,
) -> Callable[[F], F]:
    """
    Decorator: on any exception, return *default* instead of raising.
    Works on plain and ``async def`` functions (and methods).

    Args:
        default:         Value returned when the wrapped function raises.
        default_factory: Called for a fresh default each time (use for lists/dicts).
        event:           Log event name emitted on fallback.
        log_errors:      Whether to log the exception (default True).
        reraise:         Exception type(s) that should still be raised.
        on_error:        Extra hook receiving the exception (e.g. report_error).

    Usage::

        @with_fallback(default=None, event="assignment.failed")
        async def get_active_experiment(...): ...
    """
    def _handle(fn: Callable[..., Any], exc: Exception) -> Any:
        if reraise and isinstance(exc, reraise):
            raise exc
        if log_errors:
            logger.warning(
                event,
                function=fn.__qualname__,
                error=str(exc),
                error_type=type(exc).__name__,
            )
        if on_error is not None:
            on_error(exc)
        return default_factory() if default_factory is not None else default

    def decorator(fn: F) -> F:
        if inspect.iscoroutinefunction(fn):
            @functools.wraps(fn)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                try:
                    return await fn(*args, **kwargs)
                except Exception as exc:
                    return _handle(fn, exc)

            return async_wrapper  # type: ignore[return-value]

        @functools.wraps(fn)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            try:
                return fn(*args, **kwargs)
            except Exception as exc:
                return _handle(fn, exc)

        return wrapper  # type: ignore[return-value]

    return decorator


__all__ = ["with_fallback"]
