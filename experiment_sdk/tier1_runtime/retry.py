"""
experiment_sdk.tier1_runtime.retry
──────────────────────────────────
Backoff-with-jitter policy for outbound calls that are worth a second
try (the tracking sink). Backed by Tenacity.

Usage:
    @retry_policy(max_attempts=3, on=[httpx.TransportError])
    async def post_event(payload): ...

    send = retry_policy(max_attempts=config.tracking_max_attempts)(sink.post)
"""
from __future__ import annotations

import functools
from collections.abc import Callable
from typing import Any

from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from experiment_sdk.tier0_core.errors import ConfigurationError, ValidationError

# Retrying these can only produce the same failure again
_NON_RETRYABLE: tuple[type[BaseException], ...] = (ConfigurationError, ValidationError)


def _is_retryable(exc: BaseException) -> bool:
    return not isinstance(exc, _NON_RETRYABLE)


def retry_policy(
    max_attempts: int = 3,
    min_wait: float = 0.1,
    max_wait: float = 2.0,
    jitter: float = 0.25,
    on: list[type[Exception]] | None = None,
) -> Callable:
    """
    Decorator applying exponential backoff with jitter to an async callable.

    Args:
        max_attempts: Total number of attempts (including the first).
        min_wait:     Minimum wait seconds between attempts.
        max_wait:     Maximum wait seconds between attempts.
        jitter:       Maximum random seconds added to each wait.
        on:           Exception types to retry on. If None, everything
                      except configuration and validation errors.
    """
    retry_on = retry_if_exception_type(tuple(on)) if on else retry_if_exception(_is_retryable)

    def decorator(fn: Callable) -> Callable:
        @functools.wraps(fn)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(max_attempts),
                wait=wait_exponential(min=min_wait, max=max_wait) + wait_random(0, jitter),
                retry=retry_on,
                reraise=True,
            ):
                with attempt:
                    return await fn(*args, **kwargs)

        return wrapper
    return decorator


__all__ = ["retry_policy"]
