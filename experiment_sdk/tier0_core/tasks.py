"""
experiment_sdk.tier0_core.tasks
───────────────────────────────
Non-blocking background work. Tracking calls are spawned here so the
request that produced them never awaits the analytics sink, and so the
sink's failure domain stays separate from the caller's control flow:

  - the caller gets a task handle back immediately and may ignore it
  - an exception inside the task is logged, never re-raised to the caller
  - cancelling the task (or the runner) ends that task only

The runner holds strong references to in-flight tasks; asyncio keeps only
weak ones, and an unreferenced task can be garbage-collected mid-flight.
"""
from __future__ import annotations

import asyncio
from collections.abc import Coroutine
from typing import Any, Protocol, runtime_checkable

from experiment_sdk.tier0_core.logging import get_logger

logger = get_logger(__name__)


# ── Protocol ───────────────────────────────────────────────────────────────

@runtime_checkable
class TaskRunner(Protocol):
    """Fire-and-forget runner: swap for a distributed queue without touching callers."""

    def spawn(self, name: str, coro: Coroutine[Any, Any, Any]) -> asyncio.Task | None: ...

    async def drain(self, timeout: float | None = None) -> None: ...


# ── In-process runner ──────────────────────────────────────────────────────

class InProcessTaskRunner:
    """
    Runs background coroutines as detached asyncio tasks on the running loop.

    Usage::

        runner = InProcessTaskRunner()
        runner.spawn("tracking.click", sink.send(event))
        ...
        await runner.drain()   # on shutdown, or in tests
    """

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def spawn(self, name: str, coro: Coroutine[Any, Any, Any]) -> asyncio.Task | None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Called from sync code with no loop: drop the work, never block
            coro.close()
            logger.warning("task.no_running_loop", task=name)
            return None

        task = loop.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.debug("task.cancelled", task=task.get_name())
            return
        exc = task.exception()
        if exc is not None:
            logger.warning(
                "task.failed",
                task=task.get_name(),
                error=str(exc),
                error_type=type(exc).__name__,
            )

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for in-flight tasks. Tasks still running after *timeout* are cancelled."""
        if not self._tasks:
            return
        tasks = list(self._tasks)
        _, still_running = await asyncio.wait(tasks, timeout=timeout)
        for task in still_running:
            task.cancel()
        if still_running:
            await asyncio.gather(*still_running, return_exceptions=True)

    def cancel_all(self) -> None:
        for task in list(self._tasks):
            task.cancel()


__all__ = ["TaskRunner", "InProcessTaskRunner"]
