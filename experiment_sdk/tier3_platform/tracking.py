"""
experiment_sdk.tier3_platform.tracking
──────────────────────────────────────
Experiment event tracking. Every call is fire-and-forget: the Tracker
hands delivery to a background task runner and returns immediately, and
a sink failure is logged and counted but never reaches the caller.

Events without an experiment and variant are dropped before any I/O;
orphan events are never sent.

Sinks:
  - HttpEventSink:     POSTs JSON to EXPERIMENTS_TRACKING_ENDPOINT (httpx + tenacity)
  - LogEventSink:      structured log line per event (no endpoint configured)
  - InMemoryEventSink: collects events, for tests and local development
"""
from __future__ import annotations

import asyncio
from datetime import datetime
from enum import Enum
from typing import Any, Protocol, runtime_checkable

import httpx
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from experiment_sdk.tier0_core.config import ExperimentsConfig, get_config
from experiment_sdk.tier0_core.errors import TrackingError
from experiment_sdk.tier0_core.ids import new_event_id
from experiment_sdk.tier0_core.logging import get_logger
from experiment_sdk.tier0_core.metrics import tracked_events
from experiment_sdk.tier0_core.tasks import InProcessTaskRunner, TaskRunner
from experiment_sdk.tier1_runtime.clock import utcnow
from experiment_sdk.tier1_runtime.context import RequestContext
from experiment_sdk.tier1_runtime.retry import retry_policy
from experiment_sdk.tier3_platform.models import Assignment

logger = get_logger(__name__)


class EventType(str, Enum):
    CLICK = "click"
    CONVERSION = "conversion"
    ENGAGEMENT = "engagement"
    PAGEVIEW = "pageview"
    ASSIGNMENT = "assignment"


class TrackedEvent(BaseModel):
    """One event as delivered to the sink. Serialized in camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    experiment_id: str
    variant_id: str
    event_type: EventType
    event_data: dict[str, Any] = Field(default_factory=dict)
    event_id: str = Field(default_factory=new_event_id)
    visitor_id: str | None = None
    timestamp: datetime = Field(default_factory=utcnow)

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ── Sinks ─────────────────────────────────────────────────────────────────────

@runtime_checkable
class EventSink(Protocol):
    async def send(self, event: TrackedEvent) -> None: ...


class HttpEventSink:
    """
    POST each event as JSON to an analytics endpoint.

    Transport errors (connection refused, timeouts) are retried with
    backoff; an HTTP error status is not, and raises TrackingError.
    """

    def __init__(
        self,
        endpoint: str,
        *,
        timeout: float = 5.0,
        max_attempts: int = 2,
        min_wait: float = 0.1,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.endpoint = endpoint
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._post = retry_policy(
            max_attempts=max_attempts,
            min_wait=min_wait,
            max_wait=max(min_wait, 1.0),
            jitter=min_wait,
            on=[httpx.TransportError],
        )(self._post_once)

    async def _post_once(self, payload: dict[str, Any]) -> httpx.Response:
        return await self._client.post(self.endpoint, json=payload)

    async def send(self, event: TrackedEvent) -> None:
        try:
            response = await self._post(event.to_payload())
        except httpx.TransportError as exc:
            raise TrackingError(
                user_message="Tracking endpoint unreachable.",
                detail=f"POST {self.endpoint} failed: {exc!r}",
                event_type=event.event_type.value,
            ) from exc
        if response.is_error:
            raise TrackingError(
                user_message="Tracking endpoint rejected the event.",
                detail=f"POST {self.endpoint} returned {response.status_code}",
                status=response.status_code,
                event_type=event.event_type.value,
            )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


class LogEventSink:
    async def send(self, event: TrackedEvent) -> None:
        logger.info(
            "tracking.event",
            event_id=event.event_id,
            event_type=event.event_type.value,
            experiment_id=event.experiment_id,
            variant_id=event.variant_id,
        )


class InMemoryEventSink:
    def __init__(self) -> None:
        self.events: list[TrackedEvent] = []

    async def send(self, event: TrackedEvent) -> None:
        self.events.append(event)


def build_event_sink(config: ExperimentsConfig | None = None) -> EventSink:
    """HttpEventSink when an endpoint is configured, otherwise LogEventSink."""
    cfg = config or get_config()
    if cfg.tracking_endpoint:
        return HttpEventSink(
            cfg.tracking_endpoint,
            timeout=cfg.tracking_timeout,
            max_attempts=cfg.tracking_max_attempts,
        )
    return LogEventSink()


# ── Tracker ───────────────────────────────────────────────────────────────────

class Tracker:
    """
    Non-blocking front end to an EventSink.

    Share one tracker (or at least one sink) process-wide: an HttpEventSink
    holds a connection pool. Per-visitor attribution goes through the
    visitor_id argument of track(); the constructor value is only the
    fallback.

    Usage::

        tracker = Tracker(build_event_sink())
        tracker.track(EventType.CLICK, exp_id, variant_id, visitor_id=visitor_id)
        ...
        await tracker.aclose()   # on shutdown: drains, then closes an owned sink
    """

    def __init__(
        self,
        sink: EventSink | None = None,
        *,
        runner: TaskRunner | None = None,
        visitor_id: str | None = None,
        config: ExperimentsConfig | None = None,
    ) -> None:
        self._owns_sink = sink is None
        self.sink = sink or build_event_sink(config)
        self.runner = runner or InProcessTaskRunner()
        self.visitor_id = visitor_id

    def track(
        self,
        event_type: EventType | str,
        experiment_id: str | None,
        variant_id: str | None,
        event_data: dict[str, Any] | None = None,
        *,
        visitor_id: str | None = None,
    ) -> asyncio.Task | None:
        """
        Queue one event for delivery and return at once. Returns the
        delivery task, or None when nothing was queued. ``visitor_id``
        overrides the tracker's own visitor for this event.
        """
        try:
            kind = EventType(event_type)
        except ValueError:
            logger.warning("tracking.unknown_event_type", event_type=str(event_type))
            return None

        if not experiment_id or not variant_id:
            tracked_events(event_type=kind.value, status="skipped").inc()
            return None

        event = TrackedEvent(
            experiment_id=experiment_id,
            variant_id=variant_id,
            event_type=kind,
            event_data=dict(event_data or {}),
            visitor_id=visitor_id or self.visitor_id,
        )
        return self.runner.spawn(f"tracking.{kind.value}", self._deliver(event))

    async def _deliver(self, event: TrackedEvent) -> None:
        try:
            await self.sink.send(event)
        except Exception as exc:
            tracked_events(event_type=event.event_type.value, status="failed").inc()
            logger.warning(
                "tracking.delivery_failed",
                event_id=event.event_id,
                event_type=event.event_type.value,
                experiment_id=event.experiment_id,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return
        tracked_events(event_type=event.event_type.value, status="sent").inc()

    # ── Convenience helpers ───────────────────────────────────────────────────

    def track_click(
        self,
        assignment: Assignment | None,
        element: str,
        *,
        visitor_id: str | None = None,
        **extra: Any,
    ) -> asyncio.Task | None:
        return self._track_for(assignment, EventType.CLICK, {"element": element, **extra}, visitor_id)

    def track_conversion(
        self,
        assignment: Assignment | None,
        conversion_type: str,
        value: float | None = None,
        *,
        visitor_id: str | None = None,
        **extra: Any,
    ) -> asyncio.Task | None:
        data: dict[str, Any] = {"type": conversion_type, **extra}
        if value is not None:
            data["value"] = value
        return self._track_for(assignment, EventType.CONVERSION, data, visitor_id)

    def track_engagement(
        self,
        assignment: Assignment | None,
        scroll_depth: float | None = None,
        time_on_page: float | None = None,
        *,
        visitor_id: str | None = None,
    ) -> asyncio.Task | None:
        data: dict[str, Any] = {}
        if scroll_depth is not None:
            data["scrollDepth"] = scroll_depth
        if time_on_page is not None:
            data["timeOnPage"] = time_on_page
        return self._track_for(assignment, EventType.ENGAGEMENT, data, visitor_id)

    def track_pageview(
        self,
        assignment: Assignment | None,
        request_context: RequestContext | None = None,
        *,
        visitor_id: str | None = None,
    ) -> asyncio.Task | None:
        data = request_context.as_event_data() if request_context else {}
        return self._track_for(assignment, EventType.PAGEVIEW, data, visitor_id)

    def _track_for(
        self,
        assignment: Assignment | None,
        event_type: EventType,
        data: dict[str, Any],
        visitor_id: str | None = None,
    ) -> asyncio.Task | None:
        if assignment is None:
            return self.track(event_type, None, None, data, visitor_id=visitor_id)
        return self.track(
            event_type, assignment.experiment_id, assignment.variant_id, data, visitor_id=visitor_id
        )

    async def drain(self, timeout: float | None = None) -> None:
        await self.runner.drain(timeout)

    async def aclose(self, timeout: float | None = None) -> None:
        """Drain pending deliveries, then close the sink if this tracker built it."""
        await self.drain(timeout)
        if self._owns_sink and isinstance(self.sink, HttpEventSink):
            await self.sink.aclose()


__all__ = [
    "EventType",
    "TrackedEvent",
    "EventSink",
    "HttpEventSink",
    "LogEventSink",
    "InMemoryEventSink",
    "build_event_sink",
    "Tracker",
]
