"""
experiment_sdk.tier3_platform.repository
────────────────────────────────────────
The experiment repository: active experiments, parsed and (optionally)
filtered by the request's audience facts.

This is the one place the engine touches its data source, and it fails
open. A store outage or timeout returns an empty list and is reported,
so the caller renders the default experience. A single malformed row is
skipped without hiding the well-formed ones around it.
"""
from __future__ import annotations

import time
from collections.abc import Callable, Mapping
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from experiment_sdk.tier0_core.errors import report_error
from experiment_sdk.tier0_core.logging import get_logger
from experiment_sdk.tier0_core.metrics import fetch_seconds
from experiment_sdk.tier1_runtime.clock import SYSTEM_CLOCK, Clock
from experiment_sdk.tier1_runtime.context import RequestContext
from experiment_sdk.tier3_platform.models import Experiment
from experiment_sdk.tier3_platform.store import ExperimentSource

logger = get_logger(__name__)


class ExperimentRepository:
    """
    Usage::

        repo = ExperimentRepository(SqlExperimentSource())
        experiments = await repo.fetch_active_experiments(ctx)
    """

    def __init__(
        self,
        source: ExperimentSource,
        *,
        clock: Clock | None = None,
        on_error: Callable[..., None] = report_error,
    ) -> None:
        self.source = source
        self._clock = clock or SYSTEM_CLOCK
        self._on_error = on_error

    async def fetch_active_experiments(
        self,
        ctx: RequestContext | None = None,
        *,
        apply_targeting: bool = True,
    ) -> list[Experiment]:
        """
        Active experiments in priority order (priority desc, newest first,
        id as tie-breaker). With *apply_targeting*, only those whose
        audience matches *ctx*.
        """
        started = time.perf_counter()
        try:
            rows = await self.source.fetch_active_rows()
        except Exception as exc:
            self._on_error(exc, operation="fetch_active_experiments")
            return []
        finally:
            fetch_seconds().observe(time.perf_counter() - started)

        now = self._clock.now()
        experiments = [
            exp for exp in (self._parse(row) for row in rows)
            if exp is not None and exp.is_running(now)
        ]
        if apply_targeting and ctx is not None:
            experiments = [e for e in experiments if e.target_audience.matches(ctx)]
        return experiments

    def _parse(self, row: Mapping[str, Any]) -> Experiment | None:
        try:
            return Experiment.model_validate(row)
        except PydanticValidationError as exc:
            logger.warning(
                "experiments.malformed_row",
                experiment_id=row.get("id"),
                errors=exc.error_count(),
            )
            return None


__all__ = ["ExperimentRepository"]
