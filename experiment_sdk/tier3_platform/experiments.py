"""
experiment_sdk.tier3_platform.experiments
─────────────────────────────────────────
The assignment engine. For one visitor and one request it answers "which
experiment variant, if any, does this visitor see?" and makes the answer
stick:

  1. A stored assignment for a still-active experiment (and still-existing
     variant) is returned unchanged.
  2. Otherwise the first active experiment whose audience matches the
     request is the only candidate.
  3. The visitor's bucket value gates inclusion by traffic percentage.
  4. A second, independent bucket value walks the weighted variants.
  5. The decision is written to the assignment cookie and returned.

Any failure along the way yields None: the visitor sees the default
experience and the page still renders.
"""
from __future__ import annotations

from experiment_sdk.tier0_core.config import ExperimentsConfig, get_config
from experiment_sdk.tier0_core.errors import CookieWriteError
from experiment_sdk.tier0_core.logging import get_logger
from experiment_sdk.tier0_core.metrics import assignment_outcomes
from experiment_sdk.tier1_runtime.clock import SYSTEM_CLOCK, Clock
from experiment_sdk.tier1_runtime.context import RequestContext
from experiment_sdk.tier1_runtime.cookies import CookieJar
from experiment_sdk.tier2_reliability.fallback import with_fallback
from experiment_sdk.tier3_platform.assignments import (
    AssignmentMap,
    clear_assignments,
    get_assignments,
    store_assignment,
)
from experiment_sdk.tier3_platform.bucketing import (
    bucket_value,
    is_included,
    select_variant,
    variant_bucket_value,
)
from experiment_sdk.tier3_platform.models import Assignment, Experiment
from experiment_sdk.tier3_platform.repository import ExperimentRepository
from experiment_sdk.tier3_platform.tracking import EventType, Tracker

logger = get_logger(__name__)


def _count_failure(exc: Exception) -> None:
    assignment_outcomes(outcome="error").inc()


class ExperimentEngine:
    """
    Usage::

        engine = ExperimentEngine(ExperimentRepository(SqlExperimentSource()))
        assignment = await engine.get_active_experiment(visitor_id, jar, ctx)
        if assignment:
            hero = resolve_component(assignment, "hero")
    """

    def __init__(
        self,
        repository: ExperimentRepository,
        *,
        tracker: Tracker | None = None,
        config: ExperimentsConfig | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.repository = repository
        self.tracker = tracker
        self.config = config or get_config()
        self._clock = clock or SYSTEM_CLOCK

    @with_fallback(default=None, event="assignment.failed", on_error=_count_failure)
    async def get_active_experiment(
        self,
        visitor_id: str,
        cookie_jar: CookieJar,
        request_context: RequestContext | None = None,
    ) -> Assignment | None:
        ctx = request_context or RequestContext()
        # Unfiltered: a stored assignment survives later audience changes
        active = await self.repository.fetch_active_experiments(ctx, apply_targeting=False)

        existing = self._existing_assignment(active, get_assignments(cookie_jar, config=self.config))
        if existing is not None:
            assignment_outcomes(outcome="existing").inc()
            return existing

        candidates = [exp for exp in active if exp.target_audience.matches(ctx)]
        if not candidates:
            assignment_outcomes(outcome="none").inc()
            return None

        experiment = candidates[0]
        if not is_included(bucket_value(visitor_id, experiment.id), experiment.traffic_percentage):
            assignment_outcomes(outcome="excluded").inc()
            logger.debug("assignment.excluded", experiment_id=experiment.id)
            return None

        variant = select_variant(experiment.variants, variant_bucket_value(visitor_id, experiment.id))
        if variant is None:
            assignment_outcomes(outcome="none").inc()
            logger.warning("assignment.no_variants", experiment_id=experiment.id)
            return None

        assignment = Assignment.from_variant(experiment, variant, self._clock.now())
        try:
            store_assignment(
                cookie_jar,
                assignment,
                active_ids=[exp.id for exp in active],
                config=self.config,
            )
        except CookieWriteError as exc:
            logger.warning(
                "assignment.cookie_write_failed",
                experiment_id=experiment.id,
                error=exc.detail,
            )

        assignment_outcomes(outcome="assigned").inc()
        logger.info(
            "assignment.created",
            experiment_id=experiment.id,
            variant_id=variant.id,
            variant_name=variant.name,
        )
        if self.tracker is not None:
            self.tracker.track(
                EventType.ASSIGNMENT,
                experiment.id,
                variant.id,
                {"variantName": variant.name, **ctx.as_event_data()},
                visitor_id=visitor_id,
            )
        return assignment

    def _existing_assignment(
        self,
        active: list[Experiment],
        stored: AssignmentMap,
    ) -> Assignment | None:
        if not stored:
            return None
        for experiment in active:
            entry = stored.get(experiment.id)
            if entry is None:
                continue
            variant = experiment.variant_by_id(entry.variant_id)
            if variant is None:
                logger.info(
                    "assignment.stale_variant",
                    experiment_id=experiment.id,
                    variant_id=entry.variant_id,
                )
                continue
            return Assignment.from_variant(experiment, variant, entry.assigned_at)
        return None

    def get_assignments(self, cookie_jar: CookieJar) -> AssignmentMap:
        return get_assignments(cookie_jar, config=self.config)

    def clear_assignments(self, cookie_jar: CookieJar) -> None:
        clear_assignments(cookie_jar, config=self.config)


async def get_active_experiment(
    visitor_id: str,
    cookie_jar: CookieJar,
    request_context: RequestContext | None = None,
    *,
    repository: ExperimentRepository,
    tracker: Tracker | None = None,
    config: ExperimentsConfig | None = None,
    clock: Clock | None = None,
) -> Assignment | None:
    """One-shot evaluation without holding on to an engine."""
    engine = ExperimentEngine(repository, tracker=tracker, config=config, clock=clock)
    return await engine.get_active_experiment(visitor_id, cookie_jar, request_context)


__all__ = ["ExperimentEngine", "get_active_experiment"]
