"""
experiment_sdk.tier3_platform.store
───────────────────────────────────
Where experiment definitions come from. The repository only needs one
query: active experiments, in a stable order, each with its ordered
variants. Sources return plain row mappings; parsing and targeting happen
in the repository so every source behaves the same.

Backed by: SQLAlchemy (SqlExperimentSource) or in-memory rows
(StaticExperimentSource, for tests and local development).
"""
from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping, Sequence
from contextlib import AbstractAsyncContextManager
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from sqlalchemy import JSON, Boolean, DateTime, Float, ForeignKey, Integer, String, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Mapped, mapped_column, relationship, selectinload

from experiment_sdk.tier0_core.config import ExperimentsConfig, get_config
from experiment_sdk.tier0_core.data import Base, get_session
from experiment_sdk.tier0_core.errors import DataStoreError
from experiment_sdk.tier1_runtime.clock import SYSTEM_CLOCK, Clock

ACTIVE_STATUS = "active"


# ── ORM records ───────────────────────────────────────────────────────────────

class ExperimentRecord(Base):
    __tablename__ = "landing_experiments"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(200))
    status: Mapped[str] = mapped_column(String(20), default="draft", index=True)
    traffic_percentage: Mapped[int] = mapped_column(Integer, default=100)
    target_audience: Mapped[dict[str, Any] | None] = mapped_column(JSON, default=dict)
    priority: Mapped[int] = mapped_column(Integer, default=0)
    starts_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    ends_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))

    variants: Mapped[list["VariantRecord"]] = relationship(
        back_populates="experiment",
        order_by="VariantRecord.position",
        cascade="all, delete-orphan",
    )


class VariantRecord(Base):
    __tablename__ = "landing_variants"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    experiment_id: Mapped[str] = mapped_column(ForeignKey("landing_experiments.id"), index=True)
    name: Mapped[str] = mapped_column(String(200))
    position: Mapped[int] = mapped_column(Integer, default=0)
    is_control: Mapped[bool] = mapped_column(Boolean, default=False)
    traffic_percentage: Mapped[float] = mapped_column(Float, default=0)
    components: Mapped[list[dict[str, Any]] | None] = mapped_column(JSON, default=list)
    theme_overrides: Mapped[dict[str, Any] | None] = mapped_column(JSON, default=dict)

    experiment: Mapped[ExperimentRecord] = relationship(back_populates="variants")


def _record_to_row(record: ExperimentRecord) -> dict[str, Any]:
    return {
        "id": str(record.id),
        "name": record.name,
        "traffic_percentage": record.traffic_percentage,
        "target_audience": record.target_audience,
        "priority": record.priority,
        "created_at": record.created_at,
        "starts_at": record.starts_at,
        "ends_at": record.ends_at,
        "variants": [
            {
                "id": str(v.id),
                "name": v.name,
                "is_control": v.is_control,
                "traffic_percentage": v.traffic_percentage,
                "components": v.components,
                "theme_overrides": v.theme_overrides,
            }
            for v in record.variants
        ],
    }


# ── Protocol ───────────────────────────────────────────────────────────────

@runtime_checkable
class ExperimentSource(Protocol):
    """Read-only access to active experiment rows, already in stable order."""

    async def fetch_active_rows(self) -> list[Mapping[str, Any]]: ...


# ── SQL source ─────────────────────────────────────────────────────────────

SessionFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]


class SqlExperimentSource:
    """
    Active experiments from the relational store, ordered newest-first by
    priority then creation time, id as the final tie-breaker.

    Usage::

        source = SqlExperimentSource()                       # uses data.get_session
        source = SqlExperimentSource(session_factory=async_sessionmaker(engine))
    """

    def __init__(
        self,
        session_factory: SessionFactory | None = None,
        *,
        clock: Clock | None = None,
        config: ExperimentsConfig | None = None,
    ) -> None:
        self._session_factory = session_factory or get_session
        self._clock = clock or SYSTEM_CLOCK
        self._timeout = (config or get_config()).query_timeout

    async def fetch_active_rows(self) -> list[Mapping[str, Any]]:
        now = self._clock.now()
        stmt = (
            select(ExperimentRecord)
            .where(ExperimentRecord.status == ACTIVE_STATUS)
            .where(or_(ExperimentRecord.starts_at.is_(None), ExperimentRecord.starts_at <= now))
            .where(or_(ExperimentRecord.ends_at.is_(None), ExperimentRecord.ends_at >= now))
            .options(selectinload(ExperimentRecord.variants))
            .order_by(
                ExperimentRecord.priority.desc(),
                ExperimentRecord.created_at.desc(),
                ExperimentRecord.id.asc(),
            )
        )
        try:
            async with asyncio.timeout(self._timeout):
                async with self._session_factory() as session:
                    records = (await session.execute(stmt)).scalars().all()
                    return [_record_to_row(r) for r in records]
        except TimeoutError as exc:
            raise DataStoreError(
                user_message="Experiment store timed out.",
                detail=f"active experiment query exceeded {self._timeout}s",
            ) from exc
        except Exception as exc:
            raise DataStoreError(
                user_message="Experiment store unavailable.",
                detail=f"active experiment query failed: {exc}",
            ) from exc


# ── In-memory source ───────────────────────────────────────────────────────

class StaticExperimentSource:
    """
    Serves a fixed list of rows, filtered and ordered the way the SQL source
    orders them. ``fail_with`` makes every fetch raise, for failure-path tests.
    """

    def __init__(
        self,
        rows: Sequence[Mapping[str, Any]] = (),
        *,
        fail_with: Exception | None = None,
    ) -> None:
        self.rows = list(rows)
        self.fail_with = fail_with
        self.calls = 0

    async def fetch_active_rows(self) -> list[Mapping[str, Any]]:
        self.calls += 1
        if self.fail_with is not None:
            raise self.fail_with
        active = [r for r in self.rows if r.get("status", ACTIVE_STATUS) == ACTIVE_STATUS]
        # Python's sort is stable: apply the keys from least to most significant
        active.sort(key=lambda r: str(r.get("id", "")))
        active.sort(key=lambda r: _sortable_time(r.get("created_at")), reverse=True)
        active.sort(key=lambda r: r.get("priority") or 0, reverse=True)
        return active


def _sortable_time(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


__all__ = [
    "ExperimentRecord",
    "VariantRecord",
    "ExperimentSource",
    "SqlExperimentSource",
    "StaticExperimentSource",
    "ACTIVE_STATUS",
]
