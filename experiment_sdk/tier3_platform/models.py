"""
experiment_sdk.tier3_platform.models
────────────────────────────────────
Experiment definitions as the engine reads them, and the assignment
records it produces.

Definitions arrive as loosely-typed rows (snake_case column names, JSON
blobs); assignments travel through cookies in camelCase. Every model
accepts both spellings and ignores keys it does not know.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator
from pydantic.alias_generators import to_camel

from experiment_sdk.tier3_platform.targeting import TargetAudience


class _Model(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )


# ── Definitions (read-only for the engine) ────────────────────────────────────

class ComponentConfig(_Model):
    """One UI component slot a variant controls."""
    type: str
    variant: str | None = None
    visible: bool = True
    order: int | None = None
    props: dict[str, Any] = Field(default_factory=dict)


class Variant(_Model):
    id: str
    name: str
    traffic_percentage: float = Field(default=0, ge=0)  # relative weight among siblings
    is_control: bool = False
    components: list[ComponentConfig] = Field(default_factory=list)
    theme_overrides: dict[str, Any] = Field(default_factory=dict)

    @field_validator("components", "theme_overrides", mode="before")
    @classmethod
    def _null_blob(cls, value: Any, info: ValidationInfo) -> Any:
        return _empty_if_null(value, info)


class Experiment(_Model):
    id: str
    name: str | None = None
    traffic_percentage: float = Field(default=100, ge=0, le=100)
    target_audience: TargetAudience = Field(default_factory=TargetAudience)
    variants: list[Variant] = Field(default_factory=list)
    priority: int = 0
    created_at: datetime | None = None
    starts_at: datetime | None = None
    ends_at: datetime | None = None

    @field_validator("target_audience", "variants", mode="before")
    @classmethod
    def _null_blob(cls, value: Any, info: ValidationInfo) -> Any:
        return _empty_if_null(value, info)

    def variant_by_id(self, variant_id: str) -> Variant | None:
        return next((v for v in self.variants if v.id == variant_id), None)

    def is_running(self, at: datetime) -> bool:
        """True when *at* falls inside the optional schedule window."""
        if self.starts_at is not None and _aware(self.starts_at) > at:
            return False
        if self.ends_at is not None and _aware(self.ends_at) < at:
            return False
        return True


_EMPTY_BLOBS: dict[str, type] = {
    "components": list,
    "variants": list,
    "theme_overrides": dict,
    "target_audience": dict,
}


def _empty_if_null(value: Any, info: ValidationInfo) -> Any:
    # JSON columns may hold null where the authoring tool left a blob empty
    if value is None:
        return _EMPTY_BLOBS[info.field_name]()
    return value


def _aware(value: datetime) -> datetime:
    # Stores without tz support hand back naive datetimes; they hold UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# ── Assignments ───────────────────────────────────────────────────────────────

class StoredAssignment(_Model):
    """The per-experiment record kept in the assignment cookie."""
    experiment_id: str
    variant_id: str
    variant_name: str | None = None
    assigned_at: datetime


class Assignment(_Model):
    """
    A visitor's active experiment: the stored decision enriched with the
    chosen variant's component and theme configuration.
    """
    experiment_id: str
    variant_id: str
    variant_name: str
    assigned_at: datetime
    components: list[ComponentConfig] = Field(default_factory=list)
    theme_overrides: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_variant(cls, experiment: Experiment, variant: Variant, assigned_at: datetime) -> "Assignment":
        return cls(
            experiment_id=experiment.id,
            variant_id=variant.id,
            variant_name=variant.name,
            assigned_at=assigned_at,
            components=variant.components,
            theme_overrides=variant.theme_overrides,
        )

    def to_stored(self) -> StoredAssignment:
        return StoredAssignment(
            experiment_id=self.experiment_id,
            variant_id=self.variant_id,
            variant_name=self.variant_name,
            assigned_at=self.assigned_at,
        )


__all__ = [
    "ComponentConfig",
    "Variant",
    "Experiment",
    "StoredAssignment",
    "Assignment",
]
