"""
experiment_sdk.tier3_platform.targeting
───────────────────────────────────────
Audience predicates an experiment can carry. Each predicate is a list of
accepted values; a predicate only excludes a visitor when the experiment
sets it AND the request supplies the matching fact. An empty audience
matches everyone, and unknown keys in the stored blob are ignored.
"""
from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator

from experiment_sdk.tier1_runtime.context import RequestContext


class TargetAudience(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True, frozen=True)

    geo: list[str] | None = None
    device: list[str] | None = None
    language: list[str] | None = None
    referrer: list[str] | None = None
    utm_source: list[str] | None = Field(default=None, alias="utmSource")
    paths: list[str] | None = None

    @field_validator("geo", "device", "language", "referrer", "utm_source", "paths", mode="before")
    @classmethod
    def _listify(cls, value: object) -> object:
        if isinstance(value, str):
            return [value]
        return value

    def is_empty(self) -> bool:
        return not any(
            (self.geo, self.device, self.language, self.referrer, self.utm_source, self.paths)
        )

    def matches(self, ctx: RequestContext) -> bool:
        if self.is_empty():
            return True

        if self.geo and ctx.country:
            if ctx.country.upper() not in {g.upper() for g in self.geo}:
                return False

        if self.device and ctx.device:
            if ctx.device.lower() not in {d.lower() for d in self.device}:
                return False

        if self.language and ctx.language:
            if not _language_matches(ctx.language, self.language):
                return False

        if self.referrer and ctx.referrer:
            if not any(ref in ctx.referrer for ref in self.referrer):
                return False

        if self.utm_source and ctx.utm_source:
            if ctx.utm_source not in self.utm_source:
                return False

        if self.paths and ctx.path:
            if not any(ctx.path.startswith(prefix) for prefix in self.paths):
                return False

        return True


def _language_matches(language: str, accepted: list[str]) -> bool:
    # "es-MX" satisfies an audience of "es"; "es" does not satisfy "es-MX"
    tag = language.lower()
    primary = tag.split("-")[0]
    for candidate in accepted:
        wanted = candidate.lower()
        if wanted == tag or wanted == primary:
            return True
    return False


__all__ = ["TargetAudience"]
