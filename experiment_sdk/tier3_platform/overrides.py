"""
experiment_sdk.tier3_platform.overrides
───────────────────────────────────────
Turns an assignment's declarative configuration into something a renderer
can use without branching: component lookups always return a usable
resolution, and theme overrides come back as a closed set of typed tokens.

Theme tokens (camelCase or snake_case keys):

    primaryColor, secondaryColor, accentColor,
    backgroundColor, textColor   CSS color (hex, rgb()/hsl(), or a name)
    fontFamily                   font stack
    borderRadius                 none | small | medium | large → 0/4/8/16 px
    spacing                      compact | normal | relaxed → 0.75/1.0/1.5
    fontSize                     small | medium | large → 0.875/1.0/1.125

Unknown keys and unusable values are dropped, never raised.
"""
from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any

from pydantic.alias_generators import to_camel

from experiment_sdk.tier0_core.logging import get_logger
from experiment_sdk.tier3_platform.models import Assignment

logger = get_logger(__name__)


# ── Components ────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ComponentResolution:
    """What to render for one component slot. The default renders the stock component."""
    variant: str | None = None
    props: dict[str, Any] = field(default_factory=dict)
    visible: bool = True


def resolve_component(assignment: Assignment | None, component_type: str) -> ComponentResolution:
    if assignment is None:
        return ComponentResolution()
    for component in assignment.components:
        if component.type == component_type:
            return ComponentResolution(
                variant=component.variant,
                props=dict(component.props),
                visible=component.visible,
            )
    return ComponentResolution()


def is_feature_enabled(assignment: Assignment | None, component_type: str, variant_name: str) -> bool:
    """True only when the assignment shows *component_type* in its *variant_name* form."""
    if assignment is None:
        return False
    return any(
        c.type == component_type and c.variant == variant_name and c.visible
        for c in assignment.components
    )


# ── Theme ─────────────────────────────────────────────────────────────────────

class ThemeToken(str, Enum):
    PRIMARY_COLOR = "primaryColor"
    SECONDARY_COLOR = "secondaryColor"
    ACCENT_COLOR = "accentColor"
    BACKGROUND_COLOR = "backgroundColor"
    TEXT_COLOR = "textColor"
    FONT_FAMILY = "fontFamily"
    BORDER_RADIUS = "borderRadius"
    SPACING = "spacing"
    FONT_SIZE = "fontSize"


BORDER_RADIUS_PX = {"none": 0, "small": 4, "medium": 8, "large": 16}
SPACING_SCALE = {"compact": 0.75, "normal": 1.0, "relaxed": 1.5}
FONT_SCALE = {"small": 0.875, "medium": 1.0, "large": 1.125}

_COLOR_RE = re.compile(
    r"^(#[0-9a-fA-F]{3,4}|#[0-9a-fA-F]{6}|#[0-9a-fA-F]{8}"
    r"|(rgb|rgba|hsl|hsla)\([0-9.,%\s/a-z]*\)"
    r"|[a-zA-Z]{3,30})$"
)
_FONT_RE = re.compile(r"^[\w\s,'\"-]{1,200}$")


def _color(value: Any) -> str | None:
    if isinstance(value, str) and _COLOR_RE.match(value.strip()):
        return value.strip()
    return None


def _font_family(value: Any) -> str | None:
    if isinstance(value, str) and _FONT_RE.match(value.strip()):
        return value.strip()
    return None


def _from_table(table: dict[str, Any]) -> Callable[[Any], Any]:
    def parse(value: Any) -> Any:
        if isinstance(value, str):
            return table.get(value.strip().lower())
        return None
    return parse


@dataclass(frozen=True)
class ResolvedTheme:
    primary_color: str | None = None
    secondary_color: str | None = None
    accent_color: str | None = None
    background_color: str | None = None
    text_color: str | None = None
    font_family: str | None = None
    border_radius_px: int | None = None
    spacing_scale: float | None = None
    font_scale: float | None = None

    def is_empty(self) -> bool:
        return all(getattr(self, f.name) is None for f in fields(self))

    def as_css_variables(self) -> dict[str, str]:
        """Custom properties for a ``:root`` block; unset tokens are omitted."""
        rendered = {
            "--color-primary": self.primary_color,
            "--color-secondary": self.secondary_color,
            "--color-accent": self.accent_color,
            "--color-background": self.background_color,
            "--color-text": self.text_color,
            "--font-family": self.font_family,
            "--border-radius": f"{self.border_radius_px}px" if self.border_radius_px is not None else None,
            "--spacing-scale": str(self.spacing_scale) if self.spacing_scale is not None else None,
            "--font-scale": str(self.font_scale) if self.font_scale is not None else None,
        }
        return {name: value for name, value in rendered.items() if value is not None}


# token -> (ResolvedTheme field, parser)
_TOKENS: dict[ThemeToken, tuple[str, Callable[[Any], Any]]] = {
    ThemeToken.PRIMARY_COLOR: ("primary_color", _color),
    ThemeToken.SECONDARY_COLOR: ("secondary_color", _color),
    ThemeToken.ACCENT_COLOR: ("accent_color", _color),
    ThemeToken.BACKGROUND_COLOR: ("background_color", _color),
    ThemeToken.TEXT_COLOR: ("text_color", _color),
    ThemeToken.FONT_FAMILY: ("font_family", _font_family),
    ThemeToken.BORDER_RADIUS: ("border_radius_px", _from_table(BORDER_RADIUS_PX)),
    ThemeToken.SPACING: ("spacing_scale", _from_table(SPACING_SCALE)),
    ThemeToken.FONT_SIZE: ("font_scale", _from_table(FONT_SCALE)),
}


def parse_theme_overrides(overrides: dict[str, Any] | None) -> ResolvedTheme:
    if not overrides:
        return ResolvedTheme()
    values: dict[str, Any] = {}
    for key, raw in overrides.items():
        try:
            token = ThemeToken(to_camel(key))
        except ValueError:
            logger.debug("theme.unknown_token", token=key)
            continue
        attr, parse = _TOKENS[token]
        parsed = parse(raw)
        if parsed is None:
            logger.debug("theme.invalid_value", token=token.value)
            continue
        values[attr] = parsed
    return ResolvedTheme(**values)


def resolve_theme(assignment: Assignment | None) -> ResolvedTheme:
    if assignment is None:
        return ResolvedTheme()
    return parse_theme_overrides(assignment.theme_overrides)


__all__ = [
    "ComponentResolution",
    "resolve_component",
    "is_feature_enabled",
    "ThemeToken",
    "ResolvedTheme",
    "parse_theme_overrides",
    "resolve_theme",
    "BORDER_RADIUS_PX",
    "SPACING_SCALE",
    "FONT_SCALE",
]
