"""
experiment_sdk.tier1_runtime.context
────────────────────────────────────
Per-request facts the targeting predicates are evaluated against.

The context is always passed explicitly to the engine; nothing here is
read from ambient globals, so concurrent requests cannot bleed into each
other's bucketing decisions.
"""
from __future__ import annotations

import re
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import parse_qs

# Headers set by common CDNs / edge proxies carrying the visitor's country
_COUNTRY_HEADERS = ("cf-ipcountry", "x-vercel-ip-country", "cloudfront-viewer-country", "x-country-code")

_TABLET_RE = re.compile(r"ipad|tablet|kindle|silk|playbook|(android(?!.*mobile))", re.IGNORECASE)
_MOBILE_RE = re.compile(r"mobi|iphone|ipod|android|blackberry|opera mini|iemobile|windows phone", re.IGNORECASE)


@dataclass(frozen=True)
class RequestContext:
    """What the engine knows about the current request."""
    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    path: str | None = None
    country: str | None = None
    device: str | None = None
    language: str | None = None
    referrer: str | None = None
    utm_source: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def as_event_data(self) -> dict[str, Any]:
        """The non-empty fields, shaped for an analytics payload."""
        data = {
            "path": self.path,
            "country": self.country,
            "device": self.device,
            "language": self.language,
            "referrer": self.referrer,
            "utmSource": self.utm_source,
        }
        return {k: v for k, v in data.items() if v}

    @classmethod
    def from_headers(
        cls,
        path: str | None,
        headers: Mapping[str, str],
        query_string: str = "",
        request_id: str | None = None,
    ) -> "RequestContext":
        """
        Derive a context from raw request data. Header names are matched
        case-insensitively.
        """
        lowered = {k.lower(): v for k, v in headers.items()}
        query = parse_qs(query_string or "")
        utm = query.get("utm_source", [None])[0]

        country = next((lowered[h] for h in _COUNTRY_HEADERS if lowered.get(h)), None)

        kwargs: dict[str, Any] = {
            "path": path,
            "country": country.upper() if country else None,
            "device": detect_device(lowered.get("user-agent")),
            "language": primary_language(lowered.get("accept-language")),
            "referrer": lowered.get("referer") or lowered.get("referrer"),
            "utm_source": utm,
        }
        request_id = request_id or lowered.get("x-request-id")
        if request_id:
            kwargs["request_id"] = request_id
        return cls(**kwargs)


def detect_device(user_agent: str | None) -> str | None:
    """Classify a User-Agent as mobile, tablet or desktop."""
    if not user_agent:
        return None
    if _TABLET_RE.search(user_agent):
        return "tablet"
    if _MOBILE_RE.search(user_agent):
        return "mobile"
    return "desktop"


def primary_language(accept_language: str | None) -> str | None:
    """First language tag of an Accept-Language header, lowercased ("es-mx")."""
    if not accept_language:
        return None
    first = accept_language.split(",")[0].split(";")[0].strip()
    if not first or first == "*":
        return None
    return first.lower()


__all__ = ["RequestContext", "detect_device", "primary_language"]
