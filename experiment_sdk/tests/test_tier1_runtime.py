"""Tests for tier1_runtime modules."""
from __future__ import annotations

from datetime import datetime, timezone

import pytest
from pydantic import BaseModel

from experiment_sdk.tier0_core.errors import ConfigurationError, CookieWriteError, ValidationError
from experiment_sdk.tier1_runtime.clock import Clock, utcnow
from experiment_sdk.tier1_runtime.context import RequestContext, detect_device, primary_language
from experiment_sdk.tier1_runtime.cookies import CookieOptions, HeaderCookieJar, MemoryCookieJar
from experiment_sdk.tier1_runtime.retry import retry_policy
from experiment_sdk.tier1_runtime.serialize import (
    deserialize,
    from_cookie_value,
    serialize,
    to_cookie_value,
)


# ── clock ──────────────────────────────────────────────────────────────────

class TestClock:
    def test_now_returns_utc_datetime(self):
        assert utcnow().tzinfo is not None

    def test_frozen_clock(self):
        fixed = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
        assert Clock.frozen(fixed).now() == fixed

    def test_naive_time_is_treated_as_utc(self):
        clock = Clock(now_fn=lambda: datetime(2025, 1, 1))
        assert clock.now().tzinfo == timezone.utc

    def test_shifted(self):
        fixed = datetime(2025, 1, 1, tzinfo=timezone.utc)
        assert Clock.frozen(fixed).shifted(days=1).now() == datetime(2025, 1, 2, tzinfo=timezone.utc)


# ── context ────────────────────────────────────────────────────────────────

class TestContext:
    def test_defaults(self):
        ctx = RequestContext()
        assert ctx.request_id
        assert ctx.country is None

    def test_from_headers(self):
        ctx = RequestContext.from_headers(
            "/pricing",
            {
                "CF-IPCountry": "mx",
                "User-Agent": "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) Mobile",
                "Accept-Language": "es-MX,es;q=0.9,en;q=0.8",
                "Referer": "https://www.google.com/search?q=x",
                "X-Request-ID": "req-42",
            },
            query_string="utm_source=newsletter&utm_medium=email",
        )
        assert ctx.path == "/pricing"
        assert ctx.country == "MX"
        assert ctx.device == "mobile"
        assert ctx.language == "es-mx"
        assert ctx.referrer.startswith("https://www.google.com")
        assert ctx.utm_source == "newsletter"
        assert ctx.request_id == "req-42"

    def test_as_event_data_omits_empty(self):
        ctx = RequestContext(path="/", device="desktop")
        assert ctx.as_event_data() == {"path": "/", "device": "desktop"}

    @pytest.mark.parametrize(
        "ua, expected",
        [
            ("Mozilla/5.0 (iPad; CPU OS 16_0 like Mac OS X)", "tablet"),
            ("Mozilla/5.0 (Linux; Android 13; SM-X700)", "tablet"),
            ("Mozilla/5.0 (Linux; Android 13; Pixel 7) Mobile Safari", "mobile"),
            ("Mozilla/5.0 (Windows NT 10.0; Win64; x64)", "desktop"),
            (None, None),
        ],
    )
    def test_detect_device(self, ua, expected):
        assert detect_device(ua) == expected

    def test_primary_language(self):
        assert primary_language("en-US,en;q=0.9") == "en-us"
        assert primary_language("*") is None
        assert primary_language(None) is None


# ── cookies ────────────────────────────────────────────────────────────────

class TestMemoryCookieJar:
    def test_set_get_delete(self):
        jar = MemoryCookieJar({"a": "1"})
        assert jar.get("a") == "1"
        jar.set("b", "2", CookieOptions(max_age=60))
        assert jar.get("b") == "2"
        assert jar.options["b"].max_age == 60
        jar.delete("a")
        assert jar.get("a") is None

    def test_sealed_jar_refuses_writes(self):
        jar = MemoryCookieJar()
        jar.seal()
        with pytest.raises(CookieWriteError):
            jar.set("a", "1")
        with pytest.raises(CookieWriteError):
            jar.delete("a")


class TestHeaderCookieJar:
    def test_parses_cookie_header(self):
        jar = HeaderCookieJar("visitor_id=abc123; theme=dark")
        assert jar.get("visitor_id") == "abc123"
        assert jar.get("theme") == "dark"
        assert jar.get("missing") is None

    def test_set_emits_set_cookie_header(self):
        jar = HeaderCookieJar()
        jar.set("visitor_id", "tok", CookieOptions(max_age=100, secure=True, samesite="lax"))
        (header,) = jar.set_cookie_headers()
        assert header.startswith("visitor_id=tok")
        assert "Max-Age=100" in header
        assert "Path=/" in header
        assert "Secure" in header
        assert "SameSite=Lax" in header
        assert "HttpOnly" not in header
        # visible to later reads in the same request
        assert jar.get("visitor_id") == "tok"

    def test_delete_expires_cookie(self):
        jar = HeaderCookieJar("experiment_assignments=x")
        jar.delete("experiment_assignments")
        (header,) = jar.set_cookie_headers()
        assert "Max-Age=0" in header
        assert jar.get("experiment_assignments") is None

    def test_sealed_jar_refuses_writes(self):
        jar = HeaderCookieJar()
        jar.seal()
        assert jar.sealed
        with pytest.raises(CookieWriteError):
            jar.set("a", "1")

    def test_garbage_header_is_tolerated(self):
        jar = HeaderCookieJar("\x00\x01;;;===")
        assert jar.get("anything") is None

    def test_malformed_cookie_does_not_hide_others(self):
        jar = HeaderCookieJar("visitor_id=AbCdEfGhIjKlMnOpQrStUv; note=hello world; experiment_assignments=%7B%7D")
        assert jar.get("visitor_id") == "AbCdEfGhIjKlMnOpQrStUv"
        assert jar.get("note") == "hello world"
        assert jar.get("experiment_assignments") == "%7B%7D"


# ── serialize ──────────────────────────────────────────────────────────────

class _Entry(BaseModel):
    experiment_id: str
    count: int


class TestSerialize:
    def test_model_round_trip(self):
        data = serialize(_Entry(experiment_id="exp-1", count=2))
        assert deserialize(data, _Entry) == _Entry(experiment_id="exp-1", count=2)

    def test_cookie_value_is_url_encoded(self):
        value = to_cookie_value({"exp-1": _Entry(experiment_id="exp-1", count=1)}, dict[str, _Entry])
        assert "{" not in value and '"' not in value and " " not in value
        assert from_cookie_value(value, dict[str, _Entry])["exp-1"].count == 1

    def test_corrupt_json_raises_validation_error(self):
        with pytest.raises(ValidationError) as info:
            deserialize("{not json", _Entry)
        assert info.value.code == "malformed_payload"

    def test_wrong_shape_reports_fields(self):
        with pytest.raises(ValidationError) as info:
            deserialize('{"experiment_id": "x", "count": "many"}', _Entry)
        assert "count" in info.value.fields


# ── retry ──────────────────────────────────────────────────────────────────

class TestRetry:
    @pytest.mark.asyncio
    async def test_retries_until_success(self):
        calls = []

        @retry_policy(max_attempts=3, min_wait=0, max_wait=0, jitter=0)
        async def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise ConnectionError("reset")
            return "ok"

        assert await flaky() == "ok"
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_gives_up_and_reraises(self):
        calls = []

        @retry_policy(max_attempts=2, min_wait=0, max_wait=0, jitter=0)
        async def down():
            calls.append(1)
            raise ConnectionError("refused")

        with pytest.raises(ConnectionError):
            await down()
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_configuration_errors_are_not_retried(self):
        calls = []

        @retry_policy(max_attempts=5, min_wait=0, max_wait=0, jitter=0)
        async def misconfigured():
            calls.append(1)
            raise ConfigurationError(detail="no endpoint")

        with pytest.raises(ConfigurationError):
            await misconfigured()
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_only_listed_exceptions_are_retried(self):
        calls = []

        @retry_policy(max_attempts=3, min_wait=0, max_wait=0, jitter=0, on=[TimeoutError])
        async def bad():
            calls.append(1)
            raise KeyError("x")

        with pytest.raises(KeyError):
            await bad()
        assert len(calls) == 1
