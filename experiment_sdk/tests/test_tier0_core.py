"""Tests for tier0_core modules."""
from __future__ import annotations

import asyncio

import pytest
from pydantic import SecretStr
from pydantic import ValidationError as PydanticValidationError

from experiment_sdk.tier0_core.config import ExperimentsConfig, get_config
from experiment_sdk.tier0_core.errors import (
    CookieWriteError,
    DataStoreError,
    ExperimentsError,
    TrackingError,
    ValidationError,
    report_error,
)
from experiment_sdk.tier0_core.ids import is_well_formed_token, new_event_id, new_visitor_id
from experiment_sdk.tier0_core.tasks import InProcessTaskRunner


# ── config ─────────────────────────────────────────────────────────────────

class TestConfig:
    def test_defaults(self):
        cfg = ExperimentsConfig()
        assert cfg.visitor_cookie_name == "visitor_id"
        assert cfg.assignment_cookie_name == "experiment_assignments"
        assert cfg.visitor_cookie_max_age == 2 * 365 * 24 * 60 * 60
        assert cfg.assignment_cookie_max_age == 90 * 24 * 60 * 60
        assert cfg.signing_key is None

    def test_environment_read_from_env(self):
        assert get_config().environment == "test"

    def test_env_var_overrides(self, monkeypatch):
        monkeypatch.setenv("EXPERIMENTS_VISITOR_COOKIE", "vid")
        monkeypatch.setenv("EXPERIMENTS_QUERY_TIMEOUT", "0.5")
        cfg = ExperimentsConfig()
        assert cfg.visitor_cookie_name == "vid"
        assert cfg.query_timeout == 0.5

    def test_secure_cookies_default_on_in_production(self):
        assert ExperimentsConfig(environment="production").cookie_secure is True
        assert ExperimentsConfig(environment="development").cookie_secure is False

    def test_explicit_cookie_secure_wins(self):
        assert ExperimentsConfig(environment="production", cookie_secure=False).cookie_secure is False

    def test_invalid_environment_rejected(self):
        with pytest.raises(PydanticValidationError):
            ExperimentsConfig(environment="moon")

    def test_signing_key_from_secret(self):
        cfg = ExperimentsConfig(cookie_secret=SecretStr("s3cret"))
        assert cfg.signing_key == "s3cret"
        assert "s3cret" not in repr(cfg)

    def test_get_config_is_cached(self):
        assert get_config() is get_config()


# ── errors ─────────────────────────────────────────────────────────────────

class TestErrors:
    def test_base_error_to_dict(self):
        err = ExperimentsError(user_message="Nope.", detail="internal detail")
        assert err.to_dict() == {"error": {"code": "internal_error", "message": "Nope."}}
        assert str(err) == "internal detail"

    def test_subclass_codes_and_status(self):
        assert DataStoreError().code == "data_store_unavailable"
        assert DataStoreError.status_code == 503
        assert TrackingError().status_code == 502
        assert CookieWriteError().code == "cookie_write_failed"

    def test_validation_error_fields(self):
        err = ValidationError(fields={"variants.0.id": "Field required"})
        assert err.status_code == 422
        assert err.to_dict()["error"]["fields"] == {"variants.0.id": "Field required"}

    def test_metadata_kept(self):
        err = CookieWriteError(cookie="visitor_id")
        assert err.metadata == {"cookie": "visitor_id"}

    def test_report_error_never_raises(self):
        report_error(RuntimeError("db down"), operation="fetch_active_experiments")


# ── ids ────────────────────────────────────────────────────────────────────

class TestIds:
    def test_visitor_ids_are_unique_and_well_formed(self):
        ids = {new_visitor_id() for _ in range(1000)}
        assert len(ids) == 1000
        assert all(is_well_formed_token(i) for i in ids)

    def test_visitor_id_has_128_bits(self):
        # 16 bytes of url-safe base64 without padding
        assert len(new_visitor_id()) == 22

    def test_uuid_strings_are_well_formed(self):
        assert is_well_formed_token(new_event_id())

    @pytest.mark.parametrize("value", [None, "", "short", "has space in it!!", "x" * 65, "a.b.c.d.e.f.g.h.i"])
    def test_rejects_malformed(self, value):
        assert not is_well_formed_token(value)


# ── tasks ──────────────────────────────────────────────────────────────────

class TestTasks:
    @pytest.mark.asyncio
    async def test_spawn_runs_in_background(self):
        runner = InProcessTaskRunner()
        done = []

        async def work():
            done.append(True)

        task = runner.spawn("work", work())
        assert task is not None
        await runner.drain()
        assert done == [True]
        assert runner.pending == 0

    @pytest.mark.asyncio
    async def test_failure_stays_inside_the_task(self):
        runner = InProcessTaskRunner()

        async def boom():
            raise RuntimeError("sink down")

        runner.spawn("boom", boom())
        await runner.drain()
        assert runner.pending == 0

    @pytest.mark.asyncio
    async def test_drain_timeout_cancels_stragglers(self):
        runner = InProcessTaskRunner()

        async def slow():
            await asyncio.sleep(10)

        task = runner.spawn("slow", slow())
        await runner.drain(timeout=0.01)
        assert task.cancelled()

    @pytest.mark.asyncio
    async def test_cancel_does_not_reach_caller(self):
        runner = InProcessTaskRunner()

        async def slow():
            await asyncio.sleep(10)

        runner.spawn("slow", slow())
        runner.cancel_all()
        await runner.drain()
        assert runner.pending == 0

    def test_spawn_without_loop_drops_work(self):
        runner = InProcessTaskRunner()
        ran = []

        async def work():
            ran.append(True)

        assert runner.spawn("work", work()) is None
        assert ran == []


# ── data ───────────────────────────────────────────────────────────────────

class TestData:
    @pytest.mark.asyncio
    async def test_engine_session_lifecycle(self, tmp_path):
        from sqlalchemy import select, text

        from experiment_sdk.tier0_core import data
        from experiment_sdk.tier3_platform.store import ExperimentRecord

        data._reset()
        try:
            data.get_engine(f"sqlite+aiosqlite:///{tmp_path / 'lifecycle.db'}")
            await data.create_all()
            async with data.get_session() as session:
                assert (await session.execute(text("select 1"))).scalar() == 1
                assert (await session.execute(select(ExperimentRecord))).scalars().all() == []
        finally:
            await data.dispose_engine()
        assert data._engine is None

    @pytest.mark.asyncio
    async def test_session_rolls_back_on_error(self, tmp_path):
        from datetime import datetime, timezone

        from sqlalchemy import select

        from experiment_sdk.tier0_core import data
        from experiment_sdk.tier3_platform.store import ExperimentRecord

        data._reset()
        try:
            data.get_engine(f"sqlite+aiosqlite:///{tmp_path / 'rollback.db'}")
            await data.create_all()
            with pytest.raises(RuntimeError):
                async with data.get_session() as session:
                    session.add(ExperimentRecord(id="exp-1", name="x", created_at=datetime.now(timezone.utc)))
                    await session.flush()
                    raise RuntimeError("abort")
            async with data.get_session() as session:
                assert (await session.execute(select(ExperimentRecord))).scalars().all() == []
        finally:
            await data.dispose_engine()


# ── metrics / logging ──────────────────────────────────────────────────────

class TestMetrics:
    def test_counter_applies_standard_labels(self):
        from prometheus_client import REGISTRY

        from experiment_sdk.tier0_core.metrics import _DEFAULT_LABEL_VALUES, counter

        hits = counter("experiment_test_hits_total", "Test counter", ["kind"])
        hits(kind="a").inc()
        hits(kind="a").inc()
        service, env = _DEFAULT_LABEL_VALUES
        assert REGISTRY.get_sample_value(
            "experiment_test_hits_total", {"service": service, "env": env, "kind": "a"}
        ) == 2.0

    def test_histogram_observes(self):
        from experiment_sdk.tier0_core.metrics import fetch_seconds

        fetch_seconds().observe(0.01)


class TestLogging:
    def test_logger_and_context_helpers(self):
        from experiment_sdk.tier0_core.logging import bind_context, clear_context, get_logger

        log = get_logger("experiment_sdk.test")
        bind_context(request_id="req-1", visitor_id="visitor-1")
        log.warning("test.event", cookie_secret="hunter2")
        clear_context()

    def test_redaction_processor(self):
        from experiment_sdk.tier0_core.logging import _redact_processor

        out = _redact_processor(None, "info", {"event": "x", "cookie_secret": "s", "Token": "t", "path": "/"})
        assert out == {"event": "x", "cookie_secret": "[REDACTED]", "Token": "[REDACTED]", "path": "/"}
