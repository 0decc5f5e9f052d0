"""
experiment_sdk test configuration.

All tests run against in-memory sources, memory cookie jars and mock HTTP
transports; no external services are required. Override by setting
environment variables before running pytest.
"""
from __future__ import annotations

import os
from datetime import datetime, timezone

import pytest

# ── Safe defaults for all tests ────────────────────────────────────────────
# These must be set before any experiment_sdk modules are imported.

os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("APP_NAME", "test-service")
os.environ.setdefault("EXPERIMENTS_ERROR_BACKEND", "none")
os.environ.setdefault("EXPERIMENTS_LOG_LEVEL", "WARNING")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test.db")
os.environ.pop("EXPERIMENTS_TRACKING_ENDPOINT", None)
os.environ.pop("EXPERIMENTS_COOKIE_SECRET", None)

FIXED_NOW = datetime(2025, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


# ── Fixtures ───────────────────────────────────────────────────────────────

@pytest.fixture(autouse=True)
def reset_config_cache():
    """Every test sees config rebuilt from the current environment."""
    from experiment_sdk.tier0_core.config import _reset_config

    _reset_config()
    yield
    _reset_config()


@pytest.fixture
def config():
    from experiment_sdk.tier0_core.config import ExperimentsConfig

    return ExperimentsConfig(environment="test")


@pytest.fixture
def clock():
    from experiment_sdk.tier1_runtime.clock import Clock

    return Clock.frozen(FIXED_NOW)


@pytest.fixture
def jar():
    from experiment_sdk.tier1_runtime.cookies import MemoryCookieJar

    return MemoryCookieJar()


def make_row(
    experiment_id: str = "exp-1",
    *,
    traffic: float = 100,
    weights: tuple[float, ...] = (60, 40),
    names: tuple[str, ...] | None = None,
    **extra,
) -> dict:
    """An experiment row shaped like the store returns it (snake_case, JSON blobs)."""
    names = names or tuple(chr(ord("A") + i) for i in range(len(weights)))
    row = {
        "id": experiment_id,
        "name": f"Experiment {experiment_id}",
        "status": "active",
        "traffic_percentage": traffic,
        "target_audience": {},
        "priority": 0,
        "created_at": FIXED_NOW,
        "variants": [
            {
                "id": name,
                "name": name,
                "traffic_percentage": weight,
                "is_control": i == 0,
                "components": [{"type": "hero", "variant": f"hero-{name.lower()}"}],
                "theme_overrides": {"primaryColor": "#336699"},
            }
            for i, (name, weight) in enumerate(zip(names, weights))
        ],
    }
    row.update(extra)
    return row


@pytest.fixture
def row_factory():
    return make_row
