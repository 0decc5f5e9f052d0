"""
experiment_sdk
──────────────
Stable top-level exports. Import from here, not from sub-modules directly.
Every name exported here is part of the public API and subject to semver.
"""
from experiment_sdk.tier0_core.logging import get_logger, bind_context, clear_context
from experiment_sdk.tier0_core.errors import (
    ExperimentsError,
    ValidationError,
    ConfigurationError,
    DataStoreError,
    CookieWriteError,
    TrackingError,
    report_error,
    configure_sentry,
)
from experiment_sdk.tier0_core.config import get_config, ExperimentsConfig
from experiment_sdk.tier0_core.data import get_session, get_engine, create_all
from experiment_sdk.tier0_core.metrics import counter, histogram, start_metrics_server
from experiment_sdk.tier0_core.tasks import InProcessTaskRunner

from experiment_sdk.tier1_runtime.clock import Clock
from experiment_sdk.tier1_runtime.context import RequestContext
from experiment_sdk.tier1_runtime.cookies import CookieJar, CookieOptions, MemoryCookieJar, HeaderCookieJar
from experiment_sdk.tier1_runtime.serialize import serialize, deserialize
from experiment_sdk.tier1_runtime.retry import retry_policy

from experiment_sdk.tier2_reliability.fallback import with_fallback

from experiment_sdk.tier3_platform.models import (
    Experiment,
    Variant,
    ComponentConfig,
    Assignment,
    StoredAssignment,
)
from experiment_sdk.tier3_platform.targeting import TargetAudience
from experiment_sdk.tier3_platform.visitor import get_or_create_visitor_id
from experiment_sdk.tier3_platform.bucketing import bucket_value, variant_bucket_value, select_variant
from experiment_sdk.tier3_platform.store import SqlExperimentSource, StaticExperimentSource
from experiment_sdk.tier3_platform.repository import ExperimentRepository
from experiment_sdk.tier3_platform.assignments import get_assignments, clear_assignments
from experiment_sdk.tier3_platform.experiments import ExperimentEngine, get_active_experiment
from experiment_sdk.tier3_platform.overrides import (
    ComponentResolution,
    ResolvedTheme,
    resolve_component,
    resolve_theme,
    is_feature_enabled,
)
from experiment_sdk.tier3_platform.tracking import (
    EventType,
    TrackedEvent,
    Tracker,
    HttpEventSink,
    InMemoryEventSink,
    LogEventSink,
    build_event_sink,
)
from experiment_sdk.tier3_platform.middleware import ExperimentASGIMiddleware

__version__ = "0.1.0"
__all__ = [
    # logging
    "get_logger", "bind_context", "clear_context",
    # errors
    "ExperimentsError", "ValidationError", "ConfigurationError",
    "DataStoreError", "CookieWriteError", "TrackingError",
    "report_error", "configure_sentry",
    # config
    "get_config", "ExperimentsConfig",
    # data
    "get_session", "get_engine", "create_all",
    # metrics
    "counter", "histogram", "start_metrics_server",
    # tasks
    "InProcessTaskRunner",
    # clock / context / cookies
    "Clock", "RequestContext",
    "CookieJar", "CookieOptions", "MemoryCookieJar", "HeaderCookieJar",
    # serialize
    "serialize", "deserialize",
    # retry / fallback
    "retry_policy", "with_fallback",
    # models
    "Experiment", "Variant", "ComponentConfig", "Assignment", "StoredAssignment",
    "TargetAudience",
    # visitor
    "get_or_create_visitor_id",
    # bucketing
    "bucket_value", "variant_bucket_value", "select_variant",
    # repository
    "SqlExperimentSource", "StaticExperimentSource", "ExperimentRepository",
    # engine
    "ExperimentEngine", "get_active_experiment",
    "get_assignments", "clear_assignments",
    # overrides
    "ComponentResolution", "ResolvedTheme",
    "resolve_component", "resolve_theme", "is_feature_enabled",
    # tracking
    "EventType", "TrackedEvent", "Tracker",
    "HttpEventSink", "InMemoryEventSink", "LogEventSink", "build_event_sink",
    # middleware
    "ExperimentASGIMiddleware",
]
