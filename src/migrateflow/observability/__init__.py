"""
Observability utilities for migrateflow.

Tracing is composition-based: each component takes an optional Tracer and
an ``enable_tracing`` flag, and span attribute keys live in
:mod:`migrateflow.observability.attributes`.
"""

from migrateflow.observability.attributes import (
    ATTR_ERROR_TYPE,
    ATTR_HTTP_METHOD,
    ATTR_HTTP_ROUTE,
    ATTR_HTTP_STATUS_CODE,
    ATTR_IS_SHARDED,
    ATTR_MIGRATION_MODE,
    ATTR_MIGRATION_TYPE,
    ATTR_NEXT_PHASE,
    ATTR_PHASE,
    ATTR_POLL_COUNT,
    ATTR_POLL_INTERVAL,
    ATTR_PROGRESS,
    ATTR_RESOURCE_COUNT,
    ATTR_SHARD_COUNT,
    ATTR_SIGNAL,
    ATTR_STORE,
)
from migrateflow.observability.tracer import (
    MockTracer,
    NullTracer,
    OpenTelemetryTracer,
    SpanKindEnum,
    Tracer,
    create_tracer,
)

__all__ = [
    # Tracer
    "Tracer",
    "NullTracer",
    "OpenTelemetryTracer",
    "MockTracer",
    "SpanKindEnum",
    "create_tracer",
    # Attributes
    "ATTR_ERROR_TYPE",
    "ATTR_HTTP_METHOD",
    "ATTR_HTTP_ROUTE",
    "ATTR_HTTP_STATUS_CODE",
    "ATTR_IS_SHARDED",
    "ATTR_MIGRATION_MODE",
    "ATTR_MIGRATION_TYPE",
    "ATTR_NEXT_PHASE",
    "ATTR_PHASE",
    "ATTR_POLL_COUNT",
    "ATTR_POLL_INTERVAL",
    "ATTR_PROGRESS",
    "ATTR_RESOURCE_COUNT",
    "ATTR_SHARD_COUNT",
    "ATTR_SIGNAL",
    "ATTR_STORE",
]
