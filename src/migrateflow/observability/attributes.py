"""
Standard span attributes for migrateflow.

Attribute keys used across components so spans can be filtered
consistently. HTTP keys follow OpenTelemetry semantic conventions.

Example:
    >>> from migrateflow.observability.attributes import ATTR_PHASE, ATTR_SIGNAL
    >>>
    >>> with tracer.span(
    ...     "migrateflow.controller.apply",
    ...     {ATTR_PHASE: state.current_phase.value, ATTR_SIGNAL: status.progress_status.name},
    ... ):
    ...     pass
"""

# =============================================================================
# Migration Attributes
# =============================================================================

ATTR_MIGRATION_MODE = "migrateflow.migration.mode"
"""Requested migration mode (schema-only, data-only, schema-and-data)."""

ATTR_MIGRATION_TYPE = "migrateflow.migration.type"
"""Requested migration type (bulk, low-downtime)."""

ATTR_IS_SHARDED = "migrateflow.migration.sharded"
"""Whether the migration fans out to multiple shards (bool)."""

ATTR_SHARD_COUNT = "migrateflow.shard.count"
"""Number of shard connections in a request (integer)."""

# =============================================================================
# Phase Attributes
# =============================================================================

ATTR_PHASE = "migrateflow.phase"
"""Phase recorded before a transition is applied."""

ATTR_NEXT_PHASE = "migrateflow.phase.next"
"""Phase after a transition is applied."""

ATTR_SIGNAL = "migrateflow.signal"
"""Progress status name reported by the service."""

ATTR_PROGRESS = "migrateflow.progress"
"""Progress percentage reported by the service (integer 0-100)."""

# =============================================================================
# Poller and Resource Attributes
# =============================================================================

ATTR_POLL_INTERVAL = "migrateflow.poll.interval"
"""Seconds between status polls (float)."""

ATTR_POLL_COUNT = "migrateflow.poll.count"
"""Number of polls issued by a poller so far (integer)."""

ATTR_RESOURCE_COUNT = "migrateflow.resource.count"
"""Number of generated resources after flattening (integer)."""

ATTR_STORE = "migrateflow.state.store"
"""Persisted state store implementation name."""

# =============================================================================
# HTTP Attributes (OTEL semantic conventions)
# =============================================================================

ATTR_HTTP_METHOD = "http.request.method"
"""HTTP request method."""

ATTR_HTTP_ROUTE = "http.route"
"""Service route being called."""

ATTR_HTTP_STATUS_CODE = "http.response.status_code"
"""HTTP response status code (integer)."""

ATTR_ERROR_TYPE = "error.type"
"""Exception class name when an operation fails."""


__all__ = [
    "ATTR_MIGRATION_MODE",
    "ATTR_MIGRATION_TYPE",
    "ATTR_IS_SHARDED",
    "ATTR_SHARD_COUNT",
    "ATTR_PHASE",
    "ATTR_NEXT_PHASE",
    "ATTR_SIGNAL",
    "ATTR_PROGRESS",
    "ATTR_POLL_INTERVAL",
    "ATTR_POLL_COUNT",
    "ATTR_RESOURCE_COUNT",
    "ATTR_STORE",
    "ATTR_HTTP_METHOD",
    "ATTR_HTTP_ROUTE",
    "ATTR_HTTP_STATUS_CODE",
    "ATTR_ERROR_TYPE",
]
