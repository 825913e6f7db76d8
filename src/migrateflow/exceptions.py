"""
Exceptions for the migrateflow orchestration client.

Errors are organized by where they are detected. Configuration errors are
raised locally before any network call and never touch the phase state.
Service errors wrap a failed round-trip to the migration service. Only a
server-reported error message becomes a MigrationFailedError, which is the
single terminal failure path.

Exception Hierarchy:
    MigrationClientError (base)
    +-- ConfigurationError
    |   +-- IncompleteConfigurationError
    |   +-- ShardConfigIncompleteError
    |   +-- InvalidShardConfigurationError
    |   +-- UnsupportedMigrationOptionError
    +-- AlreadyInProgressError
    +-- InvalidPhaseTransitionError
    +-- ServiceError
    |   +-- MigrationRejectedError
    |   +-- ServiceUnavailableError
    |   +-- MalformedResponseError
    |   +-- ResourceFetchError
    +-- MigrationFailedError

Error Classification:
    - ErrorSeverity: CRITICAL, ERROR, WARNING, INFO levels
    - ErrorRecoverability: RECOVERABLE, TRANSIENT, FATAL categories
    - ErrorClassification: metadata attached to each error type
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from migrateflow.models import MigrationPhase


class ErrorSeverity(Enum):
    """
    Severity level of client errors.

    Attributes:
        CRITICAL: Client state is unusable.
        ERROR: The requested operation failed and needs user action.
        WARNING: A single attempt failed and will be retried.
        INFO: Informational condition, not a failure.
    """

    CRITICAL = "critical"
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"

    @property
    def log_level(self) -> int:
        """
        Get the corresponding Python logging level.

        Returns:
            Python logging level constant.
        """
        level_map = {
            ErrorSeverity.CRITICAL: logging.CRITICAL,
            ErrorSeverity.ERROR: logging.ERROR,
            ErrorSeverity.WARNING: logging.WARNING,
            ErrorSeverity.INFO: logging.INFO,
        }
        return level_map[self]


class ErrorRecoverability(Enum):
    """
    Recoverability classification for client errors.

    Attributes:
        RECOVERABLE: The user can fix the input and try again.
        TRANSIENT: The same call may succeed on the next attempt.
        FATAL: The migration run is over.
    """

    RECOVERABLE = "recoverable"
    TRANSIENT = "transient"
    FATAL = "fatal"

    @property
    def should_retry(self) -> bool:
        """True only for TRANSIENT errors."""
        return self == ErrorRecoverability.TRANSIENT


@dataclass(frozen=True)
class ErrorClassification:
    """
    Metadata describing how an error should be handled and reported.

    Attributes:
        severity: The severity level of the error.
        recoverability: How the error can be recovered from.
        error_code: Unique error code for programmatic handling.
        category: Error category for grouping related errors.
        suggested_action: Human-readable guidance for the user.
    """

    severity: ErrorSeverity
    recoverability: ErrorRecoverability
    error_code: str
    category: str
    suggested_action: str

    def to_dict(self) -> dict[str, Any]:
        """
        Convert classification to dictionary for serialization.

        Returns:
            Dictionary representation of the classification.
        """
        return {
            "severity": self.severity.value,
            "recoverability": self.recoverability.value,
            "error_code": self.error_code,
            "category": self.category,
            "suggested_action": self.suggested_action,
        }


class MigrationClientError(Exception):
    """
    Base exception for all migrateflow errors.

    Attributes:
        message: Human-readable error description.
        suggested_action: Suggested action for recovery, overriding the
            classification default when given.
    """

    _default_classification: ErrorClassification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        recoverability=ErrorRecoverability.FATAL,
        error_code="MIGRATION_CLIENT_ERROR",
        category="general",
        suggested_action="Review the client logs and retry the operation",
    )

    def __init__(
        self,
        message: str,
        *,
        suggested_action: str | None = None,
    ) -> None:
        self.message = message
        self.suggested_action = suggested_action
        super().__init__(message)

    def __str__(self) -> str:
        return self.message

    @property
    def classification(self) -> ErrorClassification:
        """
        Get the error classification for this exception.

        Subclasses override _default_classification to provide
        specific classification metadata for their error type.
        """
        return self._default_classification

    @property
    def severity(self) -> ErrorSeverity:
        return self.classification.severity

    @property
    def recoverability(self) -> ErrorRecoverability:
        return self.classification.recoverability

    @property
    def error_code(self) -> str:
        return self.classification.error_code

    def to_dict(self) -> dict[str, Any]:
        """
        Convert the exception to a dictionary for serialization.

        Returns:
            Dictionary representation of the error.
        """
        return {
            "message": self.message,
            "error_code": self.error_code,
            "suggested_action": self.suggested_action or self.classification.suggested_action,
            "classification": self.classification.to_dict(),
        }


# =============================================================================
# Configuration errors
# =============================================================================


class ConfigurationError(MigrationClientError):
    """
    Base class for errors found while validating or assembling configuration.

    These are raised before any network call and never change phase state.
    """

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        recoverability=ErrorRecoverability.RECOVERABLE,
        error_code="CONFIGURATION_ERROR",
        category="configuration",
        suggested_action="Correct the migration configuration and try again",
    )


class IncompleteConfigurationError(ConfigurationError):
    """
    Raised when a fragment required by the selected mode and type is unset.

    Attributes:
        missing: Names of the fragments that still need to be set.
    """

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        recoverability=ErrorRecoverability.RECOVERABLE,
        error_code="INCOMPLETE_CONFIGURATION",
        category="configuration",
        suggested_action="Set the missing configuration before starting the migration",
    )

    def __init__(self, missing: list[str]) -> None:
        self.missing = list(missing)
        super().__init__(f"Configuration incomplete, missing: {', '.join(self.missing)}")


class ShardConfigIncompleteError(ConfigurationError):
    """Raised when a sharded migration is assembled with no finalized shards."""

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        recoverability=ErrorRecoverability.RECOVERABLE,
        error_code="SHARD_CONFIG_INCOMPLETE",
        category="configuration",
        suggested_action="Add and finalize at least one shard connection",
    )

    def __init__(self, message: str = "No shard connections have been finalized") -> None:
        super().__init__(message)


class InvalidShardConfigurationError(ConfigurationError):
    """
    Raised when shard connection input cannot be used.

    Covers unparseable bulk input, missing shard ids and duplicate shard ids.

    Attributes:
        shard_id: The offending shard id, when one is known.
    """

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        recoverability=ErrorRecoverability.RECOVERABLE,
        error_code="INVALID_SHARD_CONFIGURATION",
        category="configuration",
        suggested_action="Fix the shard connection details",
    )

    def __init__(self, message: str, *, shard_id: str | None = None) -> None:
        self.shard_id = shard_id
        super().__init__(message)


class UnsupportedMigrationOptionError(ConfigurationError):
    """Raised when the source does not offer the requested mode or type."""

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        recoverability=ErrorRecoverability.RECOVERABLE,
        error_code="UNSUPPORTED_MIGRATION_OPTION",
        category="configuration",
        suggested_action="Pick a migration mode and type offered for this source",
    )

    def __init__(self, option: str, offered: list[str]) -> None:
        self.option = option
        self.offered = list(offered)
        super().__init__(
            f"{option} is not supported for this source (offered: {', '.join(self.offered)})"
        )


# =============================================================================
# Launch guard
# =============================================================================


class AlreadyInProgressError(MigrationClientError):
    """Raised when launching while another migration is still in progress."""

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.WARNING,
        recoverability=ErrorRecoverability.RECOVERABLE,
        error_code="MIGRATION_ALREADY_IN_PROGRESS",
        category="state",
        suggested_action="Wait for the current migration to finish or abandon it",
    )

    def __init__(self, current_phase: MigrationPhase) -> None:
        self.current_phase = current_phase
        super().__init__(f"A migration is already in progress (phase: {current_phase.value})")


class InvalidPhaseTransitionError(MigrationClientError):
    """
    Raised when a transition the phase state machine does not allow is attempted.

    Attributes:
        current_phase: The phase the controller is in.
        target_phase: The phase that was attempted.
    """

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.CRITICAL,
        recoverability=ErrorRecoverability.FATAL,
        error_code="INVALID_PHASE_TRANSITION",
        category="state",
        suggested_action="Abandon the migration and start a new one",
    )

    def __init__(self, current_phase: MigrationPhase, target_phase: MigrationPhase) -> None:
        self.current_phase = current_phase
        self.target_phase = target_phase
        super().__init__(
            f"Invalid phase transition: {current_phase.value} -> {target_phase.value}"
        )


# =============================================================================
# Service errors
# =============================================================================


class ServiceError(MigrationClientError):
    """
    Base class for failed calls to the migration service.

    Attributes:
        operation: Name of the service operation that failed.
        status_code: HTTP status code, when a response was received.
    """

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        recoverability=ErrorRecoverability.RECOVERABLE,
        error_code="SERVICE_ERROR",
        category="service",
        suggested_action="Check the migration service logs",
    )

    def __init__(
        self,
        message: str,
        *,
        operation: str,
        status_code: int | None = None,
    ) -> None:
        self.operation = operation
        self.status_code = status_code
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["operation"] = self.operation
        result["status_code"] = self.status_code
        return result


class MigrationRejectedError(ServiceError):
    """
    Raised when the service refuses a request.

    The message is the server's response text, unmodified.
    """

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        recoverability=ErrorRecoverability.RECOVERABLE,
        error_code="MIGRATION_REJECTED",
        category="service",
        suggested_action="Resolve the reported problem and launch again",
    )


class ServiceUnavailableError(ServiceError):
    """Raised on a transport failure, timeout or 5xx response."""

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.WARNING,
        recoverability=ErrorRecoverability.TRANSIENT,
        error_code="SERVICE_UNAVAILABLE",
        category="connectivity",
        suggested_action="Check connectivity to the migration service",
    )


class MalformedResponseError(ServiceError):
    """Raised when a service response cannot be decoded."""

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.WARNING,
        recoverability=ErrorRecoverability.TRANSIENT,
        error_code="MALFORMED_RESPONSE",
        category="protocol",
        suggested_action="Check that client and service versions match",
    )


class ResourceFetchError(ServiceError):
    """Raised when generated resources cannot be retrieved."""

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        recoverability=ErrorRecoverability.RECOVERABLE,
        error_code="RESOURCE_FETCH_FAILED",
        category="service",
        suggested_action="Retry fetching the generated resources",
    )


# =============================================================================
# Terminal failure
# =============================================================================


class MigrationFailedError(MigrationClientError):
    """
    Recorded when the service reports an error message for the running migration.

    Attributes:
        phase: The phase the migration was in when it failed.
    """

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.CRITICAL,
        recoverability=ErrorRecoverability.FATAL,
        error_code="MIGRATION_FAILED",
        category="migration",
        suggested_action="Inspect the reported error, fix the cause and start a new migration",
    )

    def __init__(self, message: str, *, phase: MigrationPhase) -> None:
        self.phase = phase
        super().__init__(message)


__all__ = [
    "ErrorSeverity",
    "ErrorRecoverability",
    "ErrorClassification",
    "MigrationClientError",
    "ConfigurationError",
    "IncompleteConfigurationError",
    "ShardConfigIncompleteError",
    "InvalidShardConfigurationError",
    "UnsupportedMigrationOptionError",
    "AlreadyInProgressError",
    "InvalidPhaseTransitionError",
    "ServiceError",
    "MigrationRejectedError",
    "ServiceUnavailableError",
    "MalformedResponseError",
    "ResourceFetchError",
    "MigrationFailedError",
]
