"""
migrateflow - async orchestration client for multi-phase database migrations.

This library provides:
- Configuration fragments and an assembler for migration requests
- A launcher that submits runs to the migration service
- A periodic progress poller and a phase state machine
- Persisted, resumable migration state (in-memory and SQLite)
- Per-shard generated-resource reconciliation
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("migrateflow")
except PackageNotFoundError:
    # Package not installed (running from source without install)
    __version__ = "0.0.0.dev0"

from migrateflow.assembler import ConfigurationAssembler, MigrationRequest
from migrateflow.client import HttpMigrationServiceClient, MigrationServiceClient
from migrateflow.config import ClientSettings, NotificationConfig, PollerConfig, get_settings
from migrateflow.controller import PhaseController, TransitionResult
from migrateflow.exceptions import (
    AlreadyInProgressError,
    ConfigurationError,
    IncompleteConfigurationError,
    InvalidPhaseTransitionError,
    InvalidShardConfigurationError,
    MalformedResponseError,
    MigrationClientError,
    MigrationFailedError,
    MigrationRejectedError,
    ResourceFetchError,
    ServiceError,
    ServiceUnavailableError,
    ShardConfigIncompleteError,
    UnsupportedMigrationOptionError,
)
from migrateflow.fragments import (
    ComputeTuning,
    ConfigurationSession,
    Fragment,
    FragmentSet,
    MetadataPathTuning,
    ShardConnectionConfig,
    ShardConnectionWizard,
    StagingTuning,
    StreamingTuning,
    TargetDetails,
    parse_shard_configs,
)
from migrateflow.launcher import MigrationLauncher
from migrateflow.models import (
    GeneratedResource,
    MigrationMode,
    MigrationPhase,
    MigrationStatus,
    MigrationType,
    PhaseState,
    ProgressStatus,
    ResourcePage,
    ResourceType,
    SourceSummary,
)
from migrateflow.notifications import (
    Notification,
    NotificationCenter,
    NotificationKind,
    NotificationLevel,
)
from migrateflow.orchestrator import MigrationOrchestrator
from migrateflow.poller import ProgressPoller
from migrateflow.reconciler import ResourceReconciler, flatten_resources
from migrateflow.state import (
    InMemoryMigrationStateStore,
    MigrationStateStore,
    PersistedMigrationState,
    SQLiteMigrationStateStore,
)

__all__ = [
    "__version__",
    # Session
    "MigrationOrchestrator",
    # Configuration
    "Fragment",
    "FragmentSet",
    "ConfigurationSession",
    "TargetDetails",
    "StreamingTuning",
    "StagingTuning",
    "ComputeTuning",
    "MetadataPathTuning",
    "ShardConnectionConfig",
    "ShardConnectionWizard",
    "parse_shard_configs",
    "ConfigurationAssembler",
    "MigrationRequest",
    # Service
    "MigrationServiceClient",
    "HttpMigrationServiceClient",
    # Orchestration core
    "MigrationLauncher",
    "ProgressPoller",
    "PhaseController",
    "TransitionResult",
    "ResourceReconciler",
    "flatten_resources",
    # Models
    "MigrationPhase",
    "MigrationMode",
    "MigrationType",
    "ProgressStatus",
    "ResourceType",
    "PhaseState",
    "MigrationStatus",
    "GeneratedResource",
    "ResourcePage",
    "SourceSummary",
    # State
    "PersistedMigrationState",
    "MigrationStateStore",
    "InMemoryMigrationStateStore",
    "SQLiteMigrationStateStore",
    # Notifications
    "Notification",
    "NotificationCenter",
    "NotificationKind",
    "NotificationLevel",
    # Config
    "PollerConfig",
    "NotificationConfig",
    "ClientSettings",
    "get_settings",
    # Exceptions
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
