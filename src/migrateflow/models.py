"""
Data models for the migrateflow orchestration client.

Enums:
    - MigrationPhase: Client-side lifecycle phases of a migration run
    - MigrationMode: What the run migrates (schema, data, or both)
    - MigrationType: How data moves (one-shot bulk copy or streaming)
    - ProgressStatus: Opaque progress signal reported by the service
    - ResourceType: Kind of infrastructure generated for a run

Core Models:
    - PhaseState: Mutable phase and progress record owned by the controller
    - MigrationStatus: One decoded status poll
    - GeneratedResource: One piece of generated infrastructure
    - ResourcePage: One page of the flattened resource list
    - SourceSummary: Source/destination summary used to offer options
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field, replace
from enum import Enum, IntEnum
from typing import Any


class MigrationPhase(Enum):
    """
    Client-side migration lifecycle phases.

    State machine transitions:
        IDLE -> SCHEMA_MIGRATING -> DATA_MIGRATING ------------> FOREIGN_KEY_UPDATING -> COMPLETE
                             |                                         ^
                             +--> PROVISIONING_RESOURCES -------------+
        Any non-terminal phase ------------------------------------> FAILED

    Schema-only runs go straight from SCHEMA_MIGRATING to COMPLETE, and data-only
    runs start in DATA_MIGRATING. COMPLETE and FAILED end a run; the persisted
    state is then cleared and the session is conceptually IDLE again.
    """

    IDLE = "idle"
    """No migration has been launched in this session."""

    SCHEMA_MIGRATING = "schema_migrating"
    """The service is creating the target schema."""

    DATA_MIGRATING = "data_migrating"
    """The service is writing rows to the target."""

    PROVISIONING_RESOURCES = "provisioning_resources"
    """Streaming infrastructure is being created for a low-downtime run."""

    FOREIGN_KEY_UPDATING = "foreign_key_updating"
    """Foreign keys and constraints are being applied after the data load."""

    COMPLETE = "complete"
    """The run finished successfully."""

    FAILED = "failed"
    """The service reported an error for the run."""

    @property
    def is_terminal(self) -> bool:
        """
        Check if this phase ends a run.

        Returns:
            True for COMPLETE and FAILED.
        """
        return self in (MigrationPhase.COMPLETE, MigrationPhase.FAILED)

    @property
    def is_active(self) -> bool:
        """
        Check if the service is working on the run in this phase.

        Returns:
            True for every phase between launch and a terminal phase.
        """
        return not self.is_terminal and self != MigrationPhase.IDLE

    def can_transition_to(self, target: MigrationPhase) -> bool:
        """
        Check if transition to target phase is valid.

        Args:
            target: The target phase to transition to.

        Returns:
            True if the transition is valid.
        """
        if self.is_terminal:
            return False
        if target == MigrationPhase.FAILED:
            return self.is_active
        return target in VALID_TRANSITIONS.get(self, ())


VALID_TRANSITIONS: dict[MigrationPhase, tuple[MigrationPhase, ...]] = {
    MigrationPhase.IDLE: (
        MigrationPhase.SCHEMA_MIGRATING,
        MigrationPhase.DATA_MIGRATING,
    ),
    MigrationPhase.SCHEMA_MIGRATING: (
        MigrationPhase.DATA_MIGRATING,
        MigrationPhase.PROVISIONING_RESOURCES,
        MigrationPhase.FOREIGN_KEY_UPDATING,
        MigrationPhase.COMPLETE,
    ),
    MigrationPhase.PROVISIONING_RESOURCES: (
        MigrationPhase.DATA_MIGRATING,
        MigrationPhase.FOREIGN_KEY_UPDATING,
        MigrationPhase.COMPLETE,
    ),
    MigrationPhase.DATA_MIGRATING: (
        MigrationPhase.FOREIGN_KEY_UPDATING,
        MigrationPhase.COMPLETE,
    ),
    MigrationPhase.FOREIGN_KEY_UPDATING: (MigrationPhase.COMPLETE,),
}


class MigrationMode(Enum):
    """What a run migrates. Values are the service's wire strings."""

    SCHEMA_ONLY = "Schema"
    DATA_ONLY = "Data"
    SCHEMA_AND_DATA = "Schema And Data"

    @property
    def migrates_data(self) -> bool:
        return self != MigrationMode.SCHEMA_ONLY

    @property
    def migrates_schema(self) -> bool:
        return self != MigrationMode.DATA_ONLY


class MigrationType(Enum):
    """How data moves. Values are the service's wire strings."""

    BULK = "bulk"
    LOW_DOWNTIME = "lowdt"


class ProgressStatus(IntEnum):
    """
    Progress signal reported by the status endpoint.

    The integer values are fixed by the service.
    """

    DEFAULT = 0
    SCHEMA_COMPLETE = 1
    SCHEMA_CREATION_IN_PROGRESS = 2
    DATA_COMPLETE = 3
    DATA_WRITE_IN_PROGRESS = 4
    FOREIGN_KEY_IN_PROGRESS = 5
    FOREIGN_KEY_COMPLETE = 6


class ResourceType(Enum):
    """Kind of infrastructure the service generated for a run."""

    DATABASE = "database"
    BUCKET = "bucket"
    STREAM = "stream"
    PIPELINE = "pipeline"
    TOPIC = "topic"
    SUBSCRIPTION = "subscription"
    DASHBOARD = "dashboard"
    AGGREGATE_DASHBOARD = "aggregate_dashboard"
    OTHER = "other"

    @classmethod
    def from_label(cls, label: str) -> ResourceType:
        """
        Map a service resource label onto a ResourceType.

        Labels are matched case-insensitively against both the enum values
        and the product names the service uses (e.g. "Datastream").
        Unknown labels map to OTHER.
        """
        key = label.strip().lower().replace("-", " ").replace("_", " ")
        return _RESOURCE_LABELS.get(key, cls.OTHER)


_RESOURCE_LABELS: dict[str, ResourceType] = {
    "database": ResourceType.DATABASE,
    "bucket": ResourceType.BUCKET,
    "gcs bucket": ResourceType.BUCKET,
    "stream": ResourceType.STREAM,
    "datastream": ResourceType.STREAM,
    "pipeline": ResourceType.PIPELINE,
    "dataflow": ResourceType.PIPELINE,
    "topic": ResourceType.TOPIC,
    "pubsub topic": ResourceType.TOPIC,
    "subscription": ResourceType.SUBSCRIPTION,
    "pubsub subscription": ResourceType.SUBSCRIPTION,
    "dashboard": ResourceType.DASHBOARD,
    "monitoring dashboard": ResourceType.DASHBOARD,
    "aggregate dashboard": ResourceType.AGGREGATE_DASHBOARD,
    "aggregate monitoring dashboard": ResourceType.AGGREGATE_DASHBOARD,
}


@dataclass
class PhaseState:
    """
    Phase and progress of the current migration run.

    Owned by the PhaseController and mutated only through its transition
    methods. Everyone else reads copies made with snapshot().

    Invariants:
        - Progress values are within 0-100.
        - A non-empty error_message implies current_phase is FAILED and
          is_in_progress is False.

    Attributes:
        current_phase: Current lifecycle phase.
        schema_progress: Schema migration progress percentage.
        data_progress: Data migration progress percentage.
        foreign_key_progress: Foreign key update progress percentage.
        error_message: Server-reported error, empty unless FAILED.
        is_in_progress: True while the service is working on the run.
        schema_progress_message: User-facing schema phase message.
        data_progress_message: User-facing data phase message.
        foreign_key_progress_message: User-facing foreign key phase message.
        resources_reconciled: True once generated resources were fetched.
    """

    current_phase: MigrationPhase = MigrationPhase.IDLE
    schema_progress: int = 0
    data_progress: int = 0
    foreign_key_progress: int = 0
    error_message: str = ""
    is_in_progress: bool = False
    schema_progress_message: str = ""
    data_progress_message: str = ""
    foreign_key_progress_message: str = ""
    resources_reconciled: bool = False

    def __post_init__(self) -> None:
        for name in ("schema_progress", "data_progress", "foreign_key_progress"):
            value = getattr(self, name)
            if not 0 <= value <= 100:
                raise ValueError(f"{name} must be between 0 and 100, got {value}")
        if self.error_message and (
            self.current_phase != MigrationPhase.FAILED or self.is_in_progress
        ):
            raise ValueError("error_message is only allowed on a failed, stopped migration")

    def snapshot(self) -> PhaseState:
        """Return an independent copy of this state."""
        return replace(self)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["current_phase"] = self.current_phase.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PhaseState:
        values = dict(data)
        values["current_phase"] = MigrationPhase(values.get("current_phase", "idle"))
        return cls(**values)


@dataclass(frozen=True)
class MigrationStatus:
    """
    One decoded status poll.

    Attributes:
        progress: Percentage reported for the current progress status.
        progress_status: What the service is currently doing.
        error_message: Non-empty when the service reports the run failed.
    """

    progress: int = 0
    progress_status: ProgressStatus = ProgressStatus.DEFAULT
    error_message: str = ""

    @property
    def is_failure(self) -> bool:
        return bool(self.error_message)

    @property
    def clamped_progress(self) -> int:
        """Progress clamped into 0-100."""
        return max(0, min(100, self.progress))


@dataclass(frozen=True)
class GeneratedResource:
    """
    A piece of infrastructure the service created for the run.

    Attributes:
        shard_id: Shard the resource belongs to, empty for non-sharded runs.
        resource_type: Kind of resource.
        name: Resource name.
        url: Console URL for the resource.
        equivalent_command: CLI command that reproduces the resource, if any.
    """

    shard_id: str
    resource_type: ResourceType
    name: str
    url: str = ""
    equivalent_command: str = ""

    def with_shard(self, shard_id: str) -> GeneratedResource:
        return replace(self, shard_id=shard_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "shard_id": self.shard_id,
            "resource_type": self.resource_type.value,
            "name": self.name,
            "url": self.url,
            "equivalent_command": self.equivalent_command,
        }


@dataclass(frozen=True)
class ResourcePage:
    """
    One page of the flattened generated-resource list.

    Attributes:
        items: Resources on this page.
        number: 1-based page number.
        size: Maximum items per page.
        total: Total number of resources across all pages.
    """

    items: tuple[GeneratedResource, ...]
    number: int
    size: int
    total: int

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.size) if self.total else 0

    @property
    def has_next(self) -> bool:
        return self.number < self.pages


# Sources whose data can be streamed for a low-downtime run.
STREAMING_ENGINES = frozenset({"mysql", "oracle", "postgres", "postgresql"})

SESSION_FILE_CONNECTION = "sessionFile"


@dataclass(frozen=True)
class SourceSummary:
    """
    Summary of the configured source and destination.

    Read once when a session starts to decide which migration modes and
    types can be offered.
    """

    database_type: str = ""
    connection_type: str = ""
    source_database_name: str = ""
    source_table_count: int = 0
    target_table_count: int = 0
    source_index_count: int = 0
    target_index_count: int = 0
    is_sharded: bool = False
    region: str = ""
    instance: str = ""
    dialect: str = ""
    node_count: int = 0
    processing_units: int = 0
    extra: dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def supports_streaming(self) -> bool:
        return self.database_type.lower() in STREAMING_ENGINES

    def offered_modes(self) -> list[MigrationMode]:
        """
        Modes that can be offered for this source.

        A session file carries schema only, so it cannot move data.
        """
        if self.connection_type == SESSION_FILE_CONNECTION:
            return [MigrationMode.SCHEMA_ONLY]
        return [
            MigrationMode.SCHEMA_ONLY,
            MigrationMode.DATA_ONLY,
            MigrationMode.SCHEMA_AND_DATA,
        ]

    def offered_types(self) -> list[MigrationType]:
        if self.supports_streaming and self.connection_type != SESSION_FILE_CONNECTION:
            return [MigrationType.BULK, MigrationType.LOW_DOWNTIME]
        return [MigrationType.BULK]


__all__ = [
    "MigrationPhase",
    "VALID_TRANSITIONS",
    "MigrationMode",
    "MigrationType",
    "ProgressStatus",
    "ResourceType",
    "PhaseState",
    "MigrationStatus",
    "GeneratedResource",
    "ResourcePage",
    "SourceSummary",
    "STREAMING_ENGINES",
]
