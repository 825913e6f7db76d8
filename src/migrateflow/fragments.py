"""
Configuration fragments and the session that collects them.

A migration request is assembled from independently settable fragments:
target details, connection profile names, streaming, staging, compute
and metadata-path tuning, and (for sharded sources) a list of shard
connections. Each fragment has an is-set flag that flips to True only
after its setter succeeds and is reset when a run completes or is
abandoned.

Leaf forms own field-level validation. The dataclasses here only enforce
what the assembler relies on.

Example:
    >>> session = ConfigurationSession(client, source_engine="mysql")
    >>> session.set_target_details(TargetDetails(target_db="orders"))
    True
    >>> session.shards.add_from_text(shards_json)
    >>> await session.finalize_shards()
    True
    >>> fragments = session.snapshot()
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from migrateflow.exceptions import (
    InvalidShardConfigurationError,
    ServiceError,
    ShardConfigIncompleteError,
)
from migrateflow.models import MigrationType
from migrateflow.notifications import NotificationCenter, NotificationLevel
from migrateflow.observability import ATTR_SHARD_COUNT, Tracer, create_tracer

if TYPE_CHECKING:
    from migrateflow.client import MigrationServiceClient

logger = logging.getLogger(__name__)


class Fragment(Enum):
    """Independently settable pieces of a migration request."""

    TARGET = "target"
    SOURCE_CONNECTION_PROFILE = "source_connection_profile"
    TARGET_CONNECTION_PROFILE = "target_connection_profile"
    STREAMING_TUNING = "streaming_tuning"
    STAGING_TUNING = "staging_tuning"
    COMPUTE_TUNING = "compute_tuning"
    METADATA_PATH = "metadata_path"
    SHARD_CONNECTIONS = "shard_connections"


# =============================================================================
# Fragment values
# =============================================================================


@dataclass(frozen=True)
class TargetDetails:
    """
    Target database details.

    Attributes:
        target_db: Name of the target database.
        replication_slot: Replication slot for streaming PostgreSQL sources.
        publication: Publication for streaming PostgreSQL sources.
        streaming_config_path: Path to a prepared streaming config. A
            low-downtime run may name one instead of a target database.
    """

    target_db: str = ""
    replication_slot: str = ""
    publication: str = ""
    streaming_config_path: str = ""

    def is_complete(self, migration_type: MigrationType = MigrationType.BULK) -> bool:
        if self.target_db:
            return True
        return migration_type == MigrationType.LOW_DOWNTIME and bool(self.streaming_config_path)


@dataclass(frozen=True)
class StreamingTuning:
    """Change-stream concurrency settings for low-downtime runs."""

    max_concurrent_backfill_tasks: int = 50
    max_concurrent_cdc_tasks: int = 5

    def __post_init__(self) -> None:
        if self.max_concurrent_backfill_tasks < 1:
            raise ValueError(
                "max_concurrent_backfill_tasks must be positive, "
                f"got {self.max_concurrent_backfill_tasks}"
            )
        if self.max_concurrent_cdc_tasks < 1:
            raise ValueError(
                f"max_concurrent_cdc_tasks must be positive, got {self.max_concurrent_cdc_tasks}"
            )

    def to_dict(self) -> dict[str, Any]:
        return {
            "maxConcurrentBackfillTasks": str(self.max_concurrent_backfill_tasks),
            "maxConcurrentCdcTasks": str(self.max_concurrent_cdc_tasks),
        }


@dataclass(frozen=True)
class StagingTuning:
    """
    Staging bucket settings.

    Attributes:
        ttl_in_days: Days before staged files are deleted. None keeps them.
    """

    ttl_in_days: int | None = None

    def __post_init__(self) -> None:
        if self.ttl_in_days is not None and self.ttl_in_days < 1:
            raise ValueError(f"ttl_in_days must be positive, got {self.ttl_in_days}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "ttlInDays": str(self.ttl_in_days or 0),
            "ttlInDaysSet": self.ttl_in_days is not None,
        }


@dataclass(frozen=True)
class ComputeTuning:
    """Data pipeline worker settings. Empty fields use the service defaults."""

    project_id: str = ""
    location: str = ""
    network: str = ""
    subnetwork: str = ""
    host_project_id: str = ""
    max_workers: str = ""
    num_workers: str = ""
    service_account_email: str = ""
    job_name: str = ""
    machine_type: str = ""
    additional_user_labels: str = ""
    kms_key_name: str = ""
    gcs_template_path: str = ""
    custom_jar_path: str = ""
    custom_class_name: str = ""
    custom_parameter: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "projectId": self.project_id,
            "location": self.location,
            "network": self.network,
            "subnetwork": self.subnetwork,
            "hostProjectId": self.host_project_id,
            "maxWorkers": self.max_workers,
            "numWorkers": self.num_workers,
            "serviceAccountEmail": self.service_account_email,
            "jobName": self.job_name,
            "machineType": self.machine_type,
            "additionalUserLabels": self.additional_user_labels,
            "kmsKeyName": self.kms_key_name,
            "gcsTemplatePath": self.gcs_template_path,
            "customJarPath": self.custom_jar_path,
            "customClassName": self.custom_class_name,
            "customParameter": self.custom_parameter,
        }


@dataclass(frozen=True)
class MetadataPathTuning:
    """Where the service writes run metadata."""

    bucket_name: str
    root_path: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"GcsBucketName": self.bucket_name, "GcsBucketRootPath": self.root_path}


@dataclass(frozen=True)
class ShardConnectionConfig:
    """
    Connection details for one source shard.

    Attributes:
        shard_id: Logical shard identifier, unique within a request.
        engine: Source database engine, stamped from the session.
        host: Shard host name.
        port: Shard port.
        user: User name.
        password: Password.
        database_name: Database to read from.
    """

    shard_id: str
    engine: str
    host: str
    port: str
    user: str
    password: str = field(default="", repr=False)
    database_name: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "Driver": self.engine,
            "IsSharded": True,
            "Host": self.host,
            "Port": self.port,
            "Database": self.database_name,
            "User": self.user,
            "Password": self.password,
            "DataShardId": self.shard_id,
        }

    @classmethod
    def from_form(cls, data: dict[str, Any], engine: str) -> ShardConnectionConfig:
        """
        Build a config from a shard form entry.

        Form entries use ``hostName``, ``port``, ``userName``, ``password``,
        ``dbName`` and ``shardId``.
        """
        return cls(
            shard_id=str(data.get("shardId", "")).strip(),
            engine=engine,
            host=str(data.get("hostName", "")),
            port=str(data.get("port", "")),
            user=str(data.get("userName", "")),
            password=str(data.get("password", "")),
            database_name=str(data.get("dbName", "")),
        )


def parse_shard_configs(text: str, engine: str) -> list[ShardConnectionConfig]:
    """
    Parse a JSON array of shard form entries.

    Args:
        text: JSON text holding a list of shard objects.
        engine: Source engine stamped onto every entry.

    Returns:
        The parsed configs in input order.

    Raises:
        InvalidShardConfigurationError: If the text is not a JSON array of objects.
    """
    try:
        entries = json.loads(text)
    except ValueError as exc:
        raise InvalidShardConfigurationError("Unable to parse JSON") from exc
    if not isinstance(entries, list) or not all(isinstance(e, dict) for e in entries):
        raise InvalidShardConfigurationError("Unable to parse JSON")
    return [ShardConnectionConfig.from_form(entry, engine) for entry in entries]


def validate_shard_configs(configs: Iterable[ShardConnectionConfig]) -> None:
    """
    Check that shard configs can be submitted.

    Raises:
        ShardConfigIncompleteError: If there are no configs.
        InvalidShardConfigurationError: If a shard id is empty or repeated.
    """
    seen: set[str] = set()
    count = 0
    for config in configs:
        count += 1
        if not config.shard_id:
            raise InvalidShardConfigurationError("Shard id is required for every shard")
        if config.shard_id in seen:
            raise InvalidShardConfigurationError(
                f"Duplicate shard id: {config.shard_id}",
                shard_id=config.shard_id,
            )
        seen.add(config.shard_id)
    if count == 0:
        raise ShardConfigIncompleteError()


class ShardConnectionWizard:
    """
    Accumulates shard connections one finalized shard at a time.

    Shards can be added individually or bulk-parsed from JSON text. The
    list is validated as a whole when submitted.
    """

    def __init__(self, engine: str = "") -> None:
        self.engine = engine
        self._configs: list[ShardConnectionConfig] = []

    def add(self, config: ShardConnectionConfig) -> None:
        if not config.shard_id:
            raise InvalidShardConfigurationError("Shard id is required for every shard")
        self._configs.append(config)

    def add_form(self, data: dict[str, Any]) -> ShardConnectionConfig:
        config = ShardConnectionConfig.from_form(data, self.engine)
        self.add(config)
        return config

    def add_from_text(self, text: str) -> list[ShardConnectionConfig]:
        configs = parse_shard_configs(text, self.engine)
        for config in configs:
            self.add(config)
        return configs

    def clear(self) -> None:
        self._configs.clear()

    @property
    def configs(self) -> tuple[ShardConnectionConfig, ...]:
        return tuple(self._configs)

    def __len__(self) -> int:
        return len(self._configs)

    def __iter__(self) -> Iterator[ShardConnectionConfig]:
        return iter(self._configs)


# =============================================================================
# Session
# =============================================================================


@dataclass(frozen=True)
class FragmentSet:
    """Immutable view of every fragment value and which ones are set."""

    flags: frozenset[Fragment] = frozenset()
    target: TargetDetails | None = None
    source_connection_profile: str = ""
    target_connection_profile: str = ""
    streaming: StreamingTuning | None = None
    staging: StagingTuning | None = None
    compute: ComputeTuning | None = None
    metadata_path: MetadataPathTuning | None = None
    shards: tuple[ShardConnectionConfig, ...] = ()

    def is_set(self, fragment: Fragment) -> bool:
        return fragment in self.flags


class ConfigurationSession:
    """
    Holds fragment values and their is-set flags for one session.

    Local fragments are validated and stored synchronously. Fragments the
    service must know about for sharded runs are pushed to the service
    first; their flag only flips once the call succeeds, and a failure is
    surfaced through the notification center.

    Args:
        client: Service client used by the sharded setters.
        source_engine: Engine stamped onto shard connections.
        notifications: Where setter failures are reported.
        tracer: Optional custom Tracer instance.
        enable_tracing: Whether to enable tracing (default True).
    """

    def __init__(
        self,
        client: MigrationServiceClient | None = None,
        *,
        source_engine: str = "",
        notifications: NotificationCenter | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._client = client
        self._notifications = notifications or NotificationCenter()
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._flags: set[Fragment] = set()
        self._target: TargetDetails | None = None
        self._source_profile = ""
        self._target_profile = ""
        self._streaming: StreamingTuning | None = None
        self._staging: StagingTuning | None = None
        self._compute: ComputeTuning | None = None
        self._metadata_path: MetadataPathTuning | None = None
        self._submitted_shards: tuple[ShardConnectionConfig, ...] = ()
        self.shards = ShardConnectionWizard(source_engine)

    @property
    def source_engine(self) -> str:
        return self.shards.engine

    @source_engine.setter
    def source_engine(self, engine: str) -> None:
        self.shards.engine = engine

    def is_set(self, fragment: Fragment) -> bool:
        return fragment in self._flags

    # -- local fragments -------------------------------------------------

    def set_target_details(
        self,
        details: TargetDetails,
        migration_type: MigrationType = MigrationType.BULK,
    ) -> bool:
        if not details.is_complete(migration_type):
            logger.debug("Target details incomplete for %s", migration_type.value)
            return False
        self._target = details
        self._flags.add(Fragment.TARGET)
        return True

    def set_source_connection_profile(self, name: str) -> bool:
        if not name.strip():
            return False
        self._source_profile = name.strip()
        self._flags.add(Fragment.SOURCE_CONNECTION_PROFILE)
        return True

    def set_target_connection_profile(self, name: str) -> bool:
        if not name.strip():
            return False
        self._target_profile = name.strip()
        self._flags.add(Fragment.TARGET_CONNECTION_PROFILE)
        return True

    def set_metadata_path(self, tuning: MetadataPathTuning) -> bool:
        if not tuning.bucket_name:
            return False
        self._metadata_path = tuning
        self._flags.add(Fragment.METADATA_PATH)
        return True

    # -- fragments shared with the service for sharded runs ---------------

    async def set_streaming_tuning(self, tuning: StreamingTuning, *, sharded: bool = False) -> bool:
        if sharded and not await self._push("set_sharded_streaming_tuning", tuning):
            return False
        self._streaming = tuning
        self._flags.add(Fragment.STREAMING_TUNING)
        return True

    async def set_staging_tuning(self, tuning: StagingTuning, *, sharded: bool = False) -> bool:
        if sharded and not await self._push("set_sharded_staging_tuning", tuning):
            return False
        self._staging = tuning
        self._flags.add(Fragment.STAGING_TUNING)
        return True

    async def set_compute_tuning(self, tuning: ComputeTuning, *, sharded: bool = False) -> bool:
        if sharded and not await self._push("set_sharded_compute_tuning", tuning):
            return False
        self._compute = tuning
        self._flags.add(Fragment.COMPUTE_TUNING)
        return True

    async def finalize_shards(self) -> bool:
        """
        Validate the accumulated shards and submit them to the service.

        Raises:
            ShardConfigIncompleteError: If no shard has been added.
            InvalidShardConfigurationError: If shard ids are empty or repeated.
        """
        configs = self.shards.configs
        validate_shard_configs(configs)
        with self._tracer.span(
            "migrateflow.fragments.finalize_shards",
            {ATTR_SHARD_COUNT: len(configs)},
        ):
            if not await self._push("set_shard_connections", configs):
                return False
        self._submitted_shards = configs
        self._flags.add(Fragment.SHARD_CONNECTIONS)
        logger.info("Submitted %d shard connections", len(configs))
        return True

    async def _push(self, operation: str, value: Any) -> bool:
        if self._client is None:
            raise RuntimeError(f"{operation} requires a migration service client")
        try:
            await getattr(self._client, operation)(value)
        except ServiceError as exc:
            logger.warning("%s failed: %s", operation, exc.message)
            self._notifications.transient(exc.message, NotificationLevel.ERROR)
            return False
        return True

    # -- lifecycle --------------------------------------------------------

    def snapshot(self) -> FragmentSet:
        return FragmentSet(
            flags=frozenset(self._flags),
            target=self._target,
            source_connection_profile=self._source_profile,
            target_connection_profile=self._target_profile,
            streaming=self._streaming,
            staging=self._staging,
            compute=self._compute,
            metadata_path=self._metadata_path,
            shards=self._submitted_shards,
        )

    def reset(self) -> None:
        """Clear every flag and the accumulated shards."""
        self._flags.clear()
        self._submitted_shards = ()
        self.shards.clear()
        logger.debug("Configuration flags reset")


__all__ = [
    "Fragment",
    "TargetDetails",
    "StreamingTuning",
    "StagingTuning",
    "ComputeTuning",
    "MetadataPathTuning",
    "ShardConnectionConfig",
    "ShardConnectionWizard",
    "parse_shard_configs",
    "validate_shard_configs",
    "FragmentSet",
    "ConfigurationSession",
]
