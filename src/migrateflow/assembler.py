"""
Assembles configuration fragments into a migration request.

Which fragments are required depends on the requested mode and type:

    target details              always
    streaming tuning            low-downtime
    staging tuning              low-downtime
    connection profiles         low-downtime, non-sharded
    shard connections           sharded (at least one, unique ids)

Compute tuning is optional and falls back to the service defaults.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from migrateflow.exceptions import IncompleteConfigurationError, UnsupportedMigrationOptionError
from migrateflow.fragments import (
    ComputeTuning,
    Fragment,
    FragmentSet,
    MetadataPathTuning,
    ShardConnectionConfig,
    StagingTuning,
    StreamingTuning,
    TargetDetails,
    validate_shard_configs,
)
from migrateflow.models import MigrationMode, MigrationType, SourceSummary
from migrateflow.observability import (
    ATTR_IS_SHARDED,
    ATTR_MIGRATION_MODE,
    ATTR_MIGRATION_TYPE,
    Tracer,
    create_tracer,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MigrationRequest:
    """
    Everything the service needs to start a migration.

    Built fresh for every launch attempt and never mutated afterwards.
    """

    target: TargetDetails
    mode: MigrationMode
    migration_type: MigrationType
    streaming: StreamingTuning | None = None
    staging: StagingTuning | None = None
    compute: ComputeTuning | None = None
    metadata_path: MetadataPathTuning | None = None
    source_connection_profile: str = ""
    target_connection_profile: str = ""
    is_sharded: bool = False
    skip_foreign_keys: bool = False
    shards: tuple[ShardConnectionConfig, ...] = ()

    def to_payload(self) -> dict[str, Any]:
        """Build the JSON body for the launch call."""
        metadata = self.metadata_path or MetadataPathTuning(bucket_name="")
        return {
            "TargetDetails": {
                "TargetDB": self.target.target_db,
                "SourceConnProfile": self.source_connection_profile,
                "TargetConnProfile": self.target_connection_profile,
                "ReplicationSlot": self.target.replication_slot,
                "Publication": self.target.publication,
                "GcsMetadataPath": metadata.to_dict(),
            },
            "DatastreamConfig": (self.streaming or StreamingTuning()).to_dict(),
            "GcsConfig": (self.staging or StagingTuning()).to_dict(),
            "DataflowConfig": (self.compute or ComputeTuning()).to_dict(),
            "MigrationMode": self.mode.value,
            "MigrationType": self.migration_type.value,
            "IsSharded": self.is_sharded,
            "skipForeignKeys": self.skip_foreign_keys,
        }


class ConfigurationAssembler:
    """
    Merges a FragmentSet into a MigrationRequest.

    Args:
        summary: Source summary used to reject modes and types the source
            does not offer. Without one, every option is accepted.
        tracer: Optional custom Tracer instance.
        enable_tracing: Whether to enable tracing (default True).
    """

    def __init__(
        self,
        summary: SourceSummary | None = None,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self.summary = summary
        self._tracer = tracer or create_tracer(__name__, enable_tracing)

    def assemble(
        self,
        fragments: FragmentSet,
        mode: MigrationMode,
        migration_type: MigrationType,
        *,
        is_sharded: bool | None = None,
        skip_foreign_keys: bool = False,
    ) -> MigrationRequest:
        """
        Build a request from the fragments that are currently set.

        Args:
            fragments: Snapshot of the session's fragments.
            mode: Requested migration mode.
            migration_type: Requested migration type.
            is_sharded: Whether the source is sharded. Defaults to the
                summary's value, or False without a summary.
            skip_foreign_keys: Skip the foreign key phase on the service.

        Returns:
            The immutable request.

        Raises:
            UnsupportedMigrationOptionError: If the source does not offer mode or type.
            IncompleteConfigurationError: If a required fragment is unset, or the
                target details do not suit migration_type.
            ShardConfigIncompleteError: If a sharded request has no shards.
            InvalidShardConfigurationError: If shard ids are empty or repeated.
        """
        if is_sharded is None:
            is_sharded = self.summary.is_sharded if self.summary else False

        with self._tracer.span(
            "migrateflow.assembler.assemble",
            {
                ATTR_MIGRATION_MODE: mode.value,
                ATTR_MIGRATION_TYPE: migration_type.value,
                ATTR_IS_SHARDED: is_sharded,
            },
        ):
            self._check_offered(mode, migration_type)

            missing = [
                fragment.value
                for fragment in self.required_fragments(migration_type, is_sharded=is_sharded)
                if not fragments.is_set(fragment)
            ]
            target_usable = fragments.target is not None and fragments.target.is_complete(
                migration_type
            )
            if fragments.is_set(Fragment.TARGET) and not target_usable:
                missing.insert(0, Fragment.TARGET.value)
            if missing:
                raise IncompleteConfigurationError(missing)

            if is_sharded:
                validate_shard_configs(fragments.shards)

            assert fragments.target is not None
            request = MigrationRequest(
                target=fragments.target,
                mode=mode,
                migration_type=migration_type,
                streaming=self._value(fragments, Fragment.STREAMING_TUNING, fragments.streaming),
                staging=self._value(fragments, Fragment.STAGING_TUNING, fragments.staging),
                compute=self._value(fragments, Fragment.COMPUTE_TUNING, fragments.compute),
                metadata_path=self._value(
                    fragments, Fragment.METADATA_PATH, fragments.metadata_path
                ),
                source_connection_profile=fragments.source_connection_profile
                if fragments.is_set(Fragment.SOURCE_CONNECTION_PROFILE)
                else "",
                target_connection_profile=fragments.target_connection_profile
                if fragments.is_set(Fragment.TARGET_CONNECTION_PROFILE)
                else "",
                is_sharded=is_sharded,
                skip_foreign_keys=skip_foreign_keys,
                shards=fragments.shards if is_sharded else (),
            )

        logger.debug(
            "Assembled %s/%s request (sharded=%s, shards=%d)",
            mode.value,
            migration_type.value,
            is_sharded,
            len(request.shards),
        )
        return request

    @staticmethod
    def required_fragments(
        migration_type: MigrationType,
        *,
        is_sharded: bool,
    ) -> list[Fragment]:
        required = [Fragment.TARGET]
        if migration_type == MigrationType.LOW_DOWNTIME:
            required += [Fragment.STREAMING_TUNING, Fragment.STAGING_TUNING]
            if not is_sharded:
                required += [
                    Fragment.SOURCE_CONNECTION_PROFILE,
                    Fragment.TARGET_CONNECTION_PROFILE,
                ]
        return required

    def _check_offered(self, mode: MigrationMode, migration_type: MigrationType) -> None:
        if self.summary is None:
            return
        modes = self.summary.offered_modes()
        if mode not in modes:
            raise UnsupportedMigrationOptionError(mode.value, [m.value for m in modes])
        types = self.summary.offered_types()
        if migration_type not in types:
            raise UnsupportedMigrationOptionError(migration_type.value, [t.value for t in types])

    @staticmethod
    def _value(fragments: FragmentSet, fragment: Fragment, value: Any) -> Any:
        return value if fragments.is_set(fragment) else None


__all__ = [
    "MigrationRequest",
    "ConfigurationAssembler",
]
