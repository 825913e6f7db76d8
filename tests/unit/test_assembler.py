"""
Unit tests for ConfigurationAssembler and MigrationRequest.
"""

import pytest

from migrateflow.assembler import ConfigurationAssembler, MigrationRequest
from migrateflow.exceptions import (
    IncompleteConfigurationError,
    InvalidShardConfigurationError,
    ShardConfigIncompleteError,
    UnsupportedMigrationOptionError,
)
from migrateflow.fragments import (
    ComputeTuning,
    Fragment,
    FragmentSet,
    MetadataPathTuning,
    ShardConnectionConfig,
    StagingTuning,
    StreamingTuning,
    TargetDetails,
)
from migrateflow.models import MigrationMode, MigrationType, SourceSummary
from migrateflow.observability import MockTracer

TARGET = TargetDetails(target_db="orders")


def shard(shard_id: str) -> ShardConnectionConfig:
    return ShardConnectionConfig(shard_id, "mysql", "localhost", "3306", "root")


def fragments(*flags: Fragment, **values) -> FragmentSet:
    return FragmentSet(flags=frozenset(flags), **values)


@pytest.fixture
def assembler() -> ConfigurationAssembler:
    return ConfigurationAssembler(enable_tracing=False)


class TestRequiredFragments:
    """Tests for ConfigurationAssembler.required_fragments()."""

    def test_bulk(self) -> None:
        assert ConfigurationAssembler.required_fragments(
            MigrationType.BULK, is_sharded=False
        ) == [Fragment.TARGET]

    def test_low_downtime_unsharded(self) -> None:
        assert ConfigurationAssembler.required_fragments(
            MigrationType.LOW_DOWNTIME, is_sharded=False
        ) == [
            Fragment.TARGET,
            Fragment.STREAMING_TUNING,
            Fragment.STAGING_TUNING,
            Fragment.SOURCE_CONNECTION_PROFILE,
            Fragment.TARGET_CONNECTION_PROFILE,
        ]

    def test_low_downtime_sharded(self) -> None:
        """Sharded runs carry connection details per shard instead of profiles."""
        assert ConfigurationAssembler.required_fragments(
            MigrationType.LOW_DOWNTIME, is_sharded=True
        ) == [Fragment.TARGET, Fragment.STREAMING_TUNING, Fragment.STAGING_TUNING]


class TestAssemble:
    """Tests for ConfigurationAssembler.assemble()."""

    def test_bulk_request(self, assembler: ConfigurationAssembler) -> None:
        request = assembler.assemble(
            fragments(Fragment.TARGET, target=TARGET),
            MigrationMode.SCHEMA_AND_DATA,
            MigrationType.BULK,
        )
        assert request.target == TARGET
        assert request.mode == MigrationMode.SCHEMA_AND_DATA
        assert request.streaming is None
        assert request.is_sharded is False
        assert request.shards == ()

    def test_missing_target(self, assembler: ConfigurationAssembler) -> None:
        with pytest.raises(IncompleteConfigurationError) as exc_info:
            assembler.assemble(fragments(), MigrationMode.SCHEMA_ONLY, MigrationType.BULK)
        assert exc_info.value.missing == ["target"]

    def test_streaming_config_target_rejected_for_bulk(
        self, assembler: ConfigurationAssembler
    ) -> None:
        """A target set for a low-downtime run must still name a database for bulk."""
        target = TargetDetails(streaming_config_path="gs://bucket/streaming.json")

        with pytest.raises(IncompleteConfigurationError) as exc_info:
            assembler.assemble(
                fragments(Fragment.TARGET, target=target),
                MigrationMode.SCHEMA_AND_DATA,
                MigrationType.BULK,
            )

        assert exc_info.value.missing == ["target"]

    def test_streaming_config_target_accepted_for_low_downtime(
        self, assembler: ConfigurationAssembler
    ) -> None:
        target = TargetDetails(streaming_config_path="gs://bucket/streaming.json")
        request = assembler.assemble(
            fragments(
                Fragment.TARGET,
                Fragment.STREAMING_TUNING,
                Fragment.STAGING_TUNING,
                Fragment.SOURCE_CONNECTION_PROFILE,
                Fragment.TARGET_CONNECTION_PROFILE,
                target=target,
                streaming=StreamingTuning(),
                staging=StagingTuning(),
                source_connection_profile="src",
                target_connection_profile="dst",
            ),
            MigrationMode.SCHEMA_AND_DATA,
            MigrationType.LOW_DOWNTIME,
        )
        assert request.target == target

    def test_low_downtime_lists_every_missing_fragment(
        self, assembler: ConfigurationAssembler
    ) -> None:
        with pytest.raises(IncompleteConfigurationError) as exc_info:
            assembler.assemble(
                fragments(
                    Fragment.TARGET,
                    Fragment.STREAMING_TUNING,
                    target=TARGET,
                    streaming=StreamingTuning(),
                ),
                MigrationMode.SCHEMA_AND_DATA,
                MigrationType.LOW_DOWNTIME,
            )
        assert exc_info.value.missing == [
            "staging_tuning",
            "source_connection_profile",
            "target_connection_profile",
        ]

    def test_values_of_unset_fragments_are_dropped(
        self, assembler: ConfigurationAssembler
    ) -> None:
        """A stale value without its flag never reaches the request."""
        request = assembler.assemble(
            fragments(
                Fragment.TARGET,
                target=TARGET,
                compute=ComputeTuning(num_workers="9"),
                source_connection_profile="stale",
            ),
            MigrationMode.DATA_ONLY,
            MigrationType.BULK,
        )
        assert request.compute is None
        assert request.source_connection_profile == ""

    def test_sharded_without_shards(self, assembler: ConfigurationAssembler) -> None:
        with pytest.raises(ShardConfigIncompleteError):
            assembler.assemble(
                fragments(Fragment.TARGET, target=TARGET),
                MigrationMode.SCHEMA_AND_DATA,
                MigrationType.BULK,
                is_sharded=True,
            )

    def test_sharded_duplicate_ids(self, assembler: ConfigurationAssembler) -> None:
        with pytest.raises(InvalidShardConfigurationError):
            assembler.assemble(
                fragments(
                    Fragment.TARGET,
                    Fragment.SHARD_CONNECTIONS,
                    target=TARGET,
                    shards=(shard("a"), shard("a")),
                ),
                MigrationMode.SCHEMA_AND_DATA,
                MigrationType.BULK,
                is_sharded=True,
            )

    def test_sharded_low_downtime(self, assembler: ConfigurationAssembler) -> None:
        request = assembler.assemble(
            fragments(
                Fragment.TARGET,
                Fragment.STREAMING_TUNING,
                Fragment.STAGING_TUNING,
                Fragment.SHARD_CONNECTIONS,
                target=TARGET,
                streaming=StreamingTuning(),
                staging=StagingTuning(ttl_in_days=2),
                shards=(shard("a"), shard("b")),
            ),
            MigrationMode.SCHEMA_AND_DATA,
            MigrationType.LOW_DOWNTIME,
            is_sharded=True,
        )
        assert request.is_sharded
        assert [s.shard_id for s in request.shards] == ["a", "b"]

    def test_sharded_defaults_to_summary(self) -> None:
        assembler = ConfigurationAssembler(
            SourceSummary(database_type="mysql", is_sharded=True), enable_tracing=False
        )
        with pytest.raises(ShardConfigIncompleteError):
            assembler.assemble(
                fragments(Fragment.TARGET, target=TARGET),
                MigrationMode.SCHEMA_AND_DATA,
                MigrationType.BULK,
            )

    def test_unoffered_type_rejected(self) -> None:
        assembler = ConfigurationAssembler(
            SourceSummary(database_type="sqlserver"), enable_tracing=False
        )
        with pytest.raises(UnsupportedMigrationOptionError) as exc_info:
            assembler.assemble(
                fragments(Fragment.TARGET, target=TARGET),
                MigrationMode.SCHEMA_AND_DATA,
                MigrationType.LOW_DOWNTIME,
            )
        assert exc_info.value.offered == ["bulk"]

    def test_session_file_rejects_data(self) -> None:
        assembler = ConfigurationAssembler(
            SourceSummary(database_type="mysql", connection_type="sessionFile"),
            enable_tracing=False,
        )
        with pytest.raises(UnsupportedMigrationOptionError):
            assembler.assemble(
                fragments(Fragment.TARGET, target=TARGET),
                MigrationMode.DATA_ONLY,
                MigrationType.BULK,
            )

    def test_traced(self) -> None:
        tracer = MockTracer()
        assembler = ConfigurationAssembler(tracer=tracer)
        assembler.assemble(
            fragments(Fragment.TARGET, target=TARGET),
            MigrationMode.SCHEMA_ONLY,
            MigrationType.BULK,
        )
        assert tracer.span_names == ["migrateflow.assembler.assemble"]


class TestMigrationRequestPayload:
    """Tests for MigrationRequest.to_payload()."""

    def test_payload_shape(self) -> None:
        request = MigrationRequest(
            target=TargetDetails(target_db="orders", replication_slot="slot1"),
            mode=MigrationMode.SCHEMA_AND_DATA,
            migration_type=MigrationType.LOW_DOWNTIME,
            streaming=StreamingTuning(max_concurrent_backfill_tasks=10),
            staging=StagingTuning(ttl_in_days=5),
            metadata_path=MetadataPathTuning("meta", "runs/"),
            source_connection_profile="src",
            target_connection_profile="dst",
            skip_foreign_keys=True,
        )
        payload = request.to_payload()

        assert payload["MigrationMode"] == "Schema And Data"
        assert payload["MigrationType"] == "lowdt"
        assert payload["IsSharded"] is False
        assert payload["skipForeignKeys"] is True
        assert payload["TargetDetails"] == {
            "TargetDB": "orders",
            "SourceConnProfile": "src",
            "TargetConnProfile": "dst",
            "ReplicationSlot": "slot1",
            "Publication": "",
            "GcsMetadataPath": {"GcsBucketName": "meta", "GcsBucketRootPath": "runs/"},
        }
        assert payload["DatastreamConfig"]["maxConcurrentBackfillTasks"] == "10"
        assert payload["GcsConfig"] == {"ttlInDays": "5", "ttlInDaysSet": True}

    def test_payload_defaults(self) -> None:
        """Unset tuning falls back to defaults the service accepts."""
        payload = MigrationRequest(
            target=TARGET,
            mode=MigrationMode.SCHEMA_ONLY,
            migration_type=MigrationType.BULK,
        ).to_payload()
        assert payload["DatastreamConfig"] == StreamingTuning().to_dict()
        assert payload["GcsConfig"] == {"ttlInDays": "0", "ttlInDaysSet": False}
        assert payload["DataflowConfig"] == ComputeTuning().to_dict()
        assert payload["TargetDetails"]["GcsMetadataPath"]["GcsBucketName"] == ""
