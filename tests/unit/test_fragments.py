"""
Unit tests for configuration fragments and ConfigurationSession.

Tests cover:
- Fragment value serialization
- Shard connection parsing and validation
- ShardConnectionWizard accumulation
- ConfigurationSession setters, is-set flags and reset
"""

import json

import pytest

from migrateflow.exceptions import (
    InvalidShardConfigurationError,
    ServiceUnavailableError,
    ShardConfigIncompleteError,
)
from migrateflow.fragments import (
    ComputeTuning,
    ConfigurationSession,
    Fragment,
    MetadataPathTuning,
    ShardConnectionConfig,
    ShardConnectionWizard,
    StagingTuning,
    StreamingTuning,
    TargetDetails,
    parse_shard_configs,
    validate_shard_configs,
)
from migrateflow.models import MigrationType
from migrateflow.notifications import NotificationCenter, NotificationLevel
from tests.fixtures import FakeMigrationClient

SHARDS_JSON = json.dumps(
    [
        {
            "hostName": "10.0.0.1",
            "port": "3306",
            "userName": "root",
            "password": "secret",
            "dbName": "orders_a",
            "shardId": "shard-a",
        },
        {
            "hostName": "10.0.0.2",
            "port": "3306",
            "userName": "root",
            "password": "secret",
            "dbName": "orders_b",
            "shardId": "shard-b",
        },
    ]
)


def shard(shard_id: str) -> ShardConnectionConfig:
    return ShardConnectionConfig(
        shard_id=shard_id,
        engine="mysql",
        host="localhost",
        port="3306",
        user="root",
    )


class TestFragmentValues:
    """Tests for fragment value types."""

    def test_target_requires_database(self) -> None:
        assert TargetDetails(target_db="orders").is_complete()
        assert not TargetDetails().is_complete()

    def test_low_downtime_target_accepts_streaming_config(self) -> None:
        """A prepared streaming config stands in for the target database."""
        details = TargetDetails(streaming_config_path="gs://bucket/stream.json")
        assert details.is_complete(MigrationType.LOW_DOWNTIME)
        assert not details.is_complete(MigrationType.BULK)

    def test_streaming_defaults(self) -> None:
        assert StreamingTuning().to_dict() == {
            "maxConcurrentBackfillTasks": "50",
            "maxConcurrentCdcTasks": "5",
        }

    def test_streaming_rejects_non_positive(self) -> None:
        with pytest.raises(ValueError):
            StreamingTuning(max_concurrent_cdc_tasks=0)

    def test_staging_ttl(self) -> None:
        assert StagingTuning().to_dict() == {"ttlInDays": "0", "ttlInDaysSet": False}
        assert StagingTuning(ttl_in_days=7).to_dict() == {"ttlInDays": "7", "ttlInDaysSet": True}

    def test_compute_uses_camel_case(self) -> None:
        data = ComputeTuning(max_workers="20", machine_type="n1-standard-2").to_dict()
        assert data["maxWorkers"] == "20"
        assert data["machineType"] == "n1-standard-2"
        assert data["projectId"] == ""
        assert len(data) == 16

    def test_shard_config_driver_keys(self) -> None:
        data = shard("shard-a").to_dict()
        assert data["DataShardId"] == "shard-a"
        assert data["Driver"] == "mysql"
        assert data["IsSharded"] is True

    def test_shard_config_hides_password_in_repr(self) -> None:
        config = ShardConnectionConfig("s", "mysql", "h", "1", "u", password="hunter2")
        assert "hunter2" not in repr(config)


class TestShardParsing:
    """Tests for parse_shard_configs() and validate_shard_configs()."""

    def test_parse_form_entries(self) -> None:
        configs = parse_shard_configs(SHARDS_JSON, "mysql")
        assert [c.shard_id for c in configs] == ["shard-a", "shard-b"]
        assert configs[0].host == "10.0.0.1"
        assert configs[0].database_name == "orders_a"
        assert configs[1].engine == "mysql"

    def test_invalid_json(self) -> None:
        with pytest.raises(InvalidShardConfigurationError, match="Unable to parse JSON"):
            parse_shard_configs("{not json", "mysql")

    def test_non_list_json(self) -> None:
        with pytest.raises(InvalidShardConfigurationError, match="Unable to parse JSON"):
            parse_shard_configs('{"shardId": "a"}', "mysql")

    def test_empty_list_is_incomplete(self) -> None:
        with pytest.raises(ShardConfigIncompleteError):
            validate_shard_configs([])

    def test_duplicate_ids_rejected(self) -> None:
        with pytest.raises(InvalidShardConfigurationError) as exc_info:
            validate_shard_configs([shard("a"), shard("b"), shard("a")])
        assert exc_info.value.shard_id == "a"

    def test_empty_id_rejected(self) -> None:
        with pytest.raises(InvalidShardConfigurationError):
            validate_shard_configs([shard("")])


class TestShardConnectionWizard:
    def test_accumulates_shards(self) -> None:
        wizard = ShardConnectionWizard("postgres")
        wizard.add_form({"shardId": "one", "hostName": "h1"})
        wizard.add_from_text(SHARDS_JSON)
        assert len(wizard) == 3
        assert [c.shard_id for c in wizard] == ["one", "shard-a", "shard-b"]
        assert all(c.engine == "postgres" for c in wizard.configs)

    def test_rejects_shard_without_id(self) -> None:
        wizard = ShardConnectionWizard("mysql")
        with pytest.raises(InvalidShardConfigurationError):
            wizard.add_form({"hostName": "h1"})
        assert len(wizard) == 0

    def test_clear(self) -> None:
        wizard = ShardConnectionWizard("mysql")
        wizard.add(shard("a"))
        wizard.clear()
        assert wizard.configs == ()


class TestConfigurationSessionLocalSetters:
    """Tests for setters that never touch the service."""

    def test_flags_start_unset(self) -> None:
        session = ConfigurationSession(enable_tracing=False)
        assert not any(session.is_set(f) for f in Fragment)

    def test_target_details_flag(self) -> None:
        session = ConfigurationSession(enable_tracing=False)
        assert session.set_target_details(TargetDetails(target_db="orders"))
        assert session.is_set(Fragment.TARGET)

    def test_incomplete_target_leaves_flag_unset(self) -> None:
        session = ConfigurationSession(enable_tracing=False)
        assert not session.set_target_details(TargetDetails())
        assert not session.is_set(Fragment.TARGET)

    def test_connection_profiles(self) -> None:
        session = ConfigurationSession(enable_tracing=False)
        assert session.set_source_connection_profile(" src-profile ")
        assert not session.set_target_connection_profile("   ")
        snapshot = session.snapshot()
        assert snapshot.source_connection_profile == "src-profile"
        assert snapshot.is_set(Fragment.SOURCE_CONNECTION_PROFILE)
        assert not snapshot.is_set(Fragment.TARGET_CONNECTION_PROFILE)

    def test_metadata_path_requires_bucket(self) -> None:
        session = ConfigurationSession(enable_tracing=False)
        assert not session.set_metadata_path(MetadataPathTuning(bucket_name=""))
        assert session.set_metadata_path(MetadataPathTuning("meta-bucket", "runs/"))
        assert session.is_set(Fragment.METADATA_PATH)

    @pytest.mark.asyncio
    async def test_unsharded_tuning_is_local(self) -> None:
        """Non-sharded tuning never calls the service."""
        client = FakeMigrationClient()
        session = ConfigurationSession(client, enable_tracing=False)
        assert await session.set_streaming_tuning(StreamingTuning())
        assert await session.set_staging_tuning(StagingTuning(ttl_in_days=3))
        assert client.sharded_settings == []
        assert session.is_set(Fragment.STREAMING_TUNING)
        assert session.is_set(Fragment.STAGING_TUNING)


class TestConfigurationSessionShardedSetters:
    """Tests for setters that push to the service first."""

    @pytest.mark.asyncio
    async def test_sharded_tuning_pushed(self) -> None:
        client = FakeMigrationClient()
        session = ConfigurationSession(client, enable_tracing=False)
        tuning = ComputeTuning(num_workers="4")

        assert await session.set_compute_tuning(tuning, sharded=True)
        assert client.sharded_settings == [("compute", tuning)]
        assert session.is_set(Fragment.COMPUTE_TUNING)

    @pytest.mark.asyncio
    async def test_failed_push_leaves_flag_unset(self) -> None:
        """The flag only flips after the service accepts the value."""
        client = FakeMigrationClient()
        client.setter_error = ServiceUnavailableError(
            "connection refused", operation="set_sharded_staging_tuning"
        )
        notifications = NotificationCenter()
        session = ConfigurationSession(
            client, notifications=notifications, enable_tracing=False
        )

        assert not await session.set_staging_tuning(StagingTuning(), sharded=True)
        assert not session.is_set(Fragment.STAGING_TUNING)
        [notification] = notifications.history
        assert notification.message == "connection refused"
        assert notification.level == NotificationLevel.ERROR

    @pytest.mark.asyncio
    async def test_sharded_setter_without_client(self) -> None:
        session = ConfigurationSession(enable_tracing=False)
        with pytest.raises(RuntimeError):
            await session.set_streaming_tuning(StreamingTuning(), sharded=True)

    @pytest.mark.asyncio
    async def test_finalize_shards(self) -> None:
        client = FakeMigrationClient()
        session = ConfigurationSession(client, source_engine="mysql", enable_tracing=False)
        session.shards.add_from_text(SHARDS_JSON)

        assert await session.finalize_shards()
        assert session.is_set(Fragment.SHARD_CONNECTIONS)
        assert [c.shard_id for c in client.shard_connections[0]] == ["shard-a", "shard-b"]
        assert len(session.snapshot().shards) == 2

    @pytest.mark.asyncio
    async def test_finalize_without_shards(self) -> None:
        session = ConfigurationSession(FakeMigrationClient(), enable_tracing=False)
        with pytest.raises(ShardConfigIncompleteError):
            await session.finalize_shards()

    @pytest.mark.asyncio
    async def test_finalize_with_duplicates(self) -> None:
        client = FakeMigrationClient()
        session = ConfigurationSession(client, source_engine="mysql", enable_tracing=False)
        session.shards.add(shard("a"))
        session.shards.add(shard("a"))

        with pytest.raises(InvalidShardConfigurationError):
            await session.finalize_shards()
        assert client.shard_connections == []
        assert not session.is_set(Fragment.SHARD_CONNECTIONS)

    @pytest.mark.asyncio
    async def test_source_engine_stamped(self) -> None:
        session = ConfigurationSession(FakeMigrationClient(), enable_tracing=False)
        session.source_engine = "postgres"
        session.shards.add_form({"shardId": "p1"})
        assert session.shards.configs[0].engine == "postgres"


class TestConfigurationSessionReset:
    @pytest.mark.asyncio
    async def test_reset_clears_flags_and_shards(self) -> None:
        session = ConfigurationSession(
            FakeMigrationClient(), source_engine="mysql", enable_tracing=False
        )
        session.set_target_details(TargetDetails(target_db="orders"))
        session.shards.add(shard("a"))
        await session.finalize_shards()

        session.reset()

        snapshot = session.snapshot()
        assert snapshot.flags == frozenset()
        assert snapshot.shards == ()
        assert len(session.shards) == 0
