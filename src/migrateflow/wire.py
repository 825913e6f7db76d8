"""
Pydantic models for payloads returned by the migration service.

The service speaks PascalCase JSON. Each model aliases those keys onto
snake_case fields and converts itself into the client's own dataclasses,
so nothing outside this module depends on the wire shape.
"""

from __future__ import annotations

import logging

from pydantic import BaseModel, ConfigDict, Field

from migrateflow.models import (
    GeneratedResource,
    MigrationStatus,
    ProgressStatus,
    ResourceType,
    SourceSummary,
)

logger = logging.getLogger(__name__)

IMPLICIT_SHARD = ""
"""Shard id used for resources of a non-sharded run."""


class _WireModel(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")


class ProgressPayload(_WireModel):
    """Body of ``GET /GetProgress``."""

    progress: int = Field(default=0, alias="Progress")
    error_message: str = Field(default="", alias="ErrorMessage")
    progress_status: int = Field(default=0, alias="ProgressStatus")

    def to_status(self) -> MigrationStatus:
        try:
            status = ProgressStatus(self.progress_status)
        except ValueError:
            logger.debug("Unknown progress status %d, treating as default", self.progress_status)
            status = ProgressStatus.DEFAULT
        return MigrationStatus(
            progress=self.progress,
            progress_status=status,
            error_message=self.error_message,
        )


class ResourceDetailsPayload(_WireModel):
    """One entry of a shard's resource list."""

    resource_type: str = Field(default="", alias="ResourceType")
    resource_name: str = Field(default="", alias="ResourceName")
    resource_url: str = Field(default="", alias="ResourceUrl")
    gcloud_cmd: str = Field(default="", alias="GcloudCmd")

    def to_resource(self, shard_id: str) -> GeneratedResource:
        return GeneratedResource(
            shard_id=shard_id,
            resource_type=ResourceType.from_label(self.resource_type),
            name=self.resource_name,
            url=self.resource_url,
            equivalent_command=self.gcloud_cmd,
        )


class GeneratedResourcesPayload(_WireModel):
    """
    Body of ``GET /GetGeneratedResources``.

    Non-sharded runs fill the single-instance fields. Sharded runs also
    fill ``ShardToShardResourcesMap``.
    """

    migration_job_id: str = Field(default="", alias="MigrationJobId")
    database_name: str = Field(default="", alias="DatabaseName")
    database_url: str = Field(default="", alias="DatabaseUrl")
    bucket_name: str = Field(default="", alias="BucketName")
    bucket_url: str = Field(default="", alias="BucketUrl")
    stream_name: str = Field(default="", alias="DataStreamJobName")
    stream_url: str = Field(default="", alias="DataStreamJobUrl")
    pipeline_name: str = Field(default="", alias="DataflowJobName")
    pipeline_url: str = Field(default="", alias="DataflowJobUrl")
    pipeline_command: str = Field(default="", alias="DataflowGcloudCmd")
    topic_name: str = Field(default="", alias="PubsubTopicName")
    topic_url: str = Field(default="", alias="PubsubTopicUrl")
    subscription_name: str = Field(default="", alias="PubsubSubscriptionName")
    subscription_url: str = Field(default="", alias="PubsubSubscriptionUrl")
    dashboard_name: str = Field(default="", alias="MonitoringDashboardName")
    dashboard_url: str = Field(default="", alias="MonitoringDashboardUrl")
    aggregate_dashboard_name: str = Field(default="", alias="AggMonitoringDashboardName")
    aggregate_dashboard_url: str = Field(default="", alias="AggMonitoringDashboardUrl")
    shard_resources: dict[str, list[ResourceDetailsPayload]] | None = Field(
        default=None,
        alias="ShardToShardResourcesMap",
    )

    def to_shard_map(self) -> dict[str, list[GeneratedResource]]:
        """
        Normalize the payload into a shard-keyed map.

        The single-instance fields become the implicit shard's list, which
        is always the first key. Fields without a name are skipped.
        """
        candidates = [
            (ResourceType.DATABASE, self.database_name, self.database_url, ""),
            (ResourceType.BUCKET, self.bucket_name, self.bucket_url, ""),
            (ResourceType.STREAM, self.stream_name, self.stream_url, ""),
            (ResourceType.PIPELINE, self.pipeline_name, self.pipeline_url, self.pipeline_command),
            (ResourceType.TOPIC, self.topic_name, self.topic_url, ""),
            (ResourceType.SUBSCRIPTION, self.subscription_name, self.subscription_url, ""),
            (ResourceType.DASHBOARD, self.dashboard_name, self.dashboard_url, ""),
            (
                ResourceType.AGGREGATE_DASHBOARD,
                self.aggregate_dashboard_name,
                self.aggregate_dashboard_url,
                "",
            ),
        ]
        shard_map: dict[str, list[GeneratedResource]] = {
            IMPLICIT_SHARD: [
                GeneratedResource(
                    shard_id=IMPLICIT_SHARD,
                    resource_type=resource_type,
                    name=name,
                    url=url,
                    equivalent_command=command,
                )
                for resource_type, name, url, command in candidates
                if name
            ]
        }
        for shard_id, entries in (self.shard_resources or {}).items():
            shard_map.setdefault(shard_id, []).extend(
                entry.to_resource(shard_id) for entry in entries if entry.resource_name
            )
        return shard_map


class SummaryPayload(_WireModel):
    """Body of ``GET /GetSourceDestinationSummary``."""

    database_type: str = Field(default="", alias="DatabaseType")
    connection_detail: str = Field(default="", alias="ConnectionDetail")
    connection_type: str = Field(default="", alias="ConnectionType")
    source_database_name: str = Field(default="", alias="SourceDatabaseName")
    source_table_count: int = Field(default=0, alias="SourceTableCount")
    spanner_table_count: int = Field(default=0, alias="SpannerTableCount")
    source_index_count: int = Field(default=0, alias="SourceIndexCount")
    spanner_index_count: int = Field(default=0, alias="SpannerIndexCount")
    is_sharded: bool = Field(default=False, alias="IsSharded")
    region: str = Field(default="", alias="Region")
    instance: str = Field(default="", alias="Instance")
    dialect: str = Field(default="", alias="Dialect")
    node_count: int = Field(default=0, alias="NodeCount")
    processing_units: int = Field(default=0, alias="ProcessingUnits")

    def to_summary(self) -> SourceSummary:
        return SourceSummary(
            database_type=self.database_type,
            connection_type=self.connection_type,
            source_database_name=self.source_database_name,
            source_table_count=self.source_table_count,
            target_table_count=self.spanner_table_count,
            source_index_count=self.source_index_count,
            target_index_count=self.spanner_index_count,
            is_sharded=self.is_sharded,
            region=self.region,
            instance=self.instance,
            dialect=self.dialect,
            node_count=self.node_count,
            processing_units=self.processing_units,
            extra={"connection_detail": self.connection_detail},
        )


__all__ = [
    "IMPLICIT_SHARD",
    "ProgressPayload",
    "ResourceDetailsPayload",
    "GeneratedResourcesPayload",
    "SummaryPayload",
]
