"""
Client for the remote migration service.

MigrationServiceClient is the protocol the orchestration core depends on.
HttpMigrationServiceClient implements it over httpx against the service's
HTTP API:

    POST /Migrate                                   submit_migration
    GET  /GetProgress                               get_status
    GET  /GetGeneratedResources                     get_generated_resources
    GET  /GetSourceDestinationSummary               get_source_destination_summary
    POST /SetShardsSourceDBDetailsForBulk           set_shard_connections
    POST /SetDatastreamDetailsForShardedMigrations  set_sharded_streaming_tuning
    POST /SetGcsDetailsForShardedMigrations         set_sharded_staging_tuning
    POST /SetDataflowDetailsForShardedMigrations    set_sharded_compute_tuning

Error mapping:
    - Transport errors and timeouts raise ServiceUnavailableError.
    - Any error status on a write raises MigrationRejectedError carrying
      the response body as its message.
    - 5xx on a read raises ServiceUnavailableError, 4xx raises ServiceError.
    - Bodies that cannot be decoded raise MalformedResponseError.
    - Every failure while fetching generated resources is re-raised as
      ResourceFetchError.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from types import TracebackType
from typing import TYPE_CHECKING, Any, Protocol, Self, runtime_checkable

import httpx

from migrateflow.exceptions import (
    MalformedResponseError,
    MigrationRejectedError,
    ResourceFetchError,
    ServiceError,
    ServiceUnavailableError,
)
from migrateflow.models import GeneratedResource, MigrationStatus, SourceSummary
from migrateflow.observability import (
    ATTR_ERROR_TYPE,
    ATTR_HTTP_METHOD,
    ATTR_HTTP_ROUTE,
    ATTR_HTTP_STATUS_CODE,
    SpanKindEnum,
    Tracer,
    create_tracer,
)
from migrateflow.wire import GeneratedResourcesPayload, ProgressPayload, SummaryPayload

if TYPE_CHECKING:
    from migrateflow.assembler import MigrationRequest
    from migrateflow.fragments import (
        ComputeTuning,
        ShardConnectionConfig,
        StagingTuning,
        StreamingTuning,
    )

logger = logging.getLogger(__name__)


@runtime_checkable
class MigrationServiceClient(Protocol):
    """
    Operations the orchestration core needs from the migration service.

    Any implementation must raise the migrateflow ServiceError family
    rather than transport-specific exceptions.
    """

    async def submit_migration(self, request: MigrationRequest) -> None:
        """
        Ask the service to start a migration.

        Raises:
            MigrationRejectedError: If the service refuses the request.
        """
        ...

    async def get_status(self) -> MigrationStatus:
        """
        Read the current progress of the running migration.

        Raises:
            ServiceError: If the status could not be read.
        """
        ...

    async def get_generated_resources(self) -> dict[str, list[GeneratedResource]]:
        """
        Read the generated resources keyed by shard id.

        Non-sharded runs use the empty shard id.

        Raises:
            ResourceFetchError: If the resources could not be read.
        """
        ...

    async def get_source_destination_summary(self) -> SourceSummary:
        """Read the source and destination summary."""
        ...

    async def set_shard_connections(self, configs: Sequence[ShardConnectionConfig]) -> None:
        """Register shard connections for a sharded bulk migration."""
        ...

    async def set_sharded_streaming_tuning(self, tuning: StreamingTuning) -> None:
        ...

    async def set_sharded_staging_tuning(self, tuning: StagingTuning) -> None:
        ...

    async def set_sharded_compute_tuning(self, tuning: ComputeTuning) -> None:
        ...

    async def close(self) -> None:
        ...


class HttpMigrationServiceClient:
    """
    MigrationServiceClient over HTTP using httpx.

    Args:
        base_url: Base URL of the migration service.
        timeout: Request timeout in seconds.
        http_client: Pre-configured AsyncClient. When given, the caller
            owns it and close() leaves it open.
        tracer: Optional custom Tracer instance.
        enable_tracing: Whether to enable tracing (default True).

    Example:
        >>> async with HttpMigrationServiceClient("http://localhost:8080") as client:
        ...     status = await client.get_status()
    """

    def __init__(
        self,
        base_url: str = "http://localhost:8080",
        *,
        timeout: float = 8.0,
        http_client: httpx.AsyncClient | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(base_url=base_url, timeout=timeout)
        self._tracer = tracer or create_tracer(__name__, enable_tracing)

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    # -- writes -----------------------------------------------------------

    async def submit_migration(self, request: MigrationRequest) -> None:
        await self._write("/Migrate", "submit_migration", request.to_payload())
        logger.info(
            "Migration submitted (mode=%s, type=%s, sharded=%s)",
            request.mode.value,
            request.migration_type.value,
            request.is_sharded,
        )

    async def set_shard_connections(self, configs: Sequence[ShardConnectionConfig]) -> None:
        await self._write(
            "/SetShardsSourceDBDetailsForBulk",
            "set_shard_connections",
            {"DbConfigs": [config.to_dict() for config in configs], "IsRestoredSession": ""},
        )

    async def set_sharded_streaming_tuning(self, tuning: StreamingTuning) -> None:
        await self._write(
            "/SetDatastreamDetailsForShardedMigrations",
            "set_sharded_streaming_tuning",
            tuning.to_dict(),
        )

    async def set_sharded_staging_tuning(self, tuning: StagingTuning) -> None:
        await self._write(
            "/SetGcsDetailsForShardedMigrations",
            "set_sharded_staging_tuning",
            tuning.to_dict(),
        )

    async def set_sharded_compute_tuning(self, tuning: ComputeTuning) -> None:
        await self._write(
            "/SetDataflowDetailsForShardedMigrations",
            "set_sharded_compute_tuning",
            tuning.to_dict(),
        )

    # -- reads ------------------------------------------------------------

    async def get_status(self) -> MigrationStatus:
        body = await self._read("/GetProgress", "get_status")
        try:
            return ProgressPayload.model_validate(body).to_status()
        except ValueError as exc:
            raise MalformedResponseError(
                f"Undecodable progress response: {exc}", operation="get_status"
            ) from exc

    async def get_generated_resources(self) -> dict[str, list[GeneratedResource]]:
        try:
            body = await self._read("/GetGeneratedResources", "get_generated_resources")
            return GeneratedResourcesPayload.model_validate(body).to_shard_map()
        except ServiceError as exc:
            raise ResourceFetchError(
                exc.message,
                operation="get_generated_resources",
                status_code=exc.status_code,
            ) from exc
        except ValueError as exc:
            raise ResourceFetchError(
                f"Undecodable resources response: {exc}",
                operation="get_generated_resources",
            ) from exc

    async def get_source_destination_summary(self) -> SourceSummary:
        body = await self._read("/GetSourceDestinationSummary", "get_source_destination_summary")
        try:
            return SummaryPayload.model_validate(body).to_summary()
        except ValueError as exc:
            raise MalformedResponseError(
                f"Undecodable summary response: {exc}",
                operation="get_source_destination_summary",
            ) from exc

    # -- plumbing ---------------------------------------------------------

    async def _write(self, route: str, operation: str, payload: dict[str, Any]) -> None:
        response = await self._send("POST", route, operation, json=payload)
        if response.is_error:
            raise MigrationRejectedError(
                _error_text(response),
                operation=operation,
                status_code=response.status_code,
            )

    async def _read(self, route: str, operation: str) -> Any:
        response = await self._send("GET", route, operation)
        if response.is_server_error:
            raise ServiceUnavailableError(
                _error_text(response),
                operation=operation,
                status_code=response.status_code,
            )
        if response.is_error:
            raise ServiceError(
                _error_text(response),
                operation=operation,
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as exc:
            raise MalformedResponseError(
                f"{operation} returned a non-JSON body",
                operation=operation,
                status_code=response.status_code,
            ) from exc

    async def _send(
        self,
        method: str,
        route: str,
        operation: str,
        *,
        json: dict[str, Any] | None = None,
    ) -> httpx.Response:
        with self._tracer.span_with_kind(
            f"migrateflow.client.{operation}",
            SpanKindEnum.CLIENT,
            {ATTR_HTTP_METHOD: method, ATTR_HTTP_ROUTE: route},
        ) as span:
            try:
                response = await self._http.request(method, route, json=json)
            except httpx.HTTPError as exc:
                if span is not None:
                    span.set_attribute(ATTR_ERROR_TYPE, type(exc).__name__)
                raise ServiceUnavailableError(
                    f"{operation} failed: {exc}",
                    operation=operation,
                ) from exc
            if span is not None:
                span.set_attribute(ATTR_HTTP_STATUS_CODE, response.status_code)
            return response


def _error_text(response: httpx.Response) -> str:
    return response.text.rstrip("\n") or f"HTTP {response.status_code}"


__all__ = [
    "MigrationServiceClient",
    "HttpMigrationServiceClient",
]
