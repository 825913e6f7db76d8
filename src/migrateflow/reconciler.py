"""
Resource reconciliation.

After a run reaches a reconciliation transition, the service can report
the infrastructure it generated. Sharded runs report a list per shard,
non-sharded runs a single list under the empty shard id. The reconciler
fetches that map once, stamps every entry with its shard id, flattens it
into one list and serves it in pages.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING

from migrateflow.config import DEFAULT_PAGE_SIZE
from migrateflow.models import GeneratedResource, ResourcePage
from migrateflow.observability import ATTR_RESOURCE_COUNT, Tracer, create_tracer
from migrateflow.wire import IMPLICIT_SHARD

if TYPE_CHECKING:
    from migrateflow.client import MigrationServiceClient

logger = logging.getLogger(__name__)


def flatten_resources(
    shard_map: Mapping[str, Sequence[GeneratedResource]],
) -> list[GeneratedResource]:
    """
    Flatten a shard-keyed resource map into one list.

    The implicit shard comes first, then the remaining shards in map order.
    Every entry is stamped with the shard id it was listed under.
    """
    shard_ids = sorted(shard_map, key=lambda shard_id: shard_id != IMPLICIT_SHARD)
    return [
        resource.with_shard(shard_id)
        for shard_id in shard_ids
        for resource in shard_map[shard_id]
    ]


class ResourceReconciler:
    """
    Fetches, caches and paginates generated resources.

    reconcile() hits the service only when nothing is cached. invalidate()
    drops the cache so the next run fetches again.

    Args:
        client: Service client used to fetch the resources.
        page_size: Default number of resources per page.
        tracer: Optional custom Tracer instance.
        enable_tracing: Whether to enable tracing (default True).
    """

    def __init__(
        self,
        client: MigrationServiceClient,
        *,
        page_size: int = DEFAULT_PAGE_SIZE,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        if page_size < 1:
            raise ValueError(f"page_size must be positive, got {page_size}")
        self._client = client
        self._page_size = page_size
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._resources: list[GeneratedResource] | None = None
        self._lock = asyncio.Lock()
        self.fetch_count = 0

    @property
    def resources(self) -> list[GeneratedResource] | None:
        """Cached resources, or None if nothing has been fetched."""
        return list(self._resources) if self._resources is not None else None

    async def reconcile(self) -> list[GeneratedResource]:
        """
        Return the flattened resources, fetching them if not cached.

        Raises:
            ResourceFetchError: If the service call fails. Nothing is cached.
        """
        async with self._lock:
            if self._resources is not None:
                return list(self._resources)

            with self._tracer.span("migrateflow.reconciler.reconcile") as span:
                self.fetch_count += 1
                shard_map = await self._client.get_generated_resources()
                resources = flatten_resources(shard_map)
                if span is not None:
                    span.set_attribute(ATTR_RESOURCE_COUNT, len(resources))

            self._resources = resources
            logger.info(
                "Reconciled %d generated resources across %d shard(s)",
                len(resources),
                len(shard_map),
            )
            return list(resources)

    def invalidate(self) -> None:
        self._resources = None

    def page(self, number: int = 1, size: int | None = None) -> ResourcePage:
        """
        Get one page of the cached resources.

        Args:
            number: 1-based page number. Pages past the end are empty.
            size: Items per page. Defaults to the configured page size.

        Raises:
            ValueError: If number or size is less than 1.
        """
        size = size or self._page_size
        if number < 1:
            raise ValueError(f"page number must be at least 1, got {number}")
        if size < 1:
            raise ValueError(f"page size must be positive, got {size}")
        resources = self._resources or []
        start = (number - 1) * size
        return ResourcePage(
            items=tuple(resources[start : start + size]),
            number=number,
            size=size,
            total=len(resources),
        )


__all__ = [
    "flatten_resources",
    "ResourceReconciler",
]
