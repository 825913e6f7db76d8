"""
MigrationLauncher - submits a migration and starts tracking it.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from migrateflow.exceptions import AlreadyInProgressError, ServiceError
from migrateflow.models import PhaseState
from migrateflow.notifications import NotificationCenter, NotificationLevel
from migrateflow.observability import (
    ATTR_ERROR_TYPE,
    ATTR_IS_SHARDED,
    ATTR_MIGRATION_MODE,
    ATTR_MIGRATION_TYPE,
    ATTR_SHARD_COUNT,
    Tracer,
    create_tracer,
)

if TYPE_CHECKING:
    from migrateflow.assembler import MigrationRequest
    from migrateflow.client import MigrationServiceClient
    from migrateflow.controller import PhaseController
    from migrateflow.poller import ProgressPoller
    from migrateflow.reconciler import ResourceReconciler

logger = logging.getLogger(__name__)

MIGRATION_STARTED = "Migration started successfully"


class MigrationLauncher:
    """
    Submits an assembled request to the service.

    Only one run may be outstanding per session. A launch is refused while
    a run is in progress or another submission is still waiting on the
    service, and the check happens before the service is contacted. A
    rejected submission leaves the phase state untouched and starts no
    poller.

    Args:
        client: Service client used to submit the request.
        controller: Phase controller that tracks the run.
        poller: Poller started once the service accepts the run.
        reconciler: Its cache is dropped for every accepted run.
        notifications: Where launch outcomes are reported.
        tracer: Optional custom Tracer instance.
        enable_tracing: Whether to enable tracing (default True).
    """

    def __init__(
        self,
        client: MigrationServiceClient,
        controller: PhaseController,
        poller: ProgressPoller,
        reconciler: ResourceReconciler | None = None,
        notifications: NotificationCenter | None = None,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._client = client
        self._controller = controller
        self._poller = poller
        self._reconciler = reconciler
        self._notifications = notifications or NotificationCenter()
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._launching = False

    @property
    def is_launching(self) -> bool:
        """True while a submission is waiting on the service."""
        return self._launching

    async def launch(self, request: MigrationRequest) -> PhaseState:
        """
        Submit the request and start polling.

        Args:
            request: The assembled migration request.

        Returns:
            Snapshot of the initial phase state.

        Raises:
            AlreadyInProgressError: If a run is already in progress or being
                submitted.
            MigrationRejectedError: If the service refuses the request. The
                message is the service's text, unchanged.
            ServiceUnavailableError: If the service could not be reached.
        """
        if self._launching or self._controller.is_in_progress:
            raise AlreadyInProgressError(self._controller.state.current_phase)

        self._launching = True
        try:
            state = await self._submit(request)
        finally:
            self._launching = False

        self._notifications.transient(MIGRATION_STARTED, NotificationLevel.SUCCESS)
        return state

    async def _submit(self, request: MigrationRequest) -> PhaseState:
        with self._tracer.span(
            "migrateflow.launcher.launch",
            {
                ATTR_MIGRATION_MODE: request.mode.value,
                ATTR_MIGRATION_TYPE: request.migration_type.value,
                ATTR_IS_SHARDED: request.is_sharded,
                ATTR_SHARD_COUNT: len(request.shards),
            },
        ) as span:
            try:
                await self._client.submit_migration(request)
            except ServiceError as exc:
                if span is not None:
                    span.set_attribute(ATTR_ERROR_TYPE, type(exc).__name__)
                logger.warning("Migration launch rejected: %s", exc.message)
                self._notifications.transient(exc.message, NotificationLevel.ERROR)
                raise

            if self._reconciler is not None:
                self._reconciler.invalidate()
            state = await self._controller.begin(
                request.mode,
                request.migration_type,
                number_of_shards=len(request.shards),
                number_of_instances=max(1, len(request.shards)),
            )
            self._poller.start()
        return state


__all__ = ["MigrationLauncher", "MIGRATION_STARTED"]
