"""
MigrationOrchestrator - the session context.

Wires the configuration session, assembler, launcher, poller, phase
controller, reconciler and notification center together and is the only
object a UI layer needs to hold. It is passed around explicitly; there is
no module-level session state.

Usage:
    >>> async with MigrationOrchestrator.from_settings() as orchestrator:
    ...     await orchestrator.initialize()
    ...     orchestrator.fragments.set_target_details(TargetDetails(target_db="orders"))
    ...     await orchestrator.launch(MigrationMode.SCHEMA_AND_DATA, MigrationType.BULK)
    ...     async for state in orchestrator.stream_state():
    ...         print(state.current_phase.value, state.data_progress)
    ...     resources = await orchestrator.reconcile_now()
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from types import TracebackType
from typing import Self

from migrateflow.assembler import ConfigurationAssembler
from migrateflow.client import HttpMigrationServiceClient, MigrationServiceClient
from migrateflow.config import (
    DEFAULT_PAGE_SIZE,
    ClientSettings,
    NotificationConfig,
    PollerConfig,
    get_settings,
)
from migrateflow.controller import PhaseController
from migrateflow.exceptions import (
    AlreadyInProgressError,
    MigrationFailedError,
    ResourceFetchError,
    ServiceError,
)
from migrateflow.fragments import ConfigurationSession
from migrateflow.launcher import MigrationLauncher
from migrateflow.models import (
    GeneratedResource,
    MigrationMode,
    MigrationPhase,
    MigrationType,
    PhaseState,
    ResourcePage,
    SourceSummary,
)
from migrateflow.notifications import NotificationCenter, NotificationLevel
from migrateflow.observability import Tracer, create_tracer
from migrateflow.poller import ProgressPoller
from migrateflow.reconciler import ResourceReconciler
from migrateflow.state import MigrationStateStore, SQLiteMigrationStateStore

logger = logging.getLogger(__name__)


class MigrationOrchestrator:
    """
    Session context for one migration client.

    Args:
        client: Migration service client.
        store: Persisted state store.
        poller_config: Poll interval settings.
        notification_config: Notification TTL settings.
        page_size: Default page size for generated resources.
        owns_client: Close the client when the orchestrator closes.
        tracer: Optional custom Tracer instance shared by every component.
        enable_tracing: Whether to enable tracing (default True).

    Attributes:
        fragments: Configuration fragments and their is-set flags.
        notifications: Transient and persistent user notifications.
        controller: Phase state machine.
        poller: Periodic status poller.
        reconciler: Generated resource cache.
        summary: Source summary read by initialize().
    """

    def __init__(
        self,
        client: MigrationServiceClient,
        store: MigrationStateStore,
        *,
        poller_config: PollerConfig | None = None,
        notification_config: NotificationConfig | None = None,
        page_size: int = DEFAULT_PAGE_SIZE,
        owns_client: bool = False,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        tracer = tracer or create_tracer(__name__, enable_tracing)
        self._client = client
        self._store = store
        self._owns_client = owns_client
        self.notifications = NotificationCenter(notification_config)
        self.reconciler = ResourceReconciler(client, page_size=page_size, tracer=tracer)
        self.controller = PhaseController(
            store,
            self.reconciler,
            self.notifications,
            tracer=tracer,
        )
        self.poller = ProgressPoller(
            client,
            self.controller,
            poller_config,
            self.notifications,
            tracer=tracer,
        )
        self.launcher = MigrationLauncher(
            client,
            self.controller,
            self.poller,
            self.reconciler,
            self.notifications,
            tracer=tracer,
        )
        self.fragments = ConfigurationSession(
            client,
            notifications=self.notifications,
            tracer=tracer,
        )
        self.assembler = ConfigurationAssembler(tracer=tracer)
        self.summary: SourceSummary | None = None
        self.controller.add_stop_hook(self._on_terminal)

    @classmethod
    def from_settings(cls, settings: ClientSettings | None = None) -> MigrationOrchestrator:
        """Build an orchestrator backed by the HTTP client and the SQLite store."""
        settings = settings or get_settings()
        client = HttpMigrationServiceClient(
            settings.service_url,
            timeout=settings.request_timeout_seconds,
            enable_tracing=settings.enable_tracing,
        )
        store = SQLiteMigrationStateStore(
            settings.state_path,
            enable_tracing=settings.enable_tracing,
        )
        return cls(
            client,
            store,
            poller_config=settings.poller_config(),
            notification_config=settings.notification_config(),
            page_size=settings.resource_page_size,
            owns_client=True,
            enable_tracing=settings.enable_tracing,
        )

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    # -- read access ------------------------------------------------------

    @property
    def state(self) -> PhaseState:
        return self.controller.state

    @property
    def last_failure(self) -> MigrationFailedError | None:
        return self.controller.last_failure

    def offered_modes(self) -> list[MigrationMode]:
        if self.summary is None:
            return list(MigrationMode)
        return self.summary.offered_modes()

    def offered_types(self) -> list[MigrationType]:
        if self.summary is None:
            return list(MigrationType)
        return self.summary.offered_types()

    def stream_state(self) -> AsyncIterator[PhaseState]:
        """Async iterator of state snapshots, ending at a terminal phase."""
        return self.controller.stream()

    # -- operations -------------------------------------------------------

    async def initialize(self) -> PhaseState:
        """
        Read the source summary and resume a persisted run.

        Polling resumes only if the persisted state says a run is in
        progress. A summary that cannot be read is reported and every
        option stays offered.
        """
        try:
            self.summary = await self._client.get_source_destination_summary()
        except ServiceError as exc:
            logger.warning("Could not read source summary: %s", exc.message)
            self.notifications.transient(exc.message, NotificationLevel.WARNING)
        else:
            self.assembler.summary = self.summary
            self.fragments.source_engine = self.summary.database_type

        persisted = await self._store.load()
        if persisted is not None and persisted.is_in_progress:
            state = await self.controller.restore(persisted)
            self.poller.start()
            logger.info("Resumed polling for migration in %s", state.current_phase.value)
            return state
        return self.controller.state

    async def launch(
        self,
        mode: MigrationMode,
        migration_type: MigrationType,
        *,
        is_sharded: bool | None = None,
        skip_foreign_keys: bool = False,
    ) -> PhaseState:
        """
        Assemble the current fragments and launch a migration.

        Raises:
            AlreadyInProgressError: If a run is already in progress or being
                submitted.
            ConfigurationError: If the fragments cannot be assembled.
            MigrationRejectedError: If the service refuses the request.
        """
        if self.launcher.is_launching or self.controller.is_in_progress:
            raise AlreadyInProgressError(self.controller.state.current_phase)
        request = self.assembler.assemble(
            self.fragments.snapshot(),
            mode,
            migration_type,
            is_sharded=is_sharded,
            skip_foreign_keys=skip_foreign_keys,
        )
        return await self.launcher.launch(request)

    async def cancel(self) -> None:
        """
        Stop polling without touching the persisted state.

        A later initialize() resumes the run.
        """
        await self.poller.stop()

    async def abandon(self) -> None:
        """Stop polling, forget the run and reset configuration flags."""
        await self.poller.stop()
        await self.controller.reset()
        self.fragments.reset()
        self.reconciler.invalidate()
        logger.info("Migration abandoned")

    async def reconcile_now(self) -> list[GeneratedResource]:
        """
        Return the generated resources, fetching them if not cached.

        Waits for any status update that is being applied.

        Raises:
            ResourceFetchError: If the resources could not be fetched.
        """
        try:
            return await self.controller.reconcile()
        except ResourceFetchError as exc:
            logger.error("Fetching generated resources failed: %s", exc.message)
            self.notifications.persistent(exc.message, NotificationLevel.ERROR)
            raise

    def resource_page(self, number: int = 1, size: int | None = None) -> ResourcePage:
        return self.reconciler.page(number, size)

    async def close(self) -> None:
        await self.poller.stop()
        self.controller.close()
        if self._owns_client:
            await self._client.close()

    def _on_terminal(self, phase: MigrationPhase) -> None:
        if phase == MigrationPhase.COMPLETE:
            self.fragments.reset()


__all__ = ["MigrationOrchestrator"]
