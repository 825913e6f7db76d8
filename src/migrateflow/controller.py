"""
PhaseController - the migration phase state machine.

Translates decoded status polls into phase transitions and progress
updates, persists the state after every applied transition and publishes
snapshots to subscribers.

Transition table (signal -> effect):

    SCHEMA_MIGRATING
        SCHEMA_CREATION_IN_PROGRESS  raise schema progress
        SCHEMA_COMPLETE              schema-only   -> COMPLETE (all 100%)
                                     low-downtime  -> PROVISIONING_RESOURCES
                                     bulk          -> DATA_MIGRATING
    SCHEMA_MIGRATING / PROVISIONING_RESOURCES / DATA_MIGRATING
        DATA_WRITE_IN_PROGRESS       -> DATA_MIGRATING, raise data progress
        DATA_COMPLETE                -> COMPLETE (data 100%)
        FOREIGN_KEY_IN_PROGRESS      -> FOREIGN_KEY_UPDATING (data 100%, reconcile)
        FOREIGN_KEY_COMPLETE         -> COMPLETE (all 100%)
    FOREIGN_KEY_UPDATING
        FOREIGN_KEY_IN_PROGRESS      raise foreign key progress
        FOREIGN_KEY_COMPLETE         -> COMPLETE (all 100%)
    any active phase
        non-empty error message      -> FAILED

Schema-only runs ignore every data and foreign key signal. Signals that
would move progress backwards, repeat the current state, or arrive
outside an active phase are ignored.

On a terminal phase the controller first calls its stop hooks (the poller
registers one), then reconciles resources for COMPLETE, and only then
clears the persisted state.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from migrateflow.exceptions import (
    AlreadyInProgressError,
    InvalidPhaseTransitionError,
    MigrationFailedError,
    ResourceFetchError,
)
from migrateflow.models import (
    GeneratedResource,
    MigrationMode,
    MigrationPhase,
    MigrationStatus,
    MigrationType,
    PhaseState,
    ProgressStatus,
)
from migrateflow.notifications import NotificationCenter, NotificationLevel
from migrateflow.observability import (
    ATTR_MIGRATION_MODE,
    ATTR_MIGRATION_TYPE,
    ATTR_NEXT_PHASE,
    ATTR_PHASE,
    ATTR_PROGRESS,
    ATTR_SIGNAL,
    Tracer,
    create_tracer,
)
from migrateflow.state.interface import MigrationStateStore, PersistedMigrationState

if TYPE_CHECKING:
    from migrateflow.reconciler import ResourceReconciler

logger = logging.getLogger(__name__)

SCHEMA_IN_PROGRESS = "Schema migration in progress..."
SCHEMA_COMPLETED = "Schema migration completed successfully!"
SCHEMA_CANCELLED = "Schema migration cancelled!"
DATA_IN_PROGRESS = "Data migration in progress..."
DATA_COMPLETED = "Data migration completed successfully!"
DATA_CANCELLED = "Data migration cancelled!"
FOREIGN_KEY_IN_PROGRESS = "Foreign key update in progress..."
FOREIGN_KEY_COMPLETED = "Foreign key update completed successfully!"
FOREIGN_KEY_CANCELLED = "Foreign key update cancelled!"
PROVISIONING = "Provisioning resources for the low-downtime migration..."
MIGRATION_COMPLETED = "Migration completed successfully!"

_PRE_FOREIGN_KEY_PHASES = (
    MigrationPhase.SCHEMA_MIGRATING,
    MigrationPhase.PROVISIONING_RESOURCES,
    MigrationPhase.DATA_MIGRATING,
)

StopHook = Callable[[MigrationPhase], None]


@dataclass(frozen=True)
class TransitionResult:
    """
    Outcome of applying one status poll.

    Attributes:
        previous_phase: Phase before the poll was applied.
        state: Snapshot after the poll was applied.
        changed: False when the poll was ignored or a duplicate.
    """

    previous_phase: MigrationPhase
    state: PhaseState
    changed: bool

    @property
    def is_terminal(self) -> bool:
        return self.state.current_phase.is_terminal


class PhaseController:
    """
    Owns the PhaseState of the session's migration run.

    All mutation goes through begin(), restore(), apply() and reset(),
    serialized by an internal lock. Readers get copies via ``state`` or
    stream().

    Args:
        store: Where the state is persisted after every transition.
        reconciler: Fetches generated resources at reconciliation points.
        notifications: Where progress and failures are reported.
        tracer: Optional custom Tracer instance.
        enable_tracing: Whether to enable tracing (default True).

    Example:
        >>> controller = PhaseController(store, reconciler)
        >>> await controller.begin(MigrationMode.SCHEMA_AND_DATA, MigrationType.BULK)
        >>> result = await controller.apply(
        ...     MigrationStatus(progress_status=ProgressStatus.SCHEMA_COMPLETE)
        ... )
        >>> result.state.current_phase
        <MigrationPhase.DATA_MIGRATING: 'data_migrating'>
    """

    def __init__(
        self,
        store: MigrationStateStore,
        reconciler: ResourceReconciler | None = None,
        notifications: NotificationCenter | None = None,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._store = store
        self._reconciler = reconciler
        self._notifications = notifications or NotificationCenter()
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._state = PhaseState()
        self._mode: MigrationMode | None = None
        self._type: MigrationType | None = None
        self._number_of_shards = 0
        self._number_of_instances = 0
        self._lock = asyncio.Lock()
        self._stop_hooks: list[StopHook] = []
        self._subscribers: list[asyncio.Queue[PhaseState | None]] = []
        self.last_failure: MigrationFailedError | None = None
        self.last_resource_error: ResourceFetchError | None = None

    # -- read access ------------------------------------------------------

    @property
    def state(self) -> PhaseState:
        return self._state.snapshot()

    @property
    def mode(self) -> MigrationMode | None:
        return self._mode

    @property
    def migration_type(self) -> MigrationType | None:
        return self._type

    @property
    def is_in_progress(self) -> bool:
        return self._state.is_in_progress

    def add_stop_hook(self, hook: StopHook) -> None:
        """Register a callback run on a terminal phase, before persistence is cleared."""
        self._stop_hooks.append(hook)

    def remove_stop_hook(self, hook: StopHook) -> None:
        if hook in self._stop_hooks:
            self._stop_hooks.remove(hook)

    # -- lifecycle --------------------------------------------------------

    async def begin(
        self,
        mode: MigrationMode,
        migration_type: MigrationType,
        *,
        number_of_shards: int = 0,
        number_of_instances: int = 1,
    ) -> PhaseState:
        """
        Start tracking a freshly launched run.

        Data-only runs start in DATA_MIGRATING, every other mode in
        SCHEMA_MIGRATING, with all progress at 0.

        Raises:
            AlreadyInProgressError: If a run is still in progress.
        """
        async with self._lock:
            if self._state.is_in_progress:
                raise AlreadyInProgressError(self._state.current_phase)

            if mode == MigrationMode.DATA_ONLY:
                initial = PhaseState(
                    current_phase=MigrationPhase.DATA_MIGRATING,
                    is_in_progress=True,
                    data_progress_message=DATA_IN_PROGRESS,
                )
            else:
                initial = PhaseState(
                    current_phase=MigrationPhase.SCHEMA_MIGRATING,
                    is_in_progress=True,
                    schema_progress_message=SCHEMA_IN_PROGRESS,
                )
            self._state = initial
            self._mode = mode
            self._type = migration_type
            self._number_of_shards = number_of_shards
            self._number_of_instances = number_of_instances
            self.last_failure = None
            self.last_resource_error = None
            await self._persist()
            logger.info(
                "Migration started (mode=%s, type=%s, phase=%s)",
                mode.value,
                migration_type.value,
                initial.current_phase.value,
            )
            self._publish()
            return self._state.snapshot()

    async def restore(self, persisted: PersistedMigrationState) -> PhaseState:
        """Adopt state loaded from the store after a restart."""
        async with self._lock:
            self._state = persisted.to_phase_state()
            self._mode = persisted.mode
            self._type = persisted.type
            self._number_of_shards = persisted.number_of_shards
            self._number_of_instances = persisted.number_of_instances
            logger.info(
                "Restored migration state (phase=%s, in_progress=%s)",
                self._state.current_phase.value,
                self._state.is_in_progress,
            )
            self._publish()
            return self._state.snapshot()

    async def reset(self) -> None:
        """Return to IDLE and clear the persisted state."""
        async with self._lock:
            self._state = PhaseState()
            self._mode = None
            self._type = None
            self._number_of_shards = 0
            self._number_of_instances = 0
            await self._store.clear()
            logger.info("Migration state reset")
            self._publish()

    async def reconcile(self) -> list[GeneratedResource]:
        """
        Fetch the generated resources outside of a transition.

        Holds the controller lock, so it never interleaves with apply() or
        reset().

        Raises:
            ResourceFetchError: If the resources could not be fetched.
        """
        if self._reconciler is None:
            raise RuntimeError("PhaseController has no resource reconciler")
        async with self._lock:
            return await self._reconciler.reconcile()

    # -- transitions ------------------------------------------------------

    async def apply(self, status: MigrationStatus) -> TransitionResult:
        """
        Apply one decoded status poll.

        Args:
            status: The decoded poll.

        Returns:
            TransitionResult describing what changed.
        """
        async with self._lock:
            previous = self._state.current_phase
            with self._tracer.span(
                "migrateflow.controller.apply",
                {
                    ATTR_PHASE: previous.value,
                    ATTR_SIGNAL: status.progress_status.name,
                    ATTR_PROGRESS: status.progress,
                    ATTR_MIGRATION_MODE: self._mode.value if self._mode else "",
                    ATTR_MIGRATION_TYPE: self._type.value if self._type else "",
                },
            ) as span:
                if not previous.is_active:
                    logger.debug(
                        "Ignoring %s while %s", status.progress_status.name, previous.value
                    )
                    return TransitionResult(previous, self._state.snapshot(), changed=False)

                if status.is_failure:
                    await self._fail(status.error_message)
                else:
                    before = self._state.snapshot()
                    needs_reconcile = self._advance(status)
                    if self._state == before:
                        logger.debug(
                            "Duplicate or stale signal %s(%d) in %s",
                            status.progress_status.name,
                            status.progress,
                            previous.value,
                        )
                        return TransitionResult(previous, before, changed=False)
                    if self._state.current_phase == MigrationPhase.COMPLETE:
                        await self._complete()
                    else:
                        if needs_reconcile:
                            await self._reconcile_once()
                        await self._persist()

                if span is not None:
                    span.set_attribute(ATTR_NEXT_PHASE, self._state.current_phase.value)

            if self._state.current_phase != previous:
                logger.info(
                    "Migration phase %s -> %s",
                    previous.value,
                    self._state.current_phase.value,
                )
            self._publish()
            return TransitionResult(previous, self._state.snapshot(), changed=True)

    def _advance(self, status: MigrationStatus) -> bool:
        """
        Update the in-memory state for a non-failure signal.

        Returns:
            True if resources should be reconciled before persisting.
        """
        signal = status.progress_status
        progress = status.clamped_progress
        phase = self._state.current_phase

        if signal == ProgressStatus.SCHEMA_CREATION_IN_PROGRESS:
            if phase == MigrationPhase.SCHEMA_MIGRATING:
                self._raise_progress("schema_progress", progress)
            return False

        if signal == ProgressStatus.SCHEMA_COMPLETE:
            if phase != MigrationPhase.SCHEMA_MIGRATING:
                return False
            self._finish_schema()
            if self._mode == MigrationMode.SCHEMA_ONLY:
                self._finish_all()
                self._enter(MigrationPhase.COMPLETE)
            elif self._type == MigrationType.LOW_DOWNTIME:
                self._enter(MigrationPhase.PROVISIONING_RESOURCES)
                self._notifications.transient(PROVISIONING)
            else:
                self._enter_data()
            return False

        if self._mode == MigrationMode.SCHEMA_ONLY or signal == ProgressStatus.DEFAULT:
            return False

        if signal == ProgressStatus.DATA_WRITE_IN_PROGRESS:
            if phase in (MigrationPhase.SCHEMA_MIGRATING, MigrationPhase.PROVISIONING_RESOURCES):
                self._finish_schema()
                self._enter_data()
            if self._state.current_phase == MigrationPhase.DATA_MIGRATING:
                self._raise_progress("data_progress", progress)
            return False

        if signal == ProgressStatus.DATA_COMPLETE:
            if phase in _PRE_FOREIGN_KEY_PHASES:
                self._finish_schema()
                self._finish_data()
                self._enter(MigrationPhase.COMPLETE)
            return False

        if signal == ProgressStatus.FOREIGN_KEY_IN_PROGRESS:
            if phase in _PRE_FOREIGN_KEY_PHASES:
                self._finish_schema()
                self._finish_data()
                self._enter(MigrationPhase.FOREIGN_KEY_UPDATING)
                self._state.foreign_key_progress_message = FOREIGN_KEY_IN_PROGRESS
                self._raise_progress("foreign_key_progress", progress)
                return not self._state.resources_reconciled
            if phase == MigrationPhase.FOREIGN_KEY_UPDATING:
                self._raise_progress("foreign_key_progress", progress)
            return False

        if signal == ProgressStatus.FOREIGN_KEY_COMPLETE:
            self._finish_all()
            self._enter(MigrationPhase.COMPLETE)
        return False

    def _enter(self, target: MigrationPhase) -> None:
        current = self._state.current_phase
        if not current.can_transition_to(target):
            raise InvalidPhaseTransitionError(current, target)
        self._state.current_phase = target

    def _enter_data(self) -> None:
        self._enter(MigrationPhase.DATA_MIGRATING)
        self._state.data_progress_message = DATA_IN_PROGRESS

    def _raise_progress(self, name: str, value: int) -> None:
        if value > getattr(self._state, name):
            setattr(self._state, name, value)

    def _finish_schema(self) -> None:
        if self._mode is None or self._mode.migrates_schema:
            self._state.schema_progress = 100
            self._state.schema_progress_message = SCHEMA_COMPLETED

    def _finish_data(self) -> None:
        self._state.data_progress = 100
        self._state.data_progress_message = DATA_COMPLETED

    def _finish_all(self) -> None:
        self._state.schema_progress = 100
        self._state.data_progress = 100
        self._state.foreign_key_progress = 100
        if self._mode is None or self._mode.migrates_schema:
            self._state.schema_progress_message = SCHEMA_COMPLETED
        if self._mode is None or self._mode.migrates_data:
            self._state.data_progress_message = DATA_COMPLETED
        if self._state.current_phase == MigrationPhase.FOREIGN_KEY_UPDATING:
            self._state.foreign_key_progress_message = FOREIGN_KEY_COMPLETED

    # -- terminal phases --------------------------------------------------

    async def _complete(self) -> None:
        self._state.is_in_progress = False
        self._run_stop_hooks(MigrationPhase.COMPLETE)
        await self._reconcile_once()
        await self._store.clear()
        self._notifications.transient(MIGRATION_COMPLETED, NotificationLevel.SUCCESS)
        logger.info("Migration completed (mode=%s)", self._mode.value if self._mode else "")

    async def _fail(self, message: str) -> None:
        phase = self._state.current_phase
        mode = self._mode
        if (mode is None or mode.migrates_schema) and self._state.schema_progress < 100:
            self._state.schema_progress_message = SCHEMA_CANCELLED
        if (mode is None or mode.migrates_data) and self._state.data_progress < 100:
            self._state.data_progress_message = DATA_CANCELLED
        if phase == MigrationPhase.FOREIGN_KEY_UPDATING:
            self._state.foreign_key_progress_message = FOREIGN_KEY_CANCELLED
        self._state.current_phase = MigrationPhase.FAILED
        self._state.is_in_progress = False
        self._state.error_message = message

        self.last_failure = MigrationFailedError(message, phase=phase)
        self._run_stop_hooks(MigrationPhase.FAILED)
        await self._store.clear()
        self._notifications.persistent(message, NotificationLevel.ERROR)
        logger.error("Migration failed during %s: %s", phase.value, message)

    def _run_stop_hooks(self, phase: MigrationPhase) -> None:
        for hook in list(self._stop_hooks):
            hook(phase)

    async def _reconcile_once(self) -> None:
        if self._reconciler is None or self._state.resources_reconciled:
            return
        try:
            await self._reconciler.reconcile()
        except ResourceFetchError as exc:
            self.last_resource_error = exc
            logger.error("Fetching generated resources failed: %s", exc.message)
            self._notifications.persistent(exc.message, NotificationLevel.ERROR)
            return
        self._state.resources_reconciled = True

    async def _persist(self) -> None:
        await self._store.save(
            PersistedMigrationState.from_phase_state(
                self._state,
                mode=self._mode,
                migration_type=self._type,
                is_target_detail_set=self._mode is not None,
                number_of_shards=self._number_of_shards,
                number_of_instances=self._number_of_instances,
            )
        )

    # -- subscriptions ----------------------------------------------------

    def _publish(self) -> None:
        snapshot = self._state.snapshot()
        for queue in self._subscribers:
            queue.put_nowait(snapshot)

    async def stream(self, *, include_current: bool = True) -> AsyncIterator[PhaseState]:
        """
        Yield a snapshot after every applied change.

        The iterator ends after yielding a terminal state, or when close()
        is called.

        Example:
            >>> async for state in controller.stream():
            ...     render(state)
        """
        queue: asyncio.Queue[PhaseState | None] = asyncio.Queue()
        self._subscribers.append(queue)
        try:
            if include_current:
                current = self._state.snapshot()
                yield current
                if current.current_phase.is_terminal:
                    return
            while True:
                state = await queue.get()
                if state is None:
                    return
                yield state
                if state.current_phase.is_terminal:
                    return
        finally:
            self._subscribers.remove(queue)

    def close(self) -> None:
        """End every active stream."""
        for queue in self._subscribers:
            queue.put_nowait(None)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)


__all__ = [
    "PhaseController",
    "TransitionResult",
    "StopHook",
]
