"""
ProgressPoller - periodic status polling.

Runs one asyncio task that sleeps for the configured interval, reads the
migration status and hands it to the PhaseController, then sleeps again.
Polls are strictly serialized: the next sleep starts only after the
previous response has been applied.

The loop ends when:
    - the controller reaches a terminal phase (the controller calls the
      poller's stop hook before it clears persisted state),
    - stop() is called, or
    - the controller reports the run is no longer in progress.

A failed poll (transport error, 5xx, undecodable body) is reported as a
transient notification and retried on the next tick. It never fails the
migration; only a server-reported error message does.
Any other error raised while applying a status is logged and reported the
same way.

stop() never cancels the task while a status is being applied, so a
transition that has started is always persisted before the loop exits.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING

from migrateflow.config import PollerConfig
from migrateflow.exceptions import ServiceError
from migrateflow.models import MigrationPhase
from migrateflow.notifications import NotificationCenter, NotificationLevel
from migrateflow.observability import (
    ATTR_ERROR_TYPE,
    ATTR_POLL_COUNT,
    ATTR_POLL_INTERVAL,
    Tracer,
    create_tracer,
)

if TYPE_CHECKING:
    from migrateflow.client import MigrationServiceClient
    from migrateflow.controller import PhaseController

logger = logging.getLogger(__name__)

POLL_APPLY_FAILED = "Migration progress could not be updated, retrying"


class ProgressPoller:
    """
    Cancellable periodic status poller.

    Args:
        client: Service client used to read status.
        controller: Receives each decoded status.
        config: Poll interval settings.
        notifications: Where failed polls are reported.
        tracer: Optional custom Tracer instance.
        enable_tracing: Whether to enable tracing (default True).

    Example:
        >>> poller = ProgressPoller(client, controller)
        >>> poller.start()
        >>> ...
        >>> await poller.stop()
    """

    def __init__(
        self,
        client: MigrationServiceClient,
        controller: PhaseController,
        config: PollerConfig | None = None,
        notifications: NotificationCenter | None = None,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._client = client
        self._controller = controller
        self._config = config or PollerConfig()
        self._notifications = notifications or NotificationCenter()
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._task: asyncio.Task[None] | None = None
        self._stop_event = asyncio.Event()
        self._applying = False
        self.poll_count = 0
        self.failure_count = 0
        controller.add_stop_hook(self._on_terminal)

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def interval(self) -> float:
        return self._config.interval_seconds

    def start(self) -> None:
        """
        Start polling in a background task.

        Does nothing if the poller is already running.
        """
        if self.is_running:
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run(), name="migrateflow-progress-poller")
        logger.info("Progress poller started (interval=%.1fs)", self.interval)

    def request_stop(self) -> None:
        """Ask the loop to exit before its next tick without waiting for it."""
        self._stop_event.set()

    async def stop(self) -> None:
        """
        Stop polling and wait for the loop to exit.

        A status that is being applied is allowed to finish first.
        """
        self._stop_event.set()
        task = self._task
        if task is None:
            return
        if task is not asyncio.current_task() and not task.done():
            if not self._applying:
                task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._task = None
        logger.info("Progress poller stopped after %d poll(s)", self.poll_count)

    async def wait(self) -> None:
        """Wait until the loop exits on its own."""
        if self._task is not None:
            await self._task

    def _on_terminal(self, phase: MigrationPhase) -> None:
        logger.debug("Stopping poller on terminal phase %s", phase.value)
        self._stop_event.set()

    async def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval)
            except TimeoutError:
                pass
            if self._stop_event.is_set() or not self._controller.is_in_progress:
                break
            try:
                await self.poll_once()
            except Exception:
                self.failure_count += 1
                logger.exception(
                    "Applying status poll %d failed, retrying in %.1fs",
                    self.poll_count,
                    self.interval,
                )
                self._notifications.transient(POLL_APPLY_FAILED, NotificationLevel.ERROR)

    async def poll_once(self) -> None:
        """
        Read the status once and apply it.

        Service errors are reported and swallowed so the loop keeps going.
        """
        self.poll_count += 1
        with self._tracer.span(
            "migrateflow.poller.tick",
            {ATTR_POLL_COUNT: self.poll_count, ATTR_POLL_INTERVAL: self.interval},
        ) as span:
            try:
                status = await self._client.get_status()
            except ServiceError as exc:
                self.failure_count += 1
                if span is not None:
                    span.set_attribute(ATTR_ERROR_TYPE, type(exc).__name__)
                logger.warning(
                    "Status poll %d failed, retrying in %.1fs: %s",
                    self.poll_count,
                    self.interval,
                    exc.message,
                )
                self._notifications.transient(exc.message, NotificationLevel.WARNING)
                return
            self._applying = True
            try:
                await self._controller.apply(status)
            finally:
                self._applying = False


__all__ = ["ProgressPoller", "POLL_APPLY_FAILED"]
