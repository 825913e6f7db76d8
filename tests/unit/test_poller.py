"""
Unit tests for ProgressPoller.

The poll interval is shortened so the loop runs quickly; each test waits
for the loop to exit on its own or stops it explicitly.
"""

from __future__ import annotations

import asyncio
import logging

import pytest

from migrateflow.config import PollerConfig
from migrateflow.controller import PhaseController
from migrateflow.exceptions import MalformedResponseError, ServiceUnavailableError
from migrateflow.models import MigrationMode, MigrationPhase, MigrationType, ProgressStatus
from migrateflow.notifications import NotificationCenter, NotificationLevel
from migrateflow.observability import MockTracer
from migrateflow.poller import POLL_APPLY_FAILED, ProgressPoller
from migrateflow.reconciler import ResourceReconciler
from migrateflow.state import InMemoryMigrationStateStore
from tests.fixtures import (
    ControllableStateStore,
    FakeMigrationClient,
    failure,
    status,
    wait_until,
)


def unavailable() -> ServiceUnavailableError:
    return ServiceUnavailableError("connection refused", operation="get_status")


class TestPollerConfig:
    def test_default_interval(self) -> None:
        assert PollerConfig().interval_seconds == 5.0

    def test_rejects_non_positive_interval(self) -> None:
        with pytest.raises(ValueError):
            PollerConfig(interval_seconds=0)

    def test_dict_round_trip(self) -> None:
        config = PollerConfig(interval_seconds=2.5)
        assert PollerConfig.from_dict(config.to_dict()) == config


class TestPollOnce:
    """Tests for ProgressPoller.poll_once()."""

    @pytest.mark.asyncio
    async def test_applies_status(
        self,
        poller: ProgressPoller,
        controller: PhaseController,
        fake_client: FakeMigrationClient,
    ) -> None:
        fake_client.statuses = [status(ProgressStatus.SCHEMA_CREATION_IN_PROGRESS, 25)]
        await controller.begin(MigrationMode.SCHEMA_AND_DATA, MigrationType.BULK)

        await poller.poll_once()

        assert controller.state.schema_progress == 25
        assert poller.poll_count == 1

    @pytest.mark.asyncio
    async def test_service_error_is_transient(
        self,
        poller: ProgressPoller,
        controller: PhaseController,
        fake_client: FakeMigrationClient,
        notifications: NotificationCenter,
    ) -> None:
        """A failed poll never fails the migration."""
        fake_client.statuses = [unavailable()]
        await controller.begin(MigrationMode.SCHEMA_AND_DATA, MigrationType.BULK)

        await poller.poll_once()

        assert poller.failure_count == 1
        assert controller.state.current_phase == MigrationPhase.SCHEMA_MIGRATING
        assert controller.is_in_progress
        assert notifications.history[-1].message == "connection refused"
        assert notifications.history[-1].level == NotificationLevel.WARNING

    @pytest.mark.asyncio
    async def test_tick_span(
        self,
        controller: PhaseController,
        fake_client: FakeMigrationClient,
    ) -> None:
        tracer = MockTracer()
        poller = ProgressPoller(fake_client, controller, tracer=tracer)
        await controller.begin(MigrationMode.SCHEMA_AND_DATA, MigrationType.BULK)

        await poller.poll_once()

        assert tracer.span_names == ["migrateflow.poller.tick"]


class TestPollingLoop:
    """Tests for the background polling loop."""

    @pytest.mark.asyncio
    async def test_runs_until_complete(
        self,
        poller: ProgressPoller,
        controller: PhaseController,
        fake_client: FakeMigrationClient,
    ) -> None:
        fake_client.statuses = [
            status(ProgressStatus.SCHEMA_CREATION_IN_PROGRESS, 50),
            status(ProgressStatus.SCHEMA_COMPLETE, 100),
        ]
        await controller.begin(MigrationMode.SCHEMA_ONLY, MigrationType.BULK)

        poller.start()
        await asyncio.wait_for(poller.wait(), timeout=2)

        assert controller.state.current_phase == MigrationPhase.COMPLETE
        assert not poller.is_running
        assert fake_client.status_calls == 2

    @pytest.mark.asyncio
    async def test_transient_failures_then_success(
        self,
        poller: ProgressPoller,
        controller: PhaseController,
        fake_client: FakeMigrationClient,
    ) -> None:
        fake_client.statuses = [
            unavailable(),
            MalformedResponseError("garbage", operation="get_status"),
            status(ProgressStatus.SCHEMA_COMPLETE, 100),
        ]
        await controller.begin(MigrationMode.SCHEMA_ONLY, MigrationType.BULK)

        poller.start()
        await asyncio.wait_for(poller.wait(), timeout=2)

        assert poller.failure_count == 2
        assert controller.state.current_phase == MigrationPhase.COMPLETE

    @pytest.mark.asyncio
    async def test_stops_on_failure(
        self,
        poller: ProgressPoller,
        controller: PhaseController,
        fake_client: FakeMigrationClient,
    ) -> None:
        fake_client.statuses = [failure("replication slot missing")]
        await controller.begin(MigrationMode.SCHEMA_AND_DATA, MigrationType.LOW_DOWNTIME)

        poller.start()
        await asyncio.wait_for(poller.wait(), timeout=2)

        assert controller.state.current_phase == MigrationPhase.FAILED
        assert controller.state.error_message == "replication slot missing"
        assert fake_client.status_calls == 1

    @pytest.mark.asyncio
    async def test_exits_when_not_in_progress(
        self,
        poller: ProgressPoller,
        fake_client: FakeMigrationClient,
    ) -> None:
        """Nothing to poll without a running migration."""
        poller.start()
        await asyncio.wait_for(poller.wait(), timeout=2)

        assert fake_client.status_calls == 0

    @pytest.mark.asyncio
    async def test_stop_cancels_loop(
        self,
        controller: PhaseController,
        fake_client: FakeMigrationClient,
    ) -> None:
        poller = ProgressPoller(
            fake_client,
            controller,
            PollerConfig(interval_seconds=60),
            enable_tracing=False,
        )
        await controller.begin(MigrationMode.SCHEMA_AND_DATA, MigrationType.BULK)

        poller.start()
        assert poller.is_running
        await poller.stop()

        assert not poller.is_running
        assert fake_client.status_calls == 0
        assert controller.is_in_progress

    @pytest.mark.asyncio
    async def test_start_is_idempotent(
        self,
        controller: PhaseController,
        fake_client: FakeMigrationClient,
    ) -> None:
        poller = ProgressPoller(
            fake_client,
            controller,
            PollerConfig(interval_seconds=60),
            enable_tracing=False,
        )
        await controller.begin(MigrationMode.SCHEMA_AND_DATA, MigrationType.BULK)

        poller.start()
        task = poller._task
        poller.start()

        assert poller._task is task
        await poller.stop()

    @pytest.mark.asyncio
    async def test_stop_without_start(self) -> None:
        controller = PhaseController(
            InMemoryMigrationStateStore(enable_tracing=False), enable_tracing=False
        )
        poller = ProgressPoller(FakeMigrationClient(), controller, enable_tracing=False)
        await poller.stop()
        assert not poller.is_running


class TestStopDuringApply:
    """stop() lets a status that is being applied finish."""

    @pytest.mark.asyncio
    async def test_completion_persisted_before_stop_returns(
        self,
        poller: ProgressPoller,
        controller: PhaseController,
        fake_client: FakeMigrationClient,
        memory_store: InMemoryMigrationStateStore,
    ) -> None:
        fake_client.statuses = [status(ProgressStatus.SCHEMA_COMPLETE, 100)]
        fake_client.resource_gate = asyncio.Event()
        await controller.begin(MigrationMode.SCHEMA_ONLY, MigrationType.BULK)
        poller.start()
        await wait_until(lambda: fake_client.resource_calls == 1)

        stopping = asyncio.create_task(poller.stop())
        await asyncio.sleep(0.02)
        assert not stopping.done()

        fake_client.resource_gate.set()
        await asyncio.wait_for(stopping, timeout=2)

        assert controller.state.current_phase == MigrationPhase.COMPLETE
        assert controller.state.resources_reconciled
        assert await memory_store.load() is None
        assert not poller.is_running

    @pytest.mark.asyncio
    async def test_stop_while_reading_status_cancels(
        self,
        controller: PhaseController,
        memory_store: InMemoryMigrationStateStore,
    ) -> None:
        """A status read that is still in flight is abandoned."""

        class HangingClient(FakeMigrationClient):
            async def get_status(self):
                self.status_calls += 1
                await asyncio.Event().wait()

        client = HangingClient()
        poller = ProgressPoller(client, controller, PollerConfig(0.01), enable_tracing=False)
        await controller.begin(MigrationMode.SCHEMA_AND_DATA, MigrationType.BULK)
        poller.start()
        await wait_until(lambda: client.status_calls == 1)

        await asyncio.wait_for(poller.stop(), timeout=2)

        assert not poller.is_running
        persisted = await memory_store.load()
        assert persisted is not None
        assert persisted.is_in_progress


class TestUnexpectedErrors:
    """Errors other than ServiceError while applying a status."""

    @pytest.mark.asyncio
    async def test_store_failure_keeps_polling(
        self,
        fake_client: FakeMigrationClient,
        reconciler: ResourceReconciler,
        notifications: NotificationCenter,
    ) -> None:
        store = ControllableStateStore()
        controller = PhaseController(store, reconciler, notifications, enable_tracing=False)
        poller = ProgressPoller(
            fake_client, controller, PollerConfig(0.01), notifications, enable_tracing=False
        )
        fake_client.statuses = [
            status(ProgressStatus.SCHEMA_CREATION_IN_PROGRESS, 10),
            status(ProgressStatus.SCHEMA_CREATION_IN_PROGRESS, 20),
        ]
        await controller.begin(MigrationMode.SCHEMA_ONLY, MigrationType.BULK)
        store.save_error = OSError("disk full")

        poller.start()
        try:
            await wait_until(lambda: poller.failure_count >= 2)

            assert poller.is_running
            assert controller.is_in_progress
            assert any(n.message == POLL_APPLY_FAILED for n in notifications.history)

            store.save_error = None
            fake_client.statuses = [status(ProgressStatus.SCHEMA_COMPLETE, 100)]
            await asyncio.wait_for(poller.wait(), timeout=2)

            assert controller.state.current_phase == MigrationPhase.COMPLETE
            assert await store.load() is None
        finally:
            await poller.stop()

    @pytest.mark.asyncio
    async def test_failure_is_logged(
        self,
        fake_client: FakeMigrationClient,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        store = ControllableStateStore()
        controller = PhaseController(store, enable_tracing=False)
        poller = ProgressPoller(fake_client, controller, PollerConfig(0.01), enable_tracing=False)
        fake_client.statuses = [status(ProgressStatus.SCHEMA_CREATION_IN_PROGRESS, 10)]
        await controller.begin(MigrationMode.SCHEMA_ONLY, MigrationType.BULK)
        store.save_error = OSError("disk full")

        with caplog.at_level(logging.ERROR, logger="migrateflow.poller"):
            poller.start()
            await wait_until(lambda: poller.failure_count >= 1)
            await poller.stop()

        assert "Applying status poll 1 failed" in caplog.text
        assert "disk full" in caplog.text
