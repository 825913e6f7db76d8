"""
Shared pytest fixtures for the migrateflow tests.

This module provides:
- A scripted service client (fake_client)
- State stores (memory_store, sqlite_store)
- A notification center with a controllable clock (clock, notifications)
- Wired orchestration components with tracing disabled
  (reconciler, controller, poller, launcher)
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from datetime import UTC, datetime, timedelta

import pytest
import pytest_asyncio

from migrateflow.config import NotificationConfig, PollerConfig
from migrateflow.controller import PhaseController
from migrateflow.launcher import MigrationLauncher
from migrateflow.notifications import NotificationCenter
from migrateflow.poller import ProgressPoller
from migrateflow.reconciler import ResourceReconciler
from migrateflow.state import InMemoryMigrationStateStore, SQLiteMigrationStateStore
from tests.fixtures import FakeMigrationClient

FAST_POLL = PollerConfig(interval_seconds=0.01)


class FakeClock:
    """Manually advanced clock for TTL tests."""

    def __init__(self) -> None:
        self.now = datetime(2024, 1, 1, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def fake_client() -> FakeMigrationClient:
    return FakeMigrationClient()


@pytest.fixture
def memory_store() -> InMemoryMigrationStateStore:
    return InMemoryMigrationStateStore(enable_tracing=False)


@pytest.fixture
def sqlite_store(tmp_path) -> SQLiteMigrationStateStore:
    return SQLiteMigrationStateStore(str(tmp_path / "state.db"), enable_tracing=False)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def notifications(clock: FakeClock) -> NotificationCenter:
    return NotificationCenter(NotificationConfig(transient_ttl_seconds=5.0), clock=clock)


@pytest.fixture
def reconciler(fake_client: FakeMigrationClient) -> ResourceReconciler:
    return ResourceReconciler(fake_client, page_size=10, enable_tracing=False)


@pytest.fixture
def controller(
    memory_store: InMemoryMigrationStateStore,
    reconciler: ResourceReconciler,
    notifications: NotificationCenter,
) -> PhaseController:
    return PhaseController(memory_store, reconciler, notifications, enable_tracing=False)


@pytest_asyncio.fixture
async def poller(
    fake_client: FakeMigrationClient,
    controller: PhaseController,
    notifications: NotificationCenter,
) -> AsyncGenerator[ProgressPoller, None]:
    poller = ProgressPoller(
        fake_client,
        controller,
        FAST_POLL,
        notifications,
        enable_tracing=False,
    )
    yield poller
    await poller.stop()


@pytest.fixture
def launcher(
    fake_client: FakeMigrationClient,
    controller: PhaseController,
    poller: ProgressPoller,
    reconciler: ResourceReconciler,
    notifications: NotificationCenter,
) -> MigrationLauncher:
    return MigrationLauncher(
        fake_client,
        controller,
        poller,
        reconciler,
        notifications,
        enable_tracing=False,
    )
