"""
In-memory migration state store.

Keeps the record in a dictionary for tests and ephemeral sessions. The
data is lost when the process ends.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from migrateflow.observability import ATTR_STORE, Tracer, create_tracer
from migrateflow.state.interface import (
    FIELD_NAMES,
    MigrationStateStore,
    PersistedMigrationState,
    decode_value,
    encode_value,
)

logger = logging.getLogger(__name__)


class InMemoryMigrationStateStore(MigrationStateStore):
    """
    In-memory implementation of MigrationStateStore.

    Example:
        >>> store = InMemoryMigrationStateStore()
        >>> await store.save(PersistedMigrationState(is_in_progress=True))
        >>> (await store.load()).is_in_progress
        True
    """

    def __init__(
        self,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._record: dict[str, str] = {}
        self._lock = asyncio.Lock()

    async def load(self) -> PersistedMigrationState | None:
        with self._tracer.span("migrateflow.state.load", {ATTR_STORE: "memory"}):
            async with self._lock:
                if not self._record:
                    return None
                return PersistedMigrationState.from_record(self._record)

    async def save(self, state: PersistedMigrationState) -> None:
        with self._tracer.span("migrateflow.state.save", {ATTR_STORE: "memory"}):
            async with self._lock:
                self._record = state.to_record()
                logger.debug("Saved migration state (phase=%s)", state.current_phase)

    async def clear(self) -> None:
        with self._tracer.span("migrateflow.state.clear", {ATTR_STORE: "memory"}):
            async with self._lock:
                self._record.clear()

    async def get_field(self, key: str) -> Any:
        _check_key(key)
        async with self._lock:
            if key not in self._record:
                return getattr(PersistedMigrationState(), key)
            return decode_value(key, self._record[key])

    async def set_field(self, key: str, value: Any) -> None:
        _check_key(key)
        async with self._lock:
            self._record[key] = encode_value(value)

    @property
    def record(self) -> dict[str, str]:
        """Copy of the raw stored record, for inspection in tests."""
        return dict(self._record)


def _check_key(key: str) -> None:
    if key not in FIELD_NAMES:
        raise KeyError(key)


__all__ = ["InMemoryMigrationStateStore"]
