"""
SQLite migration state store.

Stores the persisted record as key/value rows in a single table using the
async aiosqlite driver:

    CREATE TABLE migration_state (
        key   TEXT PRIMARY KEY,
        value TEXT NOT NULL
    )

The table is created on first use. Each operation opens its own
connection and commits before returning.
"""

from __future__ import annotations

import logging
from typing import Any

import aiosqlite

from migrateflow.observability import ATTR_STORE, Tracer, create_tracer
from migrateflow.state.interface import (
    FIELD_NAMES,
    MigrationStateStore,
    PersistedMigrationState,
    decode_value,
    encode_value,
)

logger = logging.getLogger(__name__)

_CREATE_TABLE = """
    CREATE TABLE IF NOT EXISTS migration_state (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL
    )
"""


class SQLiteMigrationStateStore(MigrationStateStore):
    """
    SQLite implementation of MigrationStateStore.

    Args:
        database_path: Path to the SQLite database file.
        tracer: Optional custom Tracer instance.
        enable_tracing: Whether to enable tracing (default True).

    Example:
        >>> store = SQLiteMigrationStateStore("migrateflow-state.db")
        >>> persisted = await store.load()
        >>> if persisted and persisted.is_in_progress:
        ...     resume(persisted)
    """

    def __init__(
        self,
        database_path: str,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._database_path = database_path
        self._schema_ready = False
        logger.debug("SQLiteMigrationStateStore initialized with %s", database_path)

    async def load(self) -> PersistedMigrationState | None:
        with self._tracer.span("migrateflow.state.load", {ATTR_STORE: "sqlite"}):
            async with aiosqlite.connect(self._database_path) as conn:
                await self._ensure_schema(conn)
                cursor = await conn.execute("SELECT key, value FROM migration_state")
                rows = await cursor.fetchall()
                await cursor.close()

        if not rows:
            return None
        return PersistedMigrationState.from_record({key: value for key, value in rows})

    async def save(self, state: PersistedMigrationState) -> None:
        with self._tracer.span("migrateflow.state.save", {ATTR_STORE: "sqlite"}):
            async with aiosqlite.connect(self._database_path) as conn:
                await self._ensure_schema(conn)
                await conn.execute("DELETE FROM migration_state")
                await conn.executemany(
                    "INSERT INTO migration_state (key, value) VALUES (?, ?)",
                    list(state.to_record().items()),
                )
                await conn.commit()
        logger.debug("Saved migration state (phase=%s)", state.current_phase)

    async def clear(self) -> None:
        with self._tracer.span("migrateflow.state.clear", {ATTR_STORE: "sqlite"}):
            async with aiosqlite.connect(self._database_path) as conn:
                await self._ensure_schema(conn)
                await conn.execute("DELETE FROM migration_state")
                await conn.commit()

    async def get_field(self, key: str) -> Any:
        if key not in FIELD_NAMES:
            raise KeyError(key)
        async with aiosqlite.connect(self._database_path) as conn:
            await self._ensure_schema(conn)
            cursor = await conn.execute(
                "SELECT value FROM migration_state WHERE key = ?",
                (key,),
            )
            row = await cursor.fetchone()
            await cursor.close()

        if row is None:
            return getattr(PersistedMigrationState(), key)
        return decode_value(key, row[0])

    async def set_field(self, key: str, value: Any) -> None:
        if key not in FIELD_NAMES:
            raise KeyError(key)
        async with aiosqlite.connect(self._database_path) as conn:
            await self._ensure_schema(conn)
            await conn.execute(
                "INSERT OR REPLACE INTO migration_state (key, value) VALUES (?, ?)",
                (key, encode_value(value)),
            )
            await conn.commit()

    async def _ensure_schema(self, conn: aiosqlite.Connection) -> None:
        if self._schema_ready:
            return
        await conn.execute(_CREATE_TABLE)
        await conn.commit()
        self._schema_ready = True


__all__ = ["SQLiteMigrationStateStore"]
