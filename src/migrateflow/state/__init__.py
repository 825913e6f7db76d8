"""
Persistence for migration state across restarts.

Key Components:
    PersistedMigrationState: Flat, typed record of the resumable state.
    MigrationStateStore: Abstract interface with load/save/clear and
        per-field access.

Backend Implementations:
    InMemoryMigrationStateStore: Testing and ephemeral sessions.
    SQLiteMigrationStateStore: File-backed store using aiosqlite.
"""

from migrateflow.state.in_memory import InMemoryMigrationStateStore
from migrateflow.state.interface import (
    FIELD_NAMES,
    MigrationStateStore,
    PersistedMigrationState,
)
from migrateflow.state.sqlite import SQLiteMigrationStateStore

__all__ = [
    "FIELD_NAMES",
    "PersistedMigrationState",
    "MigrationStateStore",
    "InMemoryMigrationStateStore",
    "SQLiteMigrationStateStore",
]
