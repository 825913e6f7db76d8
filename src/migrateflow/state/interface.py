"""
Persisted migration state and the store interface.

The state is a flat record of primitive fields under fixed key names so
that each field can be read or written on its own, while load() and
save() move the whole record at once. Values are stored as text.

Key Components:
- PersistedMigrationState: Typed view of the persisted record
- MigrationStateStore: Abstract base class for store implementations
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, fields
from typing import Any

from migrateflow.models import MigrationMode, MigrationPhase, MigrationType, PhaseState

_TRUE = "true"
_FALSE = "false"


@dataclass(frozen=True)
class PersistedMigrationState:
    """
    Everything needed to resume a migration after a restart.

    Field names double as the storage keys.
    """

    migration_mode: str = ""
    migration_type: str = ""
    current_phase: str = MigrationPhase.IDLE.value
    is_in_progress: bool = False
    has_schema_migration_started: bool = False
    has_data_migration_started: bool = False
    has_data_migration_completed: bool = False
    has_foreign_key_update_started: bool = False
    schema_progress: int = 0
    data_progress: int = 0
    foreign_key_progress: int = 0
    schema_progress_message: str = ""
    data_progress_message: str = ""
    foreign_key_progress_message: str = ""
    error_message: str = ""
    resources_reconciled: bool = False
    is_target_detail_set: bool = False
    number_of_shards: int = 0
    number_of_instances: int = 0

    @classmethod
    def from_phase_state(
        cls,
        state: PhaseState,
        *,
        mode: MigrationMode | None,
        migration_type: MigrationType | None,
        is_target_detail_set: bool = False,
        number_of_shards: int = 0,
        number_of_instances: int = 0,
    ) -> PersistedMigrationState:
        phase = state.current_phase
        return cls(
            migration_mode=mode.value if mode else "",
            migration_type=migration_type.value if migration_type else "",
            current_phase=phase.value,
            is_in_progress=state.is_in_progress,
            has_schema_migration_started=(
                phase != MigrationPhase.IDLE and mode != MigrationMode.DATA_ONLY
            ),
            has_data_migration_started=(
                phase in (MigrationPhase.DATA_MIGRATING, MigrationPhase.FOREIGN_KEY_UPDATING)
                or state.data_progress > 0
            ),
            has_data_migration_completed=state.data_progress == 100,
            has_foreign_key_update_started=(
                phase == MigrationPhase.FOREIGN_KEY_UPDATING or state.foreign_key_progress > 0
            ),
            schema_progress=state.schema_progress,
            data_progress=state.data_progress,
            foreign_key_progress=state.foreign_key_progress,
            schema_progress_message=state.schema_progress_message,
            data_progress_message=state.data_progress_message,
            foreign_key_progress_message=state.foreign_key_progress_message,
            error_message=state.error_message,
            resources_reconciled=state.resources_reconciled,
            is_target_detail_set=is_target_detail_set,
            number_of_shards=number_of_shards,
            number_of_instances=number_of_instances,
        )

    def to_phase_state(self) -> PhaseState:
        return PhaseState(
            current_phase=MigrationPhase(self.current_phase),
            schema_progress=self.schema_progress,
            data_progress=self.data_progress,
            foreign_key_progress=self.foreign_key_progress,
            error_message=self.error_message,
            is_in_progress=self.is_in_progress,
            schema_progress_message=self.schema_progress_message,
            data_progress_message=self.data_progress_message,
            foreign_key_progress_message=self.foreign_key_progress_message,
            resources_reconciled=self.resources_reconciled,
        )

    @property
    def mode(self) -> MigrationMode | None:
        return MigrationMode(self.migration_mode) if self.migration_mode else None

    @property
    def type(self) -> MigrationType | None:
        return MigrationType(self.migration_type) if self.migration_type else None

    def to_record(self) -> dict[str, str]:
        """Encode every field as text, keyed by field name."""
        return {f.name: encode_value(getattr(self, f.name)) for f in fields(self)}

    @classmethod
    def from_record(cls, record: dict[str, str]) -> PersistedMigrationState:
        """
        Decode a stored record. Unknown keys are ignored and missing keys
        take their defaults.
        """
        values: dict[str, Any] = {}
        for f in fields(cls):
            if f.name in record:
                values[f.name] = decode_value(f.name, record[f.name])
        return cls(**values)


FIELD_NAMES: tuple[str, ...] = tuple(f.name for f in fields(PersistedMigrationState))

_FIELD_DEFAULTS: dict[str, Any] = {
    f.name: f.default for f in fields(PersistedMigrationState)
}


def encode_value(value: Any) -> str:
    if isinstance(value, bool):
        return _TRUE if value else _FALSE
    return str(value)


def decode_value(key: str, raw: str) -> Any:
    """
    Decode a stored string into the type of the named field.

    Raises:
        KeyError: If key is not a persisted field.
        ValueError: If raw cannot be decoded as the field's type.
    """
    default = _FIELD_DEFAULTS[key]
    if isinstance(default, bool):
        if raw not in (_TRUE, _FALSE):
            raise ValueError(f"{key} must be '{_TRUE}' or '{_FALSE}', got {raw!r}")
        return raw == _TRUE
    if isinstance(default, int):
        return int(raw)
    return raw


class MigrationStateStore(ABC):
    """
    Abstract base class for persisted migration state.

    Implementations must make save() durable before it returns so a
    restart observes the last applied transition.
    """

    @abstractmethod
    async def load(self) -> PersistedMigrationState | None:
        """
        Load the persisted state.

        Returns:
            The state, or None if nothing has been persisted.
        """
        pass

    @abstractmethod
    async def save(self, state: PersistedMigrationState) -> None:
        """Replace the persisted record with state."""
        pass

    @abstractmethod
    async def clear(self) -> None:
        """Remove every persisted field."""
        pass

    @abstractmethod
    async def get_field(self, key: str) -> Any:
        """
        Read a single field.

        Returns:
            The decoded value, or the field default if it is not stored.

        Raises:
            KeyError: If key is not a persisted field.
        """
        pass

    @abstractmethod
    async def set_field(self, key: str, value: Any) -> None:
        """
        Write a single field.

        Raises:
            KeyError: If key is not a persisted field.
        """
        pass


__all__ = [
    "PersistedMigrationState",
    "MigrationStateStore",
    "FIELD_NAMES",
    "encode_value",
    "decode_value",
]
