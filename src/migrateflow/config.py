"""
Configuration for migrateflow components.

Component tuning lives in frozen dataclasses that validate themselves on
construction. Process-level settings (service URL, timeouts, state file)
come from the environment through ClientSettings.

Example:
    >>> from migrateflow.config import PollerConfig, get_settings
    >>>
    >>> settings = get_settings()
    >>> poller_config = PollerConfig(interval_seconds=settings.poll_interval_seconds)
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Any

from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_POLL_INTERVAL_SECONDS = 5.0
DEFAULT_NOTIFICATION_TTL_SECONDS = 5.0
DEFAULT_PAGE_SIZE = 10


@dataclass(frozen=True)
class PollerConfig:
    """
    Configuration for the progress poller.

    Attributes:
        interval_seconds: Delay between the end of one poll and the start
            of the next.
    """

    interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS

    def __post_init__(self) -> None:
        if self.interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be positive, got {self.interval_seconds}")

    def to_dict(self) -> dict[str, Any]:
        return {"interval_seconds": self.interval_seconds}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PollerConfig:
        return cls(
            interval_seconds=data.get("interval_seconds", DEFAULT_POLL_INTERVAL_SECONDS),
        )


@dataclass(frozen=True)
class NotificationConfig:
    """
    Configuration for user-facing notifications.

    Attributes:
        transient_ttl_seconds: How long a transient notification stays
            visible before it expires on its own.
        max_history: Number of past notifications kept for inspection.
    """

    transient_ttl_seconds: float = DEFAULT_NOTIFICATION_TTL_SECONDS
    max_history: int = 100

    def __post_init__(self) -> None:
        if self.transient_ttl_seconds <= 0:
            raise ValueError(
                f"transient_ttl_seconds must be positive, got {self.transient_ttl_seconds}"
            )
        if self.max_history < 1:
            raise ValueError(f"max_history must be at least 1, got {self.max_history}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "transient_ttl_seconds": self.transient_ttl_seconds,
            "max_history": self.max_history,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> NotificationConfig:
        return cls(
            transient_ttl_seconds=data.get(
                "transient_ttl_seconds", DEFAULT_NOTIFICATION_TTL_SECONDS
            ),
            max_history=data.get("max_history", 100),
        )


class ClientSettings(BaseSettings):
    """
    Environment-driven settings, read from ``MIGRATEFLOW_*`` variables or ``.env``.
    """

    service_url: str = "http://localhost:8080"
    request_timeout_seconds: float = 8.0
    poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS
    notification_ttl_seconds: float = DEFAULT_NOTIFICATION_TTL_SECONDS
    resource_page_size: int = DEFAULT_PAGE_SIZE
    state_path: str = "migrateflow-state.db"
    enable_tracing: bool = True

    model_config = SettingsConfigDict(env_prefix="MIGRATEFLOW_", env_file=".env", extra="ignore")

    def poller_config(self) -> PollerConfig:
        return PollerConfig(interval_seconds=self.poll_interval_seconds)

    def notification_config(self) -> NotificationConfig:
        return NotificationConfig(transient_ttl_seconds=self.notification_ttl_seconds)


@lru_cache(maxsize=1)
def get_settings() -> ClientSettings:
    return ClientSettings()


__all__ = [
    "DEFAULT_POLL_INTERVAL_SECONDS",
    "DEFAULT_NOTIFICATION_TTL_SECONDS",
    "DEFAULT_PAGE_SIZE",
    "PollerConfig",
    "NotificationConfig",
    "ClientSettings",
    "get_settings",
]
