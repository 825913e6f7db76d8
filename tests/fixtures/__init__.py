"""
Shared test fixtures for the migrateflow tests.

Usage:
    from tests.fixtures import FakeMigrationClient, status, failure
"""

from tests.fixtures.service import (
    FakeMigrationClient,
    default_resources,
    failure,
    status,
)
from tests.fixtures.stores import ControllableStateStore
from tests.fixtures.timing import wait_until

__all__ = [
    "ControllableStateStore",
    "FakeMigrationClient",
    "default_resources",
    "failure",
    "status",
    "wait_until",
]
