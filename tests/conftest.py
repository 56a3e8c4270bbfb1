"""Pytest fixtures and configuration."""

import pytest
from datetime import date, datetime
from typing import Any, Optional
from uuid import UUID

from tripseries.data.factory import create_repository
from tripseries.data.repository import OccurrenceRepository
from tripseries.domain.errors import PersistenceError
from tripseries.domain.models import (
    Occurrence,
    OccurrenceFilter,
    RecurrencePattern,
    SeriesSeed,
)
from tripseries.services.clock import FixedClock


class FlakyRepository(OccurrenceRepository):
    """Repository wrapper that fails selected calls.

    ``fail_creates`` / ``fail_deletes`` / ``fail_updates`` are the 1-based call
    numbers that raise PersistenceError; ``fail_all_*`` makes every such call
    fail. All other calls are passed through to the wrapped repository.
    """

    def __init__(self, inner: OccurrenceRepository):
        self.inner = inner
        self.fail_creates: set[int] = set()
        self.fail_updates: set[int] = set()
        self.fail_deletes: set[int] = set()
        self.fail_all_creates = False
        self.fail_all_updates = False
        self.fail_all_deletes = False
        self.fail_update_ids: set[UUID] = set()
        self.create_calls = 0
        self.update_calls = 0
        self.delete_calls = 0

    async def create(self, occurrence: Occurrence) -> Occurrence:
        self.create_calls += 1
        if self.fail_all_creates or self.create_calls in self.fail_creates:
            raise PersistenceError(f"Injected create failure #{self.create_calls}")
        return await self.inner.create(occurrence)

    async def find(self, filter: Optional[OccurrenceFilter] = None) -> list[Occurrence]:
        return await self.inner.find(filter)

    async def get_by_id(self, id: UUID) -> Optional[Occurrence]:
        return await self.inner.get_by_id(id)

    async def update(self, id: UUID, fields: dict[str, Any]) -> Occurrence:
        self.update_calls += 1
        if (
            self.fail_all_updates
            or self.update_calls in self.fail_updates
            or id in self.fail_update_ids
        ):
            raise PersistenceError(f"Injected update failure #{self.update_calls}")
        return await self.inner.update(id, fields)

    async def delete(self, id: UUID) -> bool:
        self.delete_calls += 1
        if self.fail_all_deletes or self.delete_calls in self.fail_deletes:
            raise PersistenceError(f"Injected delete failure #{self.delete_calls}")
        return await self.inner.delete(id)

    async def close(self) -> None:
        await self.inner.close()


@pytest.fixture
async def repo(tmp_path):
    """Create an occurrence repository with temporary database."""
    repository = await create_repository("sqlite", tmp_path / "test.db")
    yield repository
    await repository.close()


@pytest.fixture
def flaky(repo):
    """Failure-injecting wrapper around the temporary repository."""
    return FlakyRepository(repo)


@pytest.fixture
def clock():
    """Clock frozen at 2024-03-01 08:00."""
    return FixedClock(datetime(2024, 3, 1, 8, 0))


@pytest.fixture
def make_seed():
    """Factory fixture for creating series seeds."""

    def _make(**kwargs):
        defaults = {
            "scheduled_at": datetime(2024, 3, 1, 9, 0),
            "pattern": RecurrencePattern.DAILY,
            "end_date": date(2024, 3, 3),
            "domain_key": "BA117",
            "pickup_location": "Heathrow T5",
            "dropoff_location": "Savoy Hotel",
        }
        defaults.update(kwargs)
        return SeriesSeed(**defaults)

    return _make


@pytest.fixture
def make_trip():
    """Factory fixture for creating standalone trips."""

    def _make(**kwargs):
        defaults = {
            "scheduled_at": datetime(2024, 3, 1, 9, 0),
            "pickup_location": "Heathrow T5",
            "dropoff_location": "Savoy Hotel",
        }
        defaults.update(kwargs)
        return Occurrence.create(**defaults)

    return _make
