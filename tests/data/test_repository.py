"""Integration tests for the SQLite occurrence repository."""

import sqlite3

import pytest
from datetime import date, datetime
from uuid import uuid4

from tripseries.data.factory import create_repository
from tripseries.data.resilience import RetryingOccurrenceRepository
from tripseries.data.sqlite_repo import SQLiteOccurrenceRepository
from tripseries.domain.errors import IncompatibleDatabaseError, PersistenceError
from tripseries.domain.models import (
    Occurrence,
    OccurrenceFilter,
    RecurrencePattern,
    TripStatus,
)
from tripseries.domain.settings import RetrySettings


class TestOccurrenceRepository:
    """Tests for OccurrenceRepository (SQLite implementation)."""

    async def test_create_and_retrieve(self, repo, make_trip):
        """Create assigns an id and the record round-trips."""
        trip = make_trip(domain_key="BA117", driver_id="D1", notes="Meet at arrivals")

        stored = await repo.create(trip)
        assert stored.id is not None

        retrieved = await repo.get_by_id(stored.id)
        assert retrieved == stored
        assert retrieved.status == TripStatus.ASSIGNED

    async def test_create_preserves_recurrence_fields(self, repo):
        parent = Occurrence(
            scheduled_at=datetime(2024, 3, 1, 9, 0),
            is_recurring=True,
            recurrence_pattern=RecurrencePattern.WEEKLY,
            recurrence_end_date=date(2024, 4, 1),
        )
        stored = await repo.create(parent)

        retrieved = await repo.get_by_id(stored.id)
        assert retrieved.is_recurring is True
        assert retrieved.recurrence_pattern == RecurrencePattern.WEEKLY
        assert retrieved.recurrence_end_date == date(2024, 4, 1)

    async def test_get_missing_returns_none(self, repo):
        assert await repo.get_by_id(uuid4()) is None

    async def test_find_orders_by_scheduled_at(self, repo, make_trip):
        for day in (3, 1, 2):
            await repo.create(make_trip(scheduled_at=datetime(2024, 3, day, 9, 0)))

        trips = await repo.find()
        assert [t.scheduled_at.day for t in trips] == [1, 2, 3]

    async def test_find_by_parent_and_domain_key(self, repo, make_trip):
        parent_id = uuid4()
        await repo.create(make_trip(parent_id=parent_id, domain_key="BA117"))
        await repo.create(make_trip(parent_id=parent_id, domain_key="LH900"))
        await repo.create(make_trip(domain_key="BA117"))

        matched = await repo.find(OccurrenceFilter(parent_id=parent_id, domain_key="BA117"))
        assert len(matched) == 1
        assert matched[0].domain_key == "BA117"
        assert matched[0].parent_id == parent_id

    async def test_find_by_date_range(self, repo, make_trip):
        for day in range(1, 6):
            await repo.create(make_trip(scheduled_at=datetime(2024, 3, day, 9, 0)))

        trips = await repo.find(OccurrenceFilter(
            scheduled_from=datetime(2024, 3, 2), scheduled_to=datetime(2024, 3, 4, 23, 59),
        ))
        assert [t.scheduled_at.day for t in trips] == [2, 3, 4]

    async def test_update_bumps_version(self, repo, make_trip):
        stored = await repo.create(make_trip())

        updated = await repo.update(stored.id, {"notes": "Gate change"})

        assert updated.notes == "Gate change"
        assert updated.version == stored.version + 1
        assert updated.modified_at is not None
        assert (await repo.get_by_id(stored.id)).notes == "Gate change"

    async def test_update_missing_raises(self, repo):
        with pytest.raises(PersistenceError, match="not found"):
            await repo.update(uuid4(), {"notes": "x"})

    async def test_update_invalid_value_raises(self, repo, make_trip):
        stored = await repo.create(make_trip())

        with pytest.raises(PersistenceError):
            await repo.update(stored.id, {"passenger_count": 0})

    async def test_update_with_wrong_types_raises_persistence_error(self, repo, make_trip):
        stored = await repo.create(make_trip())

        with pytest.raises(PersistenceError):
            await repo.update(stored.id, {"is_recurring": None})
        with pytest.raises(PersistenceError):
            await repo.update(stored.id, {"recurrence_end_date": "2024-03-05"})
        with pytest.raises(PersistenceError):
            await repo.update(stored.id, {"scheduled_at": "tomorrow"})

        assert (await repo.get_by_id(stored.id)).version == stored.version

    async def test_delete(self, repo, make_trip):
        stored = await repo.create(make_trip())

        assert await repo.delete(stored.id) is True
        assert await repo.get_by_id(stored.id) is None
        assert await repo.delete(stored.id) is False


class TestCreateRepository:
    """Tests for the repository factory."""

    async def test_unknown_backend_raises(self, tmp_path):
        with pytest.raises(ValueError, match="Unknown backend"):
            await create_repository("excel", tmp_path / "x.db")

    async def test_missing_path_raises(self):
        with pytest.raises(ValueError, match="file_path required"):
            await create_repository("sqlite")

    async def test_retry_wrapper_when_enabled(self, tmp_path):
        repo = await create_repository("sqlite", tmp_path / "x.db", retry=RetrySettings())
        try:
            assert isinstance(repo, RetryingOccurrenceRepository)
            assert isinstance(repo.inner, SQLiteOccurrenceRepository)
        finally:
            await repo.close()

    async def test_incompatible_database_rejected(self, tmp_path):
        db_path = tmp_path / "other.db"
        conn = sqlite3.connect(db_path)
        conn.execute("CREATE TABLE transactions (id TEXT)")
        conn.commit()
        conn.close()

        with pytest.raises(IncompatibleDatabaseError) as exc_info:
            await create_repository("sqlite", db_path)

        assert "occurrences" in exc_info.value.details

    async def test_missing_columns_rejected(self, tmp_path):
        db_path = tmp_path / "old.db"
        conn = sqlite3.connect(db_path)
        conn.execute("CREATE TABLE occurrences (id TEXT PRIMARY KEY, scheduled_at TEXT)")
        conn.commit()
        conn.close()

        with pytest.raises(IncompatibleDatabaseError) as exc_info:
            await create_repository("sqlite", db_path)

        assert "domain_key" in exc_info.value.details

    async def test_unknown_enum_values_rejected(self, tmp_path):
        """Rows the status/pattern enums can't load make the store unusable."""
        db_path = tmp_path / "legacy.db"
        conn = sqlite3.connect(db_path)
        conn.execute(
            "CREATE TABLE occurrences (id TEXT, scheduled_at TEXT, is_recurring INTEGER, "
            "parent_id TEXT, recurrence_pattern TEXT, recurrence_end_date TEXT, domain_key TEXT, "
            "pickup_location TEXT, dropoff_location TEXT, passenger_count INTEGER, driver_id TEXT, "
            "status TEXT, notes TEXT, version INTEGER, created_at TEXT, modified_at TEXT)"
        )
        conn.execute(
            "INSERT INTO occurrences (id, scheduled_at, is_recurring, recurrence_pattern, status, created_at) "
            "VALUES ('1', '2024-03-01T09:00:00', 1, 'fortnightly', 'Unassigned', '2024-03-01T00:00:00')"
        )
        conn.commit()
        conn.close()

        with pytest.raises(IncompatibleDatabaseError, match="contents"):
            await create_repository("sqlite", db_path)

    async def test_non_database_file_rejected(self, tmp_path):
        db_path = tmp_path / "notes.db"
        db_path.write_bytes(b"This is a plain text file, not SQLite at all." * 20)

        with pytest.raises(IncompatibleDatabaseError, match="Not a valid database"):
            await create_repository("sqlite", db_path)

    async def test_existing_store_reopens(self, tmp_path, make_trip):
        db_path = tmp_path / "trips.db"
        first = await create_repository("sqlite", db_path)
        stored = await first.create(make_trip(domain_key="BA117"))
        await first.close()

        second = await create_repository("sqlite", db_path)
        try:
            assert (await second.get_by_id(stored.id)).domain_key == "BA117"
        finally:
            await second.close()
