"""SQLite implementation of the occurrence repository."""

import aiosqlite
from dataclasses import replace
from datetime import date, datetime
from pathlib import Path
from typing import Any, Optional
from uuid import UUID, uuid4

from tripseries.data.repository import OccurrenceRepository
from tripseries.domain.errors import IncompatibleDatabaseError, PersistenceError
from tripseries.domain.models import (
    Occurrence,
    OccurrenceFilter,
    RecurrencePattern,
    TripStatus,
)

OCCURRENCE_COLUMNS = (
    "id", "scheduled_at", "is_recurring", "parent_id", "recurrence_pattern",
    "recurrence_end_date", "domain_key", "pickup_location", "dropoff_location",
    "passenger_count", "driver_id", "status", "notes", "version", "created_at",
    "modified_at",
)


class SQLiteOccurrenceRepository(OccurrenceRepository):
    """SQLite implementation of OccurrenceRepository."""

    def __init__(self, db_path: Path):
        self._db_path = db_path
        self._conn: Optional[aiosqlite.Connection] = None

    async def connect(self) -> None:
        """Connect to database, check existing contents and ensure schema exists.

        Raises:
            IncompatibleDatabaseError: If the file holds something other than
                                       a trip store
        """
        self._conn = await aiosqlite.connect(self._db_path)
        self._conn.row_factory = aiosqlite.Row
        try:
            await self._check_existing_schema()
        except IncompatibleDatabaseError:
            await self.close()
            raise
        await self._ensure_schema()

    async def close(self) -> None:
        """Close database connection."""
        if self._conn:
            await self._conn.close()
            self._conn = None

    async def _check_existing_schema(self) -> None:
        """Reject a non-empty database that isn't a compatible occurrence store."""
        try:
            async with self._conn.execute(
                "SELECT name FROM sqlite_master WHERE type = 'table'"
            ) as cursor:
                tables = {row["name"] for row in await cursor.fetchall()}
            if not tables:
                return
            if "occurrences" not in tables:
                raise IncompatibleDatabaseError(
                    "Incompatible database format",
                    f"Expected an occurrences table, found: {', '.join(sorted(tables))}. "
                    "It may not be a tripseries database file.",
                )

            async with self._conn.execute("PRAGMA table_info(occurrences)") as cursor:
                columns = {row["name"] for row in await cursor.fetchall()}
            missing = set(OCCURRENCE_COLUMNS) - columns
            if missing:
                raise IncompatibleDatabaseError(
                    "Incompatible database schema",
                    f"The occurrences table is missing columns: {', '.join(sorted(missing))}",
                )

            # Rows written before a CHECK constraint existed can hold values
            # the enums would refuse to load
            statuses = [s.value for s in TripStatus]
            patterns = [p.value for p in RecurrencePattern]
            async with self._conn.execute(
                f"""
                SELECT COUNT(*) FROM occurrences
                WHERE status NOT IN ({', '.join('?' * len(statuses))})
                   OR (recurrence_pattern IS NOT NULL
                       AND recurrence_pattern NOT IN ({', '.join('?' * len(patterns))}))
                """,
                (*statuses, *patterns),
            ) as cursor:
                (unknown,) = await cursor.fetchone()
        except aiosqlite.Error as e:
            raise IncompatibleDatabaseError(
                "Not a valid database file", f"Could not read database structure: {e}"
            ) from e

        if unknown:
            raise IncompatibleDatabaseError(
                "Incompatible database contents",
                f"{unknown} stored trips have an unknown status or recurrence pattern",
            )

    async def _ensure_schema(self) -> None:
        """Create tables if they don't exist."""
        await self._conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS occurrences (
                id TEXT PRIMARY KEY,
                scheduled_at TEXT NOT NULL,
                is_recurring INTEGER NOT NULL DEFAULT 0,
                parent_id TEXT,
                recurrence_pattern TEXT CHECK (recurrence_pattern IN ('daily', 'weekly', 'monthly')),
                recurrence_end_date TEXT,
                domain_key TEXT,
                pickup_location TEXT,
                dropoff_location TEXT,
                passenger_count INTEGER NOT NULL DEFAULT 1,
                driver_id TEXT,
                status TEXT NOT NULL CHECK (status IN ('Unassigned', 'Assigned', 'InProgress', 'Completed', 'Cancelled')),
                notes TEXT,
                version INTEGER DEFAULT 1,
                created_at TEXT NOT NULL,
                modified_at TEXT
            );

            CREATE INDEX IF NOT EXISTS idx_occurrences_scheduled ON occurrences(scheduled_at);
            CREATE INDEX IF NOT EXISTS idx_occurrences_parent ON occurrences(parent_id, domain_key);
            CREATE INDEX IF NOT EXISTS idx_occurrences_recurring ON occurrences(is_recurring);
        """
        )
        await self._conn.commit()

    async def create(self, occurrence: Occurrence) -> Occurrence:
        """Insert a new occurrence with a freshly assigned id."""
        stored = replace(occurrence, id=uuid4())
        try:
            await self._write(stored)
        except aiosqlite.Error as e:
            raise PersistenceError(f"Could not create occurrence: {e}") from e
        return stored

    async def find(self, filter: Optional[OccurrenceFilter] = None) -> list[Occurrence]:
        """List occurrences matching the filter, earliest first."""
        query = "SELECT * FROM occurrences"
        clauses = []
        params: list[Any] = []

        if filter is not None:
            if filter.parent_id is not None:
                clauses.append("parent_id = ?")
                params.append(str(filter.parent_id))
            if filter.is_recurring is not None:
                clauses.append("is_recurring = ?")
                params.append(int(filter.is_recurring))
            if filter.domain_key is not None:
                clauses.append("domain_key = ?")
                params.append(filter.domain_key)
            if filter.scheduled_from is not None:
                clauses.append("scheduled_at >= ?")
                params.append(filter.scheduled_from.isoformat())
            if filter.scheduled_to is not None:
                clauses.append("scheduled_at <= ?")
                params.append(filter.scheduled_to.isoformat())

        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY scheduled_at, created_at"

        try:
            async with self._conn.execute(query, params) as cursor:
                rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            raise PersistenceError(f"Could not list occurrences: {e}") from e
        return [self._row_to_occurrence(row) for row in rows]

    async def get_by_id(self, id: UUID) -> Optional[Occurrence]:
        """Get a single occurrence by id."""
        try:
            async with self._conn.execute(
                "SELECT * FROM occurrences WHERE id = ?", (str(id),)
            ) as cursor:
                row = await cursor.fetchone()
        except aiosqlite.Error as e:
            raise PersistenceError(f"Could not load occurrence {id}: {e}") from e
        return self._row_to_occurrence(row) if row else None

    async def update(self, id: UUID, fields: dict[str, Any]) -> Occurrence:
        """Apply a partial update and bump the record version."""
        existing = await self.get_by_id(id)
        if existing is None:
            raise PersistenceError(f"Occurrence {id} not found")

        try:
            updated = existing.with_updates(**fields)
        except (TypeError, ValueError) as e:
            raise PersistenceError(f"Invalid update for occurrence {id}: {e}") from e

        try:
            await self._write(updated)
        except aiosqlite.Error as e:
            raise PersistenceError(f"Could not update occurrence {id}: {e}") from e
        return updated

    async def delete(self, id: UUID) -> bool:
        """Delete an occurrence."""
        try:
            cursor = await self._conn.execute(
                "DELETE FROM occurrences WHERE id = ?", (str(id),)
            )
            await self._conn.commit()
        except aiosqlite.Error as e:
            raise PersistenceError(f"Could not delete occurrence {id}: {e}") from e
        return cursor.rowcount > 0

    async def _write(self, occurrence: Occurrence) -> None:
        await self._conn.execute(
            """
            INSERT OR REPLACE INTO occurrences
            (id, scheduled_at, is_recurring, parent_id, recurrence_pattern, recurrence_end_date,
             domain_key, pickup_location, dropoff_location, passenger_count, driver_id,
             status, notes, version, created_at, modified_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
            (
                str(occurrence.id),
                occurrence.scheduled_at.isoformat(),
                int(occurrence.is_recurring),
                str(occurrence.parent_id) if occurrence.parent_id else None,
                occurrence.recurrence_pattern.value if occurrence.recurrence_pattern else None,
                occurrence.recurrence_end_date.isoformat() if occurrence.recurrence_end_date else None,
                occurrence.domain_key,
                occurrence.pickup_location,
                occurrence.dropoff_location,
                occurrence.passenger_count,
                occurrence.driver_id,
                occurrence.status.value,
                occurrence.notes,
                occurrence.version,
                occurrence.created_at.isoformat(),
                occurrence.modified_at.isoformat() if occurrence.modified_at else None,
            ),
        )
        await self._conn.commit()

    def _row_to_occurrence(self, row: aiosqlite.Row) -> Occurrence:
        """Convert database row to Occurrence model."""
        return Occurrence(
            id=UUID(row["id"]),
            scheduled_at=datetime.fromisoformat(row["scheduled_at"]),
            is_recurring=bool(row["is_recurring"]),
            parent_id=UUID(row["parent_id"]) if row["parent_id"] else None,
            recurrence_pattern=(
                RecurrencePattern(row["recurrence_pattern"]) if row["recurrence_pattern"] else None
            ),
            recurrence_end_date=(
                date.fromisoformat(row["recurrence_end_date"]) if row["recurrence_end_date"] else None
            ),
            domain_key=row["domain_key"],
            pickup_location=row["pickup_location"],
            dropoff_location=row["dropoff_location"],
            passenger_count=row["passenger_count"],
            driver_id=row["driver_id"],
            status=TripStatus(row["status"]),
            notes=row["notes"],
            version=row["version"],
            created_at=datetime.fromisoformat(row["created_at"]),
            modified_at=(
                datetime.fromisoformat(row["modified_at"]) if row["modified_at"] else None
            ),
        )
