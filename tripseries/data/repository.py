"""Abstract repository interface for occurrence storage.

The series engine only talks to this interface, so the same generation and
lifecycle logic runs against the local SQLite store, a remote data API, or a
test double.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional
from uuid import UUID

from tripseries.domain.models import Occurrence, OccurrenceFilter


class OccurrenceRepository(ABC):
    """Abstract interface for trip occurrence storage."""

    @abstractmethod
    async def create(self, occurrence: Occurrence) -> Occurrence:
        """Persist a new occurrence and assign its id.

        Args:
            occurrence: Occurrence to store. Any id it carries is ignored.

        Returns:
            The stored occurrence with its assigned id

        Raises:
            PersistenceError: If the record could not be stored
        """
        ...

    @abstractmethod
    async def find(self, filter: Optional[OccurrenceFilter] = None) -> list[Occurrence]:
        """List occurrences matching every criterion in ``filter``.

        Args:
            filter: Optional criteria. None returns all occurrences.

        Returns:
            List of occurrences sorted by scheduled_at ascending

        Raises:
            PersistenceError: If the query fails
        """
        ...

    @abstractmethod
    async def get_by_id(self, id: UUID) -> Optional[Occurrence]:
        """Get a single occurrence by id.

        Args:
            id: Occurrence UUID

        Returns:
            Occurrence if found, None otherwise
        """
        ...

    @abstractmethod
    async def update(self, id: UUID, fields: dict[str, Any]) -> Occurrence:
        """Apply a partial update to an occurrence.

        Args:
            id: Occurrence UUID
            fields: Field names and new values

        Returns:
            The updated occurrence

        Raises:
            PersistenceError: If the record is missing or the write fails
        """
        ...

    @abstractmethod
    async def delete(self, id: UUID) -> bool:
        """Delete an occurrence.

        Args:
            id: Occurrence UUID to delete

        Returns:
            True if deleted, False if not found

        Raises:
            PersistenceError: If the delete fails
        """
        ...

    async def close(self) -> None:
        """Release any held resources."""
        pass
