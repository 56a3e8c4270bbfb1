"""Series generation: parent first, then one child per expanded date."""

import asyncio
import logging
from dataclasses import replace
from typing import Iterable

from tripseries.data.repository import OccurrenceRepository
from tripseries.domain.errors import PersistenceError, ZeroResultError
from tripseries.domain.models import Occurrence, SeriesCreated, SeriesSeed, build_child
from tripseries.services.expander import DEFAULT_MAX_ITERATIONS, coerce_pattern, expand

logger = logging.getLogger(__name__)

DEFAULT_PACING_SECONDS = 0.1


async def persist_paced(
    repository: OccurrenceRepository,
    records: Iterable[Occurrence],
    pacing_seconds: float = DEFAULT_PACING_SECONDS,
) -> tuple[list[Occurrence], int]:
    """Create records one at a time with a pause between requests.

    Each create is attempted independently: a PersistenceError is logged and
    counted, and the remaining records are still attempted.

    Returns:
        Tuple of (created records, failure count)
    """
    created: list[Occurrence] = []
    failed = 0

    for index, record in enumerate(records):
        if index and pacing_seconds > 0:
            await asyncio.sleep(pacing_seconds)
        try:
            created.append(await repository.create(record))
        except PersistenceError as e:
            failed += 1
            logger.error(
                f"Failed to create occurrence for {record.scheduled_at.isoformat()} "
                f"(parent {record.parent_id}): {e}"
            )

    return created, failed


class SeriesGenerator:
    """Creates a recurring series from a seed definition.

    Example:
        >>> generator = SeriesGenerator(repo)
        >>> result = await generator.create_series(SeriesSeed(
        ...     scheduled_at=datetime(2024, 3, 1, 9, 0),
        ...     pattern=RecurrencePattern.DAILY,
        ...     end_date=date(2024, 3, 3),
        ...     domain_key="BA117",
        ... ))
        >>> result.child_count
        2
    """

    def __init__(
        self,
        repository: OccurrenceRepository,
        pacing_seconds: float = DEFAULT_PACING_SECONDS,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
    ):
        self._repo = repository
        self._pacing = pacing_seconds
        self._max_iterations = max_iterations

    async def create_series(self, seed: SeriesSeed) -> SeriesCreated:
        """Persist the parent and its children.

        Args:
            seed: Recurring trip definition

        Returns:
            SeriesCreated with the parent id and how many children were stored

        Raises:
            ValidationError: If the seed's range or pattern is invalid
                             (nothing is written)
            PersistenceError: If the parent itself could not be created
            ZeroResultError: If child dates were expected but none were stored
        """
        seed = replace(seed, pattern=coerce_pattern(seed.pattern))
        dates = expand(seed.scheduled_at, seed.pattern, seed.end_date, self._max_iterations)

        parent = await self._repo.create(seed.to_parent())
        logger.info(
            f"Created parent {parent.id} ({seed.pattern.value} until "
            f"{seed.end_date.isoformat()}, key={seed.domain_key}); "
            f"{len(dates)} children to create"
        )

        children = [build_child(parent, when) for when in dates]
        created, failed = await persist_paced(self._repo, children, self._pacing)

        logger.info(
            f"Series {parent.id} generation complete: "
            f"{len(created)} created, {failed} failed"
        )

        if dates and not created:
            raise ZeroResultError(
                f"None of the {len(dates)} trips in the series could be created",
                attempted=len(dates),
                details=f"Parent trip {parent.id} was created and may need to be removed or retried.",
            )

        return SeriesCreated(parent_id=parent.id, child_count=len(created), failed=failed)

    async def create_one_time(self, occurrence: Occurrence) -> Occurrence:
        """Persist a standalone trip with any recurrence fields stripped."""
        standalone = replace(
            occurrence,
            id=None,
            is_recurring=False,
            parent_id=None,
            recurrence_pattern=None,
            recurrence_end_date=None,
        )
        stored = await self._repo.create(standalone)
        logger.info(f"Created one-time trip {stored.id} at {stored.scheduled_at.isoformat()}")
        return stored
