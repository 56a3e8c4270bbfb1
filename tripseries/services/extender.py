"""Rolling extension of recurring series over a lookahead window."""

import logging
from datetime import datetime, timedelta
from typing import Optional
from uuid import UUID

from tripseries.data.repository import OccurrenceRepository
from tripseries.domain.errors import PersistenceError
from tripseries.domain.models import (
    ExtensionResult,
    Occurrence,
    OccurrenceFilter,
    build_child,
    derive_status,
    end_of_day,
)
from tripseries.services.clock import Clock
from tripseries.services.expander import DEFAULT_MAX_ITERATIONS, expand_until
from tripseries.services.generator import DEFAULT_PACING_SECONDS, persist_paced
from tripseries.services.membership import find_children

logger = logging.getLogger(__name__)

DEFAULT_LOOKAHEAD = timedelta(days=14)


class WindowExtender:
    """Keeps every active series populated up to ``now + lookahead``.

    Extension always advances from the latest persisted child (or the parent
    when there are none), so repeating a call without time passing writes
    nothing. Gaps left by deleting a middle occurrence are not backfilled.

    Two sessions extending at the same time can both read the same latest
    child and create overlapping children; there is no locking.
    """

    def __init__(
        self,
        repository: OccurrenceRepository,
        clock: Clock,
        default_lookahead: timedelta = DEFAULT_LOOKAHEAD,
        pacing_seconds: float = DEFAULT_PACING_SECONDS,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
    ):
        self._repo = repository
        self._clock = clock
        self._default_lookahead = default_lookahead
        self._pacing = pacing_seconds
        self._max_iterations = max_iterations

    async def extend_all(
        self, lookahead: Optional[timedelta] = None
    ) -> dict[UUID, ExtensionResult]:
        """Extend every parent whose recurrence has not yet ended.

        Args:
            lookahead: Window to keep populated. Defaults to the configured
                       lookahead.

        Returns:
            Mapping of parent id to created/failed counts for each active series

        Raises:
            PersistenceError: If the parents themselves cannot be listed
        """
        lookahead = lookahead if lookahead is not None else self._default_lookahead
        now = self._clock.now()
        horizon = now + lookahead

        parents = await self._repo.find(OccurrenceFilter(is_recurring=True))
        results: dict[UUID, ExtensionResult] = {}

        for parent in parents:
            if not self._is_active(parent, now):
                continue
            results[parent.id] = await self._extend(parent, horizon)

        total = sum(r.created for r in results.values())
        failed = sum(r.failed for r in results.values())
        logger.info(
            f"Extended {len(results)} active series to {horizon.isoformat()}: "
            f"{total} created, {failed} failed"
        )
        return results

    async def extend_series(
        self, parent: Occurrence, lookahead: Optional[timedelta] = None
    ) -> ExtensionResult:
        """Extend a single series."""
        lookahead = lookahead if lookahead is not None else self._default_lookahead
        now = self._clock.now()
        if not self._is_active(parent, now):
            return ExtensionResult()
        return await self._extend(parent, now + lookahead)

    def _is_active(self, parent: Occurrence, now: datetime) -> bool:
        if not parent.is_recurring:
            return False
        if parent.recurrence_pattern is None or parent.recurrence_end_date is None:
            logger.debug(f"Skipping parent {parent.id}: recurrence rule incomplete")
            return False
        return end_of_day(parent.recurrence_end_date) >= now

    async def _extend(self, parent: Occurrence, horizon: datetime) -> ExtensionResult:
        try:
            children = await find_children(self._repo, parent)
        except PersistenceError as e:
            logger.error(f"Could not load children of series {parent.id}: {e}")
            return ExtensionResult(created=0, failed=1)

        last_known = max(
            (c.scheduled_at for c in children), default=parent.scheduled_at
        )
        dates = expand_until(
            last_known,
            parent.recurrence_pattern,
            parent.recurrence_end_date,
            horizon=horizon,
            max_iterations=self._max_iterations,
        )
        if not dates:
            return ExtensionResult()

        status = derive_status(parent.driver_id)
        records = [build_child(parent, when, status=status) for when in dates]
        created, failed = await persist_paced(self._repo, records, self._pacing)

        logger.info(
            f"Series {parent.id}: appended {len(created)} children after "
            f"{last_known.isoformat()} ({failed} failed)"
        )
        return ExtensionResult(created=len(created), failed=failed)
