"""Read-only consistency report over all stored series."""

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from tripseries.data.repository import OccurrenceRepository
from tripseries.domain.models import Occurrence
from tripseries.services.expander import DEFAULT_MAX_ITERATIONS, expand_until
from tripseries.services.membership import is_member

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SeriesGap:
    """Dates a series should have between its parent and latest child."""

    parent_id: UUID
    missing: tuple[datetime, ...]


@dataclass(frozen=True, slots=True)
class HealthReport:
    """Counts and anomalies found across the occurrence store."""

    total: int
    parents: int
    children: int
    standalone: int
    orphaned: tuple[UUID, ...] = ()  # Children whose parent no longer exists
    childless_parents: tuple[UUID, ...] = ()
    key_mismatches: tuple[UUID, ...] = ()  # Children whose domain key differs from the parent's
    gaps: tuple[SeriesGap, ...] = ()

    @property
    def is_healthy(self) -> bool:
        return not (self.orphaned or self.key_mismatches or self.gaps)

    def summary_lines(self) -> list[str]:
        """Plain-text lines suitable for a console or log."""
        lines = [
            f"Total trips: {self.total}",
            f"Parent trips: {self.parents}",
            f"Child trips: {self.children}",
            f"Standalone trips: {self.standalone}",
            f"Orphaned trips: {len(self.orphaned)}",
            f"Parents without children: {len(self.childless_parents)}",
            f"Domain key mismatches: {len(self.key_mismatches)}",
        ]
        for gap in self.gaps:
            dates = ", ".join(d.strftime("%Y-%m-%d") for d in gap.missing)
            lines.append(f"Series {gap.parent_id} is missing: {dates}")
        return lines


class SeriesHealthService:
    """Finds orphans, membership mismatches and gaps in stored series.

    The window extender never backfills a deleted middle occurrence; this
    report is where such gaps become visible.
    """

    def __init__(
        self,
        repository: OccurrenceRepository,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
    ):
        self._repo = repository
        self._max_iterations = max_iterations

    async def report(self) -> HealthReport:
        """Scan every occurrence and summarize series consistency."""
        everything = await self._repo.find()
        by_id = {o.id: o for o in everything}

        parents = [o for o in everything if o.is_recurring]
        children = [o for o in everything if o.is_child]
        standalone = [o for o in everything if not o.is_in_series]

        members: dict[UUID, list[Occurrence]] = defaultdict(list)
        orphaned: list[UUID] = []
        mismatched: list[UUID] = []
        for child in children:
            parent = by_id.get(child.parent_id)
            if parent is None:
                orphaned.append(child.id)
            elif not is_member(child, parent):
                mismatched.append(child.id)
            else:
                members[parent.id].append(child)

        childless = [p.id for p in parents if not members.get(p.id)]
        gaps = [
            gap for gap in (self._find_gap(p, members.get(p.id, [])) for p in parents)
            if gap is not None
        ]

        report = HealthReport(
            total=len(everything),
            parents=len(parents),
            children=len(children),
            standalone=len(standalone),
            orphaned=tuple(orphaned),
            childless_parents=tuple(childless),
            key_mismatches=tuple(mismatched),
            gaps=tuple(gaps),
        )
        if not report.is_healthy:
            logger.warning(
                f"Series health: {len(orphaned)} orphaned, {len(mismatched)} mismatched, "
                f"{len(gaps)} series with gaps"
            )
        return report

    def _find_gap(self, parent: Occurrence, children: list[Occurrence]):
        if not children or parent.recurrence_pattern is None or parent.recurrence_end_date is None:
            return None

        last = max(c.scheduled_at for c in children)
        expected = expand_until(
            parent.scheduled_at,
            parent.recurrence_pattern,
            parent.recurrence_end_date,
            horizon=last,
            max_iterations=self._max_iterations,
        )
        present = {c.scheduled_at for c in children}
        missing = tuple(d for d in expected if d not in present)
        if not missing:
            return None
        return SeriesGap(parent_id=parent.id, missing=missing)
