"""Series membership lookups.

Children are always selected by the compound ``(parent_id, domain_key)``
identity. The repository filter narrows the query, and the result is checked
again here so that a NULL domain key only matches NULL, never "anything".
"""

from uuid import UUID

from tripseries.data.repository import OccurrenceRepository
from tripseries.domain.errors import OccurrenceNotFoundError, ValidationError
from tripseries.domain.models import Occurrence, OccurrenceFilter


def is_member(occurrence: Occurrence, parent: Occurrence) -> bool:
    """Check the compound identity of a child against its parent."""
    return (
        occurrence.parent_id == parent.id
        and occurrence.domain_key == parent.domain_key
    )


async def find_children(
    repository: OccurrenceRepository, parent: Occurrence
) -> list[Occurrence]:
    """Load the children of ``parent`` ordered by scheduled_at."""
    candidates = await repository.find(
        OccurrenceFilter(parent_id=parent.id, domain_key=parent.domain_key)
    )
    return [c for c in candidates if is_member(c, parent)]


async def load_occurrence(repository: OccurrenceRepository, id: UUID) -> Occurrence:
    """Load an occurrence or raise OccurrenceNotFoundError."""
    occurrence = await repository.get_by_id(id)
    if occurrence is None:
        raise OccurrenceNotFoundError(f"Trip {id} not found")
    return occurrence


async def load_root(
    repository: OccurrenceRepository, target: Occurrence
) -> Occurrence:
    """Load the parent heading ``target``'s series.

    Raises:
        ValidationError: If the target is not part of a series
        OccurrenceNotFoundError: If the target's parent no longer exists
    """
    if target.parent_id is None:
        if target.is_recurring:
            return target
        raise ValidationError(f"Trip {target.id} is not part of a recurring series")
    return await load_occurrence(repository, target.parent_id)
