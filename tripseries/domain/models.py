"""Domain models for the tripseries recurring trip engine.

All records are immutable (frozen dataclasses). Changes produce new instances
via ``with_updates`` so that a batch operating on a snapshot of a series never
sees partially mutated records.
"""

from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Optional
from uuid import UUID


class RecurrencePattern(Enum):
    """Step between consecutive occurrences of a series."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class TripStatus(Enum):
    """Dispatch status of a single trip occurrence."""

    UNASSIGNED = "Unassigned"
    ASSIGNED = "Assigned"
    IN_PROGRESS = "InProgress"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


class UpdateScope(Enum):
    """Breadth of an edit, cancel or delete across a series."""

    SINGLE = "single"
    THIS_AND_FUTURE = "thisAndFuture"
    ALL = "all"


class RecurrenceRemoval(Enum):
    """How an edit payload signalled that recurrence is being turned off."""

    EXPLICIT_FALSE = "explicit_false"  # is_recurring=False in the payload
    PATTERN_CLEARED = "pattern_cleared"  # recurrence_pattern=None in the payload
    UNDEFINED = "undefined"  # is_recurring present in the payload but None


# Fields copied from a seed/parent onto every generated child
PAYLOAD_FIELDS = (
    "pickup_location",
    "dropoff_location",
    "passenger_count",
    "driver_id",
    "status",
    "notes",
)

# Fields a host may change through a scoped edit
EDITABLE_FIELDS = PAYLOAD_FIELDS + (
    "domain_key",
    "scheduled_at",
    "is_recurring",
    "recurrence_pattern",
    "recurrence_end_date",
)

# Fields that only make sense on one record, never fanned out to siblings
SINGLE_ONLY_FIELDS = ("scheduled_at", "is_recurring", "recurrence_pattern", "recurrence_end_date")


def derive_status(driver_id: Optional[str]) -> TripStatus:
    """Status implied by driver assignment."""
    return TripStatus.ASSIGNED if driver_id else TripStatus.UNASSIGNED


def end_of_day(day: date) -> datetime:
    """Last representable instant of a calendar day."""
    return datetime.combine(day, datetime.max.time())


@dataclass(frozen=True, slots=True)
class Occurrence:
    """Immutable trip occurrence.

    A series consists of one parent (``is_recurring=True``, carrying the
    recurrence rule) and any number of children (``parent_id`` set). A record
    with neither is a standalone trip.

    ``id`` is None until the record has been created through a repository.
    """

    scheduled_at: datetime
    id: Optional[UUID] = None
    is_recurring: bool = False
    parent_id: Optional[UUID] = None
    recurrence_pattern: Optional[RecurrencePattern] = None
    recurrence_end_date: Optional[date] = None
    domain_key: Optional[str] = None  # Flight or job number
    pickup_location: Optional[str] = None
    dropoff_location: Optional[str] = None
    passenger_count: int = 1
    driver_id: Optional[str] = None
    status: TripStatus = TripStatus.UNASSIGNED
    notes: Optional[str] = None
    version: int = 1
    created_at: datetime = field(default_factory=datetime.now)
    modified_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        """Validate occurrence data."""
        if not isinstance(self.scheduled_at, datetime):
            raise ValueError(f"scheduled_at must be a datetime, got {self.scheduled_at!r}")

        if not isinstance(self.is_recurring, bool):
            raise ValueError(f"is_recurring must be True or False, got {self.is_recurring!r}")

        if self.recurrence_end_date is not None and not isinstance(self.recurrence_end_date, date):
            raise ValueError(f"recurrence_end_date must be a date, got {self.recurrence_end_date!r}")

        if self.passenger_count < 1:
            raise ValueError("Passenger count must be at least 1")

        if self.is_recurring and self.parent_id is not None:
            raise ValueError("A recurring parent cannot itself have a parent")

    @property
    def is_child(self) -> bool:
        """Check if this occurrence belongs to a series as a child."""
        return self.parent_id is not None

    @property
    def is_in_series(self) -> bool:
        """Check if this occurrence is a series parent or child."""
        return self.is_recurring or self.is_child

    @property
    def series_root_id(self) -> Optional[UUID]:
        """Id of the parent heading this occurrence's series."""
        if self.parent_id is not None:
            return self.parent_id
        if self.is_recurring:
            return self.id
        return None

    def payload(self) -> dict:
        """Payload fields to copy onto related occurrences."""
        return {name: getattr(self, name) for name in PAYLOAD_FIELDS}

    def with_updates(self, **changes: any) -> "Occurrence":
        """Create new instance with updated fields.

        Args:
            **changes: Field names and new values

        Returns:
            New Occurrence with updates applied and version bumped

        Example:
            >>> trip = Occurrence.create(scheduled_at=datetime(2024, 3, 1, 9, 0))
            >>> moved = trip.with_updates(pickup_location="Terminal 2")
        """
        current = asdict(self)
        current.update(changes)
        current["version"] = self.version + 1
        current["modified_at"] = datetime.now()
        return Occurrence(**current)

    @classmethod
    def create(cls, scheduled_at: datetime, **kwargs: any) -> "Occurrence":
        """Factory method with status derived from driver assignment.

        Args:
            scheduled_at: Date/time of the trip
            **kwargs: Optional fields (domain_key, driver_id, locations, etc.)

        Returns:
            New Occurrence without an id
        """
        if kwargs.get("status") is None:
            kwargs["status"] = derive_status(kwargs.get("driver_id"))
        return cls(scheduled_at=scheduled_at, **kwargs)


@dataclass(frozen=True, slots=True)
class SeriesSeed:
    """Recurring trip definition submitted by the host.

    The seed's ``scheduled_at`` becomes the parent occurrence; children are
    generated after it up to and including ``end_date``.
    """

    scheduled_at: datetime
    pattern: RecurrencePattern
    end_date: date
    domain_key: Optional[str] = None
    pickup_location: Optional[str] = None
    dropoff_location: Optional[str] = None
    passenger_count: int = 1
    driver_id: Optional[str] = None
    status: Optional[TripStatus] = None
    notes: Optional[str] = None

    def _payload(self) -> dict:
        return {
            "pickup_location": self.pickup_location,
            "dropoff_location": self.dropoff_location,
            "passenger_count": self.passenger_count,
            "driver_id": self.driver_id,
            "status": self.status or derive_status(self.driver_id),
            "notes": self.notes,
        }

    def to_parent(self) -> Occurrence:
        """Build the parent occurrence carrying the recurrence rule."""
        return Occurrence(
            scheduled_at=self.scheduled_at,
            is_recurring=True,
            recurrence_pattern=self.pattern,
            recurrence_end_date=self.end_date,
            domain_key=self.domain_key,
            **self._payload(),
        )


def build_child(
    parent: Occurrence,
    when: datetime,
    status: Optional[TripStatus] = None,
) -> Occurrence:
    """Build a child of ``parent`` scheduled at ``when``.

    The child copies the parent's payload and domain key but none of its
    recurrence fields. ``status`` overrides the copied status.
    """
    if parent.id is None:
        raise ValueError("Parent must be persisted before children are built")
    payload = parent.payload()
    if status is not None:
        payload["status"] = status
    return Occurrence(
        scheduled_at=when,
        parent_id=parent.id,
        domain_key=parent.domain_key,
        **payload,
    )


@dataclass(frozen=True, slots=True)
class OccurrenceFilter:
    """Criteria for listing occurrences. None means "don't filter"."""

    parent_id: Optional[UUID] = None
    is_recurring: Optional[bool] = None
    domain_key: Optional[str] = None
    scheduled_from: Optional[datetime] = None  # Inclusive
    scheduled_to: Optional[datetime] = None  # Inclusive


@dataclass(frozen=True, slots=True)
class SeriesCreated:
    """Outcome of generating a new series."""

    parent_id: UUID
    child_count: int
    failed: int = 0


@dataclass(frozen=True, slots=True)
class ExtensionResult:
    """Children appended to one series by the window extender."""

    created: int = 0
    failed: int = 0


@dataclass(frozen=True, slots=True)
class BlastRadius:
    """Summary of the records a cascading delete would remove.

    Computed without writing anything so a host can show it to the user
    before committing.
    """

    parent_id: UUID
    domain_key: Optional[str]
    occurrence_ids: tuple[UUID, ...] = ()
    first_date: Optional[datetime] = None
    last_date: Optional[datetime] = None

    @property
    def affected_count(self) -> int:
        return len(self.occurrence_ids)

    def describe(self) -> str:
        """Human-readable summary for confirmation prompts."""
        if not self.occurrence_ids:
            return "No trips will be deleted."
        noun = "trip" if self.affected_count == 1 else "trips"
        key = f" with flight/job number {self.domain_key}" if self.domain_key else ""
        return (
            f"{self.affected_count} {noun}{key} will be deleted "
            f"({self.first_date:%Y-%m-%d} to {self.last_date:%Y-%m-%d})."
        )


@dataclass(frozen=True, slots=True)
class CancelResult:
    """Outcome of cancelling recurrence on a series."""

    deleted: int
    failed: int
    blast_radius: BlastRadius
    confirmed: bool = True
    parent_cleared: bool = False


@dataclass(frozen=True, slots=True)
class TrimResult:
    """Children removed because a parent's recurrence end date moved earlier."""

    deleted: int
    failed: int
    blast_radius: BlastRadius
    confirmed: bool = True


@dataclass(frozen=True, slots=True)
class EditResult:
    """Outcome of a scoped edit.

    When the edit turned recurrence off, ``removal`` records how that was
    signalled and ``cancel`` holds the cascade outcome. ``trimmed`` is set
    when moving the end date earlier removed children.
    """

    updated: int
    failed: int
    removal: Optional[RecurrenceRemoval] = None
    cancel: Optional[CancelResult] = None
    trimmed: Optional[TrimResult] = None


@dataclass(frozen=True, slots=True)
class DeleteResult:
    """Outcome of a scoped delete."""

    deleted: int
    failed: int
