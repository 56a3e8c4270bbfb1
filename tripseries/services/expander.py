"""Expansion of a recurrence rule into concrete occurrence dates."""

import logging
import warnings
from datetime import date, datetime, time, timedelta
from typing import Optional, Union

from dateutil.relativedelta import relativedelta

from tripseries.domain.errors import SafetyLimitExceeded, ValidationError
from tripseries.domain.models import RecurrencePattern, end_of_day

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 1000

DateLike = Union[date, datetime]


def coerce_pattern(pattern: Union[RecurrencePattern, str, None]) -> RecurrencePattern:
    """Convert a pattern name to RecurrencePattern.

    Raises:
        ValidationError: If the pattern is missing or unknown
    """
    if isinstance(pattern, RecurrencePattern):
        return pattern
    try:
        return RecurrencePattern(pattern)
    except ValueError:
        raise ValidationError(f"Unknown recurrence pattern: {pattern!r}") from None


def next_occurrence(current: datetime, pattern: RecurrencePattern) -> datetime:
    """Calculate next occurrence based on pattern.

    Months are added with relativedelta, so a date past the end of the
    following month is clamped to its last day.

    Example:
        >>> next_occurrence(datetime(2024, 1, 31, 9, 0), RecurrencePattern.MONTHLY)
        datetime.datetime(2024, 2, 29, 9, 0)
    """
    if pattern == RecurrencePattern.DAILY:
        return current + timedelta(days=1)
    elif pattern == RecurrencePattern.WEEKLY:
        return current + timedelta(weeks=1)
    elif pattern == RecurrencePattern.MONTHLY:
        return current + relativedelta(months=1)
    else:
        raise ValidationError(f"Unknown recurrence pattern: {pattern!r}")


def _as_datetime(value: DateLike) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.combine(value, time.min)


def _as_date(value: DateLike) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def _iterate(
    start: datetime,
    pattern: RecurrencePattern,
    bound: datetime,
    max_iterations: int,
) -> list[datetime]:
    dates: list[datetime] = []
    current = start

    while True:
        candidate = next_occurrence(current, pattern)
        if candidate > bound:
            break
        if len(dates) >= max_iterations:
            message = (
                f"Expansion of {pattern.value} rule from {start.isoformat()} stopped at "
                f"{max_iterations} occurrences; later dates were not generated"
            )
            logger.warning(message)
            warnings.warn(message, SafetyLimitExceeded, stacklevel=3)
            break
        dates.append(candidate)
        current = candidate

    return dates


def expand(
    anchor: DateLike,
    pattern: Union[RecurrencePattern, str],
    end_date: DateLike,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
) -> list[DateLike]:
    """Generate the dates of a series strictly after its anchor.

    Each date is the previous one advanced by one pattern unit. The sequence
    stops before the first candidate later than end-of-day(``end_date``), so
    an occurrence falling on the end date itself is included.

    Args:
        anchor: Date/time of the parent occurrence
        pattern: Recurrence pattern (enum or its string value)
        end_date: Inclusive calendar bound
        max_iterations: Cap on generated dates; hitting it emits a
                        SafetyLimitExceeded warning and returns what was built

    Returns:
        Ordered dates. Same type as ``anchor`` (date in, date out).

    Raises:
        ValidationError: If end_date falls before the anchor or the pattern
                         is unknown

    Example:
        >>> expand(date(2024, 1, 1), "weekly", date(2024, 1, 15))
        [datetime.date(2024, 1, 8), datetime.date(2024, 1, 15)]
    """
    pattern = coerce_pattern(pattern)
    if _as_date(end_date) < _as_date(anchor):
        raise ValidationError(
            f"Recurrence end date {_as_date(end_date).isoformat()} is before "
            f"start date {_as_date(anchor).isoformat()}"
        )

    dates = _iterate(
        _as_datetime(anchor), pattern, end_of_day(_as_date(end_date)), max_iterations
    )
    if isinstance(anchor, datetime):
        return dates
    return [d.date() for d in dates]


def expand_until(
    anchor: datetime,
    pattern: Union[RecurrencePattern, str],
    end_date: DateLike,
    horizon: Optional[datetime] = None,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
) -> list[datetime]:
    """Generate dates after ``anchor`` bounded by both end date and horizon.

    Unlike ``expand``, an anchor already past the end date is not an error:
    the series is simply exhausted and nothing is returned.

    Args:
        anchor: Last known occurrence to advance from
        pattern: Recurrence pattern
        end_date: Inclusive calendar bound of the series
        horizon: Optional instant past which no dates are generated
        max_iterations: Cap on generated dates

    Returns:
        Ordered datetimes, possibly empty
    """
    pattern = coerce_pattern(pattern)
    bound = end_of_day(_as_date(end_date))
    if horizon is not None:
        bound = min(bound, horizon)

    start = _as_datetime(anchor)
    if start >= bound:
        return []
    return _iterate(start, pattern, bound, max_iterations)
