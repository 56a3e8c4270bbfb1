"""Scoped edits, cancellations and deletions across a recurring series.

Every operation here selects series members by the compound
``(parent_id, domain_key)`` identity and mutates records one at a time. A
failed record is logged and counted; it never stops the rest of the batch.
Only a batch in which every targeted record failed raises ZeroResultError.

Cancelling recurrence or moving a series end date earlier deletes records,
so the affected set is exposed first as a BlastRadius. Hosts either call
``preview_cancel`` and confirm with the user themselves, or pass a
``confirm`` callable that receives the radius.
"""

import inspect
import logging
from datetime import date, datetime, timedelta
from typing import Any, Awaitable, Callable, Iterable, Optional, Union
from uuid import UUID

from tripseries.data.repository import OccurrenceRepository
from tripseries.domain.errors import PersistenceError, ValidationError, ZeroResultError
from tripseries.domain.models import (
    EDITABLE_FIELDS,
    SINGLE_ONLY_FIELDS,
    BlastRadius,
    CancelResult,
    DeleteResult,
    EditResult,
    Occurrence,
    RecurrenceRemoval,
    TrimResult,
    TripStatus,
    UpdateScope,
    derive_status,
    end_of_day,
)
from tripseries.services.clock import Clock
from tripseries.services.expander import coerce_pattern
from tripseries.services.membership import find_children, load_occurrence, load_root

logger = logging.getLogger(__name__)

ConfirmPort = Callable[[BlastRadius], Union[bool, Awaitable[bool]]]

RECURRENCE_FIELDS = ("is_recurring", "recurrence_pattern", "recurrence_end_date")

# Recurrence fields cleared on a parent when its series is cancelled
CLEARED_RECURRENCE = {
    "is_recurring": False,
    "recurrence_pattern": None,
    "recurrence_end_date": None,
}


def coerce_scope(scope: Union[UpdateScope, str]) -> UpdateScope:
    """Convert a scope name to UpdateScope.

    Accepts the enum, its values, and ``"this_and_future"``.

    Raises:
        ValidationError: If the scope is unknown
    """
    if isinstance(scope, UpdateScope):
        return scope
    if scope == "this_and_future":
        return UpdateScope.THIS_AND_FUTURE
    try:
        return UpdateScope(scope)
    except ValueError:
        raise ValidationError(f"Unknown scope: {scope!r}") from None


def detect_recurrence_removal(
    target: Occurrence, fields: dict[str, Any]
) -> Optional[RecurrenceRemoval]:
    """Check whether an edit payload turns recurrence off for a series member.

    The signals are kept distinct: ``is_recurring`` explicitly set to False,
    ``is_recurring`` present in the payload but None, and
    ``recurrence_pattern`` present in the payload but None. A payload that
    simply omits these fields is a plain edit.
    """
    if not target.is_in_series:
        return None
    if "is_recurring" in fields and fields["is_recurring"] is False:
        return RecurrenceRemoval.EXPLICIT_FALSE
    if "is_recurring" in fields and fields["is_recurring"] is None:
        return RecurrenceRemoval.UNDEFINED
    if "recurrence_pattern" in fields and fields["recurrence_pattern"] is None:
        return RecurrenceRemoval.PATTERN_CLEARED
    return None


def _coerce_datetime(name: str, value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            pass
    raise ValidationError(f"{name} must be a date and time, got {value!r}")


def _coerce_date(name: str, value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value)
        except ValueError:
            pass
    raise ValidationError(f"{name} must be a date, got {value!r}")


def _normalize_fields(fields: dict[str, Any]) -> dict[str, Any]:
    unknown = set(fields) - set(EDITABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Fields cannot be edited: {', '.join(sorted(unknown))}")

    changes = dict(fields)
    # None is a recurrence removal signal, anything else must be a real bool
    if changes.get("is_recurring") is not None and not isinstance(changes["is_recurring"], bool):
        raise ValidationError(
            f"is_recurring must be true or false, got {changes['is_recurring']!r}"
        )
    if "scheduled_at" in changes:
        changes["scheduled_at"] = _coerce_datetime("scheduled_at", changes["scheduled_at"])
    if changes.get("recurrence_end_date") is not None:
        changes["recurrence_end_date"] = _coerce_date(
            "recurrence_end_date", changes["recurrence_end_date"]
        )
    if changes.get("recurrence_pattern") is not None:
        changes["recurrence_pattern"] = coerce_pattern(changes["recurrence_pattern"])
    if changes.get("status") is not None and not isinstance(changes["status"], TripStatus):
        try:
            changes["status"] = TripStatus(changes["status"])
        except ValueError:
            raise ValidationError(f"Unknown trip status: {changes['status']!r}") from None
    if "passenger_count" in changes and (changes["passenger_count"] or 0) < 1:
        raise ValidationError("Passenger count must be at least 1")

    # Driver changes drive status unless a status was given explicitly
    if "driver_id" in changes:
        if not changes["driver_id"]:
            changes["driver_id"] = None
        if "status" not in changes:
            changes["status"] = derive_status(changes["driver_id"])

    return changes


async def _ask(confirm: ConfirmPort, radius: BlastRadius) -> bool:
    answer = confirm(radius)
    if inspect.isawaitable(answer):
        answer = await answer
    return bool(answer)


class LifecycleMutator:
    """Applies scoped state transitions to existing series.

    | Operation | single | this_and_future | all |
    |---|---|---|---|
    | edit | target | target and later members | every member |
    | cancel | rejected | later children deleted, target detached | all children deleted |
    | delete | target (parent: children detached) | target and later | whole series |
    """

    def __init__(self, repository: OccurrenceRepository, clock: Clock):
        self._repo = repository
        self._clock = clock

    # ----- edits -----------------------------------------------------------

    async def edit_scoped(
        self,
        target_id: UUID,
        scope: Union[UpdateScope, str],
        fields: dict[str, Any],
        confirm: Optional[ConfirmPort] = None,
    ) -> EditResult:
        """Apply field changes to a trip and, depending on scope, its series.

        If the payload turns recurrence off, the edit takes the cancellation
        path instead: a parent cancels its whole series, a child cancels
        itself and everything after it. ``confirm`` is consulted before any
        delete in that case.

        Moving a parent's recurrence end date earlier deletes the children
        scheduled after the new end, again behind ``confirm``. A parent whose
        series already has children keeps its pattern.

        Args:
            target_id: Trip being edited
            scope: single, this_and_future or all
            fields: Field names and new values
            confirm: Optional confirmation port for a detected cancellation
                     or a shortened series

        Returns:
            EditResult with counts; ``removal``/``cancel`` set when recurrence
            was turned off, ``trimmed`` when an earlier end date removed
            children

        Raises:
            ValidationError: On unknown fields, scope or an edit that would
                             break series membership
            OccurrenceNotFoundError: If the target does not exist
            ZeroResultError: If every targeted update failed
        """
        scope = coerce_scope(scope)
        changes = _normalize_fields(fields)
        target = await load_occurrence(self._repo, target_id)

        removal = detect_recurrence_removal(target, changes)
        if removal is not None:
            return await self._edit_removing_recurrence(target, changes, removal, confirm)

        # Outside a series an undefined flag just means not recurring
        if "is_recurring" in changes and changes["is_recurring"] is None:
            changes["is_recurring"] = False

        self._validate_edit(target, scope, changes)

        trimmed = None
        if not target.is_in_series:
            members = [target]
        else:
            root = await load_root(self._repo, target)
            children = await find_children(self._repo, root)
            if target.id == root.id:
                self._validate_rule_change(root, children, changes)
                radius = self._trim_radius(root, children, changes)
                if radius is not None:
                    trimmed = await self._trim(radius, confirm)
                    if not trimmed.confirmed:
                        return EditResult(updated=0, failed=0, trimmed=trimmed)
                    gone = set(radius.occurrence_ids)
                    children = [c for c in children if c.id not in gone]
            members = self._select_for_edit(target, root, children, scope)

        shared = {k: v for k, v in changes.items() if k not in SINGLE_ONLY_FIELDS}
        updates = [
            (member, changes if member.id == target.id else shared)
            for member in members
        ]
        updated, failed = await self._update_each(updates)

        logger.info(
            f"Edited trip {target.id} with scope {scope.value}: "
            f"{updated} updated, {failed} failed"
        )
        return EditResult(updated=updated, failed=failed, trimmed=trimmed)

    def _validate_rule_change(
        self, root: Occurrence, children: list[Occurrence], changes: dict[str, Any]
    ) -> None:
        if "recurrence_end_date" in changes:
            new_end = changes["recurrence_end_date"]
            if new_end is None and root.is_recurring:
                raise ValidationError("A recurring trip needs a recurrence end date")
            if new_end is not None and new_end < root.scheduled_at.date():
                raise ValidationError(
                    f"Recurrence end date {new_end} is before the first trip of the series"
                )

        pattern = changes.get("recurrence_pattern")
        if pattern is not None and pattern != root.recurrence_pattern and children:
            raise ValidationError(
                "The pattern of a series with generated trips cannot be changed; "
                "cancel the series and create it again"
            )

    def _trim_radius(
        self, root: Occurrence, children: list[Occurrence], changes: dict[str, Any]
    ) -> Optional[BlastRadius]:
        new_end = changes.get("recurrence_end_date")
        if new_end is None:
            return None
        if root.recurrence_end_date is not None and new_end >= root.recurrence_end_date:
            return None

        cutoff = end_of_day(new_end)
        affected = [c for c in children if c.scheduled_at > cutoff]
        if not affected:
            return None
        return self._radius_of(root, affected)

    async def _trim(self, radius: BlastRadius, confirm: Optional[ConfirmPort]) -> TrimResult:
        if confirm is not None and not await _ask(confirm, radius):
            logger.info(f"Shortening series {radius.parent_id} declined by user")
            return TrimResult(deleted=0, failed=0, blast_radius=radius, confirmed=False)

        deleted, failed = await self._delete_each(radius.occurrence_ids)
        if not deleted:
            raise ZeroResultError(
                f"None of the {radius.affected_count} trips past the new end date "
                "could be deleted; the end date was left in place",
                attempted=radius.affected_count,
            )

        logger.info(
            f"Removed {deleted} trips past the new end of series {radius.parent_id}, "
            f"{failed} failed"
        )
        return TrimResult(deleted=deleted, failed=failed, blast_radius=radius)

    def _validate_edit(
        self, target: Occurrence, scope: UpdateScope, changes: dict[str, Any]
    ) -> None:
        if target.is_child and any(
            changes.get(name) for name in RECURRENCE_FIELDS
        ):
            raise ValidationError(
                "Recurrence can only be changed on the parent trip of a series"
            )

        if changes.get("is_recurring") and not target.is_in_series:
            pattern = changes.get("recurrence_pattern", target.recurrence_pattern)
            end_date = changes.get("recurrence_end_date", target.recurrence_end_date)
            if pattern is None or end_date is None:
                raise ValidationError(
                    "A recurring trip needs both a recurrence pattern and an end date"
                )

        if "domain_key" in changes and target.is_in_series and scope != UpdateScope.ALL:
            if changes["domain_key"] != target.domain_key:
                raise ValidationError(
                    "Changing the flight/job number of a series member requires scope 'all'"
                )

    def _select_for_edit(
        self,
        target: Occurrence,
        root: Occurrence,
        children: list[Occurrence],
        scope: UpdateScope,
    ) -> list[Occurrence]:
        if scope == UpdateScope.SINGLE:
            return [target]

        series = [*children, root]
        if target.id not in {m.id for m in series}:
            series.append(target)
        if scope == UpdateScope.ALL:
            return series

        return [m for m in series if m.scheduled_at >= target.scheduled_at]

    async def _edit_removing_recurrence(
        self,
        target: Occurrence,
        changes: dict[str, Any],
        removal: RecurrenceRemoval,
        confirm: Optional[ConfirmPort],
    ) -> EditResult:
        cascade_scope = UpdateScope.THIS_AND_FUTURE if target.is_child else UpdateScope.ALL
        logger.info(
            f"Edit of trip {target.id} turns recurrence off ({removal.value}); "
            f"cancelling with scope {cascade_scope.value}"
        )

        cancel = await self.cancel_scoped(target.id, cascade_scope, confirm=confirm)
        if not cancel.confirmed:
            return EditResult(updated=0, failed=0, removal=removal, cancel=cancel)

        remaining = {k: v for k, v in changes.items() if k not in RECURRENCE_FIELDS}
        if not remaining:
            return EditResult(updated=0, failed=0, removal=removal, cancel=cancel)

        updated, failed = await self._update_each([(target, remaining)])
        return EditResult(updated=updated, failed=failed, removal=removal, cancel=cancel)

    # ----- cancellation ----------------------------------------------------

    async def preview_cancel(
        self, target_id: UUID, scope: Union[UpdateScope, str]
    ) -> BlastRadius:
        """Compute what cancelling recurrence would delete, without writing.

        Raises:
            ValidationError: If scope is single or the trip is not in a series
            OccurrenceNotFoundError: If the target does not exist
        """
        scope = self._cancel_scope(scope)
        target = await load_occurrence(self._repo, target_id)
        root = await load_root(self._repo, target)
        children = await find_children(self._repo, root)
        return self._blast_radius(target, root, children, scope)

    async def cancel_scoped(
        self,
        target_id: UUID,
        scope: Union[UpdateScope, str],
        confirm: Optional[ConfirmPort] = None,
    ) -> CancelResult:
        """Cancel recurrence for a series.

        ``this_and_future`` deletes the children scheduled at or after the
        target (the target itself is kept and detached as a standalone trip);
        ``all`` deletes every child. Either way the parent's recurrence rule
        is cleared. Cancellation always applies to the series, so ``single``
        is rejected.

        Args:
            target_id: Parent or child trip the cancellation starts from
            scope: this_and_future or all
            confirm: Optional port called with the BlastRadius before any
                     delete. Returning False aborts with nothing written.

        Returns:
            CancelResult with delete counts and the blast radius

        Raises:
            ValidationError: If scope is single or the trip is not in a series
            OccurrenceNotFoundError: If the target does not exist
            ZeroResultError: If children were targeted but none could be deleted
        """
        scope = self._cancel_scope(scope)
        target = await load_occurrence(self._repo, target_id)
        root = await load_root(self._repo, target)
        children = await find_children(self._repo, root)
        radius = self._blast_radius(target, root, children, scope)

        if confirm is not None and not await _ask(confirm, radius):
            logger.info(f"Cancellation of series {root.id} declined by user")
            return CancelResult(deleted=0, failed=0, blast_radius=radius, confirmed=False)

        deleted, failed = await self._delete_each(radius.occurrence_ids)
        if radius.occurrence_ids and not deleted:
            raise ZeroResultError(
                f"None of the {radius.affected_count} trips could be deleted; "
                "recurrence was left in place",
                attempted=radius.affected_count,
            )

        parent_cleared = await self._clear_recurrence(root)

        if target.is_child and scope == UpdateScope.THIS_AND_FUTURE:
            await self._detach(target)

        logger.info(
            f"Cancelled recurrence of series {root.id} (key={root.domain_key}) "
            f"with scope {scope.value}: {deleted} deleted, {failed} failed"
        )
        return CancelResult(
            deleted=deleted,
            failed=failed,
            blast_radius=radius,
            parent_cleared=parent_cleared,
        )

    def _cancel_scope(self, scope: Union[UpdateScope, str]) -> UpdateScope:
        scope = coerce_scope(scope)
        if scope == UpdateScope.SINGLE:
            raise ValidationError(
                "Cancelling recurrence applies to the series; use 'thisAndFuture' or 'all'"
            )
        return scope

    def _blast_radius(
        self,
        target: Occurrence,
        root: Occurrence,
        children: list[Occurrence],
        scope: UpdateScope,
    ) -> BlastRadius:
        if scope == UpdateScope.ALL:
            affected = list(children)
        else:
            affected = [
                c for c in children
                if c.scheduled_at >= target.scheduled_at and c.id != target.id
            ]
        return self._radius_of(root, affected)

    def _radius_of(self, root: Occurrence, affected: list[Occurrence]) -> BlastRadius:
        dates = [c.scheduled_at for c in affected]
        return BlastRadius(
            parent_id=root.id,
            domain_key=root.domain_key,
            occurrence_ids=tuple(c.id for c in affected),
            first_date=min(dates, default=None),
            last_date=max(dates, default=None),
        )

    async def _clear_recurrence(self, root: Occurrence) -> bool:
        if not root.is_recurring and root.recurrence_pattern is None:
            return True
        try:
            await self._repo.update(root.id, dict(CLEARED_RECURRENCE))
        except PersistenceError as e:
            logger.error(f"Could not clear recurrence on parent {root.id}: {e}")
            return False
        return True

    async def _detach(self, occurrence: Occurrence) -> bool:
        try:
            await self._repo.update(occurrence.id, {"parent_id": None})
        except PersistenceError as e:
            logger.error(f"Could not detach trip {occurrence.id} from its series: {e}")
            return False
        return True

    # ----- deletion --------------------------------------------------------

    async def delete_scoped(
        self, target_id: UUID, scope: Union[UpdateScope, str]
    ) -> DeleteResult:
        """Delete a trip and, depending on scope, part of its series.

        For a parent: ``single`` deletes only the parent and detaches its
        children as standalone trips; ``this_and_future`` deletes the parent
        and children from now on, detaching earlier ones; ``all`` deletes the
        whole series.

        For a child: ``single`` deletes only that child; ``this_and_future``
        deletes it and later siblings and ends the parent's recurrence the
        day before; ``all`` deletes the whole series.

        Raises:
            ValidationError: If the scope is unknown
            OccurrenceNotFoundError: If the target does not exist
            ZeroResultError: If nothing targeted could be deleted
        """
        scope = coerce_scope(scope)
        target = await load_occurrence(self._repo, target_id)

        if target.is_child and scope != UpdateScope.ALL:
            result = await self._delete_from_child(target, scope)
        else:
            # A standalone trip may still head the history of a cancelled series
            root = await load_root(self._repo, target) if target.is_child else target
            result = await self._delete_from_parent(root, scope)

        logger.info(
            f"Deleted from trip {target.id} with scope {scope.value}: "
            f"{result.deleted} deleted, {result.failed} failed"
        )
        return result

    async def _delete_from_child(self, target: Occurrence, scope: UpdateScope) -> DeleteResult:
        if scope == UpdateScope.SINGLE:
            return await self._delete_batch([target.id])

        root = await load_root(self._repo, target)
        children = await find_children(self._repo, root)
        doomed = [c.id for c in children if c.scheduled_at >= target.scheduled_at]
        if target.id not in doomed:
            doomed.append(target.id)

        result = await self._delete_batch(doomed)

        last_day = target.scheduled_at.date() - timedelta(days=1)
        ends_later = root.recurrence_end_date is None or root.recurrence_end_date > last_day
        if root.is_recurring and ends_later:
            try:
                await self._repo.update(root.id, {"recurrence_end_date": last_day})
            except PersistenceError as e:
                logger.error(f"Could not end recurrence of parent {root.id}: {e}")
                return DeleteResult(deleted=result.deleted, failed=result.failed + 1)
        return result

    async def _delete_from_parent(self, root: Occurrence, scope: UpdateScope) -> DeleteResult:
        children = await find_children(self._repo, root)

        if scope == UpdateScope.ALL:
            doomed, survivors = children, []
        elif scope == UpdateScope.THIS_AND_FUTURE:
            now = self._clock.now()
            doomed = [c for c in children if c.scheduled_at >= now]
            survivors = [c for c in children if c.scheduled_at < now]
        else:
            doomed, survivors = [], children

        detach_failed = 0
        for survivor in survivors:
            if not await self._detach(survivor):
                detach_failed += 1

        # Children go before the parent so a failure never leaves orphans behind
        result = await self._delete_batch([c.id for c in doomed] + [root.id])
        return DeleteResult(deleted=result.deleted, failed=result.failed + detach_failed)

    async def _delete_batch(self, ids: list[UUID]) -> DeleteResult:
        deleted, failed = await self._delete_each(ids)
        if ids and not deleted:
            raise ZeroResultError(
                f"None of the {len(ids)} trips could be deleted", attempted=len(ids)
            )
        return DeleteResult(deleted=deleted, failed=failed)

    # ----- batch primitives ------------------------------------------------

    async def _update_each(
        self, updates: Iterable[tuple[Occurrence, dict[str, Any]]]
    ) -> tuple[int, int]:
        updated = failed = attempted = 0
        for occurrence, changes in updates:
            if not changes:
                continue
            attempted += 1
            try:
                await self._repo.update(occurrence.id, changes)
                updated += 1
            except PersistenceError as e:
                failed += 1
                logger.error(f"Failed to update trip {occurrence.id}: {e}")

        if attempted and not updated:
            raise ZeroResultError(
                f"None of the {attempted} trips could be updated", attempted=attempted
            )
        return updated, failed

    async def _delete_each(self, ids: Iterable[UUID]) -> tuple[int, int]:
        deleted = failed = 0
        for id in ids:
            try:
                if await self._repo.delete(id):
                    deleted += 1
                else:
                    failed += 1
                    logger.warning(f"Trip {id} was already gone when deleting")
            except PersistenceError as e:
                failed += 1
                logger.error(f"Failed to delete trip {id}: {e}")
        return deleted, failed
