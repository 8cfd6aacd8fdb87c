# crewpay_api/services/assignments.py
"""
Staffing scheduled shifts: many-to-many employees <-> scheduled shifts.

``set_assignees`` reconciles against the current roster with one insert batch
and one delete batch, committed together.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, List, Optional, Set

from sqlalchemy import insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from crewpay_api.common.errors import ConflictError, NotFoundError, StoreError, ValidationError
from crewpay_api.common.timeutils import utcnow
from crewpay_api.extensions import db
from crewpay_api.models.scheduled_shift import ScheduledShift, ShiftAssignment
from crewpay_api.models.user import User
from crewpay_api.services import audit
from crewpay_api.services.schedule import is_upcoming, partition

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class AssignmentDiff:
    added: List[int] = field(default_factory=list)
    removed: List[int] = field(default_factory=list)

    @property
    def is_noop(self) -> bool:
        return not self.added and not self.removed

    def to_dict(self) -> dict:
        return {"added": self.added, "removed": self.removed}


def _shift(shift_id: int) -> ScheduledShift:
    s = db.session.get(ScheduledShift, shift_id)
    if s is None:
        raise NotFoundError("Scheduled shift not found")
    return s


def _ids(values: Iterable) -> Set[int]:
    try:
        values = list(values)
        if any(isinstance(v, bool) for v in values):
            raise TypeError("boolean id")
        return {int(v) for v in values}
    except (TypeError, ValueError):
        raise ValidationError("employeeIds must be a list of integers", field="employeeIds")


def _check_employees(ids: Set[int]) -> None:
    if not ids:
        return
    found = {u.id: u for u in User.query.filter(User.id.in_(ids)).all()}
    missing = sorted(ids - set(found))
    if missing:
        raise NotFoundError(f"Employee(s) not found: {', '.join(map(str, missing))}")
    inactive = sorted(i for i, u in found.items() if not u.is_active)
    if inactive:
        raise ValidationError(
            f"Inactive employee(s) cannot be assigned: {', '.join(map(str, inactive))}",
            field="employeeIds",
        )


def _current(shift_id: int) -> Set[int]:
    rows = db.session.query(ShiftAssignment.employee_id).filter(ShiftAssignment.scheduled_shift_id == shift_id)
    return {r[0] for r in rows}


def _write(shift_id: int, to_add: Set[int], to_remove: Set[int], actor: Optional[User]) -> AssignmentDiff:
    diff = AssignmentDiff(sorted(to_add), sorted(to_remove))
    if diff.is_noop:
        return diff

    actor_id = actor.id if actor is not None else None
    try:
        if to_add:
            db.session.execute(
                insert(ShiftAssignment),
                [{"scheduled_shift_id": shift_id, "employee_id": eid, "assigned_by": actor_id} for eid in diff.added],
            )
        if to_remove:
            (ShiftAssignment.query
             .filter(ShiftAssignment.scheduled_shift_id == shift_id, ShiftAssignment.employee_id.in_(diff.removed))
             .delete())
        db.session.commit()
    except IntegrityError as e:
        # concurrent add of the same (shift, employee)
        db.session.rollback()
        log.warning("assignment update for scheduled shift %s conflicted: %s", shift_id, e)
        raise ConflictError("Employee already assigned to this shift") from e
    except SQLAlchemyError as e:
        db.session.rollback()
        log.error("assignment update for scheduled shift %s failed: %s", shift_id, e)
        raise StoreError() from e

    audit.record(actor_id, audit.ASSIGNMENT_CHANGED, f"Updated staffing for scheduled shift {shift_id}",
                 resource_type="scheduled_shift", resource_id=shift_id, metadata=diff.to_dict())
    return diff


def get_assignees(shift_id: int) -> Set[int]:
    _shift(shift_id)
    return _current(shift_id)


def add_assignees(shift_id: int, employee_ids: Iterable, actor: Optional[User] = None) -> AssignmentDiff:
    _shift(shift_id)
    ids = _ids(employee_ids)
    dupes = sorted(ids & _current(shift_id))
    if dupes:
        raise ConflictError(
            f"Already assigned: {', '.join(map(str, dupes))}",
            errors={"employeeIds": dupes},
        )
    _check_employees(ids)
    return _write(shift_id, ids, set(), actor)


def remove_assignees(shift_id: int, employee_ids: Iterable, actor: Optional[User] = None) -> AssignmentDiff:
    _shift(shift_id)
    ids = _ids(employee_ids)
    missing = sorted(ids - _current(shift_id))
    if missing:
        raise NotFoundError(f"Not assigned: {', '.join(map(str, missing))}")
    return _write(shift_id, set(), ids, actor)


def set_assignees(shift_id: int, desired: Iterable, actor: Optional[User] = None) -> AssignmentDiff:
    _shift(shift_id)
    want = _ids(desired)
    current = _current(shift_id)
    to_add = want - current
    _check_employees(to_add)
    return _write(shift_id, to_add, current - want, actor)


@dataclass
class EmployeeScheduleEntry:
    shift: ScheduledShift
    teammates: List[User]
    upcoming: bool


def schedule_for_employee(employee_id: int, now: Optional[datetime] = None, include_past: bool = False) -> List[EmployeeScheduleEntry]:
    """The employee's assigned scheduled shifts, each with the rest of the roster."""
    now = now or utcnow()
    shifts = (
        ScheduledShift.query
        .join(ShiftAssignment, ShiftAssignment.scheduled_shift_id == ScheduledShift.id)
        .filter(ShiftAssignment.employee_id == employee_id)
        .all()
    )
    upcoming, past = partition(shifts, now)
    chosen = upcoming + (past if include_past else [])

    entries = []
    for s in chosen:
        mates = sorted(
            (a.employee for a in s.assignments if a.employee_id != employee_id and a.employee is not None),
            key=lambda u: ((u.full_name or "").lower(), u.id),
        )
        entries.append(EmployeeScheduleEntry(s, mates, is_upcoming(s, now)))
    return entries
