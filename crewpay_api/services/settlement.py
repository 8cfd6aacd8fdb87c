# crewpay_api/services/settlement.py
"""
Payroll settlement: moving worked shifts between Unpaid and Paid.

    Unpaid -> Paid    is_paid=True, paid_at=now, paid_by=actor
    Paid   -> Unpaid  all three cleared

Every write goes through ``PaidStateChange``: the in-memory records are
mutated first, then committed once; a failed commit restores the snapshot so
callers never see a half-applied batch. There is no version token, so two
concurrent payments of the same shift resolve as last write wins.
"""
from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Set

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError

from crewpay_api.common.errors import ConflictError, NotFoundError, StoreError, ValidationError
from crewpay_api.common.timeutils import get_zone, local_date, utcnow
from crewpay_api.extensions import db
from crewpay_api.models.shift_record import ShiftRecord
from crewpay_api.models.user import User
from crewpay_api.services import audit
from crewpay_api.services.pay_rules import money, record_pay

log = logging.getLogger(__name__)

ConfirmFn = Callable[["BulkPreview"], bool]


# ---------- aggregation ----------

@dataclass(frozen=True)
class EmployeeTotals:
    total_hours: Decimal
    total_pay: Decimal
    paid_pay: Decimal
    unpaid_pay: Decimal
    shift_count: int

    def to_dict(self) -> dict:
        return {
            "total_hours": str(money(self.total_hours)),
            "total_pay": str(money(self.total_pay)),
            "paid_pay": str(money(self.paid_pay)),
            "unpaid_pay": str(money(self.unpaid_pay)),
            "shift_count": self.shift_count,
        }


def summarize(records: Iterable) -> EmployeeTotals:
    hours = paid = unpaid = Decimal(0)
    count = 0
    for r in records:
        amount = record_pay(r).amount
        hours += Decimal(str(r.hours_worked or 0))
        if r.is_paid:
            paid += amount
        else:
            unpaid += amount
        count += 1
    return EmployeeTotals(hours, paid + unpaid, paid, unpaid, count)


def summarize_by_employee(records: Iterable) -> Dict[int, EmployeeTotals]:
    buckets: Dict[int, list] = {}
    for r in records:
        buckets.setdefault(r.employee_id, []).append(r)
    return {emp_id: summarize(rows) for emp_id, rows in buckets.items()}


@dataclass
class EmployeeGroup:
    employee: User
    records: List[ShiftRecord]
    totals: EmployeeTotals


def group_by_employee(records: Sequence[ShiftRecord]) -> List[EmployeeGroup]:
    by_emp: Dict[int, List[ShiftRecord]] = OrderedDict()
    for r in records:
        by_emp.setdefault(r.employee_id, []).append(r)
    groups = [EmployeeGroup(rows[0].employee, rows, summarize(rows)) for rows in by_emp.values()]
    groups.sort(key=lambda g: ((g.employee.full_name or "").lower(), g.employee.id))
    return groups


# ---------- bulk preview / outcome ----------

@dataclass(frozen=True)
class BulkPreview:
    paid: bool
    shift_ids: List[int]
    employee_ids: List[int]
    hours: Decimal
    amount: Decimal

    @property
    def count(self) -> int:
        return len(self.shift_ids)

    def to_dict(self) -> dict:
        return {
            "paid": self.paid,
            "count": self.count,
            "shift_ids": self.shift_ids,
            "employee_ids": self.employee_ids,
            "hours": str(money(self.hours)),
            "amount": str(money(self.amount)),
        }


@dataclass
class BulkResult:
    applied: bool
    preview: Optional[BulkPreview] = None
    records: List[ShiftRecord] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.records) if self.applied else 0


def _preview(records: Sequence[ShiftRecord], paid: bool) -> BulkPreview:
    totals = summarize(records)
    return BulkPreview(
        paid=paid,
        shift_ids=sorted(r.id for r in records),
        employee_ids=sorted({r.employee_id for r in records}),
        hours=totals.total_hours,
        amount=totals.total_pay,
    )


# ---------- optimistic change ----------

class PaidStateChange:
    """Snapshot, mutate, then commit once; ``rollback`` puts the snapshot back."""

    def __init__(self, records: Sequence[ShiftRecord], paid: bool, actor_id: Optional[int] = None, now: Optional[datetime] = None):
        if paid and actor_id is None:
            raise ValidationError("A payer is required to mark shifts paid", field="paid_by")
        self.records = list(records)
        self.paid = paid
        self.actor_id = actor_id
        self.now = now
        self._snapshot: Dict[int, tuple] = {}

    def apply(self) -> "PaidStateChange":
        stamp = self.now or utcnow()
        for r in self.records:
            self._snapshot[id(r)] = (r.is_paid, r.paid_at, r.paid_by)
            if self.paid:
                r.is_paid, r.paid_at, r.paid_by = True, stamp, self.actor_id
            else:
                r.is_paid, r.paid_at, r.paid_by = False, None, None
        return self

    def rollback(self) -> None:
        for r in self.records:
            snap = self._snapshot.get(id(r))
            if snap is not None:
                r.is_paid, r.paid_at, r.paid_by = snap
        self._snapshot.clear()

    def commit(self) -> None:
        try:
            db.session.commit()
        except SQLAlchemyError as e:
            self.rollback()
            db.session.rollback()
            log.error("paid-state change for %d record(s) failed: %s", len(self.records), e)
            raise StoreError() from e
        self._snapshot.clear()


def _run_change(records: Sequence[ShiftRecord], paid: bool, actor: Optional[User]) -> None:
    change = PaidStateChange(records, paid, actor.id if actor is not None else None)
    change.apply()
    change.commit()
    action = audit.PAYMENT if paid else audit.PAYMENT_UNDONE
    verb = "Marked paid" if paid else "Marked unpaid"
    audit.record(
        actor.id if actor is not None else None, action,
        f"{verb}: {len(records)} shift(s)",
        resource_type="shift",
        resource_id=records[0].id if len(records) == 1 else None,
        metadata={"shift_ids": [r.id for r in records]},
    )


# ---------- single transitions ----------

def mark_paid(rec: ShiftRecord, actor: User) -> ShiftRecord:
    """Re-marking an already paid shift overwrites paid_at/paid_by."""
    _run_change([rec], True, actor)
    log.info("shift %s marked paid by %s", rec.id, actor.id)
    return rec


def undo_paid(rec: ShiftRecord, actor: Optional[User] = None) -> ShiftRecord:
    if not rec.is_paid:
        return rec
    _run_change([rec], False, actor)
    log.info("shift %s marked unpaid", rec.id)
    return rec


# ---------- bulk transitions ----------

def _settle(records: List[ShiftRecord], paid: bool, actor: User, confirm: ConfirmFn) -> BulkResult:
    if not records:
        return BulkResult(applied=False)
    preview = _preview(records, paid)
    if not confirm(preview):
        return BulkResult(applied=False, preview=preview)
    _run_change(records, paid, actor)
    return BulkResult(applied=True, preview=preview, records=records)


def _load(shift_ids: Iterable[int]) -> List[ShiftRecord]:
    ids = sorted({int(i) for i in shift_ids})
    if not ids:
        return []
    rows = ShiftRecord.query.filter(ShiftRecord.id.in_(ids)).order_by(ShiftRecord.id).all()
    missing = sorted(set(ids) - {r.id for r in rows})
    if missing:
        raise NotFoundError(f"Shift(s) not found: {', '.join(map(str, missing))}")
    return rows


def bulk_mark_paid(employee_id: int, target_state: bool, actor: User, confirm: ConfirmFn) -> BulkResult:
    """All of one employee's shifts whose paid flag differs from ``target_state``."""
    if db.session.get(User, employee_id) is None:
        raise NotFoundError("Employee not found")
    records = (
        ShiftRecord.query
        .filter(ShiftRecord.employee_id == employee_id, ShiftRecord.is_paid.is_(not target_state))
        .order_by(ShiftRecord.shift_date, ShiftRecord.id)
        .all()
    )
    return _settle(records, target_state, actor, confirm)


def batch_mark_paid_by_selection(shift_ids: Iterable[int], actor: User, confirm: ConfirmFn) -> BulkResult:
    """Settle a cross-employee selection of unpaid shifts."""
    records = _load(shift_ids)
    already = [r.id for r in records if r.is_paid]
    if already:
        raise ConflictError(
            f"Shift(s) already paid: {', '.join(map(str, already))}",
            errors={"already_paid": already},
        )
    return _settle(records, True, actor, confirm)


def set_paid_state(shift_ids: Iterable[int], paid: bool, actor: User, confirm: ConfirmFn) -> BulkResult:
    """Toggle the given shifts to ``paid``; those already there are skipped."""
    records = [r for r in _load(shift_ids) if bool(r.is_paid) != bool(paid)]
    return _settle(records, paid, actor, confirm)


# ---------- selection ----------

class PayrollSelection:
    """
    Selection over the currently filtered unpaid shifts.

    Toggling an employee flips all of that employee's filtered shifts; an
    employee counts as selected only while every one of their shifts is.
    """

    def __init__(self, records: Iterable, selected: Iterable[int] = ()):
        self._by_employee: Dict[int, Set[int]] = {}
        for r in records:
            self._by_employee.setdefault(r.employee_id, set()).add(r.id)
        visible = self.visible_ids
        self.selected: Set[int] = {int(i) for i in selected if int(i) in visible}

    @property
    def visible_ids(self) -> Set[int]:
        return set().union(*self._by_employee.values()) if self._by_employee else set()

    def toggle_shift(self, shift_id: int) -> None:
        if shift_id not in self.visible_ids:
            raise NotFoundError(f"Shift {shift_id} is not in the current view")
        self.selected ^= {shift_id}

    def toggle_employee(self, employee_id: int) -> None:
        ids = self._by_employee.get(employee_id)
        if not ids:
            raise NotFoundError(f"Employee {employee_id} has no shifts in the current view")
        if ids <= self.selected:
            self.selected -= ids
        else:
            self.selected |= ids

    def is_employee_selected(self, employee_id: int) -> bool:
        ids = self._by_employee.get(employee_id)
        return bool(ids) and ids <= self.selected

    def selected_employees(self) -> List[int]:
        return sorted(e for e in self._by_employee if self.is_employee_selected(e))

    def select_all(self) -> None:
        self.selected = self.visible_ids

    def clear(self) -> None:
        self.selected = set()


# ---------- read views ----------

def _search_filter(q, search: Optional[str]):
    if not search:
        return q
    like = f"%{search.strip()}%"
    return q.filter(or_(User.full_name.ilike(like), User.phone.ilike(like), User.venmo_url.ilike(like)))


def unpaid_records(start: Optional[date] = None, end: Optional[date] = None, search: Optional[str] = None) -> List[ShiftRecord]:
    q = ShiftRecord.query.join(User, User.id == ShiftRecord.employee_id).filter(ShiftRecord.is_paid.is_(False))
    if start:
        q = q.filter(ShiftRecord.shift_date >= start)
    if end:
        q = q.filter(ShiftRecord.shift_date <= end)
    q = _search_filter(q, search)
    return q.order_by(ShiftRecord.shift_date, ShiftRecord.time_in, ShiftRecord.id).all()


def unpaid_queue(start: Optional[date] = None, end: Optional[date] = None, search: Optional[str] = None) -> List[EmployeeGroup]:
    """Unpaid shifts grouped per employee, employees by name."""
    return group_by_employee(unpaid_records(start, end, search))


@dataclass
class PaymentDay:
    day: date
    groups: List[EmployeeGroup]
    totals: EmployeeTotals


def payment_history(
    start: Optional[date] = None,
    end: Optional[date] = None,
    employee_id: Optional[int] = None,
    tz: Optional[str] = None,
) -> List[PaymentDay]:
    """Paid shifts grouped by local payment day (newest first), then employee."""
    try:
        get_zone(tz)
    except ValueError as e:
        raise ValidationError(str(e), field="tz")
    q = ShiftRecord.query.filter(ShiftRecord.is_paid.is_(True), ShiftRecord.paid_at.isnot(None))
    if employee_id is not None:
        q = q.filter(ShiftRecord.employee_id == employee_id)
    rows = q.order_by(ShiftRecord.paid_at.desc(), ShiftRecord.id).all()

    by_day: Dict[date, List[ShiftRecord]] = OrderedDict()
    for r in rows:
        day = local_date(r.paid_at, tz)
        if start and day < start:
            continue
        if end and day > end:
            continue
        by_day.setdefault(day, []).append(r)

    return [PaymentDay(day, group_by_employee(recs), summarize(recs)) for day, recs in by_day.items()]
