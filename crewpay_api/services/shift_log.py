# crewpay_api/services/shift_log.py
"""
Logging, editing and deleting worked shifts.

Input times are local wall-clock ``HH:MM`` strings on a ``YYYY-MM-DD`` day in
the caller's timezone. A time-out at or before the time-in rolls to the next
calendar day (overnight shift) unless the caller says otherwise.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from crewpay_api.common.errors import AuthorizationError, ConflictError, StoreError, ValidationError
from crewpay_api.common.timeutils import (
    as_utc, combine_local, get_zone, hours_between, parse_date, parse_hhmm, to_utc_naive,
)
from crewpay_api.extensions import db
from crewpay_api.models.shift_record import SHIFT_TYPES, ShiftRecord
from crewpay_api.models.user import DEFAULT_PAY_RATE, User
from crewpay_api.services import audit
from crewpay_api.services.pay_rules import compute_pay, money

log = logging.getLogger(__name__)

MAX_SHIFT_HOURS = Decimal("18")
NOTES_MAX = 1000
HOURS_Q = Decimal("0.01")


@dataclass(frozen=True)
class ShiftWindow:
    time_in: datetime      # naive UTC
    time_out: datetime     # naive UTC
    hours: Decimal


def normalize_shift_type(value) -> str:
    raw = (value or "").strip().lower()
    for t in SHIFT_TYPES:
        if t.lower() == raw:
            return t
    raise ValidationError(f"shift_type must be one of: {', '.join(SHIFT_TYPES)}", field="shift_type")


def _notes(value) -> Optional[str]:
    if value is None:
        return None
    s = str(value).strip()
    if len(s) > NOTES_MAX:
        raise ValidationError(f"notes must be at most {NOTES_MAX} characters", field="notes")
    return s or None


def _zone_name(tz: Optional[str]) -> Optional[str]:
    try:
        get_zone(tz)
    except ValueError as e:
        raise ValidationError(str(e), field="timezone")
    return tz


def resolve_window(
    shift_date: date,
    time_in: str,
    time_out: str,
    tz: Optional[str] = None,
    ends_after_midnight: Optional[bool] = None,
    end_date: Optional[date] = None,
) -> ShiftWindow:
    """
    Combine local inputs into a validated UTC window.

    ends_after_midnight: None = roll over only when out <= in,
    True = always roll to the next day, False = never roll.
    end_date (explicit calendar day of time-out) disables the rollover logic.
    """
    errors: Dict[str, str] = {}
    t_in = parse_hhmm(time_in)
    t_out = parse_hhmm(time_out)
    if t_in is None:
        errors["time_in"] = "time_in must be HH:MM"
    if t_out is None:
        errors["time_out"] = "time_out must be HH:MM"
    if errors:
        raise ValidationError("Invalid shift times", errors=errors)

    tz = _zone_name(tz)
    start = combine_local(shift_date, t_in, tz)

    if end_date is not None:
        end = combine_local(end_date, t_out, tz)
    else:
        end = combine_local(shift_date, t_out, tz)
        if ends_after_midnight or (ends_after_midnight is None and end <= start):
            end = combine_local(shift_date + timedelta(days=1), t_out, tz)

    hours = hours_between(start, end)
    if hours <= 0:
        raise ValidationError("time_out must be after time_in", field="time_out")
    if hours > MAX_SHIFT_HOURS:
        raise ValidationError(f"shift cannot be longer than {MAX_SHIFT_HOURS} hours", field="time_out")

    return ShiftWindow(to_utc_naive(start), to_utc_naive(end), hours.quantize(HOURS_Q))


def _apply_pay(rec: ShiftRecord) -> None:
    rec.pay_due = money(compute_pay(rec.hours_worked, rec.pay_rate, rec.shift_type))


def _commit(context: str) -> None:
    try:
        db.session.commit()
    except IntegrityError as e:
        db.session.rollback()
        log.warning("%s conflicted: %s", context, e.orig if getattr(e, "orig", None) else e)
        raise ConflictError() from e
    except SQLAlchemyError as e:
        db.session.rollback()
        log.error("%s failed: %s", context, e)
        raise StoreError() from e


def ensure_can_modify(rec: ShiftRecord, actor: User) -> None:
    """Owners may change their own unpaid shifts; admins may change anything."""
    if actor.is_admin:
        return
    if rec.employee_id != actor.id:
        raise AuthorizationError()
    if rec.is_paid:
        raise ConflictError("Paid shifts can no longer be changed")


def log_shift(
    employee: User,
    shift_date,
    shift_type,
    time_in: str,
    time_out: str,
    notes=None,
    tz: Optional[str] = None,
    end_date=None,
    actor: Optional[User] = None,
) -> ShiftRecord:
    actor = actor or employee
    if not employee.is_active:
        raise ValidationError("Employee is not active", field="employee_id")

    d = parse_date(shift_date)
    if d is None:
        raise ValidationError("shift_date must be YYYY-MM-DD", field="shift_date")
    ed = None
    if end_date not in (None, ""):
        ed = parse_date(end_date)
        if ed is None:
            raise ValidationError("end_date must be YYYY-MM-DD", field="end_date")

    window = resolve_window(d, time_in, time_out, tz, end_date=ed)
    rec = ShiftRecord(
        employee_id=employee.id,
        shift_date=d,
        shift_type=normalize_shift_type(shift_type),
        time_in=window.time_in,
        time_out=window.time_out,
        hours_worked=window.hours,
        pay_rate=money(employee.pay_rate if employee.pay_rate is not None else DEFAULT_PAY_RATE),
        notes=_notes(notes),
        is_paid=False,
    )
    _apply_pay(rec)

    db.session.add(rec)
    _commit("log shift")
    log.info("shift %s logged for employee %s (%s h)", rec.id, employee.id, rec.hours_worked)
    audit.record(actor.id, audit.SHIFT_CREATED, f"Logged {rec.shift_type} shift on {d.isoformat()}",
                 resource_type="shift", resource_id=rec.id,
                 metadata={"employee_id": employee.id, "hours": str(rec.hours_worked)})
    return rec


def _local_hhmm(dt: datetime, tz: Optional[str]) -> str:
    return as_utc(dt).astimezone(get_zone(tz)).strftime("%H:%M")


def edit_shift(rec: ShiftRecord, actor: User, changes: Dict[str, Any], tz: Optional[str] = None) -> ShiftRecord:
    """
    Partial update. Any change to the day, times or type re-validates the
    window and recomputes hours and pay at the record's own rate.
    """
    ensure_can_modify(rec, actor)
    tz = _zone_name(tz)

    window_keys = ("shift_date", "time_in", "time_out", "end_date", "ends_after_midnight")
    recompute = any(k in changes for k in window_keys + ("shift_type",))

    # validate everything before touching the record
    shift_type = normalize_shift_type(changes["shift_type"]) if "shift_type" in changes else rec.shift_type
    notes = _notes(changes["notes"]) if "notes" in changes else rec.notes
    window = None
    new_date = rec.shift_date

    if any(k in changes for k in window_keys):
        d = rec.shift_date
        if "shift_date" in changes:
            d = parse_date(changes["shift_date"])
            if d is None:
                raise ValidationError("shift_date must be YYYY-MM-DD", field="shift_date")
        ed = None
        if changes.get("end_date") not in (None, ""):
            ed = parse_date(changes["end_date"])
            if ed is None:
                raise ValidationError("end_date must be YYYY-MM-DD", field="end_date")
        t_in = changes.get("time_in") or _local_hhmm(rec.time_in, tz)
        t_out = changes.get("time_out") or _local_hhmm(rec.time_out, tz)
        flag = changes.get("ends_after_midnight")
        if flag is not None and not isinstance(flag, bool):
            raise ValidationError("ends_after_midnight must be true/false", field="ends_after_midnight")

        window = resolve_window(d, t_in, t_out, tz, ends_after_midnight=flag, end_date=ed)
        new_date = d

    rec.shift_type, rec.notes = shift_type, notes
    if window is not None:
        rec.shift_date = new_date
        rec.time_in, rec.time_out, rec.hours_worked = window.time_in, window.time_out, window.hours
    if recompute:
        _apply_pay(rec)

    _commit("edit shift")
    audit.record(actor.id, audit.SHIFT_UPDATED, f"Updated shift {rec.id}",
                 resource_type="shift", resource_id=rec.id,
                 metadata={"fields": sorted(changes.keys())})
    return rec


def delete_shift(rec: ShiftRecord, actor: User) -> int:
    ensure_can_modify(rec, actor)
    rid = rec.id
    db.session.delete(rec)
    _commit("delete shift")
    audit.record(actor.id, audit.SHIFT_DELETED, f"Deleted shift {rid}", resource_type="shift", resource_id=rid)
    return rid


def recompute_pay(rec: ShiftRecord, force: bool = False) -> bool:
    """Explicit recompute; without ``force`` a persisted pay_due is left alone."""
    if rec.pay_due is not None and not force:
        return False
    if rec.time_in and rec.time_out:
        rec.hours_worked = hours_between(rec.time_in, rec.time_out).quantize(HOURS_Q)
    if rec.pay_rate is None:
        rec.pay_rate = DEFAULT_PAY_RATE
    _apply_pay(rec)
    return True
