# crewpay_api/services/schedule.py
"""
Scheduled (future) work. Independent of worked ShiftRecords.

Upcoming/past is never stored: it is derived from ``now`` on every read.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from crewpay_api.common.errors import ConflictError, StoreError, ValidationError
from crewpay_api.common.timeutils import parse_iso_datetime, utcnow
from crewpay_api.extensions import db
from crewpay_api.models.scheduled_shift import JOB_TYPES, SCHEDULE_STATUSES, ScheduledShift
from crewpay_api.models.user import User
from crewpay_api.services import audit

log = logging.getLogger(__name__)

LIMITS = {"location_name": 200, "address": 300, "notes": 1000}


def _text(data: Dict[str, Any], key: str, errors: Dict[str, str]) -> Optional[str]:
    v = data.get(key)
    if v is None:
        return None
    s = str(v).strip()
    if len(s) > LIMITS[key]:
        errors[key] = f"{key} must be at most {LIMITS[key]} characters"
    return s or None


def _ts(data: Dict[str, Any], key: str, errors: Dict[str, str]) -> Optional[datetime]:
    try:
        return parse_iso_datetime(data.get(key))
    except ValueError:
        errors[key] = f"{key} must be an ISO-8601 timestamp with offset"
        return None


def _enum(value, allowed, key: str, errors: Dict[str, str]) -> Optional[str]:
    v = (str(value).strip().lower()) if value is not None else ""
    if v not in allowed:
        errors[key] = f"{key} must be one of: {', '.join(allowed)}"
        return None
    return v


def _validate(data: Dict[str, Any], current: Optional[ScheduledShift] = None) -> Dict[str, Any]:
    """Validated field values for create (current=None) or partial update."""
    errors: Dict[str, str] = {}
    out: Dict[str, Any] = {}
    creating = current is None

    if creating or "start_time" in data:
        out["start_time"] = _ts(data, "start_time", errors)
        if out["start_time"] is None and "start_time" not in errors:
            errors["start_time"] = "start_time is required"
    if creating or "end_time" in data:
        out["end_time"] = _ts(data, "end_time", errors)

    for key in LIMITS:
        if creating or key in data:
            out[key] = _text(data, key, errors)

    if creating or "job_type" in data:
        out["job_type"] = _enum(data.get("job_type") or "other", JOB_TYPES, "job_type", errors)
    if creating or "status" in data:
        out["status"] = _enum(data.get("status") or "draft", SCHEDULE_STATUSES, "status", errors)

    start = out.get("start_time", current.start_time if current else None)
    end = out.get("end_time", current.end_time if current else None)
    if start and end and end <= start and "end_time" not in errors:
        errors["end_time"] = "end_time must be after start_time"

    if errors:
        raise ValidationError("Invalid scheduled shift", errors=errors)
    return out


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


def create_scheduled(data: Dict[str, Any], actor: User) -> ScheduledShift:
    s = ScheduledShift(created_by=actor.id, **_validate(data))
    db.session.add(s)
    _commit("create scheduled shift")
    audit.record(actor.id, audit.SCHEDULE_CREATED, f"Scheduled {s.job_type} shift",
                 resource_type="scheduled_shift", resource_id=s.id)
    return s


def update_scheduled(s: ScheduledShift, data: Dict[str, Any], actor: User) -> ScheduledShift:
    values = _validate(data, current=s)
    for k, v in values.items():
        setattr(s, k, v)
    _commit("update scheduled shift")
    audit.record(actor.id, audit.SCHEDULE_UPDATED, f"Updated scheduled shift {s.id}",
                 resource_type="scheduled_shift", resource_id=s.id, metadata={"fields": sorted(values)})
    return s


def delete_scheduled(s: ScheduledShift, actor: User) -> int:
    sid = s.id
    db.session.delete(s)
    _commit("delete scheduled shift")
    audit.record(actor.id, audit.SCHEDULE_DELETED, f"Deleted scheduled shift {sid}",
                 resource_type="scheduled_shift", resource_id=sid)
    return sid


# ---------- upcoming / past ----------

def is_upcoming(s: ScheduledShift, now: datetime) -> bool:
    if s.end_time is not None:
        return s.end_time >= now
    return s.start_time >= now


def partition(shifts: Iterable[ScheduledShift], now: Optional[datetime] = None) -> Tuple[List[ScheduledShift], List[ScheduledShift]]:
    """(upcoming ascending by start, past descending by end-or-start)."""
    now = now or utcnow()
    upcoming, past = [], []
    for s in shifts:
        (upcoming if is_upcoming(s, now) else past).append(s)
    upcoming.sort(key=lambda s: (s.start_time, s.id))
    past.sort(key=lambda s: (s.end_time or s.start_time, s.id), reverse=True)
    return upcoming, past


@dataclass
class DeleteOutcome:
    deleted: List[int] = field(default_factory=list)
    failed: List[int] = field(default_factory=list)

    @property
    def partial(self) -> bool:
        return bool(self.failed)

    def to_dict(self) -> dict:
        return {"deleted": self.deleted, "failed": self.failed}


def _delete_one(s: ScheduledShift) -> None:
    db.session.delete(s)
    db.session.commit()


def delete_past(now: Optional[datetime] = None, actor: Optional[User] = None) -> DeleteOutcome:
    """
    Best effort: each past shift is deleted in its own transaction; a failure
    is reported and does not undo deletions that already went through.
    """
    now = now or utcnow()
    _, past = partition(ScheduledShift.query.all(), now)
    ids = [s.id for s in past]
    outcome = DeleteOutcome()
    for sid in ids:
        s = db.session.get(ScheduledShift, sid)
        if s is None:
            continue
        try:
            _delete_one(s)
        except SQLAlchemyError as e:
            db.session.rollback()
            log.warning("could not delete past scheduled shift %s: %s", sid, e)
            outcome.failed.append(sid)
        else:
            outcome.deleted.append(sid)

    if outcome.deleted:
        audit.record(actor.id if actor else None, audit.SCHEDULE_DELETED,
                     f"Deleted {len(outcome.deleted)} past scheduled shift(s)",
                     resource_type="scheduled_shift", metadata=outcome.to_dict())
    return outcome
