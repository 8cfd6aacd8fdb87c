# crewpay_api/services/notify.py
"""
Text-message notices to crew about scheduled shifts.

The sender lives in ``app.extensions["shift_notifier"]`` the same way the
audit sink does; deployments plug in their SMS gateway through the
``SMS_SENDER`` config key. The default sender only logs. A failed send is
reported per recipient and never undoes the change that triggered it.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from flask import current_app, has_app_context

from crewpay_api.common.errors import NotFoundError
from crewpay_api.common.timeutils import as_utc, get_zone
from crewpay_api.extensions import db
from crewpay_api.models.scheduled_shift import ScheduledShift
from crewpay_api.models.user import User

log = logging.getLogger(__name__)
sms_log = logging.getLogger("crewpay_api.sms")

# fields whose change is worth a text
WATCHED_FIELDS = ("start_time", "end_time", "location_name", "address")

Sender = Callable[[str, str], None]


def _log_sender(phone: str, body: str) -> None:
    sms_log.info("to=%s %s", phone, body.replace("\n", " | "))


@dataclass
class NotifyOutcome:
    sent: List[int] = field(default_factory=list)
    skipped: List[int] = field(default_factory=list)   # no phone on file / inactive
    failed: List[int] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"sent": self.sent, "skipped": self.skipped, "failed": self.failed}


class ShiftNotifier:
    def __init__(self, sender: Optional[Sender] = None, base_url: str = ""):
        self.sender = sender or _log_sender
        self.base_url = (base_url or "").rstrip("/")

    def deliver(self, recipients: Iterable[User], build: Callable[[User], str]) -> NotifyOutcome:
        outcome = NotifyOutcome()
        for u in sorted(recipients, key=lambda x: x.id):
            if not u.is_active or not (u.phone or "").strip():
                outcome.skipped.append(u.id)
                continue
            try:
                self.sender(u.phone.strip(), build(u))
            except Exception:
                log.warning("sms to employee %s failed", u.id, exc_info=True)
                outcome.failed.append(u.id)
            else:
                outcome.sent.append(u.id)
        return outcome


def init_notifier(app, sender: Optional[Sender] = None) -> ShiftNotifier:
    n = ShiftNotifier(sender, app.config.get("APP_BASE_URL", ""))
    app.extensions["shift_notifier"] = n
    return n


def _notifier() -> ShiftNotifier:
    if has_app_context():
        n = current_app.extensions.get("shift_notifier")
        if n is not None:
            return n
    return ShiftNotifier()


# ---------- message text ----------

def _clock(dt: datetime, tz: Optional[str]) -> str:
    return as_utc(dt).astimezone(get_zone(tz)).strftime("%I:%M %p").lstrip("0")


def _day(dt: datetime, tz: Optional[str]) -> str:
    local = as_utc(dt).astimezone(get_zone(tz))
    return f"{local:%a, %b} {local.day}"


def _when(dt: Optional[datetime], tz: Optional[str]) -> str:
    if dt is None:
        return "-"
    return f"{_day(dt, tz)} {_clock(dt, tz)}"


def assignment_message(shift: ScheduledShift, name: Optional[str], tz: Optional[str] = None) -> str:
    lead = f"{name}, you've" if name else "You've"
    msg = f"{lead} been scheduled for a shift on {_day(shift.start_time, tz)}"
    if shift.end_time is not None:
        msg += f" from {_clock(shift.start_time, tz)} to {_clock(shift.end_time, tz)}"
    else:
        msg += f" starting at {_clock(shift.start_time, tz)}"
    place = shift.location_name or shift.address
    msg += f" at {place}." if place else "."
    return msg + " Reply to your manager if you have any questions."


def update_message(changes: Dict[str, Tuple[Any, Any]], tz: Optional[str] = None, base_url: str = "") -> str:
    lines = []
    if "start_time" in changes:
        old, new = changes["start_time"]
        lines.append(f"Start: {_when(old, tz)} -> {_when(new, tz)}")
    if "end_time" in changes:
        old, new = changes["end_time"]
        lines.append(f"End: {_when(old, tz)} -> {_when(new, tz)}")
    if "location_name" in changes:
        old, new = changes["location_name"]
        lines.append(f"Location: {old or '-'} -> {new or '-'}")
    if "address" in changes:
        old, new = changes["address"]
        lines.append(f"Address: {old or '-'} -> {new or '-'}")

    parts = ["Shift updated.", "\n".join(lines)]
    if base_url:
        parts.append(f"View schedule: {base_url}/self/schedule")
    return "\n\n".join(parts)


# ---------- operations ----------

def snapshot(shift: ScheduledShift) -> Dict[str, Any]:
    return {k: getattr(shift, k) for k in WATCHED_FIELDS}


def watched_changes(before: Dict[str, Any], shift: ScheduledShift) -> Dict[str, Tuple[Any, Any]]:
    return {k: (before[k], getattr(shift, k)) for k in WATCHED_FIELDS if before[k] != getattr(shift, k)}


def _roster(shift: ScheduledShift, only: Optional[Iterable[int]] = None) -> List[User]:
    ids = {a.employee_id for a in shift.assignments}
    if only is not None:
        ids &= set(only)
    if not ids:
        return []
    return User.query.filter(User.id.in_(ids)).all()


def notify_assigned(shift_id: int, employee_ids: Optional[Iterable[int]] = None, tz: Optional[str] = None) -> NotifyOutcome:
    """Tell assigned employees (all, or the given subset) about the shift."""
    shift = db.session.get(ScheduledShift, shift_id)
    if shift is None:
        raise NotFoundError("Scheduled shift not found")
    return _notifier().deliver(_roster(shift, employee_ids), lambda u: assignment_message(shift, u.full_name, tz))


def notify_updated(shift: ScheduledShift, changes: Dict[str, Tuple[Any, Any]], tz: Optional[str] = None) -> NotifyOutcome:
    """Tell the roster what moved. Nothing is sent when no watched field changed."""
    if not changes:
        return NotifyOutcome()
    n = _notifier()
    body = update_message(changes, tz, n.base_url)
    return n.deliver(_roster(shift), lambda u: body)
