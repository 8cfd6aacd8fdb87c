from __future__ import annotations

from flask import Blueprint, current_app, request

from crewpay_api.common.auth import current_user, requires_roles
from crewpay_api.common.errors import NotFoundError, ValidationError
from crewpay_api.common.http import json_body, ok
from crewpay_api.common.rows import employee_brief, scheduled_row
from crewpay_api.common.timeutils import utcnow
from crewpay_api.extensions import db
from crewpay_api.models.scheduled_shift import ScheduledShift
from crewpay_api.models.user import User
from crewpay_api.services import assignments, notify, schedule

bp = Blueprint("scheduled_shifts", __name__, url_prefix="/api/v1/scheduled-shifts")

SCOPES = ("upcoming", "past", "all")


# ---------- helpers ----------
def _get(shift_id: int) -> ScheduledShift:
    s = db.session.get(ScheduledShift, shift_id)
    if s is None:
        raise NotFoundError("Scheduled shift not found")
    return s


def _employee_ids(data: dict) -> list:
    ids = data.get("employeeIds", data.get("employee_ids"))
    if ids is None:
        raise ValidationError("employeeIds is required", field="employeeIds")
    if not isinstance(ids, list):
        raise ValidationError("employeeIds must be a list", field="employeeIds")
    return ids


def _roster(shift_id: int) -> list:
    ids = assignments.get_assignees(shift_id)
    if not ids:
        return []
    users = User.query.filter(User.id.in_(ids)).order_by(User.full_name, User.id).all()
    return [employee_brief(u) for u in users]


def _roster_response(shift_id: int, diff, send: bool, status: int = 200):
    meta = diff.to_dict()
    if send and diff.added:
        meta["notified"] = notify.notify_assigned(shift_id, diff.added, tz=request.args.get("tz")).to_dict()
    return ok(_roster(shift_id), status=status, **meta)


def _refresh_after() -> int:
    return int(current_app.config.get("SCHEDULE_REFRESH_SECONDS", 60))


def _wants_notify(data: dict) -> bool:
    flag = data.get("notify", False)
    if not isinstance(flag, bool):
        raise ValidationError("notify must be true/false", field="notify")
    return flag


# ---------- routes ----------

@bp.get("")
@requires_roles("admin")
def list_scheduled():
    """
    GET /api/v1/scheduled-shifts?scope=upcoming|past|all

    Upcoming/past is derived from the server clock at read time; clients
    should re-fetch after ``meta.refresh_after`` seconds.
    """
    scope = (request.args.get("scope") or "all").lower()
    if scope not in SCOPES:
        raise ValidationError(f"scope must be one of: {', '.join(SCOPES)}", field="scope")

    now = utcnow()
    upcoming, past = schedule.partition(ScheduledShift.query.all(), now)
    data = {}
    if scope in ("upcoming", "all"):
        data["upcoming"] = [scheduled_row(s) for s in upcoming]
    if scope in ("past", "all"):
        data["past"] = [scheduled_row(s) for s in past]
    return ok(data, refresh_after=_refresh_after(), now=now.isoformat() + "Z")


@bp.post("")
@requires_roles("admin")
def create_scheduled():
    me = current_user()
    data = json_body()
    ids = data.get("employeeIds")
    if ids is not None and not isinstance(ids, list):
        raise ValidationError("employeeIds must be a list", field="employeeIds")

    send = _wants_notify(data)

    s = schedule.create_scheduled(data, me)
    if not ids:
        return ok(scheduled_row(s), status=201)
    diff = assignments.set_assignees(s.id, ids, me)
    if not send:
        return ok(scheduled_row(s), status=201)
    outcome = notify.notify_assigned(s.id, diff.added, tz=request.args.get("tz"))
    return ok(scheduled_row(s), status=201, notified=outcome.to_dict())


@bp.delete("/past")
@requires_roles("admin")
def delete_past():
    """Best-effort cleanup; 207 when some past shifts could not be deleted."""
    outcome = schedule.delete_past(utcnow(), actor=current_user())
    status = 207 if outcome.partial else 200
    return ok(outcome.to_dict(), status=status)


@bp.get("/<int:shift_id>")
@requires_roles("admin")
def get_scheduled(shift_id: int):
    return ok(scheduled_row(_get(shift_id)))


@bp.patch("/<int:shift_id>")
@requires_roles("admin")
def update_scheduled(shift_id: int):
    """PATCH fields; with {"notify": true} the roster is texted what moved."""
    data = json_body()
    send = _wants_notify(data)
    s = _get(shift_id)
    before = notify.snapshot(s)
    s = schedule.update_scheduled(s, data, current_user())
    if not send:
        return ok(scheduled_row(s))
    outcome = notify.notify_updated(s, notify.watched_changes(before, s), tz=request.args.get("tz"))
    return ok(scheduled_row(s), notified=outcome.to_dict())


@bp.delete("/<int:shift_id>")
@requires_roles("admin")
def delete_scheduled(shift_id: int):
    return ok({"id": schedule.delete_scheduled(_get(shift_id), current_user())})


# ---------- assignments ----------

@bp.get("/<int:shift_id>/assignments")
@requires_roles("admin")
def get_assignments(shift_id: int):
    return ok(_roster(shift_id))


@bp.put("/<int:shift_id>/assignments")
@requires_roles("admin")
def set_assignments(shift_id: int):
    """Replace the roster: { "employeeIds": [...] }. Only the difference is written."""
    data = json_body()
    send = _wants_notify(data)
    diff = assignments.set_assignees(shift_id, _employee_ids(data), current_user())
    return _roster_response(shift_id, diff, send)


@bp.post("/<int:shift_id>/assignments")
@requires_roles("admin")
def add_assignments(shift_id: int):
    data = json_body()
    send = _wants_notify(data)
    diff = assignments.add_assignees(shift_id, _employee_ids(data), current_user())
    return _roster_response(shift_id, diff, send, status=201)


@bp.delete("/<int:shift_id>/assignments")
@requires_roles("admin")
def remove_assignments(shift_id: int):
    diff = assignments.remove_assignees(shift_id, _employee_ids(json_body()), current_user())
    return ok(_roster(shift_id), **diff.to_dict())


@bp.post("/<int:shift_id>/notify")
@requires_roles("admin")
def notify_roster(shift_id: int):
    """Text the assigned crew (or { "employeeIds": [...] } of them) the shift details."""
    data = json_body()
    ids = None
    if data.get("employeeIds") is not None:
        ids = _employee_ids(data)
        if any(isinstance(i, bool) for i in ids):
            raise ValidationError("employeeIds must be a list of integers", field="employeeIds")
        try:
            ids = [int(i) for i in ids]
        except (TypeError, ValueError):
            raise ValidationError("employeeIds must be a list of integers", field="employeeIds")
    outcome = notify.notify_assigned(shift_id, ids, tz=request.args.get("tz"))
    return ok(outcome.to_dict())
