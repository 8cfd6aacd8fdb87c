from flask import Blueprint, current_app
from flask_jwt_extended import jwt_required

from crewpay_api.common.auth import current_user
from crewpay_api.common.http import ok
from crewpay_api.common.paging import bool_arg, date_window
from crewpay_api.common.rows import employee_brief, scheduled_row, shift_row
from crewpay_api.common.timeutils import utcnow
from crewpay_api.models.shift_record import ShiftRecord
from crewpay_api.services import settlement
from crewpay_api.services.assignments import schedule_for_employee

self_service_bp = Blueprint("self_service", __name__, url_prefix="/api/v1/self")


@self_service_bp.get("/schedule")
@jwt_required()
def my_schedule():
    """
    Scheduled shifts the logged-in employee is assigned to, each with the
    names of the other people on the job. Read-only.
    ?include_past=true adds shifts that already ended.
    """
    me = current_user()
    include_past = bool_arg("include_past", "includePast") or False
    entries = schedule_for_employee(me.id, utcnow(), include_past=include_past)
    items = []
    for e in entries:
        row = scheduled_row(e.shift, with_assignees=False)
        row["upcoming"] = e.upcoming
        row["teammates"] = [employee_brief(u) for u in e.teammates]
        items.append(row)
    return ok(items, refresh_after=int(current_app.config.get("SCHEDULE_REFRESH_SECONDS", 60)))


@self_service_bp.get("/shifts")
@jwt_required()
def my_shifts():
    """Own worked shifts for a window (?mode=week|month|all&offset= or ?from=&to=) with totals."""
    me = current_user()
    start, end = date_window()
    q = ShiftRecord.query.filter(ShiftRecord.employee_id == me.id)
    if start:
        q = q.filter(ShiftRecord.shift_date >= start)
    if end:
        q = q.filter(ShiftRecord.shift_date <= end)
    rows = q.order_by(ShiftRecord.shift_date.desc(), ShiftRecord.time_in.desc()).all()
    return ok(
        [shift_row(r) for r in rows],
        totals=settlement.summarize(rows).to_dict(),
        start=start.isoformat() if start else None,
        end=end.isoformat() if end else None,
    )
