from __future__ import annotations

from flask import Blueprint, request
from flask_jwt_extended import jwt_required

from crewpay_api.common.auth import current_user, requires_roles
from crewpay_api.common.confirm import bulk_response, confirmation
from crewpay_api.common.errors import AuthorizationError, NotFoundError, ValidationError
from crewpay_api.common.http import json_body, ok
from crewpay_api.common.paging import bool_arg, date_window, int_arg
from crewpay_api.common.rows import employee_brief, shift_row
from crewpay_api.extensions import db
from crewpay_api.models.shift_record import ShiftRecord
from crewpay_api.models.user import User
from crewpay_api.services import settlement, shift_log

bp = Blueprint("shifts", __name__, url_prefix="/api/v1/shifts")


# ---------- helpers ----------
def _tz(data: dict | None = None):
    if data and data.get("timezone"):
        return data["timezone"]
    return request.args.get("tz") or request.args.get("timezone") or None


def _get_visible(shift_id: int, me: User) -> ShiftRecord:
    rec = db.session.get(ShiftRecord, shift_id)
    if rec is None:
        raise NotFoundError("Shift not found")
    if not me.is_admin and rec.employee_id != me.id:
        # other people's shifts are indistinguishable from missing ones
        raise NotFoundError("Shift not found")
    return rec


def _filtered_query(me: User):
    q = ShiftRecord.query
    if me.is_admin:
        eid = int_arg("employee_id", "employeeId")
        if eid:
            q = q.filter(ShiftRecord.employee_id == eid)
    else:
        q = q.filter(ShiftRecord.employee_id == me.id)

    start, end = date_window()
    if start:
        q = q.filter(ShiftRecord.shift_date >= start)
    if end:
        q = q.filter(ShiftRecord.shift_date <= end)

    paid = bool_arg("paid", "is_paid")
    if paid is not None:
        q = q.filter(ShiftRecord.is_paid.is_(paid))
    return q, start, end


# ---------- routes ----------

@bp.get("")
@jwt_required()
def list_shifts():
    """
    GET /api/v1/shifts?from=&to=  |  ?mode=week|month|all&offset=0
        &employee_id= (admin) &paid=true|false
    Employees only ever see their own shifts.
    """
    me = current_user()
    q, start, end = _filtered_query(me)
    rows = q.order_by(ShiftRecord.shift_date.desc(), ShiftRecord.time_in.desc(), ShiftRecord.id.desc()).all()
    return ok(
        [shift_row(r) for r in rows],
        total=len(rows),
        start=start.isoformat() if start else None,
        end=end.isoformat() if end else None,
    )


@bp.post("")
@jwt_required()
def create_shift():
    me = current_user()
    data = json_body()

    employee = me
    eid = data.get("employee_id")
    if eid not in (None, ""):
        try:
            if isinstance(eid, bool):
                raise TypeError("boolean id")
            eid = int(eid)
        except (TypeError, ValueError):
            raise ValidationError("employee_id must be integer", field="employee_id")
    if eid not in (None, "", me.id):
        if not me.is_admin:
            raise AuthorizationError("Only admins can log shifts for other employees")
        employee = db.session.get(User, eid)
        if employee is None:
            raise NotFoundError("Employee not found")

    missing = [k for k in ("shift_date", "shift_type", "time_in", "time_out") if not data.get(k)]
    if missing:
        raise ValidationError("Missing required fields", errors={k: f"{k} is required" for k in missing})

    rec = shift_log.log_shift(
        employee,
        data.get("shift_date"),
        data.get("shift_type"),
        data.get("time_in"),
        data.get("time_out"),
        notes=data.get("notes"),
        tz=_tz(data),
        end_date=data.get("end_date"),
        actor=me,
    )
    return ok(shift_row(rec), status=201)


@bp.get("/summary")
@jwt_required()
def summary():
    """Per-employee totals for the selected window (admins: everyone, employees: self)."""
    me = current_user()
    q, start, end = _filtered_query(me)
    rows = q.all()
    by_emp = settlement.summarize_by_employee(rows)
    people = {r.employee_id: r.employee for r in rows}
    items = sorted(
        ({"employee": employee_brief(people[eid]), "totals": t.to_dict()} for eid, t in by_emp.items()),
        key=lambda x: ((x["employee"]["full_name"] or "").lower(), x["employee"]["id"]),
    )
    return ok(
        items,
        totals=settlement.summarize(rows).to_dict(),
        start=start.isoformat() if start else None,
        end=end.isoformat() if end else None,
    )


@bp.patch("/bulk-pay")
@requires_roles("admin")
def bulk_pay():
    """
    PATCH /api/v1/shifts/bulk-pay
    { "shiftIds": [..], "paid": true|false, "confirm": true, "expected_count": 3 }
    """
    me = current_user()
    data = json_body()
    ids = data.get("shiftIds", data.get("shift_ids"))
    if not isinstance(ids, list) or not ids:
        raise ValidationError("shiftIds must be a non-empty list", field="shiftIds")
    paid = data.get("paid")
    if not isinstance(paid, bool):
        raise ValidationError("paid must be true/false", field="paid")
    try:
        if any(isinstance(i, bool) for i in ids):
            raise TypeError("boolean id")
        ids = [int(i) for i in ids]
    except (TypeError, ValueError):
        raise ValidationError("shiftIds must be integers", field="shiftIds")

    result = settlement.set_paid_state(ids, paid, me, confirmation(data))
    return bulk_response(result, shift_row)


@bp.get("/<int:shift_id>")
@jwt_required()
def get_shift(shift_id: int):
    return ok(shift_row(_get_visible(shift_id, current_user())))


@bp.patch("/<int:shift_id>")
@jwt_required()
def update_shift(shift_id: int):
    me = current_user()
    rec = _get_visible(shift_id, me)
    data = json_body()
    allowed = ("shift_date", "shift_type", "time_in", "time_out", "end_date", "ends_after_midnight", "notes")
    changes = {k: data[k] for k in allowed if k in data}
    if not changes:
        raise ValidationError("Nothing to update")
    rec = shift_log.edit_shift(rec, me, changes, tz=_tz(data))
    return ok(shift_row(rec))


@bp.delete("/<int:shift_id>")
@jwt_required()
def delete_shift(shift_id: int):
    me = current_user()
    rec = _get_visible(shift_id, me)
    return ok({"id": shift_log.delete_shift(rec, me)})


@bp.post("/<int:shift_id>/paid")
@requires_roles("admin")
def mark_paid(shift_id: int):
    me = current_user()
    rec = _get_visible(shift_id, me)
    return ok(shift_row(settlement.mark_paid(rec, me)))


@bp.delete("/<int:shift_id>/paid")
@requires_roles("admin")
def undo_paid(shift_id: int):
    me = current_user()
    rec = _get_visible(shift_id, me)
    return ok(shift_row(settlement.undo_paid(rec, me)))
