from __future__ import annotations

from flask import Blueprint, request

from crewpay_api.common.auth import current_user, requires_roles
from crewpay_api.common.confirm import bulk_response, confirmation
from crewpay_api.common.errors import ValidationError
from crewpay_api.common.http import json_body, ok
from crewpay_api.common.paging import date_window, int_arg, text_q
from crewpay_api.common.rows import group_row, shift_row
from crewpay_api.common.timeutils import parse_date
from crewpay_api.services import settlement

bp = Blueprint("payroll", __name__, url_prefix="/api/v1/payroll")


def _id_list(data: dict, *keys: str) -> list[int]:
    for k in keys:
        if k in data:
            v = data.get(k) or []
            if not isinstance(v, list):
                raise ValidationError(f"{k} must be a list", field=k)
            if any(isinstance(i, bool) for i in v):
                raise ValidationError(f"{k} must contain integers", field=k)
            try:
                return [int(i) for i in v]
            except (TypeError, ValueError):
                raise ValidationError(f"{k} must contain integers", field=k)
    return []


def _opt_int(data: dict, key: str):
    v = data.get(key)
    if v in (None, ""):
        return None
    if isinstance(v, bool):
        raise ValidationError(f"{key} must be integer", field=key)
    try:
        return int(v)
    except (TypeError, ValueError):
        raise ValidationError(f"{key} must be integer", field=key)


def _body_date(data: dict, key: str):
    raw = data.get(key)
    if not raw:
        return None
    d = parse_date(raw)
    if d is None:
        raise ValidationError(f"{key} must be YYYY-MM-DD", field=key)
    return d


@bp.get("/unpaid")
@requires_roles("admin")
def unpaid():
    """
    GET /api/v1/payroll/unpaid?from=&to=|mode=&offset=&q=
    Unpaid shifts grouped by employee (sorted by name) with per-employee totals.
    """
    start, end = date_window()
    records = settlement.unpaid_records(start, end, text_q())
    groups = settlement.group_by_employee(records)
    return ok(
        [group_row(g) for g in groups],
        totals=settlement.summarize(records).to_dict(),
        start=start.isoformat() if start else None,
        end=end.isoformat() if end else None,
    )


@bp.post("/selection")
@requires_roles("admin")
def selection():
    """
    Stateless selection step for the unpaid queue.

    Body: { "selected": [shiftIds], "toggleShift": id, "toggleEmployee": id,
            "action": "select_all"|"clear", "from", "to", "q" }
    Returns the new selection, fully selected employees and running totals.
    """
    data = json_body()
    records = settlement.unpaid_records(_body_date(data, "from"), _body_date(data, "to"), (data.get("q") or "").strip() or None)
    sel = settlement.PayrollSelection(records, _id_list(data, "selected", "shiftIds"))

    action = (data.get("action") or "").strip().lower()
    if action == "select_all":
        sel.select_all()
    elif action == "clear":
        sel.clear()
    elif action:
        raise ValidationError("action must be select_all or clear", field="action")

    shift_id = _opt_int(data, "toggleShift")
    if shift_id is not None:
        sel.toggle_shift(shift_id)
    emp_id = _opt_int(data, "toggleEmployee")
    if emp_id is not None:
        sel.toggle_employee(emp_id)

    chosen = [r for r in records if r.id in sel.selected]
    return ok({
        "selected": sorted(sel.selected),
        "selected_employees": sel.selected_employees(),
        "totals": settlement.summarize(chosen).to_dict(),
    })


@bp.post("/settle")
@requires_roles("admin")
def settle():
    """
    POST /api/v1/payroll/settle { "shiftIds": [...], "confirm": true, "expected_count": n }
    Marks a cross-employee selection of unpaid shifts paid in one transaction.
    """
    me = current_user()
    data = json_body()
    ids = _id_list(data, "shiftIds", "shift_ids")
    if not ids:
        raise ValidationError("shiftIds must be a non-empty list", field="shiftIds")
    result = settlement.batch_mark_paid_by_selection(ids, me, confirmation(data))
    return bulk_response(result, shift_row)


@bp.post("/employees/<int:employee_id>/bulk-pay")
@requires_roles("admin")
def employee_bulk_pay(employee_id: int):
    """Mark every shift of one employee paid (default) or unpaid."""
    me = current_user()
    data = json_body()
    paid = data.get("paid", True)
    if not isinstance(paid, bool):
        raise ValidationError("paid must be true/false", field="paid")
    result = settlement.bulk_mark_paid(employee_id, paid, me, confirmation(data))
    return bulk_response(result, shift_row)


@bp.get("/history")
@requires_roles("admin")
def history():
    """Paid shifts grouped by payment day (newest first), then employee."""
    start, end = date_window()
    days = settlement.payment_history(
        start, end,
        employee_id=int_arg("employee_id", "employeeId"),
        tz=request.args.get("tz"),
    )
    return ok([
        {"day": d.day.isoformat(), "totals": d.totals.to_dict(), "employees": [group_row(g) for g in d.groups]}
        for d in days
    ])
