# crewpay_api/common/rows.py
"""JSON rows shared by the blueprints."""
from __future__ import annotations

from typing import Optional

from crewpay_api.common.timeutils import iso
from crewpay_api.services.pay_rules import money, record_pay


def _money(v) -> Optional[str]:
    return str(money(v)) if v is not None else None


def employee_brief(u) -> Optional[dict]:
    if u is None:
        return None
    return {"id": u.id, "full_name": u.full_name}


def employee_row(u) -> dict:
    return {
        "id": u.id,
        "email": u.email,
        "full_name": u.full_name,
        "role": u.role,
        "phone": u.phone,
        "venmo_url": u.venmo_url,
        "pay_rate": _money(u.pay_rate),
        "is_active": bool(u.is_active),
        "created_at": iso(u.created_at),
    }


def shift_row(r) -> dict:
    pay = record_pay(r)
    return {
        "id": r.id,
        "employee_id": r.employee_id,
        "employee": employee_brief(r.employee),
        "shift_date": r.shift_date.isoformat() if r.shift_date else None,
        "shift_type": r.shift_type,
        "time_in": iso(r.time_in),
        "time_out": iso(r.time_out),
        "hours_worked": _money(r.hours_worked),
        "pay_rate": _money(r.pay_rate),
        "pay_due": str(money(pay.amount)),
        "min_applied": pay.min_applied,
        "is_paid": bool(r.is_paid),
        "paid_at": iso(r.paid_at),
        "paid_by": r.paid_by,
        "notes": r.notes,
        "created_at": iso(r.created_at),
        "updated_at": iso(r.updated_at),
    }


def scheduled_row(s, with_assignees: bool = True) -> dict:
    out = {
        "id": s.id,
        "start_time": iso(s.start_time),
        "end_time": iso(s.end_time),
        "location_name": s.location_name,
        "address": s.address,
        "job_type": s.job_type,
        "status": s.status,
        "notes": s.notes,
        "created_by": s.created_by,
        "created_at": iso(s.created_at),
        "updated_at": iso(s.updated_at),
    }
    if with_assignees:
        out["assignees"] = [
            employee_brief(a.employee)
            for a in sorted(s.assignments, key=lambda a: a.employee_id)
        ]
    return out


def group_row(g) -> dict:
    """EmployeeGroup from the settlement views."""
    return {
        "employee": employee_brief(g.employee) | {
            "phone": g.employee.phone,
            "venmo_url": g.employee.venmo_url,
        },
        "shifts": [shift_row(r) for r in g.records],
        "totals": g.totals.to_dict(),
    }
