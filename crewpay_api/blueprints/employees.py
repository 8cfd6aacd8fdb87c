from __future__ import annotations

from decimal import Decimal, InvalidOperation

from flask import Blueprint
from flask_jwt_extended import jwt_required
from sqlalchemy import or_

from crewpay_api.common.auth import current_user, requires_roles
from crewpay_api.common.errors import ConflictError, NotFoundError, ValidationError
from crewpay_api.common.http import json_body, ok
from crewpay_api.common.paging import bool_arg, page_limit, text_q
from crewpay_api.common.rows import employee_row
from crewpay_api.extensions import db
from crewpay_api.models.user import DEFAULT_PAY_RATE, ROLES, User
from crewpay_api.services import audit

bp = Blueprint("employees", __name__, url_prefix="/api/v1/employees")

PROFILE_FIELDS = ("full_name", "phone", "venmo_url")


# ---------- helpers ----------
def _get(eid: int) -> User:
    u = db.session.get(User, eid)
    if u is None:
        raise NotFoundError("Employee not found")
    return u


def _pay_rate(value):
    try:
        rate = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError("pay_rate must be a number", field="pay_rate")
    if not rate.is_finite() or rate < 0:
        raise ValidationError("pay_rate must be zero or more", field="pay_rate")
    return rate


def _role(value):
    r = (value or "employee").strip().lower()
    if r not in ROLES:
        raise ValidationError(f"role must be one of: {', '.join(ROLES)}", field="role")
    return r


def _email_taken(email: str, exclude_id: int | None = None) -> bool:
    q = User.query.filter(User.email == email)
    if exclude_id:
        q = q.filter(User.id != exclude_id)
    return db.session.query(q.exists()).scalar()


# ---------- routes ----------

@bp.get("")
@requires_roles("admin")
def list_employees():
    """GET /api/v1/employees?q=&is_active=&page=&size="""
    q = User.query
    is_act = bool_arg("is_active", "isActive")
    if is_act is not None:
        q = q.filter(User.is_active.is_(is_act))

    s = text_q()
    if s:
        like = f"%{s}%"
        q = q.filter(or_(User.full_name.ilike(like), User.email.ilike(like),
                         User.phone.ilike(like), User.venmo_url.ilike(like)))

    page, size = page_limit()
    total = q.count()
    items = q.order_by(User.full_name, User.id).offset((page - 1) * size).limit(size).all()
    return ok([employee_row(u) for u in items], page=page, size=size, total=total)


@bp.get("/<int:eid>")
@jwt_required()
def get_employee(eid: int):
    me = current_user()
    if not me.is_admin and me.id != eid:
        raise NotFoundError("Employee not found")
    return ok(employee_row(_get(eid)))


@bp.post("")
@requires_roles("admin")
def create_employee():
    me = current_user()
    d = json_body()
    email = (d.get("email") or "").strip().lower()
    full_name = (d.get("full_name") or "").strip()
    password = d.get("password") or ""

    errors = {}
    if not email:
        errors["email"] = "email is required"
    if not full_name:
        errors["full_name"] = "full_name is required"
    if len(password) < 8:
        errors["password"] = "password must be at least 8 characters"
    if errors:
        raise ValidationError("Invalid employee", errors=errors)
    if _email_taken(email):
        raise ConflictError("Email already exists")

    u = User(
        email=email,
        full_name=full_name,
        role=_role(d.get("role")),
        phone=(d.get("phone") or "").strip() or None,
        venmo_url=(d.get("venmo_url") or "").strip() or None,
        pay_rate=_pay_rate(d["pay_rate"]) if d.get("pay_rate") not in (None, "") else DEFAULT_PAY_RATE,
        is_active=True,
    )
    u.set_password(password)
    db.session.add(u)
    db.session.commit()
    audit.record(me.id, audit.EMPLOYEE_CREATED, f"Created employee {u.email}", resource_type="user", resource_id=u.id)
    return ok(employee_row(u), status=201)


@bp.patch("/<int:eid>")
@requires_roles("admin")
def update_employee(eid: int):
    me = current_user()
    u = _get(eid)
    d = json_body()

    if "email" in d:
        new_email = (d["email"] or "").strip().lower()
        if not new_email:
            raise ValidationError("email cannot be empty", field="email")
        if _email_taken(new_email, exclude_id=eid):
            raise ConflictError("Email already exists")
        u.email = new_email

    for key in PROFILE_FIELDS:
        if key in d:
            setattr(u, key, (d[key] or "").strip() or None)
    if "full_name" in d and not u.full_name:
        raise ValidationError("full_name cannot be empty", field="full_name")
    if "pay_rate" in d:
        u.pay_rate = _pay_rate(d["pay_rate"])
    if "role" in d:
        u.role = _role(d["role"])
    if "is_active" in d:
        if not isinstance(d["is_active"], bool):
            raise ValidationError("is_active must be true/false", field="is_active")
        u.is_active = d["is_active"]
    if d.get("password"):
        if len(d["password"]) < 8:
            raise ValidationError("password must be at least 8 characters", field="password")
        u.set_password(d["password"])

    db.session.commit()
    audit.record(me.id, audit.EMPLOYEE_UPDATED, f"Updated employee {u.email}",
                 resource_type="user", resource_id=u.id,
                 metadata={"fields": sorted(k for k in d if k != "password")})
    return ok(employee_row(u))


@bp.delete("/<int:eid>")
@requires_roles("admin")
def deactivate_employee(eid: int):
    """Soft delete: shift history and payments stay attached."""
    me = current_user()
    u = _get(eid)
    if u.id == me.id:
        raise ValidationError("You cannot deactivate your own account")
    u.is_active = False
    db.session.commit()
    audit.record(me.id, audit.EMPLOYEE_DEACTIVATED, f"Deactivated employee {u.email}",
                 resource_type="user", resource_id=u.id)
    return ok({"id": u.id, "is_active": False})
