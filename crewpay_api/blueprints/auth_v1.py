from datetime import timedelta

from flask import Blueprint
from flask_jwt_extended import create_access_token, create_refresh_token, jwt_required

from crewpay_api.common.auth import current_user
from crewpay_api.common.errors import AuthorizationError, UnauthenticatedError
from crewpay_api.common.http import json_body, ok
from crewpay_api.models.user import User
from crewpay_api.services import audit

bp = Blueprint("auth_v1", __name__, url_prefix="/api/v1/auth")


def _user_payload(u: User):
    return {"id": u.id, "email": u.email, "full_name": u.full_name, "roles": u.role_codes()}


def _claims(u: User):
    return {"roles": u.role_codes(), "email": u.email, "name": u.full_name}


@bp.post("/login")
def login():
    data = json_body()
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""
    u = User.query.filter_by(email=email).first()
    if not u or not u.check_password(password):
        raise UnauthenticatedError("Invalid credentials")
    if not u.is_active:
        raise AuthorizationError("Account is deactivated")

    access = create_access_token(identity=str(u.id), additional_claims=_claims(u), expires_delta=timedelta(days=1))
    refresh = create_refresh_token(identity=str(u.id), additional_claims={"roles": u.role_codes()})
    audit.record(u.id, audit.LOGIN, f"{u.email} signed in", resource_type="user", resource_id=u.id)
    return ok({"access": access, "refresh": refresh, "user": _user_payload(u)})


@bp.post("/refresh")
@jwt_required(refresh=True)
def refresh():
    # role changes take effect on the next refresh
    u = current_user()
    return ok({"access": create_access_token(identity=str(u.id), additional_claims=_claims(u))})


@bp.get("/me")
@jwt_required()
def me():
    return ok(_user_payload(current_user()))
