# crewpay_api/common/auth.py
from __future__ import annotations

from functools import wraps
from typing import Set

from flask_jwt_extended import get_jwt, get_jwt_identity, jwt_required

from crewpay_api.common.errors import UnauthenticatedError
from crewpay_api.common.http import fail
from crewpay_api.extensions import db
from crewpay_api.models.user import User


# ---------- helpers ----------

def _identity() -> int | None:
    uid = get_jwt_identity()
    try:
        return int(uid) if uid is not None else None
    except (TypeError, ValueError):
        return None


def current_user() -> User:
    """Active user behind the current access token."""
    uid = _identity()
    u = db.session.get(User, uid) if uid is not None else None
    if u is None or not u.is_active:
        raise UnauthenticatedError()
    return u


def _roles_from_db(uid: int) -> Set[str]:
    u = db.session.get(User, uid)
    if u is None or not u.is_active:
        return set()
    return set(u.role_codes())


# ---------- decorators ----------

def requires_roles(*codes: str):
    """
    Require that the current user has AT LEAST ONE of the given role codes.
    - Uses roles in JWT if present; falls back to DB.
    - 'admin' role always passes.
    """
    def outer(fn):
        @wraps(fn)
        @jwt_required()
        def inner(*args, **kwargs):
            claims = get_jwt() or {}
            roles = set(claims.get("roles") or [])

            uid = _identity()
            if uid is None:
                return fail("Unauthorized", status=401, code=UnauthenticatedError.code)

            if not roles:
                roles = _roles_from_db(uid)
                if not roles:
                    return fail("Unauthorized", status=401, code=UnauthenticatedError.code)

            if "admin" in roles:
                return fn(*args, **kwargs)
            if not any(r in roles for r in codes):
                return fail("Forbidden", status=403, code="FORBIDDEN")
            return fn(*args, **kwargs)
        return inner
    return outer
