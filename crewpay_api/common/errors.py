# crewpay_api/common/errors.py
"""
Error taxonomy shared by services and blueprints.

Services raise these; the handlers registered in ``register_error_handlers``
turn them into the standard ``{"success": false, "error": {...}}`` envelope.
Client-facing messages are fixed per kind. The underlying cause is only
written to the server log.
"""
from __future__ import annotations

from flask import current_app
from flask_jwt_extended import get_jwt, verify_jwt_in_request
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from werkzeug.exceptions import HTTPException

from crewpay_api.common.http import fail


class AppError(Exception):
    """Base class for errors that map onto an HTTP status."""
    code = "INTERNAL_ERROR"
    status_code = 500
    safe_message = "An unexpected error occurred"

    def __init__(self, message: str | None = None, errors: dict | None = None, detail=None):
        super().__init__(message or self.safe_message)
        self.message = message or self.safe_message
        self.errors = errors
        self.detail = detail


class ValidationError(AppError):
    code = "VALIDATION_ERROR"
    status_code = 400
    safe_message = "Invalid request data"

    def __init__(self, message: str | None = None, errors: dict | None = None, field: str | None = None):
        if field and not errors:
            errors = {field: message or self.safe_message}
        super().__init__(message, errors=errors)


class UnauthenticatedError(AppError):
    code = "UNAUTHENTICATED"
    status_code = 401
    safe_message = "Authentication required"


class AuthorizationError(AppError):
    code = "FORBIDDEN"
    status_code = 403
    safe_message = "Insufficient permissions"


class NotFoundError(AppError):
    code = "NOT_FOUND"
    status_code = 404
    safe_message = "Resource not found"


class ConflictError(AppError):
    code = "CONFLICT"
    status_code = 409
    safe_message = "Resource already exists"


class StoreError(AppError):
    code = "DATABASE_ERROR"
    status_code = 500
    safe_message = "Database operation failed"


# Kinds whose own message is safe to show (it never carries store internals).
_CALLER_FACING = (ValidationError, NotFoundError, ConflictError, AuthorizationError, UnauthenticatedError)


def _caller_is_admin() -> bool:
    try:
        verify_jwt_in_request(optional=True)
        claims = get_jwt() or {}
    except Exception:
        return False
    return "admin" in (claims.get("roles") or [])


def _store_detail(e: Exception):
    """Raw store message, only for admins and only when explicitly enabled."""
    if not current_app.config.get("EXPOSE_STORE_ERRORS_TO_ADMINS"):
        return None
    if not _caller_is_admin():
        return None
    cause = getattr(e, "__cause__", None) or e
    return str(getattr(cause, "orig", None) or cause)


def register_error_handlers(app):
    @app.errorhandler(AppError)
    def _app_error(e: AppError):
        if isinstance(e, _CALLER_FACING):
            return fail(e.message, status=e.status_code, code=e.code, errors=e.errors)
        app.logger.exception("Request failed: %s", e)
        return fail(e.safe_message, status=e.status_code, code=e.code, detail=_store_detail(e))

    @app.errorhandler(IntegrityError)
    def _integrity(e: IntegrityError):
        app.logger.warning("Integrity error: %s", e.orig if getattr(e, "orig", None) else e)
        return fail(ConflictError.safe_message, status=409, code=ConflictError.code, detail=_store_detail(e))

    @app.errorhandler(SQLAlchemyError)
    def _store(e: SQLAlchemyError):
        app.logger.exception(e)
        return fail(StoreError.safe_message, status=500, code=StoreError.code, detail=_store_detail(e))

    @app.errorhandler(HTTPException)
    def _http(e: HTTPException):
        return fail(e.description or e.name, status=e.code or 500)

    @app.errorhandler(Exception)
    def _500(e: Exception):
        app.logger.exception(e)
        return fail(AppError.safe_message, status=500, code=AppError.code)
