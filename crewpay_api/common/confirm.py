# crewpay_api/common/confirm.py
"""
Two-step confirmation for bulk payroll writes over HTTP.

A request without ``confirm: true`` only previews. ``expected_count`` pins the
preview the client saw; a different count at apply time is a conflict.
"""
from __future__ import annotations

from crewpay_api.common.errors import ConflictError, ValidationError
from crewpay_api.common.http import ok


def confirmation(data: dict):
    confirmed = data.get("confirm") is True
    expected = data.get("expected_count", data.get("expectedCount"))
    if expected is not None:
        try:
            expected = int(expected)
        except (TypeError, ValueError):
            raise ValidationError("expected_count must be integer", field="expected_count")

    def _confirm(preview) -> bool:
        if not confirmed:
            return False
        if expected is not None and expected != preview.count:
            raise ConflictError(
                f"Selection changed: expected {expected} shift(s), found {preview.count}",
                errors={"expected_count": expected, "count": preview.count},
            )
        return True

    return _confirm


def bulk_response(result, rows):
    """Envelope for a BulkResult: preview when unconfirmed, else the updated rows."""
    if result.preview is None:
        return ok({"applied": False, "count": 0, "shifts": []})
    if not result.applied:
        return ok({"applied": False, "requires_confirmation": True, "preview": result.preview.to_dict()})
    return ok({
        "applied": True,
        "count": result.count,
        "preview": result.preview.to_dict(),
        "shifts": [rows(r) for r in result.records],
    })
