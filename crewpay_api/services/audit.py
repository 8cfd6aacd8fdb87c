# crewpay_api/services/audit.py
"""
Fire-and-forget audit sink.

The sink lives in ``app.extensions["audit_sink"]`` so tests and deployments
can swap the writer. A failing writer is logged and ignored; it never fails
the operation that produced the event.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional

from flask import current_app, has_app_context

log = logging.getLogger(__name__)
audit_log = logging.getLogger("crewpay_api.audit")

# action types
SHIFT_CREATED = "shift_created"
SHIFT_UPDATED = "shift_updated"
SHIFT_DELETED = "shift_deleted"
PAYMENT = "payment"
PAYMENT_UNDONE = "payment_undone"
SCHEDULE_CREATED = "schedule_created"
SCHEDULE_UPDATED = "schedule_updated"
SCHEDULE_DELETED = "schedule_deleted"
ASSIGNMENT_CHANGED = "assignment_changed"
EMPLOYEE_CREATED = "employee_created"
EMPLOYEE_UPDATED = "employee_updated"
EMPLOYEE_DEACTIVATED = "employee_deactivated"
LOGIN = "login"


def _log_writer(event: Dict[str, Any]) -> None:
    audit_log.info("%s user=%s %s", event["action_type"], event["user_id"], event["description"], extra={"audit": event})


class AuditSink:
    def __init__(self, writer: Optional[Callable[[Dict[str, Any]], None]] = None):
        self.writer = writer or _log_writer

    def record(
        self,
        user_id,
        action_type: str,
        description: str,
        resource_type: Optional[str] = None,
        resource_id=None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        event = {
            "user_id": user_id,
            "action_type": action_type,
            "description": description,
            "resource_type": resource_type,
            "resource_id": str(resource_id) if resource_id is not None else None,
            "metadata": metadata or {},
        }
        try:
            self.writer(event)
        except Exception:
            log.warning("audit write failed for %s", action_type, exc_info=True)


def init_audit(app, writer: Optional[Callable[[Dict[str, Any]], None]] = None) -> AuditSink:
    sink = AuditSink(writer)
    app.extensions["audit_sink"] = sink
    return sink


def record(user_id, action_type: str, description: str, **kw) -> None:
    """Record through the current app's sink; silently a no-op outside an app."""
    if not has_app_context():
        return
    sink = current_app.extensions.get("audit_sink")
    if sink is not None:
        sink.record(user_id, action_type, description, **kw)
