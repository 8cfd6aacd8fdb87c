import itertools
from datetime import datetime
from decimal import Decimal

import pytest
from sqlalchemy import event
from sqlalchemy.exc import OperationalError

from crewpay_api.common.errors import ConflictError, NotFoundError, StoreError
from crewpay_api.extensions import db
from crewpay_api.models.shift_record import ShiftRecord
from crewpay_api.services import settlement, shift_log

TZ = "America/Chicago"


def _log(emp, day="2026-01-15", shift_type="Setup", t_in="09:00", t_out="13:00"):
    return shift_log.log_shift(emp, day, shift_type, t_in, t_out, tz=TZ)


def _always(answer=True):
    calls = []

    def confirm(preview):
        calls.append(preview)
        return answer

    confirm.calls = calls
    return confirm


@pytest.fixture
def count_writes(app):
    """Counts UPDATE statements against shift_records."""
    seen = []

    def _listener(conn, cursor, statement, parameters, context, executemany):
        if statement.lstrip().upper().startswith("UPDATE SHIFT_RECORDS"):
            seen.append(statement)

    event.listen(db.engine, "before_cursor_execute", _listener)
    yield seen
    event.remove(db.engine, "before_cursor_execute", _listener)


def _boom(*a, **kw):
    raise OperationalError("COMMIT", {}, Exception("database is locked"))


# ---------- aggregation ----------

def test_totals_partition_identity_for_any_order(employee, other_employee, admin):
    recs = [
        _log(employee),
        _log(employee, shift_type="Breakdown", t_in="09:00", t_out="10:00"),
        _log(other_employee, day="2026-01-16"),
        _log(other_employee, day="2026-01-17", t_in="22:00", t_out="03:30"),
    ]
    settlement.mark_paid(recs[1], admin)
    settlement.mark_paid(recs[2], admin)

    expected = settlement.summarize(recs)
    assert expected.total_pay == expected.paid_pay + expected.unpaid_pay
    assert expected.shift_count == 4
    for perm in itertools.permutations(recs):
        t = settlement.summarize(perm)
        assert t == expected
        assert t.total_pay == t.paid_pay + t.unpaid_pay


def test_summary_uses_persisted_pay_and_breakdown_floor(employee, session):
    a = _log(employee, shift_type="Breakdown", t_in="09:00", t_out="10:00")
    b = _log(employee)
    b.pay_due = Decimal("70.00")
    session.commit()
    t = settlement.summarize([a, b])
    assert t.total_pay == Decimal("120.00")
    assert t.unpaid_pay == Decimal("120.00")
    assert t.paid_pay == Decimal("0")


def test_summarize_by_employee(employee, other_employee):
    recs = [_log(employee), _log(employee, day="2026-01-16"), _log(other_employee)]
    by = settlement.summarize_by_employee(recs)
    assert by[employee.id].shift_count == 2
    assert by[employee.id].total_hours == Decimal("8.00")
    assert by[other_employee.id].total_pay == Decimal("120.00")


# ---------- single transitions ----------

def test_mark_paid_then_undo_round_trips(employee, admin):
    rec = _log(employee)
    settlement.mark_paid(rec, admin)
    assert rec.is_paid is True
    assert rec.paid_by == admin.id
    assert rec.paid_at is not None

    settlement.undo_paid(rec, admin)
    assert rec.is_paid is False
    assert rec.paid_at is None
    assert rec.paid_by is None


def test_undo_on_unpaid_is_noop(employee, count_writes):
    rec = _log(employee)
    settlement.undo_paid(rec)
    assert count_writes == []


def test_concurrent_mark_paid_is_last_write_wins(employee, admin, session, user_factory):
    other_admin = user_factory("ops@test.local", "Ops Admin", role="admin")
    rec = _log(employee)

    first = datetime(2026, 1, 20, 12, 0)
    second = datetime(2026, 1, 20, 12, 5)
    c1 = settlement.PaidStateChange([rec], True, admin.id, now=first).apply()
    c1.commit()
    c2 = settlement.PaidStateChange([rec], True, other_admin.id, now=second).apply()
    c2.commit()

    session.expire_all()
    fresh = session.get(ShiftRecord, rec.id)
    assert fresh.paid_by == other_admin.id
    assert fresh.paid_at == second


def test_store_failure_restores_snapshot(employee, admin, session, monkeypatch):
    rec = _log(employee)
    monkeypatch.setattr(db.session, "commit", _boom)

    with pytest.raises(StoreError):
        settlement.mark_paid(rec, admin)

    monkeypatch.undo()
    session.expire_all()
    fresh = session.get(ShiftRecord, rec.id)
    assert fresh.is_paid is False
    assert fresh.paid_at is None and fresh.paid_by is None


def test_paid_state_change_rollback_on_plain_objects():
    from types import SimpleNamespace
    rows = [SimpleNamespace(is_paid=False, paid_at=None, paid_by=None) for _ in range(3)]
    change = settlement.PaidStateChange(rows, True, actor_id=7).apply()
    assert all(r.is_paid and r.paid_by == 7 for r in rows)
    change.rollback()
    assert all(not r.is_paid and r.paid_at is None and r.paid_by is None for r in rows)


# ---------- bulk ----------

def test_bulk_mark_paid_with_nothing_unpaid_is_noop(employee, admin, count_writes):
    confirm = _always(True)
    result = settlement.bulk_mark_paid(employee.id, True, admin, confirm)
    assert result.applied is False
    assert result.preview is None
    assert confirm.calls == []
    assert count_writes == []


def test_bulk_mark_paid_declined_writes_nothing(employee, admin, count_writes):
    _log(employee)
    _log(employee, day="2026-01-16")
    confirm = _always(False)
    result = settlement.bulk_mark_paid(employee.id, True, admin, confirm)
    assert result.applied is False
    assert len(confirm.calls) == 1
    assert confirm.calls[0].count == 2
    assert confirm.calls[0].amount == Decimal("200.00")
    assert count_writes == []
    assert ShiftRecord.query.filter_by(is_paid=True).count() == 0


def test_bulk_mark_paid_only_touches_that_employee(employee, other_employee, admin):
    _log(employee)
    _log(employee, day="2026-01-16")
    theirs = _log(other_employee)

    result = settlement.bulk_mark_paid(employee.id, True, admin, _always(True))
    assert result.applied is True
    assert result.count == 2
    assert ShiftRecord.query.filter_by(employee_id=employee.id, is_paid=False).count() == 0
    assert db.session.get(ShiftRecord, theirs.id).is_paid is False

    # and back again
    back = settlement.bulk_mark_paid(employee.id, False, admin, _always(True))
    assert back.count == 2
    assert ShiftRecord.query.filter_by(employee_id=employee.id, is_paid=True).count() == 0


def test_bulk_failure_reverts_whole_batch(employee, admin, session, monkeypatch):
    recs = [_log(employee), _log(employee, day="2026-01-16"), _log(employee, day="2026-01-17")]
    monkeypatch.setattr(db.session, "commit", _boom)
    with pytest.raises(StoreError):
        settlement.bulk_mark_paid(employee.id, True, admin, _always(True))
    monkeypatch.undo()
    session.expire_all()
    assert all(session.get(ShiftRecord, r.id).is_paid is False for r in recs)


def test_bulk_mark_paid_unknown_employee(admin):
    with pytest.raises(NotFoundError):
        settlement.bulk_mark_paid(9999, True, admin, _always(True))


def test_selection_settle_across_employees(employee, other_employee, admin):
    a = _log(employee)
    b = _log(other_employee)
    c = _log(other_employee, day="2026-01-16")

    result = settlement.batch_mark_paid_by_selection([a.id, b.id], admin, _always(True))
    assert result.applied and result.count == 2
    assert result.preview.employee_ids == sorted([employee.id, other_employee.id])

    queue = settlement.unpaid_queue()
    remaining = [r.id for g in queue for r in g.records]
    assert remaining == [c.id]


def test_selection_rejects_paid_and_unknown_ids(employee, admin):
    a = _log(employee)
    settlement.mark_paid(a, admin)
    with pytest.raises(ConflictError):
        settlement.batch_mark_paid_by_selection([a.id], admin, _always(True))
    with pytest.raises(NotFoundError):
        settlement.batch_mark_paid_by_selection([a.id, 4242], admin, _always(True))


def test_set_paid_state_skips_rows_already_in_target(employee, admin):
    a = _log(employee)
    b = _log(employee, day="2026-01-16")
    settlement.mark_paid(a, admin)

    confirm = _always(True)
    result = settlement.set_paid_state([a.id, b.id], True, admin, confirm)
    assert confirm.calls[0].shift_ids == [b.id]
    assert result.count == 1


# ---------- selection model ----------

def test_payroll_selection_toggles(employee, other_employee):
    a1 = _log(employee)
    a2 = _log(employee, day="2026-01-16")
    b1 = _log(other_employee)
    sel = settlement.PayrollSelection([a1, a2, b1])

    sel.toggle_shift(a1.id)
    assert sel.selected == {a1.id}
    assert not sel.is_employee_selected(employee.id)

    sel.toggle_shift(a2.id)
    assert sel.is_employee_selected(employee.id)

    sel.toggle_employee(employee.id)  # fully selected -> clears that employee
    assert sel.selected == set()

    sel.toggle_employee(other_employee.id)
    assert sel.selected == {b1.id}
    assert sel.selected_employees() == [other_employee.id]

    sel.select_all()
    assert sel.selected == {a1.id, a2.id, b1.id}
    sel.clear()
    assert sel.selected == set()


def test_selection_ignores_ids_outside_view(employee):
    a = _log(employee)
    sel = settlement.PayrollSelection([a], selected=[a.id, 999])
    assert sel.selected == {a.id}
    with pytest.raises(NotFoundError):
        sel.toggle_shift(999)


# ---------- views ----------

def test_unpaid_queue_groups_sorted_by_name_with_filters(employee, other_employee):
    _log(employee, day="2026-01-10")
    _log(employee, day="2026-01-20")
    _log(other_employee, day="2026-01-12")

    groups = settlement.unpaid_queue()
    assert [g.employee.full_name for g in groups] == ["Jo Rigger", "Sam Stagehand"]

    from datetime import date
    groups = settlement.unpaid_queue(start=date(2026, 1, 11), end=date(2026, 1, 19))
    assert [g.employee.id for g in groups] == [other_employee.id]

    groups = settlement.unpaid_queue(search="@sam")
    assert [g.employee.id for g in groups] == [employee.id]
    assert groups[0].totals.shift_count == 2


def test_payment_history_groups_by_day(employee, other_employee, admin):
    a = _log(employee)
    b = _log(other_employee)
    c = _log(other_employee, day="2026-01-16")
    settlement.PaidStateChange([a, b], True, admin.id, now=datetime(2026, 1, 20, 18, 0)).apply().commit()
    settlement.PaidStateChange([c], True, admin.id, now=datetime(2026, 1, 22, 18, 0)).apply().commit()

    days = settlement.payment_history(tz=TZ)
    assert [d.day.isoformat() for d in days] == ["2026-01-22", "2026-01-20"]
    assert days[1].totals.shift_count == 2
    assert [g.employee.id for g in days[1].groups] == [other_employee.id, employee.id]

    only = settlement.payment_history(employee_id=employee.id, tz=TZ)
    assert len(only) == 1 and only[0].groups[0].records[0].id == a.id


def test_payment_audit_event(employee, admin, audit_events):
    rec = _log(employee)
    settlement.mark_paid(rec, admin)
    assert audit_events.events[-1]["action_type"] == "payment"
    assert audit_events.events[-1]["user_id"] == admin.id
