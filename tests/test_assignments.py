from datetime import timedelta

import pytest
from sqlalchemy import event

from crewpay_api.common.errors import ConflictError, NotFoundError, ValidationError
from crewpay_api.common.timeutils import utcnow
from crewpay_api.extensions import db
from crewpay_api.models.scheduled_shift import ScheduledShift
from crewpay_api.services import assignments, schedule


@pytest.fixture
def job(admin):
    start = utcnow() + timedelta(days=2)
    return schedule.create_scheduled({"start_time": start.isoformat() + "Z", "job_type": "setup"}, admin)


@pytest.fixture
def crew(user_factory):
    return [
        user_factory("a@test.local", "Avery"),
        user_factory("b@test.local", "Blake"),
        user_factory("c@test.local", "Casey"),
    ]


@pytest.fixture
def assignment_writes(app):
    seen = {"insert": 0, "delete": 0}

    def _listener(conn, cursor, statement, parameters, context, executemany):
        s = statement.lstrip().upper()
        if s.startswith("INSERT INTO SHIFT_ASSIGNMENTS"):
            seen["insert"] += 1
        elif s.startswith("DELETE FROM SHIFT_ASSIGNMENTS"):
            seen["delete"] += 1

    event.listen(db.engine, "before_cursor_execute", _listener)
    yield seen
    event.remove(db.engine, "before_cursor_execute", _listener)


def test_set_assignees_writes_only_the_difference(job, crew, admin, assignment_writes):
    a, b, c = crew
    assignments.set_assignees(job.id, [a.id, b.id], admin)
    assignment_writes.update(insert=0, delete=0)

    diff = assignments.set_assignees(job.id, [b.id, c.id], admin)

    assert assignments.get_assignees(job.id) == {b.id, c.id}
    assert diff.added == [c.id]
    assert diff.removed == [a.id]
    assert assignment_writes == {"insert": 1, "delete": 1}


def test_set_assignees_noop_issues_no_writes(job, crew, admin, assignment_writes):
    a, b, _ = crew
    assignments.set_assignees(job.id, [a.id, b.id], admin)
    assignment_writes.update(insert=0, delete=0)

    diff = assignments.set_assignees(job.id, [b.id, a.id], admin)
    assert diff.is_noop
    assert assignment_writes == {"insert": 0, "delete": 0}


def test_set_assignees_to_empty_clears_roster(job, crew, admin):
    assignments.set_assignees(job.id, [u.id for u in crew], admin)
    diff = assignments.set_assignees(job.id, [], admin)
    assert sorted(diff.removed) == sorted(u.id for u in crew)
    assert assignments.get_assignees(job.id) == set()


def test_add_assignees_rejects_duplicates(job, crew, admin):
    a, b, _ = crew
    assignments.add_assignees(job.id, [a.id], admin)
    with pytest.raises(ConflictError):
        assignments.add_assignees(job.id, [a.id, b.id], admin)
    # nothing from the failed batch landed
    assert assignments.get_assignees(job.id) == {a.id}


def test_add_assignees_unknown_and_inactive(job, crew, admin, session):
    with pytest.raises(NotFoundError):
        assignments.add_assignees(job.id, [crew[0].id, 9999], admin)

    crew[1].is_active = False
    session.commit()
    with pytest.raises(ValidationError):
        assignments.add_assignees(job.id, [crew[1].id], admin)
    assert assignments.get_assignees(job.id) == set()


def test_remove_assignees(job, crew, admin):
    a, b, c = crew
    assignments.set_assignees(job.id, [a.id, b.id], admin)
    with pytest.raises(NotFoundError):
        assignments.remove_assignees(job.id, [c.id], admin)

    diff = assignments.remove_assignees(job.id, [a.id], admin)
    assert diff.removed == [a.id]
    assert assignments.get_assignees(job.id) == {b.id}


def test_unknown_scheduled_shift(crew, admin):
    with pytest.raises(NotFoundError):
        assignments.set_assignees(4242, [crew[0].id], admin)


def test_deleting_scheduled_shift_drops_assignments(job, crew, admin):
    from crewpay_api.models.scheduled_shift import ShiftAssignment
    assignments.set_assignees(job.id, [crew[0].id], admin)
    schedule.delete_scheduled(job, admin)
    assert ShiftAssignment.query.count() == 0


def test_schedule_for_employee_lists_teammates(job, crew, admin):
    a, b, c = crew
    assignments.set_assignees(job.id, [a.id, b.id, c.id], admin)

    past_start = utcnow() - timedelta(days=3)
    old = schedule.create_scheduled({"start_time": past_start.isoformat() + "Z"}, admin)
    assignments.set_assignees(old.id, [a.id], admin)

    entries = assignments.schedule_for_employee(a.id)
    assert [e.shift.id for e in entries] == [job.id]
    assert [u.full_name for u in entries[0].teammates] == ["Blake", "Casey"]
    assert entries[0].upcoming is True

    entries = assignments.schedule_for_employee(a.id, include_past=True)
    assert [e.shift.id for e in entries] == [job.id, old.id]
    assert entries[1].teammates == []
    assert entries[1].upcoming is False


def test_assignment_audit_event(job, crew, admin, audit_events):
    assignments.set_assignees(job.id, [crew[0].id], admin)
    ev = audit_events.events[-1]
    assert ev["action_type"] == "assignment_changed"
    assert ev["metadata"] == {"added": [crew[0].id], "removed": []}
    assert db.session.get(ScheduledShift, job.id) is not None


def test_concurrent_add_of_same_employee_is_a_conflict(job, crew, admin, monkeypatch):
    a, b, _ = crew
    assignments.add_assignees(job.id, [a.id], admin)

    # another request committed the row after our roster read
    monkeypatch.setattr(assignments, "_current", lambda shift_id: set())
    with pytest.raises(ConflictError):
        assignments.add_assignees(job.id, [a.id, b.id], admin)
    monkeypatch.undo()

    assert assignments.get_assignees(job.id) == {a.id}


def test_boolean_ids_are_rejected(job, crew, admin):
    with pytest.raises(ValidationError):
        assignments.set_assignees(job.id, [True], admin)
    with pytest.raises(ValidationError):
        assignments.add_assignees(job.id, [crew[0].id, False], admin)
    assert assignments.get_assignees(job.id) == set()
