from datetime import datetime, timedelta

import pytest

from crewpay_api.common.errors import NotFoundError
from crewpay_api.common.timeutils import utcnow
from crewpay_api.models.scheduled_shift import ScheduledShift
from crewpay_api.services import assignments, notify, schedule

TZ = "America/Chicago"


@pytest.fixture
def job(admin):
    start = utcnow() + timedelta(days=2)
    return schedule.create_scheduled(
        {"start_time": start.isoformat() + "Z", "job_type": "setup", "location_name": "Civic Center"}, admin)


def test_assignment_message_text():
    shift = ScheduledShift(start_time=datetime(2026, 1, 17, 15, 0), end_time=datetime(2026, 1, 17, 21, 0),
                           location_name="Civic Center")
    assert notify.assignment_message(shift, "Sam", TZ) == (
        "Sam, you've been scheduled for a shift on Sat, Jan 17 from 9:00 AM to 3:00 PM at Civic Center."
        " Reply to your manager if you have any questions."
    )

    open_ended = ScheduledShift(start_time=datetime(2026, 1, 17, 18, 0), address="12 Dock Rd")
    assert notify.assignment_message(open_ended, None, TZ).startswith(
        "You've been scheduled for a shift on Sat, Jan 17 starting at 12:00 PM at 12 Dock Rd.")


def test_update_message_lists_what_moved():
    changes = {
        "start_time": (datetime(2026, 1, 17, 15, 0), datetime(2026, 1, 17, 16, 0)),
        "location_name": ("Civic Center", None),
    }
    assert notify.update_message(changes, TZ, "https://crew.example") == (
        "Shift updated.\n\n"
        "Start: Sat, Jan 17 9:00 AM -> Sat, Jan 17 10:00 AM\n"
        "Location: Civic Center -> -\n\n"
        "View schedule: https://crew.example/self/schedule"
    )
    assert "View schedule" not in notify.update_message(changes, TZ)


def test_notify_assigned_skips_missing_phones_and_inactive(job, admin, employee, other_employee,
                                                          user_factory, session, sms_outbox):
    gone = user_factory("lee@test.local", "Lee Left", phone="555-0199")
    assignments.set_assignees(job.id, [employee.id, other_employee.id, gone.id], admin)
    gone.is_active = False
    session.commit()

    outcome = notify.notify_assigned(job.id, tz=TZ)
    assert outcome.sent == [employee.id]
    assert sorted(outcome.skipped) == sorted([other_employee.id, gone.id])
    assert outcome.failed == []
    assert [phone for phone, _ in sms_outbox.messages] == ["555-0101"]
    assert sms_outbox.messages[0][1].startswith("Sam Stagehand, you've been scheduled")


def test_notify_assigned_subset_and_unknown_shift(job, admin, employee, other_employee, sms_outbox):
    assignments.set_assignees(job.id, [employee.id, other_employee.id], admin)
    outcome = notify.notify_assigned(job.id, [other_employee.id])
    assert outcome.to_dict() == {"sent": [], "skipped": [other_employee.id], "failed": []}
    assert sms_outbox.messages == []

    with pytest.raises(NotFoundError):
        notify.notify_assigned(4242)


def test_failed_send_is_reported_per_recipient(employee, user_factory):
    pat = user_factory("pat@test.local", "Pat Porter", phone="555-0123")

    def flaky(phone, body):
        if phone == "555-0101":
            raise RuntimeError("gateway timeout")

    outcome = notify.ShiftNotifier(flaky).deliver([employee, pat], lambda u: "hello")
    assert outcome.failed == [employee.id]
    assert outcome.sent == [pat.id]


def test_update_notice_only_when_watched_fields_change(job, admin, employee, sms_outbox):
    assignments.set_assignees(job.id, [employee.id], admin)

    before = notify.snapshot(job)
    schedule.update_scheduled(job, {"status": "confirmed"}, admin)
    assert notify.watched_changes(before, job) == {}
    assert notify.notify_updated(job, {}, TZ).to_dict() == {"sent": [], "skipped": [], "failed": []}

    before = notify.snapshot(job)
    schedule.update_scheduled(job, {"location_name": "Expo Hall"}, admin)
    changes = notify.watched_changes(before, job)
    assert changes == {"location_name": ("Civic Center", "Expo Hall")}

    outcome = notify.notify_updated(job, changes, TZ)
    assert outcome.sent == [employee.id]
    assert sms_outbox.messages == [("555-0101", "Shift updated.\n\nLocation: Civic Center -> Expo Hall")]
