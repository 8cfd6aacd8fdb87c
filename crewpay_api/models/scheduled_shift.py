from datetime import datetime
from crewpay_api.extensions import db

JOB_TYPES = ("setup", "event", "breakdown", "other")
SCHEDULE_STATUSES = ("draft", "confirmed", "changed")


class ScheduledShift(db.Model):
    """Planned work. Not linked to ShiftRecord."""
    __tablename__ = "scheduled_shifts"

    id            = db.Column(db.Integer, primary_key=True)
    start_time    = db.Column(db.DateTime, nullable=False, index=True)   # naive UTC
    end_time      = db.Column(db.DateTime, nullable=True, index=True)    # null = open-ended
    location_name = db.Column(db.String(200), nullable=True)
    address       = db.Column(db.String(300), nullable=True)
    job_type      = db.Column(db.String(20), nullable=False, default="other")
    status        = db.Column(db.String(20), nullable=False, default="draft")
    notes         = db.Column(db.Text, nullable=True)
    created_by    = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at    = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at    = db.Column(db.DateTime, nullable=True, onupdate=datetime.utcnow)

    assignments = db.relationship(
        "ShiftAssignment",
        back_populates="scheduled_shift",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __table_args__ = (
        db.CheckConstraint("end_time IS NULL OR end_time > start_time", name="ck_scheduled_shifts_window"),
    )

    def __repr__(self) -> str:
        return f"<ScheduledShift id={self.id} start={self.start_time} status={self.status!r}>"


class ShiftAssignment(db.Model):
    __tablename__ = "shift_assignments"

    # composite PK keeps (shift, employee) unique without extra index
    scheduled_shift_id = db.Column(
        db.Integer,
        db.ForeignKey("scheduled_shifts.id", ondelete="CASCADE"),
        primary_key=True,
    )
    employee_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
        index=True,
    )
    assigned_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at  = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    scheduled_shift = db.relationship("ScheduledShift", back_populates="assignments")
    employee = db.relationship("User", foreign_keys=[employee_id], lazy="joined")

    def __repr__(self) -> str:
        return f"<ShiftAssignment shift={self.scheduled_shift_id} employee={self.employee_id}>"
