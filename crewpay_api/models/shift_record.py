from datetime import datetime
from crewpay_api.extensions import db

SHIFT_TYPES = ("Setup", "Lights", "Breakdown", "Shop", "Other")


class ShiftRecord(db.Model):
    """A worked shift. System of record for payroll."""
    __tablename__ = "shift_records"

    id          = db.Column(db.Integer, primary_key=True)
    employee_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    shift_date  = db.Column(db.Date, nullable=False, index=True)
    shift_type  = db.Column(db.String(20), nullable=False)

    # naive UTC
    time_in     = db.Column(db.DateTime, nullable=False)
    time_out    = db.Column(db.DateTime, nullable=False)

    hours_worked = db.Column(db.Numeric(6, 2), nullable=False)
    pay_rate     = db.Column(db.Numeric(10, 2), nullable=False)
    pay_due      = db.Column(db.Numeric(10, 2), nullable=True)   # null = not yet computed

    is_paid  = db.Column(db.Boolean, nullable=False, default=False, index=True)
    paid_at  = db.Column(db.DateTime, nullable=True)
    paid_by  = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    notes      = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=True, onupdate=datetime.utcnow)

    employee = db.relationship("User", foreign_keys=[employee_id], lazy="joined")
    payer    = db.relationship("User", foreign_keys=[paid_by], lazy="select")

    __table_args__ = (
        db.CheckConstraint("time_out > time_in", name="ck_shift_records_time_order"),
        db.CheckConstraint("hours_worked > 0", name="ck_shift_records_hours_positive"),
        db.CheckConstraint("pay_due IS NULL OR pay_due >= 0", name="ck_shift_records_pay_non_negative"),
        db.CheckConstraint(
            "(is_paid AND paid_at IS NOT NULL AND paid_by IS NOT NULL) OR "
            "(NOT is_paid AND paid_at IS NULL AND paid_by IS NULL)",
            name="ck_shift_records_paid_fields",
        ),
        db.Index("ix_shift_records_emp_date", "employee_id", "shift_date"),
    )

    def __repr__(self) -> str:
        return f"<ShiftRecord id={self.id} employee_id={self.employee_id} date={self.shift_date} paid={self.is_paid}>"
