from datetime import datetime
from decimal import Decimal
from crewpay_api.extensions import db
from werkzeug.security import generate_password_hash, check_password_hash

ROLES = ("admin", "employee")
DEFAULT_PAY_RATE = Decimal("25.00")


class User(db.Model):
    """Login account and employee profile in one row."""
    __tablename__ = "users"

    id           = db.Column(db.Integer, primary_key=True)
    email        = db.Column(db.String(255), unique=True, index=True, nullable=False)
    password_hash= db.Column(db.String(255), nullable=False)
    full_name    = db.Column(db.String(200), nullable=False)
    role         = db.Column(db.String(20), nullable=False, default="employee")   # admin/employee
    phone        = db.Column(db.String(40), nullable=True)
    venmo_url    = db.Column(db.String(255), nullable=True)                       # payment handle
    pay_rate     = db.Column(db.Numeric(10, 2), nullable=False, default=DEFAULT_PAY_RATE)
    is_active    = db.Column(db.Boolean, nullable=False, default=True, index=True)
    created_at   = db.Column(db.DateTime, default=datetime.utcnow)

    __table_args__ = (
        db.CheckConstraint("pay_rate >= 0", name="ck_users_pay_rate_non_negative"),
    )

    # --- helpers ---
    def set_password(self, raw: str):
        self.password_hash = generate_password_hash(raw)

    def check_password(self, raw: str) -> bool:
        return check_password_hash(self.password_hash, raw)

    def role_codes(self):
        return [self.role] if self.role else []

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email!r} role={self.role!r}>"
