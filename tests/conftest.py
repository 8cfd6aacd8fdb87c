from decimal import Decimal

import pytest
from flask_jwt_extended import create_access_token

from crewpay_api import create_app
from crewpay_api.extensions import db
from crewpay_api.models.user import User


class AuditRecorder:
    def __init__(self):
        self.events = []

    def __call__(self, event):
        self.events.append(event)

    def actions(self):
        return [e["action_type"] for e in self.events]


@pytest.fixture(scope="function")
def audit_events():
    return AuditRecorder()


class SmsOutbox:
    def __init__(self):
        self.messages = []

    def __call__(self, phone, body):
        self.messages.append((phone, body))


@pytest.fixture(scope="function")
def sms_outbox():
    return SmsOutbox()


@pytest.fixture(scope="function")
def app(audit_events, sms_outbox):
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
        "JWT_SECRET_KEY": "test-secret-key-that-is-long-enough-for-hs256",
        "DEFAULT_TIMEZONE": "America/Chicago",
        "AUDIT_WRITER": audit_events,
        "SMS_SENDER": sms_outbox,
    })
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope="function")
def session(app):
    yield db.session


@pytest.fixture
def client(app):
    return app.test_client()


def make_user(email, full_name, role="employee", pay_rate=Decimal("25.00"), is_active=True, **kw):
    u = User(email=email, full_name=full_name, role=role, pay_rate=pay_rate, is_active=is_active, **kw)
    u.set_password("password123")
    db.session.add(u)
    db.session.commit()
    return u


@pytest.fixture
def admin(session):
    return make_user("admin@test.local", "Alex Admin", role="admin")


@pytest.fixture
def employee(session):
    return make_user("sam@test.local", "Sam Stagehand", phone="555-0101", venmo_url="@sam-s")


@pytest.fixture
def other_employee(session):
    return make_user("jo@test.local", "Jo Rigger", pay_rate=Decimal("30.00"))


def auth_headers(user):
    token = create_access_token(identity=str(user.id), additional_claims={"roles": user.role_codes()})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers(admin):
    return auth_headers(admin)


@pytest.fixture
def employee_headers(employee):
    return auth_headers(employee)


@pytest.fixture
def user_factory(session):
    return make_user


@pytest.fixture
def headers_for(app):
    return auth_headers
