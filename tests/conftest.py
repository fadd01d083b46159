"""
Shared fixtures: in-memory SQLite database, users for every role,
a recording notifier, and API clients wired to both.
"""
import os

# Must be set before pest_booking.lib.settings is imported
os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["NOTIFICATION_PROVIDER"] = "console"
os.environ["JWT_SECRET"] = "test-secret-key"
os.environ["CREATE_TABLES_ON_STARTUP"] = "false"

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import List
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient

import pest_booking.models  # noqa: F401  (registers every table)
from pest_booking.api.app import app
from pest_booking.api.dependencies import get_notifier
from pest_booking.lib.db import Base, SessionLocal, engine
from pest_booking.lib.jwt import create_access_token
from pest_booking.lib.metrics import reset_metrics
from pest_booking.models.bookings import Booking, BookingStatus, PropertySize, ServiceType
from pest_booking.models.users import User, UserRole
from pest_booking.services.booking_service import BookingService
from pest_booking.services.notification_service import Notification, NotificationKind, Notifier
from pest_booking.services.scope import Actor


class RecordingNotifier(Notifier):
    """Keeps every notification in memory; optionally fails every delivery."""

    def __init__(self, fail: bool = False):
        self.sent: List[Notification] = []
        self.fail = fail

    async def notify(self, notification: Notification) -> None:
        if self.fail:
            raise RuntimeError("SMTP server unavailable")
        self.sent.append(notification)

    def of_kind(self, kind: NotificationKind) -> List[Notification]:
        return [n for n in self.sent if n.kind == kind]


@pytest.fixture(autouse=True)
def _database():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def _metrics():
    reset_metrics()
    yield
    reset_metrics()


@pytest.fixture
def db_session(_database):
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture
def users(db_session):
    """One active user per role, plus a second technician and customer."""
    def make(name: str, role: UserRole, email: str, is_active: bool = True) -> User:
        user = User(id=uuid4(), name=name, email=email, role=role, is_active=is_active)
        db_session.add(user)
        return user

    created = SimpleNamespace(
        admin=make("Alex Admin", UserRole.ADMIN, "admin@lxpest.test"),
        staff=make("Sam Staff", UserRole.STAFF, "staff@lxpest.test"),
        technician=make("Terry Tech", UserRole.TECHNICIAN, "terry@lxpest.test"),
        other_technician=make("Toni Tech", UserRole.TECHNICIAN, "toni@lxpest.test"),
        inactive_technician=make("Ivy Idle", UserRole.TECHNICIAN, "ivy@lxpest.test", is_active=False),
        customer=make("Casey Customer", UserRole.CUSTOMER, "casey@example.com"),
        other_customer=make("Morgan Other", UserRole.CUSTOMER, "morgan@example.com"),
    )
    db_session.commit()
    return created


def actor_for(user: User) -> Actor:
    return Actor(id=user.id, role=user.role, email=user.email)


@pytest.fixture
def actors(users):
    return SimpleNamespace(**{name: actor_for(user) for name, user in vars(users).items()})


@pytest.fixture
def auth_headers():
    """Bearer header for a user."""
    def make(user: User) -> dict:
        token = create_access_token(str(user.id), user.role.value, email=user.email)
        return {"Authorization": f"Bearer {token}"}
    return make


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def failing_notifier():
    return RecordingNotifier(fail=True)


@pytest.fixture
def booking_service(db_session, notifier):
    return BookingService(db_session, notifier=notifier)


@pytest.fixture
def booking_factory(db_session, users):
    """Insert a booking directly, bypassing the workflow."""
    def make(**overrides) -> Booking:
        values = dict(
            customer_id=users.customer.id,
            customer_name=users.customer.name,
            customer_email=users.customer.email,
            customer_phone="0412 345 678",
            service_type=ServiceType.TERMITE,
            property_size=PropertySize.MEDIUM,
            scheduled_at=datetime.now(timezone.utc) + timedelta(days=1),
            address_street="12 Banksia Street",
            address_city="Parramatta",
            address_state="NSW",
            address_postal_code="2150",
            status=BookingStatus.PENDING,
        )
        values.update(overrides)
        booking = Booking(**values)
        db_session.add(booking)
        db_session.commit()
        return booking
    return make


@pytest.fixture
def booking_payload():
    """Valid booking form input, with overrides."""
    def make(**overrides) -> dict:
        payload = {
            "name": "Casey Customer",
            "email": "casey@example.com",
            "phone": "0412 345 678",
            "service_type": "termite",
            "property_size": "medium",
            "scheduled_at": (datetime.now(timezone.utc) + timedelta(days=1)).isoformat(),
            "time_slot": "morning",
            "address": {
                "street": "12 Banksia Street",
                "city": "Parramatta",
                "state": "NSW",
                "postal_code": "2150",
            },
            "notes": "Mud tubes along the garage wall",
        }
        payload.update(overrides)
        return payload
    return make


@pytest.fixture
def client(notifier):
    """Test client for the FastAPI app with the recording notifier."""
    app.dependency_overrides[get_notifier] = lambda: notifier
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
async def async_client(notifier):
    app.dependency_overrides[get_notifier] = lambda: notifier
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
