"""
Pytest fixtures for booking backend tests.

Provides the app on an in-memory database, a clean database per test, a
factory for customers, catalog items, photographers, promotions and
bookings, and actor headers for API calls.
"""

from datetime import date, datetime

import pytest

from app import create_app
from app.extensions import db
from app.models import (
    Customer,
    Package,
    PackageItem,
    Photographer,
    PhotographerDateOverride,
    PhotographerDaySetting,
    PhotographerOverrideWindow,
    PhotographerScheduleWindow,
    Promotion,
    Service,
)
from app.services import booking_service, payment_service


# Monday 2026-10-19 08:00; the business zone is UTC in tests
NOW = datetime(2026, 10, 19, 8, 0)
# Two weeks later, also a Monday
SESSION_DATE = date(2026, 11, 2)
MONDAY = 0


class BookingFactory:
    """
    Creates persisted test data. Every helper commits, so the rows are
    visible to service calls exactly as production data would be.
    """

    def __init__(self, session):
        self.session = session
        self._counter = 0

    def _next_id(self) -> int:
        self._counter += 1
        return self._counter

    def _save(self, obj):
        self.session.add(obj)
        self.session.commit()
        return obj

    def customer(self, **overrides) -> Customer:
        n = self._next_id()
        fields = {
            "first_name": "Test",
            "last_name": f"Customer {n}",
            "email": f"customer{n}@example.com",
        }
        fields.update(overrides)
        return self._save(Customer(**fields))

    def service(self, price_cents: int = 100000, duration_minutes=60, **overrides) -> Service:
        n = self._next_id()
        fields = {
            "name": f"Portrait Session {n}",
            "category": "PORTRAIT",
            "price_cents": price_cents,
            "duration_minutes": duration_minutes,
        }
        fields.update(overrides)
        return self._save(Service(**fields))

    def package(self, items, price_cents: int = 150000, **overrides) -> Package:
        """items: list of (service, quantity)."""
        n = self._next_id()
        package = Package(name=overrides.pop("name", f"Wedding Package {n}"), price_cents=price_cents, **overrides)
        for service, quantity in items:
            package.items.append(PackageItem(service_id=service.id, quantity=quantity))
        return self._save(package)

    def photographer(
        self,
        *,
        weekdays=(MONDAY,),
        start: str = "09:00",
        end: str = "17:00",
        closed_days=(),
        lead_time_hours: int = 0,
    ) -> Photographer:
        n = self._next_id()
        photographer = Photographer(
            name=f"Photographer {n}",
            email=f"photographer{n}@example.com",
            booking_lead_time_hours=lead_time_hours,
        )
        photographer.stamp_created("seed", NOW)
        for day in weekdays:
            photographer.day_settings.append(PhotographerDaySetting(day_of_week=day, accepts_bookings=True))
            photographer.schedule_windows.append(
                PhotographerScheduleWindow(day_of_week=day, start_time=start, end_time=end)
            )
        for day in closed_days:
            photographer.day_settings.append(PhotographerDaySetting(day_of_week=day, accepts_bookings=False))
        return self._save(photographer)

    def date_override(self, photographer, override_date, *, is_available: bool, windows=(), reason=None):
        override = PhotographerDateOverride(
            photographer_id=photographer.id,
            override_date=override_date,
            is_available=is_available,
            reason=reason,
        )
        for start, end in windows:
            override.windows.append(PhotographerOverrideWindow(start_time=start, end_time=end))
        self._save(override)
        return override

    def promo(self, code=None, *, discount_type: str = "PERCENTAGE", discount_value: int = 10, **overrides) -> Promotion:
        n = self._next_id()
        promo = Promotion(
            promo_code=code or f"PROMO{n}",
            name=overrides.pop("name", f"Promotion {n}"),
            promo_type=overrides.pop("promo_type", "SPECIAL"),
            discount_type=discount_type,
            discount_value=discount_value,
            **overrides,
        )
        promo.stamp_created("seed", NOW)
        return self._save(promo)

    def booking_payload(
        self,
        *,
        customer=None,
        photographer=None,
        service=None,
        booking_date: date = SESSION_DATE,
        start_time: str = "10:00",
        **extra,
    ) -> dict:
        customer = customer or self.customer()
        payload = {
            "customer_id": customer.id,
            "booking_date": booking_date.isoformat(),
            "start_time": start_time,
            "location": "Studio A, 12 Main St",
        }
        if "package_id" not in extra and "services" not in extra:
            service = service or self.service()
            payload["services"] = [{"service_id": service.id, "quantity": 1}]
        if photographer is not None:
            payload["photographer_id"] = photographer.id
        payload.update(extra)
        return payload

    def booking(self, *, now: datetime = NOW, actor_id: str = "staff-1", **kwargs):
        return booking_service.create_booking(self.booking_payload(**kwargs), actor_id, now=now)

    def confirmed_booking(self, **kwargs):
        booking = self.booking(**kwargs)
        return booking_service.confirm_booking(booking.id, "staff-1", now=NOW)

    def pay(self, booking, amount_cents: int, *, method: str = "CASH", now: datetime = NOW, **extra):
        payload = {"booking_id": booking.id, "amount_cents": amount_cents, "payment_method": method}
        if method == "ELECTRONIC":
            payload.setdefault("reference_number", f"GC-{self._next_id():06d}")
        payload.update(extra)
        return payment_service.record_transaction(payload, "staff-1", now=now)


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(
        TESTING=True,
        SQLALCHEMY_DATABASE_URI='sqlite:///:memory:',
        SQLALCHEMY_TRACK_MODIFICATIONS=False,
        BUSINESS_TIMEZONE='UTC',
    )

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def factory(db_session):
    return BookingFactory(db_session)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def session_date():
    return SESSION_DATE


def actor_headers(role: str = "admin", actor_id: str = "actor-1") -> dict:
    """Helper to create upstream actor headers."""
    return {"X-Actor-Id": actor_id, "X-Actor-Role": role}


@pytest.fixture
def admin_headers():
    return actor_headers("admin", "admin-1")


@pytest.fixture
def staff_headers():
    return actor_headers("staff", "staff-1")


@pytest.fixture
def customer_headers():
    return actor_headers("customer", "customer-1")


@pytest.fixture
def photographer_headers():
    return actor_headers("photographer", "photographer-1")
