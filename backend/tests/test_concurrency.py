"""
Concurrent writers against a file-backed SQLite database.

Each worker runs in its own thread with its own app context and session,
the same way request threads do under a threaded server.
"""

import threading

import pytest

from app import create_app
from app.errors import (
    InvalidTransitionError,
    PaymentLimitExceededError,
    PromoExhaustedError,
    PromoNotApplicableError,
    SlotConflictError,
    SlotUnavailableError,
    StaleBookingError,
)
from app.extensions import db
from app.models import Booking, Promotion, Transaction
from app.services import booking_service, payment_service

from conftest import NOW, SESSION_DATE, BookingFactory


@pytest.fixture
def file_app(tmp_path):
    app = create_app(
        TESTING=True,
        SQLALCHEMY_DATABASE_URI=f"sqlite:///{tmp_path / 'concurrency.db'}",
        SQLALCHEMY_ENGINE_OPTIONS={"connect_args": {"timeout": 30}},
        WRITE_RETRY_ATTEMPTS=8,
        WRITE_RETRY_BACKOFF=0.01,
        BUSINESS_TIMEZONE="UTC",
    )
    with app.app_context():
        db.create_all()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.session.remove()
        db.engine.dispose()


def run_workers(app, targets):
    """Start every target at once; returns one result or exception per target."""
    results = [None] * len(targets)
    barrier = threading.Barrier(len(targets))

    def worker(index, target):
        with app.app_context():
            try:
                barrier.wait()
                results[index] = target()
            except Exception as exc:
                results[index] = exc
            finally:
                db.session.remove()

    threads = [threading.Thread(target=worker, args=(i, t)) for i, t in enumerate(targets)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return results


class TestConcurrentBookings:
    def test_same_slot_is_booked_once(self, file_app):
        with file_app.app_context():
            factory = BookingFactory(db.session)
            photographer = factory.photographer()
            service = factory.service()
            payloads = [
                factory.booking_payload(photographer=photographer, service=service, start_time="10:00")
                for _ in range(5)
            ]
            photographer_id = photographer.id

        results = run_workers(
            file_app,
            [lambda p=p: booking_service.create_booking(p, "staff-1", now=NOW).id for p in payloads],
        )

        created = [r for r in results if isinstance(r, int)]
        rejected = [r for r in results if not isinstance(r, int)]
        assert len(created) == 1
        assert all(isinstance(r, (SlotUnavailableError, SlotConflictError)) for r in rejected), rejected

        with file_app.app_context():
            assert Booking.query.filter_by(photographer_id=photographer_id, booking_date=SESSION_DATE).count() == 1

    def test_neighbouring_slots_both_succeed(self, file_app):
        with file_app.app_context():
            factory = BookingFactory(db.session)
            photographer = factory.photographer()
            payloads = [
                factory.booking_payload(photographer=photographer, start_time=start)
                for start in ("10:00", "11:00")
            ]

        results = run_workers(
            file_app,
            [lambda p=p: booking_service.create_booking(p, "staff-1", now=NOW).id for p in payloads],
        )

        assert all(isinstance(r, int) for r in results), results


class TestConcurrentTransitions:
    def test_double_cancel_has_one_winner(self, file_app):
        with file_app.app_context():
            booking_id = BookingFactory(db.session).booking().id

        results = run_workers(
            file_app,
            [
                lambda actor=actor: booking_service.cancel_booking(
                    booking_id, "Client moved abroad", actor, now=NOW
                ).status
                for actor in ("staff-1", "staff-2")
            ],
        )

        won = [r for r in results if isinstance(r, str)]
        lost = [r for r in results if not isinstance(r, str)]
        assert won == ["CANCELLED"]
        assert isinstance(lost[0], (StaleBookingError, InvalidTransitionError)), lost

        with file_app.app_context():
            events = [e.event_type for e in booking_service.list_booking_events(booking_id)]
            assert events == ["CREATED", "CANCELLED"]

    def test_confirm_and_cancel_end_in_a_serial_outcome(self, file_app):
        """
        Both orders are legal one after the other; overlapping writers on the
        same PENDING read lose with StaleBookingError.
        """
        with file_app.app_context():
            booking_id = BookingFactory(db.session).booking().id

        results = run_workers(
            file_app,
            [
                lambda: booking_service.confirm_booking(booking_id, "staff-1", now=NOW).status,
                lambda: booking_service.cancel_booking(booking_id, "Client moved abroad", "staff-2", now=NOW).status,
            ],
        )

        won = [r for r in results if isinstance(r, str)]
        lost = [r for r in results if not isinstance(r, str)]
        assert all(isinstance(r, (StaleBookingError, InvalidTransitionError)) for r in lost), lost

        with file_app.app_context():
            booking = db.session.get(Booking, booking_id)
            events = [e.event_type for e in booking_service.list_booking_events(booking_id)]
            if lost:
                assert len(won) == 1
                assert events == ["CREATED", won[0]]
            else:
                assert events == ["CREATED", "CONFIRMED", "CANCELLED"]
            assert booking.status == events[-1]


class TestConcurrentPromoRedemption:
    def test_last_redemption_goes_to_one_booking(self, file_app):
        with file_app.app_context():
            factory = BookingFactory(db.session)
            promo = factory.promo("LASTONE", discount_value=50, usage_limit=1)
            payloads = [
                factory.booking_payload(photographer=factory.photographer(), promo_code="LASTONE")
                for _ in range(2)
            ]
            promo_id = promo.id

        results = run_workers(
            file_app,
            [lambda p=p: booking_service.create_booking(p, "staff-1", now=NOW).id for p in payloads],
        )

        created = [r for r in results if isinstance(r, int)]
        rejected = [r for r in results if not isinstance(r, int)]
        assert len(created) == 1
        assert len(rejected) == 1
        assert isinstance(rejected[0], (PromoExhaustedError, PromoNotApplicableError)), rejected

        with file_app.app_context():
            assert db.session.get(Promotion, promo_id).usage_count == 1
            discounted = Booking.query.filter(Booking.discount_amount_cents > 0).count()
            assert discounted == 1


class TestConcurrentPayments:
    def test_payments_never_exceed_the_final_amount(self, file_app):
        with file_app.app_context():
            factory = BookingFactory(db.session)
            booking = factory.booking(service=factory.service(price_cents=1000))
            booking_id = booking.id

        def pay():
            payload = {"booking_id": booking_id, "amount_cents": 600, "payment_method": "CASH"}
            return payment_service.record_transaction(payload, "staff-1", now=NOW).id

        results = run_workers(file_app, [pay, pay])

        recorded = [r for r in results if isinstance(r, int)]
        rejected = [r for r in results if not isinstance(r, int)]
        assert len(recorded) == 1
        assert isinstance(rejected[0], (PaymentLimitExceededError, StaleBookingError)), rejected

        with file_app.app_context():
            txns = Transaction.query.filter_by(booking_id=booking_id, status="COMPLETED").all()
            assert sum(t.amount_cents for t in txns) == 600
