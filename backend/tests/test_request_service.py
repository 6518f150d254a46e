from datetime import timedelta

import pytest

from app.errors import (
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
    RefundNotAllowedError,
    RequestNotAllowedError,
    ValidationError,
)
from app.services import booking_service, ledger_service, payment_service, request_service
from app.services.references import CHANGE_REQUEST_REFERENCE_RE, REFUND_REQUEST_REFERENCE_RE

from conftest import SESSION_DATE


@pytest.fixture
def booking(factory):
    """A confirmed booking with a final amount of 1,000.00."""
    return factory.confirmed_booking(service=factory.service(price_cents=100000))


def file_cancellation(booking, now, actor_id="customer-1", reason="Family emergency"):
    return request_service.create_change_request(
        {"booking_id": booking.id, "request_type": "CANCELLATION", "reason": reason}, actor_id, now=now
    )


def file_reschedule(booking, now, actor_id="customer-1", **extra):
    payload = {
        "booking_id": booking.id,
        "request_type": "reschedule",
        "reason": "Venue double-booked",
        "new_booking_date": (SESSION_DATE + timedelta(days=7)).isoformat(),
    }
    payload.update(extra)
    return request_service.create_change_request(payload, actor_id, now=now)


def event_types(booking):
    return [e.event_type for e in booking_service.list_booking_events(booking.id)]


class TestFilingChangeRequests:
    def test_cancellation_request_leaves_booking_untouched(self, booking, now):
        req = file_cancellation(booking, now)

        assert CHANGE_REQUEST_REFERENCE_RE.match(req.request_reference)
        assert (req.status, req.request_type) == ("PENDING", "CANCELLATION")
        assert req.customer_id == booking.customer_id
        assert req.created_by == "customer-1"
        assert booking_service.get_booking(booking.id).status == "CONFIRMED"
        assert event_types(booking)[-1] == "CHANGE_REQUESTED"

    def test_reschedule_request_keeps_the_target(self, booking, now):
        req = file_reschedule(booking, now, new_start_time="14:00")

        assert req.request_type == "RESCHEDULE"
        assert req.new_booking_date == SESSION_DATE + timedelta(days=7)
        assert req.new_start_time == "14:00"

    @pytest.mark.parametrize("reason", ["shrt", "x" * 501])
    def test_reason_length(self, booking, now, reason):
        with pytest.raises(ValidationError) as exc:
            file_cancellation(booking, now, reason=reason)
        assert "reason" in exc.value.details

    def test_reschedule_needs_a_new_date(self, booking, now):
        with pytest.raises(ValidationError) as exc:
            file_reschedule(booking, now, new_booking_date=None)
        assert exc.value.details["new_booking_date"] == "is required"

    def test_reschedule_date_cannot_be_in_the_past(self, booking, now):
        with pytest.raises(ValidationError) as exc:
            file_reschedule(booking, now, new_booking_date=(now.date() - timedelta(days=1)).isoformat())
        assert "new_booking_date" in exc.value.details

    def test_cancellation_carries_no_new_date(self, booking, now):
        with pytest.raises(ValidationError) as exc:
            request_service.create_change_request(
                {
                    "booking_id": booking.id,
                    "request_type": "CANCELLATION",
                    "reason": "Family emergency",
                    "new_booking_date": SESSION_DATE.isoformat(),
                },
                "customer-1",
                now=now,
            )
        assert "new_booking_date" in exc.value.details

    def test_unknown_type(self, booking, now):
        with pytest.raises(ValidationError) as exc:
            file_reschedule(booking, now, request_type="UPGRADE")
        assert "request_type" in exc.value.details

    @pytest.mark.parametrize("filer", [file_cancellation, file_reschedule])
    def test_cancelled_booking_takes_no_requests(self, booking, now, filer):
        booking_service.cancel_booking(booking.id, "Client moved abroad", "staff-1", now=now)
        with pytest.raises(RequestNotAllowedError):
            filer(booking, now)

    def test_one_pending_request_per_type(self, booking, now):
        first = file_cancellation(booking, now)

        with pytest.raises(RequestNotAllowedError) as exc:
            file_cancellation(booking, now)
        assert first.request_reference in exc.value.message
        assert file_reschedule(booking, now).status == "PENDING"

    def test_deleted_booking(self, booking, now):
        booking_service.deactivate_booking(booking.id, "admin-1", now=now)
        with pytest.raises(NotFoundError):
            file_cancellation(booking, now)


class TestReviewingChangeRequests:
    def test_approve_cancellation(self, booking, now):
        req = file_cancellation(booking, now)

        approved = request_service.approve_change_request(req.id, "admin-1", admin_notes="Per policy", now=now)

        assert approved.status == "APPROVED"
        assert (approved.reviewed_by, approved.reviewed_at, approved.admin_notes) == ("admin-1", now, "Per policy")
        cancelled = booking_service.get_booking(booking.id)
        assert cancelled.status == "CANCELLED"
        assert cancelled.cancelled_reason == "Family emergency"
        assert event_types(booking)[-2:] == ["CHANGE_REQUESTED", "CANCELLED"]

    def test_approve_reschedule(self, booking, now):
        req = file_reschedule(booking, now, new_start_time="14:00")

        request_service.approve_change_request(req.id, "admin-1", now=now)

        moved = booking_service.get_booking(booking.id)
        assert moved.status == "RESCHEDULED"
        assert (moved.booking_date, moved.start_time) == (SESSION_DATE + timedelta(days=7), "14:00")
        assert moved.rescheduled_from == SESSION_DATE

    def test_long_reason_is_shortened_on_the_booking(self, booking, now):
        req = file_cancellation(booking, now, reason="r" * 300)

        request_service.approve_change_request(req.id, "admin-1", now=now)

        assert len(booking_service.get_booking(booking.id).cancelled_reason) == 200
        assert len(request_service.get_change_request(req.id).reason) == 300

    def test_failed_transition_leaves_request_pending(self, booking, now):
        req = file_reschedule(booking, now)
        booking_service.cancel_booking(booking.id, "Client moved abroad", "staff-1", now=now)

        with pytest.raises(InvalidTransitionError):
            request_service.approve_change_request(req.id, "admin-1", now=now)

        assert request_service.get_change_request(req.id).status == "PENDING"
        rejected = request_service.reject_change_request(req.id, "Booking already cancelled", "admin-1", now=now)
        assert rejected.status == "REJECTED"

    def test_reject(self, booking, now):
        req = file_cancellation(booking, now)

        rejected = request_service.reject_change_request(
            req.id, "Inside the 48 hour window", "admin-1", admin_notes="Called the client", now=now
        )

        assert rejected.status == "REJECTED"
        assert rejected.rejection_reason == "Inside the 48 hour window"
        assert (rejected.reviewed_by, rejected.admin_notes) == ("admin-1", "Called the client")
        assert booking_service.get_booking(booking.id).status == "CONFIRMED"
        assert event_types(booking)[-1] == "REQUEST_REJECTED"

    def test_reject_needs_reason(self, booking, now):
        req = file_cancellation(booking, now)
        with pytest.raises(ValidationError) as exc:
            request_service.reject_change_request(req.id, "no", "admin-1", now=now)
        assert "rejection_reason" in exc.value.details

    def test_reviewed_request_is_final(self, booking, now):
        req = file_cancellation(booking, now)
        request_service.reject_change_request(req.id, "Inside the 48 hour window", "admin-1", now=now)

        with pytest.raises(RequestNotAllowedError):
            request_service.approve_change_request(req.id, "admin-1", now=now)
        with pytest.raises(RequestNotAllowedError):
            request_service.withdraw_change_request(req.id, "customer-1", now=now)
        assert booking_service.get_booking(booking.id).status == "CONFIRMED"

    def test_unknown_request(self, db_session, now):
        with pytest.raises(NotFoundError):
            request_service.approve_change_request(404, "admin-1", now=now)


class TestWithdrawAndList:
    def test_withdraw_then_file_again(self, booking, now):
        req = file_cancellation(booking, now)

        withdrawn = request_service.withdraw_change_request(req.id, "customer-1", owner_only=True, now=now)

        assert withdrawn.is_active is False
        assert withdrawn.deleted_by == "customer-1"
        with pytest.raises(NotFoundError):
            request_service.get_change_request(req.id)
        assert file_cancellation(booking, now).status == "PENDING"

    def test_only_the_filer_may_withdraw(self, booking, now):
        req = file_cancellation(booking, now)

        with pytest.raises(ForbiddenError):
            request_service.withdraw_change_request(req.id, "customer-2", owner_only=True, now=now)
        assert request_service.withdraw_change_request(req.id, "admin-1", now=now).is_active is False

    def test_list_filters(self, factory, booking, now):
        other = factory.confirmed_booking()
        file_cancellation(booking, now)
        moved = file_reschedule(other, now, actor_id="customer-2")

        assert len(request_service.list_change_requests()) == 2
        reschedules = request_service.list_change_requests({"status": "pending", "request_type": "RESCHEDULE"})
        assert [r.id for r in reschedules] == [moved.id]
        assert [r.id for r in request_service.list_change_requests(created_by="customer-2")] == [moved.id]
        assert request_service.list_change_requests({"booking_id": str(booking.id), "status": "APPROVED"}) == []

    def test_list_filters_are_validated(self, db_session):
        with pytest.raises(ValidationError) as exc:
            request_service.list_change_requests({"status": "OPEN", "booking_id": "abc"})
        assert set(exc.value.details) == {"status", "booking_id"}


class TestRefundRequests:
    def _request(self, txn, now, **extra):
        payload = {"transaction_id": txn.id, "reason": "Session was cut short"}
        payload.update(extra)
        return request_service.create_refund_request(payload, "customer-1", now=now)

    def test_defaults_to_the_full_payment(self, factory, booking, now):
        txn = factory.pay(booking, 40000)

        req = self._request(txn, now)

        assert REFUND_REQUEST_REFERENCE_RE.match(req.request_reference)
        assert (req.status, req.amount_cents) == ("PENDING", 40000)
        assert (req.booking_id, req.customer_id) == (booking.id, booking.customer_id)
        assert ledger_service.get_payment_status(booking.id).amount_paid_cents == 40000
        assert event_types(booking)[-1] == "REFUND_REQUESTED"

    def test_amount_cannot_exceed_payment(self, factory, booking, now):
        txn = factory.pay(booking, 40000)
        with pytest.raises(RefundNotAllowedError):
            self._request(txn, now, amount_cents=40001)

    def test_pending_payment_cannot_be_refunded(self, factory, booking, now):
        txn = factory.pay(booking, 40000, method="ELECTRONIC")
        with pytest.raises(RefundNotAllowedError) as exc:
            self._request(txn, now)
        assert exc.value.details == {"status": "PENDING"}

    def test_one_pending_request_per_transaction(self, factory, booking, now):
        txn = factory.pay(booking, 40000)
        self._request(txn, now, amount_cents=10000)
        with pytest.raises(RequestNotAllowedError):
            self._request(txn, now, amount_cents=5000)

    def test_unknown_transaction(self, db_session, now):
        with pytest.raises(NotFoundError):
            request_service.create_refund_request({"transaction_id": 999, "reason": "Changed my mind"}, "customer-1")

    def test_approve_cash_refund(self, factory, booking, now):
        txn = factory.pay(booking, 40000)
        req = self._request(txn, now, amount_cents=15000)

        approved = request_service.approve_refund_request(req.id, "admin-1", admin_notes="Goodwill", now=now)

        assert (approved.status, approved.reviewed_by, approved.admin_notes) == ("APPROVED", "admin-1", "Goodwill")
        refund = payment_service.get_transaction(approved.refund_transaction_id)
        assert (refund.transaction_type, refund.status, refund.amount_cents) == ("REFUND", "COMPLETED", 15000)
        assert refund.refund_reason == "Session was cut short"
        assert payment_service.get_transaction(txn.id).status == "REFUNDED"
        assert ledger_service.get_payment_status(booking.id).amount_paid_cents == 25000

    def test_electronic_refund_needs_reference_number(self, factory, booking, now):
        txn = factory.pay(booking, 40000, method="ELECTRONIC")
        payment_service.approve_transaction(txn.id, "staff-2", now=now)
        req = self._request(txn, now)

        with pytest.raises(ValidationError):
            request_service.approve_refund_request(req.id, "admin-1", now=now)
        assert request_service.get_refund_request(req.id).status == "PENDING"

        approved = request_service.approve_refund_request(req.id, "admin-1", reference_number="GC-REF-1", now=now)
        refund = payment_service.get_transaction(approved.refund_transaction_id)
        assert (refund.status, refund.reference_number) == ("PENDING", "GC-REF-1")

    def test_direct_refund_blocks_approval(self, factory, booking, now):
        txn = factory.pay(booking, 40000)
        req = self._request(txn, now)
        payment_service.refund_transaction(txn.id, {"reason": "Refunded at the desk"}, "staff-1", now=now)

        with pytest.raises(RefundNotAllowedError):
            request_service.approve_refund_request(req.id, "admin-1", now=now)
        assert request_service.get_refund_request(req.id).status == "PENDING"

    def test_reject(self, factory, booking, now):
        txn = factory.pay(booking, 40000)
        req = self._request(txn, now)

        rejected = request_service.reject_refund_request(req.id, "Outside refund policy", "admin-1", now=now)

        assert (rejected.status, rejected.rejection_reason) == ("REJECTED", "Outside refund policy")
        assert rejected.refund_transaction_id is None
        assert payment_service.get_transaction(txn.id).status == "COMPLETED"

    def test_list_and_withdraw(self, factory, booking, now):
        first = factory.pay(booking, 40000)
        second = factory.pay(booking, 20000)
        kept = self._request(first, now)
        dropped = self._request(second, now)

        request_service.withdraw_refund_request(dropped.id, "customer-1", owner_only=True, now=now)

        assert [r.id for r in request_service.list_refund_requests()] == [kept.id]
        assert request_service.list_refund_requests({"transaction_id": second.id}) == []
