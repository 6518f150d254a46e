"""
HTTP layer: actor headers, permissions, status codes and error bodies.

Routes run on the real clock, so bookings are placed on a Monday a few
weeks ahead of today.
"""

from datetime import date, timedelta

import pytest


def upcoming_monday(weeks_ahead: int = 3) -> date:
    today = date.today()
    return today + timedelta(days=(7 - today.weekday()) % 7 + 7 * weeks_ahead)


@pytest.fixture
def booking_body(factory):
    photographer = factory.photographer()
    service = factory.service(price_cents=100000)
    customer = factory.customer()
    return {
        "customer_id": customer.id,
        "photographer_id": photographer.id,
        "services": [{"service_id": service.id, "quantity": 1}],
        "booking_date": upcoming_monday().isoformat(),
        "start_time": "10:00",
        "location": "Studio A, 12 Main St",
    }


@pytest.fixture
def created(client, booking_body, staff_headers):
    response = client.post("/api/bookings", json=booking_body, headers=staff_headers)
    assert response.status_code == 201
    return response.get_json()["booking"]


class TestAuthentication:
    def test_health_is_public(self, client, db_session):
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.get_json()["checks"]["database"]["status"] == "healthy"

    def test_missing_actor_headers(self, client, db_session):
        response = client.get("/api/bookings/1")
        assert response.status_code == 401
        assert response.get_json() == {"error": "Authentication required"}

    def test_unknown_role(self, client, db_session):
        response = client.get("/api/bookings/1", headers={"X-Actor-Id": "x", "X-Actor-Role": "superuser"})
        assert response.status_code == 401
        assert response.get_json()["error"] == "Invalid actor role"

    def test_role_without_permission(self, client, created, customer_headers):
        response = client.patch(f"/api/bookings/{created['id']}/confirm", headers=customer_headers)

        assert response.status_code == 403
        body = response.get_json()
        assert body["required_permission"] == "CONFIRM_BOOKING"
        assert "staff" in body["message"]

    def test_only_admin_deletes_bookings(self, client, created, staff_headers, admin_headers):
        assert client.delete(f"/api/bookings/{created['id']}", headers=staff_headers).status_code == 403

        response = client.delete(f"/api/bookings/{created['id']}", headers=admin_headers)
        assert response.status_code == 200
        assert response.get_json()["booking"]["audit"]["deleted_by"] == "admin-1"

        restored = client.post(f"/api/bookings/{created['id']}/restore", headers=admin_headers)
        assert restored.status_code == 200
        assert restored.get_json()["booking"]["audit"]["is_active"] is True


class TestBookingRoutes:
    def test_create(self, client, booking_body, customer_headers):
        response = client.post("/api/bookings", json=booking_body, headers=customer_headers)

        assert response.status_code == 201
        body = response.get_json()
        assert body["booking"]["status"] == "PENDING"
        assert body["booking"]["end_time"] == "11:00"
        assert body["booking"]["audit"]["created_by"] == "customer-1"
        assert body["payment"]["remaining_balance_cents"] == 100000
        assert body["payment"]["payment_scenario"] == "no_payment"
        assert "transactions" not in body["payment"]

    def test_validation_errors_carry_field_details(self, client, booking_body, staff_headers):
        booking_body.update(start_time="9am", location="")

        response = client.post("/api/bookings", json=booking_body, headers=staff_headers)

        assert response.status_code == 400
        body = response.get_json()
        assert body["code"] == "VALIDATION_FAILED"
        assert body["category"] == "validation"
        assert set(body["details"]) == {"start_time", "location"}

    def test_taken_slot(self, client, created, booking_body, staff_headers):
        response = client.post("/api/bookings", json=booking_body, headers=staff_headers)

        assert response.status_code == 400
        assert response.get_json()["code"] == "SLOT_UNAVAILABLE"

    def test_get_and_lookup_by_reference(self, client, created, staff_headers):
        by_id = client.get(f"/api/bookings/{created['id']}", headers=staff_headers)
        by_ref = client.get(f"/api/bookings/reference/{created['booking_reference']}", headers=staff_headers)

        assert by_id.status_code == 200
        assert by_ref.get_json()["booking"]["id"] == created["id"]

    def test_not_found(self, client, db_session, staff_headers):
        response = client.get("/api/bookings/99999", headers=staff_headers)
        assert response.status_code == 404
        assert response.get_json()["code"] == "NOT_FOUND"

    def test_customer_bookings(self, client, created, staff_headers):
        response = client.get(f"/api/bookings/customer/{created['customer_id']}", headers=staff_headers)

        bookings = response.get_json()["bookings"]
        assert [b["id"] for b in bookings] == [created["id"]]
        assert "services" not in bookings[0]

    def test_confirm_twice(self, client, created, staff_headers):
        first = client.patch(f"/api/bookings/{created['id']}/confirm", headers=staff_headers)
        second = client.patch(f"/api/bookings/{created['id']}/confirm", headers=staff_headers)

        assert first.status_code == 200
        assert first.get_json()["booking"]["status"] == "CONFIRMED"
        assert second.status_code == 400
        assert second.get_json()["code"] == "INVALID_TRANSITION"

    def test_complete_without_payment(self, client, created, staff_headers):
        client.patch(f"/api/bookings/{created['id']}/confirm", headers=staff_headers)

        response = client.patch(f"/api/bookings/{created['id']}/complete", headers=staff_headers)

        assert response.status_code == 400
        assert response.get_json()["code"] == "PAYMENT_INCOMPLETE"

    def test_cancel(self, client, created, customer_headers):
        response = client.patch(
            f"/api/bookings/{created['id']}/cancel", json={"reason": "Client moved abroad"}, headers=customer_headers
        )

        assert response.status_code == 200
        assert response.get_json()["booking"]["cancelled_reason"] == "Client moved abroad"

    def test_cancel_needs_reason(self, client, created, customer_headers):
        response = client.patch(f"/api/bookings/{created['id']}/cancel", json={}, headers=customer_headers)
        assert response.status_code == 400
        assert response.get_json()["details"] == {"reason": "must be at least 5 characters"}

    @pytest.mark.parametrize("action", ["cancel", "reschedule"])
    def test_body_must_be_an_object(self, client, created, staff_headers, action):
        response = client.patch(f"/api/bookings/{created['id']}/{action}", json=["x"], headers=staff_headers)

        assert response.status_code == 400
        assert response.get_json() == {"error": "Invalid JSON payload"}
        booking = client.get(f"/api/bookings/{created['id']}", headers=staff_headers).get_json()["booking"]
        assert booking["status"] == "PENDING"

    def test_reschedule(self, client, created, staff_headers):
        new_date = upcoming_monday(4).isoformat()

        response = client.patch(
            f"/api/bookings/{created['id']}/reschedule",
            json={"new_date": new_date, "start_time": "14:00"},
            headers=staff_headers,
        )

        booking = response.get_json()["booking"]
        assert response.status_code == 200
        assert (booking["status"], booking["booking_date"], booking["start_time"]) == ("RESCHEDULED", new_date, "14:00")
        assert booking["rescheduled_from"] == created["booking_date"]

    def test_reschedule_body_is_validated(self, client, created, staff_headers):
        response = client.patch(f"/api/bookings/{created['id']}/reschedule", json={}, headers=staff_headers)
        assert response.status_code == 400
        assert "new_date" in response.get_json()["details"]

    def test_events(self, client, created, staff_headers):
        client.patch(f"/api/bookings/{created['id']}/confirm", headers=staff_headers)

        response = client.get(f"/api/bookings/{created['id']}/events", headers=staff_headers)

        events = response.get_json()["events"]
        assert [e["event_type"] for e in events] == ["CREATED", "CONFIRMED"]
        assert events[1]["actor_id"] == "staff-1"


class TestTransactionRoutes:
    def _pay(self, client, booking_id, headers, **extra):
        body = {"booking_id": booking_id, "amount_cents": 40000, "payment_method": "CASH"}
        body.update(extra)
        return client.post("/api/transactions", json=body, headers=headers)

    def test_record_cash_payment(self, client, created, customer_headers):
        response = self._pay(client, created["id"], customer_headers)

        assert response.status_code == 201
        body = response.get_json()
        assert body["transaction"]["status"] == "COMPLETED"
        assert body["transaction"]["transaction_type"] == "PARTIAL"
        assert body["summary"]["amount_paid_cents"] == 40000
        assert body["summary"]["remaining_balance_cents"] == 60000

    def test_payment_over_remaining_balance(self, client, created, customer_headers):
        response = self._pay(client, created["id"], customer_headers, amount_cents=100001)

        assert response.status_code == 400
        body = response.get_json()
        assert body["code"] == "PAYMENT_LIMIT_EXCEEDED"
        assert body["details"]["remaining_balance_cents"] == 100000

    def test_payment_status(self, client, created, staff_headers):
        self._pay(client, created["id"], staff_headers)

        response = client.get(f"/api/bookings/{created['id']}/payment-status", headers=staff_headers)

        body = response.get_json()
        assert body["booking_id"] == created["id"]
        assert body["payment_scenario"] == "partially_paid_no_refund"
        assert len(body["transactions"]) == 1

    def test_customer_cannot_verify(self, client, created, customer_headers, staff_headers):
        txn = self._pay(client, created["id"], customer_headers, payment_method="ELECTRONIC",
                        reference_number="GC-1").get_json()["transaction"]

        denied = client.patch(f"/api/transactions/{txn['id']}/approve", headers=customer_headers)
        approved = client.patch(f"/api/transactions/{txn['id']}/approve", headers=staff_headers)

        assert denied.status_code == 403
        assert approved.status_code == 200
        assert approved.get_json()["transaction"]["verified_by"] == "staff-1"

    def test_reject(self, client, created, customer_headers, staff_headers):
        txn = self._pay(client, created["id"], customer_headers, payment_method="ELECTRONIC",
                        reference_number="GC-1").get_json()["transaction"]

        response = client.patch(
            f"/api/transactions/{txn['id']}/reject", json={"reason": "Reference not found"}, headers=staff_headers
        )

        assert response.status_code == 200
        assert response.get_json()["transaction"]["status"] == "FAILED"

    def test_reject_body_must_be_an_object(self, client, created, customer_headers, staff_headers):
        txn = self._pay(client, created["id"], customer_headers, payment_method="ELECTRONIC",
                        reference_number="GC-1").get_json()["transaction"]

        response = client.patch(f"/api/transactions/{txn['id']}/reject", json=["x"], headers=staff_headers)

        assert response.status_code == 400
        assert response.get_json() == {"error": "Invalid JSON payload"}

    def test_refund(self, client, created, staff_headers):
        txn = self._pay(client, created["id"], staff_headers).get_json()["transaction"]

        response = client.post(
            f"/api/transactions/{txn['id']}/refund", json={"reason": "Session shortened"}, headers=staff_headers
        )

        assert response.status_code == 201
        body = response.get_json()
        assert body["transaction"]["transaction_type"] == "REFUND"
        assert body["summary"]["amount_paid_cents"] == 0
        assert body["summary"]["payment_scenario"] == "partially_paid_with_refund"

    def test_refund_not_allowed(self, client, created, staff_headers):
        txn = self._pay(client, created["id"], staff_headers).get_json()["transaction"]
        client.post(f"/api/transactions/{txn['id']}/refund", json={"reason": "Session shortened"}, headers=staff_headers)

        again = client.post(
            f"/api/transactions/{txn['id']}/refund", json={"reason": "Session shortened"}, headers=staff_headers
        )
        assert again.status_code == 400
        assert again.get_json()["code"] == "REFUND_NOT_ALLOWED"

    def test_summary_and_delete(self, client, created, staff_headers):
        txn = self._pay(client, created["id"], staff_headers, payment_method="ELECTRONIC",
                        reference_number="GC-7").get_json()["transaction"]

        deleted = client.delete(f"/api/transactions/{txn['id']}", headers=staff_headers)
        summary = client.get(f"/api/transactions/bookings/{created['id']}/summary", headers=staff_headers)

        assert deleted.status_code == 200
        assert summary.get_json()["transaction_count"] == 0
        assert client.get(f"/api/transactions/{txn['id']}", headers=staff_headers).status_code == 404


class TestPromotionRoutes:
    def test_admin_creates_and_lists(self, client, db_session, admin_headers, staff_headers):
        body = {
            "promo_code": "EARLY10",
            "name": "Early bird",
            "promo_type": "EARLY_BIRD",
            "discount_type": "PERCENTAGE",
            "discount_value": 10,
        }

        assert client.post("/api/promotions", json=body, headers=staff_headers).status_code == 403
        created = client.post("/api/promotions", json=body, headers=admin_headers)
        listed = client.get("/api/promotions", headers=admin_headers)

        assert created.status_code == 201
        assert created.get_json()["promotion"]["audit"]["created_by"] == "admin-1"
        assert [p["promo_code"] for p in listed.get_json()["promotions"]] == ["EARLY10"]

    def test_evaluate(self, client, factory, customer_headers):
        factory.promo("TWENTY", discount_value=20)

        response = client.post(
            "/api/promotions/evaluate",
            json={"promo_code": "twenty", "total_amount_cents": 100000, "booking_date": upcoming_monday().isoformat()},
            headers=customer_headers,
        )

        body = response.get_json()
        assert response.status_code == 200
        assert body["promo_code"] == "TWENTY"
        assert (body["applicable"], body["discount_amount_cents"], body["reason"]) == (True, 20000, None)

    def test_evaluate_unknown_code(self, client, db_session, customer_headers):
        response = client.post(
            "/api/promotions/evaluate",
            json={"promo_code": "NOPE", "total_amount_cents": 100000, "booking_date": upcoming_monday().isoformat()},
            headers=customer_headers,
        )
        assert response.status_code == 404


class TestPhotographerRoutes:
    def test_slots(self, client, created, photographer_headers):
        response = client.get(
            f"/api/photographers/{created['photographer_id']}/slots",
            query_string={"date": created["booking_date"], "duration": 60},
            headers=photographer_headers,
        )

        assert response.status_code == 200
        assert response.get_json()["slots"] == [
            {"start": "09:00", "end": "10:00"},
            {"start": "11:00", "end": "17:00"},
        ]

    def test_stepped_slots(self, client, created, photographer_headers):
        response = client.get(
            f"/api/photographers/{created['photographer_id']}/slots",
            query_string={"date": created["booking_date"], "stepped": "true"},
            headers=photographer_headers,
        )

        starts = [s["start"] for s in response.get_json()["slots"]]
        assert starts[:3] == ["09:00", "11:00", "11:30"]

    def test_slot_check(self, client, created, customer_headers):
        response = client.get(
            f"/api/photographers/{created['photographer_id']}/slots/check",
            query_string={"date": created["booking_date"], "start": "09:30", "end": "10:30"},
            headers=customer_headers,
        )

        body = response.get_json()
        assert response.status_code == 200
        assert body["available"] is False
        assert "10:00 to 11:00" in body["reason"]

    def test_slot_query_is_validated(self, client, created, customer_headers):
        response = client.get(
            f"/api/photographers/{created['photographer_id']}/slots",
            query_string={"date": "tomorrow"},
            headers=customer_headers,
        )
        assert response.status_code == 400
        assert "date" in response.get_json()["details"]

    @pytest.mark.parametrize("duration", [0, 10])
    def test_duration_out_of_range(self, client, created, customer_headers, duration):
        response = client.get(
            f"/api/photographers/{created['photographer_id']}/slots",
            query_string={"date": created["booking_date"], "duration": duration},
            headers=customer_headers,
        )
        assert response.status_code == 400
        assert "duration_minutes" in response.get_json()["details"]


class TestRequestRoutes:
    def _file_cancellation(self, client, booking_id, headers):
        body = {"booking_id": booking_id, "request_type": "CANCELLATION", "reason": "Family emergency"}
        return client.post("/api/booking-requests", json=body, headers=headers)

    def test_customer_files_and_admin_approves(self, client, created, customer_headers, admin_headers):
        filed = self._file_cancellation(client, created["id"], customer_headers)
        req = filed.get_json()["request"]

        denied = client.patch(f"/api/booking-requests/{req['id']}/approve", headers=customer_headers)
        approved = client.patch(
            f"/api/booking-requests/{req['id']}/approve", json={"admin_notes": "Per policy"}, headers=admin_headers
        )

        assert filed.status_code == 201
        assert req["request_reference"].startswith("REQ-")
        assert denied.status_code == 403
        assert approved.status_code == 200
        assert approved.get_json()["request"]["reviewed_by"] == "admin-1"
        booking = client.get(f"/api/bookings/{created['id']}", headers=admin_headers).get_json()["booking"]
        assert booking["status"] == "CANCELLED"

    def test_reschedule_request_is_validated(self, client, created, customer_headers):
        response = client.post(
            "/api/booking-requests",
            json={"booking_id": created["id"], "request_type": "RESCHEDULE", "reason": "Venue double-booked"},
            headers=customer_headers,
        )
        assert response.status_code == 400
        assert response.get_json()["details"] == {"new_booking_date": "is required"}

    def test_duplicate_request(self, client, created, customer_headers):
        self._file_cancellation(client, created["id"], customer_headers)
        again = self._file_cancellation(client, created["id"], customer_headers)

        assert again.status_code == 400
        assert again.get_json()["code"] == "REQUEST_NOT_ALLOWED"

    def test_customers_only_see_their_own(self, client, created, customer_headers, staff_headers):
        req = self._file_cancellation(client, created["id"], customer_headers).get_json()["request"]
        other = {"X-Actor-Id": "customer-2", "X-Actor-Role": "customer"}

        assert client.get("/api/booking-requests", headers=customer_headers).get_json()["count"] == 1
        assert client.get("/api/booking-requests", headers=other).get_json()["count"] == 0
        assert client.get("/api/booking-requests", headers=staff_headers).get_json()["count"] == 1
        assert client.get(f"/api/booking-requests/{req['id']}", headers=other).status_code == 403
        assert client.delete(f"/api/booking-requests/{req['id']}", headers=other).get_json()["code"] == "FORBIDDEN"

        withdrawn = client.delete(f"/api/booking-requests/{req['id']}", headers=customer_headers)
        assert withdrawn.status_code == 200
        assert client.get(f"/api/booking-requests/{req['id']}", headers=customer_headers).status_code == 404

    def test_reject(self, client, created, customer_headers, staff_headers):
        req = self._file_cancellation(client, created["id"], customer_headers).get_json()["request"]

        response = client.patch(
            f"/api/booking-requests/{req['id']}/reject",
            json={"rejection_reason": "Inside the 48 hour window"},
            headers=staff_headers,
        )

        assert response.status_code == 200
        assert response.get_json()["request"]["status"] == "REJECTED"

    @pytest.mark.parametrize("action", ["approve", "reject"])
    def test_review_body_must_be_an_object(self, client, created, customer_headers, admin_headers, action):
        req = self._file_cancellation(client, created["id"], customer_headers).get_json()["request"]

        response = client.patch(f"/api/booking-requests/{req['id']}/{action}", json=["x"], headers=admin_headers)

        assert response.status_code == 400
        assert response.get_json()["error"] == "Invalid JSON payload"

    def test_refund_request_flow(self, client, created, customer_headers, admin_headers):
        txn = client.post(
            "/api/transactions",
            json={"booking_id": created["id"], "amount_cents": 40000, "payment_method": "CASH"},
            headers=customer_headers,
        ).get_json()["transaction"]

        filed = client.post(
            "/api/refund-requests",
            json={"transaction_id": txn["id"], "amount_cents": 10000, "reason": "Session was cut short"},
            headers=customer_headers,
        )
        req = filed.get_json()["request"]
        approved = client.patch(f"/api/refund-requests/{req['id']}/approve", headers=admin_headers)

        assert filed.status_code == 201
        assert req["request_reference"].startswith("TRQ-")
        assert approved.status_code == 200
        refund_id = approved.get_json()["request"]["refund_transaction_id"]
        refund = client.get(f"/api/transactions/{refund_id}", headers=admin_headers).get_json()["transaction"]
        assert (refund["transaction_type"], refund["amount_cents"]) == ("REFUND", 10000)

    def test_refund_request_for_unknown_transaction(self, client, db_session, customer_headers):
        response = client.post(
            "/api/refund-requests", json={"transaction_id": 999, "reason": "Changed my mind"}, headers=customer_headers
        )
        assert response.status_code == 404
