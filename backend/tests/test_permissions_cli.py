from datetime import date, timedelta

import pytest

from app.decorators import require_permission
from app.permissions import (
    PERMISSION_DEFINITIONS,
    VALID_ROLES,
    permissions_for,
    role_has_permission,
    roles_with_permission,
)


class TestRoleGrants:
    def test_admin_has_everything(self):
        assert all(role_has_permission("admin", p[0]) for p in PERMISSION_DEFINITIONS)

    def test_staff_cannot_delete_or_manage_promotions(self):
        assert not role_has_permission("staff", "DELETE_BOOKING")
        assert not role_has_permission("staff", "MANAGE_PROMOTIONS")
        assert role_has_permission("staff", "ISSUE_REFUND")

    def test_photographer_runs_sessions_only(self):
        assert role_has_permission("photographer", "START_BOOKING")
        assert not role_has_permission("photographer", "CONFIRM_BOOKING")
        assert not role_has_permission("photographer", "RECORD_PAYMENT")

    def test_customer_cannot_verify_or_refund(self):
        assert role_has_permission("customer", "RECORD_PAYMENT")
        assert not role_has_permission("customer", "VERIFY_PAYMENT")
        assert not role_has_permission("customer", "ISSUE_REFUND")

    def test_unknown_role_gets_nothing(self):
        assert "auditor" not in VALID_ROLES
        assert not role_has_permission("auditor", "VIEW_BOOKING")

    def test_roles_with_permission_is_sorted(self):
        assert roles_with_permission("VERIFY_PAYMENT") == ["admin", "staff"]

    def test_customers_file_requests_staff_review_them(self):
        assert role_has_permission("customer", "SUBMIT_REQUEST")
        assert not role_has_permission("customer", "REVIEW_REQUESTS")
        assert not role_has_permission("photographer", "SUBMIT_REQUEST")
        assert roles_with_permission("REVIEW_REQUESTS") == ["admin", "staff"]

    def test_filters(self):
        payments = permissions_for(category="payments")
        assert payments and all(p[3] == "PAYMENTS" for p in payments)
        assert {p[0] for p in permissions_for(role="photographer")} == {
            "VIEW_BOOKING", "START_BOOKING", "COMPLETE_BOOKING", "VIEW_PAYMENTS", "VIEW_AVAILABILITY",
        }
        assert permissions_for(role="auditor") is None

    def test_unknown_code_fails_at_decoration(self):
        with pytest.raises(ValueError):
            require_permission("FLY_DRONE")


class TestCli:
    def test_booking_status(self, app, factory):
        booking = factory.booking()
        factory.pay(booking, 40000)

        result = app.test_cli_runner().invoke(args=["bookings", "status", booking.booking_reference])

        assert result.exit_code == 0
        assert booking.booking_reference in result.output
        assert "partially_paid_no_refund" in result.output

    def test_booking_status_unknown_reference(self, app, db_session):
        result = app.test_cli_runner().invoke(args=["bookings", "status", "BK-NOTHERE"])
        assert result.exit_code == 1
        assert result.output.startswith("FAIL")

    def test_booking_events(self, app, factory):
        booking = factory.confirmed_booking()

        result = app.test_cli_runner().invoke(args=["bookings", "events", booking.booking_reference])

        assert "CREATED" in result.output
        assert "PENDING -> CONFIRMED" in result.output

    def test_photographer_slots(self, app, factory):
        photographer = factory.photographer()
        today = date.today()
        monday = today + timedelta(days=(7 - today.weekday()) % 7 + 14)

        result = app.test_cli_runner().invoke(
            args=["photographers", "slots", str(photographer.id), "--date", monday.isoformat()]
        )

        assert result.exit_code == 0
        assert "09:00 - 17:00" in result.output

    def test_perms_list_by_role(self, app):
        result = app.test_cli_runner().invoke(args=["perms", "list", "--role", "customer"])

        assert "CREATE_BOOKING" in result.output
        assert "VERIFY_PAYMENT" not in result.output

    def test_perms_list_unknown_role(self, app):
        result = app.test_cli_runner().invoke(args=["perms", "list", "--role", "auditor"])
        assert "FAIL Role 'auditor' not found" in result.output
