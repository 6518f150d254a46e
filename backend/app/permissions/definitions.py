# Overview: All permission definitions organized by category.
# Each permission is defined as: (code, name, description, category)

from .categories import PermissionCategory


# -- BOOKINGS --

BOOKING_PERMISSIONS = [
    (
        "CREATE_BOOKING",
        "Create Booking",
        "Submit a booking request (PENDING)",
        PermissionCategory.BOOKINGS,
    ),
    (
        "VIEW_BOOKING",
        "View Booking",
        "View booking details, payment status and event history",
        PermissionCategory.BOOKINGS,
    ),
    (
        "CONFIRM_BOOKING",
        "Confirm Booking",
        "Move a pending booking to CONFIRMED",
        PermissionCategory.BOOKINGS,
    ),
    (
        "START_BOOKING",
        "Start Session",
        "Mark a session ONGOING on its booking date",
        PermissionCategory.BOOKINGS,
    ),
    (
        "COMPLETE_BOOKING",
        "Complete Session",
        "Mark a fully paid session COMPLETED",
        PermissionCategory.BOOKINGS,
    ),
    (
        "CANCEL_BOOKING",
        "Cancel Booking",
        "Cancel a booking with a reason",
        PermissionCategory.BOOKINGS,
    ),
    (
        "RESCHEDULE_BOOKING",
        "Reschedule Booking",
        "Move a booking to another date or start time",
        PermissionCategory.BOOKINGS,
    ),
    (
        "DELETE_BOOKING",
        "Delete Booking",
        "Soft delete and restore bookings",
        PermissionCategory.BOOKINGS,
    ),
]


# -- PAYMENTS --

PAYMENT_PERMISSIONS = [
    (
        "RECORD_PAYMENT",
        "Record Payment",
        "Record a cash or electronic payment against a booking",
        PermissionCategory.PAYMENTS,
    ),
    (
        "VIEW_PAYMENTS",
        "View Payments",
        "View transactions and payment summaries",
        PermissionCategory.PAYMENTS,
    ),
    (
        "VERIFY_PAYMENT",
        "Verify Payment",
        "Approve or reject pending electronic transactions",
        PermissionCategory.PAYMENTS,
    ),
    (
        "CANCEL_PAYMENT",
        "Cancel Payment",
        "Withdraw a pending transaction",
        PermissionCategory.PAYMENTS,
    ),
    (
        "ISSUE_REFUND",
        "Issue Refund",
        "Refund a completed payment",
        PermissionCategory.PAYMENTS,
    ),
]


# -- PROMOTIONS --

PROMOTION_PERMISSIONS = [
    (
        "EVALUATE_PROMO",
        "Evaluate Promo",
        "Check whether a promo code applies to a booking amount",
        PermissionCategory.PROMOTIONS,
    ),
    (
        "MANAGE_PROMOTIONS",
        "Manage Promotions",
        "Create and list promotions",
        PermissionCategory.PROMOTIONS,
    ),
]


# -- SCHEDULES --

SCHEDULE_PERMISSIONS = [
    (
        "VIEW_AVAILABILITY",
        "View Availability",
        "View photographer free slots and check a candidate slot",
        PermissionCategory.SCHEDULES,
    ),
]


# -- REQUESTS --

REQUEST_PERMISSIONS = [
    (
        "SUBMIT_REQUEST",
        "Submit Request",
        "File or withdraw a cancellation, reschedule or refund request",
        PermissionCategory.REQUESTS,
    ),
    (
        "VIEW_REQUESTS",
        "View Requests",
        "View request details and your own requests",
        PermissionCategory.REQUESTS,
    ),
    (
        "REVIEW_REQUESTS",
        "Review Requests",
        "List all requests, approve or reject them",
        PermissionCategory.REQUESTS,
    ),
]


PERMISSION_DEFINITIONS = (
    BOOKING_PERMISSIONS
    + PAYMENT_PERMISSIONS
    + PROMOTION_PERMISSIONS
    + SCHEDULE_PERMISSIONS
    + REQUEST_PERMISSIONS
)
