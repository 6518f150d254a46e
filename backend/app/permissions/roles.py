# Overview: Default role to permission mappings.

from .definitions import PERMISSION_DEFINITIONS


ROLE_ADMIN = "admin"
ROLE_STAFF = "staff"
ROLE_PHOTOGRAPHER = "photographer"
ROLE_CUSTOMER = "customer"

VALID_ROLES = {ROLE_ADMIN, ROLE_STAFF, ROLE_PHOTOGRAPHER, ROLE_CUSTOMER}


DEFAULT_ROLE_PERMISSIONS = {
    # Admin gets ALL permissions
    ROLE_ADMIN: [perm[0] for perm in PERMISSION_DEFINITIONS],
    ROLE_STAFF: [
        "CREATE_BOOKING",
        "VIEW_BOOKING",
        "CONFIRM_BOOKING",
        "START_BOOKING",
        "COMPLETE_BOOKING",
        "CANCEL_BOOKING",
        "RESCHEDULE_BOOKING",
        "RECORD_PAYMENT",
        "VIEW_PAYMENTS",
        "VERIFY_PAYMENT",
        "CANCEL_PAYMENT",
        "ISSUE_REFUND",
        "EVALUATE_PROMO",
        "VIEW_AVAILABILITY",
        "SUBMIT_REQUEST",
        "VIEW_REQUESTS",
        "REVIEW_REQUESTS",
    ],
    ROLE_PHOTOGRAPHER: [
        "VIEW_BOOKING",
        "START_BOOKING",
        "COMPLETE_BOOKING",
        "VIEW_PAYMENTS",
        "VIEW_AVAILABILITY",
    ],
    # Customers book, pay and cancel; staff verify and refund
    ROLE_CUSTOMER: [
        "CREATE_BOOKING",
        "VIEW_BOOKING",
        "CANCEL_BOOKING",
        "RESCHEDULE_BOOKING",
        "RECORD_PAYMENT",
        "VIEW_PAYMENTS",
        "CANCEL_PAYMENT",
        "EVALUATE_PROMO",
        "VIEW_AVAILABILITY",
        "SUBMIT_REQUEST",
        "VIEW_REQUESTS",
    ],
}
