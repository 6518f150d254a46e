# Overview: Permission category constants for grouping related permissions.


class PermissionCategory:
    """Permission categories for organization and UI display."""
    BOOKINGS = "BOOKINGS"
    PAYMENTS = "PAYMENTS"
    PROMOTIONS = "PROMOTIONS"
    SCHEDULES = "SCHEDULES"
    REQUESTS = "REQUESTS"
