# Overview: Permission system package.

from .categories import PermissionCategory
from .definitions import (
    PERMISSION_DEFINITIONS,
    BOOKING_PERMISSIONS,
    PAYMENT_PERMISSIONS,
    PROMOTION_PERMISSIONS,
    SCHEDULE_PERMISSIONS,
    REQUEST_PERMISSIONS,
)
from .roles import (
    DEFAULT_ROLE_PERMISSIONS,
    ROLE_ADMIN,
    ROLE_CUSTOMER,
    ROLE_PHOTOGRAPHER,
    ROLE_STAFF,
    VALID_ROLES,
)
from .helpers import (
    is_known_permission,
    permissions_for,
    role_has_permission,
    roles_with_permission,
)

__all__ = [
    "PermissionCategory",
    "PERMISSION_DEFINITIONS",
    "BOOKING_PERMISSIONS",
    "PAYMENT_PERMISSIONS",
    "PROMOTION_PERMISSIONS",
    "SCHEDULE_PERMISSIONS",
    "REQUEST_PERMISSIONS",
    "DEFAULT_ROLE_PERMISSIONS",
    "ROLE_ADMIN",
    "ROLE_CUSTOMER",
    "ROLE_PHOTOGRAPHER",
    "ROLE_STAFF",
    "VALID_ROLES",
    "is_known_permission",
    "permissions_for",
    "role_has_permission",
    "roles_with_permission",
]
