# Overview: Lookups over the permission definitions and role grants.

from .definitions import PERMISSION_DEFINITIONS
from .roles import DEFAULT_ROLE_PERMISSIONS


_BY_CODE = {perm[0]: perm for perm in PERMISSION_DEFINITIONS}


def is_known_permission(code):
    return code in _BY_CODE


def role_has_permission(role, code):
    """Roles outside VALID_ROLES are granted nothing."""
    return code in DEFAULT_ROLE_PERMISSIONS.get(role, ())


def roles_with_permission(code):
    """Sorted role names granted a permission; used in 403 messages."""
    return sorted(role for role, codes in DEFAULT_ROLE_PERMISSIONS.items() if code in codes)


def permissions_for(role=None, category=None):
    """
    Permission definitions, optionally narrowed to one role's grants and/or
    one category. Returns None for an unknown role.
    """
    perms = list(PERMISSION_DEFINITIONS)
    if role is not None:
        if role not in DEFAULT_ROLE_PERMISSIONS:
            return None
        granted = set(DEFAULT_ROLE_PERMISSIONS[role])
        perms = [p for p in perms if p[0] in granted]
    if category is not None:
        perms = [p for p in perms if p[3] == category.upper()]
    return perms
