# Overview: Request and permission decorators for API routes.

from functools import wraps
from flask import request, jsonify, g, current_app

from .permissions import VALID_ROLES, is_known_permission, role_has_permission, roles_with_permission


ACTOR_ID_HEADER = "X-Actor-Id"
ACTOR_ROLE_HEADER = "X-Actor-Role"


def _is_authenticated() -> bool:
    return hasattr(g, 'actor_id') and hasattr(g, 'actor_role')


def require_auth(f):
    """
    Require an established actor.

    Authentication itself happens upstream (gateway / auth service); it
    forwards who is calling in two headers:
    - X-Actor-Id: opaque actor identifier, recorded in audit stamps
    - X-Actor-Role: one of admin, staff, photographer, customer

    Sets g.actor_id and g.actor_role.

    SECURITY: Returns 401 if either header is missing or the role is unknown.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        actor_id = (request.headers.get(ACTOR_ID_HEADER) or "").strip()
        role = (request.headers.get(ACTOR_ROLE_HEADER) or "").strip().lower()

        if not actor_id or not role:
            return jsonify({"error": "Authentication required"}), 401

        if role not in VALID_ROLES:
            current_app.logger.warning("Rejected unknown actor role %r for %s", role, request.path)
            return jsonify({"error": "Invalid actor role"}), 401

        g.actor_id = actor_id[:64]
        g.actor_role = role

        return f(*args, **kwargs)

    return decorated_function


def require_permission(permission_code: str):
    """Require the actor's role to grant a specific permission."""
    if not is_known_permission(permission_code):
        raise ValueError(f"Unknown permission code: {permission_code}")

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            # Ensure @require_auth was called first
            if not _is_authenticated():
                return jsonify({"error": "Authentication required"}), 401

            if not role_has_permission(g.actor_role, permission_code):
                current_app.logger.warning(
                    "Permission denied: actor=%s role=%s permission=%s resource=%s %s",
                    g.actor_id, g.actor_role, permission_code, request.method, request.path,
                )
                return jsonify({
                    "error": "Permission denied",
                    "required_permission": permission_code,
                    "message": f"Requires one of roles: {', '.join(roles_with_permission(permission_code))}",
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator
