from functools import wraps
from flask import g, jsonify

OPERATOR_ROLES = ("ADMIN", "STAFF")

def has_role(*role_names: str) -> bool:
    user = getattr(g, "user", None)
    if not user:
        return False
    return user.has_role(*role_names)

def is_operator() -> bool:
    return has_role(*OPERATOR_ROLES)

def require_roles(*role_names: str):
    """
    Usage: @require_roles("ADMIN", "STAFF")
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            user = getattr(g, "user", None)
            if user is None:
                return jsonify(error="Authentication required"), 401

            if "ADMIN" not in user.roles and not user.roles.intersection(set(role_names)):
                return jsonify(error="Forbidden"), 403

            return fn(*args, **kwargs)
        return wrapper
    return decorator
