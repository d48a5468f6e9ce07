from dataclasses import dataclass, field
from functools import wraps
from flask import g, jsonify, request, current_app

USER_ID_HEADER = "X-User-Id"
ROLES_HEADER = "X-User-Roles"


@dataclass
class Identity:
    """Caller identity asserted by the upstream gateway (authentication happens there)."""
    id: int
    roles: set = field(default_factory=set)

    def has_role(self, *names) -> bool:
        return bool(self.roles.intersection(names))


def load_current_user():
    g.user = None
    if not current_app.config.get("TRUST_IDENTITY_HEADERS", True):
        return

    raw_id = (request.headers.get(USER_ID_HEADER) or "").strip()
    if not raw_id.isdigit():
        return

    roles = {
        r.strip().upper()
        for r in (request.headers.get(ROLES_HEADER) or "PLAYER").split(",")
        if r.strip()
    }
    g.user = Identity(id=int(raw_id), roles=roles)

def login_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if getattr(g, "user", None) is None:
            return jsonify(error="Authentication required"), 401
        return fn(*args, **kwargs)
    return wrapper
