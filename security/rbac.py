from functools import wraps

from flask import g, jsonify

SUPERUSER_ROLE = "ADMIN"


def require_roles(*role_names: str):
    """
    Usage: @require_roles("HEALER", "ADMIN")

    ADMIN passes every role check.
    """
    allowed = set(role_names) | {SUPERUSER_ROLE}

    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            user = getattr(g, "user", None)
            if user is None:
                return jsonify(error="Unauthorized", code="UNAUTHORIZED"), 401
            if not any(user.has_role(name) for name in allowed):
                return jsonify(error="Forbidden", code="FORBIDDEN"), 403
            return fn(*args, **kwargs)
        return wrapper
    return decorator
