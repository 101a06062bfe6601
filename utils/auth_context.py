from functools import wraps

from flask import g, jsonify

from models import db
from models.user import User
from security.session import get_session_from_request


def load_current_user():
    """Resolve the session cookie into ``g.user`` / ``g.session`` (both None when signed out)."""
    g.session = get_session_from_request()
    g.user = db.session.get(User, g.session.user_id) if g.session else None


def login_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if getattr(g, "user", None) is None:
            return jsonify(error="Unauthorized", code="UNAUTHORIZED"), 401
        return fn(*args, **kwargs)
    return wrapper
