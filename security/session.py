import hashlib
import secrets
from datetime import timedelta

from flask import request, current_app

from models import db
from models.session import Session
from utils.clock import utcnow


def _hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def cookie_name() -> str:
    return current_app.config.get("AUTH_COOKIE_NAME", "wellness_session")


def create_session(user_id: int) -> str:
    """Persist a new session and return the raw token for the cookie."""
    raw_token = secrets.token_urlsafe(32)
    lifetime = current_app.config.get("SESSION_LIFETIME_SECONDS", 8 * 60 * 60)

    db.session.add(Session(
        user_id=user_id,
        token_hash=_hash_token(raw_token),
        expires_at=utcnow() + timedelta(seconds=lifetime),
        ip=(request.headers.get("X-Forwarded-For") or request.remote_addr or "")[:64] or None,
        user_agent=(request.headers.get("User-Agent") or "")[:255],
    ))
    db.session.commit()
    return raw_token


def get_session_from_request():
    raw_token = request.cookies.get(cookie_name())
    if not raw_token:
        return None

    sess = Session.query.filter_by(token_hash=_hash_token(raw_token)).first()
    now = utcnow()
    if sess is None or not sess.is_live(now, current_app.config.get("IDLE_TIMEOUT_SECONDS", 20 * 60)):
        return None

    sess.last_seen_at = now
    db.session.commit()
    return sess


def revoke_session(raw_token: str) -> bool:
    if not raw_token:
        return False
    updated = Session.query.filter_by(token_hash=_hash_token(raw_token)).update({"revoked": True})
    db.session.commit()
    return updated > 0


def revoke_all_sessions(user_id: int) -> int:
    # rotated on every login so a stolen cookie dies with the next sign-in
    updated = Session.query.filter_by(user_id=user_id, revoked=False).update({"revoked": True})
    db.session.commit()
    return updated
