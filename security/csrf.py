"""
Double-submit CSRF check for cookie-authenticated requests.

Login sets a readable ``csrf_token`` cookie; every state-changing request
from a signed-in user must echo it in ``X-CSRF-Token``.
"""
import hmac
import secrets

from flask import g, jsonify, request, current_app

CSRF_COOKIE = "csrf_token"
CSRF_HEADER = "X-CSRF-Token"
UNSAFE_METHODS = ("POST", "PUT", "PATCH", "DELETE")


def issue_csrf_token(resp):
    resp.set_cookie(
        CSRF_COOKIE,
        secrets.token_urlsafe(32),
        httponly=False,  # read by client JS
        secure=current_app.config.get("SESSION_COOKIE_SECURE", False),
        samesite=current_app.config.get("SESSION_COOKIE_SAMESITE", "Lax"),
        path="/",
    )
    return resp


def require_csrf():
    cookie_token = request.cookies.get(CSRF_COOKIE) or ""
    header_token = request.headers.get(CSRF_HEADER) or ""
    if not cookie_token or not hmac.compare_digest(cookie_token.encode("utf-8"), header_token.encode("utf-8")):
        return jsonify(error="CSRF validation failed", code="CSRF_FAILED"), 403
    return None


def init_csrf(app, exempt_paths=()):
    exempt = frozenset(exempt_paths)

    @app.before_request
    def _csrf_protect():
        if request.method not in UNSAFE_METHODS or request.path in exempt:
            return None
        # anonymous requests carry no session cookie to ride on
        if getattr(g, "user", None) is None:
            return None
        return require_csrf()
