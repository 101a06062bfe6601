from flask import Blueprint, request, jsonify, current_app, g

from errors import ValidationError
from security.rbac import require_roles
from services.bookings import (
    CANCEL_HARD,
    CANCEL_SOFT,
    cancel_booking,
    complete_booking,
    confirm_with_credits,
    create_booking,
    get_owned_booking,
    list_bookings,
    reschedule_booking,
)
from services.refunds import refund_issuer_for
from utils.auth_context import login_required
from utils.clock import parse_instant
from utils.validators import require_int

booking_bp = Blueprint("booking", __name__, url_prefix="/bookings")


# ---------- USERS: my bookings ----------
@booking_bp.get("")
@login_required
def my_bookings():
    rows = list_bookings(g.user.id, status=request.args.get("status"))
    return jsonify(success=True, data=[b.to_dict() for b in rows]), 200


# ---------- USERS: book a slot (validated + conflict safe) ----------
@booking_bp.post("")
@login_required
def create():
    data = request.get_json(silent=True) or {}
    healer_id = data.get("healer_id")
    service_id = data.get("service_id")
    scheduled_at = data.get("scheduled_at")
    if not healer_id or not service_id or not scheduled_at:
        raise ValidationError("healer_id, service_id, and scheduled_at are required")

    booking = create_booking(
        g.user.id,
        require_int(healer_id, "healer_id"),
        require_int(service_id, "service_id"),
        parse_instant(scheduled_at),
    )
    return jsonify(success=True, data=booking.to_dict(), message="Booking created successfully"), 201


@booking_bp.get("/<int:booking_id>")
@login_required
def get_one(booking_id: int):
    booking = get_owned_booking(g.user.id, booking_id)
    return jsonify(success=True, data=booking.to_dict()), 200


# ---------- USERS: reschedule (24h rule on both ends) ----------
@booking_bp.put("/<int:booking_id>")
@login_required
def reschedule(booking_id: int):
    data = request.get_json(silent=True) or {}
    if not data.get("scheduled_at"):
        raise ValidationError("scheduled_at is required")

    booking = reschedule_booking(g.user.id, booking_id, parse_instant(data["scheduled_at"]))
    return jsonify(success=True, data=booking.to_dict(), message="Booking rescheduled successfully"), 200


# ---------- USERS: cancel with refund banding ----------
@booking_bp.patch("/<int:booking_id>")
@login_required
def patch_booking(booking_id: int):
    data = request.get_json(silent=True) or {}
    if data.get("action") != "cancel":
        raise ValidationError("Unsupported action")

    result = cancel_booking(
        g.user.id,
        booking_id,
        mode=CANCEL_SOFT,
        reason=data.get("reason"),
        refund_issuer=refund_issuer_for(current_app),
    )
    return jsonify(result.to_dict()), 200


# ---------- USERS: legacy cancel (blocked inside 24h, no refund) ----------
@booking_bp.delete("/<int:booking_id>")
@login_required
def delete_booking(booking_id: int):
    result = cancel_booking(g.user.id, booking_id, mode=CANCEL_HARD)
    resp = jsonify(result.to_dict())
    resp.headers["Deprecation"] = "true"
    return resp, 200


@booking_bp.post("/<int:booking_id>/confirm-with-credits")
@login_required
def confirm_credits(booking_id: int):
    confirm_with_credits(g.user.id, booking_id)
    return jsonify(ok=True), 200


# ---------- HEALER/ADMIN: session delivered ----------
@booking_bp.post("/<int:booking_id>/complete")
@require_roles("HEALER", "ADMIN")
def complete(booking_id: int):
    booking = complete_booking(g.user, booking_id)
    return jsonify(success=True, data=booking.to_dict()), 200
