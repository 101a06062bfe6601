from flask import Blueprint, request, jsonify, g

from errors import ValidationError
from services.availability import (
    get_healer_availability,
    update_healer_availability,
    validate_booking_slot,
)
from utils.audit import log_event
from utils.auth_context import login_required
from utils.clock import parse_instant
from utils.validators import require_int

availability_bp = Blueprint("availability", __name__)


@availability_bp.get("/availability")
def availability():
    healer_id = request.args.get("healer_id", type=int)
    date_str = request.args.get("date")
    if not healer_id or not date_str:
        raise ValidationError("healer_id and date are required")

    return jsonify(get_healer_availability(healer_id, date_str)), 200


@availability_bp.post("/availability/validate")
def validate_slot():
    data = request.get_json(silent=True) or {}
    healer_id = data.get("healer_id")
    service_id = data.get("service_id")
    scheduled_at = data.get("scheduled_at")
    if not healer_id or not service_id or not scheduled_at:
        raise ValidationError("healer_id, service_id, and scheduled_at are required")

    result = validate_booking_slot(
        require_int(healer_id, "healer_id"),
        require_int(service_id, "service_id"),
        parse_instant(scheduled_at),
    )
    return jsonify(result.to_dict()), 200


@availability_bp.put("/healers/<int:healer_id>/availability")
@login_required
def put_availability(healer_id: int):
    data = request.get_json(silent=True) or {}
    healer = update_healer_availability(g.user, healer_id, data.get("availability"))

    log_event("HEALER_AVAILABILITY_UPDATE", user_id=g.user.id, entity="healer", entity_id=healer.id)
    return jsonify(id=healer.id, availability=healer.availability), 200
