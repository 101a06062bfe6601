from flask import Blueprint, request, jsonify, current_app, g

from config import ReconciliationConfig
from errors import ValidationError
from services.payments import create_order, verify_payment
from utils.auth_context import login_required

payments_bp = Blueprint("payments", __name__, url_prefix="/payments")


@payments_bp.post("/create-order")
@login_required
def create_order_route():
    data = request.get_json(silent=True) or {}
    booking_id = data.get("booking_id")
    if booking_id is not None and not isinstance(booking_id, int):
        raise ValidationError("booking_id must be an integer")

    result = create_order(
        g.user.id,
        booking_id=booking_id,
        payment_type=data.get("type"),
        amount_paise=data.get("amount_paise"),
        metadata=data.get("metadata"),
    )
    return jsonify(result), 200


@payments_bp.post("/verify")
@login_required
def verify():
    data = request.get_json(silent=True) or {}
    order_id = (data.get("order_id") or "").strip()
    payment_id = (data.get("payment_id") or "").strip()
    signature = (data.get("signature") or "").strip()
    if not order_id or not payment_id or not signature:
        raise ValidationError("order_id, payment_id and signature are required")

    result = verify_payment(
        g.user.id,
        order_id,
        payment_id,
        signature,
        ReconciliationConfig.from_mapping(current_app.config),
        gateway=current_app.extensions.get("payment_gateway"),
    )
    return jsonify(result), 200
