import json
import logging
import time

from flask import current_app

from config import ReconciliationConfig
from errors import ValidationError, NotFoundError, SignatureError
from models import db
from models.booking import Booking, BookingStatus
from models.payment import Payment, PaymentStatus
from security.signatures import verify_checkout_signature
from services.gateway import get_gateway
from services.programs import activate_program_enrollment
from utils.audit import log_event
from utils.events import enqueue_event

logger = logging.getLogger(__name__)

PAYMENT_TYPES = ("SESSION", "PROGRAM", "MEMBERSHIP", "STORE", "COURSE")


def create_order(user_id, booking_id=None, payment_type=None, amount_paise=None, metadata=None) -> dict:
    """
    Open a gateway order either for a booking (price from the booking
    snapshot) or for a generic payment type with an explicit amount.
    """
    if bool(booking_id) == bool(payment_type):
        raise ValidationError("Provide either booking_id OR type (generic payment), exclusively.")
    if payment_type and payment_type not in PAYMENT_TYPES:
        raise ValidationError("Unknown payment type")

    booking = None
    if booking_id:
        booking = Booking.query.filter_by(id=booking_id, user_id=user_id).first()
        if not booking:
            raise NotFoundError("Booking not found", code="BOOKING_NOT_FOUND")
        if booking.status in BookingStatus.TERMINAL:
            raise ValidationError("Booking is not payable", code="NOT_PAYABLE")
        amount = booking.price_paise
    else:
        if not isinstance(amount_paise, int) or amount_paise <= 0:
            raise ValidationError("amount_paise must be a positive integer for generic payments")
        amount = amount_paise

    currency = current_app.config.get("CURRENCY", "INR")
    order = get_gateway().create_order(
        amount_paise=amount,
        currency=currency,
        receipt=f"pay_{int(time.time() * 1000)}",
        notes=metadata or {},
    )

    meta_json = json.dumps(metadata) if metadata else None
    payment = Payment.query.filter_by(booking_id=booking.id).first() if booking else None
    if payment is None:
        payment = Payment(booking_id=booking.id if booking else None, user_id=user_id)
        db.session.add(payment)
    payment.type = payment_type or "SESSION"
    payment.gateway = "stripe"
    payment.amount_paise = amount
    payment.currency = currency
    payment.gateway_order_id = order["id"]
    payment.metadata_json = meta_json
    payment.set_status(PaymentStatus.PENDING)
    db.session.commit()

    logger.info("[payments][create-order][success] payment=%s booking=%s order=%s amount=%s",
                payment.id, payment.booking_id, order["id"], amount)
    log_event("PAYMENT_ORDER_CREATED", user_id=user_id, entity="payment", entity_id=payment.id,
              metadata={"order_id": order["id"], "booking_id": payment.booking_id, "amount_paise": amount})
    result = {
        "order_id": order["id"],
        "amount_paise": amount,
        "currency": currency,
        "key": current_app.config.get("GATEWAY_KEY_ID"),
        "payment_id": payment.id,
    }
    if order.get("client_secret"):
        result["client_secret"] = order["client_secret"]
    return result


def confirm_booking_for_payment(payment: Payment):
    """Advance the paid booking to CONFIRMED; no commit."""
    if not payment.booking_id:
        return None
    booking = db.session.get(Booking, payment.booking_id)
    if booking is None:
        return None
    if booking.status in (BookingStatus.PENDING, BookingStatus.RESCHEDULED) and booking.can_transition(BookingStatus.CONFIRMED):
        booking.transition_to(BookingStatus.CONFIRMED)
        enqueue_event("BookingConfirmed", booking.id, payload={"payment_id": payment.id},
                      idempotency_key=f"BookingConfirmed:{booking.id}:{payment.id}")
    elif booking.status == BookingStatus.CANCELLED:
        # paid after cancel; left for operator reconciliation
        logger.warning("[payments][confirm][cancelled-booking] payment=%s booking=%s", payment.id, booking.id)
    return booking


def mark_payment_captured(payment: Payment, gateway_payment_id=None, signature=None) -> bool:
    """
    Flip a payment to SUCCESS unless it already is. Returns True when it
    changed. A missing gateway payment id is backfilled either way. No commit.
    """
    if gateway_payment_id and not payment.gateway_payment_id:
        payment.gateway_payment_id = gateway_payment_id
    if payment.is_success:
        return False

    if gateway_payment_id:
        payment.gateway_payment_id = gateway_payment_id
    if signature:
        payment.gateway_signature = signature
    payment.set_status(PaymentStatus.SUCCESS)
    confirm_booking_for_payment(payment)
    enqueue_event("PaymentCaptured", payment.id,
                  payload={"booking_id": payment.booking_id, "amount_paise": payment.amount_paise})
    return True


def run_side_effect(name: str, fn, *args, **kwargs):
    """Run downstream work whose failure must not fail the caller."""
    try:
        return fn(*args, **kwargs)
    except Exception:
        db.session.rollback()
        logger.exception("[payments][side-effect][%s] failed", name)
        return None


def checkout_confirmed(config: ReconciliationConfig, gateway, order_id, gateway_payment_id, signature) -> bool:
    if verify_checkout_signature(config.gateway_key_secret, order_id, gateway_payment_id, signature):
        return True
    # Stripe checkouts carry the intent client secret instead of an HMAC
    return gateway is not None and gateway.confirm_checkout(order_id, gateway_payment_id, signature)


def verify_payment(user_id, order_id: str, gateway_payment_id: str, signature: str,
                   config: ReconciliationConfig, gateway=None) -> dict:
    if not checkout_confirmed(config, gateway, order_id, gateway_payment_id, signature):
        logger.warning("[payments][verify][hmac-mismatch] order=%s payment=%s", order_id, gateway_payment_id)
        raise SignatureError("Invalid signature")

    payment = Payment.query.filter_by(gateway_order_id=order_id).first()
    if not payment or (payment.user_id and payment.user_id != user_id):
        raise NotFoundError("Payment not found", code="PAYMENT_NOT_FOUND")

    if payment.is_success:
        logger.info("[payments][verify][idempotent-success] payment=%s", payment.id)
        return {"verified": True, "idempotent": True, "payment": {"id": payment.id}}

    mark_payment_captured(payment, gateway_payment_id=gateway_payment_id, signature=signature)
    db.session.commit()
    log_event("PAYMENT_VERIFIED", user_id=user_id, entity="payment", entity_id=payment.id,
              metadata={"order_id": order_id, "gateway_payment_id": gateway_payment_id})

    activation = run_side_effect("program-activation", activate_program_enrollment, payment)
    logger.info("[payments][verify][success] payment=%s gateway_payment=%s", payment.id, gateway_payment_id)
    return {
        "verified": True,
        "payment": {"id": payment.id},
        "activation": activation.to_dict() if activation else None,
    }
