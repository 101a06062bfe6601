"""Booking lifecycle. Callers only ever see their own bookings."""
import logging
from dataclasses import dataclass

from flask import current_app
from sqlalchemy.exc import IntegrityError

from errors import ConflictError, NotFoundError, StateError, ValidationError
from models import db
from models.booking import Booking, BookingStatus
from models.healer import Healer
from models.payment import Payment, PaymentStatus
from models.service import Service
from models.user import User
from services.availability import validate_booking_slot
from services.refund_policy import compute_refund
from utils.audit import log_event
from utils.clock import hours_until, utcnow
from utils.events import enqueue_event

logger = logging.getLogger(__name__)

CANCEL_SOFT = "soft"
CANCEL_HARD = "hard"


@dataclass
class CancelResult:
    booking: Booking
    already_cancelled: bool = False
    quote: object = None
    refund: object = None

    def to_dict(self):
        out = {"ok": True, "booking": self.booking.to_dict()}
        if self.already_cancelled:
            out["already_cancelled"] = True
        if self.quote is not None:
            out["refund"] = self.quote.to_dict()
            if self.refund is not None:
                out["refund"]["refund_id"] = self.refund.id
                out["refund"]["status"] = self.refund.status
        return out


def _cutoff_hours() -> int:
    return current_app.config.get("MODIFICATION_CUTOFF_HOURS", 24)


def get_owned_booking(user_id, booking_id, lock=False) -> Booking:
    q = Booking.query.filter_by(id=booking_id, user_id=user_id)
    if lock:
        q = q.with_for_update()
    booking = q.first()
    if not booking:
        raise NotFoundError("Booking not found", code="BOOKING_NOT_FOUND")
    return booking


def list_bookings(user_id, status=None):
    q = Booking.query.filter_by(user_id=user_id)
    if status:
        status = status.strip().upper()
        if status not in BookingStatus.ALL:
            raise ValidationError("Unknown status filter")
        q = q.filter_by(status=status)
    return q.order_by(Booking.scheduled_at.desc()).all()


def _lock_healer(healer_id):
    # serialises writers for one healer (FOR UPDATE is a no-op on SQLite)
    return db.session.query(Healer).filter_by(id=healer_id).with_for_update().first()


def _commit_slot_write(action: str, user_id, booking: Booking):
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        log_event(f"{action}_FAIL_ALREADY_BOOKED", user_id=user_id, entity="healer",
                  entity_id=booking.healer_id)
        raise ConflictError("Time slot already booked", code="SLOT_TAKEN")


def create_booking(user_id, healer_id, service_id, scheduled_at, now=None) -> Booking:
    now = now or utcnow()
    _lock_healer(healer_id)

    validation = validate_booking_slot(healer_id, service_id, scheduled_at, now=now)
    if not validation.valid:
        db.session.rollback()
        validation.raise_for_error()

    service = db.session.get(Service, service_id)
    booking = Booking(
        user_id=user_id,
        healer_id=healer_id,
        service_id=service_id,
        scheduled_at=scheduled_at,
        duration_min=service.duration,
        price_paise=service.price_paise,
        status=BookingStatus.PENDING,
    )
    db.session.add(booking)
    _commit_slot_write("BOOKING", user_id, booking)

    log_event("BOOKING_CREATE", user_id=user_id, entity="booking", entity_id=booking.id,
              metadata={"healer_id": healer_id, "service_id": service_id, "scheduled_at": scheduled_at.isoformat()})
    return booking


def _has_successful_payment(booking: Booking) -> bool:
    payment = Payment.query.filter_by(booking_id=booking.id).first()
    return payment is not None and payment.is_success


def _awaiting_payment(booking: Booking) -> bool:
    if booking.status == BookingStatus.PENDING:
        return True
    return booking.status == BookingStatus.RESCHEDULED and not _has_successful_payment(booking)


def confirm_with_credits(user_id, booking_id) -> Booking:
    """Spend one VIP session credit instead of a gateway payment."""
    user = db.session.query(User).filter_by(id=user_id).with_for_update().first()
    if not user:
        raise NotFoundError("User not found", code="USER_NOT_FOUND")
    if not user.vip or (user.free_session_credits or 0) <= 0:
        raise ValidationError("No session credits available", code="NO_CREDITS")

    booking = get_owned_booking(user.id, booking_id, lock=True)
    if not _awaiting_payment(booking):
        raise StateError(f"Booking is {booking.status} and cannot be confirmed", code="INVALID_STATE")

    payment = Payment.query.filter_by(booking_id=booking.id).first()
    if payment is not None and payment.gateway != "vip_credit" and payment.gateway_order_id:
        # a capture on that order would otherwise land on a zero-amount credit row
        raise StateError("A gateway payment is already open for this booking", code="PAYMENT_IN_PROGRESS")

    user.free_session_credits = (user.free_session_credits or 0) - 1
    booking.transition_to(BookingStatus.CONFIRMED)

    if payment is None:
        payment = Payment(booking_id=booking.id, user_id=user.id)
        db.session.add(payment)
    payment.gateway = "vip_credit"
    payment.type = "SESSION"
    payment.amount_paise = 0
    payment.set_status(PaymentStatus.SUCCESS)

    enqueue_event("BookingConfirmed", booking.id, payload={"via": "vip_credit"},
                  idempotency_key=f"BookingConfirmed:{booking.id}:credit")
    db.session.commit()

    log_event("BOOKING_CONFIRM_CREDITS", user_id=user.id, entity="booking", entity_id=booking.id,
              metadata={"credits_left": user.free_session_credits})
    return booking


def reschedule_booking(user_id, booking_id, new_scheduled_at, now=None) -> Booking:
    """
    Move a booking to a new start, keeping its id.

    Both the current start and the new start must be at least the
    modification cutoff away, and the new start must pass slot validation.
    """
    now = now or utcnow()
    cutoff = _cutoff_hours()
    booking = get_owned_booking(user_id, booking_id, lock=True)

    if booking.status in BookingStatus.TERMINAL:
        raise StateError(f"Booking is already {booking.status.lower()} and cannot be rescheduled",
                         code="INVALID_STATE")
    if hours_until(booking.scheduled_at, now) < cutoff:
        raise StateError(f"Cannot reschedule booking less than {cutoff} hours before scheduled time",
                         code="TOO_CLOSE_TO_START", status=403)
    if hours_until(new_scheduled_at, now) < cutoff:
        raise ValidationError(f"Cannot reschedule to a time less than {cutoff} hours from now",
                              code="NEW_TIME_TOO_SOON")

    _lock_healer(booking.healer_id)
    validation = validate_booking_slot(booking.healer_id, booking.service_id, new_scheduled_at,
                                       now=now, exclude_booking_id=booking.id)
    if not validation.valid:
        db.session.rollback()
        validation.raise_for_error()

    previous = booking.scheduled_at
    booking.scheduled_at = new_scheduled_at
    booking.transition_to(BookingStatus.RESCHEDULED)
    enqueue_event("BookingRescheduled", booking.id,
                  payload={"from": previous.isoformat(), "to": new_scheduled_at.isoformat()},
                  idempotency_key=f"BookingRescheduled:{booking.id}:{new_scheduled_at.isoformat()}")
    _commit_slot_write("BOOKING_RESCHEDULE", user_id, booking)

    log_event("BOOKING_RESCHEDULE", user_id=user_id, entity="booking", entity_id=booking.id,
              metadata={"from": previous.isoformat(), "to": new_scheduled_at.isoformat()})
    return booking


def cancel_booking(user_id, booking_id, mode=CANCEL_SOFT, reason=None, refund_issuer=None, now=None) -> CancelResult:
    """
    Cancel a booking.

    ``soft`` always cancels and prices the refund by lead time. ``hard`` is
    the legacy path: it refuses inside the cutoff and never refunds.
    Cancelling twice is a no-op that reports ``already_cancelled``.
    """
    if mode not in (CANCEL_SOFT, CANCEL_HARD):
        raise ValidationError("Unknown cancellation mode")

    now = now or utcnow()
    booking = get_owned_booking(user_id, booking_id, lock=True)

    if booking.status == BookingStatus.CANCELLED:
        return CancelResult(booking=booking, already_cancelled=True)
    if booking.status == BookingStatus.COMPLETED:
        raise StateError("Booking is already completed and cannot be cancelled", code="NOT_CANCELLABLE")

    reason = (reason or "").strip()[:120] or None

    if mode == CANCEL_HARD:
        cutoff = _cutoff_hours()
        if hours_until(booking.scheduled_at, now) < cutoff:
            raise StateError(f"Cannot cancel booking less than {cutoff} hours before scheduled time",
                             code="TOO_CLOSE_TO_START", status=403)
        booking.transition_to(BookingStatus.CANCELLED)
        booking.cancel_reason = reason
        enqueue_event("BookingCancelled", booking.id, payload={"mode": mode})
        db.session.commit()
        log_event("BOOKING_CANCEL", user_id=user_id, entity="booking", entity_id=booking.id,
                  metadata={"mode": mode, "reason": reason})
        return CancelResult(booking=booking)

    payment = Payment.query.filter_by(booking_id=booking.id).first()
    settled = payment is not None and payment.is_gateway_settled
    quote = compute_refund(
        booking.scheduled_at,
        now,
        booking.price_paise,
        has_payment=settled,
        half_from_hours=_cutoff_hours(),
        full_from_hours=current_app.config.get("FULL_REFUND_HOURS", 48),
    )

    booking.transition_to(BookingStatus.CANCELLED)
    booking.cancel_reason = reason
    booking.refund_band = quote.band
    enqueue_event("BookingCancelled", booking.id,
                  payload={"mode": mode, "band": quote.band, "refund_paise": quote.refund_paise})
    db.session.commit()
    log_event("BOOKING_CANCEL", user_id=user_id, entity="booking", entity_id=booking.id,
              metadata={"mode": mode, "reason": reason, "band": quote.band, "refund_paise": quote.refund_paise})

    refund = None
    if settled and quote.refund_paise > 0 and refund_issuer is not None:
        amount = min(quote.refund_paise, payment.amount_paise)
        refund = refund_issuer.issue(payment, amount, reason=f"cancel:{quote.band}", booking_id=booking.id)

    return CancelResult(booking=booking, quote=quote, refund=refund)


def complete_booking(actor, booking_id) -> Booking:
    """Mark a session as delivered. Healers may only complete their own sessions."""
    booking = db.session.get(Booking, booking_id)
    if booking is not None and not actor.has_role("ADMIN"):
        healer = Healer.query.filter_by(user_id=actor.id).first()
        if healer is None or healer.id != booking.healer_id:
            booking = None
    if booking is None:
        raise NotFoundError("Booking not found", code="BOOKING_NOT_FOUND")

    booking.transition_to(BookingStatus.COMPLETED)
    enqueue_event("BookingCompleted", booking.id)
    db.session.commit()
    log_event("BOOKING_COMPLETE", user_id=actor.id, entity="booking", entity_id=booking.id)
    return booking
