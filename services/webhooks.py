"""
Gateway webhook reconciliation. Handlers are safe to replay and to receive out
of order.
"""
import json
import logging
from dataclasses import dataclass, asdict

from config import ReconciliationConfig
from models import db
from models.payment import Payment, PaymentStatus
from models.refund import Refund, RefundStatus
from security.signatures import verify_stripe_signature, verify_webhook_signature
from services.gateway import translate_stripe_event
from services.memberships import SUBSCRIPTION_TARGETS, apply_subscription_transition
from services.payments import mark_payment_captured
from utils.audit import log_event
from utils.events import enqueue_event

logger = logging.getLogger(__name__)


@dataclass
class ApplyResult:
    applied: bool
    action: str = None
    reason: str = None

    def to_dict(self):
        return asdict(self)


def _entity(event: dict, name: str) -> dict:
    payload = (event or {}).get("payload") or {}
    node = payload.get(name) or {}
    return node.get("entity") or node


def _first(*values):
    for v in values:
        if v:
            return v
    return None


class WebhookReconciler:
    def __init__(self, config: ReconciliationConfig):
        self.config = config
        self._handlers = {
            "payment.captured": self._payment_captured,
            "payment.failed": self._payment_failed,
            "refund.processed": self._refund_processed,
        }

    def verify(self, raw_body: bytes, signature: str) -> bool:
        return verify_webhook_signature(self.config.webhook_secret, raw_body, signature)

    def verify_stripe(self, raw_body: bytes, sig_header: str) -> bool:
        return verify_stripe_signature(self.config.webhook_secret, raw_body, sig_header)

    def parse(self, raw_body: bytes, stripe_format=False) -> dict:
        try:
            event = json.loads(raw_body or b"{}")
        except ValueError:
            return {}
        if not isinstance(event, dict):
            return {}
        return translate_stripe_event(event) if stripe_format else event

    def apply(self, event: dict) -> ApplyResult:
        """Apply one verified event; never raises."""
        event_type = event.get("event")
        if not event_type:
            return ApplyResult(False, reason="no-event-type")

        handler = self._handlers.get(event_type)
        if handler is None and event_type in SUBSCRIPTION_TARGETS:
            handler = self._subscription
        if handler is None:
            return ApplyResult(False, reason="event-unhandled")

        try:
            result = handler(event_type, event)
            db.session.commit()
        except Exception:
            db.session.rollback()
            logger.exception("[webhook][apply][error] type=%s", event_type)
            return ApplyResult(False, action=event_type, reason="apply-error")

        if result.applied:
            log_event("WEBHOOK_APPLIED", entity="webhook", entity_id=event_type, metadata=result.to_dict())
        return result

    # ------------------------------------------------------------ payments

    def _find_payments(self, gateway_payment_id, order_id):
        if gateway_payment_id:
            rows = Payment.query.filter_by(gateway_payment_id=gateway_payment_id).all()
            if rows:
                return rows
        if order_id:
            return Payment.query.filter_by(gateway_order_id=order_id).all()
        return []

    def _payment_captured(self, event_type, event) -> ApplyResult:
        entity = _entity(event, "payment")
        pay_id = _first(entity.get("id"), event.get("payment_id"))
        order_id = _first(entity.get("order_id"), event.get("order_id"))
        if not pay_id and not order_id:
            return ApplyResult(False, event_type, "no-payment-reference")

        payments = self._find_payments(pay_id, order_id)
        if not payments:
            return ApplyResult(False, event_type, "payment-not-found")

        changed = False
        for payment in payments:
            changed = mark_payment_captured(payment, gateway_payment_id=pay_id) or changed
        return ApplyResult(changed, event_type, None if changed else "already-success")

    def _payment_failed(self, event_type, event) -> ApplyResult:
        entity = _entity(event, "payment")
        pay_id = _first(entity.get("id"), event.get("payment_id"))
        order_id = _first(entity.get("order_id"), event.get("order_id"))

        payments = self._find_payments(pay_id, order_id)
        if not payments:
            return ApplyResult(False, event_type, "payment-not-found")
        # the gateway's final word; no state guard
        for payment in payments:
            payment.set_status(PaymentStatus.FAILED)
        return ApplyResult(True, event_type)

    def _refund_processed(self, event_type, event) -> ApplyResult:
        entity = _entity(event, "refund")
        pay_ref = _first(entity.get("payment_id"), _entity(event, "payment").get("id"), event.get("payment_id"))
        amount = int(entity.get("amount") or 0)

        payments = self._find_payments(pay_ref, None)
        if not payments:
            return ApplyResult(False, event_type, "payment-not-found")
        payment = payments[0]

        refund_key = entity.get("id") or f"unknown:{pay_ref}:{amount}"
        refund = Refund.query.filter_by(gateway_refund_id=refund_key).first()
        if refund is None:
            refund = Refund(
                payment_id=payment.id,
                amount_paise=amount,
                status=RefundStatus.SUCCESS,
                gateway_refund_id=refund_key,
                reason="gateway",
            )
            db.session.add(refund)
            db.session.flush()
            enqueue_event("RefundRecorded", payment.id,
                          payload={"refund_id": refund.id, "amount_paise": amount, "status": refund.status},
                          idempotency_key=f"RefundRecorded:{refund.id}")
        elif refund.status != RefundStatus.SUCCESS:
            refund.status = RefundStatus.SUCCESS

        # partial refunds leave the payment status alone
        if amount >= payment.amount_paise and payment.status_enum != PaymentStatus.REFUNDED:
            payment.set_status(PaymentStatus.REFUNDED)
        return ApplyResult(True, event_type)

    # -------------------------------------------------------- subscriptions

    def _subscription(self, event_type, event) -> ApplyResult:
        entity = _entity(event, "subscription")
        sub_id = _first(entity.get("id"), event.get("subscription_id"))
        if not sub_id:
            return ApplyResult(False, event_type, "no-subscription-id")

        applied, reason, _ = apply_subscription_transition(sub_id, SUBSCRIPTION_TARGETS[event_type])
        return ApplyResult(applied, event_type, reason)
