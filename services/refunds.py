"""Refund issuance for cancelled bookings. Gateway failures never fail the cancel."""
import logging

from sqlalchemy.exc import IntegrityError

from config import ReconciliationConfig
from errors import GatewayError
from models import db
from models.payment import Payment
from models.refund import Refund, RefundStatus
from utils.audit import log_event
from utils.events import enqueue_event

logger = logging.getLogger(__name__)


def find_existing_refund(payment_id: int, amount_paise: int):
    return (
        Refund.query
        .filter(
            Refund.payment_id == payment_id,
            Refund.amount_paise == amount_paise,
            Refund.status.in_(RefundStatus.LIVE),
        )
        .first()
    )


class RefundIssuer:
    def __init__(self, config: ReconciliationConfig, gateway=None):
        self.config = config
        self.gateway = gateway

    def issue(self, payment: Payment, amount_paise: int, reason: str = None, booking_id=None):
        """Return the Refund row for this payment/amount, or None when nothing could be recorded."""
        if amount_paise <= 0:
            return None

        existing = find_existing_refund(payment.id, amount_paise)
        if existing:
            logger.info("[refunds][idempotent] payment=%s refund=%s", payment.id, existing.id)
            return existing

        if not self.config.refunds_enabled:
            row = Refund(
                payment_id=payment.id,
                amount_paise=amount_paise,
                status=RefundStatus.SIMULATED,
                reason=reason,
            )
            return self._record(row, payment, booking_id)

        gateway_payment_id = payment.gateway_payment_id or payment.gateway_order_id
        if self.gateway is None or not gateway_payment_id:
            logger.warning("[refunds][skipped] payment=%s gateway or payment id missing", payment.id)
            return None

        try:
            result = self.gateway.refund(
                gateway_payment_id,
                amount_paise,
                notes={"payment_id": payment.id, "booking_id": booking_id or "", "reason": reason or ""},
            )
        except GatewayError as exc:
            logger.error("[refunds][gateway-error] payment=%s amount=%s %s", payment.id, amount_paise, exc.message)
            return None

        row = Refund(
            payment_id=payment.id,
            amount_paise=amount_paise,
            status=result.status,
            gateway_refund_id=result.gateway_refund_id or None,
            reason=reason,
        )
        return self._record(row, payment, booking_id)

    def _record(self, row: Refund, payment: Payment, booking_id):
        if row.gateway_refund_id:
            # the refund webhook can land before the gateway call returns
            known = Refund.query.filter_by(gateway_refund_id=row.gateway_refund_id).first()
            if known:
                logger.info("[refunds][already-recorded] payment=%s refund=%s", payment.id, known.id)
                return known

        db.session.add(row)
        try:
            db.session.flush()
        except IntegrityError:
            db.session.rollback()
            known = None
            if row.gateway_refund_id:
                known = Refund.query.filter_by(gateway_refund_id=row.gateway_refund_id).first()
            if known is None:
                logger.error("[refunds][record-failed] payment=%s gateway_refund=%s", payment.id, row.gateway_refund_id)
            return known

        enqueue_event(
            "RefundRecorded",
            payment.id,
            payload={"refund_id": row.id, "amount_paise": row.amount_paise, "status": row.status},
            idempotency_key=f"RefundRecorded:{row.id}",
        )
        db.session.commit()
        log_event(
            "REFUND_ISSUED",
            entity="refund",
            entity_id=row.id,
            metadata={"payment_id": payment.id, "booking_id": booking_id, "amount_paise": row.amount_paise, "status": row.status},
        )
        return row


def refund_issuer_for(app) -> RefundIssuer:
    return RefundIssuer(
        ReconciliationConfig.from_mapping(app.config),
        gateway=app.extensions.get("payment_gateway"),
    )
