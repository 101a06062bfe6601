import hashlib
import hmac
import json
import time as time_module
from datetime import datetime, time, timedelta

from errors import GatewayError
from services.gateway import RefundResult
from utils.clock import utcnow

PASSWORD = "correct-horse-42"
WEBHOOK_SECRET = "whsec_test"
KEY_SECRET = "key_secret_test"

EVERY_DAY = {
    day: {"start": "10:00", "end": "18:00"}
    for day in ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")
}


class FakeGateway:
    """Records calls instead of talking to the payment provider."""

    def __init__(self):
        self.orders = []
        self.refunds = []
        self.fail_refunds = False
        # (order_id, payment_id, client_secret) triples the provider reports as paid
        self.succeeded = set()

    def create_order(self, amount_paise, currency, receipt, notes=None):
        order = {"id": f"order_{len(self.orders) + 1}", "amount": amount_paise, "currency": currency}
        self.orders.append(order)
        return order

    def confirm_checkout(self, order_id, payment_id, client_secret):
        return (order_id, payment_id, client_secret) in self.succeeded

    def refund(self, payment_id, amount_paise, notes=None):
        if self.fail_refunds:
            raise GatewayError("Refund request failed")
        self.refunds.append({"payment_id": payment_id, "amount": amount_paise})
        return RefundResult(gateway_refund_id=f"rfnd_{len(self.refunds)}", status="PENDING")


def slot_in(hours: float) -> datetime:
    """A slot start on the half hour at least ``hours`` from now."""
    at = utcnow() + timedelta(hours=hours)
    at = at.replace(second=0, microsecond=0)
    if at.minute % 30:
        at += timedelta(minutes=30 - at.minute % 30)
    return at


def day_at(days: int, hour: int, minute: int = 0) -> datetime:
    return datetime.combine(utcnow().date() + timedelta(days=days), time(hour, minute))


def iso(instant: datetime) -> str:
    return instant.isoformat() + "Z"


def sign(payload: dict):
    raw = json.dumps(payload).encode("utf-8")
    signature = hmac.new(WEBHOOK_SECRET.encode("utf-8"), raw, hashlib.sha256).hexdigest()
    return raw, signature


def checkout_signature(order_id: str, payment_id: str) -> str:
    msg = f"{order_id}|{payment_id}".encode("utf-8")
    return hmac.new(KEY_SECRET.encode("utf-8"), msg, hashlib.sha256).hexdigest()


def stripe_sign(payload: dict, secret: str = WEBHOOK_SECRET):
    """Body and ``Stripe-Signature`` header the way Stripe signs webhook deliveries."""
    raw = json.dumps(payload).encode("utf-8")
    timestamp = int(time_module.time())
    signed = f"{timestamp}.".encode("utf-8") + raw
    v1 = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return raw, f"t={timestamp},v1={v1}"
