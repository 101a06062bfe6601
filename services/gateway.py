"""
Payment gateway adapter. The active one lives in
``app.extensions["payment_gateway"]`` so tests can swap in a fake.
"""
import logging
from dataclasses import dataclass

import stripe
from flask import current_app

from errors import GatewayError
from security.signatures import constant_time_compare

logger = logging.getLogger(__name__)


@dataclass
class RefundResult:
    gateway_refund_id: str
    status: str  # PENDING, SUCCESS, FAILED


def map_refund_status(value) -> str:
    v = (value or "").lower()
    if v in ("processed", "success", "succeeded"):
        return "SUCCESS"
    if v in ("failed", "failure", "canceled", "cancelled"):
        return "FAILED"
    return "PENDING"


class StripeGateway:
    def __init__(self, api_key: str, publishable_key: str = None):
        self.api_key = api_key
        self.publishable_key = publishable_key

    def create_order(self, amount_paise: int, currency: str, receipt: str, notes=None) -> dict:
        metadata = {k: str(v) for k, v in (notes or {}).items()}
        metadata["receipt"] = receipt
        try:
            intent = stripe.PaymentIntent.create(
                amount=int(amount_paise),
                currency=currency.lower(),
                metadata=metadata,
                idempotency_key=receipt,
                api_key=self.api_key,
            )
        except stripe.StripeError as exc:
            logger.error("[gateway][create-order][error] %s", exc)
            raise GatewayError("Failed to create order")
        return {
            "id": intent["id"],
            "amount": intent["amount"],
            "currency": str(intent["currency"]).upper(),
            "client_secret": intent["client_secret"],
        }

    def confirm_checkout(self, order_id: str, payment_id: str, client_secret: str) -> bool:
        """Stripe does not sign the checkout; ask it whether the intent succeeded."""
        try:
            intent = stripe.PaymentIntent.retrieve(order_id, api_key=self.api_key)
        except stripe.StripeError as exc:
            logger.error("[gateway][confirm][error] order=%s %s", order_id, exc)
            return False
        if not constant_time_compare(_field(intent, "client_secret") or "", client_secret or ""):
            return False
        # the intent id doubles as the payment id so webhooks find the same row
        if payment_id != _field(intent, "id"):
            return False
        return _field(intent, "status") == "succeeded"

    def refund(self, payment_id: str, amount_paise: int, notes=None) -> RefundResult:
        params = {
            "amount": int(amount_paise),
            "metadata": {k: str(v) for k, v in (notes or {}).items()},
            "api_key": self.api_key,
        }
        # charge ids and payment intent ids are both accepted
        if payment_id.startswith("ch_"):
            params["charge"] = payment_id
        else:
            params["payment_intent"] = payment_id
        try:
            resp = stripe.Refund.create(**params)
        except stripe.StripeError as exc:
            logger.error("[gateway][refund][error] payment=%s %s", payment_id, exc)
            raise GatewayError("Refund request failed")
        return RefundResult(
            gateway_refund_id=str(_field(resp, "id") or ""),
            status=map_refund_status(_field(resp, "status")),
        )


def build_gateway(config):
    secret = config.get("GATEWAY_KEY_SECRET")
    if not secret:
        return None
    return StripeGateway(secret, publishable_key=config.get("GATEWAY_KEY_ID"))


def get_gateway():
    gateway = current_app.extensions.get("payment_gateway")
    if gateway is None:
        raise GatewayError("Payment gateway unavailable", code="GATEWAY_UNAVAILABLE")
    return gateway


def _field(obj, name):
    try:
        return obj[name]
    except (KeyError, TypeError):
        return None


# Stripe subscription status -> gateway subscription event
STRIPE_SUBSCRIPTION_EVENTS = {
    "active": "subscription.activated",
    "trialing": "subscription.activated",
    "paused": "subscription.paused",
    "past_due": "subscription.halted",
    "unpaid": "subscription.halted",
    "canceled": "subscription.cancelled",
}


def translate_stripe_event(event: dict) -> dict:
    """
    Reshape a Stripe event into the ``{"event", "payload": {<name>: {"entity"}}}``
    form the reconciler applies. With Stripe the PaymentIntent id is both the
    order id and the payment id. Unmapped types come back as ``stripe.<type>``.
    """
    event_type = (event or {}).get("type") or ""
    obj = ((event or {}).get("data") or {}).get("object") or {}

    if event_type in ("payment_intent.succeeded", "payment_intent.payment_failed"):
        name = "payment.captured" if event_type.endswith("succeeded") else "payment.failed"
        entity = {"id": obj.get("id"), "order_id": obj.get("id"), "amount": obj.get("amount")}
        return {"event": name, "payload": {"payment": {"entity": entity}}}

    if event_type in ("refund.created", "refund.updated", "charge.refund.updated"):
        if obj.get("status") != "succeeded":
            return {"event": f"stripe.{event_type}"}
        entity = {
            "id": obj.get("id"),
            "payment_id": obj.get("payment_intent") or obj.get("charge"),
            "amount": obj.get("amount"),
        }
        return {"event": "refund.processed", "payload": {"refund": {"entity": entity}}}

    if event_type.startswith("customer.subscription."):
        if event_type == "customer.subscription.deleted":
            name = "subscription.cancelled"
        elif event_type == "customer.subscription.paused":
            name = "subscription.paused"
        else:
            name = STRIPE_SUBSCRIPTION_EVENTS.get(obj.get("status"))
        if name:
            return {"event": name, "payload": {"subscription": {"entity": {"id": obj.get("id")}}}}

    return {"event": f"stripe.{event_type}"}
