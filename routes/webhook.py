import logging

from flask import Blueprint, request, jsonify, current_app

from config import ReconciliationConfig
from services.webhooks import WebhookReconciler

logger = logging.getLogger(__name__)

webhook_bp = Blueprint("webhook", __name__, url_prefix="/payments")

SIGNATURE_HEADERS = ("X-Gateway-Signature", "X-Razorpay-Signature")
STRIPE_SIGNATURE_HEADER = "Stripe-Signature"


@webhook_bp.post("/webhook")
def gateway_webhook():
    config = ReconciliationConfig.from_mapping(current_app.config)
    if not config.webhook_secret:
        logger.error("[webhook] missing WEBHOOK_SECRET")
        return jsonify(ok=False, error="secret-missing"), 500

    # exact bytes as delivered; the signature covers them, not the parsed JSON
    raw_body = request.get_data(cache=True)
    reconciler = WebhookReconciler(config)

    stripe_header = request.headers.get(STRIPE_SIGNATURE_HEADER)
    if stripe_header:
        verified = reconciler.verify_stripe(raw_body, stripe_header)
    else:
        signature = ""
        for header in SIGNATURE_HEADERS:
            signature = request.headers.get(header) or signature
            if signature:
                break
        verified = reconciler.verify(raw_body, signature)

    if not verified:
        logger.warning("[webhook] signature mismatch")
        return jsonify(ok=False, error="signature-mismatch"), 401

    event = reconciler.parse(raw_body, stripe_format=bool(stripe_header))
    event_type = event.get("event", "unknown")
    logger.info("[webhook] verified type=%s", event_type)

    if config.payment_events_enabled:
        result = reconciler.apply(event)
        if result.applied:
            logger.info("[webhook][apply] type=%s action=%s", event_type, result.action)
        else:
            logger.info("[webhook][skip] type=%s reason=%s", event_type, result.reason)

    return jsonify(ok=True), 200
