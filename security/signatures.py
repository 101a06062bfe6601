import hashlib
import hmac

import stripe


def compute_hmac_sha256(secret: str, payload: bytes) -> str:
    """Hex HMAC-SHA256 of payload."""
    return hmac.new((secret or "").encode("utf-8"), payload, hashlib.sha256).hexdigest()


def constant_time_compare(a: str, b: str) -> bool:
    if not a or not b:
        return False
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))


def verify_checkout_signature(secret: str, order_id: str, gateway_payment_id: str, signature: str) -> bool:
    if not secret:
        return False
    # gateway signs "<order_id>|<payment_id>" with the key secret
    expected = compute_hmac_sha256(secret, f"{order_id}|{gateway_payment_id}".encode("utf-8"))
    return constant_time_compare(expected, signature)


def verify_webhook_signature(secret: str, raw_body: bytes, signature: str) -> bool:
    if not secret:
        return False
    expected = compute_hmac_sha256(secret, raw_body)
    return constant_time_compare(expected, (signature or "").strip())


def verify_stripe_signature(secret: str, raw_body: bytes, sig_header: str) -> bool:
    """Check a ``Stripe-Signature`` header (``t=...,v1=...``) with the stripe library."""
    if not secret or not sig_header:
        return False
    try:
        stripe.WebhookSignature.verify_header(raw_body.decode("utf-8"), sig_header, secret,
                                              tolerance=stripe.Webhook.DEFAULT_TOLERANCE)
    except (stripe.SignatureVerificationError, UnicodeDecodeError):
        return False
    return True
