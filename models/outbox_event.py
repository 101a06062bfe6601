from models.db import db
from utils.clock import utcnow


class OutboxEvent(db.Model):
    """Downstream work (invoices, emails, analytics) queued in the same transaction as the state change."""

    __tablename__ = "outbox_events"

    id = db.Column(db.Integer, primary_key=True)
    event_type = db.Column(db.String(100), nullable=False, index=True)  # BookingConfirmed, PaymentCaptured, ...
    aggregate_id = db.Column(db.String(64), nullable=False, index=True)
    idempotency_key = db.Column(db.String(255), nullable=False, unique=True)
    payload = db.Column(db.JSON, nullable=False, default=dict)

    status = db.Column(db.String(20), nullable=False, default="PENDING")  # PENDING, SENT, FAILED
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
