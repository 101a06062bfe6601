import logging

from models import db
from models.outbox_event import OutboxEvent

logger = logging.getLogger(__name__)


def enqueue_event(event_type: str, aggregate_id, payload=None, idempotency_key=None) -> OutboxEvent:
    """
    Queue an outbox row in the caller's transaction (no commit here).

    Enqueueing the same idempotency key twice returns the existing row.
    """
    key = idempotency_key or f"{event_type}:{aggregate_id}"
    existing = OutboxEvent.query.filter_by(idempotency_key=key).first()
    if existing:
        return existing

    row = OutboxEvent(
        event_type=event_type,
        aggregate_id=str(aggregate_id),
        idempotency_key=key,
        payload=payload or {},
    )
    db.session.add(row)
    logger.info("[outbox][enqueue] %s %s", event_type, key)
    return row
