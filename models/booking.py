from sqlalchemy import text

from errors import StateError
from models.db import db
from utils.clock import utcnow, isoformat_utc


class BookingStatus:
    PENDING = "PENDING"
    SCHEDULED = "SCHEDULED"
    CONFIRMED = "CONFIRMED"
    RESCHEDULED = "RESCHEDULED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"

    ALL = (PENDING, SCHEDULED, CONFIRMED, RESCHEDULED, CANCELLED, COMPLETED)

    # Statuses that hold a healer's time
    OCCUPYING = (PENDING, SCHEDULED, CONFIRMED, RESCHEDULED)
    TERMINAL = (CANCELLED, COMPLETED)


ALLOWED_TRANSITIONS = {
    BookingStatus.PENDING: {
        BookingStatus.CONFIRMED,
        BookingStatus.SCHEDULED,
        BookingStatus.RESCHEDULED,
        BookingStatus.CANCELLED,
    },
    BookingStatus.CONFIRMED: {
        BookingStatus.RESCHEDULED,
        BookingStatus.CANCELLED,
        BookingStatus.COMPLETED,
    },
    BookingStatus.SCHEDULED: {
        BookingStatus.RESCHEDULED,
        BookingStatus.CANCELLED,
        BookingStatus.COMPLETED,
    },
    BookingStatus.RESCHEDULED: {
        BookingStatus.CONFIRMED,
        BookingStatus.RESCHEDULED,
        BookingStatus.CANCELLED,
        BookingStatus.COMPLETED,
    },
    BookingStatus.CANCELLED: set(),
    BookingStatus.COMPLETED: set(),
}

_OCCUPYING_SQL = "status IN ('PENDING', 'SCHEDULED', 'CONFIRMED', 'RESCHEDULED')"


class Booking(db.Model):
    __tablename__ = "bookings"

    id = db.Column(db.Integer, primary_key=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    healer_id = db.Column(db.Integer, db.ForeignKey("healers.id"), nullable=False, index=True)
    service_id = db.Column(db.Integer, db.ForeignKey("services.id"), nullable=False, index=True)

    scheduled_at = db.Column(db.DateTime, nullable=False, index=True)

    # snapshot of the service at booking time
    duration_min = db.Column(db.Integer, nullable=False)
    price_paise = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(20), nullable=False, default=BookingStatus.PENDING)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    cancelled_at = db.Column(db.DateTime, nullable=True)
    cancel_reason = db.Column(db.String(120), nullable=True)
    refund_band = db.Column(db.String(10), nullable=True)  # FULL, HALF, NONE

    __table_args__ = (
        # Backstop for double booking: two occupying bookings can never share a start
        db.Index(
            "uq_bookings_healer_start_active",
            "healer_id",
            "scheduled_at",
            unique=True,
            sqlite_where=text(_OCCUPYING_SQL),
            postgresql_where=text(_OCCUPYING_SQL),
        ),
    )

    @property
    def is_occupying(self) -> bool:
        return self.status in BookingStatus.OCCUPYING

    def can_transition(self, target: str) -> bool:
        return target in ALLOWED_TRANSITIONS.get(self.status, set())

    def transition_to(self, target: str):
        if not self.can_transition(target):
            raise StateError(
                f"Cannot move booking from {self.status} to {target}",
                code="INVALID_TRANSITION",
            )
        self.status = target
        if target == BookingStatus.CANCELLED:
            self.cancelled_at = utcnow()

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "healer_id": self.healer_id,
            "service_id": self.service_id,
            "scheduled_at": isoformat_utc(self.scheduled_at),
            "duration_min": self.duration_min,
            "price_paise": self.price_paise,
            "status": self.status,
            "created_at": isoformat_utc(self.created_at),
            "cancelled_at": isoformat_utc(self.cancelled_at),
            "cancel_reason": self.cancel_reason,
            "refund_band": self.refund_band,
        }
