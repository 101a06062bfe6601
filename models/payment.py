import json

from models.db import db
from utils.clock import utcnow


class PaymentStatus:
    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"

    # legacy lower-case column kept in sync with status_enum
    LEGACY = {
        PENDING: "pending",
        SUCCESS: "success",
        FAILED: "failed",
        REFUNDED: "refunded",
    }


class Payment(db.Model):
    __tablename__ = "payments"

    id = db.Column(db.Integer, primary_key=True)
    booking_id = db.Column(db.Integer, db.ForeignKey("bookings.id"), nullable=True, unique=True, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    type = db.Column(db.String(20), nullable=False, default="SESSION")  # SESSION, PROGRAM, MEMBERSHIP, STORE, COURSE
    gateway = db.Column(db.String(20), nullable=False, default="stripe")  # stripe, vip_credit
    amount_paise = db.Column(db.Integer, nullable=False)   # smallest unit
    currency = db.Column(db.String(10), nullable=False, default="INR")

    status = db.Column(db.String(20), nullable=False, default="pending")
    status_enum = db.Column(db.String(20), nullable=False, default=PaymentStatus.PENDING)

    gateway_order_id = db.Column(db.String(255), nullable=True, unique=True, index=True)
    gateway_payment_id = db.Column(db.String(255), nullable=True, index=True)
    gateway_signature = db.Column(db.String(255), nullable=True)
    metadata_json = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    paid_at = db.Column(db.DateTime, nullable=True)

    @property
    def is_success(self) -> bool:
        return self.status_enum == PaymentStatus.SUCCESS or self.status == "success"

    @property
    def is_gateway_settled(self) -> bool:
        # credit-funded payments carry no money to refund
        return self.is_success and self.gateway != "vip_credit" and self.amount_paise > 0

    @property
    def meta(self) -> dict:
        if not self.metadata_json:
            return {}
        try:
            return json.loads(self.metadata_json) or {}
        except ValueError:
            return {}

    def set_status(self, status_enum: str):
        self.status_enum = status_enum
        self.status = PaymentStatus.LEGACY[status_enum]
        if status_enum == PaymentStatus.SUCCESS and self.paid_at is None:
            self.paid_at = utcnow()

    def to_dict(self):
        return {
            "id": self.id,
            "booking_id": self.booking_id,
            "type": self.type,
            "gateway": self.gateway,
            "amount_paise": self.amount_paise,
            "currency": self.currency,
            "status": self.status,
            "status_enum": self.status_enum,
            "gateway_order_id": self.gateway_order_id,
            "gateway_payment_id": self.gateway_payment_id,
        }
