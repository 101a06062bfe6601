from models.db import db
from utils.clock import utcnow


class RefundStatus:
    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    SIMULATED = "SIMULATED"  # written when gateway refunds are switched off

    # a row in one of these blocks re-issuing the same amount for the same payment
    LIVE = (PENDING, SUCCESS, SIMULATED)


class Refund(db.Model):
    __tablename__ = "refunds"

    id = db.Column(db.Integer, primary_key=True)
    payment_id = db.Column(db.Integer, db.ForeignKey("payments.id"), nullable=False, index=True)

    amount_paise = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(20), nullable=False, default=RefundStatus.PENDING)
    gateway_refund_id = db.Column(db.String(255), nullable=True, unique=True, index=True)
    reason = db.Column(db.String(120), nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    def to_dict(self):
        return {
            "id": self.id,
            "payment_id": self.payment_id,
            "amount_paise": self.amount_paise,
            "status": self.status,
            "gateway_refund_id": self.gateway_refund_id,
        }
