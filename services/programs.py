import logging
from dataclasses import dataclass, asdict
from datetime import timedelta

from models import db
from models.payment import Payment
from models.program import Program, ProgramEnrollment
from utils.clock import utcnow, isoformat_utc

logger = logging.getLogger(__name__)


@dataclass
class ActivationResult:
    found: bool
    is_program: bool = False
    activated: bool = False
    idempotent: bool = False
    reason: str = None
    enrollment_id: int = None
    payment_id: int = None

    def to_dict(self):
        return asdict(self)


def build_schedule(total_sessions: int, sessions_per_week: int, duration_minutes: int, start):
    """Spread sessions evenly across each week, starting at ``start``."""
    per_week = max(1, sessions_per_week)
    offsets = [(i * 7) // per_week for i in range(per_week)]

    sessions = []
    at = None
    for i in range(total_sessions):
        cycle, idx = divmod(i, per_week)
        at = start + timedelta(days=offsets[idx] + cycle * 7)
        sessions.append({
            "index": i,
            "scheduled_at": isoformat_utc(at),
            "duration_minutes": duration_minutes,
            "status": "scheduled",
        })

    end_date = at + timedelta(minutes=duration_minutes) if at is not None else None
    return sessions, end_date


def activate_program_enrollment(payment: Payment) -> ActivationResult:
    if payment is None:
        return ActivationResult(found=False, reason="payment_not_found")
    if payment.type != "PROGRAM":
        return ActivationResult(found=True, reason="not_program", payment_id=payment.id)

    enrollment_id = payment.meta.get("enrollment_id")
    if not enrollment_id:
        logger.warning("[programs][activation][missing-enrollment-id] payment=%s", payment.id)
        return ActivationResult(found=True, is_program=True, reason="missing_enrollment_id", payment_id=payment.id)

    enrollment = db.session.get(ProgramEnrollment, int(enrollment_id))
    if not enrollment:
        return ActivationResult(found=True, is_program=True, reason="enrollment_not_found", payment_id=payment.id)
    if enrollment.status == "active":
        return ActivationResult(found=True, is_program=True, idempotent=True,
                                enrollment_id=enrollment.id, payment_id=payment.id)
    if enrollment.status != "pending_payment":
        return ActivationResult(found=True, is_program=True, reason=f"status_{enrollment.status}",
                                enrollment_id=enrollment.id, payment_id=payment.id)

    program = db.session.get(Program, enrollment.program_id)
    if not program:
        return ActivationResult(found=True, is_program=True, reason="program_not_found",
                                enrollment_id=enrollment.id, payment_id=payment.id)

    now = utcnow()
    sessions, end_date = build_schedule(program.total_sessions, program.sessions_per_week,
                                        program.duration_minutes, now)
    enrollment.status = "active"
    enrollment.start_date = now
    enrollment.end_date = end_date
    enrollment.schedule = sessions
    enrollment.progress = {"sessions_completed": 0, "next_session_index": 0}
    if payment.meta.get("healer_id"):
        enrollment.healer_id = int(payment.meta["healer_id"])
    db.session.commit()

    logger.info("[programs][activated] enrollment=%s payment=%s", enrollment.id, payment.id)
    return ActivationResult(found=True, is_program=True, activated=True,
                            enrollment_id=enrollment.id, payment_id=payment.id)
