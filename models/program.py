from models.db import db
from utils.clock import utcnow


class Program(db.Model):
    __tablename__ = "programs"

    id = db.Column(db.Integer, primary_key=True)
    slug = db.Column(db.String(120), unique=True, nullable=False)
    title = db.Column(db.String(160), nullable=False)

    total_sessions = db.Column(db.Integer, nullable=False, default=1)
    sessions_per_week = db.Column(db.Integer, nullable=False, default=1)
    duration_minutes = db.Column(db.Integer, nullable=False, default=60)
    price_paise = db.Column(db.Integer, nullable=False, default=0)


class ProgramEnrollment(db.Model):
    __tablename__ = "program_enrollments"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    program_id = db.Column(db.Integer, db.ForeignKey("programs.id"), nullable=False, index=True)
    healer_id = db.Column(db.Integer, db.ForeignKey("healers.id"), nullable=True)

    status = db.Column(db.String(20), nullable=False, default="pending_payment")  # pending_payment, active, cancelled
    start_date = db.Column(db.DateTime, nullable=True)
    end_date = db.Column(db.DateTime, nullable=True)
    schedule = db.Column(db.JSON, nullable=True)
    progress = db.Column(db.JSON, nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
