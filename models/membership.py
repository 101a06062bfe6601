from models.db import db
from utils.clock import utcnow


class MembershipPlan(db.Model):
    __tablename__ = "membership_plans"

    id = db.Column(db.Integer, primary_key=True)
    slug = db.Column(db.String(80), unique=True, nullable=False)
    title = db.Column(db.String(120), nullable=False)
    price_paise = db.Column(db.Integer, nullable=False, default=0)
    interval = db.Column(db.String(20), nullable=False, default="monthly")

    # credits granted when a subscription on this plan activates
    session_credits = db.Column(db.Integer, nullable=False, default=0)
    gateway_plan_id = db.Column(db.String(255), nullable=True)


class VIPMembership(db.Model):
    __tablename__ = "vip_memberships"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    plan_id = db.Column(db.Integer, db.ForeignKey("membership_plans.id"), nullable=True)

    subscription_id = db.Column(db.String(255), unique=True, nullable=False, index=True)
    status = db.Column(db.String(20), nullable=False, default="pending")  # pending, active, paused, halted, cancelled

    start_date = db.Column(db.DateTime, nullable=True)
    end_date = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    plan = db.relationship("MembershipPlan")
    user = db.relationship("User")


class SessionCredit(db.Model):
    __tablename__ = "session_credits"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    membership_id = db.Column(db.Integer, db.ForeignKey("vip_memberships.id"), nullable=False, index=True)
    credits = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
