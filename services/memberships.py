import logging

from models import db
from models.membership import VIPMembership, SessionCredit
from models.user import User
from utils.clock import utcnow

logger = logging.getLogger(__name__)

# webhook event -> membership status
SUBSCRIPTION_TARGETS = {
    "subscription.activated": "active",
    "subscription.paused": "paused",
    "subscription.halted": "halted",
    "subscription.cancelled": "cancelled",
}


def grant_activation_credits(membership: VIPMembership) -> int:
    """
    Grant the plan's credits once per membership and mark the user VIP.

    Credits are granted only when the membership has no SessionCredit row
    yet, so replayed activation events never double-grant. Renewals are not
    credited per billing cycle.
    """
    user = db.session.get(User, membership.user_id)
    if user is None:
        return 0
    user.vip = True

    if SessionCredit.query.filter_by(membership_id=membership.id).first():
        return 0

    credits = membership.plan.session_credits if membership.plan else 0
    db.session.add(SessionCredit(user_id=user.id, membership_id=membership.id, credits=credits))
    user.free_session_credits = (user.free_session_credits or 0) + credits
    return credits


def apply_subscription_transition(subscription_id: str, target: str):
    """
    Move a membership to ``target``; no commit. Returns (applied, reason, granted_credits).
    """
    membership = VIPMembership.query.filter_by(subscription_id=subscription_id).first()
    if membership is None:
        return False, "membership-not-found", 0
    if membership.status == target:
        return False, f"already-{target}", 0

    previous = membership.status
    membership.status = target
    now = utcnow()
    granted = 0
    if target == "active":
        if membership.start_date is None:
            membership.start_date = now
        membership.end_date = None
        granted = grant_activation_credits(membership)
    elif target == "cancelled":
        membership.end_date = now

    logger.info("[memberships][transition] subscription=%s %s->%s credits=%s",
                subscription_id, previous, target, granted)
    return True, None, granted
