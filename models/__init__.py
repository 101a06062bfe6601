from .db import db
from .user import User, Role, user_roles
from .audit_log import AuditLog
from .session import Session
from .healer import Healer
from .service import Service
from .booking import Booking, BookingStatus
from .payment import Payment, PaymentStatus
from .refund import Refund, RefundStatus
from .membership import MembershipPlan, VIPMembership, SessionCredit
from .program import Program, ProgramEnrollment
from .outbox_event import OutboxEvent
