from models.db import db
from utils.clock import utcnow

class Healer(db.Model):
    __tablename__ = "healers"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, unique=True)

    display_name = db.Column(db.String(120), nullable=False)
    bio = db.Column(db.Text, nullable=True)

    # {"monday": {"start": "10:00", "end": "17:00"}, ...}; a missing day means unavailable
    availability = db.Column(db.JSON, nullable=False, default=dict)

    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)
