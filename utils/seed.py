import logging

from models import db
from models.user import Role

logger = logging.getLogger(__name__)

DEFAULT_ROLES = ("USER", "HEALER", "ADMIN")


def seed_roles(names=DEFAULT_ROLES) -> int:
    """Create any missing roles; returns how many were added."""
    existing = {r.name for r in Role.query.all()}
    missing = [name for name in names if name not in existing]
    for name in missing:
        db.session.add(Role(name=name))
    db.session.commit()
    if missing:
        logger.info("[seed] roles created: %s", ", ".join(missing))
    return len(missing)
