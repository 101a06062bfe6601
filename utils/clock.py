from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from flask import current_app, has_app_context

from errors import ValidationError

DAY_NAMES = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


def utcnow() -> datetime:
    # Naive UTC, matching how DateTime columns are stored
    return datetime.now(timezone.utc).replace(tzinfo=None)


def business_tz() -> ZoneInfo:
    name = "UTC"
    if has_app_context():
        name = current_app.config.get("BUSINESS_TIMEZONE") or "UTC"
    return ZoneInfo(name)


def to_local(instant: datetime) -> datetime:
    """Naive UTC instant -> aware datetime in the business timezone."""
    return instant.replace(tzinfo=timezone.utc).astimezone(business_tz())


def local_to_utc(day: date, hhmm: str) -> datetime:
    hours, minutes = (int(p) for p in hhmm.split(":"))
    local = datetime.combine(day, time(hours, minutes), tzinfo=business_tz())
    return local.astimezone(timezone.utc).replace(tzinfo=None)


def day_bounds_utc(day: date):
    """[start, end) of a business-local civil day as naive UTC instants."""
    tz = business_tz()
    start = datetime.combine(day, time(0, 0), tzinfo=tz)
    end = datetime.combine(day + timedelta(days=1), time(0, 0), tzinfo=tz)
    return (
        start.astimezone(timezone.utc).replace(tzinfo=None),
        end.astimezone(timezone.utc).replace(tzinfo=None),
    )


def day_name(day: date) -> str:
    return DAY_NAMES[day.weekday()]


def hours_until(instant: datetime, now: datetime) -> float:
    return (instant - now).total_seconds() / 3600


def parse_date(value) -> date:
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    try:
        return date.fromisoformat(str(value).strip())
    except (TypeError, ValueError):
        raise ValidationError("Invalid date. Use YYYY-MM-DD", code="INVALID_DATE")


def parse_instant(value) -> datetime:
    """
    Parse an ISO-8601 timestamp into a naive UTC datetime.
    Offsets are honoured; values without an offset are taken as UTC.
    """
    if isinstance(value, datetime):
        parsed = value
    else:
        raw = str(value or "").strip()
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(raw)
        except ValueError:
            raise ValidationError(
                "Invalid scheduled_at date format. Use ISO e.g. 2026-01-20T10:30:00Z",
                code="INVALID_DATETIME",
            )
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def isoformat_utc(instant: datetime) -> str:
    if instant is None:
        return None
    return instant.replace(tzinfo=timezone.utc).isoformat().replace("+00:00", "Z")
