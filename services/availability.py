"""
Slot grid, per-day availability and booking-time slot validation.

Healer windows are ``{"monday": {"start": "10:00", "end": "17:00"}, ...}``
and are read in the configured business timezone. Bookings are stored as
naive UTC instants, so every overlap test is done on absolute instants.
"""
import re
from dataclasses import dataclass
from datetime import datetime, timedelta

from flask import current_app

from errors import ValidationError, NotFoundError, ConflictError
from models import db
from models.booking import Booking, BookingStatus
from models.healer import Healer
from models.service import Service
from utils.clock import (
    DAY_NAMES,
    day_bounds_utc,
    day_name,
    local_to_utc,
    parse_date,
    to_local,
    utcnow,
)

_HHMM = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


def _cfg(key, default):
    return current_app.config.get(key, default)


def generate_day_slots(start_hour: int = 10, end_hour: int = 20, step_minutes: int = 30):
    """Canonical "HH:MM" labels over [start_hour, end_hour)."""
    slots = []
    minute = start_hour * 60
    while minute < end_hour * 60:
        slots.append(f"{minute // 60:02d}:{minute % 60:02d}")
        minute += step_minutes
    return slots


def time_to_minutes(value: str):
    match = _HHMM.match(value or "")
    if not match:
        return None
    return int(match.group(1)) * 60 + int(match.group(2))


def is_time_in_availability(time_str: str, day: str, availability) -> bool:
    if not availability:
        return False
    window = availability.get(day.lower())
    if not window or not window.get("start") or not window.get("end"):
        return False

    t = time_to_minutes(time_str)
    start = time_to_minutes(window["start"])
    end = time_to_minutes(window["end"])
    if t is None or start is None or end is None:
        return False
    return start <= t < end


def overlaps(start_a: datetime, minutes_a: int, start_b: datetime, minutes_b: int) -> bool:
    end_a = start_a + timedelta(minutes=minutes_a)
    end_b = start_b + timedelta(minutes=minutes_b)
    return start_a < end_b and end_a > start_b


def find_conflict(start: datetime, duration_min: int, bookings):
    for booking in bookings:
        if overlaps(start, duration_min, booking.scheduled_at, booking.duration_min):
            return booking
    return None


def get_healer_availability(healer_id, date_value) -> dict:
    """
    Per-slot availability for one healer on one business day.

    A missing or inactive healer simply has no slots. Slots outside the
    healer's window for that weekday are unavailable; the rest are probed
    against occupying bookings with a fixed probe length.
    """
    day = parse_date(date_value)
    result = {"date": day.isoformat(), "slots": []}

    healer = db.session.get(Healer, healer_id) if healer_id else None
    if not healer or not healer.is_active:
        return result

    weekday = day_name(day)
    grid = generate_day_slots(
        _cfg("SLOT_GRID_START_HOUR", 10),
        _cfg("SLOT_GRID_END_HOUR", 20),
        _cfg("SLOT_MINUTES", 30),
    )
    probe = _cfg("AVAILABILITY_PROBE_MINUTES", 60)

    start_utc, end_utc = day_bounds_utc(day)
    existing = (
        Booking.query
        .filter(
            Booking.healer_id == healer.id,
            Booking.scheduled_at >= start_utc,
            Booking.scheduled_at < end_utc,
            Booking.status.in_(BookingStatus.OCCUPYING),
        )
        .order_by(Booking.scheduled_at.asc())
        .all()
    )

    for label in grid:
        if not is_time_in_availability(label, weekday, healer.availability):
            result["slots"].append({"time": label, "available": False})
            continue

        conflict = find_conflict(local_to_utc(day, label), probe, existing)
        slot = {"time": label, "available": conflict is None}
        if conflict is not None:
            slot["booking_id"] = conflict.id
        result["slots"].append(slot)

    return result


@dataclass
class SlotValidation:
    valid: bool
    error: str = None
    reason: str = None

    def to_dict(self):
        out = {"valid": self.valid}
        if self.error:
            out["error"] = self.error
        return out

    def raise_for_error(self):
        """Turn a failed validation into the matching error type."""
        if self.valid:
            return
        if self.reason in ("PAST_TIME", "MISALIGNED"):
            raise ValidationError(self.error, code=self.reason)
        if self.reason in ("HEALER_INACTIVE", "SERVICE_INACTIVE"):
            raise NotFoundError(self.error, code=self.reason)
        raise ConflictError(self.error, code=self.reason or "SLOT_UNAVAILABLE")


def _invalid(error, reason):
    return SlotValidation(valid=False, error=error, reason=reason)


def validate_booking_slot(healer_id, service_id, scheduled_at: datetime, now: datetime = None,
                          exclude_booking_id=None) -> SlotValidation:
    """
    Re-check a proposed booking start right before it is written.

    Checks run in a fixed order and the first failure is returned.
    ``exclude_booking_id`` keeps a booking from conflicting with itself
    when it is being rescheduled.
    """
    now = now or utcnow()
    if scheduled_at <= now:
        return _invalid("Booking time must be in the future", "PAST_TIME")

    local = to_local(scheduled_at)
    slot_minutes = _cfg("SLOT_MINUTES", 30)
    if local.minute % slot_minutes != 0 or local.second or local.microsecond:
        return _invalid("Booking time must be aligned to 30-minute slots", "MISALIGNED")

    healer = db.session.get(Healer, healer_id) if healer_id else None
    service = db.session.get(Service, service_id) if service_id else None

    if not healer or not healer.is_active:
        return _invalid("Healer not found or inactive", "HEALER_INACTIVE")
    if not service or not service.is_active:
        return _invalid("Service not found or inactive", "SERVICE_INACTIVE")

    weekday = DAY_NAMES[local.weekday()]
    if not is_time_in_availability(local.strftime("%H:%M"), weekday, healer.availability):
        return _invalid("Healer not available at this time", "OUTSIDE_WINDOW")

    scan = timedelta(hours=_cfg("CONFLICT_SCAN_HOURS", 2))
    q = Booking.query.filter(
        Booking.healer_id == healer.id,
        Booking.scheduled_at >= scheduled_at - scan,
        Booking.scheduled_at <= scheduled_at + scan,
        Booking.status.in_(BookingStatus.OCCUPYING),
    )
    if exclude_booking_id is not None:
        q = q.filter(Booking.id != exclude_booking_id)

    if find_conflict(scheduled_at, service.duration, q.all()) is not None:
        return _invalid("Time slot not available", "SLOT_TAKEN")

    return SlotValidation(valid=True)


def normalize_availability(raw) -> dict:
    """Validate a weekly availability payload; days set to null are dropped."""
    if not isinstance(raw, dict):
        raise ValidationError("availability must be an object keyed by day name")

    out = {}
    for key, window in raw.items():
        day = str(key).strip().lower()
        if day not in DAY_NAMES:
            raise ValidationError(f"Unknown day: {key}")
        if window is None:
            continue
        if not isinstance(window, dict):
            raise ValidationError(f"{day}: expected {{start, end}}")
        start = time_to_minutes(window.get("start"))
        end = time_to_minutes(window.get("end"))
        if start is None or end is None:
            raise ValidationError(f"{day}: start and end must be HH:MM")
        if end <= start:
            raise ValidationError(f"{day}: end must be after start")
        out[day] = {"start": window["start"], "end": window["end"]}
    return out


def update_healer_availability(actor, healer_id, raw) -> Healer:
    healer = db.session.get(Healer, healer_id)
    # only the healer themselves or an admin; others get not-found
    if not healer or (healer.user_id != actor.id and not actor.has_role("ADMIN")):
        raise NotFoundError("Healer not found", code="HEALER_NOT_FOUND")

    healer.availability = normalize_availability(raw)
    db.session.commit()
    return healer
