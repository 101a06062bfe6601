from datetime import timedelta

import pytest

from models import db
from models.audit_log import AuditLog
from models.booking import Booking, BookingStatus
from models.outbox_event import OutboxEvent
from models.user import User
from services.availability import SlotValidation
from services.bookings import create_booking, reschedule_booking
from errors import ConflictError
from tests.helpers import day_at, iso


@pytest.fixture
def setup(make_user, make_healer, make_service):
    return make_user(), make_healer(), make_service(duration=60, price_paise=10000)


def _book(client, healer, service, at):
    return client.post("/bookings", json={
        "healer_id": healer.id,
        "service_id": service.id,
        "scheduled_at": iso(at),
    })


def test_requires_login(client):
    assert client.get("/bookings").status_code == 401
    assert client.post("/bookings", json={}).status_code == 401


def test_state_changes_require_csrf_header(client, setup, login):
    user, healer, service = setup
    login(user)
    client.environ_base.pop("HTTP_X_CSRF_TOKEN")

    resp = _book(client, healer, service, day_at(4, 11))

    assert resp.status_code == 403
    assert resp.get_json()["error"] == "CSRF validation failed"


def test_create_booking_snapshots_service(client, setup, login):
    user, healer, service = setup
    login(user)

    resp = _book(client, healer, service, day_at(4, 11))

    assert resp.status_code == 201
    data = resp.get_json()["data"]
    assert data["status"] == BookingStatus.PENDING
    assert data["duration_min"] == 60
    assert data["price_paise"] == 10000
    assert data["scheduled_at"] == iso(day_at(4, 11))


def test_double_booking_and_overlap_conflict(client, setup, login, make_user):
    user, healer, service = setup
    login(user)
    assert _book(client, healer, service, day_at(4, 11)).status_code == 201

    login(make_user())
    same = _book(client, healer, service, day_at(4, 11))
    overlap = _book(client, healer, service, day_at(4, 11, 30))

    assert same.status_code == 409
    assert overlap.status_code == 409
    assert overlap.get_json()["code"] == "SLOT_TAKEN"
    assert _book(client, healer, service, day_at(4, 12)).status_code == 201


def test_rejects_bad_input(client, setup, login):
    user, healer, service = setup
    login(user)

    missing = client.post("/bookings", json={"healer_id": healer.id})
    bad_date = client.post("/bookings", json={
        "healer_id": healer.id, "service_id": service.id, "scheduled_at": "tomorrow"})
    misaligned = _book(client, healer, service, day_at(4, 11, 15))
    past = _book(client, healer, service, day_at(-1, 11))

    assert missing.status_code == 400
    assert bad_date.get_json()["code"] == "INVALID_DATETIME"
    assert misaligned.get_json()["code"] == "MISALIGNED"
    assert past.get_json()["code"] == "PAST_TIME"


def test_unknown_healer_is_not_found(client, setup, login):
    user, _, service = setup
    login(user)

    resp = client.post("/bookings", json={
        "healer_id": 999, "service_id": service.id, "scheduled_at": iso(day_at(4, 11))})

    assert resp.status_code == 404


def test_unique_index_turns_a_lost_race_into_conflict(setup, make_booking, make_user, monkeypatch):
    user, healer, service = setup
    at = day_at(4, 11)
    rival = make_user()

    def validate_then_lose_race(healer_id, service_id, scheduled_at, **kwargs):
        # another transaction commits the same slot after validation passed
        make_booking(rival, healer, service, scheduled_at, status=BookingStatus.PENDING)
        return SlotValidation(valid=True)

    monkeypatch.setattr("services.bookings.validate_booking_slot", validate_then_lose_race)

    with pytest.raises(ConflictError) as exc:
        create_booking(user.id, healer.id, service.id, at)

    assert exc.value.code == "SLOT_TAKEN"
    assert Booking.query.filter_by(user_id=user.id).count() == 0
    assert Booking.query.filter_by(user_id=rival.id).count() == 1
    assert AuditLog.query.filter_by(action="BOOKING_FAIL_ALREADY_BOOKED", user_id=user.id).count() == 1


def test_lost_race_on_reschedule_keeps_old_time(setup, make_booking, make_user, monkeypatch):
    user, healer, service = setup
    original = day_at(4, 11)
    target = day_at(5, 11)
    booking = make_booking(user, healer, service, original)

    def validate_then_lose_race(healer_id, service_id, scheduled_at, **kwargs):
        make_booking(make_user(), healer, service, scheduled_at, status=BookingStatus.PENDING)
        return SlotValidation(valid=True)

    monkeypatch.setattr("services.bookings.validate_booking_slot", validate_then_lose_race)

    with pytest.raises(ConflictError):
        reschedule_booking(user.id, booking.id, target, now=original - timedelta(days=3))

    moved = db.session.get(Booking, booking.id)
    assert moved.scheduled_at == original
    assert moved.status == BookingStatus.CONFIRMED
    assert AuditLog.query.filter_by(action="BOOKING_RESCHEDULE_FAIL_ALREADY_BOOKED").count() == 1


def test_conflict_is_rendered_as_409(client, setup, login, make_booking, make_user, monkeypatch):
    user, healer, service = setup
    login(user)

    def validate_then_lose_race(healer_id, service_id, scheduled_at, **kwargs):
        make_booking(make_user(), healer, service, scheduled_at, status=BookingStatus.PENDING)
        return SlotValidation(valid=True)

    monkeypatch.setattr("services.bookings.validate_booking_slot", validate_then_lose_race)

    resp = _book(client, healer, service, day_at(4, 11))

    assert resp.status_code == 409
    assert resp.get_json()["code"] == "SLOT_TAKEN"


def test_create_booking_after_cancel_reuses_slot(setup, make_booking, make_user):
    user, healer, service = setup
    at = day_at(4, 11)
    make_booking(make_user(), healer, service, at, status=BookingStatus.CANCELLED)

    booking = create_booking(user.id, healer.id, service.id, at)

    assert booking.status == BookingStatus.PENDING


def test_create_booking_conflict_raises(setup, make_booking, make_user):
    user, healer, service = setup
    at = day_at(4, 11)
    make_booking(make_user(), healer, service, at)

    with pytest.raises(ConflictError):
        create_booking(user.id, healer.id, service.id, at + timedelta(minutes=30))


def test_list_and_get_are_scoped_to_owner(client, setup, login, make_booking, make_user):
    user, healer, service = setup
    mine = make_booking(user, healer, service, day_at(4, 11))
    theirs = make_booking(make_user(), healer, service, day_at(4, 14))
    login(user)

    listed = client.get("/bookings").get_json()["data"]
    assert [b["id"] for b in listed] == [mine.id]
    assert client.get(f"/bookings/{mine.id}").status_code == 200
    assert client.get(f"/bookings/{theirs.id}").status_code == 404

    assert client.get("/bookings?status=confirmed").get_json()["data"][0]["id"] == mine.id
    assert client.get("/bookings?status=cancelled").get_json()["data"] == []
    assert client.get("/bookings?status=bogus").status_code == 400


def test_complete_by_owning_healer(client, setup, login, make_booking, make_user):
    user, healer, service = setup
    booking = make_booking(user, healer, service, day_at(4, 11))
    other_healer_user = make_user(roles=("HEALER",))

    login(other_healer_user)
    assert client.post(f"/bookings/{booking.id}/complete").status_code == 404

    login(user)
    assert client.post(f"/bookings/{booking.id}/complete").status_code == 403

    healer_user = db.session.get(User, healer.user_id)
    login(healer_user)
    resp = client.post(f"/bookings/{booking.id}/complete")
    assert resp.status_code == 200
    assert resp.get_json()["data"]["status"] == BookingStatus.COMPLETED
    assert OutboxEvent.query.filter_by(event_type="BookingCompleted").count() == 1

    again = client.post(f"/bookings/{booking.id}/complete")
    assert again.status_code == 409
    assert again.get_json()["code"] == "INVALID_TRANSITION"
