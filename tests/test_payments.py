import json
from datetime import datetime

import pytest

from models import db
from models.booking import Booking, BookingStatus
from models.outbox_event import OutboxEvent
from models.payment import Payment, PaymentStatus
from models.program import Program, ProgramEnrollment
from models.user import User
from services.programs import build_schedule
from tests.helpers import checkout_signature, day_at


@pytest.fixture
def booking(make_user, make_healer, make_service, make_booking):
    user = make_user()
    return make_booking(user, make_healer(), make_service(price_paise=10000), day_at(6, 11),
                        status=BookingStatus.PENDING)


def _owner(booking):
    return db.session.get(User, booking.user_id)


class TestCreateOrder:
    def test_order_for_booking(self, client, login, booking, fake_gateway):
        login(_owner(booking))

        resp = client.post("/payments/create-order", json={"booking_id": booking.id})

        assert resp.status_code == 200
        body = resp.get_json()
        assert body["order_id"] == "order_1"
        assert body["amount_paise"] == 10000
        assert body["currency"] == "INR"
        assert body["key"] == "key_test"
        payment = db.session.get(Payment, body["payment_id"])
        assert payment.status_enum == PaymentStatus.PENDING
        assert payment.status == "pending"
        assert fake_gateway.orders[0]["amount"] == 10000

    def test_reopening_an_order_reuses_the_payment_row(self, client, login, booking):
        login(_owner(booking))

        first = client.post("/payments/create-order", json={"booking_id": booking.id}).get_json()
        second = client.post("/payments/create-order", json={"booking_id": booking.id}).get_json()

        assert first["payment_id"] == second["payment_id"]
        assert second["order_id"] == "order_2"

    @pytest.mark.parametrize("payload", [
        {},
        {"booking_id": 1, "type": "PROGRAM", "amount_paise": 100},
        {"type": "PROGRAM"},
        {"type": "GIFT", "amount_paise": 100},
        {"booking_id": "1"},
    ])
    def test_rejects_ambiguous_requests(self, client, login, make_user, payload):
        login(make_user())
        assert client.post("/payments/create-order", json=payload).status_code == 400

    def test_gateway_unavailable(self, app, client, login, booking):
        app.extensions["payment_gateway"] = None
        login(_owner(booking))

        resp = client.post("/payments/create-order", json={"booking_id": booking.id})

        assert resp.status_code == 502
        assert resp.get_json()["code"] == "GATEWAY_UNAVAILABLE"


class TestVerify:
    def _order(self, client, booking):
        return client.post("/payments/create-order", json={"booking_id": booking.id}).get_json()

    def test_valid_signature_confirms_booking(self, client, login, booking):
        login(_owner(booking))
        order = self._order(client, booking)

        resp = client.post("/payments/verify", json={
            "order_id": order["order_id"],
            "payment_id": "pay_abc",
            "signature": checkout_signature(order["order_id"], "pay_abc"),
        })

        assert resp.status_code == 200
        assert resp.get_json()["verified"] is True
        payment = db.session.get(Payment, order["payment_id"])
        assert payment.status_enum == PaymentStatus.SUCCESS
        assert payment.gateway_payment_id == "pay_abc"
        assert payment.paid_at is not None
        assert db.session.get(Booking, booking.id).status == BookingStatus.CONFIRMED
        assert OutboxEvent.query.filter_by(event_type="PaymentCaptured").count() == 1

        again = client.post("/payments/verify", json={
            "order_id": order["order_id"],
            "payment_id": "pay_abc",
            "signature": checkout_signature(order["order_id"], "pay_abc"),
        })
        assert again.get_json()["idempotent"] is True
        assert OutboxEvent.query.filter_by(event_type="PaymentCaptured").count() == 1

    def test_bad_signature_changes_nothing(self, client, login, booking):
        login(_owner(booking))
        order = self._order(client, booking)

        resp = client.post("/payments/verify", json={
            "order_id": order["order_id"], "payment_id": "pay_abc", "signature": "0" * 64})

        assert resp.status_code == 400
        assert resp.get_json()["code"] == "INVALID_SIGNATURE"
        assert db.session.get(Payment, order["payment_id"]).status_enum == PaymentStatus.PENDING

    def test_other_users_order_is_not_found(self, client, login, booking, make_user):
        login(_owner(booking))
        order = self._order(client, booking)
        login(make_user())

        resp = client.post("/payments/verify", json={
            "order_id": order["order_id"],
            "payment_id": "pay_abc",
            "signature": checkout_signature(order["order_id"], "pay_abc"),
        })

        assert resp.status_code == 404

    def test_missing_fields(self, client, login, make_user):
        login(make_user())
        assert client.post("/payments/verify", json={"order_id": "order_1"}).status_code == 400


class TestProgramActivation:
    def test_verified_program_payment_activates_enrollment(self, client, login, make_user):
        user = make_user()
        program = Program(slug="calm-8", title="Calm in 8", total_sessions=8, sessions_per_week=2,
                          duration_minutes=45, price_paise=40000)
        db.session.add(program)
        db.session.flush()
        enrollment = ProgramEnrollment(user_id=user.id, program_id=program.id)
        db.session.add(enrollment)
        db.session.commit()
        login(user)

        order = client.post("/payments/create-order", json={
            "type": "PROGRAM", "amount_paise": 40000, "metadata": {"enrollment_id": enrollment.id},
        }).get_json()
        resp = client.post("/payments/verify", json={
            "order_id": order["order_id"],
            "payment_id": "pay_prog",
            "signature": checkout_signature(order["order_id"], "pay_prog"),
        })

        activation = resp.get_json()["activation"]
        assert activation["activated"] is True
        assert activation["enrollment_id"] == enrollment.id
        enrollment = db.session.get(ProgramEnrollment, enrollment.id)
        assert enrollment.status == "active"
        assert len(enrollment.schedule) == 8
        assert json.loads(db.session.get(Payment, order["payment_id"]).metadata_json) == {
            "enrollment_id": enrollment.id}


def test_build_schedule_spreads_sessions_across_weeks():
    start = datetime(2030, 1, 7, 9, 0)
    sessions, end = build_schedule(4, 2, 60, start)

    assert [s["scheduled_at"] for s in sessions] == [
        "2030-01-07T09:00:00Z",
        "2030-01-10T09:00:00Z",
        "2030-01-14T09:00:00Z",
        "2030-01-17T09:00:00Z",
    ]
    assert end == datetime(2030, 1, 17, 10, 0)
