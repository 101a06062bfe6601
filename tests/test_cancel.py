from datetime import timedelta

import pytest

from config import ReconciliationConfig
from errors import StateError
from models.booking import BookingStatus
from models.outbox_event import OutboxEvent
from models.payment import PaymentStatus
from models.refund import Refund, RefundStatus
from services.bookings import CANCEL_HARD, cancel_booking
from services.gateway import RefundResult
from services.refunds import RefundIssuer
from services.webhooks import WebhookReconciler
from tests.helpers import FakeGateway, day_at


def _issuer(gateway, refunds_enabled=True):
    config = ReconciliationConfig(refunds_enabled=refunds_enabled, webhook_secret="", gateway_key_secret="")
    return RefundIssuer(config, gateway=gateway)


@pytest.fixture
def paid_booking(make_user, make_healer, make_service, make_booking, make_payment):
    user = make_user()
    booking = make_booking(user, make_healer(), make_service(price_paise=10000), day_at(10, 11))
    payment = make_payment(booking)
    return user, booking, payment


class TestSoftCancelOverHttp:
    def test_full_refund_then_idempotent_repeat(self, client, login, paid_booking, fake_gateway):
        user, booking, payment = paid_booking
        login(user)

        resp = client.patch(f"/bookings/{booking.id}", json={"action": "cancel", "reason": "travel"})

        assert resp.status_code == 200
        body = resp.get_json()
        assert body["ok"] is True
        assert body["booking"]["status"] == BookingStatus.CANCELLED
        assert body["booking"]["cancel_reason"] == "travel"
        assert body["refund"]["band"] == "FULL"
        assert body["refund"]["refund_paise"] == 10000
        assert body["refund"]["status"] == RefundStatus.PENDING
        assert fake_gateway.refunds == [{"payment_id": payment.gateway_payment_id, "amount": 10000}]

        again = client.patch(f"/bookings/{booking.id}", json={"action": "cancel"})

        assert again.status_code == 200
        assert again.get_json()["already_cancelled"] is True
        assert "refund" not in again.get_json()
        assert Refund.query.count() == 1
        assert len(fake_gateway.refunds) == 1

    def test_unknown_action(self, client, login, paid_booking):
        user, booking, _ = paid_booking
        login(user)

        assert client.patch(f"/bookings/{booking.id}", json={"action": "pause"}).status_code == 400

    def test_someone_elses_booking_is_not_found(self, client, login, paid_booking, make_user):
        _, booking, _ = paid_booking
        login(make_user())

        assert client.patch(f"/bookings/{booking.id}", json={"action": "cancel"}).status_code == 404


class TestSoftCancelBands:
    def test_half_refund_between_24_and_48_hours(self, paid_booking, fake_gateway):
        user, booking, payment = paid_booking
        now = booking.scheduled_at - timedelta(hours=30)

        result = cancel_booking(user.id, booking.id, refund_issuer=_issuer(fake_gateway), now=now)

        assert result.quote.band == "HALF"
        assert result.refund.amount_paise == 5000
        assert result.booking.refund_band == "HALF"
        assert fake_gateway.refunds[0]["amount"] == 5000

    def test_inside_24_hours_cancels_without_refund(self, paid_booking, fake_gateway):
        user, booking, _ = paid_booking
        now = booking.scheduled_at - timedelta(hours=10)

        result = cancel_booking(user.id, booking.id, refund_issuer=_issuer(fake_gateway), now=now)

        assert result.booking.status == BookingStatus.CANCELLED
        assert result.to_dict()["refund"] == {"band": "NONE", "refund_paise": 0}
        assert Refund.query.count() == 0
        assert fake_gateway.refunds == []

    def test_unpaid_booking_reports_band_with_zero_amount(self, make_user, make_healer, make_service,
                                                          make_booking, fake_gateway):
        user = make_user()
        booking = make_booking(user, make_healer(), make_service(), day_at(10, 11), status=BookingStatus.PENDING)

        result = cancel_booking(user.id, booking.id, refund_issuer=_issuer(fake_gateway))

        assert result.quote.band == "FULL"
        assert result.quote.refund_paise == 0
        assert Refund.query.count() == 0

    def test_credit_funded_booking_is_not_refunded(self, make_user, make_healer, make_service,
                                                   make_booking, make_payment, fake_gateway):
        user = make_user()
        booking = make_booking(user, make_healer(), make_service(), day_at(10, 11))
        make_payment(booking, gateway="vip_credit", amount_paise=0)

        result = cancel_booking(user.id, booking.id, refund_issuer=_issuer(fake_gateway))

        assert result.quote.refund_paise == 0
        assert fake_gateway.refunds == []

    def test_pending_payment_is_not_refunded(self, make_user, make_healer, make_service,
                                             make_booking, make_payment, fake_gateway):
        user = make_user()
        booking = make_booking(user, make_healer(), make_service(), day_at(10, 11), status=BookingStatus.PENDING)
        make_payment(booking, status=PaymentStatus.PENDING)

        result = cancel_booking(user.id, booking.id, refund_issuer=_issuer(fake_gateway))

        assert result.refund is None
        assert Refund.query.count() == 0


class TestRefundIssuance:
    def test_disabled_refunds_are_simulated(self, paid_booking, fake_gateway):
        user, booking, _ = paid_booking

        result = cancel_booking(user.id, booking.id, refund_issuer=_issuer(fake_gateway, refunds_enabled=False))

        assert result.refund.status == RefundStatus.SIMULATED
        assert fake_gateway.refunds == []
        assert OutboxEvent.query.filter_by(event_type="RefundRecorded").count() == 1

    def test_gateway_failure_still_cancels(self, paid_booking, fake_gateway):
        user, booking, _ = paid_booking
        fake_gateway.fail_refunds = True

        result = cancel_booking(user.id, booking.id, refund_issuer=_issuer(fake_gateway))

        assert result.booking.status == BookingStatus.CANCELLED
        assert result.refund is None
        assert Refund.query.count() == 0

    def test_issue_is_idempotent_per_payment_and_amount(self, paid_booking, fake_gateway):
        _, booking, payment = paid_booking
        issuer = _issuer(fake_gateway)

        first = issuer.issue(payment, 5000, reason="cancel:HALF", booking_id=booking.id)
        second = issuer.issue(payment, 5000, reason="cancel:HALF", booking_id=booking.id)

        assert first.id == second.id
        assert len(fake_gateway.refunds) == 1

    def test_missing_gateway_records_nothing(self, paid_booking):
        _, booking, payment = paid_booking

        assert _issuer(None).issue(payment, 5000, booking_id=booking.id) is None
        assert Refund.query.count() == 0

    def test_webhook_recorded_refund_first(self, paid_booking):
        user, booking, payment = paid_booking
        gateway_payment_id = payment.gateway_payment_id
        reconciler = WebhookReconciler(ReconciliationConfig(refunds_enabled=True, webhook_secret="",
                                                            gateway_key_secret=""))

        class WebhookFirstGateway(FakeGateway):
            def refund(self, payment_id, amount_paise, notes=None):
                reconciler.apply({"event": "refund.processed", "payload": {"refund": {"entity": {
                    "id": "rfnd_early", "payment_id": gateway_payment_id, "amount": amount_paise}}}})
                return RefundResult(gateway_refund_id="rfnd_early", status="PENDING")

        result = cancel_booking(user.id, booking.id, refund_issuer=_issuer(WebhookFirstGateway()))

        assert result.booking.status == BookingStatus.CANCELLED
        assert result.refund.gateway_refund_id == "rfnd_early"
        assert result.refund.status == RefundStatus.SUCCESS
        assert Refund.query.count() == 1


class TestHardCancel:
    def test_blocked_inside_cutoff(self, client, login, make_user, make_healer, make_service, make_booking):
        user = make_user()
        booking = make_booking(user, make_healer(), make_service(), day_at(0, 23, 30))
        login(user)

        resp = client.delete(f"/bookings/{booking.id}")

        assert resp.status_code == 403
        assert resp.get_json()["code"] == "TOO_CLOSE_TO_START"

    def test_cancels_without_refund(self, client, login, paid_booking, fake_gateway):
        user, booking, _ = paid_booking
        login(user)

        resp = client.delete(f"/bookings/{booking.id}")

        assert resp.status_code == 200
        assert resp.headers["Deprecation"] == "true"
        assert resp.get_json()["booking"]["status"] == BookingStatus.CANCELLED
        assert "refund" not in resp.get_json()
        assert Refund.query.count() == 0
        assert fake_gateway.refunds == []

    def test_hard_cancel_reports_already_cancelled(self, paid_booking):
        user, booking, _ = paid_booking
        cancel_booking(user.id, booking.id, mode=CANCEL_HARD)

        assert cancel_booking(user.id, booking.id, mode=CANCEL_HARD).already_cancelled


def test_completed_booking_cannot_be_cancelled(make_user, make_healer, make_service, make_booking):
    user = make_user()
    booking = make_booking(user, make_healer(), make_service(), day_at(10, 11), status=BookingStatus.COMPLETED)

    with pytest.raises(StateError) as info:
        cancel_booking(user.id, booking.id)
    assert info.value.code == "NOT_CANCELLABLE"
