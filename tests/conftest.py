import pytest

from app import create_app
from models import db
from models.booking import Booking, BookingStatus
from models.healer import Healer
from models.payment import Payment, PaymentStatus
from models.service import Service
from models.user import User, Role
from security.password import hash_password
from tests.helpers import EVERY_DAY, KEY_SECRET, PASSWORD, WEBHOOK_SECRET, FakeGateway


@pytest.fixture
def fake_gateway():
    return FakeGateway()


@pytest.fixture
def app(fake_gateway):
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": "sqlite://",
        "AUTO_CREATE_TABLES": True,
        "BCRYPT_ROUNDS": 4,
        "WEBHOOK_SECRET": WEBHOOK_SECRET,
        "GATEWAY_KEY_ID": "key_test",
        "GATEWAY_KEY_SECRET": KEY_SECRET,
        "REFUNDS_ENABLED": True,
        "PAYMENT_EVENTS_ENABLED": True,
    })
    app.extensions["payment_gateway"] = fake_gateway

    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def db_session(app):
    return db.session


@pytest.fixture
def make_user(app):
    counter = {"n": 0}

    def _make(email=None, roles=("USER",), vip=False, credits=0):
        counter["n"] += 1
        user = User(
            email=email or f"user{counter['n']}@example.com",
            password_hash=hash_password(PASSWORD),
            vip=vip,
            free_session_credits=credits,
        )
        for name in roles:
            user.roles.append(Role.query.filter_by(name=name).first())
        db.session.add(user)
        db.session.commit()
        return user

    return _make


@pytest.fixture
def make_healer(make_user):
    def _make(user=None, availability=None, is_active=True):
        user = user or make_user(roles=("HEALER",))
        healer = Healer(
            user_id=user.id,
            display_name=f"Healer {user.id}",
            availability=EVERY_DAY if availability is None else availability,
            is_active=is_active,
        )
        db.session.add(healer)
        db.session.commit()
        return healer

    return _make


@pytest.fixture
def make_service(app):
    def _make(duration=60, price_paise=10000, is_active=True):
        service = Service(name="Reiki", duration=duration, price_paise=price_paise, is_active=is_active)
        db.session.add(service)
        db.session.commit()
        return service

    return _make


@pytest.fixture
def make_booking(app):
    def _make(user, healer, service, scheduled_at, status=BookingStatus.CONFIRMED):
        booking = Booking(
            user_id=user.id,
            healer_id=healer.id,
            service_id=service.id,
            scheduled_at=scheduled_at,
            duration_min=service.duration,
            price_paise=service.price_paise,
            status=status,
        )
        db.session.add(booking)
        db.session.commit()
        return booking

    return _make


@pytest.fixture
def make_payment(app):
    counter = {"n": 0}

    def _make(booking=None, user=None, status=PaymentStatus.SUCCESS, amount_paise=None,
              gateway="stripe", payment_type="SESSION", metadata_json=None):
        counter["n"] += 1
        payment = Payment(
            booking_id=booking.id if booking else None,
            user_id=user.id if user else (booking.user_id if booking else None),
            type=payment_type,
            gateway=gateway,
            amount_paise=amount_paise if amount_paise is not None else (booking.price_paise if booking else 0),
            gateway_order_id=f"order_seed_{counter['n']}",
            gateway_payment_id=f"pay_seed_{counter['n']}" if status == PaymentStatus.SUCCESS else None,
            metadata_json=metadata_json,
        )
        payment.set_status(status)
        db.session.add(payment)
        db.session.commit()
        return payment

    return _make


@pytest.fixture
def login(client):
    def _login(user):
        resp = client.post("/auth/login", json={"email": user.email, "password": PASSWORD})
        assert resp.status_code == 200
        client.environ_base["HTTP_X_CSRF_TOKEN"] = client.get_cookie("csrf_token").value
        return client

    return _login
