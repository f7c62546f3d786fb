import hashlib
import hmac
import json
import os
import time

# ustawienia muszą być w env zanim zaimportujemy storefront (settings czyta env przy imporcie)
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET", "test-jwt-secret")
os.environ.setdefault("PAYMENT_WEBHOOK_SECRET", "whsec_test")
os.environ.setdefault("PASSWORD_HASH_ITERATIONS", "1000")

from decimal import Decimal

import fakeredis
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from storefront.api.deps import get_notifier, get_payment_client, get_redis
from storefront.api.routers.webhooks import get_verifier
from storefront.data.database import Base, get_db
from storefront.data.models import CartItemModel, CartModel, ProductModel, UserModel
from storefront.main import create_app
from storefront.services.auth_service import create_access_token, hash_password
from storefront.services.payment_events import WebhookVerifier

WEBHOOK_SECRET = "whsec_test"


def stripe_signature_header(body: bytes, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    """Nagłówek w formacie Stripe-Signature: t=<unix>,v1=<hmac-sha256 z "<t>.<body>">."""
    timestamp = int(time.time()) if timestamp is None else timestamp
    signed = f"{timestamp}.".encode() + body
    return f"t={timestamp},v1={hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()}"


class RecordingNotifier:
    def __init__(self):
        self.sent = []

    def send_order_confirmation(self, email, order_id):
        self.sent.append(("order_confirmation", email, order_id))
        return True

    def send_order_status_update(self, email, username, order_id, status):
        self.sent.append(("order_status", email, order_id, status))
        return True

    def send_verification_email(self, email, token, resend=False):
        self.sent.append(("verification", email, token))
        return True

    def send_password_reset(self, email, token):
        self.sent.append(("password_reset", email, token))
        return True

    def of_kind(self, kind):
        return [s for s in self.sent if s[0] == kind]


@pytest.fixture()
def engine(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'storefront.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture()
def fresh_session(session_factory):
    """Osobna sesja do asercji na stanie zapisanym w bazie."""
    sessions = []

    def _open():
        s = session_factory()
        sessions.append(s)
        return s

    yield _open

    for s in sessions:
        s.close()


@pytest.fixture()
def redis_client():
    return fakeredis.FakeRedis(server=fakeredis.FakeServer(), decode_responses=True)


@pytest.fixture()
def notifier():
    return RecordingNotifier()


@pytest.fixture()
def payment_client():
    class FakePaymentClient:
        def __init__(self):
            self.calls = []

        def create_payment_intent(self, amount, currency, order_id, idempotency_key):
            self.calls.append(
                {"amount": amount, "currency": currency, "order_id": order_id, "idempotency_key": idempotency_key}
            )
            return {"id": f"pi_{order_id}", "client_secret": f"pi_{order_id}_secret_x"}

    return FakePaymentClient()


@pytest.fixture()
def app(session_factory, redis_client, notifier, payment_client):
    app = create_app()

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = lambda: redis_client
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_payment_client] = lambda: payment_client
    app.dependency_overrides[get_verifier] = lambda: WebhookVerifier(secret=WEBHOOK_SECRET)
    return app


@pytest.fixture()
def client(app):
    return TestClient(app)


@pytest.fixture()
def make_user(db):
    counter = {"n": 0}

    def _make(username=None, email=None, password="secret-pass", is_admin=False):
        counter["n"] += 1
        username = username or f"user{counter['n']}"
        user = UserModel(
            username=username,
            email=email or f"{username}@example.com",
            password_hash=hash_password(password),
            is_admin=is_admin,
        )
        db.add(user)
        db.commit()
        return user

    return _make


@pytest.fixture()
def make_product(db):
    def _make(name="Widget", price="10.00", stock=10):
        product = ProductModel(name=name, price=Decimal(price), stock=stock)
        db.add(product)
        db.commit()
        return product

    return _make


@pytest.fixture()
def make_cart(db):
    def _make(user=None, items=()):
        cart = CartModel(user_id=user.id if user else None)
        db.add(cart)
        db.flush()
        for product, quantity in items:
            db.add(CartItemModel(cart_id=cart.id, product_id=product.id, quantity=quantity))
        db.commit()
        return cart

    return _make


def _auth_headers(user):
    return {"Authorization": f"Bearer {create_access_token(user)}"}


@pytest.fixture()
def auth_headers():
    return _auth_headers


@pytest.fixture()
def sign_event():
    """Zwraca (body, nagłówek Stripe-Signature) dla zdarzenia."""

    def _sign(event, secret=WEBHOOK_SECRET, timestamp=None):
        body = json.dumps(event).encode()
        return body, stripe_signature_header(body, secret, timestamp)

    return _sign
