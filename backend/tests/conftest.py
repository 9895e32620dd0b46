"""
Pytest fixtures for deliveryhub backend tests.

Provides the test app (in-memory SQLite), a per-test clean database, fake
outbound providers, and helpers for registering businesses and logging in.
"""

import hashlib
import hmac
import json
import time

import pytest
from deliveryhub import create_app
from deliveryhub.extensions import db
from deliveryhub.services import auth_service, plan_service
from deliveryhub.services.dispatch_client import DispatchError
from deliveryhub.services.payment_gateway import PaymentGateway
from deliveryhub.services.permission_service import CLAIM_ADMIN


WEBHOOK_SECRET = "whsec_test_secret"

DEFAULT_PASSWORD = "secret1"


class FakeDispatchClient:
    """Records submitted payloads; fails every call while `error` is set."""

    base_url = "https://dispatch.test"
    is_configured = True

    def __init__(self):
        self.calls = []
        self.error = None
        self._next_id = 1000

    def create_order(self, payload: dict) -> str:
        self.calls.append(payload)
        if self.error is not None:
            raise DispatchError(self.error, 503)
        self._next_id += 1
        return str(self._next_id)


class FakePaymentGateway(PaymentGateway):
    """Real signature verification; Checkout creation is recorded, not sent."""

    def __init__(self):
        super().__init__(secret_key="sk_test_fake", webhook_secret=WEBHOOK_SECRET, tolerance=300)
        self.checkout_calls = []

    def create_checkout_session(self, **kwargs) -> dict:
        self.checkout_calls.append(kwargs)
        return {"sessionId": "cs_test_123", "url": "https://checkout.stripe.test/cs_test_123"}


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'STRIPE_SECRET_KEY': 'sk_test_fake',
        'STRIPE_WEBHOOK_SECRET': WEBHOOK_SECRET,
        'DISPATCH_API_KEY': 'dispatch-test-key',
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def dispatch(app):
    """Swap the dispatch provider for a recording fake."""
    original = app.extensions["dispatch_client"]
    fake = FakeDispatchClient()
    app.extensions["dispatch_client"] = fake
    yield fake
    app.extensions["dispatch_client"] = original


@pytest.fixture(scope='function')
def gateway(app):
    """Swap the payment gateway for one that never calls Stripe."""
    original = app.extensions["payment_gateway"]
    fake = FakePaymentGateway()
    app.extensions["payment_gateway"] = fake
    yield fake
    app.extensions["payment_gateway"] = original


def registration_payload(email: str = "owner@tacos.test", **overrides) -> dict:
    payload = {
        "email": email,
        "password": DEFAULT_PASSWORD,
        "ownerName": "Ana Perez",
        "businessName": "Tacos Ana",
        "contactPhone": "5551234567",
        "defaultPickupAddress": {
            "description": "Av. Reforma 100, CDMX",
            "lat": 19.4326,
            "lng": -99.1332,
        },
    }
    payload.update(overrides)
    return payload


def order_payload(**overrides) -> dict:
    payload = {
        "customerName": "Luis",
        "customerPhone": "5559876543",
        "deliveryAddress": {
            "description": "Calle Durango 20, CDMX",
            "lat": 19.4200,
            "lng": -99.1600,
        },
    }
    payload.update(overrides)
    return payload


def register_business(client, email: str = "owner@tacos.test", **overrides) -> str:
    """Register through the API and return the new account id."""
    response = client.post('/api/auth/register', json=registration_payload(email, **overrides))
    assert response.status_code == 201, response.json
    return response.json['userId']


def get_auth_token(client, email: str, password: str = DEFAULT_PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'email': email,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


def set_balance(account_id: str, credits: int) -> None:
    from deliveryhub.models import Account
    account = db.session.get(Account, account_id)
    account.credits = credits
    db.session.commit()


def sign_payload(payload: str, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    """Build a Stripe-Signature header the way Stripe signs webhook deliveries."""
    timestamp = int(time.time()) if timestamp is None else timestamp
    signed = f"{timestamp}.{payload}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def checkout_completed_event(event_id: str, metadata: dict | None, session_id: str = "cs_test_1") -> str:
    session = {"id": session_id, "object": "checkout.session"}
    if metadata is not None:
        session["metadata"] = metadata
    return json.dumps({
        "id": event_id,
        "object": "event",
        "type": "checkout.session.completed",
        "data": {"object": session},
    })


@pytest.fixture(scope='function')
def business(client, db_session, dispatch):
    """A registered business with a logged-in session. Starts at 0 credits."""
    email = "owner@tacos.test"
    account_id = register_business(client, email)
    token = get_auth_token(client, email)
    return {"id": account_id, "email": email, "headers": auth_headers(token)}


@pytest.fixture(scope='function')
def admin(client, db_session):
    """An identity carrying the admin claim (no business account)."""
    email = "ops@deliveryhub.test"
    user = auth_service.create_identity(email=email, password=DEFAULT_PASSWORD, display_name="Ops")
    auth_service.set_custom_claims(user.id, {CLAIM_ADMIN: True})
    token = get_auth_token(client, email)
    return {"id": user.id, "email": email, "headers": auth_headers(token)}


@pytest.fixture(scope='function')
def pro_plan(db_session):
    """Plan "Pro 500": 500 credits + 50 bonus."""
    return plan_service.upsert_plan("price_pro_500", "Pro 500", 500, 50)
