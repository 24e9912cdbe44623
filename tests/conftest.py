import hashlib
import hmac
import json
import time

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from payment_core import deps
from payment_core.database import Base
from payment_core.main import app as fastapi_app
from payment_core.monitoring import Alerter
from payment_core.ratelimit import InMemoryRateLimiter
from payment_core.store import OrderStore, PaymentStore

YOCO_WEBHOOK_SECRET = "test_yoco_secret"
PAYSTACK_WEBHOOK_SECRET = "test_paystack_secret"
STRIPE_WEBHOOK_SECRET = "whsec_test"
ADMIN_JWT_SECRET = "admin_jwt_test_secret"

TEST_ENV = {
    "APP_ENV": "test",
    "YOCO_API_URL": "https://yoco.test/api",
    "YOCO_SECRET_KEY": "sk_yoco_test",
    "YOCO_WEBHOOK_SECRET": YOCO_WEBHOOK_SECRET,
    "PAYSTACK_API_URL": "https://paystack.test",
    "PAYSTACK_SECRET_KEY": "sk_paystack_test",
    "PAYSTACK_WEBHOOK_SECRET": PAYSTACK_WEBHOOK_SECRET,
    "PAYPAL_API_URL": "https://paypal.test",
    "PAYPAL_CLIENT_ID": "cid",
    "PAYPAL_SECRET": "sec",
    "PAYPAL_WEBHOOK_ID": "wh_1",
    "STRIPE_SECRET_KEY": "sk_stripe_test",
    "STRIPE_WEBHOOK_SECRET": STRIPE_WEBHOOK_SECRET,
    "ADMIN_JWT_SECRET": ADMIN_JWT_SECRET,
    "RECONCILE_RETRY_BASE_DELAY": "0",
    "MONITORING_WEBHOOK_URL": "",
}


@pytest.fixture(autouse=True)
def test_env(monkeypatch):
    for key, value in TEST_ENV.items():
        monkeypatch.setenv(key, value)


@pytest.fixture
def session_factory(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'test_payments.db'}", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def orders(session_factory):
    return OrderStore(session_factory)


@pytest.fixture
def payments(session_factory):
    return PaymentStore(session_factory)


@pytest.fixture
def alerter(mocker):
    return mocker.create_autospec(Alerter, instance=True)


@pytest.fixture
def make_order(orders):
    def _make(**overrides):
        fields = {
            "customer_name": "Alice",
            "customer_email": "alice@example.com",
            "service_id": "s4",
            "service_name": "Strategy Consulting (1 Hour)",
            "total_amount": 80000,
            "deposit_amount": 40000,
            "currency": "ZAR",
            "provider": "yoco",
        }
        fields.update(overrides)
        return orders.create_order(**fields)

    return _make


@pytest.fixture
def rate_limiter():
    return InMemoryRateLimiter(max_requests=100, window_seconds=60)


@pytest.fixture
def client(monkeypatch, session_factory, rate_limiter):
    # Point the app at the per-test database
    monkeypatch.setattr("payment_core.database.SessionLocal", session_factory)
    fastapi_app.dependency_overrides[deps.get_rate_limiter] = lambda: rate_limiter
    with TestClient(fastapi_app) as c:
        yield c
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def sign():
    def _sign(body: bytes, secret: str = YOCO_WEBHOOK_SECRET, algorithm: str = "sha256") -> str:
        return hmac.new(secret.encode(), body, getattr(hashlib, algorithm)).hexdigest()

    return _sign


@pytest.fixture
def stripe_signature():
    def _sign(body: bytes, secret: str = STRIPE_WEBHOOK_SECRET, timestamp: int | None = None) -> str:
        ts = int(time.time()) if timestamp is None else timestamp
        mac = hmac.new(secret.encode(), f"{ts}.".encode() + body, hashlib.sha256).hexdigest()
        return f"t={ts},v1={mac}"

    return _sign


@pytest.fixture
def yoco_success_payload():
    def _payload(transaction_id="txn_abc", order_id=42, amount=50000, charge_id="ch_abc"):
        return json.dumps(
            {
                "type": "charge.succeeded",
                "data": {
                    "id": charge_id,
                    "transaction_id": transaction_id,
                    "amount": amount,
                    "currency": "ZAR",
                    "metadata": {"order_id": order_id},
                    "status": "succeeded",
                },
            }
        ).encode()

    return _payload
