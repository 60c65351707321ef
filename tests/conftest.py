"""
Shared fixtures: environment for Settings, in-memory SQLite store, fake gateway.
Environment must be set before any app module is imported.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")
os.environ.setdefault("CELERY_BROKER_URL", "memory://")
os.environ.setdefault("CELERY_RESULT_BACKEND", "cache+memory://")
os.environ.setdefault("GATEWAY_KEY_ID", "rzp_test_key")
os.environ.setdefault("GATEWAY_KEY_SECRET", "test_gateway_secret")
os.environ.setdefault("IDENTITY_JWT_SECRET", "test-identity-secret")
os.environ.setdefault("CHECKOUT_TOKEN_SECRET", "test-checkout-token-secret")
os.environ.setdefault("ADMIN_API_KEY", "test-admin-key")
os.environ.setdefault("RECONCILIATION_LOG_FILE", "")

import hashlib
import hmac
import json
import time

import httpx
import jwt
import pybreaker
import pytest
import redis
from pydantic import SecretStr
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

from app.api import deps
from app.core.config import GatewayConfig
from app.db.base import Base
from app.db.session import get_db
from app.main import app
from app.models.audit_log import AuditLog  # noqa: F401
from app.models.entitlement_grant import GrantRecord  # noqa: F401
from app.models.price import PriceRecord  # noqa: F401
from app.models.user import User  # noqa: F401
from app.services.checkout.token import CheckoutTokenCodec
from app.services.circuit_breaker import RedisCircuitBreakerStorage
from app.services.gateway.client import GatewayClient
from app.services.orders.service import OrderService
from app.services.payments.signature import SignatureVerifier

GATEWAY_SECRET = "test_gateway_secret"
IDENTITY_SECRET = "test-identity-secret"
TOKEN_SECRET = "test-checkout-token-secret"
ADMIN_KEY = "test-admin-key"


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine, autocommit=False, autoflush=False)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def gateway_config():
    return GatewayConfig(
        key_id="rzp_test_key",
        key_secret=SecretStr(GATEWAY_SECRET),
        api_base="https://gateway.test/v1",
        timeout_seconds=1.0,
        retry_max_attempts=2,
        retry_backoff_seconds=0.0,
    )


class FakeGateway:
    """httpx.MockTransport handler recording order requests; responses are queued per call."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.responses: list = []
        self._counter = 0

    def queue(self, *responses):
        self.responses.extend(responses)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.responses:
            item = self.responses.pop(0)
            if isinstance(item, Exception):
                raise item
            return item
        self._counter += 1
        body = json.loads(request.content)
        return httpx.Response(
            200,
            json={
                "id": f"order_test{self._counter}",
                "entity": "order",
                "amount": body["amount"],
                "currency": body["currency"],
                "receipt": body["receipt"],
                "status": "created",
            },
        )

    @property
    def sent_bodies(self) -> list[dict]:
        return [json.loads(r.content) for r in self.requests]


@pytest.fixture
def fake_gateway():
    return FakeGateway()


@pytest.fixture
def breaker():
    return pybreaker.CircuitBreaker(fail_max=5, reset_timeout=30)


class UnreachableRedis:
    """Every command fails the way redis-py does when the server is down."""

    def __init__(self):
        self.calls: list[str] = []

    def __getattr__(self, name):
        def command(*args, **kwargs):
            self.calls.append(name)
            raise redis.ConnectionError("Error 111 connecting to 127.0.0.1:1. Connection refused.")

        return command


@pytest.fixture
def redis_down_breaker():
    storage = RedisCircuitBreakerStorage("test_gateway")
    storage.client = UnreachableRedis()
    return pybreaker.CircuitBreaker(fail_max=1, reset_timeout=60, state_storage=storage)



@pytest.fixture
def order_service(gateway_config, fake_gateway, breaker):
    client = GatewayClient(gateway_config, transport=httpx.MockTransport(fake_gateway))
    service = OrderService(gateway_config, client=client, breaker=breaker, sleep=lambda _: None)
    yield service
    client.close()


@pytest.fixture
def verifier(gateway_config):
    return SignatureVerifier(gateway_config)


@pytest.fixture
def token_codec():
    return CheckoutTokenCodec(TOKEN_SECRET)


class FakeTask:
    """Stands in for the Celery task; records apply_async calls instead of talking to the broker."""

    def __init__(self, error: Exception | None = None):
        self.calls: list[dict] = []
        self.error = error

    def apply_async(self, kwargs=None, countdown=None, **_):
        if self.error is not None:
            raise self.error
        self.calls.append({"kwargs": kwargs, "countdown": countdown})


@pytest.fixture
def no_reconcile_queue(monkeypatch):
    task = FakeTask()
    monkeypatch.setattr("app.workers.tasks.reconcile_entitlement.retry_entitlement_grant", task)
    return task


def sign(order_id: str, payment_id: str, secret: str = GATEWAY_SECRET) -> str:
    return hmac.new(secret.encode(), f"{order_id}|{payment_id}".encode(), hashlib.sha256).hexdigest()


def identity_token(user_id: str, secret: str = IDENTITY_SECRET, **claims) -> str:
    payload = {"sub": user_id, "exp": int(time.time()) + 3600, **claims}
    return jwt.encode(payload, secret, algorithm="HS256")


@pytest.fixture
def sign_payment():
    return sign


@pytest.fixture
def auth_header():
    def _make(user_id: str, **claims) -> dict:
        return {"Authorization": f"Bearer {identity_token(user_id, **claims)}"}

    return _make


@pytest.fixture
def client(engine, order_service, verifier, token_codec, no_reconcile_queue):
    SessionTesting = sessionmaker(bind=engine, autocommit=False, autoflush=False)

    def override_get_db():
        session = SessionTesting()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[deps.get_order_service] = lambda: order_service
    app.dependency_overrides[deps.get_signature_verifier] = lambda: verifier
    app.dependency_overrides[deps.get_checkout_token_codec] = lambda: token_codec
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
