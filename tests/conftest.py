import fakeredis
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from main import app
from core import dependencies
from core.db import Base, get_db
from core.errors import UnavailableError
from models.merchant import Merchant
from models.payment_method import PaymentMethod, PaymentMethodType
from security.password import hash_password
from security import jwt as jwt_utils
from services.payments import PaymentLifecycleManager
from services.token_store import TokenStore


class RecordingPublisher:
    """Stands in for the event channel and remembers every event it was handed."""

    def __init__(self):
        self.messages = []
        self.fail = False

    def publish_payment_event(self, message):
        if self.fail:
            raise UnavailableError("event channel down")
        self.messages.append(message)

    def event_types(self):
        return [m.event_type.value for m in self.messages]


@pytest.fixture()
def db():
    """Fresh in-memory database per test."""
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    yield session
    session.close()
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture()
def publisher():
    return RecordingPublisher()


@pytest.fixture()
def manager(db, publisher):
    return PaymentLifecycleManager(db, publisher)


@pytest.fixture()
def redis_client():
    client = fakeredis.FakeRedis(decode_responses=True)
    client.flushall()
    yield client
    client.flushall()


@pytest.fixture()
def token_store(redis_client):
    return TokenStore(redis_client, required=True)


@pytest.fixture()
def client(db, publisher, token_store):
    """Test client wired to the test database, recording publisher and fake Redis."""

    def _get_db():
        yield db

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[dependencies.get_event_publisher] = lambda: publisher
    app.dependency_overrides[dependencies.get_token_store] = lambda: token_store
    try:
        with TestClient(app) as c:
            yield c
    finally:
        app.dependency_overrides.clear()


def _make_merchant(db, name, email, password="password123", is_active=True):
    merchant = Merchant(
        name=name,
        email=email,
        password_hash=hash_password(password),
        is_active=is_active,
    )
    db.add(merchant)
    db.commit()
    db.refresh(merchant)
    return merchant


def _make_payment_method(db, merchant, configuration=None, name="Visa ending 4242"):
    method = PaymentMethod(
        merchant_id=merchant.id,
        type=PaymentMethodType.CREDIT_CARD,
        name=name,
        active=True,
        configuration=configuration if configuration is not None else {
            "cardNumber": "4242424242424242",
            "expiryMonth": "12",
            "expiryYear": "2030",
        },
    )
    db.add(method)
    db.commit()
    db.refresh(method)
    return method


@pytest.fixture()
def merchant(db):
    return _make_merchant(db, "Acme Store", "acme@example.com")


@pytest.fixture()
def other_merchant(db):
    return _make_merchant(db, "Globex", "globex@example.com")


@pytest.fixture()
def payment_method(db, merchant):
    return _make_payment_method(db, merchant)


@pytest.fixture()
def other_payment_method(db, other_merchant):
    return _make_payment_method(db, other_merchant, name="Globex card")


@pytest.fixture()
def auth_token(merchant):
    return jwt_utils.create_access_token(merchant.id, extra={"email": merchant.email})


@pytest.fixture()
def auth_headers(auth_token):
    return {"Authorization": f"Bearer {auth_token}"}


@pytest.fixture()
def other_auth_headers(other_merchant):
    token = jwt_utils.create_access_token(other_merchant.id, extra={"email": other_merchant.email})
    return {"Authorization": f"Bearer {token}"}
