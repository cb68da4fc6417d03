import copy

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, create_engine

from parcel_tracker.deps import get_mail_sender, get_session
from parcel_tracker.mail import FakeMailSender
from parcel_tracker.main import app
from parcel_tracker.notifications import NotificationDispatcher
from parcel_tracker.service import OrderService
from parcel_tracker.store import OrderStore

ORDER_PAYLOAD = {
    "customer": {
        "name": "Jane Doe",
        "email": "Jane.Doe@Example.com",
        "phone": "+1 555 0100",
        "address": "12 Hudson St, New York, NY",
    },
    "shipping": {
        "from": "New York, NY",
        "to": "Los Angeles, CA",
        "expectedDelivery": "2025-07-01T12:00:00",
    },
    "package": {
        "type": "Electronics",
        "weight": "2.5 kg",
        "dimensions": "30x20x10 cm",
        "value": "$250",
    },
}


@pytest.fixture
def order_payload():
    """Factory for a valid create payload (wire format); overrides replace whole groups."""

    def make(**overrides):
        data = copy.deepcopy(ORDER_PAYLOAD)
        data.update(overrides)
        return data

    return make


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def mailer():
    return FakeMailSender()


@pytest.fixture
def store(session):
    return OrderStore(session)


@pytest.fixture
def service(store, mailer):
    return OrderService(store, NotificationDispatcher(mailer))


@pytest.fixture
def client(engine, mailer):
    def _session():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = _session
    app.dependency_overrides[get_mail_sender] = lambda: mailer
    yield TestClient(app)
    app.dependency_overrides.clear()
