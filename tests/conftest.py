"""Shared pytest fixtures.

db_engine / session    : in-memory SQLite with the service tables created
make_notification      : builds a validated notification of any variant
add_user               : seeds a user with optional phone/email/push tokens
"""

import pytest
from sqlalchemy.pool import StaticPool

from app.infra.db import Base, DeviceRecord, UserRecord, create_db_engine, create_session_factory
from app.models.notification import parse_notification

_VARIANT_FIELDS = {
    "ORDER_PLACED": {"orderId": "order-1", "orderType": "REGULAR"},
    "ORDER_DISPATCHED": {"orderId": "order-1", "orderType": "REGULAR"},
    "ORDER_SHIPPED": {"orderId": "order-1", "orderType": "REGULAR"},
    "INQUIRY_RECEIVED": {"inquiryId": "inq-1"},
    "NEW_QUOTE_RECEIVED": {"quoteId": "quote-1", "inquiryId": "inq-1"},
    "QUOTE_ACCEPTED": {"quoteId": "quote-1", "inquiryId": "inq-1"},
    "QUOTE_REJECTED": {"quoteId": "quote-1", "inquiryId": "inq-1"},
}


@pytest.fixture
def db_engine():
    engine = create_db_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return create_session_factory(db_engine)


@pytest.fixture
def session(session_factory):
    with session_factory() as session:
        yield session


@pytest.fixture
def make_notification():
    def _make(type_="ORDER_PLACED", **overrides):
        data = {"type": type_, "userId": "user-1", "message": "Hello"}
        data.update(_VARIANT_FIELDS[type_])
        data.update(overrides)
        return parse_notification(data)

    return _make


@pytest.fixture
def add_user():
    def _add(session, user_id, phone=None, email=None, tokens=()):
        session.add(UserRecord(id=user_id, phone=phone, email=email))
        for i, token in enumerate(tokens):
            session.add(DeviceRecord(id=f"{user_id}-dev-{i}", user_id=user_id, expo_push_token=token))
        session.flush()

    return _add
