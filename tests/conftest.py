"""
Shared fixtures: in-memory database, seeded users/addresses/products,
auth headers and a TestClient wired to a fresh broadcaster per test.
"""

import os

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("ENV", "test")
os.environ.setdefault("SQLALCHEMY_DATABASE_URL", "sqlite://")

from decimal import Decimal
from typing import List

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, create_engine

import app.database as database
from app.main import app
from app.models import Address, Product, User
from app.services.order_broadcaster import OrderBroadcaster
from app.services.order_snapshot import build_order_snapshot
from app.services import order_store
from app.utils.token import create_access_token


class RecordingConnection:
    """Stand-in for a stream connection that just records frames."""

    def __init__(self, fail: bool = False):
        self.id = f"recording-{id(self)}"
        self.frames: List[str] = []
        self.closed = False
        self.fail = fail

    def push(self, frame: str):
        if self.fail:
            raise RuntimeError("connection reset")
        self.frames.append(frame)

    def close(self):
        self.closed = True


@pytest.fixture
def engine(monkeypatch):
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    monkeypatch.setattr(database, "engine", engine)
    yield engine
    SQLModel.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


def _add(session, obj):
    session.add(obj)
    session.commit()
    session.refresh(obj)
    return obj


@pytest.fixture
def user(session):
    return _add(session, User(user_name="Asha", email="asha@example.com", mobile_number="9876543210"))


@pytest.fixture
def other_user(session):
    return _add(session, User(user_name="Ravi", email="ravi@example.com", mobile_number="9123456780"))


@pytest.fixture
def make_address(session):
    def _make(owner, **overrides):
        fields = {
            "save_as": "Home",
            "pincode": "110001",
            "city": "New Delhi",
            "state": "Delhi",
            "house_number": "42-B, Test Building",
            "street_locality": "Test Street, Sector 7",
            "mobile": "9876543210",
        }
        fields.update(overrides)
        return _add(session, Address(user_id=owner.id, **fields))

    return _make


@pytest.fixture
def address(user, make_address):
    return make_address(user)


@pytest.fixture
def make_product(session):
    def _make(name="Paneer Tikka", price="100.00"):
        return _add(session, Product(product_name=name, price=Decimal(price)))

    return _make


@pytest.fixture
def product(make_product):
    return make_product()


@pytest.fixture
def place_order(session):
    """Create an order straight through the services, bypassing HTTP."""

    def _place(owner, address, items):
        snapshot = build_order_snapshot(
            session,
            user_id=owner.id,
            address_id=address.id,
            items=[{"product_id": p.id, "qty": qty} for p, qty in items],
        )
        return order_store.create_with_items(
            session,
            user_id=owner.id,
            address_snapshot=snapshot.address,
            total_qty=snapshot.total_qty,
            final_amount=snapshot.final_amount,
            line_items=snapshot.items,
        )

    return _place


def token_for(user) -> str:
    return create_access_token({"id": str(user.id)})


@pytest.fixture
def auth_headers(user):
    return {"Authorization": f"Bearer {token_for(user)}"}


@pytest.fixture
def other_auth_headers(other_user):
    return {"Authorization": f"Bearer {token_for(other_user)}"}


@pytest.fixture
def broadcaster():
    return OrderBroadcaster(heartbeat_seconds=0.05, max_queue=10)


@pytest.fixture
def client(engine, broadcaster, monkeypatch):
    monkeypatch.setattr(app.state, "broadcaster", broadcaster)
    with TestClient(app) as client:
        yield client


@pytest.fixture
def make_connection():
    return RecordingConnection
