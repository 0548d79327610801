"""Pytest fixtures for storefront tests."""

import os
from datetime import datetime, timedelta

# Settings are read at import time, so point the app at an in-memory database first
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("SECRET_KEY", "test-secret")

import pytest
from fastapi.testclient import TestClient

from storefront.main import app, create_tables
from storefront.models.product import Product
from storefront.models.user import Base, SessionLocal, User, engine
from storefront.realtime.broadcaster import ADMIN_UPDATE, RoomBroadcaster, get_broadcaster
from storefront.services.collaborators import CartCollaborator
from storefront.services.order_lifecycle import OrderLifecycleService
from storefront.utils.security import Caller, create_access_token

ADDRESS = {
    "full_name": "Asha Rao",
    "phone": "9000000001",
    "street": "12 MG Road",
    "city": "Pune",
    "state": "Maharashtra",
    "postal_code": "411001",
}

ADDRESS_JSON = {
    "fullName": "Asha Rao",
    "phone": "9000000001",
    "street": "12 MG Road",
    "city": "Pune",
    "state": "Maharashtra",
    "postalCode": "411001",
}

DELIVERY_PATH = ("processing", "shipped", "out_for_delivery", "delivered")


class FakeClock:
    """Injectable clock; tests move time forward explicitly."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeBroadcaster:
    """Records what would have been pushed to connected sessions."""

    def __init__(self):
        self.user_events = []
        self.admin_events = []

    def notify_user(self, user_id, event_type, data):
        self.user_events.append((user_id, event_type, data))

    def notify_admins(self, event_type, data, event=ADMIN_UPDATE):
        self.admin_events.append((event, event_type, data))

    def admin_types(self):
        return [event_type for _, event_type, _ in self.admin_events]


class FakeSubscriber:
    """Subscriber stand-in that collects envelopes synchronously."""

    def __init__(self):
        self.rooms = set()
        self.messages = []

    def deliver(self, message):
        self.messages.append(message)


@pytest.fixture(autouse=True)
def database():
    """Fresh schema for every test."""
    create_tables()
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    yield session
    session.close()


def _make_user(db, first_name, last_name, email, role="USER"):
    user = User(first_name=first_name, last_name=last_name, email=email, phone="9000000000", role=role)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def customer(db):
    return _make_user(db, "Asha", "Rao", "asha@example.com")


@pytest.fixture
def other_customer(db):
    return _make_user(db, "Vikram", "Shah", "vikram@example.com")


@pytest.fixture
def admin(db):
    return _make_user(db, "Meera", "Iyer", "admin@example.com", role="ADMIN")


@pytest.fixture
def products(db):
    """A 100.00 t-shirt and a 50.00 pair of socks."""
    shirt = Product(name="Cotton T-Shirt", category="tops", brand="Littlefolk", price=100, images=["/img/shirt.jpg"])
    socks = Product(name="Ankle Socks", category="accessories", brand="Littlefolk", price=50, images=[])
    db.add_all([shirt, socks])
    db.commit()
    db.refresh(shirt)
    db.refresh(socks)
    return shirt, socks


@pytest.fixture
def customer_caller(customer):
    return Caller.from_user(customer)


@pytest.fixture
def admin_caller(admin):
    return Caller.from_user(admin)


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 3, 2, 10, 0, 0))


@pytest.fixture
def broadcaster():
    return FakeBroadcaster()


@pytest.fixture
def service(db, broadcaster, clock):
    return OrderLifecycleService(db, broadcaster=broadcaster, clock=clock)


def fill_cart(db, user_id, lines):
    carts = CartCollaborator(db)
    for product, quantity in lines:
        carts.add_item(user_id, product.id, quantity)
    db.commit()


@pytest.fixture
def filled_cart(db, customer, products):
    """Two shirts and one pair of socks: 250.00 in total."""
    shirt, socks = products
    fill_cart(db, customer.id, [(shirt, 2), (socks, 1)])
    return products


def deliver(service, order_id):
    for status in DELIVERY_PATH:
        service.update_order_status(order_id, status)
    return service.get_order(order_id)


@pytest.fixture
def delivered_order(service, customer_caller, filled_cart):
    order = service.create_order(customer_caller, "cod", ADDRESS)
    return deliver(service, order.id)


# ----------------------------------------------------------------- API client


def auth_headers(user):
    return {"Authorization": f"Bearer {create_access_token(user.id, role=user.role)}"}


@pytest.fixture
def room_broadcaster():
    return RoomBroadcaster()


@pytest.fixture
def client(room_broadcaster):
    app.dependency_overrides[get_broadcaster] = lambda: room_broadcaster
    yield TestClient(app)
    app.dependency_overrides.clear()
