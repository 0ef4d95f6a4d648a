"""Pytest fixtures for the shop backend tests."""

import mongomock
import pytest
from fastapi.testclient import TestClient

from config import settings
from database import create_document
from gateway import compute_signature, verify_signature
from schemas import Category, Product, User
from security import hash_password, token_for_user

GATEWAY_SECRET = "test_gateway_secret"


class FakeGateway:
    """Stands in for Razorpay: records create_order calls and checks signatures with a known secret."""

    key_id = "rzp_test_key"
    key_secret = GATEWAY_SECRET

    def __init__(self):
        self.created = []
        self.fail_with = None

    def create_order(self, amount, currency, receipt, notes):
        if self.fail_with is not None:
            raise self.fail_with
        order = {"id": f"order_gw{len(self.created) + 1}", "amount": amount, "currency": currency, "receipt": receipt, "notes": notes}
        self.created.append(order)
        return order

    def verify(self, gateway_order_id, payment_id, signature):
        return verify_signature(self.key_secret, gateway_order_id, payment_id, signature)

    def sign(self, gateway_order_id, payment_id):
        return compute_signature(self.key_secret, gateway_order_id, payment_id)


@pytest.fixture(autouse=True)
def fast_hashing(monkeypatch):
    monkeypatch.setattr(settings, "bcrypt_rounds", 4)


@pytest.fixture
def db():
    return mongomock.MongoClient()["shop_test"]


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def client(db, gateway):
    from database import get_db
    from gateway import get_gateway
    from main import app, response_cache

    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_gateway] = lambda: gateway
    response_cache.clear()
    yield TestClient(app)
    app.dependency_overrides.clear()
    response_cache.clear()


def make_user(db, email="buyer@example.com", is_admin=False, password="secret123", **extra):
    user = User(
        name=extra.pop("name", "Test Buyer"),
        email=email,
        contact="9876543210",
        password_hash=hash_password(password),
        is_admin=is_admin,
        is_verified=True,
    )
    user_id = create_document(db, "user", user)
    if extra:
        db["user"].update_one({"_id": user_id}, {"$set": extra})
    return db["user"].find_one({"_id": user_id})


def make_category(db, name="Electronics"):
    category_id = create_document(db, "category", Category(name=name, slug=name.lower().replace(" ", "-")))
    return db["category"].find_one({"_id": category_id})


def make_product(db, category, name="Wireless Headphones", price=100.0, **extra):
    product = Product(name=name, price=price, category_id=category["_id"], slug=name.lower().replace(" ", "-"), **extra)
    product_id = create_document(db, "product", product)
    return db["product"].find_one({"_id": product_id})


def auth_headers(user):
    return {"Authorization": f"Bearer {token_for_user(user)}"}


@pytest.fixture
def user(db):
    return make_user(db)


@pytest.fixture
def admin(db):
    return make_user(db, email="admin@example.com", is_admin=True, name="Admin")


@pytest.fixture
def category(db):
    return make_category(db)


@pytest.fixture
def product(db, category):
    return make_product(db, category)
