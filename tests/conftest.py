import itertools

import mongomock
import pytest
from passlib.context import CryptContext
from pymongo.errors import ServerSelectionTimeoutError

import entities
from config import Settings
from domain import Domain
from entities import ENTITIES, build_store
from store import EntityStore


@pytest.fixture(autouse=True)
def fast_hashing(monkeypatch):
    monkeypatch.setattr(entities, "pwd_context", CryptContext(schemes=["bcrypt"], bcrypt__rounds=4))


@pytest.fixture
def db():
    return mongomock.MongoClient(tz_aware=True)["test_platform"]


@pytest.fixture
def store(db):
    return build_store(db)


@pytest.fixture
def domain(store):
    return Domain(store, Settings())


@pytest.fixture
def make_user(domain):
    seq = itertools.count(1)

    def _make(**overrides):
        n = next(seq)
        data = {
            "email": f"user{n}@example.com",
            "username": f"user{n}",
            "password": "correct-horse",
            "profile": {"first_name": "Test", "last_name": f"User{n}"},
        }
        data.update(overrides)
        return domain.users.create(data)

    return _make


@pytest.fixture
def make_category(domain):
    def _make(name, **overrides):
        return domain.categories.create({"name": name, **overrides})

    return _make


@pytest.fixture
def make_product(domain, make_category):
    seq = itertools.count(1)

    def _make(category=None, **overrides):
        n = next(seq)
        if category is None:
            category = make_category(f"Catalog {n}")["id"]
        data = {
            "name": f"Product {n}",
            "sku": f"prd-{n}",
            "category": category,
            "pricing": {"base_price": 100},
        }
        data.update(overrides)
        return domain.products.create(data)

    return _make


@pytest.fixture
def make_order(domain, make_user):
    def _make(user=None, items=None, **overrides):
        data = {
            "user": user or make_user()["id"],
            "customer_email": "buyer@example.com",
            "items": items or [
                {"product": "p1", "name": "Phone", "sku": "PHN-1", "quantity": 2, "unit_price": 10},
                {"product": "p2", "name": "Case", "sku": "CSE-1", "quantity": 3, "unit_price": 5},
            ],
            "shipping_address": {
                "first_name": "Ada",
                "last_name": "Lovelace",
                "street1": "12 Analytical Row",
                "city": "London",
                "postal_code": "N1 7AA",
                "country": "GB",
            },
        }
        data.update(overrides)
        return domain.orders.create(data)

    return _make


class _Unreachable:
    """Collection double whose every call fails like a dead server."""

    def __getattr__(self, name):
        def fail(*args, **kwargs):
            raise ServerSelectionTimeoutError("no servers available")
        return fail


@pytest.fixture
def broken_store():
    return EntityStore({name: _Unreachable() for name in ENTITIES}, ENTITIES)
