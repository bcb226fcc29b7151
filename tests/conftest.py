from datetime import datetime

import mongomock
import pytest
from fastapi.testclient import TestClient

from auth import AdminPolicy, get_password_hash, get_policy
from blobs import get_blobs
from database import ADMINS, ORDERS, DocumentStore, get_store
from main import app
from schemas import Order

ADMIN = "admin"
PASSWORD = "s3cret-pass"


class MemoryBlobs:
    """Stands in for GridFS in API tests."""

    def __init__(self, fail=False):
        self.files = {}
        self.fail = fail

    def upload(self, folder, filename, data, content_type="application/octet-stream"):
        from pymongo.errors import PyMongoError
        if folder not in ("products", "categories", "banners", "promotions"):
            raise ValueError(f"Unknown upload folder: {folder}")
        if self.fail:
            raise PyMongoError("storage offline")
        key = str(len(self.files) + 1)
        self.files[key] = (f"{folder}/{filename}", data, content_type)
        return f"/files/{key}"


@pytest.fixture(scope="session")
def password_hash():
    return get_password_hash(PASSWORD)


@pytest.fixture
def store(password_hash):
    db = mongomock.MongoClient().db
    db[ADMINS].insert_one({"username": ADMIN, "password_hash": password_hash, "role": "admin", "is_active": True})
    db[ADMINS].insert_one({"username": "cashier", "password_hash": password_hash, "role": "admin", "is_active": True})
    return DocumentStore(db)


@pytest.fixture
def blobs():
    return MemoryBlobs()


@pytest.fixture
def client(store, blobs):
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_blobs] = lambda: blobs
    app.dependency_overrides[get_policy] = lambda: AdminPolicy([ADMIN])
    app.state.roster = None
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(client):
    res = client.post("/auth/login", json={"username": ADMIN, "password": PASSWORD})
    assert res.status_code == 200
    return {"Authorization": f"Bearer {res.json()['access_token']}"}


@pytest.fixture
def make_order(store):
    def _make(status="placed", method="Home Delivery", total=500.0, created_at=None, items=None, **extra):
        order = Order(
            order_id=f"ORD-{store.count(ORDERS) + 1:04d}",
            user_name="Asha",
            user_phone="9876543210",
            delivery_method=method,
            items=items or [{"name": "Kaju Katli", "variant": "250 gms", "price": total, "qty": 1, "category": "Sweets"}],
            subtotal=total,
            total_amount=total,
            created_at=created_at or datetime(2025, 3, 2, 12, 0),
            status=status,
        ).to_document()
        order.update(extra)
        return store.create_document(ORDERS, order)
    return _make
