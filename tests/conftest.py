from datetime import datetime, timezone

import mongomock
import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

from config import AppConfig, get_config
from database import ensure_indexes, get_db
from main import app
from security import hash_password, issue_token
from uploads import get_uploader

PASSWORD = "Secret1@x"


class FakeUploader:
    def __init__(self):
        self.calls = []

    def upload(self, files):
        self.calls.append([f.filename for f in files])
        return [f"https://img.example.com/{f.filename}" for f in files]


@pytest.fixture
def config():
    return AppConfig(jwt_secret="test-secret", database_name="store_admin_test")


@pytest.fixture
def db():
    client = mongomock.MongoClient(tz_aware=True)
    database = client["store_admin_test"]
    ensure_indexes(database)
    return database


@pytest.fixture
def uploader():
    return FakeUploader()


@pytest.fixture
def client(config, db, uploader):
    app.dependency_overrides[get_config] = lambda: config
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_uploader] = lambda: uploader
    yield TestClient(app)
    app.dependency_overrides.clear()


def make_account(db, username, role="admin", email=None, password=PASSWORD):
    now = datetime.now(timezone.utc)
    result = db["account"].insert_one({
        "username": username,
        "email": email or f"{username}@example.com",
        "password": hash_password(password),
        "role": role,
        "avatar": "",
        "is_deleted": False,
        "deleted_at": None,
        "created_at": now,
        "updated_at": now,
    })
    return result.inserted_id


@pytest.fixture
def admin_id(db):
    return make_account(db, "admin_user", "admin")


@pytest.fixture
def superadmin_id(db):
    return make_account(db, "super_user", "superadmin")


@pytest.fixture
def admin_headers(config, admin_id):
    return {"Authorization": f"Bearer {issue_token(str(admin_id), 'admin', config)}"}


@pytest.fixture
def superadmin_headers(config, superadmin_id):
    return {"Authorization": f"Bearer {issue_token(str(superadmin_id), 'superadmin', config)}"}


def make_product(db, product_id, **fields):
    now = datetime.now(timezone.utc)
    doc = {
        "product_id": product_id,
        "name": f"Product {product_id}",
        "price": 10.0,
        "rating": 0,
        "product_images": [],
        "discount_amount": 0,
        "discount_percentage": 0,
        "product_discount": 0,
        "category": "Bags",
        "description": "A product",
        "views": 0,
        "quantity": 5,
        "in_stock": 1,
        "is_deleted": False,
        "deleted_at": None,
        "created_at": now,
        "updated_at": now,
    }
    doc.update(fields)
    return db["product"].insert_one(doc).inserted_id


def make_customer(db, customer_id, **fields):
    now = datetime.now(timezone.utc)
    doc = {
        "customer_id": customer_id,
        "customer_name": f"Customer {customer_id}",
        "customer_email": f"customer{customer_id}@example.com",
        "customer_number": f"0101{customer_id:07d}",
        "number_of_orders": 0,
        "total": 0,
        "tags": [],
        "created_at": now,
        "updated_at": now,
    }
    doc.update(fields)
    return db["customer"].insert_one(doc).inserted_id


def missing_id():
    return str(ObjectId())
