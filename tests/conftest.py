import os
import tempfile

os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("API_URL", "/api/v1")
os.environ.setdefault("UPLOAD_DIR", tempfile.mkdtemp(prefix="eshop-uploads-"))

import mongomock
import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

from auth import create_token, hash_password
from database import get_db
from main import app

API = "/api/v1"


@pytest.fixture
def db():
    return mongomock.MongoClient()["e-shop-test"]


@pytest.fixture
def client(db):
    app.dependency_overrides[get_db] = lambda: db
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers():
    token = create_token({"user_id": str(ObjectId()), "is_admin": True})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def user_headers():
    token = create_token({"user_id": str(ObjectId()), "is_admin": False})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def category(db):
    result = db["category"].insert_one({"name": "Phones", "icon": "phone", "color": "#000"})
    return str(result.inserted_id)


def make_product(db, category_id, name="Pixel", price=100.0, featured=False):
    result = db["product"].insert_one({
        "name": name,
        "description": f"{name} description",
        "price": price,
        "category": ObjectId(category_id),
        "count_in_stock": 10,
        "is_featured": featured,
        "image": "",
        "images": [],
    })
    return str(result.inserted_id)


def make_user(db, email="jane@example.com", password="secret123", is_admin=False):
    result = db["user"].insert_one({
        "name": "Jane",
        "email": email,
        "password_hash": hash_password(password),
        "phone": "555-0100",
        "is_admin": is_admin,
    })
    return str(result.inserted_id)
