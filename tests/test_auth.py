from datetime import datetime, timedelta, timezone

import jwt
import pytest

import config
from auth import create_token, decode_token, default_allow_list, is_allowed, is_revoked
from conftest import API


def test_allow_list_rules():
    rules = default_allow_list("/api/v1")
    assert is_allowed("/api/v1/products", "GET", rules)
    assert is_allowed("/api/v1/products/abc", "OPTIONS", rules)
    assert is_allowed("/api/v1/categories/get/count", "GET", rules)
    assert is_allowed("/api/v1/users/login", "POST", rules)
    assert is_allowed("/api-docs", "GET", rules)
    assert is_allowed("/public/uploads/a.png", "GET", rules)

    assert not is_allowed("/api/v1/products", "POST", rules)
    assert not is_allowed("/api/v1/orders", "GET", rules)
    assert not is_allowed("/api/v1/users", "GET", rules)
    assert not is_allowed("/api/v1/users/login/extra", "POST", rules)


def test_token_round_trip_and_revocation():
    claims = decode_token(create_token({"user_id": "u1", "is_admin": False}))
    assert claims["user_id"] == "u1"
    assert is_revoked(claims)
    assert not is_revoked({"user_id": "u1", "is_admin": True})


def test_same_request_allowed_only_when_listed(client, category):
    assert client.get(f"{API}/categories/{category}").status_code == 200
    assert client.delete(f"{API}/categories/{category}").status_code == 401


def test_missing_token_is_unauthorized(client):
    response = client.get(f"{API}/users")
    assert response.status_code == 401
    assert response.json() == {"success": False, "message": "Unauthorized"}


def test_malformed_authorization_header(client):
    response = client.get(f"{API}/users", headers={"Authorization": "Token abc"})
    assert response.status_code == 401


def test_bad_signature_is_invalid_token(client):
    token = jwt.encode({"user_id": "x", "is_admin": True}, "other-secret", algorithm="HS256")
    response = client.get(f"{API}/users", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401
    assert response.json()["message"] == "Invalid token"


def test_expired_token(client):
    token = jwt.encode(
        {"user_id": "x", "is_admin": True, "exp": datetime.now(timezone.utc) - timedelta(minutes=1)},
        config.JWT_SECRET,
        algorithm=config.JWT_ALGO,
    )
    response = client.get(f"{API}/users", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401
    assert response.json()["message"] == "Token expired"


def test_non_admin_token_is_revoked(client, user_headers):
    response = client.get(f"{API}/users", headers=user_headers)
    assert response.status_code == 401
    assert response.json()["message"] == "Unauthorized"


def test_admin_token_passes(client, admin_headers):
    assert client.get(f"{API}/users", headers=admin_headers).status_code == 200


@pytest.mark.parametrize("path", ["/", "/api-docs", "/api-docs/openapi.json"])
def test_public_pages(client, path):
    assert client.get(path).status_code == 200
