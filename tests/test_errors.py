import json
import logging

import jwt
import pytest
from bson.errors import InvalidId
from pymongo.errors import DuplicateKeyError

from conftest import API
from database import get_db
from errors import BadRequestError, NotFoundError, UnauthorizedError, classify, error_response
from main import app
from schemas import Category


def _validation_error():
    with pytest.raises(Exception) as info:
        Category()
    return info.value


@pytest.mark.parametrize("exc, expected", [
    (UnauthorizedError(), (401, "Unauthorized")),
    (jwt.ExpiredSignatureError("expired"), (401, "Token expired")),
    (jwt.InvalidSignatureError("bad sig"), (401, "Invalid token")),
    (jwt.DecodeError("garbage"), (401, "Invalid token")),
    (NotFoundError(), (404, "Resource not found")),
    (NotFoundError("Order not found"), (404, "Order not found")),
    (BadRequestError("Invalid Category"), (400, "Invalid Category")),
    (InvalidId("x"), (400, "Invalid ID format")),
    (DuplicateKeyError("E11000"), (400, "Duplicate key error")),
    (json.JSONDecodeError("bad", "{", 0), (400, "Invalid JSON format")),
    (RuntimeError("boom"), (500, "Internal server error")),
])
def test_classify(exc, expected):
    assert classify(exc) == expected


def test_classify_validation_error_lists_fields():
    status, message = classify(_validation_error())
    assert status == 400
    assert message.startswith("name:")


def test_malformed_json_body_is_400(client, admin_headers):
    response = client.post(
        f"{API}/categories",
        content=b"{not json",
        headers={**admin_headers, "Content-Type": "application/json"},
    )
    assert response.status_code == 400
    assert response.json()["success"] is False


def test_unknown_route_uses_error_body(client, admin_headers):
    response = client.get(f"{API}/nothing-here", headers=admin_headers)
    assert response.status_code == 404
    assert response.json() == {"success": False, "message": "Not Found"}


class BrokenDatabase:
    name = "broken"

    def __getitem__(self, collection):
        raise RuntimeError("connection lost")


def test_unexpected_error_is_500(client):
    app.dependency_overrides[get_db] = lambda: BrokenDatabase()
    response = client.get(f"{API}/categories")
    assert response.status_code == 500
    assert response.json() == {"success": False, "message": "Internal server error"}


def test_unexpected_error_is_left_to_the_server_log(client, caplog):
    app.dependency_overrides[get_db] = lambda: BrokenDatabase()
    with caplog.at_level(logging.ERROR, logger="errors"):
        response = client.get(f"{API}/categories")
    assert response.status_code == 500
    assert not [r for r in caplog.records if r.name == "errors"]


def test_handled_server_error_is_logged_once(caplog):
    with caplog.at_level(logging.ERROR, logger="errors"):
        response = error_response(RuntimeError("boom"))
    assert response.status_code == 500
    assert len([r for r in caplog.records if r.name == "errors"]) == 1
