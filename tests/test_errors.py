import logging

import mongomock
from fastapi.testclient import TestClient
from pymongo.errors import DuplicateKeyError

import main
import routers.auth
from conftest import PASSWORD
from database import get_db
from errors import duplicate_field

REGISTER = {
    "username": "first",
    "email": "shared@example.com",
    "password": PASSWORD,
    "confirm_password": PASSWORD,
}


def test_unique_index_catches_what_the_precheck_misses(client, db, monkeypatch):
    monkeypatch.setattr(routers.auth, "ensure_unique", lambda *args, **kwargs: None)
    assert client.post("/api/auth/register", json=REGISTER).status_code == 201

    res = client.post("/api/auth/register", json={**REGISTER, "username": "second"})
    assert res.status_code == 400
    assert res.json()["detail"].endswith("already exists")
    assert db["account"].count_documents({}) == 1


def test_duplicate_field_reads_key_value():
    exc = DuplicateKeyError("E11000 duplicate key error", 11000, {"keyValue": {"email": "a@b.co"}})
    assert duplicate_field(exc) == "email"


def test_duplicate_field_falls_back_to_index_name():
    exc = DuplicateKeyError(
        "E11000 duplicate key error collection: store_admin.customer index: customer_number_1 dup key: "
        '{ customer_number: "01010000001" }',
        11000,
    )
    assert duplicate_field(exc) == "customer_number"


def test_unexpected_error_becomes_server_error(client):
    def broken_db():
        raise RuntimeError("boom")

    main.app.dependency_overrides[get_db] = broken_db
    res = TestClient(main.app, raise_server_exceptions=False).get("/test")
    assert res.status_code == 500
    assert res.json() == {"detail": "Server error", "error": "boom"}


def test_startup_creates_indexes(monkeypatch):
    mongo = mongomock.MongoClient(tz_aware=True)
    monkeypatch.setattr(main, "get_client", lambda config: mongo)
    with TestClient(main.app):
        pass
    indexes = mongo[main.config.database_name]["account"].index_information()
    assert "email_1" in indexes
    assert indexes["email_1"]["unique"] is True


def test_startup_survives_unreachable_database(monkeypatch, caplog):
    def unreachable(config):
        raise RuntimeError("connection refused")

    monkeypatch.setattr(main, "get_client", unreachable)
    with caplog.at_level(logging.WARNING, logger="main"):
        with TestClient(main.app) as started:
            assert started.get("/").status_code == 200
    assert "Could not ensure indexes" in caplog.text
