from fastapi.testclient import TestClient
from pymongo.errors import ServerSelectionTimeoutError

import database
from database import get_db
from main import app


def test_root_liveness(client):
    res = client.get("/")
    assert res.status_code == 200
    assert res.text == "Fitness Tracker API is running..."


def test_database_diagnostic(client, db):
    db["users"].insert_one({"email": "a@example.com"})
    body = client.get("/test").json()
    assert body["connection_status"] == "Connected"
    assert "users" in body["collections"]


def test_unconfigured_database_answers_500(monkeypatch):
    monkeypatch.setattr(database, "db", None)
    app.dependency_overrides.clear()
    res = TestClient(app).get("/users")
    assert res.status_code == 500
    assert res.json() == {"error": "Database not configured"}


class BrokenCollection:
    def find(self, *args, **kwargs):
        raise ServerSelectionTimeoutError("mongo.internal:27017: connection refused")


class BrokenDatabase:
    def __getitem__(self, name):
        return BrokenCollection()


def test_store_failures_do_not_leak_details(client):
    app.dependency_overrides[get_db] = lambda: BrokenDatabase()
    res = client.get("/users")
    assert res.status_code == 500
    assert res.json() == {"error": "Internal server error"}
    assert "mongo.internal" not in res.text


def test_malformed_json_is_a_client_error(client):
    res = client.post("/testimonials", content="{not json", headers={"Content-Type": "application/json"})
    assert res.status_code == 400
    assert res.json()["error"] == "Invalid request"
