from fastapi.testclient import TestClient

import database
from main import app


def test_root(client):
    assert client.get("/").json() == {"message": "LMS Backend is running"}


def test_database_check(client, db, make_user):
    make_user()
    body = client.get("/test").json()
    assert body["connected"] is True
    assert body["databaseName"] == "lms_test"
    assert "user" in body["collections"]


def test_database_check_without_database(monkeypatch):
    monkeypatch.setattr(database, "db", None)
    body = TestClient(app).get("/test").json()
    assert body["connected"] is False
    assert body["collections"] == []


def test_routes_report_missing_database(monkeypatch):
    monkeypatch.setattr(database, "db", None)
    res = TestClient(app).get("/api/courses")
    assert res.status_code == 500
    assert res.json() == {"detail": "Database not configured"}
