from datetime import datetime, timedelta, timezone

import mongomock
import pytest
from fastapi.testclient import TestClient

import config
import database
from main import app
from otp_routes import get_email_service
from security import hash_password, token_for_user

PASSWORD = "secret123"


class FakeClock:
    def __init__(self):
        self.now = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def db(monkeypatch):
    mock_db = mongomock.MongoClient()["lms_test"]
    monkeypatch.setattr(database, "db", mock_db)
    database.ensure_indexes(mock_db)
    return mock_db


@pytest.fixture(autouse=True)
def mock_email(monkeypatch):
    for name in ("EMAIL_USER", "OUTLOOK_USER", "SMTP_HOST"):
        monkeypatch.setattr(config, name, None)
    get_email_service.cache_clear()


@pytest.fixture
def client(db):
    return TestClient(app)


@pytest.fixture
def no_otp(monkeypatch):
    monkeypatch.setattr(config, "REQUIRE_REGISTRATION_OTP", False)
    monkeypatch.setattr(config, "REQUIRE_LOGIN_OTP", False)


@pytest.fixture
def otp_required(monkeypatch):
    monkeypatch.setattr(config, "REQUIRE_REGISTRATION_OTP", True)
    monkeypatch.setattr(config, "REQUIRE_LOGIN_OTP", True)


@pytest.fixture
def make_user(db):
    def _make(email="student@learnhub.io", role="student", name="Sam Student", password=PASSWORD):
        doc = {"name": name, "email": email, "password": hash_password(password), "role": role}
        doc["_id"] = db["user"].insert_one(doc).inserted_id
        return doc
    return _make


@pytest.fixture
def auth():
    def _auth(user):
        return {"Authorization": f"Bearer {token_for_user(user)}"}
    return _auth


def course_payload(**overrides):
    payload = {
        "courseTitle": "Intro to Python",
        "courseDescription": "Learn Python from the ground up.",
        "coursePrice": 100,
        "discount": 20,
        "courseThumbnail": "https://img.example/python.png",
        "courseContent": [
            {
                "chapterTitle": "Basics",
                "chapterOrder": 1,
                "chapterContent": [
                    {"lectureId": "lec-1", "lectureTitle": "Variables", "lectureDuration": 12,
                     "lectureUrl": "https://youtu.be/dQw4w9WgXcQ", "lectureOrder": 1},
                    {"lectureId": "lec-2", "lectureTitle": "Loops", "lectureDuration": 18, "lectureOrder": 2},
                ],
            }
        ],
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def make_course(client, make_user, auth):
    def _make(educator=None, **overrides):
        educator = educator or make_user(email="tutor@learnhub.io", role="educator", name="Tess Tutor")
        res = client.post("/api/courses", json=course_payload(**overrides), headers=auth(educator))
        assert res.status_code == 201, res.text
        return res.json()["course"], educator
    return _make
