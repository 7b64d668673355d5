from types import SimpleNamespace

import pytest
import stripe

import config
from payment_routes import charge_amount, convert_to_usd


class FakeStripe:
    """Stands in for the PaymentIntent API, keeping intents in a dict."""

    def __init__(self):
        self.intents = {}
        self.created = []
        self.capture_error = None

    def create(self, **params):
        self.created.append(params)
        intent_id = f"pi_{len(self.intents) + 1}"
        intent = SimpleNamespace(id=intent_id, status="requires_capture", latest_charge=None,
                                 client_secret=f"{intent_id}_secret")
        self.intents[intent_id] = intent
        return intent

    def capture(self, intent_id):
        if self.capture_error:
            raise stripe.StripeError(self.capture_error)
        intent = self.intents[intent_id]
        intent.status = "succeeded"
        intent.latest_charge = f"ch_{intent_id}"
        return intent

    def retrieve(self, intent_id):
        return self.intents[intent_id]

    def cancel(self, intent_id):
        intent = self.intents[intent_id]
        if intent.status in ("succeeded", "canceled"):
            raise stripe.StripeError(f"PaymentIntent has status {intent.status}")
        intent.status = "canceled"
        return intent


@pytest.fixture
def fake_stripe(monkeypatch):
    fake = FakeStripe()
    monkeypatch.setattr(config, "STRIPE_SECRET_KEY", "sk_test_123")
    monkeypatch.setattr(config, "COURSE_PRICE_CURRENCY", "inr")
    monkeypatch.setattr(config, "PAYMENT_CURRENCY", "usd")
    monkeypatch.setattr(config, "INR_TO_USD_RATE", 0.012)
    monkeypatch.setattr(stripe.PaymentIntent, "create", fake.create)
    monkeypatch.setattr(stripe.PaymentIntent, "capture", fake.capture)
    monkeypatch.setattr(stripe.PaymentIntent, "retrieve", fake.retrieve)
    monkeypatch.setattr(stripe.PaymentIntent, "cancel", fake.cancel)
    return fake


def test_convert_to_usd(monkeypatch):
    monkeypatch.setattr(config, "INR_TO_USD_RATE", 0.012)
    assert convert_to_usd(1000) == 12.0
    assert convert_to_usd(999) == 11.99


def test_charge_amount_without_conversion(monkeypatch):
    monkeypatch.setattr(config, "COURSE_PRICE_CURRENCY", "usd")
    monkeypatch.setattr(config, "PAYMENT_CURRENCY", "usd")
    assert charge_amount({"coursePrice": 49.99, "discount": 10}) == 44.99


def test_create_and_capture_order(client, db, fake_stripe, make_course, make_user, auth):
    course, _ = make_course(coursePrice=5000, discount=10)
    student = make_user()

    res = client.post("/api/payment/create-order", json={"courseId": course["_id"]}, headers=auth(student))
    assert res.status_code == 200
    order = res.json()
    assert order == {"orderId": "pi_1", "clientSecret": "pi_1_secret", "amount": 54.0, "currency": "usd"}
    assert fake_stripe.created[0]["amount"] == 5400
    assert fake_stripe.created[0]["capture_method"] == "manual"

    pending = db["enrollment"].find_one({"orderId": "pi_1"})
    assert pending["status"] == "pending"
    assert db["course"].find_one()["enrolledStudents"] == []

    res = client.post("/api/payment/capture-order", json={"orderId": "pi_1"}, headers=auth(student))
    assert res.status_code == 200
    enrollment = res.json()["enrollment"]
    assert enrollment["status"] == "completed"
    assert enrollment["paymentId"] == "ch_pi_1"
    assert db["course"].find_one()["enrolledStudents"] == [str(student["_id"])]

    res = client.post("/api/payment/capture-order", json={"orderId": "pi_1"}, headers=auth(student))
    assert res.json()["message"] == "Payment already captured"


def test_create_order_rejects_free_course(client, fake_stripe, make_course, make_user, auth):
    course, _ = make_course(discount=100)
    res = client.post("/api/payment/create-order", json={"courseId": course["_id"]}, headers=auth(make_user()))
    assert res.status_code == 400
    assert fake_stripe.created == []


def test_create_order_rejects_enrolled_student(client, db, fake_stripe, make_course, make_user, auth):
    course, _ = make_course()
    student = make_user()
    db["enrollment"].insert_one({"studentId": str(student["_id"]), "courseId": course["_id"], "status": "completed"})
    res = client.post("/api/payment/create-order", json={"courseId": course["_id"]}, headers=auth(student))
    assert res.status_code == 400
    assert res.json()["detail"] == "Already enrolled in this course"


def test_new_order_reuses_pending_row(client, db, fake_stripe, make_course, make_user, auth):
    course, _ = make_course()
    student = make_user()
    for _ in range(2):
        client.post("/api/payment/create-order", json={"courseId": course["_id"]}, headers=auth(student))
    rows = list(db["enrollment"].find({"studentId": str(student["_id"])}))
    assert len(rows) == 1
    assert rows[0]["orderId"] == "pi_2"
    assert fake_stripe.intents["pi_1"].status == "canceled"


def test_create_order_requires_configuration(client, monkeypatch, make_course, make_user, auth):
    monkeypatch.setattr(config, "STRIPE_SECRET_KEY", None)
    course, _ = make_course()
    res = client.post("/api/payment/create-order", json={"courseId": course["_id"]}, headers=auth(make_user()))
    assert res.status_code == 400
    assert res.json()["detail"] == "Payments are not configured"


def test_capture_failure_marks_enrollment_failed(client, db, fake_stripe, make_course, make_user, auth):
    course, _ = make_course()
    student = make_user()
    client.post("/api/payment/create-order", json={"courseId": course["_id"]}, headers=auth(student))
    fake_stripe.capture_error = "Your card was declined."

    res = client.post("/api/payment/capture-order", json={"orderId": "pi_1"}, headers=auth(student))
    assert res.status_code == 502
    row = db["enrollment"].find_one({"orderId": "pi_1"})
    assert row["status"] == "failed"
    assert row["failureReason"] == "Your card was declined."
    assert db["course"].find_one()["enrolledStudents"] == []


def test_capture_unknown_order(client, fake_stripe, make_user, auth):
    res = client.post("/api/payment/capture-order", json={"orderId": "pi_404"}, headers=auth(make_user()))
    assert res.status_code == 404


def test_other_students_cannot_capture(client, fake_stripe, make_course, make_user, auth):
    course, _ = make_course()
    student = make_user()
    client.post("/api/payment/create-order", json={"courseId": course["_id"]}, headers=auth(student))
    other = make_user(email="other@learnhub.io")
    res = client.post("/api/payment/capture-order", json={"orderId": "pi_1"}, headers=auth(other))
    assert res.status_code == 404


def test_get_order_completes_captured_intent(client, db, fake_stripe, make_course, make_user, auth):
    course, _ = make_course()
    student = make_user()
    client.post("/api/payment/create-order", json={"courseId": course["_id"]}, headers=auth(student))
    # captured on the Stripe side without the API recording it
    fake_stripe.capture("pi_1")

    res = client.get("/api/payment/order/pi_1", headers=auth(student))
    assert res.status_code == 200
    assert res.json()["status"] == "completed"
    assert db["course"].find_one()["enrolledStudents"] == [str(student["_id"])]


def test_get_order_marks_canceled_intent_failed(client, fake_stripe, make_course, make_user, auth):
    course, _ = make_course()
    student = make_user()
    client.post("/api/payment/create-order", json={"courseId": course["_id"]}, headers=auth(student))
    fake_stripe.intents["pi_1"].status = "canceled"
    assert client.get("/api/payment/order/pi_1", headers=auth(student)).json()["status"] == "failed"


def test_new_order_completes_captured_intent(client, db, fake_stripe, make_course, make_user, auth):
    course, _ = make_course()
    student = make_user()
    client.post("/api/payment/create-order", json={"courseId": course["_id"]}, headers=auth(student))
    fake_stripe.capture("pi_1")

    res = client.post("/api/payment/create-order", json={"courseId": course["_id"]}, headers=auth(student))
    assert res.status_code == 400
    assert res.json()["detail"] == "Already enrolled in this course"
    assert len(fake_stripe.created) == 1

    row = db["enrollment"].find_one({"studentId": str(student["_id"])})
    assert (row["orderId"], row["status"]) == ("pi_1", "completed")
    assert client.get("/api/payment/order/pi_1", headers=auth(student)).json()["status"] == "completed"
    assert db["course"].find_one()["enrolledStudents"] == [str(student["_id"])]


def test_retry_after_failed_capture_cancels_old_intent(client, db, fake_stripe, make_course, make_user, auth):
    course, _ = make_course()
    student = make_user()
    client.post("/api/payment/create-order", json={"courseId": course["_id"]}, headers=auth(student))
    fake_stripe.capture_error = "Your card was declined."
    client.post("/api/payment/capture-order", json={"orderId": "pi_1"}, headers=auth(student))
    fake_stripe.capture_error = None

    res = client.post("/api/payment/create-order", json={"courseId": course["_id"]}, headers=auth(student))
    assert res.status_code == 200
    assert res.json()["orderId"] == "pi_2"
    assert fake_stripe.intents["pi_1"].status == "canceled"
    row = db["enrollment"].find_one({"studentId": str(student["_id"])})
    assert row["status"] == "pending"
    assert "failureReason" not in row
