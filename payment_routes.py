"""
Course checkout.

A Stripe PaymentIntent with manual capture plays the part of an order:
``create-order`` authorizes the amount, ``capture-order`` charges it.
The enrollment row is written as ``pending`` before anything is charged
and only flipped to ``completed`` after the capture succeeds, so a
capture whose bookkeeping failed can be finished later from the
pending row (see ``sync_with_intent``).
"""

import logging
from typing import Optional

import stripe
from fastapi import APIRouter, Depends, HTTPException
from pymongo.errors import DuplicateKeyError

import config
from course_routes import get_course_or_404
from database import create_document, get_db, serialize_doc, utcnow
from enrollment_routes import add_student_to_course, course_price
from schemas import CamelModel, Enrollment
from security import get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/payment", tags=["payment"])


class PaymentError(ValueError):
    pass


class CreateOrderRequest(CamelModel):
    course_id: Optional[str] = None


class CaptureOrderRequest(CamelModel):
    order_id: Optional[str] = None


def convert_to_usd(inr_amount: float) -> float:
    return round(inr_amount * config.INR_TO_USD_RATE, 2)


def charge_amount(course: dict) -> float:
    """Discounted course price expressed in the payment currency."""
    price = course_price(course)
    if config.COURSE_PRICE_CURRENCY.lower() == "inr" and config.PAYMENT_CURRENCY.lower() == "usd":
        return convert_to_usd(price)
    return round(price, 2)


def _require_stripe():
    if not config.STRIPE_SECRET_KEY:
        raise HTTPException(status_code=400, detail="Payments are not configured")
    stripe.api_key = config.STRIPE_SECRET_KEY


def create_intent(amount: float, course_id: str, student_id: str):
    try:
        return stripe.PaymentIntent.create(
            amount=int(round(amount * 100)),
            currency=config.PAYMENT_CURRENCY.lower(),
            capture_method="manual",
            metadata={"courseId": course_id, "studentId": student_id},
        )
    except stripe.StripeError as e:
        raise PaymentError(str(e)) from e


def capture_intent(order_id: str):
    try:
        return stripe.PaymentIntent.capture(order_id)
    except stripe.StripeError as e:
        raise PaymentError(str(e)) from e


def cancel_intent(order_id: str) -> bool:
    try:
        stripe.PaymentIntent.cancel(order_id)
    except stripe.StripeError as e:
        logger.warning("Could not cancel order %s: %s", order_id, e)
        return False
    return True


def mark_completed(db, enrollment: dict, intent) -> dict:
    payment_id = getattr(intent, "latest_charge", None) or intent.id
    db["enrollment"].update_one(
        {"_id": enrollment["_id"]},
        {"$set": {"status": "completed", "paymentId": payment_id, "updatedAt": utcnow()}},
    )
    add_student_to_course(db, enrollment["courseId"], enrollment["studentId"])
    return db["enrollment"].find_one({"_id": enrollment["_id"]})


def mark_failed(db, enrollment: dict, reason: str):
    db["enrollment"].update_one(
        {"_id": enrollment["_id"]},
        {"$set": {"status": "failed", "failureReason": reason, "updatedAt": utcnow()}},
    )


def sync_with_intent(db, enrollment: dict) -> dict:
    """Finish a pending enrollment whose PaymentIntent was already captured."""
    try:
        intent = stripe.PaymentIntent.retrieve(enrollment["orderId"])
    except stripe.StripeError as e:
        logger.warning("Could not look up order %s: %s", enrollment["orderId"], e)
        return enrollment
    if intent.status == "succeeded":
        logger.info("Completing enrollment for already captured order %s", enrollment["orderId"])
        return mark_completed(db, enrollment, intent)
    if intent.status == "canceled":
        mark_failed(db, enrollment, "Payment was canceled")
        return db["enrollment"].find_one({"_id": enrollment["_id"]})
    return enrollment


@router.post("/create-order")
def create_order(req: CreateOrderRequest, user=Depends(get_current_user), db=Depends(get_db)):
    if not req.course_id:
        raise HTTPException(status_code=400, detail="courseId is required")
    _require_stripe()

    course = get_course_or_404(db, req.course_id)
    course_id = str(course["_id"])
    amount = charge_amount(course)
    if amount <= 0:
        raise HTTPException(status_code=400, detail="This course is free. Enroll directly.")

    existing = db["enrollment"].find_one({"studentId": user["id"], "courseId": course_id})
    if existing and existing.get("orderId") and existing.get("status") != "completed":
        # the previous intent may have been captured without the row being updated
        existing = sync_with_intent(db, existing)
        if existing.get("status") != "completed" and not cancel_intent(existing["orderId"]):
            existing = sync_with_intent(db, existing)
    if existing and existing.get("status") == "completed":
        raise HTTPException(status_code=400, detail="Already enrolled in this course")

    try:
        intent = create_intent(amount, course_id, user["id"])
    except PaymentError as e:
        logger.error("Creating order for course %s failed: %s", course_id, e)
        raise HTTPException(status_code=502, detail="Error creating order")

    fields = {
        "orderId": intent.id,
        "paymentId": None,
        "amount": amount,
        "currency": config.PAYMENT_CURRENCY.lower(),
        "status": "pending",
        "updatedAt": utcnow(),
    }
    if existing:
        db["enrollment"].update_one({"_id": existing["_id"]}, {"$set": fields, "$unset": {"failureReason": ""}})
    else:
        enrollment = Enrollment(student_id=user["id"], course_id=course_id, order_id=intent.id, amount=amount,
                                currency=fields["currency"])
        try:
            create_document("enrollment", enrollment)
        except DuplicateKeyError:
            raise HTTPException(status_code=400, detail="An order for this course is already in progress")

    logger.info("Created order %s for student %s, course %s", intent.id, user["id"], course_id)
    return {
        "orderId": intent.id,
        "clientSecret": getattr(intent, "client_secret", None),
        "amount": amount,
        "currency": fields["currency"],
    }


@router.post("/capture-order")
def capture_order(req: CaptureOrderRequest, user=Depends(get_current_user), db=Depends(get_db)):
    if not req.order_id:
        raise HTTPException(status_code=400, detail="orderId is required")
    _require_stripe()

    enrollment = db["enrollment"].find_one({"orderId": req.order_id, "studentId": user["id"]})
    if not enrollment:
        raise HTTPException(status_code=404, detail="Order not found")
    if enrollment.get("status") == "completed":
        return {"success": True, "message": "Payment already captured", "enrollment": serialize_doc(enrollment)}

    try:
        intent = capture_intent(req.order_id)
    except PaymentError as e:
        logger.error("Capture of order %s failed: %s", req.order_id, e)
        mark_failed(db, enrollment, str(e))
        raise HTTPException(status_code=502, detail="Payment capture failed")

    if intent.status != "succeeded":
        mark_failed(db, enrollment, f"Unexpected payment status {intent.status}")
        raise HTTPException(status_code=400, detail="Payment was not completed")

    try:
        enrollment = mark_completed(db, enrollment, intent)
    except Exception:
        logger.exception("Order %s was captured but the enrollment could not be recorded", req.order_id)
        raise

    logger.info("Captured order %s, student %s enrolled", req.order_id, user["id"])
    return {
        "success": True,
        "message": "Payment captured and enrollment created successfully",
        "enrollment": serialize_doc(enrollment),
    }


@router.get("/order/{order_id}")
def get_order(order_id: str, user=Depends(get_current_user), db=Depends(get_db)):
    enrollment = db["enrollment"].find_one({"orderId": order_id, "studentId": user["id"]})
    if not enrollment:
        raise HTTPException(status_code=404, detail="Order not found")
    if enrollment.get("status") == "pending" and config.STRIPE_SECRET_KEY:
        stripe.api_key = config.STRIPE_SECRET_KEY
        enrollment = sync_with_intent(db, enrollment)
    return serialize_doc(enrollment)
