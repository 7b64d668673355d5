import logging
import re
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from database import get_db
from email_service import EmailService
from otp_service import OTPError, OTPService
from rate_limit import RequestRateLimiter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/otp", tags=["otp"])

VALID_PURPOSES = ("registration", "login", "password_reset")
OTP_RE = re.compile(r"[0-9]{6}")

send_limiter = RequestRateLimiter("otp-send", limit=3, window=timedelta(minutes=5))
verify_limiter = RequestRateLimiter("otp-verify", limit=5, window=timedelta(minutes=10))


@lru_cache
def get_email_service() -> EmailService:
    return EmailService()


def get_otp_service(db=Depends(get_db), email_service: EmailService = Depends(get_email_service)) -> OTPService:
    return OTPService(db["otp"], email_service)


def _client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def _throttle(limiter: RequestRateLimiter, message: str):
    def dependency(request: Request, db=Depends(get_db)):
        if not limiter.hit(db["rate_limit"], _client_ip(request)):
            raise HTTPException(status_code=429, detail=message)
    return dependency


throttle_send = _throttle(send_limiter, "Too many OTP requests. Please wait 5 minutes before trying again.")
throttle_verify = _throttle(verify_limiter, "Too many verification attempts. Please wait 10 minutes before trying again.")


class SendOTPRequest(BaseModel):
    identifier: Optional[str] = None
    purpose: str = "registration"


class VerifyOTPRequest(BaseModel):
    identifier: Optional[str] = None
    otp: Optional[str] = None
    purpose: str = "registration"


def _fail(message: str, status_code: int = 400) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "message": message})


def _sent(result: dict) -> dict:
    return {
        "success": True,
        "message": result["message"],
        "data": {
            "identifier": result["identifier"],
            "type": result["type"],
            "purpose": result["purpose"],
            "expiresAt": result["expiresAt"].isoformat(),
        },
    }


@router.get("/health")
def otp_health_check():
    return {
        "success": True,
        "message": "OTP service is healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "service": "OTP Service",
        "version": "1.0.0",
        "features": ["Email OTP", "SMS OTP", "OTP Verification", "Rate Limiting", "Auto Expiry"],
    }


@router.post("/send", dependencies=[Depends(throttle_send)])
def send_otp(req: SendOTPRequest, otp_service: OTPService = Depends(get_otp_service)):
    if not req.identifier:
        return _fail("Identifier (email or phone) is required")
    if req.purpose not in VALID_PURPOSES:
        return _fail("Invalid purpose. Must be one of: registration, login, password_reset")
    try:
        result = otp_service.create_and_send(req.identifier, req.purpose)
    except OTPError as e:
        logger.info("OTP send rejected for %s: %s", req.identifier, e)
        return _fail(str(e))
    return _sent(result)


@router.post("/verify", dependencies=[Depends(throttle_verify)])
def verify_otp(req: VerifyOTPRequest, otp_service: OTPService = Depends(get_otp_service)):
    if not req.identifier or not req.otp:
        return _fail("Identifier and OTP are required")
    if not OTP_RE.fullmatch(req.otp):
        return _fail("OTP must be a 6-digit number")
    try:
        result = otp_service.verify(req.identifier, req.otp, req.purpose)
    except OTPError as e:
        logger.info("OTP verification failed for %s: %s", req.identifier, e)
        return _fail(str(e))
    return {
        "success": True,
        "message": result["message"],
        "data": {
            "identifier": result["identifier"],
            "purpose": result["purpose"],
            "verifiedAt": datetime.now(timezone.utc).isoformat(),
        },
    }


@router.post("/resend", dependencies=[Depends(throttle_send)])
def resend_otp(req: SendOTPRequest, otp_service: OTPService = Depends(get_otp_service)):
    if not req.identifier:
        return _fail("Identifier (email or phone) is required")
    if req.purpose not in VALID_PURPOSES:
        return _fail("Invalid purpose. Must be one of: registration, login, password_reset")
    try:
        result = otp_service.resend(req.identifier, req.purpose)
    except OTPError as e:
        return _fail(str(e))
    return _sent(result)


@router.get("/status")
def get_otp_status(identifier: Optional[str] = None, purpose: str = "registration",
                   otp_service: OTPService = Depends(get_otp_service)):
    if not identifier:
        return _fail("Identifier (email or phone) is required")
    return {"success": True, "data": otp_service.status(identifier, purpose)}
