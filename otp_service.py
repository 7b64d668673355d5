import logging
import re
import secrets
from datetime import timedelta
from typing import Optional

from database import as_utc, utcnow
from email_service import EmailDeliveryError, EmailService
from validation import normalize_email
from schemas import OTP

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_RE = re.compile(r"^\+?[\d\s\-()]{10,}$")


class OTPError(ValueError):
    pass


class OTPService:
    """Issues and checks one-time passwords stored in the "otp" collection."""

    otp_expiry_minutes = 10
    max_attempts = 3

    def __init__(self, collection, email_service: Optional[EmailService] = None, clock=utcnow):
        self.collection = collection
        self.email_service = email_service or EmailService()
        self.clock = clock

    @staticmethod
    def generate_otp() -> str:
        return str(100000 + secrets.randbelow(900000))

    @staticmethod
    def get_identifier_type(identifier: str) -> str:
        if EMAIL_RE.match(identifier):
            return "email"
        if PHONE_RE.match(identifier):
            return "phone"
        raise OTPError("Invalid identifier format. Please provide a valid email or phone number.")

    @staticmethod
    def normalize_identifier(identifier: str) -> str:
        identifier = identifier.strip()
        return normalize_email(identifier) if "@" in identifier else identifier

    def _is_expired(self, record: dict) -> bool:
        return self.clock() > as_utc(record["expiresAt"])

    def _deliver(self, identifier: str, otp: str, otp_type: str, purpose: str):
        if otp_type == "email":
            try:
                self.email_service.send_otp_email(identifier, otp, purpose, self.otp_expiry_minutes)
            except EmailDeliveryError as e:
                raise OTPError("Failed to send email OTP. Please try again.") from e
        else:
            # no SMS gateway is wired up yet
            logger.info("[MOCK] SMS OTP %s sent to %s", otp, identifier)

    def create_and_send(self, identifier: str, purpose: str = "registration") -> dict:
        identifier = self.normalize_identifier(identifier)
        otp_type = self.get_identifier_type(identifier)
        otp = self.generate_otp()
        now = self.clock()
        expires_at = now + timedelta(minutes=self.otp_expiry_minutes)

        self.collection.delete_many({"identifier": identifier, "isVerified": False, "purpose": purpose})

        record = OTP(
            identifier=identifier,
            otp=otp,
            type=otp_type,
            purpose=purpose,
            expires_at=expires_at,
            max_attempts=self.max_attempts,
        ).model_dump(by_alias=True)
        record.update({"createdAt": now, "updatedAt": now})
        self.collection.insert_one(record)

        self._deliver(identifier, otp, otp_type, purpose)

        return {
            "message": f"OTP sent successfully to {'email' if otp_type == 'email' else 'phone'}",
            "identifier": identifier,
            "type": otp_type,
            "purpose": purpose,
            "expiresAt": expires_at,
        }

    def verify(self, identifier: str, otp: str, purpose: str = "registration") -> dict:
        identifier = self.normalize_identifier(identifier)
        record = self.collection.find_one({"identifier": identifier, "purpose": purpose, "isVerified": False})
        if not record:
            raise OTPError("No OTP found for this identifier. Please request a new OTP.")
        if self._is_expired(record):
            raise OTPError("OTP has expired. Please request a new OTP.")
        if record.get("attempts", 0) >= record.get("maxAttempts", self.max_attempts):
            raise OTPError("Maximum verification attempts exceeded. Please request a new OTP.")

        self.collection.update_one(
            {"_id": record["_id"]},
            {"$inc": {"attempts": 1}, "$set": {"updatedAt": self.clock()}},
        )

        if not secrets.compare_digest(record["otp"].encode(), otp.encode()):
            raise OTPError("Invalid OTP. Please try again.")

        self.collection.update_one(
            {"_id": record["_id"]},
            {"$set": {"isVerified": True, "updatedAt": self.clock()}},
        )
        logger.info("OTP verified for %s (%s)", identifier, purpose)
        return {"message": "OTP verified successfully", "identifier": identifier, "purpose": purpose}

    def resend(self, identifier: str, purpose: str = "registration") -> dict:
        return self.create_and_send(identifier, purpose)

    def _latest(self, identifier: str, purpose: str) -> Optional[dict]:
        cursor = self.collection.find({"identifier": identifier, "purpose": purpose}).sort("createdAt", -1).limit(1)
        return next(iter(cursor), None)

    def status(self, identifier: str, purpose: str = "registration") -> dict:
        identifier = self.normalize_identifier(identifier)
        record = self._latest(identifier, purpose)
        if not record:
            return {"exists": False, "message": "No OTP found"}
        return {
            "exists": True,
            "isVerified": record.get("isVerified", False),
            "isExpired": self._is_expired(record),
            "attempts": record.get("attempts", 0),
            "maxAttempts": record.get("maxAttempts", self.max_attempts),
            "expiresAt": as_utc(record["expiresAt"]).isoformat(),
            "createdAt": as_utc(record["createdAt"]).isoformat() if record.get("createdAt") else None,
        }

    def is_verified(self, identifier: str, purpose: str) -> bool:
        identifier = self.normalize_identifier(identifier)
        record = self.collection.find_one({"identifier": identifier, "purpose": purpose, "isVerified": True})
        return bool(record) and not self._is_expired(record)
