import logging
from datetime import timedelta
from typing import Optional
from urllib.parse import urlencode

import httpx
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse, RedirectResponse
from jose import JWTError
from pydantic import BaseModel, ValidationError, field_validator
from pymongo.errors import DuplicateKeyError

import config
from database import create_document, get_db, to_object_id, utcnow
from otp_routes import get_otp_service
from otp_service import OTPService
from rate_limit import LoginRateLimiter, MongoAttemptStore
from schemas import User
from security import (
    create_access_token,
    decode_access_token,
    get_current_user,
    hash_password,
    public_user,
    token_for_user,
    verify_password,
)
from validation import normalize_email, validate_email, validate_password

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v3/userinfo"


class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, value):
        return normalize_email(value)


class RegisterRequest(LoginRequest):
    name: Optional[str] = None
    role: Optional[str] = None


class RefreshRequest(BaseModel):
    token: Optional[str] = None


def get_login_limiter(db=Depends(get_db)) -> LoginRateLimiter:
    return LoginRateLimiter(MongoAttemptStore(db["login_attempt"]))


def _check_credentials(db, email: str, password: str) -> Optional[dict]:
    user = db["user"].find_one({"email": email})
    if not user or not verify_password(password, user.get("password")):
        return None
    return user


@router.post("/register", status_code=201)
def register(req: RegisterRequest, db=Depends(get_db), otp_service: OTPService = Depends(get_otp_service)):
    if not req.name or not req.email or not req.password or not req.role:
        raise HTTPException(status_code=400, detail="All fields are required")
    if not validate_email(req.email):
        raise HTTPException(status_code=400, detail="Invalid email format")
    if not validate_password(req.password):
        raise HTTPException(status_code=400, detail="Password must be at least 6 characters")
    if req.role not in ("student", "educator"):
        raise HTTPException(status_code=400, detail="Role must be student or educator")

    if db["user"].find_one({"email": req.email}):
        raise HTTPException(status_code=400, detail="User already exists")

    if config.REQUIRE_REGISTRATION_OTP and not otp_service.is_verified(req.email, "registration"):
        raise HTTPException(status_code=400, detail="Please verify your email with OTP before registration")

    try:
        user = User(name=req.name, email=req.email, password=hash_password(req.password), role=req.role)
    except ValidationError:
        raise HTTPException(status_code=400, detail="Invalid email format")
    try:
        doc = create_document("user", user)
    except DuplicateKeyError:
        raise HTTPException(status_code=400, detail="User already exists")

    logger.info("Registered %s as %s", req.email, req.role)
    return {"user": public_user(doc), "token": token_for_user(doc)}


@router.post("/login")
def login(req: LoginRequest, request: Request, db=Depends(get_db),
          limiter: LoginRateLimiter = Depends(get_login_limiter),
          otp_service: OTPService = Depends(get_otp_service)):
    if not req.email or not req.password:
        raise HTTPException(status_code=400, detail="Email and password are required")

    ip = request.client.host if request.client else "unknown"
    key = f"{ip}:{req.email}"
    if limiter.is_locked_out(key):
        minutes = limiter.remaining_minutes(key)
        raise HTTPException(
            status_code=429,
            detail=f"Too many failed login attempts. Try again in {minutes} minutes.",
        )

    user = _check_credentials(db, req.email, req.password)
    if not user:
        limiter.record_failure(key)
        raise HTTPException(status_code=400, detail="Invalid credentials")

    if config.REQUIRE_LOGIN_OTP and not otp_service.is_verified(req.email, "login"):
        return {
            "user": public_user(user),
            "requiresOTP": True,
            "message": "Please verify OTP to complete login",
        }

    limiter.reset(key)
    return {"user": public_user(user), "token": token_for_user(user)}


@router.post("/complete-login")
def complete_login(req: LoginRequest, request: Request, db=Depends(get_db),
                   limiter: LoginRateLimiter = Depends(get_login_limiter),
                   otp_service: OTPService = Depends(get_otp_service)):
    if not req.email or not req.password:
        raise HTTPException(status_code=400, detail="Email and password are required")

    user = _check_credentials(db, req.email, req.password)
    if not user:
        raise HTTPException(status_code=400, detail="Invalid credentials")
    if not otp_service.is_verified(req.email, "login"):
        raise HTTPException(status_code=400, detail="OTP verification required to complete login")

    ip = request.client.host if request.client else "unknown"
    limiter.reset(f"{ip}:{req.email}")
    return {"user": public_user(user), "token": token_for_user(user)}


@router.post("/refresh-token")
def refresh_token(req: RefreshRequest):
    if not req.token:
        raise HTTPException(status_code=400, detail="Token is required")
    try:
        decoded = decode_access_token(req.token)
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token")
    token = create_access_token({"id": decoded.get("id"), "role": decoded.get("role"), "name": decoded.get("name")})
    return {"token": token}


@router.get("/me")
def me(current=Depends(get_current_user), db=Depends(get_db)):
    user = db["user"].find_one({"_id": to_object_id(current["id"], "user id")})
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return {"user": public_user(user)}


# Google OAuth

def _require_google():
    if not config.GOOGLE_CLIENT_ID or not config.GOOGLE_CLIENT_SECRET:
        raise HTTPException(status_code=400, detail="Google sign-in is not configured")


@router.get("/google")
def google_login():
    _require_google()
    # short lived signed state, checked again on the callback
    state = create_access_token({"purpose": "google_oauth"}, timedelta(minutes=10))
    params = {
        "client_id": config.GOOGLE_CLIENT_ID,
        "redirect_uri": config.GOOGLE_CALLBACK_URL,
        "response_type": "code",
        "scope": "openid profile email",
        "state": state,
    }
    return RedirectResponse(f"{GOOGLE_AUTH_URL}?{urlencode(params)}")


def fetch_google_profile(code: str) -> dict:
    with httpx.Client(timeout=10) as client:
        token_res = client.post(GOOGLE_TOKEN_URL, data={
            "code": code,
            "client_id": config.GOOGLE_CLIENT_ID,
            "client_secret": config.GOOGLE_CLIENT_SECRET,
            "redirect_uri": config.GOOGLE_CALLBACK_URL,
            "grant_type": "authorization_code",
        })
        token_res.raise_for_status()
        access_token = token_res.json()["access_token"]
        profile_res = client.get(GOOGLE_USERINFO_URL, headers={"Authorization": f"Bearer {access_token}"})
        profile_res.raise_for_status()
        return profile_res.json()


def find_or_create_google_user(db, profile: dict) -> dict:
    google_id = profile["sub"]
    user = db["user"].find_one({"googleId": google_id})
    if user:
        return user

    email = normalize_email(profile.get("email"))
    user = db["user"].find_one({"email": email}) if email else None
    if user:
        db["user"].update_one({"_id": user["_id"]}, {"$set": {"googleId": google_id, "updatedAt": utcnow()}})
        user["googleId"] = google_id
        return user

    doc = create_document("user", User(
        name=profile.get("name") or email,
        email=email,
        google_id=google_id,
        avatar=profile.get("picture"),
        role="student",
    ))
    logger.info("Created Google account for %s", email)
    return doc


@router.get("/google/callback")
def google_callback(code: Optional[str] = None, state: Optional[str] = None, db=Depends(get_db)):
    _require_google()
    if not code or not state:
        raise HTTPException(status_code=400, detail="Missing authorization code")
    try:
        if decode_access_token(state).get("purpose") != "google_oauth":
            raise HTTPException(status_code=400, detail="Invalid OAuth state")
    except JWTError:
        raise HTTPException(status_code=400, detail="Invalid OAuth state")

    try:
        profile = fetch_google_profile(code)
    except (httpx.HTTPError, KeyError) as e:
        logger.error("Google sign-in failed: %s", e)
        return JSONResponse(status_code=401, content={"detail": "Google authentication failed"})

    try:
        user = find_or_create_google_user(db, profile)
    except ValidationError as e:
        logger.error("Google profile rejected: %s", e)
        return JSONResponse(status_code=401, content={"detail": "Google authentication failed"})
    token = token_for_user(user)
    return RedirectResponse(f"{config.FRONTEND_URL}/auth/success?{urlencode({'token': token})}")
