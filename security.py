from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, Header, HTTPException
from jose import JWTError, jwt
from passlib.context import CryptContext

import config

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    if not hashed_password:
        return False
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, config.JWT_SECRET, algorithm=config.JWT_ALGO)


def decode_access_token(token: str) -> dict:
    """Raises JWTError when the token is malformed, forged or expired."""
    return jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALGO])


def token_for_user(user: dict) -> str:
    return create_access_token({
        "id": str(user["_id"]),
        "role": user.get("role", "student"),
        "name": user.get("name"),
    })


def public_user(user: dict) -> dict:
    return {
        "_id": str(user["_id"]),
        "name": user.get("name"),
        "email": user.get("email"),
        "role": user.get("role", "student"),
        "avatar": user.get("avatar"),
    }


def get_current_user(authorization: Optional[str] = Header(None)) -> dict:
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Access denied. No token provided.")
    token = authorization[len("Bearer "):]
    try:
        payload = decode_access_token(token)
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token")
    if not payload.get("id"):
        raise HTTPException(status_code=401, detail="Invalid token")
    payload["_id"] = payload["id"]
    return payload


def require_educator(user: dict = Depends(get_current_user)) -> dict:
    if user.get("role") != "educator":
        raise HTTPException(status_code=403, detail="Educator access required")
    return user
