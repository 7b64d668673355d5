"""
Database helpers

A single pymongo database handle shared by every router. Collections are
named after the lowercased schema class (User -> "user", OTP -> "otp").
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from bson import ObjectId
from bson.errors import InvalidId
from fastapi import HTTPException
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient

import config

logger = logging.getLogger(__name__)

db = None

if config.DATABASE_URL:
    _client = MongoClient(config.DATABASE_URL)
    db = _client[config.DATABASE_NAME]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # pymongo hands back naive UTC datetimes unless tz_aware is set
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def get_db():
    if db is None:
        raise HTTPException(status_code=500, detail="Database not configured")
    return db


def to_object_id(value: str, label: str = "id") -> ObjectId:
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        raise HTTPException(status_code=400, detail=f"Invalid {label}")


def create_document(collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> dict:
    """Insert a document stamped with createdAt/updatedAt and return it with its _id."""
    database = get_db()
    if isinstance(data, BaseModel):
        doc = data.model_dump(by_alias=True, exclude_none=True)
    else:
        doc = dict(data)
    now = utcnow()
    doc.setdefault("createdAt", now)
    doc["updatedAt"] = now
    doc["_id"] = database[collection_name].insert_one(doc).inserted_id
    return doc


def get_documents(collection_name: str, filter_dict: Optional[dict] = None, limit: Optional[int] = None) -> List[dict]:
    database = get_db()
    cursor = database[collection_name].find(filter_dict or {})
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def serialize_doc(doc: Optional[dict]):
    if not doc:
        return doc
    d = {}
    for k, v in doc.items():
        if isinstance(v, ObjectId):
            d[k] = str(v)
        elif isinstance(v, datetime):
            d[k] = v.isoformat()
        elif isinstance(v, dict):
            d[k] = serialize_doc(v)
        elif isinstance(v, list):
            d[k] = [serialize_doc(i) if isinstance(i, dict) else (str(i) if isinstance(i, ObjectId) else i) for i in v]
        else:
            d[k] = v
    return d


def ensure_indexes(database=None):
    database = database if database is not None else db
    if database is None:
        logger.warning("No database configured, skipping index creation")
        return
    database["user"].create_index([("email", ASCENDING)], unique=True)
    database["otp"].create_index([("identifier", ASCENDING), ("purpose", ASCENDING)])
    # Mongo removes OTP documents once expiresAt has passed
    database["otp"].create_index([("expiresAt", ASCENDING)], expireAfterSeconds=0)
    database["enrollment"].create_index(
        [("studentId", ASCENDING), ("courseId", ASCENDING)], unique=True
    )
    database["enrollment"].create_index([("orderId", ASCENDING)])
    database["login_attempt"].create_index([("key", ASCENDING)], unique=True)
    database["rate_limit"].create_index([("key", ASCENDING)], unique=True)
    for name in ("login_attempt", "rate_limit"):
        database[name].create_index([("expiresAt", ASCENDING)], expireAfterSeconds=0)
    logger.info("Database indexes ensured")
