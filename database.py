"""
Database helpers for the Fitness Tracker API

The MongoDB handle is created once from the environment and handed to
routes through the `get_db` dependency, so tests can swap in another
database object via `app.dependency_overrides`.
"""
import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from bson import ObjectId
from fastapi import HTTPException
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient
from pymongo.database import Database

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME", "fitnessDB")

client: Optional[MongoClient] = None
db: Optional[Database] = None

if DATABASE_URL:
    client = MongoClient(DATABASE_URL)
    db = client[DATABASE_NAME]


def get_db() -> Database:
    if db is None:
        raise HTTPException(status_code=500, detail="Database not configured")
    return db


def get_optional_db() -> Optional[Database]:
    return db


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def create_document(database: Database, collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
    """Insert one document stamped with createdAt and return its id as a string."""
    if isinstance(data, BaseModel):
        doc = data.model_dump()
    else:
        doc = dict(data)
    doc.setdefault("createdAt", now_utc())
    result = database[collection_name].insert_one(doc)
    return str(result.inserted_id)


def get_documents(
    database: Database,
    collection_name: str,
    filter_dict: Optional[Dict[str, Any]] = None,
    sort_newest: bool = True,
    limit: Optional[int] = None,
) -> List[Dict[str, Any]]:
    cursor = database[collection_name].find(filter_dict or {})
    if sort_newest:
        cursor = cursor.sort("createdAt", -1)
    if limit:
        cursor = cursor.limit(int(limit))
    return list(cursor)


def to_object_id(value: str) -> Optional[ObjectId]:
    """Parse a client supplied id; None when it is not a valid ObjectId."""
    if not isinstance(value, str) or not ObjectId.is_valid(value):
        return None
    return ObjectId(value)


def ensure_indexes(database: Database) -> None:
    # users demoted from trainers may have no email; only string emails are unique
    string_email = {"email": {"$type": "string"}}
    database["users"].create_index([("email", ASCENDING)], unique=True, partialFilterExpression=string_email)
    database["subscriber"].create_index([("email", ASCENDING)], unique=True, partialFilterExpression=string_email)
    database["trainers"].create_index([("status", ASCENDING)])
    database["trainers"].create_index([("email", ASCENDING)])
    database["bookings"].create_index([("userEmail", ASCENDING)])
    database["bookings"].create_index([("trainerId", ASCENDING)])
    database["reviews"].create_index([("trainerId", ASCENDING)])
    logger.info("Indexes ensured on %s", database.name)
