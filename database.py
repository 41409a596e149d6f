"""
MongoDB access helpers

The client is created once from DATABASE_URL / DATABASE_NAME. When either is
missing `db` stays None and every request that needs the database gets a 503.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from bson.errors import InvalidId
from bson.objectid import ObjectId
from fastapi import Depends, HTTPException
from pydantic import BaseModel
from pymongo import MongoClient
from pymongo.database import Database

from errors import NotFoundError
from settings import get_settings

_settings = get_settings()

client: Optional[MongoClient] = None
db: Optional[Database] = None

if _settings.database_url and _settings.database_name:
    client = MongoClient(_settings.database_url, tz_aware=True)
    db = client[_settings.database_name]


def get_optional_db() -> Optional[Database]:
    return db


def get_db(database: Optional[Database] = Depends(get_optional_db)) -> Database:
    if database is None:
        raise HTTPException(status_code=503, detail="Database not configured")
    return database


def now() -> datetime:
    return datetime.now(timezone.utc)


def create_document(database: Database, collection_name: str, data: Union[BaseModel, dict]) -> str:
    """Insert a document, stamping created_at/updated_at, and return its id."""
    if isinstance(data, BaseModel):
        data_dict = data.model_dump()
    else:
        data_dict = dict(data)
    stamp = now()
    data_dict.setdefault("created_at", stamp)
    data_dict["updated_at"] = stamp
    result = database[collection_name].insert_one(data_dict)
    return str(result.inserted_id)


def get_documents(
    database: Database,
    collection_name: str,
    filter_dict: Optional[Dict[str, Any]] = None,
    sort: Optional[List] = None,
    limit: Optional[int] = None,
) -> List[Dict[str, Any]]:
    cursor = database[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def parse_object_id(value: str, not_found_message: str) -> ObjectId:
    # malformed ids are reported the same way as missing documents
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        raise NotFoundError(not_found_message)


def serialize_doc(doc):
    if not doc:
        return doc
    doc = dict(doc)
    _id = doc.get("_id")
    if isinstance(_id, ObjectId):
        doc["id"] = str(_id)
        del doc["_id"]
    doc.pop("password_hash", None)
    # convert datetimes
    for k, v in list(doc.items()):
        if isinstance(v, datetime):
            doc[k] = v.isoformat()
    return doc
