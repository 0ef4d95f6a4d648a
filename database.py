"""
MongoDB access helpers.

Collections are named after the lowercase schema class: `user`, `category`,
`product`, `order`.
"""
from datetime import datetime, timezone
from typing import Any, Optional, Union

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient
from pymongo.database import Database

from config import settings
from errors import ShopError, ValidationError

_client: Optional[MongoClient] = None
db: Optional[Database] = None

if settings.database_url and settings.database_name:
    _client = MongoClient(settings.database_url)
    db = _client[settings.database_name]


def get_db() -> Database:
    """FastAPI dependency returning the configured database."""
    if db is None:
        raise ShopError("Database is not configured")
    return db


def ensure_indexes(database: Database):
    database["user"].create_index([("email", ASCENDING)], unique=True)
    database["category"].create_index([("name", ASCENDING)], unique=True)
    database["category"].create_index([("slug", ASCENDING)], unique=True)
    database["product"].create_index([("slug", ASCENDING)])
    database["product"].create_index([("category_id", ASCENDING)])
    database["order"].create_index([("user_id", ASCENDING)])
    database["order"].create_index([("legacy_order_id", ASCENDING)])
    database["order"].create_index([("gateway_order_id", ASCENDING)])
    database["order"].create_index([("gateway_payment_id", ASCENDING)])


def now() -> datetime:
    return datetime.now(timezone.utc)


def create_document(database: Database, collection_name: str, data: Union[BaseModel, dict]) -> ObjectId:
    """Insert a document stamped with created/updated times and return its id."""
    if isinstance(data, BaseModel):
        doc = data.model_dump()
    else:
        doc = dict(data)
    stamp = now()
    doc.setdefault("created_at", stamp)
    doc.setdefault("updated_at", stamp)
    return database[collection_name].insert_one(doc).inserted_id


def get_documents(database: Database, collection_name: str, filter_dict: dict = None, limit: int = None, sort=None):
    cursor = database[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def to_object_id(value: Any, what: str = "ID") -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        raise ValidationError(f"Invalid {what} format")


def serialize_doc(doc):
    """Make a stored document JSON friendly: `_id` becomes `id`, ObjectIds and datetimes become strings."""
    if isinstance(doc, dict):
        out = {}
        for k, v in doc.items():
            if k == "_id":
                out["id"] = serialize_doc(v)
            else:
                out[k] = serialize_doc(v)
        return out
    if isinstance(doc, list):
        return [serialize_doc(v) for v in doc]
    if isinstance(doc, ObjectId):
        return str(doc)
    if isinstance(doc, datetime):
        return doc.isoformat()
    return doc
