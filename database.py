"""
Database helpers

Wraps the MongoDB client and the small set of helpers every router uses:
index setup, document creation with timestamps, id parsing and JSON shaping.
The database handle is provided per request through the `get_db` dependency.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

from bson import ObjectId
from fastapi import Depends
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient
from pymongo.database import Database

from config import AppConfig, get_config

logger = logging.getLogger(__name__)

_clients: Dict[str, MongoClient] = {}

# signed 64-bit, the widest integer BSON stores
INT64_MIN = -(2 ** 63)
INT64_MAX = 2 ** 63 - 1

# (collection, field) pairs backed by a unique index
UNIQUE_FIELDS = (
    ("account", "username"),
    ("account", "email"),
    ("product", "product_id"),
    ("customer", "customer_id"),
    ("customer", "customer_email"),
    ("customer", "customer_number"),
    ("order", "order_id"),
)


def get_client(config: AppConfig) -> MongoClient:
    client = _clients.get(config.database_url)
    if client is None:
        client = MongoClient(config.database_url, tz_aware=True)
        _clients[config.database_url] = client
    return client


def get_db(config: AppConfig = Depends(get_config)) -> Database:
    return get_client(config)[config.database_name]


def ensure_indexes(db: Database) -> None:
    for collection_name, field in UNIQUE_FIELDS:
        db[collection_name].create_index([(field, ASCENDING)], unique=True)
    db["order"].create_index([("order_date", ASCENDING)])
    logger.info("Indexes ensured on %s", db.name)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def create_document(db: Database, collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
    if isinstance(data, BaseModel):
        data_dict = data.model_dump()
    else:
        data_dict = dict(data)
    now = utcnow()
    data_dict["created_at"] = now
    data_dict["updated_at"] = now
    result = db[collection_name].insert_one(data_dict)
    return str(result.inserted_id)


def to_object_id(value: Any) -> Optional[ObjectId]:
    if isinstance(value, ObjectId):
        return value
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    return None


def parse_object_id(value: str) -> ObjectId:
    oid = to_object_id(value)
    if oid is None:
        raise ValueError(f"{value!r} is not a valid id")
    return oid


def serialize_doc(doc: Any) -> Any:
    """Convert a stored document into JSON-safe data.

    `_id` becomes `id` at every level, ObjectIds become strings and datetimes
    become ISO strings. Password hashes never leave the service.
    """
    if isinstance(doc, list):
        return [serialize_doc(v) for v in doc]
    if isinstance(doc, ObjectId):
        return str(doc)
    if isinstance(doc, datetime):
        return doc.isoformat()
    if not isinstance(doc, dict):
        return doc
    out = {}
    for k, v in doc.items():
        if k == "password":
            continue
        out["id" if k == "_id" else k] = serialize_doc(v)
    return out
