"""
Database access

A single pymongo client shared by the process, plus the small helpers the
routers use to read, write and serialize MongoDB documents.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from bson import ObjectId
from pydantic import BaseModel
from pymongo import MongoClient
from pymongo.database import Database

import config

logger = logging.getLogger(__name__)

# MongoClient connects lazily, so importing this module never blocks on the server.
client = MongoClient(config.DATABASE_URL, serverSelectionTimeoutMS=5000)
db = client[config.DATABASE_NAME]


def get_db() -> Database:
    return db


def to_object_id(value: Union[str, ObjectId]) -> ObjectId:
    """Parse a hex id, raising bson's InvalidId for malformed input."""
    if isinstance(value, ObjectId):
        return value
    return ObjectId(value)


def create_document(database: Database, collection_name: str, data: Union[BaseModel, dict]) -> str:
    if isinstance(data, BaseModel):
        data_dict = data.model_dump()
    else:
        data_dict = dict(data)
    now = datetime.now(timezone.utc)
    data_dict["created_at"] = now
    data_dict["updated_at"] = now
    result = database[collection_name].insert_one(data_dict)
    logger.debug("Inserted %s into %s", result.inserted_id, collection_name)
    return str(result.inserted_id)


def get_documents(database: Database, collection_name: str, filter_dict: Optional[dict] = None,
                  limit: Optional[int] = None, projection: Optional[dict] = None) -> List[dict]:
    cursor = database[collection_name].find(filter_dict or {}, projection)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def populate(database: Database, doc: Optional[dict], field: str, collection_name: str,
             projection: Optional[dict] = None) -> Optional[dict]:
    """Replace the id (or list of ids) stored in ``doc[field]`` with the referenced documents.

    Ids that no longer resolve are dropped from lists and become ``None`` for
    single references.
    """
    if not doc:
        return doc
    value = doc.get(field)
    if isinstance(value, list):
        found = {d["_id"]: d for d in database[collection_name].find({"_id": {"$in": value}}, projection)}
        doc[field] = [found[v] for v in value if v in found]
    elif value is not None:
        doc[field] = database[collection_name].find_one({"_id": value}, projection)
    return doc


def _serialize_value(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return serialize_doc(value)
    if isinstance(value, list):
        return [_serialize_value(v) for v in value]
    return value


def serialize_doc(doc: Optional[Dict[str, Any]]):
    if not doc:
        return doc
    out = {}
    for k, v in doc.items():
        if k == "_id":
            out["id"] = str(v)
        else:
            out[k] = _serialize_value(v)
    return out


def ensure_indexes(database: Database) -> None:
    database["user"].create_index("email", unique=True)
    logger.info("Indexes ensured on %s", database.name)
