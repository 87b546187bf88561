"""
Database Helper Functions

MongoDB helpers shared by the catalog, cart, order and auth modules.
Every pymongo failure leaves this module as a StorageError (or ConflictError
for unique-index violations) so callers never see driver exceptions.
"""

import functools
from datetime import datetime, timezone
from typing import Union, Optional, List

from bson import ObjectId
from bson.errors import InvalidId
from loguru import logger
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient, ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

import config
from errors import ConflictError, StorageError

_client = None
db = None


def storage_errors(func):
    """Translate driver exceptions raised by ``func`` into service errors."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except DuplicateKeyError as exc:
            raise ConflictError("Duplicate value for a unique field", details={"key": _duplicate_key(exc)})
        except PyMongoError:
            logger.exception("Database operation {} failed", func.__name__)
            raise StorageError()

    return wrapper


def _duplicate_key(exc: DuplicateKeyError) -> Optional[dict]:
    details = getattr(exc, "details", None) or {}
    key = details.get("keyValue")
    return dict(key) if key else None


def connect(client: Optional[MongoClient] = None, name: Optional[str] = None):
    """Bind the module to a database and make sure its indexes exist.

    Without arguments the connection comes from DATABASE_URL / DATABASE_NAME;
    when those are unset the module stays unbound.
    """
    global _client, db
    name = name or config.DATABASE_NAME
    if client is None:
        if not (config.DATABASE_URL and name):
            logger.warning("DATABASE_URL / DATABASE_NAME not set, running without a database")
            return None
        client = MongoClient(config.DATABASE_URL, serverSelectionTimeoutMS=config.MONGO_TIMEOUT_MS)
    _client = client
    db = client[name or "food_delivery"]
    ensure_indexes()
    logger.info("Connected to database {}", db.name)
    return db


def close():
    global _client, db
    if _client is not None:
        _client.close()
    _client = None
    db = None


def _ensure_db():
    if db is None:
        logger.error("Database not available. Check DATABASE_URL and DATABASE_NAME environment variables.")
        raise StorageError()


def get_collection(collection_name: str):
    _ensure_db()
    return db[collection_name]


@storage_errors
def ensure_indexes():
    _ensure_db()
    db["user"].create_index([("email", ASCENDING)], unique=True)
    db["order"].create_index([("order_number", ASCENDING)], unique=True)
    db["order"].create_index([("user_id", ASCENDING), ("created_at", DESCENDING)])


def _to_dict(data: Union[BaseModel, dict]) -> dict:
    if isinstance(data, BaseModel):
        return data.model_dump()
    return dict(data)


def to_object_id(id_str: str) -> Optional[ObjectId]:
    try:
        return ObjectId(id_str)
    except (InvalidId, TypeError):
        return None


# CRUD helpers

@storage_errors
def insert_document(collection_name: str, data: Union[BaseModel, dict]) -> dict:
    """Insert with timestamps and return the stored document, serialized."""
    _ensure_db()
    payload = _to_dict(data)
    now = datetime.now(timezone.utc)
    payload['created_at'] = now
    payload['updated_at'] = now
    db[collection_name].insert_one(payload)
    return serialize_doc(payload)


def create_document(collection_name: str, data: Union[BaseModel, dict]) -> str:
    return insert_document(collection_name, data)["_id"]


@storage_errors
def get_documents(collection_name: str, filter_dict: Optional[dict] = None, limit: Optional[int] = None,
                  sort: Optional[list] = None, skip: Optional[int] = None) -> List[dict]:
    _ensure_db()
    cursor = db[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if skip:
        cursor = cursor.skip(int(skip))
    if limit:
        cursor = cursor.limit(int(limit))
    return [serialize_doc(doc) for doc in cursor]


@storage_errors
def get_document_by_id(collection_name: str, _id: str) -> Optional[dict]:
    _ensure_db()
    object_id = to_object_id(_id)
    if object_id is None:
        return None
    doc = db[collection_name].find_one({"_id": object_id})
    return serialize_doc(doc) if doc else None


@storage_errors
def count_documents(collection_name: str, filter_dict: Optional[dict] = None) -> int:
    _ensure_db()
    return db[collection_name].count_documents(filter_dict or {})


@storage_errors
def list_collection_names() -> List[str]:
    _ensure_db()
    return db.list_collection_names()


@storage_errors
def next_sequence(name: str) -> int:
    """Atomically increment and return the counter called ``name``."""
    _ensure_db()
    counter = db["counter"].find_one_and_update(
        {"_id": name},
        {"$inc": {"seq": 1}},
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )
    return int(counter["seq"])


# Utility

def serialize_doc(doc: Optional[dict]) -> Optional[dict]:
    if not doc:
        return None
    d = dict(doc)
    if "_id" in d:
        d["_id"] = str(d["_id"])  # convert ObjectId to string
    return d
