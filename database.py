"""
Entity store

Thin helpers over a pymongo Database handle. Service functions take the
handle as their first argument so the HTTP layer can inject it through
``get_db`` and tests can hand in an in-memory database.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Type, Union

from bson import ObjectId
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient

from config import Config
from errors import DependencyUnavailable, NotFoundError

logger = logging.getLogger(__name__)

client: Optional[MongoClient] = None
db = None

if Config.DATABASE_URL:
    client = MongoClient(Config.DATABASE_URL)
    db = client[Config.DATABASE_NAME]


def get_db():
    """FastAPI dependency returning the configured database."""
    if db is None:
        raise DependencyUnavailable("Database is not configured")
    return db


def utcnow() -> datetime:
    # BSON dates come back naive, so everything stored is naive UTC
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_object_id(value: Any, not_found: Type[NotFoundError] = NotFoundError) -> ObjectId:
    """Parse a path id; malformed ids are reported as missing resources."""
    if isinstance(value, ObjectId):
        return value
    if not value or not ObjectId.is_valid(value):
        raise not_found()
    return ObjectId(value)


def create_document(database, collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
    if isinstance(data, BaseModel):
        data = data.model_dump()
    document = dict(data)
    now = utcnow()
    document.setdefault("created_at", now)
    document["updated_at"] = now
    result = database[collection_name].insert_one(document)
    return str(result.inserted_id)


def get_documents(database, collection_name: str, filter_dict: Optional[Dict[str, Any]] = None,
                  limit: Optional[int] = None, newest_first: bool = False) -> List[Dict[str, Any]]:
    cursor = database[collection_name].find(filter_dict or {})
    if newest_first:
        cursor = cursor.sort("created_at", DESCENDING)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


# Each entry is (collection, keys, options)
INDEXES = [
    ("car", [("owner_id", ASCENDING)], {}),
    ("rentalrecord", [("renter_id", ASCENDING)], {}),
    ("rentalrecord", [("car_id", ASCENDING), ("status", ASCENDING)], {}),
    ("riderequest", [("rental_record_id", ASCENDING), ("target_driver_id", ASCENDING)], {"unique": True}),
    ("riderequest", [("target_driver_id", ASCENDING), ("status", ASCENDING)], {}),
    ("driver", [("user_id", ASCENDING)], {"unique": True}),
    ("driver", [("location", ASCENDING), ("is_available", ASCENDING)], {}),
    ("notification", [("user_id", ASCENDING), ("created_at", DESCENDING)], {}),
]


def ensure_indexes(database) -> None:
    """Create the lookup indexes used by the booking flow."""
    for collection, keys, options in INDEXES:
        database[collection].create_index(keys, **options)
    logger.info("Database indexes ensured")


def missing_indexes(database) -> List[str]:
    """Names of expected indexes the database does not have, matched on field order."""
    missing = []
    for collection, keys, _ in INDEXES:
        fields = [field for field, _ in keys]
        present = [
            [field for field, _ in info["key"]]
            for info in database[collection].index_information().values()
        ]
        if fields not in present:
            missing.append(f"{collection}({', '.join(fields)})")
    return missing
