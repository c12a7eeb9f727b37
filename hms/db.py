# hms/db.py
import logging
from typing import Optional

from pymongo import ASCENDING, MongoClient
from pymongo.errors import ServerSelectionTimeoutError

from hms.config import (
    ADMISSIONS_COLLECTION,
    MONGO_DB_NAME,
    MONGO_URI,
    USE_MOCK,
    USE_TRANSACTIONS,
    WARDS_COLLECTION,
)

logger = logging.getLogger(__name__)

_client: Optional[MongoClient] = None


def get_mongo_client():
    """
    Returns the process-wide, ping-tested MongoClient.
    If MONGO_MOCK=1 is set, returns an in-memory mongomock client.
    """
    global _client
    if _client is not None:
        return _client

    if USE_MOCK:
        import mongomock  # type: ignore
        _client = mongomock.MongoClient()
        return _client

    try:
        client = MongoClient(MONGO_URI, serverSelectionTimeoutMS=5000)
        client.admin.command("ping")
    except ServerSelectionTimeoutError as e:
        raise RuntimeError(f"Cannot connect to MongoDB at {MONGO_URI}: {e}") from e
    _client = client
    return _client


def get_database():
    client = get_mongo_client()
    name = MONGO_DB_NAME or "hospital"
    return client[name]


def transactions_enabled() -> bool:
    return USE_TRANSACTIONS


def ensure_indexes(db) -> None:
    """Ward names are unique case-insensitively through the lower-cased name_key."""
    db[WARDS_COLLECTION].create_index([("name_key", ASCENDING)], unique=True)
    db[ADMISSIONS_COLLECTION].create_index([("patient.id", ASCENDING)])
    db[ADMISSIONS_COLLECTION].create_index([("status", ASCENDING)])
    logger.debug("Indexes ensured on %s", db.name)
