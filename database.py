"""
MongoDB access for the blood donation API.

A single MongoClient is opened when the app starts and closed when it stops.
Handlers reach the database through ``get_db``.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database
from pymongo.server_api import ServerApi

import config
from errors import ServiceUnavailableError

logger = logging.getLogger(__name__)

USERS = "users"
DONATION_REQUESTS = "donation-requests"
PAYMENTS = "payments"

client: Optional[MongoClient] = None
db: Optional[Database] = None


def connect(url: Optional[str] = None, name: Optional[str] = None) -> Database:
    global client, db
    client = MongoClient(
        url or config.DATABASE_URL,
        server_api=ServerApi("1"),
        serverSelectionTimeoutMS=config.DATABASE_TIMEOUT_MS,
    )
    db = client[name or config.DATABASE_NAME]
    logger.info("Connected to MongoDB database %s", db.name)
    return db


def close():
    global client, db
    if client is not None:
        client.close()
        logger.info("MongoDB connection closed")
    client = None
    db = None


def ensure_indexes(database: Database):
    # The unique email index is what makes registration idempotent.
    database[USERS].create_index([("email", ASCENDING)], unique=True)
    database[USERS].create_index([("status", ASCENDING), ("role", ASCENDING)])
    database[DONATION_REQUESTS].create_index(
        [("requesterEmail", ASCENDING), ("createdAt", DESCENDING)]
    )
    database[DONATION_REQUESTS].create_index([("status", ASCENDING)])
    logger.info("Indexes ensured on %s", database.name)


def get_db() -> Database:
    if db is None:
        raise ServiceUnavailableError("Database not available")
    return db


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def get_documents(database: Database, collection_name: str, filter_dict: Optional[dict] = None,
                  limit: Optional[int] = None, skip: int = 0):
    """Documents matching ``filter_dict``, newest first."""
    cursor = database[collection_name].find(filter_dict or {}).sort("createdAt", DESCENDING)
    if skip:
        cursor = cursor.skip(skip)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)
