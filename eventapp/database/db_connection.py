"""
MongoDB connection helper.
Provides get_db() for use by services.
"""

import os
from typing import Optional

from dotenv import load_dotenv
from pymongo import MongoClient
from pymongo.database import Database

# Load .env variables from the project root
load_dotenv()

MONGODB_URL = os.getenv("MONGODB_URL")
MONGODB_DB = os.getenv("MONGODB_DB", "event-app")

EVENTS_COLLECTION = "events"
USERS_COLLECTION = "users"

_client: Optional[MongoClient] = None


def get_client() -> MongoClient:
    """
    Return the process-wide MongoClient, creating it on first use.

    MongoClient keeps its own connection pool and is safe to share
    between request threads.

    Raises:
        RuntimeError: If MONGODB_URL is not configured.
    """
    global _client
    if _client is None:
        if not MONGODB_URL:
            raise RuntimeError("MONGODB_URL is not set. Please set the environment variable.")
        _client = MongoClient(MONGODB_URL, tz_aware=True)
    return _client


def get_db() -> Database:
    """
    Returns the application database.

    Usage:
        db = get_db()
        db["events"].find_one({"_id": oid})

    Returns:
        pymongo.database.Database: The configured database handle.
    """
    return get_client()[MONGODB_DB]


def close_client() -> None:
    """Close the shared client, if one was opened."""
    global _client
    if _client is not None:
        _client.close()
        _client = None
