"""
Lyceum Backend — MongoDB Connection Management
================================================

What:  Motor client, Beanie initialization, and the GridFS bucket.
Why:   Centralizes all database connection logic in one place.
How:   connect_to_database() opens one AsyncIOMotorClient, registers every
       document model with Beanie, and opens the GridFS bucket on the same
       database. get_bucket() raises when called before the connection exists.
Who:   Called by the app lifespan; get_bucket() is used by the GridFS storage.
When:  Once at startup; close_connections() at shutdown.

Connection Strategy:
    A single client is shared by Beanie (documents) and GridFS (file chunks).
    The driver manages its own connection pool, so there is no per-request
    session object to inject the way a SQL session would be.
"""

import logging
from typing import Optional

from beanie import init_beanie
from motor.motor_asyncio import (
    AsyncIOMotorClient,
    AsyncIOMotorDatabase,
    AsyncIOMotorGridFSBucket,
)

from app.config import settings
from app.exceptions import FileStorageError
from app.models import DOCUMENT_MODELS

logger = logging.getLogger(__name__)

_client: Optional[AsyncIOMotorClient] = None
_database: Optional[AsyncIOMotorDatabase] = None
_bucket: Optional[AsyncIOMotorGridFSBucket] = None


async def connect_to_database(client: Optional[AsyncIOMotorClient] = None) -> None:
    """
    Connect to MongoDB, initialize Beanie and open the GridFS bucket.

    Args:
        client: Pre-built client (used in tests); defaults to one built from settings.
    """
    global _client, _database, _bucket

    _client = client or AsyncIOMotorClient(
        settings.mongodb_uri,
        serverSelectionTimeoutMS=settings.mongodb_timeout_ms,
        uuidRepresentation="standard",
    )
    _database = _client[settings.mongodb_db_name]

    await init_beanie(database=_database, document_models=DOCUMENT_MODELS)

    _bucket = AsyncIOMotorGridFSBucket(_database, bucket_name=settings.gridfs_bucket_name)
    logger.info(
        "Connected to MongoDB database '%s' (GridFS bucket '%s')",
        settings.mongodb_db_name,
        settings.gridfs_bucket_name,
    )


def get_bucket() -> AsyncIOMotorGridFSBucket:
    """Returns the GridFS bucket; raises FileStorageError before startup has run."""
    if _bucket is None:
        raise FileStorageError(message="Storage is not initialized")
    return _bucket


async def ping_database() -> bool:
    """
    What:  Lightweight liveness probe used by the health check.
    Returns: True when the server answered a ping.
    """
    if _client is None:
        return False
    await _client.admin.command("ping")
    return True


async def close_connections() -> None:
    """Closes the shared client. Safe to call when never connected."""
    global _client, _database, _bucket
    if _client is not None:
        _client.close()
        logger.info("MongoDB connection closed")
    _client = None
    _database = None
    _bucket = None
