"""
sochma/db/mongo.py

Purpose: MongoDB connection lifecycle

- One Motor client per process, created at startup
- Startup connect with bounded exponential backoff
- Single collection: users (one document per Telegram sender)
"""

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo.errors import ConnectionFailure, ServerSelectionTimeoutError
from typing import Optional
import asyncio
from sochma.core.config import settings
from sochma.core.logging import get_logger

logger = get_logger(__name__)

USERS_COLLECTION = "users"

CONNECT_ATTEMPTS = 3
CONNECT_BASE_DELAY_SECONDS = 2

_client: Optional[AsyncIOMotorClient] = None
_database: Optional[AsyncIOMotorDatabase] = None


def _new_client(url: str) -> AsyncIOMotorClient:
    return AsyncIOMotorClient(
        url,
        maxPoolSize=50,
        minPoolSize=5,
        serverSelectionTimeoutMS=5000,
        connectTimeoutMS=10000,
        retryWrites=True,
        retryReads=True,
        tz_aware=False,  # records carry naive UTC timestamps
    )


async def connect_to_mongo(
    url: Optional[str] = None,
    db_name: Optional[str] = None,
    attempts: int = CONNECT_ATTEMPTS
):
    """
    Opens the process-wide client and verifies it with a ping.
    Called once from the app lifespan (or the polling runner).

    Raises:
        ConnectionError: MongoDB unreachable after every attempt
    """
    global _client, _database

    if _client is not None:
        logger.warning("MongoDB client already initialized")
        return

    url = url or settings.MONGODB_URL
    db_name = db_name or settings.MONGODB_DB_NAME
    delay = CONNECT_BASE_DELAY_SECONDS

    for attempt in range(1, attempts + 1):
        client = _new_client(url)
        try:
            logger.info(f"Connecting to MongoDB (attempt {attempt}/{attempts})")
            await client.admin.command("ping")
        except (ConnectionFailure, ServerSelectionTimeoutError) as e:
            client.close()
            logger.error(f"MongoDB unreachable (attempt {attempt}/{attempts}): {e}")

            if attempt == attempts:
                logger.critical("Failed to connect to MongoDB after all retries")
                raise ConnectionError("Could not establish MongoDB connection") from e

            logger.info(f"Retrying in {delay} seconds...")
            await asyncio.sleep(delay)
            delay *= 2
            continue

        _client = client
        _database = client[db_name]
        logger.info(f"✅ Connected to MongoDB database '{db_name}'")
        return


async def close_mongo_connection():
    """
    Closes the process-wide client. Safe to call when never connected.
    """
    global _client, _database

    if _client is None:
        return

    _client.close()
    _client = None
    _database = None
    logger.info("MongoDB connection closed")


def get_database() -> AsyncIOMotorDatabase:
    """
    Raises:
        RuntimeError: If connect_to_mongo() has not run
    """
    if _database is None:
        raise RuntimeError(
            "Database not initialized. Call connect_to_mongo() during startup."
        )
    return _database


def get_users_collection() -> AsyncIOMotorCollection:
    """
    Returns the users collection.

    Document fields:
    - sender_id: int (unique)
    - chat_id: int
    - display_name, username, language_code, is_bot: seed identity
    - phone_number, full_name, role: registration answers
    - registration_state: str
    - is_registered: bool (true iff registration_state == "completed")
    - state_history: list[dict]
    - created_at, updated_at: datetime
    """
    return get_database()[USERS_COLLECTION]
