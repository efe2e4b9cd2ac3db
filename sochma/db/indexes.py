"""
sochma/db/indexes.py

Purpose: Database index management

- Unique sender index: at most one record per sender, even under racing first contact
- Performance indexes for state-based queries
"""

from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo import ASCENDING, DESCENDING

from sochma.core.logging import get_logger

logger = get_logger(__name__)


async def create_indexes(users: AsyncIOMotorCollection):
    """
    Creates all necessary database indexes.
    This function is idempotent - safe to run multiple times.
    """
    try:
        logger.info("Creating database indexes...")

        # Unique index on sender_id (primary identifier)
        await users.create_index(
            [("sender_id", ASCENDING)],
            unique=True,
            name="sender_id_unique"
        )
        logger.debug("Created unique index on users.sender_id")

        # Compound index backing the conditional state update
        await users.create_index(
            [("sender_id", ASCENDING), ("registration_state", ASCENDING)],
            name="sender_state_idx"
        )
        logger.debug("Created compound index on users.sender_id + registration_state")

        # Funnel statistics
        await users.create_index("registration_state", name="registration_state_idx")
        logger.debug("Created index on users.registration_state")

        await users.create_index([("created_at", DESCENDING)], name="created_at_idx")
        logger.debug("Created index on users.created_at")

        user_indexes = await users.index_information()
        logger.info(f"✅ All database indexes created successfully (users={len(user_indexes)})")

    except Exception as e:
        logger.error(f"Failed to create indexes: {str(e)}", exc_info=True)
        raise


async def drop_all_indexes(users: AsyncIOMotorCollection):
    """
    Drops all custom indexes (keeps _id index).
    Use with caution! Only for maintenance/migration.
    """
    logger.warning("Dropping all database indexes...")
    await users.drop_indexes()
    logger.info("✅ All indexes dropped successfully")
