"""
Database initialization script - users collection for the registration bot

Run once to create the collection indexes:
    python scripts/init_db.py

Drop and recreate every index (maintenance only):
    python scripts/init_db.py --rebuild
"""

import asyncio
import sys
from pathlib import Path
import os
from dotenv import load_dotenv

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

# Load environment variables
load_dotenv()

from motor.motor_asyncio import AsyncIOMotorClient
import logging

from sochma.db.indexes import create_indexes, drop_all_indexes
from sochma.db.mongo import USERS_COLLECTION
from sochma.flow.states import RegistrationState

logging.basicConfig(level=logging.INFO, format='%(levelname)s: %(message)s')
logger = logging.getLogger(__name__)


# MongoDB connection - load from .env
MONGODB_URL = os.getenv("MONGODB_URL")
MONGODB_DB_NAME = os.getenv("MONGODB_DB_NAME", "sochma")

if not MONGODB_URL:
    raise ValueError("❌ MONGODB_URL must be set in .env file")


async def init_database(rebuild: bool = False):
    """Create (or rebuild) the users indexes and print a short summary"""

    logger.info(f"🔌 Connecting to MongoDB: {MONGODB_DB_NAME}")
    client = AsyncIOMotorClient(MONGODB_URL)
    db = client[MONGODB_DB_NAME]

    try:
        # Test connection
        await client.admin.command('ping')
        logger.info("✅ Connected successfully\n")

        users = db[USERS_COLLECTION]

        if rebuild:
            logger.info("🧹 Dropping existing indexes...")
            await drop_all_indexes(users)

        logger.info(f"📋 Creating '{USERS_COLLECTION}' indexes...")
        await create_indexes(users)

        # ==================== VERIFICATION ====================
        logger.info("\n🔍 Verifying indexes...")
        indexes = await users.index_information()
        for idx_name in indexes.keys():
            if idx_name != "_id_":
                logger.info(f"    ✅ {idx_name}")

        # ==================== STATS ====================
        logger.info("\n📊 Current documents:")
        logger.info(f"  Users: {await users.count_documents({})}")
        for state in RegistrationState:
            count = await users.count_documents({"registration_state": state.value})
            logger.info(f"    {state.value}: {count}")

        logger.info("\n✅ Database initialization complete!")

    except Exception as e:
        logger.error(f"\n❌ Error: {e}")
        raise

    finally:
        client.close()


async def main():
    """Main initialization"""
    logger.info("=" * 60)
    logger.info("  Sochma Database Setup")
    logger.info("=" * 60 + "\n")

    await init_database(rebuild="--rebuild" in sys.argv[1:])

    logger.info("\n" + "=" * 60)


if __name__ == "__main__":
    asyncio.run(main())
