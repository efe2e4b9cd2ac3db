"""
Runs the bot over getUpdates long polling (local development, no public URL)

    python scripts/run_polling.py

Same pipeline as the webhook: normalize -> dispatcher -> gateway.
Any registered webhook is removed first; Telegram refuses getUpdates
while one is set.
"""

import asyncio
import sys
from pathlib import Path
from dotenv import load_dotenv

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

# Load environment variables
load_dotenv()

from sochma.core.config import settings, validate_settings
from sochma.core.exceptions import NormalizationError, ServiceUnavailable
from sochma.core.logging import get_logger
from sochma.db.mongo import close_mongo_connection
from sochma.flow.dispatcher import Dispatcher
from sochma.main import build_ledger
from sochma.schemas.webhook import normalize
from sochma.services.telegram_gateway import TelegramGateway

logger = get_logger("scripts.run_polling")

POLL_TIMEOUT_SECONDS = 30
IDLE_BACKOFF_SECONDS = 5


async def process_update(dispatcher: Dispatcher, update: dict):
    try:
        event = normalize(update)
    except NormalizationError as e:
        logger.warning(f"⚠️ Dropping update {update.get('update_id')}: {e.message}")
        return

    try:
        await dispatcher.handle_event(event)
    except ServiceUnavailable as e:
        logger.error(f"❌ Dropping update {event.update_id}, backend unavailable: {e.message}")
    except Exception as e:
        # offset already moved past this update; keep polling
        logger.error(f"Polling error on update {event.update_id}: {e}", exc_info=True)


async def poll(dispatcher: Dispatcher, gateway: TelegramGateway):
    offset = None

    while True:
        try:
            updates = await gateway.get_updates(offset=offset, timeout=POLL_TIMEOUT_SECONDS)
        except ServiceUnavailable as e:
            logger.warning(f"getUpdates failed ({e.message}), retrying in {IDLE_BACKOFF_SECONDS}s")
            await asyncio.sleep(IDLE_BACKOFF_SECONDS)
            continue

        for update in updates:
            offset = update["update_id"] + 1
            await process_update(dispatcher, update)


async def main():
    if not settings.TELEGRAM_BOT_TOKEN:
        raise ValueError("❌ TELEGRAM_BOT_TOKEN must be set in .env file")

    validate_settings()

    ledger = await build_ledger()
    gateway = TelegramGateway.from_settings()
    dispatcher = Dispatcher(ledger, gateway)

    try:
        await gateway.delete_webhook()
        logger.info(f"🤖 {settings.BOT_NAME} polling for updates (Ctrl+C to stop)")
        await poll(dispatcher, gateway)
    finally:
        await gateway.close()
        if settings.LEDGER_BACKEND == "mongo":
            await close_mongo_connection()
        logger.info("👋 Polling stopped")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
