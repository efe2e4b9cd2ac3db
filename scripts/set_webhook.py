"""
Registers the bot's webhook with Telegram

    python scripts/set_webhook.py            # uses WEBHOOK_URL from .env
    python scripts/set_webhook.py <url>      # explicit public base URL
    python scripts/set_webhook.py --delete   # back to getUpdates mode

The webhook path ({API_PREFIX}/webhook) is appended to the base URL.
"""

import asyncio
import sys
from pathlib import Path
from dotenv import load_dotenv

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

# Load environment variables
load_dotenv()

import logging

from sochma.core.config import settings
from sochma.core.exceptions import SochmaError
from sochma.services.telegram_gateway import TelegramGateway

logging.basicConfig(level=logging.INFO, format='%(levelname)s: %(message)s')
logger = logging.getLogger(__name__)


def webhook_endpoint(base_url: str) -> str:
    return f"{base_url.rstrip('/')}{settings.API_PREFIX}/webhook"


async def main(args):
    if not settings.TELEGRAM_BOT_TOKEN:
        raise ValueError("❌ TELEGRAM_BOT_TOKEN must be set in .env file")

    gateway = TelegramGateway.from_settings()

    try:
        if "--delete" in args:
            await gateway.delete_webhook()
            logger.info("✅ Webhook deleted, bot is back in getUpdates mode")
            return

        base_url = args[0] if args else settings.WEBHOOK_URL
        if not base_url:
            raise ValueError("❌ Pass a URL or set WEBHOOK_URL in .env file")

        url = webhook_endpoint(base_url)
        logger.info(f"🔗 Setting webhook: {url}")
        await gateway.set_webhook(url, secret_token=settings.TELEGRAM_WEBHOOK_SECRET)

        if settings.TELEGRAM_WEBHOOK_SECRET:
            logger.info("🔒 Secret token registered")
        else:
            logger.warning("⚠️ No TELEGRAM_WEBHOOK_SECRET set, webhook calls are not authenticated")

        logger.info("✅ Webhook set")

    except SochmaError as e:
        logger.error(f"❌ Telegram refused: {e.message}")
        raise

    finally:
        await gateway.close()


if __name__ == "__main__":
    asyncio.run(main(sys.argv[1:]))
