"""
sochma/api/webhook.py

Purpose: Telegram webhook endpoint

- Authenticates the delivery via the secret token header
- Normalizes the update into an InboundEvent
- Passes control to the dispatcher
- Always answers 200 once authenticated, so Telegram never redelivers
  because of a downstream failure
"""

import hmac
import json
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request

from sochma.core.config import settings
from sochma.core.exceptions import AuthenticationError, NormalizationError, ServiceUnavailable
from sochma.core.logging import get_logger
from sochma.flow.dispatcher import Dispatcher
from sochma.schemas.response import WebhookAck
from sochma.schemas.webhook import normalize

logger = get_logger(__name__)
router = APIRouter()

SECRET_HEADER = "X-Telegram-Bot-Api-Secret-Token"


def get_dispatcher(request: Request) -> Dispatcher:
    """Dispatcher built in the app lifespan."""
    return request.app.state.dispatcher


def verify_secret(
    secret_token: Optional[str] = Header(None, alias=SECRET_HEADER)
):
    expected = settings.TELEGRAM_WEBHOOK_SECRET
    if not expected:
        return
    if secret_token is None or not hmac.compare_digest(secret_token, expected):
        logger.warning("🚫 Webhook call with missing or wrong secret token")
        raise AuthenticationError("Invalid webhook secret token")


@router.post("/webhook", response_model=WebhookAck, dependencies=[Depends(verify_secret)])
async def webhook_handler(
    request: Request,
    dispatcher: Dispatcher = Depends(get_dispatcher),
):
    """
    Telegram webhook endpoint.

    Every failure past authentication is logged and swallowed: the
    response is always {"ok": true}.
    """
    try:
        raw_body = await request.body()
        update = json.loads(raw_body)
    except ValueError as e:
        logger.error(f"Failed to parse JSON payload: {e}")
        return WebhookAck()

    try:
        event = normalize(update)
    except NormalizationError as e:
        logger.warning(f"⚠️ Dropping update {_update_id(update)}: {e.message}", extra={"details": e.details})
        return WebhookAck()

    logger.info(f"📱 Telegram update {event.update_id} from sender {event.sender_id} ({event.kind.value})")

    try:
        await dispatcher.handle_event(event)
    except ServiceUnavailable as e:
        logger.error(f"❌ Dropping update {event.update_id}, backend unavailable: {e.message}")
    except Exception as e:
        logger.error(f"Webhook error: {e}", exc_info=True)

    return WebhookAck()


@router.get("/webhook")
async def webhook_verification():
    """
    Liveness of the webhook endpoint
    """
    return {"status": "ok", "message": "Webhook endpoint is active"}


def _update_id(update) -> Optional[int]:
    return update.get("update_id") if isinstance(update, dict) else None
