"""
sochma/services/telegram_gateway.py

Purpose: Telegram Bot API client (outbound side)

- Sends prompts (text + inline keyboard)
- Acknowledges button presses
- Webhook registration and getUpdates for the polling runner
- Bounded retry with exponential backoff for transient failures

Transient: HTTP 429, 5xx, timeouts, network errors.
Permanent: anything else the API rejects (400, 401, 403, 404, ...).
"""

import asyncio
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from sochma.core.config import settings
from sochma.core.exceptions import DeliveryError, GatewayUnavailable
from sochma.core.logging import get_logger
from sochma.schemas.prompt import Prompt
from sochma.utils.telegram_utils import create_text_message

logger = get_logger(__name__)

TRANSIENT_STATUS_CODES = {429, 500, 502, 503, 504}


@dataclass(frozen=True)
class Ack:
    """Provider acknowledgement of a delivered message."""
    chat_id: int
    message_id: Optional[int] = None


class TelegramGateway:
    """Service for talking to the Telegram Bot API"""

    def __init__(
        self,
        token: str,
        base_url: str = "https://api.telegram.org",
        timeout: float = 10.0,
        max_attempts: int = 3,
        base_delay_ms: int = 500,
        max_delay_seconds: float = 5.0,
        client: Optional[httpx.AsyncClient] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.base_url = f"{base_url.rstrip('/')}/bot{token}"
        self.timeout = timeout
        self.max_attempts = max(1, max_attempts)
        self.base_delay = base_delay_ms / 1000
        self.max_delay = max_delay_seconds
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._sleep = sleep

    @classmethod
    def from_settings(cls, client: Optional[httpx.AsyncClient] = None) -> "TelegramGateway":
        return cls(
            token=settings.TELEGRAM_BOT_TOKEN or "",
            base_url=settings.TELEGRAM_API_BASE_URL,
            timeout=settings.DELIVERY_TIMEOUT_SECONDS,
            max_attempts=settings.DELIVERY_MAX_ATTEMPTS,
            base_delay_ms=settings.DELIVERY_BASE_DELAY_MS,
            max_delay_seconds=settings.DELIVERY_MAX_DELAY_SECONDS,
            client=client,
        )

    async def close(self):
        await self._client.aclose()

    # ============================================================
    # PUBLIC API
    # ============================================================

    async def send(self, chat_id: int, prompt: Prompt) -> Ack:
        """
        Sends a prompt to a chat.

        Raises:
            DeliveryError: Telegram rejected the message
            GatewayUnavailable: Transient failures outlasted the retry budget
        """
        logger.info(f"📤 Sending message to chat {chat_id}")
        result = await self._call("sendMessage", create_text_message(chat_id, prompt))

        message_id = result.get("message_id") if isinstance(result, dict) else None
        logger.info(f"✅ Message delivered: chat={chat_id} message_id={message_id}")
        return Ack(chat_id=chat_id, message_id=message_id)

    async def answer_callback(self, callback_query_id: str, text: Optional[str] = None) -> bool:
        """Stops the loading spinner on the pressed button."""
        payload: Dict[str, Any] = {"callback_query_id": callback_query_id}
        if text:
            payload["text"] = text
        return bool(await self._call("answerCallbackQuery", payload))

    async def set_webhook(self, url: str, secret_token: Optional[str] = None) -> bool:
        payload: Dict[str, Any] = {
            "url": url,
            "allowed_updates": ["message", "edited_message", "callback_query"],
        }
        if secret_token:
            payload["secret_token"] = secret_token
        return bool(await self._call("setWebhook", payload))

    async def delete_webhook(self, drop_pending_updates: bool = False) -> bool:
        return bool(await self._call("deleteWebhook", {"drop_pending_updates": drop_pending_updates}))

    async def get_updates(self, offset: Optional[int] = None, timeout: int = 30) -> List[Dict[str, Any]]:
        """
        Long-polls for updates. The HTTP timeout is stretched past the
        poll timeout so an idle poll is not mistaken for a network error.
        """
        payload: Dict[str, Any] = {"timeout": timeout}
        if offset is not None:
            payload["offset"] = offset
        result = await self._call("getUpdates", payload, timeout=timeout + self.timeout)
        return result or []

    # ============================================================
    # TRANSPORT
    # ============================================================

    def _backoff_delay(self, attempt: int, retry_after: Optional[float] = None) -> float:
        delay = self.base_delay * (2 ** (attempt - 1))
        delay += random.uniform(0, self.base_delay)
        if retry_after:
            delay = max(delay, float(retry_after))
        return min(delay, self.max_delay)

    @staticmethod
    def _parse_body(response: httpx.Response) -> Dict[str, Any]:
        try:
            body = response.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}

    async def _call(self, method: str, payload: Dict[str, Any], timeout: Optional[float] = None) -> Any:
        url = f"{self.base_url}/{method}"
        last_error = ""

        for attempt in range(1, self.max_attempts + 1):
            retry_after = None

            try:
                response = await self._client.post(
                    url,
                    json=payload,
                    timeout=timeout or self.timeout
                )
            except httpx.TimeoutException:
                last_error = "timeout"
                logger.warning(f"⏱️ Telegram {method} timed out (attempt {attempt}/{self.max_attempts})")
            except httpx.TransportError as e:
                last_error = f"network error: {type(e).__name__}"
                logger.warning(
                    f"Telegram {method} network error (attempt {attempt}/{self.max_attempts}): {e}"
                )
            else:
                body = self._parse_body(response)

                if response.status_code == 200 and body.get("ok"):
                    return body.get("result")

                description = body.get("description") or response.text or "no description"

                if response.status_code not in TRANSIENT_STATUS_CODES:
                    logger.error(f"❌ Telegram {method} rejected: {response.status_code} - {description}")
                    raise DeliveryError(
                        f"Telegram {method} rejected: {description}",
                        details={"method": method, "status_code": response.status_code}
                    )

                parameters = body.get("parameters") or {}
                retry_after = parameters.get("retry_after")
                last_error = f"HTTP {response.status_code}: {description}"
                logger.warning(
                    f"Telegram {method} transient failure (attempt {attempt}/{self.max_attempts}): {last_error}"
                )

            if attempt < self.max_attempts:
                delay = self._backoff_delay(attempt, retry_after)
                logger.info(f"Retrying {method} in {delay:.2f} seconds...")
                await self._sleep(delay)

        logger.error(f"❌ Telegram {method} failed after {self.max_attempts} attempts: {last_error}")
        raise GatewayUnavailable(
            f"Telegram {method} unavailable: {last_error}",
            details={"method": method, "attempts": self.max_attempts}
        )
