from datetime import datetime, timedelta
from itertools import count
from typing import Any, Dict, List, Optional, Tuple

import pytest

from sochma.core.exceptions import DeliveryError
from sochma.schemas.prompt import Prompt
from sochma.schemas.webhook import InboundEvent, normalize
from sochma.services.user_ledger import InMemoryUserLedger

pytest_plugins = ("pytest_asyncio",)


_ids = count(1)


def make_text_update(
    sender_id: int,
    text: str,
    message_id: Optional[int] = None,
    chat_id: Optional[int] = None,
    first_name: str = "Jordan",
) -> Dict[str, Any]:
    """Raw Telegram update for a text message."""
    return {
        "update_id": next(_ids),
        "message": {
            "message_id": message_id if message_id is not None else next(_ids),
            "from": {"id": sender_id, "is_bot": False, "first_name": first_name, "language_code": "en"},
            "chat": {"id": chat_id or sender_id, "type": "private"},
            "date": 1700000000,
            "text": text,
        },
    }


def make_callback_update(
    sender_id: int,
    data: str,
    callback_id: Optional[str] = None,
    chat_id: Optional[int] = None,
) -> Dict[str, Any]:
    """Raw Telegram update for an inline button press."""
    return {
        "update_id": next(_ids),
        "callback_query": {
            "id": callback_id or f"cb{next(_ids)}",
            "from": {"id": sender_id, "is_bot": False, "first_name": "Jordan", "language_code": "en"},
            "message": {
                "message_id": next(_ids),
                "chat": {"id": chat_id or sender_id, "type": "private"},
            },
            "chat_instance": "42",
            "data": data,
        },
    }


def text_event(sender_id: int, text: str, **kwargs) -> InboundEvent:
    return normalize(make_text_update(sender_id, text, **kwargs))


def callback_event(sender_id: int, data: str, **kwargs) -> InboundEvent:
    return normalize(make_callback_update(sender_id, data, **kwargs))


class StepClock:
    """Deterministic clock: every call is one second later."""

    def __init__(self, start: datetime = datetime(2024, 1, 1, 12, 0, 0)):
        self.current = start

    def __call__(self) -> datetime:
        self.current += timedelta(seconds=1)
        return self.current


class RecordingGateway:
    """Stands in for TelegramGateway; records what would have been sent."""

    def __init__(self, send_error: Optional[Exception] = None, callback_error: Optional[Exception] = None):
        self.sent: List[Tuple[int, Prompt]] = []
        self.answered: List[str] = []
        self.send_error = send_error
        self.callback_error = callback_error

    async def send(self, chat_id: int, prompt: Prompt):
        if self.send_error:
            raise self.send_error
        self.sent.append((chat_id, prompt))

    async def answer_callback(self, callback_query_id: str, text: Optional[str] = None) -> bool:
        if self.callback_error:
            raise self.callback_error
        self.answered.append(callback_query_id)
        return True

    async def close(self):
        pass


@pytest.fixture()
def ledger():
    """Fresh in-memory ledger per test."""
    return InMemoryUserLedger()


@pytest.fixture()
def gateway():
    return RecordingGateway()


@pytest.fixture()
def failing_gateway():
    return RecordingGateway(send_error=DeliveryError("Telegram sendMessage rejected: Forbidden: bot was blocked by the user"))


@pytest.fixture()
def clock():
    return StepClock()
