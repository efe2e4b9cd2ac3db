"""
sochma/schemas/webhook.py

Purpose: Telegram update schemas and the event normalizer

- Converts a raw Bot API update into a canonical InboundEvent
- Decodes callback data once into a typed Choice
- Extracts the seed identity stored on first contact
- Never raises on well-formed but unexpected content (photos, stickers, ...)
"""

from enum import Enum
from pydantic import BaseModel, Field
from typing import Any, Dict, Optional

from sochma.core.exceptions import NormalizationError

MESSAGE_KEYS = ("message", "edited_message")
CHOICE_SEPARATOR = ":"


class EventKind(str, Enum):
    TEXT = "text"
    CALLBACK = "callback"
    UNSUPPORTED = "unsupported"


class ChoiceKind(str, Enum):
    """Discriminator of a pressed button, decoded from callback data."""
    ROLE = "role"
    AGENDA = "agenda"
    COMPLETE = "complete"
    MENU = "menu"


class Choice(BaseModel):
    kind: ChoiceKind
    value: str = ""

    class Config:
        frozen = True


class SeedIdentity(BaseModel):
    """
    Identity fields taken verbatim from the transport on first contact.
    """
    display_name: str
    username: Optional[str] = None
    language_code: str = "en"
    is_bot: bool = False

    class Config:
        frozen = True


class InboundEvent(BaseModel):
    """
    Normalized inbound event. Immutable, never persisted.
    """
    sender_id: int = Field(..., description="Telegram user id of the sender")
    chat_id: int = Field(..., description="Chat the reply should go to")
    provider_message_id: str = Field(..., description="Stable id of the delivery, for de-duplication")
    kind: EventKind
    payload: str = ""
    update_id: Optional[int] = None
    choice: Optional[Choice] = None
    command: Optional[str] = None
    callback_query_id: Optional[str] = None
    seed: SeedIdentity

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "sender_id": 123456789,
                "chat_id": 123456789,
                "provider_message_id": "msg:123456789:42",
                "kind": "text",
                "payload": "+14155550123",
                "update_id": 10001,
                "seed": {"display_name": "Jordan", "language_code": "en", "is_bot": False}
            }
        }


def encode_choice(kind: ChoiceKind, value: str) -> str:
    """Callback data for a button: '<kind>:<value>'."""
    return f"{kind.value}{CHOICE_SEPARATOR}{value}"


def decode_choice(data: str) -> Choice:
    """
    Decodes callback data into a Choice.
    Anything that is not one of our prefixes is treated as a menu callback
    carrying the raw data.
    """
    prefix, sep, value = data.partition(CHOICE_SEPARATOR)
    if sep:
        try:
            return Choice(kind=ChoiceKind(prefix), value=value)
        except ValueError:
            pass
    return Choice(kind=ChoiceKind.MENU, value=data)


def parse_command(text: str) -> Optional[str]:
    """
    Returns '/name' for command messages ('/start@SochmaBot arg' -> '/start').
    """
    stripped = text.strip()
    if not stripped.startswith("/"):
        return None
    head = stripped.split()[0]
    return head.split("@", 1)[0].lower()


def normalize(update: Any) -> InboundEvent:
    """
    Normalizes a Telegram update.

    Telegram format (JSON):
    {
        "update_id": 10001,
        "message": {
            "message_id": 42,
            "from": {"id": 123, "first_name": "Jordan", "language_code": "en"},
            "chat": {"id": 123, "type": "private"},
            "text": "+14155550123"
        }
    }

    Raises:
        NormalizationError: No sender id, or neither a message nor a callback query
    """
    if not isinstance(update, dict):
        raise NormalizationError("Update must be a JSON object")

    update_id = update.get("update_id")
    if not isinstance(update_id, int):
        update_id = None

    callback_query = update.get("callback_query")
    if isinstance(callback_query, dict):
        return _normalize_callback(callback_query, update_id)

    for key in MESSAGE_KEYS:
        message = update.get(key)
        if isinstance(message, dict):
            return _normalize_message(message, update_id)

    raise NormalizationError(
        "Update carries neither a message nor a callback query",
        details={"keys": sorted(str(k) for k in update.keys())}
    )


def _normalize_message(message: Dict[str, Any], update_id: Optional[int]) -> InboundEvent:
    sender = _sender(message)
    sender_id = sender["id"]
    chat_id = _chat_id(message.get("chat"), fallback=sender_id)
    message_id = message.get("message_id")

    text = message.get("text")
    contact = message.get("contact")

    if isinstance(text, str):
        kind, payload, command = EventKind.TEXT, text, parse_command(text)
    elif isinstance(contact, dict) and contact.get("phone_number"):
        # Shared contact card: Telegram sends the number without the leading '+'
        phone = str(contact["phone_number"]).strip()
        if not phone.startswith("+"):
            phone = f"+{phone}"
        kind, payload, command = EventKind.TEXT, phone, None
    else:
        kind, payload, command = EventKind.UNSUPPORTED, "", None

    return InboundEvent(
        sender_id=sender_id,
        chat_id=chat_id,
        provider_message_id=f"msg:{chat_id}:{message_id}",
        kind=kind,
        payload=payload,
        update_id=update_id,
        command=command,
        seed=_seed_identity(sender),
    )


def _normalize_callback(callback_query: Dict[str, Any], update_id: Optional[int]) -> InboundEvent:
    sender = _sender(callback_query)
    sender_id = sender["id"]
    callback_id = callback_query.get("id")
    if not callback_id:
        raise NormalizationError("Callback query has no id")

    message = callback_query.get("message")
    chat = message.get("chat") if isinstance(message, dict) else None
    data = callback_query.get("data")
    data = data if isinstance(data, str) else ""

    return InboundEvent(
        sender_id=sender_id,
        chat_id=_chat_id(chat, fallback=sender_id),
        provider_message_id=f"cbq:{callback_id}",
        kind=EventKind.CALLBACK,
        payload=data,
        update_id=update_id,
        choice=decode_choice(data),
        callback_query_id=str(callback_id),
        seed=_seed_identity(sender),
    )


def _sender(container: Dict[str, Any]) -> Dict[str, Any]:
    sender = container.get("from")
    if not isinstance(sender, dict) or not isinstance(sender.get("id"), int) or isinstance(sender.get("id"), bool):
        raise NormalizationError("Update has no sender id")
    return sender


def _chat_id(chat: Any, fallback: int) -> int:
    if isinstance(chat, dict) and isinstance(chat.get("id"), int):
        return chat["id"]
    return fallback


def _seed_identity(sender: Dict[str, Any]) -> SeedIdentity:
    first_name = _text_field(sender, "first_name")
    last_name = _text_field(sender, "last_name")
    username = _text_field(sender, "username") or None
    display_name = f"{first_name} {last_name}".strip() or username or str(sender["id"])

    return SeedIdentity(
        display_name=display_name,
        username=username,
        language_code=_text_field(sender, "language_code") or "en",
        is_bot=sender.get("is_bot") is True,
    )


def _text_field(container: Dict[str, Any], key: str) -> str:
    value = container.get(key)
    return value if isinstance(value, str) else ""
