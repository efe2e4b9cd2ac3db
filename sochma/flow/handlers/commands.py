"""
sochma/flow/handlers/commands.py

Handles: commands and menu buttons of registered users

- /start      → welcome back + main menu
- /help       → command list
- /profile    → registration details (also /info)
- /register   → already registered
- menu:*      → same actions from the main menu buttons
- anything else → default reply
"""

from typing import Awaitable, Callable, Dict, Optional

from sochma.core.config import settings
from sochma.core.logging import get_logger
from sochma.flow.prompts import role_display
from sochma.flow.states import RegistrationState
from sochma.models.user import UserRecord
from sochma.schemas.prompt import Prompt, PromptChoice
from sochma.schemas.webhook import ChoiceKind, EventKind, InboundEvent, encode_choice
from sochma.utils.constants import (
    ALREADY_REGISTERED_MESSAGE,
    BUTTON_HELP,
    BUTTON_MY_PROFILE,
    DEFAULT_REPLY_MESSAGE,
    HELP_MESSAGE,
    PROFILE_MESSAGE,
    UNSUPPORTED_MEDIA_MESSAGE,
    WELCOME_BACK_MESSAGE,
)
from sochma.utils.telegram_utils import escape_markdown
from sochma.utils.time_utils import format_timestamp

logger = get_logger(__name__)

Handler = Callable[[UserRecord, InboundEvent], Awaitable[Prompt]]

MAIN_MENU_CHOICES = [
    PromptChoice(label=BUTTON_MY_PROFILE, value=encode_choice(ChoiceKind.MENU, "profile")),
    PromptChoice(label=BUTTON_HELP, value=encode_choice(ChoiceKind.MENU, "help")),
]


def _name(record: UserRecord) -> str:
    return escape_markdown(record.full_name or record.display_name)


def registered_at(record: UserRecord):
    """When the record reached COMPLETED (latest run), else its last update."""
    for change in reversed(record.state_history):
        if change.to_state == RegistrationState.COMPLETED:
            return change.at
    return record.updated_at


async def handle_start(record: UserRecord, event: InboundEvent) -> Prompt:
    return Prompt(
        text=WELCOME_BACK_MESSAGE.format(full_name=_name(record), bot_name=settings.BOT_NAME),
        choices=MAIN_MENU_CHOICES
    )


async def handle_help(record: UserRecord, event: InboundEvent) -> Prompt:
    return Prompt(text=HELP_MESSAGE.format(bot_name=settings.BOT_NAME), choices=MAIN_MENU_CHOICES)


async def handle_profile(record: UserRecord, event: InboundEvent) -> Prompt:
    return Prompt(
        text=PROFILE_MESSAGE.format(
            full_name=_name(record),
            phone_number=escape_markdown(record.phone_number) or "N/A",
            role=role_display(record.role),
            language_code=escape_markdown(record.language_code),
            registered_at=format_timestamp(registered_at(record)),
        ),
        choices=MAIN_MENU_CHOICES
    )


async def handle_register(record: UserRecord, event: InboundEvent) -> Prompt:
    return Prompt(text=ALREADY_REGISTERED_MESSAGE.format(full_name=_name(record)))


async def handle_default(record: UserRecord, event: InboundEvent) -> Prompt:
    if event.kind == EventKind.UNSUPPORTED:
        return Prompt(text=UNSUPPORTED_MEDIA_MESSAGE)
    return Prompt(text=DEFAULT_REPLY_MESSAGE.format(full_name=_name(record)))


COMMAND_HANDLERS: Dict[str, Handler] = {
    "/start": handle_start,
    "/help": handle_help,
    "/profile": handle_profile,
    "/info": handle_profile,
    "/register": handle_register,
}

MENU_HANDLERS: Dict[str, Handler] = {
    "profile": handle_profile,
    "help": handle_help,
    "start": handle_start,
}


def resolve_handler(event: InboundEvent) -> Handler:
    """
    Picks the handler for a registered sender's event.
    Falls back to the default reply for unknown commands and buttons.
    """
    handler: Optional[Handler] = None

    if event.command is not None:
        handler = COMMAND_HANDLERS.get(event.command)
    elif event.choice is not None and event.choice.kind == ChoiceKind.MENU:
        handler = MENU_HANDLERS.get(event.choice.value)

    if handler is None:
        logger.debug(f"No handler for command={event.command} choice={event.choice}, using default reply")
        return handle_default

    return handler
