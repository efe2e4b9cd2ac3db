"""
sochma/flow/prompts.py

Purpose: Pure state -> prompt mapping

- The question asked while a sender sits in each registration state
- The completion summary once registration is done
"""

from typing import Optional

from sochma.core.config import settings
from sochma.flow.states import RegistrationState, Role, get_progress_message
from sochma.models.user import UserRecord
from sochma.schemas.prompt import Prompt, PromptChoice
from sochma.schemas.webhook import ChoiceKind, encode_choice
from sochma.utils.constants import (
    AGENDA_MESSAGE,
    ASK_FULL_NAME_MESSAGE,
    ASK_PHONE_MESSAGE,
    ASK_ROLE_MESSAGE,
    BUTTON_COMPLETE_REGISTRATION,
    BUTTON_ROLE_BOTH,
    BUTTON_ROLE_BUYER,
    BUTTON_ROLE_INVESTOR,
    BUTTON_VIEW_AGENDA,
    CONFIRM_COMPLETION_MESSAGE,
    REGISTRATION_COMPLETE_MESSAGE,
    ROLE_DISPLAY,
)
from sochma.utils.telegram_utils import escape_markdown

ROLE_CHOICES = [
    PromptChoice(label=BUTTON_ROLE_BUYER, value=encode_choice(ChoiceKind.ROLE, Role.BUYER.value)),
    PromptChoice(label=BUTTON_ROLE_INVESTOR, value=encode_choice(ChoiceKind.ROLE, Role.INVESTOR.value)),
    PromptChoice(label=BUTTON_ROLE_BOTH, value=encode_choice(ChoiceKind.ROLE, Role.BOTH.value)),
]

AGENDA_CHOICES = [
    PromptChoice(label=BUTTON_VIEW_AGENDA, value=encode_choice(ChoiceKind.AGENDA, "ack")),
]

COMPLETE_CHOICES = [
    PromptChoice(label=BUTTON_COMPLETE_REGISTRATION, value=encode_choice(ChoiceKind.COMPLETE, "confirm")),
]


def role_display(role: Optional[Role]) -> str:
    if role is None:
        return "N/A"
    return ROLE_DISPLAY[role.value]


def _with_progress(state: RegistrationState, text: str) -> str:
    progress = get_progress_message(state)
    return f"{progress}\n\n{text}" if progress else text


def prompt_for(state: RegistrationState, record: UserRecord) -> Prompt:
    """
    Prompt shown to a sender who has just reached `state`.
    """
    bot_name = settings.BOT_NAME

    if state == RegistrationState.NOT_STARTED:
        return Prompt(text=_with_progress(state, ASK_PHONE_MESSAGE.format(bot_name=bot_name)))

    if state == RegistrationState.PHONE_ENTERED:
        return Prompt(text=_with_progress(state, ASK_FULL_NAME_MESSAGE))

    if state == RegistrationState.NAME_ENTERED:
        return Prompt(text=_with_progress(state, ASK_ROLE_MESSAGE), choices=ROLE_CHOICES)

    if state == RegistrationState.ROLE_SELECTED:
        return Prompt(
            text=_with_progress(state, AGENDA_MESSAGE.format(bot_name=bot_name)),
            choices=AGENDA_CHOICES
        )

    if state == RegistrationState.AGENDA_VIEWED:
        return Prompt(text=_with_progress(state, CONFIRM_COMPLETION_MESSAGE), choices=COMPLETE_CHOICES)

    return Prompt(
        text=REGISTRATION_COMPLETE_MESSAGE.format(
            bot_name=bot_name,
            full_name=escape_markdown(record.full_name or record.display_name),
            phone_number=escape_markdown(record.phone_number) or "N/A",
            role=role_display(record.role),
        )
    )
