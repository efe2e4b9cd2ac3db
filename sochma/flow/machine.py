"""
sochma/flow/machine.py

Purpose: Registration state machine (pure decision logic)

- Phone number cleaning and validation
- One validator per registration state
- evaluate(): current record + inbound event -> what to do next

Nothing in this module performs I/O or keeps state between calls.
Callers read a fresh record, call evaluate(), then apply the resulting
transition through the ledger.
"""

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Union

from sochma.core.exceptions import ValidationError
from sochma.flow.prompts import prompt_for
from sochma.flow.states import RegistrationState, Role, next_state
from sochma.models.user import Transition, UserRecord
from sochma.schemas.prompt import Prompt
from sochma.schemas.webhook import ChoiceKind, EventKind, InboundEvent
from sochma.utils.constants import (
    ERROR_INVALID_NAME,
    ERROR_INVALID_PHONE,
    ERROR_INVALID_ROLE,
    ERROR_TEXT_REQUIRED,
)

PHONE_PATTERN = re.compile(r"\+[1-9][0-9]{1,14}")
MIN_FULL_NAME_LENGTH = 2


def clean_phone_number(raw: str) -> str:
    """
    Strips every character that is not an ASCII digit or a leading '+'.

    "+1 (234) 567-8901" -> "+12345678901"
    """
    stripped = raw.strip()
    digits = re.sub(r"[^0-9]", "", stripped)
    return f"+{digits}" if stripped.startswith("+") else digits


def is_valid_phone_number(phone: str) -> bool:
    """E.164-like: '+', no leading zero, 2 to 15 digits."""
    return PHONE_PATTERN.fullmatch(phone) is not None


# ============================================================
# STEP VALIDATORS
# Each returns the answers to store, or raises ValidationError.
# ============================================================

def _require_text(event: InboundEvent) -> str:
    if event.kind != EventKind.TEXT:
        raise ValidationError(ERROR_TEXT_REQUIRED)
    return event.payload


def validate_phone(event: InboundEvent) -> Dict[str, Any]:
    phone = clean_phone_number(_require_text(event))
    if not is_valid_phone_number(phone):
        raise ValidationError(ERROR_INVALID_PHONE, details={"cleaned": phone})
    return {"phone_number": phone}


def validate_full_name(event: InboundEvent) -> Dict[str, Any]:
    full_name = _require_text(event).strip()
    if len(full_name) < MIN_FULL_NAME_LENGTH:
        raise ValidationError(ERROR_INVALID_NAME)
    return {"full_name": full_name}


def validate_role(event: InboundEvent) -> Dict[str, Any]:
    if event.choice is not None and event.choice.kind == ChoiceKind.ROLE:
        value = event.choice.value
    elif event.kind == EventKind.TEXT:
        value = event.payload.strip().lower()
    else:
        raise ValidationError(ERROR_INVALID_ROLE)

    try:
        return {"role": Role(value)}
    except ValueError:
        raise ValidationError(ERROR_INVALID_ROLE, details={"value": value})


def acknowledge(event: InboundEvent) -> Dict[str, Any]:
    return {}


STEP_VALIDATORS: Dict[RegistrationState, Callable[[InboundEvent], Dict[str, Any]]] = {
    RegistrationState.NOT_STARTED: validate_phone,
    RegistrationState.PHONE_ENTERED: validate_full_name,
    RegistrationState.NAME_ENTERED: validate_role,
    RegistrationState.ROLE_SELECTED: acknowledge,
    RegistrationState.AGENDA_VIEWED: acknowledge,
}

# Button each state offers; buttons from other steps are stale
STEP_CHOICE: Dict[RegistrationState, ChoiceKind] = {
    RegistrationState.NAME_ENTERED: ChoiceKind.ROLE,
    RegistrationState.ROLE_SELECTED: ChoiceKind.AGENDA,
    RegistrationState.AGENDA_VIEWED: ChoiceKind.COMPLETE,
}


# ============================================================
# DECISIONS
# ============================================================

@dataclass(frozen=True)
class Advance:
    """Valid input: apply this transition."""
    transition: Transition


@dataclass(frozen=True)
class Reprompt:
    """No transition: show this prompt and leave the record untouched."""
    prompt: Prompt
    reason: Optional[str] = None


@dataclass(frozen=True)
class Duplicate:
    """Event already moved this record forward: drop it silently."""
    provider_message_id: str


Decision = Union[Advance, Reprompt, Duplicate]


def already_applied(record: UserRecord, event: InboundEvent) -> bool:
    return any(
        change.provider_message_id == event.provider_message_id
        for change in record.state_history
    )


def is_off_step(state: RegistrationState, event: InboundEvent) -> bool:
    """
    Input that is not an answer to the current question: a slash command
    or a button left over from another step. Acknowledgement steps take
    any input, so nothing is off-step there.
    """
    if STEP_VALIDATORS.get(state) is acknowledge:
        return False
    if event.command is not None:
        return True
    if event.kind == EventKind.CALLBACK:
        return event.choice is None or event.choice.kind != STEP_CHOICE.get(state)
    return False


def evaluate(record: UserRecord, event: InboundEvent, now: datetime) -> Decision:
    """
    Decides what one inbound event does to a sender mid-registration.

    Args:
        record: Freshly read record of the sender
        event: Normalized inbound event
        now: Timestamp written as updated_at if the record advances

    Returns:
        Advance, Reprompt or Duplicate

    Raises:
        ValueError: If the record is already COMPLETED
    """
    state = record.registration_state
    if state == RegistrationState.COMPLETED:
        raise ValueError("Completed senders are not handled by the registration machine")

    if already_applied(record, event):
        return Duplicate(provider_message_id=event.provider_message_id)

    question = prompt_for(state, record)

    if is_off_step(state, event):
        return Reprompt(prompt=question)

    try:
        answers = STEP_VALIDATORS[state](event)
    except ValidationError as e:
        return Reprompt(prompt=question.with_error(e.message), reason=e.message)

    return Advance(
        transition=Transition(
            from_state=state,
            to_state=next_state(state),
            at=now,
            answers=answers,
            provider_message_id=event.provider_message_id,
        )
    )
