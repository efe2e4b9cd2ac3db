"""
sochma/flow/states.py

Purpose: Defines all registration states

- Enum for each step of onboarding
  (NOT_STARTED, PHONE_ENTERED, ..., COMPLETED)
- Single source of truth for flow stages
- State transition table (one legal successor per state)
- Metadata for each state (step number)
"""

from enum import Enum
from typing import Dict, Optional
from dataclasses import dataclass


class RegistrationState(str, Enum):
    """
    Registration progress of a sender. Progress is totally ordered,
    has no cycles and ends in COMPLETED.
    """

    NOT_STARTED = "not_started"
    PHONE_ENTERED = "phone_entered"
    NAME_ENTERED = "name_entered"
    ROLE_SELECTED = "role_selected"
    AGENDA_VIEWED = "agenda_viewed"
    COMPLETED = "completed"


class Role(str, Enum):
    """Role a sender picks during registration."""

    BUYER = "buyer"
    INVESTOR = "investor"
    BOTH = "both"


@dataclass(frozen=True)
class StateMetadata:
    """
    Metadata associated with each registration state.
    """
    name: RegistrationState
    step_number: Optional[int] = None  # For progress tracking
    total_steps: int = 5


STATE_METADATA: Dict[RegistrationState, StateMetadata] = {
    RegistrationState.NOT_STARTED: StateMetadata(
        name=RegistrationState.NOT_STARTED,
        step_number=1
    ),
    RegistrationState.PHONE_ENTERED: StateMetadata(
        name=RegistrationState.PHONE_ENTERED,
        step_number=2
    ),
    RegistrationState.NAME_ENTERED: StateMetadata(
        name=RegistrationState.NAME_ENTERED,
        step_number=3
    ),
    RegistrationState.ROLE_SELECTED: StateMetadata(
        name=RegistrationState.ROLE_SELECTED,
        step_number=4
    ),
    RegistrationState.AGENDA_VIEWED: StateMetadata(
        name=RegistrationState.AGENDA_VIEWED,
        step_number=5
    ),
    RegistrationState.COMPLETED: StateMetadata(
        name=RegistrationState.COMPLETED,
    ),
}


# Valid state transitions - prevents senders from skipping steps
NEXT_STATE: Dict[RegistrationState, Optional[RegistrationState]] = {
    RegistrationState.NOT_STARTED: RegistrationState.PHONE_ENTERED,
    RegistrationState.PHONE_ENTERED: RegistrationState.NAME_ENTERED,
    RegistrationState.NAME_ENTERED: RegistrationState.ROLE_SELECTED,
    RegistrationState.ROLE_SELECTED: RegistrationState.AGENDA_VIEWED,
    RegistrationState.AGENDA_VIEWED: RegistrationState.COMPLETED,
    RegistrationState.COMPLETED: None,  # Terminal
}


def next_state(state: RegistrationState) -> RegistrationState:
    """
    Returns the single legal successor of a state.

    Raises:
        ValueError: If the state is terminal
    """
    successor = NEXT_STATE.get(state)
    if successor is None:
        raise ValueError(f"{state.value} is terminal and has no successor")
    return successor


def is_valid_transition(from_state: RegistrationState, to_state: RegistrationState) -> bool:
    """
    Checks if a state transition is valid.

    Args:
        from_state: Current state
        to_state: Target state

    Returns:
        True if transition is allowed, False otherwise
    """
    return NEXT_STATE.get(from_state) == to_state


def get_state_metadata(state: RegistrationState) -> StateMetadata:
    """
    Retrieves metadata for a given state.
    """
    return STATE_METADATA.get(state, StateMetadata(name=state))


def get_progress_message(state: RegistrationState) -> str:
    """
    Generates a progress line for the current state (e.g. "Step 3 of 5").
    """
    metadata = get_state_metadata(state)
    if metadata.step_number and metadata.step_number > 0:
        return f"📍 Step {metadata.step_number} of {metadata.total_steps}"
    return ""
