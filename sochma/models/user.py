"""
sochma/models/user.py

Purpose: User document model

- Telegram sender id and seed identity
- Registration answers (phone, full name, role)
- Registration state and its history
- Transition: the only shape in which a record may change
"""

from dataclasses import dataclass, field
from datetime import datetime
from pydantic import BaseModel, Field, model_validator
from typing import Any, Dict, List, Optional

from sochma.flow.states import RegistrationState, Role, is_valid_transition
from sochma.schemas.webhook import SeedIdentity

ANSWER_FIELDS = ("phone_number", "full_name", "role")


class StateChange(BaseModel):
    from_state: RegistrationState
    to_state: RegistrationState
    at: datetime
    provider_message_id: Optional[str] = None


class UserRecord(BaseModel):
    """
    One document per sender in the `users` collection.
    """
    sender_id: int
    chat_id: int
    display_name: str
    username: Optional[str] = None
    language_code: str = "en"
    is_bot: bool = False
    phone_number: Optional[str] = None
    full_name: Optional[str] = None
    role: Optional[Role] = None
    registration_state: RegistrationState = RegistrationState.NOT_STARTED
    is_registered: bool = False
    state_history: List[StateChange] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    @model_validator(mode="after")
    def check_registered_flag(self):
        if self.is_registered != (self.registration_state == RegistrationState.COMPLETED):
            raise ValueError(
                f"is_registered={self.is_registered} contradicts state {self.registration_state.value}"
            )
        return self

    @classmethod
    def new(cls, sender_id: int, chat_id: int, seed: SeedIdentity, now: datetime) -> "UserRecord":
        return cls(
            sender_id=sender_id,
            chat_id=chat_id,
            display_name=seed.display_name,
            username=seed.username,
            language_code=seed.language_code,
            is_bot=seed.is_bot,
            created_at=now,
            updated_at=now,
        )

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "UserRecord":
        data = {key: value for key, value in document.items() if key != "_id"}
        return cls.model_validate(data)

    def to_document(self) -> Dict[str, Any]:
        # mode="json" would turn datetimes into strings; Mongo wants datetimes
        document = self.model_dump()
        document["registration_state"] = self.registration_state.value
        document["role"] = self.role.value if self.role else None
        document["state_history"] = [change_to_document(change) for change in self.state_history]
        return document


@dataclass(frozen=True)
class Transition:
    """
    A single step along the registration table, with the answer it stores.

    `at` is written as the record's updated_at; the ledger never stamps
    time on its own.
    """
    from_state: RegistrationState
    to_state: RegistrationState
    at: datetime
    answers: Dict[str, Any] = field(default_factory=dict)
    provider_message_id: Optional[str] = None

    def __post_init__(self):
        if not is_valid_transition(self.from_state, self.to_state):
            raise ValueError(f"Illegal transition {self.from_state.value} -> {self.to_state.value}")
        unknown = set(self.answers) - set(ANSWER_FIELDS)
        if unknown:
            raise ValueError(f"Transition cannot write {sorted(unknown)}")
        if "role" in self.answers and not isinstance(self.answers["role"], Role):
            raise ValueError("role must be a Role")

    def to_update(self) -> Dict[str, Any]:
        """Fields to $set in the same write that moves the state."""
        fields = {
            key: (value.value if isinstance(value, Role) else value)
            for key, value in self.answers.items()
        }
        fields["registration_state"] = self.to_state.value
        fields["is_registered"] = self.to_state == RegistrationState.COMPLETED
        fields["updated_at"] = self.at
        return fields

    def history_entry(self) -> StateChange:
        return StateChange(
            from_state=self.from_state,
            to_state=self.to_state,
            at=self.at,
            provider_message_id=self.provider_message_id,
        )


def change_to_document(change: StateChange) -> Dict[str, Any]:
    return {
        "from_state": change.from_state.value,
        "to_state": change.to_state.value,
        "at": change.at,
        "provider_message_id": change.provider_message_id,
    }
