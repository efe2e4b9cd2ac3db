"""
sochma/services/user_ledger.py

Purpose: Authoritative store of per-sender registration data

- Idempotent get-or-create (at most one record per sender)
- Atomic conditional state transitions (compare-and-swap on registration_state)
- Readiness ping and registration funnel counts
- MongoDB backend for deployments, in-memory backend for development and tests
"""

import asyncio
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime
from typing import Dict, Optional

from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from sochma.core.exceptions import ConflictError, NotFoundError, ServiceUnavailable
from sochma.core.logging import get_logger
from sochma.flow.states import RegistrationState
from sochma.models.user import Transition, UserRecord, change_to_document
from sochma.schemas.webhook import SeedIdentity
from sochma.utils.time_utils import utcnow

logger = get_logger(__name__)


class UserLedger(ABC):
    """User ledger interface."""

    @abstractmethod
    async def get_or_create(
        self,
        sender_id: int,
        chat_id: int,
        seed: SeedIdentity,
        now: Optional[datetime] = None
    ) -> UserRecord:
        """Return the sender's record, creating it in NOT_STARTED on first contact."""

    @abstractmethod
    async def apply_transition(self, sender_id: int, transition: Transition) -> UserRecord:
        """
        Apply a transition if the record is still in transition.from_state.

        Raises:
            ConflictError: The record is in another state (stale or duplicate event)
            NotFoundError: There is no record for the sender
        """

    @abstractmethod
    async def get(self, sender_id: int) -> UserRecord:
        """Return the sender's record or raise NotFoundError."""

    @abstractmethod
    async def ping(self) -> bool:
        """Readiness check on the backend."""

    @abstractmethod
    async def count_by_state(self) -> Dict[str, int]:
        """Number of records per registration state."""


def _empty_counts() -> Dict[str, int]:
    return {state.value: 0 for state in RegistrationState}


def _conflict(sender_id: int, transition: Transition, actual: Optional[str]) -> ConflictError:
    return ConflictError(
        f"Sender {sender_id} is no longer in {transition.from_state.value}",
        details={
            "expected": transition.from_state.value,
            "actual": actual,
            "provider_message_id": transition.provider_message_id,
        }
    )


class MongoUserLedger(UserLedger):
    """
    Ledger on a Motor collection. Relies on the unique sender_id index
    created by sochma.db.indexes.
    """

    def __init__(self, users: AsyncIOMotorCollection):
        self._users = users

    @contextmanager
    def _backend_errors(self, operation: str, sender_id: Optional[int] = None):
        try:
            yield
        except PyMongoError as e:
            logger.error(
                f"MongoDB error during {operation}: {e}",
                extra={"sender_id": sender_id}
            )
            raise ServiceUnavailable(f"User ledger unavailable during {operation}") from e

    async def get_or_create(
        self,
        sender_id: int,
        chat_id: int,
        seed: SeedIdentity,
        now: Optional[datetime] = None
    ) -> UserRecord:
        fresh = UserRecord.new(sender_id, chat_id, seed, now or utcnow())
        on_insert = fresh.to_document()
        on_insert.pop("sender_id")  # comes from the filter on upsert

        with self._backend_errors("get_or_create", sender_id):
            try:
                document = await self._users.find_one_and_update(
                    {"sender_id": sender_id},
                    {"$setOnInsert": on_insert},
                    upsert=True,
                    return_document=ReturnDocument.AFTER
                )
            except DuplicateKeyError:
                # A concurrent first contact won the insert; read its record
                logger.info("Lost first-contact race, reading existing record", extra={"sender_id": sender_id})
                document = await self._users.find_one({"sender_id": sender_id})

        if document is None:
            raise ServiceUnavailable(f"Upsert for sender {sender_id} returned no document")

        return UserRecord.from_document(document)

    async def apply_transition(self, sender_id: int, transition: Transition) -> UserRecord:
        with self._backend_errors("apply_transition", sender_id):
            document = await self._users.find_one_and_update(
                {
                    "sender_id": sender_id,
                    "registration_state": transition.from_state.value
                },
                {
                    "$set": transition.to_update(),
                    "$push": {"state_history": change_to_document(transition.history_entry())}
                },
                return_document=ReturnDocument.AFTER
            )

            if document is None:
                current = await self._users.find_one(
                    {"sender_id": sender_id},
                    {"registration_state": 1}
                )
                if current is None:
                    raise NotFoundError(f"No record for sender {sender_id}")
                raise _conflict(sender_id, transition, current.get("registration_state"))

        logger.info(
            f"State updated: {transition.from_state.value} -> {transition.to_state.value}",
            extra={"sender_id": sender_id}
        )
        return UserRecord.from_document(document)

    async def get(self, sender_id: int) -> UserRecord:
        with self._backend_errors("get", sender_id):
            document = await self._users.find_one({"sender_id": sender_id})
        if document is None:
            raise NotFoundError(f"No record for sender {sender_id}")
        return UserRecord.from_document(document)

    async def ping(self) -> bool:
        try:
            await self._users.database.client.admin.command("ping")
            return True
        except Exception as e:
            logger.error(f"Ledger ping failed: {e}")
            return False

    async def count_by_state(self) -> Dict[str, int]:
        counts = _empty_counts()
        pipeline = [{"$group": {"_id": "$registration_state", "count": {"$sum": 1}}}]
        with self._backend_errors("count_by_state"):
            async for row in self._users.aggregate(pipeline):
                counts[row["_id"]] = row["count"]
        return counts


class InMemoryUserLedger(UserLedger):
    """
    Process-local ledger. A single asyncio lock serializes every mutation,
    which gives the same guarantees as the unique index and the
    conditional update of the MongoDB backend.
    """

    def __init__(self):
        self._records: Dict[int, UserRecord] = {}
        self._lock = asyncio.Lock()

    async def get_or_create(
        self,
        sender_id: int,
        chat_id: int,
        seed: SeedIdentity,
        now: Optional[datetime] = None
    ) -> UserRecord:
        async with self._lock:
            record = self._records.get(sender_id)
            if record is None:
                record = UserRecord.new(sender_id, chat_id, seed, now or utcnow())
                self._records[sender_id] = record
                logger.info("New user created", extra={"sender_id": sender_id})
            return record

    async def apply_transition(self, sender_id: int, transition: Transition) -> UserRecord:
        async with self._lock:
            record = self._records.get(sender_id)
            if record is None:
                raise NotFoundError(f"No record for sender {sender_id}")
            if record.registration_state != transition.from_state:
                raise _conflict(sender_id, transition, record.registration_state.value)

            data = record.model_dump()
            data.update(transition.to_update())
            data["state_history"].append(transition.history_entry().model_dump())
            updated = UserRecord.model_validate(data)
            self._records[sender_id] = updated

        logger.info(
            f"State updated: {transition.from_state.value} -> {transition.to_state.value}",
            extra={"sender_id": sender_id}
        )
        return updated

    async def get(self, sender_id: int) -> UserRecord:
        record = self._records.get(sender_id)
        if record is None:
            raise NotFoundError(f"No record for sender {sender_id}")
        return record

    async def ping(self) -> bool:
        return True

    async def count_by_state(self) -> Dict[str, int]:
        counts = _empty_counts()
        for record in self._records.values():
            counts[record.registration_state.value] += 1
        return counts

    def __len__(self) -> int:
        return len(self._records)
