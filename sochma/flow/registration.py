"""
sochma/flow/registration.py

Purpose: Runs the registration machine against the ledger

- Validation happens before any write
- Writes are conditioned on the state the decision was made from
- Stale and duplicate deliveries are dropped without a prompt
"""

from typing import Callable, Optional
from datetime import datetime

from sochma.core.exceptions import ConflictError, NotFoundError
from sochma.core.logging import get_logger, LogContext
from sochma.flow.machine import Advance, Duplicate, Reprompt, evaluate
from sochma.flow.prompts import prompt_for
from sochma.models.user import UserRecord
from sochma.schemas.prompt import Prompt
from sochma.schemas.webhook import InboundEvent
from sochma.services.user_ledger import UserLedger
from sochma.utils.time_utils import utcnow

logger = get_logger(__name__)


class RegistrationFlow:
    """
    Processes one event for a sender who has not completed registration.
    Holds no per-sender state; safe to share across concurrent deliveries.
    """

    def __init__(self, ledger: UserLedger, clock: Callable[[], datetime] = utcnow):
        self._ledger = ledger
        self._clock = clock

    async def process(self, event: InboundEvent, record: UserRecord) -> Optional[Prompt]:
        """
        Args:
            event: Normalized inbound event
            record: Sender's record, read for this delivery

        Returns:
            Prompt to deliver, or None when the event must be dropped silently
        """
        with LogContext(state=record.registration_state.value):
            decision = evaluate(record, event, self._clock())

            if isinstance(decision, Duplicate):
                logger.info(f"Dropping redelivered event {decision.provider_message_id}")
                return None

            if isinstance(decision, Reprompt):
                if decision.reason:
                    logger.info(f"Input rejected: {decision.reason}")
                else:
                    logger.debug("Off-step input, repeating current question")
                return decision.prompt

            assert isinstance(decision, Advance)
            transition = decision.transition

            try:
                updated = await self._ledger.apply_transition(event.sender_id, transition)
            except ConflictError as e:
                logger.info(
                    f"Dropping stale event {event.provider_message_id}: {e.message}",
                    extra={"details": e.details}
                )
                return None
            except NotFoundError:
                logger.warning("Record missing during transition, re-seeding as not started")
                reseeded = await self._ledger.get_or_create(
                    event.sender_id, event.chat_id, event.seed, now=transition.at
                )
                return prompt_for(reseeded.registration_state, reseeded)

            return prompt_for(updated.registration_state, updated)
