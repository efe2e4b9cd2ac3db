"""
sochma/flow/dispatcher.py

Purpose: Central event dispatcher

- Receives normalized events from the webhook (or the polling runner)
- Loads or creates the sender's record
- Routes to the registration flow or the registered-user handlers
- Delivers the resulting prompt through the Telegram gateway
"""

from typing import Callable, Optional

from sochma.core.exceptions import DeliveryError, SochmaError
from sochma.core.logging import get_logger, LogContext
from sochma.flow.handlers.commands import Handler, resolve_handler
from sochma.flow.machine import already_applied
from sochma.flow.registration import RegistrationFlow
from sochma.flow.states import RegistrationState
from sochma.schemas.prompt import Prompt
from sochma.schemas.webhook import InboundEvent
from sochma.services.telegram_gateway import TelegramGateway
from sochma.services.user_ledger import UserLedger

logger = get_logger(__name__)


class Dispatcher:
    """
    Routes one inbound event at a time. Keeps no per-sender state, so a
    single instance serves every concurrent delivery.
    """

    def __init__(
        self,
        ledger: UserLedger,
        gateway: TelegramGateway,
        registration: Optional[RegistrationFlow] = None,
        handlers: Callable[[InboundEvent], Handler] = resolve_handler,
    ):
        self.ledger = ledger
        self.gateway = gateway
        self.registration = registration or RegistrationFlow(ledger)
        self._resolve_handler = handlers

    async def dispatch(self, event: InboundEvent) -> Optional[Prompt]:
        """
        Decides the reply to one event.

        Returns:
            Prompt to send, or None when the event is dropped silently

        Raises:
            ServiceUnavailable: Ledger could not be reached
        """
        record = await self.ledger.get_or_create(event.sender_id, event.chat_id, event.seed)
        logger.info(f"🔄 User state: {record.registration_state.value}")

        if record.registration_state != RegistrationState.COMPLETED:
            return await self.registration.process(event, record)

        # Redelivery of the event that completed registration
        if already_applied(record, event):
            logger.info(f"🔁 Duplicate event {event.provider_message_id}, dropping")
            return None

        handler = self._resolve_handler(event)
        logger.info(f"📞 Calling handler: {handler.__name__}")
        return await handler(record, event)

    async def handle_event(self, event: InboundEvent) -> Optional[Prompt]:
        """
        Full pipeline for one delivery: acknowledge the button press,
        dispatch, send the reply.

        A rejected delivery is logged and not re-raised; whatever the
        ledger committed stands. ServiceUnavailable propagates.
        """
        with LogContext(sender_id=event.sender_id, chat_id=event.chat_id, update_id=event.update_id):
            logger.info(f"📨 Dispatching {event.kind.value} event {event.provider_message_id}")

            if event.callback_query_id:
                await self._answer_callback(event.callback_query_id)

            prompt = await self.dispatch(event)

            if prompt is None:
                logger.info("No reply for this event")
                return None

            try:
                await self.gateway.send(event.chat_id, prompt)
            except DeliveryError as e:
                logger.error(f"❌ Reply not delivered: {e.message}", extra={"details": e.details})

            return prompt

    async def _answer_callback(self, callback_query_id: str):
        # Best effort: the spinner times out on its own if this fails
        try:
            await self.gateway.answer_callback(callback_query_id)
        except SochmaError as e:
            logger.warning(f"⚠️ Could not answer callback {callback_query_id}: {e.message}")
