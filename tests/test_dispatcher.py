import pytest

from sochma.core.exceptions import GatewayUnavailable, ServiceUnavailable
from sochma.flow.dispatcher import Dispatcher
from sochma.flow.registration import RegistrationFlow
from sochma.flow.states import RegistrationState

from conftest import RecordingGateway, callback_event, text_event

S1 = 2002

REGISTRATION = [
    lambda: text_event(S1, "+14155550123"),
    lambda: text_event(S1, "Jordan Lee"),
    lambda: callback_event(S1, "role:buyer"),
    lambda: callback_event(S1, "agenda:ack"),
    lambda: callback_event(S1, "complete:confirm"),
]


@pytest.fixture()
def dispatcher(ledger, gateway, clock):
    return Dispatcher(ledger, gateway, registration=RegistrationFlow(ledger, clock=clock))


async def register(dispatcher):
    for make_event in REGISTRATION:
        await dispatcher.handle_event(make_event())


@pytest.mark.asyncio
async def test_first_contact_asks_for_phone(dispatcher, gateway, ledger):
    await dispatcher.handle_event(text_event(S1, "/start"))

    assert len(gateway.sent) == 1
    chat_id, prompt = gateway.sent[0]
    assert chat_id == S1
    assert "phone number" in prompt.text
    assert (await ledger.get(S1)).registration_state == RegistrationState.NOT_STARTED


@pytest.mark.asyncio
async def test_callbacks_are_answered(dispatcher, gateway):
    await dispatcher.handle_event(callback_event(S1, "role:buyer", callback_id="cb-1"))

    assert gateway.answered == ["cb-1"]


@pytest.mark.asyncio
async def test_full_registration_sends_one_prompt_per_step(dispatcher, gateway, ledger):
    await register(dispatcher)

    record = await ledger.get(S1)
    assert record.is_registered is True
    assert len(gateway.sent) == len(REGISTRATION)
    assert "Registration Complete" in gateway.sent[-1][1].text


@pytest.mark.asyncio
async def test_completed_sender_goes_to_command_handlers(dispatcher, gateway, ledger):
    await register(dispatcher)
    before = await ledger.get(S1)

    prompt = await dispatcher.dispatch(text_event(S1, "+15550001111"))

    assert "Try /help" in prompt.text
    assert (await ledger.get(S1)) == before


@pytest.mark.asyncio
async def test_profile_command(dispatcher, ledger):
    await register(dispatcher)

    prompt = await dispatcher.dispatch(text_event(S1, "/profile"))

    assert "Jordan Lee" in prompt.text
    assert "+14155550123" in prompt.text
    assert "Buyer" in prompt.text
    assert [choice.value for choice in prompt.choices] == ["menu:profile", "menu:help"]


@pytest.mark.asyncio
async def test_menu_buttons(dispatcher):
    await register(dispatcher)

    help_prompt = await dispatcher.dispatch(callback_event(S1, "menu:help"))
    start_prompt = await dispatcher.dispatch(text_event(S1, "/start"))
    register_prompt = await dispatcher.dispatch(text_event(S1, "/register"))

    assert "/profile" in help_prompt.text
    assert "Welcome back" in start_prompt.text
    assert "already registered" in register_prompt.text


@pytest.mark.asyncio
async def test_duplicate_delivery_sends_nothing(dispatcher, gateway):
    event = text_event(S1, "+14155550123")

    await dispatcher.handle_event(event)
    await dispatcher.handle_event(event)

    assert len(gateway.sent) == 1


@pytest.mark.asyncio
async def test_redelivered_confirmation_sends_nothing(dispatcher, gateway, ledger):
    for make_event in REGISTRATION[:-1]:
        await dispatcher.handle_event(make_event())
    confirm = callback_event(S1, "complete:confirm", callback_id="cbFINAL")

    await dispatcher.handle_event(confirm)
    completed = await ledger.get(S1)
    await dispatcher.handle_event(confirm)

    assert len(gateway.sent) == len(REGISTRATION)
    assert (await ledger.get(S1)) == completed
    assert await dispatcher.dispatch(confirm) is None


@pytest.mark.asyncio
async def test_delivery_error_is_swallowed_and_transition_stands(ledger, failing_gateway):
    dispatcher = Dispatcher(ledger, failing_gateway)

    prompt = await dispatcher.handle_event(text_event(S1, "+14155550123"))

    assert prompt is not None
    assert (await ledger.get(S1)).registration_state == RegistrationState.PHONE_ENTERED


@pytest.mark.asyncio
async def test_gateway_unavailable_propagates(ledger):
    dispatcher = Dispatcher(ledger, RecordingGateway(send_error=GatewayUnavailable("down")))

    with pytest.raises(ServiceUnavailable):
        await dispatcher.handle_event(text_event(S1, "+14155550123"))


@pytest.mark.asyncio
async def test_callback_answer_failure_does_not_block_reply(ledger):
    gateway = RecordingGateway(callback_error=GatewayUnavailable("down"))
    dispatcher = Dispatcher(ledger, gateway)

    await dispatcher.handle_event(callback_event(S1, "role:buyer"))

    assert len(gateway.sent) == 1


@pytest.mark.asyncio
async def test_ledger_outage_propagates(gateway):
    class DownLedger:
        async def get_or_create(self, *args, **kwargs):
            raise ServiceUnavailable("User ledger unavailable during get_or_create")

    dispatcher = Dispatcher(DownLedger(), gateway)

    with pytest.raises(ServiceUnavailable):
        await dispatcher.handle_event(text_event(S1, "hi"))

    assert gateway.sent == []
