import asyncio

import pytest

from sochma.flow.registration import RegistrationFlow
from sochma.flow.states import RegistrationState, Role
from sochma.utils.constants import ERROR_INVALID_PHONE

from conftest import callback_event, text_event

S1 = 1001


async def deliver(flow, ledger, event):
    record = await ledger.get_or_create(event.sender_id, event.chat_id, event.seed)
    return await flow.process(event, record)


@pytest.fixture()
def flow(ledger, clock):
    return RegistrationFlow(ledger, clock=clock)


@pytest.mark.asyncio
async def test_end_to_end_registration(flow, ledger):
    prompt = await deliver(flow, ledger, text_event(S1, "+14155550123"))
    record = await ledger.get(S1)
    assert record.registration_state == RegistrationState.PHONE_ENTERED
    assert "full name" in prompt.text

    prompt = await deliver(flow, ledger, text_event(S1, "Jordan Lee"))
    assert (await ledger.get(S1)).registration_state == RegistrationState.NAME_ENTERED
    assert [choice.value for choice in prompt.choices] == ["role:buyer", "role:investor", "role:both"]

    prompt = await deliver(flow, ledger, callback_event(S1, "role:investor"))
    assert (await ledger.get(S1)).registration_state == RegistrationState.ROLE_SELECTED
    assert "Agenda" in prompt.text
    assert [choice.value for choice in prompt.choices] == ["agenda:ack"]

    prompt = await deliver(flow, ledger, callback_event(S1, "agenda:ack"))
    assert (await ledger.get(S1)).registration_state == RegistrationState.AGENDA_VIEWED
    assert [choice.value for choice in prompt.choices] == ["complete:confirm"]

    prompt = await deliver(flow, ledger, callback_event(S1, "complete:confirm"))
    record = await ledger.get(S1)

    assert record.registration_state == RegistrationState.COMPLETED
    assert record.is_registered is True
    assert record.role == Role.INVESTOR
    assert record.full_name == "Jordan Lee"
    assert record.phone_number == "+14155550123"
    assert "Registration Complete" in prompt.text
    assert "Jordan Lee" in prompt.text
    assert [change.to_state for change in record.state_history] == list(RegistrationState)[1:]


@pytest.mark.asyncio
async def test_updated_at_comes_from_clock(flow, ledger, clock):
    await deliver(flow, ledger, text_event(S1, "+14155550123"))

    record = await ledger.get(S1)

    assert record.updated_at == clock.current
    assert record.state_history[0].at == clock.current


@pytest.mark.asyncio
async def test_invalid_input_leaves_record_unchanged(flow, ledger):
    await deliver(flow, ledger, text_event(S1, "+14155550123"))
    before = await ledger.get(S1)

    prompt = await deliver(flow, ledger, text_event(S1, "J"))

    assert prompt.text.startswith("❌")
    assert (await ledger.get(S1)) == before


@pytest.mark.asyncio
async def test_invalid_phone_reprompts(flow, ledger):
    prompt = await deliver(flow, ledger, text_event(S1, "12345"))

    record = await ledger.get(S1)
    assert record.registration_state == RegistrationState.NOT_STARTED
    assert record.phone_number is None
    assert ERROR_INVALID_PHONE in prompt.text


@pytest.mark.asyncio
async def test_redelivered_event_is_dropped(flow, ledger):
    event = text_event(S1, "+14155550123")

    first = await deliver(flow, ledger, event)
    second = await deliver(flow, ledger, event)

    record = await ledger.get(S1)
    assert first is not None
    assert second is None
    assert record.registration_state == RegistrationState.PHONE_ENTERED
    assert record.full_name is None
    assert len(record.state_history) == 1


@pytest.mark.asyncio
async def test_concurrent_duplicate_delivery_advances_once(flow, ledger):
    event = text_event(S1, "+14155550123")
    record = await ledger.get_or_create(S1, S1, event.seed)

    results = await asyncio.gather(flow.process(event, record), flow.process(event, record))

    assert sum(result is None for result in results) == 1
    stored = await ledger.get(S1)
    assert stored.registration_state == RegistrationState.PHONE_ENTERED
    assert len(stored.state_history) == 1


@pytest.mark.asyncio
async def test_stale_event_after_concurrent_advance_is_dropped(flow, ledger):
    seed_event = text_event(S1, "+14155550123")
    stale_record = await ledger.get_or_create(S1, S1, seed_event.seed)
    await flow.process(seed_event, stale_record)

    # A different phone, evaluated against the record read before the first write
    prompt = await flow.process(text_event(S1, "+442071234567"), stale_record)

    assert prompt is None
    assert (await ledger.get(S1)).phone_number == "+14155550123"


@pytest.mark.asyncio
async def test_missing_record_is_reseeded(flow, ledger):
    event = text_event(S1, "+14155550123")
    phantom = await ledger.get_or_create(S1, S1, event.seed)
    ledger._records.clear()

    prompt = await flow.process(event, phantom)

    record = await ledger.get(S1)
    assert record.registration_state == RegistrationState.NOT_STARTED
    assert "phone number" in prompt.text


@pytest.mark.asyncio
async def test_command_mid_registration_does_not_write(flow, ledger):
    await deliver(flow, ledger, text_event(S1, "+14155550123"))
    before = await ledger.get(S1)

    prompt = await deliver(flow, ledger, text_event(S1, "/start"))

    assert (await ledger.get(S1)) == before
    assert "full name" in prompt.text
