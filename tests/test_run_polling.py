import pytest

from sochma.core.exceptions import ServiceUnavailable

from scripts.run_polling import process_update
from conftest import make_text_update

S1 = 3003


class RaisingDispatcher:
    def __init__(self, error: Exception):
        self.error = error
        self.calls = 0

    async def handle_event(self, event):
        self.calls += 1
        raise self.error


@pytest.mark.asyncio
@pytest.mark.parametrize("error", [ServiceUnavailable("User ledger unavailable"), RuntimeError("boom")])
async def test_failed_update_does_not_stop_polling(error):
    dispatcher = RaisingDispatcher(error)

    await process_update(dispatcher, make_text_update(S1, "hi"))

    assert dispatcher.calls == 1


@pytest.mark.asyncio
async def test_unreadable_update_is_dropped():
    dispatcher = RaisingDispatcher(RuntimeError("should not be called"))

    await process_update(dispatcher, {"update_id": 1, "poll": {"id": "p"}})

    assert dispatcher.calls == 0
