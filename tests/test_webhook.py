import pytest
from fastapi.testclient import TestClient

from sochma.core.config import settings
from sochma.core.exceptions import GatewayUnavailable, ServiceUnavailable
from sochma.flow.dispatcher import Dispatcher
from sochma.flow.states import RegistrationState
from sochma.main import create_app
from sochma.services.user_ledger import InMemoryUserLedger

from conftest import RecordingGateway, make_callback_update, make_text_update

WEBHOOK = f"{settings.API_PREFIX}/webhook"
S1 = 3003


@pytest.fixture()
def wired():
    """App with an in-memory ledger and a recording gateway, no lifespan."""
    app = create_app()
    ledger = InMemoryUserLedger()
    gateway = RecordingGateway()
    app.state.ledger = ledger
    app.state.gateway = gateway
    app.state.dispatcher = Dispatcher(ledger, gateway)
    return TestClient(app), ledger, gateway


def test_text_update_is_processed(wired):
    client, ledger, gateway = wired

    response = client.post(WEBHOOK, json=make_text_update(S1, "+14155550123"))

    assert response.status_code == 200
    assert response.json() == {"ok": True}
    assert ledger._records[S1].registration_state == RegistrationState.PHONE_ENTERED
    assert "full name" in gateway.sent[0][1].text


def test_redelivered_update_is_acknowledged_once_processed(wired):
    client, ledger, gateway = wired
    update = make_text_update(S1, "+14155550123")

    assert client.post(WEBHOOK, json=update).status_code == 200
    assert client.post(WEBHOOK, json=update).status_code == 200

    assert len(gateway.sent) == 1
    assert len(ledger._records[S1].state_history) == 1


def test_callback_update_is_answered(wired):
    client, _, gateway = wired

    response = client.post(WEBHOOK, json=make_callback_update(S1, "role:buyer", callback_id="cb-9"))

    assert response.status_code == 200
    assert gateway.answered == ["cb-9"]


def test_malformed_json_still_200(wired):
    client, ledger, _ = wired

    response = client.post(WEBHOOK, content=b"{not json", headers={"Content-Type": "application/json"})

    assert response.status_code == 200
    assert response.json() == {"ok": True}
    assert len(ledger) == 0


def test_unrecognized_update_still_200(wired):
    client, ledger, gateway = wired

    response = client.post(WEBHOOK, json={"update_id": 1, "my_chat_member": {}})

    assert response.status_code == 200
    assert len(ledger) == 0
    assert gateway.sent == []


def test_backend_outage_still_200(wired):
    client, _, _ = wired

    class DownLedger(InMemoryUserLedger):
        async def get_or_create(self, *args, **kwargs):
            raise ServiceUnavailable("User ledger unavailable during get_or_create")

    client.app.state.dispatcher = Dispatcher(DownLedger(), RecordingGateway())

    response = client.post(WEBHOOK, json=make_text_update(S1, "hi"))

    assert response.status_code == 200
    assert response.json() == {"ok": True}


def test_gateway_outage_still_200(wired):
    client, ledger, _ = wired
    client.app.state.dispatcher = Dispatcher(ledger, RecordingGateway(send_error=GatewayUnavailable("down")))

    response = client.post(WEBHOOK, json=make_text_update(S1, "+14155550123"))

    assert response.status_code == 200
    # the committed transition stands
    assert ledger._records[S1].registration_state == RegistrationState.PHONE_ENTERED


def test_secret_token_required_when_configured(wired, monkeypatch):
    client, ledger, _ = wired
    monkeypatch.setattr(settings, "TELEGRAM_WEBHOOK_SECRET", "s3cret")

    missing = client.post(WEBHOOK, json=make_text_update(S1, "hi"))
    wrong = client.post(WEBHOOK, json=make_text_update(S1, "hi"), headers={"X-Telegram-Bot-Api-Secret-Token": "nope"})

    assert missing.status_code == 401
    assert missing.json()["code"] == "AUTHENTICATION_FAILED"
    assert wrong.status_code == 401
    assert len(ledger) == 0

    ok = client.post(WEBHOOK, json=make_text_update(S1, "hi"), headers={"X-Telegram-Bot-Api-Secret-Token": "s3cret"})
    assert ok.status_code == 200


def test_webhook_get(wired):
    client, _, _ = wired

    response = client.get(WEBHOOK)

    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_health_ready_live_and_stats(wired):
    client, ledger, _ = wired
    client.post(WEBHOOK, json=make_text_update(S1, "+14155550123"))
    client.post(WEBHOOK, json=make_text_update(S1 + 1, "hello"))

    assert client.get("/").json()["status"] == "running"
    assert client.get("/live").json() == {"status": "alive"}
    assert client.get("/ready").json() == {"status": "ready"}

    health = client.get("/health")
    assert health.status_code == 200
    assert health.json()["checks"]["ledger"] == "healthy"

    stats = client.get("/stats").json()
    assert stats["total_users"] == 2
    assert stats["registered_users"] == 0
    assert stats["by_state"]["phone_entered"] == 1
    assert stats["by_state"]["not_started"] == 1


def test_not_ready_when_ledger_down(wired):
    client, _, _ = wired

    class UnreachableLedger(InMemoryUserLedger):
        async def ping(self) -> bool:
            return False

    client.app.state.ledger = UnreachableLedger()

    assert client.get("/ready").status_code == 503
    assert client.get("/health").status_code == 503
