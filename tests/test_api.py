from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from whatsapp_bridge.core.exceptions import (
    InternalError,
    NoActiveSessionError,
    SendFailedError,
    SessionNotFoundError,
)
from whatsapp_bridge.main import app
from whatsapp_bridge.models.conversation import ConversationContext
from whatsapp_bridge.services.connection_manager import get_connection_manager
from whatsapp_bridge.services.session_store import get_session_store
from whatsapp_bridge.utils.constants import (
    NO_ACTIVE_SESSION_TEXT,
    NO_SESSION_FOR_ID_TEXT,
    QR_NOT_READY_TEXT,
    SEND_FAILED_TEXT,
)
from whatsapp_bridge.whatsapp.states import ConnectionState

QR_DATA_URL = "data:image/svg+xml;base64,PHN2Zz48L3N2Zz4="


@pytest.fixture
def manager():
    manager = MagicMock()
    manager.is_connected.return_value = False
    manager.get_state.return_value = ConnectionState.DISCONNECTED
    manager.get_qr.return_value = None
    manager.state_counts.return_value = {state.value: 0 for state in ConnectionState}
    manager.start_connection = AsyncMock(return_value=True)
    manager.send_text = AsyncMock(return_value="15551234567@s.whatsapp.net")
    manager.delete_connection = AsyncMock()
    return manager


@pytest.fixture
def client(manager, store):
    app.dependency_overrides[get_connection_manager] = lambda: manager
    app.dependency_overrides[get_session_store] = lambda: store
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_connect_starts_connection(client, manager):
    response = client.get("/connect/42")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    manager.start_connection.assert_awaited_once_with("42")


def test_connect_when_already_connected(client, manager):
    manager.is_connected.return_value = True

    response = client.get("/connect/42")

    assert response.status_code == 200
    assert "42" in response.text
    manager.start_connection.assert_not_awaited()


def test_connected_status(client, manager):
    manager.is_connected.return_value = True

    response = client.get("/whatsapp/connected/42")

    assert response.json() == {"connected": True}


def test_connection_state(client, manager):
    manager.get_state.return_value = ConnectionState.AWAITING_QR
    manager.get_qr.return_value = QR_DATA_URL

    response = client.get("/whatsapp/status/42")

    assert response.json() == {
        "ecommercant_id": "42",
        "state": "AWAITING_QR",
        "connected": False,
        "qr_available": True,
    }


def test_qr_not_ready(client):
    response = client.get("/whatsapp/qr/42")

    assert response.status_code == 404
    assert response.text == QR_NOT_READY_TEXT


def test_qr_page_embeds_data_url(client, manager):
    manager.get_qr.return_value = QR_DATA_URL

    response = client.get("/whatsapp/qr/42")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/html")
    assert f'src="{QR_DATA_URL}"' in response.text
    assert "ecommercant 42" in response.text


def test_send_message(client, manager):
    response = client.post("/whatsapp/send", json={
        "ecommercant_id": "42",
        "phone": "+15551234567",
        "message": "Votre commande est prête",
    })

    assert response.status_code == 200
    assert response.json()["success"] is True
    manager.send_text.assert_awaited_once_with("42", "+15551234567", "Votre commande est prête")


def test_send_without_session_is_500_text(client, manager):
    manager.send_text.side_effect = NoActiveSessionError()

    response = client.post("/whatsapp/send", json={"ecommercant_id": "42", "phone": "0612345678", "message": "Hi"})

    assert response.status_code == 500
    assert response.text == NO_ACTIVE_SESSION_TEXT


def test_send_failure_is_408_text(client, manager):
    manager.send_text.side_effect = SendFailedError()

    response = client.post("/whatsapp/send", json={"ecommercant_id": "42", "phone": "0612345678", "message": "Hi"})

    assert response.status_code == 408
    assert response.text == SEND_FAILED_TEXT


def test_send_rejects_missing_fields(client, manager):
    response = client.post("/whatsapp/send", json={"ecommercant_id": "42"})

    assert response.status_code == 422
    assert response.json()["code"] == "VALIDATION_ERROR"
    manager.send_text.assert_not_awaited()


def test_delete_connection(client, manager):
    response = client.delete("/whatsapp/42")

    assert response.status_code == 200
    assert response.json()["success"] is True
    manager.delete_connection.assert_awaited_once_with("42")


def test_delete_unknown_connection_is_404_json(client, manager):
    manager.delete_connection.side_effect = SessionNotFoundError()

    response = client.delete("/whatsapp/42")

    assert response.status_code == 404
    assert response.json()["error"] == NO_SESSION_FOR_ID_TEXT
    assert response.json()["code"] == "NOT_FOUND"


def test_delete_failure_is_500_json(client, manager):
    manager.delete_connection.side_effect = InternalError("logout rejected")

    response = client.delete("/whatsapp/42")

    assert response.status_code == 500
    assert response.json()["error"] == "logout rejected"


def test_clear_context(client, store, manager):
    store.set_context("15551234567", ConversationContext("42", "7"))

    response = client.delete("/whatsapp/context/15551234567")

    assert response.status_code == 200
    assert store.get_context("15551234567") is None
    manager.delete_connection.assert_not_awaited()


def test_clear_unknown_context_is_404(client):
    response = client.delete("/whatsapp/context/15551234567")

    assert response.status_code == 404
    assert response.json()["code"] == "NOT_FOUND"


def test_health_reports_connection_states(client, manager):
    manager.state_counts.return_value = {**manager.state_counts.return_value, "OPEN": 2}

    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["checks"]["connections"]["OPEN"] == 2


def test_liveness(client):
    assert client.get("/live").json() == {"status": "alive"}
