import json

import httpx
import pytest

from whatsapp_bridge.core.exceptions import CollaboratorError
from whatsapp_bridge.services.ai_service import AIService
from whatsapp_bridge.services.session_db_service import SessionDBService

BASE_URL = "http://collaborator.test"


def transport(handler, calls):
    def record(request: httpx.Request):
        calls.append(request)
        return handler(request)
    return httpx.MockTransport(record)


async def test_save_session_posts_record():
    calls = []
    db = SessionDBService(BASE_URL, transport=transport(lambda r: httpx.Response(200, json={"ok": True}), calls))

    await db.save_session("15551234567", "42", "7")

    assert calls[0].method == "POST"
    assert calls[0].url.path == "/api/session/save"
    assert json.loads(calls[0].content) == {
        "numero_client": "15551234567",
        "ecommercant_id": "42",
        "produit_id": "7",
    }
    await db.close()


async def test_find_session_returns_record_with_string_ids():
    calls = []
    db = SessionDBService(BASE_URL, transport=transport(
        lambda r: httpx.Response(200, json={"ecommercant_id": 42, "produit_id": 7}), calls
    ))

    record = await db.find_session("15551234567")

    assert calls[0].url.path == "/api/session/find"
    assert calls[0].url.params["numero_client"] == "15551234567"
    assert (record.ecommercant_id, record.produit_id) == ("42", "7")
    await db.close()


@pytest.mark.parametrize("response", [
    httpx.Response(404, json={"error": "not found"}),
    httpx.Response(200, json={}),
    httpx.Response(200, text="null"),
])
async def test_find_session_without_session_returns_none(response):
    db = SessionDBService(BASE_URL, transport=transport(lambda r: response, []))

    assert await db.find_session("15551234567") is None
    await db.close()


async def test_find_session_server_error_raises():
    db = SessionDBService(BASE_URL, transport=transport(lambda r: httpx.Response(500, text="boom"), []))

    with pytest.raises(CollaboratorError) as exc_info:
        await db.find_session("15551234567")

    assert exc_info.value.details["status_code"] == 500
    await db.close()


async def test_network_failure_raises_collaborator_error():
    def fail(request):
        raise httpx.ConnectError("connection refused", request=request)

    db = SessionDBService(BASE_URL, transport=httpx.MockTransport(fail))

    with pytest.raises(CollaboratorError):
        await db.save_session("15551234567", "42", "7")
    await db.close()


async def test_generate_reply():
    calls = []
    ai = AIService(BASE_URL, transport=transport(lambda r: httpx.Response(200, json={"reponse": "Bienvenue"}), calls))

    reply = await ai.generate_reply("42", "7", "15551234567")

    assert reply == "Bienvenue"
    assert calls[0].url.path == "/api/ia/generer-reponse"
    assert json.loads(calls[0].content) == {
        "ecommercant_id": "42",
        "produit_id": "7",
        "numero_client": "15551234567",
    }
    await ai.close()


async def test_chat():
    calls = []
    ai = AIService(BASE_URL, transport=transport(lambda r: httpx.Response(200, json={"reponse": "Oui"}), calls))

    assert await ai.chat("42", "7", "Il est dispo ?") == "Oui"
    assert calls[0].url.path == "/api/ia/chat"
    assert json.loads(calls[0].content)["message_client"] == "Il est dispo ?"
    await ai.close()


async def test_ai_reply_without_reponse_field_raises():
    ai = AIService(BASE_URL, transport=transport(lambda r: httpx.Response(200, json={"answer": "?"}), []))

    with pytest.raises(CollaboratorError):
        await ai.chat("42", "7", "Bonjour")
    await ai.close()
