"""
whatsapp_bridge/api/whatsapp.py

Purpose: HTTP façade over the connection manager

- Connect a merchant and fetch its QR page
- Query connectivity and connection state
- Send operator messages
- Log out a merchant or drop a customer's conversation context

Contains no connection logic; everything is delegated to the manager.
"""

from fastapi import APIRouter, Depends
from fastapi.responses import HTMLResponse, PlainTextResponse

from whatsapp_bridge.core.exceptions import NoActiveSessionError, SendFailedError, SessionNotFoundError
from whatsapp_bridge.core.logging import get_logger, LogContext
from whatsapp_bridge.schemas.messages import ConnectedResponse, ConnectionStatusResponse, SendMessageRequest
from whatsapp_bridge.schemas.response import SuccessResponse
from whatsapp_bridge.services.connection_manager import ConnectionManager, get_connection_manager
from whatsapp_bridge.services.session_store import SessionStore, get_session_store
from whatsapp_bridge.utils.constants import (
    ALREADY_CONNECTED_TEXT,
    CONNECT_STARTED_TEXT,
    CONTEXT_CLEARED_TEXT,
    MESSAGE_SENT_TEXT,
    NO_ACTIVE_SESSION_TEXT,
    NO_CONTEXT_FOR_PHONE_TEXT,
    QR_NOT_READY_TEXT,
    QR_PAGE_TEMPLATE,
    SEND_FAILED_TEXT,
    SESSION_DISCONNECTED_TEXT,
)

logger = get_logger(__name__)
router = APIRouter()


@router.get("/connect/{merchant_id}", response_class=PlainTextResponse)
async def connect(merchant_id: str, manager: ConnectionManager = Depends(get_connection_manager)):
    """
    Starts a connection for a merchant.

    Returns immediately; the QR becomes available on /whatsapp/qr/{id}
    once the protocol emits it.
    """
    if manager.is_connected(merchant_id):
        return ALREADY_CONNECTED_TEXT.format(merchant_id=merchant_id)

    await manager.start_connection(merchant_id)
    return CONNECT_STARTED_TEXT.format(merchant_id=merchant_id)


@router.get("/whatsapp/connected/{merchant_id}", response_model=ConnectedResponse)
async def is_connected(merchant_id: str, manager: ConnectionManager = Depends(get_connection_manager)):
    return ConnectedResponse(connected=manager.is_connected(merchant_id))


@router.get("/whatsapp/status/{merchant_id}", response_model=ConnectionStatusResponse)
async def connection_status(merchant_id: str, manager: ConnectionManager = Depends(get_connection_manager)):
    return ConnectionStatusResponse(
        ecommercant_id=merchant_id,
        state=manager.get_state(merchant_id).value,
        connected=manager.is_connected(merchant_id),
        qr_available=manager.get_qr(merchant_id) is not None,
    )


@router.get("/whatsapp/qr/{merchant_id}", response_class=HTMLResponse)
async def qr_page(merchant_id: str, manager: ConnectionManager = Depends(get_connection_manager)):
    """HTML page embedding the last QR emitted for this merchant."""
    qr_data_url = manager.get_qr(merchant_id)
    if not qr_data_url:
        return PlainTextResponse(QR_NOT_READY_TEXT, status_code=404)

    return HTMLResponse(QR_PAGE_TEMPLATE.format(merchant_id=merchant_id, qr_data_url=qr_data_url))


@router.post("/whatsapp/send", response_model=SuccessResponse)
async def send_message(request: SendMessageRequest, manager: ConnectionManager = Depends(get_connection_manager)):
    """
    Sends a text from a merchant's connection.

    Failures are answered in plain text: 500 without a live session,
    408 when the protocol send fails.
    """
    with LogContext(merchant_id=request.ecommercant_id):
        try:
            await manager.send_text(request.ecommercant_id, request.phone, request.message)
        except NoActiveSessionError:
            return PlainTextResponse(NO_ACTIVE_SESSION_TEXT, status_code=500)
        except SendFailedError:
            return PlainTextResponse(SEND_FAILED_TEXT, status_code=408)

    return SuccessResponse(message=MESSAGE_SENT_TEXT)


# Declared before DELETE /whatsapp/{merchant_id} so "context" is not read as a merchant id
@router.delete("/whatsapp/context/{phone}", response_model=SuccessResponse)
async def clear_context(phone: str, store: SessionStore = Depends(get_session_store)):
    if not store.clear_context(phone):
        raise SessionNotFoundError(NO_CONTEXT_FOR_PHONE_TEXT)

    logger.info(f"🧹 Conversation context cleared for {phone}")
    return SuccessResponse(message=CONTEXT_CLEARED_TEXT)


@router.delete("/whatsapp/{merchant_id}", response_model=SuccessResponse)
async def delete_connection(merchant_id: str, manager: ConnectionManager = Depends(get_connection_manager)):
    """Logs the merchant out and deletes its stored credentials."""
    with LogContext(merchant_id=merchant_id):
        await manager.delete_connection(merchant_id)

    return SuccessResponse(message=SESSION_DISCONNECTED_TEXT)
