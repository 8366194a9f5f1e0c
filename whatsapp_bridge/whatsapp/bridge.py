"""
whatsapp_bridge/whatsapp/bridge.py

Purpose: WhatsApp protocol adapter over a websocket bridge

- One websocket per merchant to the protocol sidecar
- Protocol version negotiation on connect
- Credential material handed over on start, updates streamed back
- Commands (send_text, logout) correlated by requestId
"""

import asyncio
import json
import uuid
from typing import Any, AsyncIterator, Dict, List, Optional

import websockets
from websockets import exceptions as ws_exceptions

from whatsapp_bridge.core.config import settings
from whatsapp_bridge.core.exceptions import ProtocolError
from whatsapp_bridge.core.logging import get_logger
from whatsapp_bridge.whatsapp.socket import (
    ConnectionClosed,
    ConnectionOpened,
    CredentialsUpdate,
    DisconnectReason,
    MessagesUpsert,
    QRCodeUpdate,
    SocketEvent,
    WhatsAppSocket,
)

logger = get_logger(__name__)

PROTOCOL_VERSION = 1
MAX_FRAME_BYTES = 16 * 1024 * 1024


class BridgeSocket(WhatsAppSocket):
    """WhatsAppSocket backed by the websocket protocol bridge."""

    def __init__(
        self,
        merchant_id: str,
        credentials: Dict[str, Any],
        url: str,
        command_timeout: Optional[float] = None,
    ):
        super().__init__(merchant_id)
        self._credentials = credentials
        self._url = url
        self._command_timeout = command_timeout
        self._ws = None
        self._open = False
        self._pending: Dict[str, asyncio.Future] = {}
        self.wa_version: Optional[List[int]] = None

    @property
    def is_open(self) -> bool:
        return self._open

    async def connect(self) -> None:
        logger.info(f"Connecting merchant {self.merchant_id} to WhatsApp bridge at {self._url}")
        self._ws = await websockets.connect(
            self._url,
            max_size=MAX_FRAME_BYTES,
            ping_interval=20,
            ping_timeout=20,
        )

        try:
            await self._ws.send(json.dumps({"type": "hello", "protocolVersion": PROTOCOL_VERSION}))
            raw = await asyncio.wait_for(self._ws.recv(), timeout=self._command_timeout)
            hello = json.loads(raw)
            payload = hello.get("payload") or {}
            version = payload.get("protocolVersion")
            if hello.get("type") != "hello" or version != PROTOCOL_VERSION:
                raise ProtocolError(
                    f"Bridge protocol mismatch: expected v{PROTOCOL_VERSION}, got {version!r}"
                )
            self.wa_version = payload.get("waVersion")

            await self._ws.send(json.dumps({
                "type": "start",
                "payload": {
                    "session": self.merchant_id,
                    "auth": self._credentials,
                    "version": self.wa_version,
                },
            }))
        except Exception:
            await self._ws.close()
            self._ws = None
            raise

        self._open = True
        logger.debug(f"Bridge session started for {self.merchant_id} (WA version {self.wa_version})")

    async def events(self) -> AsyncIterator[SocketEvent]:
        if self._ws is None:
            raise ProtocolError("Bridge socket is not connected")

        error = None
        try:
            async for raw in self._ws:
                for event in self._parse_frame(raw):
                    if isinstance(event, ConnectionClosed):
                        self._mark_closed("Connection closed")
                        yield event
                        return
                    yield event
        except ws_exceptions.ConnectionClosed as e:
            error = str(e)

        self._mark_closed("Bridge transport closed")
        yield ConnectionClosed(
            status_code=DisconnectReason.CONNECTION_LOST,
            error=error or "bridge transport closed",
        )

    async def send_message(self, jid: str, text: str) -> Dict[str, Any]:
        return await self._send_command("send_text", {"to": jid, "text": text})

    async def logout(self) -> None:
        await self._send_command("logout", {})

    async def close(self) -> None:
        """Closes the websocket, including after a close frame already marked the socket closed."""
        self._mark_closed("Socket closed")
        ws, self._ws = self._ws, None
        if ws is not None:
            await ws.close()

    def _parse_frame(self, raw) -> List[SocketEvent]:
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"Invalid JSON from bridge for {self.merchant_id}")
            return []

        if not isinstance(data, dict):
            logger.warning("Invalid bridge frame shape")
            return []

        frame_type = data.get("type")
        payload = data.get("payload")
        if not isinstance(payload, dict):
            payload = {}

        if frame_type == "response":
            self._resolve_pending(data.get("requestId"), payload, data.get("error"))
            return []

        if frame_type == "creds.update":
            return [CredentialsUpdate(changes=payload.get("changes") or {})]

        if frame_type == "messages.upsert":
            return [MessagesUpsert(
                messages=payload.get("messages") or [],
                upsert_type=payload.get("type") or "notify",
            )]

        if frame_type == "connection.update":
            events: List[SocketEvent] = []
            if payload.get("qr"):
                events.append(QRCodeUpdate(qr=payload["qr"]))
            connection = payload.get("connection")
            if connection == "open":
                self.user = payload.get("user")
                events.append(ConnectionOpened(user=self.user))
            elif connection == "close":
                events.append(ConnectionClosed(
                    status_code=payload.get("statusCode"),
                    error=payload.get("error"),
                ))
            return events

        if frame_type == "error":
            logger.error(f"WhatsApp bridge error for {self.merchant_id}: {payload.get('error')}")
            return []

        logger.debug(f"Ignoring bridge frame of type {frame_type!r}")
        return []

    async def _send_command(self, command: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        if self._ws is None or not self._open:
            raise ProtocolError(f"Bridge socket for {self.merchant_id} is not open")

        request_id = uuid.uuid4().hex
        future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future

        try:
            await self._ws.send(json.dumps({
                "type": command,
                "requestId": request_id,
                "payload": payload,
            }))
            return await asyncio.wait_for(future, timeout=self._command_timeout)
        finally:
            self._pending.pop(request_id, None)

    def _resolve_pending(self, request_id: Optional[str], payload: Dict[str, Any], error: Optional[str]):
        future = self._pending.get(request_id) if request_id else None
        if future is None or future.done():
            return
        if error:
            future.set_exception(ProtocolError(str(error)))
        else:
            future.set_result(payload)

    def _mark_closed(self, reason: str):
        self._open = False
        for future in self._pending.values():
            if not future.done():
                future.set_exception(ProtocolError(reason))
        self._pending.clear()


def create_bridge_socket(merchant_id: str, credentials: Dict[str, Any]) -> BridgeSocket:
    """Default socket factory used by the connection manager."""
    return BridgeSocket(
        merchant_id=merchant_id,
        credentials=credentials,
        url=settings.WHATSAPP_BRIDGE_URL,
        command_timeout=settings.WHATSAPP_COMMAND_TIMEOUT,
    )
