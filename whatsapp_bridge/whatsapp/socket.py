"""
whatsapp_bridge/whatsapp/socket.py

Purpose: Protocol connection contract

- Abstract WhatsAppSocket every protocol adapter implements
- Typed connection events (credentials, QR, open, close, messages)
- Disconnect reason codes
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Union


class DisconnectReason(IntEnum):
    """Status codes reported when a protocol connection closes."""

    CONNECTION_CLOSED = 428
    CONNECTION_LOST = 408
    CONNECTION_REPLACED = 440
    TIMED_OUT = 408
    LOGGED_OUT = 401
    BAD_SESSION = 500
    RESTART_REQUIRED = 515
    MULTIDEVICE_MISMATCH = 411
    FORBIDDEN = 403
    UNAVAILABLE_SERVICE = 503


@dataclass
class CredentialsUpdate:
    """New credential material; a None value removes that entry."""
    changes: Dict[str, Any]


@dataclass
class QRCodeUpdate:
    """A fresh pairing challenge to be scanned by the merchant."""
    qr: str


@dataclass
class ConnectionOpened:
    user: Optional[str] = None


@dataclass
class ConnectionClosed:
    status_code: Optional[int] = None
    error: Optional[str] = None

    @property
    def is_logged_out(self) -> bool:
        return self.status_code == DisconnectReason.LOGGED_OUT


@dataclass
class MessagesUpsert:
    messages: List[Dict[str, Any]] = field(default_factory=list)
    upsert_type: str = "notify"


SocketEvent = Union[CredentialsUpdate, QRCodeUpdate, ConnectionOpened, ConnectionClosed, MessagesUpsert]


class WhatsAppSocket(ABC):
    """
    One live protocol connection for one merchant.

    Lifecycle: connect() once, then drain events() until it yields
    ConnectionClosed or ends. send_message/logout may be awaited from
    other tasks while events() is being drained.
    """

    def __init__(self, merchant_id: str):
        self.merchant_id = merchant_id
        self.user: Optional[str] = None

    @property
    @abstractmethod
    def is_open(self) -> bool:
        """Whether the transport is currently usable."""

    @abstractmethod
    async def connect(self) -> None:
        """Open the transport and negotiate the protocol version."""

    @abstractmethod
    def events(self) -> AsyncIterator[SocketEvent]:
        """Yield connection events in delivery order."""

    @abstractmethod
    async def send_message(self, jid: str, text: str) -> Dict[str, Any]:
        """Send a text message; raises on transport failure."""

    @abstractmethod
    async def logout(self) -> None:
        """Unlink the device from the merchant's WhatsApp account."""

    @abstractmethod
    async def close(self) -> None:
        """Close the transport without logging out."""


# (merchant_id, credential material) -> socket
SocketFactory = Callable[[str, Dict[str, Any]], WhatsAppSocket]
