"""
whatsapp_bridge/services/session_store.py

Purpose: In-memory session state

- ecommercant id -> live WhatsApp connection handle
- ecommercant id -> last QR code (data URL)
- customer number -> conversation context (cached, with TTL)

All access happens on the event loop thread, so no locking is needed.
Rebuilt from credential storage and the session DB on demand.
"""

from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

from whatsapp_bridge.core.config import settings
from whatsapp_bridge.core.logging import get_logger
from whatsapp_bridge.models.conversation import ConversationContext
from whatsapp_bridge.whatsapp.socket import WhatsAppSocket

logger = get_logger(__name__)


class SessionStore:
    """Process-wide lookup tables, owned by the application and injected."""

    def __init__(self, context_ttl: Optional[timedelta] = None):
        self._connections: Dict[str, WhatsAppSocket] = {}
        self._qr_codes: Dict[str, str] = {}
        self._contexts: Dict[str, ConversationContext] = {}
        self.context_ttl = context_ttl

    # ------------------------------------------------------------------
    # Connections
    # ------------------------------------------------------------------

    def get_connection(self, merchant_id: str) -> Optional[WhatsAppSocket]:
        return self._connections.get(merchant_id)

    def set_connection(self, merchant_id: str, socket: WhatsAppSocket):
        self._connections[merchant_id] = socket

    def remove_connection(self, merchant_id: str, socket: Optional[WhatsAppSocket] = None) -> bool:
        """
        Drops the handle for a merchant.

        When socket is given, the entry is only removed if it is still that
        socket, so a finished supervisor cannot evict its replacement.
        """
        current = self._connections.get(merchant_id)
        if current is None:
            return False
        if socket is not None and current is not socket:
            return False
        del self._connections[merchant_id]
        return True

    def merchant_ids(self):
        return list(self._connections.keys())

    # ------------------------------------------------------------------
    # QR codes
    # ------------------------------------------------------------------

    def get_qr(self, merchant_id: str) -> Optional[str]:
        return self._qr_codes.get(merchant_id)

    def set_qr(self, merchant_id: str, qr_data_url: str):
        self._qr_codes[merchant_id] = qr_data_url

    def remove_qr(self, merchant_id: str):
        self._qr_codes.pop(merchant_id, None)

    # ------------------------------------------------------------------
    # Conversation contexts
    # ------------------------------------------------------------------

    def get_context(self, phone: str) -> Optional[ConversationContext]:
        """
        Returns the cached context for a customer, dropping it if expired.
        """
        context = self._contexts.get(phone)
        if context is None:
            return None

        if context.is_expired(self.context_ttl):
            del self._contexts[phone]
            logger.debug(f"Conversation context expired for {phone}")
            return None

        return context

    def set_context(self, phone: str, context: ConversationContext):
        """Last write wins: a new session-init replaces the previous context."""
        previous = self._contexts.get(phone)
        if previous and (previous.merchant_id, previous.product_id) != (context.merchant_id, context.product_id):
            logger.info(
                f"Replacing conversation context for {phone}: "
                f"{previous.merchant_id}-{previous.product_id} -> {context.merchant_id}-{context.product_id}"
            )
        self._contexts[phone] = context

    def clear_context(self, phone: str) -> bool:
        return self._contexts.pop(phone, None) is not None

    def purge_expired_contexts(self, now: Optional[datetime] = None) -> int:
        """Removes every expired context; returns how many were dropped."""
        if not self.context_ttl:
            return 0

        now = now or datetime.now(timezone.utc)
        expired = [
            phone for phone, context in self._contexts.items()
            if context.is_expired(self.context_ttl, now)
        ]
        for phone in expired:
            del self._contexts[phone]

        if expired:
            logger.info(f"Purged {len(expired)} expired conversation contexts")
        return len(expired)

    def context_count(self) -> int:
        return len(self._contexts)


# Global session store instance
_session_store: Optional[SessionStore] = None


def get_session_store() -> SessionStore:
    """Get or create the global session store."""
    global _session_store
    if _session_store is None:
        ttl = timedelta(minutes=settings.CONTEXT_TTL_MINUTES) if settings.CONTEXT_TTL_MINUTES else None
        _session_store = SessionStore(context_ttl=ttl)
    return _session_store
