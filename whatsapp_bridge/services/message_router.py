"""
whatsapp_bridge/services/message_router.py

Purpose: Inbound message routing

- Drops echoes and events without a message payload
- Session-init links: store context, persist it, send the AI opening reply
- Ordinary chat: resolve context (memory, then session DB), send the AI reply
- Unknown customers get the onboarding prompt

Collaborator failures are logged and never propagate out of the router.
"""

from typing import Any, Dict, Optional

from whatsapp_bridge.core.config import settings
from whatsapp_bridge.core.exceptions import CollaboratorError, MalformedSessionInitError
from whatsapp_bridge.core.logging import get_logger, LogContext
from whatsapp_bridge.models.conversation import ConversationContext
from whatsapp_bridge.schemas.messages import InboundMessage, parse_inbound_message
from whatsapp_bridge.services.ai_service import AIService, get_ai_service
from whatsapp_bridge.services.session_db_service import SessionDBService, get_session_db_service
from whatsapp_bridge.services.session_store import SessionStore, get_session_store
from whatsapp_bridge.utils.constants import HISTORY_UPSERT_TYPE, ONBOARDING_MESSAGE
from whatsapp_bridge.utils.validation_utils import is_session_init, parse_session_init
from whatsapp_bridge.whatsapp.socket import MessagesUpsert, WhatsAppSocket

logger = get_logger(__name__)


class MessageRouter:
    """Turns inbound WhatsApp messages into AI replies."""

    def __init__(
        self,
        store: SessionStore,
        session_db: SessionDBService,
        ai_service: AIService,
        session_init_prefix: Optional[str] = None,
        onboarding_message: str = ONBOARDING_MESSAGE,
    ):
        self._store = store
        self._session_db = session_db
        self._ai = ai_service
        self._prefix = session_init_prefix or settings.SESSION_INIT_PREFIX
        self._onboarding_message = onboarding_message

    async def handle_upsert(self, merchant_id: str, socket: WhatsAppSocket, upsert: MessagesUpsert):
        """Routes every message of a batch, in order."""
        if upsert.upsert_type == HISTORY_UPSERT_TYPE:
            logger.debug(f"Ignoring {len(upsert.messages)} history messages for {merchant_id}")
            return

        for raw in upsert.messages:
            await self.handle_message(merchant_id, socket, raw)

    async def handle_message(self, merchant_id: str, socket: WhatsAppSocket, raw: Dict[str, Any]):
        """
        Routes one raw protocol message.

        Args:
            merchant_id: Merchant whose connection received the message
            socket: Connection used to answer
            raw: Raw protocol message
        """
        message = parse_inbound_message(raw)
        if message is None:
            return

        with LogContext(merchant_id=merchant_id, customer=message.phone):
            logger.info(f"📩 Message received: {message.text[:100]!r}")

            try:
                if is_session_init(message.text, self._prefix):
                    await self._handle_session_init(socket, message)
                    return

                if not message.text:
                    logger.debug("Message has no text payload, ignoring")
                    return

                await self._handle_chat(socket, message)

            except Exception as e:
                logger.error(f"❌ Routing error: {e}", exc_info=True)

    async def _handle_session_init(self, socket: WhatsAppSocket, message: InboundMessage):
        try:
            merchant_id, product_id = parse_session_init(message.text, self._prefix)
        except MalformedSessionInitError as e:
            logger.warning(f"⚠️ Rejected session-init link: {e.message}")
            await self._send(socket, message.remote_jid, self._onboarding_message, "onboarding")
            return

        self._store.set_context(message.phone, ConversationContext(merchant_id, product_id))
        logger.info(f"🔗 Session stored locally: {merchant_id}-{product_id}")

        try:
            await self._session_db.save_session(message.phone, merchant_id, product_id)
        except CollaboratorError as e:
            logger.error(f"❌ Failed to save session in DB: {e.message}")

        try:
            reply = await self._ai.generate_reply(merchant_id, product_id, message.phone)
        except CollaboratorError as e:
            logger.error(f"❌ AI opening reply failed: {e.message}")
            return

        await self._send(socket, message.remote_jid, reply, "auto")

    async def _handle_chat(self, socket: WhatsAppSocket, message: InboundMessage):
        context = self._store.get_context(message.phone)
        if context is None:
            logger.info("🔍 No session in memory, looking up session DB")
            context = await self._hydrate_context(message.phone)

        if context is None or not context.is_usable:
            logger.warning("⚠️ No valid session for this customer")
            await self._send(socket, message.remote_jid, self._onboarding_message, "onboarding")
            return

        try:
            reply = await self._ai.chat(context.merchant_id, context.product_id, message.text)
        except CollaboratorError as e:
            logger.error(f"❌ AI chat failed: {e.message}")
            return

        await self._send(socket, message.remote_jid, reply, "chat")

    async def _hydrate_context(self, phone: str) -> Optional[ConversationContext]:
        """Loads a context from the session DB and caches it when usable."""
        try:
            record = await self._session_db.find_session(phone)
        except CollaboratorError as e:
            logger.error(f"❌ Session lookup failed: {e.message}")
            record = None

        # A session-init may have landed while the lookup was in flight
        fresh = self._store.get_context(phone)
        if fresh is not None:
            return fresh

        if record is None:
            return None

        context = ConversationContext(record.ecommercant_id or "", record.produit_id or "")
        if context.is_usable:
            self._store.set_context(phone, context)
            logger.info(f"✅ Session found in DB: {context.merchant_id}-{context.product_id}")
        return context

    async def _send(self, socket: WhatsAppSocket, jid: str, text: str, kind: str) -> bool:
        try:
            await socket.send_message(jid, text)
        except Exception as e:
            logger.error(f"❌ Failed to send {kind} reply: {e}")
            return False

        logger.info(f"✅ {kind.capitalize()} reply sent")
        return True


# Global message router
_message_router: Optional[MessageRouter] = None


def get_message_router() -> MessageRouter:
    """Get or create the global message router."""
    global _message_router
    if _message_router is None:
        _message_router = MessageRouter(
            store=get_session_store(),
            session_db=get_session_db_service(),
            ai_service=get_ai_service(),
        )
    return _message_router
