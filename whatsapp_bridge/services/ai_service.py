"""
whatsapp_bridge/services/ai_service.py

Purpose: AI response collaborator

- First reply after a session-init link (generer-reponse)
- Conversational replies (chat)
"""

from typing import Optional

from pydantic import ValidationError as PydanticValidationError

from whatsapp_bridge.core.config import settings
from whatsapp_bridge.core.exceptions import CollaboratorError
from whatsapp_bridge.core.logging import get_logger
from whatsapp_bridge.schemas.collaborators import AIReply, ChatRequest, GenerateReplyRequest
from whatsapp_bridge.services.http_client import CollaboratorClient

logger = get_logger(__name__)


class AIService(CollaboratorClient):
    """Client for the /api/ia endpoints."""

    service_name = "AI service"

    async def generate_reply(self, ecommercant_id: str, produit_id: str, numero_client: str) -> str:
        """
        Asks for the opening message of a new conversation.

        Returns:
            Reply text to send to the customer

        Raises:
            CollaboratorError: If the service fails or returns no reply
        """
        body = GenerateReplyRequest(
            ecommercant_id=ecommercant_id,
            produit_id=produit_id,
            numero_client=numero_client,
        )
        response = await self._request("POST", "/api/ia/generer-reponse", json=body.model_dump())
        return self._reply_text(response)

    async def chat(self, ecommercant_id: str, produit_id: str, message_client: str) -> str:
        """
        Asks for a reply to a customer message within a known context.

        Raises:
            CollaboratorError: If the service fails or returns no reply
        """
        body = ChatRequest(
            ecommercant_id=ecommercant_id,
            produit_id=produit_id,
            message_client=message_client,
        )
        response = await self._request("POST", "/api/ia/chat", json=body.model_dump())
        return self._reply_text(response)

    def _reply_text(self, response) -> str:
        try:
            reply = AIReply.model_validate(self._json(response))
        except PydanticValidationError as e:
            raise CollaboratorError("AI service response has no 'reponse' field") from e
        return reply.reponse


# Global AI client
_ai_service: Optional[AIService] = None


def get_ai_service() -> AIService:
    """Get or create the global AI client."""
    global _ai_service
    if _ai_service is None:
        _ai_service = AIService(
            base_url=settings.AI_SERVICE_URL,
            timeout=settings.COLLABORATOR_TIMEOUT,
        )
    return _ai_service


async def close_ai_service():
    """Close the AI client and its connection pool."""
    global _ai_service
    if _ai_service:
        await _ai_service.close()
        _ai_service = None
