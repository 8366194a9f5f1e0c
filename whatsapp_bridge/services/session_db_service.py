"""
whatsapp_bridge/services/session_db_service.py

Purpose: Session persistence collaborator

- Saves customer -> (merchant, product) associations
- Looks them up when a customer is unknown to this process
"""

from typing import Optional

from whatsapp_bridge.core.config import settings
from whatsapp_bridge.core.exceptions import CollaboratorError
from whatsapp_bridge.core.logging import get_logger
from whatsapp_bridge.schemas.collaborators import SessionRecord
from whatsapp_bridge.services.http_client import CollaboratorClient

logger = get_logger(__name__)


class SessionDBService(CollaboratorClient):
    """Client for the /api/session endpoints."""

    service_name = "session DB"

    async def save_session(self, numero_client: str, ecommercant_id: str, produit_id: str) -> None:
        """
        Persists the association created by a session-init message.

        Raises:
            CollaboratorError: If the service is unreachable or rejects the call
        """
        record = SessionRecord(
            numero_client=numero_client,
            ecommercant_id=ecommercant_id,
            produit_id=produit_id,
        )
        await self._request("POST", "/api/session/save", json=record.model_dump())
        logger.info(f"✅ Session saved in DB for {numero_client}")

    async def find_session(self, numero_client: str) -> Optional[SessionRecord]:
        """
        Looks up the stored association for a customer.

        Returns:
            SessionRecord, or None when the service has no session for that number

        Raises:
            CollaboratorError: On any other failure
        """
        try:
            response = await self._request(
                "GET", "/api/session/find", params={"numero_client": numero_client}
            )
        except CollaboratorError as e:
            if isinstance(e.details, dict) and e.details.get("status_code") == 404:
                return None
            raise

        data = self._json(response)
        if not data:
            return None
        if not isinstance(data, dict):
            raise CollaboratorError("Unexpected session DB response shape")

        return SessionRecord(numero_client=numero_client, **{
            key: data.get(key) for key in ("ecommercant_id", "produit_id")
        })


# Global session DB client
_session_db_service: Optional[SessionDBService] = None


def get_session_db_service() -> SessionDBService:
    """Get or create the global session DB client."""
    global _session_db_service
    if _session_db_service is None:
        _session_db_service = SessionDBService(
            base_url=settings.DB_SERVICE_URL,
            timeout=settings.COLLABORATOR_TIMEOUT,
        )
    return _session_db_service


async def close_session_db_service():
    """Close the session DB client and its connection pool."""
    global _session_db_service
    if _session_db_service:
        await _session_db_service.close()
        _session_db_service = None
