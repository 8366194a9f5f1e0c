"""
whatsapp_bridge/services/http_client.py

Purpose: Shared plumbing for collaborator HTTP clients

- One pooled httpx.AsyncClient per collaborator
- Maps transport and HTTP failures to CollaboratorError
"""

from typing import Any, Optional

import httpx

from whatsapp_bridge.core.exceptions import CollaboratorError
from whatsapp_bridge.core.logging import get_logger

logger = get_logger(__name__)


class CollaboratorClient:
    """Base class for clients of the DB and AI services."""

    service_name = "collaborator"

    def __init__(
        self,
        base_url: str,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
            headers={"Content-Type": "application/json"},
        )

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        """
        Performs a request and returns the response when it is 2xx.

        Raises:
            CollaboratorError: On timeout, network failure or non-2xx status
        """
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            logger.error(f"{self.service_name} timeout on {method} {path}")
            raise CollaboratorError(f"{self.service_name} timed out") from e
        except httpx.RequestError as e:
            logger.error(f"Network error calling {self.service_name} {method} {path}: {e}")
            raise CollaboratorError(f"Unable to reach {self.service_name}: {e}") from e

        if response.status_code >= 400:
            raise CollaboratorError(
                f"{self.service_name} returned HTTP {response.status_code}",
                details={"status_code": response.status_code, "body": response.text[:500]},
            )

        return response

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise CollaboratorError("Collaborator returned a non-JSON body") from e

    async def close(self):
        await self._client.aclose()
