"""
whatsapp_bridge/schemas/collaborators.py

Purpose: Wire formats of the session DB and AI services

- Field names follow the collaborators' French API (numero_client, produit_id, ...)
- Ids are coerced to strings whatever JSON type the service returns
"""

from pydantic import BaseModel, Field, field_validator
from typing import Optional


class SessionRecord(BaseModel):
    """Customer -> (merchant, product) association stored by the session DB."""

    numero_client: Optional[str] = Field(default=None, description="Customer phone number")
    ecommercant_id: Optional[str] = Field(default=None, description="Merchant id")
    produit_id: Optional[str] = Field(default=None, description="Product id")

    @field_validator("numero_client", "ecommercant_id", "produit_id", mode="before")
    @classmethod
    def coerce_id(cls, v):
        """Ids may arrive as JSON numbers."""
        if v is None:
            return None
        return str(v).strip()


class GenerateReplyRequest(BaseModel):
    """Body of POST /api/ia/generer-reponse."""

    ecommercant_id: str
    produit_id: str
    numero_client: str


class ChatRequest(BaseModel):
    """Body of POST /api/ia/chat."""

    ecommercant_id: str
    produit_id: str
    message_client: str


class AIReply(BaseModel):
    """Response of both AI endpoints."""

    reponse: str = Field(..., description="Text to send back to the customer")
