"""
whatsapp_bridge/schemas/messages.py

Purpose: WhatsApp message schemas and parsers

- Validates the operator send request
- Normalizes raw protocol messages into InboundMessage
- Status payloads returned by the HTTP façade
"""

from pydantic import BaseModel, Field
from typing import Any, Dict, Optional

from whatsapp_bridge.utils.phone_utils import jid_to_phone


class SendMessageRequest(BaseModel):
    """Body of POST /whatsapp/send."""

    ecommercant_id: str = Field(..., min_length=1, description="Merchant whose connection sends the message")
    phone: str = Field(..., min_length=1, description="Recipient number or JID")
    message: str = Field(..., description="Text to send")

    class Config:
        json_schema_extra = {
            "example": {
                "ecommercant_id": "42",
                "phone": "0612345678",
                "message": "Votre commande est prête"
            }
        }


class ConnectedResponse(BaseModel):
    connected: bool


class ConnectionStatusResponse(BaseModel):
    """Observable connection state of one merchant."""

    ecommercant_id: str
    state: str
    connected: bool
    qr_available: bool


class InboundMessage(BaseModel):
    """
    Normalized inbound message.
    Only what routing needs: who sent it, where to answer, and the text.
    """

    remote_jid: str = Field(..., description="Chat to reply to")
    phone: str = Field(..., description="Sender's bare phone number")
    text: str = Field(default="", description="Plain or extended text, empty when absent")
    message_id: Optional[str] = None
    push_name: Optional[str] = None


def extract_text(message: Dict[str, Any]) -> str:
    """
    Returns the text of a protocol message.

    Plain messages carry 'conversation'; replies, links and formatted
    messages carry 'extendedTextMessage.text'.
    """
    text = message.get("conversation")
    if not text:
        extended = message.get("extendedTextMessage") or {}
        text = extended.get("text")
    return text or ""


def parse_inbound_message(raw: Dict[str, Any]) -> Optional[InboundMessage]:
    """
    Parses a raw protocol message.

    Returns None for events without a message payload and for echoes of
    messages this connection sent itself.

    Raw format:
    {
        "key": {"remoteJid": "15551234567@s.whatsapp.net", "fromMe": false, "id": "ABC"},
        "message": {"conversation": "Hi"},
        "pushName": "John"
    }
    """
    message = raw.get("message")
    key = raw.get("key") or {}
    if not message or key.get("fromMe"):
        return None

    remote_jid = key.get("remoteJid")
    if not remote_jid:
        return None

    return InboundMessage(
        remote_jid=remote_jid,
        phone=jid_to_phone(remote_jid),
        text=extract_text(message),
        message_id=key.get("id"),
        push_name=raw.get("pushName"),
    )
