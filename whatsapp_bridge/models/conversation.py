"""
whatsapp_bridge/models/conversation.py

Purpose: Conversation context model

- (merchant, product) pair attached to a customer phone number
- Timestamp used for cache expiry
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone, timedelta
from typing import Optional


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ConversationContext:
    """Which merchant and product a customer is talking about."""

    merchant_id: str
    product_id: str
    updated_at: datetime = field(default_factory=_utcnow)

    @property
    def is_usable(self) -> bool:
        """Both ids are required before the AI chat endpoint can be called."""
        return bool(self.merchant_id) and bool(self.product_id)

    def is_expired(self, ttl: Optional[timedelta], now: Optional[datetime] = None) -> bool:
        if not ttl:
            return False
        return (now or _utcnow()) - self.updated_at > ttl
