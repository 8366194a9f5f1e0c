"""
whatsapp_bridge/utils/phone_utils.py

Purpose: Phone number and routing identifier (JID) helpers

- Normalizes operator-supplied numbers into JIDs
- Extracts bare customer numbers from inbound JIDs
"""

from typing import Optional

from whatsapp_bridge.core.config import settings
from whatsapp_bridge.utils.constants import JID_SUFFIX


def is_jid(value: str) -> bool:
    """Check whether a value is already in full routing-id form."""
    return bool(value) and value.endswith(JID_SUFFIX)


def normalize_phone_to_jid(phone: str, country_code: Optional[str] = None) -> str:
    """
    Converts a phone number into a WhatsApp routing identifier.

    Rules:
    - Already a JID: returned unchanged
    - Leading '+': stripped, the rest is used as-is
    - Otherwise: a single leading '0' is dropped and the default
      country code is prefixed

    Args:
        phone: Phone number as typed by the operator
        country_code: Override for settings.DEFAULT_COUNTRY_CODE

    Returns:
        JID such as 15551234567@s.whatsapp.net

    Example:
        >>> normalize_phone_to_jid("0612345678", "212")
        '212612345678@s.whatsapp.net'
    """
    phone = phone.strip()
    if is_jid(phone):
        return phone

    if phone.startswith("+"):
        return f"{phone[1:]}{JID_SUFFIX}"

    code = country_code if country_code is not None else settings.DEFAULT_COUNTRY_CODE
    if phone.startswith("0"):
        phone = phone[1:]
    return f"{code}{phone}{JID_SUFFIX}"


def jid_to_phone(jid: str) -> str:
    """
    Strips the protocol suffix (and any device part) from a JID.

    Example:
        >>> jid_to_phone("15551234567:3@s.whatsapp.net")
        '15551234567'
    """
    user = jid.split("@", 1)[0]
    return user.split(":", 1)[0]
