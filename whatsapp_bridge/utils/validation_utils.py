"""
whatsapp_bridge/utils/validation_utils.py

Purpose: Input validation

- Session-init link detection and strict parsing
"""

import re
from typing import Optional, Tuple

from whatsapp_bridge.core.config import settings
from whatsapp_bridge.core.exceptions import MalformedSessionInitError

ID_PATTERN = r"[A-Za-z0-9_]+"


def is_session_init(text: str, prefix: Optional[str] = None) -> bool:
    """
    Checks whether a message is a session-init link.

    Args:
        text: Message text
        prefix: Sentinel override (defaults to settings.SESSION_INIT_PREFIX)

    Returns:
        True if the text starts with the sentinel
    """
    if not text:
        return False
    return text.strip().startswith(prefix or settings.SESSION_INIT_PREFIX)


def parse_session_init(text: str, prefix: Optional[str] = None) -> Tuple[str, str]:
    """
    Extracts (merchant_id, product_id) from a session-init message.

    Format: <prefix><merchantId>-<productId>, e.g. "IA-AUTO:42-7".
    Whitespace around the message and after the prefix is tolerated;
    anything else is rejected.

    Raises:
        MalformedSessionInitError: If the text does not match the format
    """
    prefix = prefix or settings.SESSION_INIT_PREFIX
    pattern = rf"^{re.escape(prefix)}\s*({ID_PATTERN})-({ID_PATTERN})$"

    match = re.match(pattern, (text or "").strip())
    if not match:
        raise MalformedSessionInitError(
            "Session-init message must look like "
            f"'{prefix}<merchantId>-<productId>'",
            details={"text": (text or "")[:100]},
        )

    merchant_id, product_id = match.groups()
    return merchant_id, product_id
