"""
whatsapp_bridge/services/startup_recovery.py

Purpose: Re-establish merchant connections after a restart

A credential directory means the merchant was connected before the
process stopped. Each one is restarted in listing order.
"""

from typing import List

from whatsapp_bridge.core.exceptions import ValidationError
from whatsapp_bridge.core.logging import get_logger
from whatsapp_bridge.services.connection_manager import ConnectionManager

logger = get_logger(__name__)


async def recover_sessions(manager: ConnectionManager) -> List[str]:
    """
    Starts a connection for every merchant with stored credentials.

    Args:
        manager: Connection manager to start the sessions on

    Returns:
        Merchant ids a connection was started for
    """
    merchants = await manager.credentials.list_merchants()
    logger.info(f"🔄 Sessions found: {', '.join(merchants) if merchants else 'none'}")

    started = []
    for merchant_id in merchants:
        logger.info(f"⏳ Automatic reconnection for {merchant_id}...")
        try:
            if await manager.start_connection(merchant_id):
                started.append(merchant_id)
        except ValidationError as e:
            logger.warning(f"⚠️ Skipping credential folder {merchant_id!r}: {e.message}")

    return started
