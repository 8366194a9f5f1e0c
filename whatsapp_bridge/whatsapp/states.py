"""
whatsapp_bridge/whatsapp/states.py

Purpose: Defines the per-merchant connection states

- DISCONNECTED, CONNECTING, AWAITING_QR, OPEN, CLOSING
- Single source of truth for the connection lifecycle
- State transition validation
"""

from enum import Enum
from typing import Dict, List


class ConnectionState(str, Enum):
    """
    Lifecycle of one merchant's WhatsApp connection.
    """

    DISCONNECTED = "DISCONNECTED"
    CONNECTING = "CONNECTING"
    AWAITING_QR = "AWAITING_QR"
    OPEN = "OPEN"
    CLOSING = "CLOSING"


STATE_TRANSITIONS: Dict[ConnectionState, List[ConnectionState]] = {
    ConnectionState.DISCONNECTED: [
        ConnectionState.CONNECTING,
    ],
    ConnectionState.CONNECTING: [
        ConnectionState.AWAITING_QR,
        ConnectionState.OPEN,
        ConnectionState.CONNECTING,  # Retry after a failed attempt
        ConnectionState.CLOSING,
        ConnectionState.DISCONNECTED,
    ],
    ConnectionState.AWAITING_QR: [
        ConnectionState.AWAITING_QR,  # QR regenerated
        ConnectionState.OPEN,
        ConnectionState.CONNECTING,  # Dropped while waiting for a scan
        ConnectionState.CLOSING,
        ConnectionState.DISCONNECTED,
    ],
    ConnectionState.OPEN: [
        ConnectionState.CONNECTING,  # Dropped, reconnecting
        ConnectionState.CLOSING,
        ConnectionState.DISCONNECTED,  # Logged out from the phone
    ],
    ConnectionState.CLOSING: [
        ConnectionState.DISCONNECTED,
    ],
}


def is_valid_transition(from_state: ConnectionState, to_state: ConnectionState) -> bool:
    """
    Checks if a state transition is valid.

    Args:
        from_state: Current state
        to_state: Target state

    Returns:
        True if transition is allowed, False otherwise
    """
    allowed_transitions = STATE_TRANSITIONS.get(from_state, [])
    return to_state in allowed_transitions
