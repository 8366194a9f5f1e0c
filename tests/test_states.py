import pytest

from whatsapp_bridge.whatsapp.states import STATE_TRANSITIONS, ConnectionState, is_valid_transition


@pytest.mark.parametrize("from_state, to_state", [
    (ConnectionState.DISCONNECTED, ConnectionState.CONNECTING),
    (ConnectionState.CONNECTING, ConnectionState.AWAITING_QR),
    (ConnectionState.AWAITING_QR, ConnectionState.OPEN),
    (ConnectionState.OPEN, ConnectionState.CONNECTING),
    (ConnectionState.OPEN, ConnectionState.CLOSING),
    (ConnectionState.CLOSING, ConnectionState.DISCONNECTED),
])
def test_valid_transitions(from_state, to_state):
    assert is_valid_transition(from_state, to_state)


@pytest.mark.parametrize("from_state, to_state", [
    (ConnectionState.DISCONNECTED, ConnectionState.OPEN),
    (ConnectionState.OPEN, ConnectionState.AWAITING_QR),
    (ConnectionState.CLOSING, ConnectionState.CONNECTING),
])
def test_invalid_transitions(from_state, to_state):
    assert not is_valid_transition(from_state, to_state)


def test_every_state_has_transitions():
    assert set(STATE_TRANSITIONS) == set(ConnectionState)
