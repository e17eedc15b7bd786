import pytest

from mtsio_bridge.session import (
    DEFAULT_TOPIC_ROOT,
    InvalidTransition,
    SessionContext,
    SessionEvent,
    SessionState,
    next_state,
)

"""
Tests for the connection lifecycle state machine and the session context.
"""

def test_happy_path_reaches_active():
    state = SessionState.DISCONNECTED
    for event in (SessionEvent.CONNECT, SessionEvent.AUTH_OK, SessionEvent.SUBSCRIBE, SessionEvent.SUB_OK):
        state = next_state(state, event)
    assert state is SessionState.ACTIVE


def test_auth_failure_goes_back_to_disconnected():
    state = next_state(SessionState.DISCONNECTED, SessionEvent.CONNECT)
    assert next_state(state, SessionEvent.AUTH_FAIL) is SessionState.DISCONNECTED


def test_sub_failure_keeps_the_authenticated_session():
    assert next_state(SessionState.SUBSCRIBING, SessionEvent.SUB_FAIL) is SessionState.AUTHENTICATED
    assert next_state(SessionState.AUTHENTICATED, SessionEvent.SUBSCRIBE) is SessionState.SUBSCRIBING


@pytest.mark.parametrize("state", [SessionState.AUTHENTICATED, SessionState.SUBSCRIBING, SessionState.ACTIVE])
def test_disconnect_from_any_connected_state(state):
    assert next_state(state, SessionEvent.DISCONNECTED) is SessionState.DISCONNECTED


@pytest.mark.parametrize("state, event", [
    (SessionState.DISCONNECTED, SessionEvent.SUB_OK),
    (SessionState.ACTIVE, SessionEvent.CONNECT),
    (SessionState.AUTHENTICATING, SessionEvent.SUBSCRIBE),
    (SessionState.DISCONNECTED, SessionEvent.DISCONNECTED),
])
def test_invalid_transitions_raise(state, event):
    with pytest.raises(InvalidTransition):
        next_state(state, event)


def test_context_is_replaced_not_mutated():
    worker = object()
    context = SessionContext()
    subscribed = context.subscribed("wayside/mtsio/+/request", worker)

    assert context.worker is None
    assert subscribed.worker is worker
    assert subscribed.cleared() == SessionContext(topic_root=DEFAULT_TOPIC_ROOT)


def test_request_topic_uses_topic_root():
    assert SessionContext().request_topic == "wayside/mtsio/+/request"
    assert SessionContext().with_topic_root("a/b").request_topic == "a/b/+/request"
