"""
Connection lifecycle state machine and session context.

The MQTTManager never mutates shared state in place: every transition
yields a new state, and everything that belongs to one connection
(topic root, subscription, worker) lives in an immutable
`SessionContext` that is replaced as a whole.
"""
from dataclasses import dataclass, replace
from enum import Enum
from typing import Dict, Optional, Tuple

from mtsio_bridge.worker import DispatchWorker

DEFAULT_TOPIC_ROOT = "wayside/mtsio"


class SessionState(str, Enum):
    DISCONNECTED = "disconnected"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    SUBSCRIBING = "subscribing"
    ACTIVE = "active"


class SessionEvent(str, Enum):
    CONNECT = "connect"
    AUTH_OK = "auth_ok"
    AUTH_FAIL = "auth_fail"
    SUBSCRIBE = "subscribe"
    SUB_OK = "sub_ok"
    SUB_FAIL = "sub_fail"
    DISCONNECTED = "disconnected"


class InvalidTransition(RuntimeError):
    """Raised for an event that makes no sense in the current state."""


TRANSITIONS: Dict[Tuple[SessionState, SessionEvent], SessionState] = {
    (SessionState.DISCONNECTED, SessionEvent.CONNECT): SessionState.AUTHENTICATING,
    (SessionState.AUTHENTICATING, SessionEvent.AUTH_OK): SessionState.AUTHENTICATED,
    (SessionState.AUTHENTICATING, SessionEvent.AUTH_FAIL): SessionState.DISCONNECTED,
    (SessionState.AUTHENTICATED, SessionEvent.SUBSCRIBE): SessionState.SUBSCRIBING,
    (SessionState.SUBSCRIBING, SessionEvent.SUB_OK): SessionState.ACTIVE,
    (SessionState.SUBSCRIBING, SessionEvent.SUB_FAIL): SessionState.AUTHENTICATED,
    (SessionState.AUTHENTICATED, SessionEvent.DISCONNECTED): SessionState.DISCONNECTED,
    (SessionState.SUBSCRIBING, SessionEvent.DISCONNECTED): SessionState.DISCONNECTED,
    (SessionState.ACTIVE, SessionEvent.DISCONNECTED): SessionState.DISCONNECTED,
}


def next_state(state: SessionState, event: SessionEvent) -> SessionState:
    try:
        return TRANSITIONS[(state, event)]
    except KeyError:
        raise InvalidTransition(f"Event {event.value} is not valid in state {state.value}") from None


@dataclass(frozen=True)
class SessionContext:
    """Everything that belongs to the current connection."""
    topic_root: str = DEFAULT_TOPIC_ROOT
    subscription: Optional[str] = None
    worker: Optional[DispatchWorker] = None

    @property
    def request_topic(self) -> str:
        return f"{self.topic_root}/+/request"

    def with_topic_root(self, topic_root: str) -> "SessionContext":
        return replace(self, topic_root=topic_root)

    def subscribed(self, subscription: str, worker: DispatchWorker) -> "SessionContext":
        return replace(self, subscription=subscription, worker=worker)

    def cleared(self) -> "SessionContext":
        # The topic root outlives a connection, nothing else does
        return SessionContext(topic_root=self.topic_root)
