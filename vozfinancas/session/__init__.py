"""Live assistant session package."""

from vozfinancas.session.bridge import (
    EventKind,
    LiveConnection,
    LiveSessionBridge,
    LiveTransport,
    ServerEvent,
    SessionConnectionError,
    SessionError,
    SessionListener,
    SessionState,
    SessionStateError,
)

__all__ = [
    "EventKind",
    "LiveConnection",
    "LiveSessionBridge",
    "LiveTransport",
    "ServerEvent",
    "SessionConnectionError",
    "SessionError",
    "SessionListener",
    "SessionState",
    "SessionStateError",
]
