"""
Conversational Session Bridge

Owns one bidirectional streaming session with the live assistant:
encoded microphone frames go up, audio/text/tool-call/interruption events
come down.

State machine:
    IDLE -> CONNECTING -> OPEN -> CLOSING -> IDLE
    CONNECTING -> IDLE on connect failure

DESIGN DECISION: The bridge knows nothing about the vendor SDK. A
LiveTransport opens a LiveConnection that yields normalized ServerEvents;
the Gemini implementation lives in session/gemini.py and tests use fakes.

Inbound events are dispatched strictly in arrival order by one receive
task. Outbound frames are forwarded in order by one send task, so
send_audio() never blocks the capture path.
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import AsyncIterator, Optional, Protocol

import structlog

from vozfinancas.audio.codec import AudioFrame, decode_chunk
from vozfinancas.audio.playback import PlaybackQueue
from vozfinancas.audit import AuditLogger
from vozfinancas.models.audit import AuditEventBuilder
from vozfinancas.models.expense import ToolCall, ToolDeclaration, ToolResponse
from vozfinancas.tools.executor import ToolCallExecutor


log = structlog.get_logger(__name__)


class SessionError(Exception):
    """Base exception for live session errors."""
    pass


class SessionConnectionError(SessionError):
    """The session could not be established or failed while open."""
    pass


class SessionStateError(SessionError):
    """Operation not allowed in the current state."""
    pass


class SessionState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"


class EventKind(str, Enum):
    AUDIO = "audio"
    TEXT = "text"
    TOOL_CALLS = "tool_calls"
    INTERRUPTED = "interrupted"


@dataclass
class ServerEvent:
    """One normalized inbound event."""

    kind: EventKind
    audio: Optional[bytes] = None
    text: Optional[str] = None
    calls: list[ToolCall] = field(default_factory=list)


class LiveConnection(Protocol):
    """
    An open duplex session.

    events() ends normally when the remote side closes and raises on a
    transport error.
    """

    def events(self) -> AsyncIterator[ServerEvent]: ...

    async def send_audio(self, frame: AudioFrame) -> None: ...

    async def send_tool_responses(self, responses: list[ToolResponse]) -> None: ...

    async def close(self) -> None: ...


class LiveTransport(Protocol):
    async def connect(
        self,
        tools: list[ToolDeclaration],
        system_prompt: str,
    ) -> LiveConnection: ...


class SessionListener:
    """
    Receives what the bridge decided on its own. No-op by default.

    A close requested through LiveSessionBridge.close() is not reported.
    """

    def on_session_open(self) -> None:
        pass

    def on_text(self, text: str) -> None:
        pass

    def on_session_closed(self) -> None:
        pass

    def on_session_error(self, error: Exception) -> None:
        pass


class LiveSessionBridge:
    """
    One live session at a time, wired to the executor and playback queue.
    """

    def __init__(
        self,
        transport: LiveTransport,
        executor: ToolCallExecutor,
        playback: PlaybackQueue,
        listener: Optional[SessionListener] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._transport = transport
        self._executor = executor
        self._playback = playback
        self._listener = listener or SessionListener()
        self._audit = audit_logger or AuditLogger()
        self._state = SessionState.IDLE
        self._connection: Optional[LiveConnection] = None
        self._outbox: "asyncio.Queue[AudioFrame]" = asyncio.Queue()
        self._tasks: list[asyncio.Task] = []
        self._close_requested = False
        self.last_text: Optional[str] = None
        self.frames_dropped = 0

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state == SessionState.OPEN

    async def open(
        self,
        tools: list[ToolDeclaration],
        system_prompt: str,
    ) -> Optional[LiveConnection]:
        """
        Establish the session.

        Returns the open connection, or None when close() was called while
        connecting (the half-open connection is released).

        Raises:
            SessionStateError: A session is already active
            SessionConnectionError: The transport failed to connect
        """
        if self._state != SessionState.IDLE:
            raise SessionStateError(f"Cannot open session while {self._state.value}")

        self._state = SessionState.CONNECTING
        self._close_requested = False
        log.info("session_connecting", tools=[t.name for t in tools])

        try:
            connection = await self._transport.connect(tools, system_prompt)
        except asyncio.CancelledError:
            self._state = SessionState.IDLE
            raise
        except Exception as e:
            self._state = SessionState.IDLE
            self._audit.log(AuditEventBuilder.session_failed(str(e)))
            raise SessionConnectionError(f"Could not connect: {e}") from e

        if self._close_requested:
            self._state = SessionState.IDLE
            await self._release(connection)
            log.info("session_cancelled_while_connecting")
            return None

        self._connection = connection
        self._outbox = asyncio.Queue()
        self._state = SessionState.OPEN
        self._tasks = [
            asyncio.create_task(self._send_loop(connection), name="session-send"),
            asyncio.create_task(self._receive_loop(connection), name="session-receive"),
        ]
        self._audit.log(AuditEventBuilder.session_opened())
        self._listener.on_session_open()
        return connection

    def send_audio(self, frame: AudioFrame) -> None:
        """Queue a frame for sending. Dropped unless the session is open."""
        if self._state != SessionState.OPEN:
            self.frames_dropped += 1
            return
        self._outbox.put_nowait(frame)

    async def close(self) -> None:
        """Close the session. Idempotent, and safe in every state."""
        if self._state == SessionState.CONNECTING:
            self._close_requested = True
            return
        if self._state != SessionState.OPEN:
            return
        await self._teardown()
        self._audit.log(AuditEventBuilder.session_closed(reason="client"))

    async def _send_loop(self, connection: LiveConnection) -> None:
        try:
            while True:
                frame = await self._outbox.get()
                await connection.send_audio(frame)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            log.error("session_send_failed", error=str(e))
            await self._finish(e)

    async def _receive_loop(self, connection: LiveConnection) -> None:
        try:
            async for event in connection.events():
                await self._dispatch(connection, event)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            log.error("session_receive_failed", error=str(e))
            await self._finish(e)
        else:
            await self._finish(None)

    async def _dispatch(self, connection: LiveConnection, event: ServerEvent) -> None:
        if event.kind == EventKind.AUDIO and event.audio:
            self._playback.enqueue(decode_chunk(event.audio))
        elif event.kind == EventKind.TEXT and event.text:
            self.last_text = event.text
            self._listener.on_text(event.text)
        elif event.kind == EventKind.TOOL_CALLS and event.calls:
            responses = self._executor.execute_all(event.calls)
            await connection.send_tool_responses(responses)
            log.info(
                "tool_responses_sent",
                calls=[(r.name, r.call_id, r.status.value) for r in responses],
            )
        elif event.kind == EventKind.INTERRUPTED:
            self._playback.interrupt()

    async def _finish(self, error: Optional[Exception]) -> None:
        """Tear down after the remote side closed or failed, then notify."""
        if self._state != SessionState.OPEN:
            return
        await self._teardown()
        if error is None:
            self._audit.log(AuditEventBuilder.session_closed(reason="remote"))
            self._listener.on_session_closed()
        else:
            self._audit.log(AuditEventBuilder.session_failed(str(error)))
            self._listener.on_session_error(SessionConnectionError(str(error)))

    async def _teardown(self) -> None:
        self._state = SessionState.CLOSING
        connection, self._connection = self._connection, None

        current = asyncio.current_task()
        others = [t for t in self._tasks if t is not current and not t.done()]
        for task in others:
            task.cancel()
        if others:
            await asyncio.gather(*others, return_exceptions=True)
        self._tasks = []

        while not self._outbox.empty():
            self._outbox.get_nowait()

        if connection is not None:
            await self._release(connection)
        self._state = SessionState.IDLE
        log.info("session_closed")

    async def _release(self, connection: LiveConnection) -> None:
        try:
            await connection.close()
        except Exception as e:
            log.warning("session_release_failed", error=str(e))
