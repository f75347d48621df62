"""
Shared fakes for VozFinanças tests.

No real devices, network or API keys: the microphone, speaker, live
session, timers and stores are all replaced by the fakes below.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

import numpy as np
import pytest

from vozfinancas.audio.capture import CaptureConstraints
from vozfinancas.audio.playback import PlaybackQueue
from vozfinancas.ledger import ExpenseLedger
from vozfinancas.models.expense import Expense
from vozfinancas.services.storage.interface import ExpenseStoreInterface, StorageError
from vozfinancas.session.bridge import ServerEvent
from vozfinancas.tools.executor import ToolCallExecutor


class FakeClock:
    """Deterministic clock for ledger ids and 'today'."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class MemoryExpenseStore(ExpenseStoreInterface):
    """Expense store that can be told to fail."""

    def __init__(self, expenses: Optional[list[Expense]] = None):
        self.saved: list[Expense] = list(expenses or [])
        self.saves = 0
        self.fail_next_save = False

    def load(self) -> list[Expense]:
        return list(self.saved)

    def save(self, expenses: list[Expense]) -> None:
        if self.fail_next_save:
            self.fail_next_save = False
            raise StorageError("disk full")
        self.saves += 1
        self.saved = list(expenses)


class RecordingAuditStorage:
    """Audit storage that keeps every event in memory."""

    def __init__(self):
        self.events: list = []

    def append_event(self, event) -> bool:
        self.events.append(event)
        return True

    @property
    def event_types(self) -> list:
        return [e.event_type for e in self.events]


class FakeHandle:
    def __init__(self, when: float, callback: Callable[[], Any]):
        self.when = when
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeScheduler:
    """call_later with a manually advanced clock."""

    def __init__(self):
        self.time = 0.0
        self.handles: list[FakeHandle] = []

    def call_later(self, delay: float, callback: Callable[[], Any]) -> FakeHandle:
        handle = FakeHandle(self.time + delay, callback)
        self.handles.append(handle)
        return handle

    @property
    def pending(self) -> list[FakeHandle]:
        return [h for h in self.handles if not h.cancelled and h.when > self.time]

    def advance(self, seconds: float) -> None:
        target = self.time + seconds
        while True:
            due = [h for h in self.handles if not h.cancelled and h.when <= target]
            if not due:
                break
            handle = min(due, key=lambda h: h.when)
            self.handles.remove(handle)
            self.time = handle.when
            handle.callback()
        self.time = target


class FakeRenderer:
    """Records what would be played; completion is triggered by the test."""

    def __init__(self):
        self.rendered: list[np.ndarray] = []
        self.active: list[Callable[[], None]] = []
        self.stops = 0
        self.complete_immediately = False

    def render(self, chunk: np.ndarray, on_done: Callable[[], None]) -> None:
        self.rendered.append(chunk)
        if self.complete_immediately:
            on_done()
        else:
            self.active.append(on_done)

    def finish(self) -> None:
        """Complete the oldest chunk still playing."""
        self.active.pop(0)()

    def stop(self) -> None:
        self.stops += 1


class FakeConnection:
    """A live session driven by the test through an event queue."""

    _CLOSE = object()

    def __init__(self):
        self._events: asyncio.Queue = asyncio.Queue()
        self.sent_audio: list = []
        self.sent_responses: list[list] = []
        self.closed = False
        self.fail_send: Optional[Exception] = None

    def push(self, event: ServerEvent) -> None:
        self._events.put_nowait(event)

    def remote_close(self) -> None:
        self._events.put_nowait(self._CLOSE)

    def remote_error(self, error: Exception) -> None:
        self._events.put_nowait(error)

    async def events(self):
        while True:
            item = await self._events.get()
            if item is self._CLOSE:
                return
            if isinstance(item, Exception):
                raise item
            yield item

    async def send_audio(self, frame) -> None:
        if self.fail_send is not None:
            raise self.fail_send
        self.sent_audio.append(frame)

    async def send_tool_responses(self, responses) -> None:
        self.sent_responses.append(list(responses))

    async def close(self) -> None:
        self.closed = True


class FakeTransport:
    """Hands out FakeConnections, or fails, or waits for a gate."""

    def __init__(self, error: Optional[Exception] = None):
        self.error = error
        self.gate: Optional[asyncio.Event] = None
        self.connections: list[FakeConnection] = []
        self.requests: list[tuple] = []
        # Queued on every new connection as soon as it opens
        self.script: list[ServerEvent] = []

    async def connect(self, tools, system_prompt):
        self.requests.append((tools, system_prompt))
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        connection = FakeConnection()
        for event in self.script:
            connection.push(event)
        self.connections.append(connection)
        return connection

    @property
    def last(self) -> FakeConnection:
        return self.connections[-1]


class FakeStream:
    """Stands in for sounddevice.InputStream."""

    def __init__(self, constraints: CaptureConstraints, callback, samplerate: float = 16000):
        self.constraints = constraints
        self.callback = callback
        self.samplerate = constraints.sample_rate or samplerate
        self.started = False
        self.stopped = False
        self.closed = False

    def start(self) -> None:
        self.started = True

    def stop(self) -> None:
        self.stopped = True

    def close(self) -> None:
        self.closed = True

    def emit(self, block: np.ndarray) -> None:
        self.callback(block.reshape(-1, 1), len(block), None, None)


class StreamFactory:
    """Records open attempts and fails them on request."""

    def __init__(self, failures: Optional[list[Exception]] = None, device_rate: int = 16000):
        self.failures = list(failures or [])
        self.device_rate = device_rate
        self.attempts: list[CaptureConstraints] = []
        self.streams: list[FakeStream] = []

    def __call__(self, constraints: CaptureConstraints, callback) -> FakeStream:
        self.attempts.append(constraints)
        if self.failures:
            raise self.failures.pop(0)
        stream = FakeStream(constraints, callback, samplerate=self.device_rate)
        self.streams.append(stream)
        return stream


async def settle(rounds: int = 5) -> None:
    """Let scheduled callbacks and tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> MemoryExpenseStore:
    return MemoryExpenseStore()


@pytest.fixture
def ledger(store, clock) -> ExpenseLedger:
    ledger = ExpenseLedger(store, clock=clock)
    ledger.load()
    return ledger


@pytest.fixture
def executor(ledger) -> ToolCallExecutor:
    return ToolCallExecutor(ledger)


@pytest.fixture
def renderer() -> FakeRenderer:
    return FakeRenderer()


@pytest.fixture
def playback(renderer) -> PlaybackQueue:
    return PlaybackQueue(renderer)
