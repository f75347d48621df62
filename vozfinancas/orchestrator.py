"""
Main Orchestrator for VozFinanças

This module ties together all the components and defines the
end-to-end recording flow:
    gesture -> microphone -> live session -> (audio | text | tool calls)
    silence / stop / remote close / error -> teardown

DESIGN DECISION: A RecordingSession owns four slots:
1. the microphone stream
2. the block-processing callback (analyser + encoder)
3. the silence timer
4. the live session

Teardown releases each slot independently, so a failure halfway through
start() (microphone granted, session refused) still leaves nothing behind,
and calling stop() from several places (silence timer, remote close, the
user) is harmless: the first caller wins and its status stays visible.
"""

import asyncio
import threading
from dataclasses import dataclass
from typing import Callable, Optional

import numpy as np
import structlog

from vozfinancas.audio.capture import (
    CaptureError,
    DeviceUnavailableError,
    MicrophoneCapture,
    PermissionDeniedError,
)
from vozfinancas.audio.codec import encode_frame
from vozfinancas.audio.playback import PlaybackQueue, SoundDeviceRenderer
from vozfinancas.audio.silence import SilenceDetector, SpectrumAnalyser
from vozfinancas.audit import AuditLogger, create_correlation_id
from vozfinancas.auth import PasswordGate
from vozfinancas.config import get_settings
from vozfinancas.ledger import ExpenseLedger
from vozfinancas.models.audit import AuditEventBuilder
from vozfinancas.models.expense import ToolDeclaration
from vozfinancas.models.status import AppStatus
from vozfinancas.services.storage import (
    InMemoryKeyValueStore,
    JsonFileKeyValueStore,
    KeyValueStoreInterface,
    LocalExpenseStore,
    StorageError,
)
from vozfinancas.services.sync import RemoteSyncClient
from vozfinancas.session.bridge import (
    LiveSessionBridge,
    LiveTransport,
    SessionError,
    SessionListener,
)
from vozfinancas.tools import SYSTEM_PROMPT, TOOL_DECLARATIONS, ToolCallExecutor


log = structlog.get_logger(__name__)


def status_for_error(error: Exception) -> AppStatus:
    """Map a failure onto the status line shown to the user."""
    if isinstance(error, PermissionDeniedError):
        return AppStatus.PERMISSION_DENIED
    if isinstance(error, DeviceUnavailableError):
        return AppStatus.DEVICE_UNAVAILABLE
    if isinstance(error, CaptureError):
        return AppStatus.MICROPHONE_ERROR
    return AppStatus.CONNECTION_ERROR


class RecordingSession(SessionListener):
    """
    One press of the record button, from microphone request to teardown.

    Flow:
    1. Request microphone -> status "Solicitando microfone..."
    2. Open live session  -> status "Conectando ao assistente..."
    3. Stream blocks      -> status "Ouvindo..."
    4. Stop (user, silence, remote close or error) -> idle or error status
    """

    def __init__(
        self,
        capture: MicrophoneCapture,
        transport: LiveTransport,
        executor: ToolCallExecutor,
        playback: PlaybackQueue,
        tools: Optional[list[ToolDeclaration]] = None,
        system_prompt: str = SYSTEM_PROMPT,
        silence_threshold: float = 15.0,
        silence_timeout: float = 3.0,
        fft_size: int = 256,
        smoothing: float = 0.8,
        on_status: Optional[Callable[[AppStatus], None]] = None,
        on_text: Optional[Callable[[str], None]] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._capture = capture
        self._playback = playback
        self._audit = audit_logger or AuditLogger()
        self._bridge = LiveSessionBridge(
            transport=transport,
            executor=executor,
            playback=playback,
            listener=self,
            audit_logger=self._audit,
        )
        self._tools = TOOL_DECLARATIONS if tools is None else tools
        self._system_prompt = system_prompt
        self._silence_threshold = silence_threshold
        self._silence_timeout = silence_timeout
        self._fft_size = fft_size
        self._smoothing = smoothing
        self._on_status = on_status
        self._on_text = on_text

        self._active = False
        self._analyser: Optional[SpectrumAnalyser] = None
        self._silence: Optional[SilenceDetector] = None
        self._closed: Optional[asyncio.Event] = None
        self._pending_stops: set[asyncio.Task] = set()

        self.status = AppStatus.IDLE
        self.last_response: Optional[str] = None

    @property
    def is_recording(self) -> bool:
        return self._active

    @property
    def bridge(self) -> LiveSessionBridge:
        return self._bridge

    def _set_status(self, status: AppStatus) -> None:
        self.status = status
        log.info("status_changed", status=status.name)
        if self._on_status:
            self._on_status(status)

    async def start(self) -> None:
        """Start recording. Failures end in an error status, never an exception."""
        if self._active:
            return
        self._active = True
        self._closed = asyncio.Event()

        self._set_status(AppStatus.REQUESTING_MICROPHONE)
        try:
            await self._capture.acquire()
        except CaptureError as e:
            self._audit.log(
                AuditEventBuilder.microphone_failed(
                    denied=isinstance(e, PermissionDeniedError),
                    error_message=str(e),
                )
            )
            await self.stop(status_for_error(e))
            return
        if not self._active:
            # stop() ran while the device was opening
            self._capture.close()
            return

        self._set_status(AppStatus.CONNECTING)
        try:
            connection = await self._bridge.open(self._tools, self._system_prompt)
        except SessionError as e:
            log.warning("session_open_failed", error=str(e))
            await self.stop(AppStatus.CONNECTION_ERROR)
            return
        if connection is None or not self._active:
            await self.stop()
            return

        loop = asyncio.get_running_loop()
        self._analyser = SpectrumAnalyser(self._fft_size, self._smoothing)
        self._silence = SilenceDetector(
            on_silence=self._on_silence,
            scheduler=loop,
            threshold=self._silence_threshold,
            timeout=self._silence_timeout,
        )
        try:
            self._capture.start(self._on_block)
        except CaptureError as e:
            await self.stop(status_for_error(e))
            return

        self._set_status(AppStatus.LISTENING)

    async def stop(self, status: AppStatus = AppStatus.IDLE) -> None:
        """Release every slot and show status. Safe to call repeatedly."""
        if not self._active:
            return
        self._active = False

        silence, self._silence = self._silence, None
        if silence is not None:
            silence.cancel()

        self._analyser = None

        try:
            self._capture.close()
        except Exception as e:
            log.warning("teardown_capture_failed", error=str(e))

        try:
            await self._bridge.close()
        except Exception as e:
            log.warning("teardown_session_failed", error=str(e))

        self._set_status(status)
        if self._closed is not None:
            self._closed.set()

    async def toggle(self) -> None:
        if self._active:
            await self.stop()
        else:
            await self.start()

    def request_stop(self, status: AppStatus = AppStatus.IDLE) -> None:
        """Schedule stop() from a synchronous callback on the loop thread."""
        task = asyncio.get_running_loop().create_task(self.stop(status))
        self._pending_stops.add(task)
        task.add_done_callback(self._pending_stops.discard)

    async def run_until_closed(self) -> AppStatus:
        """Start, then wait until the session ends for any reason."""
        await self.start()
        if self._active and self._closed is not None:
            await self._closed.wait()
        return self.status

    def _on_block(self, block: np.ndarray) -> None:
        if not self._active or self._analyser is None:
            return
        level = self._analyser.level(block)
        if self._silence is not None:
            self._silence.observe(level)
        self._bridge.send_audio(encode_frame(block))

    def _on_silence(self) -> None:
        self._audit.log(AuditEventBuilder.silence_timeout(self._silence_timeout))
        self.request_stop()

    # SessionListener

    def on_text(self, text: str) -> None:
        self.last_response = text
        if self._on_text:
            self._on_text(text)

    def on_session_closed(self) -> None:
        self.request_stop()

    def on_session_error(self, error: Exception) -> None:
        log.error("session_error", error=str(error))
        self.request_stop(AppStatus.CONNECTION_ERROR)


class BackgroundRecorder:
    """
    A RecordingSession running on its own loop in a daemon thread.

    Used by the Streamlit app, whose script runs must finish while the
    recording goes on. Replications scheduled on the recorder's loop are
    drained before the loop is closed.
    """

    def __init__(
        self,
        session: RecordingSession,
        audit_logger: AuditLogger,
        replicator: Optional[RemoteSyncClient] = None,
    ):
        self.session = session
        self._audit = audit_logger
        self._replicator = replicator
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread = threading.Thread(target=self._run, name="recorder", daemon=True)

    def _run(self) -> None:
        self._loop = asyncio.new_event_loop()
        try:
            self._loop.run_until_complete(self.session.run_until_closed())
        except Exception as e:
            self._audit.log_error(type(e).__name__, str(e), {"where": "recorder"})
            self._loop.run_until_complete(self.session.stop(AppStatus.CONNECTION_ERROR))
        finally:
            try:
                if self._replicator is not None:
                    self._loop.run_until_complete(self._replicator.drain())
            finally:
                self._loop.close()

    def start(self) -> None:
        self._thread.start()

    def join(self, timeout: Optional[float] = None) -> None:
        self._thread.join(timeout)

    @property
    def alive(self) -> bool:
        return self._thread.is_alive()

    def stop(self) -> None:
        """Ask the session to stop, from any thread."""
        loop = self._loop
        if loop is not None and not loop.is_closed():
            loop.call_soon_threadsafe(self.session.request_stop)


@dataclass
class AppComponents:
    """Everything the UI and CLI need, built once per process."""

    kv: KeyValueStoreInterface
    ledger: ExpenseLedger
    executor: ToolCallExecutor
    gate: PasswordGate
    audit_logger: AuditLogger
    replicator: Optional[RemoteSyncClient] = None

    def microphone(self) -> MicrophoneCapture:
        audio = get_settings().audio
        return MicrophoneCapture(
            sample_rate=audio.input_sample_rate,
            block_size=audio.block_size,
            device=audio.input_device,
        )

    def recording_session(
        self,
        transport: Optional[LiveTransport] = None,
        capture: Optional[MicrophoneCapture] = None,
        playback: Optional[PlaybackQueue] = None,
        on_status: Optional[Callable[[AppStatus], None]] = None,
        on_text: Optional[Callable[[str], None]] = None,
    ) -> RecordingSession:
        """
        Build a RecordingSession wired to this ledger and executor.

        The session's own audit events share a fresh correlation id.
        """
        audio = get_settings().audio
        if transport is None:
            from vozfinancas.session.gemini import GeminiLiveTransport
            transport = GeminiLiveTransport()
        return RecordingSession(
            capture=capture or self.microphone(),
            transport=transport,
            executor=self.executor,
            playback=playback or PlaybackQueue(SoundDeviceRenderer(audio.output_sample_rate)),
            silence_threshold=audio.silence_threshold,
            silence_timeout=audio.silence_timeout_seconds,
            fft_size=audio.fft_size,
            smoothing=audio.smoothing,
            on_status=on_status,
            on_text=on_text,
            audit_logger=AuditLogger(correlation_id=create_correlation_id()),
        )


def create_app_components(
    use_storage: bool = True,
    kv: Optional[KeyValueStoreInterface] = None,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to persist to the local JSON file.
                    Set to False for testing without a data file.
        kv: Explicit key-value store (overrides use_storage).
    """
    settings = get_settings()
    storage_settings = settings.storage
    app_settings = settings.app
    audit_logger = AuditLogger()

    if kv is None:
        kv = (
            JsonFileKeyValueStore(storage_settings.local_path)
            if use_storage
            else InMemoryKeyValueStore()
        )

    ledger = ExpenseLedger(
        LocalExpenseStore(kv, storage_settings.expenses_key),
        tz=app_settings.tzinfo,
    )
    try:
        ledger.load()
    except StorageError as e:
        # Unreadable data file - continue in memory without overwriting it
        log.warning("local_store_unavailable", error=str(e))
        kv = InMemoryKeyValueStore()
        ledger = ExpenseLedger(
            LocalExpenseStore(kv, storage_settings.expenses_key),
            tz=app_settings.tzinfo,
        )
        ledger.load()

    replicator = None
    if settings.remote_sync.enabled:
        sync_settings = settings.remote_sync
        replicator = RemoteSyncClient(
            sync_settings.base_url,
            sync_settings.timeout_seconds,
            audit_logger=audit_logger,
        )

    executor = ToolCallExecutor(ledger, replicator=replicator, audit_logger=audit_logger)
    gate = PasswordGate(
        kv,
        key=storage_settings.password_key,
        min_length=app_settings.min_password_length,
        audit_logger=audit_logger,
    )

    return AppComponents(
        kv=kv,
        ledger=ledger,
        executor=executor,
        gate=gate,
        audit_logger=audit_logger,
        replicator=replicator,
    )
