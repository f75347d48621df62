"""
Microphone capture through PortAudio (sounddevice).

The input stream runs its callback on a PortAudio thread; each block is
copied and handed to the event loop with call_soon_threadsafe, so every
consumer (silence detection, encoding, sending) runs on the loop thread in
capture order.

DESIGN DECISION: Opening is tried twice. The preferred constraints ask for
16 kHz mono at low latency on the configured device. If PortAudio rejects
them, minimal constraints open the default device at its native rate and
blocks are resampled to 16 kHz in software.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol

import numpy as np
import structlog

from vozfinancas.audio.codec import resample


log = structlog.get_logger(__name__)

_DENIAL_MARKERS = ("permission", "denied", "not authorized", "not permitted")


class CaptureError(Exception):
    """Base exception for microphone errors."""
    pass


class PermissionDeniedError(CaptureError):
    """The operating system refused access to the microphone."""
    pass


class DeviceUnavailableError(CaptureError):
    """No capture API or no usable input device."""
    pass


@dataclass(frozen=True)
class CaptureConstraints:
    """How to open the input stream. None means 'device default'."""

    sample_rate: Optional[int]
    block_size: int
    latency: Optional[str] = None
    device: Optional[Any] = None


class InputStream(Protocol):
    samplerate: float

    def start(self) -> None: ...

    def stop(self) -> None: ...

    def close(self) -> None: ...


BlockCallback = Callable[[Any, int, Any, Any], None]
StreamFactory = Callable[[CaptureConstraints, BlockCallback], InputStream]


def sounddevice_stream(constraints: CaptureConstraints, callback: BlockCallback) -> InputStream:
    """Open a mono float32 sounddevice.InputStream."""
    try:
        import sounddevice as sd
    except (ImportError, OSError) as e:
        # OSError: the PortAudio library itself is missing
        raise DeviceUnavailableError(f"Audio capture is not available: {e}") from e

    try:
        sample_rate = constraints.sample_rate
        if sample_rate is None:
            info = sd.query_devices(constraints.device, "input")
            sample_rate = int(info["default_samplerate"])
        return sd.InputStream(
            samplerate=sample_rate,
            blocksize=constraints.block_size,
            channels=1,
            dtype="float32",
            latency=constraints.latency,
            device=constraints.device,
            callback=callback,
        )
    except (sd.PortAudioError, ValueError) as e:
        raise classify_error(e) from e


def classify_error(error: BaseException) -> CaptureError:
    """Map a backend failure onto PermissionDenied or a generic CaptureError."""
    if isinstance(error, CaptureError):
        return error
    message = str(error)
    if isinstance(error, PermissionError) or any(
        marker in message.lower() for marker in _DENIAL_MARKERS
    ):
        return PermissionDeniedError(message)
    return CaptureError(message)


def _parse_device(device: Optional[str]) -> Optional[Any]:
    if device is None or device == "":
        return None
    return int(device) if device.isdigit() else device


class MicrophoneCapture:
    """
    One microphone stream delivering float blocks to the event loop.

    Usage:
        capture = MicrophoneCapture()
        await capture.acquire()
        capture.start(on_block)
        ...
        capture.close()
    """

    def __init__(
        self,
        sample_rate: int = 16000,
        block_size: int = 4096,
        device: Optional[str] = None,
        stream_factory: StreamFactory = sounddevice_stream,
    ):
        self.sample_rate = sample_rate
        self.block_size = block_size
        self._device = _parse_device(device)
        self._factory = stream_factory
        self._stream: Optional[InputStream] = None
        self._stream_rate: Optional[int] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._on_block: Optional[Callable[[np.ndarray], None]] = None
        self._closed = False
        self.used_fallback = False

    @property
    def preferred(self) -> CaptureConstraints:
        return CaptureConstraints(
            sample_rate=self.sample_rate,
            block_size=self.block_size,
            latency="low",
            device=self._device,
        )

    def fallback(self) -> CaptureConstraints:
        return CaptureConstraints(sample_rate=None, block_size=self.block_size)

    @property
    def is_open(self) -> bool:
        return self._stream is not None and not self._closed

    def _open(self) -> InputStream:
        try:
            stream = self._factory(self.preferred, self._callback)
            self.used_fallback = False
        except DeviceUnavailableError:
            raise
        except Exception as preferred_error:
            log.info("capture_preferred_rejected", error=str(preferred_error))
            try:
                stream = self._factory(self.fallback(), self._callback)
                self.used_fallback = True
            except Exception as fallback_error:
                error = classify_error(fallback_error)
                if not isinstance(error, PermissionDeniedError):
                    error = DeviceUnavailableError(
                        f"No usable input device: {preferred_error}; {fallback_error}"
                    )
                raise error from fallback_error
        return stream

    async def acquire(self) -> None:
        """
        Open the input stream (preferred constraints, then minimal ones).

        Raises:
            PermissionDeniedError: Access was refused
            DeviceUnavailableError: No capture API, or both attempts failed
        """
        if self._stream is not None:
            return
        self._loop = asyncio.get_running_loop()
        self._closed = False
        stream = await asyncio.to_thread(self._open)
        self._stream = stream
        self._stream_rate = int(getattr(stream, "samplerate", self.sample_rate) or self.sample_rate)
        log.info(
            "microphone_acquired",
            sample_rate=self._stream_rate,
            fallback=self.used_fallback,
        )

    def start(self, on_block: Callable[[np.ndarray], None]) -> None:
        """Start delivering blocks to on_block on the event loop thread."""
        if self._stream is None:
            raise CaptureError("Microphone not acquired")
        self._on_block = on_block
        try:
            self._stream.start()
        except Exception as e:
            raise classify_error(e) from e

    def _callback(self, indata, frames, time_info, status) -> None:
        # PortAudio thread: copy and hand over, nothing else
        if status:
            log.debug("capture_status", status=str(status))
        loop = self._loop
        if loop is None or self._closed:
            return
        block = np.array(indata, dtype=np.float32).reshape(len(indata), -1)[:, 0]
        try:
            loop.call_soon_threadsafe(self._deliver, block)
        except RuntimeError:
            # Loop already closed during shutdown
            pass

    def _deliver(self, block: np.ndarray) -> None:
        if self._closed or self._on_block is None:
            return
        if self._stream_rate and self._stream_rate != self.sample_rate:
            block = resample(block, self._stream_rate, self.sample_rate)
        self._on_block(block)

    def close(self) -> None:
        """Stop and release the stream. Safe to call repeatedly."""
        self._closed = True
        self._on_block = None
        stream, self._stream = self._stream, None
        if stream is None:
            return
        for step in (stream.stop, stream.close):
            try:
                step()
            except Exception as e:
                log.warning("capture_release_failed", step=step.__name__, error=str(e))
        log.info("microphone_released")

    async def probe_permission(self) -> Optional[CaptureError]:
        """
        Briefly open and release the default device.

        Returns None when capture works, otherwise the classified error.
        """
        def _probe() -> None:
            stream = self._factory(self.fallback(), lambda *args: None)
            stream.close()

        try:
            await asyncio.to_thread(_probe)
        except Exception as e:
            error = classify_error(e)
            log.info("microphone_probe_failed", kind=type(error).__name__)
            return error
        return None
