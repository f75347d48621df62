"""
Voice-activity (silence) detection.

DESIGN DECISION: The energy measure reproduces a Web Audio AnalyserNode
(FFT size 256, Blackman window, 0.8 time smoothing, decibels mapped from
[-100, -30] onto 0..255) so that the 15-point threshold means the same
thing it did in the browser client. The level of a block is the average of
those byte-scaled bins.
"""

import math
from typing import Any, Callable, Optional, Protocol

import numpy as np
import structlog


log = structlog.get_logger(__name__)


class SpectrumAnalyser:
    """Byte-scaled frequency energy of the most recent samples."""

    def __init__(
        self,
        fft_size: int = 256,
        smoothing: float = 0.8,
        min_decibels: float = -100.0,
        max_decibels: float = -30.0,
    ):
        if fft_size < 32 or fft_size & (fft_size - 1):
            raise ValueError("fft_size must be a power of two >= 32")
        self.fft_size = fft_size
        self.smoothing = smoothing
        self.min_decibels = min_decibels
        self.max_decibels = max_decibels
        self._window = np.blackman(fft_size).astype(np.float64)
        self._buffer = np.zeros(fft_size, dtype=np.float64)
        self._smoothed = np.zeros(fft_size // 2, dtype=np.float64)

    @property
    def bin_count(self) -> int:
        return self.fft_size // 2

    def push(self, block: np.ndarray) -> None:
        """Append samples, keeping the last fft_size."""
        samples = np.asarray(block, dtype=np.float64).ravel()
        if len(samples) >= self.fft_size:
            self._buffer = samples[-self.fft_size:].copy()
        else:
            self._buffer = np.concatenate([self._buffer[len(samples):], samples])

    def byte_frequency_data(self) -> np.ndarray:
        """Current spectrum as bytes, updating the smoothing state."""
        spectrum = np.fft.rfft(self._buffer * self._window)[: self.bin_count]
        magnitude = np.abs(spectrum) / self.fft_size
        self._smoothed = (
            self.smoothing * self._smoothed + (1.0 - self.smoothing) * magnitude
        )
        with np.errstate(divide="ignore"):
            decibels = 20.0 * np.log10(self._smoothed)
        scale = 255.0 / (self.max_decibels - self.min_decibels)
        scaled = np.floor(scale * (decibels - self.min_decibels))
        scaled = np.nan_to_num(scaled, nan=0.0, neginf=0.0, posinf=255.0)
        return np.clip(scaled, 0, 255).astype(np.uint8)

    def level(self, block: np.ndarray) -> float:
        """Push block and return the average byte energy."""
        self.push(block)
        return float(np.mean(self.byte_frequency_data()))


class TimerHandle(Protocol):
    def cancel(self) -> Any: ...


class Scheduler(Protocol):
    """Anything with asyncio's call_later signature, such as the event loop."""

    def call_later(self, delay: float, callback: Callable[[], Any]) -> TimerHandle: ...


class SilenceDetector:
    """
    Fires on_silence once, after timeout seconds of continuous silence.

    Below the threshold a timer is armed if none is pending; at or above
    it the pending timer is dropped. After firing, or after cancel(), the
    detector ignores every further level.
    """

    def __init__(
        self,
        on_silence: Callable[[], None],
        scheduler: Scheduler,
        threshold: float = 15.0,
        timeout: float = 3.0,
    ):
        if math.isnan(threshold) or timeout <= 0:
            raise ValueError("threshold must be a number and timeout positive")
        self._on_silence = on_silence
        self._scheduler = scheduler
        self.threshold = threshold
        self.timeout = timeout
        self._timer: Optional[TimerHandle] = None
        self._fired = False
        self._cancelled = False

    @property
    def fired(self) -> bool:
        return self._fired

    @property
    def armed(self) -> bool:
        return self._timer is not None

    def observe(self, level: float) -> None:
        if self._fired or self._cancelled:
            return
        if level < self.threshold:
            if self._timer is None:
                self._timer = self._scheduler.call_later(self.timeout, self._expire)
        elif self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def cancel(self) -> None:
        """Stop watching. A pending timer never fires."""
        self._cancelled = True
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _expire(self) -> None:
        self._timer = None
        if self._fired or self._cancelled:
            return
        self._fired = True
        log.info("silence_timeout", timeout=self.timeout)
        self._on_silence()
