"""
Playback Queue

Synthesized replies arrive as many small PCM chunks. They must play one
after another, in arrival order, never overlapping, and an interruption
from the assistant must silence everything immediately.

DESIGN DECISION: One boolean (_playing) guards the renderer. Every
completion carries the generation it was started in; interrupt() bumps the
generation, so a completion that arrives after an interruption is ignored
instead of starting the next (already discarded) chunk.
"""

import asyncio
from collections import deque
from functools import partial
from typing import Callable, Optional, Protocol

import numpy as np
import structlog


log = structlog.get_logger(__name__)


class AudioRenderer(Protocol):
    """Plays one chunk and reports completion through on_done."""

    def render(self, chunk: np.ndarray, on_done: Callable[[], None]) -> None: ...

    def stop(self) -> None: ...


class PlaybackQueue:
    """FIFO of decoded PCM chunks played one at a time."""

    def __init__(self, renderer: AudioRenderer):
        self._renderer = renderer
        self._queue: deque[np.ndarray] = deque()
        self._playing = False
        self._draining = False
        self._generation = 0

    @property
    def is_playing(self) -> bool:
        return self._playing

    @property
    def is_idle(self) -> bool:
        return not self._playing and not self._queue

    def __len__(self) -> int:
        return len(self._queue)

    def enqueue(self, chunk: np.ndarray) -> None:
        self._queue.append(chunk)
        self._drain()

    def interrupt(self) -> None:
        """Drop everything queued and stop the chunk being played."""
        dropped = len(self._queue)
        self._queue.clear()
        was_playing = self._playing
        self._playing = False
        self._generation += 1
        if was_playing:
            self._renderer.stop()
        log.debug("playback_interrupted", dropped=dropped, was_playing=was_playing)

    def _drain(self) -> None:
        # A renderer may complete synchronously; the outer loop picks up the rest
        if self._draining:
            return
        self._draining = True
        try:
            while not self._playing and self._queue:
                chunk = self._queue.popleft()
                self._playing = True
                self._renderer.render(chunk, partial(self._on_done, self._generation))
        finally:
            self._draining = False

    def _on_done(self, generation: int) -> None:
        if generation != self._generation:
            return
        self._playing = False
        self._drain()


class SoundDeviceRenderer:
    """
    Plays mono 16-bit PCM through the default output device.

    sd.play/sd.wait block, so each chunk plays on the default executor and
    completion is reported back on the event loop.
    """

    def __init__(self, sample_rate: int = 24000, device: Optional[str] = None):
        self.sample_rate = sample_rate
        self._device = device

    def _play_blocking(self, chunk: np.ndarray) -> None:
        import sounddevice as sd

        sd.play(chunk, samplerate=self.sample_rate, device=self._device)
        sd.wait()

    def render(self, chunk: np.ndarray, on_done: Callable[[], None]) -> None:
        loop = asyncio.get_running_loop()
        future = loop.run_in_executor(None, self._play_blocking, chunk)

        def _finished(fut: "asyncio.Future[None]") -> None:
            if not fut.cancelled() and fut.exception() is not None:
                log.warning("playback_failed", error=str(fut.exception()))
            on_done()

        future.add_done_callback(_finished)

    def stop(self) -> None:
        try:
            import sounddevice as sd
        except (ImportError, OSError):
            return
        sd.stop()
