"""
PCM framing for the live session.

Capture produces float blocks in [-1, 1]; the assistant wants 16-bit signed
little-endian PCM at 16 kHz, base64-encoded. Replies come back as 16-bit
PCM at 24 kHz.
"""

import base64
from dataclasses import dataclass
from typing import Union

import numpy as np


INPUT_MIME_TYPE = "audio/pcm;rate=16000"
PCM16_MAX = 32767


def float_to_pcm16(block: np.ndarray) -> np.ndarray:
    """Clamp to [-1, 1] and scale by 32767, truncating toward zero."""
    samples = np.clip(np.asarray(block, dtype=np.float32), -1.0, 1.0)
    return (samples * PCM16_MAX).astype("<i2")


def pcm16_to_float(pcm: np.ndarray) -> np.ndarray:
    return np.asarray(pcm, dtype=np.float32) / 32768.0


def resample(block: np.ndarray, src_rate: int, dst_rate: int) -> np.ndarray:
    """Linear-interpolation resampling, used when the device can't run at 16 kHz."""
    if src_rate == dst_rate or len(block) == 0:
        return np.asarray(block, dtype=np.float32)
    n_out = max(1, int(round(len(block) * dst_rate / src_rate)))
    src_t = np.arange(len(block), dtype=np.float64) / src_rate
    dst_t = np.arange(n_out, dtype=np.float64) / dst_rate
    return np.interp(dst_t, src_t, block).astype(np.float32)


@dataclass(frozen=True)
class AudioFrame:
    """One encoded capture block, ready to send."""

    data: str
    mime_type: str = INPUT_MIME_TYPE

    def pcm_bytes(self) -> bytes:
        return base64.b64decode(self.data)


def encode_frame(block: np.ndarray, mime_type: str = INPUT_MIME_TYPE) -> AudioFrame:
    """Convert a float block into a base64 PCM16 frame."""
    pcm = float_to_pcm16(block)
    return AudioFrame(
        data=base64.b64encode(pcm.tobytes()).decode("ascii"),
        mime_type=mime_type,
    )


def decode_chunk(data: Union[bytes, str]) -> np.ndarray:
    """
    Decode a reply chunk into int16 samples.

    Accepts raw PCM bytes or their base64 text. An odd trailing byte is
    dropped.
    """
    if isinstance(data, str):
        data = base64.b64decode(data)
    usable = len(data) - (len(data) % 2)
    return np.frombuffer(data[:usable], dtype="<i2").copy()
