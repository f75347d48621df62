"""Audio package: capture, framing, silence detection and playback."""

from vozfinancas.audio.capture import (
    CaptureConstraints,
    CaptureError,
    DeviceUnavailableError,
    MicrophoneCapture,
    PermissionDeniedError,
)
from vozfinancas.audio.codec import AudioFrame, decode_chunk, encode_frame, float_to_pcm16
from vozfinancas.audio.playback import AudioRenderer, PlaybackQueue, SoundDeviceRenderer
from vozfinancas.audio.silence import SilenceDetector, SpectrumAnalyser

__all__ = [
    "AudioFrame",
    "AudioRenderer",
    "CaptureConstraints",
    "CaptureError",
    "DeviceUnavailableError",
    "MicrophoneCapture",
    "PermissionDeniedError",
    "PlaybackQueue",
    "SilenceDetector",
    "SoundDeviceRenderer",
    "SpectrumAnalyser",
    "decode_chunk",
    "encode_frame",
    "float_to_pcm16",
]
