"""
Audio conversion and file I/O via pydub.
"""

import io
import logging
from pathlib import Path

import numpy as np
from pydub import AudioSegment

from .cache import encode_buffer
from .models import AudioBuffer

logger = logging.getLogger("dubsync")


def ensure_dir(path: str) -> None:
    """Ensure directory exists."""
    if path:
        Path(path).mkdir(parents=True, exist_ok=True)


def segment_to_buffer(seg: AudioSegment) -> AudioBuffer:
    """Convert a pydub AudioSegment to float samples."""
    ints = np.array(seg.get_array_of_samples())
    full_scale = float(1 << (8 * seg.sample_width - 1))
    samples = ints.reshape(-1, seg.channels).T.astype(np.float32) / full_scale
    return AudioBuffer(samples=samples, sample_rate=seg.frame_rate)


def buffer_to_segment(buffer: AudioBuffer) -> AudioSegment:
    """Encode float samples as 16-bit PCM (clamped) in an AudioSegment."""
    return AudioSegment(
        data=encode_buffer(buffer),
        sample_width=2,
        frame_rate=buffer.sample_rate,
        channels=buffer.channel_count,
    )


def decode_audio_bytes(data: bytes, fmt: str | None = None) -> AudioBuffer:
    """Decode encoded audio (wav, mp3, ...) returned by a TTS backend."""
    seg = AudioSegment.from_file(io.BytesIO(data), format=fmt)
    return segment_to_buffer(seg)


def load_audio(path: str) -> AudioBuffer:
    """Load any file ffmpeg/pydub can read."""
    return segment_to_buffer(AudioSegment.from_file(path))


def silent_buffer(duration: float, sample_rate: int, channels: int = 1) -> AudioBuffer:
    n = max(0, int(round(duration * sample_rate)))
    return AudioBuffer(samples=np.zeros((channels, n), dtype=np.float32), sample_rate=sample_rate)


def export_wav(buffer: AudioBuffer, path: str) -> None:
    """Write a 16-bit PCM WAV file."""
    ensure_dir(str(Path(path).parent))
    buffer_to_segment(buffer).export(path, format="wav")
    logger.debug(f"Exported {buffer.duration:.3f}s of audio -> {path}")

