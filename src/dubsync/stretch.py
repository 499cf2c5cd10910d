"""
Pitch-preserving duration fitting with SOLA (Synchronized Overlap-Add).

Audio is cut into short grains. Each new grain is taken from the input at a
position advanced by ``ratio`` times the output step, then nudged within a
small seek range to the offset whose head best correlates with the tail of
what has already been written. The two are crossfaded over the overlap
region, which keeps the splice in phase and avoids clicks and comb
filtering. Pitch is untouched because samples are never resampled, only
rearranged.
"""

import logging
from dataclasses import dataclass

import numpy as np
from numpy.lib.stride_tricks import sliding_window_view

from .models import AudioBuffer, FitResult, FittedSegment

logger = logging.getLogger("dubsync")


@dataclass(frozen=True)
class SolaConfig:
    """Grain geometry (milliseconds) and the near-match tolerance (seconds)."""

    sequence_ms: float = 20.0
    overlap_ms: float = 8.0
    seek_ms: float = 10.0
    tolerance_secs: float = 0.05


def _grain_sizes(sample_rate: int, cfg: SolaConfig) -> tuple[int, int, int]:
    seq = max(2, int(sample_rate * cfg.sequence_ms / 1000.0))
    overlap = min(seq - 1, max(1, int(sample_rate * cfg.overlap_ms / 1000.0)))
    seek = max(1, int(sample_rate * cfg.seek_ms / 1000.0))
    return seq, overlap, seek


def _sola_channel(x: np.ndarray, ratio: float, seq: int, overlap: int, seek: int) -> np.ndarray:
    n = len(x)
    out_len = int(n / ratio)

    if n < seq:
        out = np.zeros(out_len, dtype=np.float32)
        m = min(n, out_len)
        out[:m] = x[:m]
        return out

    out = np.zeros(out_len + seq, dtype=np.float32)
    out[:seq] = x[:seq]

    step_out = seq - overlap
    fade_in = (np.arange(overlap, dtype=np.float32) / overlap).astype(np.float32)
    fade_out = 1.0 - fade_in
    half_seek = seek // 2

    out_pos = step_out
    grain = 1
    while out_pos < out_len:
        # nominal input position for this grain; anchored to the ideal rate so
        # alignment offsets do not accumulate into duration drift
        nominal = int(round(grain * step_out * ratio))
        # past the end of the input the window pins to the last full grain so
        # the output is filled to its length instead of ending in silence
        hi = min(nominal - half_seek + seek - 1, n - seq)
        lo = max(0, min(nominal - half_seek, hi))

        tail = out[out_pos : out_pos + overlap]
        candidates = sliding_window_view(x[lo : hi + overlap], overlap)
        best = lo + int(np.argmax(candidates @ tail))

        out[out_pos : out_pos + overlap] = tail * fade_out + x[best : best + overlap] * fade_in
        out[out_pos + overlap : out_pos + seq] = x[best + overlap : best + seq]

        out_pos += step_out
        grain += 1

    return out[:out_len]


def time_stretch(buffer: AudioBuffer, ratio: float, config: SolaConfig | None = None) -> AudioBuffer:
    """Change duration by 1/ratio without changing pitch (ratio > 1 speeds up)."""
    if ratio <= 0:
        msg = f"Stretch ratio must be positive, got {ratio}"
        raise ValueError(msg)
    cfg = config or SolaConfig()
    seq, overlap, seek = _grain_sizes(buffer.sample_rate, cfg)
    src = buffer.samples.astype(np.float32, copy=False)
    channels = [_sola_channel(src[ch], ratio, seq, overlap, seek) for ch in range(buffer.channel_count)]
    return AudioBuffer(samples=np.vstack(channels), sample_rate=buffer.sample_rate)


def fit_duration(
    buffer: AudioBuffer, target_seconds: float, config: SolaConfig | None = None
) -> FitResult:
    """
    Fit a rendered buffer into a target duration.
    Within tolerance the input is returned unchanged with ratio 1.0.
    """
    if target_seconds <= 0:
        msg = f"Target duration must be positive, got {target_seconds}"
        raise ValueError(msg)
    if buffer.frame_count == 0:
        msg = "Cannot fit an empty audio buffer"
        raise ValueError(msg)

    cfg = config or SolaConfig()
    if abs(buffer.duration - target_seconds) < cfg.tolerance_secs:
        return FitResult(buffer=buffer, ratio=1.0)

    ratio = buffer.duration / target_seconds
    logger.debug(f"SOLA fit {buffer.duration:.3f}s -> {target_seconds:.3f}s (ratio {ratio:.3f})")
    return FitResult(buffer=time_stretch(buffer, ratio, cfg), ratio=ratio)


def clamp_samples(buffer: AudioBuffer) -> AudioBuffer:
    """Clip samples into [-1.0, 1.0] ahead of integer PCM encoding."""
    return AudioBuffer(samples=np.clip(buffer.samples, -1.0, 1.0), sample_rate=buffer.sample_rate)


def target_duration_for_speed(segment: FittedSegment, speed: float) -> float:
    """Window length that plays the segment's natural take at ``speed``x."""
    if speed <= 0:
        msg = f"Speed factor must be positive, got {speed}"
        raise ValueError(msg)
    natural = segment.buffer.duration * (segment.stretch_ratio or 1.0)
    return natural / speed
