"""
Timeline stitching: mix fitted chunks onto one buffer at absolute offsets.

Chunks are added into a silent buffer rather than concatenated, so every
chunk starts exactly at its planned time no matter how earlier chunks came
out, and overlapping windows keep both voices instead of dropping one.
"""

import logging
from collections.abc import Iterable, Mapping, Sequence

import numpy as np

from .models import AudioBuffer, DubbingChunk, FittedSegment, StitchResult, WordTiming
from .word_timing import offset_word_timings

logger = logging.getLogger("dubsync")


def stitch_placements(
    placements: Iterable[tuple[str, float]],
    cache: Mapping[str, FittedSegment],
) -> StitchResult | None:
    """
    Mix cached segments at (chunk_id, start_time) placements.
    Chunks without a cache entry are skipped. Returns None when none is present.
    """
    present: list[tuple[FittedSegment, float]] = []
    for chunk_id, start in placements:
        seg = cache.get(chunk_id)
        if seg is None:
            logger.debug(f"No cached audio for {chunk_id}, leaving a gap")
            continue
        present.append((seg, max(0.0, float(start))))

    if not present:
        return None

    sample_rate = present[0][0].buffer.sample_rate
    for seg, _ in present:
        if seg.buffer.sample_rate != sample_rate:
            msg = (
                f"Cannot stitch {seg.chunk_id}: sample rate {seg.buffer.sample_rate} "
                f"differs from timeline rate {sample_rate}"
            )
            raise ValueError(msg)

    channels = max(seg.buffer.channel_count for seg, _ in present)
    offsets = [int(round(start * sample_rate)) for _, start in present]
    total = max(off + seg.buffer.frame_count for (seg, _), off in zip(present, offsets, strict=True))

    mix = np.zeros((channels, total), dtype=np.float32)
    timings: list[WordTiming] = []
    for (seg, start), off in zip(present, offsets, strict=True):
        src = seg.buffer.samples
        n = src.shape[1]
        # mono chunks go to every channel
        mix[:, off : off + n] += src if src.shape[0] == channels else src[:1]
        timings.extend(offset_word_timings(seg.word_timings, start))

    np.clip(mix, -1.0, 1.0, out=mix)
    timings.sort(key=lambda t: t.start)
    return StitchResult(buffer=AudioBuffer(samples=mix, sample_rate=sample_rate), timings=timings)


def stitch(
    chunks: Sequence[DubbingChunk], cache: Mapping[str, FittedSegment]
) -> StitchResult | None:
    """Render every cached chunk at its planned start time."""
    result = stitch_placements(((c.id, c.start_time) for c in chunks), cache)
    if result is None:
        logger.info(f"No generated audio available for {len(chunks)} chunk(s)")
    else:
        logger.info(
            f"Stitched timeline: {result.buffer.duration:.3f}s, {len(result.timings)} word timing(s)"
        )
    return result
