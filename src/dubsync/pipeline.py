"""
Batch generation loop: synthesize, fit and cache chunks in script order.
"""

import logging
import threading
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field

from tqdm import tqdm

from .cache import GenerationCache
from .models import AudioBuffer, DubbingChunk, FittedSegment
from .stretch import SolaConfig, fit_duration
from .word_timing import estimate_word_timings

logger = logging.getLogger("dubsync")


@dataclass
class GenerationReport:
    """What a generation pass did, per chunk id."""

    generated: list[str] = field(default_factory=list)
    reused: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    cancelled: bool = False


def render_chunk(
    chunk: DubbingChunk,
    raw: AudioBuffer,
    *,
    strict_sync: bool = True,
    fit_config: SolaConfig | None = None,
) -> FittedSegment:
    """Fit a raw take to the chunk window and attach estimated word timings."""
    if strict_sync:
        fit = fit_duration(raw, chunk.duration, fit_config)
        buffer, ratio = fit.buffer, fit.ratio
    else:
        buffer, ratio = raw, 1.0
    return FittedSegment(
        chunk_id=chunk.id,
        buffer=buffer,
        word_timings=tuple(estimate_word_timings(chunk.spoken_text, buffer.duration)),
        stretch_ratio=ratio,
    )


def generate_chunks(
    chunks: Sequence[DubbingChunk],
    cache: GenerationCache,
    synth_func: Callable[[DubbingChunk], AudioBuffer],
    *,
    cancel_event: threading.Event | None = None,
    force_ids: Iterable[str] = (),
    strict_sync: bool = True,
    fit_config: SolaConfig | None = None,
    show_progress: bool = True,
) -> GenerationReport:
    """
    Walk chunks in order. Cached chunks are reused unless listed in force_ids.
    A failed synthesis leaves that chunk's cache entry as it was and the loop
    moves on. Cancellation is checked before each chunk only.
    """
    force = set(force_ids)
    report = GenerationReport()

    for chunk in tqdm(chunks, desc="TTS chunks", disable=not show_progress):
        if cancel_event is not None and cancel_event.is_set():
            logger.warning(f"Generation cancelled before {chunk.id}")
            report.cancelled = True
            break

        if chunk.id in cache and chunk.id not in force:
            report.reused.append(chunk.id)
            continue

        try:
            raw = synth_func(chunk)
        except Exception as e:
            logger.error(f"TTS failed for chunk {chunk.id} ({chunk.speaker_name}): {e}")
            report.failed.append(chunk.id)
            continue

        if raw.frame_count == 0:
            logger.error(f"TTS returned no audio for chunk {chunk.id}")
            report.failed.append(chunk.id)
            continue

        segment = render_chunk(chunk, raw, strict_sync=strict_sync, fit_config=fit_config)
        cache.store(segment, overwrite=chunk.id in force)
        report.generated.append(chunk.id)
        logger.debug(
            f"Chunk {chunk.id}: {raw.duration:.3f}s -> {segment.buffer.duration:.3f}s "
            f"(ratio {segment.stretch_ratio:.2f})"
        )

    if report.failed:
        logger.warning(
            f"Generation finished with {len(report.failed)} failed chunk(s): {report.failed}"
        )
    return report
