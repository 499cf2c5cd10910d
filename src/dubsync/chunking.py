"""
Chunk planning: group consecutive same-speaker lines into dubbing chunks.
"""

import json
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from .models import DubbingChunk, ScriptLine

logger = logging.getLogger("dubsync")


@dataclass(frozen=True)
class ChunkPlannerConfig:
    """Merge policy for chunk planning."""

    max_gap_secs: float = 0.6
    max_span_secs: float = 15.0
    id_tag: str = "chunk_"


def _rolling_hash32(data: str) -> int:
    h = 0
    for ch in data:
        h = (h * 31 + ord(ch)) & 0xFFFFFFFF
    return h


def chunk_fingerprint(
    provider: str,
    speaker_name: str,
    spoken_text: str,
    start_time: float,
    end_time: float,
    tag: str = "chunk_",
) -> str:
    """Deterministic cache key for a chunk's generation inputs."""
    key = f"{provider}|{speaker_name}|{spoken_text}|{start_time:.3f}|{end_time:.3f}"
    return f"{tag}{_rolling_hash32(key):08x}"


def _finalize(lines: list[ScriptLine], provider: str, cfg: ChunkPlannerConfig) -> DubbingChunk:
    speaker = lines[0].speaker_name
    start = lines[0].start_time
    end = lines[-1].end_time
    text = " ".join(line.spoken_text for line in lines)
    return DubbingChunk(
        id=chunk_fingerprint(provider, speaker, text, start, end, cfg.id_tag),
        speaker_name=speaker,
        lines=tuple(lines),
        start_time=start,
        end_time=end,
    )


def plan_chunks(
    lines: Sequence[ScriptLine],
    provider: str,
    config: ChunkPlannerConfig | None = None,
) -> list[DubbingChunk]:
    """
    Fold lines left-to-right into chunks. A line joins the current chunk only if:
    - it has the same speaker,
    - the gap after the previous line is below max_gap_secs (overlaps count),
    - the chunk span including it stays below max_span_secs.
    A single line longer than max_span_secs still becomes its own chunk.
    """
    cfg = config or ChunkPlannerConfig()
    groups: list[list[ScriptLine]] = []
    cur: list[ScriptLine] = []

    for line in lines:
        if not cur:
            cur = [line]
            continue
        gap = line.start_time - cur[-1].end_time
        span = line.end_time - cur[0].start_time
        if (
            line.speaker_name == cur[0].speaker_name
            and gap < cfg.max_gap_secs
            and span < cfg.max_span_secs
        ):
            cur.append(line)
        else:
            groups.append(cur)
            cur = [line]

    if cur:
        groups.append(cur)

    chunks = [_finalize(g, provider, cfg) for g in groups]
    logger.debug(f"Planned {len(chunks)} chunk(s) from {len(lines)} line(s)")
    return chunks


def retime_chunk(
    chunk: DubbingChunk,
    start_time: float,
    end_time: float,
    provider: str,
    config: ChunkPlannerConfig | None = None,
) -> DubbingChunk:
    """Apply a user-edited window to a chunk. The id changes with the window."""
    if end_time <= start_time:
        msg = f"Chunk window must end after it starts ({start_time:.3f} -> {end_time:.3f})"
        raise ValueError(msg)
    cfg = config or ChunkPlannerConfig()
    return DubbingChunk(
        id=chunk_fingerprint(
            provider, chunk.speaker_name, chunk.spoken_text, start_time, end_time, cfg.id_tag
        ),
        speaker_name=chunk.speaker_name,
        lines=chunk.lines,
        start_time=start_time,
        end_time=end_time,
    )


def write_chunks_manifest(chunks: Sequence[DubbingChunk], path: str) -> None:
    """Write the chunk plan to a JSON file."""
    data = []
    for c in chunks:
        data.append(
            {
                "id": c.id,
                "speaker": c.speaker_name,
                "start": c.start_time,
                "end": c.end_time,
                "text": c.spoken_text,
                "lines": [
                    {"start": ln.start_time, "end": ln.end_time, "text": ln.spoken_text}
                    for ln in c.lines
                ],
            }
        )
    Path(path).write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
