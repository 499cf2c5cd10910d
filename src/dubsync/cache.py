"""
Generation cache: chunk fingerprint -> fitted segment, with JSON persistence.
"""

import base64
import json
import logging
from collections.abc import Iterable, Iterator, Mapping
from pathlib import Path

import numpy as np

from .models import AudioBuffer, DubbingChunk, FittedSegment, WordTiming

logger = logging.getLogger("dubsync")

CACHE_FORMAT_VERSION = 1


class GenerationCache(Mapping[str, FittedSegment]):
    """
    Entries are written whole and never edited in place. Storing over an
    existing key needs ``overwrite=True`` (forced regeneration).
    """

    def __init__(self, entries: Iterable[FittedSegment] = ()) -> None:
        self._entries: dict[str, FittedSegment] = {}
        for seg in entries:
            self.store(seg)

    def __getitem__(self, chunk_id: str) -> FittedSegment:
        return self._entries[chunk_id]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def store(self, segment: FittedSegment, *, overwrite: bool = False) -> None:
        if segment.chunk_id in self._entries and not overwrite:
            raise KeyError(f"Cache already holds {segment.chunk_id}; pass overwrite=True")
        self._entries[segment.chunk_id] = segment

    def invalidate(self, chunk_id: str) -> bool:
        """Drop one entry. Returns whether it existed."""
        return self._entries.pop(chunk_id, None) is not None

    def prune(self, keep_ids: Iterable[str]) -> int:
        """Drop entries not in ``keep_ids`` (e.g. chunks gone after a script edit)."""
        keep = set(keep_ids)
        stale = [k for k in self._entries if k not in keep]
        for k in stale:
            del self._entries[k]
        if stale:
            logger.debug(f"Pruned {len(stale)} stale cache entr(ies)")
        return len(stale)

    def missing(self, chunks: Iterable[DubbingChunk]) -> list[str]:
        return [c.id for c in chunks if c.id not in self._entries]


def encode_buffer(buffer: AudioBuffer) -> bytes:
    """Interleaved little-endian 16-bit PCM, clamped to [-1, 1]."""
    clipped = np.clip(buffer.samples, -1.0, 1.0)
    pcm = np.where(clipped < 0, clipped * 32768.0, clipped * 32767.0)
    return pcm.T.round().astype("<i2").tobytes()


def decode_buffer(blob: bytes, sample_rate: int, channels: int = 1) -> AudioBuffer:
    if channels < 1 or len(blob) % (2 * channels):
        msg = f"PCM blob of {len(blob)} bytes does not hold whole {channels}-channel frames"
        raise ValueError(msg)
    pcm = np.frombuffer(blob, dtype="<i2").reshape(-1, channels).T
    samples = pcm.astype(np.float32) / 32768.0
    return AudioBuffer(samples=samples, sample_rate=sample_rate)


def serialize_entry(segment: FittedSegment) -> dict:
    return {
        "chunk_id": segment.chunk_id,
        "sample_rate": segment.buffer.sample_rate,
        "channels": segment.buffer.channel_count,
        "pcm16": base64.b64encode(encode_buffer(segment.buffer)).decode("ascii"),
        "timings": [{"word": t.word, "start": t.start, "end": t.end} for t in segment.word_timings],
        "stretch_ratio": segment.stretch_ratio,
    }


def deserialize_entry(data: dict) -> FittedSegment:
    try:
        blob = base64.b64decode(data["pcm16"], validate=True)
        buffer = decode_buffer(blob, int(data["sample_rate"]), int(data.get("channels", 1)))
        timings = tuple(
            WordTiming(word=t["word"], start=float(t["start"]), end=float(t["end"]))
            for t in data.get("timings", [])
        )
        return FittedSegment(
            chunk_id=data["chunk_id"],
            buffer=buffer,
            word_timings=timings,
            stretch_ratio=float(data.get("stretch_ratio", 1.0)),
        )
    except (KeyError, TypeError, ValueError) as e:
        msg = f"Malformed cache entry: {e}"
        raise ValueError(msg) from e


def save_cache(cache: GenerationCache, path: str) -> None:
    """Write all entries to a JSON file."""
    payload = {
        "version": CACHE_FORMAT_VERSION,
        "entries": [serialize_entry(seg) for seg in cache.values()],
    }
    Path(path).write_text(json.dumps(payload), encoding="utf-8")
    logger.info(f"Saved {len(cache)} cached chunk(s) -> {path}")


def load_cache(path: str) -> GenerationCache:
    """Read a cache file; a missing file yields an empty cache."""
    p = Path(path)
    if not p.exists():
        return GenerationCache()
    data = json.loads(p.read_text(encoding="utf-8"))
    entries = [deserialize_entry(e) for e in data.get("entries", [])]
    logger.info(f"Loaded {len(entries)} cached chunk(s) <- {path}")
    return GenerationCache(entries)
