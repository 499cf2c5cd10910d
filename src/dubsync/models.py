"""
Data models for the script dubbing pipeline.
"""

from dataclasses import dataclass, field

import numpy as np


@dataclass
class Segment:
    """A single subtitle cue with timing and text."""

    start: float  # seconds
    end: float  # seconds
    text: str


@dataclass(frozen=True)
class ScriptLine:
    """One dialogue line with its resolved timeline window."""

    original_text: str
    speaker_name: str
    spoken_text: str
    start_time: float
    end_time: float

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time


@dataclass(frozen=True)
class DubbingChunk:
    """Consecutive lines of one speaker, synthesized and fitted as one unit."""

    id: str
    speaker_name: str
    lines: tuple[ScriptLine, ...]
    start_time: float
    end_time: float

    @property
    def spoken_text(self) -> str:
        return " ".join(line.spoken_text for line in self.lines)

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time


@dataclass(frozen=True)
class WordTiming:
    """A word and its (estimated) start/end in seconds."""

    word: str
    start: float
    end: float


@dataclass(eq=False)
class AudioBuffer:
    """Float PCM samples shaped (channels, frames), values in [-1.0, 1.0]."""

    samples: np.ndarray
    sample_rate: int

    def __post_init__(self) -> None:
        arr = np.asarray(self.samples, dtype=np.float32)
        if arr.ndim == 1:
            arr = arr[np.newaxis, :]
        self.samples = arr

    @property
    def channel_count(self) -> int:
        return int(self.samples.shape[0])

    @property
    def frame_count(self) -> int:
        return int(self.samples.shape[1])

    @property
    def duration(self) -> float:
        return self.frame_count / float(self.sample_rate)


@dataclass(frozen=True, eq=False)
class FittedSegment:
    """Cache entry: the fitted audio of one chunk plus its chunk-local word timings."""

    chunk_id: str
    buffer: AudioBuffer
    word_timings: tuple[WordTiming, ...] = ()
    stretch_ratio: float = 1.0


@dataclass
class FitResult:
    """Output of duration fitting."""

    buffer: AudioBuffer
    ratio: float


@dataclass
class StitchResult:
    """Mixed timeline audio and timeline-absolute word timings."""

    buffer: AudioBuffer
    timings: list[WordTiming] = field(default_factory=list)
