"""
Heuristic word timings.

Timings are estimated by spreading the audio duration over the words in
proportion to their character count. This is not measured alignment; a
forced aligner can replace ``estimate_word_timings`` without changing how
timings are stitched.
"""

from collections.abc import Iterable

from .models import WordTiming


def estimate_word_timings(text: str, duration: float) -> list[WordTiming]:
    """Distribute ``duration`` seconds over the words of ``text`` by character count."""
    words = text.split()
    if not words or duration <= 0:
        return []

    total_chars = sum(len(w) for w in words)
    out: list[WordTiming] = []
    t = 0.0
    for w in words:
        dur = duration * len(w) / total_chars
        out.append(WordTiming(word=w, start=round(t, 3), end=round(t + dur, 3)))
        t += dur
    return out


def offset_word_timings(timings: Iterable[WordTiming], offset: float) -> list[WordTiming]:
    """Shift chunk-local timings onto the timeline."""
    return [WordTiming(word=t.word, start=t.start + offset, end=t.end + offset) for t in timings]
