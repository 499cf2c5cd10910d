"""
Script parsing: raw dialogue script text -> timed ScriptLines.

Supported line shapes, in priority order:

    [00:00:01.000 -> 00:00:03.500] Alice: Hello there.
    [00:00:04] Bob: (quietly) Hi.
    Alice: How are you?

Lines without a timestamp start where the previous line ended. Lines that
do not look like dialogue (no ``Speaker:`` prefix) are scene directions and
are dropped.
"""

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass

from .models import ScriptLine, Segment

logger = logging.getLogger("dubsync")

_WINDOW_RE = re.compile(r"^\[([^\]]*?)\s*->\s*([^\]]*)\]\s*(.*)$")
_START_RE = re.compile(r"^\[([^\]]*)\]\s*(.*)$")
_TIMESTAMP_RE = re.compile(r"(\d{1,2}):(\d{2}):(\d{2})(?:[.,](\d{1,3}))?")
_DIRECTION_RE = re.compile(r"\[[^\]]*\]|\([^)]*\)")


@dataclass(frozen=True)
class ScriptParserConfig:
    """Duration estimate for lines without an explicit end time."""

    min_line_secs: float = 1.5
    secs_per_word: float = 0.4


def parse_script_timestamp(token: str) -> float | None:
    """Convert ``HH:MM:SS[.mmm]`` to seconds, or None if it does not parse.

    The fraction is read as milliseconds padded on the right, so ``.5`` is 500 ms.
    """
    m = _TIMESTAMP_RE.fullmatch(token.strip())
    if not m:
        return None
    h, mm, ss, frac = m.groups()
    seconds = int(h) * 3600 + int(mm) * 60 + int(ss)
    if frac:
        seconds += int(frac.ljust(3, "0")) / 1000.0
    return float(seconds)


def format_script_timestamp(seconds: float) -> str:
    """Format seconds as ``HH:MM:SS.mmm`` for the script editor."""
    total_ms = int(round(max(0.0, seconds) * 1000))
    h, rest = divmod(total_ms, 3_600_000)
    m, rest = divmod(rest, 60_000)
    s, ms = divmod(rest, 1000)
    return f"{h:02}:{m:02}:{s:02}.{ms:03}"


def clean_spoken_text(text: str) -> str:
    """Drop stage directions and collapse whitespace."""
    return " ".join(_DIRECTION_RE.sub(" ", text).split())


def estimate_line_duration(spoken_text: str, config: ScriptParserConfig | None = None) -> float:
    cfg = config or ScriptParserConfig()
    return max(cfg.min_line_secs, len(spoken_text.split()) * cfg.secs_per_word)


def split_dialogue(content: str) -> tuple[str, str] | None:
    """Split ``Speaker: text`` into (speaker, spoken text); None for non-dialogue."""
    speaker, sep, rest = content.partition(":")
    if not sep:
        return None
    speaker = speaker.strip()
    spoken = clean_spoken_text(rest)
    if not speaker or not spoken:
        return None
    return speaker, spoken


def _split_timestamps(line: str) -> tuple[str | None, str | None, str]:
    m = _WINDOW_RE.match(line)
    if m:
        return m.group(1), m.group(2), m.group(3)
    m = _START_RE.match(line)
    if m:
        return m.group(1), None, m.group(2)
    return None, None, line


def parse_script(text: str, config: ScriptParserConfig | None = None) -> list[ScriptLine]:
    """Parse script text into ordered dialogue lines with resolved windows."""
    cfg = config or ScriptParserConfig()
    out: list[ScriptLine] = []
    cursor = 0.0

    for raw in text.splitlines():
        line = raw.strip()
        if not line:
            continue

        start_tok, end_tok, content = _split_timestamps(line)
        dialogue = split_dialogue(content)
        if dialogue is None:
            logger.debug(f"Skipping non-dialogue line: {line}")
            continue
        speaker, spoken = dialogue

        start = parse_script_timestamp(start_tok) if start_tok is not None else None
        if start is None:
            if start_tok is not None:
                logger.debug(f"Unparsable start timestamp {start_tok!r}, using cursor {cursor:.3f}")
            start = cursor
        end = parse_script_timestamp(end_tok) if end_tok is not None else None
        if end is None or end <= start:
            end = start + estimate_line_duration(spoken, cfg)

        out.append(
            ScriptLine(
                original_text=line,
                speaker_name=speaker,
                spoken_text=spoken,
                start_time=start,
                end_time=end,
            )
        )
        cursor = max(cursor, end)

    return out


def lines_from_srt_segments(
    segments: Iterable[Segment | tuple[float, float, str]],
    default_speaker: str = "Narrator",
) -> list[ScriptLine]:
    """Turn SRT cues into ScriptLines, keeping ``Speaker:`` prefixes when present."""
    out: list[ScriptLine] = []
    for seg in segments:
        if isinstance(seg, Segment):
            start, end, text = seg.start, seg.end, seg.text
        else:
            start, end, text = seg
        text = (text or "").strip()
        if end <= start or not text:
            continue
        dialogue = split_dialogue(text)
        if dialogue is None:
            speaker, spoken = default_speaker, clean_spoken_text(text)
        else:
            speaker, spoken = dialogue
        if not spoken:
            continue
        out.append(
            ScriptLine(
                original_text=text,
                speaker_name=speaker,
                spoken_text=spoken,
                start_time=float(start),
                end_time=float(end),
            )
        )
    return out
