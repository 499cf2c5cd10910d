"""
SRT parsing and writing utilities.
"""

import logging
import re
from collections.abc import Iterable

from .models import Segment

logger = logging.getLogger("dubsync")

_TIMING_RE = re.compile(
    r"(\d{2}:\d{2}:\d{2}[,.]\d{1,3})\s*-->\s*(\d{2}:\d{2}:\d{2}[,.]\d{1,3})"
)
_TAG_RE = re.compile(r"<[^>]*>")


def _parse_ts(ts: str) -> float:
    h, m, s = ts.replace(",", ".").split(":")
    return int(h) * 3600 + int(m) * 60 + float(s)


def _fmt_ts(t: float) -> str:
    total_ms = int(round(max(0.0, t) * 1000))
    h, rest = divmod(total_ms, 3_600_000)
    m, rest = divmod(rest, 60_000)
    s, ms = divmod(rest, 1000)
    return f"{h:02}:{m:02}:{s:02},{ms:03}"


def parse_srt_text(data: str) -> list[Segment]:
    """Parse SRT content into segments, dropping tags and empty cues."""
    text = data.lstrip("\ufeff").replace("\r\n", "\n").replace("\r", "\n")
    out: list[Segment] = []
    for block in re.split(r"\n\s*\n", text.strip()):
        lines = block.split("\n")
        timing_idx = next((i for i, ln in enumerate(lines) if "-->" in ln), None)
        if timing_idx is None:
            continue
        m = _TIMING_RE.search(lines[timing_idx])
        if not m:
            logger.debug(f"Skipping SRT block with bad timing line: {lines[timing_idx]!r}")
            continue
        body = " ".join(lines[timing_idx + 1 :])
        body = " ".join(_TAG_RE.sub("", body).split())
        if not body:
            continue
        out.append(Segment(start=_parse_ts(m.group(1)), end=_parse_ts(m.group(2)), text=body))
    return out


def parse_srt(path: str) -> list[Segment]:
    """Parse SRT file into segments."""
    with open(path, encoding="utf-8") as f:
        return parse_srt_text(f.read())


def write_srt(segments: Iterable[Segment], path: str) -> None:
    """Write segments to SRT file."""
    with open(path, "w", encoding="utf-8") as f:
        for i, s in enumerate(segments, 1):
            f.write(f"{i}\n{_fmt_ts(s.start)} --> {_fmt_ts(s.end)}\n{s.text}\n\n")
