"""
Tests for the command-line stages (offline: cached audio or a fake backend).
"""

import json
import os
import signal
import tempfile

import numpy as np
import pytest
from pydub import AudioSegment

from src.dubsync import cli
from src.dubsync.cache import GenerationCache, load_cache, save_cache
from src.dubsync.chunking import plan_chunks
from src.dubsync.models import AudioBuffer, DubbingChunk, FittedSegment
from src.dubsync.pipeline import generate_chunks
from src.dubsync.script_parser import parse_script

SR = 8000
PROVIDER = "openai:gpt-4o-mini-tts"

SCRIPT = """[00:00:00.000 -> 00:00:02.000] Alice: Hello there, how are you?
[00:00:02.500 -> 00:00:04.000] Bob: (cheerful) Fine thanks.
Alice: Great to hear.
"""


def _tone(chunk: DubbingChunk) -> AudioBuffer:
    t = np.arange(int(len(chunk.spoken_text) * 0.08 * SR)) / SR
    return AudioBuffer(samples=0.3 * np.sin(2 * np.pi * 200 * t), sample_rate=SR)


def _chunks() -> list[DubbingChunk]:
    return plan_chunks(parse_script(SCRIPT), PROVIDER)


def _workspace(tmp: str, cached: bool = True) -> tuple[str, str]:
    script = os.path.join(tmp, "script.txt")
    with open(script, "w", encoding="utf-8") as f:
        f.write(SCRIPT)
    workdir = os.path.join(tmp, "work")
    os.makedirs(workdir)
    if cached:
        cache = GenerationCache()
        generate_chunks(_chunks(), cache, _tone, show_progress=False)
        save_cache(cache, os.path.join(workdir, "cache.json"))
    return script, workdir


def _stale_segment() -> FittedSegment:
    return FittedSegment(
        chunk_id="chunk_deadbeef",
        buffer=AudioBuffer(samples=np.zeros(800), sample_rate=SR),
    )


def test_plan_stage_writes_manifest_only():
    with tempfile.TemporaryDirectory() as tmp:
        script, workdir = _workspace(tmp, cached=False)
        cli.main(["--stage", "plan", "--script", script, "--workdir", workdir])

        with open(os.path.join(workdir, "chunks.json"), encoding="utf-8") as f:
            manifest = json.load(f)
        assert [c["id"] for c in manifest] == [c.id for c in _chunks()]
        assert [c["speaker"] for c in manifest] == ["Alice", "Bob", "Alice"]
        assert not os.path.exists(os.path.join(workdir, "cache.json"))
        assert not os.path.exists(os.path.join(workdir, "output.wav"))


def test_no_tts_with_missing_cache_raises():
    with tempfile.TemporaryDirectory() as tmp:
        script, workdir = _workspace(tmp, cached=False)
        with pytest.raises(RuntimeError, match="missing"):
            cli.main(["--script", script, "--workdir", workdir, "--no-tts"])


def test_no_tts_with_full_cache_exports_everything():
    with tempfile.TemporaryDirectory() as tmp:
        script, workdir = _workspace(tmp)
        cli.main(["--script", script, "--workdir", workdir, "--no-tts"])

        out = AudioSegment.from_wav(os.path.join(workdir, "output.wav"))
        assert out.frame_rate == SR
        assert len(out) / 1000.0 == pytest.approx(_chunks()[-1].end_time, abs=0.05)

        with open(os.path.join(workdir, "timings.json"), encoding="utf-8") as f:
            timings = json.load(f)
        assert timings[0]["word"] == "Hello"
        assert {"word", "start", "end"} <= set(timings[0])

        with open(os.path.join(workdir, "subs.srt"), encoding="utf-8") as f:
            subs = f.read()
        assert subs.count(" --> ") == 3
        assert "Fine thanks." in subs

        with open(os.path.join(workdir, "words.srt"), encoding="utf-8") as f:
            words = f.read()
        assert words.count(" --> ") == len(timings)
        assert words.startswith("1\n00:00:00,000 --> ")


def test_prune_cache_drops_entries_no_longer_planned():
    with tempfile.TemporaryDirectory() as tmp:
        script, workdir = _workspace(tmp)
        cache_path = os.path.join(workdir, "cache.json")
        cache = load_cache(cache_path)
        cache.store(_stale_segment())
        save_cache(cache, cache_path)

        cli.main(["--script", script, "--workdir", workdir, "--no-tts"])
        assert "chunk_deadbeef" in load_cache(cache_path)

        cli.main(["--script", script, "--workdir", workdir, "--no-tts", "--prune-cache"])
        kept = load_cache(cache_path)
        assert "chunk_deadbeef" not in kept
        assert sorted(kept) == sorted(c.id for c in _chunks())


def test_invalidate_removes_entry_and_regenerates_it(monkeypatch):
    calls = []

    def fake_synth(chunk):
        calls.append(chunk.id)
        return _tone(chunk)

    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    monkeypatch.setattr(cli, "make_synth_openai", lambda *a, **kw: fake_synth)
    target = _chunks()[1].id

    with tempfile.TemporaryDirectory() as tmp:
        script, workdir = _workspace(tmp)
        cli.main(["--script", script, "--workdir", workdir, "--invalidate", target])

        assert calls == [target]
        assert target in load_cache(os.path.join(workdir, "cache.json"))
        assert os.path.exists(os.path.join(workdir, "output.wav"))


def test_cancel_still_saves_finished_chunks(monkeypatch):
    """Ctrl-C during a chunk stops before the next one; the cache is written anyway."""

    def interrupting_synth(chunk):
        signal.raise_signal(signal.SIGINT)
        return _tone(chunk)

    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    monkeypatch.setattr(cli, "make_synth_openai", lambda *a, **kw: interrupting_synth)
    handler_before = signal.getsignal(signal.SIGINT)

    with tempfile.TemporaryDirectory() as tmp:
        script, workdir = _workspace(tmp, cached=False)
        cli.main(["--script", script, "--workdir", workdir])

        saved = load_cache(os.path.join(workdir, "cache.json"))
        assert list(saved) == [_chunks()[0].id]
        assert not os.path.exists(os.path.join(workdir, "output.wav"))

    assert signal.getsignal(signal.SIGINT) is handler_before
