"""
Command-line interface for the script dubbing pipeline.
"""

import argparse
import json
import logging
import os
import signal
import threading
from pathlib import Path

from dotenv import load_dotenv

from .audio_io import ensure_dir, export_wav
from .cache import load_cache, save_cache
from .chunking import ChunkPlannerConfig, plan_chunks, write_chunks_manifest
from .models import Segment
from .pipeline import generate_chunks
from .script_parser import lines_from_srt_segments, parse_script
from .srt_utils import parse_srt, write_srt
from .stitcher import stitch
from .stretch import SolaConfig
from .tts import Speaker, load_speakers, make_synth_elevenlabs, make_synth_openai

logger = logging.getLogger("dubsync")

# Optional OpenAI SDK
try:
    from openai import OpenAI
except ImportError:
    OpenAI = None


def setup_logging(verbose: bool = False) -> None:
    """Setup logging configuration."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    ap = argparse.ArgumentParser(description="Multi-speaker script dubbing (timeline-synced)")

    ap.add_argument(
        "--stage",
        choices=["plan", "synth"],
        default="synth",
        help="plan: parse + chunk and write chunks.json; synth: generate, stitch and export",
    )

    # IO
    src = ap.add_mutually_exclusive_group(required=True)
    src.add_argument("--script", help="Dialogue script ('[start -> end] Speaker: text' lines)")
    src.add_argument("--srt", help="Use cues from an SRT file instead of a script")
    ap.add_argument("--default-speaker", default="Narrator", help="Speaker for SRT cues without one")
    ap.add_argument("--workdir", default=".work")
    ap.add_argument("--output", default=None, help="Output WAV (default: <workdir>/output.wav)")
    ap.add_argument("--speakers", default=None, help="JSON list of speaker voice settings")

    # TTS provider
    ap.add_argument("--provider", choices=["openai", "elevenlabs"], default="openai")
    ap.add_argument("--tts-model", default="gpt-4o-mini-tts", help="Used when --provider=openai")
    ap.add_argument("--default-voice", default="alloy", help="Voice for speakers not in --speakers")
    ap.add_argument(
        "--voice-instructions",
        default=os.getenv("OPENAI_TTS_INSTRUCTIONS"),
        help="Optional TTS style instructions for OpenAI (not read aloud)",
    )
    ap.add_argument("--elevenlabs-model-id", default="eleven_multilingual_v2")

    # Chunking / fitting
    ap.add_argument("--max-gap", type=float, default=0.6, help="Max pause (sec) inside a chunk")
    ap.add_argument("--max-span", type=float, default=15.0, help="Max chunk length (sec)")
    ap.add_argument(
        "--fit-tolerance", type=float, default=0.05, help="No stretch if |diff| < tolerance (sec)"
    )
    ap.add_argument(
        "--no-strict-sync",
        action="store_true",
        help="Keep natural TTS duration instead of fitting each chunk to its window",
    )

    # Cache control
    ap.add_argument(
        "--force",
        action="append",
        default=[],
        metavar="CHUNK_ID",
        help="Regenerate this chunk even if cached (repeatable)",
    )
    ap.add_argument(
        "--invalidate",
        action="append",
        default=[],
        metavar="CHUNK_ID",
        help="Drop this chunk's cached audio before generating (repeatable)",
    )
    ap.add_argument(
        "--prune-cache",
        action="store_true",
        help="Remove cached chunks that are no longer in the plan (e.g. after a script edit)",
    )
    ap.add_argument(
        "--no-tts",
        action="store_true",
        help="Do not call TTS; stitch cached chunks only (error if any is missing)",
    )

    ap.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")

    return ap.parse_args(argv)


def _provider_tag(args: argparse.Namespace) -> str:
    if args.provider == "openai":
        return f"openai:{args.tts_model}"
    return f"elevenlabs:{args.elevenlabs_model_id}"


def main(argv: list[str] | None = None) -> None:
    """Main CLI entry point."""
    load_dotenv()
    args = parse_args(argv)
    setup_logging(args.verbose)

    ensure_dir(args.workdir)

    if args.srt:
        lines = lines_from_srt_segments(parse_srt(args.srt), default_speaker=args.default_speaker)
        logger.info(f"Loaded SRT -> {args.srt} ({len(lines)} lines)")
    else:
        lines = parse_script(Path(args.script).read_text(encoding="utf-8"))
        logger.info(f"Parsed script -> {args.script} ({len(lines)} dialogue lines)")

    chunk_cfg = ChunkPlannerConfig(max_gap_secs=args.max_gap, max_span_secs=args.max_span)
    chunks = plan_chunks(lines, _provider_tag(args), chunk_cfg)

    manifest = os.path.join(args.workdir, "chunks.json")
    write_chunks_manifest(chunks, manifest)
    logger.info(f"Saved chunk plan -> {manifest} ({len(chunks)} chunks)")

    if args.stage == "plan":
        logger.info("Stage 'plan' complete. Review chunks.json, then run stage 'synth'.")
        return

    cache_path = os.path.join(args.workdir, "cache.json")
    cache = load_cache(cache_path)
    for chunk_id in args.invalidate:
        if cache.invalidate(chunk_id):
            logger.info(f"Invalidated cached chunk {chunk_id}")
        else:
            logger.warning(f"--invalidate {chunk_id}: not in cache")
    if args.prune_cache:
        pruned = cache.prune(c.id for c in chunks)
        logger.info(f"Pruned {pruned} stale cached chunk(s)")
    if args.no_tts and (args.invalidate or args.prune_cache):
        save_cache(cache, cache_path)

    if args.no_tts:
        missing = cache.missing(chunks)
        if missing:
            raise RuntimeError(
                "--no-tts was set, but cached audio is missing for chunks: "
                + ", ".join(missing)
                + "\nHint: drop --no-tts (to synthesize), or reuse the previous run's workdir."
            )
    else:
        speakers: dict[str, Speaker] = load_speakers(args.speakers) if args.speakers else {}
        if args.provider == "openai":
            if not OpenAI:
                raise RuntimeError("openai package not installed. Install with: pip install openai")
            openai_key = os.getenv("OPENAI_API_KEY")
            if not openai_key:
                raise RuntimeError("OPENAI_API_KEY is not set. Put it in .env or environment.")
            synth = make_synth_openai(
                OpenAI(api_key=openai_key),
                args.tts_model,
                speakers,
                default_voice=args.default_voice,
                instructions=args.voice_instructions,
            )
        else:
            eleven_key = os.getenv("ELEVENLABS_API_KEY")
            if not eleven_key:
                raise RuntimeError("ELEVENLABS_API_KEY is not set. Put it in .env or environment.")
            synth = make_synth_elevenlabs(
                eleven_key, speakers, args.elevenlabs_model_id, default_voice_id=args.default_voice
            )

        # Ctrl-C stops before the next chunk; finished chunks are still saved
        cancel = threading.Event()
        prev_handler = signal.signal(signal.SIGINT, lambda *_: cancel.set())
        try:
            report = generate_chunks(
                chunks,
                cache,
                synth,
                cancel_event=cancel,
                force_ids=args.force,
                strict_sync=not args.no_strict_sync,
                fit_config=SolaConfig(tolerance_secs=args.fit_tolerance),
            )
        finally:
            signal.signal(signal.SIGINT, prev_handler)
            save_cache(cache, cache_path)

        logger.info(
            f"Generated {len(report.generated)}, reused {len(report.reused)}, "
            f"failed {len(report.failed)} chunk(s)"
        )
        if report.cancelled:
            logger.info("Generation paused. Run the same command again to resume.")
            return

    result = stitch(chunks, cache)
    if result is None:
        raise RuntimeError("No generated audio available to export.")

    out_wav = args.output or os.path.join(args.workdir, "output.wav")
    export_wav(result.buffer, out_wav)
    logger.info(f"Exported mixed audio -> {out_wav} ({result.buffer.duration:.3f}s)")

    timings_json = os.path.join(args.workdir, "timings.json")
    with open(timings_json, "w", encoding="utf-8") as f:
        json.dump([t.__dict__ for t in result.timings], f, ensure_ascii=False, indent=2)
    logger.info(f"Saved word timings -> {timings_json}")

    subs_path = os.path.join(args.workdir, "subs.srt")
    write_srt(
        [Segment(start=ln.start_time, end=ln.end_time, text=ln.spoken_text) for ln in lines],
        subs_path,
    )
    logger.info(f"Saved SRT -> {subs_path}")

    words_path = os.path.join(args.workdir, "words.srt")
    write_srt([Segment(start=t.start, end=t.end, text=t.word) for t in result.timings], words_path)
    logger.info(f"Saved word-level SRT -> {words_path}")


if __name__ == "__main__":
    main()
