"""
Text-to-speech backends (OpenAI and ElevenLabs) producing AudioBuffers per chunk.

Credentials are passed in when a synth function is built; retry and key
rotation are left to the caller.
"""

import json
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

import httpx

from .audio_io import decode_audio_bytes
from .cache import decode_buffer
from .models import AudioBuffer, DubbingChunk

logger = logging.getLogger("dubsync")

# Optional OpenAI SDK
try:
    from openai import OpenAI
except ImportError:
    OpenAI = None

OPENAI_PCM_RATE = 24000
_EMOTION_RE = re.compile(r"\((.*?)\)")

SynthFunc = Callable[[DubbingChunk], AudioBuffer]


@dataclass
class Speaker:
    """Voice settings for one script speaker."""

    name: str
    voice: str
    accent: str = "Neutral"
    speed: str = "Normal"
    instructions: str | None = None


def load_speakers(path: str) -> dict[str, Speaker]:
    """Read speaker settings from a JSON list of {name, voice, accent, speed, instructions}."""
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    speakers = [Speaker(**item) for item in data]
    return {s.name.lower(): s for s in speakers}


def find_speaker(speakers: dict[str, Speaker], name: str) -> Speaker | None:
    return speakers.get(name.lower())


def map_speed_to_numeric(speed: str | None) -> float:
    return {
        "Very Slow": 0.5,
        "Slow": 0.8,
        "Fast": 1.2,
        "Very Fast": 1.5,
    }.get(speed or "Normal", 1.0)


def format_prompt_with_settings(text: str, speaker: Speaker | None) -> str:
    """Prefix non-default speed/accent as a parenthesised delivery direction."""
    if speaker is None:
        return text
    directions: list[str] = []
    if speaker.speed and speaker.speed != "Normal":
        directions.append(f"speaking {speaker.speed.lower()}")
    if speaker.accent and speaker.accent != "Neutral":
        directions.append(f"{speaker.accent} accent")
    if not directions:
        return text
    return f"({', '.join(directions)}) {text}"


def add_emotion_punctuation(text: str, original_text: str) -> str:
    """Turn a leading (emotion) direction into a punctuation hint."""
    m = _EMOTION_RE.search(original_text)
    emotion = m.group(1).lower() if m else ""
    if any(k in emotion for k in ("angry", "shout", "excited")):
        return text if text.endswith("!") else text + "!"
    if any(k in emotion for k in ("sad", "whisper", "unsure")):
        return text if text.endswith("...") else text + "..."
    if "question" in emotion:
        return text if text.endswith("?") else text + "?"
    return text


def tts_speak_openai(
    client: OpenAI,
    text: str,
    model: str,
    voice: str,
    speed: float = 1.0,
    instructions: str | None = None,
) -> AudioBuffer:
    """Synthesize speech using OpenAI TTS (raw 24 kHz 16-bit mono PCM)."""
    if client is None:
        raise RuntimeError("OpenAI client is not initialized (missing OPENAI_API_KEY)")

    kwargs = {}
    if instructions:
        kwargs["instructions"] = instructions
    resp = client.audio.speech.create(
        model=model,
        voice=voice,
        input=text,
        response_format="pcm",
        speed=speed,
        **kwargs,
    )
    return decode_buffer(resp.content, OPENAI_PCM_RATE, 1)


def elevenlabs_tts_speak(
    api_key: str, voice_id: str, text: str, model_id: str = "eleven_multilingual_v2"
) -> AudioBuffer:
    """Synthesize speech using ElevenLabs TTS."""
    if not api_key:
        raise RuntimeError("ELEVENLABS_API_KEY is not set.")
    if not voice_id:
        raise RuntimeError("ElevenLabs voice_id is required (set it in the speakers file).")

    url = f"https://api.elevenlabs.io/v1/text-to-speech/{voice_id}"
    headers = {
        "xi-api-key": api_key,
        "accept": "audio/mpeg",
        "Content-Type": "application/json",
        "User-Agent": "dubsync/1.0",
    }
    payload = {
        "text": text,
        "model_id": model_id,
        "voice_settings": {
            "stability": 0.5,
            "similarity_boost": 0.75,
            "style": 0.0,
            "use_speaker_boost": True,
        },
    }

    with httpx.Client(follow_redirects=True, timeout=60.0) as client:
        r = client.post(url, json=payload, headers=headers)
        ctype = r.headers.get("content-type", "")
        if r.status_code != 200 or not ctype.startswith(("audio/", "application/octet-stream")):
            raise RuntimeError(f"ElevenLabs TTS failed: {r.status_code} {r.text[:300]}")
        return decode_audio_bytes(r.content, "mp3")


def make_synth_openai(
    client: OpenAI,
    tts_model: str,
    speakers: dict[str, Speaker],
    default_voice: str = "alloy",
    instructions: str | None = None,
) -> SynthFunc:
    """Create OpenAI TTS synthesis function."""

    def _synth(chunk: DubbingChunk) -> AudioBuffer:
        speaker = find_speaker(speakers, chunk.speaker_name)
        voice = speaker.voice if speaker else default_voice
        original = " ".join(line.original_text for line in chunk.lines)
        text = add_emotion_punctuation(chunk.spoken_text, original)
        return tts_speak_openai(
            client,
            text,
            tts_model,
            voice,
            speed=map_speed_to_numeric(speaker.speed if speaker else None),
            instructions=(speaker.instructions if speaker and speaker.instructions else instructions),
        )

    return _synth


def make_synth_elevenlabs(
    api_key: str,
    speakers: dict[str, Speaker],
    model_id: str = "eleven_multilingual_v2",
    default_voice_id: str | None = None,
) -> SynthFunc:
    """Create ElevenLabs TTS synthesis function."""

    def _synth(chunk: DubbingChunk) -> AudioBuffer:
        speaker = find_speaker(speakers, chunk.speaker_name)
        voice_id = speaker.voice if speaker else default_voice_id
        text = format_prompt_with_settings(chunk.spoken_text, speaker)
        return elevenlabs_tts_speak(api_key, voice_id or "", text, model_id=model_id)

    return _synth
