"""
dubsync - Multi-speaker script dubbing on a fixed timeline.

A pipeline for:
- Parsing timestamped dialogue scripts (or SRT cues) into timed lines
- Planning speaker-homogeneous dubbing chunks with stable cache keys
- Synthesizing speech with OpenAI or ElevenLabs TTS
- Fitting each take to its time window with pitch-preserving SOLA
- Stitching chunks at absolute offsets with estimated word timings
"""

from .chunking import plan_chunks
from .script_parser import parse_script
from .stitcher import stitch
from .stretch import fit_duration

__version__ = "0.1.0"

__all__ = ["fit_duration", "parse_script", "plan_chunks", "stitch"]
