"""
Tests for SOLA duration fitting.
"""

import numpy as np
import pytest

from src.dubsync.models import AudioBuffer, FittedSegment
from src.dubsync.stretch import (
    SolaConfig,
    clamp_samples,
    fit_duration,
    target_duration_for_speed,
    time_stretch,
)

SR = 24000


def _tone(seconds: float, freq: float = 220.0, amp: float = 0.5, channels: int = 1) -> AudioBuffer:
    t = np.arange(int(seconds * SR)) / SR
    wave = (amp * np.sin(2 * np.pi * freq * t)).astype(np.float32)
    return AudioBuffer(samples=np.tile(wave, (channels, 1)), sample_rate=SR)


def _rms(buf: AudioBuffer) -> float:
    return float(np.sqrt(np.mean(buf.samples.astype(np.float64) ** 2)))


def test_compress_ten_to_five_seconds():
    """10s -> 5s: ratio 2.0, exact duration, energy preserved."""
    src = _tone(10.0)
    res = fit_duration(src, 5.0)

    assert res.ratio == pytest.approx(2.0)
    assert abs(res.buffer.duration - 5.0) < 0.05
    assert _rms(res.buffer) == pytest.approx(_rms(src), rel=0.1)


def test_stretch_slower():
    """Slowing down yields a longer buffer of the target duration."""
    src = _tone(2.0)
    res = fit_duration(src, 3.0)

    assert res.ratio == pytest.approx(2.0 / 3.0)
    assert abs(res.buffer.duration - 3.0) < 0.05
    assert _rms(res.buffer) == pytest.approx(_rms(src), rel=0.1)


def test_slowdown_fills_output_to_the_end():
    """Doubling the length leaves no silent tail after the last grain."""
    res = fit_duration(_tone(2.0), 4.0)
    last_10ms = AudioBuffer(samples=res.buffer.samples[:, -SR // 100 :], sample_rate=SR)

    assert res.buffer.frame_count == 4 * SR
    assert _rms(last_10ms) > 0.25


def test_pitch_is_preserved():
    """The dominant frequency survives compression (no resampling)."""
    src = _tone(4.0, freq=440.0)
    res = fit_duration(src, 3.0)

    spectrum = np.abs(np.fft.rfft(res.buffer.samples[0]))
    freqs = np.fft.rfftfreq(res.buffer.frame_count, 1 / SR)
    assert freqs[int(np.argmax(spectrum))] == pytest.approx(440.0, abs=5.0)


def test_near_match_returns_input_unchanged():
    src = _tone(2.0)
    res = fit_duration(src, 2.03)

    assert res.ratio == 1.0
    assert res.buffer is src


def test_refit_is_idempotent():
    """Fitting an already fitted buffer to the same target is a no-op."""
    first = fit_duration(_tone(6.0), 4.0)
    second = fit_duration(first.buffer, 4.0)

    assert second.ratio == 1.0
    assert second.buffer.frame_count == first.buffer.frame_count


def test_channels_are_processed_independently():
    src = _tone(3.0, channels=2)
    res = fit_duration(src, 2.0)

    assert res.buffer.channel_count == 2
    assert abs(res.buffer.duration - 2.0) < 0.05
    np.testing.assert_allclose(res.buffer.samples[0], res.buffer.samples[1])


def test_short_input_is_copied_without_underflow():
    """Input shorter than one grain is copied/truncated, never indexed out of range."""
    src = AudioBuffer(samples=np.full(100, 0.25, dtype=np.float32), sample_rate=SR)
    out = time_stretch(src, 2.0)

    assert out.frame_count == 50
    assert np.all(out.samples == np.float32(0.25))


def test_output_length_is_floor_of_input_over_ratio():
    src = _tone(1.0)
    out = time_stretch(src, 1.7)

    assert out.frame_count == int(SR / 1.7)


def test_invalid_inputs_raise():
    with pytest.raises(ValueError):
        fit_duration(_tone(1.0), 0.0)
    with pytest.raises(ValueError):
        fit_duration(_tone(1.0), -1.0)
    with pytest.raises(ValueError):
        fit_duration(AudioBuffer(samples=np.zeros(0, dtype=np.float32), sample_rate=SR), 1.0)
    with pytest.raises(ValueError):
        time_stretch(_tone(1.0), 0.0)


def test_custom_tolerance():
    """The near-match tolerance is configurable."""
    res = fit_duration(_tone(2.0), 2.03, SolaConfig(tolerance_secs=0.01))

    assert res.ratio != 1.0
    assert abs(res.buffer.duration - 2.03) < 0.05


def test_clamp_samples():
    buf = AudioBuffer(samples=np.array([-1.5, -0.5, 0.5, 1.5], dtype=np.float32), sample_rate=SR)
    out = clamp_samples(buf)

    assert out.samples.tolist() == [[-1.0, -0.5, 0.5, 1.0]]


def test_target_duration_for_speed():
    """Natural duration is recovered from the stretch ratio before applying speed."""
    seg = FittedSegment(chunk_id="c", buffer=_tone(2.0), stretch_ratio=1.5)

    assert target_duration_for_speed(seg, 1.0) == pytest.approx(3.0)
    assert target_duration_for_speed(seg, 2.0) == pytest.approx(1.5)
    with pytest.raises(ValueError):
        target_duration_for_speed(seg, 0)
