from __future__ import annotations

import numpy as np
import pytest

from trapmaster.analysis import (
    ABSOLUTE_GATE_LUFS,
    CALIBRATION_DB,
    gated_loudness,
    integrated_loudness,
    measure,
    true_peak,
    true_peak_db,
)
from trapmaster.types import AudioBuffer


def _sine(freq: float, sr: int, dur: float, amp: float) -> np.ndarray:
    t = np.arange(int(sr * dur)) / sr
    return amp * np.sin(2 * np.pi * freq * t)


def _power(lufs: float) -> float:
    return 10 ** ((lufs - CALIBRATION_DB) / 10)


def test_silence_reports_the_floor():
    report = measure(AudioBuffer.from_array(np.zeros((2, 44100)), 44100))
    assert report.integrated_lufs == ABSOLUTE_GATE_LUFS
    assert report.gating == "floor"
    assert report.true_peak_db < -200.0


def test_mono_sine_loudness():
    sr = 48000
    x = _sine(1000.0, sr, 3.0, amp=0.5)[np.newaxis, :]
    lufs, stage = integrated_loudness(x, sr)
    # mean square 0.125 -> -9.03 dB, plus the calibration offset
    expected = CALIBRATION_DB + 10 * np.log10(0.125)
    assert stage == "relative"
    assert abs(lufs - expected) < 0.6


def test_channels_are_summed():
    sr = 44100
    s = _sine(1000.0, sr, 2.0, amp=0.25)
    mono, _ = integrated_loudness(s[np.newaxis, :], sr)
    stereo, _ = integrated_loudness(np.vstack([s, s]), sr)
    assert abs((stereo - mono) - 10 * np.log10(2.0)) < 1e-6


def test_relative_gate_drops_quiet_blocks():
    powers = np.array([_power(-20.0)] * 5 + [_power(-40.0)] * 5)
    lufs, stage = gated_loudness(powers)
    assert stage == "relative"
    assert abs(lufs - (-20.0)) < 1e-9


def test_absolute_gate_drops_silent_blocks():
    powers = np.array([_power(-18.0)] * 3 + [0.0] * 30)
    lufs, stage = gated_loudness(powers)
    assert stage == "relative"
    assert abs(lufs - (-18.0)) < 1e-9


def test_everything_below_absolute_gate_reports_ungated_mean():
    lufs, stage = gated_loudness(np.array([_power(-80.0)] * 6 + [_power(-90.0)] * 4))
    assert stage == "ungated"
    expected = CALIBRATION_DB + 10 * np.log10(0.6 * _power(-80.0) + 0.4 * _power(-90.0))
    assert lufs == pytest.approx(expected)
    assert lufs < ABSOLUTE_GATE_LUFS


def test_zero_power_blocks_report_the_floor():
    lufs, stage = gated_loudness(np.zeros(12))
    assert lufs == ABSOLUTE_GATE_LUFS
    assert stage == "floor"


def test_very_quiet_sine_is_measured_ungated():
    sr = 44100
    x = _sine(1000.0, sr, 2.0, amp=1e-4)[np.newaxis, :]
    lufs, stage = integrated_loudness(x, sr)
    assert stage == "ungated"
    assert -86.0 < lufs < -80.0


def test_clip_shorter_than_one_block_is_measured():
    sr = 44100
    x = _sine(1000.0, sr, 0.1, amp=0.5)[np.newaxis, :]
    lufs, stage = integrated_loudness(x, sr)
    assert np.isfinite(lufs)
    assert stage == "relative"
    assert -15.0 < lufs < -5.0


def test_true_peak_of_sine_and_impulse():
    sr = 44100
    x = _sine(997.0, sr, 1.0, amp=0.5)
    peak = true_peak(np.vstack([x, 0.5 * x]))
    assert 0.49 < peak <= 0.5 + 1e-12

    impulse = np.zeros((1, 100))
    impulse[0, 99] = -0.8  # last sample counts too
    assert true_peak(impulse) == pytest.approx(0.8)
    assert true_peak_db(impulse) == pytest.approx(20 * np.log10(0.8))


def test_agrees_with_pyloudnorm():
    pyln = pytest.importorskip("pyloudnorm")
    sr = 48000
    rng = np.random.default_rng(7)
    t = np.arange(sr * 4) / sr
    x = np.vstack([
        0.3 * np.sin(2 * np.pi * 440.0 * t) + 0.05 * rng.standard_normal(t.size),
        0.2 * np.sin(2 * np.pi * 660.0 * t) + 0.05 * rng.standard_normal(t.size),
    ])
    ours, _ = integrated_loudness(x, sr)
    reference = pyln.Meter(sr).integrated_loudness(x.T)
    assert abs(ours - reference) < 2.0
