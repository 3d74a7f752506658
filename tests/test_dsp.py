from __future__ import annotations

import numpy as np
import pytest

from trapmaster.dsp import (
    Compressor,
    Gain,
    SOSFilter,
    biquad_highpass,
    biquad_highshelf,
    biquad_lowshelf,
    biquad_peaking,
    eq_node_sos,
    safe_freq,
    smooth_gain,
    static_gain_db,
)
from trapmaster.multiband import BAND_NAMES, MultibandCompressor
from trapmaster.spec_builder import baseline_multiband
from trapmaster.types import BandCompSpec, Bell, HighPass, MultibandSpec


def _response_db(sos: np.ndarray, freq: float, sr: int) -> float:
    z = np.exp(1j * 2 * np.pi * freq / sr)
    h = 1.0 + 0j
    for b0, b1, b2, a0, a1, a2 in sos:
        h *= (b0 + b1 / z + b2 / z**2) / (a0 + a1 / z + a2 / z**2)
    return float(20 * np.log10(abs(h)))


def _frame_rms(x: np.ndarray, frame: int) -> np.ndarray:
    n = (len(x) // frame) * frame
    frames = x[:n].reshape(-1, frame)
    return np.sqrt(np.mean(frames * frames, axis=1) + 1e-12)


def test_peaking_and_shelves_hit_their_gain():
    sr = 48000
    assert abs(_response_db(biquad_peaking(1000.0, 6.0, 1.0, sr), 1000.0, sr) - 6.0) < 1e-6
    # shelves reach their full gain at DC / Nyquist
    assert abs(_response_db(biquad_lowshelf(120.0, 4.0, 0.707, sr), 0.0, sr) - 4.0) < 1e-6
    assert abs(_response_db(biquad_highshelf(12000.0, -3.0, 0.707, sr), sr / 2, sr) + 3.0) < 1e-6
    # far from the shelf corners nothing happens
    assert abs(_response_db(biquad_lowshelf(120.0, 4.0, 0.707, sr), 5000.0, sr)) < 0.05


def test_highpass_order_two_is_two_sections():
    sr = 44100
    one = eq_node_sos(HighPass(freq=30.0, order=1), sr)
    two = eq_node_sos(HighPass(freq=30.0, order=2), sr)
    assert one.shape == (1, 6)
    assert two.shape == (2, 6)
    assert np.allclose(two[0], two[1])
    assert abs(_response_db(two, 30.0, sr) - 2 * _response_db(one, 30.0, sr)) < 1e-9


def test_frequencies_are_pulled_below_nyquist():
    assert safe_freq(30000.0, 44100) == 0.45 * 44100
    sos = eq_node_sos(Bell(freq=30000.0, gain_db=3.0, q=1.0), 44100)
    assert np.all(np.isfinite(sos))


def test_sos_filter_state_carries_across_blocks():
    sr = 44100
    rng = np.random.default_rng(0)
    x = rng.standard_normal((2, 4096))
    sos = np.vstack([biquad_peaking(800.0, 5.0, 2.0, sr), biquad_highshelf(6000.0, -4.0, 0.707, sr)])

    whole = SOSFilter(sos, channels=2).process(x)
    split = SOSFilter(sos, channels=2)
    halves = np.concatenate([split.process(x[:, :1000]), split.process(x[:, 1000:])], axis=1)
    assert np.allclose(whole, halves)

    split.reset()
    assert np.allclose(split.process(x), whole)


def test_static_gain_curve():
    level = np.array([-40.0, -20.0, 0.0])
    hard = static_gain_db(level, threshold_db=-20.0, ratio=4.0, knee_db=0.0)
    assert np.allclose(hard, [0.0, 0.0, -15.0])

    # soft knee is continuous with the hard curve at both knee edges
    soft = static_gain_db(np.array([-23.0, -17.0, -20.0]), threshold_db=-20.0, ratio=4.0, knee_db=6.0)
    assert soft[0] == 0.0
    assert abs(soft[1] - (-3.0 * 0.75)) < 1e-9
    assert -3.0 * 0.75 < soft[2] < 0.0


def test_compressor_reduces_loud_signal_and_leaves_quiet_signal():
    sr = 44100
    t = np.arange(sr) / sr
    loud = np.vstack([0.9 * np.sin(2 * np.pi * 220.0 * t)] * 2)
    comp = Compressor(sr, threshold_db=-20.0, ratio=4.0, attack_sec=0.005, release_sec=0.1)
    y = comp.process(loud)
    # after settling: -0.9 dB in -> about -15 dB out
    tail = np.max(np.abs(y[:, sr // 2:]))
    assert tail < 0.3
    assert comp.gain_state_db < -10.0

    quiet = loud * 0.01
    comp.reset()
    assert np.allclose(comp.process(quiet), quiet)


def test_compressor_is_stereo_linked_and_block_consistent():
    sr = 44100
    t = np.arange(sr // 2) / sr
    x = np.vstack([0.8 * np.sin(2 * np.pi * 100.0 * t), 0.1 * np.sin(2 * np.pi * 300.0 * t)])

    whole = Compressor(sr, threshold_db=-12.0, ratio=3.0, knee_db=4.0).process(x)
    comp = Compressor(sr, threshold_db=-12.0, ratio=3.0, knee_db=4.0)
    halves = np.concatenate([comp.process(x[:, :5000]), comp.process(x[:, 5000:])], axis=1)
    assert np.allclose(whole, halves)

    # same gain on both channels
    with np.errstate(divide="ignore", invalid="ignore"):
        g0 = whole[0] / x[0]
        g1 = whole[1] / x[1]
    both = (np.abs(x[0]) > 1e-3) & (np.abs(x[1]) > 1e-3)
    assert np.allclose(g0[both], g1[both])


def test_sidechain_filter_only_feeds_the_detector():
    sr = 44100
    t = np.arange(sr) / sr
    low = np.vstack([0.8 * np.sin(2 * np.pi * 50.0 * t)] * 2)

    sidechain = SOSFilter(biquad_highpass(1000.0, 0.707, sr), 2)
    keyed = Compressor(sr, threshold_db=-20.0, ratio=4.0, sidechain=sidechain).process(low)
    # the detector hears almost nothing, the audio path keeps its 50 Hz
    assert np.max(np.abs(keyed)) > 0.79
    assert np.allclose(keyed, low, atol=1e-2)

    plain = Compressor(sr, threshold_db=-20.0, ratio=4.0).process(low)
    assert np.max(np.abs(plain[:, sr // 2:])) < 0.3


def _smooth_reference(target, attack, release, g):
    out = []
    for t in target:
        c = attack if t < g else release
        g = c * g + (1.0 - c) * t
        out.append(g)
    return np.array(out)


def test_smooth_gain_matches_per_sample_recursion():
    rng = np.random.default_rng(4)
    target = np.zeros(5000)
    target[1200:1900] = -rng.uniform(0.0, 12.0, 700)
    target[4000:4100] = -6.0
    attack, release = 0.99, 0.999

    got = smooth_gain(target, attack, release, state=-3.0)
    assert np.allclose(got, _smooth_reference(target, attack, release, -3.0), atol=1e-9)
    # untouched chunks decay back toward 0 dB
    assert got[1023] == pytest.approx(-3.0 * release ** 1024)
    assert np.all(got <= 0.0)


def test_gain_stage():
    x = np.ones((2, 8))
    assert np.allclose(Gain(20 * np.log10(2.0)).process(x), 2.0)
    assert np.allclose(Gain(0.0).process(x), x)


def test_multiband_routes_low_tone_to_low_band():
    sr = 44100
    t = np.arange(sr) / sr
    x = 0.5 * np.sin(2 * np.pi * 50.0 * t)[np.newaxis, :]
    mb = MultibandCompressor(baseline_multiband(2.0), sr, channels=1)
    bands = mb.split(x)
    assert len(bands) == len(BAND_NAMES) == 5
    energies = [float(np.mean(b[:, sr // 2:] ** 2)) for b in bands]
    assert energies[0] > 10 * energies[2]
    assert energies[0] > 1000 * energies[4]


def test_multiband_with_unity_ratios_is_sum_of_bands():
    sr = 44100
    flat = BandCompSpec(ratio=1.0, threshold_db=-20.0, knee_db=6.0, attack_sec=0.01, release_sec=0.1)
    spec = MultibandSpec(crossovers=(120.0, 400.0, 2500.0, 6000.0), bands=(flat,) * 5)
    x = np.random.default_rng(1).standard_normal((2, 8192)) * 0.1

    out = MultibandCompressor(spec, sr, channels=2).process(x)
    expected = sum(MultibandCompressor(spec, sr, channels=2).split(x))
    assert np.allclose(out, expected)


def test_multiband_reduces_midband_variation():
    sr = 44100
    dur = 2.0
    t = np.linspace(0, dur, int(sr * dur), endpoint=False)
    # 1 kHz tone with a slow 0.05 .. 0.9 envelope
    amp_env = 0.05 + 0.85 * (0.5 * (1 + np.sin(2 * np.pi * 1.0 * t)))
    x = (amp_env * np.sin(2 * np.pi * 1000.0 * t))[np.newaxis, :]

    y = MultibandCompressor(baseline_multiband(4.0), sr, channels=1).process(x)

    rms_in = _frame_rms(x[0, sr // 2:], 2048)
    rms_out = _frame_rms(y[0, sr // 2:], 2048)
    range_in = 20 * np.log10(rms_in.max() / rms_in.min())
    range_out = 20 * np.log10(rms_out.max() / rms_out.min())
    assert range_out < range_in - 3.0
