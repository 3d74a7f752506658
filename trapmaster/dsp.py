"""DSP building blocks: stateful biquad cascades, zero-phase splits, dynamics.

Every stateful processor here is a small object holding its coefficients and
its delay-line / envelope state, advanced by `process(block)` where `block`
is a float64 array shaped (channels, samples). Calling `process` twice on two
halves of a signal gives the same result as one call on the whole signal.
"""
from __future__ import annotations

import math
from typing import List, Optional, Sequence

import numpy as np
from scipy.signal import butter, sosfilt, sosfiltfilt

from .types import Bell, EQNodeSpec, HighPass, HighShelf, LowShelf

# Corner frequencies are pulled below this fraction of the sample rate.
MAX_FREQ_FRACTION = 0.45
MIN_FREQ_HZ = 1.0
_SMOOTH_CHUNK = 1024


def safe_freq(freq: float, sr: int) -> float:
    return float(min(max(freq, MIN_FREQ_HZ), MAX_FREQ_FRACTION * sr))


def db_to_gain(db: float) -> float:
    return float(10.0 ** (db / 20.0))


def _db(x: np.ndarray, eps: float = 1e-12) -> np.ndarray:
    return 20.0 * np.log10(np.maximum(np.abs(x), eps))


# ================================
# Biquad design (RBJ audio EQ cookbook)
# ================================

def _normalize(b0, b1, b2, a0, a1, a2) -> np.ndarray:
    return np.array([[b0 / a0, b1 / a0, b2 / a0, 1.0, a1 / a0, a2 / a0]], dtype=np.float64)


def biquad_highpass(freq: float, q: float, sr: int) -> np.ndarray:
    w0 = 2.0 * math.pi * safe_freq(freq, sr) / sr
    cos_w, alpha = math.cos(w0), math.sin(w0) / (2.0 * q)
    return _normalize(
        (1.0 + cos_w) / 2.0, -(1.0 + cos_w), (1.0 + cos_w) / 2.0,
        1.0 + alpha, -2.0 * cos_w, 1.0 - alpha,
    )


def biquad_lowpass(freq: float, q: float, sr: int) -> np.ndarray:
    w0 = 2.0 * math.pi * safe_freq(freq, sr) / sr
    cos_w, alpha = math.cos(w0), math.sin(w0) / (2.0 * q)
    return _normalize(
        (1.0 - cos_w) / 2.0, 1.0 - cos_w, (1.0 - cos_w) / 2.0,
        1.0 + alpha, -2.0 * cos_w, 1.0 - alpha,
    )


def biquad_peaking(freq: float, gain_db: float, q: float, sr: int) -> np.ndarray:
    w0 = 2.0 * math.pi * safe_freq(freq, sr) / sr
    a = 10.0 ** (gain_db / 40.0)
    cos_w, alpha = math.cos(w0), math.sin(w0) / (2.0 * q)
    return _normalize(
        1.0 + alpha * a, -2.0 * cos_w, 1.0 - alpha * a,
        1.0 + alpha / a, -2.0 * cos_w, 1.0 - alpha / a,
    )


def biquad_lowshelf(freq: float, gain_db: float, q: float, sr: int) -> np.ndarray:
    w0 = 2.0 * math.pi * safe_freq(freq, sr) / sr
    a = 10.0 ** (gain_db / 40.0)
    cos_w, alpha = math.cos(w0), math.sin(w0) / (2.0 * q)
    k = 2.0 * math.sqrt(a) * alpha
    return _normalize(
        a * ((a + 1.0) - (a - 1.0) * cos_w + k),
        2.0 * a * ((a - 1.0) - (a + 1.0) * cos_w),
        a * ((a + 1.0) - (a - 1.0) * cos_w - k),
        (a + 1.0) + (a - 1.0) * cos_w + k,
        -2.0 * ((a - 1.0) + (a + 1.0) * cos_w),
        (a + 1.0) + (a - 1.0) * cos_w - k,
    )


def biquad_highshelf(freq: float, gain_db: float, q: float, sr: int) -> np.ndarray:
    w0 = 2.0 * math.pi * safe_freq(freq, sr) / sr
    a = 10.0 ** (gain_db / 40.0)
    cos_w, alpha = math.cos(w0), math.sin(w0) / (2.0 * q)
    k = 2.0 * math.sqrt(a) * alpha
    return _normalize(
        a * ((a + 1.0) + (a - 1.0) * cos_w + k),
        -2.0 * a * ((a - 1.0) + (a + 1.0) * cos_w),
        a * ((a + 1.0) + (a - 1.0) * cos_w - k),
        (a + 1.0) - (a - 1.0) * cos_w + k,
        2.0 * ((a - 1.0) - (a + 1.0) * cos_w),
        (a + 1.0) - (a - 1.0) * cos_w - k,
    )


def butter_sos(filter_type: str, cutoff_hz: float, sr: int, order: int = 2) -> np.ndarray:
    """Butterworth sections; `filter_type` is "lowpass" or "highpass"."""
    return butter(order, safe_freq(cutoff_hz, sr), btype=filter_type, fs=sr, output="sos")


def eq_node_sos(node: EQNodeSpec, sr: int) -> np.ndarray:
    """Second-order sections for one EQ node.

    A `HighPass` with order 2 is two identical biquads in series, which
    approximates a 4th-order slope at the same corner.
    """
    if isinstance(node, HighPass):
        section = biquad_highpass(node.freq, node.q, sr)
        return np.vstack([section] * int(node.order))
    if isinstance(node, LowShelf):
        return biquad_lowshelf(node.freq, node.gain_db, node.q, sr)
    if isinstance(node, HighShelf):
        return biquad_highshelf(node.freq, node.gain_db, node.q, sr)
    if isinstance(node, Bell):
        return biquad_peaking(node.freq, node.gain_db, node.q, sr)
    raise TypeError(f"unknown EQ node {node!r}")


# ================================
# Stateful filter struct
# ================================

class SOSFilter:
    """Cascade of second-order sections with per-channel delay-line state."""

    def __init__(self, sos: np.ndarray, channels: int, name: str = "filter") -> None:
        self.sos = np.atleast_2d(np.asarray(sos, dtype=np.float64))
        self.channels = int(channels)
        self.name = name
        self.zi = np.zeros((self.sos.shape[0], self.channels, 2), dtype=np.float64)

    @classmethod
    def chain(cls, sections: Sequence[np.ndarray], channels: int, name: str = "filter") -> "SOSFilter":
        return cls(np.vstack(list(sections)), channels, name=name)

    def reset(self) -> None:
        self.zi[...] = 0.0

    def process(self, block: np.ndarray) -> np.ndarray:
        y, self.zi = sosfilt(self.sos, block, axis=-1, zi=self.zi)
        return y

    def __repr__(self) -> str:
        return f"SOSFilter({self.name!r}, sections={self.sos.shape[0]})"


# ================================
# Zero-phase helpers (whole-buffer, offline)
# ================================

def _filtfilt(sos: np.ndarray, x: np.ndarray) -> np.ndarray:
    # default scipy padding, shortened for very short clips
    padlen = min(3 * (2 * len(sos) + 1), x.shape[-1] - 1)
    return sosfiltfilt(sos, x, axis=-1, padlen=padlen)


def lowpass(x: np.ndarray, sr: int, cutoff_hz: float, order: int = 4) -> np.ndarray:
    return _filtfilt(butter_sos("lowpass", cutoff_hz, sr, order), x)


def highpass(x: np.ndarray, sr: int, cutoff_hz: float, order: int = 4) -> np.ndarray:
    return _filtfilt(butter_sos("highpass", cutoff_hz, sr, order), x)


# ================================
# Dynamics
# ================================

def static_gain_db(level_db: np.ndarray, threshold_db: float, ratio: float, knee_db: float) -> np.ndarray:
    """Gain change (<= 0 dB) of a soft-knee downward compressor.

    Below the knee nothing happens, above it the slope is 1/ratio, and inside
    a knee of width `knee_db` the curve is the usual quadratic blend.
    """
    over = level_db - threshold_db
    slope = 1.0 / max(ratio, 1.0) - 1.0
    hard = np.where(over > 0.0, slope * over, 0.0)
    if knee_db <= 0.0:
        return hard
    half = knee_db / 2.0
    soft = slope * (over + half) ** 2 / (2.0 * knee_db)
    return np.where(over <= -half, 0.0, np.where(over >= half, hard, soft))


def _time_coeff(seconds: float, sr: int) -> float:
    return math.exp(-1.0 / (max(seconds, 1e-6) * sr))


def smooth_gain(target_db: np.ndarray, attack: float, release: float, state: float = 0.0) -> np.ndarray:
    """One-pole attack/release smoothing of a gain-reduction curve (dB).

    Moving further into reduction uses the attack coefficient, recovering
    uses the release coefficient. `state` is the value before the first sample.

    The recursion switches coefficient per sample, so it runs as a Python loop
    (roughly 0.1 us per sample and compressor). Chunks where the target never
    leaves 0 dB are a plain release decay and are computed in closed form,
    which is the common case for the limiter and for bands below threshold.
    """
    target_db = np.asarray(target_db, dtype=np.float64)
    out = np.empty(len(target_db), dtype=np.float64)
    g = float(state)
    for start in range(0, len(target_db), _SMOOTH_CHUNK):
        chunk = target_db[start:start + _SMOOTH_CHUNK]
        stop = start + len(chunk)
        if not np.any(chunk < 0.0):
            # targets are never positive, so this is g * release^k
            out[start:stop] = g * release ** np.arange(1, len(chunk) + 1, dtype=np.float64)
            g = float(out[stop - 1])
            continue
        for i, t in enumerate(chunk.tolist(), start):
            if t < g:
                g = attack * g + (1.0 - attack) * t
            else:
                g = release * g + (1.0 - release) * t
            out[i] = g
    return out


class Compressor:
    """Feed-forward, stereo-linked peak compressor.

    The detector looks at the loudest channel per sample, so all channels get
    the same gain and the stereo image does not shift. An optional
    `sidechain` filter only shapes what the detector hears.
    """

    def __init__(
        self,
        sr: int,
        threshold_db: float,
        ratio: float,
        knee_db: float = 0.0,
        attack_sec: float = 0.010,
        release_sec: float = 0.100,
        sidechain: Optional[SOSFilter] = None,
        name: str = "compressor",
    ) -> None:
        self.sr = int(sr)
        self.threshold_db = float(threshold_db)
        self.ratio = float(ratio)
        self.knee_db = float(knee_db)
        self.attack = _time_coeff(attack_sec, self.sr)
        self.release = _time_coeff(release_sec, self.sr)
        self.sidechain = sidechain
        self.name = name
        self.gain_state_db = 0.0

    def reset(self) -> None:
        self.gain_state_db = 0.0
        if self.sidechain is not None:
            self.sidechain.reset()

    def gain_reduction_db(self, block: np.ndarray) -> np.ndarray:
        detector = self.sidechain.process(block) if self.sidechain is not None else block
        level_db = _db(np.max(np.abs(detector), axis=0))
        target = static_gain_db(level_db, self.threshold_db, self.ratio, self.knee_db)
        gr = smooth_gain(target, self.attack, self.release, self.gain_state_db)
        if gr.size:
            self.gain_state_db = float(gr[-1])
        return gr

    def process(self, block: np.ndarray) -> np.ndarray:
        gain = 10.0 ** (self.gain_reduction_db(block) / 20.0)
        return block * gain[np.newaxis, :]

    def __repr__(self) -> str:
        return f"Compressor({self.name!r}, thr={self.threshold_db:.1f}dB, ratio={self.ratio:.2f})"


class Gain:
    """Flat gain stage."""

    def __init__(self, gain_db: float, name: str = "gain") -> None:
        self.gain_db = float(gain_db)
        self.linear = db_to_gain(gain_db)
        self.name = name

    def process(self, block: np.ndarray) -> np.ndarray:
        return block * self.linear

    def __repr__(self) -> str:
        return f"Gain({self.name!r}, {self.gain_db:+.2f}dB)"


def filters_for_eq(nodes: Sequence[EQNodeSpec], sr: int, channels: int) -> List[SOSFilter]:
    return [
        SOSFilter(eq_node_sos(node, sr), channels, name=type(node).__name__.lower())
        for node in nodes
    ]
