"""Loudness and true-peak estimation without an external meter.

Integrated loudness follows the shape of ITU-R BS.1770 but is an
approximation, not a certified meter:

- K-weighting is approximated by a 60 Hz high-pass followed by a +4 dB high
  shelf at 4 kHz.
- 400 ms blocks at a 100 ms hop; block power is the per-channel mean square
  summed over channels; loudness = -0.691 + 10*log10(power).
- Absolute gate at -70 LUFS, then a relative gate 10 LU under the
  absolute-gated estimate.
- If the absolute gate removes every block, the ungated estimate is
  reported. Digital silence reports -70 LUFS.

True peak is estimated with 4x linear interpolation between neighbouring
samples. Linear interpolation never overshoots its endpoints, so this is the
sample peak in practice; it is a conservative stand-in for a polyphase
oversampling meter, not a replacement for one.
"""
from __future__ import annotations

import logging
from typing import Tuple, Union

import numpy as np

from .dsp import SOSFilter, biquad_highpass, biquad_highshelf
from .errors import MeasurementDegenerate
from .types import AudioBuffer, GatingStage, LoudnessReport

logger = logging.getLogger(__name__)

BLOCK_SEC = 0.400
HOP_SEC = 0.100
CALIBRATION_DB = -0.691
ABSOLUTE_GATE_LUFS = -70.0
RELATIVE_GATE_LU = -10.0
OVERSAMPLE = 4
_PEAK_CHUNK = 1 << 18
_EPS = 1e-12


# ================================
# K-weighting and block powers
# ================================

def k_weight(data: np.ndarray, sr: int) -> np.ndarray:
    """Approximate K-weighting of a (channels, samples) array."""
    flt = SOSFilter.chain(
        [biquad_highpass(60.0, 0.707, sr), biquad_highshelf(4000.0, 4.0, 0.707, sr)],
        channels=data.shape[0],
        name="k-weighting",
    )
    return flt.process(np.asarray(data, dtype=np.float64))


def block_powers(weighted: np.ndarray, sr: int) -> np.ndarray:
    """Channel-summed mean-square power of every 400 ms block.

    Clips shorter than one block are measured as a single block spanning
    the whole clip.
    """
    n = weighted.shape[1]
    block = max(1, int(round(BLOCK_SEC * sr)))
    hop = max(1, int(round(HOP_SEC * sr)))
    sq = weighted * weighted
    if n < block:
        return np.atleast_1d(np.sum(np.mean(sq, axis=1)))
    csum = np.concatenate([np.zeros((sq.shape[0], 1)), np.cumsum(sq, axis=1)], axis=1)
    starts = np.arange(0, n - block + 1, hop)
    per_channel = (csum[:, starts + block] - csum[:, starts]) / block
    return np.sum(per_channel, axis=0)


def _to_lufs(power: Union[float, np.ndarray]) -> np.ndarray:
    return CALIBRATION_DB + 10.0 * np.log10(np.maximum(power, _EPS))


def _gate(powers: np.ndarray, threshold_lufs: float, stage: str) -> np.ndarray:
    keep = _to_lufs(powers) > threshold_lufs
    if not np.any(keep):
        raise MeasurementDegenerate(stage)
    return powers[keep]


def gated_loudness(powers: np.ndarray) -> Tuple[float, GatingStage]:
    """Apply the absolute and relative gates with the fallback cascade.

    The relative gate never empties the block set: it sits 10 LU under the
    mean of the absolute-gated blocks, and the loudest of them is at or above
    that mean. Only the absolute gate can remove everything, in which case the
    ungated mean is reported; digital silence reports the -70 LUFS gate value.
    """
    try:
        abs_powers = _gate(powers, ABSOLUTE_GATE_LUFS, "absolute")
    except MeasurementDegenerate as exc:
        if not np.any(powers > 0.0):
            logger.debug("%s; silent input, reporting %.1f LUFS", exc, ABSOLUTE_GATE_LUFS)
            return ABSOLUTE_GATE_LUFS, "floor"
        ungated = float(_to_lufs(np.mean(powers)))
        logger.debug("%s; falling back to ungated estimate %.2f LUFS", exc, ungated)
        return ungated, "ungated"

    abs_value = float(_to_lufs(np.mean(abs_powers)))
    keep = _to_lufs(abs_powers) > abs_value + RELATIVE_GATE_LU
    return float(_to_lufs(np.mean(abs_powers[keep]))), "relative"


def integrated_loudness(data: np.ndarray, sr: int) -> Tuple[float, GatingStage]:
    weighted = k_weight(data, sr)
    return gated_loudness(block_powers(weighted, sr))


# ================================
# True peak
# ================================

def true_peak(data: np.ndarray, oversample: int = OVERSAMPLE) -> float:
    """Largest absolute value of the linearly interpolated signal (linear)."""
    x = np.asarray(data, dtype=np.float64)
    if x.ndim == 1:
        x = x[np.newaxis, :]
    peak = float(np.max(np.abs(x[:, -1]))) if x.size else 0.0
    frac = np.arange(oversample, dtype=np.float64) / oversample
    n = x.shape[1]
    for ch in range(x.shape[0]):
        for start in range(0, n - 1, _PEAK_CHUNK):
            stop = min(start + _PEAK_CHUNK, n - 1)
            a = x[ch, start:stop, np.newaxis]
            b = x[ch, start + 1:stop + 1, np.newaxis]
            interp = a + (b - a) * frac
            peak = max(peak, float(np.max(np.abs(interp))))
    return peak


def true_peak_db(data: np.ndarray) -> float:
    return float(20.0 * np.log10(max(true_peak(data), _EPS)))


def measure(buffer: AudioBuffer) -> LoudnessReport:
    """Integrated loudness and true peak of a rendered buffer."""
    lufs, stage = integrated_loudness(buffer.data, buffer.sample_rate)
    return LoudnessReport(integrated_lufs=lufs, true_peak_db=true_peak_db(buffer.data), gating=stage)
