"""Mid/side stereo shaping.

    mid  = (L + R) / 2
    side = (L - R) / 2

The side signal is scaled by the overall width, gets an extra width delta
above an optional high-only corner, and loses everything below
`mono_below_hz` so the low end collapses to mono. The band splits use the
zero-phase Butterworth helpers from `dsp`, so the low side removed here is
exactly in phase with what remains and nothing smears in mono playback.
"""
from __future__ import annotations

import numpy as np

from . import dsp
from .types import StereoSpec

WIDTH_LIMITS = (0.5, 1.6)
SPLIT_ORDER = 4


def width_scale(percent: float) -> float:
    lo, hi = WIDTH_LIMITS
    return float(min(max(percent / 100.0, lo), hi))


def mid_side(block: np.ndarray):
    left, right = block[0], block[1]
    return 0.5 * (left + right), 0.5 * (left - right)


class StereoShaper:
    def __init__(self, spec: StereoSpec, sr: int) -> None:
        self.spec = spec
        self.sr = int(sr)
        self.name = "stereo"

    def process(self, block: np.ndarray) -> np.ndarray:
        if block.shape[0] < 2:
            return block
        spec = self.spec
        mid, side_in = mid_side(block)
        overall = width_scale(spec.overall_width)
        side = side_in * overall

        if spec.width_high_only is not None:
            delta = width_scale(spec.width_high_only.width) - overall
            if delta != 0.0:
                side = side + delta * dsp.highpass(side_in, self.sr, spec.width_high_only.freq, SPLIT_ORDER)

        if spec.mono_below_hz is not None:
            low_side = dsp.lowpass(side, self.sr, spec.mono_below_hz, SPLIT_ORDER)
            side = side - low_side

        out = np.array(block, copy=True)
        out[0] = mid + side
        out[1] = mid - side
        return out

    def __repr__(self) -> str:
        return f"StereoShaper({self.spec})"
