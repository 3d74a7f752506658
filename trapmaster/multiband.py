"""Five-band compressor built on cascaded Butterworth crossovers.

Band layout for crossovers (f1, f2, f3, f4):

    low      = LP(f1)
    low-mid  = HP(f1) -> LP(f2)
    mid      = HP(f2) -> LP(f3)
    high-mid = HP(f3) -> LP(f4)
    high     = HP(f4)

Each LP/HP is a single 2nd-order Butterworth section, so neighbouring bands
overlap around every crossover. Linear-phase splitting is not attempted.
"""
from __future__ import annotations

from typing import List

import numpy as np

from .dsp import Compressor, SOSFilter, butter_sos
from .types import MultibandSpec

BAND_NAMES = ("low", "low_mid", "mid", "high_mid", "high")


class MultibandCompressor:
    """Split into five bands, compress each one, sum with unity gain."""

    def __init__(self, spec: MultibandSpec, sr: int, channels: int) -> None:
        self.spec = spec
        self.sr = int(sr)
        xo = spec.crossovers
        self.splits: List[List[SOSFilter]] = []
        for idx in range(len(BAND_NAMES)):
            filters: List[SOSFilter] = []
            if idx > 0:
                filters.append(SOSFilter(butter_sos("highpass", xo[idx - 1], sr, 2), channels, f"hp{xo[idx - 1]:g}"))
            if idx < len(xo):
                filters.append(SOSFilter(butter_sos("lowpass", xo[idx], sr, 2), channels, f"lp{xo[idx]:g}"))
            self.splits.append(filters)
        self.compressors = [
            Compressor(
                sr,
                threshold_db=band.threshold_db,
                ratio=band.ratio,
                knee_db=band.knee_db,
                attack_sec=band.attack_sec,
                release_sec=band.release_sec,
                name=name,
            )
            for name, band in zip(BAND_NAMES, spec.bands)
        ]
        self.name = "multiband"

    def split(self, block: np.ndarray) -> List[np.ndarray]:
        bands = []
        for filters in self.splits:
            y = block
            for flt in filters:
                y = flt.process(y)
            bands.append(y)
        return bands

    def process(self, block: np.ndarray) -> np.ndarray:
        out = np.zeros_like(block)
        for band, comp in zip(self.split(block), self.compressors):
            out += comp.process(band)
        return out

    def __repr__(self) -> str:
        return f"MultibandCompressor(crossovers={self.spec.crossovers})"
