"""Shared datatypes for the mastering engine.

These dataclasses keep interfaces clear between modules: the spec builder
produces a `PresetDSP`, the graph builder consumes it, and the render
orchestrator passes `AudioBuffer`s and `RenderContext`s between the stages.
Everything here is immutable configuration or immutable audio.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Literal, Optional, Tuple, Union

import numpy as np

from .errors import InvalidInput


# ================================
# Audio
# ================================

@dataclass(frozen=True)
class AudioBuffer:
    """Decoded audio shaped (channels, samples), float32, read-only.

    Build instances through `from_array`, which validates and copies the
    input so that the caller's array is never aliased or mutated.
    """

    data: np.ndarray
    sample_rate: int

    @classmethod
    def from_array(cls, array: np.ndarray, sample_rate: int) -> "AudioBuffer":
        arr = np.asarray(array)
        if arr.ndim == 1:
            arr = arr[np.newaxis, :]
        if arr.ndim != 2:
            raise InvalidInput(f"expected (channels, samples) audio, got shape {arr.shape}")
        if arr.shape[0] == 0 or arr.shape[1] == 0:
            raise InvalidInput(f"audio buffer is empty: shape {arr.shape}")
        try:
            rate = int(sample_rate)
        except (TypeError, ValueError) as exc:
            raise InvalidInput(f"sample rate must be an integer, got {sample_rate!r}") from exc
        if rate <= 0:
            raise InvalidInput(f"sample rate must be positive, got {sample_rate}")
        if not np.issubdtype(arr.dtype, np.number) or np.issubdtype(arr.dtype, np.complexfloating):
            raise InvalidInput(f"audio samples must be real numbers, got {arr.dtype}")
        data = np.array(arr, dtype=np.float32, copy=True)
        if not np.all(np.isfinite(data)):
            raise InvalidInput("audio buffer contains NaN or infinite samples")
        data.setflags(write=False)
        return cls(data=data, sample_rate=rate)

    @property
    def channels(self) -> int:
        return int(self.data.shape[0])

    @property
    def samples(self) -> int:
        return int(self.data.shape[1])

    @property
    def duration(self) -> float:
        return self.samples / float(self.sample_rate)


# ================================
# EQ nodes (tagged variant)
# ================================

@dataclass(frozen=True)
class HighPass:
    freq: float
    order: Literal[1, 2] = 1
    q: float = 0.707


@dataclass(frozen=True)
class LowShelf:
    freq: float
    gain_db: float
    q: float = 0.707


@dataclass(frozen=True)
class HighShelf:
    freq: float
    gain_db: float
    q: float = 0.707


@dataclass(frozen=True)
class Bell:
    freq: float
    gain_db: float
    q: float = 1.0


EQNodeSpec = Union[HighPass, LowShelf, HighShelf, Bell]


# ================================
# Dynamics
# ================================

@dataclass(frozen=True)
class BandCompSpec:
    """Compressor settings for one multiband band.

    Attributes:
        ratio: Compression ratio above threshold (1.0 = no compression).
        threshold_db: Detector level where gain reduction starts.
        knee_db: Width of the soft knee centred on the threshold.
        attack_sec: Time constant when gain reduction increases.
        release_sec: Time constant when gain reduction recovers.
    """

    ratio: float
    threshold_db: float
    knee_db: float
    attack_sec: float
    release_sec: float


@dataclass(frozen=True)
class MultibandSpec:
    """Four crossovers splitting the spectrum into exactly five bands."""

    crossovers: Tuple[float, float, float, float]
    bands: Tuple[BandCompSpec, BandCompSpec, BandCompSpec, BandCompSpec, BandCompSpec]


@dataclass(frozen=True)
class BusCompSpec:
    """Wide-band compressor applied before the band split.

    `sidechain_hpf_hz` only filters the detector input; the audio path is
    left untouched by it.
    """

    ratio: float
    threshold_db: float
    knee_db: float
    attack_sec: float
    release_sec: float
    sidechain_hpf_hz: Optional[float] = None


@dataclass(frozen=True)
class LimiterSpec:
    threshold_db: float = -1.0
    ratio: float = 20.0
    knee_db: float = 0.0
    attack_sec: float = 0.001
    release_sec: float = 0.100


# ================================
# Stereo / output
# ================================

@dataclass(frozen=True)
class HighWidthSpec:
    """Extra width (percent) applied only above `freq`."""

    freq: float
    width: float


@dataclass(frozen=True)
class StereoSpec:
    """Mid/side shaping. Widths are percentages, 100 = unity."""

    overall_width: float = 100.0
    mono_below_hz: Optional[float] = None
    width_high_only: Optional[HighWidthSpec] = None


@dataclass(frozen=True)
class OutputSpec:
    target_lufs: float = -14.0
    ceiling_db: float = -0.5
    limiter: LimiterSpec = LimiterSpec()
    trim_clamp_db: Tuple[float, float] = (-20.0, 20.0)


@dataclass(frozen=True)
class PresetDSP:
    """Fully resolved processing configuration for one render request."""

    preset_id: str
    eq: Tuple[EQNodeSpec, ...]
    multiband: MultibandSpec
    stereo: StereoSpec
    output: OutputSpec
    bus_comp: Optional[BusCompSpec] = None
    special: Optional[str] = None


# ================================
# Render bookkeeping
# ================================

class RenderPass(str, enum.Enum):
    ANALYSIS = "analysis"
    FINAL = "final"


class RenderState(str, enum.Enum):
    IDLE = "idle"
    ANALYSIS_RENDER = "analysis_render"
    MEASURING = "measuring"
    TRIM_COMPUTED = "trim_computed"
    FINAL_RENDER = "final_render"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class RenderContext:
    """Per-invocation state. `trim_db` is only read in the final pass."""

    pass_mode: RenderPass
    trim_db: float = 0.0
    token: int = 0


GatingStage = Literal["relative", "ungated", "floor"]


@dataclass(frozen=True)
class LoudnessReport:
    """Integrated loudness (LUFS) and estimated true peak (dBFS).

    `gating` names the stage of the fallback cascade that produced
    `integrated_lufs`; "relative" is the normal, fully gated result.
    """

    integrated_lufs: float
    true_peak_db: float
    gating: GatingStage


@dataclass(frozen=True)
class RenderResult:
    buffer: AudioBuffer
    spec: PresetDSP
    analysis: LoudnessReport
    final: LoudnessReport
    trim_db: float
    token: int
    auto_tune: bool = False
