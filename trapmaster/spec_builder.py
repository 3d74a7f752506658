"""DSP spec builder: (preset id, sliders) -> PresetDSP.

This is the single place where slider input is sanitized. Every gain, ratio,
frequency and time constant is clamped to LIMITS before it lands in the spec,
and downstream stages trust the spec's values. `validate_spec` re-checks a
finished spec against the same table; it should never find anything.

Mapping summary
---------------
- EQ: 30 Hz high-pass (two cascaded biquads), low shelf 120 Hz (bass),
  bell 1.5 kHz Q 1.1 (mid), high shelf 12 kHz (high), each gain within +-6 dB.
- Multiband: one compression amount in [1.5, 7] drives all five bands. Low
  bands get steeper ratio slopes and lower thresholds than high bands.
- Stereo: picked by preset intent, always mono below 120 Hz.
- Output: -14 LUFS integrated, -0.5 dBFS ceiling, ratio 20 limiter.

Presets listed in OVERRIDES replace whole fields with hand-tuned values.
"""
from __future__ import annotations

import dataclasses
import logging
from typing import Dict, List, Optional, Tuple

from .errors import UnsafeParameter
from .presets import Sliders
from .types import (
    BandCompSpec,
    Bell,
    BusCompSpec,
    EQNodeSpec,
    HighPass,
    HighShelf,
    HighWidthSpec,
    LimiterSpec,
    LowShelf,
    MultibandSpec,
    OutputSpec,
    PresetDSP,
    StereoSpec,
)

logger = logging.getLogger(__name__)

LIMITS: Dict[str, Tuple[float, float]] = {
    "tone_db": (-6.0, 6.0),
    "eq_gain_db": (-12.0, 12.0),
    "freq_hz": (20.0, 20000.0),
    "q": (0.3, 8.0),
    "compression": (1.5, 7.0),
    "ratio": (1.0, 20.0),
    "threshold_db": (-60.0, 0.0),
    "knee_db": (0.0, 24.0),
    "attack_sec": (0.001, 0.250),
    "release_sec": (0.030, 0.500),
    "width_pct": (50.0, 160.0),
    "target_lufs": (-30.0, -5.0),
    "ceiling_db": (-6.0, 0.0),
    "trim_db": (-30.0, 30.0),
}

CROSSOVERS_HZ = (120.0, 400.0, 2500.0, 6000.0)
MONO_BELOW_HZ = 120.0

# Per band: low, low-mid, mid, high-mid, high
_RATIO_SLOPES = (0.90, 0.75, 0.60, 0.50, 0.40)
_RATIO_FLOORS = (1.6, 1.5, 1.4, 1.3, 1.2)
_RATIO_CEILINGS = (8.0, 6.5, 5.0, 4.0, 3.0)
_THRESHOLD_NUDGES_DB = (-2.0, -1.0, 0.0, 1.0, 2.0)
_ATTACKS_SEC = (0.030, 0.020, 0.012, 0.008, 0.005)
_RELEASES_SEC = (0.250, 0.200, 0.160, 0.120, 0.090)
_BAND_KNEE_DB = 6.0

STEREO_BY_INTENT: Dict[str, StereoSpec] = {
    "focus": StereoSpec(overall_width=85.0, mono_below_hz=MONO_BELOW_HZ),
    "wide": StereoSpec(
        overall_width=130.0,
        mono_below_hz=MONO_BELOW_HZ,
        width_high_only=HighWidthSpec(freq=6000.0, width=150.0),
    ),
    "immersive": StereoSpec(
        overall_width=115.0,
        mono_below_hz=MONO_BELOW_HZ,
        width_high_only=HighWidthSpec(freq=8000.0, width=125.0),
    ),
}
DEFAULT_STEREO = StereoSpec(overall_width=105.0, mono_below_hz=MONO_BELOW_HZ)

DEFAULT_OUTPUT = OutputSpec(
    target_lufs=-14.0,
    ceiling_db=-0.5,
    limiter=LimiterSpec(threshold_db=-1.0, ratio=20.0, knee_db=0.0, attack_sec=0.001, release_sec=0.100),
    trim_clamp_db=(-20.0, 20.0),
)


def _tone_eq(bass: float, mid: float, high: float, mid_freq: float = 1500.0, mid_q: float = 1.1,
             notches: Tuple[EQNodeSpec, ...] = ()) -> Tuple[EQNodeSpec, ...]:
    return (
        HighPass(freq=30.0, order=2, q=0.707),
        *notches,
        LowShelf(freq=120.0, gain_db=bass),
        Bell(freq=mid_freq, gain_db=mid, q=mid_q),
        HighShelf(freq=12000.0, gain_db=high),
    )


# Hand-tuned fields; any field given here wins over the slider baseline.
OVERRIDES: Dict[str, Dict[str, object]] = {
    "smoothmids": {"eq": _tone_eq(1, 2, 0, mid_freq=800.0, mid_q=1.0,
                                  notches=(Bell(freq=3500.0, gain_db=-2.0, q=2.0),))},
    "dynamic": {"output": dataclasses.replace(DEFAULT_OUTPUT, target_lufs=-16.0)},
    "maximpact": {
        "eq": _tone_eq(3, 2, 2, mid_freq=2000.0, mid_q=1.0),
        "bus_comp": BusCompSpec(ratio=2.0, threshold_db=-16.0, knee_db=6.0,
                                attack_sec=0.030, release_sec=0.150, sidechain_hpf_hz=100.0),
    },
    "modern": {"eq": _tone_eq(0, 0, 3, notches=(Bell(freq=5000.0, gain_db=-1.5, q=1.5),))},
    "lofi": {"bus_comp": BusCompSpec(ratio=3.0, threshold_db=-20.0, knee_db=3.0,
                                     attack_sec=0.005, release_sec=0.080)},
    "neosoul": {"eq": _tone_eq(3, 3, -1, mid_freq=600.0, mid_q=1.0)},
    "festival": {"bus_comp": BusCompSpec(ratio=2.5, threshold_db=-18.0, knee_db=6.0,
                                         attack_sec=0.030, release_sec=0.150, sidechain_hpf_hz=120.0)},
    "focus": {"eq": _tone_eq(2, 3, 0, mid_freq=1000.0, mid_q=1.0)},
    "vocalforward": {"eq": _tone_eq(0, 4, 1, mid_freq=3000.0, mid_q=1.0,
                                    notches=(Bell(freq=250.0, gain_db=-2.0, q=1.0),))},
    "bigcappo": {"eq": _tone_eq(3, 3, 1, mid_freq=800.0, mid_q=1.0)},
    "deharsh": {"eq": _tone_eq(0, 0, -2, notches=(Bell(freq=4000.0, gain_db=-4.0, q=2.5),))},
    "mudremover": {"eq": _tone_eq(-1, 1, 1, notches=(Bell(freq=250.0, gain_db=-3.0, q=1.5),))},
}


# ================================
# Sanitizing
# ================================

def clamp(value: float, key: str) -> float:
    lo, hi = LIMITS[key]
    return float(min(max(float(value), lo), hi))


def _sanitize_node(node: EQNodeSpec) -> EQNodeSpec:
    if isinstance(node, HighPass):
        return HighPass(freq=clamp(node.freq, "freq_hz"), order=2 if node.order >= 2 else 1,
                        q=clamp(node.q, "q"))
    return type(node)(freq=clamp(node.freq, "freq_hz"), gain_db=clamp(node.gain_db, "eq_gain_db"),
                      q=clamp(node.q, "q"))


def _sanitize_band(band: BandCompSpec) -> BandCompSpec:
    return BandCompSpec(
        ratio=clamp(band.ratio, "ratio"),
        threshold_db=clamp(band.threshold_db, "threshold_db"),
        knee_db=clamp(band.knee_db, "knee_db"),
        attack_sec=clamp(band.attack_sec, "attack_sec"),
        release_sec=clamp(band.release_sec, "release_sec"),
    )


def _sanitize_bus(bus: Optional[BusCompSpec]) -> Optional[BusCompSpec]:
    if bus is None:
        return None
    sc = bus.sidechain_hpf_hz
    return BusCompSpec(
        ratio=clamp(bus.ratio, "ratio"),
        threshold_db=clamp(bus.threshold_db, "threshold_db"),
        knee_db=clamp(bus.knee_db, "knee_db"),
        attack_sec=clamp(bus.attack_sec, "attack_sec"),
        release_sec=clamp(bus.release_sec, "release_sec"),
        sidechain_hpf_hz=None if sc is None else clamp(sc, "freq_hz"),
    )


def _sanitize_stereo(stereo: StereoSpec) -> StereoSpec:
    high = stereo.width_high_only
    return StereoSpec(
        overall_width=clamp(stereo.overall_width, "width_pct"),
        mono_below_hz=None if stereo.mono_below_hz is None else clamp(stereo.mono_below_hz, "freq_hz"),
        width_high_only=None if high is None else HighWidthSpec(
            freq=clamp(high.freq, "freq_hz"), width=clamp(high.width, "width_pct")
        ),
    )


def _sanitize_output(output: OutputSpec) -> OutputSpec:
    lim = output.limiter
    lo, hi = sorted((clamp(output.trim_clamp_db[0], "trim_db"), clamp(output.trim_clamp_db[1], "trim_db")))
    return OutputSpec(
        target_lufs=clamp(output.target_lufs, "target_lufs"),
        ceiling_db=clamp(output.ceiling_db, "ceiling_db"),
        limiter=LimiterSpec(
            threshold_db=clamp(lim.threshold_db, "threshold_db"),
            ratio=clamp(lim.ratio, "ratio"),
            knee_db=clamp(lim.knee_db, "knee_db"),
            attack_sec=clamp(lim.attack_sec, "attack_sec"),
            release_sec=clamp(lim.release_sec, "release_sec"),
        ),
        trim_clamp_db=(lo, hi),
    )


# ================================
# Baseline (slider-derived)
# ================================

def baseline_eq(sliders: Sliders) -> Tuple[EQNodeSpec, ...]:
    return _tone_eq(clamp(sliders.bass, "tone_db"), clamp(sliders.mid, "tone_db"), clamp(sliders.high, "tone_db"))


def baseline_multiband(compression: float) -> MultibandSpec:
    c = clamp(compression, "compression")
    base_threshold = -18.0 - 2.0 * (c - 1.5)
    bands = []
    for slope, floor, ceiling, nudge, attack, release in zip(
        _RATIO_SLOPES, _RATIO_FLOORS, _RATIO_CEILINGS, _THRESHOLD_NUDGES_DB, _ATTACKS_SEC, _RELEASES_SEC
    ):
        ratio = min(max(1.0 + slope * (c - 1.0), floor), ceiling)
        bands.append(BandCompSpec(
            ratio=ratio,
            threshold_db=base_threshold + nudge,
            knee_db=_BAND_KNEE_DB,
            attack_sec=attack,
            release_sec=release,
        ))
    return MultibandSpec(crossovers=CROSSOVERS_HZ, bands=tuple(bands))


def baseline_stereo(preset_id: str) -> StereoSpec:
    return STEREO_BY_INTENT.get(preset_id, DEFAULT_STEREO)


def build_spec(preset_id: str, sliders: Sliders) -> PresetDSP:
    """Resolve a preset into a complete, sanitized `PresetDSP`.

    Total for any sliders; the preset id only selects overrides and the
    stereo intent, so validating it is the caller's job.
    """
    override = OVERRIDES.get(preset_id, {})
    eq = override.get("eq", baseline_eq(sliders))
    multiband = override.get("multiband", baseline_multiband(sliders.compression))
    bus_comp = override.get("bus_comp", None)
    stereo = override.get("stereo", baseline_stereo(preset_id))
    output = override.get("output", DEFAULT_OUTPUT)

    spec = PresetDSP(
        preset_id=preset_id,
        eq=tuple(_sanitize_node(n) for n in eq),
        multiband=MultibandSpec(
            crossovers=tuple(clamp(f, "freq_hz") for f in multiband.crossovers),
            bands=tuple(_sanitize_band(b) for b in multiband.bands),
        ),
        bus_comp=_sanitize_bus(bus_comp),
        stereo=_sanitize_stereo(stereo),
        output=_sanitize_output(output),
        special=sliders.special,
    )
    logger.debug("built spec for %s (overrides: %s)", preset_id, sorted(override) or "none")
    return spec


def apply_output_overrides(spec: PresetDSP, target_lufs: Optional[float] = None,
                           ceiling_db: Optional[float] = None) -> PresetDSP:
    """Return `spec` with sanitized loudness target and/or ceiling replaced."""
    output = spec.output
    if target_lufs is not None:
        output = dataclasses.replace(output, target_lufs=clamp(target_lufs, "target_lufs"))
    if ceiling_db is not None:
        output = dataclasses.replace(output, ceiling_db=clamp(ceiling_db, "ceiling_db"))
    return dataclasses.replace(spec, output=output)


# ================================
# Validation
# ================================

def _check(errors: List[str], name: str, value: float, key: str) -> None:
    lo, hi = LIMITS[key]
    if not (lo <= value <= hi):
        errors.append(f"{name}={value} outside {lo}..{hi}")


def _check_dynamics(errors: List[str], name: str, comp) -> None:
    for attr in ("ratio", "threshold_db", "knee_db", "attack_sec", "release_sec"):
        _check(errors, f"{name}.{attr}", getattr(comp, attr), attr)


def validate_spec(spec: PresetDSP) -> None:
    """Raise `UnsafeParameter` if any value escaped the sanitizer.

    Every field `build_spec` clamps is checked against the same LIMITS entry,
    and all violations are reported together.
    """
    errors: List[str] = []
    for i, node in enumerate(spec.eq):
        _check(errors, f"eq[{i}].freq", node.freq, "freq_hz")
        _check(errors, f"eq[{i}].q", node.q, "q")
        if isinstance(node, HighPass):
            if node.order not in (1, 2):
                errors.append(f"eq[{i}].order={node.order} not in (1, 2)")
        else:
            _check(errors, f"eq[{i}].gain_db", node.gain_db, "eq_gain_db")

    xo = spec.multiband.crossovers
    if len(xo) != 4 or any(b <= a for a, b in zip(xo, xo[1:])):
        errors.append(f"crossovers must be 4 strictly increasing values, got {xo}")
    for i, f in enumerate(xo):
        _check(errors, f"crossovers[{i}]", f, "freq_hz")
    if len(spec.multiband.bands) != 5:
        errors.append(f"multiband needs 5 bands, got {len(spec.multiband.bands)}")
    for i, band in enumerate(spec.multiband.bands):
        _check_dynamics(errors, f"band[{i}]", band)

    bus = spec.bus_comp
    if bus is not None:
        _check_dynamics(errors, "bus_comp", bus)
        if bus.sidechain_hpf_hz is not None:
            _check(errors, "bus_comp.sidechain_hpf_hz", bus.sidechain_hpf_hz, "freq_hz")

    stereo = spec.stereo
    _check(errors, "stereo.overall_width", stereo.overall_width, "width_pct")
    if stereo.mono_below_hz is not None:
        _check(errors, "stereo.mono_below_hz", stereo.mono_below_hz, "freq_hz")
    if stereo.width_high_only is not None:
        _check(errors, "stereo.width_high_only.freq", stereo.width_high_only.freq, "freq_hz")
        _check(errors, "stereo.width_high_only.width", stereo.width_high_only.width, "width_pct")

    out = spec.output
    _check(errors, "output.ceiling_db", out.ceiling_db, "ceiling_db")
    _check(errors, "output.target_lufs", out.target_lufs, "target_lufs")
    _check_dynamics(errors, "output.limiter", out.limiter)
    lo, hi = out.trim_clamp_db
    _check(errors, "output.trim_clamp_db[0]", lo, "trim_db")
    _check(errors, "output.trim_clamp_db[1]", hi, "trim_db")
    if lo > hi:
        errors.append(f"output.trim_clamp_db inverted: {out.trim_clamp_db}")

    if errors:
        raise UnsafeParameter(f"unsafe DSP spec for {spec.preset_id!r}: " + "; ".join(errors))
