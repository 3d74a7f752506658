"""Preset catalog: the named "personality" presets and their sliders.

Sliders are deliberately coarse (a few dB of tone, one compression amount);
`spec_builder.build_spec` turns them into a full `PresetDSP`.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional

from .errors import InvalidInput


@dataclass(frozen=True)
class Sliders:
    """Tone and dynamics sliders for one preset.

    Attributes:
        bass: Low shelf gain in dB.
        mid: Mid bell gain in dB.
        high: High shelf gain in dB.
        compression: Overall compression amount, read as a ratio-like number.
        loudness: Loudness the preset was voiced at (LUFS). Informational; the
            render target comes from the output spec.
        special: Optional tag enabling preset-specific coloration.
    """

    bass: float = 0.0
    mid: float = 0.0
    high: float = 0.0
    compression: float = 2.0
    loudness: float = -9.0
    special: Optional[str] = None


@dataclass(frozen=True)
class Preset:
    id: str
    name: str
    intent: str
    description: str
    sliders: Sliders


_PRESETS: List[Preset] = [
    Preset("smoothmids", "Smooth Mids", "Velvet frequency response",
           "Warm, smooth midrange without harshness.",
           Sliders(bass=1, mid=2, high=0, compression=2.5)),
    Preset("dynamic", "Dynamic & Clear", "Preserve transients",
           "Minimal compression, natural punch.",
           Sliders(bass=0, mid=0, high=2, compression=1.5, loudness=-10)),
    Preset("maximpact", "Maximum Impact", "Loud, punchy, aggressive",
           "Controlled loudness without distortion.",
           Sliders(bass=3, mid=2, high=2, compression=3.5, loudness=-7)),
    Preset("modern", "Modern Bright", "Airy, high-definition sheen",
           "Open highs without harshness.",
           Sliders(bass=0, mid=0, high=3, compression=2.0)),
    Preset("lofi", "Lo-Fi Character", "Gritty, textured sound",
           "Controlled saturation and compression.",
           Sliders(bass=2, mid=0, high=-4, compression=3.0, loudness=-10)),
    Preset("neosoul", "Neo Soul", "Deep, organic resonance",
           "Warm mids, soft highs, musical compression.",
           Sliders(bass=3, mid=3, high=-1, compression=2.0)),
    Preset("festival", "Festival Banger", "Maximum energy and impact",
           "Loud but stable, controlled bass.",
           Sliders(bass=4, mid=2, high=2, compression=3.5, loudness=-7)),
    Preset("focus", "Focus Center", "Mono-compatible punch",
           "Center-focused, strong mono image.",
           Sliders(bass=2, mid=3, high=0, compression=2.5)),
    Preset("immersive", "Immersive", "3D Spatial depth",
           "Subtle width, clear space.",
           Sliders(bass=0, mid=1, high=3, compression=2.0)),
    Preset("wide", "Wide & Spacious", "Extreme stereo width",
           "Wide but mono-safe.",
           Sliders(bass=-1, mid=0, high=4, compression=2.0)),
    Preset("vocalforward", "Vocal Forward", "Lyrics front and center",
           "Vocal clarity without harshness.",
           Sliders(bass=0, mid=4, high=1, compression=2.5)),
    Preset("bigcappo", "BigCappo (Signature)", "Emotional, human Trap-Soul",
           "Natural warmth, expressive dynamics.",
           Sliders(bass=3, mid=3, high=1, compression=2.0, special="bigcappo")),
    Preset("deharsh", "De-Harsh", "Control aggressive high-end",
           "Tame harshness, keep energy.",
           Sliders(bass=0, mid=0, high=-2, compression=2.5)),
    Preset("mudremover", "Mud Remover", "Clean up low-mid buildup",
           "Clear, tight low end.",
           Sliders(bass=-1, mid=1, high=1, compression=2.0)),
    Preset("vintage", "Vintage Warmth", "Analog saturation feel",
           "Warm lows, soft highs.",
           Sliders(bass=3, mid=1, high=-2, compression=2.5)),
]

PRESETS: Dict[str, Preset] = {p.id: p for p in _PRESETS}

# Applied right after a file is loaded.
DEFAULT_PRESET = "deharsh"


def list_presets() -> List[str]:
    """Preset ids in catalog order."""
    return [p.id for p in _PRESETS]


def get_preset(preset_id: str) -> Preset:
    try:
        return PRESETS[preset_id]
    except KeyError:
        raise InvalidInput(
            f"unknown preset {preset_id!r}; expected one of {', '.join(list_presets())}"
        ) from None
