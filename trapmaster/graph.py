"""Filter graph builder.

The topology is fixed, so a "graph" is just an ordered list of stage objects
built fresh from a `PresetDSP` for every pass:

    safety HPF 30 Hz
    -> EQ chain (spec order)
    -> warmth bell (special == "bigcappo")
    -> bus compressor (optional, sidechain HPF on the detector only)
    -> 5-band multiband compressor
    -> stereo shaper
    -> [final pass only] trim -> limiter -> ceiling

The analysis pass stops after the stereo shaper so the loudness measurement
sees the signal before any of the output safety processing.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Protocol

import numpy as np

from .analysis import true_peak
from .dsp import Compressor, Gain, SOSFilter, biquad_highpass, db_to_gain, eq_node_sos, filters_for_eq
from .multiband import MultibandCompressor
from .stereo import StereoShaper
from .types import AudioBuffer, Bell, OutputSpec, PresetDSP, RenderContext, RenderPass

logger = logging.getLogger(__name__)

SAFETY_HPF_HZ = 30.0
WARMTH_SPECIAL = "bigcappo"
WARMTH_NODE = Bell(freq=400.0, gain_db=-2.0, q=1.2)


class Stage(Protocol):
    name: str

    def process(self, block: np.ndarray) -> np.ndarray:
        ...


class Ceiling:
    """Flat gain pulling the whole rendered block down to the ceiling.

    Never boosts. The peak is taken with the analyzer's true-peak estimator,
    so the output's measured true peak cannot exceed the ceiling.
    """

    def __init__(self, ceiling_db: float) -> None:
        self.ceiling_db = float(ceiling_db)
        self.ceiling = db_to_gain(ceiling_db)
        self.name = "ceiling"
        self.applied_gain = 1.0

    def process(self, block: np.ndarray) -> np.ndarray:
        peak = true_peak(block)
        self.applied_gain = 1.0 if peak <= self.ceiling else self.ceiling / peak
        return block * self.applied_gain

    def __repr__(self) -> str:
        return f"Ceiling({self.ceiling_db:.2f}dBFS)"


@dataclass
class Graph:
    stages: List[Stage]
    sample_rate: int
    pass_mode: RenderPass = RenderPass.ANALYSIS
    names: List[str] = field(init=False)

    def __post_init__(self) -> None:
        self.names = [s.name for s in self.stages]

    def run(self, buffer: AudioBuffer) -> AudioBuffer:
        block = np.asarray(buffer.data, dtype=np.float64)
        for stage in self.stages:
            block = stage.process(block)
        return AudioBuffer.from_array(block, buffer.sample_rate)


def output_stages(output: OutputSpec, trim_db: float, sr: int) -> List[Stage]:
    lim = output.limiter
    return [
        Gain(trim_db, name="trim"),
        Compressor(
            sr,
            threshold_db=lim.threshold_db,
            ratio=lim.ratio,
            knee_db=lim.knee_db,
            attack_sec=lim.attack_sec,
            release_sec=lim.release_sec,
            name="limiter",
        ),
        Ceiling(output.ceiling_db),
    ]


def build_graph(spec: PresetDSP, context: RenderContext, sample_rate: int, channels: int) -> Graph:
    """Build the stage list for one pass of one render."""
    sr = int(sample_rate)
    stages: List[Stage] = [SOSFilter(biquad_highpass(SAFETY_HPF_HZ, 0.707, sr), channels, name="safety_hpf")]
    stages.extend(filters_for_eq(spec.eq, sr, channels))

    if spec.special == WARMTH_SPECIAL:
        stages.append(SOSFilter(eq_node_sos(WARMTH_NODE, sr), channels, name="warmth"))

    if spec.bus_comp is not None:
        bus = spec.bus_comp
        sidechain = None
        if bus.sidechain_hpf_hz is not None:
            sidechain = SOSFilter(biquad_highpass(bus.sidechain_hpf_hz, 0.707, sr), channels, name="sidechain_hpf")
        stages.append(Compressor(
            sr,
            threshold_db=bus.threshold_db,
            ratio=bus.ratio,
            knee_db=bus.knee_db,
            attack_sec=bus.attack_sec,
            release_sec=bus.release_sec,
            sidechain=sidechain,
            name="bus_comp",
        ))

    stages.append(MultibandCompressor(spec.multiband, sr, channels))
    stages.append(StereoShaper(spec.stereo, sr))

    if context.pass_mode is RenderPass.FINAL:
        stages.extend(output_stages(spec.output, context.trim_db, sr))

    graph = Graph(stages=stages, sample_rate=sr, pass_mode=context.pass_mode)
    logger.debug("%s graph for %s: %s", context.pass_mode.value, spec.preset_id, " -> ".join(graph.names))
    return graph


def render_pass(buffer: AudioBuffer, spec: PresetDSP, context: RenderContext) -> AudioBuffer:
    return build_graph(spec, context, buffer.sample_rate, buffer.channels).run(buffer)
