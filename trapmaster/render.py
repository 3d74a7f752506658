"""Two-pass render orchestrator.

    IDLE -> ANALYSIS_RENDER -> MEASURING -> TRIM_COMPUTED -> FINAL_RENDER -> DONE

A failure in any state moves to FAILED.

Pass 1 renders the chain without the output stage and measures it. The trim
is computed from that measurement, then pass 2 renders the same chain with
trim -> limiter -> ceiling appended. Nothing is retried: a failure aborts the
request and is raised to the caller once.

Superseded requests are handled by the caller: `RenderSession` hands out
increasing tokens, and results whose token is no longer the latest are
dropped. A render in flight is never interrupted.
"""
from __future__ import annotations

import asyncio
import logging
import threading
from typing import Optional, Tuple

from . import analysis
from .errors import InvalidInput
from .graph import render_pass
from .presets import get_preset
from .spec_builder import apply_output_overrides, build_spec, validate_spec
from .types import AudioBuffer, PresetDSP, RenderContext, RenderPass, RenderResult, RenderState

logger = logging.getLogger(__name__)


def compute_trim(
    target_lufs: float,
    measured_lufs: float,
    true_peak_db: float,
    ceiling_db: float,
    trim_clamp_db: Tuple[float, float],
) -> float:
    """Gain (dB) for the final pass.

    Order matters: loudness trim first, then the peak-safety override (peak
    wins over loudness), then the absolute clamp.
    """
    trim = target_lufs - measured_lufs
    if true_peak_db + trim > ceiling_db:
        trim = ceiling_db - true_peak_db
    lo, hi = trim_clamp_db
    return float(min(max(trim, lo), hi))


class TwoPassRenderer:
    """Runs one render request through the state machine above."""

    def __init__(self, spec: PresetDSP, token: int = 0) -> None:
        self.spec = spec
        self.token = int(token)
        self.state = RenderState.IDLE

    def _advance(self, state: RenderState) -> None:
        logger.debug("render %d (%s): %s -> %s", self.token, self.spec.preset_id, self.state.value, state.value)
        self.state = state

    def run(self, buffer: AudioBuffer, auto_tune: bool = False) -> RenderResult:
        if self.state is not RenderState.IDLE:
            raise RuntimeError(f"renderer already used (state {self.state.value})")
        out = self.spec.output
        try:
            self._advance(RenderState.ANALYSIS_RENDER)
            pass1 = render_pass(buffer, self.spec, RenderContext(RenderPass.ANALYSIS, token=self.token))

            self._advance(RenderState.MEASURING)
            before = analysis.measure(pass1)
            del pass1

            trim = compute_trim(out.target_lufs, before.integrated_lufs, before.true_peak_db,
                                out.ceiling_db, out.trim_clamp_db)
            self._advance(RenderState.TRIM_COMPUTED)

            self._advance(RenderState.FINAL_RENDER)
            mastered = render_pass(buffer, self.spec, RenderContext(RenderPass.FINAL, trim_db=trim, token=self.token))
            after = analysis.measure(mastered)
        except Exception as exc:
            failed_in = self.state
            self._advance(RenderState.FAILED)
            logger.error("render %d (%s) failed during %s: %s", self.token, self.spec.preset_id, failed_in.value, exc)
            raise

        self._advance(RenderState.DONE)
        logger.info(
            "rendered %s: %.2f LUFS / %.2f dBTP -> trim %+.2f dB -> %.2f LUFS / %.2f dBTP",
            self.spec.preset_id, before.integrated_lufs, before.true_peak_db, trim,
            after.integrated_lufs, after.true_peak_db,
        )
        return RenderResult(
            buffer=mastered,
            spec=self.spec,
            analysis=before,
            final=after,
            trim_db=trim,
            token=self.token,
            auto_tune=auto_tune,
        )


def resolve_spec(preset_id: str, target_lufs: Optional[float] = None,
                 ceiling_db: Optional[float] = None) -> PresetDSP:
    preset = get_preset(preset_id)
    spec = build_spec(preset.id, preset.sliders)
    if target_lufs is not None or ceiling_db is not None:
        spec = apply_output_overrides(spec, target_lufs=target_lufs, ceiling_db=ceiling_db)
    validate_spec(spec)
    return spec


def render_preset(
    buffer: AudioBuffer,
    preset_id: str,
    auto_tune: bool = False,
    *,
    token: int = 0,
    target_lufs: Optional[float] = None,
    ceiling_db: Optional[float] = None,
) -> RenderResult:
    """Master `buffer` with a catalog preset and return everything measured.

    `auto_tune` is carried through to the result; the mastering chain has no
    pitch-correction stage, so it does not change the audio.
    """
    if not isinstance(buffer, AudioBuffer):
        raise InvalidInput(f"expected an AudioBuffer, got {type(buffer).__name__}")
    spec = resolve_spec(preset_id, target_lufs=target_lufs, ceiling_db=ceiling_db)
    return TwoPassRenderer(spec, token=token).run(buffer, auto_tune=auto_tune)


def render(buffer: AudioBuffer, preset_id: str, auto_tune: bool = False) -> AudioBuffer:
    """Deterministic mastered copy of `buffer`."""
    return render_preset(buffer, preset_id, auto_tune).buffer


class RenderSession:
    """Caller-side request tokens for "latest request wins" behaviour."""

    def __init__(self) -> None:
        self._latest = 0
        self._lock = threading.Lock()

    @property
    def latest(self) -> int:
        return self._latest

    def next_token(self) -> int:
        with self._lock:
            self._latest += 1
            return self._latest

    def is_current(self, token: int) -> bool:
        return token == self._latest

    def accept(self, result: RenderResult) -> bool:
        """True if `result` belongs to the newest request issued so far."""
        current = self.is_current(result.token)
        if not current:
            logger.debug("dropping stale render %d (latest is %d)", result.token, self._latest)
        return current

    def render(self, buffer: AudioBuffer, preset_id: str, auto_tune: bool = False, **overrides) -> RenderResult:
        return render_preset(buffer, preset_id, auto_tune, token=self.next_token(), **overrides)

    async def render_async(self, buffer: AudioBuffer, preset_id: str, auto_tune: bool = False,
                           **overrides) -> RenderResult:
        token = self.next_token()
        return await asyncio.to_thread(render_preset, buffer, preset_id, auto_tune, token=token, **overrides)
