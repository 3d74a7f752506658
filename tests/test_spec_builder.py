from __future__ import annotations

import dataclasses

import pytest

from trapmaster.errors import InvalidInput, UnsafeParameter
from trapmaster.presets import DEFAULT_PRESET, PRESETS, Sliders, get_preset, list_presets
from trapmaster.spec_builder import (
    CROSSOVERS_HZ,
    LIMITS,
    MONO_BELOW_HZ,
    apply_output_overrides,
    baseline_eq,
    baseline_multiband,
    build_spec,
    validate_spec,
)
from trapmaster.types import Bell, BusCompSpec, HighPass, HighShelf, LowShelf


def _spec(preset_id: str):
    preset = get_preset(preset_id)
    return build_spec(preset.id, preset.sliders)


def test_catalog():
    ids = list_presets()
    assert len(ids) == 15
    assert DEFAULT_PRESET in ids
    assert set(ids) == set(PRESETS)
    with pytest.raises(InvalidInput):
        get_preset("does-not-exist")


@pytest.mark.parametrize("preset_id", list_presets())
def test_every_preset_builds_a_safe_spec(preset_id):
    spec = _spec(preset_id)
    validate_spec(spec)

    assert spec.preset_id == preset_id
    assert spec.eq[0] == HighPass(freq=30.0, order=2, q=0.707)
    assert list(spec.multiband.crossovers) == sorted(set(spec.multiband.crossovers))
    assert len(spec.multiband.bands) == 5
    for band in spec.multiband.bands:
        assert 1.0 <= band.ratio <= 20.0
        assert band.attack_sec > 0 and band.release_sec > 0
    assert spec.output.ceiling_db <= 0.0
    assert spec.stereo.mono_below_hz == MONO_BELOW_HZ
    lo, hi = LIMITS["eq_gain_db"]
    for node in spec.eq[1:]:
        assert lo <= node.gain_db <= hi
    for node in baseline_eq(get_preset(preset_id).sliders)[1:]:
        assert -6.0 <= node.gain_db <= 6.0


def test_baseline_multiband_shape():
    mb = baseline_multiband(3.0)
    assert mb.crossovers == CROSSOVERS_HZ
    ratios = [b.ratio for b in mb.bands]
    assert ratios == sorted(ratios, reverse=True)
    thresholds = [b.threshold_db for b in mb.bands]
    assert thresholds == sorted(thresholds)
    assert mb.bands[2].threshold_db == pytest.approx(-18.0 - 2.0 * 1.5)
    assert mb.bands[0].ratio == pytest.approx(1.0 + 0.9 * 2.0)


def test_compression_amount_is_clamped():
    assert baseline_multiband(100.0) == baseline_multiband(7.0)
    assert baseline_multiband(-3.0) == baseline_multiband(1.5)
    # ratio floors keep gentle presets compressing a little
    assert [b.ratio for b in baseline_multiband(1.5).bands] == [1.6, 1.5, 1.4, 1.3, 1.2]


def test_sliders_are_clamped():
    spec = build_spec("custom", Sliders(bass=40.0, mid=-40.0, high=3.0))
    shelves = {type(n): n for n in spec.eq}
    assert shelves[LowShelf].gain_db == 6.0
    assert shelves[Bell].gain_db == -6.0
    assert shelves[HighShelf].gain_db == 3.0
    assert spec.bus_comp is None


def test_hand_tuned_overrides():
    assert _spec("dynamic").output.target_lufs == -16.0
    assert _spec("modern").output.target_lufs == -14.0

    maximpact = _spec("maximpact")
    assert isinstance(maximpact.bus_comp, BusCompSpec)
    assert maximpact.bus_comp.sidechain_hpf_hz == 100.0
    assert any(isinstance(n, Bell) and n.freq == 2000.0 for n in maximpact.eq)

    deharsh = _spec("deharsh")
    assert Bell(freq=4000.0, gain_db=-4.0, q=2.5) in deharsh.eq

    assert _spec("bigcappo").special == "bigcappo"
    assert _spec("deharsh").special is None


def test_stereo_by_intent():
    wide = _spec("wide").stereo
    assert wide.overall_width == 130.0
    assert wide.width_high_only is not None and wide.width_high_only.freq == 6000.0
    assert _spec("focus").stereo.overall_width == 85.0
    assert _spec("immersive").stereo.width_high_only.width == 125.0
    assert _spec("lofi").stereo.overall_width == 105.0


def test_output_overrides_are_sanitized():
    spec = apply_output_overrides(_spec("deharsh"), target_lufs=-100.0, ceiling_db=3.0)
    assert spec.output.target_lufs == -30.0
    assert spec.output.ceiling_db == 0.0
    validate_spec(spec)

    untouched = apply_output_overrides(_spec("deharsh"))
    assert untouched == _spec("deharsh")


def test_validate_spec_rejects_escaped_values():
    spec = _spec("maximpact")
    bad_band = dataclasses.replace(spec.multiband.bands[0], ratio=50.0)
    bad = dataclasses.replace(
        spec,
        multiband=dataclasses.replace(spec.multiband, bands=(bad_band,) + spec.multiband.bands[1:]),
        output=dataclasses.replace(spec.output, ceiling_db=1.0),
    )
    with pytest.raises(UnsafeParameter) as exc_info:
        validate_spec(bad)
    message = str(exc_info.value)
    assert "band[0].ratio" in message
    assert "output.ceiling_db" in message


def test_validate_spec_rejects_bad_crossovers():
    spec = _spec("modern")
    bad = dataclasses.replace(
        spec, multiband=dataclasses.replace(spec.multiband, crossovers=(400.0, 120.0, 2500.0, 6000.0))
    )
    with pytest.raises(UnsafeParameter):
        validate_spec(bad)


def test_validate_spec_checks_every_clamped_field():
    spec = _spec("wide")
    band = dataclasses.replace(spec.multiband.bands[2], threshold_db=5.0, knee_db=40.0)
    bad = dataclasses.replace(
        spec,
        multiband=dataclasses.replace(spec.multiband, bands=spec.multiband.bands[:2] + (band,) + spec.multiband.bands[3:]),
        stereo=dataclasses.replace(
            spec.stereo,
            mono_below_hz=5.0,
            width_high_only=dataclasses.replace(spec.stereo.width_high_only, width=300.0),
        ),
        output=dataclasses.replace(
            spec.output,
            limiter=dataclasses.replace(spec.output.limiter, attack_sec=0.0, release_sec=2.0),
        ),
    )
    with pytest.raises(UnsafeParameter) as exc_info:
        validate_spec(bad)
    message = str(exc_info.value)
    for field in (
        "band[2].threshold_db",
        "band[2].knee_db",
        "stereo.mono_below_hz",
        "stereo.width_high_only.width",
        "output.limiter.attack_sec",
        "output.limiter.release_sec",
    ):
        assert field in message
    assert "band[1]" not in message
