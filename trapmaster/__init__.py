"""Offline mastering engine for the Trap Master preset catalog.

This package groups together modular components for:
- presets and the preset -> DSP spec mapping
- the filter graph (EQ, bus and multiband compression, stereo shaping, limiter)
- loudness / true-peak analysis and the two-pass render
- I/O utilities (loading audio, WAV/MP3 export)

Typical use::

    from trapmaster import io_utils, render

    buffer = io_utils.load_audio(path)
    mastered = render(buffer, "deharsh")
    io_utils.save_wav(out_path, mastered)
"""
from .errors import EncodingUnavailable, InvalidInput, TrapMasterError, UnsafeParameter
from .render import RenderSession, render, render_preset
from .types import AudioBuffer

__all__ = [
    "AudioBuffer",
    "EncodingUnavailable",
    "InvalidInput",
    "RenderSession",
    "TrapMasterError",
    "UnsafeParameter",
    "render",
    "render_preset",
]

__version__ = "0.1.0"
