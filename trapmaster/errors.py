"""Exception types raised by the mastering core.

Only `InvalidInput` and `EncodingUnavailable` are expected to reach callers in
normal operation. `UnsafeParameter` signals a broken internal invariant, and
`MeasurementDegenerate` never leaves the analyzer.
"""
from __future__ import annotations


class TrapMasterError(Exception):
    """Base class for every error raised by this package."""


class InvalidInput(TrapMasterError, ValueError):
    """Malformed or undecodable audio, or an unknown preset id. Aborts the request."""


class UnsafeParameter(TrapMasterError, AssertionError):
    """A DSP spec value outside the range the spec builder sanitizes to."""


class MeasurementDegenerate(TrapMasterError):
    """Loudness gating removed every block at some stage of the cascade."""

    def __init__(self, stage: str) -> None:
        super().__init__(f"no loudness blocks survived the {stage} stage")
        self.stage = stage


class EncodingUnavailable(TrapMasterError):
    """Lossy export could not be performed (encoder missing or failed)."""
