from __future__ import annotations

import numpy as np
import pytest

from trapmaster.errors import InvalidInput
from trapmaster.types import AudioBuffer


@pytest.mark.parametrize(
    "array, sr",
    [
        (np.zeros((2, 0)), 44100),
        (np.zeros((0, 10)), 44100),
        (np.zeros((2, 2, 2)), 44100),
        (np.array([[0.0, np.nan]]), 44100),
        (np.array([[0.0, np.inf]]), 44100),
        (np.zeros((2, 10)), 0),
        (np.array([["a", "b"]]), 44100),
        (np.array([[0.5 + 0.5j, 0.0]]), 44100),
        (np.zeros((2, 10)), "fast"),
        (np.zeros((2, 10)), None),
    ],
)
def test_audio_buffer_rejects_malformed_input(array, sr):
    with pytest.raises(InvalidInput):
        AudioBuffer.from_array(array, sr)


def test_audio_buffer_copies_and_freezes():
    raw = np.zeros(100)
    buf = AudioBuffer.from_array(raw, 8000)
    raw[0] = 1.0
    assert buf.channels == 1
    assert buf.data[0, 0] == 0.0
    assert buf.duration == pytest.approx(100 / 8000)
    with pytest.raises(ValueError):
        buf.data[0, 0] = 1.0
