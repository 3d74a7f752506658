"""Audio I/O utilities.

- Listing input audio files
- Loading audio into an `AudioBuffer` (soundfile, ffmpeg CLI fallback)
- 16-bit PCM WAV encoding/decoding with an exact byte layout
- Best-effort MP3 export through the ffmpeg CLI

Notes
-----
The WAV writer does not go through soundfile: the float -> int16 mapping is
asymmetric on purpose (negatives x 32768, non-negatives x 32767, truncated
toward zero) and must match byte for byte.
"""
from __future__ import annotations

import json
import logging
import shutil
import struct
import subprocess
from pathlib import Path
from typing import List, Optional, Tuple

import numpy as np
import soundfile as sf

from .errors import EncodingUnavailable, InvalidInput
from .types import AudioBuffer

logger = logging.getLogger(__name__)

SUPPORTED_EXTS = {".wav", ".mp3", ".flac", ".ogg", ".aiff", ".aif", ".m4a", ".aac"}
INPUT_DIR = Path("input_audio")
OUTPUT_DIR = Path("output_audio")

WAV_HEADER_BYTES = 44
_WAV_HEADER = struct.Struct("<4sI4s4sIHHIIHH4sI")


def ensure_directories(input_dir: Path = INPUT_DIR, output_dir: Path = OUTPUT_DIR) -> None:
    """Ensure input/output directories exist."""
    input_dir.mkdir(parents=True, exist_ok=True)
    output_dir.mkdir(parents=True, exist_ok=True)


def list_audio_files(input_dir: Path = INPUT_DIR) -> List[Path]:
    """Sorted list of supported audio files in `input_dir`."""
    input_dir.mkdir(parents=True, exist_ok=True)
    files = [p for p in input_dir.glob("*") if p.suffix.lower() in SUPPORTED_EXTS]
    return sorted(files)


def build_output_path(original: Path, preset_id: str, output_dir: Path = OUTPUT_DIR, ext: str = ".wav") -> Path:
    """`output_dir/<stem>_<preset>_mastered<ext>`."""
    return output_dir / f"{original.stem}_{preset_id}_mastered{ext}"


# ================================
# Loading
# ================================

def load_audio(file_path: Path) -> AudioBuffer:
    """Decode an audio file preserving native sample rate and channels.

    Strategy
    --------
    - Try soundfile first (WAV, FLAC, OGG, AIFF).
    - If that fails (common for MP3/AAC), decode through ffmpeg.

    Raises `InvalidInput` if neither can decode the file.
    """
    file_path = Path(file_path)
    if not file_path.exists():
        raise InvalidInput(f"audio file not found: {file_path}")
    try:
        data, sr = sf.read(str(file_path), always_2d=True, dtype="float32")
        # soundfile returns (samples, channels)
        return AudioBuffer.from_array(data.T, int(sr))
    except RuntimeError as exc:
        logger.debug("soundfile could not read %s (%s); trying ffmpeg", file_path, exc)

    if shutil.which("ffmpeg") is None or shutil.which("ffprobe") is None:
        raise InvalidInput(f"cannot decode {file_path.name}: ffmpeg/ffprobe not found in PATH")
    try:
        sr, channels = _probe_audio_stream(file_path)
        return AudioBuffer.from_array(_decode_with_ffmpeg(file_path, sr, channels), sr)
    except InvalidInput:
        raise
    except (subprocess.CalledProcessError, json.JSONDecodeError, KeyError, ValueError) as exc:
        raise InvalidInput(f"failed to decode {file_path.name} via ffmpeg: {exc}") from exc


def _probe_audio_stream(file_path: Path) -> Tuple[int, int]:
    """(sample_rate, channels) of the first audio stream, via ffprobe."""
    cmd = [
        "ffprobe", "-v", "error", "-select_streams", "a:0",
        "-show_entries", "stream=sample_rate,channels", "-of", "json",
        str(file_path),
    ]
    res = subprocess.run(cmd, capture_output=True, text=True, check=True)
    streams = json.loads(res.stdout).get("streams") or []
    if not streams:
        raise InvalidInput(f"no audio stream found in {file_path.name}")
    return int(streams[0]["sample_rate"]), int(streams[0]["channels"])


def _decode_with_ffmpeg(file_path: Path, sr: int, channels: int) -> np.ndarray:
    """Raw float32 PCM from ffmpeg, reshaped to (channels, samples)."""
    cmd = [
        "ffmpeg", "-v", "error", "-i", str(file_path),
        "-f", "f32le", "-acodec", "pcm_f32le", "-ac", str(channels), "-ar", str(sr),
        "pipe:1",
    ]
    res = subprocess.run(cmd, capture_output=True, check=True)
    if not res.stdout:
        raise InvalidInput(f"ffmpeg returned no audio data for {file_path.name}")
    return np.frombuffer(res.stdout, dtype=np.float32).reshape((-1, channels)).T


# ================================
# WAV (PCM 16-bit)
# ================================

def float_to_pcm16(data: np.ndarray) -> np.ndarray:
    """Clamp to [-1, 1]; scale negatives by 32768 and the rest by 32767."""
    x = np.clip(np.asarray(data, dtype=np.float64), -1.0, 1.0)
    scaled = np.where(x < 0.0, x * 32768.0, x * 32767.0)
    return np.trunc(scaled).astype("<i2")


def encode_wav(buffer: AudioBuffer) -> bytes:
    """Serialize to a 44-byte-header RIFF/WAVE file, 16-bit little-endian PCM."""
    channels, sr = buffer.channels, buffer.sample_rate
    frames = float_to_pcm16(buffer.data).T  # interleave: (samples, channels)
    payload = np.ascontiguousarray(frames).tobytes()
    data_len = buffer.samples * channels * 2
    header = _WAV_HEADER.pack(
        b"RIFF", 36 + data_len, b"WAVE",
        b"fmt ", 16, 1, channels, sr, sr * channels * 2, channels * 2, 16,
        b"data", data_len,
    )
    return header + payload


def decode_wav(blob: bytes) -> AudioBuffer:
    """Inverse of `encode_wav` for canonical 44-byte-header PCM16 files."""
    if len(blob) < WAV_HEADER_BYTES:
        raise InvalidInput("WAV data shorter than its header")
    (riff, _riff_len, wave, fmt, fmt_len, tag, channels, sr,
     _byte_rate, block_align, bits, data_id, data_len) = _WAV_HEADER.unpack_from(blob)
    if riff != b"RIFF" or wave != b"WAVE" or fmt != b"fmt " or data_id != b"data":
        raise InvalidInput("not a canonical RIFF/WAVE file")
    if fmt_len != 16 or tag != 1 or bits != 16 or block_align != channels * 2:
        raise InvalidInput(f"unsupported WAV format (tag={tag}, bits={bits})")
    body = blob[WAV_HEADER_BYTES:WAV_HEADER_BYTES + data_len]
    if len(body) != data_len or data_len % block_align:
        raise InvalidInput("truncated WAV data chunk")
    ints = np.frombuffer(body, dtype="<i2").reshape((-1, channels)).T.astype(np.float64)
    return AudioBuffer.from_array(np.where(ints < 0, ints / 32768.0, ints / 32767.0), sr)


def save_wav(path: Path, buffer: AudioBuffer) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(encode_wav(buffer))
    return path


# ================================
# MP3 (best effort)
# ================================

def encode_mp3(buffer: AudioBuffer, path: Path, bitrate: str = "320k") -> Path:
    """Encode through the ffmpeg CLI.

    Raises `EncodingUnavailable` if ffmpeg is missing or the encode fails;
    the WAV path keeps working either way.
    """
    ffmpeg: Optional[str] = shutil.which("ffmpeg")
    if ffmpeg is None:
        raise EncodingUnavailable("ffmpeg not found in PATH; MP3 export unavailable")
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    cmd = [
        ffmpeg, "-y", "-hide_banner", "-loglevel", "error",
        "-f", "wav", "-i", "pipe:0",
        "-codec:a", "libmp3lame", "-b:a", bitrate,
        str(path),
    ]
    try:
        subprocess.run(cmd, input=encode_wav(buffer), capture_output=True, check=True)
    except subprocess.CalledProcessError as exc:
        detail = exc.stderr.decode("utf-8", "replace").strip() if exc.stderr else str(exc)
        raise EncodingUnavailable(f"MP3 encode failed: {detail}") from exc
    return path
