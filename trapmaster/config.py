"""Runtime configuration for the CLI and example scripts.

Defaults live on `MasteringConfig`; a JSON file can override any field and
`TRAPMASTER_*` environment variables override the file. The mastering core
itself takes no configuration beyond its arguments.
"""
from __future__ import annotations

import dataclasses
import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from .errors import InvalidInput
from .io_utils import INPUT_DIR, OUTPUT_DIR
from .presets import DEFAULT_PRESET, get_preset

ENV_PREFIX = "TRAPMASTER"


@dataclass(frozen=True)
class MasteringConfig:
    """CLI settings.

    Attributes:
        input_dir: Where the CLI looks for audio files.
        output_dir: Where mastered files are written.
        default_preset: Preset offered first in the CLI.
        export_mp3: Also write an MP3 next to the WAV (needs ffmpeg).
        mp3_bitrate: ffmpeg bitrate string for the MP3 export.
        target_lufs: Overrides every preset's loudness target when set.
        ceiling_db: Overrides every preset's true-peak ceiling when set.
        log_level: Name of the logging level for `setup_logging`.
    """

    input_dir: Path = field(default=INPUT_DIR)
    output_dir: Path = field(default=OUTPUT_DIR)
    default_preset: str = DEFAULT_PRESET
    export_mp3: bool = False
    mp3_bitrate: str = "320k"
    target_lufs: Optional[float] = None
    ceiling_db: Optional[float] = None
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        get_preset(self.default_preset)
        object.__setattr__(self, "input_dir", Path(self.input_dir))
        object.__setattr__(self, "output_dir", Path(self.output_dir))

    @classmethod
    def from_dict(cls, values: Mapping[str, Any]) -> "MasteringConfig":
        known = {f.name for f in dataclasses.fields(cls)}
        unknown = sorted(set(values) - known)
        if unknown:
            raise InvalidInput(f"unknown config keys: {', '.join(unknown)}")
        return cls(**dict(values))

    @classmethod
    def from_json(cls, path: Path) -> "MasteringConfig":
        with open(path, "r", encoding="utf-8") as f:
            try:
                values = json.load(f)
            except json.JSONDecodeError as exc:
                raise InvalidInput(f"config {path} is not valid JSON: {exc}") from exc
        if not isinstance(values, dict):
            raise InvalidInput(f"config {path} must contain a JSON object")
        return cls.from_dict(values)

    def with_env_overrides(self, environ: Optional[Mapping[str, str]] = None) -> "MasteringConfig":
        env = os.environ if environ is None else environ
        changes: Dict[str, Any] = {}
        for name, convert in (
            ("input_dir", Path),
            ("output_dir", Path),
            ("default_preset", str),
            ("log_level", str.upper),
            ("target_lufs", float),
            ("ceiling_db", float),
        ):
            raw = env.get(f"{ENV_PREFIX}_{name.upper()}")
            if raw:
                try:
                    changes[name] = convert(raw)
                except ValueError as exc:
                    raise InvalidInput(f"{ENV_PREFIX}_{name.upper()}={raw!r}: {exc}") from exc
        raw_mp3 = env.get(f"{ENV_PREFIX}_EXPORT_MP3")
        if raw_mp3:
            changes["export_mp3"] = raw_mp3.strip().lower() in ("1", "true", "yes", "on")
        return dataclasses.replace(self, **changes) if changes else self


def load_config(path: Optional[Path] = None, environ: Optional[Mapping[str, str]] = None) -> MasteringConfig:
    """Defaults <- optional JSON file <- environment."""
    cfg = MasteringConfig.from_json(Path(path)) if path else MasteringConfig()
    return cfg.with_env_overrides(environ)
