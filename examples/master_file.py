#!/usr/bin/env python3
"""Example: master one file with a catalog preset, no prompts.

Usage:
  python examples/master_file.py --input path/to/input.wav --preset deharsh \
      [--output path/to/out.wav] [--config configs/trapmaster.json] [--mp3]

If --input is omitted, the script will try the first file in the configured input directory.
If --output is omitted, it writes to <output_dir>/<name>_<preset>_mastered.wav.
"""
from __future__ import annotations

import argparse
import logging
from pathlib import Path

from trapmaster import io_utils
from trapmaster.config import load_config
from trapmaster.errors import EncodingUnavailable, TrapMasterError
from trapmaster.logging_utils import setup_logging
from trapmaster.presets import list_presets
from trapmaster.render import render_preset

logger = logging.getLogger("trapmaster.examples")


def main() -> None:
    p = argparse.ArgumentParser(description="Master a file with a Trap Master preset")
    p.add_argument("--input", type=str, default=None, help="Path to input audio")
    p.add_argument("--output", type=str, default=None, help="Path to output WAV")
    p.add_argument("--preset", type=str, default=None, choices=list_presets(), help="Preset id")
    p.add_argument("--config", type=str, default=None, help="JSON config file")
    p.add_argument("--mp3", action="store_true", help="Also export an MP3 (needs ffmpeg)")
    p.add_argument("--log-level", type=str, default=None, help="Override the configured log level")
    args = p.parse_args()

    try:
        cfg = load_config(Path(args.config) if args.config else None)
    except (OSError, TrapMasterError) as e:
        raise SystemExit(f"Could not load config: {e}")
    setup_logging(args.log_level or cfg.log_level)

    # Resolve input
    in_path: Path
    if args.input is None:
        files = io_utils.list_audio_files(cfg.input_dir)
        if not files:
            raise SystemExit(f"No input provided and no files found in {cfg.input_dir}/")
        in_path = files[0]
    else:
        in_path = Path(args.input)
        if not in_path.exists():
            raise SystemExit(f"Input not found: {in_path}")

    preset_id = args.preset or cfg.default_preset
    out_path = Path(args.output) if args.output else io_utils.build_output_path(in_path, preset_id, cfg.output_dir)

    try:
        buffer = io_utils.load_audio(in_path)
        logger.info("processing %s @ %d Hz with %s", in_path, buffer.sample_rate, preset_id)
        result = render_preset(buffer, preset_id, target_lufs=cfg.target_lufs, ceiling_db=cfg.ceiling_db)
    except TrapMasterError as e:
        raise SystemExit(f"Mastering failed: {e}")

    io_utils.save_wav(out_path, result.buffer)
    logger.info("wrote %s (%.2f LUFS, %.2f dBTP)", out_path,
                result.final.integrated_lufs, result.final.true_peak_db)

    if args.mp3 or cfg.export_mp3:
        try:
            mp3_path = io_utils.encode_mp3(result.buffer, out_path.with_suffix(".mp3"), bitrate=cfg.mp3_bitrate)
            logger.info("wrote %s", mp3_path)
        except EncodingUnavailable as e:
            logger.warning("MP3 export skipped: %s", e)


if __name__ == "__main__":
    main()
