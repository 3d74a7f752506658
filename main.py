"""Trap Master mastering CLI (Rich)

App Flow
--------
1) Initialization: load config (JSON file / TRAPMASTER_* env), show welcome menu.
2) Validate and select an input file from `input_audio/`.
3) Pick a preset from the catalog.
4) Render: two-pass master (analysis pass, trim, final pass) with a spinner.
5) Show the loudness report before and after in a Rich table.
6) Save the WAV to `output_audio/` (and an MP3 when enabled and ffmpeg exists).
7) Return to main menu.

This file orchestrates the UX; the mastering engine resides in `trapmaster/`.
"""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

# Dependency preflight: fail fast with clear guidance if a package is missing.
try:
    import numpy  # noqa: F401
    import scipy  # noqa: F401
    import soundfile  # noqa: F401
except ImportError as exc:
    print(f"Missing required dependency: {exc.name}. Install dependencies with:")
    print("  pip install -e .")
    sys.exit(1)
try:
    from rich.console import Console
    from rich.panel import Panel
    from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
    from rich.prompt import Confirm, Prompt
    from rich.table import Table
except ImportError:
    print("Missing required dependency: rich. Install dependencies with:")
    print("  pip install -e .")
    sys.exit(1)

from trapmaster.config import MasteringConfig, load_config
from trapmaster.errors import EncodingUnavailable, TrapMasterError
from trapmaster.io_utils import (
    build_output_path,
    encode_mp3,
    ensure_directories,
    list_audio_files,
    load_audio,
    save_wav,
)
from trapmaster.logging_utils import setup_logging
from trapmaster.presets import Preset, get_preset, list_presets
from trapmaster.render import RenderSession
from trapmaster.types import AudioBuffer, RenderResult

console = Console()
logger = logging.getLogger("trapmaster.cli")


# ====================================
# UI helpers
# ====================================

def welcome_screen(cfg: MasteringConfig) -> None:
    console.clear()
    panel = Panel.fit(
        f"Place audio files into [bold]{cfg.input_dir}/[/bold]\n\n"
        "Choose a file and a preset; the track is mastered to the preset's\n"
        f"loudness target and saved to [bold]{cfg.output_dir}/[/bold].",
        title="Trap Master",
        border_style="cyan",
    )
    console.print(panel)


def main_menu() -> str:
    console.print("\n[bold]Main Menu[/bold]")
    choices = {
        "1": "Master a File",
        "2": "Show Presets",
        "3": "Exit",
    }
    for k, v in choices.items():
        console.print(f"  [cyan]{k}[/cyan]) {v}")
    return Prompt.ask("Select an option", choices=list(choices.keys()), default="1")


def error_panel(message: str) -> None:
    console.print(Panel(message, title="Error", border_style="red"))


# ====================================
# File and preset selection
# ====================================

def pick_input_file(cfg: MasteringConfig) -> Optional[Path]:
    files = list_audio_files(cfg.input_dir)
    if not files:
        console.print(Panel(f"No audio files found in [bold]{cfg.input_dir}/[/bold].\n\n"
                            "- Supported: .wav, .flac, .mp3 and anything ffmpeg decodes\n"
                            "- Please add at least one file and try again.",
                            title="No Files", border_style="red"))
        return None
    table = Table(title="Available Input Files", show_lines=True)
    table.add_column("#", justify="right", style="cyan", no_wrap=True)
    table.add_column("Filename", style="white")
    for idx, p in enumerate(files, 1):
        table.add_row(str(idx), p.name)
    console.print(table)

    valid_choices = [str(i) for i in range(1, len(files) + 1)]
    sel = Prompt.ask("Pick a file number", choices=valid_choices)
    return files[int(sel) - 1]


def show_presets(presets: List[Preset]) -> None:
    t = Table(title="Presets", show_lines=True)
    t.add_column("#", justify="right", style="cyan", no_wrap=True)
    t.add_column("ID", style="magenta")
    t.add_column("Name", style="white")
    t.add_column("Intent", style="green")
    t.add_column("Description", style="dim")
    for idx, p in enumerate(presets, 1):
        t.add_row(str(idx), p.id, p.name, p.intent, p.description)
    console.print(t)


def pick_preset(cfg: MasteringConfig) -> Preset:
    presets = [get_preset(i) for i in list_presets()]
    show_presets(presets)
    ids = [p.id for p in presets]
    default = str(ids.index(cfg.default_preset) + 1)
    sel = Prompt.ask("Pick a preset number", choices=[str(i) for i in range(1, len(ids) + 1)], default=default)
    return presets[int(sel) - 1]


def load_audio_with_feedback(path: Path) -> Optional[AudioBuffer]:
    try:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            transient=True,
        ) as progress:
            progress.add_task("Loading audio...", total=None)
            buffer = load_audio(path)
    except TrapMasterError as e:
        error_panel(f"Failed to load file: {e}")
        return None
    console.print(f"Loaded [bold]{path.name}[/bold]: {buffer.sample_rate} Hz, "
                  f"{buffer.channels} ch, {buffer.duration:.1f} s")
    return buffer


# ====================================
# Rendering and reporting
# ====================================

def render_with_progress(session: RenderSession, buffer: AudioBuffer, preset: Preset,
                         cfg: MasteringConfig) -> RenderResult:
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        TimeElapsedColumn(),
        transient=True,
    ) as progress:
        progress.add_task(f"Mastering with {preset.name} (analysis + final pass)...", total=None)
        return session.render(buffer, preset.id, target_lufs=cfg.target_lufs, ceiling_db=cfg.ceiling_db)


def show_report(result: RenderResult) -> None:
    out = result.spec.output
    t = Table(title=f"Loudness Report: {result.spec.preset_id}")
    t.add_column("Stage", style="cyan")
    t.add_column("Integrated LUFS", justify="right")
    t.add_column("True Peak dBTP", justify="right")
    t.add_column("Gating", style="magenta")
    t.add_row("Analysis pass", f"{result.analysis.integrated_lufs:.2f}",
              f"{result.analysis.true_peak_db:.2f}", result.analysis.gating)
    t.add_row("Final pass", f"{result.final.integrated_lufs:.2f}",
              f"{result.final.true_peak_db:.2f}", result.final.gating)
    console.print(t)
    console.print(f"Target [bold]{out.target_lufs:.1f} LUFS[/bold], ceiling [bold]{out.ceiling_db:.1f} dBTP[/bold], "
                  f"trim applied [bold]{result.trim_db:+.2f} dB[/bold]")


def save_outputs(path: Path, result: RenderResult, cfg: MasteringConfig) -> None:
    wav_path = save_wav(build_output_path(path, result.spec.preset_id, cfg.output_dir), result.buffer)
    logger.info("wrote %s", wav_path)
    lines = [f"Saved mastered file to\n[bold green]{wav_path}[/bold green]"]
    if cfg.export_mp3:
        try:
            mp3_path = encode_mp3(result.buffer, wav_path.with_suffix(".mp3"), bitrate=cfg.mp3_bitrate)
            lines.append(f"MP3: [cyan]{mp3_path}[/cyan]")
        except EncodingUnavailable as e:
            console.print(Panel(f"MP3 export skipped: {e}", title="Warning", border_style="yellow"))
    console.print(Panel("\n".join(lines), title="Done", border_style="green"))


# ====================================
# Main loop
# ====================================

def run_once(cfg: MasteringConfig, session: RenderSession) -> None:
    ensure_directories(cfg.input_dir, cfg.output_dir)
    path = pick_input_file(cfg)
    if path is None:
        return
    buffer = load_audio_with_feedback(path)
    if buffer is None:
        return
    preset = pick_preset(cfg)

    if not Confirm.ask(f"Master [bold]{path.name}[/bold] with [bold]{preset.name}[/bold]?", default=True):
        console.print("Cancelled. Returning to main menu.")
        return

    try:
        result = render_with_progress(session, buffer, preset, cfg)
    except TrapMasterError as e:
        error_panel(f"Mastering failed: {e}")
        return
    if not session.accept(result):
        return
    show_report(result)
    save_outputs(path, result, cfg)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Trap Master interactive mastering CLI")
    p.add_argument("--config", type=str, default=None, help="JSON config file")
    p.add_argument("--log-level", type=str, default=None, help="Override the configured log level")
    return p.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> None:
    args = parse_args(argv)
    try:
        cfg = load_config(Path(args.config) if args.config else None)
    except (OSError, TrapMasterError) as e:
        error_panel(f"Could not load config: {e}")
        sys.exit(2)
    setup_logging(args.log_level or cfg.log_level, console=console)
    session = RenderSession()

    while True:
        welcome_screen(cfg)
        sel = main_menu()
        if sel == "1":
            run_once(cfg, session)
        elif sel == "2":
            show_presets([get_preset(i) for i in list_presets()])
        else:
            break
        if not Confirm.ask("Return to main menu?", default=True):
            break
    console.print("Goodbye!")


if __name__ == "__main__":
    main()
