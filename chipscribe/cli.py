"""Command-line interface for chipscribe.

Provides commands for:
- transcribe: Convert a recording to a quantized melody
- suggest: Recommend analysis settings for a recording
- arrange: Transcribe and expand into a retro multi-track arrangement
- info: Show audio file information
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .core import AnalysisOptions, ContinuityOptions, InvalidAudioError, MelodyStep

app = typer.Typer(
    name="chipscribe",
    help="Hum-to-chiptune melody transcription and arrangement",
    rich_markup_mode="markdown",
)
console = Console()


def _setup_logging(verbose: bool) -> None:
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        )


def _load(input_file: Path):
    """Load an audio file or exit with a message."""
    from .input import AudioLoader

    if not input_file.exists():
        console.print(f"[red]Error: File not found: {input_file}[/red]")
        raise typer.Exit(1)
    try:
        return AudioLoader().load(str(input_file))
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)


def _build_options(
    bpm: float,
    grid: str,
    triplets: bool,
    mode: str,
    rms_threshold: float,
    clarity_threshold: float,
    min_note_ms: float,
    key: Optional[str],
    scale: str,
    snap: bool,
    tolerance: float,
    min_hz: float,
    max_hz: float,
) -> AnalysisOptions:
    return AnalysisOptions(
        bpm=bpm,
        grid=grid,
        triplets=triplets,
        analysis_mode=mode,
        rms_threshold=rms_threshold,
        clarity_threshold=clarity_threshold,
        min_note_ms=min_note_ms,
        key_mode="manual" if key else "auto",
        key=key or "C",
        scale=scale,
        snap_enabled=snap,
        snap_tolerance_cents=tolerance,
        min_hz=min_hz,
        max_hz=max_hz,
    )


def _run_analysis(audio, sr, options: AnalysisOptions, auto: bool, precise: bool):
    """Optionally auto-tune the options, then transcribe."""
    from .analysis import estimate_predominant, suggest_settings
    from .input import downmix_to_mono
    from .transcription import analyze

    predominant = None
    if precise:
        predominant = estimate_predominant(downmix_to_mono(audio), sr, options.min_hz, options.max_hz)
    if auto:
        suggestion = suggest_settings(audio, sr, options, predominant)
        options = suggestion.apply_to(options)
    return analyze(audio, sr, options, predominant), options


def _steps_to_json(steps: List[MelodyStep]) -> List[Dict[str, Any]]:
    return [s.to_dict() for s in steps]


@app.command()
def transcribe(
    input_file: Path = typer.Argument(..., help="Input audio file (WAV, MP3, FLAC, OGG)"),
    bpm: float = typer.Option(120.0, "-t", "--bpm", help="Tempo used for beat quantization"),
    grid: str = typer.Option("eighth", "-g", "--grid", help="Note grid: quarter/eighth/sixteenth"),
    triplets: bool = typer.Option(False, "--triplets", help="Use the triplet grid"),
    mode: str = typer.Option("monophonic", "-m", "--mode", help="Analysis mode: monophonic/full_mix"),
    rms_threshold: float = typer.Option(0.02, "--rms", help="Minimum frame RMS to count as voiced"),
    clarity_threshold: float = typer.Option(0.75, "--clarity", help="Minimum pitch clarity to count as voiced"),
    min_note_ms: float = typer.Option(80.0, "--min-note-ms", help="Shortest note kept, in milliseconds"),
    key: Optional[str] = typer.Option(None, "-k", "--key", help="Force a key root (default: detect)"),
    scale: str = typer.Option("major", "--scale", help="Scale used with --key: major/minor"),
    snap: bool = typer.Option(True, "--snap/--no-snap", help="Snap pitches to the key's scale"),
    tolerance: float = typer.Option(50.0, "--tolerance", help="Largest snap correction in cents"),
    min_hz: float = typer.Option(200.0, "--min-hz", help="Lowest accepted pitch"),
    max_hz: float = typer.Option(2500.0, "--max-hz", help="Highest accepted pitch"),
    auto: bool = typer.Option(False, "-a", "--auto", help="Derive tempo, grid and thresholds from the audio"),
    precise: bool = typer.Option(False, "--precise", help="Use the librosa predominant-pitch backend"),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Verbose output"),
    json_output: bool = typer.Option(False, "--json", help="Output results as JSON (for scripting)"),
):
    """Transcribe a hummed, sung or played melody to note steps.

    **Examples:**

        chipscribe transcribe hum.wav

        chipscribe transcribe song.mp3 --mode full_mix --auto --json
    """
    _setup_logging(verbose)
    audio, sr = _load(input_file)
    options = _build_options(
        bpm, grid, triplets, mode, rms_threshold, clarity_threshold, min_note_ms,
        key, scale, snap, tolerance, min_hz, max_hz,
    )

    try:
        result, options = _run_analysis(audio, sr, options, auto, precise)
    except InvalidAudioError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    if json_output:
        console.print_json(data={
            "input": str(input_file),
            "options": options.to_dict(),
            "key": result.key,
            "scale": result.scale,
            "suggested_key": result.suggested_key,
            "suggested_scale": result.suggested_scale,
            "melody": _steps_to_json(result.melody),
            "warning": result.warning,
            "estimator_error": result.estimator_error,
            "debug": result.debug,
        })
        return

    console.print(f"[blue]Transcribed:[/blue] {input_file}")
    console.print(f"  Key: {result.key} {result.scale} (suggested: {result.suggested_key} {result.suggested_scale})")
    console.print(f"  Tempo: {options.bpm:.1f} BPM, grid: {options.grid}{' triplets' if options.triplets else ''}")
    if result.warning:
        console.print(f"[yellow]Warning: {result.warning}[/yellow]")
    if result.estimator_error:
        console.print(f"[yellow]Precise estimator unavailable: {result.estimator_error}[/yellow]")
    _show_steps_table(result.melody, "Melody")


@app.command()
def suggest(
    input_file: Path = typer.Argument(..., help="Input audio file"),
    precise: bool = typer.Option(False, "--precise", help="Use the librosa backend's tempo estimate"),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Verbose output"),
    json_output: bool = typer.Option(False, "--json", help="Output results as JSON (for scripting)"),
):
    """Recommend analysis settings for a recording."""
    from dataclasses import asdict

    from .analysis import estimate_predominant, suggest_settings
    from .input import downmix_to_mono

    _setup_logging(verbose)
    audio, sr = _load(input_file)
    predominant = None
    if precise:
        predominant = estimate_predominant(downmix_to_mono(audio), sr, 60.0, 3000.0)
    try:
        suggestion = suggest_settings(audio, sr, None, predominant)
    except InvalidAudioError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    if json_output:
        console.print_json(data=asdict(suggestion))
        return

    table = Table(title=f"Suggested settings: {input_file.name}")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")
    for name, value in asdict(suggestion).items():
        table.add_row(name, f"{value:.3f}" if isinstance(value, float) else str(value))
    console.print(table)


@app.command()
def arrange(
    input_file: Path = typer.Argument(..., help="Input audio file"),
    bpm: float = typer.Option(120.0, "-t", "--bpm", help="Tempo used for beat quantization"),
    grid: str = typer.Option("eighth", "-g", "--grid", help="Note grid: quarter/eighth/sixteenth"),
    triplets: bool = typer.Option(False, "--triplets", help="Use the triplet grid"),
    mode: str = typer.Option("monophonic", "-m", "--mode", help="Analysis mode: monophonic/full_mix"),
    key: Optional[str] = typer.Option(None, "-k", "--key", help="Force a key root (default: detect)"),
    scale: str = typer.Option("major", "--scale", help="Scale used with --key: major/minor"),
    retro: str = typer.Option("snes_lite", "-r", "--retro", help="Retro style: nes/snes_lite"),
    output_style: str = typer.Option("auto_arrange", "--style", help="Output style: auto_arrange/lead_only"),
    continuity: str = typer.Option("seamless", "-c", "--continuity", help="Rest policy: seamless/natural"),
    intensity: float = typer.Option(60.0, "-i", "--intensity", help="Continuity intensity 0-100"),
    auto: bool = typer.Option(False, "-a", "--auto", help="Derive tempo, grid and thresholds from the audio"),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Verbose output"),
    json_output: bool = typer.Option(False, "--json", help="Output results as JSON (for scripting)"),
):
    """Transcribe a recording and expand it into lead, bass, harmony and drums."""
    from .arrangement import apply_continuity, build_arrangement

    _setup_logging(verbose)
    audio, sr = _load(input_file)
    options = AnalysisOptions(
        bpm=bpm,
        grid=grid,
        triplets=triplets,
        analysis_mode=mode,
        key_mode="manual" if key else "auto",
        key=key or "C",
        scale=scale,
    )
    try:
        result, options = _run_analysis(audio, sr, options, auto, precise=False)
    except InvalidAudioError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    arrangement = build_arrangement(
        result.melody, options.bpm, result.key, result.scale, output_style, retro
    )
    outcome = apply_continuity(
        arrangement,
        ContinuityOptions(mode=continuity, intensity=intensity, grid=options.grid, triplets=options.triplets),
    )
    arrangement = outcome.arrangement

    if json_output:
        console.print_json(data={
            "bpm": arrangement.bpm,
            "key": arrangement.key,
            "scale": arrangement.scale,
            "tracks": [
                {
                    "role": t.role.value,
                    "name": t.name,
                    "tone_preset": t.tone_preset,
                    "midi_channel": t.midi_channel,
                    "midi_program": t.midi_program,
                    "pan": t.pan,
                    "steps": _steps_to_json(t.steps),
                }
                for t in arrangement.tracks
            ],
            "continuity": {
                "rests_removed": outcome.stats.rests_removed,
                "rests_shortened": outcome.stats.rests_shortened,
                "fills_inserted": outcome.stats.fills_inserted,
            },
            "warning": result.warning,
        })
        return

    console.print(
        f"[blue]Arrangement:[/blue] {arrangement.key} {arrangement.scale}, "
        f"{arrangement.bpm:.1f} BPM, {arrangement.total_beats():.2f} beats"
    )
    if result.warning:
        console.print(f"[yellow]Warning: {result.warning}[/yellow]")
    for track in arrangement.tracks:
        _show_steps_table(track.steps, f"{track.name} ({track.tone_preset})")
    stats = outcome.stats
    console.print(
        f"  Continuity: {stats.rests_removed} rests removed, "
        f"{stats.rests_shortened} shortened, {stats.fills_inserted} fills"
    )


@app.command()
def info(
    input_file: Path = typer.Argument(..., help="Input audio file"),
):
    """Show audio file information."""
    from .analysis import TempoAnalyzer
    from .inference import KeyDetector
    from .input import AudioLoader

    audio, sr = _load(input_file)
    loader = AudioLoader()

    console.print(f"\n[bold]Audio Info:[/bold] {input_file.name}")
    console.print(f"  Duration: {loader.get_duration(audio, sr):.2f} seconds")
    console.print(f"  Sample rate: {sr} Hz")
    console.print(f"  Samples: {len(audio):,}")

    tempo = TempoAnalyzer().analyze(audio, sr)
    console.print(f"  Estimated tempo: {tempo.bpm:.1f} BPM (confidence: {tempo.confidence:.2f})")

    key, scale, score = KeyDetector().detect_from_audio(audio, sr)
    console.print(f"  Estimated key: {key} {scale} (score: {score:.2f})")


def _show_steps_table(steps: List[MelodyStep], title: str):
    """Display melody steps in a table."""
    table = Table(title=title)
    table.add_column("#", style="dim")
    table.add_column("Note", style="cyan")
    table.add_column("Beats", style="green")
    table.add_column("Velocity", style="magenta")

    for i, step in enumerate(steps, start=1):
        table.add_row(
            str(i),
            step.note,
            f"{step.beats:.3f}",
            "" if step.velocity is None else str(step.velocity),
        )

    console.print(table)


def main():
    """Entry point."""
    app()


if __name__ == "__main__":
    main()
