"""Command-line interface for chordscope.

Provides commands for:
- analyze: Chord timeline, key and tempo of an audio file
- info: Show audio file information
"""

import json
import time
from pathlib import Path
from typing import Optional

import structlog
import typer
from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.table import Table

from .errors import ChordscopeError

app = typer.Typer(
    name="chordscope",
    help="Chord timeline extraction from audio recordings",
    rich_markup_mode="markdown",
)
console = Console()


def _load_config(path: Optional[Path]):
    from .config import AnalysisConfig

    if path is None:
        return AnalysisConfig()
    with open(path) as f:
        return AnalysisConfig.from_dict(json.load(f))


@app.command()
def analyze(
    input_file: Path = typer.Argument(..., help="Input audio file"),
    output: Optional[Path] = typer.Option(
        None, "-o", "--output", help="Write the result as JSON"
    ),
    midi: Optional[Path] = typer.Option(
        None, "--midi", help="Write the chord timeline as MIDI"
    ),
    config_file: Optional[Path] = typer.Option(
        None, "-c", "--config", help="JSON file overriding analysis thresholds"
    ),
    clean: bool = typer.Option(
        False, "--clean", help="Apply pre-emphasis, noise gate and smoothing first"
    ),
    tempo_method: Optional[str] = typer.Option(
        None, "--tempo-method", help="Tempo estimator: autocorr or librosa"
    ),
    verbose: bool = typer.Option(
        False, "-v", "--verbose", help="Print diagnostic events"
    ),
):
    """Chord timeline analysis: key, tempo and chords.

    Examples:
        chordscope analyze song.wav
        chordscope analyze song.mp3 -o chords.json --midi chords.mid
    """
    from .diagnostics import LoggingObserver
    from .input import AudioLoader
    from .output import ChordMIDIExporter, export_json, key_name
    from .pipeline import ChordPipeline

    if not input_file.exists():
        console.print(f"[red]Error: File not found: {input_file}[/red]")
        raise typer.Exit(1)

    try:
        config = _load_config(config_file)
    except (OSError, ValueError) as e:
        console.print(f"[red]Error: Invalid config: {e}[/red]")
        raise typer.Exit(1)
    if clean:
        config.extraction.clean_signal = True
    if tempo_method:
        config.tempo.method = tempo_method

    if verbose:
        structlog.configure(wrapper_class=structlog.make_filtering_bound_logger(10))

    console.print(f"\n[bold blue]Chord Analysis: {input_file.name}[/bold blue]\n")
    started = time.time()

    try:
        audio, sr = AudioLoader(mono=False).load(str(input_file))

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TimeElapsedColumn(),
            console=console,
            transient=True,
        ) as progress:
            task = progress.add_task("Analyzing...", total=1.0)

            def on_progress(stage: str, fraction: float) -> None:
                progress.update(task, description=f"{stage}...", completed=fraction)

            pipeline = ChordPipeline(
                config,
                observer=LoggingObserver() if verbose else None,
                progress=on_progress,
            )
            result = pipeline.analyze(audio, sr)
    except ChordscopeError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    console.print(f"  Duration: {result.duration_seconds:.2f}s")
    console.print(f"  Music starts at: {result.music_start_time:.2f}s")
    console.print(f"  Tempo: {result.tempo_bpm} BPM")
    console.print(
        f"  [green]Key: {key_name(result.key)}[/green] (confidence: {result.key.confidence:.2f})"
    )
    if result.key_changed:
        console.print(f"  [dim]Revised from {key_name(result.initial_key)}[/dim]")
    if result.style:
        console.print(f"  Style: {result.style.mode}")

    _show_chords_table(result)

    if result.patterns:
        best = result.patterns[0]
        console.print(
            f"\n  [green]Recurring progression ({best.count}x): "
            f"{' - '.join(_numeral_of(result, r) for r in best.roots)}[/green]"
        )

    if output:
        export_json(result, str(output), include_diagnostics=verbose)
        console.print(f"\n  Saved JSON to {output}")
    if midi:
        ChordMIDIExporter(tempo=result.tempo_bpm).export(result.timeline, str(midi))
        console.print(f"  Saved MIDI to {midi}")

    console.print(f"\n[green][OK] Analysis complete in {time.time() - started:.2f}s[/green]")


@app.command()
def info(
    input_file: Path = typer.Argument(..., help="Input audio file"),
):
    """Show information about an audio file."""
    from .analysis import TempoAnalyzer
    from .input import AudioLoader, prepare

    if not input_file.exists():
        console.print(f"[red]Error: File not found: {input_file}[/red]")
        raise typer.Exit(1)

    loader = AudioLoader(mono=False)
    try:
        audio, sr = loader.load(str(input_file))
        info_data = loader.get_info(str(input_file))
        mono = prepare(audio, sr, sr)
    except (ChordscopeError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    console.print(f"\n[bold]Audio Info:[/bold] {input_file.name}")
    console.print(f"  Duration: {loader.get_duration(mono, sr):.2f} seconds")
    console.print(f"  Sample rate: {sr} Hz")
    console.print(f"  Channels: {info_data.get('channels', 1)}")
    console.print(f"  Samples: {len(mono):,}")

    tempo = TempoAnalyzer().detect(mono, sr)
    console.print(f"  Estimated tempo: {tempo} BPM")


def _numeral_of(result, root: int) -> str:
    for ev in result.timeline:
        if ev.root == root:
            return ev.get_roman_numeral(result.key)
    return str(root)


def _show_chords_table(result):
    """Display chords in a table."""
    from .output import chord_label

    table = Table(title="Detected Chords")
    table.add_column("Chord", style="cyan")
    table.add_column("Roman", style="green")
    table.add_column("Time", style="yellow")
    table.add_column("Confidence", style="magenta")
    table.add_column("Source", style="dim")

    timeline = result.timeline
    for i, ev in enumerate(timeline):
        table.add_row(
            chord_label(ev, result.key),
            ev.get_roman_numeral(result.key),
            f"{ev.start_time:.2f}-{timeline.end_of(i):.2f}s",
            f"{ev.confidence:.2f}",
            ev.provenance.value,
        )

    console.print(table)


def main():
    """Entry point."""
    app()


if __name__ == "__main__":
    main()
