from __future__ import annotations

from dataclasses import replace
from pathlib import Path
import typer

from lyrics_sync.app import play as play_loop, prepare
from lyrics_sync.config import load_config
from lyrics_sync.errors import UnsupportedFormat
from lyrics_sync.export import export_json, export_lrc, export_srt
from lyrics_sync.logging_setup import setup_logging
from lyrics_sync.model import TimedDocument
from lyrics_sync.parsers.detect import parse_lyrics
from lyrics_sync.sync.engine import SyncEngine
from lyrics_sync.sync.retime import retime_document


app = typer.Typer(no_args_is_help=True, add_completion=False)


def _read(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError:
        typer.echo(f"Error: file not found: {path}", err=True)
        raise typer.Exit(code=1)


def _load(path: Path, fmt: str) -> TimedDocument:
    cfg = load_config()
    text = _read(path)
    try:
        doc = parse_lyrics(text, fmt, lrc_last_line_ms=cfg.lrc_last_line_ms)
    except UnsupportedFormat as e:
        raise typer.BadParameter(str(e), param_hint="--format")
    if doc is None or doc.is_empty:
        typer.echo(f"Error: no timed lyrics found in {path}", err=True)
        raise typer.Exit(code=1)
    return doc


@app.command()
def parse(
    path: Path,
    fmt: str = typer.Option("auto", "--format", case_sensitive=False, help="auto|lrc|ttml|json"),
):
    """Parse a lyrics file and print stats."""
    doc = _load(path, fmt)
    md = doc.metadata
    typer.echo(f"kind={doc.kind.value}")
    typer.echo(f"lines={doc.line_count}")
    typer.echo(f"syllables={doc.syllable_count}")
    typer.echo(f"first_ms={doc.lines[0].start_ms}")
    typer.echo(f"last_end_ms={max(ln.end_ms for ln in doc.lines)}")
    if md.title:
        typer.echo(f"title={md.title}")
    if md.agents:
        typer.echo(f"agents={','.join(sorted(md.agents))}")
    if md.song_parts:
        typer.echo(f"song_parts={len(md.song_parts)}")
    typer.echo(f"tags={md.tags or {}}")


@app.command()
def export(
    path: Path,
    fmt: str = typer.Option("json", "--format", case_sensitive=False, help="json|lrc|srt"),
    out: Path | None = typer.Option(None, "--out", help="Output file (default: stdout)"),
    retime: bool = typer.Option(False, "--retime", help="Apply line end retiming before export"),
    source_fmt: str = typer.Option("auto", "--from", case_sensitive=False, help="Input format: auto|lrc|ttml|json"),
):
    """Export lyrics to JSON/LRC/SRT."""
    doc = _load(path, source_fmt)
    if retime:
        cfg = load_config()
        retime_document(
            doc,
            overlap_threshold_ms=cfg.retime_overlap_threshold_ms,
            max_extension_ms=cfg.retime_max_extension_ms,
        )
    fmt_l = fmt.lower()
    if fmt_l == "json":
        data = export_json(doc)
    elif fmt_l == "lrc":
        data = export_lrc(doc)
    elif fmt_l == "srt":
        data = export_srt(doc)
    else:
        raise typer.BadParameter("format must be one of: json, lrc, srt", param_hint="--format")

    if out:
        out.write_text(data, encoding="utf-8")
    else:
        typer.echo(data, nl=False)


@app.command()
def inspect(
    path: Path,
    at: int = typer.Option(..., "--at", help="Playback time in ms"),
    fmt: str = typer.Option("auto", "--format", case_sensitive=False, help="auto|lrc|ttml|json"),
):
    """Show what the sync engine reports at one playback time."""
    cfg = load_config()
    doc = prepare(cfg, _load(path, fmt))
    engine = SyncEngine(cfg.sync_settings())
    with engine.open_session(doc) as session:
        result = engine.tick(session, at)

    typer.echo(f"time_ms={result.time_ms}")
    typer.echo(f"scroll_target={result.scroll_target}")
    if not result.active_lines:
        typer.echo("active: -")
    for li in result.active_lines:
        line = doc.lines[li]
        label = "(gap)" if line.is_gap else line.text
        typer.echo(f"active {li} [{line.start_ms}-{line.end_ms}] {result.line_progress[li]:.0%} {label}")
        for si, syl in enumerate(line.syllables):
            typer.echo(f"  {si} {result.syllable_states[(li, si)].value:<11} {syl.text!r}")


@app.command()
def play(
    path: Path,
    fmt: str = typer.Option("auto", "--format", case_sensitive=False, help="auto|lrc|ttml|json"),
    start: int = typer.Option(0, "--start", help="Start position in ms"),
    speed: float = typer.Option(1.0, "--speed", help="Playback speed multiplier"),
    refresh_hz: float | None = typer.Option(None, "--refresh-hz", help="Tick frequency (Hz)"),
    no_alt_screen: bool = typer.Option(False, "--no-alt-screen", help="Do not use alternate screen buffer"),
    context_lines: int | None = typer.Option(None, "--context", help="Lines above the scroll target"),
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging"),
):
    """
    Play lyrics in the terminal against a simulated clock.
    """
    setup_logging(debug)
    cfg = load_config()
    if refresh_hz is not None:
        cfg = replace(cfg, refresh_hz=refresh_hz)
    if context_lines is not None:
        cfg = replace(cfg, context_lines=context_lines)
    if no_alt_screen:
        cfg = replace(cfg, use_alt_screen=False)
    if speed <= 0:
        raise typer.BadParameter("speed must be > 0", param_hint="--speed")

    doc = _load(path, fmt)
    title = doc.metadata.title or path.stem
    raise typer.Exit(code=play_loop(cfg, doc, title=title, start_ms=start, speed=speed))


def main() -> None:
    app()


if __name__ == "__main__":
    main()
