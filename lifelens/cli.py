"""
CLI interface for lifelens.

Usage:
    lifelens add --category diary "Spent the afternoon reading..."
    lifelens add-image ~/photos/hike.jpg --analyze
    lifelens pending
    lifelens summary
    lifelens type
"""

import dataclasses
import json
import os
import sys
from pathlib import Path
from typing import Optional

import typer
from typing_extensions import Annotated

from .api import Lens
from .errors import InsufficientDataError, LensError
from .logging_config import configure_quiet_mode, enable_debug_mode
from .types import (
    PROFILE_FIELDS,
    AggregationSnapshot,
    AnalysisStatus,
    AnalyzableItem,
    EmotionEstimate,
    EstimateKind,
    Report,
    TypeEstimate,
)

# Configure quiet mode by default (suppress verbose library output)
# Set LIFELENS_VERBOSE=1 to enable debug mode via environment
if os.environ.get("LIFELENS_VERBOSE") == "1":
    enable_debug_mode()
else:
    configure_quiet_mode(quiet=True)

DEFAULT_OWNER = "default"

# Short names accepted by `history`
_KIND_ALIASES = {
    "type": EstimateKind.TYPE,
    "emotion": EstimateKind.EMOTION,
    "report": EstimateKind.REPORT,
}


def _verbose_callback(value: bool):
    if value:
        enable_debug_mode()


# Global state for CLI options
_json_output = False
_store_override: Optional[Path] = None
_owner = DEFAULT_OWNER


def _json_callback(value: bool):
    global _json_output
    _json_output = value


def _get_json_output() -> bool:
    return _json_output


def _get_owner() -> str:
    return _owner


app = typer.Typer(
    name="lifelens",
    help="Structured insights from personal documents and images.",
    no_args_is_help=True,
    rich_markup_mode=None,
)


@app.callback()
def main_callback(
    verbose: Annotated[bool, typer.Option(
        "--verbose", "-v",
        help="Enable debug-level logging to stderr",
        callback=_verbose_callback,
        is_eager=True,
    )] = False,
    output_json: Annotated[bool, typer.Option(
        "--json", "-j",
        help="Output as JSON",
        callback=_json_callback,
        is_eager=True,
    )] = False,
    store: Annotated[Optional[Path], typer.Option(
        "--store", "-s",
        envvar="LIFELENS_STORE_PATH",
        help="Path to the store directory",
    )] = None,
    owner: Annotated[Optional[str], typer.Option(
        "--owner", "-o",
        envvar="LIFELENS_OWNER",
        help="Owner whose items and estimates to use",
    )] = None,
):
    """Structured insights from personal documents and images."""
    global _store_override, _owner
    _store_override = store
    _owner = owner or DEFAULT_OWNER


def _get_lens() -> Lens:
    """Open the store, handling errors gracefully."""
    import atexit

    try:
        lens = Lens(_store_override)
    except (OSError, ValueError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    atexit.register(lens.close)
    return lens


# -----------------------------------------------------------------------------
# Rendering
# -----------------------------------------------------------------------------

def _echo_json(data) -> None:
    typer.echo(json.dumps(data, ensure_ascii=False, indent=2))


def _format_item(item: AnalyzableItem) -> str:
    line = f"{item.id}  {item.category.value:<6} {item.status.value:<9} {item.created_at}"
    if item.error:
        line += f"\n    error: {item.error}"
    return line


def _format_item_detail(item: AnalyzableItem) -> str:
    lines = [_format_item(item)]
    if item.result is not None:
        for name, value in dataclasses.asdict(item.result).items():
            if isinstance(value, list):
                value = ", ".join(value)
            if value:
                lines.append(f"    {name}: {value}")
    if item.raw_response:
        lines.append(f"    raw response: {item.raw_response[:200]}")
    return "\n".join(lines)


def _format_ranked(title: str, pairs: list[tuple[str, int]]) -> str:
    if not pairs:
        return f"{title}: (none)"
    return f"{title}: " + ", ".join(f"{name} ({count})" for name, count in pairs)


def _format_snapshot(snapshot: AggregationSnapshot) -> str:
    if snapshot.is_empty:
        return "No analyzed items yet."
    return "\n".join([
        f"Analyzed items: {snapshot.item_count}",
        _format_ranked("Interests", snapshot.interests),
        _format_ranked("Keywords", snapshot.keywords),
        _format_ranked("Moods", snapshot.moods),
    ])


def _format_estimate(estimate) -> str:
    if isinstance(estimate, TypeEstimate):
        lines = [f"{estimate.type_code}  (confidence {estimate.confidence:.0f})"]
        for axis in estimate.axes:
            lines.append(f"  {axis.axis} {axis.score:5.1f} -> {axis.letter}  {axis.rationale}")
        if estimate.description:
            lines.append(estimate.description)
    elif isinstance(estimate, EmotionEstimate):
        lines = [
            f"Emotional health: {estimate.health_score:.0f}",
            f"  stability {estimate.stability_score:.0f}, "
            f"positive {estimate.positive_ratio:.0f}, negative {estimate.negative_ratio:.0f}",
        ]
        if estimate.primary_emotions:
            lines.append(f"  primary emotions: {', '.join(estimate.primary_emotions)}")
        for suggestion in estimate.suggestions:
            lines.append(f"  - {suggestion}")
    elif isinstance(estimate, Report):
        lines = [estimate.title, "", estimate.summary]
        for name in ("strengths", "improvements", "career_suggestions",
                     "lifestyle_recommendations", "growth_roadmap", "cautions"):
            values = getattr(estimate, name)
            if values:
                lines.append("")
                lines.append(name.replace("_", " ").capitalize() + ":")
                lines.extend(f"  - {v}" for v in values)
    else:
        raise TypeError(f"Not an estimate: {estimate!r}")
    lines.append(f"[{estimate.id} {estimate.created_at}]")
    return "\n".join(lines)


def _output_estimate(estimate) -> None:
    if _get_json_output():
        _echo_json(dataclasses.asdict(estimate))
    else:
        typer.echo(_format_estimate(estimate))


def _run_estimate(fn):
    """Run an estimator, turning InsufficientDataError into exit code 2."""
    try:
        return fn()
    except InsufficientDataError as e:
        if _get_json_output():
            _echo_json({
                "error": "insufficient_data",
                "message": str(e),
                "data_points": e.data_points,
                "required": e.required,
            })
        else:
            typer.echo(str(e), err=True)
        raise typer.Exit(2)
    except LensError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)


# -----------------------------------------------------------------------------
# Commands
# -----------------------------------------------------------------------------

@app.command()
def add(
    text: Annotated[Optional[str], typer.Argument(
        help="Document text (or use --file, or pipe via stdin)"
    )] = None,
    category: Annotated[str, typer.Option(
        "--category", "-c",
        help="diary, note or other",
    )] = "other",
    file: Annotated[Optional[Path], typer.Option(
        "--file", "-f",
        help="Read document text from a file",
    )] = None,
    analyze: Annotated[bool, typer.Option(
        "--analyze", "-a",
        help="Analyze immediately instead of leaving it pending",
    )] = False,
):
    """Add a text document."""
    if file is not None:
        try:
            text = file.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            typer.echo(f"Error: cannot read {file}: {e}", err=True)
            raise typer.Exit(1)
    elif text is None and not sys.stdin.isatty():
        text = sys.stdin.read()
    if not text:
        typer.echo("Error: provide document text, --file, or stdin", err=True)
        raise typer.Exit(1)

    lens = _get_lens()
    try:
        item = lens.add_document(_get_owner(), text, category)
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    if analyze:
        item = lens.analyze(item.id)
    _output_items([item], detail=analyze)


@app.command("add-image")
def add_image(
    path: Annotated[Path, typer.Argument(help="Image file (.jpg .jpeg .png .gif .webp, max 10MB)")],
    analyze: Annotated[bool, typer.Option(
        "--analyze", "-a",
        help="Analyze immediately instead of leaving it pending",
    )] = False,
):
    """Add an image."""
    lens = _get_lens()
    try:
        item = lens.add_image(_get_owner(), path)
    except (LensError, ValueError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    if analyze:
        item = lens.analyze(item.id)
    _output_items([item], detail=analyze)


def _output_items(items: list[AnalyzableItem], detail: bool = False) -> None:
    if _get_json_output():
        _echo_json([item.to_dict() for item in items])
        return
    for item in items:
        typer.echo(_format_item_detail(item) if detail else _format_item(item))


@app.command()
def profile(
    fields: Annotated[Optional[list[str]], typer.Option(
        "--set",
        help=f"Set a field as name=value. Fields: {', '.join(PROFILE_FIELDS)}",
    )] = None,
    replace: Annotated[bool, typer.Option(
        "--replace",
        help="Drop fields not given with --set",
    )] = False,
):
    """Show or update the profile."""
    lens = _get_lens()
    if fields:
        updates = {}
        for entry in fields:
            name, sep, value = entry.partition("=")
            if not sep:
                typer.echo(f"Error: expected name=value, got '{entry}'", err=True)
                raise typer.Exit(1)
            updates[name.strip()] = value
        try:
            current = lens.set_profile(_get_owner(), replace=replace, **updates)
        except ValueError as e:
            typer.echo(f"Error: {e}", err=True)
            raise typer.Exit(1)
    else:
        current = lens.get_profile(_get_owner())

    if _get_json_output():
        _echo_json(current.fields if current else {})
    elif current is None or not current.fields:
        typer.echo("No profile yet. Set fields with: lifelens profile --set interests=...")
    else:
        typer.echo(current.as_text())


@app.command()
def analyze(
    item_id: Annotated[str, typer.Argument(help="Item to analyze")],
):
    """Analyze one pending item."""
    lens = _get_lens()
    item = lens.analyze(item_id)
    if item is None:
        typer.echo(f"Not found: {item_id}", err=True)
        raise typer.Exit(1)
    _output_items([item], detail=True)
    if item.status is AnalysisStatus.FAILED:
        raise typer.Exit(1)


@app.command("pending")
def pending_cmd(
    limit: Annotated[int, typer.Option(
        "--limit", "-n",
        help="Maximum items to process",
    )] = 10,
    all_owners: Annotated[bool, typer.Option(
        "--all",
        help="Process pending items of every owner",
    )] = False,
    recover: Annotated[bool, typer.Option(
        "--recover",
        help="First mark analyses stuck for 30+ minutes as failed",
    )] = False,
):
    """Analyze pending items."""
    lens = _get_lens()
    recovered = lens.recover_stale() if recover else []
    result = lens.process_pending(None if all_owners else _get_owner(), limit=limit)
    if _get_json_output():
        _echo_json({**result, "recovered": recovered})
        return
    if recovered:
        typer.echo(f"Marked {len(recovered)} stale analyses as failed")
    typer.echo(
        f"Processed {result['processed']}: "
        f"{result['completed']} completed, {result['failed']} failed"
    )
    for error in result["errors"]:
        typer.echo(f"  {error['id']}: {error['error']}", err=True)


@app.command()
def retry(
    item_id: Annotated[Optional[str], typer.Argument(
        help="Failed item to retry (default: all failed items)"
    )] = None,
    no_analyze: Annotated[bool, typer.Option(
        "--no-analyze",
        help="Only re-queue; analyze later with `lifelens pending`",
    )] = False,
):
    """Retry failed items."""
    lens = _get_lens()
    if item_id:
        if not lens.retry(item_id, analyze=not no_analyze):
            typer.echo(f"Not a failed item: {item_id}", err=True)
            raise typer.Exit(1)
        _output_items([lens.get_item(item_id)], detail=True)
        return
    count = lens.retry_all_failed(_get_owner(), analyze=not no_analyze)
    if _get_json_output():
        _echo_json({"requeued": count, "status": lens.status_counts(_get_owner())})
    else:
        typer.echo(f"Re-queued {count} failed items")


@app.command()
def status(
    item_id: Annotated[Optional[str], typer.Argument(
        help="Show one item (default: counts per status)"
    )] = None,
):
    """Show analysis status."""
    lens = _get_lens()
    if item_id:
        item = lens.get_item(item_id)
        if item is None:
            typer.echo(f"Not found: {item_id}", err=True)
            raise typer.Exit(1)
        _output_items([item], detail=True)
        return
    counts = lens.status_counts(_get_owner())
    if _get_json_output():
        _echo_json(counts)
    else:
        typer.echo("  ".join(f"{name}: {count}" for name, count in counts.items()))


@app.command("list")
def list_items(
    status: Annotated[Optional[str], typer.Option(
        "--status",
        help="pending, analyzing, completed or failed",
    )] = None,
    category: Annotated[Optional[str], typer.Option(
        "--category", "-c",
        help="diary, note, image or other",
    )] = None,
):
    """List items in upload order."""
    lens = _get_lens()
    try:
        items = lens.list_items(_get_owner(), status=status, category=category)
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    _output_items(items)


@app.command()
def summary():
    """Show top interests, keywords and moods."""
    snapshot = _get_lens().get_summary(_get_owner())
    if _get_json_output():
        _echo_json(snapshot.to_dict())
    else:
        typer.echo(_format_snapshot(snapshot))


@app.command("type")
def type_cmd():
    """Estimate a four-letter personality type."""
    lens = _get_lens()
    _output_estimate(_run_estimate(lambda: lens.estimate_type(_get_owner())))


@app.command()
def emotion():
    """Estimate emotional health."""
    lens = _get_lens()
    _output_estimate(_run_estimate(lambda: lens.estimate_emotion(_get_owner())))


@app.command()
def report(
    title: Annotated[Optional[str], typer.Option("--title", help="Report title")] = None,
):
    """Build a narrative report."""
    lens = _get_lens()
    _output_estimate(_run_estimate(lambda: lens.build_report(_get_owner(), title=title)))


@app.command()
def history(
    kind: Annotated[str, typer.Argument(help="type, emotion or report")],
    limit: Annotated[int, typer.Option("--limit", "-n", help="Maximum records")] = 10,
):
    """Show past estimates, newest first."""
    estimate_kind = _KIND_ALIASES.get(kind)
    if estimate_kind is None:
        typer.echo(f"Error: kind must be one of: {', '.join(_KIND_ALIASES)}", err=True)
        raise typer.Exit(1)
    estimates = _get_lens().list_estimates(estimate_kind, _get_owner(), limit=limit)
    if _get_json_output():
        _echo_json([dataclasses.asdict(e) for e in estimates])
        return
    if not estimates:
        typer.echo(f"No {kind} estimates yet.")
    for estimate in estimates:
        typer.echo(_format_estimate(estimate))
        typer.echo("")


@app.command()
def config():
    """Show the store configuration."""
    lens = _get_lens()
    cfg = lens.config
    data = {
        "store": str(cfg.path),
        "config_file": str(cfg.config_path),
        "completion": {"name": cfg.completion.name, **cfg.completion.params},
        "retry": dataclasses.asdict(cfg.retry),
        "estimation": dataclasses.asdict(cfg.estimation),
        "emotion": dataclasses.asdict(cfg.emotion),
    }
    if _get_json_output():
        _echo_json(data)
        return
    typer.echo(f"Store:      {data['store']}")
    typer.echo(f"Config:     {data['config_file']}")
    typer.echo(f"Completion: {cfg.completion.name} {cfg.completion.params or ''}".rstrip())
    typer.echo(f"Retry:      {cfg.retry.max_attempts} attempts, {cfg.retry.delay}s apart")
    typer.echo(
        f"Estimates:  need {cfg.estimation.min_data_points} data points, "
        f"top {cfg.estimation.top_n}"
    )


def main():
    try:
        app()
    except SystemExit:
        raise  # Let typer handle exit codes
    except KeyboardInterrupt:
        raise SystemExit(130)  # Standard exit code for Ctrl+C
    except Exception as e:
        # Log full traceback to file, show clean message to user
        from .errors import log_exception
        if _store_override is not None:
            os.environ["LIFELENS_STORE_PATH"] = str(_store_override)
        log_path = log_exception(e, context="lifelens CLI")
        typer.echo(f"Error: {e}", err=True)
        typer.echo(f"Details logged to {log_path}", err=True)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
