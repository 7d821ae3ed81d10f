#!/usr/bin/env python3
"""
Match Integrity CLI - terminal interface for validating and sealing matches.

Validates reported match outcomes, seals them with a tamper-evident
fingerprint and re-checks stored records for modifications.
"""

import atexit
import json
import os
import secrets
from datetime import datetime, timezone
from pathlib import Path
from typing import Annotated, Any, Optional

import typer
from dotenv import load_dotenv
from pydantic import ValidationError
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from match_integrity.cli import audit_commands
from match_integrity.integrity.config import IntegrityConfig, load_config
from match_integrity.integrity.validation_engine import ValidationEngine, generate_report
from match_integrity.integrity.verification_service import (
    VerificationService,
    render_batch_report,
)
from match_integrity.models.match_data import MatchRecord
from match_integrity.models.validation import ValidationResult
from match_integrity.models.verification import (
    BatchVerificationReport,
    ReverifyReport,
    VerifiedMatchRecord,
)
from match_integrity.utils.audit_logger import AuditLogger
from match_integrity.utils.metrics import get_metrics
from match_integrity.utils.record_store import JsonRecordStore

# Respect NO_COLOR for clean output in pipelines
use_rich = os.getenv("NO_COLOR") is None
console = Console(
    no_color=not use_rich,
    force_terminal=use_rich,
)
app = typer.Typer(
    name="match-integrity",
    help="Match Integrity - validate, seal and re-verify reported match outcomes",
    rich_markup_mode="rich",
)
app.add_typer(audit_commands.app, name="audit")


def _shutdown_metrics() -> None:
    """Flush pending metrics before exit."""
    get_metrics().shutdown(timeout_seconds=5)


atexit.register(_shutdown_metrics)

OUTPUT_FORMATS = ["text", "json"]

RATING_STYLES = {
    "Excellent": "bold green",
    "Good": "green",
    "Fair": "yellow",
    "Poor": "bold red",
}

SEVERITY_STYLES = {
    "critical": "bold red",
    "high": "red",
    "medium": "yellow",
}


def setup_environment(verbose: bool = False) -> None:
    """Set up environment variables for CLI usage."""
    load_dotenv()

    log_level = "DEBUG" if verbose else "ERROR"  # Only show errors unless verbose
    os.environ["LOG_LEVEL"] = log_level

    from match_integrity.utils.logger import integrity_logger

    integrity_logger.get_logger().setLevel(log_level)


def handle_cli_error(e: Exception, verbose: bool = False) -> None:
    """Handle CLI errors with user-friendly messages."""
    if isinstance(e, FileNotFoundError):
        console.print(f"[red]❌ File not found: {e.filename}[/red]")
    elif isinstance(e, json.JSONDecodeError):
        console.print(f"[red]❌ Invalid JSON: {e.msg} (line {e.lineno})[/red]")
    elif isinstance(e, ValidationError):
        console.print(f"[red]❌ Invalid {e.title} data ({e.error_count()} errors)[/red]")
        for error in e.errors():
            location = ".".join(str(part) for part in error["loc"])
            console.print(f"[dim]  {location}: {error['msg']}[/dim]")
    else:
        console.print(f"[red]❌ Error: {e}[/red]")

    if verbose:
        console.print("\n[dim]Full stack trace:[/dim]")
        console.print_exception()
    else:
        console.print("[dim]💡 Use --verbose/-v to see full error details[/dim]")


def _load_json(path: Path) -> Any:
    with open(path) as f:
        return json.load(f)


def _as_list(data: Any) -> list[Any]:
    return data if isinstance(data, list) else [data]


def _new_run_id() -> str:
    return f"{datetime.now(timezone.utc):%Y%m%d-%H%M%S}-{secrets.token_hex(3)}"


def build_service(
    config: IntegrityConfig, store: Optional[JsonRecordStore] = None
) -> VerificationService:
    """Assemble a VerificationService from configuration."""
    audit_logger = (
        AuditLogger(run_id=_new_run_id(), audit_dir=config.audit_dir)
        if config.audit_dir
        else None
    )
    return VerificationService(
        config=config,
        audit_logger=audit_logger,
        store=store,
        history_provider=store,
    )


def _validate_format(output_format: str) -> None:
    if output_format not in OUTPUT_FORMATS:
        console.print(
            f"[red]❌ Invalid format '{output_format}'. Use one of: {', '.join(OUTPUT_FORMATS)}[/red]"
        )
        raise typer.Exit(1)


def display_validation(result: ValidationResult, title: str = "Validation") -> None:
    """Display a validation result as a panel and findings table."""
    status = Text("VALID" if result.is_valid else "INVALID", style="bold green" if result.is_valid else "bold red")
    summary = Text.assemble(
        status,
        "  Score: ",
        (f"{result.score}/100", "bold"),
        "  Rating: ",
        (result.rating, RATING_STYLES[result.rating]),
    )
    console.print(Panel(summary, title=f"🛡️  {title}", border_style="cyan"))

    if not result.issues and not result.warnings:
        console.print("[green]✅ No issues detected[/green]")
        return

    table = Table(show_header=True, header_style="bold magenta", box=None)
    table.add_column("Type", style="dim", width=9)
    table.add_column("Code", style="cyan")
    table.add_column("Message", style="white")

    for issue in result.issues:
        table.add_row(
            Text(issue.severity, style=SEVERITY_STYLES[issue.severity]),
            issue.code,
            issue.message,
        )
    for warning in result.warnings:
        table.add_row(Text("warning", style="yellow"), warning.code, warning.message)

    console.print(table)


def display_reverify(report: ReverifyReport) -> None:
    """Display the outcome of a re-verification."""
    if report.still_valid:
        console.print(f"[green]✅ {report.record_id}: seal intact[/green]")
    else:
        console.print(f"[bold red]🚨 {report.record_id}: modification detected[/bold red]")
    for detail in report.details:
        console.print(f"[dim]  {detail}[/dim]")


def display_batch(report: BatchVerificationReport) -> None:
    """Display a batch verification report as a table."""
    table = Table(title=f"📊 Batch for {report.participant_id}", show_header=True, header_style="bold magenta")
    table.add_column("#", style="dim", justify="right")
    table.add_column("Match ID", style="cyan")
    table.add_column("Score", justify="center")
    table.add_column("Seal", justify="center")
    table.add_column("Notes", style="dim")

    for entry in report.entries:
        if not entry.ok:
            table.add_row(str(entry.index), entry.record_id or "-", "-", "[red]ERROR[/red]", entry.error or "")
            continue
        validation = entry.validation
        reverify = entry.reverify
        score = f"{validation.score} ({validation.rating})" if validation else "-"
        seal = "[green]OK[/green]" if reverify and reverify.still_valid else "[red]FLAGGED[/red]"
        notes = ", ".join(reverify.modified_fields) if reverify else ""
        if entry.duplicate_of:
            notes = ", ".join(filter(None, [notes, f"duplicate of {entry.duplicate_of}"]))
        table.add_row(str(entry.index), entry.record_id or "-", score, seal, notes)

    console.print(table)
    console.print(
        f"Average score: [bold]{report.average_score:.1f}[/bold]  "
        f"Suspicious: [bold]{report.suspicious_count}[/bold]  "
        f"Fairness: [{RATING_STYLES.get(report.fairness_rating, 'white')}]{report.fairness_rating}[/]"
    )


@app.command()
def validate(
    match_file: Annotated[Path, typer.Argument(help="JSON file with the match record")],
    history: Annotated[
        Optional[Path],
        typer.Option("--history", "-H", help="JSON file with the participant's prior matches"),
    ] = None,
    stats: Annotated[
        Optional[Path],
        typer.Option("--stats", "-s", help="JSON file with extended match stats"),
    ] = None,
    output_format: Annotated[
        str, typer.Option("--format", "-f", help="Output format (text/json)")
    ] = "text",
    strict: Annotated[
        bool, typer.Option("--strict", help="Exit with code 1 when the match is invalid")
    ] = False,
    verbose: Annotated[
        bool, typer.Option("--verbose", "-v", help="Show detailed logs")
    ] = False,
) -> None:
    """
    🔍 Validate a reported match outcome.

    Runs all six validation layers and prints the trust score, rating and findings.
    """
    setup_environment(verbose)
    _validate_format(output_format)

    try:
        config = load_config()
        engine = ValidationEngine(config)
        record = _load_json(match_file)
        history_data = _as_list(_load_json(history)) if history else None
        stats_data = _load_json(stats) if stats else None
    except (OSError, ValueError) as e:
        handle_cli_error(e, verbose)
        raise typer.Exit(1) from e

    result = engine.validate_match(record, stats=stats_data, history=history_data)

    if output_format == "json":
        payload = result.model_dump(mode="json", by_alias=True)
        payload["suspicious"] = engine.is_suspicious(result)
        print(json.dumps(payload, indent=2))
    else:
        display_validation(result)
        if verbose:
            console.print(generate_report(result))

    if strict and not result.is_valid:
        raise typer.Exit(1)


@app.command()
def seal(
    match_file: Annotated[Path, typer.Argument(help="JSON file with the match record")],
    participant: Annotated[
        str, typer.Option("--participant", "-p", help="Participant ID the match belongs to")
    ],
    output: Annotated[
        Optional[Path],
        typer.Option("--output", "-o", help="Write the sealed record to this file"),
    ] = None,
    store: Annotated[
        Optional[Path],
        typer.Option("--store", help="JSON state file to save the sealed record in"),
    ] = None,
    history: Annotated[
        Optional[Path],
        typer.Option("--history", "-H", help="JSON file with prior matches (defaults to the store)"),
    ] = None,
    verbose: Annotated[
        bool, typer.Option("--verbose", "-v", help="Show detailed logs")
    ] = False,
) -> None:
    """
    🔏 Validate and seal a match.

    The match is always sealed; validation findings are shown alongside.
    """
    setup_environment(verbose)

    try:
        config = load_config()
        record = MatchRecord.model_validate(_load_json(match_file))
        history_data = _as_list(_load_json(history)) if history else None
        service = build_service(config, JsonRecordStore(store) if store else None)
        outcome = service.record_match(record, participant, history=history_data)
    except (OSError, ValueError) as e:
        handle_cli_error(e, verbose)
        raise typer.Exit(1) from e

    verified = outcome.verified
    display_validation(outcome.validation, title=f"Sealed {verified.id}")
    if outcome.suspicious:
        console.print("[yellow]⚠️  Match flagged as suspicious[/yellow]")
    if outcome.duplicate_of:
        console.print(f"[yellow]⚠️  Same outcome as {outcome.duplicate_of}[/yellow]")
    console.print(f"[cyan]Proof:[/cyan] {verified.proof}")
    console.print(f"[cyan]Seal:[/cyan] {verified.seal.token}")
    console.print(f"[cyan]Share:[/cyan] {service.generate_shareable_proof(verified, participant)}")
    if not verified.integrity_hash.is_secure:
        console.print("[yellow]⚠️  Sealed with a non-secure fallback digest[/yellow]")

    if output:
        output.parent.mkdir(parents=True, exist_ok=True)
        with open(output, "w") as f:
            json.dump(verified.model_dump(mode="json", by_alias=True), f, indent=2)
        console.print(f"[green]💾 Sealed record saved to {output}[/green]")


@app.command()
def reverify(
    sealed_file: Annotated[
        Path, typer.Argument(help="JSON file with one sealed record or a list of them")
    ],
    participant: Annotated[
        str, typer.Option("--participant", "-p", help="Participant ID the records belong to")
    ],
    output_format: Annotated[
        str, typer.Option("--format", "-f", help="Output format (text/json)")
    ] = "text",
    verbose: Annotated[
        bool, typer.Option("--verbose", "-v", help="Show detailed logs")
    ] = False,
) -> None:
    """
    🔎 Re-check sealed records for tampering.

    Exits with code 1 when any record was modified after sealing.
    """
    setup_environment(verbose)
    _validate_format(output_format)

    try:
        config = load_config()
        records = [VerifiedMatchRecord.model_validate(raw) for raw in _as_list(_load_json(sealed_file))]
        service = build_service(config)
    except (OSError, ValueError) as e:
        handle_cli_error(e, verbose)
        raise typer.Exit(1) from e

    reports = [service.reverify_match(record, participant) for record in records]

    if output_format == "json":
        print(json.dumps([r.model_dump(mode="json", by_alias=True) for r in reports], indent=2))
    else:
        for report in reports:
            display_reverify(report)

    if any(report.modification_detected for report in reports):
        raise typer.Exit(1)


@app.command("verify-proof")
def verify_proof(
    token: Annotated[str, typer.Argument(help="Shareable proof token printed by `seal`")],
    sealed_file: Annotated[Path, typer.Argument(help="JSON file with the sealed record")],
    participant: Annotated[
        str, typer.Option("--participant", "-p", help="Participant ID the record belongs to")
    ],
    verbose: Annotated[
        bool, typer.Option("--verbose", "-v", help="Show detailed logs")
    ] = False,
) -> None:
    """
    🔗 Check a shareable proof against a sealed record.

    Exits with code 1 when the proof does not belong to the record and participant.
    """
    setup_environment(verbose)

    try:
        config = load_config()
        verified = VerifiedMatchRecord.model_validate(_load_json(sealed_file))
        service = build_service(config)
    except (OSError, ValueError) as e:
        handle_cli_error(e, verbose)
        raise typer.Exit(1) from e

    if service.verify_shareable_proof(token, verified, participant):
        console.print(f"[green]✅ Proof matches {verified.id}[/green]")
    else:
        console.print(f"[bold red]🚨 Proof does not match {verified.id}[/bold red]")
        raise typer.Exit(1)


@app.command()
def batch(
    participant: Annotated[
        str, typer.Option("--participant", "-p", help="Participant ID the records belong to")
    ],
    sealed_file: Annotated[
        Optional[Path],
        typer.Argument(help="JSON file with a list of sealed records"),
    ] = None,
    store: Annotated[
        Optional[Path],
        typer.Option("--store", help="JSON state file to read records (and history) from"),
    ] = None,
    output_format: Annotated[
        str, typer.Option("--format", "-f", help="Output format (text/json)")
    ] = "text",
    verbose: Annotated[
        bool, typer.Option("--verbose", "-v", help="Show detailed logs")
    ] = False,
) -> None:
    """
    📦 Validate and re-verify many sealed records for one participant.

    Reads records from a file or from the participant's entries in a store.
    """
    setup_environment(verbose)
    _validate_format(output_format)

    if sealed_file is None and store is None:
        console.print("[red]❌ Provide a records file or --store[/red]")
        raise typer.Exit(1)

    try:
        config = load_config()
        record_store = JsonRecordStore(store) if store else None
        if sealed_file is not None:
            records = _as_list(_load_json(sealed_file))
        else:
            records = record_store.load_raw(participant)
        service = build_service(config, record_store)
    except (OSError, ValueError) as e:
        handle_cli_error(e, verbose)
        raise typer.Exit(1) from e

    report = service.verify_batch(records, participant)

    if output_format == "json":
        print(json.dumps(report.model_dump(mode="json", by_alias=True), indent=2))
    else:
        display_batch(report)
        if verbose:
            console.print(render_batch_report(report))


@app.command()
def profile(
    history_file: Annotated[
        Path, typer.Argument(help="JSON file with the participant's prior matches")
    ],
    verbose: Annotated[
        bool, typer.Option("--verbose", "-v", help="Show detailed logs")
    ] = False,
) -> None:
    """
    📈 Show the statistical baseline built from a match history.
    """
    setup_environment(verbose)

    try:
        history = [MatchRecord.model_validate(raw) for raw in _as_list(_load_json(history_file))]
    except (OSError, ValueError) as e:
        handle_cli_error(e, verbose)
        raise typer.Exit(1) from e

    baseline = ValidationEngine(load_config()).build_player_profile(history)
    if baseline is None:
        console.print("[yellow]No matches in history; anomaly checks will be skipped[/yellow]")
        return

    table = Table(title="📈 Player Profile", show_header=True, header_style="bold magenta")
    table.add_column("Stat", style="cyan")
    table.add_column("Mean", justify="right")
    table.add_column("Std Dev", justify="right")
    table.add_column("Max", justify="right")

    for name, stat in (
        ("Goals", baseline.goals),
        ("Assists", baseline.assists),
        ("Duration", baseline.duration),
    ):
        table.add_row(name, f"{stat.mean:.2f}", f"{stat.stdev:.2f}", f"{stat.maximum:g}")

    console.print(table)
    console.print(
        f"Matches: [bold]{baseline.sample_size}[/bold]  "
        f"Win rate: [bold]{baseline.win_rate:.0%}[/bold]  "
        f"Current win streak: [bold]{baseline.current_win_streak}[/bold]"
    )


@app.command("config")
def show_config(
    verbose: Annotated[
        bool, typer.Option("--verbose", "-v", help="Show detailed logs")
    ] = False,
) -> None:
    """
    📋 Show the effective configuration.
    """
    setup_environment(verbose)

    try:
        config = load_config()
    except ValueError as e:
        handle_cli_error(e, verbose)
        raise typer.Exit(1) from e

    table = Table(show_header=False, box=None, padding=(0, 1))
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="white")

    for name, value in config.model_dump().items():
        table.add_row(name, "unset" if value is None else str(value))

    console.print(Panel(table, title="📋 Configuration", border_style="cyan"))


if __name__ == "__main__":
    app()
