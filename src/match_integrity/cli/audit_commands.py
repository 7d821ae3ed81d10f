"""
Audit CLI commands for viewing match integrity activity.
"""

import json
import os
from collections import Counter
from datetime import datetime, timezone
from pathlib import Path
from typing import Annotated, Any, Optional

import typer
from rich.console import Console
from rich.table import Table

from match_integrity.models.audit import EventType

app = typer.Typer(help="Audit log commands")
console = Console()


def _get_audit_directory() -> Path:
    """Get the audit log directory path."""
    return Path(os.getenv("MATCH_INTEGRITY_AUDIT_DIR", "./audit"))


def _get_audit_file(date_str: str) -> Path:
    """Get the audit file path for a specific date."""
    return _get_audit_directory() / f"integrity-audit-{date_str}.jsonl"


def _load_audit_entries(file_path: Path) -> list[dict[str, Any]]:
    """Load audit entries from a JSONL file."""
    if not file_path.exists():
        return []

    with open(file_path) as f:
        return [json.loads(line) for line in f if line.strip()]


def _entries_for(date: Optional[str]) -> tuple[str, list[dict[str, Any]]]:
    if not date:
        date = datetime.now(timezone.utc).strftime("%Y-%m-%d")

    audit_file = _get_audit_file(date)
    if not audit_file.exists():
        console.print(
            f"[yellow]No audit file found for {date}[/yellow]\nExpected: {audit_file}"
        )
        raise typer.Exit(1)

    try:
        entries = _load_audit_entries(audit_file)
    except json.JSONDecodeError as e:
        console.print(f"[red]Error loading audit file: {e}[/red]")
        raise typer.Exit(1) from e

    if not entries:
        console.print(f"[yellow]No audit entries found for {date}[/yellow]")
        raise typer.Exit(0)

    return date, entries


@app.command()
def view(
    date: Annotated[
        Optional[str],
        typer.Option("--date", "-d", help="Date to view (YYYY-MM-DD, default: today)"),
    ] = None,
    event_type: Annotated[
        Optional[str],
        typer.Option("--event-type", "-e", help="Filter by event type"),
    ] = None,
    participant: Annotated[
        Optional[str],
        typer.Option("--participant", "-p", help="Filter by participant ID"),
    ] = None,
    match_id: Annotated[
        Optional[str],
        typer.Option("--match-id", "-m", help="Filter by match ID"),
    ] = None,
    tamper_only: Annotated[
        bool,
        typer.Option("--tamper-only", help="Show only tamper_detected events"),
    ] = False,
    output_format: Annotated[
        str,
        typer.Option("--format", "-f", help="Output format (text/json)"),
    ] = "text",
) -> None:
    """View audit log entries."""
    date, entries = _entries_for(date)

    if event_type:
        entries = [e for e in entries if e.get("event_type") == event_type]
    if participant:
        entries = [e for e in entries if e.get("participant_id") == participant]
    if match_id:
        entries = [e for e in entries if e.get("correlation_id") == match_id]
    if tamper_only:
        entries = [
            e for e in entries if e.get("event_type") == EventType.TAMPER_DETECTED.value
        ]

    if not entries:
        console.print("[yellow]No matching audit entries found[/yellow]")
        raise typer.Exit(0)

    if output_format == "json":
        for entry in entries:
            print(json.dumps(entry))
    else:
        _display_audit_entries_text(entries, date)


def _display_audit_entries_text(entries: list[dict[str, Any]], date_str: str) -> None:
    """Display audit entries in human-readable text format."""
    console.print(f"\n[bold cyan]=== Integrity Audit Log: {date_str} ===[/bold cyan]\n")

    for entry in entries:
        event_type = entry.get("event_type")
        timestamp = entry.get("timestamp", "")
        time_str = timestamp.split("T")[1][:8] if "T" in timestamp else ""
        match_ref = entry.get("correlation_id") or "-"

        if event_type == EventType.MATCH_VALIDATED.value:
            mark = "[green]✓[/green]" if entry.get("is_valid") else "[red]✗[/red]"
            codes = entry.get("issue_codes", []) + entry.get("warning_codes", [])
            console.print(
                f"  {time_str} {mark} match_validated | #{match_ref} | "
                f"score {entry.get('score')}" + (f" | {', '.join(codes)}" if codes else "")
            )
        elif event_type == EventType.MATCH_SEALED.value:
            console.print(
                f"  {time_str} [green]✓[/green] match_sealed | #{match_ref} | "
                f"{entry.get('algorithm')} {entry.get('hash_prefix')}"
            )
        elif event_type == EventType.MATCH_REVERIFIED.value:
            console.print(f"  {time_str} [green]✓[/green] match_reverified | #{match_ref}")
        elif event_type == EventType.TAMPER_DETECTED.value:
            fields = ", ".join(entry.get("modified_fields", [])) or "unknown"
            console.print(
                f"  {time_str} [red]✗[/red] tamper_detected | #{match_ref} | fields: {fields}"
            )
        elif event_type == EventType.BATCH_COMPLETED.value:
            summary = entry.get("summary") or {}
            console.print(
                f"  {time_str} [green]✓[/green] batch_completed | "
                f"{summary.get('total', 0)} records ({summary.get('verified', 0)} verified, "
                f"{summary.get('flagged', 0)} flagged, {summary.get('errors', 0)} errors)"
            )
        else:
            console.print(f"  {time_str} [dim]{event_type}[/dim]")


@app.command()
def stats(
    date: Annotated[
        Optional[str],
        typer.Option("--date", "-d", help="Date to analyze (YYYY-MM-DD, default: today)"),
    ] = None,
) -> None:
    """Show statistics for audit logs."""
    date, entries = _entries_for(date)

    by_type = Counter(entry.get("event_type") for entry in entries)
    run_ids = {entry.get("run_id") for entry in entries if entry.get("run_id")}
    participants = {entry.get("participant_id") for entry in entries if entry.get("participant_id")}

    console.print(f"\n[bold cyan]=== Audit Statistics: {date} ===[/bold cyan]\n")

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Metric", style="cyan")
    table.add_column("Count", justify="right", style="green")

    table.add_row("Total Entries", str(len(entries)))
    table.add_row("Runs", str(len(run_ids)))
    table.add_row("Participants", str(len(participants)))
    for event in EventType:
        table.add_row(event.value, str(by_type.get(event.value, 0)))

    console.print(table)


if __name__ == "__main__":
    app()
