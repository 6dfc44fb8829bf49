"""taxmatch CLI - tax accountant matching engine."""

import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from taxmatch.config import DATABASE_URL, DB_PATH, DEFAULT_MATCH_LIMIT, LOG_LEVEL, MAX_MATCH_LIMIT
from taxmatch.db.connection import database_exists, init_tables
from taxmatch.db.diagnoses import SqlDiagnosisRepository
from taxmatch.db.matches import SqlMatchStore
from taxmatch.db.providers import SqlCandidateRepository, count_providers, load_providers_from_file
from taxmatch.schemas.match import MatchDecision
from taxmatch.services.diagnosis_service import complete_diagnosis
from taxmatch.services.match_service import MatchService
from taxmatch.services.stats_service import get_matching_stats
from taxmatch.utils import (
    DiagnosisNotFoundError,
    InvalidCriteriaError,
    MatchStoreError,
    TaxMatchError,
)

app = typer.Typer(help="taxmatch - Match clients with tax accountants")
console = Console()

LIMIT_OPTION = typer.Option(
    DEFAULT_MATCH_LIMIT,
    "--limit",
    "-n",
    min=1,
    max=MAX_MATCH_LIMIT,
    help="Number of top matches to keep",
)
JSON_OPTION = typer.Option(False, "--json", help="Output results as JSON")


@app.callback()
def main() -> None:
    """Configure logging for every command."""
    logging.basicConfig(
        level=LOG_LEVEL,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def build_service() -> MatchService:
    """Wire the match service to the configured database."""
    return MatchService(
        candidates=SqlCandidateRepository(),
        store=SqlMatchStore(),
        diagnoses=SqlDiagnosisRepository(),
    )


def _require_database() -> None:
    if not database_exists():
        console.print("[red]Error: Database not found. Run 'taxmatch init-db' first.[/red]")
        raise typer.Exit(1)


def _load_json_file(path: Path) -> Any:
    if not path.exists():
        console.print(f"[red]Error: File not found: {path}[/red]")
        raise typer.Exit(1)
    try:
        with open(path, encoding="utf-8") as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        console.print(f"[red]Error: Invalid JSON in {path}: {e}[/red]")
        raise typer.Exit(1)


def _handle_error(e: TaxMatchError) -> None:
    if isinstance(e, DiagnosisNotFoundError):
        console.print(f"[yellow]{e}[/yellow]")
    else:
        console.print(f"[red]Error: {e}[/red]")
    raise typer.Exit(1)


@app.command(name="init-db")
def init_db() -> None:
    """Create database tables if they don't exist."""
    init_tables()
    location = "PostgreSQL (cloud)" if DATABASE_URL else str(DB_PATH)
    console.print(f"[bold green]Database initialized:[/bold green] {location}")


@app.command(name="import-providers")
def import_providers(
    providers_file: Path = typer.Option(..., "--file", "-f", help="Path to providers JSON file"),
) -> None:
    """Import tax accountants from a JSON file.

    The JSON file should contain an array of provider objects with
    specialties and pricing_plans lists. Existing ids are skipped.
    """
    if not providers_file.exists():
        console.print(f"[red]Error: File not found: {providers_file}[/red]")
        raise typer.Exit(1)

    count = load_providers_from_file(file_path=providers_file)

    if count > 0:
        console.print(f"[bold green]Imported {count} providers from {providers_file}[/bold green]")
    else:
        console.print("[yellow]No new providers imported (all already exist).[/yellow]")


@app.command()
def info() -> None:
    """Display database statistics."""
    _require_database()
    total, eligible = count_providers()

    table = Table(title="Database Statistics")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Database", "PostgreSQL (cloud)" if DATABASE_URL else str(DB_PATH))
    table.add_row("Providers", str(total))
    table.add_row("Eligible Providers", str(eligible))
    console.print(table)


@app.command()
def diagnose(
    user: str = typer.Option(..., "--user", "-u", help="Client user id"),
    criteria_file: Path = typer.Option(..., "--criteria", "-c", help="Path to criteria JSON file"),
    answers_file: Path | None = typer.Option(None, "--answers", "-a", help="Path to answers JSON file"),
    limit: int = LIMIT_OPTION,
    output_json: bool = JSON_OPTION,
) -> None:
    """Save a completed diagnosis and generate its first matches."""
    _require_database()
    criteria = _load_json_file(criteria_file)
    answers = _load_json_file(answers_file) if answers_file is not None else {}

    service = build_service()
    try:
        diagnosis, decisions = complete_diagnosis(service, user, answers, criteria, limit=limit)
    except TaxMatchError as e:
        _handle_error(e)

    console.print(f"[bold cyan]Diagnosis saved:[/bold cyan] {diagnosis.id}")
    if decisions is None:
        console.print("[yellow]No matches generated. Run 'taxmatch regenerate' to retry.[/yellow]")
        return
    _output(service, decisions, output_json)


@app.command()
def regenerate(
    diagnosis_id: str = typer.Argument(..., help="Diagnosis id"),
    criteria_file: Path | None = typer.Option(
        None, "--criteria", "-c", help="Criteria JSON file (defaults to stored preferences)"
    ),
    limit: int = LIMIT_OPTION,
    output_json: bool = JSON_OPTION,
) -> None:
    """Recompute matches for a diagnosis, replacing stored results."""
    _require_database()
    criteria = _load_json_file(criteria_file) if criteria_file is not None else None

    service = build_service()
    try:
        decisions = service.regenerate(diagnosis_id, criteria, limit=limit)
    except (DiagnosisNotFoundError, InvalidCriteriaError, MatchStoreError) as e:
        _handle_error(e)

    _output(service, decisions, output_json)


@app.command()
def generate(
    diagnosis_id: str = typer.Argument(..., help="Diagnosis id"),
    limit: int = LIMIT_OPTION,
    output_json: bool = JSON_OPTION,
) -> None:
    """Generate matches for a diagnosis unless they already exist."""
    _require_database()
    service = build_service()
    try:
        decisions = service.generate_if_absent(diagnosis_id, limit=limit)
    except TaxMatchError as e:
        _handle_error(e)

    _output(service, decisions, output_json)


@app.command()
def results(
    diagnosis_id: str = typer.Argument(..., help="Diagnosis id"),
    output_json: bool = JSON_OPTION,
) -> None:
    """Show stored matches for a diagnosis."""
    _require_database()
    service = build_service()
    try:
        decisions = service.read(diagnosis_id)
    except DiagnosisNotFoundError as e:
        _handle_error(e)

    _output(service, decisions, output_json)


@app.command()
def recommend(
    user: str = typer.Option(..., "--user", "-u", help="Client user id"),
    limit: int = LIMIT_OPTION,
    output_json: bool = JSON_OPTION,
) -> None:
    """Show matches for a user's latest diagnosis, generating them if needed."""
    _require_database()
    service = build_service()
    try:
        decisions = service.recommend_for_user(user, limit=limit)
    except TaxMatchError as e:
        _handle_error(e)

    _output(service, decisions, output_json)


@app.command()
def stats(
    from_date: datetime | None = typer.Option(None, "--from", help="Start of date range"),
    to_date: datetime | None = typer.Option(None, "--to", help="End of date range"),
    output_json: bool = JSON_OPTION,
) -> None:
    """Show aggregate matching statistics."""
    _require_database()
    summary = get_matching_stats(SqlMatchStore(), SqlDiagnosisRepository(), from_date, to_date)

    if output_json:
        json.dump(obj=summary, fp=sys.stdout, indent=2, ensure_ascii=False)
        sys.stdout.write("\n")
        return

    table = Table(title="Matching Statistics")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Total Matches", str(summary["total_matches"]))
    table.add_row("Total Diagnoses", str(summary["total_diagnoses"]))
    table.add_row("Match Rate", f"{summary['match_rate']:.2f}")
    table.add_row("Average Score", f"{summary['average_matching_score']:.2f}")
    table.add_row("Success Rate", f"{summary['success_rate']:.1f}%")
    console.print(table)

    if summary["score_distribution"]:
        distribution = Table(title="Score Distribution")
        distribution.add_column("Range", style="cyan")
        distribution.add_column("Count", style="green")
        for bucket in summary["score_distribution"]:
            distribution.add_row(bucket["score_range"], str(bucket["count"]))
        console.print(distribution)


def _output(service: MatchService, decisions: list[MatchDecision], output_json: bool) -> None:
    if output_json:
        _output_json(decisions)
    else:
        _output_pretty(service, decisions)


def _output_json(decisions: list[MatchDecision]) -> None:
    """Output decisions as JSON to stdout."""
    output = [decision.model_dump(mode="json") for decision in decisions]
    json.dump(obj=output, fp=sys.stdout, indent=2, ensure_ascii=False)
    sys.stdout.write("\n")


def _output_pretty(service: MatchService, decisions: list[MatchDecision]) -> None:
    """Output decisions in pretty console format."""
    if not decisions:
        console.print("[yellow]No matches found.[/yellow]")
        return

    names = service.candidates.get_display_names([d.candidate_id for d in decisions])
    console.print(f"\n[bold green]Found {len(decisions)} top matches![/bold green]\n")

    for decision in decisions:
        name = names.get(decision.candidate_id) or decision.candidate_id
        content = [f"[cyan]Match Score:[/cyan] {decision.composite_score:.1f}"]
        if decision.reasons:
            content.append("\n[cyan]Why it's a match:[/cyan]")
            for reason in decision.reasons:
                content.append(f"  • {reason.description} ({reason.type.value}: {reason.score:.0f})")

        panel = Panel(
            renderable="\n".join(content),
            title=f"[bold]#{decision.rank} {name}[/bold]",
            border_style="green" if decision.rank == 1 else "blue",
        )
        console.print(panel)
        console.print()


if __name__ == "__main__":
    app()
