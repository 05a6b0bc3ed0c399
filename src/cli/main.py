"""
Typer CLI for the proficiency engine.

Commands:
    proficiency replay FILE        - Ingest JSON-lines observations and save
    proficiency report             - Ranked analysis of all tracked keys
    proficiency report --unit q    - Detailed analysis of one key
    proficiency reset              - Forget all stored state

Usage:
    proficiency --help
    proficiency replay session.jsonl --top 5
    proficiency report --json
"""

from __future__ import annotations

import json
import sys
from datetime import datetime
from pathlib import Path

import typer
from loguru import logger
from pydantic import BaseModel, Field, ValidationError
from rich import print as rprint
from rich.console import Console
from rich.table import Table

from config import Settings, get_settings
from src.proficiency.engine import ProficiencyEngine
from src.proficiency.models import AnalysisResult, ObservationContext

app = typer.Typer(
    name="proficiency",
    help="Per-key typing proficiency: Bayesian estimates, learning states and practice schedule",
    no_args_is_help=True,
)

console = Console()


class ReplayRecord(BaseModel):
    """One line of a replay file."""

    unit: str = Field(min_length=1)
    correct: bool
    latency_ms: float
    timestamp: datetime | None = None
    session_position: float = 0.5
    adjacent: str | None = None


def _open_engine(settings: Settings) -> ProficiencyEngine:
    return ProficiencyEngine.from_settings(settings, autoload=True)


# ========================================
# Rendering
# ========================================


def _ranking_table(results: list[AnalysisResult], title: str) -> Table:
    table = Table(title=title, show_header=True)
    table.add_column("Key", style="cyan")
    table.add_column("Obs", justify="right", style="dim")
    table.add_column("Accuracy", justify="right")
    table.add_column("95% CI", justify="right", style="dim")
    table.add_column("Speed", justify="right")
    table.add_column("State")
    table.add_column("Weakness", justify="right")
    table.add_column("Priority", justify="right", style="bold")
    table.add_column("Next", justify="right")

    for r in results:
        weakness_style = "red" if r.is_weak else "green"
        table.add_row(
            repr(r.unit) if r.unit.isspace() else r.unit,
            str(r.observation_count),
            f"{r.accuracy_estimate:.1%}",
            f"{r.accuracy_ci[0]:.1%}-{r.accuracy_ci[1]:.1%}",
            f"{r.speed_estimate:.0f} ms",
            r.current_state.value,
            f"[{weakness_style}]{r.weakness_score:.1f}[/{weakness_style}]",
            f"{r.practice_priority:.1f}",
            f"{r.practice_interval_days}d",
        )
    return table


def _print_detail(result: AnalysisResult) -> None:
    console.print(_ranking_table([result], title=f"Key '{result.unit}'"))

    rprint(f"  Best hour: {result.best_practice_hour}:00")
    rprint(f"  Best session position: {result.optimal_session_position}")
    rprint(f"  Sessions to mastery: {result.estimated_sessions_to_mastery}")
    rprint(f"  Learning rate: {result.learning_rate:.3f}/sample")
    if result.plateau_detected:
        rprint("  [yellow]Plateau detected[/yellow]")

    predictions = result.ensemble.to_dict()
    rprint(
        "  Ensemble: "
        + ", ".join(f"{name} {value:.2f}" for name, value in predictions.items())
    )

    if result.correlated_units:
        rprint(
            "  Adjacent keys: "
            + ", ".join(f"{c.unit} ({c.correlation:.0%})" for c in result.correlated_units)
        )

    if result.recommended_interventions:
        rprint("\n[bold]Recommendations[/bold]")
        for intervention in result.recommended_interventions:
            rprint(
                f"  • {intervention.message} "
                f"[dim](+{intervention.expected_improvement:.0f}%, "
                f"{intervention.confidence:.0%} confidence)[/dim]"
            )


# ========================================
# Commands
# ========================================


@app.command("replay")
def replay(
    file: Path = typer.Argument(..., help="JSON-lines file of observations"),
    top: int = typer.Option(10, "--top", "-n", help="Keys to show in the ranking"),
) -> None:
    """
    Feed recorded observations through the engine and save the result.

    Each line: {"unit": "q", "correct": false, "latency_ms": 212,
    "timestamp": "...", "session_position": 0.4, "adjacent": "w"}
    """
    if not file.exists():
        rprint(f"[red]✗[/red] File not found: {file}")
        raise typer.Exit(code=1)

    settings = get_settings()
    accepted = 0
    skipped = 0

    with _open_engine(settings) as engine:
        with file.open(encoding="utf-8") as handle:
            for line_number, line in enumerate(handle, start=1):
                if not line.strip():
                    continue
                try:
                    record = ReplayRecord.model_validate_json(line)
                except ValidationError as exc:
                    logger.warning("Skipping line {}: {}", line_number, exc.errors()[0]["msg"])
                    skipped += 1
                    continue

                context = ObservationContext(
                    timestamp=record.timestamp,
                    session_position=record.session_position,
                    adjacent_unit=record.adjacent,
                )
                if engine.record_observation(record.unit, record.correct, record.latency_ms, context):
                    accepted += 1
                else:
                    skipped += 1

        saved = engine.save()
        results = engine.analyze_all()

    rprint(f"\n[bold cyan]Replayed {file.name}[/bold cyan]")
    rprint(f"  Accepted: {accepted}")
    rprint(f"  Skipped: {skipped}\n")

    if results:
        console.print(_ranking_table(results[:top], title="Practice Priority"))

    if saved:
        rprint("\n[bold green]✓ State saved[/bold green]")
    else:
        rprint("\n[yellow]⚠[/yellow] State could not be saved, check logs for details")
        raise typer.Exit(code=1)


@app.command("report")
def report(
    unit: str | None = typer.Option(None, "--unit", "-u", help="Show one key in detail"),
    top: int = typer.Option(10, "--top", "-n", help="Keys to show in the ranking"),
    as_json: bool = typer.Option(False, "--json", help="Print JSON instead of tables"),
) -> None:
    """Show analysis for the stored state."""
    settings = get_settings()

    with _open_engine(settings) as engine:
        if unit is not None:
            results = [engine.analyze(unit)]
        else:
            results = engine.analyze_all()[:top]

    if as_json:
        typer.echo(json.dumps([r.to_dict() for r in results], indent=2))
        return

    if not results:
        rprint("[yellow]No keys with enough observations yet.[/yellow]")
        return

    if unit is not None:
        _print_detail(results[0])
    else:
        console.print(_ranking_table(results, title="Practice Priority"))


@app.command("reset")
def reset(
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
) -> None:
    """Delete all stored proficiency state."""
    if not yes and not typer.confirm("Delete all stored proficiency state?"):
        rprint("[dim]Aborted.[/dim]")
        raise typer.Exit(code=1)

    settings = get_settings()
    with _open_engine(settings) as engine:
        engine.clear()

    rprint("[bold green]✓ State cleared[/bold green]")


# ========================================
# Entry Point
# ========================================


def configure_logging(settings: Settings) -> None:
    logger.remove()
    logger.add(
        sys.stderr,
        level=settings.log_level,
        format="<level>{message}</level>",
    )
    if settings.log_file:
        logger.add(settings.log_file, level="DEBUG", rotation="10 MB", retention=3)


def main() -> None:
    """CLI entry point."""
    configure_logging(get_settings())
    app()


if __name__ == "__main__":
    main()
