"""
Pipeline CLI Commands
=====================

CLI commands for running the fly pattern pipeline stage by stage, reviewing
staged extractions and managing background jobs.
"""

from __future__ import annotations

import asyncio
from typing import Optional

import typer
from rich import print as rprint
from rich.console import Console
from rich.table import Table
from sqlalchemy.orm import Session

from fly_pattern_db.core.schema import PipelineStats
from fly_pattern_db.db.engine import get_session, init_db
from fly_pattern_db.ingestion.jobs import enqueue_pipeline, get_job_status
from fly_pattern_db.ingestion.orchestrator import PipelineOrchestrator, StageResult, StageStatus
from fly_pattern_db.ingestion.review import (
    ExtractionNotFoundError,
    InvalidTransitionError,
    approve_extraction,
    reject_extraction,
)

console = Console()
pipeline_app = typer.Typer(help="Fly pattern pipeline commands")
jobs_app = typer.Typer(help="Background job commands")
review_app = typer.Typer(help="Manual review of staged extractions")

pipeline_app.add_typer(jobs_app, name="jobs")
pipeline_app.add_typer(review_app, name="review")


def build_orchestrator(session: Session) -> PipelineOrchestrator:
    """Orchestrator wired to the default configuration."""
    return PipelineOrchestrator(session)


def _run_stage(stage, *args) -> StageResult:
    """Run one orchestrator stage against a fresh session and show the result."""
    init_db()
    with get_session() as session:
        orchestrator = build_orchestrator(session)
        with console.status(f"[bold blue]Running {stage}...[/bold blue]"):
            outcome = getattr(orchestrator, stage.replace("-", "_"))(*args)
            if asyncio.iscoroutine(outcome):
                outcome = asyncio.run(outcome)
    _display_stage_result(outcome)
    return outcome


def _exit_on_failure(*results: StageResult) -> None:
    if any(r.status == StageStatus.FAILED for r in results):
        raise typer.Exit(1)


@pipeline_app.command("discover")
def discover(
    queries: Optional[list[str]] = typer.Argument(None, help="Pattern names to search for"),
) -> None:
    """
    Find candidate sources for pattern names.

    With no names, the configured seed patterns not yet discovered are used.

    Examples:
        fly-pattern-db pipeline discover "Woolly Bugger" "Pheasant Tail Nymph"
        fly-pattern-db pipeline discover
    """
    _exit_on_failure(_run_stage("discover", queries or None))


@pipeline_app.command("scrape")
def scrape() -> None:
    """Fetch transcripts and article text for discovered sources."""
    _exit_on_failure(_run_stage("scrape"))


@pipeline_app.command("extract")
def extract() -> None:
    """Extract structured pattern records from scraped sources."""
    _exit_on_failure(_run_stage("extract"))


@pipeline_app.command("normalize")
def normalize() -> None:
    """Canonicalize materials and compute consensus confidence."""
    _exit_on_failure(_run_stage("normalize"))


@pipeline_app.command("auto-approve")
def auto_approve(
    threshold: Optional[float] = typer.Option(
        None, "--threshold", "-t", min=0.0, max=1.0, help="Minimum consensus confidence"
    ),
) -> None:
    """Approve normalized extractions at or above the confidence threshold."""
    _exit_on_failure(_run_stage("auto-approve", threshold))


@pipeline_app.command("ingest")
def ingest() -> None:
    """Write approved patterns to the production catalog."""
    _exit_on_failure(_run_stage("ingest"))


@pipeline_app.command("run")
def run(
    queries: Optional[list[str]] = typer.Argument(None, help="Pattern names to search for"),
    queue: bool = typer.Option(False, "--queue", help="Enqueue as a background job"),
) -> None:
    """
    Run every stage in order, stopping at the first stage that fails.

    Examples:
        fly-pattern-db pipeline run "Woolly Bugger"
        fly-pattern-db pipeline run --queue
    """
    if queue:
        rprint("\n[dim]Enqueueing pipeline job...[/dim]")
        try:
            job_id = asyncio.run(enqueue_pipeline(queries or None))
        except Exception as e:
            rprint(f"\n[red]Error:[/red] Failed to enqueue job: {e}")
            rprint("\nMake sure Redis is running")
            raise typer.Exit(1)
        rprint("\n[green]Job enqueued successfully![/green]")
        rprint(f"Job ID: [bold]{job_id}[/bold]")
        rprint("\nCheck status with:")
        rprint(f"  fly-pattern-db pipeline jobs status {job_id}")
        return

    init_db()
    with get_session() as session:
        orchestrator = build_orchestrator(session)
        with console.status("[bold blue]Running pipeline...[/bold blue]"):
            results = asyncio.run(orchestrator.run(queries or None))

    for result in results:
        _display_stage_result(result)
    _exit_on_failure(*results)


@pipeline_app.command("status")
def status() -> None:
    """Show staged sources, extractions, canonical materials and patterns."""
    init_db()
    with get_session() as session:
        stats = build_orchestrator(session).status()
    _display_stats(stats)


@pipeline_app.command("import-url")
def import_url(
    url: str = typer.Argument(..., help="Video or article URL"),
    query: Optional[str] = typer.Argument(None, help="Pattern name the source describes"),
) -> None:
    """
    Stage one URL by hand and fetch its content now.

    Examples:
        fly-pattern-db pipeline import-url https://www.youtube.com/watch?v=abc123 "Zebra Midge"
    """
    result = _run_stage("import-url", url, query)
    if result.status == StageStatus.COMPLETED:
        rprint(f"\nStaged source [bold]{result.details['source_id']}[/bold]; run extract next.")
    _exit_on_failure(result)


@pipeline_app.command("worker")
def start_worker(
    burst: bool = typer.Option(False, "--burst", help="Run in burst mode (exit when queue empty)"),
) -> None:
    """
    Start the background worker.

    The worker processes queued pipeline jobs from Redis.
    """
    from arq import run_worker

    from fly_pattern_db.ingestion.jobs import WorkerSettings

    rprint("[bold]Starting pipeline worker...[/bold]")
    rprint("Press Ctrl+C to stop\n")
    try:
        run_worker(WorkerSettings, burst=burst)
    except Exception as e:
        rprint(f"[red]Error:[/red] Worker failed: {e}")
        rprint("\nMake sure Redis is running")
        raise typer.Exit(1)


# Jobs subcommands


@jobs_app.command("status")
def job_status(
    job_id: str = typer.Argument(..., help="Job ID to check"),
) -> None:
    """Check the status of a background pipeline job."""
    try:
        result = asyncio.run(get_job_status(job_id))
    except Exception as e:
        rprint(f"[red]Error:[/red] Failed to get job status: {e}")
        rprint("\nMake sure Redis is running")
        raise typer.Exit(1)

    if result is None:
        rprint(f"[yellow]Job '{job_id}' not found[/yellow]")
        raise typer.Exit(1)

    rprint(f"\n[bold]Job: {job_id}[/bold]")
    rprint(f"  Status: {result['status']}")
    summary = result.get("result")
    if isinstance(summary, dict):
        for stage in summary.get("stages", []):
            _display_stage_result(stage)
        for error in summary.get("errors", []):
            rprint(f"  [red]•[/red] {error}")


# Review subcommands


def _review(extraction_id: str, approve: bool, notes: str | None) -> None:
    decide = approve_extraction if approve else reject_extraction
    init_db()
    with get_session() as session:
        try:
            extraction = decide(session, extraction_id, notes=notes)
        except (ExtractionNotFoundError, InvalidTransitionError) as e:
            rprint(f"[red]Error:[/red] {e}")
            raise typer.Exit(1)
        session.commit()

    color = "green" if approve else "yellow"
    rprint(
        f"[{color}]{extraction.status.value.capitalize()}[/{color}] "
        f"{extraction.pattern_name} ({extraction.id})"
    )


@review_app.command("approve")
def review_approve(
    extraction_id: str = typer.Argument(..., help="Staged extraction ID"),
    notes: Optional[str] = typer.Option(None, "--notes", "-n", help="Review notes"),
) -> None:
    """Approve a staged extraction for ingestion."""
    _review(extraction_id, True, notes)


@review_app.command("reject")
def review_reject(
    extraction_id: str = typer.Argument(..., help="Staged extraction ID"),
    notes: Optional[str] = typer.Option(None, "--notes", "-n", help="Review notes"),
) -> None:
    """Reject a staged extraction."""
    _review(extraction_id, False, notes)


def _display_stage_result(result: StageResult | dict) -> None:
    """Display a stage result in a formatted table."""
    data = result.to_dict() if isinstance(result, StageResult) else result
    status = data.get("status", "unknown")
    status_color = {
        "completed": "green",
        "running": "blue",
        "failed": "red",
    }.get(status, "white")

    table = Table(title=f"Stage: {data.get('stage', 'unknown')}")
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Status", f"[{status_color}]{status}[/{status_color}]")
    for key in ("processed", "succeeded", "failed", "skipped"):
        table.add_row(key.capitalize(), str(data.get(key, 0)))
    for key, value in data.get("details", {}).items():
        table.add_row(key.replace("_", " ").capitalize(), str(value))
    if data.get("duration_seconds") is not None:
        table.add_row("Duration", f"{data['duration_seconds']:.1f}s")
    console.print(table)

    errors = data.get("errors", [])
    if errors:
        rprint(f"[bold red]Errors ({len(errors)}):[/bold red]")
        for error in errors[:10]:  # Show first 10
            rprint(f"  • {error}")
        if len(errors) > 10:
            rprint(f"  ... and {len(errors) - 10} more")


def _display_stats(stats: PipelineStats) -> None:
    """Display pipeline counts."""
    sources = Table(title="Staged Sources")
    sources.add_column("Status", style="bold")
    sources.add_column("Count", justify="right")
    sources.add_row("Discovered", str(stats.sources_discovered))
    sources.add_row("Scraped", str(stats.sources_scraped))
    sources.add_row("Extracted", str(stats.sources_extracted))
    sources.add_row("Failed", str(stats.sources_failed))
    console.print(sources)

    extractions = Table(title="Staged Extractions")
    extractions.add_column("Status", style="bold")
    extractions.add_column("Count", justify="right")
    extractions.add_row("Total", str(stats.extractions_total))
    extractions.add_row("High confidence", str(stats.extractions_high_confidence))
    extractions.add_row("Low confidence", str(stats.extractions_low_confidence))
    extractions.add_row("Extracted", str(stats.extractions_extracted))
    extractions.add_row("Normalized", str(stats.extractions_normalized))
    extractions.add_row("Approved", str(stats.extractions_approved))
    extractions.add_row("Rejected", str(stats.extractions_rejected))
    extractions.add_row("Ingested", str(stats.extractions_ingested))
    console.print(extractions)

    rprint(f"\n[bold]Canonical materials:[/bold] {stats.canonical_materials}")
    rprint(f"[bold]Production patterns:[/bold] {stats.patterns}")
