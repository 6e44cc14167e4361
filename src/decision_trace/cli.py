"""Command-line interface for decision trace analysis."""

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Optional

import structlog
import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from decision_trace import __version__
from decision_trace.config.settings import get_settings
from decision_trace.llm.client import OllamaReasoningClient
from decision_trace.llm.replay import ReplayReasoningClient
from decision_trace.models.stages import PipelineRun
from decision_trace.pipeline.orchestrator import DecisionTracePipeline
from decision_trace.pipeline.persistence import JsonFileStageStore
from decision_trace.pipeline.scoring import normalize_ledger, score_ledger
from decision_trace.sources import guess_mime_type, load_text_source

# Configure structlog for CLI
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

app = typer.Typer(
    name="decision-trace",
    help="Decision Trace - reconstruct auditable decision records from documents",
    add_completion=False,
)
console = Console()


def _configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else getattr(logging, get_settings().log_level.upper(), logging.WARNING)
    logging.basicConfig(level=level, stream=sys.stderr)


@app.command()
def analyze(
    document_path: Path = typer.Argument(
        ...,
        help="Path to the document (text, markdown or PDF)",
        exists=True,
        file_okay=True,
        dir_okay=False,
        readable=True,
    ),
    case_id: Optional[str] = typer.Option(
        None,
        "--case-id",
        "-c",
        help="Case identifier (default: document file name without suffix)",
    ),
    resume_from: Optional[int] = typer.Option(
        None,
        "--resume-from",
        help="Reuse cached validated stages before this stage number",
    ),
    upload: bool = typer.Option(
        False,
        "--upload",
        help="Attach the raw file to Stage 1 instead of embedding extracted text",
    ),
    store_dir: Optional[Path] = typer.Option(
        None,
        "--store",
        help="Directory for persisted stage results (default: STAGE_STORE_DIR)",
    ),
    replay_dir: Optional[Path] = typer.Option(
        None,
        "--replay-dir",
        help="Replay recorded responses from this directory instead of calling Ollama",
        exists=True,
        file_okay=False,
        dir_okay=True,
    ),
    output: Optional[Path] = typer.Option(
        None,
        "--output",
        "-o",
        help="Write the run (summary and stage payloads) to this JSON file",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose logging",
    ),
) -> None:
    """Run the six-stage decision trace pipeline on a document."""
    _configure_logging(verbose)
    settings = get_settings()
    case_id = case_id or document_path.stem

    console.print(
        Panel.fit(
            "[bold blue]Decision Trace[/bold blue]\n"
            f"Case [bold]{case_id}[/bold]: {document_path.name}",
            border_style="blue",
        )
    )

    if replay_dir is not None:
        client = ReplayReasoningClient(replay_dir, case_id=case_id)
    else:
        client = OllamaReasoningClient(settings)
    store = JsonFileStageStore(store_dir or settings.stage_store_dir)
    pipeline = DecisionTracePipeline(client, store=store, settings=settings)

    async def _run() -> PipelineRun:
        if upload:
            ref = await client.upload_raw_document(
                document_path.read_bytes(), guess_mime_type(document_path), document_path.name
            )
            return await pipeline.run(case_id, document_ref=ref, resume_from_stage=resume_from)
        source = load_text_source(document_path)
        return await pipeline.run(case_id, raw_text=source.raw_text, resume_from_stage=resume_from)

    try:
        run = asyncio.run(_run())
    except Exception as e:
        console.print(f"\n[red]Error:[/red] {e}")
        if verbose:
            console.print_exception()
        sys.exit(1)

    _display_summary(run)

    if output is not None:
        payload = {
            "summary": run.summary(),
            "stages": {str(s.stage_number): s.data for s in run.stages},
        }
        output.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
        console.print(f"\n[green]Run saved to:[/green] {output}")

    if not run.overall_success:
        sys.exit(1)


@app.command()
def score(
    ledger_path: Path = typer.Argument(
        ...,
        help="Path to a decision ledger JSON file (or a Stage 6 output)",
        exists=True,
        file_okay=True,
        dir_okay=False,
        readable=True,
    ),
) -> None:
    """Compute the deterministic trace score of a decision ledger."""
    try:
        raw = json.loads(ledger_path.read_text(encoding="utf-8"))
        ledger = normalize_ledger(raw)
    except (ValueError, json.JSONDecodeError) as e:
        console.print(f"[red]Invalid ledger:[/red] {e}")
        sys.exit(1)

    result = score_ledger(ledger)
    console.print(f"[bold]Trace score:[/bold] {result.trace_score}")
    if result.mismatch:
        console.print(f"[yellow]{result.mismatch_warning()}[/yellow]")
    console.print("\n[bold]Rationale[/bold]")
    for i, reason in enumerate(result.rationale, 1):
        console.print(f"  {i}. {reason}")


@app.command()
def info() -> None:
    """Display system information and configuration."""
    settings = get_settings()

    console.print(
        Panel.fit(
            "[bold blue]Decision Trace[/bold blue]",
            border_style="blue",
        )
    )

    table = Table(show_header=False, box=None)
    table.add_column("Setting", style="dim")
    table.add_column("Value")

    table.add_row("Version", __version__)
    table.add_row("LLM Model", settings.llm_model_name)
    table.add_row("Ollama URL", settings.llm_ollama_base_url)
    table.add_row("Max Retries", str(settings.max_retries))
    table.add_row("Leakage Threshold", f"{settings.leakage_threshold_percent:g}%")
    table.add_row("Stage Store", str(settings.stage_store_dir))

    console.print(table)


def _display_summary(run: PipelineRun) -> None:
    """Display per-stage status and run totals.

    Args:
        run: The finalized pipeline run.
    """
    summary = run.summary()
    status_style = {"completed": "green", "failed": "red", "skipped": "dim"}

    table = Table(title="Stages")
    table.add_column("#", justify="right")
    table.add_column("Status")
    table.add_column("Tokens", justify="right")
    table.add_column("ms", justify="right")
    table.add_column("Notes")

    for stage in summary["stages"]:
        style = status_style.get(stage["status"], "")
        notes = "; ".join(stage["errors"] + stage["warnings"])
        table.add_row(
            str(stage["stage_number"]),
            f"[{style}]{stage['status']}[/{style}]" if style else stage["status"],
            str(stage["tokens_used"]),
            str(stage["duration_ms"]),
            notes[:120],
        )

    console.print(table)

    outcome = "[green]success[/green]" if run.overall_success else "[red]failed[/red]"
    console.print(
        f"\nRun {outcome}: {run.stages_completed} completed, {run.stages_failed} failed, "
        f"{run.stages_skipped} skipped, {run.total_tokens} tokens in {run.total_duration_ms} ms"
    )
    if "trace_score" in summary:
        console.print(f"[bold]Trace score:[/bold] {summary['trace_score']:g}")
        for reason in summary["score_rationale"]:
            console.print(f"  - {reason}")


if __name__ == "__main__":
    app()
