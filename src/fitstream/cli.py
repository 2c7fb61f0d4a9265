"""
fitstream Command Line Interface.

This module provides the CLI entry point for running fit analyses and
browsing the analysis history.
"""

import asyncio
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn
from rich.table import Table

from fitstream.config import (
    ConfigurationError,
    FitstreamConfig,
    LogLevel,
    load_config,
    load_config_from_env,
)
from fitstream.models import (
    ChunkUpdate,
    CompleteUpdate,
    ErrorUpdate,
    HistoryRecord,
    MatchAssessment,
    ProgressUpdate,
)
from fitstream.version import __version__

console = Console()

CONFIDENCE_STYLES = {
    "strong_match": "green",
    "partial_match": "yellow",
    "limited_match": "red",
}

SEVERITY_STYLES = {
    "minor": "green",
    "moderate": "yellow",
    "significant": "red",
}


def run_async(coro):
    """Run an async coroutine in a new event loop."""
    return asyncio.run(coro)


def _load_configuration(config_path: str | None) -> FitstreamConfig:
    try:
        if config_path:
            return load_config(config_path)
        return load_config_from_env()
    except ConfigurationError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        sys.exit(1)
    except FileNotFoundError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)


def _build_store(cfg: FitstreamConfig, history_dir: str | None):
    from fitstream.storage import FileStorage, HistoryStore

    directory = history_dir or cfg.history.directory
    return HistoryStore(
        FileStorage(directory),
        max_items=cfg.history.max_items,
        storage_key=cfg.history.storage_key,
    )


@click.group()
@click.version_option(version=__version__, prog_name="fitstream")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.pass_context
def main(ctx: click.Context, verbose: bool) -> None:
    """fitstream: Streaming Job Fit Analysis.

    Analyze how well a portfolio fits a job description using a streaming
    chat completion, and browse the history of past analyses.
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose


@main.command()
@click.argument("job_file", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--system-prompt",
    "-s",
    "system_prompt_file",
    type=click.Path(exists=True, dir_okay=False),
    required=True,
    help="File holding the system prompt (portfolio context and output format)",
)
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True),
    help="Path to configuration file",
)
@click.option("--model", "-m", type=str, default=None, help="Model identifier override")
@click.option(
    "--history-dir",
    type=click.Path(file_okay=False),
    default=None,
    help="Directory for the analysis history",
)
@click.option(
    "--json-mode/--no-json-mode",
    default=True,
    help="Request strict JSON output from the model",
)
@click.option("--show-stream", is_flag=True, help="Print the raw model output as it streams")
@click.pass_context
def analyze(
    ctx: click.Context,
    job_file: str,
    system_prompt_file: str,
    config: str | None,
    model: str | None,
    history_dir: str | None,
    json_mode: bool,
    show_stream: bool,
) -> None:
    """Analyze a job description.

    JOB_FILE is a text file holding the job description.
    """
    from fitstream.streaming import LLMError, build_llm_config
    from fitstream.utils import configure_logging

    verbose = ctx.obj.get("verbose", False)
    cfg = _load_configuration(config)

    logging_config = cfg.logging
    if verbose:
        logging_config = logging_config.model_copy(update={"level": LogLevel.DEBUG})
    elif not cfg.debug:
        logging_config = logging_config.model_copy(update={"level": LogLevel.WARNING})
    configure_logging(logging_config, console=Console(stderr=True))

    job_description = Path(job_file).read_text(encoding="utf-8")
    system_prompt = Path(system_prompt_file).read_text(encoding="utf-8")

    try:
        llm_config = build_llm_config(cfg.llm, model=model, timeout=cfg.analysis.timeout_seconds)
        llm_config = llm_config.model_copy(
            update={"response_format": "json_object" if json_mode else None}
        )
    except LLMError as e:
        console.print(f"[red]Error:[/red] {e.message}")
        console.print("[dim]Set OPENAI_API_KEY in the environment or a .env file.[/dim]")
        sys.exit(1)

    console.print(
        Panel(
            f"[bold blue]fitstream v{__version__}[/bold blue]\nStreaming Job Fit Analysis",
            title="fitstream",
        )
    )

    settings_table = Table(show_header=False, box=None)
    settings_table.add_column("Setting", style="cyan")
    settings_table.add_column("Value", style="green")
    settings_table.add_row("Job Description", f"{job_file} ({len(job_description):,} chars)")
    settings_table.add_row("Model", llm_config.model)
    settings_table.add_row("JSON Mode", "on" if json_mode else "off")
    settings_table.add_row("Timeout", f"{cfg.analysis.timeout_seconds:g}s")
    console.print(settings_table)
    console.print()

    store = _build_store(cfg, history_dir)
    outcome = run_async(
        _run_analysis(
            job_description=job_description,
            system_prompt=system_prompt,
            cfg=cfg,
            llm_config=llm_config,
            store=store,
            show_stream=show_stream,
        )
    )

    if isinstance(outcome, ErrorUpdate):
        console.print(f"[red]Error:[/red] {outcome.message}")
        if outcome.retryable:
            console.print("[dim]This error may be temporary; try again.[/dim]")
        sys.exit(1)

    _display_assessment(outcome)
    console.print(f"[dim]Saved to history as {outcome.id}[/dim]")


async def _run_analysis(
    job_description: str,
    system_prompt: str,
    cfg: FitstreamConfig,
    llm_config,
    store,
    show_stream: bool,
) -> MatchAssessment | ErrorUpdate:
    """Run the pipeline with a progress bar driven by progress events.

    Returns:
        The assessment, or the error event that ended the run
    """
    from fitstream.models import LLMErrorType
    from fitstream.pipeline import FitAnalysisPipeline
    from fitstream.streaming import AsyncLLMClient, user_message_for

    api_key = llm_config.api_key.get_secret_value() if llm_config.api_key else None

    async with AsyncLLMClient(api_key=api_key, max_retries=cfg.analysis.max_retries) as client:
        pipeline = FitAnalysisPipeline(
            client,
            store=store,
            settings=cfg.analysis,
            llm_config=llm_config,
        )

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            transient=True,
            console=console,
        ) as progress:
            task = progress.add_task("Starting...", total=100)

            async for event in pipeline.analyze(job_description, system_prompt):
                if isinstance(event, ProgressUpdate):
                    progress.update(
                        task,
                        description=event.progress.message,
                        completed=event.progress.percent,
                    )
                elif isinstance(event, ChunkUpdate) and show_stream:
                    progress.console.print(event.content, end="", markup=False, highlight=False)
                elif isinstance(event, ErrorUpdate):
                    return event
                elif isinstance(event, CompleteUpdate):
                    progress.update(task, completed=100)
                    return event.assessment

    return ErrorUpdate(
        error_type=LLMErrorType.INVALID_RESPONSE.value,
        message=user_message_for(LLMErrorType.INVALID_RESPONSE),
        retryable=True,
    )


def _display_assessment(assessment: MatchAssessment) -> None:
    """Display a parsed assessment."""
    confidence = assessment.confidence_score.value
    style = CONFIDENCE_STYLES.get(confidence, "white")

    console.print()
    console.print(
        Panel(
            f"[bold {style}]{confidence.replace('_', ' ').title()}[/bold {style}]\n"
            f"[dim]{assessment.job_description_preview}[/dim]",
            title="Fit Assessment",
        )
    )

    if assessment.alignment_areas:
        alignment_table = Table(title="Alignments", show_lines=True)
        alignment_table.add_column("Area", style="cyan")
        alignment_table.add_column("Why", style="white")
        alignment_table.add_column("Evidence", style="green")
        for alignment in assessment.alignment_areas:
            evidence = "\n".join(
                f"[{e.type.value}] {e.title}: {e.excerpt}" for e in alignment.evidence
            )
            alignment_table.add_row(alignment.title, alignment.description, evidence)
        console.print(alignment_table)

    if assessment.gap_areas:
        gap_table = Table(title="Gaps", show_lines=True)
        gap_table.add_column("Area", style="cyan")
        gap_table.add_column("Severity")
        gap_table.add_column("Explanation", style="white")
        for gap in assessment.gap_areas:
            severity_style = SEVERITY_STYLES.get(gap.severity.value, "white")
            gap_table.add_row(
                gap.title,
                f"[{severity_style}]{gap.severity.value}[/{severity_style}]",
                gap.description,
            )
        console.print(gap_table)

    recommendation = assessment.recommendation
    console.print(
        Panel(
            f"[bold]{recommendation.summary}[/bold]\n\n{recommendation.details}",
            title=f"Recommendation: {recommendation.type.value}",
        )
    )


@main.group()
def history() -> None:
    """Browse and manage the analysis history."""


@history.command("list")
@click.option("--config", "-c", type=click.Path(exists=True), help="Path to configuration file")
@click.option("--history-dir", type=click.Path(file_okay=False), default=None)
def history_list(config: str | None, history_dir: str | None) -> None:
    """List retained analyses, most recent first."""
    cfg = _load_configuration(config)
    store = _build_store(cfg, history_dir)

    items = store.summaries()
    if not items:
        console.print("[dim]No analyses in history.[/dim]")
        return

    table = Table(title=f"Analysis History ({len(items)}/{store.max_items})")
    table.add_column("ID", style="cyan")
    table.add_column("When", style="dim")
    table.add_column("Confidence")
    table.add_column("Job Description", style="white")
    for item in items:
        confidence = item.confidence_score.value
        style = CONFIDENCE_STYLES.get(confidence, "white")
        table.add_row(
            item.id,
            item.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            f"[{style}]{confidence}[/{style}]",
            item.job_description_preview,
        )
    console.print(table)


@history.command("show")
@click.argument("analysis_id")
@click.option("--config", "-c", type=click.Path(exists=True), help="Path to configuration file")
@click.option("--history-dir", type=click.Path(file_okay=False), default=None)
@click.option("--full", is_flag=True, help="Also print the full job description")
def history_show(
    analysis_id: str,
    config: str | None,
    history_dir: str | None,
    full: bool,
) -> None:
    """Show one analysis from the history."""
    cfg = _load_configuration(config)
    store = _build_store(cfg, history_dir)

    record: HistoryRecord | None = store.load_by_id(analysis_id)
    if record is None:
        console.print(f"[red]Error:[/red] No analysis with ID '{analysis_id}' in history.")
        sys.exit(1)

    _display_assessment(record.assessment)
    if full:
        console.print(Panel(record.job_description_full, title="Job Description"))


@history.command("clear")
@click.option("--config", "-c", type=click.Path(exists=True), help="Path to configuration file")
@click.option("--history-dir", type=click.Path(file_okay=False), default=None)
def history_clear(config: str | None, history_dir: str | None) -> None:
    """Remove all analyses from the history."""
    cfg = _load_configuration(config)
    store = _build_store(cfg, history_dir)

    if not store.clear():
        console.print("[red]Error:[/red] Failed to clear history.")
        sys.exit(1)
    console.print("[green]History cleared.[/green]")


@main.command("config")
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True),
    help="Path to configuration file",
)
def show_config(config: str | None) -> None:
    """Display current configuration."""
    cfg = _load_configuration(config)

    console.print(Panel("[bold blue]fitstream Configuration[/bold blue]", title="Configuration"))

    console.print("[bold]Model[/bold]")
    console.print(f"  Model: {cfg.llm.model}")
    console.print(f"  Temperature: {cfg.llm.temperature}")
    console.print(f"  Max Tokens: {cfg.llm.max_tokens}")
    console.print()

    console.print("[bold]Analysis[/bold]")
    console.print(f"  Timeout: {cfg.analysis.timeout_seconds:g}s")
    console.print(f"  Max Input Length: {cfg.analysis.max_input_length:,}")
    console.print(f"  Max Retries: {cfg.analysis.max_retries}")
    console.print()

    console.print("[bold]History[/bold]")
    console.print(f"  Max Items: {cfg.history.max_items}")
    console.print(f"  Backend: {cfg.history.backend.value}")
    console.print(f"  Directory: {cfg.history.directory}")
    console.print()

    console.print("[bold]Logging[/bold]")
    console.print(f"  Level: {cfg.logging.level.value}")
    console.print(f"  JSON Format: {cfg.logging.json_format}")


if __name__ == "__main__":
    main()
