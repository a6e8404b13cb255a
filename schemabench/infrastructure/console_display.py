from collections.abc import Iterable
from contextlib import contextmanager
from typing import Generator

from rich.console import Console
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskID, TextColumn
from rich.table import Table
from rich.text import Text

from ..domain.contracts.generator import ModelSpec
from ..domain.contracts.progress import EVENT_RUN, ProgressEvent
from ..domain.contracts.results import (
    SCENARIO_COMPLETED,
    Attempt,
    BenchmarkRun,
    IndexEntry,
    Run,
)
from ..domain.scenarios import SCENARIOS

console = Console()

RESPONSE_PREVIEW_CHARS = 500


def _rate_style(rate: float) -> str:
    if rate >= 90:
        return "bold green"
    elif rate >= 70:
        return "yellow"
    elif rate >= 40:
        return "orange3"
    else:
        return "bold red"


def _rate(rate: float) -> Text:
    return Text(f"{rate:.1f}%", style=_rate_style(rate))


def _scenario_name(scenario: int) -> str:
    found = SCENARIOS.get(scenario)
    return f"{scenario}. {found.name}" if found else str(scenario)


def display_summary_table(run: BenchmarkRun) -> None:
    console.print()

    table = Table(
        title=f"Benchmark {run.id[:8]} ({run.status})",
        show_header=True,
        header_style="bold cyan",
    )

    table.add_column("Model")
    table.add_column("Scenario", style="dim")
    table.add_column("Runs", justify="right")
    table.add_column("Success", justify="center")
    table.add_column("1st try", justify="center")
    table.add_column("+1 retry", justify="center")
    table.add_column("+2 retries", justify="center")
    table.add_column("+3 retries", justify="center")
    table.add_column("Avg attempts", justify="right")
    table.add_column("Avg duration", justify="right")
    table.add_column("Tokens", justify="right")

    for model_id, scenarios in run.results.items():
        for scenario_key, result in scenarios.items():
            summary = result.summary
            scenario_label = _scenario_name(int(scenario_key))
            if result.status != SCENARIO_COMPLETED:
                scenario_label += f" [red]({result.status})[/red]"

            table.add_row(
                model_id,
                scenario_label,
                str(len(result.runs)),
                _rate(summary.success_rate),
                _rate(summary.first_attempt_success_rate),
                _rate(summary.after_retry_1_success_rate),
                _rate(summary.after_retry_2_success_rate),
                _rate(summary.after_retry_3_success_rate),
                f"{summary.average_attempts:.2f}",
                f"{summary.average_duration_ms:.0f}ms",
                str(summary.total_tokens_used),
            )

    console.print(table)
    console.print()

    overall = run.summary
    console.print(
        f"[dim]Duration: {run.duration_ms / 1000:.1f}s | "
        f"Passed: {overall.passed}/{overall.total_tests} | "
        f"Success rate: {overall.success_rate:.1f}%[/dim]"
    )
    if run.error:
        console.print(f"[red]Stopped early: {run.error}[/red]")


def display_runs_list(entries: list[IndexEntry]) -> None:
    if not entries:
        console.print("[dim]No stored runs.[/dim]")
        return

    table = Table(title="Stored runs", show_header=True, header_style="bold cyan")
    table.add_column("ID", style="dim")
    table.add_column("Timestamp")
    table.add_column("Models")
    table.add_column("Tests", justify="right")
    table.add_column("Success", justify="center")

    for entry in entries:
        table.add_row(
            entry.id,
            entry.timestamp,
            ", ".join(entry.models),
            str(entry.total_tests),
            _rate(entry.success_rate),
        )

    console.print(table)


def display_models(models: Iterable[ModelSpec], key_status: dict[str, bool]) -> None:
    table = Table(title="Models", show_header=True, header_style="bold cyan")
    table.add_column("ID")
    table.add_column("Name")
    table.add_column("Provider", style="dim")
    table.add_column("Model", style="dim")
    table.add_column("API key", justify="center")

    for spec in models:
        has_key = key_status.get(spec.provider, True)
        table.add_row(
            spec.id,
            spec.name,
            spec.provider,
            spec.model,
            "[green]set[/green]" if has_key else "[red]missing[/red]",
        )

    console.print(table)


def display_attempts(
    run: BenchmarkRun,
    model_id: str,
    scenario: int,
    run_number: int | None = None,
) -> None:
    result = run.results.get(model_id, {}).get(str(scenario))
    if result is None:
        console.print("[red]No matching results found[/red]")
        return

    runs = [r for r in result.runs if run_number is None or r.run_number == run_number]
    if not runs:
        console.print("[red]No matching runs found[/red]")
        return

    for scenario_run in runs:
        _display_run(model_id, scenario, scenario_run)


def _display_run(model_id: str, scenario: int, run: Run) -> None:
    status = "[green]success[/green]" if run.success else "[red]failed[/red]"
    console.print()
    console.print(
        f"[bold]{model_id} × {_scenario_name(scenario)} "
        f"(run {run.run_number})[/bold] {status} in {run.total_duration_ms}ms"
    )

    for stage in run.stages:
        for attempt in stage.attempts:
            _display_attempt(stage.stage, len(run.stages) > 1, attempt)


def _display_attempt(stage: int, sequential: bool, attempt: Attempt) -> None:
    content = []

    content.append("[bold cyan]RESPONSE[/bold cyan]")
    content.append("[dim]─────────[/dim]")
    response_text = attempt.raw_response
    if len(response_text) > RESPONSE_PREVIEW_CHARS:
        content.append(response_text[:RESPONSE_PREVIEW_CHARS] + "...")
    else:
        content.append(response_text or "[dim]No content[/dim]")
    content.append("")

    if attempt.validation_errors:
        content.append("[bold cyan]VALIDATION ERRORS[/bold cyan]")
        content.append("[dim]─────────────────[/dim]")
        for issue in attempt.validation_errors:
            content.append(f"• {'.'.join(issue.path) or 'root'}: {issue.message}")
        content.append("")

    if attempt.error_message:
        content.append("[bold cyan]ERROR[/bold cyan]")
        content.append("[dim]─────[/dim]")
        content.append(attempt.error_message)
        content.append("")

    content.append("[bold cyan]METRICS[/bold cyan]")
    content.append("[dim]───────[/dim]")
    tokens_in = "-" if attempt.input_tokens is None else attempt.input_tokens
    tokens_out = "-" if attempt.output_tokens is None else attempt.output_tokens
    content.append(
        f"Duration: {attempt.duration_ms}ms │ Tokens: {tokens_in} in / {tokens_out} out"
    )

    title = f"Attempt {attempt.attempt_number}"
    if sequential:
        title = f"Stage {stage} · attempt {attempt.attempt_number}"

    panel = Panel(
        "\n".join(content),
        title=f"[bold]{title}[/bold]",
        border_style="green" if attempt.success else "red",
    )
    console.print(panel)


@contextmanager
def progress_bar(
    description: str, total: int
) -> Generator[tuple[Progress, TaskID], None, None]:
    progress = Progress(
        SpinnerColumn(),
        TextColumn("[bold blue]{task.description}"),
        BarColumn(),
        TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
        TextColumn("({task.completed}/{task.total})"),
        console=console,
    )
    with progress:
        task_id = progress.add_task(description, total=total)
        yield progress, task_id


class ProgressBarObserver:
    """Advances a Rich progress bar once per finished scenario run."""

    def __init__(self, progress: Progress, task_id: TaskID) -> None:
        self._progress = progress
        self._task_id = task_id

    def on_transition(self, event: ProgressEvent) -> None:
        label = event.model_name or event.model_id
        description = f"{label} · scenario {event.scenario} · run {event.run_number}"
        if event.stage is not None:
            description += f" · stage {event.stage}"

        if event.kind == EVENT_RUN:
            self._progress.advance(self._task_id)
        self._progress.update(self._task_id, description=description)


def display_run_complete(run: BenchmarkRun, location: str | None = None) -> None:
    if run.status == "complete":
        console.print("\n[bold green]Complete![/bold green]", end=" ")
    else:
        console.print(f"\n[bold yellow]Finished ({run.status}).[/bold yellow]", end=" ")

    if location:
        console.print(f"Results saved to {location}")
    else:
        console.print()
    display_summary_table(run)
