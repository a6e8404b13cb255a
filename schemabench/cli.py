import asyncio
import logging
import os
import signal
from pathlib import Path
from typing import Annotated

import typer
from dotenv import load_dotenv
from rich.logging import RichHandler

from schemabench.application.run_benchmark import (
    BENCHMARK_CANCELLED,
    BENCHMARK_ERROR,
    RunBenchmark,
)
from schemabench.domain.contracts.config import BenchmarkConfig, LoadedConfig
from schemabench.domain.contracts.progress import CancellationToken
from schemabench.domain.contracts.results import BenchmarkRun
from schemabench.infrastructure import (
    FileResultRepository,
    ModelCatalog,
    YamlConfigLoader,
)
from schemabench.infrastructure.console_display import (
    ProgressBarObserver,
    console,
    display_attempts,
    display_models,
    display_run_complete,
    display_runs_list,
    display_summary_table,
    progress_bar,
)
from schemabench.infrastructure.providers.factory import (
    DEFAULT_KEY_ENV_VARS,
    get_provider,
    known_providers,
)

load_dotenv()

app = typer.Typer(
    name="schema-bench",
    help="Benchmark how reliably LLMs return schema-conforming structured output",
    no_args_is_help=True,
)

DEFAULT_DATA_DIR = Path("data")
EXIT_CANCELLED = 130

_config_loader = YamlConfigLoader()

DataDirOption = Annotated[
    Path, typer.Option("--data-dir", help="Directory holding stored results")
]
CatalogOption = Annotated[
    Path | None,
    typer.Option("--catalog", help="YAML file extending the model catalog"),
]


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def _fail(message: str) -> None:
    typer.echo(f"Error: {message}", err=True)
    raise typer.Exit(1)


def _parse_key_refs(values: list[str]) -> dict[str, str]:
    providers = known_providers()
    key_refs: dict[str, str] = {}

    for value in values:
        provider, sep, env_var = value.partition(":")
        if not sep or not provider or not env_var:
            _fail(
                f"Invalid --key-ref format '{value}'. Expected 'provider:ENV_VAR'"
            )
        if provider not in providers:
            _fail(
                f"Unknown provider '{provider}' in --key-ref. "
                f"Available: {', '.join(sorted(providers))}"
            )
        key_refs[provider] = env_var

    return key_refs


def _load_catalog(catalog: Path | None) -> ModelCatalog:
    return ModelCatalog.from_yaml(catalog) if catalog else ModelCatalog()


def _build_config(
    loaded: LoadedConfig | None,
    models: list[str] | None,
    scenarios: list[int] | None,
    runs: int | None,
    temperature: float | None,
    max_retries: int | None,
    max_tokens: int | None,
    key_refs: dict[str, str],
) -> BenchmarkConfig:
    base = loaded.config if loaded else BenchmarkConfig(models=[])

    config = BenchmarkConfig(
        models=models or base.models,
        scenarios=scenarios or base.scenarios,
        runs_per_scenario=runs if runs is not None else base.runs_per_scenario,
        temperature=temperature if temperature is not None else base.temperature,
        max_retries=max_retries if max_retries is not None else base.max_retries,
        max_tokens=max_tokens if max_tokens is not None else base.max_tokens,
        key_refs={**base.key_refs, **key_refs},
    )
    return config


async def _run_with_progress(
    benchmark: RunBenchmark,
    config: BenchmarkConfig,
    conversation: str | None,
    cancel_token: CancellationToken,
    quiet: bool,
) -> BenchmarkRun:
    if quiet:
        return await benchmark.execute(
            config, cancel_token=cancel_token, conversation=conversation
        )

    total = benchmark.count_runs(config)
    with progress_bar("Running benchmark", total) as (progress, task_id):
        return await benchmark.execute(
            config,
            observer=ProgressBarObserver(progress, task_id),
            cancel_token=cancel_token,
            conversation=conversation,
        )


def _install_interrupt_handler(cancel_token: CancellationToken):
    def handler(signum, frame) -> None:
        if cancel_token.cancelled:
            raise KeyboardInterrupt
        cancel_token.cancel()
        typer.echo(
            "\nCancelling after the current attempt (press Ctrl+C again to abort)...",
            err=True,
        )

    return signal.signal(signal.SIGINT, handler)


@app.command(help="Run the structured-output benchmark.")
def run(
    config: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="Markdown config with YAML front matter"),
    ] = None,
    model: Annotated[
        list[str] | None,
        typer.Option("--model", "-m", help="Model id (repeatable)"),
    ] = None,
    scenario: Annotated[
        list[int] | None,
        typer.Option("--scenario", "-s", help="Scenario number 1-4 (repeatable)"),
    ] = None,
    runs: Annotated[
        int | None, typer.Option("--runs", "-n", help="Runs per scenario")
    ] = None,
    temperature: Annotated[
        float | None, typer.Option("--temperature", help="Sampling temperature")
    ] = None,
    max_retries: Annotated[
        int | None, typer.Option("--max-retries", help="Retries after a failed attempt")
    ] = None,
    max_tokens: Annotated[
        int | None, typer.Option("--max-tokens", help="Maximum output tokens")
    ] = None,
    key_ref: Annotated[
        list[str] | None,
        typer.Option(
            "--key-ref", "-k", help="Override API key env var: provider:ENV_VAR"
        ),
    ] = None,
    data_dir: DataDirOption = DEFAULT_DATA_DIR,
    catalog: CatalogOption = None,
    quiet: Annotated[
        bool, typer.Option("--quiet", "-q", help="Hide progress bar")
    ] = False,
    verbose: Annotated[
        bool, typer.Option("--verbose", "-v", help="Show debug logging")
    ] = False,
) -> None:
    _configure_logging(verbose)
    cli_key_refs = _parse_key_refs(key_ref or [])

    try:
        loaded = _config_loader.load(config) if config else None
        benchmark_config = _build_config(
            loaded,
            model,
            scenario,
            runs,
            temperature,
            max_retries,
            max_tokens,
            cli_key_refs,
        )
    except Exception as e:
        _fail(str(e))

    if not benchmark_config.models:
        _fail("No models specified. Use --model or a config file.")

    cancel_token = CancellationToken()
    repository = FileResultRepository(data_dir)
    previous_handler = _install_interrupt_handler(cancel_token)

    try:
        benchmark = RunBenchmark(
            catalog=_load_catalog(catalog),
            provider_factory=get_provider,
            result_repository=repository,
        )
        result = asyncio.run(
            _run_with_progress(
                benchmark,
                benchmark_config,
                loaded.conversation if loaded else None,
                cancel_token,
                quiet,
            )
        )
    except Exception as e:
        _fail(str(e))
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    display_run_complete(result, location=str(data_dir / "results"))

    if result.status == BENCHMARK_ERROR:
        _fail(result.error or "Benchmark stopped")
    if result.status == BENCHMARK_CANCELLED:
        raise typer.Exit(EXIT_CANCELLED)


@app.command(help="List available models and API key status.")
def models(catalog: CatalogOption = None) -> None:
    try:
        model_catalog = _load_catalog(catalog)
    except Exception as e:
        _fail(str(e))

    key_status = {
        provider: bool(os.getenv(env_var))
        for provider, env_var in DEFAULT_KEY_ENV_VARS.items()
    }
    display_models(model_catalog.all(), key_status)


@app.command(help="List stored runs, or show the summary of one run.")
def results(
    run_id: Annotated[
        str | None, typer.Argument(help="Run id to show (omit to list runs)")
    ] = None,
    limit: Annotated[
        int, typer.Option("--limit", "-l", help="Number of runs to list")
    ] = 10,
    data_dir: DataDirOption = DEFAULT_DATA_DIR,
) -> None:
    repository = FileResultRepository(data_dir)

    try:
        if run_id:
            display_summary_table(repository.load(run_id))
        else:
            display_runs_list(repository.list_runs(limit))
    except Exception as e:
        _fail(str(e))


@app.command(help="Show the attempts of one model and scenario in a run.")
def show(
    run_id: Annotated[str, typer.Argument(help="Run id")],
    model: Annotated[str, typer.Option("--model", "-m", help="Model id")],
    scenario: Annotated[int, typer.Option("--scenario", "-s", help="Scenario number")],
    run_number: Annotated[
        int | None, typer.Option("--run", "-r", help="Only this run number")
    ] = None,
    data_dir: DataDirOption = DEFAULT_DATA_DIR,
) -> None:
    repository = FileResultRepository(data_dir)

    try:
        benchmark_run = repository.load(run_id)
    except Exception as e:
        _fail(str(e))

    display_attempts(benchmark_run, model, scenario, run_number)


@app.command(help="Delete a stored run.")
def delete(
    run_id: Annotated[str, typer.Argument(help="Run id")],
    yes: Annotated[
        bool, typer.Option("--yes", "-y", help="Skip confirmation prompt")
    ] = False,
    data_dir: DataDirOption = DEFAULT_DATA_DIR,
) -> None:
    repository = FileResultRepository(data_dir)

    if not yes:
        confirm = typer.confirm(f"Delete run {run_id}?")
        if not confirm:
            typer.echo("Aborted.")
            raise typer.Exit(0)

    if not repository.delete(run_id):
        _fail(f"Run '{run_id}' not found")

    typer.echo(f"Deleted run {run_id}.")


if __name__ == "__main__":
    app()
