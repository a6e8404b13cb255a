import logging
import time
import uuid
from datetime import datetime, timezone

from ..domain.contracts.config import BenchmarkConfig
from ..domain.contracts.generator import (
    GeneratorContract,
    GeneratorFactory,
    ModelCatalogContract,
    ModelSpec,
)
from ..domain.contracts.progress import (
    CancellationToken,
    NullObserver,
    ProgressObserver,
)
from ..domain.contracts.results import (
    SCENARIO_CANCELLED,
    BenchmarkRun,
    ResultRepositoryContract,
)
from ..domain.scenarios import SCENARIOS, Scenario
from .execute_attempt import AttemptExecutor
from .run_scenario import ScenarioAbortedError, ScenarioRunner

logger = logging.getLogger(__name__)

BENCHMARK_RUNNING = "running"
BENCHMARK_COMPLETE = "complete"
BENCHMARK_CANCELLED = "cancelled"
BENCHMARK_ERROR = "error"


class RunBenchmarkError(Exception):
    pass


class RunBenchmark:
    def __init__(
        self,
        catalog: ModelCatalogContract,
        provider_factory: GeneratorFactory,
        result_repository: ResultRepositoryContract | None = None,
    ) -> None:
        self._catalog = catalog
        self._provider_factory = provider_factory
        self._result_repository = result_repository

    async def execute(
        self,
        config: BenchmarkConfig,
        observer: ProgressObserver | None = None,
        cancel_token: CancellationToken | None = None,
        conversation: str | None = None,
    ) -> BenchmarkRun:
        observer = observer or NullObserver()
        cancel_token = cancel_token or CancellationToken()

        models, scenarios = self._plan(config)
        generators = self._create_generators(models, config.key_refs)

        start_time = time.perf_counter()
        run = BenchmarkRun(
            id=uuid.uuid4().hex,
            timestamp=datetime.now(timezone.utc).isoformat(),
            config=config,
            status=BENCHMARK_RUNNING,
        )
        logger.info(
            "Starting benchmark %s: %d model(s), %d scenario(s), %d run(s) each",
            run.id,
            len(models),
            len(scenarios),
            config.runs_per_scenario,
        )

        try:
            for spec in models:
                if run.status != BENCHMARK_RUNNING:
                    break

                executor = AttemptExecutor(generators[spec.provider], spec)
                model_results = run.results.setdefault(spec.id, {})
                planned = self._scenarios_for(spec, scenarios)
                for scenario in scenarios:
                    if scenario not in planned:
                        logger.warning(
                            "Skipping enforced scenario %d for %s: no strict output support",
                            scenario.id,
                            spec.id,
                        )

                for scenario in planned:
                    if cancel_token.cancelled:
                        run.status = BENCHMARK_CANCELLED
                        break

                    runner = ScenarioRunner(
                        executor=executor,
                        config=config,
                        observer=observer,
                        cancel_token=cancel_token,
                        conversation=conversation,
                    )

                    try:
                        result = await runner.run(scenario)
                    except ScenarioAbortedError as e:
                        model_results[str(scenario.id)] = e.result
                        run.status = BENCHMARK_ERROR
                        run.error = f"{spec.id} scenario {scenario.id}: {e.cause}"
                        logger.warning("Benchmark %s stopped: %s", run.id, run.error)
                        break

                    model_results[str(scenario.id)] = result
                    if result.status == SCENARIO_CANCELLED:
                        run.status = BENCHMARK_CANCELLED
                        break
        except Exception as e:
            run.status = BENCHMARK_ERROR
            run.error = f"Unexpected error: {e}"
            logger.exception("Benchmark %s failed", run.id)
        finally:
            if run.status == BENCHMARK_RUNNING:
                run.status = BENCHMARK_COMPLETE
            run.duration_ms = int((time.perf_counter() - start_time) * 1000)

        if self._result_repository is not None:
            self._result_repository.save(run)

        logger.info(
            "Benchmark %s finished with status %s in %d ms",
            run.id,
            run.status,
            run.duration_ms,
        )
        return run

    def count_runs(self, config: BenchmarkConfig) -> int:
        models, scenarios = self._plan(config)
        return sum(
            len(self._scenarios_for(spec, scenarios)) * config.runs_per_scenario
            for spec in models
        )

    def _scenarios_for(
        self, spec: ModelSpec, scenarios: list[Scenario]
    ) -> list[Scenario]:
        if spec.supports_enforced:
            return scenarios
        return [s for s in scenarios if not s.enforced]

    def _plan(self, config: BenchmarkConfig) -> tuple[list[ModelSpec], list[Scenario]]:
        if config.runs_per_scenario < 1:
            raise RunBenchmarkError("runs_per_scenario must be at least 1")
        if config.max_retries < 0:
            raise RunBenchmarkError("max_retries must not be negative")

        models, unknown = self._catalog.resolve(config.models)
        for model_id in unknown:
            logger.warning("Skipping unknown model '%s'", model_id)
        if not models:
            raise RunBenchmarkError(
                f"No valid models selected. Requested: {config.models}"
            )

        scenarios = []
        for scenario_id in config.scenarios:
            if scenario_id in SCENARIOS:
                scenarios.append(SCENARIOS[scenario_id])
            else:
                logger.warning("Skipping unknown scenario %s", scenario_id)
        if not scenarios:
            raise RunBenchmarkError(
                f"No valid scenarios selected. Requested: {config.scenarios}"
            )

        return models, scenarios

    def _create_generators(
        self, models: list[ModelSpec], key_refs: dict[str, str]
    ) -> dict[str, GeneratorContract]:
        generators: dict[str, GeneratorContract] = {}
        for spec in models:
            if spec.provider in generators:
                continue
            try:
                generators[spec.provider] = self._provider_factory(
                    spec.provider, key_refs.get(spec.provider)
                )
            except ValueError as e:
                raise RunBenchmarkError(str(e)) from e
        return generators
