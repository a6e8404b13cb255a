import json
import logging
import time

from pydantic import BaseModel

from ..domain.contracts.config import BenchmarkConfig
from ..domain.contracts.generator import (
    FatalGeneratorError,
    GenerationMode,
    GenerationParams,
    Message,
)
from ..domain.contracts.progress import (
    EVENT_RUN,
    STATUS_FAILED,
    STATUS_SUCCESS,
    BenchmarkCancelledError,
    CancellationToken,
    NullObserver,
    ProgressEvent,
    ProgressObserver,
)
from ..domain.contracts.results import (
    SCENARIO_ABORTED,
    SCENARIO_CANCELLED,
    SCENARIO_COMPLETED,
    Run,
    ScenarioResult,
    StageResult,
)
from ..domain.scenarios import Scenario
from ..domain.schemas import (
    STAGE_SCHEMAS,
    MergeConsistencyError,
    RecommendationResponse,
    StepOneOutput,
    merge_steps,
)
from ..domain.validation import validate_object
from .execute_attempt import AttemptExecutor
from .prompts import (
    get_context_prompt,
    get_default_conversation,
    get_one_shot_prompt,
    get_stage_prompt,
    get_system_prompt,
)
from .retry_generation import AttemptContext, RetryController

logger = logging.getLogger(__name__)


class ScenarioAbortedError(Exception):
    """A fatal generator error stopped the scenario; completed runs are kept."""

    def __init__(self, result: ScenarioResult, cause: Exception) -> None:
        super().__init__(str(cause))
        self.result = result
        self.cause = cause


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


class ScenarioRunner:
    def __init__(
        self,
        executor: AttemptExecutor,
        config: BenchmarkConfig,
        observer: ProgressObserver | None = None,
        cancel_token: CancellationToken | None = None,
        conversation: str | None = None,
    ) -> None:
        self._executor = executor
        self._config = config
        self._observer = observer or NullObserver()
        self._retry = RetryController(
            executor=executor,
            params=GenerationParams(
                temperature=config.temperature, max_tokens=config.max_tokens
            ),
            max_retries=config.max_retries,
            observer=self._observer,
            cancel_token=cancel_token,
        )
        self._conversation = conversation or get_default_conversation()

    def base_messages(self) -> list[Message]:
        return [
            {"role": "system", "content": get_system_prompt()},
            {"role": "user", "content": get_context_prompt(self._conversation)},
        ]

    async def run(self, scenario: Scenario) -> ScenarioResult:
        model = self._executor.model
        runs: list[Run] = []
        logger.info(
            "Running scenario %d (%s) for %s", scenario.id, scenario.name, model.id
        )

        for run_number in range(1, self._config.runs_per_scenario + 1):
            try:
                if scenario.is_sequential:
                    run = await self._run_sequential(scenario, run_number)
                else:
                    run = await self._run_one_shot(scenario, run_number)
            except BenchmarkCancelledError as e:
                logger.warning("%s scenario %d cancelled", model.id, scenario.id)
                return self._result(scenario, runs, SCENARIO_CANCELLED, str(e))
            except MergeConsistencyError as e:
                logger.warning("%s scenario %d aborted: %s", model.id, scenario.id, e)
                return self._result(scenario, runs, SCENARIO_ABORTED, str(e))
            except FatalGeneratorError as e:
                logger.warning("%s scenario %d aborted: %s", model.id, scenario.id, e)
                raise ScenarioAbortedError(
                    self._result(scenario, runs, SCENARIO_ABORTED, str(e)), e
                ) from e

            runs.append(run)
            self._emit_run(scenario, run)

        return self._result(scenario, runs, SCENARIO_COMPLETED)

    async def _run_one_shot(self, scenario: Scenario, run_number: int) -> Run:
        start = time.perf_counter()
        messages = self.base_messages()
        messages.append(
            {
                "role": "user",
                "content": get_one_shot_prompt(
                    RecommendationResponse, scenario.enforced
                ),
            }
        )

        outcome = await self._retry.run(
            messages=messages,
            schema=RecommendationResponse,
            mode=self._mode(scenario),
            context=self._context(scenario, run_number),
        )

        return Run(
            run_number=run_number,
            success=outcome.record.succeeded,
            stages=(outcome.record,),
            total_duration_ms=_elapsed_ms(start),
            final_response=(
                outcome.value.model_dump(mode="json")
                if outcome.value is not None
                else None
            ),
        )

    async def _run_sequential(self, scenario: Scenario, run_number: int) -> Run:
        start = time.perf_counter()
        stages: list[StageResult] = []
        outputs: list[BaseModel] = []

        for stage, schema in enumerate(STAGE_SCHEMAS, start=1):
            messages = self.base_messages()
            for previous in outputs:
                messages.append(
                    {
                        "role": "assistant",
                        "content": json.dumps(previous.model_dump(mode="json")),
                    }
                )
            messages.append(
                {
                    "role": "user",
                    "content": get_stage_prompt(stage, schema, scenario.enforced),
                }
            )

            outcome = await self._retry.run(
                messages=messages,
                schema=schema,
                mode=self._mode(scenario),
                context=self._context(scenario, run_number, stage),
            )
            stages.append(outcome.record)

            if not outcome.record.succeeded or outcome.value is None:
                return Run(
                    run_number=run_number,
                    success=False,
                    stages=tuple(stages),
                    total_duration_ms=_elapsed_ms(start),
                )

            outputs.append(outcome.value)

            if (
                stage == 1
                and isinstance(outcome.value, StepOneOutput)
                and outcome.value.action is None
            ):
                break

        final_response = self._merge(outputs)
        return Run(
            run_number=run_number,
            success=True,
            stages=tuple(stages),
            total_duration_ms=_elapsed_ms(start),
            final_response=final_response,
        )

    def _merge(self, outputs: list[BaseModel]) -> dict:
        step_one, *rest = outputs
        step_two = rest[0] if len(rest) > 0 else None
        step_three = rest[1] if len(rest) > 1 else None

        merged = merge_steps(step_one, step_two, step_three)
        check = validate_object(merged.model_dump(mode="json"), RecommendationResponse)
        if not check.ok:
            details = "; ".join(
                f"{'.'.join(issue.path) or 'root'}: {issue.message}"
                for issue in check.issues
            )
            raise MergeConsistencyError(
                f"Merged response failed whole-schema validation: {details}"
            )

        return check.value.model_dump(mode="json")

    def _mode(self, scenario: Scenario) -> GenerationMode:
        return GenerationMode.ENFORCED if scenario.enforced else GenerationMode.GUIDED

    def _context(
        self, scenario: Scenario, run_number: int, stage: int | None = None
    ) -> AttemptContext:
        model = self._executor.model
        return AttemptContext(
            model_id=model.id,
            model_name=model.name,
            scenario=scenario.id,
            run_number=run_number,
            stage=stage,
        )

    def _emit_run(self, scenario: Scenario, run: Run) -> None:
        model = self._executor.model
        self._observer.on_transition(
            ProgressEvent(
                kind=EVENT_RUN,
                status=STATUS_SUCCESS if run.success else STATUS_FAILED,
                model_id=model.id,
                model_name=model.name,
                scenario=scenario.id,
                run_number=run.run_number,
                attempt_number=len(run.attempts),
            )
        )

    def _result(
        self,
        scenario: Scenario,
        runs: list[Run],
        status: str,
        error: str | None = None,
    ) -> ScenarioResult:
        return ScenarioResult(
            model_id=self._executor.model.id,
            scenario=scenario.id,
            runs=tuple(runs),
            status=status,
            error=error,
        )
