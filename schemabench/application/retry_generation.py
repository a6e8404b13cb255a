import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from pydantic import BaseModel

from ..domain.contracts.generator import GenerationMode, GenerationParams, Message
from ..domain.contracts.progress import (
    EVENT_ATTEMPT,
    LOG_REQUEST,
    LOG_RESPONSE,
    STATUS_FAILED,
    STATUS_RETRYING,
    STATUS_RUNNING,
    STATUS_SUCCESS,
    BenchmarkCancelledError,
    CancellationToken,
    LogEntry,
    NullObserver,
    ProgressEvent,
    ProgressObserver,
)
from ..domain.contracts.results import Attempt, StageResult
from .execute_attempt import AttemptExecutor, render_prompt_text
from .prompts import get_retry_prompt

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AttemptContext:
    model_id: str
    scenario: int
    run_number: int
    model_name: str = ""
    stage: int | None = None


@dataclass(frozen=True)
class StageOutcome:
    record: StageResult
    value: BaseModel | None = None


def build_retry_messages(messages: list[Message], failed: Attempt) -> list[Message]:
    """Append the failed response and a corrective instruction to the conversation."""
    retry_messages = list(messages)
    if failed.raw_response:
        retry_messages.append({"role": "assistant", "content": failed.raw_response})

    retry_messages.append(
        {
            "role": "user",
            "content": get_retry_prompt(
                previous_response=failed.raw_response,
                issues=failed.validation_errors,
                error_message=failed.error_message,
            ),
        }
    )
    return retry_messages


class RetryController:
    def __init__(
        self,
        executor: AttemptExecutor,
        params: GenerationParams,
        max_retries: int,
        observer: ProgressObserver | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> None:
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")

        self._executor = executor
        self._params = params
        self._max_attempts = max_retries + 1
        self._observer = observer or NullObserver()
        self._cancel_token = cancel_token or CancellationToken()

    async def run(
        self,
        messages: list[Message],
        schema: type[BaseModel],
        mode: GenerationMode,
        context: AttemptContext,
    ) -> StageOutcome:
        stage = context.stage or 1
        attempts: list[Attempt] = []
        current = list(messages)

        for attempt_number in range(1, self._max_attempts + 1):
            if self._cancel_token.cancelled:
                raise BenchmarkCancelledError("Benchmark cancelled")

            self._emit(
                context,
                STATUS_RUNNING if attempt_number == 1 else STATUS_RETRYING,
                attempt_number,
                log_entry=self._request_log(context, attempt_number, current),
            )

            outcome = await self._executor.execute(
                messages=current,
                schema=schema,
                mode=mode,
                params=self._params,
                attempt_number=attempt_number,
            )
            attempt = outcome.attempt
            attempts.append(attempt)

            self._emit(
                context,
                STATUS_SUCCESS if attempt.success else STATUS_FAILED,
                attempt_number,
                message=attempt.error_message,
                log_entry=self._response_log(context, attempt),
            )

            if attempt.success:
                logger.debug(
                    "%s scenario %d run %d stage %d succeeded on attempt %d",
                    context.model_id,
                    context.scenario,
                    context.run_number,
                    stage,
                    attempt_number,
                )
                return StageOutcome(
                    record=StageResult(
                        stage=stage, succeeded=True, attempts=tuple(attempts)
                    ),
                    value=outcome.value,
                )

            logger.debug(
                "%s scenario %d run %d stage %d attempt %d failed: %s",
                context.model_id,
                context.scenario,
                context.run_number,
                stage,
                attempt_number,
                attempt.error_message
                or f"{len(attempt.validation_errors)} validation error(s)",
            )
            current = build_retry_messages(current, attempt)

        logger.info(
            "%s scenario %d run %d stage %d exhausted %d attempt(s)",
            context.model_id,
            context.scenario,
            context.run_number,
            stage,
            self._max_attempts,
        )
        return StageOutcome(
            record=StageResult(stage=stage, succeeded=False, attempts=tuple(attempts))
        )

    def _emit(
        self,
        context: AttemptContext,
        status: str,
        attempt_number: int,
        message: str | None = None,
        log_entry: LogEntry | None = None,
    ) -> None:
        self._observer.on_transition(
            ProgressEvent(
                kind=EVENT_ATTEMPT,
                status=status,
                model_id=context.model_id,
                model_name=context.model_name,
                scenario=context.scenario,
                run_number=context.run_number,
                attempt_number=attempt_number,
                stage=context.stage,
                message=message,
                log_entry=log_entry,
            )
        )

    def _request_log(
        self, context: AttemptContext, attempt_number: int, messages: list[Message]
    ) -> LogEntry:
        return LogEntry(
            timestamp=datetime.now(timezone.utc).isoformat(),
            model_id=context.model_id,
            scenario=context.scenario,
            run_number=context.run_number,
            attempt_number=attempt_number,
            type=LOG_REQUEST,
            stage=context.stage,
            prompt=render_prompt_text(messages),
        )

    def _response_log(self, context: AttemptContext, attempt: Attempt) -> LogEntry:
        return LogEntry(
            timestamp=datetime.now(timezone.utc).isoformat(),
            model_id=context.model_id,
            scenario=context.scenario,
            run_number=context.run_number,
            attempt_number=attempt.attempt_number,
            type=LOG_RESPONSE,
            stage=context.stage,
            response=attempt.raw_response or attempt.error_message,
            validation_success=attempt.success,
            validation_errors=attempt.validation_errors,
        )
