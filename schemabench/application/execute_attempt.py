import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone

from pydantic import BaseModel

from ..domain.contracts.generator import (
    GenerationMode,
    GenerationParams,
    GeneratorContract,
    GeneratorError,
    Message,
    ModelSpec,
    SchemaRejectedError,
)
from ..domain.contracts.results import Attempt
from ..domain.validation import validate_payload

logger = logging.getLogger(__name__)


def render_prompt_text(messages: list[Message]) -> str:
    return "\n\n".join(f"[{m['role']}] {m['content']}" for m in messages)


def strip_code_fence(text: str) -> str:
    cleaned = text.strip()

    if cleaned.startswith("```json"):
        cleaned = cleaned[len("```json") :]
    elif cleaned.startswith("```"):
        cleaned = cleaned[len("```") :]

    if cleaned.endswith("```"):
        cleaned = cleaned[: -len("```")]

    return cleaned.strip()


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class AttemptOutcome:
    attempt: Attempt
    value: BaseModel | None = None


class AttemptExecutor:
    def __init__(self, generator: GeneratorContract, model: ModelSpec) -> None:
        self._generator = generator
        self._model = model

    @property
    def model(self) -> ModelSpec:
        return self._model

    async def execute(
        self,
        messages: list[Message],
        schema: type[BaseModel],
        mode: GenerationMode,
        params: GenerationParams,
        attempt_number: int,
    ) -> AttemptOutcome:
        prompt = render_prompt_text(messages)
        timestamp = _now()
        start = time.perf_counter()

        try:
            result = await self._generator.generate(
                model=self._model.model,
                messages=messages,
                schema=schema,
                mode=mode,
                params=params,
            )
        except SchemaRejectedError as e:
            logger.debug("%s rejected by schema: %s", self._model.id, e)
            attempt = Attempt(
                attempt_number=attempt_number,
                timestamp=timestamp,
                success=False,
                duration_ms=_elapsed_ms(start),
                prompt=prompt,
                raw_response=e.raw,
                validation_errors=tuple(e.issues),
            )
            return AttemptOutcome(attempt=attempt)
        except GeneratorError as e:
            logger.debug("%s generation failed: %s", self._model.id, e)
            attempt = Attempt(
                attempt_number=attempt_number,
                timestamp=timestamp,
                success=False,
                duration_ms=_elapsed_ms(start),
                prompt=prompt,
                raw_response="",
                error_message=str(e) or type(e).__name__,
            )
            return AttemptOutcome(attempt=attempt)

        # latency_ms is 0 when the generator does not measure it
        duration_ms = result.latency_ms or _elapsed_ms(start)

        if mode is GenerationMode.ENFORCED and result.parsed is not None:
            value = result.parsed
            issues = []
        else:
            outcome = validate_payload(strip_code_fence(result.text), schema)
            value = outcome.value
            issues = outcome.issues

        attempt = Attempt(
            attempt_number=attempt_number,
            timestamp=timestamp,
            success=value is not None,
            duration_ms=duration_ms,
            prompt=prompt,
            raw_response=result.text,
            parsed_response=value.model_dump(mode="json") if value is not None else None,
            validation_errors=tuple(issues),
            input_tokens=result.input_tokens,
            output_tokens=result.output_tokens,
        )
        return AttemptOutcome(attempt=attempt, value=value)


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)
