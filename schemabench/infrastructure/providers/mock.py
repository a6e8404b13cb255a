import json
from typing import Any

from pydantic import BaseModel

from ...domain.contracts.generator import (
    GenerationMode,
    GenerationParams,
    GenerationResult,
    GeneratorError,
    Message,
)
from .base import Provider

_ACTOR = {
    "title": "Database Administrator",
    "reason": (
        "The team keeps running into slow queries and nobody owns schema "
        "design or index tuning."
    ),
    "skills": ["PostgreSQL", "Query optimization", "Indexing", "Backups"],
    "prompt": (
        "You are an experienced database administrator who designs schemas, "
        "tunes queries and keeps production databases healthy."
    ),
    "model": "reasoning",
}

CANNED_RESPONSES: dict[str, dict[str, Any]] = {
    "RecommendationResponse": {
        "recommendation": (
            "I think you need to hire a Database Administrator to own query "
            "performance and schema design."
        ),
        "action": {"type": "create_actor", "actor": _ACTOR},
    },
    "StepOneOutput": {
        "recommendation": (
            "I think you need to hire a Database Administrator to own query "
            "performance and schema design."
        ),
        "action": "create_actor",
    },
    "StepTwoOutput": {
        "title": _ACTOR["title"],
        "reason": _ACTOR["reason"],
        "skills": _ACTOR["skills"],
    },
    "StepThreeOutput": {"prompt": _ACTOR["prompt"], "model": _ACTOR["model"]},
}


class MockProvider(Provider):
    """Offline provider returning canned responses that satisfy every schema."""

    @property
    def name(self) -> str:
        return "mock"

    async def generate(
        self,
        model: str,
        messages: list[Message],
        schema: type[BaseModel],
        mode: GenerationMode,
        params: GenerationParams,
    ) -> GenerationResult:
        if schema.__name__ not in CANNED_RESPONSES:
            raise GeneratorError(f"No canned response for {schema.__name__}")

        payload = json.dumps(CANNED_RESPONSES[schema.__name__], indent=2)
        prompt_size = sum(len(m["content"]) for m in messages)

        if mode is GenerationMode.ENFORCED:
            return GenerationResult(
                text=payload,
                parsed=self.parse_enforced(payload, schema),
                input_tokens=prompt_size // 4,
                output_tokens=len(payload) // 4,
            )

        return GenerationResult(
            text=f"```json\n{payload}\n```",
            input_tokens=prompt_size // 4,
            output_tokens=len(payload) // 4,
        )
