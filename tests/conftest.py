import json
from typing import Any

import pytest
from pydantic import BaseModel

from schemabench.domain.contracts.config import BenchmarkConfig
from schemabench.domain.contracts.generator import (
    GenerationMode,
    GenerationParams,
    GenerationResult,
    GeneratorContract,
    Message,
    ModelSpec,
)

ACTOR = {
    "title": "Database Administrator",
    "reason": "Nobody on the team owns schema design or query tuning.",
    "skills": ["PostgreSQL", "Indexing", "Backups"],
    "prompt": "You are a database administrator who tunes queries and schemas.",
    "model": "reasoning",
}

VALID_RESPONSE = json.dumps(
    {
        "recommendation": "I think you need to hire a Database Administrator.",
        "action": {"type": "create_actor", "actor": ACTOR},
    }
)
NULL_ACTION_RESPONSE = json.dumps(
    {
        "recommendation": "I think the team is fine and needs nobody new.",
        "action": None,
    }
)
STEP_ONE = json.dumps(
    {
        "recommendation": "I think you need to hire a Database Administrator.",
        "action": "create_actor",
    }
)
STEP_ONE_NULL = json.dumps(
    {
        "recommendation": "I think the team is fine and needs nobody new.",
        "action": None,
    }
)
STEP_TWO = json.dumps(
    {"title": ACTOR["title"], "reason": ACTOR["reason"], "skills": ACTOR["skills"]}
)
STEP_THREE = json.dumps({"prompt": ACTOR["prompt"], "model": ACTOR["model"]})
INVALID_RESPONSE = json.dumps({"recommendation": "short"})


class ScriptedGenerator(GeneratorContract):
    """Replays scripted outputs; an Exception entry is raised instead of returned."""

    def __init__(self, script: list[Any]) -> None:
        self.script = list(script)
        self.calls: list[dict[str, Any]] = []

    @property
    def name(self) -> str:
        return "scripted"

    async def generate(
        self,
        model: str,
        messages: list[Message],
        schema: type[BaseModel],
        mode: GenerationMode,
        params: GenerationParams,
    ) -> GenerationResult:
        self.calls.append(
            {"model": model, "messages": list(messages), "schema": schema, "mode": mode}
        )
        if not self.script:
            raise AssertionError("ScriptedGenerator ran out of responses")

        item = self.script.pop(0)
        if isinstance(item, Exception):
            raise item
        if isinstance(item, GenerationResult):
            return item
        return GenerationResult(text=item, input_tokens=10, output_tokens=5)


@pytest.fixture
def model_spec() -> ModelSpec:
    return ModelSpec(id="scripted-model", name="Scripted", provider="scripted", model="m1")


@pytest.fixture
def make_config():
    def _make(**overrides: Any) -> BenchmarkConfig:
        values: dict[str, Any] = {
            "models": ["scripted-model"],
            "scenarios": [1],
            "runs_per_scenario": 1,
            "max_retries": 3,
        }
        values.update(overrides)
        return BenchmarkConfig(**values)

    return _make
