from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from pydantic import BaseModel

from .results import ValidationIssue

Message = dict[str, str]


class GenerationMode(str, Enum):
    GUIDED = "guided"
    ENFORCED = "enforced"


@dataclass(frozen=True)
class GenerationParams:
    temperature: float = 0.1
    max_tokens: int = 1500


@dataclass
class GenerationResult:
    text: str
    parsed: BaseModel | None = None
    input_tokens: int | None = None
    output_tokens: int | None = None
    latency_ms: int = 0


@dataclass(frozen=True)
class ModelSpec:
    id: str
    name: str
    provider: str
    model: str
    supports_enforced: bool = True


class GeneratorError(Exception):
    """Non-fatal generation failure, recorded on the attempt and retried."""


class TransientGeneratorError(GeneratorError):
    pass


class SchemaRejectedError(GeneratorError):
    def __init__(
        self, issues: list[ValidationIssue], raw: str = "", message: str | None = None
    ) -> None:
        self.issues = list(issues)
        self.raw = raw
        super().__init__(message or _describe_issues(self.issues))


class FatalGeneratorError(Exception):
    """Authentication or authorization failure; retrying cannot succeed."""


def _describe_issues(issues: list[ValidationIssue]) -> str:
    if not issues:
        return "Response rejected by schema"
    first = issues[0]
    path = ".".join(first.path) or "root"
    return f"Response rejected by schema: {path}: {first.message}"


class GeneratorContract(ABC):
    @property
    @abstractmethod
    def name(self) -> str:
        pass

    @abstractmethod
    async def generate(
        self,
        model: str,
        messages: list[Message],
        schema: type[BaseModel],
        mode: GenerationMode,
        params: GenerationParams,
    ) -> GenerationResult:
        pass


class GeneratorFactory(Protocol):
    def __call__(
        self, provider_name: str, api_key_env_var: str | None = None
    ) -> GeneratorContract: ...


class ModelCatalogContract(ABC):
    @abstractmethod
    def resolve(self, model_ids: list[str]) -> tuple[list[ModelSpec], list[str]]:
        pass

    @abstractmethod
    def all(self) -> list[ModelSpec]:
        pass
