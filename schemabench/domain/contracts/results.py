from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from .config import BenchmarkConfig


@dataclass(frozen=True)
class ValidationIssue:
    path: tuple[str, ...]
    message: str
    code: str


@dataclass(frozen=True)
class Attempt:
    attempt_number: int
    timestamp: str
    success: bool
    duration_ms: int
    prompt: str
    raw_response: str
    parsed_response: dict[str, Any] | None = None
    validation_errors: tuple[ValidationIssue, ...] = ()
    error_message: str | None = None
    input_tokens: int | None = None
    output_tokens: int | None = None


@dataclass(frozen=True)
class StageResult:
    stage: int
    succeeded: bool
    attempts: tuple[Attempt, ...]


@dataclass(frozen=True)
class Run:
    run_number: int
    success: bool
    stages: tuple[StageResult, ...]
    total_duration_ms: int
    final_response: dict[str, Any] | None = None

    @property
    def attempts(self) -> tuple[Attempt, ...]:
        return tuple(a for stage in self.stages for a in stage.attempts)


@dataclass(frozen=True)
class ScenarioSummary:
    success_rate: float = 0.0
    first_attempt_success_rate: float = 0.0
    after_retry_1_success_rate: float = 0.0
    after_retry_2_success_rate: float = 0.0
    after_retry_3_success_rate: float = 0.0
    cumulative_success_rates: tuple[float, ...] = (0.0, 0.0, 0.0, 0.0)
    average_duration_ms: float = 0.0
    average_attempts: float = 0.0
    total_tokens_used: int = 0


SCENARIO_COMPLETED = "completed"
SCENARIO_ABORTED = "aborted"
SCENARIO_CANCELLED = "cancelled"


@dataclass(frozen=True)
class ScenarioResult:
    model_id: str
    scenario: int
    runs: tuple[Run, ...] = ()
    status: str = SCENARIO_COMPLETED
    error: str | None = None

    @property
    def summary(self) -> ScenarioSummary:
        from ..metrics import calculate_scenario_summary

        return calculate_scenario_summary(self.runs)


@dataclass(frozen=True)
class BenchmarkSummary:
    total_tests: int = 0
    passed: int = 0
    failed: int = 0
    success_rate: float = 0.0


@dataclass
class BenchmarkRun:
    id: str
    timestamp: str
    config: BenchmarkConfig
    duration_ms: int = 0
    status: str = "running"
    error: str | None = None
    results: dict[str, dict[str, ScenarioResult]] = field(default_factory=dict)

    @property
    def summary(self) -> BenchmarkSummary:
        from ..metrics import calculate_benchmark_summary

        return calculate_benchmark_summary(self.results)


@dataclass(frozen=True)
class IndexEntry:
    id: str
    timestamp: str
    filename: str
    models: list[str]
    total_tests: int
    success_rate: float


class ResultRepositoryContract(ABC):
    @abstractmethod
    def save(self, run: BenchmarkRun) -> str:
        pass

    @abstractmethod
    def load(self, run_id: str) -> BenchmarkRun:
        pass

    @abstractmethod
    def list_runs(self, limit: int = 10) -> list[IndexEntry]:
        pass

    @abstractmethod
    def delete(self, run_id: str) -> bool:
        pass
