from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_RUNS_PER_SCENARIO = 10
DEFAULT_TEMPERATURE = 0.1
DEFAULT_MAX_RETRIES = 3
DEFAULT_MAX_TOKENS = 1500


@dataclass
class BenchmarkConfig:
    models: list[str]
    scenarios: list[int] = field(default_factory=lambda: [1, 2, 3, 4])
    runs_per_scenario: int = DEFAULT_RUNS_PER_SCENARIO
    temperature: float = DEFAULT_TEMPERATURE
    max_retries: int = DEFAULT_MAX_RETRIES
    max_tokens: int = DEFAULT_MAX_TOKENS
    key_refs: dict[str, str] = field(default_factory=dict)

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1


@dataclass
class LoadedConfig:
    config: BenchmarkConfig
    conversation: str | None = None


class ConfigLoaderContract(ABC):
    @abstractmethod
    def load(self, path: Path) -> LoadedConfig:
        pass
