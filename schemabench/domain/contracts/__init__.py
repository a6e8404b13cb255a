from .config import BenchmarkConfig, ConfigLoaderContract, LoadedConfig
from .generator import (
    FatalGeneratorError,
    GenerationMode,
    GenerationParams,
    GenerationResult,
    GeneratorContract,
    GeneratorError,
    GeneratorFactory,
    ModelCatalogContract,
    ModelSpec,
    SchemaRejectedError,
    TransientGeneratorError,
)
from .progress import (
    BenchmarkCancelledError,
    CancellationToken,
    FanOutObserver,
    LogEntry,
    NullObserver,
    ProgressEvent,
    ProgressObserver,
)
from .results import (
    Attempt,
    BenchmarkRun,
    BenchmarkSummary,
    ResultRepositoryContract,
    Run,
    ScenarioResult,
    ScenarioSummary,
    StageResult,
    ValidationIssue,
)

__all__ = [
    "Attempt",
    "BenchmarkCancelledError",
    "BenchmarkConfig",
    "BenchmarkRun",
    "BenchmarkSummary",
    "CancellationToken",
    "ConfigLoaderContract",
    "FanOutObserver",
    "FatalGeneratorError",
    "GenerationMode",
    "GenerationParams",
    "GenerationResult",
    "GeneratorContract",
    "GeneratorError",
    "GeneratorFactory",
    "LoadedConfig",
    "LogEntry",
    "ModelCatalogContract",
    "ModelSpec",
    "NullObserver",
    "ProgressEvent",
    "ProgressObserver",
    "ResultRepositoryContract",
    "Run",
    "ScenarioResult",
    "ScenarioSummary",
    "SchemaRejectedError",
    "StageResult",
    "TransientGeneratorError",
    "ValidationIssue",
]
