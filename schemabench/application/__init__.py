from .execute_attempt import AttemptExecutor, AttemptOutcome
from .retry_generation import AttemptContext, RetryController, StageOutcome
from .run_benchmark import RunBenchmark, RunBenchmarkError
from .run_scenario import ScenarioAbortedError, ScenarioRunner
from .track_progress import ProgressSnapshot, ProgressTracker, RunProgress

__all__ = [
    "AttemptContext",
    "AttemptExecutor",
    "AttemptOutcome",
    "ProgressSnapshot",
    "ProgressTracker",
    "RetryController",
    "RunBenchmark",
    "RunBenchmarkError",
    "RunProgress",
    "ScenarioAbortedError",
    "ScenarioRunner",
    "StageOutcome",
]
