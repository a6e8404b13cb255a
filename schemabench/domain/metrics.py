from collections.abc import Mapping, Sequence

from .contracts.results import (
    BenchmarkSummary,
    Run,
    ScenarioResult,
    ScenarioSummary,
    StageResult,
)

# after_retry_1..3 are always reported, even when fewer retries were configured
REPORTED_RETRY_TIERS = 3


def _first_success_index(stage: StageResult) -> int | None:
    for index, attempt in enumerate(stage.attempts):
        if attempt.success:
            return index
    return None


def retry_tier(run: Run) -> int | None:
    """Number of retries a successful run needed, or None for a failed run.

    For multi-stage runs the tier is the largest number of retries any single
    stage needed, so the run only counts once every stage has succeeded.
    """
    if not run.success or not run.stages:
        return None

    tier = 0
    for stage in run.stages:
        index = _first_success_index(stage)
        if index is None:
            return None
        tier = max(tier, index)
    return tier


def _percent(count: int, total: int) -> float:
    return count / total * 100


def _attempt_tokens(run: Run) -> int:
    return sum(
        (attempt.input_tokens or 0) + (attempt.output_tokens or 0)
        for attempt in run.attempts
    )


def calculate_scenario_summary(runs: Sequence[Run]) -> ScenarioSummary:
    total_runs = len(runs)
    if total_runs == 0:
        return ScenarioSummary()

    tiers = [retry_tier(run) for run in runs]
    successes = [tier for tier in tiers if tier is not None]
    highest_tier = max([REPORTED_RETRY_TIERS, *successes])

    cumulative = tuple(
        _percent(sum(1 for tier in successes if tier <= k), total_runs)
        for k in range(highest_tier + 1)
    )

    successful_runs = sum(1 for run in runs if run.success)
    total_duration = sum(run.total_duration_ms for run in runs)
    total_attempts = sum(len(run.attempts) for run in runs)

    return ScenarioSummary(
        success_rate=_percent(successful_runs, total_runs),
        first_attempt_success_rate=cumulative[0],
        after_retry_1_success_rate=cumulative[1],
        after_retry_2_success_rate=cumulative[2],
        after_retry_3_success_rate=cumulative[3],
        cumulative_success_rates=cumulative,
        average_duration_ms=total_duration / total_runs,
        average_attempts=total_attempts / total_runs,
        total_tokens_used=sum(_attempt_tokens(run) for run in runs),
    )


def calculate_benchmark_summary(
    results: Mapping[str, Mapping[str, ScenarioResult]],
) -> BenchmarkSummary:
    total_tests = 0
    passed = 0

    for scenarios in results.values():
        for scenario_result in scenarios.values():
            total_tests += len(scenario_result.runs)
            passed += sum(1 for run in scenario_result.runs if run.success)

    return BenchmarkSummary(
        total_tests=total_tests,
        passed=passed,
        failed=total_tests - passed,
        success_rate=_percent(passed, total_tests) if total_tests else 0.0,
    )
