from .metrics import calculate_benchmark_summary, calculate_scenario_summary, retry_tier
from .scenarios import SCENARIO_IDS, SCENARIOS, Scenario, get_scenario
from .validation import ValidationOutcome, issues_from_error, validate_payload

__all__ = [
    "SCENARIO_IDS",
    "SCENARIOS",
    "Scenario",
    "ValidationOutcome",
    "calculate_benchmark_summary",
    "calculate_scenario_summary",
    "get_scenario",
    "issues_from_error",
    "retry_tier",
    "validate_payload",
]
