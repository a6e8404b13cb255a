import json
import logging
from dataclasses import asdict
from pathlib import Path
from typing import Any

from ..domain.contracts.config import BenchmarkConfig
from ..domain.contracts.results import (
    Attempt,
    BenchmarkRun,
    IndexEntry,
    ResultRepositoryContract,
    Run,
    ScenarioResult,
    StageResult,
    ValidationIssue,
)

logger = logging.getLogger(__name__)

INDEX_FILENAME = "index.json"
RESULTS_DIRNAME = "results"


class FileResultRepositoryError(Exception):
    pass


def _filename_for(timestamp: str) -> str:
    return f"{timestamp.replace(':', '-')}.json"


def _scenario_to_dict(result: ScenarioResult) -> dict[str, Any]:
    data = asdict(result)
    data["summary"] = asdict(result.summary)
    return data


def _run_to_dict(run: BenchmarkRun) -> dict[str, Any]:
    return {
        "id": run.id,
        "timestamp": run.timestamp,
        "duration_ms": run.duration_ms,
        "status": run.status,
        "error": run.error,
        "config": asdict(run.config),
        "results": {
            model_id: {
                scenario: _scenario_to_dict(result)
                for scenario, result in scenarios.items()
            }
            for model_id, scenarios in run.results.items()
        },
        "summary": asdict(run.summary),
    }


def _attempt_from_dict(data: dict[str, Any]) -> Attempt:
    return Attempt(
        attempt_number=data["attempt_number"],
        timestamp=data["timestamp"],
        success=data["success"],
        duration_ms=data["duration_ms"],
        prompt=data.get("prompt", ""),
        raw_response=data.get("raw_response", ""),
        parsed_response=data.get("parsed_response"),
        validation_errors=tuple(
            ValidationIssue(
                path=tuple(issue["path"]),
                message=issue["message"],
                code=issue["code"],
            )
            for issue in data.get("validation_errors", [])
        ),
        error_message=data.get("error_message"),
        input_tokens=data.get("input_tokens"),
        output_tokens=data.get("output_tokens"),
    )


def _scenario_from_dict(data: dict[str, Any]) -> ScenarioResult:
    runs = tuple(
        Run(
            run_number=run["run_number"],
            success=run["success"],
            stages=tuple(
                StageResult(
                    stage=stage["stage"],
                    succeeded=stage["succeeded"],
                    attempts=tuple(_attempt_from_dict(a) for a in stage["attempts"]),
                )
                for stage in run["stages"]
            ),
            total_duration_ms=run["total_duration_ms"],
            final_response=run.get("final_response"),
        )
        for run in data.get("runs", [])
    )
    return ScenarioResult(
        model_id=data["model_id"],
        scenario=data["scenario"],
        runs=runs,
        status=data.get("status", "completed"),
        error=data.get("error"),
    )


def _run_from_dict(data: dict[str, Any]) -> BenchmarkRun:
    return BenchmarkRun(
        id=data["id"],
        timestamp=data["timestamp"],
        config=BenchmarkConfig(**data["config"]),
        duration_ms=data.get("duration_ms", 0),
        status=data.get("status", "complete"),
        error=data.get("error"),
        results={
            model_id: {
                scenario: _scenario_from_dict(result)
                for scenario, result in scenarios.items()
            }
            for model_id, scenarios in data.get("results", {}).items()
        },
    )


class FileResultRepository(ResultRepositoryContract):
    def __init__(self, data_dir: Path) -> None:
        self._data_dir = Path(data_dir)
        self._results_dir = self._data_dir / RESULTS_DIRNAME
        self._index_file = self._data_dir / INDEX_FILENAME

    def save(self, run: BenchmarkRun) -> str:
        self._results_dir.mkdir(parents=True, exist_ok=True)

        filename = _filename_for(run.timestamp)
        with open(self._results_dir / filename, "w") as f:
            json.dump(_run_to_dict(run), f, indent=2)

        summary = run.summary
        entry = IndexEntry(
            id=run.id,
            timestamp=run.timestamp,
            filename=filename,
            models=list(run.results.keys()) or list(run.config.models),
            total_tests=summary.total_tests,
            success_rate=summary.success_rate,
        )

        entries = [e for e in self._read_index() if e.id != run.id]
        entries.append(entry)
        entries.sort(key=lambda e: e.timestamp, reverse=True)
        self._write_index(entries)

        logger.debug("Saved benchmark run %s to %s", run.id, filename)
        return run.id

    def load(self, run_id: str) -> BenchmarkRun:
        entry = self._find(run_id)
        if entry is None:
            raise FileResultRepositoryError(f"Run '{run_id}' not found")

        result_file = self._results_dir / entry.filename
        if not result_file.exists():
            raise FileResultRepositoryError(
                f"Result file for run '{run_id}' is missing: {result_file}"
            )

        try:
            with open(result_file) as f:
                data = json.load(f)
            return _run_from_dict(data)
        except (json.JSONDecodeError, KeyError, TypeError) as e:
            raise FileResultRepositoryError(
                f"Result file for run '{run_id}' is corrupt: {e}"
            )

    def list_runs(self, limit: int = 10) -> list[IndexEntry]:
        return self._read_index()[:limit]

    def delete(self, run_id: str) -> bool:
        entries = self._read_index()
        entry = next((e for e in entries if e.id == run_id), None)
        if entry is None:
            return False

        result_file = self._results_dir / entry.filename
        if result_file.exists():
            result_file.unlink()

        self._write_index([e for e in entries if e.id != run_id])
        return True

    def _find(self, run_id: str) -> IndexEntry | None:
        return next((e for e in self._read_index() if e.id == run_id), None)

    def _read_index(self) -> list[IndexEntry]:
        if not self._index_file.exists():
            return []

        try:
            with open(self._index_file) as f:
                data = json.load(f)
            return [IndexEntry(**entry) for entry in data.get("runs", [])]
        except (json.JSONDecodeError, AttributeError, TypeError) as e:
            logger.warning("Ignoring unreadable index %s: %s", self._index_file, e)
            return []

    def _write_index(self, entries: list[IndexEntry]) -> None:
        self._data_dir.mkdir(parents=True, exist_ok=True)
        with open(self._index_file, "w") as f:
            json.dump({"runs": [asdict(e) for e in entries]}, f, indent=2)
