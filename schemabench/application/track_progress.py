import threading
from collections import deque
from dataclasses import dataclass, replace

from ..domain.contracts.progress import (
    EVENT_RUN,
    STATUS_FAILED,
    STATUS_RETRYING,
    STATUS_RUNNING,
    STATUS_SUCCESS,
    LogEntry,
    ProgressEvent,
)

LOG_BUFFER_SIZE = 50

CELL_PENDING = "pending"
CELL_RUNNING = "running"
CELL_SUCCESS = "success"
CELL_FAILED = "failed"
CELL_SKIPPED = "skipped"

TRACKER_IDLE = "idle"
TRACKER_RUNNING = "running"


@dataclass(frozen=True)
class RunProgress:
    run_number: int
    attempts: tuple[str, ...]
    status: str = CELL_PENDING


@dataclass(frozen=True)
class ProgressSnapshot:
    status: str = TRACKER_IDLE
    current_model_id: str | None = None
    current_model_name: str | None = None
    current_scenario: int | None = None
    current_run: int = 0
    current_attempt: int = 0
    current_stage: int | None = None
    runs: tuple[RunProgress, ...] = ()
    completed_runs: int = 0
    total_runs: int = 0
    error: str | None = None
    logs: tuple[LogEntry, ...] = ()


class ProgressTracker:
    """Single-writer progress record for one benchmark execution.

    Every transition builds a fresh ProgressSnapshot and swaps it in under a
    lock, so readers on other threads always see a complete state.
    """

    def __init__(self, runs_per_scenario: int, max_attempts: int, total_runs: int = 0) -> None:
        self._runs_per_scenario = runs_per_scenario
        self._max_attempts = max_attempts
        self._lock = threading.Lock()
        self._logs: deque[LogEntry] = deque(maxlen=LOG_BUFFER_SIZE)
        # cumulative attempt index per run, so sequential stages get their own cells
        self._cursors: dict[int, int] = {}
        self._snapshot = ProgressSnapshot(total_runs=total_runs)

    def snapshot(self) -> ProgressSnapshot:
        with self._lock:
            return self._snapshot

    def start(self) -> None:
        self._publish(replace(self._snapshot, status=TRACKER_RUNNING, error=None))

    def finish(self, status: str, error: str | None = None) -> None:
        self._publish(replace(self._snapshot, status=status, error=error))

    def on_transition(self, event: ProgressEvent) -> None:
        current = self._snapshot

        if (
            event.model_id != current.current_model_id
            or event.scenario != current.current_scenario
        ):
            self._logs.clear()
            self._cursors.clear()
            current = replace(
                current,
                current_model_id=event.model_id,
                current_model_name=event.model_name or event.model_id,
                current_scenario=event.scenario,
                runs=self._empty_grid(),
            )

        if event.log_entry is not None:
            self._logs.append(event.log_entry)

        if event.kind == EVENT_RUN:
            updated = self._finish_run(current, event)
        else:
            updated = self._update_attempt(current, event)

        self._publish(replace(updated, logs=tuple(self._logs)))

    def _empty_grid(self) -> tuple[RunProgress, ...]:
        return tuple(
            RunProgress(run_number=n, attempts=(CELL_PENDING,) * self._max_attempts)
            for n in range(1, self._runs_per_scenario + 1)
        )

    def _update_attempt(
        self, snapshot: ProgressSnapshot, event: ProgressEvent
    ) -> ProgressSnapshot:
        if event.status in (STATUS_RUNNING, STATUS_RETRYING):
            cell = CELL_RUNNING
            previous = self._cursors.get(event.run_number, -1)
            self._cursors[event.run_number] = previous + 1
        elif event.status == STATUS_SUCCESS:
            cell = CELL_SUCCESS
        else:
            cell = CELL_FAILED

        runs = tuple(
            self._set_cell(row, self._cursors.get(event.run_number, 0), cell)
            if row.run_number == event.run_number
            else row
            for row in snapshot.runs
        )
        return replace(
            snapshot,
            runs=runs,
            current_run=event.run_number,
            current_attempt=event.attempt_number,
            current_stage=event.stage,
        )

    def _finish_run(
        self, snapshot: ProgressSnapshot, event: ProgressEvent
    ) -> ProgressSnapshot:
        status = CELL_SUCCESS if event.status == STATUS_SUCCESS else CELL_FAILED
        runs = tuple(
            RunProgress(
                run_number=row.run_number,
                attempts=tuple(
                    CELL_SKIPPED if cell == CELL_PENDING else cell
                    for cell in row.attempts
                ),
                status=status,
            )
            if row.run_number == event.run_number
            else row
            for row in snapshot.runs
        )
        return replace(
            snapshot,
            runs=runs,
            current_run=event.run_number,
            completed_runs=snapshot.completed_runs + 1,
        )

    def _set_cell(self, row: RunProgress, index: int, cell: str) -> RunProgress:
        attempts = list(row.attempts)
        if index >= len(attempts):
            attempts.extend([CELL_PENDING] * (index + 1 - len(attempts)))
        attempts[index] = cell
        return RunProgress(
            run_number=row.run_number,
            attempts=tuple(attempts),
            status=CELL_RUNNING,
        )

    def _publish(self, snapshot: ProgressSnapshot) -> None:
        with self._lock:
            self._snapshot = snapshot
