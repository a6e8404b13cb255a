import threading
from dataclasses import dataclass
from typing import Protocol

from .results import ValidationIssue

EVENT_ATTEMPT = "attempt"
EVENT_RUN = "run"

STATUS_RUNNING = "running"
STATUS_RETRYING = "retrying"
STATUS_SUCCESS = "success"
STATUS_FAILED = "failed"

LOG_REQUEST = "request"
LOG_RESPONSE = "response"


@dataclass(frozen=True)
class LogEntry:
    timestamp: str
    model_id: str
    scenario: int
    run_number: int
    attempt_number: int
    type: str
    stage: int | None = None
    prompt: str | None = None
    response: str | None = None
    validation_success: bool | None = None
    validation_errors: tuple[ValidationIssue, ...] = ()


@dataclass(frozen=True)
class ProgressEvent:
    kind: str
    status: str
    model_id: str
    scenario: int
    run_number: int
    attempt_number: int
    model_name: str = ""
    stage: int | None = None
    message: str | None = None
    log_entry: LogEntry | None = None


class ProgressObserver(Protocol):
    def on_transition(self, event: ProgressEvent) -> None: ...


class NullObserver:
    def on_transition(self, event: ProgressEvent) -> None:
        return None


class FanOutObserver:
    def __init__(self, *observers: ProgressObserver) -> None:
        self._observers = observers

    def on_transition(self, event: ProgressEvent) -> None:
        for observer in self._observers:
            observer.on_transition(event)


class CancellationToken:
    """Cooperative cancellation flag, safe to set from any thread."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class BenchmarkCancelledError(Exception):
    pass
