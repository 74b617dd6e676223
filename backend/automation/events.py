# status: complete

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, List

from utils.logger import get_logger


@dataclass
class RunStateEvent:
    run_id: str
    state: str
    payload: Dict[str, Any] = field(default_factory=dict)


@dataclass
class StepRecordedEvent:
    run_id: str
    step: int
    status: str
    retry_count: int
    detail: str


class RunEventPublisher:
    """Interface for publishing automation run events."""

    def run_state_changed(self, event: RunStateEvent) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    def step_recorded(self, event: StepRecordedEvent) -> None:  # pragma: no cover - interface
        raise NotImplementedError


class RunEventEmitter(RunEventPublisher):
    """Multiplex events to subscribed listeners."""

    def __init__(self) -> None:
        self._listeners: List[Callable[[str, Dict[str, Any]], None]] = []
        self._logger = get_logger(__name__)

    def subscribe(self, listener: Callable[[str, Dict[str, Any]], None]) -> None:
        self._listeners.append(listener)

    def _broadcast(self, event_type: str, payload: Dict[str, Any]) -> None:
        for listener in list(self._listeners):
            try:
                listener(event_type, payload)
            except Exception as exc:
                self._logger.error("Run event listener error: %s", exc)

    def run_state_changed(self, event: RunStateEvent) -> None:
        self._broadcast("run_state_changed", asdict(event))

    def step_recorded(self, event: StepRecordedEvent) -> None:
        self._broadcast("step_recorded", asdict(event))


class NullRunEventPublisher(RunEventPublisher):
    """Drop-in publisher that ignores all events."""

    def run_state_changed(self, event: RunStateEvent) -> None:
        pass

    def step_recorded(self, event: StepRecordedEvent) -> None:
        pass
