# status: complete

from __future__ import annotations

import asyncio
import uuid
from typing import Any, Callable, Dict, Optional

from utils.cancellation_manager import CancellationManager, cancellation_manager
from utils.logger import get_logger

from .events import RunEventEmitter, RunEventPublisher
from .llm import GeminiCompletion, TextCompletion
from .models import RunResult, Task
from .orchestrator import RunOrchestrator
from .session import SessionManager


class AutomationService:
    """Synchronous entry point used by request handlers. One event loop per call."""

    def __init__(
        self,
        session_manager: Optional[SessionManager] = None,
        completion_factory: Optional[Callable[[], Optional[TextCompletion]]] = None,
        orchestrator_factory: Optional[Callable[..., RunOrchestrator]] = None,
        cancellations: Optional[CancellationManager] = None,
    ):
        self._sessions = session_manager or SessionManager()
        self._completion_factory = completion_factory or GeminiCompletion
        self._orchestrator_factory = orchestrator_factory or RunOrchestrator.from_config
        self._cancellations = cancellations or cancellation_manager
        self._logger = get_logger(__name__)

    def build_orchestrator(self, events: Optional[RunEventPublisher] = None) -> RunOrchestrator:
        # The genai async client binds to the loop it first runs on, so each run gets its own.
        return self._orchestrator_factory(
            self._completion_factory(),
            session_manager=self._sessions,
            events=events,
        )

    def execute(self, task: Task, run_id: Optional[str] = None, events: Optional[RunEventPublisher] = None) -> RunResult:
        run_id = run_id or str(uuid.uuid4())
        cancel_event = self._cancellations.register_run(run_id)
        self._logger.info(f"[RUN] Starting run {run_id}: {task.goal[:120]}")
        try:
            orchestrator = self.build_orchestrator(events)
            return asyncio.run(orchestrator.run_task(task, run_id=run_id, cancel_event=cancel_event))
        finally:
            self._cancellations.cleanup_run(run_id)

    def run_task(self, payload: Dict[str, Any], run_id: Optional[str] = None) -> Dict[str, Any]:
        """Validate a request payload, run it, and return the RunResult wire dict. Raises ValueError on bad input."""
        task = Task.from_dict(payload)
        run_id = run_id or str(uuid.uuid4())
        result = self.execute(task, run_id=run_id)
        data = result.to_dict()
        data["runId"] = run_id
        return data

    def create_session(self) -> Dict[str, Any]:
        handle = asyncio.run(self._sessions.create_standalone())
        return {
            "sessionId": handle.session_id,
            "liveViewUrl": handle.live_url,
            "replayUrl": handle.replay_url,
            "status": handle.state.value,
        }

    def cancel_run(self, run_id: str) -> bool:
        return self._cancellations.cancel_run(run_id)

    def build_event_emitter(self) -> RunEventEmitter:
        return RunEventEmitter()
