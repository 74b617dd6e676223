# status: complete

"""Run state machine: acquire a session, plan once, execute step by step, always release, then score."""

from __future__ import annotations

import asyncio
import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional

from utils.config import Config
from utils.logger import get_logger

from .driver import BrowserDriver
from .errors import SessionConfigurationError, SessionLostError
from .events import NullRunEventPublisher, RunEventPublisher, RunStateEvent, StepRecordedEvent
from .executor import StepExecutor
from .llm import Narrator, TextCompletion
from .models import AbortReason, PlannedStep, RunResult, RunState, SessionHandle, StepRecord, Task
from .planner import StepPlanner
from .retry import CircuitBreaker, RetryController, skipped_record
from .session import SessionManager
from .verifier import ScoringWeights, score

logger = get_logger(__name__)


@dataclass
class RunContext:
    """Mutable per-run state. Never shared between runs."""

    run_id: str
    task: Task
    state: RunState = RunState.CREATED
    log: List[StepRecord] = field(default_factory=list)
    abort_reason: Optional[AbortReason] = None
    error: Optional[str] = None
    cancel_event: Optional[threading.Event] = None

    @property
    def cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()


class RunOrchestrator:
    def __init__(
        self,
        session_manager: SessionManager,
        planner: StepPlanner,
        retry_controller: RetryController,
        narrator: Narrator,
        circuit_breaker: Optional[CircuitBreaker] = None,
        weights: Optional[ScoringWeights] = None,
        events: Optional[RunEventPublisher] = None,
        settle_seconds: Optional[float] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.sessions = session_manager
        self.planner = planner
        self.retry = retry_controller
        self.narrator = narrator
        self.breaker = circuit_breaker or CircuitBreaker()
        self.weights = weights or ScoringWeights()
        self._events = events or NullRunEventPublisher()
        self.settle_seconds = Config.get_action_settle_seconds() if settle_seconds is None else settle_seconds
        self._sleep = sleep

    @classmethod
    def from_config(
        cls,
        completion: Optional[TextCompletion],
        session_manager: Optional[SessionManager] = None,
        events: Optional[RunEventPublisher] = None,
    ) -> "RunOrchestrator":
        return cls(
            session_manager=session_manager or SessionManager(),
            planner=StepPlanner(completion),
            retry_controller=RetryController(StepExecutor()),
            narrator=Narrator(completion),
            events=events,
        )

    def _transition(self, ctx: RunContext, state: RunState, **payload: Any) -> None:
        previous = ctx.state
        ctx.state = state
        logger.info("[RUN] %s %s -> %s %s", ctx.run_id, previous.value, state.value, payload or "")
        self._events.run_state_changed(RunStateEvent(ctx.run_id, state.value, dict(payload)))

    def _append(self, ctx: RunContext, record: StepRecord) -> None:
        ctx.log.append(record)
        self._events.step_recorded(
            StepRecordedEvent(ctx.run_id, record.step, record.status.value, record.retry_count, record.detail)
        )

    @staticmethod
    def _remaining(deadline: float) -> float:
        """Seconds left before the overall task deadline, never negative."""
        return max(deadline - time.monotonic(), 0.0)

    def _abort(self, ctx: RunContext, reason: AbortReason) -> None:
        ctx.abort_reason = reason
        self._transition(ctx, RunState.ABORTED, reason=reason.value)

    async def _navigate_to_start(self, ctx: RunContext, driver: BrowserDriver) -> None:
        url = ctx.task.start_url
        timeout_ms = Config.get_navigation_timeout_ms()
        try:
            await asyncio.wait_for(driver.navigate(url, timeout_ms), timeout_ms / 1000)
            logger.info("[RUN] %s navigated to %s", ctx.run_id, url)
            if self.settle_seconds:
                await self._sleep(self.settle_seconds)
        except Exception as e:
            logger.warning("[RUN] %s initial navigation to %s failed, continuing: %s", ctx.run_id, url, e)

    async def _execute_steps(self, ctx: RunContext, handle: SessionHandle, steps: List[PlannedStep]) -> None:
        driver = self.sessions.driver_for(handle)
        if driver is None:
            raise SessionLostError(f"No driver registered for session {handle.session_id}")

        if ctx.task.start_url:
            await self._navigate_to_start(ctx, driver)

        session_lost = False
        for step in steps:
            if session_lost:
                self._append(ctx, skipped_record(step))
                continue

            if ctx.cancelled:
                logger.info("[RUN] %s cancelled before step %d", ctx.run_id, step.ordinal)
                self._abort(ctx, AbortReason.CANCELLED)
                return

            attempt = await self.retry.run_step(handle, driver, step, ctx.task.max_retries)
            self._append(ctx, attempt.record)

            if attempt.session_lost:
                session_lost = True
                logger.error("[RUN] %s session lost at step %d, skipping remaining steps", ctx.run_id, step.ordinal)
                continue

            if self.breaker.should_trip(ctx.log):
                logger.warning(
                    "[RUN] %s circuit breaker tripped after step %d (%d of last %d failed)",
                    ctx.run_id, step.ordinal, self.breaker.threshold, self.breaker.window,
                )
                self._abort(ctx, AbortReason.CIRCUIT_BREAKER)
                return

        if session_lost:
            self._abort(ctx, AbortReason.SESSION_LOST)

    async def run_task(
        self,
        task: Task,
        run_id: Optional[str] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> RunResult:
        ctx = RunContext(run_id=run_id or str(uuid.uuid4()), task=task, cancel_event=cancel_event)
        started = time.monotonic()

        self._transition(ctx, RunState.SESSION_ACQUIRING)
        try:
            handle = await self.sessions.acquire(task.session_id)
        except SessionConfigurationError as e:
            logger.error("[RUN] %s session acquisition failed: %s", ctx.run_id, e)
            self._abort(ctx, AbortReason.CONFIGURATION)
            return RunResult(
                success=False,
                narrative="",
                steps=[],
                verification=score([], task.verification_level, self.weights),
                session=None,
                duration_ms=int((time.monotonic() - started) * 1000),
                error=str(e),
                abort_reason=AbortReason.CONFIGURATION,
            )

        deadline = started + task.timeout_ms / 1000
        try:
            self._transition(ctx, RunState.PLANNING)
            try:
                steps = await asyncio.wait_for(
                    self.planner.plan(task.planning_goal()), self._remaining(deadline)
                )
            except asyncio.TimeoutError:
                logger.warning("[RUN] %s timed out after %dms while planning", ctx.run_id, task.timeout_ms)
                self._abort(ctx, AbortReason.TIMEOUT)
                steps = []

            if ctx.abort_reason is None:
                self._transition(ctx, RunState.EXECUTING, steps=len(steps))
                try:
                    await asyncio.wait_for(self._execute_steps(ctx, handle, steps), self._remaining(deadline))
                except asyncio.TimeoutError:
                    logger.warning(
                        "[RUN] %s timed out after %dms with %d records", ctx.run_id, task.timeout_ms, len(ctx.log)
                    )
                    self._abort(ctx, AbortReason.TIMEOUT)
        except Exception as e:
            logger.error("[RUN] %s unexpected error during execution: %s", ctx.run_id, e, exc_info=True)
            ctx.error = str(e)
        finally:
            await self.sessions.release(handle)

        if ctx.abort_reason is None:
            self._transition(ctx, RunState.VERIFYING)
        verification = score(ctx.log, task.verification_level, self.weights)
        narrative = await self.narrator.narrate(task, ctx.log, verification)
        if ctx.abort_reason is None:
            self._transition(ctx, RunState.COMPLETED, score=verification.overall_score)

        return RunResult(
            success=verification.overall_score > 0,
            narrative=narrative,
            steps=list(ctx.log),
            verification=verification,
            session=handle,
            duration_ms=int((time.monotonic() - started) * 1000),
            error=ctx.error,
            abort_reason=ctx.abort_reason,
        )
