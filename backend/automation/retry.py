# status: complete

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Sequence

from utils.config import Config
from utils.logger import get_logger

from .driver import BrowserDriver
from .executor import StepExecutor
from .models import Fatal, PlannedStep, Retryable, SessionHandle, StepRecord, StepStatus, Succeeded

logger = get_logger(__name__)

SESSION_DISCONNECTED = "Session disconnected"


@dataclass(frozen=True)
class StepAttempt:
    record: StepRecord
    session_lost: bool = False


def skipped_record(step: PlannedStep) -> StepRecord:
    """Record for a step that was never run because the session was already gone."""
    return StepRecord(
        step=step.ordinal,
        instruction=step.instruction,
        status=StepStatus.FAILED,
        retry_count=0,
        detail=f"FAILED: {SESSION_DISCONNECTED}",
    )


class CircuitBreaker:
    """Trips when ``threshold`` of the last ``window`` records failed."""

    def __init__(self, window: Optional[int] = None, threshold: Optional[int] = None):
        self.window = window or Config.get_circuit_breaker_window()
        self.threshold = threshold or Config.get_circuit_breaker_threshold()

    def should_trip(self, log: Sequence[StepRecord]) -> bool:
        recent = list(log)[-self.window:]
        return sum(1 for record in recent if record.failed) >= self.threshold


class RetryController:
    """Runs one step through the executor with a bounded retry budget."""

    def __init__(
        self,
        executor: StepExecutor,
        backoff_seconds: Optional[float] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.executor = executor
        self.backoff_seconds = Config.get_retry_backoff_seconds() if backoff_seconds is None else backoff_seconds
        self._sleep = sleep

    async def run_step(
        self,
        handle: SessionHandle,
        driver: BrowserDriver,
        step: PlannedStep,
        max_retries: int,
    ) -> StepAttempt:
        retry_count = 0
        while True:
            outcome = await self.executor.execute(handle, driver, step)

            if isinstance(outcome, Succeeded):
                status = StepStatus.RETRIED if retry_count > 0 else StepStatus.SUCCESS
                logger.info("[RETRY] Step %d finished with %s after %d retries", step.ordinal, status.value, retry_count)
                return StepAttempt(
                    record=StepRecord(
                        step=step.ordinal,
                        instruction=step.instruction,
                        status=status,
                        retry_count=retry_count,
                        detail=outcome.detail,
                        artifact=outcome.artifact,
                    )
                )

            if isinstance(outcome, Fatal):
                handle.mark_disconnected()
                logger.error("[RETRY] Step %d lost the session: %s", step.ordinal, outcome.reason)
                return StepAttempt(
                    record=StepRecord(
                        step=step.ordinal,
                        instruction=step.instruction,
                        status=StepStatus.FAILED,
                        retry_count=retry_count,
                        detail=f"FAILED: {SESSION_DISCONNECTED} - {outcome.reason}",
                    ),
                    session_lost=True,
                )

            if not isinstance(outcome, Retryable):
                raise TypeError(f"Unexpected step outcome {type(outcome).__name__} for step {step.ordinal}")
            retry_count += 1
            if retry_count <= max_retries:
                logger.info(
                    "[RETRY] Retrying step %d in %.1fs (%d/%d): %s",
                    step.ordinal, self.backoff_seconds, retry_count, max_retries, outcome.reason,
                )
                if self.backoff_seconds:
                    await self._sleep(self.backoff_seconds)
                continue

            logger.warning("[RETRY] Step %d failed after %d attempts: %s", step.ordinal, retry_count, outcome.reason)
            return StepAttempt(
                record=StepRecord(
                    step=step.ordinal,
                    instruction=step.instruction,
                    status=StepStatus.FAILED,
                    retry_count=retry_count,
                    detail=f"FAILED: {outcome.reason} (Max retries exceeded)",
                )
            )
