# status: complete

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Optional

from utils.config import Config
from utils.logger import get_logger

from .artifacts import ArtifactStore
from .driver import BrowserDriver, is_fatal_error
from .models import Artifact, Fatal, Outcome, PlannedStep, Retryable, SessionHandle, StepKind, Succeeded
from .planner import parse_wait_seconds

logger = get_logger(__name__)


async def collect_or_ignore(awaitable: Awaitable[Any], label: str) -> Optional[Any]:
    """Await a best-effort collector; any failure yields None."""
    try:
        return await awaitable
    except Exception as e:
        logger.debug("[EXECUTOR] Collector %s failed: %s", label, e)
        return None


class StepExecutor:
    """Executes one planned step against a live driver and classifies the outcome."""

    def __init__(
        self,
        artifact_store: Optional[ArtifactStore] = None,
        settle_seconds: Optional[float] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.artifacts = artifact_store or ArtifactStore()
        self.settle_seconds = Config.get_action_settle_seconds() if settle_seconds is None else settle_seconds
        self._sleep = sleep
        self.action_timeout_ms = Config.get_action_timeout_ms()
        self.observe_timeout_ms = Config.get_observe_timeout_ms()
        self.extract_timeout_ms = Config.get_extract_timeout_ms()
        self.screenshot_timeout_ms = Config.get_screenshot_timeout_ms()

    async def execute(self, handle: SessionHandle, driver: BrowserDriver, step: PlannedStep) -> Outcome:
        logger.info("[EXECUTOR] Step %d (%s) on %s: %s", step.ordinal, step.kind.value, handle.session_id, step.instruction)
        if step.kind == StepKind.WAIT:
            return await self._wait(step)
        if step.kind == StepKind.VERIFICATION:
            return await self._verify(driver, step)
        return await self._act(driver, step)

    async def _wait(self, step: PlannedStep) -> Outcome:
        seconds = parse_wait_seconds(step.instruction)
        logger.info("[EXECUTOR] Waiting %d seconds", seconds)
        await self._sleep(seconds)
        return Succeeded(detail=f"SUCCESS: Waited for {seconds} seconds")

    async def _capture_screenshot(self, driver: BrowserDriver, label: str) -> str:
        data = await asyncio.wait_for(
            driver.screenshot(self.screenshot_timeout_ms),
            self.screenshot_timeout_ms / 1000,
        )
        return await asyncio.to_thread(self.artifacts.save_screenshot, data, label)

    async def _verify(self, driver: BrowserDriver, step: PlannedStep) -> Outcome:
        try:
            observation = await asyncio.wait_for(
                driver.observe(step.instruction),
                self.observe_timeout_ms / 1000,
            )
            return Succeeded(
                detail=f"SUCCESS: Page state verified - {step.instruction}",
                artifact=Artifact(extracted_data=observation),
            )
        except Exception as observe_error:
            if is_fatal_error(observe_error):
                return Fatal(str(observe_error))
            logger.warning("[EXECUTOR] Observe failed, falling back to screenshot: %s", observe_error)

        try:
            path = await self._capture_screenshot(driver, f"verify_{step.instruction}")
        except Exception as screenshot_error:
            if is_fatal_error(screenshot_error):
                return Fatal(str(screenshot_error))
            logger.warning("[EXECUTOR] Verification screenshot failed: %s", screenshot_error)
            return Retryable("Failed to verify page state")

        return Succeeded(
            detail=f"SUCCESS: Verification screenshot captured. Screenshot saved to: {path}",
            artifact=Artifact(screenshot=path),
        )

    async def _act(self, driver: BrowserDriver, step: PlannedStep) -> Outcome:
        if not await collect_or_ignore(driver.is_alive(), "liveness"):
            return Fatal("Page is not available")

        try:
            await asyncio.wait_for(
                driver.act(step.instruction, self.action_timeout_ms),
                self.action_timeout_ms / 1000,
            )
        except asyncio.TimeoutError:
            return Retryable(f"Action timed out after {self.action_timeout_ms}ms")
        except Exception as e:
            if is_fatal_error(e):
                return Fatal(str(e))
            return Retryable(str(e))

        if self.settle_seconds:
            await self._sleep(self.settle_seconds)

        title = await collect_or_ignore(driver.title(), "title")
        extracted = await collect_or_ignore(
            asyncio.wait_for(
                driver.extract(Config.get_extraction_instruction(), self.extract_timeout_ms),
                self.extract_timeout_ms / 1000,
            ),
            "extract",
        )
        screenshot = await collect_or_ignore(self._capture_screenshot(driver, step.instruction), "screenshot")

        detail = f"SUCCESS: Action executed - {step.instruction}"
        if title:
            detail += f" Page title: {title}."
        if extracted is not None:
            detail += " Data extracted successfully."
        if screenshot:
            detail += f" Screenshot saved to: {screenshot}"

        artifact = None
        if screenshot or extracted is not None:
            artifact = Artifact(screenshot=screenshot, extracted_data=extracted)
        return Succeeded(detail=detail, artifact=artifact)
