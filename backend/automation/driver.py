# status: complete

"""Remote browser driver interface and the Stagehand/Browserbase adapter."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from utils.config import Config
from utils.logger import get_logger

logger = get_logger(__name__)

_FATAL_MARKERS = (
    "target page, context or browser has been closed",
    "page has been closed",
    "page is not available",
    "browser has been closed",
    "browser has disconnected",
    "context has been closed",
    "session not found",
)


def is_fatal_error(error: Any) -> bool:
    """True when the error means the remote session itself is unusable."""
    message = str(error).lower()
    return any(marker in message for marker in _FATAL_MARKERS)


class BrowserDriver(ABC):
    """Narrow async surface the executor needs from a remote browser."""

    @abstractmethod
    async def navigate(self, url: str, timeout_ms: int) -> None:
        raise NotImplementedError

    @abstractmethod
    async def act(self, instruction: str, timeout_ms: int) -> Any:
        raise NotImplementedError

    @abstractmethod
    async def observe(self, instruction: str) -> Any:
        raise NotImplementedError

    @abstractmethod
    async def extract(self, instruction: str, timeout_ms: int) -> Any:
        raise NotImplementedError

    @abstractmethod
    async def screenshot(self, timeout_ms: int) -> bytes:
        raise NotImplementedError

    @abstractmethod
    async def title(self) -> str:
        raise NotImplementedError

    @abstractmethod
    async def is_alive(self) -> bool:
        raise NotImplementedError

    @abstractmethod
    async def close(self) -> None:
        raise NotImplementedError


def _to_plain(value: Any) -> Any:
    """Stagehand returns pydantic models; callers only want JSON-friendly data."""
    if hasattr(value, "model_dump"):
        return value.model_dump()
    if isinstance(value, list):
        return [_to_plain(item) for item in value]
    return value


class StagehandDriver(BrowserDriver):
    """BrowserDriver on top of a Stagehand client attached to a Browserbase session."""

    def __init__(self, stagehand, session_id: str):
        self._stagehand = stagehand
        self.session_id = session_id

    @classmethod
    async def connect(cls, session_id: str) -> "StagehandDriver":
        from stagehand import Stagehand, StagehandConfig

        config = StagehandConfig(
            env="BROWSERBASE",
            api_key=Config.get_browserbase_api_key(),
            project_id=Config.get_browserbase_project_id(),
            browserbase_session_id=session_id,
            model_name=Config.get_driver_model(),
            model_api_key=Config.get_gemini_api_key(),
        )
        stagehand = Stagehand(config)
        await stagehand.init()
        logger.info("[SESSION] Stagehand attached to session %s", session_id)
        return cls(stagehand, session_id)

    @property
    def _page(self):
        page = self._stagehand.page
        if page is None:
            raise RuntimeError("Page is not available")
        return page

    async def navigate(self, url: str, timeout_ms: int) -> None:
        try:
            await self._page.goto(url, timeout=timeout_ms)
        except PlaywrightTimeoutError as e:
            raise asyncio.TimeoutError(str(e)) from e

    async def act(self, instruction: str, timeout_ms: int) -> Any:
        result = await asyncio.wait_for(self._page.act(instruction), timeout_ms / 1000)
        if getattr(result, "success", True) is False:
            raise RuntimeError(getattr(result, "message", None) or f"Action failed: {instruction}")
        return _to_plain(result)

    async def observe(self, instruction: str) -> Any:
        return _to_plain(await self._page.observe(instruction))

    async def extract(self, instruction: str, timeout_ms: int) -> Any:
        result = await asyncio.wait_for(self._page.extract(instruction), timeout_ms / 1000)
        return _to_plain(result)

    async def screenshot(self, timeout_ms: int) -> bytes:
        try:
            return await self._page.screenshot(full_page=True, timeout=timeout_ms)
        except PlaywrightTimeoutError as e:
            raise asyncio.TimeoutError(str(e)) from e

    async def title(self) -> str:
        return await self._page.title()

    async def is_alive(self) -> bool:
        try:
            page = self._page
            if page.is_closed():
                return False
            state = await asyncio.wait_for(
                page.evaluate("() => document.readyState"),
                Config.get_liveness_timeout_ms() / 1000,
            )
            return bool(state)
        except (PlaywrightError, RuntimeError, asyncio.TimeoutError) as e:
            logger.debug("[SESSION] Liveness probe failed for %s: %s", self.session_id, e)
            return False

    async def close(self) -> None:
        await self._stagehand.close()
