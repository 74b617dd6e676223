# status: complete

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import List, Optional

from google import genai

from utils.config import Config
from utils.logger import get_logger
from utils.retry_handler import RetryHandler

from .models import StepRecord, StepStatus, Task, VerificationResult

logger = get_logger(__name__)


class TextCompletion(ABC):
    """Single-prompt text generation capability used by the planner, narrator and research loop."""

    @abstractmethod
    async def complete(self, prompt: str) -> str:
        raise NotImplementedError


class GeminiCompletion(TextCompletion):
    """TextCompletion backed by the google-genai async client."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        retry_handler: Optional[RetryHandler] = None,
        client=None,
    ):
        self.api_key = api_key or Config.get_gemini_api_key()
        self.model = model or Config.get_planner_model()
        self.retry_handler = retry_handler or RetryHandler(max_retries=Config.get_llm_max_retries())
        self.client = client

    def is_available(self) -> bool:
        return self.client is not None or bool(self.api_key)

    def _get_client(self):
        if self.client is None:
            if not self.api_key:
                raise RuntimeError("GEMINI_API_KEY is not configured")
            self.client = genai.Client(api_key=self.api_key)
            logger.info("Gemini client initialized for model %s", self.model)
        return self.client

    async def complete(self, prompt: str) -> str:
        client = self._get_client()

        async def _call():
            return await client.aio.models.generate_content(model=self.model, contents=prompt)

        response = await self.retry_handler.run_async(_call, label=f"gemini:{self.model}")
        text = getattr(response, "text", None) or ""
        if not text.strip():
            logger.warning("Received empty response from Gemini model %s", self.model)
        return text


class Narrator:
    """Writes the human-readable summary of a finished run."""

    def __init__(self, completion: Optional[TextCompletion], timeout_ms: Optional[int] = None):
        self._completion = completion
        self.timeout_ms = Config.get_narration_timeout_ms() if timeout_ms is None else timeout_ms

    @staticmethod
    def build_prompt(task: Task, log: List[StepRecord], verification: VerificationResult) -> str:
        successful = sum(1 for record in log if record.status != StepStatus.FAILED)
        return (
            "Summarize the result of this browser automation run for the user in a few sentences.\n\n"
            f"Task: {task.goal}\n"
            f"Executed steps: {len(log)}\n"
            f"Successful steps: {successful}\n"
            f"Verification score: {verification.overall_score}/100\n\n"
            "Mention what was achieved, what failed, and anything the user should check manually."
        )

    @staticmethod
    def fallback(task: Task, log: List[StepRecord], verification: VerificationResult) -> str:
        successful = sum(1 for record in log if record.status != StepStatus.FAILED)
        return (
            f"Browser automation for \"{task.goal}\" finished: {successful} of {len(log)} steps succeeded "
            f"(verification score {verification.overall_score}/100)."
        )

    async def narrate(self, task: Task, log: List[StepRecord], verification: VerificationResult) -> str:
        if self._completion is None:
            return self.fallback(task, log, verification)
        try:
            text = await asyncio.wait_for(
                self._completion.complete(self.build_prompt(task, log, verification)),
                self.timeout_ms / 1000,
            )
        except Exception as e:
            logger.warning(f"[RUN] Narrator failed, using fallback summary: {e}")
            return self.fallback(task, log, verification)
        if not text or not text.strip():
            logger.warning("[RUN] Narrator returned empty text, using fallback summary")
            return self.fallback(task, log, verification)
        return text.strip()
