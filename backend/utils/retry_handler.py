# status: complete

"""
Retry policy for LLM calls (planner, narrator, research prompts).

Rate limit errors (429, RESOURCE_EXHAUSTED, quota exceeded) honour the delay the
provider reports when there is one; overload errors (503, UNAVAILABLE,
overloaded) use exponential backoff. Anything else is not retried here: browser
step retries are owned by automation.retry.RetryController.
"""

import asyncio
import re
from typing import Any, Awaitable, Callable, Optional, Tuple

from utils.logger import get_logger

logger = get_logger(__name__)


class RetryHandler:
    """Decides whether an LLM error is worth another attempt and how long to wait."""

    def __init__(self, max_retries: int = 3):
        self.max_retries = max_retries
        self.overload_delays = [1, 2, 4, 8, 16]
        self.rate_limit_delays = [2, 5, 20, 40, 60]
        self.tolerance_buffer = 1.5

    def classify(self, error_message: str) -> Tuple[Optional[str], Optional[float], bool]:
        """
        Classify an error message.

        Returns:
            tuple: (retry_reason or None, api_provided_delay, is_rate_limit)
        """
        error_lower = error_message.lower()

        if ("429" in error_message or "RESOURCE_EXHAUSTED" in error_message or
                "exceeded your current quota" in error_lower or
                "quota exceeded" in error_lower):
            return "Rate limit exceeded", self._extract_api_delay(error_message), True

        if ("overloaded" in error_lower or "503" in error_message or
                "UNAVAILABLE" in error_message or "experiencing high traffic" in error_lower):
            return "Model overloaded", None, False

        return None, None, False

    def _extract_api_delay(self, error_message: str) -> Optional[float]:
        """Parse "retry in 29.6s" / "retry in 92ms" hints into seconds."""
        match = re.search(r"retry in ([\d.]+)(m?s)", error_message, re.IGNORECASE)
        if not match:
            return None
        value = float(match.group(1))
        return value / 1000.0 if match.group(2).lower() == "ms" else value

    def calculate_delay(self, attempt: int, is_rate_limit: bool, api_provided_delay: Optional[float]) -> float:
        """Delay in seconds before the given 1-indexed attempt."""
        if is_rate_limit:
            if api_provided_delay is not None:
                return api_provided_delay + self.tolerance_buffer
            return self.rate_limit_delays[min(attempt - 1, len(self.rate_limit_delays) - 1)]
        return self.overload_delays[min(attempt - 1, len(self.overload_delays) - 1)]

    def should_retry(self, error_message: str, attempt: int, label: str = "llm") -> Tuple[bool, Optional[float]]:
        """
        Args:
            error_message: The error message to check
            attempt: Attempts already retried (0-indexed)
            label: Short name of the caller for log lines

        Returns:
            tuple: (should_retry, delay_seconds) - delay is None if should not retry
        """
        reason, api_delay, is_rate_limit = self.classify(error_message)
        if reason is None:
            return False, None

        if attempt >= self.max_retries:
            logger.warning(f"[RETRY] {label}: {reason} persisted after {self.max_retries} attempts. Giving up.")
            return False, None

        delay = self.calculate_delay(attempt + 1, is_rate_limit, api_delay)
        logger.warning(f"[RETRY] {label}: {reason}, retrying in {delay:.1f}s (attempt {attempt + 1}/{self.max_retries})")
        return True, delay

    async def run_async(
        self,
        call: Callable[[], Awaitable[Any]],
        label: str = "llm",
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> Any:
        """Await ``call()`` until it succeeds or the error is not retryable."""
        attempt = 0
        while True:
            try:
                return await call()
            except Exception as e:
                retry, delay = self.should_retry(str(e), attempt, label)
                if not retry:
                    raise
                attempt += 1
                await sleep(delay)
