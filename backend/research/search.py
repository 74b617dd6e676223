# status: complete

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import requests

from automation.errors import ResearchError
from utils.config import Config
from utils.logger import get_logger

logger = get_logger(__name__)

MAX_RESULTS_PER_QUERY = 20


@dataclass(frozen=True)
class SearchResult:
    title: str
    url: str
    description: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"title": self.title, "url": self.url, "description": self.description}


class BraveSearchClient:
    """Brave Web Search API client returning the top organic results."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        http: Optional[requests.Session] = None,
        max_attempts: int = 3,
        retry_delay: float = 1.0,
        request_timeout: float = 30.0,
        sleep: Callable[[float], Any] = time.sleep,
    ):
        self.api_key = api_key or Config.get_brave_api_key()
        self.http = http or requests.Session()
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self.request_timeout = request_timeout
        self._sleep = sleep

    def is_available(self) -> bool:
        return bool(self.api_key)

    def search(self, query: str, count: int = 10) -> List[SearchResult]:
        if not self.api_key:
            raise ResearchError("search_not_configured", "BRAVE_API_KEY environment variable is not set")
        count = max(1, min(count, MAX_RESULTS_PER_QUERY))

        for attempt in range(1, self.max_attempts + 1):
            response = self.http.get(
                Config.get_brave_search_url(),
                params={"q": query, "count": count},
                headers={
                    "Accept": "application/json",
                    "Accept-Encoding": "gzip",
                    "X-Subscription-Token": self.api_key,
                },
                timeout=self.request_timeout,
            )
            if response.status_code == 429:
                if attempt >= self.max_attempts:
                    break
                delay = self.retry_delay * attempt
                logger.warning(f"[RESEARCH] Brave rate limit hit, retrying in {delay:.1f}s ({attempt}/{self.max_attempts})")
                self._sleep(delay)
                continue
            response.raise_for_status()
            results = (response.json().get("web") or {}).get("results") or []
            return [
                SearchResult(
                    title=item.get("title", ""),
                    url=item.get("url", ""),
                    description=item.get("description") or "",
                )
                for item in results[:count]
                if item.get("url")
            ]

        raise ResearchError("search_rate_limited", "Brave Search API rate limit exceeded after all retries")
