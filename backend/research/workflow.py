# status: complete

"""
Deep research loop: generate queries, search, summarise, look for knowledge gaps,
and search again until nothing is missing or the iteration budget is spent.
"""

from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from automation.errors import ResearchError
from automation.llm import TextCompletion
from utils.config import Config
from utils.logger import get_logger

from .search import BraveSearchClient, SearchResult

logger = get_logger(__name__)

NO_INFORMATION_SUMMARY = "No relevant information was found for this query."
SUMMARY_FAILED = "A summary could not be generated for this query."
ANSWER_FAILED = "Sorry, an answer could not be generated from the research results. Please try again."

STOP_NO_GAPS = "no_gaps"
STOP_ITERATION_LIMIT = "iteration_limit"

_LIST_MARKER = re.compile(r"^\s*(?:[-*•]|\d+\s*[.):])\s*")


def parse_query_lines(text: str, limit: int) -> List[str]:
    """One query per line, list markers and wrapping quotes removed."""
    queries: List[str] = []
    for line in (text or "").splitlines():
        query = _LIST_MARKER.sub("", line).strip().strip('"').strip("'").strip()
        if not query or query.upper() == "NONE":
            continue
        queries.append(query)
        if len(queries) >= limit:
            break
    return queries


@dataclass
class QueryFinding:
    query: str
    iteration: int
    results: List[SearchResult] = field(default_factory=list)
    summary: str = ""
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "query": self.query,
            "iteration": self.iteration,
            "results": [result.to_dict() for result in self.results],
            "summary": self.summary,
            "error": self.error,
        }


@dataclass
class ResearchResult:
    answer: str
    sources: List[SearchResult]
    queries: List[str]
    iterations: int
    knowledge_gaps: List[str]
    stop_reason: str
    findings: List[QueryFinding] = field(default_factory=list)

    @property
    def total_sources(self) -> int:
        return len(self.sources)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "answer": self.answer,
            "sources": [{"title": source.title, "url": source.url} for source in self.sources],
            "searchQueries": list(self.queries),
            "iterations": self.iterations,
            "knowledgeGaps": list(self.knowledge_gaps),
            "stopReason": self.stop_reason,
            "totalSources": self.total_sources,
            "findings": [finding.to_dict() for finding in self.findings],
        }


class ResearchWorkflow:
    """Bounded search -> evaluate -> re-search loop."""

    def __init__(
        self,
        completion: TextCompletion,
        search_client: Optional[BraveSearchClient] = None,
        spacing_seconds: Optional[float] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self._completion = completion
        self._search = search_client or BraveSearchClient()
        self.spacing_seconds = Config.get_research_search_spacing() if spacing_seconds is None else spacing_seconds
        self._sleep = sleep
        self._searched_once = False

    @property
    def search_client(self) -> BraveSearchClient:
        return self._search

    # ------------------------------------------------------------------ #
    # LLM steps
    # ------------------------------------------------------------------ #
    async def generate_queries(self, question: str, max_queries: int) -> List[str]:
        prompt = (
            f"Generate up to {max_queries} distinct web search queries that together answer the question below.\n"
            "Output one query per line with no numbering or commentary.\n\n"
            f"Question: {question}"
        )
        try:
            queries = parse_query_lines(await self._completion.complete(prompt), max_queries)
        except Exception as e:
            logger.warning(f"[RESEARCH] Query generation failed, searching the question directly: {e}")
            return [question]
        return queries or [question]

    async def summarize(self, question: str, finding: QueryFinding) -> str:
        if finding.error or not finding.results:
            return NO_INFORMATION_SUMMARY
        listing = "\n".join(
            f"- {result.title} ({result.url}): {result.description}" for result in finding.results
        )
        prompt = (
            f"Research question: {question}\n"
            f"Search query: {finding.query}\n\n"
            f"Search results:\n{listing}\n\n"
            "Summarize the information in these results that is relevant to the research question."
        )
        try:
            summary = await self._completion.complete(prompt)
        except Exception as e:
            logger.warning(f"[RESEARCH] Summary failed for '{finding.query}': {e}")
            return SUMMARY_FAILED
        return summary.strip() or NO_INFORMATION_SUMMARY

    async def find_gaps(self, question: str, findings: List[QueryFinding], limit: int) -> List[str]:
        notes = "\n\n".join(f"Query: {finding.query}\nSummary: {finding.summary}" for finding in findings)
        prompt = (
            f"Research question: {question}\n\n"
            f"Findings so far:\n{notes}\n\n"
            f"If important knowledge gaps remain, list up to {limit} follow-up search queries, one per line. "
            "If the findings are sufficient, reply with exactly NONE."
        )
        try:
            return parse_query_lines(await self._completion.complete(prompt), limit)
        except Exception as e:
            logger.warning(f"[RESEARCH] Gap evaluation failed, stopping the loop: {e}")
            return []

    async def write_answer(self, question: str, findings: List[QueryFinding], sources: List[SearchResult]) -> str:
        notes = "\n\n".join(f"Query: {finding.query}\nSummary: {finding.summary}" for finding in findings)
        references = "\n".join(f"[{index}] {source.title} - {source.url}" for index, source in enumerate(sources, start=1))
        prompt = (
            f"Answer the research question using the findings below. Cite sources by their [number].\n\n"
            f"Question: {question}\n\nFindings:\n{notes}\n\nSources:\n{references}"
        )
        try:
            answer = await self._completion.complete(prompt)
        except Exception as e:
            logger.error(f"[RESEARCH] Final answer generation failed: {e}")
            return ANSWER_FAILED
        return answer.strip() or ANSWER_FAILED

    # ------------------------------------------------------------------ #
    # Search
    # ------------------------------------------------------------------ #
    async def _search_one(self, query: str, count: int, iteration: int) -> QueryFinding:
        if self._searched_once and self.spacing_seconds:
            await self._sleep(self.spacing_seconds)
        self._searched_once = True

        finding = QueryFinding(query=query, iteration=iteration)
        try:
            finding.results = await asyncio.to_thread(self._search.search, query, count)
            logger.info(f"[RESEARCH] '{query}' returned {len(finding.results)} results")
        except Exception as e:
            logger.warning(f"[RESEARCH] Search failed for '{query}': {e}")
            finding.error = str(e)
        return finding

    @staticmethod
    def unique_sources(findings: List[QueryFinding]) -> List[SearchResult]:
        seen = set()
        sources: List[SearchResult] = []
        for finding in findings:
            for result in finding.results:
                if result.url in seen:
                    continue
                seen.add(result.url)
                sources.append(result)
        return sources

    async def run(
        self,
        question: str,
        max_queries: Optional[int] = None,
        results_per_query: Optional[int] = None,
        max_iterations: Optional[int] = None,
    ) -> ResearchResult:
        if not isinstance(question, str) or not question.strip():
            raise ResearchError("invalid_request", "A research question is required")
        question = question.strip()
        max_queries = max_queries or Config.get_research_max_queries()
        results_per_query = results_per_query or Config.get_research_results_per_query()
        max_iterations = max_iterations or Config.get_research_max_iterations()
        if max_queries < 1 or results_per_query < 1 or max_iterations < 1:
            raise ResearchError("invalid_request", "Research limits must be positive")

        self._searched_once = False
        logger.info(f"[RESEARCH] Starting: {question[:120]} (queries={max_queries}, iterations={max_iterations})")

        pending = await self.generate_queries(question, max_queries)
        asked: List[str] = []
        gaps: List[str] = []
        findings: List[QueryFinding] = []
        iterations = 0
        stop_reason = STOP_ITERATION_LIMIT

        while pending:
            iterations += 1
            for query in pending:
                finding = await self._search_one(query, results_per_query, iterations)
                finding.summary = await self.summarize(question, finding)
                findings.append(finding)
            asked.extend(pending)

            if iterations >= max_iterations:
                stop_reason = STOP_ITERATION_LIMIT
                break

            asked_keys = {query.lower() for query in asked}
            pending = [query for query in await self.find_gaps(question, findings, max_queries)
                       if query.lower() not in asked_keys]
            if not pending:
                stop_reason = STOP_NO_GAPS
                break
            gaps.extend(pending)
            logger.info(f"[RESEARCH] Iteration {iterations} found {len(pending)} knowledge gaps")

        sources = self.unique_sources(findings)
        answer = await self.write_answer(question, findings, sources)
        logger.info(f"[RESEARCH] Finished after {iterations} iterations ({stop_reason}), {len(sources)} sources")
        return ResearchResult(
            answer=answer,
            sources=sources,
            queries=asked,
            iterations=iterations,
            knowledge_gaps=gaps,
            stop_reason=stop_reason,
            findings=findings,
        )
