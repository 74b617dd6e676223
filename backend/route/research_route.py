# status: complete

from __future__ import annotations

import asyncio
from typing import Any, Callable, Dict, Optional

from flask import Blueprint, jsonify, request

from automation.errors import ResearchError
from automation.llm import GeminiCompletion
from research.search import BraveSearchClient
from research.workflow import ResearchWorkflow
from utils.logger import get_logger

logger = get_logger(__name__)

research_bp = Blueprint("deep_research", __name__, url_prefix="/api/deep-research")

_workflow_factory: Optional[Callable[[], ResearchWorkflow]] = None


def _default_workflow() -> ResearchWorkflow:
    return ResearchWorkflow(GeminiCompletion(), BraveSearchClient())


def set_workflow_factory(factory: Optional[Callable[[], ResearchWorkflow]]) -> None:
    global _workflow_factory
    _workflow_factory = factory


def _optional_int(data: Dict[str, Any], key: str) -> Optional[int]:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ResearchError("invalid_request", f"{key} must be a positive integer")
    return value


def _fallback_result(workflow: ResearchWorkflow, message: str, error: Exception) -> Dict[str, Any]:
    """Plain search listing used when the full research loop cannot complete."""
    results = workflow.search_client.search(message, 5)
    listing = "\n".join(f"- {result.title}: {result.description}" for result in results)
    return {
        "answer": f"Search results for: {message}\n\n{listing or 'No search results were found.'}",
        "sources": [{"title": result.title, "url": result.url} for result in results],
        "searchQueries": [message],
        "iterations": 1,
        "knowledgeGaps": [f"Research workflow failed, showing plain search results ({error})"],
        "stopReason": "fallback",
        "totalSources": len(results),
        "findings": [],
    }


@research_bp.route("", methods=["POST"])
@research_bp.route("/", methods=["POST"])
def deep_research():
    """Run the bounded deep research loop for a question"""
    data = request.get_json(silent=True) or {}
    message = data.get("message")
    if not isinstance(message, str) or not message.strip():
        return jsonify({"success": False, "error": "message is required"}), 400

    try:
        max_iterations = _optional_int(data, "maxIterations")
        max_queries = _optional_int(data, "queriesPerIteration")
        results_per_query = _optional_int(data, "resultsPerQuery")
    except ResearchError as e:
        return jsonify({"success": False, "error": str(e), "code": e.code}), 400

    workflow = (_workflow_factory or _default_workflow)()
    logger.info(f"[RESEARCH] POST /api/deep-research message='{message[:80]}'")
    try:
        result = asyncio.run(
            workflow.run(
                message,
                max_queries=max_queries,
                results_per_query=results_per_query,
                max_iterations=max_iterations,
            )
        )
        return jsonify({"success": True, "result": result.to_dict()})
    except Exception as workflow_error:
        logger.error(f"[RESEARCH] Workflow failed: {workflow_error}", exc_info=True)
        try:
            return jsonify({"success": True, "result": _fallback_result(workflow, message, workflow_error)})
        except Exception as fallback_error:
            logger.error(f"[RESEARCH] Fallback search also failed: {fallback_error}")
            return jsonify({
                "success": False,
                "error": "Research workflow failed",
                "details": str(workflow_error),
            }), 500
