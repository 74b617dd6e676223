# status: complete

from __future__ import annotations

from typing import Optional

from flask import Blueprint, jsonify, request

from automation.errors import AutomationError
from automation.service import AutomationService
from utils.logger import get_logger

logger = get_logger(__name__)

automation_bp = Blueprint("browser_automation", __name__, url_prefix="/api/browser-automation")

_service: Optional[AutomationService] = None


def get_automation_service() -> AutomationService:
    global _service
    if _service is None:
        _service = AutomationService()
    return _service


def set_automation_service(service: Optional[AutomationService]) -> None:
    global _service
    _service = service


@automation_bp.route("/run", methods=["POST"])
def run_task():
    """Run a browser automation task to completion and return its RunResult"""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"success": False, "error": "JSON body is required"}), 400

    run_id = data.get("runId")
    try:
        logger.info(f"[RUN] POST /run task='{str(data.get('task', ''))[:80]}' run_id={run_id}")
        result = get_automation_service().run_task(data, run_id=run_id)
        return jsonify(result)
    except ValueError as e:
        return jsonify({"success": False, "error": str(e)}), 400
    except Exception as e:
        logger.error(f"[RUN] Error running browser automation: {str(e)}", exc_info=True)
        return jsonify({"success": False, "error": str(e)}), 500


@automation_bp.route("/sessions", methods=["POST"])
def create_session():
    """Create a remote browser session and return its live view immediately"""
    try:
        session = get_automation_service().create_session()
        return jsonify({"success": True, **session})
    except AutomationError as e:
        logger.error(f"[SESSION] Error creating session: {str(e)}")
        return jsonify({"success": False, "error": str(e), "code": e.code}), 503
    except Exception as e:
        logger.error(f"[SESSION] Error creating session: {str(e)}", exc_info=True)
        return jsonify({"success": False, "error": str(e)}), 500


@automation_bp.route("/runs/<run_id>/cancel", methods=["POST"])
def cancel_run(run_id: str):
    """Request cooperative cancellation of an in-flight run"""
    try:
        cancelled = get_automation_service().cancel_run(run_id)
        return jsonify({"success": True, "cancelled": cancelled})
    except Exception as e:
        logger.error(f"[CANCEL] Error cancelling run {run_id}: {str(e)}")
        return jsonify({"success": False, "error": str(e)}), 500
