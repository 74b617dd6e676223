# status: complete

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from utils.logger import get_logger

load_dotenv()

logger = get_logger(__name__)


class Config:
    """Configuration class for Taskpilot application settings."""

    PLANNER_PROVIDER = "gemini"
    PLANNER_MODEL = "gemini-2.5-flash"
    DRIVER_MODEL = "google/gemini-2.0-flash"

    BROWSERBASE_API_URL = "https://api.browserbase.com/v1"
    BROWSERBASE_SESSION_URL = "https://www.browserbase.com/sessions"
    SESSION_KEEP_ALIVE_TIMEOUT = 600
    SESSION_REQUEST_TIMEOUT = 30.0

    # Planner
    MAX_PLANNED_STEPS = 20
    PLANNER_INSERT_NAVIGATION_WAITS = False

    # Task defaults
    DEFAULT_TASK_TIMEOUT_MS = 120000
    DEFAULT_MAX_RETRIES = 3
    DEFAULT_VERIFICATION_LEVEL = "standard"

    # Step execution (milliseconds unless noted)
    ACTION_TIMEOUT_MS = 30000
    OBSERVE_TIMEOUT_MS = 30000
    EXTRACT_TIMEOUT_MS = 15000
    SCREENSHOT_TIMEOUT_MS = 10000
    NAVIGATION_TIMEOUT_MS = 60000
    LIVENESS_TIMEOUT_MS = 5000
    NARRATION_TIMEOUT_MS = 30000
    ACTION_SETTLE_SECONDS = 1.0
    DEFAULT_WAIT_SECONDS = 2
    EXTRACTION_INSTRUCTION = "Extract any relevant data from this page"

    # Retry / circuit breaker
    RETRY_BACKOFF_SECONDS = 1.0
    CIRCUIT_BREAKER_WINDOW = 3
    CIRCUIT_BREAKER_THRESHOLD = 2

    # Verification scoring
    SCORE_STRICT_MULTIPLIER = 0.9
    SCORE_STRICT_CAP = 95.0
    SCORE_BASIC_MULTIPLIER = 1.1
    SCORE_BASIC_CAP = 100.0
    # Floor is max(score, floor) whenever a step succeeded. Older clients applied it only below 20,
    # so 2/10 at standard level now scores 26 rather than 20.
    SCORE_FLOOR_BASE = 20.0
    SCORE_FLOOR_SPAN = 30.0
    SCORE_FLOOR_CAP = 60.0
    RETRY_EFFICIENCY_RATIO = 0.5
    ERROR_TOLERANCE_RATIO = 0.3
    SESSION_STABILITY_RATIO = 0.5

    # LLM calls
    LLM_MAX_RETRIES = 3

    # Deep research
    RESEARCH_MAX_QUERIES = 3
    RESEARCH_RESULTS_PER_QUERY = 5
    RESEARCH_MAX_ITERATIONS = 2
    RESEARCH_SEARCH_SPACING_SECONDS = 1.1
    BRAVE_SEARCH_URL = "https://api.search.brave.com/res/v1/web/search"

    ARTIFACT_DIR = "public"

    @classmethod
    def _env_int(cls, env_key: str, default: int) -> int:
        raw = os.getenv(env_key)
        if raw is None or raw == "":
            return default
        try:
            return int(raw)
        except ValueError:
            logger.warning("Ignoring non-integer value for %s: %r", env_key, raw)
            return default

    @classmethod
    def _env_float(cls, env_key: str, default: float) -> float:
        raw = os.getenv(env_key)
        if raw is None or raw == "":
            return default
        try:
            return float(raw)
        except ValueError:
            logger.warning("Ignoring non-numeric value for %s: %r", env_key, raw)
            return default

    @classmethod
    def _env_bool(cls, env_key: str, default: bool) -> bool:
        raw = os.getenv(env_key)
        if raw is None or raw == "":
            return default
        return raw.strip().lower() in {"1", "true", "yes", "on"}

    # ------------------------------------------------------------------ #
    # Credentials
    # ------------------------------------------------------------------ #
    @classmethod
    def get_browserbase_api_key(cls) -> Optional[str]:
        return os.getenv("BROWSERBASE_API_KEY")

    @classmethod
    def get_browserbase_project_id(cls) -> Optional[str]:
        return os.getenv("BROWSERBASE_PROJECT_ID")

    @classmethod
    def get_gemini_api_key(cls) -> Optional[str]:
        """Gemini key used by both the planner and the remote driver."""
        return os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_GENERATIVE_AI_API_KEY")

    @classmethod
    def get_brave_api_key(cls) -> Optional[str]:
        return os.getenv("BRAVE_API_KEY")

    # ------------------------------------------------------------------ #
    # Models and endpoints
    # ------------------------------------------------------------------ #
    @classmethod
    def get_planner_model(cls) -> str:
        return os.getenv("TASKPILOT_PLANNER_MODEL", cls.PLANNER_MODEL)

    @classmethod
    def get_driver_model(cls) -> str:
        return os.getenv("TASKPILOT_DRIVER_MODEL", cls.DRIVER_MODEL)

    @classmethod
    def get_browserbase_api_url(cls) -> str:
        return os.getenv("BROWSERBASE_API_URL", cls.BROWSERBASE_API_URL).rstrip("/")

    @classmethod
    def get_browserbase_session_url(cls) -> str:
        return cls.BROWSERBASE_SESSION_URL

    @classmethod
    def get_session_keep_alive_timeout(cls) -> int:
        """Remote session keep-alive timeout in seconds."""
        return cls._env_int("TASKPILOT_SESSION_TIMEOUT", cls.SESSION_KEEP_ALIVE_TIMEOUT)

    @classmethod
    def get_session_request_timeout(cls) -> float:
        return cls._env_float("TASKPILOT_SESSION_REQUEST_TIMEOUT", cls.SESSION_REQUEST_TIMEOUT)

    # ------------------------------------------------------------------ #
    # Planner and task defaults
    # ------------------------------------------------------------------ #
    @classmethod
    def get_max_planned_steps(cls) -> int:
        return cls._env_int("TASKPILOT_MAX_STEPS", cls.MAX_PLANNED_STEPS)

    @classmethod
    def get_insert_navigation_waits(cls) -> bool:
        return cls._env_bool("TASKPILOT_INSERT_NAVIGATION_WAITS", cls.PLANNER_INSERT_NAVIGATION_WAITS)

    @classmethod
    def get_default_task_timeout_ms(cls) -> int:
        return cls._env_int("TASKPILOT_TASK_TIMEOUT_MS", cls.DEFAULT_TASK_TIMEOUT_MS)

    @classmethod
    def get_default_max_retries(cls) -> int:
        return cls._env_int("TASKPILOT_MAX_RETRIES", cls.DEFAULT_MAX_RETRIES)

    @classmethod
    def get_default_verification_level(cls) -> str:
        return os.getenv("TASKPILOT_VERIFICATION_LEVEL", cls.DEFAULT_VERIFICATION_LEVEL)

    # ------------------------------------------------------------------ #
    # Step execution
    # ------------------------------------------------------------------ #
    @classmethod
    def get_action_timeout_ms(cls) -> int:
        return cls._env_int("TASKPILOT_ACTION_TIMEOUT_MS", cls.ACTION_TIMEOUT_MS)

    @classmethod
    def get_observe_timeout_ms(cls) -> int:
        return cls._env_int("TASKPILOT_OBSERVE_TIMEOUT_MS", cls.OBSERVE_TIMEOUT_MS)

    @classmethod
    def get_extract_timeout_ms(cls) -> int:
        return cls._env_int("TASKPILOT_EXTRACT_TIMEOUT_MS", cls.EXTRACT_TIMEOUT_MS)

    @classmethod
    def get_screenshot_timeout_ms(cls) -> int:
        return cls._env_int("TASKPILOT_SCREENSHOT_TIMEOUT_MS", cls.SCREENSHOT_TIMEOUT_MS)

    @classmethod
    def get_navigation_timeout_ms(cls) -> int:
        return cls._env_int("TASKPILOT_NAVIGATION_TIMEOUT_MS", cls.NAVIGATION_TIMEOUT_MS)

    @classmethod
    def get_liveness_timeout_ms(cls) -> int:
        return cls.LIVENESS_TIMEOUT_MS

    @classmethod
    def get_narration_timeout_ms(cls) -> int:
        return cls._env_int("TASKPILOT_NARRATION_TIMEOUT_MS", cls.NARRATION_TIMEOUT_MS)

    @classmethod
    def get_action_settle_seconds(cls) -> float:
        return cls._env_float("TASKPILOT_ACTION_SETTLE_SECONDS", cls.ACTION_SETTLE_SECONDS)

    @classmethod
    def get_default_wait_seconds(cls) -> int:
        return cls.DEFAULT_WAIT_SECONDS

    @classmethod
    def get_extraction_instruction(cls) -> str:
        return cls.EXTRACTION_INSTRUCTION

    # ------------------------------------------------------------------ #
    # Retry and circuit breaker
    # ------------------------------------------------------------------ #
    @classmethod
    def get_retry_backoff_seconds(cls) -> float:
        return cls._env_float("TASKPILOT_RETRY_BACKOFF_SECONDS", cls.RETRY_BACKOFF_SECONDS)

    @classmethod
    def get_circuit_breaker_window(cls) -> int:
        return cls.CIRCUIT_BREAKER_WINDOW

    @classmethod
    def get_circuit_breaker_threshold(cls) -> int:
        return cls.CIRCUIT_BREAKER_THRESHOLD

    @classmethod
    def get_llm_max_retries(cls) -> int:
        return cls._env_int("TASKPILOT_LLM_MAX_RETRIES", cls.LLM_MAX_RETRIES)

    # ------------------------------------------------------------------ #
    # Research
    # ------------------------------------------------------------------ #
    @classmethod
    def get_research_max_queries(cls) -> int:
        return cls._env_int("TASKPILOT_RESEARCH_MAX_QUERIES", cls.RESEARCH_MAX_QUERIES)

    @classmethod
    def get_research_results_per_query(cls) -> int:
        return cls._env_int("TASKPILOT_RESEARCH_RESULTS_PER_QUERY", cls.RESEARCH_RESULTS_PER_QUERY)

    @classmethod
    def get_research_max_iterations(cls) -> int:
        return cls._env_int("TASKPILOT_RESEARCH_MAX_ITERATIONS", cls.RESEARCH_MAX_ITERATIONS)

    @classmethod
    def get_research_search_spacing(cls) -> float:
        return cls._env_float("TASKPILOT_RESEARCH_SEARCH_SPACING", cls.RESEARCH_SEARCH_SPACING_SECONDS)

    @classmethod
    def get_brave_search_url(cls) -> str:
        return cls.BRAVE_SEARCH_URL

    # ------------------------------------------------------------------ #
    # Storage
    # ------------------------------------------------------------------ #
    @classmethod
    def get_artifact_dir(cls) -> Path:
        return Path(os.getenv("TASKPILOT_ARTIFACT_DIR", cls.ARTIFACT_DIR))
