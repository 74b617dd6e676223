"""In-memory stand-ins for the remote browser, the planner model and Browserbase."""

import asyncio
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

backend_dir = Path(__file__).resolve().parents[2]
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

from automation.artifacts import ArtifactStore
from automation.driver import BrowserDriver
from automation.executor import StepExecutor
from automation.llm import Narrator, TextCompletion
from automation.orchestrator import RunOrchestrator
from automation.planner import StepPlanner
from automation.retry import RetryController
from automation.session import FULLSCREEN_INSPECTOR_URL, SessionManager

CLOSED_ERROR = "Target page, context or browser has been closed"

ALL_CREDENTIALS = {
    "BROWSERBASE_API_KEY": "bb-key",
    "BROWSERBASE_PROJECT_ID": "bb-project",
    "GEMINI_API_KEY": "gemini-key",
}


class FakeDriver(BrowserDriver):
    """Records every call. ``act_effects`` is consumed one entry per act() call: None or an exception."""

    def __init__(
        self,
        act_effects: Optional[List[Optional[Exception]]] = None,
        observe_error: Optional[Exception] = None,
        screenshot_error: Optional[Exception] = None,
        extract_error: Optional[Exception] = None,
        navigate_error: Optional[Exception] = None,
        close_error: Optional[Exception] = None,
        alive: bool = True,
    ):
        self.act_effects = list(act_effects or [])
        self.observe_error = observe_error
        self.screenshot_error = screenshot_error
        self.extract_error = extract_error
        self.navigate_error = navigate_error
        self.close_error = close_error
        self.alive = alive
        self.calls: List[tuple] = []
        self.closed = 0

    def count(self, method: str) -> int:
        return sum(1 for call in self.calls if call[0] == method)

    async def navigate(self, url: str, timeout_ms: int) -> None:
        self.calls.append(("navigate", url))
        if self.navigate_error:
            raise self.navigate_error

    async def act(self, instruction: str, timeout_ms: int) -> Any:
        self.calls.append(("act", instruction))
        effect = self.act_effects.pop(0) if self.act_effects else None
        if effect is not None:
            raise effect
        return {"success": True}

    async def observe(self, instruction: str) -> Any:
        self.calls.append(("observe", instruction))
        if self.observe_error:
            raise self.observe_error
        return [{"description": "Welcome banner", "selector": "#welcome"}]

    async def extract(self, instruction: str, timeout_ms: int) -> Any:
        self.calls.append(("extract", instruction))
        if self.extract_error:
            raise self.extract_error
        return {"extraction": "Welcome back"}

    async def screenshot(self, timeout_ms: int) -> bytes:
        self.calls.append(("screenshot", timeout_ms))
        if self.screenshot_error:
            raise self.screenshot_error
        return b"\x89PNG fake"

    async def title(self) -> str:
        self.calls.append(("title", None))
        return "Dashboard"

    async def is_alive(self) -> bool:
        self.calls.append(("is_alive", None))
        return self.alive

    async def close(self) -> None:
        self.closed += 1
        if self.close_error:
            raise self.close_error


class FakeCompletion(TextCompletion):
    """Returns queued responses in order; an exception entry is raised instead."""

    def __init__(self, *responses: Any, default: str = ""):
        self.responses = list(responses)
        self.default = default
        self.prompts: List[str] = []

    async def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        response = self.responses.pop(0) if self.responses else self.default
        if isinstance(response, Exception):
            raise response
        return response


class SlowCompletion(TextCompletion):
    """Sleeps before its first answer; later calls answer immediately."""

    def __init__(self, delay: float, first: str = "1. Click first\n2. Click second", later: str = "Summary."):
        self.delay = delay
        self.first = first
        self.later = later
        self.prompts: List[str] = []

    async def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if len(self.prompts) == 1:
            await asyncio.sleep(self.delay)
            return self.first
        return self.later


class FakeProvisioner:
    def __init__(self, create_error: Optional[Exception] = None, debug_error: Optional[Exception] = None):
        self.create_error = create_error
        self.debug_error = debug_error
        self.created: List[str] = []
        self.released: List[str] = []

    def create_session(self, keep_alive: bool = True, timeout_seconds: Optional[int] = None) -> Dict[str, Any]:
        if self.create_error:
            raise self.create_error
        session_id = f"sess-{len(self.created) + 1}"
        self.created.append(session_id)
        return {"id": session_id}

    def debug_info(self, session_id: str) -> Dict[str, Any]:
        if self.debug_error:
            raise self.debug_error
        return {"debuggerFullscreenUrl": f"{FULLSCREEN_INSPECTOR_URL}?wss=connect.browserbase.com/{session_id}"}

    def release_session(self, session_id: str) -> None:
        self.released.append(session_id)


class CountingSessionManager(SessionManager):
    """SessionManager that counts release() calls per session id."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.release_calls: Dict[str, int] = {}

    async def release(self, handle) -> None:
        self.release_calls[handle.session_id] = self.release_calls.get(handle.session_id, 0) + 1
        await super().release(handle)


async def no_sleep(seconds: float) -> None:
    return None


def build_session_manager(driver=None, provisioner=None, credentials=None, driver_error=None):
    provisioner = provisioner or FakeProvisioner()

    async def factory(session_id: str):
        if driver_error:
            raise driver_error
        return driver

    return CountingSessionManager(
        provisioner=provisioner,
        driver_factory=factory,
        credentials=ALL_CREDENTIALS if credentials is None else credentials,
    )


def build_orchestrator(completion, session_manager, artifact_dir, events=None, circuit_breaker=None):
    executor = StepExecutor(artifact_store=ArtifactStore(Path(artifact_dir)), settle_seconds=0, sleep=no_sleep)
    return RunOrchestrator(
        session_manager=session_manager,
        planner=StepPlanner(completion, max_steps=20, insert_waits=False),
        retry_controller=RetryController(executor, backoff_seconds=0, sleep=no_sleep),
        narrator=Narrator(completion),
        circuit_breaker=circuit_breaker,
        events=events,
        settle_seconds=0,
        sleep=no_sleep,
    )
