# status: complete

"""Remote browser session provisioning, attachment and guaranteed release."""

from __future__ import annotations

import asyncio
import threading
from typing import Any, Awaitable, Callable, Dict, List, Optional

import requests

from utils.config import Config
from utils.logger import get_logger

from .driver import BrowserDriver, StagehandDriver
from .errors import SessionConfigurationError
from .models import SessionHandle, SessionState

logger = get_logger(__name__)

FULLSCREEN_INSPECTOR_URL = "https://www.browserbase.com/devtools-fullscreen/inspector.html"
COMPILED_INSPECTOR_URL = "https://www.browserbase.com/devtools-internal-compiled/index.html"

DriverFactory = Callable[[str], Awaitable[BrowserDriver]]


def rewrite_live_view_url(debugger_fullscreen_url: Optional[str], fallback: str) -> str:
    if not debugger_fullscreen_url:
        return fallback
    return debugger_fullscreen_url.replace(FULLSCREEN_INSPECTOR_URL, COMPILED_INSPECTOR_URL)


class BrowserbaseProvisioner:
    """Thin client for the Browserbase sessions REST API."""

    def __init__(
        self,
        api_key: str,
        project_id: str,
        api_url: Optional[str] = None,
        http: Optional[requests.Session] = None,
        request_timeout: Optional[float] = None,
    ):
        self.api_key = api_key
        self.project_id = project_id
        self.api_url = api_url or Config.get_browserbase_api_url()
        self.http = http or requests.Session()
        self.request_timeout = request_timeout or Config.get_session_request_timeout()

    def _headers(self) -> Dict[str, str]:
        return {"X-BB-API-Key": self.api_key, "Content-Type": "application/json"}

    def create_session(self, keep_alive: bool = True, timeout_seconds: Optional[int] = None) -> Dict[str, Any]:
        payload = {
            "projectId": self.project_id,
            "keepAlive": keep_alive,
            "timeout": timeout_seconds or Config.get_session_keep_alive_timeout(),
        }
        response = self.http.post(
            f"{self.api_url}/sessions",
            json=payload,
            headers=self._headers(),
            timeout=self.request_timeout,
        )
        response.raise_for_status()
        data = response.json()
        if not data.get("id"):
            raise SessionConfigurationError("Browserbase did not return a session id")
        return data

    def debug_info(self, session_id: str) -> Dict[str, Any]:
        response = self.http.get(
            f"{self.api_url}/sessions/{session_id}/debug",
            headers=self._headers(),
            timeout=self.request_timeout,
        )
        response.raise_for_status()
        return response.json()

    def release_session(self, session_id: str) -> None:
        response = self.http.post(
            f"{self.api_url}/sessions/{session_id}",
            json={"projectId": self.project_id, "status": "REQUEST_RELEASE"},
            headers=self._headers(),
            timeout=self.request_timeout,
        )
        response.raise_for_status()


class SessionRegistry:
    """Session id -> live driver. Shared by request threads, so every access holds the lock."""

    def __init__(self) -> None:
        self._drivers: Dict[str, BrowserDriver] = {}
        self._lock = threading.Lock()

    def insert(self, session_id: str, driver: BrowserDriver) -> bool:
        """Register a driver. Returns False when the session already has a live driver."""
        with self._lock:
            if session_id in self._drivers:
                return False
            self._drivers[session_id] = driver
            return True

    def get(self, session_id: str) -> Optional[BrowserDriver]:
        with self._lock:
            return self._drivers.get(session_id)

    def remove(self, session_id: str) -> Optional[BrowserDriver]:
        with self._lock:
            return self._drivers.pop(session_id, None)

    def __contains__(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._drivers

    def __len__(self) -> int:
        with self._lock:
            return len(self._drivers)


class SessionManager:
    """Acquires SessionHandles for runs and releases them exactly once."""

    def __init__(
        self,
        provisioner: Optional[BrowserbaseProvisioner] = None,
        driver_factory: Optional[DriverFactory] = None,
        registry: Optional[SessionRegistry] = None,
        credentials: Optional[Dict[str, Optional[str]]] = None,
    ):
        self._provisioner = provisioner
        self._driver_factory = driver_factory or StagehandDriver.connect
        self.registry = registry or SessionRegistry()
        self._credentials = credentials
        self._released_lock = threading.Lock()

    # ------------------------------------------------------------------ #
    # Configuration
    # ------------------------------------------------------------------ #
    def _current_credentials(self) -> Dict[str, Optional[str]]:
        if self._credentials is not None:
            return self._credentials
        return {
            "BROWSERBASE_API_KEY": Config.get_browserbase_api_key(),
            "BROWSERBASE_PROJECT_ID": Config.get_browserbase_project_id(),
            "GEMINI_API_KEY": Config.get_gemini_api_key(),
        }

    def check_credentials(self, names: Optional[List[str]] = None) -> None:
        credentials = self._current_credentials()
        wanted = names or list(credentials)
        missing = [name for name in wanted if not credentials.get(name)]
        if missing:
            raise SessionConfigurationError(f"Missing required configuration: {', '.join(missing)}")

    def _get_provisioner(self) -> BrowserbaseProvisioner:
        if self._provisioner is None:
            credentials = self._current_credentials()
            self._provisioner = BrowserbaseProvisioner(
                api_key=credentials.get("BROWSERBASE_API_KEY"),
                project_id=credentials.get("BROWSERBASE_PROJECT_ID"),
            )
        return self._provisioner

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #
    async def _live_view_url(self, session_id: str, replay_url: str) -> str:
        try:
            debug = await asyncio.to_thread(self._get_provisioner().debug_info, session_id)
        except Exception as e:
            logger.warning("[SESSION] Could not fetch live view for %s: %s", session_id, e)
            return replay_url
        return rewrite_live_view_url(debug.get("debuggerFullscreenUrl"), replay_url)

    async def _provision(self) -> SessionHandle:
        created = await asyncio.to_thread(
            self._get_provisioner().create_session,
            True,
            Config.get_session_keep_alive_timeout(),
        )
        session_id = created["id"]
        replay_url = f"{Config.get_browserbase_session_url()}/{session_id}"
        handle = SessionHandle(
            session_id=session_id,
            live_url=replay_url,
            replay_url=replay_url,
            state=SessionState.STARTING,
            owned=True,
        )
        handle.live_url = await self._live_view_url(session_id, replay_url)
        logger.info("[SESSION] Created session %s", session_id)
        return handle

    async def acquire(self, existing_id: Optional[str] = None) -> SessionHandle:
        """Provision (or reuse) a remote session and attach a driver to it."""
        self.check_credentials()

        if existing_id and existing_id in self.registry:
            raise SessionConfigurationError(f"Session {existing_id} is already in use by another run")

        handle: Optional[SessionHandle] = None
        try:
            if existing_id:
                replay_url = f"{Config.get_browserbase_session_url()}/{existing_id}"
                handle = SessionHandle(
                    session_id=existing_id,
                    live_url=replay_url,
                    replay_url=replay_url,
                    state=SessionState.STARTING,
                    owned=False,
                )
                handle.live_url = await self._live_view_url(existing_id, replay_url)
                logger.info("[SESSION] Reusing existing session %s", existing_id)
            else:
                handle = await self._provision()

            driver = await self._driver_factory(handle.session_id)
        except Exception as e:
            if handle is not None and handle.owned:
                await self._release_remote(handle.session_id)
            if isinstance(e, SessionConfigurationError):
                raise
            raise SessionConfigurationError(f"Failed to acquire browser session: {e}") from e

        if not self.registry.insert(handle.session_id, driver):
            try:
                await driver.close()
            except Exception as e:
                logger.warning("[SESSION] Error closing duplicate driver for %s: %s", handle.session_id, e)
            raise SessionConfigurationError(f"Session {handle.session_id} is already in use by another run")
        handle.mark_connected()
        logger.info("[SESSION] Session %s connected (owned=%s)", handle.session_id, handle.owned)
        return handle

    def driver_for(self, handle: SessionHandle) -> Optional[BrowserDriver]:
        return self.registry.get(handle.session_id)

    async def _release_remote(self, session_id: str) -> None:
        try:
            await asyncio.to_thread(self._get_provisioner().release_session, session_id)
            logger.info("[SESSION] Released remote session %s", session_id)
        except Exception as e:
            logger.warning("[SESSION] Failed to release remote session %s: %s", session_id, e, exc_info=True)

    async def release(self, handle: SessionHandle) -> None:
        """Close the driver and release owned sessions. Never raises; repeated calls are no-ops."""
        with self._released_lock:
            if handle.released:
                logger.debug("[SESSION] Session %s already released", handle.session_id)
                return
            handle.released = True

        driver = self.registry.remove(handle.session_id)
        if driver is not None:
            try:
                await driver.close()
            except Exception as e:
                logger.warning("[SESSION] Error closing driver for %s: %s", handle.session_id, e, exc_info=True)

        if handle.owned:
            await self._release_remote(handle.session_id)
        else:
            logger.info("[SESSION] Detached from reused session %s", handle.session_id)

        handle.mark_disconnected()

    async def create_standalone(self) -> SessionHandle:
        """Provision a session without attaching a driver, so its live view can be shown before a run."""
        self.check_credentials(["BROWSERBASE_API_KEY", "BROWSERBASE_PROJECT_ID"])
        try:
            return await self._provision()
        except SessionConfigurationError:
            raise
        except Exception as e:
            raise SessionConfigurationError(f"Failed to create browser session: {e}") from e
