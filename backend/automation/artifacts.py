# status: complete

from __future__ import annotations

import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from utils.config import Config
from utils.logger import get_logger

logger = get_logger(__name__)

SCREENSHOT_SUBDIR = "browser-screenshots"
_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9]+")


def safe_name(text: str, limit: int = 50) -> str:
    cleaned = _UNSAFE_CHARS.sub("_", text).strip("_")
    return (cleaned[:limit] or "step").lower()


class ArtifactStore:
    """Persists screenshots under the public directory and hands back web paths."""

    def __init__(self, base_dir: Optional[Path] = None):
        self.base_dir = Path(base_dir) if base_dir is not None else Config.get_artifact_dir()

    @property
    def screenshot_dir(self) -> Path:
        return self.base_dir / SCREENSHOT_SUBDIR

    def save_screenshot(self, data: bytes, label: str) -> str:
        """Write PNG bytes and return the public path (``/browser-screenshots/<file>``)."""
        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S-%f")
        filename = f"{timestamp}_{safe_name(label)}.png"

        self.screenshot_dir.mkdir(parents=True, exist_ok=True)
        (self.screenshot_dir / filename).write_bytes(data)
        logger.debug("[EXECUTOR] Screenshot saved: %s", filename)
        return f"/{SCREENSHOT_SUBDIR}/{filename}"
