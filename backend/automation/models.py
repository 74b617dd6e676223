# status: complete

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from utils.config import Config


class Priority(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class VerificationLevel(Enum):
    BASIC = "basic"
    STANDARD = "standard"
    STRICT = "strict"


class StepKind(Enum):
    NAVIGATION = "navigation"
    INTERACTION = "interaction"
    EXTRACTION = "extraction"
    VERIFICATION = "verification"
    WAIT = "wait"
    OTHER = "other"


class StepStatus(Enum):
    SUCCESS = "success"
    FAILED = "failed"
    RETRIED = "retried"


class SessionState(Enum):
    STARTING = "starting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


class RunState(Enum):
    CREATED = "created"
    SESSION_ACQUIRING = "session_acquiring"
    PLANNING = "planning"
    EXECUTING = "executing"
    VERIFYING = "verifying"
    COMPLETED = "completed"
    ABORTED = "aborted"


class AbortReason(Enum):
    CIRCUIT_BREAKER = "circuit_breaker"
    SESSION_LOST = "session_lost"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"
    CONFIGURATION = "configuration"


def now_ms() -> int:
    return int(time.time() * 1000)


def _parse_enum(enum_cls, value: Any, field_name: str, default):
    if value is None or value == "":
        return default
    try:
        return enum_cls(str(value).lower())
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValueError(f"{field_name} must be one of: {allowed}") from None


def _parse_positive_int(value: Any, field_name: str, default: int, minimum: int) -> int:
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        raise ValueError(f"{field_name} must be an integer")
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        raise ValueError(f"{field_name} must be an integer") from None
    if parsed < minimum:
        raise ValueError(f"{field_name} must be >= {minimum}")
    return parsed


@dataclass(frozen=True)
class Task:
    """One end-to-end automation request."""

    goal: str
    start_url: Optional[str] = None
    priority: Priority = Priority.MEDIUM
    timeout_ms: int = Config.DEFAULT_TASK_TIMEOUT_MS
    verification_level: VerificationLevel = VerificationLevel.STANDARD
    max_retries: int = Config.DEFAULT_MAX_RETRIES
    context: Optional[str] = None
    session_id: Optional[str] = None

    def planning_goal(self) -> str:
        """Goal text handed to the planner, with any extra context appended."""
        if self.context:
            return f"{self.goal}\n\nAdditional context: {self.context}"
        return self.goal

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Task":
        goal = data.get("task")
        if not isinstance(goal, str) or not goal.strip():
            raise ValueError("task is required")
        url = data.get("url") or None
        if url is not None and not isinstance(url, str):
            raise ValueError("url must be a string")
        return cls(
            goal=goal.strip(),
            start_url=url,
            priority=_parse_enum(Priority, data.get("priority"), "priority", Priority.MEDIUM),
            timeout_ms=_parse_positive_int(data.get("timeout"), "timeout", Config.get_default_task_timeout_ms(), 1),
            verification_level=_parse_enum(
                VerificationLevel,
                data.get("verificationLevel"),
                "verificationLevel",
                VerificationLevel(Config.get_default_verification_level()),
            ),
            max_retries=_parse_positive_int(data.get("maxRetries"), "maxRetries", Config.get_default_max_retries(), 0),
            context=data.get("context") or None,
            session_id=data.get("sessionId") or None,
        )


@dataclass(frozen=True)
class PlannedStep:
    ordinal: int
    instruction: str
    kind: StepKind

    def to_dict(self) -> Dict[str, Any]:
        return {"step": self.ordinal, "action": self.instruction, "kind": self.kind.value}


@dataclass
class SessionHandle:
    """Runtime identity and connectivity state of one remote browser session."""

    session_id: str
    live_url: str
    replay_url: str
    state: SessionState = SessionState.STARTING
    owned: bool = True
    released: bool = field(default=False, repr=False)

    def mark_connected(self) -> None:
        self.state = SessionState.CONNECTED

    def mark_disconnected(self) -> None:
        self.state = SessionState.DISCONNECTED

    @property
    def is_connected(self) -> bool:
        return self.state == SessionState.CONNECTED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.session_id,
            "liveAddress": self.live_url,
            "replayAddress": self.replay_url,
        }


@dataclass(frozen=True)
class Artifact:
    screenshot: Optional[str] = None
    extracted_data: Optional[Any] = None


@dataclass(frozen=True)
class StepRecord:
    """Immutable outcome of one planned step."""

    step: int
    instruction: str
    status: StepStatus
    retry_count: int
    detail: str
    artifact: Optional[Artifact] = None
    timestamp: int = field(default_factory=now_ms)

    @property
    def failed(self) -> bool:
        return self.status == StepStatus.FAILED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step": self.step,
            "action": self.instruction,
            "status": self.status.value,
            "verificationResult": self.detail,
            "retryCount": self.retry_count,
            "timestamp": self.timestamp,
            "screenshot": self.artifact.screenshot if self.artifact else None,
            "extractedData": self.artifact.extracted_data if self.artifact else None,
        }


@dataclass(frozen=True)
class Check:
    type: str
    passed: bool
    details: str

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "passed": self.passed, "details": self.details}


@dataclass(frozen=True)
class VerificationResult:
    level: VerificationLevel
    checks: List[Check]
    overall_score: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "level": self.level.value,
            "checks": [check.to_dict() for check in self.checks],
            "overallScore": self.overall_score,
        }


@dataclass(frozen=True)
class Succeeded:
    detail: str
    artifact: Optional[Artifact] = None


@dataclass(frozen=True)
class Retryable:
    reason: str


@dataclass(frozen=True)
class Fatal:
    reason: str


Outcome = Union[Succeeded, Retryable, Fatal]


@dataclass
class RunResult:
    success: bool
    narrative: str
    steps: List[StepRecord]
    verification: VerificationResult
    session: Optional[SessionHandle]
    duration_ms: int
    error: Optional[str] = None
    abort_reason: Optional[AbortReason] = None

    def to_dict(self) -> Dict[str, Any]:
        session = self.session.to_dict() if self.session else {"id": None, "liveAddress": None, "replayAddress": None}
        return {
            "success": self.success,
            "narrative": self.narrative,
            "steps": [record.to_dict() for record in self.steps],
            "verification": self.verification.to_dict(),
            "session": session,
            "durationMs": self.duration_ms,
            "error": self.error,
            "abortReason": self.abort_reason.value if self.abort_reason else None,
        }
