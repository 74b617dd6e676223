# status: complete

from .errors import AutomationError, PlanningError, SessionConfigurationError, SessionLostError
from .events import NullRunEventPublisher, RunEventEmitter, RunEventPublisher
from .models import RunResult, StepRecord, Task, VerificationResult
from .orchestrator import RunOrchestrator
from .service import AutomationService

__all__ = [
    "AutomationError",
    "AutomationService",
    "NullRunEventPublisher",
    "PlanningError",
    "RunEventEmitter",
    "RunEventPublisher",
    "RunOrchestrator",
    "RunResult",
    "SessionConfigurationError",
    "SessionLostError",
    "StepRecord",
    "Task",
    "VerificationResult",
]
