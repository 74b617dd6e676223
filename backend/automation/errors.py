# status: complete

from __future__ import annotations


class AutomationError(Exception):
    """Base error for the browser automation engine. Carries a machine code for HTTP callers."""

    code = "automation_error"

    def __init__(self, message: str, code: str = None):
        super().__init__(message)
        if code:
            self.code = code


class SessionConfigurationError(AutomationError):
    """Missing credentials or a remote session that could not be provisioned or attached."""

    code = "session_configuration"


class SessionLostError(AutomationError):
    """The remote page, context or browser is gone; nothing more can run on this session."""

    code = "session_lost"


class PlanningError(AutomationError):
    code = "planning_failed"


class ResearchError(Exception):
    """Raised by the deep research workflow for invalid input or an unusable search backend."""

    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code
