"""Shared test configuration for pytest.

Puts the backend directory on sys.path and keeps log output out of the
working tree before any module configures logging.
"""

import os
import sys
import tempfile
from pathlib import Path

backend_dir = Path(__file__).resolve().parents[1]
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

os.environ.setdefault("TASKPILOT_LOG_DIR", tempfile.mkdtemp(prefix="taskpilot-logs-"))
os.environ.setdefault("TASKPILOT_LOG_LEVEL", "WARNING")


def pytest_configure(config):
    """Register custom pytest markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )
