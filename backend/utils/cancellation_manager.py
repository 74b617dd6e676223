# status: complete

import threading
import time
from collections import OrderedDict
from typing import Dict, Optional, Set

from utils.logger import get_logger

logger = get_logger(__name__)


class CancellationManager:
    """Global manager for cooperative cancellation of automation and research runs"""

    def __init__(self, pending_limit: int = 256, pending_ttl_seconds: float = 300.0, clock=time.monotonic):
        self._cancelled_runs: Set[str] = set()
        self._run_cancel_events: Dict[str, threading.Event] = {}
        # Cancels for runs not registered yet: run_id -> time of the request, oldest first
        self._pending_cancels: "OrderedDict[str, float]" = OrderedDict()
        self.pending_limit = pending_limit
        self.pending_ttl_seconds = pending_ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()

    def _prune_pending(self) -> None:
        cutoff = self._clock() - self.pending_ttl_seconds
        while self._pending_cancels:
            run_id, requested_at = next(iter(self._pending_cancels.items()))
            if requested_at > cutoff and len(self._pending_cancels) <= self.pending_limit:
                break
            self._pending_cancels.popitem(last=False)
            logger.debug(f"[CANCEL] Dropped pending cancel for unknown run {run_id}")

    def register_run(self, run_id: str, cancel_event: Optional[threading.Event] = None) -> threading.Event:
        """Register a run and return the event its loop polls between steps"""
        with self._lock:
            self._prune_pending()
            event = cancel_event or threading.Event()
            if self._pending_cancels.pop(run_id, None) is not None:
                self._cancelled_runs.add(run_id)
            if run_id in self._cancelled_runs:
                event.set()
            self._run_cancel_events[run_id] = event
            logger.info(f"[CANCEL] Registered run {run_id}")
            return event

    def is_run_cancelled(self, run_id: str) -> bool:
        with self._lock:
            self._prune_pending()
            return run_id in self._cancelled_runs or run_id in self._pending_cancels

    def cancel_run(self, run_id: str) -> bool:
        """Mark a run as cancelled. Returns True when a live run was signalled."""
        with self._lock:
            event = self._run_cancel_events.get(run_id)
            if event is None:
                self._pending_cancels[run_id] = self._clock()
                self._pending_cancels.move_to_end(run_id)
                self._prune_pending()
                logger.info(f"[CANCEL] Run {run_id} is not registered, holding the cancel request")
                return False

            self._cancelled_runs.add(run_id)
            event.set()
            logger.info(f"[CANCEL] Set cancel event for run {run_id}")
            return True

    def cleanup_run(self, run_id: str):
        """Clean up all tracking for a run"""
        with self._lock:
            self._cancelled_runs.discard(run_id)
            self._pending_cancels.pop(run_id, None)
            self._run_cancel_events.pop(run_id, None)
            logger.debug(f"[CANCEL] Unregistered run {run_id}")

    def active_runs(self) -> Set[str]:
        with self._lock:
            return set(self._run_cancel_events)

    def pending_count(self) -> int:
        with self._lock:
            self._prune_pending()
            return len(self._pending_cancels)


cancellation_manager = CancellationManager()
