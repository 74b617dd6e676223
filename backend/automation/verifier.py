# status: complete

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from utils.config import Config
from utils.logger import get_logger

from .models import Check, StepRecord, StepStatus, VerificationLevel, VerificationResult

logger = get_logger(__name__)

DISCONNECT_MARKERS = ("Session disconnected", "Page has been closed")


@dataclass(frozen=True)
class ScoringWeights:
    strict_multiplier: float = field(default_factory=lambda: Config.SCORE_STRICT_MULTIPLIER)
    strict_cap: float = field(default_factory=lambda: Config.SCORE_STRICT_CAP)
    basic_multiplier: float = field(default_factory=lambda: Config.SCORE_BASIC_MULTIPLIER)
    basic_cap: float = field(default_factory=lambda: Config.SCORE_BASIC_CAP)
    floor_base: float = field(default_factory=lambda: Config.SCORE_FLOOR_BASE)
    floor_span: float = field(default_factory=lambda: Config.SCORE_FLOOR_SPAN)
    floor_cap: float = field(default_factory=lambda: Config.SCORE_FLOOR_CAP)
    retry_efficiency_ratio: float = field(default_factory=lambda: Config.RETRY_EFFICIENCY_RATIO)
    error_tolerance_ratio: float = field(default_factory=lambda: Config.ERROR_TOLERANCE_RATIO)
    session_stability_ratio: float = field(default_factory=lambda: Config.SESSION_STABILITY_RATIO)


def is_disconnect_record(record: StepRecord) -> bool:
    return any(marker in record.detail for marker in DISCONNECT_MARKERS)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def score(
    log: Sequence[StepRecord],
    level: VerificationLevel,
    weights: Optional[ScoringWeights] = None,
) -> VerificationResult:
    """Score an execution log. Pure: the same log and level always give the same result."""
    weights = weights or ScoringWeights()

    total = len(log)
    disconnected = sum(1 for record in log if is_disconnect_record(record))
    failed = sum(1 for record in log if record.status == StepStatus.FAILED)
    first_try = sum(1 for record in log if record.status == StepStatus.SUCCESS and record.retry_count == 0)
    effective_success = sum(1 for record in log if record.status != StepStatus.FAILED)
    effective_total = total - disconnected

    base = 100.0 * effective_success / effective_total if effective_total > 0 else 0.0

    checks: List[Check] = [
        Check(
            type="step_completion",
            passed=effective_success > 0,
            details=f"{effective_success}/{total} steps completed",
        ),
        Check(
            type="retry_efficiency",
            passed=first_try >= max(1, weights.retry_efficiency_ratio * effective_total),
            details=f"{first_try}/{effective_total} steps succeeded on the first attempt",
        ),
        Check(
            type="error_handling",
            passed=(failed - disconnected) <= max(1, weights.error_tolerance_ratio * total),
            details=f"{failed - disconnected} step errors excluding session loss",
        ),
    ]
    if disconnected > 0:
        checks.append(
            Check(
                type="session_stability",
                passed=disconnected < weights.session_stability_ratio * total,
                details=f"{disconnected}/{total} steps affected by session disconnection",
            )
        )

    adjusted = base
    if level == VerificationLevel.STRICT:
        adjusted = min(base * weights.strict_multiplier, weights.strict_cap)
    elif level == VerificationLevel.BASIC:
        adjusted = min(base * weights.basic_multiplier, weights.basic_cap)

    # Partial-credit floor. Taken as a max so more successes never lower the score.
    if effective_success > 0:
        floor = min(weights.floor_base + weights.floor_span * effective_success / total, weights.floor_cap)
        adjusted = max(adjusted, floor)

    overall = max(0, min(100, _round_half_up(adjusted)))
    logger.info(
        "[VERIFY] level=%s total=%d success=%d disconnected=%d score=%d",
        level.value, total, effective_success, disconnected, overall,
    )
    return VerificationResult(level=level, checks=checks, overall_score=overall)
