"""Tests for verification scoring."""

import sys
import unittest
from pathlib import Path

backend_dir = Path(__file__).resolve().parents[2]
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

from automation.models import StepRecord, StepStatus, VerificationLevel
from automation.verifier import ScoringWeights, score


def _log(successes=0, failures=0, disconnected=0, retried=0, retried_count=1):
    records = []
    step = 0
    for _ in range(successes):
        step += 1
        records.append(StepRecord(step, f"step {step}", StepStatus.SUCCESS, 0, "SUCCESS: ok"))
    for _ in range(retried):
        step += 1
        records.append(StepRecord(step, f"step {step}", StepStatus.RETRIED, retried_count, "SUCCESS: ok"))
    for _ in range(failures):
        step += 1
        records.append(StepRecord(step, f"step {step}", StepStatus.FAILED, 3, "FAILED: boom (Max retries exceeded)"))
    for _ in range(disconnected):
        step += 1
        records.append(StepRecord(step, f"step {step}", StepStatus.FAILED, 0, "FAILED: Session disconnected"))
    return records


def _check(result, name):
    return next((check for check in result.checks if check.type == name), None)


class TestScore(unittest.TestCase):
    def test_all_success_standard_scores_100(self):
        result = score(_log(successes=3), VerificationLevel.STANDARD)
        self.assertEqual(result.overall_score, 100)
        self.assertTrue(_check(result, "step_completion").passed)
        self.assertTrue(_check(result, "retry_efficiency").passed)
        self.assertTrue(_check(result, "error_handling").passed)
        self.assertIsNone(_check(result, "session_stability"))

    def test_empty_log_scores_zero(self):
        result = score([], VerificationLevel.STANDARD)
        self.assertEqual(result.overall_score, 0)
        self.assertFalse(_check(result, "step_completion").passed)

    def test_only_disconnected_records_score_zero(self):
        result = score(_log(disconnected=3), VerificationLevel.BASIC)
        self.assertEqual(result.overall_score, 0)
        self.assertFalse(_check(result, "session_stability").passed)

    def test_level_multipliers(self):
        log = _log(successes=1, failures=1)
        self.assertEqual(score(log, VerificationLevel.STANDARD).overall_score, 50)
        self.assertEqual(score(log, VerificationLevel.STRICT).overall_score, 45)
        self.assertEqual(score(log, VerificationLevel.BASIC).overall_score, 55)

    def test_strict_and_basic_caps(self):
        log = _log(successes=4)
        self.assertEqual(score(log, VerificationLevel.STRICT).overall_score, 90)
        self.assertEqual(score(log, VerificationLevel.BASIC).overall_score, 100)

    def test_floor_rule_engages(self):
        result = score(_log(successes=1, failures=9), VerificationLevel.STANDARD)
        self.assertGreaterEqual(result.overall_score, 20)
        self.assertEqual(result.overall_score, 23)

    def test_floor_lifts_scores_above_twenty(self):
        result = score(_log(successes=2, failures=8), VerificationLevel.STANDARD)
        self.assertEqual(result.overall_score, 26)

    def test_disconnected_steps_leave_the_denominator(self):
        result = score(_log(successes=1, disconnected=2), VerificationLevel.STANDARD)
        self.assertEqual(result.overall_score, 100)
        stability = _check(result, "session_stability")
        self.assertIsNotNone(stability)
        self.assertFalse(stability.passed)

    def test_retried_counts_as_success_but_not_efficient(self):
        result = score(_log(retried=2), VerificationLevel.STANDARD)
        self.assertEqual(result.overall_score, 100)
        self.assertFalse(_check(result, "retry_efficiency").passed)

    def test_error_handling_tolerance(self):
        self.assertTrue(_check(score(_log(successes=9, failures=1), VerificationLevel.STANDARD), "error_handling").passed)
        self.assertFalse(_check(score(_log(successes=2, failures=2), VerificationLevel.STANDARD), "error_handling").passed)

    def test_score_is_monotonic_in_successes(self):
        for level in VerificationLevel:
            previous = -1
            for successes in range(0, 11):
                current = score(_log(successes=successes, failures=10 - successes, disconnected=2), level).overall_score
                self.assertGreaterEqual(current, previous, f"{level} at {successes}")
                previous = current

    def test_score_is_always_bounded(self):
        for level in VerificationLevel:
            for successes in range(0, 4):
                for failures in range(0, 4):
                    for disconnected in range(0, 4):
                        result = score(_log(successes, failures, disconnected), level)
                        self.assertGreaterEqual(result.overall_score, 0)
                        self.assertLessEqual(result.overall_score, 100)

    def test_custom_weights(self):
        weights = ScoringWeights(basic_multiplier=1.0, basic_cap=80.0)
        self.assertEqual(score(_log(successes=2), VerificationLevel.BASIC, weights).overall_score, 80)

    def test_wire_format(self):
        data = score(_log(successes=1), VerificationLevel.STRICT).to_dict()
        self.assertEqual(data["level"], "strict")
        self.assertIn("overallScore", data)
        self.assertEqual(set(data["checks"][0]), {"type", "passed", "details"})


if __name__ == "__main__":
    unittest.main()
