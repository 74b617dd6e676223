"""End-to-end tests for the run orchestrator with fake driver, planner and Browserbase."""

import asyncio
import sys
import tempfile
import threading
import time
import unittest
from pathlib import Path

backend_dir = Path(__file__).resolve().parents[2]
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

from automation.events import RunEventEmitter
from automation.models import AbortReason, SessionState, StepStatus, Task, VerificationLevel
from fakes import (
    CLOSED_ERROR,
    FakeCompletion,
    FakeDriver,
    FakeProvisioner,
    SlowCompletion,
    build_orchestrator,
    build_session_manager,
)

LOGIN_PLAN = "1. Navigate to the login page\n2. Click the sign in button\n3. Confirm success message is shown"


def _check(result, name):
    return next((check for check in result.verification.checks if check.type == name), None)


class OrchestratorTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()

    def tearDown(self):
        self.tmp.cleanup()

    def _orchestrator(self, plan_text, driver, **kwargs):
        self.provisioner = kwargs.pop("provisioner", FakeProvisioner())
        self.sessions = build_session_manager(driver=driver, provisioner=self.provisioner, **kwargs)
        self.completion = FakeCompletion(plan_text, "The user is logged in.")
        return build_orchestrator(self.completion, self.sessions, self.tmp.name)


class TestEndToEnd(OrchestratorTestCase):
    async def test_three_step_plan_all_succeed(self):
        driver = FakeDriver()
        orchestrator = self._orchestrator(LOGIN_PLAN, driver)

        result = await orchestrator.run_task(Task(goal="Log in and confirm success"))

        self.assertEqual(len(result.steps), 3)
        self.assertTrue(all(record.status == StepStatus.SUCCESS for record in result.steps))
        self.assertTrue(all(record.retry_count == 0 for record in result.steps))
        self.assertEqual(result.verification.overall_score, 100)
        self.assertTrue(_check(result, "step_completion").passed)
        self.assertTrue(result.success)
        self.assertIsNone(result.abort_reason)
        self.assertEqual(result.narrative, "The user is logged in.")
        self.assertEqual(self.sessions.release_calls, {"sess-1": 1})
        self.assertEqual(self.provisioner.released, ["sess-1"])
        self.assertEqual(driver.closed, 1)

    async def test_session_closed_on_second_action(self):
        driver = FakeDriver(act_effects=[None, RuntimeError(CLOSED_ERROR)])
        plan = "1. Navigate to the login page\n2. Click the sign in button\n3. Click the profile link"
        orchestrator = self._orchestrator(plan, driver)

        result = await orchestrator.run_task(Task(goal="Log in and confirm success"))

        self.assertEqual(len(result.steps), 3)
        self.assertEqual(result.steps[0].status, StepStatus.SUCCESS)
        self.assertEqual(result.steps[1].status, StepStatus.FAILED)
        self.assertIn("Session disconnected", result.steps[1].detail)
        self.assertEqual(result.steps[2].status, StepStatus.FAILED)
        self.assertEqual(result.steps[2].detail, "FAILED: Session disconnected")
        self.assertEqual(driver.count("act"), 2)

        self.assertEqual(result.verification.overall_score, 100)
        stability = _check(result, "session_stability")
        self.assertIsNotNone(stability)
        self.assertFalse(stability.passed)
        self.assertEqual(result.abort_reason, AbortReason.SESSION_LOST)
        self.assertEqual(self.sessions.release_calls, {"sess-1": 1})


class TestFailureModes(OrchestratorTestCase):
    async def test_no_driver_calls_after_session_loss(self):
        driver = FakeDriver(alive=False)
        plan = "\n".join(f"{index}. Click button {index}" for index in range(1, 6))
        orchestrator = self._orchestrator(plan, driver)

        result = await orchestrator.run_task(Task(goal="Click five buttons"))

        self.assertEqual(len(result.steps), 5)
        self.assertTrue(all(record.status == StepStatus.FAILED for record in result.steps))
        self.assertEqual(driver.count("is_alive"), 1)
        self.assertEqual(driver.count("act"), 0)

    async def test_circuit_breaker_stops_before_step_five(self):
        driver = FakeDriver(act_effects=[None, None] + [RuntimeError("Element not found")] * 20)
        plan = "\n".join(f"{index}. Click button {index}" for index in range(1, 6))
        orchestrator = self._orchestrator(plan, driver)

        result = await orchestrator.run_task(Task(goal="Click five buttons", max_retries=1))

        self.assertEqual([record.step for record in result.steps], [1, 2, 3, 4])
        self.assertEqual(result.abort_reason, AbortReason.CIRCUIT_BREAKER)
        self.assertNotIn(("act", "Click button 5"), driver.calls)
        self.assertEqual(self.sessions.release_calls, {"sess-1": 1})
        self.assertEqual(result.verification.overall_score, 50)

    async def test_missing_credentials_return_configuration_result(self):
        orchestrator = self._orchestrator(LOGIN_PLAN, FakeDriver(), credentials={"BROWSERBASE_API_KEY": None})

        result = await orchestrator.run_task(Task(goal="Log in"))

        self.assertFalse(result.success)
        self.assertEqual(result.steps, [])
        self.assertEqual(result.verification.overall_score, 0)
        self.assertEqual(result.abort_reason, AbortReason.CONFIGURATION)
        self.assertIn("BROWSERBASE_API_KEY", result.error)
        self.assertEqual(self.sessions.release_calls, {})
        self.assertEqual(self.completion.prompts, [])

    async def test_driver_attach_failure_releases_provisioned_session(self):
        orchestrator = self._orchestrator(LOGIN_PLAN, None, driver_error=RuntimeError("CDP connect failed"))

        result = await orchestrator.run_task(Task(goal="Log in"))

        self.assertEqual(result.abort_reason, AbortReason.CONFIGURATION)
        self.assertIn("CDP connect failed", result.error)
        self.assertEqual(self.provisioner.released, ["sess-1"])

    async def test_existing_session_is_detached_not_released(self):
        driver = FakeDriver()
        orchestrator = self._orchestrator(LOGIN_PLAN, driver)

        result = await orchestrator.run_task(Task(goal="Log in", session_id="existing-42"))

        self.assertEqual(result.session.session_id, "existing-42")
        self.assertFalse(result.session.owned)
        self.assertEqual(self.provisioner.created, [])
        self.assertEqual(self.provisioner.released, [])
        self.assertEqual(driver.closed, 1)
        self.assertEqual(result.session.state, SessionState.DISCONNECTED)

    async def test_timeout_keeps_records_and_releases(self):
        driver = FakeDriver()
        orchestrator = self._orchestrator("1. Click first\n2. Wait 5 seconds\n3. Click last", driver)

        async def slow_sleep(seconds):
            await asyncio.sleep(10)

        orchestrator.retry.executor._sleep = slow_sleep

        result = await orchestrator.run_task(Task(goal="Slow task", timeout_ms=200))

        self.assertEqual(result.abort_reason, AbortReason.TIMEOUT)
        self.assertEqual(len(result.steps), 1)
        self.assertEqual(self.sessions.release_calls, {"sess-1": 1})

    async def test_slow_planner_counts_against_task_timeout(self):
        driver = FakeDriver()
        self.sessions = build_session_manager(driver=driver)
        orchestrator = build_orchestrator(SlowCompletion(delay=2), self.sessions, self.tmp.name)

        started = time.monotonic()
        result = await orchestrator.run_task(Task(goal="g", timeout_ms=200))
        elapsed = time.monotonic() - started

        self.assertLess(elapsed, 1.5)
        self.assertEqual(result.abort_reason, AbortReason.TIMEOUT)
        self.assertEqual(result.steps, [])
        self.assertEqual(driver.count("act"), 0)
        self.assertFalse(result.success)
        self.assertEqual(result.narrative, "Summary.")
        self.assertEqual(self.sessions.release_calls, {"sess-1": 1})

    async def test_execution_gets_only_the_time_left_after_planning(self):
        driver = FakeDriver()
        self.sessions = build_session_manager(driver=driver)
        completion = SlowCompletion(delay=0.6, first="1. Wait 5 seconds\n2. Click last")
        orchestrator = build_orchestrator(completion, self.sessions, self.tmp.name)
        orchestrator.retry.executor._sleep = asyncio.sleep

        started = time.monotonic()
        result = await orchestrator.run_task(Task(goal="g", timeout_ms=1000))
        elapsed = time.monotonic() - started

        self.assertLess(elapsed, 1.4)
        self.assertEqual(result.abort_reason, AbortReason.TIMEOUT)
        self.assertEqual(result.steps, [])
        self.assertEqual(driver.count("act"), 0)

    async def test_cancellation_before_first_step(self):
        driver = FakeDriver()
        orchestrator = self._orchestrator(LOGIN_PLAN, driver)
        cancel_event = threading.Event()
        cancel_event.set()

        result = await orchestrator.run_task(Task(goal="Log in"), cancel_event=cancel_event)

        self.assertEqual(result.abort_reason, AbortReason.CANCELLED)
        self.assertEqual(result.steps, [])
        self.assertFalse(result.success)
        self.assertEqual(self.sessions.release_calls, {"sess-1": 1})

    async def test_start_url_failure_is_not_fatal(self):
        driver = FakeDriver(navigate_error=RuntimeError("net::ERR_NAME_NOT_RESOLVED"))
        orchestrator = self._orchestrator(LOGIN_PLAN, driver)

        result = await orchestrator.run_task(Task(goal="Log in", start_url="https://bad.invalid"))

        self.assertEqual(driver.calls[0], ("navigate", "https://bad.invalid"))
        self.assertEqual(len(result.steps), 3)
        self.assertTrue(result.success)

    async def test_release_failure_is_swallowed(self):
        driver = FakeDriver(close_error=RuntimeError("already closed"))
        orchestrator = self._orchestrator(LOGIN_PLAN, driver)

        result = await orchestrator.run_task(Task(goal="Log in"))

        self.assertTrue(result.success)
        self.assertEqual(self.provisioner.released, ["sess-1"])


class TestRunEvents(OrchestratorTestCase):
    async def test_state_transitions_are_published(self):
        driver = FakeDriver()
        orchestrator = self._orchestrator(LOGIN_PLAN, driver)
        emitter = RunEventEmitter()
        seen = []
        emitter.subscribe(lambda event_type, payload: seen.append((event_type, payload)))
        orchestrator._events = emitter

        await orchestrator.run_task(Task(goal="Log in", verification_level=VerificationLevel.STRICT), run_id="run-1")

        states = [payload["state"] for event_type, payload in seen if event_type == "run_state_changed"]
        self.assertEqual(states, ["session_acquiring", "planning", "executing", "verifying", "completed"])
        steps = [payload["step"] for event_type, payload in seen if event_type == "step_recorded"]
        self.assertEqual(steps, [1, 2, 3])
        self.assertTrue(all(payload["run_id"] == "run-1" for _, payload in seen))


if __name__ == "__main__":
    unittest.main()
