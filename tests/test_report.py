"""Tests for outcome reporting and exit codes."""

import json

import pytest
from conftest import failing_step, value_step

from pyrelay.core import PermanentError
from pyrelay.executor import EXIT_ABORTED, Coordinator, Reporter
from pyrelay.models import StepOutcome, StepStatus, WorkflowStatus


@pytest.mark.asyncio
async def test_all_passed_report(manual_clock):
    coordinator = Coordinator(
        [value_step("a", 1, expect="returns one"), value_step("b", 2)], clock=manual_clock
    )
    await coordinator.run()
    report = coordinator.report()

    assert report.passed
    assert report.exit_code == 0
    assert report.status == WorkflowStatus.COMPLETED
    assert report.first_failure is None
    assert report.error is None
    assert [c.step_name for c in report.checks] == ["a", "b"]
    assert report.checks[0].expected == "returns one"
    assert report.checks[0].actual == "succeeded"
    assert report.definition_hash == coordinator.definition_hash


@pytest.mark.asyncio
async def test_failure_at_step_three_exits_three(manual_clock):
    coordinator = Coordinator(
        [
            value_step("one", 1),
            value_step("two", 2),
            failing_step("three", PermanentError("bad")),
            value_step("four", 4),
        ],
        clock=manual_clock,
    )
    await coordinator.run()
    report = coordinator.report()

    assert not report.passed
    assert report.exit_code == 3
    assert report.first_failure.step_name == "three"
    assert report.first_failure.actual == "failed: PermanentError: bad"
    assert isinstance(report.error.__cause__, PermanentError)
    assert [c.passed for c in report.checks] == [True, True, False, False]
    assert report.checks[3].actual == "skipped"


@pytest.mark.asyncio
async def test_best_effort_failure_fails_checks_but_not_run(manual_clock):
    """The run completes but the report still flags the failed cleanup."""
    coordinator = Coordinator(
        [value_step("a", 1), failing_step("cleanup", PermanentError("busy"), best_effort=True)],
        clock=manual_clock,
    )
    await coordinator.run()
    report = coordinator.report()

    assert report.status == WorkflowStatus.COMPLETED
    assert not report.passed
    assert report.exit_code == 2
    assert report.first_failure is None


@pytest.mark.asyncio
async def test_aborted_run_exit_code(manual_clock):
    coordinator = Coordinator([value_step("a", 1)], clock=manual_clock)
    coordinator.cancel()
    await coordinator.run()
    report = coordinator.report()

    assert report.status == WorkflowStatus.ABORTED
    assert report.exit_code == EXIT_ABORTED
    assert not report.passed


@pytest.mark.asyncio
async def test_expectation_override(manual_clock):
    reporter = Reporter()
    reporter.expect("a", "custom expectation")
    result = await Coordinator([value_step("a", 1)], clock=manual_clock, reporter=reporter).run()

    report = reporter.report(result)
    assert report.checks[0].expected == "custom expectation"
    assert reporter.passed


@pytest.mark.asyncio
async def test_summary_lists_every_check(manual_clock):
    coordinator = Coordinator(
        [value_step("create", 1), failing_step("start", PermanentError("no source"))],
        clock=manual_clock,
    )
    await coordinator.run()
    summary = coordinator.report().summary()

    assert "FAILED (1/2 checks passed)" in summary
    assert "[PASS] 1. create" in summary
    assert "[FAIL] 2. start" in summary
    assert "first failure: step 2 'start'" in summary


@pytest.mark.asyncio
async def test_to_dict_is_json_serializable(manual_clock):
    coordinator = Coordinator(
        [value_step("a", object()), failing_step("b", PermanentError("x"))], clock=manual_clock
    )
    await coordinator.run()
    data = coordinator.report().to_dict()

    decoded = json.loads(json.dumps(data))
    assert decoded["status"] == "FAILED"
    assert decoded["exit_code"] == 2
    assert decoded["first_failure"]["step_name"] == "b"
    assert len(decoded["checks"]) == 2


def test_outcome_descriptions():
    assert StepOutcome("a", 0, StepStatus.SUCCEEDED, attempts_used=1).describe() == "succeeded"
    assert (
        StepOutcome("a", 0, StepStatus.SUCCEEDED, attempts_used=3).describe()
        == "succeeded after 3 attempts"
    )
    assert (
        StepOutcome("a", 0, StepStatus.SUCCEEDED, recovered=True).describe()
        == "succeeded (already absent)"
    )
    assert StepOutcome("a", 0, StepStatus.SKIPPED).describe() == "skipped"
    assert StepOutcome("a", 0, StepStatus.ABORTED).describe() == "aborted"

