"""Outcome reporting.

The Reporter accumulates, per step, the expectation declared by the
workflow author and the outcome observed by the coordinator. A Report is
the immutable summary a test runner asserts against, or a CLI maps to an
exit code.

Exit codes:
    0       every check passed
    1..N    1-based index of the first fatal step that failed
    130     the run was aborted
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NamedTuple

from pyrelay.models.outcome import StepOutcome
from pyrelay.models.result import WorkflowResult
from pyrelay.models.status import WorkflowStatus

__all__ = ["Check", "Report", "Reporter", "EXIT_ABORTED"]

EXIT_ABORTED = 130


class Check(NamedTuple):
    """One step's expectation against its observed outcome."""

    step_name: str
    expected: str
    actual: str
    passed: bool


class Reporter:
    """Collects step outcomes emitted by a coordinator.

    Usage:
        ```python
        reporter = Reporter()
        reporter.expect("start_replication", "replication job id defined")
        result = await Coordinator(steps, reporter=reporter).run()
        report = reporter.report(result)
        assert report.passed, report.summary()
        ```
    """

    def __init__(self):
        self._expectations: dict[str, str] = {}
        self._outcomes: list[StepOutcome] = []

    def expect(self, step_name: str, expected: str) -> None:
        """Override the expectation declared on a step."""
        self._expectations[step_name] = expected

    def record(self, outcome: StepOutcome) -> None:
        """Record one step outcome (called by the coordinator)."""
        self._outcomes.append(outcome)

    @property
    def outcomes(self) -> list[StepOutcome]:
        return list(self._outcomes)

    @property
    def checks(self) -> list[Check]:
        return [self._check(outcome) for outcome in self._outcomes]

    @property
    def passed(self) -> bool:
        return all(check.passed for check in self.checks)

    def _check(self, outcome: StepOutcome) -> Check:
        expected = self._expectations.get(outcome.name, outcome.expect)
        return Check(
            step_name=outcome.name,
            expected=expected,
            actual=outcome.describe(),
            passed=outcome.succeeded,
        )

    def report(self, result: WorkflowResult, definition_hash: int | None = None) -> Report:
        """Build the final report for a finished run."""
        outcomes = tuple(self._outcomes)
        checks = tuple(self._check(outcome) for outcome in outcomes)

        first_fatal = next((o for o in outcomes if o.is_fatal_failure), None)
        first_failure: Check | None = None
        error: BaseException | None = None
        if first_fatal is not None:
            first_failure = checks[outcomes.index(first_fatal)]
            error = first_fatal.error

        return Report(
            run_id=result.run_id,
            status=result.status,
            checks=checks,
            exit_code=_exit_code(result.status, outcomes),
            first_failure=first_failure,
            error=error,
            definition_hash=definition_hash,
        )


@dataclass(frozen=True)
class Report:
    """Immutable final report of a workflow run."""

    run_id: str
    status: WorkflowStatus
    checks: tuple[Check, ...]
    exit_code: int
    first_failure: Check | None = None
    error: BaseException | None = None
    definition_hash: int | None = None

    @property
    def passed(self) -> bool:
        return self.status == WorkflowStatus.COMPLETED and all(c.passed for c in self.checks)

    def summary(self) -> str:
        """Multi-line human readable summary."""
        passed = sum(1 for c in self.checks if c.passed)
        lines = [f"run {self.run_id} {self.status} ({passed}/{len(self.checks)} checks passed)"]
        for number, check in enumerate(self.checks, start=1):
            mark = "PASS" if check.passed else "FAIL"
            lines.append(
                f"  [{mark}] {number}. {check.step_name}: "
                f"expected {check.expected}, got {check.actual}"
            )
        if self.first_failure is not None:
            number = self.checks.index(self.first_failure) + 1
            lines.append(
                f"first failure: step {number} {self.first_failure.step_name!r}: "
                f"{self.first_failure.actual}"
            )
        return "\n".join(lines)

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "status": str(self.status),
            "passed": self.passed,
            "exit_code": self.exit_code,
            "definition_hash": self.definition_hash,
            "first_failure": self.first_failure._asdict() if self.first_failure else None,
            "checks": [check._asdict() for check in self.checks],
        }


def _exit_code(status: WorkflowStatus, outcomes: tuple[StepOutcome, ...]) -> int:
    if status == WorkflowStatus.ABORTED:
        return EXIT_ABORTED

    for outcome in outcomes:
        if outcome.is_fatal_failure:
            return outcome.index + 1

    for outcome in outcomes:
        if not outcome.succeeded:
            return outcome.index + 1

    return 0
