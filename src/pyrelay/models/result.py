"""
Workflow run results.

This module defines the WorkflowResult state machine for terminal outcomes
of a workflow run.

**Design Pattern**: State Machine using Union types

A run ends in exactly one of three ways, and each carries only the data
that makes sense for it:

    ```python
    result = await Coordinator(steps).run()

    match result:
        case Completed(context=context):
            print(f"Workflow completed with {len(context)} results")
        case Failed(step_name=name, error=error):
            print(f"Workflow failed at {name}: {error}")
        case Aborted(step_name=name):
            print(f"Workflow cancelled before {name}")
    ```
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from pyrelay.models.outcome import StepOutcome
from pyrelay.models.status import StepStatus, WorkflowStatus

__all__ = [
    "Completed",
    "Failed",
    "Aborted",
    "WorkflowResult",
    "is_completed",
    "is_failed",
    "is_aborted",
]


@dataclass(frozen=True)
class Completed:
    """
    Every fatal step succeeded.

    Attributes:
        run_id: Identifier of the run
        context: Read-only snapshot of every step result, keyed by step name
        outcomes: One StepOutcome per declared step, in order
    """

    run_id: str
    context: Mapping[str, Any]
    outcomes: tuple[StepOutcome, ...] = field(default_factory=tuple)

    @property
    def status(self) -> WorkflowStatus:
        return WorkflowStatus.COMPLETED

    def __str__(self) -> str:
        return f"Completed(run_id={self.run_id}, steps={len(self.outcomes)})"


@dataclass(frozen=True)
class Failed:
    """
    A fatal step failed after exhausting its retry policy.

    Attributes:
        run_id: Identifier of the run
        step_name: Name of the first fatal step that failed
        step_index: Position of that step (0-indexed)
        error: The StepFailed error (its __cause__ is the classified original)
        context: Partial context up to the failure (plus best-effort cleanup results)
        outcomes: One StepOutcome per declared step, in order
    """

    run_id: str
    step_name: str
    step_index: int
    error: BaseException
    context: Mapping[str, Any]
    outcomes: tuple[StepOutcome, ...] = field(default_factory=tuple)

    @property
    def status(self) -> WorkflowStatus:
        return WorkflowStatus.FAILED

    def __str__(self) -> str:
        return (
            f"Failed(run_id={self.run_id}, step={self.step_name!r}, "
            f"error={type(self.error).__name__}: {self.error})"
        )


@dataclass(frozen=True)
class Aborted:
    """
    The run was cancelled.

    Attributes:
        run_id: Identifier of the run
        step_name: Step at which the cancellation was observed (None if before any step)
        context: Context accumulated before the cancellation
        outcomes: Outcomes recorded before the cancellation
    """

    run_id: str
    step_name: str | None
    context: Mapping[str, Any]
    outcomes: tuple[StepOutcome, ...] = field(default_factory=tuple)

    @property
    def status(self) -> WorkflowStatus:
        return WorkflowStatus.ABORTED

    @property
    def executed(self) -> tuple[StepOutcome, ...]:
        return tuple(o for o in self.outcomes if o.status != StepStatus.SKIPPED)

    def __str__(self) -> str:
        return f"Aborted(run_id={self.run_id}, step={self.step_name!r})"


# WorkflowResult is a Union type representing the terminal outcome of a run.
#
# Type narrowing:
#     if isinstance(result, Failed):
#         print(result.step_name, result.error)
#
WorkflowResult = Completed | Failed | Aborted


def is_completed(result: WorkflowResult) -> bool:
    """Type guard to check if result is Completed."""
    return isinstance(result, Completed)


def is_failed(result: WorkflowResult) -> bool:
    """Type guard to check if result is Failed."""
    return isinstance(result, Failed)


def is_aborted(result: WorkflowResult) -> bool:
    """Type guard to check if result is Aborted."""
    return isinstance(result, Aborted)
