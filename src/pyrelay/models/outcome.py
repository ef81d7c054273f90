"""
StepOutcome records what happened to a single step of a workflow run.

Design principles:
- Immutable after creation (frozen dataclass)
- One outcome per declared step, including skipped steps
- Errors are kept as exception objects, never stringified away
"""

from dataclasses import dataclass
from typing import Any

from pyrelay.models.status import StepStatus


@dataclass(frozen=True)
class StepOutcome:
    """
    Observed outcome of one step.

    Design: Value object pattern - represents a snapshot of execution state
    """

    name: str
    """Step name (unique within a workflow)."""

    index: int
    """Position in the declared step list (0-indexed)."""

    status: StepStatus
    """What happened to the step."""

    value: Any = None
    """Value the step produced (None unless SUCCEEDED)."""

    error: BaseException | None = None
    """Terminal error for FAILED steps."""

    attempts_used: int = 0
    """Number of times the operation was invoked."""

    best_effort: bool = False
    """Whether the step was declared best-effort."""

    recovered: bool = False
    """True when a best-effort step turned a not-found error into a no-op success."""

    duration: float = 0.0
    """Wall time spent in the step, in seconds of the coordinator's clock."""

    expect: str = "succeeds"
    """Expectation declared by the workflow author."""

    @property
    def succeeded(self) -> bool:
        return self.status.is_success

    @property
    def is_fatal_failure(self) -> bool:
        """True when this outcome halted forward progress of the run."""
        return self.status == StepStatus.FAILED and not self.best_effort

    def describe(self) -> str:
        """Short human description of the observed outcome."""
        if self.status == StepStatus.SUCCEEDED:
            text = "succeeded"
            if self.recovered:
                text += " (already absent)"
            if self.attempts_used > 1:
                text += f" after {self.attempts_used} attempts"
            return text
        if self.status == StepStatus.FAILED:
            return f"failed: {_describe_error(self.error)}"
        return str(self.status).lower()

    def __str__(self) -> str:
        return f"StepOutcome({self.index}:{self.name}={self.status})"


def _describe_error(error: BaseException | None) -> str:
    if error is None:
        return "unknown error"
    cause = error.__cause__
    if cause is not None:
        return f"{type(cause).__name__}: {cause}"
    return f"{type(error).__name__}: {error}"
