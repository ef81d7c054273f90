"""Status enumerations for workflow execution tracking.

Defines lifecycle states for a workflow run and for the individual
steps it executes.
"""

from enum import Enum


class WorkflowStatus(Enum):
    """Status of a single workflow run.

    Lifecycle:
        PENDING → RUNNING → COMPLETED/FAILED/ABORTED

    Design: ABORTED is distinct from FAILED
        Cancellation is a caller decision, not a step failure, so
        reports keep the two apart.
    """

    PENDING = "PENDING"
    """Run constructed, no step started yet."""

    RUNNING = "RUNNING"
    """A step is executing."""

    COMPLETED = "COMPLETED"
    """Every fatal step succeeded."""

    FAILED = "FAILED"
    """A fatal step failed after exhausting its retry policy."""

    ABORTED = "ABORTED"
    """The run was cancelled."""

    @property
    def is_terminal(self) -> bool:
        """Check if this status is terminal (no more steps will run)."""
        return self in (WorkflowStatus.COMPLETED, WorkflowStatus.FAILED, WorkflowStatus.ABORTED)

    def __str__(self) -> str:
        return self.value


class StepStatus(Enum):
    """Status of a single step within a run."""

    SUCCEEDED = "SUCCEEDED"
    """Operation returned a value accepted by the step's predicate."""

    FAILED = "FAILED"
    """Operation failed (fatal or best-effort)."""

    SKIPPED = "SKIPPED"
    """Not executed because an earlier fatal step failed."""

    ABORTED = "ABORTED"
    """Result discarded because the run was cancelled."""

    @property
    def is_success(self) -> bool:
        """Check if this status represents success."""
        return self == StepStatus.SUCCEEDED

    def __str__(self) -> str:
        return self.value
