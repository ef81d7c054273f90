"""Core data models for workflow execution.

Defines types for run and step status, per-step outcomes, terminal
run results, and retry behavior.

Design: Dependency-Free Models
These types have no dependencies on core, executor or rpc modules to
prevent circular imports and enable clean layering.
"""

from pyrelay.models.outcome import StepOutcome
from pyrelay.models.result import (
    Aborted,
    Completed,
    Failed,
    WorkflowResult,
    is_aborted,
    is_completed,
    is_failed,
)
from pyrelay.models.retry import RetryableError, RetryPolicy, is_retryable_error
from pyrelay.models.status import StepStatus, WorkflowStatus

__all__ = [
    "StepOutcome",
    "StepStatus",
    "WorkflowStatus",
    "Completed",
    "Failed",
    "Aborted",
    "WorkflowResult",
    "is_completed",
    "is_failed",
    "is_aborted",
    "RetryPolicy",
    "RetryableError",
    "is_retryable_error",
]
