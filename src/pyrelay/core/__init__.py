"""
Core types for pyrelay workflow coordination.

This module contains the fundamental types used throughout pyrelay:
- WorkflowStep: Declaration of one unit of async work
- WorkflowContext: Append-only step results of a run
- RunState: Task-local cancellation state
- Clock: Time source (SystemClock, ManualClock)
- Error taxonomy: TransientError, PermanentError, TimeoutExceeded, ...
"""

from pyrelay.core.clock import Clock, ManualClock, SystemClock
from pyrelay.core.context import (
    CURRENT_RUN,
    RunState,
    WorkflowContext,
    check_cancelled,
    get_current_run,
)
from pyrelay.core.errors import (
    CONFLICT,
    INVALID,
    NOT_FOUND,
    UNAUTHORIZED,
    UNKNOWN,
    CoordinatorError,
    PermanentError,
    RelayError,
    StepFailed,
    StepTimeout,
    TimeoutExceeded,
    TransientError,
    UnsatisfiedResult,
    WorkflowAborted,
    is_conflict,
    is_not_found,
)
from pyrelay.core.step import WorkflowStep, accept_any

__all__ = [
    "Clock",
    "ManualClock",
    "SystemClock",
    "CURRENT_RUN",
    "RunState",
    "WorkflowContext",
    "check_cancelled",
    "get_current_run",
    "CONFLICT",
    "INVALID",
    "NOT_FOUND",
    "UNAUTHORIZED",
    "UNKNOWN",
    "CoordinatorError",
    "PermanentError",
    "RelayError",
    "StepFailed",
    "StepTimeout",
    "TimeoutExceeded",
    "TransientError",
    "UnsatisfiedResult",
    "WorkflowAborted",
    "is_conflict",
    "is_not_found",
    "WorkflowStep",
    "accept_any",
]
