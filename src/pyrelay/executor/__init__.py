"""
Executor module - Runtime engine for workflow runs.

This module contains the execution components:
- coordinator: Sequential step execution (Coordinator, RunHandle)
- retry: Retry policy execution (attempt)
- resolver: Eventual-consistency polling (Resolver, PollCondition)
- report: Outcome reporting (Reporter, Report, Check)
"""

from pyrelay.executor.coordinator import Coordinator, RunHandle, definition_hash, run_workflow
from pyrelay.executor.report import EXIT_ABORTED, Check, Report, Reporter
from pyrelay.executor.resolver import PollCondition, Resolution, Resolver, poll_step
from pyrelay.executor.retry import Attempted, attempt, attempt_step

__all__ = [
    # Coordinator
    "Coordinator",
    "RunHandle",
    "definition_hash",
    "run_workflow",
    # Retry
    "Attempted",
    "attempt",
    "attempt_step",
    # Polling
    "PollCondition",
    "Resolution",
    "Resolver",
    "poll_step",
    # Reporting
    "Check",
    "Report",
    "Reporter",
    "EXIT_ABORTED",
]
