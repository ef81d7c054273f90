"""
pyrelay: asynchronous workflow coordination for document database checks.

Runs ordered, dependency-chained async steps with per-step retry policies,
eventual-consistency polling and a pass/fail report, plus a CouchDB client
and ready-made replication check workflows.

Design Pattern: Façade Pattern
This module provides a simplified interface to pyrelay, hiding the
layout of models, core types, executor and clients.

Example:
    ```python
    import asyncio
    from pyrelay import Coordinator, CouchClient, simple_replication

    async def main():
        async with CouchClient("http://localhost:5984") as client:
            coordinator = Coordinator(simple_replication(client, "source", "target"))
            await coordinator.run()
            report = coordinator.report()
            print(report.summary())

    asyncio.run(main())
    ```
"""

# Core types
from pyrelay.core import (
    Clock,
    CoordinatorError,
    ManualClock,
    PermanentError,
    RelayError,
    StepFailed,
    StepTimeout,
    SystemClock,
    TimeoutExceeded,
    TransientError,
    UnsatisfiedResult,
    WorkflowAborted,
    WorkflowContext,
    WorkflowStep,
)

# Models
from pyrelay.models import (
    Aborted,
    Completed,
    Failed,
    RetryableError,
    RetryPolicy,
    StepOutcome,
    StepStatus,
    WorkflowResult,
    WorkflowStatus,
    is_aborted,
    is_completed,
    is_failed,
)

# Execution
from pyrelay.executor import (
    Check,
    Coordinator,
    PollCondition,
    Report,
    Reporter,
    Resolution,
    Resolver,
    RunHandle,
    attempt,
    poll_step,
    run_workflow,
)

# Decorators
from pyrelay.decorators import workflow_step

# Clients
from pyrelay.rpc import CouchClient, DatabaseClient, InMemoryDatabase

# Configuration
from pyrelay.config import RelayConfig

# Workflows
from pyrelay.workflows import database_lifecycle, fanout_replication, simple_replication

__version__ = "0.1.0"

__all__ = [
    # Core types
    "Clock",
    "ManualClock",
    "SystemClock",
    "WorkflowContext",
    "WorkflowStep",
    # Errors
    "RelayError",
    "TransientError",
    "PermanentError",
    "StepTimeout",
    "UnsatisfiedResult",
    "TimeoutExceeded",
    "StepFailed",
    "WorkflowAborted",
    "CoordinatorError",
    # Models
    "Aborted",
    "Completed",
    "Failed",
    "WorkflowResult",
    "is_aborted",
    "is_completed",
    "is_failed",
    "RetryPolicy",
    "RetryableError",
    "StepOutcome",
    "StepStatus",
    "WorkflowStatus",
    # Execution
    "Coordinator",
    "RunHandle",
    "run_workflow",
    "attempt",
    "PollCondition",
    "Resolution",
    "Resolver",
    "poll_step",
    "Check",
    "Report",
    "Reporter",
    "workflow_step",
    # Clients
    "DatabaseClient",
    "CouchClient",
    "InMemoryDatabase",
    # Configuration
    "RelayConfig",
    # Workflows
    "database_lifecycle",
    "simple_replication",
    "fanout_replication",
    # Metadata
    "__version__",
]
