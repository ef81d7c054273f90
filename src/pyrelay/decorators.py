"""
Decorator for declaring workflow steps.

@workflow_step turns an async function taking the WorkflowContext into a
WorkflowStep, so a workflow can be written as a list of plain functions:

    ```python
    @workflow_step
    async def create_source(ctx):
        return await client.create_resource("source")

    @workflow_step(retry_policy=RetryPolicy.with_max_attempts(3), expect="job stopped")
    async def stop(ctx):
        return await client.stop_replication(ctx["start"])

    result = await Coordinator([create_source, start, stop]).run()
    ```
"""

from __future__ import annotations

import inspect
from collections.abc import Callable
from typing import Any, overload

from pyrelay.core.step import Operation, Predicate, WorkflowStep, accept_any
from pyrelay.models.retry import RetryPolicy


@overload
def workflow_step(func: Operation) -> WorkflowStep: ...


@overload
def workflow_step(
    func: None = None,
    *,
    name: str | None = None,
    retry_policy: RetryPolicy | None = None,
    predicate: Predicate = accept_any,
    best_effort: bool = False,
    timeout: float | None = None,
    expect: str | None = None,
) -> Callable[[Operation], WorkflowStep]: ...


def workflow_step(
    func: Operation | None = None,
    *,
    name: str | None = None,
    retry_policy: RetryPolicy | None = None,
    predicate: Predicate = accept_any,
    best_effort: bool = False,
    timeout: float | None = None,
    expect: str | None = None,
) -> Any:
    """
    Declare an async function as a workflow step.

    Args:
        func: The async function to wrap (receives the WorkflowContext)
        name: Step name (defaults to the function name)
        retry_policy: Retry policy for this step
        predicate: Success predicate over the returned value
        best_effort: Failure is recorded but does not halt the workflow
        timeout: Per-attempt timeout in seconds
        expect: Expectation text for the report (defaults to the docstring's first line)

    Raises:
        TypeError: If the decorated function is not a coroutine function
    """

    def decorator(f: Operation) -> WorkflowStep:
        if not inspect.iscoroutinefunction(f):
            raise TypeError(f"@workflow_step requires an async function, got {f!r}")

        description = expect
        if description is None:
            doc = inspect.getdoc(f)
            description = doc.splitlines()[0] if doc else "succeeds"

        return WorkflowStep(
            name=name or f.__name__,
            operation=f,
            retry_policy=retry_policy,
            predicate=predicate,
            best_effort=best_effort,
            timeout=timeout,
            expect=description,
        )

    # Support both @workflow_step and @workflow_step(...) syntax
    if func is not None:
        return decorator(func)
    return decorator
