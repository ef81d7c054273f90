"""WorkflowStep: one unit of orchestrated async work.

A step wraps an async operation that reads earlier results from the
WorkflowContext and returns its own result. The coordinator stores that
result in the context under the step's name.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from pyrelay.models.retry import RetryPolicy

if TYPE_CHECKING:
    from pyrelay.core.context import WorkflowContext

Operation = Callable[["WorkflowContext"], Awaitable[Any]]
Predicate = Callable[[Any], bool]


def accept_any(value: Any) -> bool:
    """Default success predicate: every returned value is a success."""
    return True


@dataclass(frozen=True)
class WorkflowStep:
    """
    Declaration of a single workflow step.

    Immutable once constructed; owned by the coordinator that runs it.

    Example:
        ```python
        create = WorkflowStep(
            name="create_source",
            operation=lambda ctx: client.create_resource("source"),
            predicate=lambda handle: handle.ok,
            expect="source database created",
        )
        ```
    """

    name: str
    operation: Operation
    retry_policy: RetryPolicy | None = None
    predicate: Predicate = field(default=accept_any)
    best_effort: bool = False
    timeout: float | None = None
    expect: str = "succeeds"

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("step name must be non-empty")
        if not callable(self.operation):
            raise TypeError(f"step {self.name!r}: operation must be callable")
        if not callable(self.predicate):
            raise TypeError(f"step {self.name!r}: predicate must be callable")
        if self.timeout is not None and self.timeout <= 0:
            raise ValueError(f"step {self.name!r}: timeout must be > 0, got {self.timeout}")

    @property
    def fatal(self) -> bool:
        """A fatal step's failure halts the workflow."""
        return not self.best_effort

    @property
    def policy(self) -> RetryPolicy:
        """Effective retry policy (single attempt when none declared)."""
        return self.retry_policy or RetryPolicy.NONE

    def __repr__(self) -> str:
        flags = "best-effort" if self.best_effort else "fatal"
        return f"WorkflowStep({self.name!r}, {flags}, attempts={self.policy.max_attempts})"
