"""Workflow context and task-local run state.

WorkflowContext carries step results forward: each step reads the results
of earlier steps by name. RunState carries cancellation and the run's clock, and is published
through a ContextVar so the retry loop and the resolver can observe it
without threading it through every call.

Design: Task-Local State (contextvars)
    Each coordinator run executes in its own task with its own RunState,
    allowing multiple runs to execute concurrently without interference.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterator, Mapping
from contextvars import ContextVar
from types import MappingProxyType
from typing import Any

from pyrelay.core.clock import Clock
from pyrelay.core.errors import WorkflowAborted


class WorkflowContext(Mapping[str, Any]):
    """Append-only mapping from step name to step result.

    Steps get read access through the Mapping interface. Only the
    coordinator writes, via _record(), once per step.

    Usage:
        ```python
        async def stop(ctx: WorkflowContext) -> Ack:
            job = ctx["start_replication"]
            return await client.stop_replication(job)
        ```
    """

    def __init__(self, run_id: str):
        self.run_id = run_id
        self._results: dict[str, Any] = {}

    def __getitem__(self, name: str) -> Any:
        try:
            return self._results[name]
        except KeyError:
            raise KeyError(
                f"no result for step {name!r} in run {self.run_id} "
                f"(available: {', '.join(self._results) or 'none'})"
            ) from None

    def __iter__(self) -> Iterator[str]:
        return iter(self._results)

    def __len__(self) -> int:
        return len(self._results)

    def _record(self, name: str, value: Any) -> None:
        if name in self._results:
            raise ValueError(f"step {name!r} already recorded in run {self.run_id}")
        self._results[name] = value

    def snapshot(self) -> Mapping[str, Any]:
        """Read-only copy of the current results."""
        return MappingProxyType(dict(self._results))

    def __repr__(self) -> str:
        return f"WorkflowContext(run_id={self.run_id}, steps={list(self._results)})"


class RunState:
    """Cancellation state and clock of one workflow run."""

    def __init__(self, run_id: str, clock: Clock | None = None):
        self.run_id = run_id
        self.clock = clock
        self.current_step: str | None = None
        self._cancelled = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        self._cancelled.set()

    def raise_if_cancelled(self) -> None:
        """Raise WorkflowAborted if the run has been cancelled."""
        if self._cancelled.is_set():
            raise WorkflowAborted(self.run_id, self.current_step)


# =============================================================================
# Task-Local Context Variables
# =============================================================================

CURRENT_RUN: ContextVar[RunState | None] = ContextVar("current_run", default=None)
"""Task-local RunState of the workflow run executing in this task."""


def get_current_run() -> RunState | None:
    """Return the RunState of the enclosing workflow run, if any."""
    return CURRENT_RUN.get()


def check_cancelled() -> None:
    """Raise WorkflowAborted if the enclosing run was cancelled.

    No-op outside a workflow run.
    """
    run = CURRENT_RUN.get()
    if run is not None:
        run.raise_if_cancelled()
