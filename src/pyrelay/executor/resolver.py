"""Eventual-consistency polling.

Some effects are not immediately observable: a continuous replication job
propagates documents to its target at its own pace, with no completion
signal. The Resolver re-issues a fetch on an interval until a caller
supplied predicate holds, or fails with TimeoutExceeded once the timeout
has elapsed.

Timeline for interval=1, timeout=3 and a condition that never holds:

    t=0 fetch → t=1 fetch → t=2 fetch → t=3 fetch → TimeoutExceeded

The last fetch happens exactly at the deadline, so the failure is raised at
the timeout boundary, never before and never after.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from pyrelay.core.clock import Clock, SystemClock
from pyrelay.core.context import WorkflowContext, check_cancelled, get_current_run
from pyrelay.core.errors import TimeoutExceeded, TransientError
from pyrelay.core.step import WorkflowStep
from pyrelay.models.retry import RetryPolicy

logger = logging.getLogger(__name__)

# Float slack when comparing clock readings against the deadline
_EPSILON = 1e-9

__all__ = ["PollCondition", "Resolution", "Resolver", "poll_step"]


@dataclass(frozen=True)
class PollCondition:
    """
    A predicate over an asynchronously fetched value.

    The fetch is re-issued on every poll, never cached.

    Attributes:
        fetch: Zero-argument coroutine factory returning the current value
        predicate: True once the value is acceptable
        interval: Seconds between polls (> 0)
        timeout: Total budget in seconds (> 0)
        backoff_multiplier: Interval growth factor per poll (>= 1)
        max_interval: Upper bound for the grown interval
        description: Human label used in errors and logs
    """

    fetch: Callable[[], Awaitable[Any]]
    predicate: Callable[[Any], bool]
    interval: float
    timeout: float
    backoff_multiplier: float = 1.0
    max_interval: float | None = None
    description: str = ""

    def __post_init__(self) -> None:
        if self.interval <= 0:
            raise ValueError(f"poll interval must be > 0, got {self.interval}")
        if self.timeout <= 0:
            raise ValueError(f"poll timeout must be > 0, got {self.timeout}")
        if self.backoff_multiplier < 1.0:
            raise ValueError(
                f"backoff_multiplier must be >= 1.0, got {self.backoff_multiplier}"
            )
        if self.max_interval is not None and self.max_interval < self.interval:
            raise ValueError("max_interval must be >= interval")

    def next_interval(self, interval: float) -> float:
        grown = interval * self.backoff_multiplier
        if self.max_interval is not None:
            grown = min(grown, self.max_interval)
        return grown


@dataclass(frozen=True)
class Resolution:
    """A satisfied poll condition."""

    value: Any
    polls: int
    elapsed: float


class Resolver:
    """Polls conditions against a clock.

    Stateless apart from the clock, so one resolver can serve any number
    of concurrent runs. Without an explicit clock it polls on the clock of
    the enclosing coordinator run, or on SystemClock outside a run.

    Usage:
        resolver = Resolver()
        resolution = await resolver.resolve(
            PollCondition(
                fetch=lambda: client.get_replication_status(job),
                predicate=lambda status: status.job_id is not None,
                interval=0.5,
                timeout=30.0,
                description="replication job id",
            )
        )
        status = resolution.value
    """

    def __init__(self, clock: Clock | None = None):
        self._clock = clock

    @property
    def clock(self) -> Clock:
        if self._clock is not None:
            return self._clock
        run = get_current_run()
        if run is not None and run.clock is not None:
            return run.clock
        return SystemClock()

    async def resolve(self, condition: PollCondition) -> Resolution:
        """Poll until the condition holds.

        Transient fetch errors count as an unsatisfied poll. Permanent
        errors propagate immediately.

        Raises:
            TimeoutExceeded: The condition did not hold within the timeout
            WorkflowAborted: The enclosing run was cancelled between polls
        """
        clock = self.clock
        started = clock.now()
        deadline = started + condition.timeout
        interval = condition.interval
        polls = 0
        label = condition.description or "condition"

        while True:
            polls += 1
            try:
                value = await condition.fetch()
            except TransientError as e:
                logger.debug(f"Poll {polls} of {label} failed transiently: {e}")
            else:
                if condition.predicate(value):
                    elapsed = clock.now() - started
                    logger.debug(f"Resolved {label} after {polls} polls ({elapsed:.3f}s)")
                    return Resolution(value=value, polls=polls, elapsed=elapsed)

            now = clock.now()
            if now >= deadline - _EPSILON:
                raise TimeoutExceeded(condition.description, polls, now - started)

            await clock.sleep(min(interval, deadline - now))
            check_cancelled()
            interval = condition.next_interval(interval)


def poll_step(
    name: str,
    condition: Callable[[WorkflowContext], PollCondition],
    *,
    resolver: Resolver | None = None,
    best_effort: bool = False,
    retry_policy: RetryPolicy | None = None,
    expect: str | None = None,
) -> WorkflowStep:
    """Build a step that resolves a poll condition built from the context.

    The step's result is the satisfying value (not the Resolution). Without
    a resolver, the step polls on the clock of the coordinator running it.

    Example:
        ```python
        wait = poll_step(
            "wait_for_replication",
            lambda ctx: PollCondition(
                fetch=lambda: client.get_replication_status(ctx["start_replication"]),
                predicate=lambda status: status.job_id is not None,
                interval=0.5,
                timeout=30.0,
            ),
        )
        ```
    """
    resolver = resolver or Resolver()

    async def operation(ctx: WorkflowContext) -> Any:
        resolution = await resolver.resolve(condition(ctx))
        return resolution.value

    return WorkflowStep(
        name=name,
        operation=operation,
        retry_policy=retry_policy,
        best_effort=best_effort,
        expect=expect or "condition holds before timeout",
    )
