"""Retry policy execution.

Runs an operation up to RetryPolicy.max_attempts times:
- Success: value accepted by the predicate, return it with the attempt count
- Retryable error: sleep per backoff, try again
- Fatal error or exhausted attempts: raise StepFailed chained to the last error

Design: Information Hiding (Parnas)
Retry decisions are isolated here, allowing the coordinator loop to
remain simple and retry policies to evolve independently.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from pyrelay.core.clock import Clock, SystemClock
from pyrelay.core.context import check_cancelled
from pyrelay.core.errors import StepFailed, StepTimeout, UnsatisfiedResult, WorkflowAborted
from pyrelay.models.retry import RetryPolicy

if TYPE_CHECKING:
    from pyrelay.core.context import WorkflowContext
    from pyrelay.core.step import WorkflowStep

logger = logging.getLogger(__name__)

__all__ = ["Attempted", "attempt", "attempt_step"]


@dataclass(frozen=True)
class Attempted:
    """Successful result of a retried operation."""

    value: Any
    attempts_used: int


async def attempt(
    operation: Callable[[], Awaitable[Any]],
    policy: RetryPolicy | None = None,
    *,
    name: str = "operation",
    clock: Clock | None = None,
    predicate: Callable[[Any], bool] | None = None,
    timeout: float | None = None,
) -> Attempted:
    """Invoke operation under a retry policy.

    Args:
        operation: Zero-argument coroutine factory, called once per attempt
        policy: Retry policy (single attempt when None)
        name: Step name used in errors and logs
        clock: Time source for backoff sleeps
        predicate: Success predicate; a rejected value counts as a retryable failure
        timeout: Per-attempt timeout in seconds (StepTimeout, retryable)

    Returns:
        Attempted with the accepted value and the number of invocations

    Raises:
        StepFailed: Fatal error, retries exhausted, or the policy itself raised
        WorkflowAborted: The enclosing run was cancelled between attempts

    Example:
        ```python
        attempted = await attempt(
            lambda: client.stop_replication(job),
            RetryPolicy.with_max_attempts(3),
            name="stop_replication",
        )
        print(attempted.attempts_used)
        ```
    """
    policy = policy or RetryPolicy.NONE
    clock = clock or SystemClock()
    attempt_no = 0

    while True:
        check_cancelled()
        attempt_no += 1
        try:
            value = await _invoke(operation, name, timeout)
            if predicate is not None and not predicate(value):
                raise UnsatisfiedResult(name, value)
            return Attempted(value=value, attempts_used=attempt_no)

        except WorkflowAborted:
            raise

        except Exception as error:
            try:
                retryable = policy.is_retryable(error)
                delay_ms = policy.delay_for_attempt(attempt_no) if retryable else None
            except Exception as policy_error:
                logger.error(f"Step {name} retry policy raised {policy_error!r} on {error!r}")
                raise StepFailed(name, attempt_no, policy_error) from policy_error

            if delay_ms is None:
                if retryable:
                    logger.debug(
                        f"Step {name} exhausted retry policy "
                        f"({attempt_no}/{policy.max_attempts}): {error}"
                    )
                else:
                    logger.debug(f"Step {name} hit non-retryable error: {error!r}")
                raise StepFailed(name, attempt_no, error) from error

            logger.info(
                f"Step {name} attempt {attempt_no}/{policy.max_attempts} failed "
                f"({type(error).__name__}: {error}), retrying in {delay_ms}ms"
            )
            await clock.sleep(delay_ms / 1000.0)


async def attempt_step(
    step: "WorkflowStep", context: "WorkflowContext", clock: Clock | None = None
) -> Attempted:
    """Run a WorkflowStep's operation under its own retry policy, predicate and timeout."""
    return await attempt(
        lambda: step.operation(context),
        step.policy,
        name=step.name,
        clock=clock,
        predicate=step.predicate,
        timeout=step.timeout,
    )


async def _invoke(operation: Callable[[], Awaitable[Any]], name: str, timeout: float | None) -> Any:
    if timeout is None:
        return await operation()
    try:
        return await asyncio.wait_for(operation(), timeout)
    except asyncio.TimeoutError as e:
        raise StepTimeout(name, timeout) from e
