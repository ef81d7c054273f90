"""Workflow coordinator: sequential, dependency-chained step execution.

State machine:

    PENDING → RUNNING(step i) → RUNNING(step i+1) → ... → COMPLETED
                              ↘ FAILED   (fatal step failed)
                              ↘ ABORTED  (run cancelled)

Each step's result is written into the run's WorkflowContext before the
next step starts, so step i+1 can consume what step i produced (a
replication job reference, a document revision). After a fatal failure only
best-effort steps still run; they exist for idempotent cleanup.

Design Patterns:
- Template Method: run() fixes the per-step algorithm (check cancel, attempt,
  record, advance)
- Strategy: retry policies, predicates and clocks are injected per step/run
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Generator, Iterable
from typing import Any

import xxhash
from uuid_extensions import uuid7

from pyrelay.core.clock import Clock, SystemClock
from pyrelay.core.context import CURRENT_RUN, RunState, WorkflowContext
from pyrelay.core.errors import (
    CoordinatorError,
    StepFailed,
    WorkflowAborted,
    is_not_found,
)
from pyrelay.core.step import WorkflowStep
from pyrelay.executor.report import Report, Reporter
from pyrelay.executor.retry import attempt_step
from pyrelay.models.outcome import StepOutcome
from pyrelay.models.result import Aborted, Completed, Failed, WorkflowResult
from pyrelay.models.status import StepStatus, WorkflowStatus

logger = logging.getLogger(__name__)

__all__ = ["Coordinator", "RunHandle", "definition_hash", "run_workflow"]


class Coordinator:
    """Runs a fixed, ordered list of steps exactly once.

    A coordinator is single-use: construct one per run, call run() (or
    start()) once, read the WorkflowResult. Concurrent runs each use their
    own coordinator and share only the RPC client.

    Usage:
        ```python
        coordinator = Coordinator(
            simple_replication(client, "source", "target"),
            clock=SystemClock(),
        )
        result = await coordinator.run()
        print(coordinator.report().summary())
        ```
    """

    def __init__(
        self,
        steps: Iterable[WorkflowStep],
        *,
        clock: Clock | None = None,
        reporter: Reporter | None = None,
        run_id: str | None = None,
    ):
        """Initialize a coordinator for one run.

        Args:
            steps: Ordered step declarations (names must be unique)
            clock: Time source for retry backoff and poll steps (defaults to SystemClock)
            reporter: Collector for step outcomes (a fresh Reporter by default)
            run_id: Identifier for the run (time-ordered uuid7 by default)

        Raises:
            ValueError: If two steps share a name
        """
        self._steps: tuple[WorkflowStep, ...] = tuple(steps)
        _check_unique_names(self._steps)

        self._clock = clock or SystemClock()
        self._reporter = reporter if reporter is not None else Reporter()
        self._run_id = run_id or str(uuid7())
        self._context = WorkflowContext(self._run_id)
        self._state = RunState(self._run_id, clock=self._clock)
        self._status = WorkflowStatus.PENDING
        self._current_index: int | None = None
        self._result: WorkflowResult | None = None
        self._started = False

    def __repr__(self) -> str:
        return f"Coordinator(run_id={self._run_id}, steps={len(self._steps)}, status={self._status})"

    # ========================================================================
    # Inspection
    # ========================================================================

    @property
    def run_id(self) -> str:
        return self._run_id

    @property
    def steps(self) -> tuple[WorkflowStep, ...]:
        return self._steps

    @property
    def status(self) -> WorkflowStatus:
        return self._status

    @property
    def current_step(self) -> WorkflowStep | None:
        """Step currently executing (None when not RUNNING)."""
        if self._current_index is None:
            return None
        return self._steps[self._current_index]

    @property
    def reporter(self) -> Reporter:
        return self._reporter

    @property
    def result(self) -> WorkflowResult | None:
        return self._result

    @property
    def definition_hash(self) -> int:
        return definition_hash(self._steps)

    def report(self) -> Report:
        """Final report of the run.

        Raises:
            CoordinatorError: If the run has not finished
        """
        if self._result is None:
            raise CoordinatorError(f"run {self._run_id} has not finished")
        return self._reporter.report(self._result, self.definition_hash)

    # ========================================================================
    # Control
    # ========================================================================

    def cancel(self) -> None:
        """Request cancellation.

        Observed before the next step, between retry attempts and between
        poll iterations. An in-flight operation completes and its result is
        discarded.
        """
        if not self._status.is_terminal:
            logger.info(f"Run {self._run_id} cancellation requested")
        self._state.cancel()

    def start(self) -> RunHandle:
        """Schedule run() as a task and return a handle to it."""
        self._claim()
        task = asyncio.create_task(self._run(), name=f"pyrelay-run-{self._run_id}")
        return RunHandle(self, task)

    async def run(self) -> WorkflowResult:
        """Execute every step in order and return the terminal result.

        Raises:
            CoordinatorError: If this coordinator already ran
        """
        self._claim()
        return await self._run()

    # ========================================================================
    # Execution
    # ========================================================================

    def _claim(self) -> None:
        if self._started:
            raise CoordinatorError(f"coordinator for run {self._run_id} is single-use")
        self._started = True

    async def _run(self) -> WorkflowResult:
        token = CURRENT_RUN.set(self._state)
        try:
            return await self._execute()
        except BaseException:
            if not self._status.is_terminal:
                self._status = WorkflowStatus.FAILED
            raise
        finally:
            CURRENT_RUN.reset(token)
            self._current_index = None
            self._state.current_step = None

    async def _execute(self) -> WorkflowResult:
        outcomes: list[StepOutcome] = []
        failure: StepOutcome | None = None
        self._status = WorkflowStatus.RUNNING
        logger.info(f"Run {self._run_id} started with {len(self._steps)} steps")

        for index, step in enumerate(self._steps):
            if self._state.cancelled:
                return self._abort(outcomes, index, step.name)

            if failure is not None and step.fatal:
                logger.debug(f"Run {self._run_id} skipping step {step.name} after failure")
                self._emit(outcomes, self._skipped(index, step))
                continue

            self._current_index = index
            self._state.current_step = step.name
            outcome = await self._run_step(index, step)

            if outcome.status == StepStatus.ABORTED:
                self._emit(outcomes, outcome)
                return self._abort(outcomes, index + 1, step.name)

            self._emit(outcomes, outcome)
            if outcome.is_fatal_failure and failure is None:
                failure = outcome

        self._current_index = None

        if failure is not None:
            self._status = WorkflowStatus.FAILED
            logger.error(f"Run {self._run_id} failed at step {failure.name}: {failure.error}")
            self._result = Failed(
                run_id=self._run_id,
                step_name=failure.name,
                step_index=failure.index,
                error=failure.error,
                context=self._context.snapshot(),
                outcomes=tuple(outcomes),
            )
        else:
            self._status = WorkflowStatus.COMPLETED
            logger.info(f"Run {self._run_id} completed")
            self._result = Completed(
                run_id=self._run_id,
                context=self._context.snapshot(),
                outcomes=tuple(outcomes),
            )
        return self._result

    async def _run_step(self, index: int, step: WorkflowStep) -> StepOutcome:
        logger.info(f"Run {self._run_id} step {index + 1}/{len(self._steps)}: {step.name}")
        started = self._clock.now()

        try:
            attempted = await attempt_step(step, self._context, self._clock)

        except WorkflowAborted:
            return StepOutcome(
                name=step.name,
                index=index,
                status=StepStatus.ABORTED,
                best_effort=step.best_effort,
                duration=self._clock.now() - started,
                expect=step.expect,
            )

        except StepFailed as error:
            duration = self._clock.now() - started
            if self._state.cancelled:
                return self._discarded(index, step, error.attempts, duration)

            cause = error.__cause__
            if step.best_effort and cause is not None and is_not_found(cause):
                logger.info(f"Best-effort step {step.name}: resource already absent")
                self._context._record(step.name, None)
                return StepOutcome(
                    name=step.name,
                    index=index,
                    status=StepStatus.SUCCEEDED,
                    attempts_used=error.attempts,
                    best_effort=True,
                    recovered=True,
                    duration=duration,
                    expect=step.expect,
                )

            if step.best_effort:
                logger.warning(f"Best-effort step {step.name} failed: {error}")
            else:
                logger.error(f"Step {step.name} failed: {error}")
            return StepOutcome(
                name=step.name,
                index=index,
                status=StepStatus.FAILED,
                error=error,
                attempts_used=error.attempts,
                best_effort=step.best_effort,
                duration=duration,
                expect=step.expect,
            )

        duration = self._clock.now() - started
        if self._state.cancelled:
            return self._discarded(index, step, attempted.attempts_used, duration)

        self._context._record(step.name, attempted.value)
        return StepOutcome(
            name=step.name,
            index=index,
            status=StepStatus.SUCCEEDED,
            value=attempted.value,
            attempts_used=attempted.attempts_used,
            best_effort=step.best_effort,
            duration=duration,
            expect=step.expect,
        )

    def _discarded(
        self, index: int, step: WorkflowStep, attempts: int, duration: float
    ) -> StepOutcome:
        logger.info(f"Run {self._run_id} cancelled during {step.name}; result discarded")
        return StepOutcome(
            name=step.name,
            index=index,
            status=StepStatus.ABORTED,
            attempts_used=attempts,
            best_effort=step.best_effort,
            duration=duration,
            expect=step.expect,
        )

    def _skipped(self, index: int, step: WorkflowStep) -> StepOutcome:
        return StepOutcome(
            name=step.name,
            index=index,
            status=StepStatus.SKIPPED,
            best_effort=step.best_effort,
            expect=step.expect,
        )

    def _abort(self, outcomes: list[StepOutcome], next_index: int, step_name: str) -> Aborted:
        for index in range(next_index, len(self._steps)):
            self._emit(outcomes, self._skipped(index, self._steps[index]))

        self._status = WorkflowStatus.ABORTED
        self._current_index = None
        logger.warning(f"Run {self._run_id} aborted at step {step_name}")
        self._result = Aborted(
            run_id=self._run_id,
            step_name=step_name,
            context=self._context.snapshot(),
            outcomes=tuple(outcomes),
        )
        return self._result

    def _emit(self, outcomes: list[StepOutcome], outcome: StepOutcome) -> None:
        outcomes.append(outcome)
        self._reporter.record(outcome)


class RunHandle:
    """Handle for controlling a running workflow.

    Composition - handle HAS-A coordinator, not IS-A coordinator.

    Usage:
        handle = Coordinator(steps).start()
        handle.cancel()
        result = await handle
    """

    def __init__(self, coordinator: Coordinator, task: asyncio.Task):
        self._coordinator = coordinator
        self._task = task

    @property
    def run_id(self) -> str:
        return self._coordinator.run_id

    @property
    def status(self) -> WorkflowStatus:
        return self._coordinator.status

    @property
    def coordinator(self) -> Coordinator:
        return self._coordinator

    def done(self) -> bool:
        """Return True if the run has reached a terminal state."""
        return self._task.done()

    def cancel(self) -> None:
        """Request cooperative cancellation (see Coordinator.cancel)."""
        self._coordinator.cancel()

    async def result(self) -> WorkflowResult:
        """Wait for the run to finish and return its result."""
        return await self._task

    def __await__(self) -> Generator[Any, None, WorkflowResult]:
        return self._task.__await__()


async def run_workflow(
    steps: Iterable[WorkflowStep], *, clock: Clock | None = None
) -> tuple[WorkflowResult, Report]:
    """Run steps with a fresh coordinator and return the result with its report."""
    coordinator = Coordinator(steps, clock=clock)
    result = await coordinator.run()
    return result, coordinator.report()


def definition_hash(steps: Iterable[WorkflowStep]) -> int:
    """Fingerprint of a workflow definition (names, flags, attempts).

    Two runs of the same declared workflow share a fingerprint, so reports
    from different runs can be compared.

    Returns:
        Hash value as integer (masked to 63 bits)
    """
    hasher = xxhash.xxh64()
    for step in steps:
        flag = "b" if step.best_effort else "f"
        hasher.update(f"{step.name}\x00{flag}\x00{step.policy.max_attempts}\x1e".encode())
    return hasher.intdigest() & 0x7FFFFFFFFFFFFFFF


def _check_unique_names(steps: tuple[WorkflowStep, ...]) -> None:
    seen: set[str] = set()
    for step in steps:
        if not isinstance(step, WorkflowStep):
            raise TypeError(f"expected WorkflowStep, got {type(step).__name__}")
        if step.name in seen:
            raise ValueError(f"duplicate step name {step.name!r}")
        seen.add(step.name)
