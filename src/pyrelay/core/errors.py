"""Error taxonomy for workflow execution.

Every error a step can raise is classified as retryable or fatal through
RetryableError.is_retryable(), so retry decisions never depend on parsing
messages.

    RelayError
        TransientError      network, timeout, service busy - retried
            StepTimeout     a step exceeded its per-attempt timeout
        PermanentError      invalid input, not found, conflict - never retried
        UnsatisfiedResult   success predicate rejected a value - retried
        TimeoutExceeded     a poll condition never held - not retried
        StepFailed          terminal per-step failure
        WorkflowAborted     cooperative cancellation
"""

from __future__ import annotations

from pyrelay.models.retry import RetryableError

NOT_FOUND = "not_found"
CONFLICT = "conflict"
INVALID = "invalid"
UNAUTHORIZED = "unauthorized"
UNKNOWN = "unknown"


class RelayError(RetryableError):
    """Base class for all pyrelay errors."""

    pass


class TransientError(RelayError):
    """
    Network failure, timeout or busy service.

    The same request may succeed later, so it is retried per policy.
    """

    def __init__(self, message: str, *, status: int | None = None):
        super().__init__(message)
        self.status = status

    def is_retryable(self) -> bool:
        return True


class StepTimeout(TransientError):
    """A step attempt did not finish within its timeout."""

    def __init__(self, step_name: str, timeout: float):
        super().__init__(f"step {step_name!r} timed out after {timeout}s")
        self.step_name = step_name
        self.timeout = timeout


class PermanentError(RelayError):
    """
    Invalid input, missing resource, conflict.

    Retrying the same request cannot succeed. `kind` names the category
    so callers can react without inspecting HTTP details.
    """

    def __init__(self, message: str, *, kind: str = UNKNOWN, status: int | None = None):
        super().__init__(message)
        self.kind = kind
        self.status = status

    def is_retryable(self) -> bool:
        return False

    @property
    def is_not_found(self) -> bool:
        return self.kind == NOT_FOUND

    @property
    def is_conflict(self) -> bool:
        return self.kind == CONFLICT


class UnsatisfiedResult(RelayError):
    """A step's success predicate rejected the value it produced."""

    def __init__(self, step_name: str, value: object):
        super().__init__(f"step {step_name!r} produced an unacceptable result: {value!r}")
        self.step_name = step_name
        self.value = value

    def is_retryable(self) -> bool:
        return True


class TimeoutExceeded(RelayError):
    """A poll condition did not become true within its timeout."""

    def __init__(self, description: str, polls: int, elapsed: float):
        label = description or "poll condition"
        super().__init__(f"{label} not satisfied after {polls} polls in {elapsed:.3f}s")
        self.description = description
        self.polls = polls
        self.elapsed = elapsed

    def is_retryable(self) -> bool:
        return False


class StepFailed(RelayError):
    """
    Terminal failure of one step.

    Raised once the retry policy is exhausted or a fatal error occurs.
    The original error is chained as __cause__.
    """

    def __init__(self, step_name: str, attempts: int, cause: BaseException):
        super().__init__(
            f"step {step_name!r} failed after {attempts} attempt(s): "
            f"{type(cause).__name__}: {cause}"
        )
        self.step_name = step_name
        self.attempts = attempts
        self.__cause__ = cause

    def is_retryable(self) -> bool:
        return False


class WorkflowAborted(RelayError):
    """The workflow run was cancelled."""

    def __init__(self, run_id: str | None = None, step_name: str | None = None):
        where = f" at step {step_name!r}" if step_name else ""
        super().__init__(f"workflow run aborted{where}")
        self.run_id = run_id
        self.step_name = step_name

    def is_retryable(self) -> bool:
        return False


class CoordinatorError(Exception):
    """
    Coordinator misuse (for example running the same instance twice).

    Custom exception with context, not generic Exception.
    """

    pass


def is_not_found(error: BaseException) -> bool:
    """True if error is a PermanentError of kind not_found."""
    return isinstance(error, PermanentError) and error.is_not_found


def is_conflict(error: BaseException) -> bool:
    """True if error is a PermanentError of kind conflict."""
    return isinstance(error, PermanentError) and error.is_conflict
