"""
Retry policy configuration for step execution.

Design Pattern: Strategy Pattern
RetryPolicy encapsulates retry behavior, allowing different retry strategies
without modifying the step execution code.

Design Rationale:
- Safe default: no automatic retries
- Simple retry: max_attempts=3 with standard backoff
- Advanced control: custom backoff and error classification
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, cast


@dataclass(frozen=True)
class RetryPolicy:
    """
    Configuration for step retry behavior.

    Controls how many times a step should be attempted on transient errors,
    the backoff between attempts and which errors count as transient.

    Examples:
        # Simple: just specify max attempts (uses standard delays)
        policy = RetryPolicy.with_max_attempts(3)

        # Named policy: predefined sensible defaults
        policy = RetryPolicy.STANDARD

        # Custom policy: full control
        policy = RetryPolicy(
            max_attempts=5,
            initial_delay_ms=1000,
            max_delay_ms=30000,
            backoff_multiplier=2.0,
            classify=lambda error: isinstance(error, ConflictError),
        )
    """

    max_attempts: int
    """Maximum number of attempts (including the first try).

    For example, max_attempts = 3 means:
    - Attempt 1: immediate (first try)
    - Attempt 2: after initial_delay
    - Attempt 3: after initial_delay * backoff_multiplier
    """

    initial_delay_ms: int = 1000
    """Initial delay before the first retry in milliseconds."""

    max_delay_ms: int = 30000
    """Maximum delay between retries in milliseconds (caps exponential backoff)."""

    backoff_multiplier: float = 2.0
    """Multiplier for exponential backoff.

    Each retry delay is calculated as:
    min(initial_delay * backoff_multiplier^(attempt-1), max_delay)
    """

    backoff: Callable[[int], float] | None = None
    """Optional custom backoff: attempt number (1-indexed) → delay in milliseconds.

    Replaces the exponential formula when set. Still capped at max_delay_ms.
    """

    classify: Callable[[BaseException], bool] | None = None
    """Optional classification: error → True if retryable, False if fatal.

    When unset, is_retryable_error() decides.
    """

    # =========================================================================
    # Predefined Policies
    # =========================================================================

    if TYPE_CHECKING:
        NONE: RetryPolicy
        STANDARD: RetryPolicy
        AGGRESSIVE: RetryPolicy
    else:
        NONE = cast("RetryPolicy", None)
        STANDARD = cast("RetryPolicy", None)
        AGGRESSIVE = cast("RetryPolicy", None)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.initial_delay_ms < 0 or self.max_delay_ms < 0:
            raise ValueError("retry delays must be non-negative")
        if self.backoff_multiplier < 1.0:
            raise ValueError(
                f"backoff_multiplier must be >= 1.0, got {self.backoff_multiplier}"
            )

    @classmethod
    def with_max_attempts(cls, max_attempts: int) -> RetryPolicy:
        """
        Create a policy with custom max_attempts (uses standard delays).

        Args:
            max_attempts: Maximum number of attempts

        Returns:
            RetryPolicy with standard delays

        Example:
            policy = RetryPolicy.with_max_attempts(5)
        """
        return cls(
            max_attempts=max_attempts,
            initial_delay_ms=1000,
            max_delay_ms=30000,
            backoff_multiplier=2.0,
        )

    def delay_for_attempt(self, attempt: int) -> int | None:
        """
        Calculate the delay before the next retry attempt.

        Uses exponential backoff: initial_delay * backoff_multiplier^(attempt-1)
        capped at max_delay, unless a custom backoff function is configured.

        Args:
            attempt: The attempt that just failed (1-indexed)

        Returns:
            Delay in milliseconds before the next attempt, or None if no more attempts.

        Raises:
            ValueError: If a custom backoff returns a negative delay

        Example:
            policy = RetryPolicy.STANDARD
            delay1 = policy.delay_for_attempt(1)  # Returns 1000 (1s)
            delay2 = policy.delay_for_attempt(2)  # Returns 2000 (2s)
            delay3 = policy.delay_for_attempt(3)  # Returns None (max attempts)
        """
        if attempt >= self.max_attempts:
            return None

        if self.backoff is not None:
            delay_ms = self.backoff(attempt)
            if delay_ms < 0:
                raise ValueError(f"backoff returned negative delay {delay_ms} for attempt {attempt}")
        else:
            # attempt=1 (first retry): multiplier^0 = 1 → initial_delay
            exponent = attempt - 1
            delay_ms = self.initial_delay_ms * self.backoff_multiplier**exponent

        return int(min(delay_ms, self.max_delay_ms))

    def is_retryable(self, error: BaseException) -> bool:
        """Classify an error as retryable (True) or fatal (False)."""
        if self.classify is not None:
            return bool(self.classify(error))
        return is_retryable_error(error)

    def __repr__(self) -> str:
        """Readable representation for debugging."""
        return (
            f"RetryPolicy(max_attempts={self.max_attempts}, "
            f"initial_delay_ms={self.initial_delay_ms}, "
            f"max_delay_ms={self.max_delay_ms}, "
            f"backoff_multiplier={self.backoff_multiplier})"
        )


# Initialize predefined policies after class definition
RetryPolicy.NONE = RetryPolicy(
    max_attempts=1, initial_delay_ms=0, max_delay_ms=0, backoff_multiplier=1.0
)

RetryPolicy.STANDARD = RetryPolicy(
    max_attempts=3,
    initial_delay_ms=1000,  # 1 second
    max_delay_ms=30000,  # 30 seconds
    backoff_multiplier=2.0,
)

RetryPolicy.AGGRESSIVE = RetryPolicy(
    max_attempts=10,
    initial_delay_ms=100,  # 100 milliseconds
    max_delay_ms=10000,  # 10 seconds
    backoff_multiplier=1.5,
)


# =============================================================================
# RetryableError - Fine-grained error retry control
# =============================================================================


class RetryableError(Exception):
    """
    Base class for errors that can specify whether they should be retried.

    Example:
        class ServiceError(RetryableError):
            def __init__(self, message: str, is_retryable: bool = True):
                super().__init__(message)
                self._retryable = is_retryable

            def is_retryable(self) -> bool:
                return self._retryable

        # Transient error - should retry
        raise ServiceError("Network timeout", is_retryable=True)

        # Permanent error - should NOT retry
        raise ServiceError("Database not found", is_retryable=False)
    """

    def is_retryable(self) -> bool:
        """
        Returns true if this error is transient and the operation should be retried.

        Returns:
            True if retryable, False if permanent
        """
        return True


def is_retryable_error(error: BaseException) -> bool:
    """Default error classification used when a policy has no classify function.

    Errors implementing is_retryable() decide for themselves. Timeouts and
    connection-level failures are transient. Everything else is fatal.
    """
    if hasattr(error, "is_retryable") and callable(error.is_retryable):
        return bool(error.is_retryable())
    return isinstance(error, (asyncio.TimeoutError, ConnectionError, OSError))
