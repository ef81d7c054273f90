"""
Pytest configuration and fixtures for pyrelay tests.

Provides a simulated clock, the in-memory database, and small step
factories for building workflows in tests.
"""

from collections.abc import AsyncGenerator
from typing import Any

import pytest

from pyrelay.core import ManualClock, WorkflowStep
from pyrelay.executor import Resolver
from pyrelay.models import RetryPolicy
from pyrelay.rpc import InMemoryDatabase

# Retry policy with short delays (10ms, 20ms) for tests that count attempts
FAST_RETRY = RetryPolicy(
    max_attempts=3, initial_delay_ms=10, max_delay_ms=100, backoff_multiplier=2.0
)


@pytest.fixture
def manual_clock() -> ManualClock:
    """Simulated clock starting at t=0."""
    return ManualClock()


@pytest.fixture
def resolver(manual_clock: ManualClock) -> Resolver:
    """Resolver polling against the simulated clock."""
    return Resolver(manual_clock)


@pytest.fixture
async def memory_db() -> AsyncGenerator[InMemoryDatabase, None]:
    """In-memory database with automatic cleanup."""
    db = InMemoryDatabase()
    yield db
    await db.reset()


# Step factories shared across tests


def value_step(name: str, value: Any, **kwargs: Any) -> WorkflowStep:
    """Step that returns a constant."""

    async def operation(ctx):
        return value

    return WorkflowStep(name=name, operation=operation, **kwargs)


def failing_step(name: str, error: BaseException, **kwargs: Any) -> WorkflowStep:
    """Step that always raises `error`."""

    async def operation(ctx):
        raise error

    return WorkflowStep(name=name, operation=operation, **kwargs)


class Flaky:
    """Operation that fails a fixed number of times before succeeding."""

    def __init__(self, failures: int, error: BaseException, value: Any = "ok"):
        self.failures = failures
        self.error = error
        self.value = value
        self.calls = 0

    async def __call__(self, ctx=None):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return self.value

