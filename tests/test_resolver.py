"""Tests for eventual-consistency polling."""

import pytest

from pyrelay.core import (
    ManualClock,
    PermanentError,
    SystemClock,
    TimeoutExceeded,
    TransientError,
    WorkflowAborted,
)
from pyrelay.core.context import CURRENT_RUN, RunState
from pyrelay.executor import Coordinator, PollCondition, Resolver, poll_step
from pyrelay.models import StepStatus, is_failed


class Counter:
    """Fetch returning 1, 2, 3, ... on successive polls."""

    def __init__(self):
        self.fetches = 0

    async def __call__(self):
        self.fetches += 1
        return self.fetches


@pytest.mark.asyncio
async def test_condition_true_immediately(resolver, manual_clock):
    fetch = Counter()
    resolution = await resolver.resolve(
        PollCondition(fetch=fetch, predicate=lambda v: True, interval=1.0, timeout=3.0)
    )

    assert resolution.value == 1
    assert resolution.polls == 1
    assert resolution.elapsed == 0.0
    assert manual_clock.sleeps == []


@pytest.mark.asyncio
async def test_condition_true_on_kth_poll(resolver, manual_clock):
    """A condition first true on poll k resolves after exactly k fetches."""
    fetch = Counter()
    resolution = await resolver.resolve(
        PollCondition(fetch=fetch, predicate=lambda v: v >= 3, interval=1.0, timeout=10.0)
    )

    assert resolution.value == 3
    assert resolution.polls == 3
    assert fetch.fetches == 3
    assert manual_clock.now() == 2.0


@pytest.mark.asyncio
async def test_condition_never_true_times_out_at_deadline(resolver, manual_clock):
    """interval=1, timeout=3: fetches at t=0,1,2,3 then TimeoutExceeded at t=3."""
    fetch = Counter()

    with pytest.raises(TimeoutExceeded) as exc_info:
        await resolver.resolve(
            PollCondition(
                fetch=fetch,
                predicate=lambda v: False,
                interval=1.0,
                timeout=3.0,
                description="never",
            )
        )

    assert fetch.fetches == 4
    assert exc_info.value.polls == 4
    assert manual_clock.now() == 3.0
    assert exc_info.value.elapsed == 3.0
    assert "never" in str(exc_info.value)


@pytest.mark.asyncio
async def test_last_sleep_clamped_to_deadline(resolver, manual_clock):
    with pytest.raises(TimeoutExceeded):
        await resolver.resolve(
            PollCondition(fetch=Counter(), predicate=lambda v: False, interval=2.0, timeout=3.0)
        )

    assert manual_clock.sleeps == [2.0, 1.0]
    assert manual_clock.now() == 3.0


@pytest.mark.asyncio
async def test_interval_backoff(resolver, manual_clock):
    with pytest.raises(TimeoutExceeded):
        await resolver.resolve(
            PollCondition(
                fetch=Counter(),
                predicate=lambda v: False,
                interval=1.0,
                timeout=20.0,
                backoff_multiplier=2.0,
                max_interval=4.0,
            )
        )

    assert manual_clock.sleeps[:5] == [1.0, 2.0, 4.0, 4.0, 4.0]


@pytest.mark.asyncio
async def test_transient_fetch_error_counts_as_unsatisfied(resolver):
    calls = 0

    async def fetch():
        nonlocal calls
        calls += 1
        if calls < 3:
            raise TransientError("connection reset")
        return "ready"

    resolution = await resolver.resolve(
        PollCondition(fetch=fetch, predicate=lambda v: v == "ready", interval=0.5, timeout=5.0)
    )

    assert resolution.value == "ready"
    assert resolution.polls == 3


@pytest.mark.asyncio
async def test_permanent_fetch_error_propagates(resolver):
    async def fetch():
        raise PermanentError("gone", kind="not_found", status=404)

    with pytest.raises(PermanentError):
        await resolver.resolve(
            PollCondition(fetch=fetch, predicate=lambda v: True, interval=0.5, timeout=5.0)
        )


@pytest.mark.asyncio
async def test_cancellation_observed_between_polls(resolver):
    state = RunState("run-1")
    fetch = Counter()

    def predicate(value):
        if value == 2:
            state.cancel()
        return False

    token = CURRENT_RUN.set(state)
    try:
        with pytest.raises(WorkflowAborted):
            await resolver.resolve(
                PollCondition(fetch=fetch, predicate=predicate, interval=1.0, timeout=10.0)
            )
    finally:
        CURRENT_RUN.reset(token)

    assert fetch.fetches == 2


@pytest.mark.parametrize(
    "kwargs",
    [
        {"interval": 0, "timeout": 1.0},
        {"interval": 1.0, "timeout": 0},
        {"interval": 1.0, "timeout": 1.0, "backoff_multiplier": 0.5},
        {"interval": 2.0, "timeout": 1.0, "max_interval": 1.0},
    ],
)
def test_invalid_conditions_rejected(kwargs):
    async def fetch():
        return None

    with pytest.raises(ValueError):
        PollCondition(fetch=fetch, predicate=bool, **kwargs)


@pytest.mark.asyncio
async def test_poll_step_records_satisfying_value():
    clock = ManualClock()
    fetch = Counter()
    step = poll_step(
        "wait",
        lambda ctx: PollCondition(
            fetch=fetch, predicate=lambda v: v == 2, interval=1.0, timeout=5.0
        ),
        resolver=Resolver(clock),
    )

    result = await Coordinator([step], clock=clock).run()

    assert result.context["wait"] == 2


@pytest.mark.asyncio
async def test_poll_step_timeout_fails_workflow():
    clock = ManualClock()
    step = poll_step(
        "wait",
        lambda ctx: PollCondition(
            fetch=Counter(), predicate=lambda v: False, interval=1.0, timeout=2.0
        ),
        resolver=Resolver(clock),
    )

    result = await Coordinator([step], clock=clock).run()

    assert is_failed(result)
    assert result.outcomes[0].status == StepStatus.FAILED
    assert isinstance(result.error.__cause__, TimeoutExceeded)


@pytest.mark.asyncio
async def test_poll_step_defaults_to_coordinator_clock():
    clock = ManualClock()
    fetch = Counter()
    step = poll_step(
        "wait",
        lambda ctx: PollCondition(
            fetch=fetch, predicate=lambda v: v == 3, interval=1.0, timeout=5.0
        ),
    )

    result = await Coordinator([step], clock=clock).run()

    assert result.context["wait"] == 3
    assert clock.sleeps == [1.0, 1.0]
    assert result.outcomes[0].duration == pytest.approx(2.0)


def test_resolver_without_run_uses_system_clock():
    assert isinstance(Resolver().clock, SystemClock)
    clock = ManualClock()
    assert Resolver(clock).clock is clock
