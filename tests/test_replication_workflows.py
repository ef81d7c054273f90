"""End-to-end replication check workflows against the in-memory database."""

import asyncio

import pytest

from pyrelay.core import PermanentError, TimeoutExceeded, TransientError, WorkflowStep
from pyrelay.executor import Coordinator
from pyrelay.models import StepStatus, WorkflowStatus, is_completed, is_failed
from pyrelay.rpc import InMemoryDatabase, ReplicationStatus
from pyrelay.workflows import (
    database_lifecycle,
    fanout_replication,
    sample_documents,
    simple_replication,
    stop_policy,
    wait_for_replication,
)

SIMPLE_STEPS = [
    "create_source",
    "create_target",
    "start_replication",
    "wait_for_replication",
    "stop_replication",
    "delete_target",
    "delete_source",
]


async def run(steps, clock):
    coordinator = Coordinator(steps, clock=clock)
    result = await coordinator.run()
    return result, coordinator.report()


# ==============================================================================
# Database lifecycle
# ==============================================================================


@pytest.mark.asyncio
async def test_database_lifecycle(memory_db, manual_clock):
    result, report = await run(database_lifecycle(memory_db, "lifecycle"), manual_clock)

    assert is_completed(result)
    assert report.exit_code == 0
    assert memory_db.databases() == []
    assert [c.step_name for c in report.checks] == ["create_lifecycle", "delete_lifecycle"]


@pytest.mark.asyncio
async def test_database_lifecycle_existing_database_fails(memory_db, manual_clock):
    await memory_db.create_resource("taken")

    result, report = await run(database_lifecycle(memory_db, "taken"), manual_clock)

    assert is_failed(result)
    assert report.exit_code == 1
    # The delete is fatal in this workflow, so the existing database is left alone
    assert result.outcomes[1].status == StepStatus.SKIPPED
    assert memory_db.databases() == ["taken"]


# ==============================================================================
# Simple replication
# ==============================================================================


@pytest.mark.asyncio
async def test_simple_replication_happy_path(memory_db, manual_clock, resolver):
    result, report = await run(
        simple_replication(memory_db, "source", "target", resolver=resolver), manual_clock
    )

    assert is_completed(result)
    assert report.passed
    assert report.exit_code == 0
    assert [o.name for o in result.outcomes] == SIMPLE_STEPS
    assert all(o.status == StepStatus.SUCCEEDED for o in result.outcomes)

    status = result.context["wait_for_replication"]
    assert isinstance(status, ReplicationStatus)
    assert status.job_id is not None
    assert result.context["start_replication"].id == status.id

    assert memory_db.databases() == []
    assert memory_db.active_jobs() == []


@pytest.mark.asyncio
async def test_wait_polls_until_job_picked_up(manual_clock, resolver):
    db = InMemoryDatabase(pending_reads=3)

    result, _ = await run(
        simple_replication(db, "source", "target", interval=0.5, resolver=resolver),
        manual_clock,
    )

    assert is_completed(result)
    # Three untriggered reads, then the fourth sees the job id
    assert manual_clock.sleeps == [0.5, 0.5, 0.5]
    # Four polls plus the re-read before stopping
    assert db.call_count("get_replication_status") == 5


@pytest.mark.asyncio
async def test_start_failure_skips_dependents_and_cleans_up(memory_db, manual_clock, resolver):
    memory_db.fail_next(
        "start_replication", PermanentError("source unreachable", kind="invalid", status=400)
    )

    result, report = await run(
        simple_replication(memory_db, "source", "target", resolver=resolver), manual_clock
    )

    assert is_failed(result)
    assert result.step_name == "start_replication"
    assert report.exit_code == 3
    statuses = [o.status for o in result.outcomes]
    assert statuses == [
        StepStatus.SUCCEEDED,
        StepStatus.SUCCEEDED,
        StepStatus.FAILED,
        StepStatus.SKIPPED,
        StepStatus.SKIPPED,
        StepStatus.SUCCEEDED,
        StepStatus.SUCCEEDED,
    ]
    assert memory_db.call_count("get_replication_status") == 0
    assert memory_db.call_count("stop_replication") == 0
    assert memory_db.databases() == []


@pytest.mark.asyncio
async def test_stop_retried_on_transient_errors(memory_db, manual_clock, resolver):
    memory_db.fail_next("stop_replication", TransientError("busy"), times=2)

    result, report = await run(
        simple_replication(memory_db, "source", "target", stop_attempts=3, resolver=resolver),
        manual_clock,
    )

    assert is_completed(result)
    stop = result.outcomes[SIMPLE_STEPS.index("stop_replication")]
    assert stop.attempts_used == 3
    assert report.checks[4].actual == "succeeded after 3 attempts"
    assert memory_db.active_jobs() == []


@pytest.mark.asyncio
async def test_stop_retries_exhausted(memory_db, manual_clock, resolver):
    memory_db.fail_next("stop_replication", TransientError("busy"), times=3)

    result, report = await run(
        simple_replication(memory_db, "source", "target", stop_attempts=3, resolver=resolver),
        manual_clock,
    )

    assert is_failed(result)
    assert result.step_name == "stop_replication"
    assert result.error.attempts == 3
    assert report.exit_code == 5
    # Cleanup still ran
    assert memory_db.databases() == []


@pytest.mark.asyncio
async def test_stop_retries_conflict(memory_db, manual_clock, resolver):
    memory_db.fail_next(
        "stop_replication", PermanentError("stale", kind="conflict", status=409)
    )

    result, _ = await run(
        simple_replication(memory_db, "source", "target", resolver=resolver), manual_clock
    )

    assert is_completed(result)
    assert result.outcomes[4].attempts_used == 2


def test_stop_policy_classification():
    policy = stop_policy(4)

    assert policy.max_attempts == 4
    assert policy.is_retryable(PermanentError("stale", kind="conflict"))
    assert policy.is_retryable(TransientError("busy"))
    assert not policy.is_retryable(PermanentError("gone", kind="not_found"))


@pytest.mark.asyncio
async def test_wait_timeout_fails_run(manual_clock, resolver):
    db = InMemoryDatabase(pending_reads=1000)

    result, report = await run(
        simple_replication(db, "source", "target", interval=1.0, timeout=5.0, resolver=resolver),
        manual_clock,
    )

    assert is_failed(result)
    assert result.step_name == "wait_for_replication"
    assert isinstance(result.error.__cause__, TimeoutExceeded)
    assert report.exit_code == 4
    assert manual_clock.now() == 5.0
    assert result.outcomes[4].status == StepStatus.SKIPPED


@pytest.mark.asyncio
async def test_cleanup_of_missing_database_is_success(memory_db, manual_clock, resolver):
    """Deleting a database that was never created counts as done."""
    await memory_db.create_resource("source")

    result, report = await run(
        simple_replication(memory_db, "source", "target", resolver=resolver), manual_clock
    )

    # create_source conflicts, so the target is never created
    assert is_failed(result)
    assert result.step_name == "create_source"
    delete_target = result.outcomes[SIMPLE_STEPS.index("delete_target")]
    assert delete_target.status == StepStatus.SUCCEEDED
    assert delete_target.recovered
    assert report.checks[5].actual == "succeeded (already absent)"
    assert report.exit_code == 1


@pytest.mark.asyncio
async def test_custom_wait_predicate(memory_db, manual_clock, resolver):
    await memory_db.create_resource("a")
    await memory_db.create_resource("b")
    job = await memory_db.start_replication("a", "b")

    async def started(ctx):
        return job

    steps = [
        WorkflowStep(name="start_replication", operation=started),
        wait_for_replication(
            memory_db, predicate=lambda s: s.state == "triggered", resolver=resolver
        ),
    ]
    result, _ = await run(steps, manual_clock)

    assert result.context["wait_for_replication"].state == "triggered"


# ==============================================================================
# Fan-out replication
# ==============================================================================


@pytest.mark.asyncio
async def test_fanout_replication(memory_db, manual_clock, resolver):
    targets = ["target1", "target2"]

    result, report = await run(
        fanout_replication(memory_db, "source", targets, num_docs=10, resolver=resolver),
        manual_clock,
    )

    assert is_completed(result), report.summary()
    assert report.exit_code == 0

    names = [o.name for o in result.outcomes]
    assert names == [
        "create_source",
        "create_target1",
        "create_target2",
        "save_documents",
        "start_replication_target1",
        "start_replication_target2",
        "wait_for_replication_target1",
        "wait_for_replication_target2",
        "verify_target1",
        "verify_target2",
        "stop_replication_target1",
        "stop_replication_target2",
        "delete_target2",
        "delete_target1",
        "delete_source",
    ]

    saved = result.context["save_documents"]
    assert len(saved) == 10
    for target in targets:
        seen = result.context[f"verify_{target}"]
        assert seen == {ref.id: ref.rev for ref in saved}

    assert memory_db.databases() == []
    assert memory_db.active_jobs() == []


@pytest.mark.asyncio
async def test_fanout_with_existing_source(memory_db, manual_clock, resolver):
    await memory_db.create_resource("shared")

    result, _ = await run(
        fanout_replication(
            memory_db, "shared", ["copy"], num_docs=3, create_source=False, resolver=resolver
        ),
        manual_clock,
    )

    assert is_completed(result)
    assert "create_shared" not in result.context
    # The pre-existing source is left in place with the saved documents
    assert memory_db.databases() == ["shared"]
    assert len(memory_db.documents("shared")) == 3


@pytest.mark.asyncio
async def test_fanout_verify_permission_error(manual_clock, resolver):
    db = InMemoryDatabase()
    db.fail_next(
        "get_document",
        PermanentError("forbidden", kind="unauthorized", status=403),
    )

    result, report = await run(
        fanout_replication(db, "source", ["t1"], num_docs=2, resolver=resolver), manual_clock
    )

    assert is_failed(result)
    assert result.step_name == "verify_t1"
    assert report.status == WorkflowStatus.FAILED


@pytest.mark.parametrize(
    "source, targets",
    [("source", []), ("source", ["a", "a"]), ("source", ["a", "source"])],
)
def test_fanout_rejects_bad_targets(source, targets):
    with pytest.raises(ValueError):
        fanout_replication(InMemoryDatabase(), source, targets)


def test_sample_documents():
    docs = sample_documents(3)

    assert [d["i"] for d in docs] == [0, 1, 2]
    assert all(d["test"] for d in docs)


@pytest.mark.asyncio
async def test_concurrent_workflows_share_one_client(memory_db, manual_clock, resolver):
    coordinators = [
        Coordinator(
            simple_replication(memory_db, f"src{i}", f"dst{i}", resolver=resolver),
            clock=manual_clock,
        )
        for i in range(4)
    ]
    results = await asyncio.gather(*(c.run() for c in coordinators))

    assert all(is_completed(r) for r in results)
    assert len({c.run_id for c in coordinators}) == 4
    assert memory_db.databases() == []
