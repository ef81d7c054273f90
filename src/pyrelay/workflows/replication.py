"""Replication check workflows.

Step factories for the database operations a replication check needs, and
builders that chain them into complete workflows:

    database_lifecycle   create → delete
    simple_replication   create source, create target, start, wait, stop,
                         delete target, delete source
    fanout_replication   one source replicated continuously to several
                         targets, with document propagation verified on
                         every target

Each factory returns a WorkflowStep. Steps that depend on an earlier step
read its result from the context by step name (job_step=, docs_step=).
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from typing import Any

from pyrelay.core.context import WorkflowContext
from pyrelay.core.errors import PermanentError, is_conflict
from pyrelay.core.step import WorkflowStep
from pyrelay.executor.resolver import PollCondition, Resolver, poll_step
from pyrelay.models.retry import RetryPolicy, is_retryable_error
from pyrelay.rpc.base import Ack, DatabaseClient, DocRef, JobRef, ReplicationStatus

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 0.5
DEFAULT_POLL_TIMEOUT = 30.0
DEFAULT_STOP_ATTEMPTS = 3

SAMPLE_DATA = "abcdefghijklmnopqrstuvwxyz"


# ============================================================================
# Step factories
# ============================================================================


def create_database(
    client: DatabaseClient,
    name: str,
    *,
    step_name: str | None = None,
    retry_policy: RetryPolicy | None = None,
) -> WorkflowStep:
    """Create database `name`; the step result is the Handle."""

    async def operation(ctx: WorkflowContext) -> Any:
        return await client.create_resource(name)

    return WorkflowStep(
        name=step_name or f"create_{name}",
        operation=operation,
        retry_policy=retry_policy,
        predicate=lambda handle: handle.ok,
        expect=f"database {name!r} created",
    )


def delete_database(
    client: DatabaseClient,
    name: str,
    *,
    step_name: str | None = None,
    best_effort: bool = True,
    retry_policy: RetryPolicy | None = None,
) -> WorkflowStep:
    """Delete database `name`.

    Best-effort by default: it runs even after an earlier failure, and
    deleting a database that is already gone counts as success.
    """

    async def operation(ctx: WorkflowContext) -> Any:
        return await client.delete_resource(name)

    return WorkflowStep(
        name=step_name or f"delete_{name}",
        operation=operation,
        retry_policy=retry_policy,
        predicate=_ack_ok,
        best_effort=best_effort,
        expect=f"database {name!r} deleted",
    )


def start_replication(
    client: DatabaseClient,
    source: str,
    target: str,
    *,
    step_name: str = "start_replication",
    continuous: bool = True,
    create_target: bool = False,
    retry_policy: RetryPolicy | None = None,
) -> WorkflowStep:
    """Start a replication job; the step result is its JobRef."""

    async def operation(ctx: WorkflowContext) -> Any:
        return await client.start_replication(
            source, target, continuous=continuous, create_target=create_target
        )

    return WorkflowStep(
        name=step_name,
        operation=operation,
        retry_policy=retry_policy,
        predicate=lambda job: bool(job.id),
        expect=f"replication {source!r} -> {target!r} has a job id",
    )


def has_job_id(status: ReplicationStatus) -> bool:
    """The replicator has picked the job up."""
    return status.has_job_id


def wait_for_replication(
    client: DatabaseClient,
    *,
    job_step: str = "start_replication",
    step_name: str = "wait_for_replication",
    predicate: Callable[[ReplicationStatus], bool] = has_job_id,
    interval: float = DEFAULT_POLL_INTERVAL,
    timeout: float = DEFAULT_POLL_TIMEOUT,
    resolver: Resolver | None = None,
) -> WorkflowStep:
    """Poll the job started by `job_step` until `predicate` holds.

    The step result is the satisfying ReplicationStatus.
    """

    def condition(ctx: WorkflowContext) -> PollCondition:
        job: JobRef = ctx[job_step]
        return PollCondition(
            fetch=lambda: client.get_replication_status(job),
            predicate=predicate,
            interval=interval,
            timeout=timeout,
            description=f"replication {job.id} picked up",
        )

    return poll_step(
        step_name,
        condition,
        resolver=resolver,
        expect="replication job picked up before timeout",
    )


def _stop_is_retryable(error: BaseException) -> bool:
    # The replicator rewrites its document after start, so a conflict means
    # our revision went stale; the next attempt re-reads it.
    return is_conflict(error) or is_retryable_error(error)


def stop_policy(attempts: int = DEFAULT_STOP_ATTEMPTS) -> RetryPolicy:
    """Retry policy for stopping a replication."""
    return RetryPolicy(
        max_attempts=attempts,
        initial_delay_ms=500,
        max_delay_ms=5000,
        backoff_multiplier=2.0,
        classify=_stop_is_retryable,
    )


def stop_replication(
    client: DatabaseClient,
    *,
    job_step: str = "start_replication",
    step_name: str = "stop_replication",
    attempts: int = DEFAULT_STOP_ATTEMPTS,
    retry_policy: RetryPolicy | None = None,
    best_effort: bool = False,
) -> WorkflowStep:
    """Stop the job started by `job_step`, retrying by default.

    Every attempt re-reads the job to get its current revision.
    """

    async def operation(ctx: WorkflowContext) -> Any:
        job: JobRef = ctx[job_step]
        status = await client.get_replication_status(job)
        return await client.stop_replication(status.ref)

    return WorkflowStep(
        name=step_name,
        operation=operation,
        retry_policy=retry_policy or stop_policy(attempts),
        predicate=_ack_ok,
        best_effort=best_effort,
        expect="replication stopped",
    )


def sample_documents(count: int) -> list[dict[str, Any]]:
    """Test documents numbered 0..count-1."""
    return [{"i": i, "test": True, "data": SAMPLE_DATA} for i in range(count)]


def save_documents(
    client: DatabaseClient,
    database: str,
    docs: Sequence[dict[str, Any]],
    *,
    step_name: str = "save_documents",
    retry_policy: RetryPolicy | None = None,
) -> WorkflowStep:
    """Save docs into `database` in order; the step result is the list of DocRefs."""

    async def operation(ctx: WorkflowContext) -> Any:
        refs: list[DocRef] = []
        for doc in docs:
            refs.append(await client.put_document(dict(doc), database))
        logger.debug(f"Saved {len(refs)} documents into {database}")
        return refs

    return WorkflowStep(
        name=step_name,
        operation=operation,
        retry_policy=retry_policy,
        predicate=lambda refs: len(refs) == len(docs) and all(ref.id for ref in refs),
        expect=f"{len(docs)} documents saved to {database!r}",
    )


def verify_documents(
    client: DatabaseClient,
    target: str,
    *,
    docs_step: str = "save_documents",
    step_name: str | None = None,
    interval: float = DEFAULT_POLL_INTERVAL,
    timeout: float = DEFAULT_POLL_TIMEOUT,
    resolver: Resolver | None = None,
) -> WorkflowStep:
    """Poll `target` until every document saved by `docs_step` is visible.

    The step result maps document id to the revision seen on the target.
    """

    def condition(ctx: WorkflowContext) -> PollCondition:
        refs: list[DocRef] = ctx[docs_step]

        async def fetch() -> dict[str, str | None]:
            seen: dict[str, str | None] = {}
            for ref in refs:
                try:
                    doc = await client.get_document(ref.id, target)
                except PermanentError as e:
                    if not e.is_not_found:
                        raise
                    seen[ref.id] = None
                else:
                    seen[ref.id] = doc.get("_rev")
            return seen

        return PollCondition(
            fetch=fetch,
            predicate=lambda seen: all(rev is not None for rev in seen.values()),
            interval=interval,
            timeout=timeout,
            description=f"{len(refs)} documents visible on {target!r}",
        )

    return poll_step(
        step_name or f"verify_{target}",
        condition,
        resolver=resolver,
        expect=f"every document replicated to {target!r}",
    )


def _ack_ok(ack: Ack) -> bool:
    return ack.ok


# ============================================================================
# Workflows
# ============================================================================


def database_lifecycle(client: DatabaseClient, name: str) -> list[WorkflowStep]:
    """Create a database, then delete it (both fatal)."""
    return [
        create_database(client, name),
        delete_database(client, name, best_effort=False),
    ]


def simple_replication(
    client: DatabaseClient,
    source: str,
    target: str,
    *,
    interval: float = DEFAULT_POLL_INTERVAL,
    timeout: float = DEFAULT_POLL_TIMEOUT,
    stop_attempts: int = DEFAULT_STOP_ATTEMPTS,
    resolver: Resolver | None = None,
) -> list[WorkflowStep]:
    """Continuous replication between two fresh databases, then cleanup.

    Steps:
        1. create_{source}
        2. create_{target}
        3. start_replication
        4. wait_for_replication
        5. stop_replication (retried)
        6. delete_{target} (best-effort)
        7. delete_{source} (best-effort)
    """
    return [
        create_database(client, source),
        create_database(client, target),
        start_replication(client, source, target),
        wait_for_replication(client, interval=interval, timeout=timeout, resolver=resolver),
        stop_replication(client, attempts=stop_attempts),
        delete_database(client, target),
        delete_database(client, source),
    ]


def fanout_replication(
    client: DatabaseClient,
    source: str,
    targets: Sequence[str],
    *,
    num_docs: int = 10,
    create_source: bool = True,
    interval: float = DEFAULT_POLL_INTERVAL,
    timeout: float = DEFAULT_POLL_TIMEOUT,
    stop_attempts: int = DEFAULT_STOP_ATTEMPTS,
    resolver: Resolver | None = None,
) -> list[WorkflowStep]:
    """Replicate one source continuously to several targets and verify propagation.

    Documents are saved before replication starts; each target is then
    polled until all of them are visible. With create_source=False the
    source must already exist and is left in place.

    Raises:
        ValueError: If targets is empty, repeats a name or contains the source
    """
    if not targets:
        raise ValueError("fanout_replication needs at least one target")
    if len(set(targets)) != len(targets) or source in targets:
        raise ValueError("targets must be distinct and differ from the source")

    steps: list[WorkflowStep] = []
    if create_source:
        steps.append(create_database(client, source))
    steps.extend(create_database(client, target) for target in targets)
    steps.append(save_documents(client, source, sample_documents(num_docs)))

    for target in targets:
        steps.append(
            start_replication(client, source, target, step_name=f"start_replication_{target}")
        )
    for target in targets:
        steps.append(
            wait_for_replication(
                client,
                job_step=f"start_replication_{target}",
                step_name=f"wait_for_replication_{target}",
                interval=interval,
                timeout=timeout,
                resolver=resolver,
            )
        )
    for target in targets:
        steps.append(
            verify_documents(
                client, target, interval=interval, timeout=timeout, resolver=resolver
            )
        )
    for target in targets:
        steps.append(
            stop_replication(
                client,
                job_step=f"start_replication_{target}",
                step_name=f"stop_replication_{target}",
                attempts=stop_attempts,
            )
        )

    steps.extend(delete_database(client, target) for target in reversed(targets))
    if create_source:
        steps.append(delete_database(client, source))
    return steps
