"""In-memory document database for tests and dry runs.

Design Pattern: Adapter Pattern
InMemoryDatabase adapts in-memory dictionaries to the DatabaseClient
interface, with the failure modes of the real server:

- creating an existing database conflicts, deleting a missing one is not found
- replication jobs start untriggered and are picked up after
  `pending_reads` status reads, at which point the replicator updates the
  job document (so the revision returned at start goes stale)
- continuous jobs copy source documents to the target whenever a target
  document or the job status is read
- fail_next() injects errors for the next calls of an operation

Instance is immediately usable after __init__.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from collections import defaultdict, deque
from dataclasses import dataclass
from typing import Any

from uuid_extensions import uuid7

from pyrelay.core.errors import CONFLICT, NOT_FOUND, PermanentError
from pyrelay.rpc.base import (
    Ack,
    DatabaseClient,
    DocRef,
    Handle,
    JobRef,
    ReplicationStatus,
    job_id_of,
)

logger = logging.getLogger(__name__)


@dataclass
class _Job:
    id: str
    rev: int
    source: str
    target: str
    continuous: bool
    reads: int = 0
    state: str | None = None
    replication_id: str | None = None

    @property
    def rev_token(self) -> str:
        return f"{self.rev}-{self.id[:8]}"


class InMemoryDatabase(DatabaseClient):
    """In-memory database client.

    Can be substituted for CouchClient without changing workflow code.

    Usage:
        db = InMemoryDatabase(pending_reads=2)
        db.fail_next("stop_replication", TransientError("busy"), times=2)
        result = await Coordinator(simple_replication(db, "a", "b")).run()
    """

    def __init__(self, *, pending_reads: int = 0):
        """Initialize an empty server.

        Args:
            pending_reads: Status reads that see a job as not yet triggered
        """
        if pending_reads < 0:
            raise ValueError("pending_reads must be >= 0")
        self.pending_reads = pending_reads

        # {database: {doc_id: doc}}
        self._databases: dict[str, dict[str, dict[str, Any]]] = {}
        # {job_id: _Job}
        self._jobs: dict[str, _Job] = {}
        # {operation: deque of errors to raise}
        self._faults: dict[str, deque[BaseException]] = defaultdict(deque)

        self.calls: list[tuple[str, tuple[Any, ...]]] = []
        self._lock = asyncio.Lock()

    def __repr__(self) -> str:
        return f"InMemoryDatabase(databases={sorted(self._databases)}, jobs={len(self._jobs)})"

    # ========================================================================
    # Test helpers
    # ========================================================================

    def fail_next(self, operation: str, error: BaseException, times: int = 1) -> None:
        """Make the next `times` calls of `operation` raise `error`."""
        if not hasattr(DatabaseClient, operation):
            raise ValueError(f"unknown operation {operation!r}")
        for _ in range(times):
            self._faults[operation].append(error)

    def call_count(self, operation: str) -> int:
        return sum(1 for name, _ in self.calls if name == operation)

    def databases(self) -> list[str]:
        return sorted(self._databases)

    def documents(self, database: str) -> dict[str, dict[str, Any]]:
        return copy.deepcopy(self._databases.get(database, {}))

    def active_jobs(self) -> list[str]:
        return sorted(self._jobs)

    async def reset(self) -> None:
        async with self._lock:
            self._databases.clear()
            self._jobs.clear()
            self._faults.clear()
            self.calls.clear()

    def _enter(self, operation: str, *args: Any) -> None:
        self.calls.append((operation, args))
        faults = self._faults.get(operation)
        if faults:
            error = faults.popleft()
            logger.debug(f"Injected failure for {operation}: {error!r}")
            raise error

    # ========================================================================
    # Databases
    # ========================================================================

    async def create_resource(self, name: str) -> Handle:
        async with self._lock:
            self._enter("create_resource", name)
            if name in self._databases:
                raise PermanentError(
                    f"database {name!r} already exists", kind=CONFLICT, status=412
                )
            self._databases[name] = {}
            return Handle(name=name, ok=True)

    async def delete_resource(self, name: str) -> Ack:
        async with self._lock:
            self._enter("delete_resource", name)
            self._require_db(name)
            del self._databases[name]
            return Ack(ok=True)

    # ========================================================================
    # Replication
    # ========================================================================

    async def start_replication(
        self,
        source: str,
        target: str,
        *,
        continuous: bool = True,
        create_target: bool = False,
    ) -> JobRef:
        async with self._lock:
            self._enter("start_replication", source, target)
            self._require_db(source)
            if target not in self._databases:
                if not create_target:
                    self._require_db(target)
                self._databases[target] = {}

            job = _Job(id=uuid7().hex, rev=1, source=source, target=target, continuous=continuous)
            self._jobs[job.id] = job
            return JobRef(id=job.id, rev=job.rev_token)

    async def stop_replication(self, job: JobRef) -> Ack:
        async with self._lock:
            self._enter("stop_replication", job.id)
            stored = self._require_job(job.id)
            if job.rev != stored.rev_token:
                raise PermanentError(
                    f"replication {job.id} revision {job.rev} is stale "
                    f"(current {stored.rev_token})",
                    kind=CONFLICT,
                    status=409,
                )
            del self._jobs[job.id]
            return Ack(ok=True)

    async def get_replication_status(self, job: JobRef | str) -> ReplicationStatus:
        async with self._lock:
            doc_id = job_id_of(job)
            self._enter("get_replication_status", doc_id)
            stored = self._require_job(doc_id)
            stored.reads += 1
            if stored.state is None and stored.reads > self.pending_reads:
                # The replicator picks the job up and rewrites its document
                stored.state = "triggered"
                stored.replication_id = uuid7().hex
                stored.rev += 1
            if stored.state is not None:
                self._sync(stored)
            return ReplicationStatus(
                id=stored.id,
                rev=stored.rev_token,
                state=stored.state,
                job_id=stored.replication_id,
                source=stored.source,
                target=stored.target,
            )

    # ========================================================================
    # Documents
    # ========================================================================

    async def put_document(self, doc: dict[str, Any], location: str) -> DocRef:
        async with self._lock:
            self._enter("put_document", location)
            docs = self._require_db(location)
            doc_id = doc.get("_id") or uuid7().hex
            existing = docs.get(doc_id)
            if existing is not None and doc.get("_rev") != existing["_rev"]:
                raise PermanentError(
                    f"document {doc_id!r} update conflict", kind=CONFLICT, status=409
                )
            generation = int(existing["_rev"].split("-", 1)[0]) + 1 if existing else 1
            stored = copy.deepcopy(doc)
            stored["_id"] = doc_id
            stored["_rev"] = f"{generation}-{uuid7().hex[:16]}"
            docs[doc_id] = stored
            return DocRef(id=doc_id, rev=stored["_rev"])

    async def get_document(self, doc_id: str, location: str) -> dict[str, Any]:
        async with self._lock:
            self._enter("get_document", doc_id, location)
            for job in self._jobs.values():
                if job.target == location and job.state is not None:
                    self._sync(job)
            docs = self._require_db(location)
            if doc_id not in docs:
                raise PermanentError(
                    f"document {doc_id!r} not found in {location!r}", kind=NOT_FOUND, status=404
                )
            return copy.deepcopy(docs[doc_id])

    # ========================================================================
    # Internals
    # ========================================================================

    def _require_db(self, name: str) -> dict[str, dict[str, Any]]:
        try:
            return self._databases[name]
        except KeyError:
            raise PermanentError(
                f"database {name!r} does not exist", kind=NOT_FOUND, status=404
            ) from None

    def _require_job(self, job_id: str) -> _Job:
        try:
            return self._jobs[job_id]
        except KeyError:
            raise PermanentError(
                f"replication {job_id!r} not found", kind=NOT_FOUND, status=404
            ) from None

    def _sync(self, job: _Job) -> None:
        source = self._databases.get(job.source)
        target = self._databases.get(job.target)
        if source is None or target is None:
            job.state = "error"
            return
        for doc_id, doc in source.items():
            target[doc_id] = copy.deepcopy(doc)
        if not job.continuous:
            job.state = "completed"
