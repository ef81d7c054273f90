"""
DatabaseClient - Abstract interface for the external document database.

Design Pattern: Adapter Pattern
DatabaseClient defines the target interface that every database adapter
implements. CouchClient adapts the CouchDB HTTP API to it; InMemoryDatabase
adapts plain dictionaries for tests.

Design Principle: Dependency Inversion (SOLID)
Workflows depend on this abstraction, not on HTTP details. The engine
never talks to the database directly; steps do, through a client.

Every operation is async and raises either TransientError (retryable) or
PermanentError (fatal) on failure.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

# ============================================================================
# Value types returned by database operations
# ============================================================================


@dataclass(frozen=True)
class Handle:
    """A created database."""

    name: str
    ok: bool = True


@dataclass(frozen=True)
class Ack:
    """Acknowledgement of a state-changing request."""

    ok: bool = True


@dataclass(frozen=True)
class DocRef:
    """Identifier and revision of a stored document."""

    id: str
    rev: str


@dataclass(frozen=True)
class JobRef:
    """Reference to a replication job (the replicator document id and revision)."""

    id: str
    rev: str


@dataclass(frozen=True)
class ReplicationStatus:
    """
    Observed state of a replication job.

    Attributes:
        id: Replicator document id
        rev: Current replicator document revision (changes as the job runs)
        state: Replication state ("triggered", "running", "completed", "error"),
            None until the replicator has picked the job up
        job_id: Replication id assigned by the replicator, None until triggered
        source: Source database
        target: Target database
        raw: Raw status payload as returned by the server
    """

    id: str
    rev: str
    state: str | None = None
    job_id: str | None = None
    source: str | None = None
    target: str | None = None
    raw: dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def ref(self) -> JobRef:
        """JobRef carrying the latest revision."""
        return JobRef(id=self.id, rev=self.rev)

    @property
    def is_active(self) -> bool:
        return self.state in ("triggered", "running")

    @property
    def has_job_id(self) -> bool:
        return self.job_id is not None


# ============================================================================
# Client interface
# ============================================================================


class DatabaseClient(ABC):
    """
    Abstract async interface to the document database.

    Implementations must be safe for concurrent invocation from many
    workflow runs: they hold connection configuration and shared
    connection resources, never per-workflow state.
    """

    @abstractmethod
    async def create_resource(self, name: str) -> Handle:
        """
        Create a database.

        Raises:
            PermanentError: kind "conflict" if it already exists, "invalid" for a bad name
            TransientError: Network failure or server error
        """
        pass

    @abstractmethod
    async def delete_resource(self, name: str) -> Ack:
        """
        Delete a database.

        Raises:
            PermanentError: kind "not_found" if it does not exist
            TransientError: Network failure or server error
        """
        pass

    @abstractmethod
    async def start_replication(
        self,
        source: str,
        target: str,
        *,
        continuous: bool = True,
        create_target: bool = False,
    ) -> JobRef:
        """
        Start a replication job from source to target.

        Returns:
            JobRef for the replicator document
        """
        pass

    @abstractmethod
    async def stop_replication(self, job: JobRef) -> Ack:
        """
        Stop a replication job.

        The job's revision must be current; a stale revision raises
        PermanentError with kind "conflict".
        """
        pass

    @abstractmethod
    async def get_replication_status(self, job: JobRef | str) -> ReplicationStatus:
        """Fetch the current state of a replication job."""
        pass

    @abstractmethod
    async def put_document(self, doc: dict[str, Any], location: str) -> DocRef:
        """
        Save a document into database `location`.

        Documents without an "_id" get a server-assigned id.
        """
        pass

    @abstractmethod
    async def get_document(self, doc_id: str, location: str) -> dict[str, Any]:
        """
        Fetch a document from database `location`.

        Raises:
            PermanentError: kind "not_found" if the document does not exist
        """
        pass

    async def close(self) -> None:
        """Release connection resources (no-op by default)."""
        return None

    async def __aenter__(self) -> DatabaseClient:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


def job_id_of(job: JobRef | str) -> str:
    """Replicator document id of a JobRef or bare id."""
    return job.id if isinstance(job, JobRef) else job
