"""Database clients behind a common interface.

Provides:
    - DatabaseClient: Abstract interface
    - CouchClient: CouchDB HTTP API client (httpx)
    - InMemoryDatabase: In-memory server for tests and dry runs

Design: Adapter Pattern + Dependency Inversion (SOLID)
    Workflows depend on DatabaseClient, not on a concrete client,
    enabling easy swapping between a real server and the in-memory one.
"""

from pyrelay.rpc.base import (
    Ack,
    DatabaseClient,
    DocRef,
    Handle,
    JobRef,
    ReplicationStatus,
    job_id_of,
)
from pyrelay.rpc.couchdb import CouchClient
from pyrelay.rpc.memory import InMemoryDatabase

__all__ = [
    "Ack",
    "DatabaseClient",
    "DocRef",
    "Handle",
    "JobRef",
    "ReplicationStatus",
    "job_id_of",
    "CouchClient",
    "InMemoryDatabase",
]
