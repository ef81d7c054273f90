"""Prebuilt workflows over a DatabaseClient."""

from pyrelay.workflows.replication import (
    create_database,
    database_lifecycle,
    delete_database,
    fanout_replication,
    has_job_id,
    sample_documents,
    save_documents,
    simple_replication,
    start_replication,
    stop_policy,
    stop_replication,
    verify_documents,
    wait_for_replication,
)

__all__ = [
    "create_database",
    "database_lifecycle",
    "delete_database",
    "fanout_replication",
    "has_job_id",
    "sample_documents",
    "save_documents",
    "simple_replication",
    "start_replication",
    "stop_policy",
    "stop_replication",
    "verify_documents",
    "wait_for_replication",
]
