"""Command line interface for running replication checks.

Each command builds a workflow, runs it against the configured server,
prints the report and exits with the report's exit code (0 when every
check passed, otherwise the 1-based index of the first failing step).
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable
from dataclasses import replace
from typing import List, Optional

import typer

from pyrelay.config import RelayConfig
from pyrelay.core.step import WorkflowStep
from pyrelay.executor.coordinator import Coordinator
from pyrelay.executor.report import Report
from pyrelay.executor.resolver import Resolver
from pyrelay.rpc.base import DatabaseClient
from pyrelay.rpc.couchdb import CouchClient
from pyrelay.workflows.replication import (
    database_lifecycle,
    fanout_replication,
    simple_replication,
)

app = typer.Typer(help="Run replication check workflows against a CouchDB server")

WorkflowBuilder = Callable[[DatabaseClient, RelayConfig], List[WorkflowStep]]


def make_client(config: RelayConfig) -> DatabaseClient:
    """Client used by every command."""
    return CouchClient.from_config(config)


@app.callback()
def main(
    ctx: typer.Context,
    url: Optional[str] = typer.Option(None, help="Server URL (default: $PYRELAY_COUCH_URL)"),
    poll_timeout: Optional[float] = typer.Option(
        None, help="Seconds to wait for replication to converge"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log every step"),
    as_json: bool = typer.Option(False, "--json", help="Print the report as JSON"),
) -> None:
    """pyrelay CLI entry point."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    config = RelayConfig.from_env()
    if url:
        config = config.with_url(url)
    if poll_timeout is not None:
        config = replace(config, poll_timeout=poll_timeout)
    ctx.obj = {"config": config, "json": as_json}


@app.command("lifecycle")
def lifecycle(ctx: typer.Context, name: str) -> None:
    """
    Create a database and delete it again.

    Example:
        pyrelay lifecycle pyrelay_check
    """
    _execute(ctx, lambda client, config: database_lifecycle(client, name))


@app.command("replicate")
def replicate(ctx: typer.Context, source: str, target: str) -> None:
    """
    Check continuous replication between two fresh databases.

    Creates both databases, starts a continuous replication, waits for the
    replicator to pick it up, stops it and deletes both databases.

    Example:
        pyrelay --url http://localhost:5984 replicate check_source check_target
    """

    def build(client: DatabaseClient, config: RelayConfig) -> list[WorkflowStep]:
        return simple_replication(
            client,
            source,
            target,
            interval=config.poll_interval,
            timeout=config.poll_timeout,
            stop_attempts=config.stop_attempts,
            resolver=Resolver(),
        )

    _execute(ctx, build)


@app.command("fanout")
def fanout(
    ctx: typer.Context,
    source: str,
    targets: List[str],
    docs: int = typer.Option(10, help="Number of documents to replicate"),
    existing_source: bool = typer.Option(
        False, help="Use an existing source database instead of creating one"
    ),
) -> None:
    """
    Replicate one source to several targets and verify every document arrives.

    Example:
        pyrelay fanout check_source check_target1 check_target2 --docs 100
    """

    def build(client: DatabaseClient, config: RelayConfig) -> list[WorkflowStep]:
        return fanout_replication(
            client,
            source,
            targets,
            num_docs=docs,
            create_source=not existing_source,
            interval=config.poll_interval,
            timeout=config.poll_timeout,
            stop_attempts=config.stop_attempts,
            resolver=Resolver(),
        )

    _execute(ctx, build)


def _execute(ctx: typer.Context, build: WorkflowBuilder) -> None:
    config: RelayConfig = ctx.obj["config"]
    try:
        report = asyncio.run(_run(config, build))
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=2) from e
    if ctx.obj["json"]:
        typer.echo(json.dumps(report.to_dict(), indent=2))
    else:
        typer.echo(report.summary())
    raise typer.Exit(code=report.exit_code)


async def _run(config: RelayConfig, build: WorkflowBuilder) -> Report:
    client = make_client(config)
    try:
        coordinator = Coordinator(build(client, config))
        await coordinator.run()
        return coordinator.report()
    finally:
        await client.close()


if __name__ == "__main__":
    app()
