"""Tests for the command line interface against the in-memory database."""

import json

import pytest
from typer.testing import CliRunner

from pyrelay import cli
from pyrelay.core import PermanentError
from pyrelay.rpc import InMemoryDatabase

runner = CliRunner()


@pytest.fixture
def db(monkeypatch):
    """In-memory database handed to every command instead of a CouchClient."""
    database = InMemoryDatabase()
    seen = []

    def make_client(config):
        seen.append(config)
        return database

    for name in ("PYRELAY_COUCH_URL", "PYRELAY_POLL_TIMEOUT"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(cli, "make_client", make_client)
    database.configs = seen
    return database


def test_lifecycle(db):
    result = runner.invoke(cli.app, ["lifecycle", "check_db"])

    assert result.exit_code == 0, result.output
    assert "COMPLETED (2/2 checks passed)" in result.stdout
    assert db.databases() == []


def test_lifecycle_failure_exit_code(db):
    db.fail_next("create_resource", PermanentError("denied", kind="unauthorized", status=401))

    result = runner.invoke(cli.app, ["lifecycle", "check_db"])

    assert result.exit_code == 1
    assert "first failure: step 1 'create_check_db'" in result.stdout


def test_replicate(db):
    result = runner.invoke(cli.app, ["replicate", "source", "target"])

    assert result.exit_code == 0, result.output
    assert "[PASS] 4. wait_for_replication" in result.stdout
    assert db.active_jobs() == []


def test_replicate_json_report(db):
    db.fail_next("start_replication", PermanentError("bad source", kind="invalid", status=400))

    result = runner.invoke(cli.app, ["--json", "replicate", "source", "target"])

    assert result.exit_code == 3
    report = json.loads(result.stdout)
    assert report["status"] == "FAILED"
    assert report["exit_code"] == 3
    assert report["first_failure"]["step_name"] == "start_replication"
    assert [c["passed"] for c in report["checks"]] == [True, True, False, False, False, True, True]


def test_fanout(db):
    result = runner.invoke(cli.app, ["fanout", "source", "t1", "t2", "--docs", "4"])

    assert result.exit_code == 0, result.output
    assert "verify_t1" in result.stdout
    assert "verify_t2" in result.stdout


def test_fanout_rejects_source_as_target(db):
    result = runner.invoke(cli.app, ["fanout", "source", "source"])

    assert result.exit_code == 2


def test_global_options_reach_config(db):
    runner.invoke(
        cli.app, ["--url", "http://couch:5984", "--poll-timeout", "2.5", "lifecycle", "x"]
    )

    config = db.configs[0]
    assert config.couch_url == "http://couch:5984"
    assert config.poll_timeout == 2.5


def test_replicate_rejects_same_source_and_target(db):
    result = runner.invoke(cli.app, ["replicate", "same", "same"])

    assert result.exit_code == 2
    assert "Error:" in result.output
    assert db.databases() == []
