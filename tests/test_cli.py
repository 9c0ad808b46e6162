"""
Tests for CLI commands.

Uses typer's CliRunner against a temporary project with a DuckDB state file;
the GraphQL endpoint and the block explorer are mocked with aioresponses.
"""

import re

import pytest
from aioresponses import aioresponses
from eth_abi import encode as abi_encode
from typer.testing import CliRunner

from rollsync import __version__
from rollsync.cli.main import app

runner = CliRunner()

GRAPHQL_URL = "http://localhost:5000/graphql"
DESTINATION = "0x1111111111111111111111111111111111111111"

CONFIG = f"""
source:
  graphql_url: {GRAPHQL_URL}
sync:
  batch_size: 10
  poll_interval: 1
retention:
  enabled: false
connections:
  state:
    type: duckdb
    path: data/state.duckdb
logging:
  level: WARNING
"""


def connection(edges=(), end_cursor=None):
    return {
        "edges": list(edges),
        "pageInfo": {"startCursor": None, "endCursor": end_cursor, "hasNextPage": False, "hasPreviousPage": False},
    }


def page_with_voucher():
    blob = "0x" + abi_encode(["address", "uint256", "bytes"], [DESTINATION, 0, b"\x01"]).hex()
    edges = [{"cursor": "o1", "node": {"index": 0, "inputIndex": 0, "blob": blob}}]
    return {"data": {"outputs": connection(edges, "o1"), "inputs": connection(), "reports": connection()}}


@pytest.fixture
def project(tmp_path):
    (tmp_path / "rollsync.yaml").write_text(CONFIG)
    return tmp_path


class TestVersion:
    def test_version_flag(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert f"rollsync version {__version__}" in result.output


class TestHelp:
    def test_no_args_shows_help(self):
        result = runner.invoke(app, [])
        assert result.exit_code == 0
        assert "rollsync" in result.output.lower()

    @pytest.mark.parametrize("command", ["sync", "status", "purge", "abi"])
    def test_command_help(self, command):
        result = runner.invoke(app, [command, "--help"])
        assert result.exit_code == 0


class TestSync:
    def test_once_commits_page(self, project):
        with aioresponses() as m:
            m.post(GRAPHQL_URL, payload=page_with_voucher())
            result = runner.invoke(app, ["sync", "--once", "-d", str(project)])

        assert result.exit_code == 0, result.output
        assert "Committed 1 artifacts" in result.output
        assert "outputs=o1" in result.output
        assert (project / "data" / "state.duckdb").exists()

    def test_once_resumes_from_store(self, project):
        with aioresponses() as m:
            m.post(GRAPHQL_URL, payload=page_with_voucher())
            runner.invoke(app, ["sync", "--once", "-d", str(project)])

            empty = {"data": {"outputs": connection(), "inputs": connection(), "reports": connection()}}
            m.post(GRAPHQL_URL, payload=empty)
            result = runner.invoke(app, ["sync", "--once", "-d", str(project)])

            queries = [call.kwargs["json"]["query"] for call in list(m.requests.values())[0]]

        assert result.exit_code == 0, result.output
        assert "Committed 0 artifacts" in result.output
        assert 'outputs(first: 10, after: "o1")' in queries[-1]

    def test_once_unreachable_upstream(self, project):
        with aioresponses() as m:
            m.post(GRAPHQL_URL, status=503, body="down")
            result = runner.invoke(app, ["sync", "--once", "-d", str(project)])
        assert result.exit_code == 1
        assert "Fetch failed" in result.output

    def test_missing_config(self, tmp_path):
        result = runner.invoke(app, ["sync", "--once", "-d", str(tmp_path)])
        assert result.exit_code == 1
        assert "Configuration file not found" in result.output

    def test_invalid_settings(self, tmp_path):
        (tmp_path / "rollsync.yaml").write_text("sync:\n  batch_size: 0\n")
        result = runner.invoke(app, ["sync", "--once", "-d", str(tmp_path)])
        assert result.exit_code == 1
        assert "batch_size" in result.output


class TestStatus:
    def test_empty_store(self, project):
        result = runner.invoke(app, ["status", "-d", str(project)])
        assert result.exit_code == 0, result.output
        assert "No progress recorded yet" in result.output

    def test_after_sync(self, project):
        with aioresponses() as m:
            m.post(GRAPHQL_URL, payload=page_with_voucher())
            runner.invoke(app, ["sync", "--once", "-d", str(project)])

        result = runner.invoke(app, ["status", "-d", str(project)])
        assert result.exit_code == 0, result.output
        assert "o1" in result.output
        assert "vouchers" in result.output


class TestPurge:
    def test_purge_keeps_latest(self, project):
        with aioresponses() as m:
            m.post(GRAPHQL_URL, payload=page_with_voucher())
            runner.invoke(app, ["sync", "--once", "-d", str(project)])

        result = runner.invoke(app, ["purge", "--older-than", "0.001", "-d", str(project)])
        assert result.exit_code == 0, result.output
        assert "Deleted 0 progress records" in result.output

    def test_older_than_is_required(self, project):
        result = runner.invoke(app, ["purge", "-d", str(project)])
        assert result.exit_code != 0


class TestAbi:
    def test_invalid_address(self, tmp_path):
        result = runner.invoke(app, ["abi", "0x1234", "-d", str(tmp_path)])
        assert result.exit_code == 2
        assert "Not an Ethereum address" in result.output

    def test_prints_abi(self, tmp_path):
        abi = '[{"type": "function", "name": "executeOutput"}]'
        body = {"status": "1", "message": "OK", "result": [{"ABI": abi}]}
        with aioresponses() as m:
            m.get(re.compile(r"^https://api\.etherscan\.io/api.*$"), payload=body)
            result = runner.invoke(app, ["abi", DESTINATION, "-d", str(tmp_path)])
        assert result.exit_code == 0, result.output
        assert '"executeOutput"' in result.output

    def test_explorer_error(self, tmp_path):
        with aioresponses() as m:
            m.get(re.compile(r"^https://api\.etherscan\.io/api.*$"), status=500, body="oops")
            result = runner.invoke(app, ["abi", DESTINATION, "-d", str(tmp_path)])
        assert result.exit_code == 1
