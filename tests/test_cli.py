import json

import pytest
from click.testing import CliRunner

from marketsync.cli import cli


@pytest.fixture
def runner(tmp_path):
    env = {
        "MARKETSYNC_DB_PATH": str(tmp_path / "db" / "market.duckdb"),
        "MARKETSYNC_RPC_URL": "http://127.0.0.1:9",
        "MARKETSYNC_NEYNAR_API_KEY": "",
        "MARKETSYNC_ALCHEMY_API_KEY": "",
    }
    return CliRunner(env=env)


def test_status_on_fresh_database(runner, tmp_path):
    result = runner.invoke(cli, ["status"])

    assert result.exit_code == 0, result.output
    assert "cursor" in result.output
    assert "total_listings" in result.output
    assert (tmp_path / "db" / "market.duckdb").exists()


def test_backfill_rejects_inverted_range(runner):
    result = runner.invoke(cli, ["backfill", "--from-block", "20", "--to-block", "10"])

    assert result.exit_code == 2
    assert "--from-block must be <= --to-block" in result.output


def test_ingest_replays_saved_payload(runner, tmp_path):
    payload = tmp_path / "payload.json"
    payload.write_text(json.dumps({"type": "GRAPHQL", "event": {}}))

    result = runner.invoke(cli, ["ingest", str(payload)])

    assert result.exit_code == 0, result.output
    assert "transactions" in result.output


def test_ingest_rejects_malformed_payload(runner, tmp_path):
    payload = tmp_path / "payload.json"
    payload.write_text(json.dumps({"event": {}}))

    result = runner.invoke(cli, ["ingest", str(payload)])

    assert result.exit_code == 1
    assert "invalid payload" in result.output


def test_reindex_requires_confirmation(runner):
    result = runner.invoke(cli, ["reindex", "--from-block", "100"], input="n\n")
    assert result.exit_code == 1
