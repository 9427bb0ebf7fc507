"""Tests for the stakepool CLI."""

import json
from pathlib import Path

from click.testing import CliRunner

from stakepool.cli import main

FIXTURE = str(Path(__file__).parent / "fixtures" / "drifted.json")


def test_version() -> None:
    runner = CliRunner()
    result = runner.invoke(main, ["--version"])
    assert result.exit_code == 0
    assert "0.1.0" in result.output


def test_version_command() -> None:
    runner = CliRunner()
    result = runner.invoke(main, ["version"])
    assert result.exit_code == 0
    assert "stakepool 0.1.0" in result.output


def test_init(tmp_path: Path) -> None:
    runner = CliRunner()
    result = runner.invoke(main, ["init", "--data-dir", str(tmp_path / "sp")])
    assert result.exit_code == 0
    assert "initialized" in result.output.lower()
    assert (tmp_path / "sp" / "data" / "stakepool.db").exists()


def test_rate() -> None:
    runner = CliRunner()
    result = runner.invoke(main, ["rate", FIXTURE])
    assert result.exit_code == 0
    assert "2.050000000" in result.output
    assert "20500" in result.output


def test_workers() -> None:
    runner = CliRunner()
    result = runner.invoke(main, ["workers", FIXTURE])
    assert result.exit_code == 0
    assert "Alpha" in result.output
    assert "Beta" in result.output
    assert "Active: 2" in result.output


def test_preview() -> None:
    runner = CliRunner()
    result = runner.invoke(main, ["preview", FIXTURE])
    assert result.exit_code == 0
    assert "40.00%" in result.output
    assert "60.00%" in result.output
    assert "Rebalance due: yes" in result.output


def test_rebalance_dry_run() -> None:
    runner = CliRunner()
    result = runner.invoke(main, ["rebalance", FIXTURE])
    assert result.exit_code == 0
    assert "2000" in result.output
    assert "1 operation(s)" in result.output


def test_rebalance_cooldown(tmp_path: Path) -> None:
    data = json.loads(Path(FIXTURE).read_text())
    data["epoch"] = 0
    path = tmp_path / "fresh.json"
    path.write_text(json.dumps(data))

    runner = CliRunner()
    result = runner.invoke(main, ["rebalance", str(path)])
    assert result.exit_code == 0
    assert "Cooldown active" in result.output


def test_rebalance_without_transfers_is_not_reported_as_cooldown(tmp_path: Path) -> None:
    data = json.loads(Path(FIXTURE).read_text())
    for worker in data["workers"]:
        worker["stake"] = 0
    path = tmp_path / "undeployed.json"
    path.write_text(json.dumps(data))

    runner = CliRunner()
    result = runner.invoke(main, ["rebalance", str(path)])
    assert result.exit_code == 0
    assert "Cooldown active" not in result.output
    assert "no stake could be moved" in result.output


def test_rebalance_records_audit(tmp_path: Path) -> None:
    data_dir = str(tmp_path / "sp")
    runner = CliRunner()
    result = runner.invoke(main, ["rebalance", FIXTURE, "--record", "--data-dir", data_dir])
    assert result.exit_code == 0

    result = runner.invoke(main, ["audit", "--data-dir", data_dir, "--kind", "rebalance"])
    assert result.exit_code == 0
    assert "rebalance" in result.output
    assert "registry" in result.output


def test_audit_empty(tmp_path: Path) -> None:
    runner = CliRunner()
    result = runner.invoke(main, ["audit", "--data-dir", str(tmp_path / "sp")])
    assert result.exit_code == 0
    assert "No audit records" in result.output


def test_ledger_error_exits_nonzero(tmp_path: Path) -> None:
    path = tmp_path / "bad.json"
    path.write_text(json.dumps({"vault": {"deposits": [{"depositor": "x", "amount": 5}]}}))

    runner = CliRunner()
    result = runner.invoke(main, ["rate", str(path)])
    assert result.exit_code == 1
    assert "deposit below minimum" in result.output
