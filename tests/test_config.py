"""Tests for settings loading."""

from __future__ import annotations

from pathlib import Path

import pytest

from stakepool.config import Settings, load_settings, settings_from_dict
from stakepool.errors import OutOfRange


def test_missing_file_gives_defaults(tmp_path: Path) -> None:
    settings = load_settings(tmp_path / "nope.toml")
    assert settings == Settings()
    assert settings.vault.minimum_deposit == 1_000_000_000
    assert settings.registry.capacity == 100
    assert settings.registry.max_stake_per_worker_bps == 2000
    assert settings.strategy.performance_threshold == 700
    assert settings.strategy.uptime_threshold == 95


def test_load_toml(tmp_path: Path) -> None:
    path = tmp_path / "config.toml"
    path.write_text(
        """
[vault]
minimum_deposit = 10

[strategy]
max_deviation_bps = 250
rebalance_frequency_epochs = 3

[logging]
level = "DEBUG"
json_logs = true
"""
    )
    settings = load_settings(path)

    assert settings.vault.minimum_deposit == 10
    assert settings.vault.rebalance_interval_epochs == 1
    assert settings.strategy.max_deviation_bps == 250
    assert settings.strategy.rebalance_frequency_epochs == 3
    assert settings.strategy.performance_threshold == 700
    assert settings.logging.level == "DEBUG"
    assert settings.logging.json_logs is True


def test_unknown_key_rejected() -> None:
    with pytest.raises(OutOfRange, match="registry"):
        settings_from_dict({"registry": {"capacity": 5, "colour": "red"}})
