"""Settings loaded from ``~/.stakepool/config.toml``.

Example file::

    [vault]
    minimum_deposit = 1_000_000_000
    rebalance_interval_epochs = 1

    [registry]
    capacity = 100
    min_uptime_threshold = 90
    max_stake_per_worker_bps = 2000

    [strategy]
    performance_threshold = 700
    uptime_threshold = 95
    max_deviation_bps = 500
    rebalance_frequency_epochs = 1

    [logging]
    level = "INFO"
    json_logs = false
"""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

from stakepool.errors import OutOfRange

DEFAULT_CONFIG_PATH = Path.home() / ".stakepool" / "config.toml"


@dataclass(frozen=True)
class VaultConfig:
    minimum_deposit: int = 1_000_000_000
    rebalance_interval_epochs: int = 1


@dataclass(frozen=True)
class RegistryConfig:
    capacity: int = 100
    min_uptime_threshold: int = 90
    max_stake_per_worker_bps: int = 2_000


@dataclass(frozen=True)
class StrategyConfig:
    performance_threshold: int = 700
    uptime_threshold: int = 95
    max_deviation_bps: int = 500
    rebalance_frequency_epochs: int = 1


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"
    log_dir: str | None = None
    json_logs: bool = False


@dataclass(frozen=True)
class Settings:
    vault: VaultConfig = field(default_factory=VaultConfig)
    registry: RegistryConfig = field(default_factory=RegistryConfig)
    strategy: StrategyConfig = field(default_factory=StrategyConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _section(cls: type, data: dict[str, Any], name: str) -> Any:
    known = {f.name for f in fields(cls)}
    unknown = set(data) - known
    if unknown:
        raise OutOfRange(
            f"unknown keys in [{name}]", context={"keys": ",".join(sorted(unknown))}
        )
    return cls(**data)


def settings_from_dict(data: dict[str, Any]) -> Settings:
    """Build ``Settings`` from a parsed mapping; missing sections use defaults."""
    return Settings(
        vault=_section(VaultConfig, data.get("vault", {}), "vault"),
        registry=_section(RegistryConfig, data.get("registry", {}), "registry"),
        strategy=_section(StrategyConfig, data.get("strategy", {}), "strategy"),
        logging=_section(LoggingConfig, data.get("logging", {}), "logging"),
    )


def load_settings(path: Path | None = None) -> Settings:
    """Read settings from TOML. A missing file yields the defaults."""
    config_path = path or DEFAULT_CONFIG_PATH
    if not config_path.exists():
        return Settings()
    with config_path.open("rb") as f:
        return settings_from_dict(tomllib.load(f))
