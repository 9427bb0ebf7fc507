"""Build a wired-up ledger from a JSON scenario file.

Scenario format::

    {
      "epoch": 3,
      "vault": {
        "minimum_deposit": 1,
        "deposits": [{"depositor": "alice", "amount": 6000}],
        "delegated": 10000,
        "rewards": 0
      },
      "strategy": {"performance_threshold": 700, "max_deviation_bps": 500},
      "workers": [
        {"id": "w1", "name": "Alpha", "commission_bps": 500,
         "score": 900, "uptime": 99, "stake": 6000}
      ]
    }

Every section and key is optional; omitted values come from ``Settings``.
The clock is moved to ``epoch`` after setup, so the vault's last rebalance
stays at epoch 0.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

from stakepool.audit import AuditLog, MemoryAuditSink
from stakepool.config import Settings
from stakepool.engine import (
    InMemoryReceiptTreasury,
    ManualEpochClock,
    RebalanceStrategy,
    RebalancingEngine,
    ValidatorRegistry,
    Vault,
)
from stakepool.safety import AdminCap, Authority


@dataclass
class Scenario:
    """All components of one ledger instance, sharing clock, authority and audit log."""

    authority: Authority
    admin_cap: AdminCap
    clock: ManualEpochClock
    audit: AuditLog
    audit_sink: MemoryAuditSink
    treasury: InMemoryReceiptTreasury
    vault: Vault
    registry: ValidatorRegistry
    strategy: RebalanceStrategy
    engine: RebalancingEngine


def build_scenario(data: dict[str, Any], settings: Settings | None = None) -> Scenario:
    """Create and populate a ledger from an already-parsed scenario mapping."""
    settings = settings or Settings()
    vault_data = data.get("vault", {})

    authority = Authority()
    admin_cap = authority.issue("admin")
    clock = ManualEpochClock()
    audit_sink = MemoryAuditSink()
    audit = AuditLog([audit_sink])
    treasury = InMemoryReceiptTreasury()

    vault = Vault(
        authority,
        clock=clock,
        audit=audit,
        minimum_deposit=vault_data.get("minimum_deposit", settings.vault.minimum_deposit),
        rebalance_interval_epochs=vault_data.get(
            "rebalance_interval_epochs", settings.vault.rebalance_interval_epochs
        ),
    )
    registry = ValidatorRegistry(
        authority,
        clock=clock,
        audit=audit,
        capacity=settings.registry.capacity,
        min_uptime_threshold=settings.registry.min_uptime_threshold,
        max_stake_per_worker_bps=settings.registry.max_stake_per_worker_bps,
    )
    strategy = RebalanceStrategy(**{**asdict(settings.strategy), **data.get("strategy", {})})
    engine = RebalancingEngine(authority, authority.issue("rebalancer"), clock=clock, audit=audit)

    for deposit in vault_data.get("deposits", []):
        vault.deposit(deposit["amount"], deposit["depositor"], treasury)
    if vault_data.get("delegated"):
        vault.record_delegation(admin_cap, vault_data["delegated"])
    if vault_data.get("rewards"):
        vault.record_rewards(admin_cap, vault_data["rewards"])

    for worker in data.get("workers", []):
        registry.add_worker(
            admin_cap, worker["id"], worker.get("name", worker["id"]), worker.get("commission_bps", 0)
        )
        if "score" in worker or "uptime" in worker:
            registry.update_performance(
                admin_cap,
                worker["id"],
                worker.get("score", 500),
                worker.get("uptime", 100),
            )
        if worker.get("stake"):
            registry.update_stake_allocation(admin_cap, worker["id"], worker["stake"])

    clock.set(data.get("epoch", 0))

    return Scenario(
        authority=authority,
        admin_cap=admin_cap,
        clock=clock,
        audit=audit,
        audit_sink=audit_sink,
        treasury=treasury,
        vault=vault,
        registry=registry,
        strategy=strategy,
        engine=engine,
    )


def load_scenario(path: Path | str, settings: Settings | None = None) -> Scenario:
    """Read a JSON scenario file and build it."""
    with Path(path).open(encoding="utf-8") as f:
        data = json.load(f)
    return build_scenario(data, settings)
