"""Ledger engine: vault, validator registry and rebalancing."""

from stakepool.engine.clock import EpochClock, ManualEpochClock
from stakepool.engine.models import (
    BPS,
    INITIAL_RATE,
    RATE_SCALE,
    U64_MAX,
    AllocationTarget,
    RebalanceOperation,
    RebalanceStrategy,
)
from stakepool.engine.rebalancer import (
    RebalancePhase,
    RebalancingEngine,
    compute_targets,
    match_operations,
    weighted_score,
)
from stakepool.engine.registry import RegistryStats, ValidatorRecord, ValidatorRegistry
from stakepool.engine.transaction import SharedResource, transaction
from stakepool.engine.treasury import InMemoryReceiptTreasury, ReceiptTreasury
from stakepool.engine.vault import Vault, VaultConfigView, VaultSnapshot

__all__ = [
    "BPS",
    "INITIAL_RATE",
    "RATE_SCALE",
    "U64_MAX",
    "AllocationTarget",
    "EpochClock",
    "InMemoryReceiptTreasury",
    "ManualEpochClock",
    "ReceiptTreasury",
    "RebalanceOperation",
    "RebalancePhase",
    "RebalanceStrategy",
    "RebalancingEngine",
    "RegistryStats",
    "SharedResource",
    "ValidatorRecord",
    "ValidatorRegistry",
    "Vault",
    "VaultConfigView",
    "VaultSnapshot",
    "compute_targets",
    "match_operations",
    "transaction",
    "weighted_score",
]
