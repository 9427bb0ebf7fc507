"""Audit record types."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from types import MappingProxyType
from typing import Any


class AuditKind(StrEnum):
    """Kinds of ledger events that produce an audit record."""

    DEPOSIT = "deposit"
    WITHDRAW = "withdraw"
    REWARDS_RECORDED = "rewards_recorded"
    REWARDS_FOLDED = "rewards_folded"
    DELEGATION_RECORDED = "delegation_recorded"
    VAULT_CONFIG = "vault_config"
    WORKER_ADDED = "worker_added"
    WORKER_REMOVED = "worker_removed"
    PERFORMANCE_UPDATED = "performance_updated"
    STAKE_UPDATED = "stake_updated"
    REBALANCE = "rebalance"
    PENALTY = "penalty"
    STRATEGY_UPDATED = "strategy_updated"


def _freeze(values: Mapping[str, Any] | None) -> Mapping[str, Any]:
    return MappingProxyType(dict(values or {}))


@dataclass(frozen=True)
class AuditRecord:
    """Immutable before/after entry for one ledger mutation."""

    seq: int
    kind: AuditKind
    subject: str
    epoch: int
    before: Mapping[str, Any] = field(default_factory=lambda: _freeze(None))
    after: Mapping[str, Any] = field(default_factory=lambda: _freeze(None))
    details: Mapping[str, Any] = field(default_factory=lambda: _freeze(None))
    recorded_at: str = field(default_factory=lambda: datetime.now().isoformat())

    def __post_init__(self) -> None:
        object.__setattr__(self, "before", _freeze(self.before))
        object.__setattr__(self, "after", _freeze(self.after))
        object.__setattr__(self, "details", _freeze(self.details))

    def to_dict(self) -> dict[str, Any]:
        """Plain-dict view for JSON serialization."""
        return {
            "seq": self.seq,
            "kind": self.kind.value,
            "subject": self.subject,
            "epoch": self.epoch,
            "before": dict(self.before),
            "after": dict(self.after),
            "details": dict(self.details),
            "recorded_at": self.recorded_at,
        }
