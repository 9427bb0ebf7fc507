"""Shared ledger fixtures."""

from __future__ import annotations

from collections.abc import Iterator

import pytest
from loguru import logger

from stakepool.audit import AuditLog, MemoryAuditSink
from stakepool.engine import (
    InMemoryReceiptTreasury,
    ManualEpochClock,
    RebalanceStrategy,
    RebalancingEngine,
    ValidatorRegistry,
    Vault,
)
from stakepool.safety import AdminCap, Authority


@pytest.fixture(autouse=True)
def _reset_logger() -> Iterator[None]:
    """Remove log sinks added during the test."""
    yield
    logger.remove()


@pytest.fixture
def authority() -> Authority:
    return Authority("test")


@pytest.fixture
def admin_cap(authority: Authority) -> AdminCap:
    return authority.issue()


@pytest.fixture
def clock() -> ManualEpochClock:
    return ManualEpochClock()


@pytest.fixture
def audit_sink() -> MemoryAuditSink:
    return MemoryAuditSink()


@pytest.fixture
def audit(audit_sink: MemoryAuditSink) -> AuditLog:
    return AuditLog([audit_sink])


@pytest.fixture
def treasury() -> InMemoryReceiptTreasury:
    return InMemoryReceiptTreasury()


@pytest.fixture
def vault(authority: Authority, clock: ManualEpochClock, audit: AuditLog) -> Vault:
    """Vault with a minimum deposit of 1 so small-number scenarios work."""
    return Vault(authority, clock=clock, audit=audit, minimum_deposit=1)


@pytest.fixture
def registry(
    authority: Authority, clock: ManualEpochClock, audit: AuditLog
) -> ValidatorRegistry:
    return ValidatorRegistry(authority, clock=clock, audit=audit)


@pytest.fixture
def strategy() -> RebalanceStrategy:
    return RebalanceStrategy()


@pytest.fixture
def engine(authority: Authority, clock: ManualEpochClock, audit: AuditLog) -> RebalancingEngine:
    return RebalancingEngine(authority, authority.issue("rebalancer"), clock=clock, audit=audit)
