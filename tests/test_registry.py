"""Tests for the validator registry."""

from __future__ import annotations

import pytest

from stakepool.audit import AuditKind, MemoryAuditSink
from stakepool.engine import ManualEpochClock, ValidatorRegistry
from stakepool.errors import (
    AlreadyExists,
    CapacityExceeded,
    NotFound,
    OutOfRange,
    Unauthorized,
)
from stakepool.safety import AdminCap, Authority


class TestMembership:
    """Add, remove and active-set ordering."""

    def test_add_worker_defaults(
        self, registry: ValidatorRegistry, admin_cap: AdminCap, clock: ManualEpochClock
    ) -> None:
        clock.set(4)
        registry.add_worker(admin_cap, "w1", "Alpha", 500)

        record = registry.get_worker("w1")
        assert record.name == "Alpha"
        assert record.performance_score == 500
        assert record.uptime_percent == 100
        assert record.total_stake == 0
        assert record.stake_weight == 0
        assert record.commission_rate_bps == 500
        assert record.active is True
        assert record.epoch_added == 4
        assert registry.active_workers() == ["w1"]

    def test_duplicate_id(self, registry: ValidatorRegistry, admin_cap: AdminCap) -> None:
        registry.add_worker(admin_cap, "w1", "Alpha")
        with pytest.raises(AlreadyExists):
            registry.add_worker(admin_cap, "w1", "Again")

    def test_capacity(self, authority: Authority, admin_cap: AdminCap) -> None:
        registry = ValidatorRegistry(authority, capacity=2)
        registry.add_worker(admin_cap, "w1", "Alpha")
        registry.add_worker(admin_cap, "w2", "Beta")
        with pytest.raises(CapacityExceeded):
            registry.add_worker(admin_cap, "w3", "Gamma")
        assert len(registry) == 2

    def test_remove_worker(self, registry: ValidatorRegistry, admin_cap: AdminCap) -> None:
        registry.add_worker(admin_cap, "w1", "Alpha")
        registry.add_worker(admin_cap, "w2", "Beta")

        registry.remove_worker(admin_cap, "w1", "retired")

        assert "w1" not in registry
        assert registry.active_workers() == ["w2"]
        with pytest.raises(NotFound):
            registry.get_worker("w1")

    def test_remove_unknown(self, registry: ValidatorRegistry, admin_cap: AdminCap) -> None:
        with pytest.raises(NotFound):
            registry.remove_worker(admin_cap, "ghost", "n/a")

    def test_get_worker_returns_copy(
        self, registry: ValidatorRegistry, admin_cap: AdminCap
    ) -> None:
        registry.add_worker(admin_cap, "w1", "Alpha")
        record = registry.get_worker("w1")
        record.total_stake = 999
        assert registry.get_worker("w1").total_stake == 0

    def test_requires_capability(self, registry: ValidatorRegistry) -> None:
        foreign = Authority("other").issue()
        with pytest.raises(Unauthorized):
            registry.add_worker(foreign, "w1", "Alpha")
        assert len(registry) == 0


class TestPerformance:
    def test_update_performance(
        self, registry: ValidatorRegistry, admin_cap: AdminCap, clock: ManualEpochClock
    ) -> None:
        registry.add_worker(admin_cap, "w1", "Alpha")
        clock.advance(3)
        registry.update_performance(admin_cap, "w1", 850, 99)

        record = registry.get_worker("w1")
        assert record.performance_score == 850
        assert record.uptime_percent == 99
        assert record.last_updated == 3

    def test_score_out_of_range(self, registry: ValidatorRegistry, admin_cap: AdminCap) -> None:
        registry.add_worker(admin_cap, "w1", "Alpha")
        with pytest.raises(OutOfRange):
            registry.update_performance(admin_cap, "w1", 1001, 99)
        with pytest.raises(OutOfRange):
            registry.update_performance(admin_cap, "w1", 900, 101)
        assert registry.get_worker("w1").performance_score == 500

    def test_unknown_worker(self, registry: ValidatorRegistry, admin_cap: AdminCap) -> None:
        with pytest.raises(NotFound):
            registry.update_performance(admin_cap, "ghost", 900, 99)

    def test_low_uptime_deactivates(
        self, registry: ValidatorRegistry, admin_cap: AdminCap
    ) -> None:
        registry.add_worker(admin_cap, "w1", "Alpha")
        registry.add_worker(admin_cap, "w2", "Beta")

        registry.update_performance(admin_cap, "w1", 900, 89)

        assert registry.get_worker("w1").active is False
        assert registry.active_workers() == ["w2"]

    def test_uptime_at_threshold_stays_active(
        self, registry: ValidatorRegistry, admin_cap: AdminCap
    ) -> None:
        registry.add_worker(admin_cap, "w1", "Alpha")
        registry.update_performance(admin_cap, "w1", 900, 90)
        assert registry.get_worker("w1").active is True

    def test_recovery_reactivates_at_end(
        self, registry: ValidatorRegistry, admin_cap: AdminCap
    ) -> None:
        for wid in ("w1", "w2", "w3"):
            registry.add_worker(admin_cap, wid, wid.upper())

        registry.update_performance(admin_cap, "w1", 900, 50)
        registry.update_performance(admin_cap, "w1", 900, 98)

        assert registry.get_worker("w1").active is True
        assert registry.active_workers() == ["w2", "w3", "w1"]

    def test_performance_update_audited(
        self, registry: ValidatorRegistry, admin_cap: AdminCap, audit_sink: MemoryAuditSink
    ) -> None:
        registry.add_worker(admin_cap, "w1", "Alpha")
        registry.update_performance(admin_cap, "w1", 820, 97)

        (record,) = audit_sink.of_kind(AuditKind.PERFORMANCE_UPDATED)
        assert record.before["performance_score"] == 500
        assert record.after["performance_score"] == 820


class TestStake:
    def test_update_stake_allocation(
        self, registry: ValidatorRegistry, admin_cap: AdminCap
    ) -> None:
        registry.add_worker(admin_cap, "w1", "Alpha")
        registry.update_stake_allocation(admin_cap, "w1", 5000)

        record = registry.get_worker("w1")
        assert record.total_stake == 5000
        assert record.stake_weight == 0

    def test_stake_unknown_worker(
        self, registry: ValidatorRegistry, admin_cap: AdminCap
    ) -> None:
        with pytest.raises(NotFound):
            registry.update_stake_allocation(admin_cap, "ghost", 1)

    def test_set_stake_weight(self, registry: ValidatorRegistry, admin_cap: AdminCap) -> None:
        registry.add_worker(admin_cap, "w1", "Alpha")
        registry.set_stake_weight(admin_cap, "w1", 2500)
        assert registry.get_worker("w1").stake_weight == 2500
        with pytest.raises(OutOfRange):
            registry.set_stake_weight(admin_cap, "w1", 10_001)

    def test_apply_and_restore_stakes(
        self, registry: ValidatorRegistry, admin_cap: AdminCap
    ) -> None:
        registry.add_worker(admin_cap, "w1", "Alpha")
        registry.add_worker(admin_cap, "w2", "Beta")
        registry.update_stake_allocation(admin_cap, "w1", 3000)

        previous = registry.apply_stakes(admin_cap, {"w1": 1000, "w2": 2000}, {"w1": 5000})
        assert previous == {"w1": (3000, 0), "w2": (0, 0)}
        assert registry.get_worker("w2").total_stake == 2000
        assert registry.get_worker("w1").stake_weight == 5000

        registry.restore_stakes(admin_cap, previous)
        assert registry.get_worker("w1").total_stake == 3000
        assert registry.get_worker("w1").stake_weight == 0
        assert registry.get_worker("w2").total_stake == 0

    def test_apply_stakes_unknown_worker_writes_nothing(
        self, registry: ValidatorRegistry, admin_cap: AdminCap
    ) -> None:
        registry.add_worker(admin_cap, "w1", "Alpha")
        with pytest.raises(NotFound):
            registry.apply_stakes(admin_cap, {"w1": 1000, "ghost": 1})
        assert registry.get_worker("w1").total_stake == 0


class TestQueries:
    def test_top_workers(self, registry: ValidatorRegistry, admin_cap: AdminCap) -> None:
        scores = {"w1": 700, "w2": 900, "w3": 800, "w4": 900}
        for wid, score in scores.items():
            registry.add_worker(admin_cap, wid, wid)
            registry.update_performance(admin_cap, wid, score, 99)

        assert registry.top_workers(3) == ["w2", "w4", "w3"]
        assert registry.top_workers(10) == ["w2", "w4", "w3", "w1"]
        assert registry.top_workers(0) == []

    def test_top_workers_skips_inactive(
        self, registry: ValidatorRegistry, admin_cap: AdminCap
    ) -> None:
        registry.add_worker(admin_cap, "w1", "Alpha")
        registry.add_worker(admin_cap, "w2", "Beta")
        registry.update_performance(admin_cap, "w1", 1000, 10)

        assert registry.top_workers(2) == ["w2"]

    def test_stats(self, registry: ValidatorRegistry, admin_cap: AdminCap) -> None:
        registry.add_worker(admin_cap, "w1", "Alpha")
        registry.add_worker(admin_cap, "w2", "Beta")
        registry.update_performance(admin_cap, "w2", 700, 50)
        registry.update_stake_allocation(admin_cap, "w1", 300)
        registry.update_stake_allocation(admin_cap, "w2", 200)

        stats = registry.stats()
        assert stats.total_workers == 2
        assert stats.active_workers == 1
        assert stats.total_stake == 500
        assert stats.average_performance == 600
        assert stats.capacity == 100

    def test_stats_empty(self, registry: ValidatorRegistry) -> None:
        stats = registry.stats()
        assert stats.total_workers == 0
        assert stats.average_performance == 0


class TestStakeDistribution:
    def test_proportional_to_score(
        self, authority: Authority, admin_cap: AdminCap
    ) -> None:
        registry = ValidatorRegistry(authority, max_stake_per_worker_bps=10_000)
        registry.add_worker(admin_cap, "w1", "Alpha")
        registry.add_worker(admin_cap, "w2", "Beta")
        registry.update_performance(admin_cap, "w1", 600, 99)
        registry.update_performance(admin_cap, "w2", 400, 99)

        assert registry.calculate_stake_distribution(1000) == {"w1": 600, "w2": 400}

    def test_cap_leaves_remainder_unallocated(
        self, registry: ValidatorRegistry, admin_cap: AdminCap
    ) -> None:
        registry.add_worker(admin_cap, "w1", "Alpha")
        registry.add_worker(admin_cap, "w2", "Beta")

        distribution = registry.calculate_stake_distribution(10_000)

        assert distribution == {"w1": 2000, "w2": 2000}
        assert sum(distribution.values()) < 10_000

    def test_no_active_workers(self, registry: ValidatorRegistry) -> None:
        assert registry.calculate_stake_distribution(10_000) == {}
