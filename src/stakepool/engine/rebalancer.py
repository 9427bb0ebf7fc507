"""Rebalancing Engine - target allocation, drift detection and stake matching.

Weighted score:
    weighted = (score * 7000 + uptime * 3000) // 10000

The score is on a 0-1000 scale and uptime on 0-100; the two are summed as-is
without normalisation. Changing this changes allocation outcomes.

Lifecycle of ``execute``:
    IDLE -> EVALUATING -> (no drift or cooldown) -> IDLE
                       -> EXECUTING -> IDLE
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import StrEnum
from typing import Any

from loguru import logger

from stakepool.audit import AuditKind, AuditLog
from stakepool.engine.clock import EpochClock, ManualEpochClock
from stakepool.engine.models import (
    BPS,
    AllocationTarget,
    RebalanceOperation,
    RebalanceStrategy,
)
from stakepool.engine.registry import ValidatorRecord, ValidatorRegistry
from stakepool.engine.transaction import transaction
from stakepool.engine.vault import Vault
from stakepool.errors import InvalidState, OutOfRange
from stakepool.safety import AdminCap, Authority

# Weighted-score mix in bps
PERFORMANCE_WEIGHT_BPS = 7_000
UPTIME_WEIGHT_BPS = 3_000

PENALTY_RECIPIENTS = 3
MAX_PENALTY_PERCENT = 100

REASON_REBALANCE = "rebalance"


class RebalancePhase(StrEnum):
    IDLE = "idle"
    EVALUATING = "evaluating"
    EXECUTING = "executing"


def weighted_score(score: int, uptime: int) -> int:
    return (score * PERFORMANCE_WEIGHT_BPS + uptime * UPTIME_WEIGHT_BPS) // BPS


def is_eligible(record: ValidatorRecord, strategy: RebalanceStrategy) -> bool:
    return (
        record.active
        and record.performance_score >= strategy.performance_threshold
        and record.uptime_percent >= strategy.uptime_threshold
    )


def compute_targets(
    weights: Mapping[str, int], current: Mapping[str, int], total_stake: int
) -> list[AllocationTarget]:
    """
    Turn per-worker weighted scores into allocation targets.

    Falls back to an equal split when every weight is zero.

    Args:
        weights: Weighted score per worker, in output order (0 if ineligible)
        current: Recorded stake per worker
        total_stake: Capital being distributed

    Returns:
        One target per worker in ``weights``
    """
    if not weights:
        return []

    total_weighted = sum(weights.values())
    equal_bps = BPS // len(weights)

    targets = []
    for worker, weight in weights.items():
        if total_weighted > 0:
            target_bps = weight * BPS // total_weighted
        else:
            target_bps = equal_bps
        stake = current.get(worker, 0)
        current_bps = stake * BPS // total_stake if total_stake > 0 else 0
        targets.append(
            AllocationTarget(
                worker=worker,
                target_bps=target_bps,
                current_bps=current_bps,
                allocation_amount=total_stake * target_bps // BPS,
            )
        )
    return targets


def match_operations(
    targets: list[AllocationTarget], total_stake: int
) -> list[RebalanceOperation]:
    """
    Pair over-allocated workers with under-allocated ones (greedy, single pass).

    Both lists keep the order of ``targets``. Each step moves
    ``min(remaining excess, remaining deficit)`` and advances whichever side
    was satisfied, or both on a tie. A zero transfer emits nothing.

    Each step retires at least one side and the last step retires both, so a
    pass yields at most ``len(excess) + len(deficit) - 1`` operations. No
    transfer overshoots a target. Deviations without a counterpart stay
    open; repeated calls converge.
    """
    excess = [t for t in targets if t.current_bps > t.target_bps]
    deficit = [t for t in targets if t.current_bps < t.target_bps]

    operations: list[RebalanceOperation] = []
    i = j = 0
    excess_left = deficit_left = None

    while i < len(excess) and j < len(deficit):
        source = excess[i]
        dest = deficit[j]
        if excess_left is None:
            excess_left = (source.current_bps - source.target_bps) * total_stake // BPS
        if deficit_left is None:
            deficit_left = (dest.target_bps - dest.current_bps) * total_stake // BPS

        amount = min(excess_left, deficit_left)
        if amount > 0:
            operations.append(
                RebalanceOperation(
                    from_worker=source.worker,
                    to_worker=dest.worker,
                    amount=amount,
                    reason=REASON_REBALANCE,
                )
            )
        excess_left -= amount
        deficit_left -= amount

        if excess_left == 0:
            i += 1
            excess_left = None
        if deficit_left == 0:
            j += 1
            deficit_left = None

    return operations


def _stage(
    stakes: dict[str, int], operations: list[RebalanceOperation]
) -> dict[str, int]:
    """Apply operations to a copy of ``stakes``; raise before anything is written."""
    staged = dict(stakes)
    for op in operations:
        if staged[op.from_worker] < op.amount:
            raise InvalidState(
                "transfer exceeds recorded stake",
                context={
                    "worker_id": op.from_worker,
                    "stake": staged[op.from_worker],
                    "amount": op.amount,
                },
            )
        staged[op.from_worker] -= op.amount
        staged[op.to_worker] += op.amount
    return staged


class RebalancingEngine:
    """
    Computes target allocations and moves registry stake toward them.

    ``execute`` is permissionless: the engine writes stake records with its
    own delegated capability. Penalties and strategy changes require the
    caller's admin capability.
    """

    def __init__(
        self,
        authority: Authority,
        cap: AdminCap,
        *,
        clock: EpochClock | None = None,
        audit: AuditLog | None = None,
    ) -> None:
        authority.verify(cap, "rebalancing_engine")
        self.authority = authority
        self._cap = cap
        self.clock = clock or ManualEpochClock()
        self.audit = audit or AuditLog()
        self.phase = RebalancePhase.IDLE

    # ------------------------------------------------------------------
    # Pure computation
    # ------------------------------------------------------------------

    def calculate_optimal_allocation(
        self,
        registry: ValidatorRegistry,
        strategy: RebalanceStrategy,
        total_stake: int,
    ) -> list[AllocationTarget]:
        """
        Targets for every active worker.

        Ineligible active workers stay in the list with weight 0. No
        per-worker cap is applied here; ``calculate_stake_distribution`` on
        the registry is the capped helper.
        """
        with transaction(registry, strategy):
            records = [registry.get_worker(wid) for wid in registry.active_workers()]
            weights = {
                r.worker_id: weighted_score(r.performance_score, r.uptime_percent)
                if is_eligible(r, strategy)
                else 0
                for r in records
            }
            current = {r.worker_id: r.total_stake for r in records}
        return compute_targets(weights, current, total_stake)

    def preview_allocation(
        self, strategy: RebalanceStrategy, vault: Vault, registry: ValidatorRegistry
    ) -> list[AllocationTarget]:
        """Targets over the vault's delegated capital. Mutates nothing."""
        with transaction(vault, registry, strategy):
            total_stake = vault.snapshot().delegated_capital
            return self.calculate_optimal_allocation(registry, strategy, total_stake)

    def cooldown_remaining(self, strategy: RebalanceStrategy, vault: Vault) -> int:
        """Epochs left before a rebalance may run again (0 when allowed)."""
        with transaction(vault, strategy):
            elapsed = self.clock.current() - vault.config().last_rebalance_epoch
            return max(strategy.rebalance_frequency_epochs - elapsed, 0)

    def should_rebalance(
        self, strategy: RebalanceStrategy, vault: Vault, registry: ValidatorRegistry
    ) -> bool:
        with transaction(vault, registry, strategy):
            if self.cooldown_remaining(strategy, vault) > 0:
                logger.debug("Rebalance skipped: cooldown not elapsed")
                return False
            targets = self.preview_allocation(strategy, vault, registry)
            return any(t.deviation_bps > strategy.max_deviation_bps for t in targets)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def execute(
        self, strategy: RebalanceStrategy, vault: Vault, registry: ValidatorRegistry
    ) -> list[RebalanceOperation]:
        """
        Run one rebalance pass.

        All operations are staged and checked before any stake is written.
        Stakes and weights are written as one batch; if stamping the vault
        then fails, the batch is undone. Audit records are emitted only
        after everything is committed.

        Returns:
            Operations applied (empty on a no-op)
        """
        self.authority.verify(self._cap, "execute")
        with transaction(vault, registry, strategy):
            self.phase = RebalancePhase.EVALUATING
            try:
                if not self.should_rebalance(strategy, vault, registry):
                    logger.debug("Rebalance no-op")
                    return []

                self.phase = RebalancePhase.EXECUTING
                epoch = self.clock.current()
                total_stake = vault.snapshot().delegated_capital
                targets = self.calculate_optimal_allocation(registry, strategy, total_stake)
                operations = match_operations(targets, total_stake)

                stakes = {t.worker: registry.get_worker(t.worker).total_stake for t in targets}
                staged = _stage(stakes, operations)

                changed = {w: amount for w, amount in staged.items() if amount != stakes[w]}
                weights = {t.worker: t.target_bps for t in targets}
                previous = registry.apply_stakes(self._cap, changed, weights)
                try:
                    vault.mark_rebalanced(self._cap, epoch)
                except Exception:
                    logger.error("Rebalance aborted at epoch {epoch}; restoring stakes", epoch=epoch)
                    registry.restore_stakes(self._cap, previous)
                    raise

                logger.info(
                    "Rebalanced {count} operations at epoch {epoch}",
                    count=len(operations),
                    epoch=epoch,
                )
                self.audit.emit(
                    AuditKind.REBALANCE,
                    "registry",
                    epoch,
                    before=stakes,
                    after=staged,
                    total_stake=total_stake,
                    operations=[
                        {"from": op.from_worker, "to": op.to_worker, "amount": op.amount}
                        for op in operations
                    ],
                )
                return operations
            finally:
                self.phase = RebalancePhase.IDLE

    def penalize_worker(
        self,
        cap: AdminCap,
        strategy: RebalanceStrategy,
        registry: ValidatorRegistry,
        worker_id: str,
        reason: str,
    ) -> list[RebalanceOperation]:
        """
        Move part of an under-performing worker's stake to the top performers.

        The penalty percent is the shortfall against the performance
        threshold, or failing that the uptime threshold, capped at 100.
        ``stake * penalty // 100`` is split evenly over up to three top
        workers (the penalized one excluded); the remainder goes to the first.

        Raises:
            Unauthorized: Invalid capability
            NotFound: Unknown worker
        """
        self.authority.verify(cap, "penalize_worker")
        with transaction(registry, strategy):
            record = registry.get_worker(worker_id)
            if not record.active:
                logger.debug("Penalty skipped: {worker_id} inactive", worker_id=worker_id)
                return []

            if record.performance_score < strategy.performance_threshold:
                penalty = strategy.performance_threshold - record.performance_score
            elif record.uptime_percent < strategy.uptime_threshold:
                penalty = strategy.uptime_threshold - record.uptime_percent
            else:
                penalty = 0
            penalty = min(penalty, MAX_PENALTY_PERCENT)

            moved = record.total_stake * penalty // MAX_PENALTY_PERCENT
            recipients = [
                wid
                for wid in registry.top_workers(PENALTY_RECIPIENTS + 1)
                if wid != worker_id
            ][:PENALTY_RECIPIENTS]
            if penalty == 0 or moved == 0 or not recipients:
                logger.debug(
                    "Penalty no-op for {worker_id} (penalty={penalty})",
                    worker_id=worker_id,
                    penalty=penalty,
                )
                return []

            share, remainder = divmod(moved, len(recipients))
            operations = [
                RebalanceOperation(
                    from_worker=worker_id,
                    to_worker=wid,
                    amount=share + (remainder if idx == 0 else 0),
                    reason=reason,
                )
                for idx, wid in enumerate(recipients)
            ]
            operations = [op for op in operations if op.amount > 0]

            stakes = {worker_id: record.total_stake}
            stakes.update({wid: registry.get_worker(wid).total_stake for wid in recipients})
            staged = _stage(stakes, operations)
            registry.apply_stakes(cap, staged)

            logger.warning(
                "Penalized {worker_id} by {penalty}%: moved {moved} ({reason})",
                worker_id=worker_id,
                penalty=penalty,
                moved=moved,
                reason=reason,
            )
            self.audit.emit(
                AuditKind.PENALTY,
                worker_id,
                self.clock.current(),
                before=stakes,
                after=staged,
                penalty_percent=penalty,
                reason=reason,
            )
            return operations

    def update_strategy(
        self, cap: AdminCap, strategy: RebalanceStrategy, **changes: Any
    ) -> RebalanceStrategy:
        """Change strategy fields. Unknown names or bad values raise ``OutOfRange``."""
        self.authority.verify(cap, "update_strategy")
        unknown = set(changes) - set(RebalanceStrategy.FIELDS)
        if unknown:
            raise OutOfRange(
                "unknown strategy fields", context={"fields": ",".join(sorted(unknown))}
            )

        with strategy.lock:
            before = strategy.as_dict()
            after = {**before, **changes}
            RebalanceStrategy.validate(after)
            for name, value in changes.items():
                setattr(strategy, name, value)

            logger.info("Strategy updated: {changes}", changes=changes)
            self.audit.emit(
                AuditKind.STRATEGY_UPDATED,
                "strategy",
                self.clock.current(),
                before=before,
                after=after,
            )
            return strategy
