"""Validator Registry - worker existence, scores, stake and active-set membership."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import asdict, dataclass, replace
from typing import Any, ClassVar

from loguru import logger

from stakepool.audit import AuditKind, AuditLog
from stakepool.engine.clock import EpochClock, ManualEpochClock
from stakepool.engine.models import (
    BPS,
    MAX_PERFORMANCE_SCORE,
    MAX_UPTIME_PERCENT,
    check_bps,
    check_u64,
)
from stakepool.engine.transaction import SharedResource
from stakepool.errors import AlreadyExists, CapacityExceeded, NotFound, OutOfRange
from stakepool.safety import AdminCap, Authority

DEFAULT_CAPACITY = 100
DEFAULT_MIN_UPTIME = 90
DEFAULT_MAX_STAKE_PER_WORKER_BPS = 2_000  # 20% of the pool

INITIAL_PERFORMANCE_SCORE = 500
INITIAL_UPTIME_PERCENT = 100


@dataclass
class ValidatorRecord:
    """State of one registered worker."""

    worker_id: str
    name: str
    commission_rate_bps: int
    epoch_added: int
    last_updated: int
    performance_score: int = INITIAL_PERFORMANCE_SCORE  # 0-1000
    uptime_percent: int = INITIAL_UPTIME_PERCENT  # 0-100
    stake_weight: int = 0  # bps, written by the rebalancer
    total_stake: int = 0
    active: bool = True

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class RegistryStats:
    total_workers: int
    active_workers: int
    total_stake: int
    average_performance: int
    capacity: int


class ValidatorRegistry(SharedResource):
    """
    Single source of truth for workers.

    Records live in a dict keyed by worker id. Active membership is an
    explicit ordered list of ids; a record is ``active`` exactly while its
    id is in that list.
    """

    resource_name: ClassVar[str] = "registry"

    def __init__(
        self,
        authority: Authority,
        *,
        clock: EpochClock | None = None,
        audit: AuditLog | None = None,
        capacity: int = DEFAULT_CAPACITY,
        min_uptime_threshold: int = DEFAULT_MIN_UPTIME,
        max_stake_per_worker_bps: int = DEFAULT_MAX_STAKE_PER_WORKER_BPS,
    ) -> None:
        if capacity < 0:
            raise OutOfRange("capacity must be >= 0", context={"capacity": capacity})
        if not 0 <= min_uptime_threshold <= MAX_UPTIME_PERCENT:
            raise OutOfRange(
                f"min_uptime_threshold must be in [0, {MAX_UPTIME_PERCENT}]",
                context={"min_uptime_threshold": min_uptime_threshold},
            )
        self._init_resource()
        self.authority = authority
        self.clock = clock or ManualEpochClock()
        self.audit = audit or AuditLog()
        self.capacity = capacity
        self.min_uptime_threshold = min_uptime_threshold
        self.max_stake_per_worker_bps = check_bps(
            "max_stake_per_worker_bps", max_stake_per_worker_bps
        )

        self._records: dict[str, ValidatorRecord] = {}
        self._active_order: list[str] = []

    def __len__(self) -> int:
        with self.lock:
            return len(self._records)

    def __contains__(self, worker_id: object) -> bool:
        with self.lock:
            return worker_id in self._records

    def _require(self, worker_id: str) -> ValidatorRecord:
        record = self._records.get(worker_id)
        if record is None:
            raise NotFound("unknown worker", context={"worker_id": worker_id})
        return record

    def _activate(self, record: ValidatorRecord) -> None:
        record.active = True
        if record.worker_id not in self._active_order:
            self._active_order.append(record.worker_id)

    def _deactivate(self, record: ValidatorRecord) -> None:
        record.active = False
        if record.worker_id in self._active_order:
            self._active_order.remove(record.worker_id)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add_worker(
        self, cap: AdminCap, worker_id: str, name: str, commission_bps: int = 0
    ) -> ValidatorRecord:
        """
        Register a new worker.

        Starts at score 500, uptime 100, stake 0 and active.

        Raises:
            AlreadyExists: ``worker_id`` is already registered
            CapacityExceeded: Registry is full
        """
        self.authority.verify(cap, "add_worker")
        check_bps("commission_bps", commission_bps)
        with self.lock:
            if worker_id in self._records:
                raise AlreadyExists("worker already registered", context={"worker_id": worker_id})
            if len(self._records) >= self.capacity:
                raise CapacityExceeded(
                    "registry at capacity",
                    context={"capacity": self.capacity, "worker_id": worker_id},
                )

            epoch = self.clock.current()
            record = ValidatorRecord(
                worker_id=worker_id,
                name=name,
                commission_rate_bps=commission_bps,
                epoch_added=epoch,
                last_updated=epoch,
            )
            self._records[worker_id] = record
            self._activate(record)

            logger.info("Added worker {worker_id} ({name})", worker_id=worker_id, name=name)
            self.audit.emit(
                AuditKind.WORKER_ADDED,
                worker_id,
                epoch,
                after=record.to_dict(),
            )
            return replace(record)

    def remove_worker(self, cap: AdminCap, worker_id: str, reason: str = "") -> None:
        """Drop a worker from the record map and the active ordering."""
        self.authority.verify(cap, "remove_worker")
        with self.lock:
            record = self._require(worker_id)
            self._deactivate(record)
            del self._records[worker_id]

            logger.info("Removed worker {worker_id}: {reason}", worker_id=worker_id, reason=reason)
            self.audit.emit(
                AuditKind.WORKER_REMOVED,
                worker_id,
                self.clock.current(),
                before=record.to_dict(),
                reason=reason,
            )

    def update_performance(
        self, cap: AdminCap, worker_id: str, score: int, uptime: int
    ) -> ValidatorRecord:
        """
        Store a new performance score and uptime and re-evaluate membership.

        Uptime below ``min_uptime_threshold`` deactivates the worker; an
        inactive worker meeting the threshold again is appended to the end of
        the active ordering.

        Raises:
            NotFound: Unknown worker
            OutOfRange: ``score`` outside 0-1000 or ``uptime`` outside 0-100
        """
        self.authority.verify(cap, "update_performance")
        if not 0 <= score <= MAX_PERFORMANCE_SCORE:
            raise OutOfRange(
                f"performance score must be in [0, {MAX_PERFORMANCE_SCORE}]",
                context={"worker_id": worker_id, "score": score},
            )
        if not 0 <= uptime <= MAX_UPTIME_PERCENT:
            raise OutOfRange(
                f"uptime must be in [0, {MAX_UPTIME_PERCENT}]",
                context={"worker_id": worker_id, "uptime": uptime},
            )

        with self.lock:
            record = self._require(worker_id)
            before = record.to_dict()

            record.performance_score = score
            record.uptime_percent = uptime
            record.last_updated = self.clock.current()

            if uptime < self.min_uptime_threshold:
                if record.active:
                    logger.warning(
                        "Worker {worker_id} deactivated: uptime {uptime} < {threshold}",
                        worker_id=worker_id,
                        uptime=uptime,
                        threshold=self.min_uptime_threshold,
                    )
                self._deactivate(record)
            elif not record.active:
                logger.info("Worker {worker_id} re-activated", worker_id=worker_id)
                self._activate(record)

            self.audit.emit(
                AuditKind.PERFORMANCE_UPDATED,
                worker_id,
                record.last_updated,
                before=before,
                after=record.to_dict(),
            )
            return replace(record)

    def update_stake_allocation(self, cap: AdminCap, worker_id: str, amount: int) -> None:
        """Set the worker's recorded stake. The weight is left for the caller."""
        self.authority.verify(cap, "update_stake_allocation")
        check_u64("total_stake", amount)
        with self.lock:
            record = self._require(worker_id)
            before = record.total_stake
            record.total_stake = amount
            record.last_updated = self.clock.current()
            self.audit.emit(
                AuditKind.STAKE_UPDATED,
                worker_id,
                record.last_updated,
                before={"total_stake": before},
                after={"total_stake": amount},
            )

    def set_stake_weight(self, cap: AdminCap, worker_id: str, weight_bps: int) -> None:
        self.authority.verify(cap, "set_stake_weight")
        check_bps("stake_weight", weight_bps)
        with self.lock:
            record = self._require(worker_id)
            record.stake_weight = weight_bps

    def apply_stakes(
        self,
        cap: AdminCap,
        stakes: Mapping[str, int],
        weights: Mapping[str, int] | None = None,
    ) -> dict[str, tuple[int, int]]:
        """
        Write several stakes (and optionally weights) as one step.

        Every id and value is checked before the first write. No audit record
        is emitted; the caller records the batch once it is committed.

        Returns:
            Previous ``(total_stake, stake_weight)`` of every touched worker,
            suitable for passing back to undo the batch
        """
        self.authority.verify(cap, "apply_stakes")
        weights = weights or {}
        for amount in stakes.values():
            check_u64("total_stake", amount)
        for weight in weights.values():
            check_bps("stake_weight", weight)

        with self.lock:
            touched = {wid: self._require(wid) for wid in (*stakes, *weights)}
            previous = {wid: (r.total_stake, r.stake_weight) for wid, r in touched.items()}
            epoch = self.clock.current()
            for worker_id, amount in stakes.items():
                touched[worker_id].total_stake = amount
                touched[worker_id].last_updated = epoch
            for worker_id, weight in weights.items():
                touched[worker_id].stake_weight = weight
            return previous

    def restore_stakes(self, cap: AdminCap, previous: Mapping[str, tuple[int, int]]) -> None:
        """Undo ``apply_stakes`` using the mapping it returned."""
        self.apply_stakes(
            cap,
            {wid: stake for wid, (stake, _) in previous.items()},
            {wid: weight for wid, (_, weight) in previous.items()},
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_worker(self, worker_id: str) -> ValidatorRecord:
        """Copy of the worker's record. Raises ``NotFound`` if unknown."""
        with self.lock:
            return replace(self._require(worker_id))

    def active_workers(self) -> list[str]:
        """Active worker ids in active-set order."""
        with self.lock:
            return list(self._active_order)

    def all_workers(self) -> list[ValidatorRecord]:
        with self.lock:
            return [replace(r) for r in self._records.values()]

    def top_workers(self, n: int) -> list[str]:
        """Up to ``n`` active ids by descending score; ties keep active order."""
        with self.lock:
            ranked = sorted(
                self._active_order,
                key=lambda wid: -self._records[wid].performance_score,
            )
            return ranked[: max(n, 0)]

    def stats(self) -> RegistryStats:
        with self.lock:
            total = len(self._records)
            scores = [r.performance_score for r in self._records.values()]
            return RegistryStats(
                total_workers=total,
                active_workers=len(self._active_order),
                total_stake=sum(r.total_stake for r in self._records.values()),
                average_performance=sum(scores) // total if total else 0,
                capacity=self.capacity,
            )

    def calculate_stake_distribution(self, total_amount: int) -> dict[str, int]:
        """
        Split ``total_amount`` across active workers by performance score.

        Each worker gets ``total * score / sum(scores)``, capped at
        ``max_stake_per_worker_bps`` of the total. Capital cut off by the cap
        is left unallocated.

        Returns:
            Mapping of worker id to amount, in active-set order
        """
        check_u64("total_amount", total_amount)
        with self.lock:
            scores = {wid: self._records[wid].performance_score for wid in self._active_order}

        total_score = sum(scores.values())
        if total_score == 0:
            return {wid: 0 for wid in scores}

        per_worker_cap = total_amount * self.max_stake_per_worker_bps // BPS
        return {
            wid: min(total_amount * score // total_score, per_worker_cap)
            for wid, score in scores.items()
        }
