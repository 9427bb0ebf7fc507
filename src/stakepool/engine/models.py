"""Shared ledger types and fixed-point constants."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar, Final

from stakepool.engine.transaction import SharedResource
from stakepool.errors import OutOfRange

# Basis points: 10_000 bps == 100%
BPS: Final[int] = 10_000

MAX_PERFORMANCE_SCORE: Final[int] = 1_000
MAX_UPTIME_PERCENT: Final[int] = 100

# Exchange rate fixed point: RATE_SCALE == 1.0
RATE_SCALE: Final[int] = 1_000_000_000
INITIAL_RATE: Final[int] = RATE_SCALE

U64_MAX: Final[int] = 2**64 - 1


def check_u64(name: str, value: int) -> int:
    """Return ``value`` if it fits an unsigned 64-bit amount, else raise ``OutOfRange``."""
    if value < 0 or value > U64_MAX:
        raise OutOfRange(f"{name} outside u64 range", context={name: value})
    return value


def check_bps(name: str, value: int) -> int:
    if not 0 <= value <= BPS:
        raise OutOfRange(f"{name} must be in [0, {BPS}]", context={name: value})
    return value


@dataclass(frozen=True)
class AllocationTarget:
    """Target vs. current share of one worker, valid for a single computation."""

    worker: str
    target_bps: int
    current_bps: int
    allocation_amount: int

    @property
    def deviation_bps(self) -> int:
        return abs(self.target_bps - self.current_bps)


@dataclass(frozen=True)
class RebalanceOperation:
    """One stake transfer produced by matching or by a penalty."""

    from_worker: str
    to_worker: str
    amount: int
    reason: str


@dataclass(eq=False)
class RebalanceStrategy(SharedResource):
    """Thresholds that drive eligibility, drift detection and cooldown.

    Mutated only through ``RebalancingEngine.update_strategy``.
    """

    resource_name: ClassVar[str] = "strategy"

    performance_threshold: int = 700
    uptime_threshold: int = 95
    max_deviation_bps: int = 500
    rebalance_frequency_epochs: int = 1

    FIELDS: ClassVar[tuple[str, ...]] = (
        "performance_threshold",
        "uptime_threshold",
        "max_deviation_bps",
        "rebalance_frequency_epochs",
    )

    def __post_init__(self) -> None:
        self._init_resource()
        self.validate(self.as_dict())

    @staticmethod
    def validate(values: dict[str, Any]) -> None:
        """Raise ``OutOfRange`` if any strategy value is outside its bounds."""
        perf = values["performance_threshold"]
        if not 0 <= perf <= MAX_PERFORMANCE_SCORE:
            raise OutOfRange(
                f"performance_threshold must be in [0, {MAX_PERFORMANCE_SCORE}]",
                context={"performance_threshold": perf},
            )
        uptime = values["uptime_threshold"]
        if not 0 <= uptime <= MAX_UPTIME_PERCENT:
            raise OutOfRange(
                f"uptime_threshold must be in [0, {MAX_UPTIME_PERCENT}]",
                context={"uptime_threshold": uptime},
            )
        check_bps("max_deviation_bps", values["max_deviation_bps"])
        if values["rebalance_frequency_epochs"] < 0:
            raise OutOfRange(
                "rebalance_frequency_epochs must be >= 0",
                context={"rebalance_frequency_epochs": values["rebalance_frequency_epochs"]},
            )

    def as_dict(self) -> dict[str, int]:
        return {name: getattr(self, name) for name in self.FIELDS}
