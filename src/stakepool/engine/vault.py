"""Vault - pooled capital and receipt-supply accounting.

Exchange rate:
    rate = total_value * RATE_SCALE / receipt_supply   (INITIAL_RATE when supply == 0)
    total_value = pooled_balance + delegated_capital + accrued_rewards

Deposits mint ``floor(amount * supply / total_value)`` receipts using the
value *before* the deposit; withdrawals return
``floor(receipts * total_value / supply)``. Both round down, in the pool's
favour. Only the liquid ``pooled_balance`` can pay out a withdrawal.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar

from loguru import logger

from stakepool.audit import AuditKind, AuditLog
from stakepool.engine.clock import EpochClock, ManualEpochClock
from stakepool.engine.models import INITIAL_RATE, RATE_SCALE, check_u64
from stakepool.engine.transaction import SharedResource
from stakepool.engine.treasury import ReceiptTreasury
from stakepool.errors import BelowMinimum, InsufficientLiquidity, InvalidState, OutOfRange
from stakepool.safety import AdminCap, Authority

DEFAULT_MINIMUM_DEPOSIT = 1_000_000_000  # 1 unit at 9 decimals


@dataclass(frozen=True)
class VaultSnapshot:
    """Consistent point-in-time view of all vault fields."""

    pooled_balance: int
    receipt_supply: int
    delegated_capital: int
    accrued_rewards: int
    total_value: int
    exchange_rate: int
    paused: bool
    minimum_deposit: int
    last_rebalance_epoch: int
    rebalance_interval_epochs: int


@dataclass(frozen=True)
class VaultConfigView:
    """Vault configuration as reported by ``Vault.config``."""

    paused: bool
    minimum_deposit: int
    rebalance_interval_epochs: int
    last_rebalance_epoch: int


def _mint_amount(amount: int, supply: int, total_value: int) -> int:
    if supply == 0:
        return amount
    if total_value == 0:
        raise InvalidState(
            "vault has outstanding receipts but no value", context={"receipt_supply": supply}
        )
    return amount * supply // total_value


def _redeem_amount(receipts: int, supply: int, total_value: int) -> int:
    if supply == 0:
        raise InvalidState("vault has no receipt supply", context={"receipt_amount": receipts})
    return receipts * total_value // supply


class Vault(SharedResource):
    """Pooled capital, receipt supply and exchange rate."""

    resource_name: ClassVar[str] = "vault"

    def __init__(
        self,
        authority: Authority,
        *,
        clock: EpochClock | None = None,
        audit: AuditLog | None = None,
        minimum_deposit: int = DEFAULT_MINIMUM_DEPOSIT,
        rebalance_interval_epochs: int = 1,
    ) -> None:
        self._init_resource()
        self.authority = authority
        self.clock = clock or ManualEpochClock()
        self.audit = audit or AuditLog()

        self.pooled_balance = 0
        self.receipt_supply = 0
        self.delegated_capital = 0
        self.accrued_rewards = 0
        self.paused = False
        self.minimum_deposit = check_u64("minimum_deposit", minimum_deposit)
        self.last_rebalance_epoch = self.clock.current()
        self.rebalance_interval_epochs = check_u64(
            "rebalance_interval_epochs", rebalance_interval_epochs
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def _total_value(self) -> int:
        return self.pooled_balance + self.delegated_capital + self.accrued_rewards

    def _rate(self) -> int:
        if self.receipt_supply == 0:
            return INITIAL_RATE
        return self._total_value() * RATE_SCALE // self.receipt_supply

    def total_value_locked(self) -> int:
        with self.lock:
            return self._total_value()

    def exchange_rate(self) -> int:
        """Value per receipt unit, fixed point with ``RATE_SCALE`` == 1.0."""
        with self.lock:
            return self._rate()

    def preview_deposit(self, amount: int) -> int:
        """Receipts a deposit of ``amount`` would mint right now."""
        with self.lock:
            return _mint_amount(amount, self.receipt_supply, self._total_value())

    def preview_withdraw(self, receipt_amount: int) -> int:
        """Capital a redemption of ``receipt_amount`` would return right now."""
        with self.lock:
            return _redeem_amount(receipt_amount, self.receipt_supply, self._total_value())

    def snapshot(self) -> VaultSnapshot:
        with self.lock:
            return VaultSnapshot(
                pooled_balance=self.pooled_balance,
                receipt_supply=self.receipt_supply,
                delegated_capital=self.delegated_capital,
                accrued_rewards=self.accrued_rewards,
                total_value=self._total_value(),
                exchange_rate=self._rate(),
                paused=self.paused,
                minimum_deposit=self.minimum_deposit,
                last_rebalance_epoch=self.last_rebalance_epoch,
                rebalance_interval_epochs=self.rebalance_interval_epochs,
            )

    def config(self) -> VaultConfigView:
        with self.lock:
            return VaultConfigView(
                paused=self.paused,
                minimum_deposit=self.minimum_deposit,
                rebalance_interval_epochs=self.rebalance_interval_epochs,
                last_rebalance_epoch=self.last_rebalance_epoch,
            )

    def _balances(self) -> dict[str, Any]:
        return {
            "pooled_balance": self.pooled_balance,
            "receipt_supply": self.receipt_supply,
            "delegated_capital": self.delegated_capital,
            "accrued_rewards": self.accrued_rewards,
            "exchange_rate": self._rate(),
        }

    # ------------------------------------------------------------------
    # User-facing flows
    # ------------------------------------------------------------------

    def deposit(self, amount: int, depositor: str, treasury: ReceiptTreasury) -> int:
        """Add ``amount`` to the pool and mint receipts to ``depositor``.

        Args:
            amount: Capital deposited
            depositor: Receiving holder
            treasury: Handle holding the receipt mint authority

        Returns:
            Number of receipt units minted

        Raises:
            InvalidState: Vault is paused
            BelowMinimum: Amount below the minimum, or too small to mint a unit
        """
        with self.lock:
            if self.paused:
                raise InvalidState("vault is paused", context={"operation": "deposit"})
            if amount < self.minimum_deposit:
                raise BelowMinimum(
                    "deposit below minimum",
                    context={"amount": amount, "minimum_deposit": self.minimum_deposit},
                )

            minted = _mint_amount(amount, self.receipt_supply, self._total_value())
            if minted == 0:
                raise BelowMinimum(
                    "deposit too small to mint a receipt unit",
                    context={"amount": amount, "exchange_rate": self._rate()},
                )
            new_pooled = check_u64("pooled_balance", self.pooled_balance + amount)
            new_supply = check_u64("receipt_supply", self.receipt_supply + minted)
            check_u64("total_value", self._total_value() + amount)

            before = self._balances()
            treasury.mint(depositor, minted)
            self.pooled_balance = new_pooled
            self.receipt_supply = new_supply

            logger.info(
                "Deposit {amount} from {depositor} minted {minted}",
                amount=amount,
                depositor=depositor,
                minted=minted,
            )
            self.audit.emit(
                AuditKind.DEPOSIT,
                depositor,
                self.clock.current(),
                before=before,
                after=self._balances(),
                amount=amount,
                receipt_minted=minted,
            )
            return minted

    def withdraw(self, receipt_amount: int, holder: str, treasury: ReceiptTreasury) -> int:
        """Burn ``receipt_amount`` from ``holder`` and pay out pooled capital.

        Returns:
            Capital returned to the holder

        Raises:
            InvalidState: Vault is paused, supply is zero, or holder balance too low
            OutOfRange: Non-positive amount or more receipts than exist
            InsufficientLiquidity: Payout exceeds the liquid pooled balance
        """
        with self.lock:
            if self.paused:
                raise InvalidState("vault is paused", context={"operation": "withdraw"})
            if receipt_amount <= 0:
                raise OutOfRange(
                    "receipt amount must be positive", context={"receipt_amount": receipt_amount}
                )
            if receipt_amount > self.receipt_supply and self.receipt_supply > 0:
                raise OutOfRange(
                    "receipt amount exceeds supply",
                    context={"receipt_amount": receipt_amount, "receipt_supply": self.receipt_supply},
                )

            returned = _redeem_amount(receipt_amount, self.receipt_supply, self._total_value())
            if returned > self.pooled_balance:
                logger.warning(
                    "Withdrawal of {returned} exceeds liquid balance {pooled}",
                    returned=returned,
                    pooled=self.pooled_balance,
                )
                raise InsufficientLiquidity(
                    "not enough liquid capital to cover redemption",
                    context={"requested": returned, "pooled_balance": self.pooled_balance},
                )

            before = self._balances()
            treasury.burn(holder, receipt_amount)
            self.receipt_supply -= receipt_amount
            self.pooled_balance -= returned

            logger.info(
                "Withdraw {receipts} receipts by {holder} returned {returned}",
                receipts=receipt_amount,
                holder=holder,
                returned=returned,
            )
            self.audit.emit(
                AuditKind.WITHDRAW,
                holder,
                self.clock.current(),
                before=before,
                after=self._balances(),
                receipt_amount=receipt_amount,
                amount_returned=returned,
            )
            return returned

    # ------------------------------------------------------------------
    # Admin bookkeeping
    # ------------------------------------------------------------------

    def record_rewards(self, cap: AdminCap, amount: int) -> None:
        """Book ``amount`` of earned-but-unfolded rewards."""
        self.authority.verify(cap, "record_rewards")
        if amount < 0:
            raise OutOfRange("reward amount must be >= 0", context={"amount": amount})
        with self.lock:
            new_rewards = check_u64("accrued_rewards", self.accrued_rewards + amount)
            check_u64("total_value", self._total_value() + amount)
            before = self._balances()
            self.accrued_rewards = new_rewards
            logger.info("Recorded {amount} rewards", amount=amount)
            self.audit.emit(
                AuditKind.REWARDS_RECORDED,
                "vault",
                self.clock.current(),
                before=before,
                after=self._balances(),
                amount=amount,
            )

    def fold_rewards(self, cap: AdminCap) -> int:
        """Move accrued rewards into the pooled balance; the rate is unchanged."""
        self.authority.verify(cap, "fold_rewards")
        with self.lock:
            folded = self.accrued_rewards
            if folded == 0:
                logger.debug("No accrued rewards to fold")
                return 0
            before = self._balances()
            self.pooled_balance = check_u64("pooled_balance", self.pooled_balance + folded)
            self.accrued_rewards = 0
            logger.info("Folded {amount} rewards into pool", amount=folded)
            self.audit.emit(
                AuditKind.REWARDS_FOLDED,
                "vault",
                self.clock.current(),
                before=before,
                after=self._balances(),
                amount=folded,
            )
            return folded

    def record_delegation(self, cap: AdminCap, amount: int) -> None:
        """Book ``amount`` of capital as delegated to workers."""
        self.authority.verify(cap, "record_delegation")
        if amount < 0:
            raise OutOfRange("delegation amount must be >= 0", context={"amount": amount})
        with self.lock:
            new_delegated = check_u64("delegated_capital", self.delegated_capital + amount)
            check_u64("total_value", self._total_value() + amount)
            before = self._balances()
            self.delegated_capital = new_delegated
            logger.info("Recorded {amount} delegated capital", amount=amount)
            self.audit.emit(
                AuditKind.DELEGATION_RECORDED,
                "vault",
                self.clock.current(),
                before=before,
                after=self._balances(),
                amount=amount,
            )

    def record_undelegation(self, cap: AdminCap, amount: int) -> None:
        """Remove ``amount`` from the delegated capital figure."""
        self.authority.verify(cap, "record_undelegation")
        with self.lock:
            if amount < 0 or amount > self.delegated_capital:
                raise OutOfRange(
                    "undelegation amount outside delegated capital",
                    context={"amount": amount, "delegated_capital": self.delegated_capital},
                )
            before = self._balances()
            self.delegated_capital -= amount
            logger.info("Recorded {amount} undelegated capital", amount=amount)
            self.audit.emit(
                AuditKind.DELEGATION_RECORDED,
                "vault",
                self.clock.current(),
                before=before,
                after=self._balances(),
                amount=-amount,
            )

    def set_paused(self, cap: AdminCap, paused: bool) -> None:
        self.authority.verify(cap, "set_paused")
        with self.lock:
            before = {"paused": self.paused}
            self.paused = paused
            logger.info("Vault paused={paused}", paused=paused)
            self.audit.emit(
                AuditKind.VAULT_CONFIG,
                "vault",
                self.clock.current(),
                before=before,
                after={"paused": paused},
            )

    def set_minimum_deposit(self, cap: AdminCap, amount: int) -> None:
        self.authority.verify(cap, "set_minimum_deposit")
        check_u64("minimum_deposit", amount)
        with self.lock:
            before = {"minimum_deposit": self.minimum_deposit}
            self.minimum_deposit = amount
            self.audit.emit(
                AuditKind.VAULT_CONFIG,
                "vault",
                self.clock.current(),
                before=before,
                after={"minimum_deposit": amount},
            )

    def set_rebalance_interval(self, cap: AdminCap, epochs: int) -> None:
        self.authority.verify(cap, "set_rebalance_interval")
        check_u64("rebalance_interval_epochs", epochs)
        with self.lock:
            before = {"rebalance_interval_epochs": self.rebalance_interval_epochs}
            self.rebalance_interval_epochs = epochs
            self.audit.emit(
                AuditKind.VAULT_CONFIG,
                "vault",
                self.clock.current(),
                before=before,
                after={"rebalance_interval_epochs": epochs},
            )

    def mark_rebalanced(self, cap: AdminCap, epoch: int) -> None:
        """Stamp the epoch of the last successful rebalance."""
        self.authority.verify(cap, "mark_rebalanced")
        with self.lock:
            self.last_rebalance_epoch = epoch
