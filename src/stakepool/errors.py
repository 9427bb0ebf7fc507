"""Ledger error taxonomy.

Every failure raised by the vault, registry or rebalancing engine derives from
``LedgerError``. Validation errors are raised before any state is written.
A failure after the first write rolls the written state back before it
propagates. Audit sink failures are logged and never reach the caller.
"""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for all ledger errors.

    Attributes:
        message: Human-readable description
        context: Extra key/value details for logs and callers
    """

    def __init__(self, message: str, *, context: dict[str, object] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context: dict[str, object] = context or {}

    def __str__(self) -> str:
        if self.context:
            ctx_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} [{ctx_str}]"
        return self.message


class InvalidState(LedgerError):
    """Operation not allowed in the current state (paused, zero supply, ...)."""


class BelowMinimum(LedgerError):
    """Deposit smaller than the configured minimum."""


class InsufficientLiquidity(LedgerError):
    """Redemption exceeds the liquid pooled balance."""


class NotFound(LedgerError):
    """Referenced worker or record does not exist."""


class AlreadyExists(LedgerError):
    """Worker id is already registered."""


class CapacityExceeded(LedgerError):
    """Registry is full."""


class OutOfRange(LedgerError):
    """Score, uptime, basis points or amount outside its allowed bounds."""


class Unauthorized(LedgerError):
    """Admin-gated call made without a valid capability."""


__all__ = [
    "AlreadyExists",
    "BelowMinimum",
    "CapacityExceeded",
    "InsufficientLiquidity",
    "InvalidState",
    "LedgerError",
    "NotFound",
    "OutOfRange",
    "Unauthorized",
]
