"""Receipt-token treasury handle.

The vault tracks receipt supply but never owns token balances. Callers pass
the treasury that holds the mint/burn authority into every deposit and
withdrawal, so there is no global token module the vault reaches into.
"""

from __future__ import annotations

import threading
from typing import Protocol

from stakepool.errors import InvalidState, OutOfRange


class ReceiptTreasury(Protocol):
    def mint(self, holder: str, amount: int) -> None: ...

    def burn(self, holder: str, amount: int) -> None: ...

    def balance_of(self, holder: str) -> int: ...


class InMemoryReceiptTreasury:
    """Holder balances kept in a dict."""

    def __init__(self) -> None:
        self._balances: dict[str, int] = {}
        self._lock = threading.Lock()

    def mint(self, holder: str, amount: int) -> None:
        if amount < 0:
            raise OutOfRange("mint amount must be >= 0", context={"amount": amount})
        with self._lock:
            self._balances[holder] = self._balances.get(holder, 0) + amount

    def burn(self, holder: str, amount: int) -> None:
        if amount < 0:
            raise OutOfRange("burn amount must be >= 0", context={"amount": amount})
        with self._lock:
            balance = self._balances.get(holder, 0)
            if amount > balance:
                raise InvalidState(
                    "receipt balance too low",
                    context={"holder": holder, "balance": balance, "requested": amount},
                )
            self._balances[holder] = balance - amount

    def balance_of(self, holder: str) -> int:
        with self._lock:
            return self._balances.get(holder, 0)

    def total_supply(self) -> int:
        with self._lock:
            return sum(self._balances.values())
