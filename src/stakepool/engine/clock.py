"""Epoch clock shared by the ledger components."""

from __future__ import annotations

import threading
from typing import Protocol


class EpochClock(Protocol):
    def current(self) -> int: ...


class ManualEpochClock:
    """Epoch counter advanced explicitly by the caller."""

    def __init__(self, epoch: int = 0) -> None:
        if epoch < 0:
            raise ValueError(f"epoch must be >= 0, got {epoch}")
        self._epoch = epoch
        self._lock = threading.Lock()

    def current(self) -> int:
        with self._lock:
            return self._epoch

    def advance(self, epochs: int = 1) -> int:
        if epochs < 0:
            raise ValueError(f"epochs must be >= 0, got {epochs}")
        with self._lock:
            self._epoch += epochs
            return self._epoch

    def set(self, epoch: int) -> None:
        if epoch < 0:
            raise ValueError(f"epoch must be >= 0, got {epoch}")
        with self._lock:
            self._epoch = epoch
