"""Safety modules for stakepool."""

from __future__ import annotations

from .capability import AdminCap, Authority

__all__ = [
    "AdminCap",
    "Authority",
]
