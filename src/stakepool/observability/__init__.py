"""Logging setup for stakepool."""

from __future__ import annotations

from .logger import setup_logger

__all__ = ["setup_logger"]
