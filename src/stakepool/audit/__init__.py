"""Audit trail: immutable before/after records for ledger mutations."""

from __future__ import annotations

from .log import AuditLog, AuditSink, MemoryAuditSink
from .records import AuditKind, AuditRecord
from .sqlite_sink import AuditStore, SqliteAuditSink, StoredAuditRecord

__all__ = [
    "AuditKind",
    "AuditLog",
    "AuditRecord",
    "AuditSink",
    "AuditStore",
    "MemoryAuditSink",
    "SqliteAuditSink",
    "StoredAuditRecord",
]
