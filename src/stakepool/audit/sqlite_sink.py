"""SQLite-backed audit sink and query helper."""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from stakepool.audit.records import AuditRecord
from stakepool.storage.database import Database


class SqliteAuditSink:
    """Persists every received record as one row of ``audit_records``."""

    def __init__(self, data_dir: Path | None = None, db: Database | None = None) -> None:
        self.db = db or Database(data_dir)
        self.db.ensure_tables()

    def __call__(self, record: AuditRecord) -> None:
        self.db.execute_insert(
            """
            INSERT INTO audit_records
                (seq, kind, subject, epoch, before, after, details, recorded_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                record.seq,
                record.kind.value,
                record.subject,
                record.epoch,
                json.dumps(dict(record.before)),
                json.dumps(dict(record.after)),
                json.dumps(dict(record.details)),
                record.recorded_at,
            ),
        )


@dataclass
class StoredAuditRecord:
    """Audit row as read back from SQLite."""

    id: int
    seq: int
    kind: str
    subject: str
    epoch: int
    before: dict[str, Any]
    after: dict[str, Any]
    details: dict[str, Any]
    recorded_at: str


class AuditStore:
    """Read-only queries over the persisted audit trail."""

    def __init__(self, data_dir: Path | None = None, db: Database | None = None) -> None:
        self.db = db or Database(data_dir)
        self.db.ensure_tables()

    def recent(self, limit: int = 20, kind: str | None = None) -> list[StoredAuditRecord]:
        """Most recent records first, optionally filtered by kind."""
        if kind:
            rows = self.db.execute(
                "SELECT * FROM audit_records WHERE kind = ? ORDER BY id DESC LIMIT ?",
                (kind, limit),
            )
        else:
            rows = self.db.execute(
                "SELECT * FROM audit_records ORDER BY id DESC LIMIT ?", (limit,)
            )
        return [self._row_to_record(row) for row in rows]

    def for_subject(self, subject: str) -> list[StoredAuditRecord]:
        rows = self.db.execute(
            "SELECT * FROM audit_records WHERE subject = ? ORDER BY id", (subject,)
        )
        return [self._row_to_record(row) for row in rows]

    def count_by_kind(self) -> dict[str, int]:
        rows = self.db.execute(
            "SELECT kind, COUNT(*) AS n FROM audit_records GROUP BY kind"
        )
        return {row["kind"]: row["n"] for row in rows}

    def _row_to_record(self, row: Any) -> StoredAuditRecord:
        return StoredAuditRecord(
            id=row["id"],
            seq=row["seq"],
            kind=row["kind"],
            subject=row["subject"],
            epoch=row["epoch"],
            before=json.loads(row["before"]),
            after=json.loads(row["after"]),
            details=json.loads(row["details"]),
            recorded_at=row["recorded_at"],
        )
