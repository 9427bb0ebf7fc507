"""Append-only audit log.

The log numbers records and hands them to subscribed sinks; it keeps nothing
itself. Storage belongs to the sinks (``MemoryAuditSink`` for tests and
simulations, ``SqliteAuditSink`` for a durable trail).

Records are emitted after the state they describe is committed. A sink that
raises is logged and skipped, so delivery never fails a mutation.
"""

from __future__ import annotations

import itertools
import threading
from collections.abc import Callable, Mapping
from typing import Any

from loguru import logger

from stakepool.audit.records import AuditKind, AuditRecord

AuditSink = Callable[[AuditRecord], None]


class AuditLog:
    """Numbers audit records and fans them out to sinks."""

    def __init__(self, sinks: list[AuditSink] | None = None) -> None:
        self._sinks: list[AuditSink] = list(sinks or [])
        self._seq = itertools.count(1)
        self._lock = threading.Lock()

    def subscribe(self, sink: AuditSink) -> None:
        """Register a sink that receives every future record."""
        with self._lock:
            self._sinks.append(sink)

    def unsubscribe(self, sink: AuditSink) -> None:
        with self._lock:
            if sink in self._sinks:
                self._sinks.remove(sink)

    def emit(
        self,
        kind: AuditKind,
        subject: str,
        epoch: int,
        before: Mapping[str, Any] | None = None,
        after: Mapping[str, Any] | None = None,
        **details: Any,
    ) -> AuditRecord:
        """Create a record and deliver it to all sinks.

        Args:
            kind: Event kind
            subject: Entity the event concerns (worker id, holder, "vault", ...)
            epoch: Epoch at which the event happened
            before: Values prior to the mutation
            after: Values after the mutation
            **details: Extra event-specific fields

        Returns:
            The emitted record
        """
        with self._lock:
            record = AuditRecord(
                seq=next(self._seq),
                kind=kind,
                subject=subject,
                epoch=epoch,
                before=before or {},
                after=after or {},
                details=details,
            )
            sinks = list(self._sinks)

        logger.bind(audit=kind.value).info(
            "audit {kind} {subject}", kind=kind.value, subject=subject, seq=record.seq
        )
        for sink in sinks:
            try:
                sink(record)
            except Exception:
                logger.exception(
                    "Audit sink {sink} failed for record {seq}", sink=sink, seq=record.seq
                )
        return record


class MemoryAuditSink:
    """Sink that collects records in a list."""

    def __init__(self) -> None:
        self.records: list[AuditRecord] = []

    def __call__(self, record: AuditRecord) -> None:
        self.records.append(record)

    def of_kind(self, kind: AuditKind) -> list[AuditRecord]:
        return [r for r in self.records if r.kind == kind]
