"""
Snapshot persistence and in-process snapshot cache.

``SnapshotStore`` writes the latest snapshot of each event to
``financial_snapshots`` (one row per event, rewritten on every successful
recalculation) and flags it stale when a recalculation fails.  It works
inside the caller's session and never commits.

``SnapshotCache`` keeps computed snapshots in memory, keyed by
``(event_id, include_tax, as_of)``.  An entry is served only while its
``ledger_version`` equals the event's current one, so any ledger mutation
invalidates it.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import date, datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from eventfin_engines.reconciliation import FinancialSnapshot
from eventfin_kernel.logging_config import get_logger
from eventfin_kernel.models.snapshot import SnapshotModel

logger = get_logger("services.snapshot_store")


@dataclass(frozen=True)
class StoredSnapshot:
    """Persisted snapshot with its freshness metadata."""

    snapshot: FinancialSnapshot
    computed_at: datetime
    ledger_version: int
    is_stale: bool = False
    stale_reason: str | None = None


class SnapshotStore:
    """Reads and writes ``SnapshotModel`` rows."""

    def __init__(self, session: Session):
        self._session = session

    def _row(self, event_id: UUID) -> SnapshotModel | None:
        return self._session.execute(
            select(SnapshotModel).where(SnapshotModel.event_id == event_id)
        ).scalar_one_or_none()

    def save(self, snapshot: FinancialSnapshot, computed_at: datetime) -> None:
        """Insert or replace the event's snapshot; clears any stale flag."""
        row = self._row(snapshot.event_id)
        if row is None:
            row = SnapshotModel(event_id=snapshot.event_id)
            self._session.add(row)
        labels = snapshot.labels
        row.include_tax = snapshot.include_tax
        row.as_of = snapshot.as_of
        row.ledger_version = snapshot.ledger_version
        row.health_tier = labels.health_tier.value if labels else None
        row.collection_status = labels.collection_status.value if labels else None
        row.payment_status = labels.payment_status.value if labels else None
        row.payload = snapshot.to_dict()
        row.computed_at = computed_at
        row.is_stale = False
        row.stale_reason = None
        self._session.flush()

    def mark_stale(self, event_id: UUID, reason: str) -> bool:
        """Flag the stored snapshot stale.  Returns False if none is stored."""
        row = self._row(event_id)
        if row is None:
            return False
        row.is_stale = True
        row.stale_reason = reason
        self._session.flush()
        logger.warning(
            "snapshot_marked_stale",
            extra={"event_id": str(event_id), "stale_reason": reason},
        )
        return True

    def load(self, event_id: UUID) -> StoredSnapshot | None:
        row = self._row(event_id)
        if row is None:
            return None
        return StoredSnapshot(
            snapshot=FinancialSnapshot.from_dict(row.payload),
            computed_at=row.computed_at,
            ledger_version=row.ledger_version,
            is_stale=bool(row.is_stale),
            stale_reason=row.stale_reason,
        )


CacheKey = tuple[UUID, bool, date | None]


class SnapshotCache:
    """Thread-safe, ledger-version-validated snapshot cache."""

    def __init__(self) -> None:
        self._entries: dict[CacheKey, FinancialSnapshot] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(
        self,
        event_id: UUID,
        include_tax: bool,
        as_of: date | None,
        ledger_version: int,
    ) -> FinancialSnapshot | None:
        key = (event_id, include_tax, as_of)
        with self._lock:
            snapshot = self._entries.get(key)
            if snapshot is None:
                return None
            if snapshot.ledger_version != ledger_version:
                del self._entries[key]
                logger.debug(
                    "snapshot_cache_invalidated",
                    extra={
                        "event_id": str(event_id),
                        "cached_version": snapshot.ledger_version,
                        "ledger_version": ledger_version,
                    },
                )
                return None
            return snapshot

    def put(self, snapshot: FinancialSnapshot) -> None:
        key = (snapshot.event_id, snapshot.include_tax, snapshot.as_of)
        with self._lock:
            self._entries[key] = snapshot

    def invalidate(self, event_id: UUID) -> None:
        with self._lock:
            for key in [k for k in self._entries if k[0] == event_id]:
                del self._entries[key]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
