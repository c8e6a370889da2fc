"""
Overdue Monitor - find payment commitments that are past due.

Pure.  A record is overdue at ``as_of`` when it is an unsettled,
non-deleted income or expense whose ``committed_payment_date`` is strictly
before ``as_of``.  Provisions carry no payment commitment and are never
reported.

Each item is placed in a severity bucket:

    1-15     (info)
    16-30    (warning)
    Over 30  (danger)

Items are returned most overdue first.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from eventfin_engines.tracer import traced_engine
from eventfin_kernel.domain.ledger import LedgerRecord, RecordKind
from eventfin_kernel.logging_config import get_logger

logger = get_logger("engines.overdue")


@dataclass(frozen=True)
class OverdueBucket:
    """Days-overdue range with a display severity."""

    name: str
    min_days: int
    max_days: int | None  # None = unbounded
    severity: str = "info"

    def __post_init__(self) -> None:
        if self.min_days < 1:
            raise ValueError("min_days must be at least 1")
        if self.max_days is not None and self.max_days < self.min_days:
            raise ValueError("max_days cannot be less than min_days")

    def contains(self, days_overdue: int) -> bool:
        if days_overdue < self.min_days:
            return False
        return self.max_days is None or days_overdue <= self.max_days


OVERDUE_BUCKETS: tuple[OverdueBucket, ...] = (
    OverdueBucket("1-15", 1, 15, "info"),
    OverdueBucket("16-30", 16, 30, "warning"),
    OverdueBucket("Over 30", 31, None, "danger"),
)


@dataclass(frozen=True)
class OverdueItem:
    """A past-due payment commitment."""

    record_id: UUID
    event_id: UUID
    kind: RecordKind
    amount_total: Decimal
    committed_payment_date: date
    days_overdue: int
    bucket: str
    severity: str
    description: str | None = None

    def to_dict(self) -> dict[str, object]:
        return {
            "record_id": str(self.record_id),
            "event_id": str(self.event_id),
            "kind": self.kind.value,
            "amount_total": str(self.amount_total),
            "committed_payment_date": self.committed_payment_date.isoformat(),
            "days_overdue": self.days_overdue,
            "bucket": self.bucket,
            "severity": self.severity,
            "description": self.description,
        }


@dataclass(frozen=True)
class OverdueBucketSummary:
    """Count and amount of overdue items in one bucket."""

    bucket: str
    count: int
    amount_total: Decimal


class OverdueMonitor:
    """Detects overdue commitments."""

    def __init__(self, buckets: Sequence[OverdueBucket] = OVERDUE_BUCKETS):
        if not buckets:
            raise ValueError("At least one overdue bucket is required")
        self.buckets = tuple(sorted(buckets, key=lambda b: b.min_days))

    def bucket_for(self, days_overdue: int) -> OverdueBucket:
        for bucket in self.buckets:
            if bucket.contains(days_overdue):
                return bucket
        # Gaps between configured buckets fall into the last one reached
        candidates = [b for b in self.buckets if b.min_days <= days_overdue]
        return candidates[-1] if candidates else self.buckets[0]

    @staticmethod
    def is_candidate(record: LedgerRecord) -> bool:
        return (
            record.kind in (RecordKind.INCOME, RecordKind.EXPENSE)
            and not record.settled
            and not record.soft_deleted
            and record.committed_payment_date is not None
        )

    @traced_engine("overdue", "1.0", fingerprint_fields=("as_of",))
    def find_overdue(
        self,
        records: Iterable[LedgerRecord],
        as_of: date,
    ) -> tuple[OverdueItem, ...]:
        """Overdue items at ``as_of``, most overdue first."""
        items: list[OverdueItem] = []
        for record in records:
            if not self.is_candidate(record):
                continue
            committed = record.committed_payment_date
            if not committed < as_of:
                continue
            days = (as_of - committed).days
            bucket = self.bucket_for(days)
            items.append(OverdueItem(
                record_id=record.record_id,
                event_id=record.event_id,
                kind=record.kind,
                amount_total=record.amount_total,
                committed_payment_date=committed,
                days_overdue=days,
                bucket=bucket.name,
                severity=bucket.severity,
                description=record.description,
            ))

        items.sort(key=lambda i: (-i.days_overdue, i.kind.value, str(i.record_id)))
        if items:
            logger.info(
                "overdue_commitments_found",
                extra={"as_of": as_of, "overdue_count": len(items)},
            )
        return tuple(items)

    def summarize(
        self,
        items: Iterable[OverdueItem],
    ) -> tuple[OverdueBucketSummary, ...]:
        """Per-bucket count and amount, in bucket order."""
        counts = {b.name: 0 for b in self.buckets}
        amounts = {b.name: Decimal("0") for b in self.buckets}
        for item in items:
            counts[item.bucket] = counts.get(item.bucket, 0) + 1
            amounts[item.bucket] = amounts.get(item.bucket, Decimal("0")) + item.amount_total
        return tuple(
            OverdueBucketSummary(name, counts[name], amounts[name])
            for name in counts
        )
