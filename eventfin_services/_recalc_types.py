"""
Value types for recalculation requests and batch reports.

Frozen dataclasses and enums only; the orchestration lives in
``eventfin_services.recalculation_service``.
"""

from __future__ import annotations

import threading
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any
from uuid import UUID

from eventfin_engines.reconciliation import FinancialSnapshot
from eventfin_kernel.exceptions import BatchPartialFailure


class BatchStatus(str, Enum):
    """Final status of a batch recalculation."""

    COMPLETED = "completed"
    PARTIALLY_COMPLETED = "partially_completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class RecalculationFilter:
    """
    Which events a batch recalculates.

    ``event_states=None`` uses the configured eligible lifecycle states
    (``("closed",)`` by default); ``limit=None`` uses the configured batch
    limit.  ``event_ids`` narrows the selection further.
    """

    event_states: tuple[str, ...] | None = None
    event_ids: tuple[UUID, ...] | None = None
    limit: int | None = None
    as_of: date | None = None
    include_tax: bool = False

    def __post_init__(self) -> None:
        if self.limit is not None and self.limit < 1:
            raise ValueError(f"limit must be >= 1: {self.limit}")


class CancellationToken:
    """Cooperative cancellation flag shared with a running batch."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()


@dataclass(frozen=True)
class RecalculationResult:
    """Outcome of one per-event unit of a batch."""

    event_id: UUID
    success: bool
    error_code: str | None = None
    error_message: str | None = None
    snapshot: FinancialSnapshot | None = None
    cancelled: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_id": str(self.event_id),
            "success": self.success,
            "error_code": self.error_code,
            "error_message": self.error_message,
        }


@dataclass(frozen=True)
class BatchRecalculationReport:
    """Per-event results of a batch, in selection order."""

    batch_id: str
    status: BatchStatus
    results: tuple[RecalculationResult, ...]

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.success and not r.cancelled)

    @property
    def cancelled(self) -> int:
        return sum(1 for r in self.results if r.cancelled)

    def failures(self) -> tuple[RecalculationResult, ...]:
        return tuple(r for r in self.results if not r.success and not r.cancelled)

    def raise_for_failures(self) -> None:
        """
        Raises:
            BatchPartialFailure: If any unit failed (cancelled units excluded).
        """
        failures = self.failures()
        if failures:
            raise BatchPartialFailure(
                self.batch_id,
                self.succeeded,
                [r.to_dict() for r in failures],
            )

    @staticmethod
    def derive_status(results: Sequence[RecalculationResult]) -> BatchStatus:
        if any(r.cancelled for r in results):
            return BatchStatus.CANCELLED
        failed = sum(1 for r in results if not r.success)
        if failed == 0:
            return BatchStatus.COMPLETED
        if failed == len(results):
            return BatchStatus.FAILED
        return BatchStatus.PARTIALLY_COMPLETED

    def to_dict(self) -> dict[str, Any]:
        return {
            "batch_id": self.batch_id,
            "status": self.status.value,
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "cancelled": self.cancelled,
            "results": [r.to_dict() for r in self.results],
        }
