"""
OverdueService -- list past-due payment commitments across events.

Reads unsettled incomes and expenses through ``LedgerSelector`` and hands
them to the pure ``OverdueMonitor``.  ``as_of`` defaults to the injected
clock's date.
"""

from __future__ import annotations

from datetime import date
from uuid import UUID

from sqlalchemy.orm import Session, sessionmaker

from eventfin_config.schema import EngineConfig
from eventfin_engines.overdue import OverdueBucketSummary, OverdueItem
from eventfin_kernel.domain.clock import Clock, SystemClock
from eventfin_kernel.logging_config import get_logger
from eventfin_kernel.selectors.ledger_selector import LedgerSelector

logger = get_logger("services.overdue")


class OverdueService:
    """Overdue detection over the stored ledger."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        config: EngineConfig | None = None,
        clock: Clock | None = None,
    ):
        self._session_factory = session_factory
        self._monitor = (config or EngineConfig()).overdue_monitor()
        self._clock = clock or SystemClock()

    def find_overdue(
        self,
        as_of: date | None = None,
        event_id: UUID | None = None,
    ) -> tuple[OverdueItem, ...]:
        """Overdue commitments at ``as_of`` (all events unless ``event_id``)."""
        as_of = as_of or self._clock.today()
        with self._session_factory() as session:
            records = LedgerSelector(session).pending_commitments(
                before=as_of, event_id=event_id,
            )
        items = self._monitor.find_overdue(records, as_of)
        logger.info(
            "overdue_scan_completed",
            extra={
                "as_of": as_of,
                "candidate_count": len(records),
                "overdue_count": len(items),
            },
        )
        return items

    def summarize(
        self,
        items: tuple[OverdueItem, ...],
    ) -> tuple[OverdueBucketSummary, ...]:
        return self._monitor.summarize(items)
