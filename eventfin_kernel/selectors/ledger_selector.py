"""
Module: eventfin_kernel.selectors.ledger_selector
Responsibility: Read events and their ledger rows as DTOs.  This is the
    event repository / ledger repository read path used by the services.

Consistent reads:
    ``read_event_ledger`` reads the event's ``ledger_version``, then the
    ledger rows, then the version again.  If the version moved, a writer
    committed in between and the rows may mix before/after states, so the
    read raises ``ConcurrentMutationError`` instead of returning a torn set.

Failure modes:
    - MissingEventError when the event id does not exist.
    - ConcurrentMutationError on a torn read.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import date
from uuid import UUID

from sqlalchemy import select

from eventfin_kernel.domain.ledger import BusinessEvent, EventLedger, LedgerRecord
from eventfin_kernel.exceptions import ConcurrentMutationError, MissingEventError
from eventfin_kernel.logging_config import get_logger
from eventfin_kernel.models.event import EventModel
from eventfin_kernel.models.ledger import (
    LEDGER_MODELS,
    ExpenseModel,
    IncomeModel,
)
from eventfin_kernel.selectors.base import BaseSelector

logger = get_logger("selectors.ledger")


class LedgerSelector(BaseSelector):
    """Read-only access to events and ledger rows."""

    def get_event(self, event_id: UUID) -> BusinessEvent:
        """
        Load one event.

        Raises:
            MissingEventError: If the event does not exist.
        """
        model = self.session.execute(
            select(EventModel)
            .where(EventModel.id == event_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if model is None:
            raise MissingEventError(str(event_id))
        return model.to_dto()

    def current_ledger_version(self, event_id: UUID) -> int:
        """Fresh read of the event's ledger_version (bypasses the identity map)."""
        version = self.session.execute(
            select(EventModel.ledger_version).where(EventModel.id == event_id)
        ).scalar_one_or_none()
        if version is None:
            raise MissingEventError(str(event_id))
        return version

    def load_records(
        self,
        event_id: UUID,
        include_deleted: bool = False,
    ) -> tuple[LedgerRecord, ...]:
        """All ledger rows of one event, in a stable order."""
        records: list[LedgerRecord] = []
        for model in LEDGER_MODELS:
            stmt = select(model).where(model.event_id == event_id)
            if not include_deleted:
                stmt = stmt.where(model.soft_deleted == False)  # noqa: E712
            stmt = stmt.order_by(model.occurs_on, model.id)
            rows = self.session.execute(
                stmt.execution_options(populate_existing=True)
            ).scalars().all()
            records.extend(row.to_record() for row in rows)
        return tuple(records)

    def read_event_ledger(self, event_id: UUID) -> EventLedger:
        """
        Read the event and its live ledger rows as one consistent set.

        Raises:
            MissingEventError: If the event does not exist.
            ConcurrentMutationError: If the ledger changed during the read.
        """
        event = self.get_event(event_id)
        records = self.load_records(event_id)
        version_after = self.current_ledger_version(event_id)

        if version_after != event.ledger_version:
            raise ConcurrentMutationError(
                str(event_id), event.ledger_version, version_after,
            )

        logger.debug(
            "event_ledger_read",
            extra={
                "event_id": str(event_id),
                "ledger_version": event.ledger_version,
                "record_count": len(records),
            },
        )
        return EventLedger(event=event, records=records)

    def list_events(
        self,
        lifecycle_states: Sequence[str] | None = None,
        event_ids: Iterable[UUID] | None = None,
        limit: int | None = None,
    ) -> tuple[BusinessEvent, ...]:
        """Events matching the filter, ordered by code for stable batches."""
        stmt = select(EventModel)
        if lifecycle_states:
            stmt = stmt.where(EventModel.lifecycle_state.in_(list(lifecycle_states)))
        if event_ids is not None:
            stmt = stmt.where(EventModel.id.in_(list(event_ids)))
        stmt = stmt.order_by(EventModel.code)
        if limit is not None:
            stmt = stmt.limit(limit)
        rows = self.session.execute(
            stmt.execution_options(populate_existing=True)
        ).scalars().all()
        return tuple(row.to_dto() for row in rows)

    def pending_commitments(
        self,
        before: date,
        event_id: UUID | None = None,
    ) -> tuple[LedgerRecord, ...]:
        """
        Unsettled, live incomes and expenses committed to be paid before a date.

        Used by the overdue monitor; provisions carry no payment commitment.
        """
        records: list[LedgerRecord] = []
        for model in (IncomeModel, ExpenseModel):
            stmt = (
                select(model)
                .where(model.settled == False)  # noqa: E712
                .where(model.soft_deleted == False)  # noqa: E712
                .where(model.committed_payment_date.is_not(None))
                .where(model.committed_payment_date < before)
            )
            if event_id is not None:
                stmt = stmt.where(model.event_id == event_id)
            rows = self.session.execute(
                stmt.order_by(model.committed_payment_date, model.id)
                .execution_options(populate_existing=True)
            ).scalars().all()
            records.extend(row.to_record() for row in rows)
        return tuple(records)
