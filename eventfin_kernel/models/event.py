"""
ORM model for business events.

``ledger_version`` is maintained by the ``before_flush`` listener in
``eventfin_kernel.db.listeners``; application code never sets it.
``accounting_state`` and ``closing_signalled`` are written only by the
accounting-state and recalculation services.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import Boolean, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from eventfin_kernel.db.base import TrackedBase
from eventfin_kernel.domain.ledger import AccountingState, BusinessEvent


class EventModel(TrackedBase):
    """Persistent business event."""

    __tablename__ = "events"

    __table_args__ = (
        Index("ix_events_lifecycle_state", "lifecycle_state"),
        Index("ix_events_accounting_state", "accounting_state"),
    )

    code: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    estimated_income: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    lifecycle_state: Mapped[str] = mapped_column(
        String(50), nullable=False, default="open",
    )
    accounting_state: Mapped[str] = mapped_column(
        String(50), nullable=False, default=AccountingState.OPEN.value,
    )
    closing_signalled: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False,
    )
    ledger_version: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0,
    )
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    def to_dto(self) -> BusinessEvent:
        return BusinessEvent(
            event_id=self.id,
            code=self.code,
            estimated_income=Decimal(self.estimated_income or 0),
            lifecycle_state=self.lifecycle_state,
            accounting_state=AccountingState(self.accounting_state),
            closing_signalled=bool(self.closing_signalled),
            ledger_version=self.ledger_version or 0,
        )
