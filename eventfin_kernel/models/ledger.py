"""
ORM models for ledger rows: incomes, expenses and provisions.

Contract:
    IncomeModel, ExpenseModel and ProvisionModel share the ``LedgerRowMixin``
    columns and convert to the ``LedgerRecord`` DTO via ``to_record()``.

Invariants:
    - Rows are soft-deleted (``soft_deleted`` + ``deleted_at``), never removed
      while the event exists; the event FK is ``ondelete="RESTRICT"``.
    - ``ProvisionModel.converted_to_expense_id`` links a provision to the
      expense it was realised as.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID

from sqlalchemy import Boolean, DateTime, ForeignKey, String
from sqlalchemy.orm import Mapped, declared_attr, mapped_column

from eventfin_kernel.db.base import TrackedBase, UUIDString
from eventfin_kernel.domain.ledger import LedgerRecord, RecordKind


class LedgerRowMixin:
    """Columns common to every ledger row."""

    KIND: ClassVar[RecordKind]

    @declared_attr
    def event_id(cls) -> Mapped[UUID]:
        return mapped_column(
            UUIDString(),
            ForeignKey("events.id", ondelete="RESTRICT"),
            nullable=False,
            index=True,
        )

    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    amount_subtotal: Mapped[Decimal] = mapped_column(nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    amount_total: Mapped[Decimal] = mapped_column(nullable=False)
    category_ref: Mapped[str | None] = mapped_column(String(100), nullable=True)
    occurs_on: Mapped[date] = mapped_column(nullable=False)
    settled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    committed_payment_date: Mapped[date | None] = mapped_column(nullable=True)
    soft_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    def _record_fields(self) -> dict:
        return dict(
            record_id=self.id,
            event_id=self.event_id,
            kind=self.KIND,
            amount_subtotal=Decimal(self.amount_subtotal),
            tax_amount=Decimal(self.tax_amount),
            amount_total=Decimal(self.amount_total),
            occurs_on=self.occurs_on,
            category_ref=self.category_ref,
            settled=bool(self.settled),
            committed_payment_date=self.committed_payment_date,
            soft_deleted=bool(self.soft_deleted),
            description=self.description,
        )

    def to_record(self) -> LedgerRecord:
        return LedgerRecord(**self._record_fields())


class IncomeModel(LedgerRowMixin, TrackedBase):
    """Income row (collected when ``settled``)."""

    __tablename__ = "incomes"
    KIND = RecordKind.INCOME

    invoice_reference: Mapped[str | None] = mapped_column(String(100), nullable=True)

    def to_record(self) -> LedgerRecord:
        return LedgerRecord(
            **self._record_fields(),
            invoice_reference=self.invoice_reference,
        )


class ExpenseModel(LedgerRowMixin, TrackedBase):
    """Expense row (paid when ``settled``)."""

    __tablename__ = "expenses"
    KIND = RecordKind.EXPENSE


class ProvisionModel(LedgerRowMixin, TrackedBase):
    """Provision row: an anticipated, committed-but-unrealised expense."""

    __tablename__ = "provisions"
    KIND = RecordKind.PROVISION

    converted_to_expense_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("expenses.id", ondelete="RESTRICT"),
        nullable=True,
    )

    def to_record(self) -> LedgerRecord:
        return LedgerRecord(
            **self._record_fields(),
            converted_to_expense_id=self.converted_to_expense_id,
        )


LEDGER_MODELS: tuple[type[LedgerRowMixin], ...] = (
    IncomeModel,
    ExpenseModel,
    ProvisionModel,
)
