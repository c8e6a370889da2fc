"""
Ledger domain types -- pure frozen DTOs shared by engines and services.

ZERO I/O.  Selectors convert ORM rows into these types; engines consume
them; nothing here touches a session.

Invariants:
    - ``amount_total == amount_subtotal + tax_amount`` within the rounding
      tolerance (checked by ``LedgerRecord.is_consistent``; enforced by the
      aggregator, which excludes and reports violating records).
    - ``converted_to_expense_id`` is only meaningful on provisions.
    - ``invoice_reference`` is only meaningful on incomes.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

DEFAULT_TOLERANCE = Decimal("0.01")


class Category(str, Enum):
    """Canonical spend/income categories."""

    FUEL_TOLLS = "fuel_tolls"
    MATERIALS = "materials"
    HUMAN_RESOURCES = "human_resources"
    PAYMENT_REQUESTS = "payment_requests"
    UNCATEGORIZED = "uncategorized"


class RecordKind(str, Enum):
    """Kind of ledger record."""

    INCOME = "income"
    EXPENSE = "expense"
    PROVISION = "provision"


class AccountingState(str, Enum):
    """Accounting lifecycle of a business event."""

    OPEN = "open"
    PENDING_REVIEW = "pending_review"
    AWAITING_PAYMENT = "awaiting_payment"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class LedgerRecord:
    """
    One income, expense or provision row of an event.

    ``category_ref`` is the raw reference from the upstream catalog (id,
    short code or name); the category classifier maps it to a
    ``Category``.
    """

    record_id: UUID
    event_id: UUID
    kind: RecordKind
    amount_subtotal: Decimal
    tax_amount: Decimal
    amount_total: Decimal
    occurs_on: date
    category_ref: str | None = None
    settled: bool = False
    committed_payment_date: date | None = None
    soft_deleted: bool = False
    converted_to_expense_id: UUID | None = None
    invoice_reference: str | None = None
    description: str | None = None

    @property
    def is_provision_converted(self) -> bool:
        return (
            self.kind == RecordKind.PROVISION
            and self.converted_to_expense_id is not None
        )

    def is_consistent(self, tolerance: Decimal = DEFAULT_TOLERANCE) -> bool:
        """True if total matches subtotal + tax within tolerance."""
        diff = self.amount_total - (self.amount_subtotal + self.tax_amount)
        return abs(diff) <= tolerance


@dataclass(frozen=True)
class BusinessEvent:
    """
    Event metadata consumed by the reconciliation engine.

    ``estimated_income`` is tax-inclusive.  ``ledger_version`` increments
    on every ledger mutation of the event and identifies the data a
    snapshot was computed from.
    """

    event_id: UUID
    code: str
    estimated_income: Decimal
    lifecycle_state: str = "open"
    accounting_state: AccountingState = AccountingState.OPEN
    closing_signalled: bool = False
    ledger_version: int = 0


@dataclass(frozen=True)
class EventLedger:
    """Consistent read of one event and its ledger rows."""

    event: BusinessEvent
    records: tuple[LedgerRecord, ...]

    @property
    def ledger_version(self) -> int:
        return self.event.ledger_version
