"""
Ledger Aggregator - roll ledger records up into per-event totals.

Pure: the caller supplies the records (the services layer reads them
through ``LedgerSelector``).  Decimal addition is exact, so the result
does not depend on record order, and ``LedgerAggregates.merge`` combines
partial aggregates of disjoint record sets associatively.

Inclusion rules, applied in this order:
    1. records of another event are ignored;
    2. soft-deleted records are excluded;
    3. provisions already converted to an expense are excluded (the
       expense counts instead, never both);
    4. with ``as_of``, only records with ``occurs_on <= as_of`` count;
    5. records whose total differs from subtotal + tax by more than the
       tolerance are excluded and reported as ``InconsistentRecordError``.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from types import MappingProxyType
from uuid import UUID

from eventfin_engines.categories import CategoryClassifier
from eventfin_engines.tracer import traced_engine
from eventfin_kernel.domain.ledger import (
    DEFAULT_TOLERANCE,
    Category,
    LedgerRecord,
    RecordKind,
)
from eventfin_kernel.exceptions import InconsistentRecordError
from eventfin_kernel.logging_config import get_logger

logger = get_logger("engines.aggregation")

_ZERO = Decimal("0")


@dataclass(frozen=True)
class Amounts:
    """Subtotal / tax / total triple."""

    subtotal: Decimal = _ZERO
    tax: Decimal = _ZERO
    total: Decimal = _ZERO

    @classmethod
    def of(cls, record: LedgerRecord) -> Amounts:
        return cls(
            subtotal=record.amount_subtotal,
            tax=record.tax_amount,
            total=record.amount_total,
        )

    def __add__(self, other: Amounts) -> Amounts:
        return Amounts(
            subtotal=self.subtotal + other.subtotal,
            tax=self.tax + other.tax,
            total=self.total + other.total,
        )

    def amount(self, include_tax: bool) -> Decimal:
        """Total when ``include_tax``, subtotal otherwise."""
        return self.total if include_tax else self.subtotal

    def to_dict(self) -> dict[str, str]:
        return {
            "subtotal": str(self.subtotal),
            "tax": str(self.tax),
            "total": str(self.total),
        }


def _empty_categories() -> Mapping[Category, Amounts]:
    return MappingProxyType({category: Amounts() for category in Category})


@dataclass(frozen=True)
class CategoryTotals:
    """
    Amounts per category.

    Every ``Category`` is always present (zero when unused), so two
    aggregates over the same data compare equal regardless of which
    categories appeared first.
    """

    by_category: Mapping[Category, Amounts] = field(default_factory=_empty_categories)

    def get(self, category: Category) -> Amounts:
        return self.by_category.get(category, Amounts())

    def add(self, category: Category, amounts: Amounts) -> CategoryTotals:
        updated = dict(self.by_category)
        updated[category] = self.get(category) + amounts
        return CategoryTotals(MappingProxyType(updated))

    def merge(self, other: CategoryTotals) -> CategoryTotals:
        return CategoryTotals(MappingProxyType({
            category: self.get(category) + other.get(category)
            for category in Category
        }))

    def sum(self) -> Amounts:
        total = Amounts()
        for category in Category:
            total = total + self.get(category)
        return total

    def amounts_by_category(self, include_tax: bool) -> dict[str, Decimal]:
        """``{category value: amount}`` on the requested basis."""
        return {
            category.value: self.get(category).amount(include_tax)
            for category in Category
        }

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CategoryTotals):
            return NotImplemented
        return all(self.get(c) == other.get(c) for c in Category)

    def __hash__(self) -> int:
        return hash(tuple(self.get(c) for c in Category))


@dataclass(frozen=True)
class SettlementTotals:
    """Settled (paid/collected) and pending amounts of one record kind."""

    settled: Amounts = field(default_factory=Amounts)
    pending: Amounts = field(default_factory=Amounts)

    @property
    def total(self) -> Amounts:
        return self.settled + self.pending

    def add(self, record: LedgerRecord) -> SettlementTotals:
        if record.settled:
            return SettlementTotals(self.settled + Amounts.of(record), self.pending)
        return SettlementTotals(self.settled, self.pending + Amounts.of(record))

    def merge(self, other: SettlementTotals) -> SettlementTotals:
        return SettlementTotals(
            self.settled + other.settled,
            self.pending + other.pending,
        )


@dataclass(frozen=True)
class LedgerAggregates:
    """
    Aggregated ledger of one event.

    Invariant: ``expense_by_category.sum() == expense.total`` (and likewise
    for income and provisions) because every included record is added to
    exactly one category, UNCATEGORIZED included.
    """

    event_id: UUID
    income: SettlementTotals = field(default_factory=SettlementTotals)
    expense: SettlementTotals = field(default_factory=SettlementTotals)
    provision: Amounts = field(default_factory=Amounts)
    income_by_category: CategoryTotals = field(default_factory=CategoryTotals)
    expense_by_category: CategoryTotals = field(default_factory=CategoryTotals)
    provision_by_category: CategoryTotals = field(default_factory=CategoryTotals)
    income_count: int = 0
    expense_count: int = 0
    provision_count: int = 0
    uninvoiced_income_count: int = 0
    rejected: tuple[InconsistentRecordError, ...] = ()

    @property
    def rejected_record_ids(self) -> tuple[str, ...]:
        return tuple(sorted(str(err.record_id) for err in self.rejected))

    def merge(self, other: LedgerAggregates) -> LedgerAggregates:
        """Combine aggregates of two disjoint record sets of the same event."""
        if other.event_id != self.event_id:
            raise ValueError(
                f"Cannot merge aggregates of different events: "
                f"{self.event_id} and {other.event_id}"
            )
        return LedgerAggregates(
            event_id=self.event_id,
            income=self.income.merge(other.income),
            expense=self.expense.merge(other.expense),
            provision=self.provision + other.provision,
            income_by_category=self.income_by_category.merge(other.income_by_category),
            expense_by_category=self.expense_by_category.merge(other.expense_by_category),
            provision_by_category=self.provision_by_category.merge(
                other.provision_by_category,
            ),
            income_count=self.income_count + other.income_count,
            expense_count=self.expense_count + other.expense_count,
            provision_count=self.provision_count + other.provision_count,
            uninvoiced_income_count=(
                self.uninvoiced_income_count + other.uninvoiced_income_count
            ),
            rejected=self.rejected + other.rejected,
        )


class LedgerAggregator:
    """Groups records by kind, settlement and category."""

    def __init__(
        self,
        classifier: CategoryClassifier | None = None,
        tolerance: Decimal = DEFAULT_TOLERANCE,
    ):
        self.classifier = classifier or CategoryClassifier()
        self.tolerance = tolerance

    def _included(
        self,
        event_id: UUID,
        record: LedgerRecord,
        as_of: date | None,
    ) -> bool:
        if record.event_id != event_id:
            return False
        if record.soft_deleted:
            return False
        if record.is_provision_converted:
            return False
        if as_of is not None and record.occurs_on > as_of:
            return False
        return True

    @traced_engine("aggregation", "1.0", fingerprint_fields=("event_id", "as_of"))
    def aggregate(
        self,
        event_id: UUID,
        records: Iterable[LedgerRecord],
        as_of: date | None = None,
    ) -> LedgerAggregates:
        """
        Aggregate the records of one event.

        Args:
            event_id: Event whose records count; others are ignored.
            records: Raw ledger records (any order).
            as_of: Optional cut-off date (inclusive).

        Returns:
            LedgerAggregates, with inconsistent records listed in ``rejected``.
        """
        income = SettlementTotals()
        expense = SettlementTotals()
        provision = Amounts()
        income_by_category: dict[Category, Amounts] = {}
        expense_by_category: dict[Category, Amounts] = {}
        provision_by_category: dict[Category, Amounts] = {}
        counts = {kind: 0 for kind in RecordKind}
        uninvoiced = 0
        rejected: list[InconsistentRecordError] = []

        for record in records:
            if not self._included(event_id, record, as_of):
                continue

            if not record.is_consistent(self.tolerance):
                error = InconsistentRecordError(
                    str(record.record_id),
                    record.kind.value,
                    record.amount_subtotal,
                    record.tax_amount,
                    record.amount_total,
                )
                logger.warning(
                    "inconsistent_record_excluded",
                    extra={
                        "event_id": str(event_id),
                        "record_id": str(record.record_id),
                        "kind": record.kind.value,
                        "difference": str(error.difference),
                    },
                )
                rejected.append(error)
                continue

            category = self.classifier.classify(record)
            amounts = Amounts.of(record)
            counts[record.kind] += 1

            if record.kind == RecordKind.INCOME:
                income = income.add(record)
                bucket = income_by_category
                if not record.invoice_reference:
                    uninvoiced += 1
            elif record.kind == RecordKind.EXPENSE:
                expense = expense.add(record)
                bucket = expense_by_category
            else:
                provision = provision + amounts
                bucket = provision_by_category
            bucket[category] = bucket.get(category, Amounts()) + amounts

        def _totals(partial: dict[Category, Amounts]) -> CategoryTotals:
            return CategoryTotals(MappingProxyType({
                category: partial.get(category, Amounts()) for category in Category
            }))

        result = LedgerAggregates(
            event_id=event_id,
            income=income,
            expense=expense,
            provision=provision,
            income_by_category=_totals(income_by_category),
            expense_by_category=_totals(expense_by_category),
            provision_by_category=_totals(provision_by_category),
            income_count=counts[RecordKind.INCOME],
            expense_count=counts[RecordKind.EXPENSE],
            provision_count=counts[RecordKind.PROVISION],
            uninvoiced_income_count=uninvoiced,
            rejected=tuple(rejected),
        )

        logger.debug(
            "ledger_aggregated",
            extra={
                "event_id": str(event_id),
                "income_count": result.income_count,
                "expense_count": result.expense_count,
                "provision_count": result.provision_count,
                "rejected_count": len(result.rejected),
            },
        )
        return result
