"""
Reconciliation Engine - compute the financial snapshot of one event.

Pure.  Given the event metadata and its ``LedgerAggregates``, computes the
figures on BOTH bases on every call:

    total_expense   = paid + pending expense
    total_liability = total_expense + provision total
    utility         = total_income - total_liability
    margin %        = utility / total_income * 100       (0 when income <= 0)
    collection %    = collected / total_income * 100     (0 when income <= 0)
    payment %       = paid / total_expense * 100         (0 when expense <= 0)
    variance        = total_income - estimated_income
    variance %      = variance / estimated_income * 100  (0 when estimate <= 0)

The tax-inclusive basis uses record totals and the estimate as stored;
the tax-exclusive basis uses the per-record subtotals and the estimate
normalized with ``TaxNormalizer.to_exclusive``.  Money figures and
percentages are rounded half-up to 2 places.

A zero denominator never raises: the metric is 0, its name is recorded in
``FinancialSnapshot.division_guards`` and a ``division_guard_triggered``
debug record is logged.

The snapshot contains no wall-clock timestamp, so reconciling unchanged
data twice yields equal snapshots.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Any
from uuid import UUID

from eventfin_engines.aggregation import LedgerAggregates
from eventfin_engines.status import StatusLabels
from eventfin_engines.tax import TaxNormalizer
from eventfin_engines.tracer import traced_engine
from eventfin_kernel.domain.ledger import BusinessEvent
from eventfin_kernel.logging_config import get_logger

logger = get_logger("engines.reconciliation")

_ZERO = Decimal("0")
_HUNDRED = Decimal("100")
_PCT_QUANTUM = Decimal("0.01")

_MONEY_FIELDS = (
    "income_collected",
    "income_pending",
    "income_total",
    "expense_paid",
    "expense_pending",
    "expense_total",
    "provision_total",
    "total_liability",
    "utility",
    "estimated_income",
    "variance_vs_estimate",
)
_PCT_FIELDS = ("margin_pct", "collection_pct", "payment_pct", "variance_pct")


@dataclass(frozen=True)
class FinancialFigures:
    """Figures of one event on one tax basis."""

    income_collected: Decimal
    income_pending: Decimal
    income_total: Decimal
    expense_paid: Decimal
    expense_pending: Decimal
    expense_total: Decimal
    provision_total: Decimal
    total_liability: Decimal
    utility: Decimal
    margin_pct: Decimal
    collection_pct: Decimal
    payment_pct: Decimal
    estimated_income: Decimal
    variance_vs_estimate: Decimal
    variance_pct: Decimal
    expense_by_category: Mapping[str, Decimal] = field(default_factory=dict)
    provision_by_category: Mapping[str, Decimal] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            name: str(getattr(self, name)) for name in _MONEY_FIELDS + _PCT_FIELDS
        }
        data["expense_by_category"] = {
            k: str(v) for k, v in self.expense_by_category.items()
        }
        data["provision_by_category"] = {
            k: str(v) for k, v in self.provision_by_category.items()
        }
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> FinancialFigures:
        values: dict[str, Any] = {
            name: Decimal(data[name]) for name in _MONEY_FIELDS + _PCT_FIELDS
        }
        values["expense_by_category"] = {
            k: Decimal(v) for k, v in data.get("expense_by_category", {}).items()
        }
        values["provision_by_category"] = {
            k: Decimal(v) for k, v in data.get("provision_by_category", {}).items()
        }
        return cls(**values)


@dataclass(frozen=True)
class FinancialSnapshot:
    """
    Complete financial picture of one event at one ledger version.

    ``include_tax`` selects the primary basis exposed as ``figures``;
    both bases are always present.
    """

    event_id: UUID
    event_code: str
    include_tax: bool
    as_of: date | None
    ledger_version: int
    inclusive: FinancialFigures
    exclusive: FinancialFigures
    income_count: int = 0
    expense_count: int = 0
    provision_count: int = 0
    uninvoiced_income_count: int = 0
    rejected_record_ids: tuple[str, ...] = ()
    division_guards: tuple[str, ...] = ()
    labels: StatusLabels | None = None

    @property
    def figures(self) -> FinancialFigures:
        return self.inclusive if self.include_tax else self.exclusive

    @property
    def utility(self) -> Decimal:
        return self.figures.utility

    @property
    def margin_pct(self) -> Decimal:
        return self.figures.margin_pct

    def with_labels(self, labels: StatusLabels) -> FinancialSnapshot:
        return replace(self, labels=labels)

    def to_dict(self) -> dict[str, Any]:
        """JSON-serializable form (Decimals as strings)."""
        return {
            "event_id": str(self.event_id),
            "event_code": self.event_code,
            "include_tax": self.include_tax,
            "as_of": self.as_of.isoformat() if self.as_of else None,
            "ledger_version": self.ledger_version,
            "inclusive": self.inclusive.to_dict(),
            "exclusive": self.exclusive.to_dict(),
            "income_count": self.income_count,
            "expense_count": self.expense_count,
            "provision_count": self.provision_count,
            "uninvoiced_income_count": self.uninvoiced_income_count,
            "rejected_record_ids": list(self.rejected_record_ids),
            "division_guards": list(self.division_guards),
            "labels": self.labels.to_dict() if self.labels else None,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> FinancialSnapshot:
        return cls(
            event_id=UUID(data["event_id"]),
            event_code=data["event_code"],
            include_tax=bool(data["include_tax"]),
            as_of=date.fromisoformat(data["as_of"]) if data.get("as_of") else None,
            ledger_version=int(data["ledger_version"]),
            inclusive=FinancialFigures.from_dict(data["inclusive"]),
            exclusive=FinancialFigures.from_dict(data["exclusive"]),
            income_count=int(data.get("income_count", 0)),
            expense_count=int(data.get("expense_count", 0)),
            provision_count=int(data.get("provision_count", 0)),
            uninvoiced_income_count=int(data.get("uninvoiced_income_count", 0)),
            rejected_record_ids=tuple(data.get("rejected_record_ids", ())),
            division_guards=tuple(data.get("division_guards", ())),
            labels=StatusLabels.from_dict(data["labels"]) if data.get("labels") else None,
        )


def percent_of(numerator: Decimal, denominator: Decimal) -> Decimal:
    """``numerator`` as a percentage of ``denominator``, half-up to 2 places."""
    return (numerator / denominator * _HUNDRED).quantize(
        _PCT_QUANTUM, rounding=ROUND_HALF_UP,
    )


class ReconciliationEngine:
    """Computes ``FinancialSnapshot`` from aggregates."""

    def __init__(self, tax: TaxNormalizer | None = None):
        self.tax = tax or TaxNormalizer()

    def _figures(
        self,
        aggregates: LedgerAggregates,
        estimated_income: Decimal,
        include_tax: bool,
        guards: set[str],
    ) -> FinancialFigures:
        money = self.tax.quantize

        income_collected = money(aggregates.income.settled.amount(include_tax))
        income_pending = money(aggregates.income.pending.amount(include_tax))
        income_total = income_collected + income_pending
        expense_paid = money(aggregates.expense.settled.amount(include_tax))
        expense_pending = money(aggregates.expense.pending.amount(include_tax))
        expense_total = expense_paid + expense_pending
        provision_total = money(aggregates.provision.amount(include_tax))
        total_liability = expense_total + provision_total
        utility = income_total - total_liability

        estimate = money(
            estimated_income if include_tax
            else self.tax.to_exclusive(estimated_income)
        )
        variance = income_total - estimate

        if income_total > 0:
            margin_pct = percent_of(utility, income_total)
            collection_pct = percent_of(income_collected, income_total)
        else:
            margin_pct = collection_pct = _ZERO
            guards.update(("margin_pct", "collection_pct"))

        if expense_total > 0:
            payment_pct = percent_of(expense_paid, expense_total)
        else:
            payment_pct = _ZERO
            guards.add("payment_pct")

        if estimate > 0:
            variance_pct = percent_of(variance, estimate)
        else:
            variance_pct = _ZERO
            guards.add("variance_pct")

        return FinancialFigures(
            income_collected=income_collected,
            income_pending=income_pending,
            income_total=income_total,
            expense_paid=expense_paid,
            expense_pending=expense_pending,
            expense_total=expense_total,
            provision_total=provision_total,
            total_liability=total_liability,
            utility=utility,
            margin_pct=margin_pct,
            collection_pct=collection_pct,
            payment_pct=payment_pct,
            estimated_income=estimate,
            variance_vs_estimate=variance,
            variance_pct=variance_pct,
            expense_by_category={
                k: money(v) for k, v in
                aggregates.expense_by_category.amounts_by_category(include_tax).items()
            },
            provision_by_category={
                k: money(v) for k, v in
                aggregates.provision_by_category.amounts_by_category(include_tax).items()
            },
        )

    @traced_engine(
        "reconciliation", "1.0",
        fingerprint_fields=("include_tax", "as_of"),
    )
    def reconcile(
        self,
        event: BusinessEvent,
        aggregates: LedgerAggregates,
        include_tax: bool = False,
        as_of: date | None = None,
    ) -> FinancialSnapshot:
        """
        Build the snapshot for ``event`` from its aggregates.

        Raises:
            ValueError: If the aggregates belong to another event.
        """
        if aggregates.event_id != event.event_id:
            raise ValueError(
                f"Aggregates of event {aggregates.event_id} passed for "
                f"event {event.event_id}"
            )

        guards: set[str] = set()
        inclusive = self._figures(aggregates, event.estimated_income, True, guards)
        exclusive = self._figures(aggregates, event.estimated_income, False, guards)

        for metric in sorted(guards):
            logger.debug(
                "division_guard_triggered",
                extra={"event_id": str(event.event_id), "metric": metric},
            )

        return FinancialSnapshot(
            event_id=event.event_id,
            event_code=event.code,
            include_tax=include_tax,
            as_of=as_of,
            ledger_version=event.ledger_version,
            inclusive=inclusive,
            exclusive=exclusive,
            income_count=aggregates.income_count,
            expense_count=aggregates.expense_count,
            provision_count=aggregates.provision_count,
            uninvoiced_income_count=aggregates.uninvoiced_income_count,
            rejected_record_ids=aggregates.rejected_record_ids,
            division_guards=tuple(sorted(guards)),
        )
