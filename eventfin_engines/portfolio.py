"""
Portfolio Reconciler - roll several event snapshots into one summary.

Pure.  Money figures are summed per tax basis; percentages are recomputed
on the summed figures (never averaged), with the same division guards as
a single event:

    margin %      = utility / income_total * 100      (0 when income <= 0)
    collection %  = collected / income_total * 100    (0 when income <= 0)
    payment %     = paid / expense_total * 100        (0 when expense <= 0)
    variance %    = variance / estimate * 100         (0 when estimate <= 0)

The portfolio health tier comes from the summed margin, so one large
loss-making event can pull an otherwise healthy portfolio down a tier.
Per-event tiers and the over/under-estimate counts are reported alongside.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any
from uuid import UUID

from eventfin_engines.reconciliation import (
    FinancialFigures,
    FinancialSnapshot,
    percent_of,
)
from eventfin_engines.status import HealthTier, StatusClassifier, StatusLabels
from eventfin_engines.tracer import traced_engine
from eventfin_kernel.logging_config import get_logger

logger = get_logger("engines.portfolio")

_ZERO = Decimal("0")


def _sum_by_category(maps: Sequence[Mapping[str, Decimal]]) -> dict[str, Decimal]:
    totals: dict[str, Decimal] = {}
    for amounts in maps:
        for category, amount in amounts.items():
            totals[category] = totals.get(category, _ZERO) + amount
    return totals


@dataclass(frozen=True)
class PortfolioSummary:
    """Consolidated figures of a set of events."""

    event_ids: tuple[UUID, ...]
    include_tax: bool
    inclusive: FinancialFigures
    exclusive: FinancialFigures
    labels: StatusLabels
    income_count: int = 0
    expense_count: int = 0
    provision_count: int = 0
    division_guards: tuple[str, ...] = ()
    tier_counts: Mapping[str, int] = field(default_factory=dict)
    events_over_estimate: int = 0
    events_under_estimate: int = 0

    @property
    def event_count(self) -> int:
        return len(self.event_ids)

    @property
    def figures(self) -> FinancialFigures:
        return self.inclusive if self.include_tax else self.exclusive

    @property
    def utility(self) -> Decimal:
        return self.figures.utility

    @property
    def margin_pct(self) -> Decimal:
        return self.figures.margin_pct

    @property
    def health_tier(self) -> HealthTier:
        return self.labels.health_tier

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_ids": [str(e) for e in self.event_ids],
            "event_count": self.event_count,
            "include_tax": self.include_tax,
            "inclusive": self.inclusive.to_dict(),
            "exclusive": self.exclusive.to_dict(),
            "labels": self.labels.to_dict(),
            "income_count": self.income_count,
            "expense_count": self.expense_count,
            "provision_count": self.provision_count,
            "division_guards": list(self.division_guards),
            "tier_counts": dict(self.tier_counts),
            "events_over_estimate": self.events_over_estimate,
            "events_under_estimate": self.events_under_estimate,
        }


class PortfolioReconciler:
    """Sums per-event snapshots and re-derives the portfolio labels."""

    def __init__(self, status: StatusClassifier | None = None):
        self.status = status or StatusClassifier()

    @staticmethod
    def _figures(
        figures: Sequence[FinancialFigures],
        guards: set[str],
    ) -> FinancialFigures:
        def total(name: str) -> Decimal:
            return sum((getattr(f, name) for f in figures), _ZERO)

        income_collected = total("income_collected")
        income_pending = total("income_pending")
        income_total = income_collected + income_pending
        expense_paid = total("expense_paid")
        expense_pending = total("expense_pending")
        expense_total = expense_paid + expense_pending
        provision_total = total("provision_total")
        total_liability = expense_total + provision_total
        utility = income_total - total_liability
        estimate = total("estimated_income")
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
            expense_by_category=_sum_by_category(
                [f.expense_by_category for f in figures]
            ),
            provision_by_category=_sum_by_category(
                [f.provision_by_category for f in figures]
            ),
        )

    @traced_engine("portfolio", "1.0", fingerprint_fields=("include_tax",))
    def summarize(
        self,
        snapshots: Sequence[FinancialSnapshot],
        include_tax: bool = False,
    ) -> PortfolioSummary:
        """
        Consolidate ``snapshots`` on both tax bases.

        ``include_tax`` selects the basis used for labels, per-event tiers
        and the estimate counts.  An empty sequence yields zero figures
        with every division guard recorded.

        Raises:
            ValueError: If an event appears more than once.
        """
        event_ids = tuple(s.event_id for s in snapshots)
        duplicates = sorted(str(e) for e, n in Counter(event_ids).items() if n > 1)
        if duplicates:
            raise ValueError(f"Events summarized more than once: {duplicates}")

        guards: set[str] = set()
        inclusive = self._figures([s.inclusive for s in snapshots], guards)
        exclusive = self._figures([s.exclusive for s in snapshots], guards)
        primary = inclusive if include_tax else exclusive

        income_count = sum(s.income_count for s in snapshots)
        expense_count = sum(s.expense_count for s in snapshots)
        labels = StatusLabels(
            collection_status=self.status.collection_status(
                income_count, primary.collection_pct,
            ),
            payment_status=self.status.payment_status(
                expense_count, primary.payment_pct,
            ),
            health_tier=self.status.health_tier(primary.margin_pct),
        )

        per_event = [s.inclusive if include_tax else s.exclusive for s in snapshots]
        tier_counts = Counter(
            self.status.health_tier(f.margin_pct).value for f in per_event
        )
        summary = PortfolioSummary(
            event_ids=event_ids,
            include_tax=include_tax,
            inclusive=inclusive,
            exclusive=exclusive,
            labels=labels,
            income_count=income_count,
            expense_count=expense_count,
            provision_count=sum(s.provision_count for s in snapshots),
            division_guards=tuple(sorted(guards)),
            tier_counts=dict(tier_counts),
            events_over_estimate=sum(
                1 for f in per_event
                if f.estimated_income > 0 and f.variance_vs_estimate > 0
            ),
            events_under_estimate=sum(
                1 for f in per_event
                if f.estimated_income > 0 and f.variance_vs_estimate < 0
            ),
        )
        logger.debug(
            "portfolio_summarized",
            extra={
                "event_count": summary.event_count,
                "margin_pct": summary.margin_pct,
                "health_tier": summary.health_tier,
            },
        )
        return summary
