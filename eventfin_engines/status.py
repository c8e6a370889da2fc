"""
Status Classifier - derive collection, payment and health labels.

Pure.  Labels are derived from a ``FinancialSnapshot`` using ordered
threshold rules (first match wins).  The same rules apply to both the
tax-inclusive and tax-exclusive margin; the snapshot's ``include_tax``
selects which one is classified.

Health tiers (margin %, default thresholds):
    EXCELLENT >= 35, FAIR >= 25, LOW >= 1, otherwise NONE.

Collection status (incomes):
    NO_INCOME            -- the event has no income records
    FULLY_COLLECTED      -- collection % >= 100 (within tolerance)
    PARTIALLY_COLLECTED  -- 0 < collection % < 100
    PENDING_COLLECTION   -- collection % == 0 and incomes exist

Payment status mirrors collection status for expenses.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING

from eventfin_kernel.domain.ledger import DEFAULT_TOLERANCE
from eventfin_kernel.logging_config import get_logger

if TYPE_CHECKING:
    from eventfin_engines.reconciliation import FinancialSnapshot

logger = get_logger("engines.status")

_HUNDRED = Decimal("100")


class HealthTier(str, Enum):
    """Profitability tier of an event."""

    EXCELLENT = "excellent"
    FAIR = "fair"
    LOW = "low"
    NONE = "none"


class CollectionStatus(str, Enum):
    """How much of the event's income has been collected."""

    NO_INCOME = "no_income"
    FULLY_COLLECTED = "fully_collected"
    PARTIALLY_COLLECTED = "partially_collected"
    PENDING_COLLECTION = "pending_collection"


class PaymentStatus(str, Enum):
    """How much of the event's expense has been paid."""

    NO_EXPENSES = "no_expenses"
    FULLY_PAID = "fully_paid"
    PARTIALLY_PAID = "partially_paid"
    PENDING_PAYMENT = "pending_payment"


@dataclass(frozen=True)
class HealthTierRule:
    """Margin threshold: ``tier`` applies when margin >= ``min_margin``."""

    tier: HealthTier
    min_margin: Decimal

    def matches(self, margin_pct: Decimal) -> bool:
        return margin_pct >= self.min_margin


DEFAULT_HEALTH_RULES: tuple[HealthTierRule, ...] = (
    HealthTierRule(HealthTier.EXCELLENT, Decimal("35")),
    HealthTierRule(HealthTier.FAIR, Decimal("25")),
    HealthTierRule(HealthTier.LOW, Decimal("1")),
)


@dataclass(frozen=True)
class StatusLabels:
    """Derived labels attached to a snapshot."""

    collection_status: CollectionStatus
    payment_status: PaymentStatus
    health_tier: HealthTier

    def to_dict(self) -> dict[str, str]:
        return {
            "collection_status": self.collection_status.value,
            "payment_status": self.payment_status.value,
            "health_tier": self.health_tier.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, str]) -> StatusLabels:
        return cls(
            collection_status=CollectionStatus(data["collection_status"]),
            payment_status=PaymentStatus(data["payment_status"]),
            health_tier=HealthTier(data["health_tier"]),
        )


class StatusClassifier:
    """Ordered-rule classifier for snapshot labels."""

    def __init__(
        self,
        health_rules: Sequence[HealthTierRule] = DEFAULT_HEALTH_RULES,
        tolerance: Decimal = DEFAULT_TOLERANCE,
    ):
        # Highest threshold first so the first match is the best tier
        self.health_rules = tuple(
            sorted(health_rules, key=lambda r: r.min_margin, reverse=True)
        )
        self.tolerance = tolerance

    def health_tier(self, margin_pct: Decimal) -> HealthTier:
        for rule in self.health_rules:
            if rule.matches(margin_pct):
                return rule.tier
        return HealthTier.NONE

    def collection_status(
        self,
        income_count: int,
        collection_pct: Decimal,
    ) -> CollectionStatus:
        if income_count == 0:
            return CollectionStatus.NO_INCOME
        if collection_pct >= _HUNDRED - self.tolerance:
            return CollectionStatus.FULLY_COLLECTED
        if collection_pct > 0:
            return CollectionStatus.PARTIALLY_COLLECTED
        return CollectionStatus.PENDING_COLLECTION

    def payment_status(
        self,
        expense_count: int,
        payment_pct: Decimal,
    ) -> PaymentStatus:
        if expense_count == 0:
            return PaymentStatus.NO_EXPENSES
        if payment_pct >= _HUNDRED - self.tolerance:
            return PaymentStatus.FULLY_PAID
        if payment_pct > 0:
            return PaymentStatus.PARTIALLY_PAID
        return PaymentStatus.PENDING_PAYMENT

    def classify(self, snapshot: FinancialSnapshot) -> StatusLabels:
        """Labels for the snapshot's primary basis."""
        figures = snapshot.figures
        labels = StatusLabels(
            collection_status=self.collection_status(
                snapshot.income_count, figures.collection_pct,
            ),
            payment_status=self.payment_status(
                snapshot.expense_count, figures.payment_pct,
            ),
            health_tier=self.health_tier(figures.margin_pct),
        )
        logger.debug(
            "status_classified",
            extra={"event_id": str(snapshot.event_id), **labels.to_dict()},
        )
        return labels
