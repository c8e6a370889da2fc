"""
Engine configuration schema.

Frozen dataclasses that the loader builds from YAML.  Every value has a
default matching the shipped ``defaults.yaml``, so ``EngineConfig()`` is a
valid configuration on its own (used by tests and by library callers that
do not load a file).

``EngineConfig`` is also the factory for configured engines: services ask
it for a ``TaxNormalizer``, ``CategoryClassifier`` and so on instead of
constructing engines with literals.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from types import MappingProxyType

from eventfin_engines.accounting_workflow import AccountingWorkflow
from eventfin_engines.aggregation import LedgerAggregator
from eventfin_engines.categories import DEFAULT_ALIASES, CategoryClassifier
from eventfin_engines.overdue import OVERDUE_BUCKETS, OverdueBucket, OverdueMonitor
from eventfin_engines.portfolio import PortfolioReconciler
from eventfin_engines.reconciliation import ReconciliationEngine
from eventfin_engines.status import (
    DEFAULT_HEALTH_RULES,
    HealthTierRule,
    StatusClassifier,
)
from eventfin_engines.tax import DEFAULT_TAX_RATE, TaxNormalizer
from eventfin_kernel.domain.ledger import DEFAULT_TOLERANCE, Category


@dataclass(frozen=True)
class TaxSettings:
    """VAT rate and rounding precision."""

    rate: Decimal = DEFAULT_TAX_RATE
    decimal_places: int = 2

    def __post_init__(self) -> None:
        if self.rate < 0:
            raise ValueError(f"tax.rate cannot be negative: {self.rate}")
        if self.rate >= 1:
            raise ValueError(f"tax.rate must be a fraction (e.g. 0.16): {self.rate}")
        if not 0 <= self.decimal_places <= 6:
            raise ValueError(
                f"tax.decimal_places must be between 0 and 6: {self.decimal_places}"
            )


@dataclass(frozen=True)
class BatchSettings:
    """Bounds for batch recalculation."""

    max_workers: int = 4
    batch_limit: int = 500
    eligible_states: tuple[str, ...] = ("closed",)

    def __post_init__(self) -> None:
        if self.max_workers < 1:
            raise ValueError(f"batch.max_workers must be >= 1: {self.max_workers}")
        if self.batch_limit < 1:
            raise ValueError(f"batch.batch_limit must be >= 1: {self.batch_limit}")
        if not self.eligible_states:
            raise ValueError("batch.eligible_states cannot be empty")


@dataclass(frozen=True)
class EngineConfig:
    """Complete engine configuration."""

    tax: TaxSettings = field(default_factory=TaxSettings)
    tolerance: Decimal = DEFAULT_TOLERANCE
    health_rules: tuple[HealthTierRule, ...] = DEFAULT_HEALTH_RULES
    overdue_buckets: tuple[OverdueBucket, ...] = OVERDUE_BUCKETS
    category_aliases: Mapping[str, Category] = field(
        default_factory=lambda: DEFAULT_ALIASES,
    )
    batch: BatchSettings = field(default_factory=BatchSettings)
    checksum: str = ""
    source: str | None = None

    def __post_init__(self) -> None:
        if self.tolerance < 0:
            raise ValueError(f"tolerance cannot be negative: {self.tolerance}")
        thresholds = [rule.min_margin for rule in self.health_rules]
        if len(set(thresholds)) != len(thresholds):
            raise ValueError("health tier thresholds must be distinct")
        if not self.overdue_buckets:
            raise ValueError("at least one overdue bucket is required")
        object.__setattr__(
            self, "category_aliases", MappingProxyType(dict(self.category_aliases)),
        )

    # Engine factories

    def tax_normalizer(self) -> TaxNormalizer:
        return TaxNormalizer(self.tax.rate, self.tax.decimal_places)

    def category_classifier(self) -> CategoryClassifier:
        return CategoryClassifier(self.category_aliases)

    def aggregator(self) -> LedgerAggregator:
        return LedgerAggregator(self.category_classifier(), self.tolerance)

    def reconciliation_engine(self) -> ReconciliationEngine:
        return ReconciliationEngine(self.tax_normalizer())

    def status_classifier(self) -> StatusClassifier:
        return StatusClassifier(self.health_rules, self.tolerance)

    def overdue_monitor(self) -> OverdueMonitor:
        return OverdueMonitor(self.overdue_buckets)

    def accounting_workflow(self) -> AccountingWorkflow:
        return AccountingWorkflow()

    def portfolio_reconciler(self) -> PortfolioReconciler:
        return PortfolioReconciler(self.status_classifier())
