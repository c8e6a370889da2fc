"""
Module: eventfin_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure
    calculation engines.  This is the canonical import surface for the
    services layer.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May import eventfin_kernel.domain, exceptions and logging only.
    MUST NOT import eventfin_services or eventfin_kernel.db.

Invariants enforced:
    - Purity: engines NEVER call ``datetime.now()`` or ``date.today()``.
      Dates are passed in explicitly by the services layer.
    - Decimal-only arithmetic: all monetary amounts use ``Decimal``.
    - Determinism: identical inputs always produce identical outputs.

Every engine entrypoint is traced via ``@traced_engine`` (see
``eventfin_engines.tracer``), emitting EVENTFIN_ENGINE_TRACE records.
"""

from eventfin_engines.accounting_workflow import (
    ACCOUNTING_WORKFLOW,
    AccountingFacts,
    AccountingWorkflow,
    StateEvaluation,
)
from eventfin_engines.aggregation import (
    Amounts,
    CategoryTotals,
    LedgerAggregates,
    LedgerAggregator,
    SettlementTotals,
)
from eventfin_engines.categories import (
    DEFAULT_ALIASES,
    CategoryClassifier,
    normalize_key,
)
from eventfin_engines.overdue import (
    OVERDUE_BUCKETS,
    OverdueBucket,
    OverdueBucketSummary,
    OverdueItem,
    OverdueMonitor,
)
from eventfin_engines.portfolio import PortfolioReconciler, PortfolioSummary
from eventfin_engines.reconciliation import (
    FinancialFigures,
    FinancialSnapshot,
    ReconciliationEngine,
    percent_of,
)
from eventfin_engines.status import (
    DEFAULT_HEALTH_RULES,
    CollectionStatus,
    HealthTier,
    HealthTierRule,
    PaymentStatus,
    StatusClassifier,
    StatusLabels,
)
from eventfin_engines.tax import DEFAULT_TAX_RATE, TaxNormalizer, TaxSplit
from eventfin_engines.tracer import compute_input_fingerprint, traced_engine

__all__ = [
    # Accounting workflow
    "ACCOUNTING_WORKFLOW",
    "AccountingFacts",
    "AccountingWorkflow",
    "StateEvaluation",
    # Aggregation
    "Amounts",
    "CategoryTotals",
    "LedgerAggregates",
    "LedgerAggregator",
    "SettlementTotals",
    # Categories
    "DEFAULT_ALIASES",
    "CategoryClassifier",
    "normalize_key",
    # Overdue
    "OVERDUE_BUCKETS",
    "OverdueBucket",
    "OverdueBucketSummary",
    "OverdueItem",
    "OverdueMonitor",
    # Portfolio
    "PortfolioReconciler",
    "PortfolioSummary",
    # Reconciliation
    "FinancialFigures",
    "FinancialSnapshot",
    "ReconciliationEngine",
    "percent_of",
    # Status
    "DEFAULT_HEALTH_RULES",
    "CollectionStatus",
    "HealthTier",
    "HealthTierRule",
    "PaymentStatus",
    "StatusClassifier",
    "StatusLabels",
    # Tax
    "DEFAULT_TAX_RATE",
    "TaxNormalizer",
    "TaxSplit",
    # Tracer
    "compute_input_fingerprint",
    "traced_engine",
]
