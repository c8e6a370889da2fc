"""
Module: eventfin_services
Responsibility:
    Session-owning orchestration over the pure engines: recalculation
    (single event and batch), snapshot persistence and caching, overdue
    detection, accounting-state actions and provision conversion.

Architecture position:
    Services -- may import eventfin_kernel, eventfin_engines and
    eventfin_config.  Each service receives a ``sessionmaker`` and opens
    one session per unit of work.
"""

from eventfin_services._recalc_types import (
    BatchRecalculationReport,
    BatchStatus,
    CancellationToken,
    RecalculationFilter,
    RecalculationResult,
)
from eventfin_services.accounting_state_service import AccountingStateService
from eventfin_services.overdue_service import OverdueService
from eventfin_services.provision_conversion import ProvisionConversionService
from eventfin_services.recalculation_service import RecalculationService
from eventfin_services.snapshot_store import (
    SnapshotCache,
    SnapshotStore,
    StoredSnapshot,
)

__all__ = [
    "AccountingStateService",
    "BatchRecalculationReport",
    "BatchStatus",
    "CancellationToken",
    "OverdueService",
    "ProvisionConversionService",
    "RecalculationFilter",
    "RecalculationResult",
    "RecalculationService",
    "SnapshotCache",
    "SnapshotStore",
    "StoredSnapshot",
]
