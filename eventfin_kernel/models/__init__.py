"""ORM models. Importing this package registers every table on Base.metadata."""

from eventfin_kernel.models.event import EventModel
from eventfin_kernel.models.ledger import (
    LEDGER_MODELS,
    ExpenseModel,
    IncomeModel,
    LedgerRowMixin,
    ProvisionModel,
)
from eventfin_kernel.models.snapshot import SnapshotModel

__all__ = [
    "EventModel",
    "IncomeModel",
    "ExpenseModel",
    "ProvisionModel",
    "LedgerRowMixin",
    "LEDGER_MODELS",
    "SnapshotModel",
]
