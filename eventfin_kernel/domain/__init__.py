"""Pure domain types and the clock abstraction. ZERO I/O."""

from eventfin_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from eventfin_kernel.domain.ledger import (
    DEFAULT_TOLERANCE,
    AccountingState,
    BusinessEvent,
    Category,
    EventLedger,
    LedgerRecord,
    RecordKind,
)
from eventfin_kernel.domain.workflow import Guard, Transition, Workflow

__all__ = [
    "Clock",
    "SystemClock",
    "DeterministicClock",
    "DEFAULT_TOLERANCE",
    "AccountingState",
    "BusinessEvent",
    "Category",
    "EventLedger",
    "LedgerRecord",
    "RecordKind",
    "Guard",
    "Transition",
    "Workflow",
]
