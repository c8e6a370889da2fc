"""
Typed exception hierarchy for the event finance engine.

Every error has a typed class (catch by type, not message), a ``code``
class attribute (machine-readable, API-safe) and structured attributes
(never parse the message).

    EventFinanceError (base)
    |
    +-- MissingEventError
    |
    +-- LedgerError
    |   +-- InconsistentRecordError
    |   +-- RecordNotFoundError
    |   +-- ProvisionAlreadyConvertedError
    |
    +-- ConcurrencyError
    |   +-- ConcurrentMutationError
    |
    +-- AccountingStateError
    |   +-- InvalidStateTransitionError
    |
    +-- BatchError
        +-- BatchPartialFailure

Category        | Code                         | When Raised
----------------|------------------------------|-----------------------------------------
Event           | EVENT_NOT_FOUND              | Recalculation for an unknown event
Ledger          | INCONSISTENT_RECORD          | total != subtotal + tax (record excluded)
                | RECORD_NOT_FOUND             | Ledger row id doesn't exist
                | PROVISION_ALREADY_CONVERTED  | Provision already realised as expense
Concurrency     | CONCURRENT_MUTATION          | Ledger changed while it was being read
Accounting      | INVALID_STATE_TRANSITION     | Action not allowed from current state
Batch           | BATCH_PARTIAL_FAILURE        | One or more batch units failed

A zero denominator in margin / collection percentage is NOT an error: the
metric is 0 and the guard is recorded on the snapshot.

Handling patterns:

    try:
        snapshot = service.recalculate(event_id)
    except MissingEventError as e:
        return {"error": e.code, "event_id": e.event_id}
    except ConcurrentMutationError:
        # Already retried once by the service
        raise

    report = service.recalculate_all(RecalculationFilter())
    report.raise_for_failures()  # BatchPartialFailure with per-event errors
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any


class EventFinanceError(Exception):
    """
    Base exception for all event finance errors.

    All subclasses must have a ``code`` class attribute for
    machine-readable error identification.
    """

    code: str = "EVENTFIN_ERROR"


# Event-related exceptions


class MissingEventError(EventFinanceError):
    """Recalculation requested for an event that does not exist."""

    code: str = "EVENT_NOT_FOUND"

    def __init__(self, event_id: str):
        self.event_id = event_id
        super().__init__(f"Event not found: {event_id}")


# Ledger-related exceptions


class LedgerError(EventFinanceError):
    """Base exception for ledger record errors."""

    code: str = "LEDGER_ERROR"


class InconsistentRecordError(LedgerError):
    """
    Ledger record fails its amount invariant (total != subtotal + tax).

    The aggregator excludes the record and reports this error on the
    aggregates instead of raising it, so upstream data-entry bugs stay
    visible without blocking the rest of the event.
    """

    code: str = "INCONSISTENT_RECORD"

    def __init__(
        self,
        record_id: str,
        kind: str,
        subtotal: Decimal,
        tax: Decimal,
        total: Decimal,
    ):
        self.record_id = record_id
        self.kind = kind
        self.subtotal = subtotal
        self.tax = tax
        self.total = total
        super().__init__(
            f"Inconsistent {kind} record {record_id}: "
            f"subtotal {subtotal} + tax {tax} != total {total}"
        )

    @property
    def difference(self) -> Decimal:
        return self.total - (self.subtotal + self.tax)


class RecordNotFoundError(LedgerError):
    """Ledger row with given ID was not found."""

    code: str = "RECORD_NOT_FOUND"

    def __init__(self, kind: str, record_id: str):
        self.kind = kind
        self.record_id = record_id
        super().__init__(f"{kind.capitalize()} record not found: {record_id}")


class ProvisionAlreadyConvertedError(LedgerError):
    """Provision was already realised as an expense."""

    code: str = "PROVISION_ALREADY_CONVERTED"

    def __init__(self, provision_id: str, expense_id: str):
        self.provision_id = provision_id
        self.expense_id = expense_id
        super().__init__(
            f"Provision {provision_id} already converted to expense {expense_id}"
        )


# Concurrency-related exceptions


class ConcurrencyError(EventFinanceError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class ConcurrentMutationError(ConcurrencyError):
    """The event's ledger changed while it was being read."""

    code: str = "CONCURRENT_MUTATION"

    def __init__(self, event_id: str, version_before: int, version_after: int):
        self.event_id = event_id
        self.version_before = version_before
        self.version_after = version_after
        super().__init__(
            f"Ledger of event {event_id} changed during read "
            f"(version {version_before} -> {version_after})"
        )


# Accounting state exceptions


class AccountingStateError(EventFinanceError):
    """Base exception for accounting state errors."""

    code: str = "ACCOUNTING_STATE_ERROR"


class InvalidStateTransitionError(AccountingStateError):
    """Requested action is not allowed from the current accounting state."""

    code: str = "INVALID_STATE_TRANSITION"

    def __init__(self, event_id: str | None, current_state: str, action: str):
        self.event_id = event_id
        self.current_state = current_state
        self.action = action
        super().__init__(
            f"Action '{action}' not allowed from state '{current_state}'"
            + (f" for event {event_id}" if event_id else "")
        )


# Batch exceptions


class BatchError(EventFinanceError):
    """Base exception for batch recalculation errors."""

    code: str = "BATCH_ERROR"


class BatchPartialFailure(BatchError):
    """One or more per-event units of a batch recalculation failed."""

    code: str = "BATCH_PARTIAL_FAILURE"

    def __init__(
        self,
        batch_id: str,
        succeeded: int,
        failures: list[dict[str, Any]],
    ):
        self.batch_id = batch_id
        self.succeeded = succeeded
        self.failures = failures
        super().__init__(
            f"Batch {batch_id}: {len(failures)} event(s) failed, "
            f"{succeeded} succeeded"
        )
