"""
Module: eventfin_kernel.db.listeners
Responsibility: ORM event listeners that keep ``EventModel.ledger_version``
    in step with the event's ledger rows.

Every flush that inserts, modifies or deletes an income, expense or
provision row increments the owning event's ``ledger_version`` exactly
once, inside the same flush (and therefore the same transaction).
Snapshot caches and torn-read detection compare this counter, so any
ledger mutation invalidates previously computed snapshots.

Registration is idempotent; ``unregister_ledger_listeners`` is for tests.
"""

from uuid import UUID

from sqlalchemy import event
from sqlalchemy.orm import Session

from eventfin_kernel.logging_config import get_logger

logger = get_logger("db.listeners")


def _ledger_event_ids(session: Session) -> set[UUID]:
    from eventfin_kernel.models.ledger import LedgerRowMixin

    event_ids: set[UUID] = set()
    for obj in session.new:
        if isinstance(obj, LedgerRowMixin) and obj.event_id is not None:
            event_ids.add(obj.event_id)
    for obj in session.dirty:
        if isinstance(obj, LedgerRowMixin) and session.is_modified(obj):
            event_ids.add(obj.event_id)
    for obj in session.deleted:
        if isinstance(obj, LedgerRowMixin):
            event_ids.add(obj.event_id)
    return event_ids


def _bump_ledger_version_before_flush(session, flush_context, instances):
    """Increment ledger_version of every event whose ledger rows changed."""
    from eventfin_kernel.models.event import EventModel

    event_ids = _ledger_event_ids(session)
    if not event_ids:
        return

    pending_events = {
        obj.id: obj for obj in session.new if isinstance(obj, EventModel)
    }

    with session.no_autoflush:
        for event_id in event_ids:
            event_model = pending_events.get(event_id) or session.get(
                EventModel, event_id,
            )
            if event_model is None:
                # FK violation surfaces from the flush itself
                continue
            event_model.ledger_version = (event_model.ledger_version or 0) + 1
            logger.debug(
                "ledger_version_bumped",
                extra={
                    "event_id": str(event_id),
                    "ledger_version": event_model.ledger_version,
                },
            )


def register_ledger_listeners() -> None:
    """Register the ledger-version listener on all sessions (idempotent)."""
    if not event.contains(Session, "before_flush", _bump_ledger_version_before_flush):
        event.listen(Session, "before_flush", _bump_ledger_version_before_flush)


def unregister_ledger_listeners() -> None:
    """Remove the ledger-version listener. FOR TESTING ONLY."""
    if event.contains(Session, "before_flush", _bump_ledger_version_before_flush):
        event.remove(Session, "before_flush", _bump_ledger_version_before_flush)
