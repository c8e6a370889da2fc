"""
AccountingStateService -- explicit accounting-state actions.

``signal_closing`` is the closing trigger raised by the event workflow
subsystem: it records that the event was closed and re-derives the
accounting state through a recalculation.  ``cancel`` applies the only
explicit transition, to the terminal ``cancelled`` state.

Both persist the resulting state and log ``accounting_state_changed``.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from eventfin_engines.accounting_workflow import AccountingWorkflow
from eventfin_kernel.domain.ledger import AccountingState
from eventfin_kernel.exceptions import MissingEventError
from eventfin_kernel.logging_config import LogContext, get_logger
from eventfin_kernel.models.event import EventModel
from eventfin_services.recalculation_service import RecalculationService

logger = get_logger("services.accounting_state")


class AccountingStateService:
    """Closing trigger and cancellation for business events."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        recalculation: RecalculationService,
        workflow: AccountingWorkflow | None = None,
    ):
        self._session_factory = session_factory
        self._recalculation = recalculation
        self._workflow = workflow or AccountingWorkflow()

    @staticmethod
    def _load(session: Session, event_id: UUID, for_update: bool = False) -> EventModel:
        stmt = select(EventModel).where(EventModel.id == event_id)
        if for_update:
            # Row lock serializes state writers; terminal checks run after it.
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        model = session.execute(stmt).scalar_one_or_none()
        if model is None:
            raise MissingEventError(str(event_id))
        return model

    def current_state(self, event_id: UUID) -> AccountingState:
        with self._session_factory() as session:
            return AccountingState(self._load(session, event_id).accounting_state)

    def signal_closing(self, event_id: UUID) -> AccountingState:
        """Record the closing trigger and re-derive the accounting state.

        Raises:
            MissingEventError: If the event does not exist.
        """
        with LogContext.bind(event_id=str(event_id)):
            with self._session_factory() as session, session.begin():
                model = self._load(session, event_id, for_update=True)
                already = model.closing_signalled
                model.closing_signalled = True
            if not already:
                logger.info("closing_signalled")
            self._recalculation.recalculate(event_id)
            return self.current_state(event_id)

    def cancel(self, event_id: UUID, reason: str) -> AccountingState:
        """Move the event to ``cancelled``.

        Raises:
            MissingEventError: If the event does not exist.
            InvalidStateTransitionError: If the event is paid or cancelled.
        """
        with LogContext.bind(event_id=str(event_id)):
            with self._session_factory() as session, session.begin():
                model = self._load(session, event_id, for_update=True)
                evaluation = self._workflow.cancel(
                    AccountingState(model.accounting_state), event_id,
                )
                model.accounting_state = evaluation.state.value
                model.cancellation_reason = reason
            logger.info(
                "accounting_state_changed",
                extra={
                    "previous_state": evaluation.previous,
                    "accounting_state": evaluation.state,
                    "path": [t.action for t in evaluation.path],
                    "reason": reason,
                },
            )
            return evaluation.state
