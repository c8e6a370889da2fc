"""
Accounting Workflow - derive an event's accounting state.

The state machine is declared with the kernel's ``Workflow`` /
``Transition`` / ``Guard`` value objects; this module evaluates the guards
against ``AccountingFacts`` gathered by the services layer.

    open --close--> pending_review --invoice--> awaiting_payment --collect--> paid
      \\_______________ overdue (any state but paid/cancelled) ______/
    any state but paid/cancelled --cancel--> cancelled

Automatic transitions fire repeatedly until none applies, so an event
closed with every income already invoiced reaches ``awaiting_payment``
in a single evaluation.  ``overdue`` takes precedence while a payment
commitment is past due; once cleared the state is re-derived from the
facts.  ``cancelled`` and ``paid`` are terminal; ``cancel`` is the only
explicit action.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from uuid import UUID

from eventfin_engines.status import CollectionStatus
from eventfin_engines.tracer import traced_engine
from eventfin_kernel.domain.ledger import AccountingState
from eventfin_kernel.domain.workflow import Guard, Transition, Workflow
from eventfin_kernel.exceptions import InvalidStateTransitionError
from eventfin_kernel.logging_config import get_logger

logger = get_logger("engines.accounting_workflow")


@dataclass(frozen=True)
class AccountingFacts:
    """Inputs for guard evaluation."""

    closing_signalled: bool
    income_count: int
    uninvoiced_income_count: int
    collection_status: CollectionStatus
    has_overdue: bool


@dataclass(frozen=True)
class StateEvaluation:
    """Result of evaluating the workflow for one event."""

    previous: AccountingState
    state: AccountingState
    path: tuple[Transition, ...] = ()

    @property
    def changed(self) -> bool:
        return self.previous != self.state


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

CLOSING_SIGNALLED = Guard(
    name="closing_signalled",
    description="Closing trigger fired and the event has income to review",
)
ALL_INCOMES_INVOICED = Guard(
    name="all_incomes_invoiced",
    description="Every income carries an invoice reference",
)
FULLY_COLLECTED = Guard(
    name="fully_collected",
    description="Collection status is fully collected",
)
COMMITMENT_PAST_DUE = Guard(
    name="commitment_past_due",
    description="An unsettled income or expense is past its committed payment date",
)
NO_COMMITMENT_PAST_DUE = Guard(
    name="no_commitment_past_due",
    description="No payment commitment is past due any more",
)

_GUARD_PREDICATES: dict[str, Callable[[AccountingFacts], bool]] = {
    CLOSING_SIGNALLED.name: lambda f: f.closing_signalled and f.income_count > 0,
    ALL_INCOMES_INVOICED.name: lambda f: (
        f.income_count > 0 and f.uninvoiced_income_count == 0
    ),
    FULLY_COLLECTED.name: lambda f: (
        f.collection_status == CollectionStatus.FULLY_COLLECTED
    ),
    COMMITMENT_PAST_DUE.name: lambda f: f.has_overdue,
    NO_COMMITMENT_PAST_DUE.name: lambda f: not f.has_overdue,
}

# -----------------------------------------------------------------------------
# Workflow definition
# -----------------------------------------------------------------------------

ACTION_CLOSE = "close"
ACTION_INVOICE = "invoice"
ACTION_COLLECT = "collect"
ACTION_FLAG_OVERDUE = "flag_overdue"
ACTION_CLEAR_OVERDUE = "clear_overdue"
ACTION_CANCEL = "cancel"

_AUTOMATIC_ACTIONS = (ACTION_CLOSE, ACTION_INVOICE, ACTION_COLLECT)

_S = AccountingState
_CANCELLABLE = (_S.OPEN, _S.PENDING_REVIEW, _S.AWAITING_PAYMENT, _S.OVERDUE)

ACCOUNTING_WORKFLOW = Workflow(
    name="event_accounting",
    description="Accounting lifecycle of a business event",
    initial_state=_S.OPEN.value,
    states=tuple(s.value for s in AccountingState),
    transitions=(
        Transition(_S.OPEN.value, _S.PENDING_REVIEW.value, action=ACTION_CLOSE,
                   guard=CLOSING_SIGNALLED),
        Transition(_S.PENDING_REVIEW.value, _S.AWAITING_PAYMENT.value,
                   action=ACTION_INVOICE, guard=ALL_INCOMES_INVOICED),
        Transition(_S.AWAITING_PAYMENT.value, _S.PAID.value, action=ACTION_COLLECT,
                   guard=FULLY_COLLECTED),
        *(
            Transition(s.value, _S.OVERDUE.value, action=ACTION_FLAG_OVERDUE,
                       guard=COMMITMENT_PAST_DUE)
            for s in (_S.OPEN, _S.PENDING_REVIEW, _S.AWAITING_PAYMENT)
        ),
        Transition(_S.OVERDUE.value, _S.OPEN.value, action=ACTION_CLEAR_OVERDUE,
                   guard=NO_COMMITMENT_PAST_DUE),
        *(
            Transition(s.value, _S.CANCELLED.value, action=ACTION_CANCEL)
            for s in _CANCELLABLE
        ),
    ),
    terminal_states=(_S.PAID.value, _S.CANCELLED.value),
)


class AccountingWorkflow:
    """Evaluates ``ACCOUNTING_WORKFLOW`` against accounting facts."""

    def __init__(self, workflow: Workflow = ACCOUNTING_WORKFLOW):
        self.workflow = workflow

    def _guard_holds(self, transition: Transition, facts: AccountingFacts) -> bool:
        if transition.guard is None:
            return True
        predicate = _GUARD_PREDICATES.get(transition.guard.name)
        if predicate is None:
            raise ValueError(f"No predicate registered for guard {transition.guard.name!r}")
        return predicate(facts)

    def _fire(
        self,
        state: str,
        action: str,
        facts: AccountingFacts,
    ) -> Transition | None:
        for transition in self.workflow.transitions_from(state, action):
            if self._guard_holds(transition, facts):
                return transition
        return None

    def _advance(self, state: str, facts: AccountingFacts) -> list[Transition]:
        """Fire automatic transitions until none applies."""
        path: list[Transition] = []
        # Each automatic transition moves strictly forward, so this terminates
        while True:
            step = None
            for action in _AUTOMATIC_ACTIONS:
                step = self._fire(state, action, facts)
                if step is not None:
                    break
            if step is None:
                return path
            path.append(step)
            state = step.to_state

    @traced_engine("accounting_workflow", "1.0", fingerprint_fields=("current", "facts"))
    def evaluate(
        self,
        current: AccountingState,
        facts: AccountingFacts,
    ) -> StateEvaluation:
        """Derive the state an event should be in given ``facts``."""
        current = AccountingState(current)
        if current.value in self.workflow.terminal_states:
            return StateEvaluation(previous=current, state=current)

        path: list[Transition] = []
        state = current.value

        flag = self._fire(state, ACTION_FLAG_OVERDUE, facts)
        if flag is not None:
            path.append(flag)
            state = flag.to_state
        elif state == _S.OVERDUE.value:
            clear = self._fire(state, ACTION_CLEAR_OVERDUE, facts)
            if clear is not None:
                path.append(clear)
                state = clear.to_state

        if state != _S.OVERDUE.value:
            path.extend(self._advance(state, facts))
            if path:
                state = path[-1].to_state

        return StateEvaluation(
            previous=current,
            state=AccountingState(state),
            path=tuple(path),
        )

    def cancel(
        self,
        current: AccountingState,
        event_id: UUID | None = None,
    ) -> StateEvaluation:
        """
        Apply the explicit ``cancel`` action.

        Raises:
            InvalidStateTransitionError: If ``current`` is paid or cancelled.
        """
        current = AccountingState(current)
        transitions = self.workflow.transitions_from(current.value, ACTION_CANCEL)
        if not transitions:
            raise InvalidStateTransitionError(
                str(event_id) if event_id else None, current.value, ACTION_CANCEL,
            )
        return StateEvaluation(
            previous=current,
            state=AccountingState(transitions[0].to_state),
            path=transitions[:1],
        )
