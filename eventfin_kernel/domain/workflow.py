"""
Canonical workflow types (``eventfin_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for state machines.  The accounting-state workflow is
declared with these types; the engine that evaluates guards lives in
``eventfin_engines.accounting_workflow``.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* Terminal states have no outgoing transitions.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Guard:
    """A condition that must be satisfied before a transition fires.

    Contract: frozen, descriptive only.
    Non-goals: does not evaluate the condition -- the workflow engine does.
    """
    name: str
    description: str

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Guard name must be non-empty")


@dataclass(frozen=True)
class Transition:
    """A valid state transition in a workflow.

    ``action`` names what triggers the transition; automatic transitions are
    fired by re-evaluation, explicit ones only when the action is requested.
    """
    from_state: str
    to_state: str
    action: str
    guard: Guard | None = None


@dataclass(frozen=True)
class Workflow:
    """A state machine definition.

    Contract: frozen; ``transitions`` reference only states in ``states``.
    """
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.initial_state not in self.states:
            raise ValueError(
                f"Workflow {self.name}: initial state {self.initial_state!r} "
                "is not a declared state"
            )
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(
                    f"Workflow {self.name}: transition {t.from_state} -> "
                    f"{t.to_state} references an undeclared state"
                )
            if t.from_state in self.terminal_states:
                raise ValueError(
                    f"Workflow {self.name}: terminal state {t.from_state!r} "
                    "has an outgoing transition"
                )

    def transitions_from(
        self,
        state: str,
        action: str | None = None,
    ) -> tuple[Transition, ...]:
        """Outgoing transitions of ``state``, optionally for one action."""
        return tuple(
            t for t in self.transitions
            if t.from_state == state and (action is None or t.action == action)
        )
