"""
Canonical workflow types (``billing_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for status state machines.  Used by the pricing,
change-order and invoice modules so that Guard, Transition and Workflow
are defined once, and so that legality of a status move is decided in
exactly one function (``require_transition``).

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``services/`` or outer layers.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* An (from_state, action) pair resolves to at most one transition.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from billing_kernel.exceptions import InvalidTransitionError


@dataclass(frozen=True)
class Guard:
    """A condition that must be satisfied before a transition fires.

    Contract: frozen, descriptive only.
    Non-goals: does not evaluate the condition -- the owning service does.
    """
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A valid state transition in a workflow."""
    from_state: str
    to_state: str
    action: str
    guard: Guard | None = None


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for an entity lifecycle.

    Contract: frozen; ``transitions`` reference only states in ``states``.
    ``terminal_states`` are states with no outgoing transitions.
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
                f"{self.name}: initial state {self.initial_state!r} not in states"
            )
        seen: set[tuple[str, str]] = set()
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(
                    f"{self.name}: transition {t.action!r} references unknown state"
                )
            key = (t.from_state, t.action)
            if key in seen:
                raise ValueError(
                    f"{self.name}: duplicate transition {t.action!r} from {t.from_state!r}"
                )
            seen.add(key)

    def find(self, from_state: str, action: str) -> Transition | None:
        for t in self.transitions:
            if t.from_state == from_state and t.action == action:
                return t
        return None

    def actions_from(self, state: str) -> tuple[str, ...]:
        """Actions available from ``state``, in declaration order."""
        return tuple(t.action for t in self.transitions if t.from_state == state)

    def transition_to(self, from_state: str, to_state: str) -> Transition | None:
        for t in self.transitions:
            if t.from_state == from_state and t.to_state == to_state:
                return t
        return None


def _state_value(state: str | Enum) -> str:
    return state.value if isinstance(state, Enum) else str(state)


def require_transition(
    workflow: Workflow,
    current_state: str | Enum,
    action: str,
    *,
    entity_type: str,
    entity_id: object,
) -> Transition:
    """
    Resolve ``action`` from ``current_state`` or raise.

    Raises:
        InvalidTransitionError: No transition exists for (state, action).
    """
    state = _state_value(current_state)
    transition = workflow.find(state, action)
    if transition is None:
        raise InvalidTransitionError(
            workflow=workflow.name,
            action=action,
            entity_type=entity_type,
            entity_id=str(entity_id),
            current_state=state,
        )
    return transition
