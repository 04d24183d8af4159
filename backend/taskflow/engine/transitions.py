"""Workflow transition validation.

Legality of a state change is a direct-edge test against the workflow's
transition set: a change is allowed when an edge leads from the current
state to the target, or a wildcard edge leads to the target. The graph is
never walked, so a multi-hop path does not make a shortcut legal.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Optional, Sequence
from uuid import UUID

NO_TRANSITIONS_MESSAGE = "No state transitions are configured for this workflow"
INVALID_TRANSITION_MESSAGE = "Invalid state transition according to workflow rules"


@dataclass(frozen=True)
class Transition:
    """A workflow edge as seen by the validator.

    Attributes:
        to_state: Target state id
        from_state: Source state id; None with ``any_state`` False means
            the edge applies to a task that has no state yet
        any_state: Wildcard edge, reachable from every state (source is None)
    """
    to_state: UUID
    from_state: Optional[UUID] = None
    any_state: bool = False

    def __post_init__(self) -> None:
        if self.any_state and self.from_state is not None:
            raise ValueError("Wildcard transitions cannot have a source state")

    @classmethod
    def wildcard(cls, to_state: UUID) -> "Transition":
        """Edge into ``to_state`` from any state."""
        return cls(to_state=to_state, any_state=True)

    def leaves(self, from_state: Optional[UUID]) -> bool:
        """Whether this edge can be taken by a task currently in ``from_state``."""
        if self.any_state:
            return True
        return self.from_state == from_state


class RejectionReason(str, Enum):
    """Why a transition was rejected."""
    NO_TRANSITIONS = "no_transitions"
    INVALID_TRANSITION = "invalid_transition"


@dataclass(frozen=True)
class TransitionVerdict:
    """Outcome of a transition check.

    Attributes:
        allowed: Whether the state change may happen
        reason: Rejection reason, None when allowed
        reachable: States a task in the source state may legally move to,
            filled on rejection for diagnostics
    """
    allowed: bool
    reason: Optional[RejectionReason] = None
    reachable: tuple[UUID, ...] = ()

    @property
    def message(self) -> Optional[str]:
        """Human-readable rejection message."""
        if self.reason is RejectionReason.NO_TRANSITIONS:
            return NO_TRANSITIONS_MESSAGE
        if self.reason is RejectionReason.INVALID_TRANSITION:
            return INVALID_TRANSITION_MESSAGE
        return None


@dataclass(frozen=True)
class WorkflowGraph:
    """Steps and edges of one workflow, loaded once per request."""
    workflow_id: UUID
    steps: tuple[UUID, ...] = ()
    transitions: tuple[Transition, ...] = field(default_factory=tuple)

    def has_step(self, state_id: Optional[UUID]) -> bool:
        """Whether ``state_id`` is usable within this workflow."""
        return state_id is not None and state_id in self.steps


def reachable_from(
    from_state: Optional[UUID],
    transitions: Iterable[Transition],
) -> list[UUID]:
    """Targets of every edge a task in ``from_state`` may take, first-seen order."""
    reachable: list[UUID] = []
    for transition in transitions:
        if transition.leaves(from_state) and transition.to_state not in reachable:
            reachable.append(transition.to_state)
    return reachable


def validate_transition(
    workflow_id: UUID,
    from_state: Optional[UUID],
    to_state: UUID,
    transitions: Sequence[Transition],
) -> TransitionVerdict:
    """Decide whether a task may move from ``from_state`` to ``to_state``.

    Callers skip the check when the state does not change; passing equal
    states is a programming error.

    Args:
        workflow_id: Workflow the transitions belong to
        from_state: Current state of the task, None if it has none
        to_state: Requested state
        transitions: All transitions of the workflow

    Returns:
        An allowed verdict, or a rejected one carrying the reachable states
    """
    if from_state == to_state:
        raise ValueError(
            f"Transition check called for an unchanged state in workflow {workflow_id}"
        )

    if not transitions:
        return TransitionVerdict(allowed=False, reason=RejectionReason.NO_TRANSITIONS)

    for transition in transitions:
        if transition.to_state == to_state and transition.leaves(from_state):
            return TransitionVerdict(allowed=True)

    return TransitionVerdict(
        allowed=False,
        reason=RejectionReason.INVALID_TRANSITION,
        reachable=tuple(reachable_from(from_state, transitions)),
    )
