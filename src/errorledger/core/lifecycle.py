from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from ..errors import InvalidTransition
from .policies import TERMINAL_STATUSES, ReopenPolicy, ResolutionStatus


class OperatorAction(StrEnum):
    ASSIGN = "assign"
    START = "start"
    RESOLVE = "resolve"
    IGNORE = "ignore"
    REOPEN = "reopen"


_OPEN = frozenset({ResolutionStatus.NEW, ResolutionStatus.ASSIGNED, ResolutionStatus.IN_PROGRESS})

TRANSITIONS: dict[OperatorAction, tuple[frozenset[ResolutionStatus], ResolutionStatus]] = {
    OperatorAction.ASSIGN: (_OPEN, ResolutionStatus.ASSIGNED),
    OperatorAction.START: (
        frozenset({ResolutionStatus.NEW, ResolutionStatus.ASSIGNED}),
        ResolutionStatus.IN_PROGRESS,
    ),
    OperatorAction.RESOLVE: (_OPEN, ResolutionStatus.RESOLVED),
    OperatorAction.IGNORE: (_OPEN, ResolutionStatus.IGNORED),
    OperatorAction.REOPEN: (TERMINAL_STATUSES, ResolutionStatus.NEW),
}


@dataclass(slots=True, frozen=True)
class StatusChange:
    from_status: ResolutionStatus
    to_status: ResolutionStatus
    action: str


def apply_action(current: ResolutionStatus, action: OperatorAction) -> StatusChange:
    allowed_from, target = TRANSITIONS[action]
    current = ResolutionStatus(current)
    if current not in allowed_from:
        raise InvalidTransition(current.value, action.value)
    return StatusChange(from_status=current, to_status=target, action=action.value)


def should_reopen(current: ResolutionStatus, policy: ReopenPolicy) -> bool:
    """Whether a fresh occurrence moves a closed record back to New."""
    current = ResolutionStatus(current)
    if policy == ReopenPolicy.NEVER:
        return False
    if policy == ReopenPolicy.REOPEN_ALL:
        return current in TERMINAL_STATUSES
    return current == ResolutionStatus.RESOLVED


def reopen_statuses(policy: ReopenPolicy) -> tuple[ResolutionStatus, ...]:
    return tuple(s for s in (ResolutionStatus.RESOLVED, ResolutionStatus.IGNORED) if should_reopen(s, policy))
