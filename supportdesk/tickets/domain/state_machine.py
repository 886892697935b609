"""
Ticket State Machine
====================

Pure transition function for the ticket lifecycle.

    open          -> triaged | waiting_human | resolved   (triage decision)
    triaged       -> waiting_human | resolved
    waiting_human -> resolved                             (human reply)
    resolved      -> closed                               (manual or timeout close)
    waiting_human -> closed                               (SLA forced close)

Every writer (triage engine, reply handling, SLA monitor) asks this module for
the next status; nothing writes a status it did not get from here.
"""

from enum import Enum

from supportdesk.config import TicketStatus
from supportdesk.core import InvalidTransitionException


class TicketEvent(str, Enum):
    """Things that can happen to a ticket."""
    TRIAGE = "triage"
    ESCALATE = "escalate"
    AUTO_RESOLVE = "auto_resolve"
    HUMAN_RESOLVE = "human_resolve"
    CLOSE = "close"
    SLA_FORCE_CLOSE = "sla_force_close"


# ========== Transition Table ==========

_TRANSITIONS: dict[tuple[TicketStatus, TicketEvent], TicketStatus] = {
    (TicketStatus.OPEN, TicketEvent.TRIAGE): TicketStatus.TRIAGED,
    (TicketStatus.OPEN, TicketEvent.ESCALATE): TicketStatus.WAITING_HUMAN,
    (TicketStatus.OPEN, TicketEvent.AUTO_RESOLVE): TicketStatus.RESOLVED,
    (TicketStatus.TRIAGED, TicketEvent.ESCALATE): TicketStatus.WAITING_HUMAN,
    (TicketStatus.TRIAGED, TicketEvent.AUTO_RESOLVE): TicketStatus.RESOLVED,
    (TicketStatus.WAITING_HUMAN, TicketEvent.HUMAN_RESOLVE): TicketStatus.RESOLVED,
    (TicketStatus.WAITING_HUMAN, TicketEvent.SLA_FORCE_CLOSE): TicketStatus.CLOSED,
    (TicketStatus.RESOLVED, TicketEvent.CLOSE): TicketStatus.CLOSED,
}

_ALLOWED: dict[TicketStatus, frozenset[TicketStatus]] = {
    status: frozenset(
        target for (source, _event), target in _TRANSITIONS.items() if source == status
    )
    for status in TicketStatus
}


class TicketStateMachine:
    """Validate and compute ticket lifecycle transitions."""

    _TRANSITIONS = _TRANSITIONS
    _ALLOWED = _ALLOWED

    @classmethod
    def initial_state(cls) -> TicketStatus:
        return TicketStatus.OPEN

    @classmethod
    def transition(cls, current: TicketStatus, event: TicketEvent) -> TicketStatus:
        """
        Next status for `event` applied in `current`.

        Raises:
            InvalidTransitionException: the pair is not in the transition graph
        """
        try:
            return cls._TRANSITIONS[(TicketStatus(current), TicketEvent(event))]
        except (KeyError, ValueError):
            raise InvalidTransitionException(current, event) from None

    @classmethod
    def can_transition(cls, current: TicketStatus, new: TicketStatus) -> bool:
        return new in cls._ALLOWED.get(current, frozenset())

    @classmethod
    def allowed_targets(cls, current: TicketStatus) -> frozenset[TicketStatus]:
        return cls._ALLOWED.get(current, frozenset())

    @classmethod
    def is_terminal(cls, status: TicketStatus) -> bool:
        return not cls._ALLOWED.get(status)


def transition(current: TicketStatus, event: TicketEvent) -> TicketStatus:
    """Module-level shorthand for TicketStateMachine.transition."""
    return TicketStateMachine.transition(current, event)
