import pytest

from supportdesk.config import TicketStatus
from supportdesk.core import InvalidTransitionException
from supportdesk.tickets.domain import TicketEvent, TicketStateMachine, transition

ALLOWED = {
    (TicketStatus.OPEN, TicketEvent.TRIAGE): TicketStatus.TRIAGED,
    (TicketStatus.OPEN, TicketEvent.ESCALATE): TicketStatus.WAITING_HUMAN,
    (TicketStatus.OPEN, TicketEvent.AUTO_RESOLVE): TicketStatus.RESOLVED,
    (TicketStatus.TRIAGED, TicketEvent.ESCALATE): TicketStatus.WAITING_HUMAN,
    (TicketStatus.TRIAGED, TicketEvent.AUTO_RESOLVE): TicketStatus.RESOLVED,
    (TicketStatus.WAITING_HUMAN, TicketEvent.HUMAN_RESOLVE): TicketStatus.RESOLVED,
    (TicketStatus.WAITING_HUMAN, TicketEvent.SLA_FORCE_CLOSE): TicketStatus.CLOSED,
    (TicketStatus.RESOLVED, TicketEvent.CLOSE): TicketStatus.CLOSED,
}


def test_initial_state_is_open():
    assert TicketStateMachine.initial_state() == TicketStatus.OPEN


@pytest.mark.parametrize("status", list(TicketStatus))
@pytest.mark.parametrize("event", list(TicketEvent))
def test_transition_table_is_exhaustive(status, event):
    expected = ALLOWED.get((status, event))
    if expected is None:
        with pytest.raises(InvalidTransitionException) as exc_info:
            transition(status, event)
        assert exc_info.value.details == {"current_status": status.value, "event": event.value}
    else:
        assert transition(status, event) == expected


def test_closed_is_terminal():
    assert TicketStateMachine.is_terminal(TicketStatus.CLOSED)
    assert not TicketStateMachine.is_terminal(TicketStatus.RESOLVED)
    assert TicketStateMachine.allowed_targets(TicketStatus.CLOSED) == frozenset()


def test_can_transition_by_target_status():
    assert TicketStateMachine.can_transition(TicketStatus.OPEN, TicketStatus.RESOLVED)
    assert TicketStateMachine.can_transition(TicketStatus.WAITING_HUMAN, TicketStatus.CLOSED)
    assert not TicketStateMachine.can_transition(TicketStatus.RESOLVED, TicketStatus.WAITING_HUMAN)
    assert not TicketStateMachine.can_transition(TicketStatus.CLOSED, TicketStatus.OPEN)


def test_unknown_event_is_rejected():
    with pytest.raises(InvalidTransitionException):
        transition(TicketStatus.OPEN, "reopen")
