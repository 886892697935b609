"""
SLA Domain
==========

Pure SLA breach evaluation over a ticket's audit history.

The SLA clock starts at the most recent ASSIGNED_TO_HUMAN event, so a manual
reassignment restarts it. A breach is identified by the ticket and the
sequence number of that assignment event; that pair is the dedup key that
keeps repeated or concurrent monitor runs from recording it twice.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Optional

from supportdesk.audit.domain import AuditEvent
from supportdesk.config import AuditAction, TicketStatus
from supportdesk.tickets.domain import Ticket


def breach_dedup_key(ticket_id: str, assignment_sequence: int) -> str:
    return f"sla_breach:{ticket_id}:{assignment_sequence}"


@dataclass(frozen=True)
class SLABreach:
    """A waiting_human ticket that has outlived its SLA window."""
    ticket_id: str
    assignment_sequence: int
    assigned_at: datetime
    deadline: datetime
    sla_hours: int
    agent_id: Optional[str] = None

    @property
    def dedup_key(self) -> str:
        return breach_dedup_key(self.ticket_id, self.assignment_sequence)

    def overdue_by(self, now: datetime) -> timedelta:
        return now - self.deadline


class SLACalculator:
    """
    Pure functions for SLA calculations.

    Stateless utility class - all SLA calculation logic in one place.
    """

    @staticmethod
    def last_assignment(events: Iterable[AuditEvent]) -> Optional[AuditEvent]:
        """Most recent ASSIGNED_TO_HUMAN event (events ordered by sequence)."""
        last = None
        for event in events:
            if event.action == AuditAction.ASSIGNED_TO_HUMAN:
                last = event
        return last

    @staticmethod
    def calculate_deadline(assigned_at: datetime, sla_hours: int) -> datetime:
        return assigned_at + timedelta(hours=sla_hours)

    @classmethod
    def evaluate(
        cls,
        ticket: Ticket,
        events: Iterable[AuditEvent],
        sla_hours: int,
        now: datetime
    ) -> Optional[SLABreach]:
        """
        Breach for `ticket`, or None.

        Only waiting_human tickets with a recorded assignment can breach. The
        deadline itself is not yet a breach; the ticket must be past it.
        """
        if ticket.status != TicketStatus.WAITING_HUMAN:
            return None

        assignment = cls.last_assignment(events)
        if assignment is None or assignment.sequence is None:
            return None

        deadline = cls.calculate_deadline(assignment.timestamp, sla_hours)
        if now <= deadline:
            return None

        return SLABreach(
            ticket_id=ticket.id,
            assignment_sequence=assignment.sequence,
            assigned_at=assignment.timestamp,
            deadline=deadline,
            sla_hours=sla_hours,
            agent_id=assignment.meta.get("agent_id") or ticket.assigned_agent_id,
        )
