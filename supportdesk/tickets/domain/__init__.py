"""
Tickets Domain Layer
====================

Contains:
- Entities: Ticket snapshots and the patches that produce new ones
- State machine: the only authority on status changes

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from supportdesk.tickets.domain.entities import UNSET, Ticket, TicketPatch, new_ticket
from supportdesk.tickets.domain.state_machine import (
    TicketEvent,
    TicketStateMachine,
    transition,
)

__all__ = [
    # Entities
    "Ticket",
    "TicketPatch",
    "UNSET",
    "new_ticket",
    # State machine
    "TicketEvent",
    "TicketStateMachine",
    "transition",
]
