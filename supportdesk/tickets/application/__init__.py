"""
Tickets Application Layer
=========================

Contains:
- ITicketRepository: versioned ticket store contract
- LifecycleCommitter: ticket write + audit batch as one logical unit
- TicketService: create, reply, close, assign, read
- DTOs: request validation

This layer depends on the domain layer and repository interfaces,
but not on concrete infrastructure implementations.
"""

from supportdesk.tickets.application.dto import (
    AssignRequest,
    CreateTicketRequest,
    ReplyRequest,
    validate_request,
)
from supportdesk.tickets.application.services import (
    ITicketRepository,
    LifecycleCommitter,
    TicketService,
)

__all__ = [
    # DTOs
    "AssignRequest",
    "CreateTicketRequest",
    "ReplyRequest",
    "validate_request",
    # Services
    "LifecycleCommitter",
    "TicketService",
    # Repository Interfaces
    "ITicketRepository",
]
