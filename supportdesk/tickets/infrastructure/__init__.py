"""
Tickets Infrastructure Layer
============================

Concrete ticket repositories.
"""

from supportdesk.tickets.infrastructure.repositories import (
    InMemoryTicketRepository,
    SQLAlchemyTicketRepository,
)

__all__ = [
    "InMemoryTicketRepository",
    "SQLAlchemyTicketRepository",
]
