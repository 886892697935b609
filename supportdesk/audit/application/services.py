"""
Audit Application Services
==========================

The audit log contract and the read-side service built on it.

The log is append-only: there is no update or delete anywhere in the
interface, and every read replays a ticket's history from the beginning.
"""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, List, Optional, Sequence

from supportdesk.audit.domain import AuditEvent, ConversationMessage, project_conversation

if TYPE_CHECKING:
    from supportdesk.tickets.application import ITicketRepository


# ========== Repository Interfaces (Dependency Inversion) ==========

class IAuditLog(ABC):
    """Interface for the append-only audit store."""

    @abstractmethod
    async def append(self, event: AuditEvent) -> int:
        """Append one event and return its sequence number."""

    @abstractmethod
    async def append_many(self, events: Sequence[AuditEvent]) -> List[int]:
        """
        Append events as one atomic batch.

        Either every event is stored, contiguous and in the given order, or
        none is and the call raises.
        """

    @abstractmethod
    async def append_if_absent(self, event: AuditEvent) -> Optional[int]:
        """
        Append unless an event with the same dedup_key already exists.

        Returns the new sequence number, or None when the key was taken. The
        check and the write are one atomic step.
        """

    @abstractmethod
    async def list_by_ticket(self, ticket_id: str) -> List[AuditEvent]:
        """All events for a ticket, ordered by sequence."""


# ========== Application Services ==========

class AuditService:
    """Read access to a ticket's audit trail and its conversation view."""

    def __init__(self, audit_log: IAuditLog, ticket_repository: "ITicketRepository"):
        self._audit_log = audit_log
        self._ticket_repo = ticket_repository

    async def get_audit(self, ticket_id: str) -> List[AuditEvent]:
        """
        Ordered audit history of a ticket.

        Raises:
            ResourceNotFoundException: unknown ticket
        """
        await self._ticket_repo.get(ticket_id)
        return await self._audit_log.list_by_ticket(ticket_id)

    async def get_conversation(self, ticket_id: str) -> List[ConversationMessage]:
        return project_conversation(await self.get_audit(ticket_id))
