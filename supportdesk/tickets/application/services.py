"""
Ticket Application Services
===========================

Repository contract, the lifecycle committer, and ticket operations.

Every status change goes through the same path:

    read ticket -> state machine -> committer.commit(ticket, patch, events)

The committer writes the ticket conditionally on its version and then appends
the matching audit events as one batch. If the audit batch cannot be stored,
the ticket write is undone, so a state change never exists without its audit
record.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Sequence, Tuple
from uuid import uuid4

from supportdesk.audit.application import IAuditLog
from supportdesk.audit.domain import AuditEvent
from supportdesk.config import Actor, AuditAction, TicketCategory, TicketStatus
from supportdesk.core import (
    AuditAppendException,
    InvalidTransitionException,
    ValidationException,
)
from supportdesk.shared.infrastructure.logging import get_logger
from supportdesk.shared.infrastructure.retry import RetryPolicy, retry_on_conflict
from supportdesk.tickets.application.dto import (
    AssignRequest,
    CreateTicketRequest,
    ReplyRequest,
    validate_request,
)
from supportdesk.tickets.domain import Ticket, TicketEvent, TicketPatch, new_ticket, transition

logger = get_logger(__name__)


# ========== Repository Interfaces (Dependency Inversion) ==========

class ITicketRepository(ABC):
    """Interface for ticket data access with optimistic versioning."""

    @abstractmethod
    async def get(self, ticket_id: str) -> Ticket:
        """
        Get ticket by ID.

        Raises:
            ResourceNotFoundException: unknown ticket
        """

    @abstractmethod
    async def create(self, ticket: Ticket) -> Ticket:
        """Store a new ticket (version 1)."""

    @abstractmethod
    async def update_with_version(
        self,
        ticket_id: str,
        expected_version: int,
        patch: TicketPatch
    ) -> Ticket:
        """
        Apply `patch` only if the stored version equals `expected_version`.

        The returned ticket has version expected_version + 1.

        Raises:
            ResourceNotFoundException: unknown ticket
            ConflictException: stored version differs
        """

    @abstractmethod
    async def list(
        self,
        status: Optional[TicketStatus] = None,
        limit: int = 100,
        offset: int = 0
    ) -> List[Ticket]:
        """List tickets, newest first."""

    @abstractmethod
    async def delete(self, ticket_id: str) -> None:
        """Remove a ticket. Only used to undo a creation whose audit failed."""

    @abstractmethod
    async def count_assigned(self, agent_ids: Sequence[str]) -> Dict[str, int]:
        """Number of waiting_human tickets per agent (0 for idle agents)."""


# ========== Lifecycle Committer ==========

class LifecycleCommitter:
    """
    Commits a ticket change together with its audit events.

    Ticket write first (version-checked), then the audit batch with bounded
    retries. When the batch still fails, the ticket write is reverted and
    AuditAppendException is raised.
    """

    def __init__(
        self,
        ticket_repository: ITicketRepository,
        audit_log: IAuditLog,
        audit_retry: Optional[RetryPolicy] = None
    ):
        self._ticket_repo = ticket_repository
        self._audit_log = audit_log
        self._audit_retry = audit_retry or RetryPolicy()

    async def commit(
        self,
        ticket: Ticket,
        patch: TicketPatch,
        events: Sequence[AuditEvent]
    ) -> Tuple[Ticket, List[AuditEvent]]:
        """
        Write `patch` on top of `ticket` and record `events`.

        Args:
            ticket: The snapshot the decision was made on
            patch: Changes to apply
            events: Audit events describing the change, in order

        Returns:
            (updated ticket, stored events with sequence numbers)

        Raises:
            ConflictException: the ticket changed since `ticket` was read
            AuditAppendException: events could not be stored; ticket reverted
        """
        updated = await self._ticket_repo.update_with_version(ticket.id, ticket.version, patch)

        try:
            stored = await self._append(events)
        except Exception as e:
            await self._revert(ticket, updated, patch)
            raise AuditAppendException(
                "Audit append failed; ticket change was rolled back",
                {"ticket_id": ticket.id, "error": str(e)}
            ) from e

        return updated, stored

    async def create(self, ticket: Ticket, event: AuditEvent) -> Tuple[Ticket, AuditEvent]:
        """Store a new ticket with its creation event, deleting it if the event fails."""
        created = await self._ticket_repo.create(ticket)

        try:
            stored = await self._append([event])
        except Exception as e:
            logger.error(
                "Audit append failed for new ticket, removing it",
                extra={"ticket_id": ticket.id, "error": str(e)}
            )
            await self._ticket_repo.delete(ticket.id)
            raise AuditAppendException(
                "Audit append failed; ticket was not created",
                {"ticket_id": ticket.id, "error": str(e)}
            ) from e

        return created, stored[0]

    async def _append(self, events: Sequence[AuditEvent]) -> List[AuditEvent]:
        attempt = 1
        while True:
            try:
                sequences = await self._audit_log.append_many(events)
                return [event.with_sequence(seq) for event, seq in zip(events, sequences)]
            except Exception as e:
                if not self._audit_retry.has_attempts_left(attempt):
                    raise
                logger.warning(
                    "Audit append failed, retrying",
                    extra={"attempt": attempt, "error": str(e)}
                )
                await self._audit_retry.backoff(attempt)
                attempt += 1

    async def _revert(self, previous: Ticket, updated: Ticket, patch: TicketPatch) -> None:
        revert = TicketPatch.reverting(previous, patch)
        try:
            await self._ticket_repo.update_with_version(updated.id, updated.version, revert)
            logger.error(
                "Ticket change rolled back after audit failure",
                extra={"ticket_id": updated.id, "version": updated.version + 1}
            )
        except Exception as e:
            # Another writer got in first; state without audit is left behind
            logger.critical(
                "Failed to roll back ticket change after audit failure",
                extra={"ticket_id": updated.id, "changes": list(patch.changes()), "error": str(e)}
            )


# ========== Application Services ==========

class TicketService:
    """
    Ticket creation, replies, closing and manual assignment.

    Every mutating operation is a read-decide-commit loop retried on version
    conflicts by the configured RetryPolicy.
    """

    def __init__(
        self,
        ticket_repository: ITicketRepository,
        committer: LifecycleCommitter,
        retry_policy: Optional[RetryPolicy] = None,
        accept_followups_when_resolved: bool = True,
        max_message_length: int = 10000
    ):
        self._ticket_repo = ticket_repository
        self._committer = committer
        self._retry = retry_policy or RetryPolicy()
        self._accept_followups = accept_followups_when_resolved
        self._max_message_length = max_message_length

    async def create_ticket(
        self,
        title: str,
        description: str,
        requester: str = "anonymous",
        category: TicketCategory = TicketCategory.OTHER
    ) -> Ticket:
        """Open a new ticket and record TICKET_CREATED."""
        request = validate_request(
            CreateTicketRequest,
            title=title,
            description=description,
            requester=requester,
            category=getattr(category, "value", category),
        )

        ticket = new_ticket(
            ticket_id=str(uuid4()),
            title=request.title,
            description=request.description,
            created_by=request.requester,
            category=TicketCategory(request.category),
        )
        event = AuditEvent(
            ticket_id=ticket.id,
            action=AuditAction.TICKET_CREATED,
            actor=Actor.USER,
            meta={"title": ticket.title, "requester": ticket.created_by},
            timestamp=ticket.created_at,
        )

        created, _ = await self._committer.create(ticket, event)
        logger.info("Ticket created", extra={"ticket_id": created.id, "category": created.category.value})
        return created

    async def get_ticket(self, ticket_id: str) -> Ticket:
        return await self._ticket_repo.get(ticket_id)

    async def list_tickets(
        self,
        status: Optional[TicketStatus] = None,
        limit: int = 100,
        offset: int = 0
    ) -> List[Ticket]:
        if limit < 1 or offset < 0:
            raise ValidationException("limit must be positive and offset non-negative")
        return await self._ticket_repo.list(
            status=TicketStatus(status) if status else None, limit=limit, offset=offset
        )

    async def reply(
        self,
        ticket_id: str,
        message: str,
        actor: Actor,
        author_id: Optional[str] = None
    ) -> AuditEvent:
        """
        Record a reply on a ticket.

        Agent replies resolve a waiting_human ticket. User replies are
        comments: accepted while waiting_human, and while resolved when
        follow-ups are enabled. They never change status.

        Returns:
            The stored REPLY_SENT event

        Raises:
            ValidationException: bad message or system actor
            InvalidTransitionException: ticket is not in a status accepting this reply
            ConflictException: concurrent writers exhausted the retry budget
        """
        request = validate_request(
            ReplyRequest, message=message, actor=getattr(actor, "value", actor), author_id=author_id
        )
        if len(request.message) > self._max_message_length:
            raise ValidationException(
                f"Message too long (max {self._max_message_length} characters)",
                {"length": len(request.message)}
            )
        reply_actor = Actor(request.actor)
        if reply_actor == Actor.SYSTEM:
            raise ValidationException("Replies must come from an agent or a user")

        async def attempt() -> AuditEvent:
            ticket = await self._ticket_repo.get(ticket_id)
            patch = self._reply_patch(ticket, reply_actor)

            meta = {"message": request.message}
            if request.author_id:
                meta["author_id"] = request.author_id
            event = AuditEvent(
                ticket_id=ticket.id,
                action=AuditAction.REPLY_SENT,
                actor=reply_actor,
                meta=meta,
            )

            # An empty patch still bumps the version, ordering the comment
            # against any concurrent status change
            updated, stored = await self._committer.commit(ticket, patch, [event])
            logger.info(
                "Reply recorded",
                extra={"ticket_id": ticket.id, "actor": reply_actor.value, "status": updated.status.value}
            )
            return stored[0]

        return await retry_on_conflict(self._retry, attempt, name="reply", ticket_id=ticket_id)

    def _reply_patch(self, ticket: Ticket, actor: Actor) -> TicketPatch:
        if actor == Actor.AGENT:
            return TicketPatch(status=transition(ticket.status, TicketEvent.HUMAN_RESOLVE))

        accepts_comment = ticket.status == TicketStatus.WAITING_HUMAN or (
            ticket.status == TicketStatus.RESOLVED and self._accept_followups
        )
        if not accepts_comment:
            raise InvalidTransitionException(ticket.status, "user_reply")
        return TicketPatch()

    async def close_ticket(self, ticket_id: str, actor: Actor = Actor.AGENT) -> Ticket:
        """Close a resolved ticket and record TICKET_CLOSED."""
        close_actor = Actor(actor)

        async def attempt() -> Ticket:
            ticket = await self._ticket_repo.get(ticket_id)
            patch = TicketPatch(status=transition(ticket.status, TicketEvent.CLOSE))
            event = AuditEvent(
                ticket_id=ticket.id,
                action=AuditAction.TICKET_CLOSED,
                actor=close_actor,
                meta={"previous_status": ticket.status.value, "reason": "manual"},
            )
            updated, _ = await self._committer.commit(ticket, patch, [event])
            logger.info("Ticket closed", extra={"ticket_id": ticket.id, "actor": close_actor.value})
            return updated

        return await retry_on_conflict(self._retry, attempt, name="close_ticket", ticket_id=ticket_id)

    async def assign_ticket(
        self,
        ticket_id: str,
        agent_id: str,
        actor: Actor = Actor.AGENT
    ) -> Ticket:
        """
        Hand a waiting_human ticket to a specific agent.

        Records ASSIGNED_TO_HUMAN, which restarts the ticket's SLA clock.
        """
        request = validate_request(AssignRequest, agent_id=agent_id, actor=getattr(actor, "value", actor))

        async def attempt() -> Ticket:
            ticket = await self._ticket_repo.get(ticket_id)
            if ticket.status != TicketStatus.WAITING_HUMAN:
                raise InvalidTransitionException(ticket.status, "assign")

            patch = TicketPatch(assigned_agent_id=request.agent_id)
            event = AuditEvent(
                ticket_id=ticket.id,
                action=AuditAction.ASSIGNED_TO_HUMAN,
                actor=Actor(request.actor),
                meta={
                    "agent_id": request.agent_id,
                    "previous_agent_id": ticket.assigned_agent_id,
                    "reason": "manual",
                },
            )
            updated, _ = await self._committer.commit(ticket, patch, [event])
            logger.info("Ticket reassigned", extra={"ticket_id": ticket.id, "agent_id": request.agent_id})
            return updated

        return await retry_on_conflict(self._retry, attempt, name="assign_ticket", ticket_id=ticket_id)
