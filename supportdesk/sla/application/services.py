"""
SLA Application Services
=========================

The SLA monitor: a periodic pass over tickets waiting for a human.

For each waiting_human ticket past its SLA window the monitor records one
SLA_BREACH event per assignment (deduplicated by the audit log, not by a
lock), escalates newly recorded breaches, and optionally force-closes the
ticket. Nothing here is allowed to take the process down: per-ticket errors
are logged and skipped, and the next tick tries again.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Dict, List, Optional
from uuid import uuid4

from supportdesk.audit.application import IAuditLog
from supportdesk.audit.domain import AuditEvent
from supportdesk.config import Actor, AuditAction, TicketStatus
from supportdesk.policy.application import PolicySnapshotCache
from supportdesk.shared.infrastructure.logging import get_context_logger, get_logger
from supportdesk.shared.infrastructure.retry import RetryPolicy, retry_on_conflict
from supportdesk.sla.domain import SLABreach, SLACalculator
from supportdesk.tickets.application import ITicketRepository, LifecycleCommitter
from supportdesk.tickets.domain import Ticket, TicketEvent, TicketPatch, transition

logger = get_logger(__name__)


# ========== Interfaces ==========

class IEscalationNotifier(ABC):
    """Where newly recorded breaches are escalated (e.g. Slack)."""

    @abstractmethod
    async def notify_breach(self, breach: SLABreach, ticket: Ticket) -> bool:
        """Send the escalation; True when delivered."""


# ========== Application Services ==========

class SLAMonitor:
    """
    Evaluates waiting_human tickets against the current SLA policy.

    Safe to run concurrently with itself and with replies: breach recording
    is an atomic append-if-absent, and force closes go through the versioned
    committer.
    """

    def __init__(
        self,
        ticket_repository: ITicketRepository,
        audit_log: IAuditLog,
        policy_cache: PolicySnapshotCache,
        committer: Optional[LifecycleCommitter] = None,
        notifier: Optional[IEscalationNotifier] = None,
        force_close_enabled: bool = False,
        retry_policy: Optional[RetryPolicy] = None,
        page_size: int = 200
    ):
        if force_close_enabled and committer is None:
            raise ValueError("force close requires a committer")

        self._ticket_repo = ticket_repository
        self._audit_log = audit_log
        self._policy_cache = policy_cache
        self._committer = committer
        self._notifier = notifier
        self._force_close_enabled = force_close_enabled
        self._retry = retry_policy or RetryPolicy()
        self._page_size = page_size

    async def _waiting_tickets(self) -> List[Ticket]:
        tickets: List[Ticket] = []
        offset = 0
        while True:
            page = await self._ticket_repo.list(
                status=TicketStatus.WAITING_HUMAN, limit=self._page_size, offset=offset
            )
            tickets.extend(page)
            if len(page) < self._page_size:
                return tickets
            offset += self._page_size

    async def run_once(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """
        One evaluation pass.

        Args:
            now: Evaluation time (UTC); defaults to the current time

        Returns:
            Summary counters for the run
        """
        now = now or datetime.now(timezone.utc)
        run_logger = get_context_logger(__name__, f"sla-run-{uuid4()}")

        policy = await self._policy_cache.get()
        tickets = await self._waiting_tickets()

        summary = {
            "evaluated": 0,
            "breached": 0,
            "recorded": 0,
            "notified": 0,
            "force_closed": 0,
            "errors": 0,
        }

        for ticket in tickets:
            summary["evaluated"] += 1
            try:
                await self._evaluate_ticket(ticket, policy.sla_hours, policy.version, now, summary)
            except Exception as e:
                summary["errors"] += 1
                run_logger.error(
                    "SLA evaluation failed for ticket",
                    extra={"ticket_id": ticket.id, "error": str(e)},
                    exc_info=True
                )

        run_logger.info("SLA evaluation completed", extra={**summary, "sla_hours": policy.sla_hours})
        return summary

    async def _evaluate_ticket(
        self,
        ticket: Ticket,
        sla_hours: int,
        policy_version: int,
        now: datetime,
        summary: Dict[str, int]
    ) -> None:
        events = await self._audit_log.list_by_ticket(ticket.id)
        breach = SLACalculator.evaluate(ticket, events, sla_hours, now)
        if breach is None:
            return

        summary["breached"] += 1
        sequence = await self._audit_log.append_if_absent(
            AuditEvent(
                ticket_id=ticket.id,
                action=AuditAction.SLA_BREACH,
                actor=Actor.SYSTEM,
                meta={
                    "assignment_sequence": breach.assignment_sequence,
                    "assigned_at": breach.assigned_at.isoformat(),
                    "deadline": breach.deadline.isoformat(),
                    "sla_hours": sla_hours,
                    "agent_id": breach.agent_id,
                    "policy_version": policy_version,
                },
                timestamp=now,
                dedup_key=breach.dedup_key,
            )
        )

        if sequence is not None:
            summary["recorded"] += 1
            logger.warning(
                "SLA breach recorded",
                extra={
                    "ticket_id": ticket.id,
                    "agent_id": breach.agent_id,
                    "overdue_seconds": int(breach.overdue_by(now).total_seconds()),
                }
            )
            if await self._notify(breach, ticket):
                summary["notified"] += 1

        if self._force_close_enabled and await self._force_close(ticket.id, breach):
            summary["force_closed"] += 1

    async def _notify(self, breach: SLABreach, ticket: Ticket) -> bool:
        if self._notifier is None:
            return False
        try:
            return await self._notifier.notify_breach(breach, ticket)
        except Exception as e:
            logger.error(
                "SLA escalation failed",
                extra={"ticket_id": ticket.id, "error": str(e)}
            )
            return False

    async def _force_close(self, ticket_id: str, breach: SLABreach) -> bool:
        async def attempt() -> bool:
            ticket = await self._ticket_repo.get(ticket_id)
            if ticket.status != TicketStatus.WAITING_HUMAN:
                return False

            patch = TicketPatch(status=transition(ticket.status, TicketEvent.SLA_FORCE_CLOSE))
            event = AuditEvent(
                ticket_id=ticket.id,
                action=AuditAction.TICKET_CLOSED,
                actor=Actor.SYSTEM,
                meta={
                    "previous_status": ticket.status.value,
                    "reason": "sla_breach",
                    "breach_key": breach.dedup_key,
                },
            )
            await self._committer.commit(ticket, patch, [event])
            logger.warning("Ticket force-closed after SLA breach", extra={"ticket_id": ticket.id})
            return True

        return await retry_on_conflict(self._retry, attempt, name="sla_force_close", ticket_id=ticket_id)
