"""
Triage Application Services
============================

Turns a ticket plus the classifier's output into one committed decision.

    triage(ticket_id)
      -> read ticket (NO_OP unless open/triaged)
      -> classify once, bounded by a timeout (failure = no classification)
      -> [shielded] read policy snapshot, decide, commit with version check
         (re-read and re-decide on conflict, same classification)

Once the classifier has returned, the commit phase runs to completion even if
the caller stops waiting.
"""

import asyncio
import functools
import itertools
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Sequence, Set, Tuple
from uuid import uuid4

from supportdesk.audit.domain import AuditEvent
from supportdesk.config import Actor, AuditAction, TicketStatus
from supportdesk.core import ClassifierUnavailableException, ResourceNotFoundException
from supportdesk.policy.application import PolicySnapshotCache
from supportdesk.policy.domain import PolicyConfig
from supportdesk.shared.infrastructure.logging import get_context_logger, get_logger, log_latency
from supportdesk.shared.infrastructure.retry import RetryPolicy, retry_on_conflict
from supportdesk.tickets.application import ITicketRepository, LifecycleCommitter
from supportdesk.tickets.domain import UNSET, Ticket, TicketEvent, TicketPatch, transition
from supportdesk.triage.domain import (
    ClassificationResult,
    Suggestion,
    TriageDecision,
    TriageOutcome,
    decide,
)

logger = get_logger(__name__)


# ========== Interfaces ==========

class IClassifier(ABC):
    """The classifier capability: one method, swappable in tests."""

    @abstractmethod
    async def classify(self, title: str, description: str) -> ClassificationResult:
        """Propose a category, a draft reply and a confidence for a ticket."""


class ISuggestionStore(ABC):
    """Interface for the latest suggestion per ticket."""

    @abstractmethod
    async def save(self, suggestion: Suggestion) -> None:
        """Store (replace) the suggestion for its ticket."""

    @abstractmethod
    async def get(self, ticket_id: str) -> Optional[Suggestion]:
        """Latest suggestion, or None."""


class IAgentSelector(ABC):
    """Chooses which human agent gets an escalated ticket."""

    @abstractmethod
    async def select(self, ticket: Ticket) -> Optional[str]:
        """Agent ID, or None when no agent is configured."""


# ========== Agent Selection ==========

class RoundRobinAgentSelector(IAgentSelector):
    """Cycles through agents in configuration order."""

    def __init__(self, agent_ids: Sequence[str]):
        self._agent_ids = list(agent_ids)
        self._cycle = itertools.cycle(self._agent_ids)
        self._lock = threading.Lock()

    async def select(self, ticket: Ticket) -> Optional[str]:
        if not self._agent_ids:
            return None
        with self._lock:
            return next(self._cycle)


class LeastLoadedAgentSelector(IAgentSelector):
    """Agent with the fewest waiting_human tickets; ties go to configuration order."""

    def __init__(self, agent_ids: Sequence[str], ticket_repository: ITicketRepository):
        self._agent_ids = list(agent_ids)
        self._ticket_repo = ticket_repository

    async def select(self, ticket: Ticket) -> Optional[str]:
        if not self._agent_ids:
            return None
        counts = await self._ticket_repo.count_assigned(self._agent_ids)
        return min(self._agent_ids, key=lambda agent_id: counts.get(agent_id, 0))


def build_agent_selector(
    strategy: str,
    agent_ids: Sequence[str],
    ticket_repository: ITicketRepository
) -> IAgentSelector:
    if strategy == "round_robin":
        return RoundRobinAgentSelector(agent_ids)
    return LeastLoadedAgentSelector(agent_ids, ticket_repository)


# ========== Classifier Guard ==========

class GuardedClassifier:
    """
    Bounds a classifier call with a timeout and normalises its failures.

    Any timeout or error surfaces as ClassifierUnavailableException.
    """

    def __init__(self, classifier: IClassifier, timeout_seconds: float = 10.0):
        self._classifier = classifier
        self._timeout = timeout_seconds

    async def classify(self, ticket: Ticket) -> ClassificationResult:
        try:
            with log_latency(logger, "classifier_call", ticket_id=ticket.id):
                return await asyncio.wait_for(
                    self._classifier.classify(ticket.title, ticket.description),
                    timeout=self._timeout,
                )
        except asyncio.TimeoutError as e:
            raise ClassifierUnavailableException(
                f"timed out after {self._timeout}s", {"ticket_id": ticket.id}
            ) from e
        except ClassifierUnavailableException:
            raise
        except Exception as e:
            raise ClassifierUnavailableException(
                str(e) or type(e).__name__, {"ticket_id": ticket.id}
            ) from e


# ========== Application Services ==========

@dataclass(frozen=True)
class TriageResult:
    """What triage did and the ticket as it stands afterwards."""
    outcome: TriageOutcome
    ticket: Ticket
    suggestion: Optional[Suggestion] = None

    def to_dict(self) -> dict:
        return {
            "outcome": self.outcome.value,
            "ticket": self.ticket.to_dict(),
            "suggestion": self.suggestion.to_dict() if self.suggestion else None,
        }


class TriageEngine:
    """
    Orchestrates classifier call, policy decision, state transition and audit.

    Guarantees one committed decision per ticket: concurrent callers that
    lose the version race re-read the ticket and return NO_OP.
    """

    def __init__(
        self,
        ticket_repository: ITicketRepository,
        committer: LifecycleCommitter,
        policy_cache: PolicySnapshotCache,
        classifier: IClassifier,
        agent_selector: Optional[IAgentSelector] = None,
        suggestion_store: Optional[ISuggestionStore] = None,
        retry_policy: Optional[RetryPolicy] = None,
        classifier_timeout_seconds: float = 10.0,
        auto_close_target: TicketStatus = TicketStatus.RESOLVED
    ):
        self._ticket_repo = ticket_repository
        self._committer = committer
        self._policy_cache = policy_cache
        self._classifier = GuardedClassifier(classifier, classifier_timeout_seconds)
        self._agent_selector = agent_selector
        self._suggestions = suggestion_store
        self._retry = retry_policy or RetryPolicy()
        self._auto_close_target = TicketStatus(auto_close_target)
        self._inflight: Set[asyncio.Task] = set()

    async def triage(self, ticket_id: str) -> TriageResult:
        """
        Triage a ticket.

        Returns:
            TriageResult with AUTO_CLOSED, ASSIGNED_TO_HUMAN, or NO_OP when the
            ticket is already past triage

        Raises:
            ResourceNotFoundException: unknown ticket
            ConflictException: retry budget exhausted by concurrent writers
            AuditAppendException: audit log unavailable, decision rolled back
        """
        ticket = await self._ticket_repo.get(ticket_id)
        if not ticket.awaiting_triage:
            logger.info("Triage skipped", extra={"ticket_id": ticket_id, "status": ticket.status.value})
            return TriageResult(TriageOutcome.NO_OP, ticket)

        classification = await self._classify(ticket)
        suggestion = None
        if classification is not None:
            suggestion = Suggestion.from_classification(ticket.id, classification)
            if self._suggestions is not None:
                await self._suggestions.save(suggestion)

        # Past this point the decision completes even if the caller goes away
        task = asyncio.ensure_future(self._decide_and_commit(ticket_id, classification, suggestion))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            task.add_done_callback(functools.partial(self._log_detached_failure, ticket_id))
            raise

    @staticmethod
    def _log_detached_failure(ticket_id: str, task: asyncio.Task) -> None:
        # Nobody awaits the commit any more; its outcome only reaches the log
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(
                "Triage commit failed after caller cancelled",
                extra={"ticket_id": ticket_id, "error": str(error), "error_type": type(error).__name__}
            )

    async def _classify(self, ticket: Ticket) -> Optional[ClassificationResult]:
        try:
            return await self._classifier.classify(ticket)
        except ClassifierUnavailableException as e:
            logger.warning(
                "Classifier unavailable, falling back to human assignment",
                extra={"ticket_id": ticket.id, "error": e.message}
            )
            return None

    async def _decide_and_commit(
        self,
        ticket_id: str,
        classification: Optional[ClassificationResult],
        suggestion: Optional[Suggestion]
    ) -> TriageResult:
        async def attempt() -> TriageResult:
            ticket = await self._ticket_repo.get(ticket_id)
            if not ticket.awaiting_triage:
                return TriageResult(TriageOutcome.NO_OP, ticket, suggestion)

            policy = await self._policy_cache.get()
            decision = decide(policy, classification)
            decision_id = str(uuid4())
            ctx_logger = get_context_logger(__name__, decision_id)

            if decision.outcome == TriageOutcome.AUTO_CLOSED:
                patch, events = self._auto_close(ticket, classification, policy, decision, decision_id)
            else:
                agent_id = await self._select_agent(ticket)
                patch, events = self._assign(ticket, classification, policy, decision, decision_id, agent_id)

            updated, _ = await self._committer.commit(ticket, patch, events)
            ctx_logger.info(
                "Ticket triaged",
                extra={
                    "ticket_id": ticket_id,
                    "outcome": decision.outcome.value,
                    "reason": decision.reason.value,
                    "status": updated.status.value,
                    "policy_version": decision.policy_version,
                }
            )
            return TriageResult(decision.outcome, updated, suggestion)

        return await retry_on_conflict(self._retry, attempt, name="triage", ticket_id=ticket_id)

    def _auto_close(
        self,
        ticket: Ticket,
        classification: ClassificationResult,
        policy: PolicyConfig,
        decision: TriageDecision,
        decision_id: str
    ) -> Tuple[TicketPatch, List[AuditEvent]]:
        status = transition(ticket.status, TicketEvent.AUTO_RESOLVE)
        if self._auto_close_target == TicketStatus.CLOSED:
            status = transition(status, TicketEvent.CLOSE)

        patch = TicketPatch(status=status, category=classification.predicted_category)
        events = [
            AuditEvent(
                ticket_id=ticket.id,
                action=AuditAction.REPLY_SENT,
                actor=Actor.SYSTEM,
                meta={"message": classification.draft_reply, "decision_id": decision_id},
            ),
            AuditEvent(
                ticket_id=ticket.id,
                action=AuditAction.AUTO_CLOSED,
                actor=Actor.SYSTEM,
                meta={
                    "decision_id": decision_id,
                    "confidence": classification.confidence,
                    "threshold": policy.confidence_threshold,
                    "predicted_category": classification.predicted_category.value,
                    "final_status": status.value,
                    "policy_version": decision.policy_version,
                },
            ),
        ]
        return patch, events

    def _assign(
        self,
        ticket: Ticket,
        classification: Optional[ClassificationResult],
        policy: PolicyConfig,
        decision: TriageDecision,
        decision_id: str,
        agent_id: Optional[str]
    ) -> Tuple[TicketPatch, List[AuditEvent]]:
        patch = TicketPatch(
            status=transition(ticket.status, TicketEvent.ESCALATE),
            assigned_agent_id=agent_id,
            category=classification.predicted_category if classification else UNSET,
        )
        event = AuditEvent(
            ticket_id=ticket.id,
            action=AuditAction.ASSIGNED_TO_HUMAN,
            actor=Actor.SYSTEM,
            meta={
                "decision_id": decision_id,
                "agent_id": agent_id,
                "reason": decision.reason.value,
                "confidence": classification.confidence if classification else None,
                "threshold": policy.confidence_threshold,
                "policy_version": decision.policy_version,
            },
        )
        return patch, [event]

    async def _select_agent(self, ticket: Ticket) -> Optional[str]:
        if self._agent_selector is None:
            return None
        try:
            return await self._agent_selector.select(ticket)
        except Exception as e:
            # Escalation still happens, just unassigned
            logger.warning(
                "Agent selection failed, leaving ticket unassigned",
                extra={"ticket_id": ticket.id, "error": str(e)}
            )
            return None


class SuggestionService:
    """Read and recompute the ephemeral suggestion for a ticket."""

    def __init__(
        self,
        ticket_repository: ITicketRepository,
        suggestion_store: ISuggestionStore,
        classifier: IClassifier,
        classifier_timeout_seconds: float = 10.0
    ):
        self._ticket_repo = ticket_repository
        self._store = suggestion_store
        self._classifier = GuardedClassifier(classifier, classifier_timeout_seconds)

    async def get_suggestion(self, ticket_id: str) -> Suggestion:
        """
        Latest suggestion for a ticket.

        Raises:
            ResourceNotFoundException: unknown ticket, or no suggestion yet
        """
        await self._ticket_repo.get(ticket_id)
        suggestion = await self._store.get(ticket_id)
        if suggestion is None:
            raise ResourceNotFoundException("Suggestion", ticket_id)
        return suggestion

    async def refresh_suggestion(self, ticket_id: str) -> Suggestion:
        """
        Ask the classifier again. The ticket itself is never modified.

        Raises:
            ResourceNotFoundException: unknown ticket
            ClassifierUnavailableException: classifier failed or timed out
        """
        ticket = await self._ticket_repo.get(ticket_id)
        classification = await self._classifier.classify(ticket)
        suggestion = Suggestion.from_classification(ticket.id, classification)
        await self._store.save(suggestion)
        return suggestion
