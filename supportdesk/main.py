"""
SupportDesk - Main Application
==============================

Triage & lifecycle engine for a customer support desk.

Modules:
- Tickets: ticket record, state machine, versioned commits, replies
- Audit: append-only event log and conversation projection
- Policy: live-reloadable triage policy with snapshot cache
- Triage: classifier port, decision rule, agent selection
- SLA Monitoring: breach detection, Slack escalation, scheduler

Clean Architecture Layers:
- Application: Services and ports
- Domain: Entities and value objects
- Infrastructure: Database, LLM, YAML config, Slack

`SupportDesk` is the surface an API layer calls. `lifespan()` wires it from
Settings; `python -m supportdesk.main` runs the SLA worker.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, List, Mapping, Optional

# Configuration and Core
from supportdesk.config import Actor, Role, Settings, TicketCategory, TicketStatus, get_settings
from supportdesk.core import ApplicationException

# Infrastructure
from supportdesk.infrastructure.database import (
    close_database,
    create_tables,
    get_session_maker,
    init_database,
)
from supportdesk.infrastructure.llm import MockLLMClient, OpenAILLMClient

# Modules
from supportdesk.audit.application import AuditService, IAuditLog
from supportdesk.audit.domain import AuditEvent, ConversationMessage
from supportdesk.audit.infrastructure import InMemoryAuditLog, SQLAlchemyAuditLog
from supportdesk.policy.application import IConfigStore, PolicyService, PolicySnapshotCache
from supportdesk.policy.domain import PolicyConfig
from supportdesk.policy.infrastructure import YAMLConfigStore
from supportdesk.sla.application import IEscalationNotifier, SLAMonitor
from supportdesk.sla.infrastructure import SlackNotifier, SLAScheduler
from supportdesk.tickets.application import ITicketRepository, LifecycleCommitter, TicketService
from supportdesk.tickets.domain import Ticket
from supportdesk.tickets.infrastructure import InMemoryTicketRepository, SQLAlchemyTicketRepository
from supportdesk.triage.application import (
    IClassifier,
    ISuggestionStore,
    SuggestionService,
    TriageEngine,
    TriageResult,
    build_agent_selector,
)
from supportdesk.triage.domain import Suggestion
from supportdesk.triage.infrastructure import InMemorySuggestionStore, LLMClassifier, StaticClassifier

# Logging
from supportdesk.shared.infrastructure.logging import get_logger, setup_logging
from supportdesk.shared.infrastructure.retry import RetryPolicy

logger = get_logger(__name__)


class SupportDesk:
    """
    Facade over the engine's bounded contexts.

    One instance per process; every method is safe to call concurrently.
    """

    def __init__(
        self,
        settings: Settings,
        ticket_repository: ITicketRepository,
        audit_log: IAuditLog,
        config_store: IConfigStore,
        classifier: IClassifier,
        notifier: Optional[IEscalationNotifier] = None,
        suggestion_store: Optional[ISuggestionStore] = None,
        retry_policy: Optional[RetryPolicy] = None,
        audit_retry: Optional[RetryPolicy] = None
    ):
        self.settings = settings
        retry_policy = retry_policy or RetryPolicy.from_settings(settings)
        audit_retry = audit_retry or RetryPolicy(
            max_attempts=settings.audit_append_attempts,
            base_delay=settings.concurrency_base_delay_seconds,
            max_delay=settings.concurrency_max_delay_seconds,
            jitter=settings.concurrency_jitter_seconds,
        )
        suggestion_store = suggestion_store or InMemorySuggestionStore()

        self.policy_cache = PolicySnapshotCache(config_store, settings.policy_cache_ttl_seconds)
        committer = LifecycleCommitter(ticket_repository, audit_log, audit_retry)

        self._tickets = TicketService(
            ticket_repository,
            committer,
            retry_policy,
            accept_followups_when_resolved=settings.accept_followups_when_resolved,
            max_message_length=settings.max_message_length,
        )
        self._audit = AuditService(audit_log, ticket_repository)
        self._policy = PolicyService(config_store, self.policy_cache)
        self._triage = TriageEngine(
            ticket_repository,
            committer,
            self.policy_cache,
            classifier,
            agent_selector=build_agent_selector(
                settings.agent_assignment_strategy, settings.agent_ids, ticket_repository
            ),
            suggestion_store=suggestion_store,
            retry_policy=retry_policy,
            classifier_timeout_seconds=settings.classifier_timeout_seconds,
            auto_close_target=TicketStatus(settings.auto_close_target),
        )
        self._suggestions = SuggestionService(
            ticket_repository,
            suggestion_store,
            classifier,
            settings.classifier_timeout_seconds,
        )
        self.sla_monitor = SLAMonitor(
            ticket_repository,
            audit_log,
            self.policy_cache,
            committer=committer,
            notifier=notifier,
            force_close_enabled=settings.sla_force_close_enabled,
            retry_policy=retry_policy,
        )

    # ========== Tickets ==========

    async def create_ticket(
        self,
        title: str,
        description: str,
        requester: str = "anonymous",
        category: TicketCategory = TicketCategory.OTHER
    ) -> Ticket:
        """
        Open a ticket and, when enabled, triage it straight away.

        A failed triage leaves the ticket open for a later triage call; the
        creation itself is not undone.
        """
        ticket = await self._tickets.create_ticket(title, description, requester, category)
        if not self.settings.triage_on_create:
            return ticket

        try:
            result = await self._triage.triage(ticket.id)
        except ApplicationException as e:
            logger.error(
                "Triage on create failed, ticket left open",
                extra={"ticket_id": ticket.id, "error": e.message}
            )
            return await self._tickets.get_ticket(ticket.id)
        return result.ticket

    async def get_ticket(self, ticket_id: str) -> Ticket:
        return await self._tickets.get_ticket(ticket_id)

    async def list_tickets(
        self,
        status: Optional[TicketStatus] = None,
        limit: int = 100,
        offset: int = 0
    ) -> List[Ticket]:
        return await self._tickets.list_tickets(status, limit, offset)

    async def reply(
        self,
        ticket_id: str,
        message: str,
        actor: Actor,
        author_id: Optional[str] = None
    ) -> AuditEvent:
        return await self._tickets.reply(ticket_id, message, actor, author_id)

    async def close_ticket(self, ticket_id: str, actor: Actor = Actor.AGENT) -> Ticket:
        return await self._tickets.close_ticket(ticket_id, actor)

    async def assign_ticket(self, ticket_id: str, agent_id: str, actor: Actor = Actor.AGENT) -> Ticket:
        return await self._tickets.assign_ticket(ticket_id, agent_id, actor)

    # ========== Triage ==========

    async def triage(self, ticket_id: str) -> TriageResult:
        return await self._triage.triage(ticket_id)

    async def get_suggestion(self, ticket_id: str) -> Suggestion:
        return await self._suggestions.get_suggestion(ticket_id)

    async def refresh_suggestion(self, ticket_id: str) -> Suggestion:
        return await self._suggestions.refresh_suggestion(ticket_id)

    # ========== Audit ==========

    async def get_audit(self, ticket_id: str) -> List[AuditEvent]:
        return await self._audit.get_audit(ticket_id)

    async def get_conversation(self, ticket_id: str) -> List[ConversationMessage]:
        return await self._audit.get_conversation(ticket_id)

    # ========== Policy ==========

    async def get_config(self) -> PolicyConfig:
        return await self._policy.get_config()

    async def update_config(self, patch: Mapping[str, Any], role: Role) -> PolicyConfig:
        return await self._policy.update_config(patch, role)

    # ========== SLA ==========

    async def run_sla_check(self) -> dict:
        return await self.sla_monitor.run_once()


def build_classifier(settings: Settings) -> IClassifier:
    """Pick the classifier implementation for the current settings."""
    if settings.mock_llm:
        logger.info("Using mock LLM classifier")
        return LLMClassifier(MockLLMClient())

    if settings.openai_api_key:
        return LLMClassifier(
            OpenAILLMClient.from_settings(settings),
            temperature=settings.llm_temperature,
            max_tokens=settings.llm_max_tokens,
        )

    logger.warning("OpenAI API key not configured, using static keyword classifier")
    return StaticClassifier()


@asynccontextmanager
async def lifespan(settings: Optional[Settings] = None) -> AsyncGenerator[SupportDesk, None]:
    """
    Application lifespan manager.

    STARTUP:
    1. Setup structured logging
    2. Initialize storage (database or in-memory)
    3. Load policy file and start watching it
    4. Build classifier and Slack notifier

    SHUTDOWN:
    1. Stop watching the policy file
    2. Close Slack client
    3. Close database connections
    """
    settings = settings or get_settings()

    # === STARTUP ===
    setup_logging(settings.log_level, settings.environment)
    logger.info("Starting SupportDesk", extra={
        "version": settings.app_version,
        "environment": settings.environment,
        "storage_backend": settings.storage_backend,
    })

    if settings.storage_backend == "database":
        logger.info("Initializing database")
        init_database(settings)
        await create_tables()
        session_maker = get_session_maker()
        ticket_repository = SQLAlchemyTicketRepository(session_maker)
        audit_log = SQLAlchemyAuditLog(session_maker)
    else:
        ticket_repository = InMemoryTicketRepository()
        audit_log = InMemoryAuditLog()

    config_store = YAMLConfigStore(settings.policy_config_path)
    config_store.load()

    notifier = SlackNotifier(
        settings.slack_webhook_url,
        channel=settings.slack_channel,
        timeout_seconds=settings.slack_timeout_seconds,
    )

    desk = SupportDesk(
        settings,
        ticket_repository,
        audit_log,
        config_store,
        build_classifier(settings),
        notifier=notifier,
    )
    config_store.on_reload(desk.policy_cache.invalidate)
    config_store.start_watching()

    try:
        yield desk
    finally:
        # === SHUTDOWN ===
        logger.info("Shutting down SupportDesk")
        config_store.stop_watching()
        await notifier.close()
        if settings.storage_backend == "database":
            await close_database()


async def run_worker(settings: Optional[Settings] = None) -> None:
    """Run the SLA monitor on its schedule until cancelled."""
    settings = settings or get_settings()

    async with lifespan(settings) as desk:
        scheduler = SLAScheduler(interval_seconds=settings.sla_evaluation_interval)
        await scheduler.start(desk.run_sla_check)
        try:
            await asyncio.Event().wait()
        finally:
            await scheduler.stop()


def main() -> None:
    try:
        asyncio.run(run_worker())
    except KeyboardInterrupt:
        logger.info("SLA worker interrupted")


if __name__ == "__main__":
    main()
