import pytest
import pytest_asyncio

from supportdesk.audit.infrastructure import InMemoryAuditLog
from supportdesk.policy.application import PolicySnapshotCache
from supportdesk.policy.domain import PolicyConfig
from supportdesk.policy.infrastructure import InMemoryConfigStore
from supportdesk.shared.infrastructure.retry import RetryPolicy
from supportdesk.tickets.application import LifecycleCommitter, TicketService
from supportdesk.tickets.infrastructure import InMemoryTicketRepository
from supportdesk.triage.application import RoundRobinAgentSelector, TriageEngine
from supportdesk.triage.infrastructure import InMemorySuggestionStore

from tests.fakes import StubClassifier


@pytest.fixture
def ticket_repo():
    return InMemoryTicketRepository()


@pytest.fixture
def audit_log():
    return InMemoryAuditLog()


@pytest.fixture
def config_store():
    return InMemoryConfigStore(PolicyConfig())


@pytest.fixture
def policy_cache(config_store):
    return PolicySnapshotCache(config_store, ttl_seconds=0)


@pytest.fixture
def retry_policy():
    return RetryPolicy.immediate(max_attempts=5)


@pytest.fixture
def committer(ticket_repo, audit_log):
    return LifecycleCommitter(ticket_repo, audit_log, RetryPolicy.immediate())


@pytest.fixture
def ticket_service(ticket_repo, committer, retry_policy):
    return TicketService(ticket_repo, committer, retry_policy)


@pytest.fixture
def suggestion_store():
    return InMemorySuggestionStore()


@pytest.fixture
def make_engine(ticket_repo, committer, policy_cache, suggestion_store, retry_policy):
    def factory(classifier=None, agent_ids=("agent-1", "agent-2"), **kwargs):
        return TriageEngine(
            ticket_repo,
            committer,
            policy_cache,
            classifier or StubClassifier(),
            agent_selector=RoundRobinAgentSelector(agent_ids),
            suggestion_store=suggestion_store,
            retry_policy=retry_policy,
            **kwargs,
        )
    return factory


@pytest_asyncio.fixture
async def open_ticket(ticket_service):
    return await ticket_service.create_ticket(
        title="Charged twice",
        description="My card was charged twice for the same invoice.",
        requester="alice@example.com",
    )
