from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from supportdesk.audit.domain import AuditEvent
from supportdesk.audit.infrastructure import SQLAlchemyAuditLog
from supportdesk.config import Actor, AuditAction, TicketStatus
from supportdesk.core import ConflictException, ResourceNotFoundException
from supportdesk.infrastructure.database import Base
from supportdesk.policy.application import PolicySnapshotCache
from supportdesk.policy.domain import PolicyConfig
from supportdesk.policy.infrastructure import InMemoryConfigStore
from supportdesk.sla.application import SLAMonitor
from supportdesk.tickets.domain import TicketPatch, new_ticket
from supportdesk.tickets.infrastructure import SQLAlchemyTicketRepository

# Registers the tables on Base.metadata
from supportdesk.tickets.infrastructure import models as _ticket_models  # noqa: F401
from supportdesk.audit.infrastructure import models as _audit_models  # noqa: F401


@pytest_asyncio.fixture
async def session_maker(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'supportdesk.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


def make_ticket(**overrides):
    fields = {
        "ticket_id": str(uuid4()),
        "title": "Printer on fire",
        "description": "It is actually on fire",
        "created_by": "carol",
    }
    fields.update(overrides)
    return new_ticket(**fields)


@pytest.mark.asyncio
async def test_ticket_round_trip(session_maker):
    repo = SQLAlchemyTicketRepository(session_maker)
    ticket = await repo.create(make_ticket())

    stored = await repo.get(ticket.id)

    assert stored.id == ticket.id
    assert stored.status == TicketStatus.OPEN
    assert stored.version == 1

    with pytest.raises(ResourceNotFoundException):
        await repo.get("missing")


@pytest.mark.asyncio
async def test_update_with_version_is_conditional(session_maker):
    repo = SQLAlchemyTicketRepository(session_maker)
    ticket = await repo.create(make_ticket())

    updated = await repo.update_with_version(
        ticket.id, 1, TicketPatch(status=TicketStatus.WAITING_HUMAN, assigned_agent_id="agent-1")
    )
    assert updated.version == 2
    assert updated.status == TicketStatus.WAITING_HUMAN
    assert updated.assigned_agent_id == "agent-1"

    with pytest.raises(ConflictException) as exc_info:
        await repo.update_with_version(ticket.id, 1, TicketPatch(status=TicketStatus.RESOLVED))
    assert exc_info.value.actual_version == 2

    with pytest.raises(ResourceNotFoundException):
        await repo.update_with_version("missing", 1, TicketPatch())

    assert (await repo.get(ticket.id)).status == TicketStatus.WAITING_HUMAN


@pytest.mark.asyncio
async def test_empty_patch_bumps_version(session_maker):
    repo = SQLAlchemyTicketRepository(session_maker)
    ticket = await repo.create(make_ticket())

    updated = await repo.update_with_version(ticket.id, 1, TicketPatch())

    assert updated.version == 2
    assert updated.status == TicketStatus.OPEN


@pytest.mark.asyncio
async def test_list_count_and_delete(session_maker):
    repo = SQLAlchemyTicketRepository(session_maker)
    first = await repo.create(make_ticket())
    second = await repo.create(make_ticket())
    await repo.update_with_version(
        first.id, 1, TicketPatch(status=TicketStatus.WAITING_HUMAN, assigned_agent_id="agent-1")
    )

    waiting = await repo.list(status=TicketStatus.WAITING_HUMAN)
    assert [t.id for t in waiting] == [first.id]
    assert await repo.count_assigned(["agent-1", "agent-2"]) == {"agent-1": 1, "agent-2": 0}

    await repo.delete(second.id)
    assert [t.id for t in await repo.list()] == [first.id]


@pytest.mark.asyncio
async def test_audit_log_orders_and_deduplicates(session_maker):
    log = SQLAlchemyAuditLog(session_maker)

    created = await log.append(AuditEvent("t-1", AuditAction.TICKET_CREATED, Actor.USER))
    batch = await log.append_many([
        AuditEvent("t-1", AuditAction.REPLY_SENT, Actor.SYSTEM, {"message": "hello"}),
        AuditEvent("t-1", AuditAction.AUTO_CLOSED, Actor.SYSTEM, {"confidence": 0.91}),
    ])
    breach = AuditEvent("t-2", AuditAction.SLA_BREACH, Actor.SYSTEM, dedup_key="sla_breach:t-2:7")

    assert created < batch[0] < batch[1]
    assert await log.append_if_absent(breach) is not None
    assert await log.append_if_absent(
        AuditEvent("t-2", AuditAction.SLA_BREACH, Actor.SYSTEM, dedup_key="sla_breach:t-2:7")
    ) is None

    events = await log.list_by_ticket("t-1")
    assert [e.action for e in events] == [
        AuditAction.TICKET_CREATED,
        AuditAction.REPLY_SENT,
        AuditAction.AUTO_CLOSED,
    ]
    assert events[1].message == "hello"
    assert events[2].meta["confidence"] == 0.91
    assert len(await log.list_by_ticket("t-2")) == 1


@pytest.mark.asyncio
async def test_sla_pass_over_sql_backend(session_maker):
    repo = SQLAlchemyTicketRepository(session_maker)
    log = SQLAlchemyAuditLog(session_maker)
    ticket = await repo.create(make_ticket())
    await repo.update_with_version(
        ticket.id, 1, TicketPatch(status=TicketStatus.WAITING_HUMAN, assigned_agent_id="agent-1")
    )
    assigned_at = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)
    await log.append(AuditEvent(
        ticket.id, AuditAction.ASSIGNED_TO_HUMAN, Actor.SYSTEM, {"agent_id": "agent-1"}, timestamp=assigned_at
    ))
    monitor = SLAMonitor(repo, log, PolicySnapshotCache(InMemoryConfigStore(PolicyConfig()), ttl_seconds=0))

    stored = await log.list_by_ticket(ticket.id)
    assert stored[0].timestamp == assigned_at
    assert (await repo.get(ticket.id)).created_at.tzinfo is not None

    on_time = await monitor.run_once(now=assigned_at + timedelta(hours=23))
    assert on_time["breached"] == 0
    assert on_time["errors"] == 0

    late = await monitor.run_once(now=assigned_at + timedelta(hours=25))
    again = await monitor.run_once(now=assigned_at + timedelta(hours=26))

    assert late["recorded"] == 1
    assert late["errors"] == 0
    assert again["recorded"] == 0
    assert again["breached"] == 1
    actions = [e.action for e in await log.list_by_ticket(ticket.id)]
    assert actions == [AuditAction.ASSIGNED_TO_HUMAN, AuditAction.SLA_BREACH]
