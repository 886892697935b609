from unittest.mock import AsyncMock

import pytest

from supportdesk.audit.domain import AuditEvent
from supportdesk.config import Actor, AuditAction, TicketStatus
from supportdesk.core import (
    AuditAppendException,
    ConflictException,
    InvalidTransitionException,
    ResourceNotFoundException,
    ValidationException,
)
from supportdesk.shared.infrastructure.retry import RetryPolicy
from supportdesk.tickets.application import LifecycleCommitter, TicketService
from supportdesk.tickets.domain import TicketPatch


async def escalate(ticket_repo, ticket, agent_id="agent-1"):
    return await ticket_repo.update_with_version(
        ticket.id,
        ticket.version,
        TicketPatch(status=TicketStatus.WAITING_HUMAN, assigned_agent_id=agent_id),
    )


@pytest.mark.asyncio
async def test_create_ticket_records_creation_event(ticket_service, audit_log):
    ticket = await ticket_service.create_ticket(
        title="  Login broken  ",
        description="Password reset link expired",
        requester="bob",
    )

    assert ticket.status == TicketStatus.OPEN
    assert ticket.version == 1
    assert ticket.title == "Login broken"

    events = await audit_log.list_by_ticket(ticket.id)
    assert len(events) == 1
    assert events[0].action == AuditAction.TICKET_CREATED
    assert events[0].actor == Actor.USER
    assert events[0].meta["requester"] == "bob"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "fields",
    [
        {"title": "", "description": "x"},
        {"title": "   ", "description": "x"},
        {"title": "x", "description": ""},
        {"title": "x" * 501, "description": "x"},
        {"title": "x", "description": "x", "category": "sales"},
    ],
)
async def test_create_ticket_rejects_invalid_input(ticket_service, ticket_repo, fields):
    with pytest.raises(ValidationException):
        await ticket_service.create_ticket(**fields)

    assert await ticket_repo.list() == []


@pytest.mark.asyncio
async def test_agent_reply_resolves_waiting_ticket(ticket_service, ticket_repo, audit_log, open_ticket):
    await escalate(ticket_repo, open_ticket)

    event = await ticket_service.reply(open_ticket.id, "Refund issued", Actor.AGENT, author_id="agent-1")

    assert event.action == AuditAction.REPLY_SENT
    assert event.actor == Actor.AGENT
    assert event.meta == {"message": "Refund issued", "author_id": "agent-1"}
    assert event.sequence is not None

    ticket = await ticket_repo.get(open_ticket.id)
    assert ticket.status == TicketStatus.RESOLVED
    assert ticket.version == 3


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [TicketStatus.OPEN, TicketStatus.RESOLVED])
async def test_agent_reply_rejected_outside_waiting_human(ticket_service, ticket_repo, open_ticket, status):
    if status != TicketStatus.OPEN:
        await ticket_repo.update_with_version(open_ticket.id, 1, TicketPatch(status=status))

    with pytest.raises(InvalidTransitionException):
        await ticket_service.reply(open_ticket.id, "hello", Actor.AGENT)


@pytest.mark.asyncio
async def test_user_reply_is_comment_and_bumps_version(ticket_service, ticket_repo, open_ticket):
    waiting = await escalate(ticket_repo, open_ticket)

    event = await ticket_service.reply(open_ticket.id, "Any news?", Actor.USER)

    ticket = await ticket_repo.get(open_ticket.id)
    assert event.actor == Actor.USER
    assert ticket.status == TicketStatus.WAITING_HUMAN
    assert ticket.version == waiting.version + 1


@pytest.mark.asyncio
async def test_user_followup_on_resolved_ticket(ticket_repo, committer, retry_policy, open_ticket):
    await ticket_repo.update_with_version(open_ticket.id, 1, TicketPatch(status=TicketStatus.RESOLVED))
    accepting = TicketService(ticket_repo, committer, retry_policy, accept_followups_when_resolved=True)
    rejecting = TicketService(ticket_repo, committer, retry_policy, accept_followups_when_resolved=False)

    await accepting.reply(open_ticket.id, "Thanks!", Actor.USER)
    assert (await ticket_repo.get(open_ticket.id)).status == TicketStatus.RESOLVED

    with pytest.raises(InvalidTransitionException):
        await rejecting.reply(open_ticket.id, "One more thing", Actor.USER)


@pytest.mark.asyncio
async def test_reply_validation(ticket_repo, committer, retry_policy, open_ticket):
    service = TicketService(ticket_repo, committer, retry_policy, max_message_length=10)
    await escalate(ticket_repo, open_ticket)

    with pytest.raises(ValidationException):
        await service.reply(open_ticket.id, "   ", Actor.USER)
    with pytest.raises(ValidationException):
        await service.reply(open_ticket.id, "x" * 11, Actor.USER)
    with pytest.raises(ValidationException):
        await service.reply(open_ticket.id, "hi", Actor.SYSTEM)
    with pytest.raises(ValidationException):
        await service.reply(open_ticket.id, "hi", "robot")


@pytest.mark.asyncio
async def test_reply_unknown_ticket(ticket_service):
    with pytest.raises(ResourceNotFoundException):
        await ticket_service.reply("missing", "hello", Actor.USER)


@pytest.mark.asyncio
async def test_close_resolved_ticket(ticket_service, ticket_repo, audit_log, open_ticket):
    await ticket_repo.update_with_version(open_ticket.id, 1, TicketPatch(status=TicketStatus.RESOLVED))

    closed = await ticket_service.close_ticket(open_ticket.id)

    assert closed.status == TicketStatus.CLOSED
    events = await audit_log.list_by_ticket(open_ticket.id)
    assert events[-1].action == AuditAction.TICKET_CLOSED
    assert events[-1].meta == {"previous_status": "resolved", "reason": "manual"}

    with pytest.raises(InvalidTransitionException):
        await ticket_service.close_ticket(open_ticket.id)


@pytest.mark.asyncio
async def test_assign_waiting_ticket(ticket_service, ticket_repo, audit_log, open_ticket):
    await escalate(ticket_repo, open_ticket, agent_id="agent-1")

    ticket = await ticket_service.assign_ticket(open_ticket.id, "agent-7")

    assert ticket.assigned_agent_id == "agent-7"
    assert ticket.status == TicketStatus.WAITING_HUMAN
    events = await audit_log.list_by_ticket(open_ticket.id)
    assert events[-1].action == AuditAction.ASSIGNED_TO_HUMAN
    assert events[-1].meta["previous_agent_id"] == "agent-1"
    assert events[-1].meta["reason"] == "manual"


@pytest.mark.asyncio
async def test_assign_requires_waiting_human(ticket_service, open_ticket):
    with pytest.raises(InvalidTransitionException):
        await ticket_service.assign_ticket(open_ticket.id, "agent-7")


@pytest.mark.asyncio
async def test_list_tickets_filters_by_status(ticket_service, ticket_repo, open_ticket):
    other = await ticket_service.create_ticket(title="Where is my parcel", description="Tracking stuck")
    await escalate(ticket_repo, other)

    waiting = await ticket_service.list_tickets(status=TicketStatus.WAITING_HUMAN)
    assert [t.id for t in waiting] == [other.id]
    assert len(await ticket_service.list_tickets()) == 2

    with pytest.raises(ValidationException):
        await ticket_service.list_tickets(limit=0)


@pytest.mark.asyncio
async def test_reply_retries_on_conflict_then_gives_up(ticket_repo, committer, open_ticket):
    await escalate(ticket_repo, open_ticket)
    service = TicketService(ticket_repo, committer, RetryPolicy.immediate(max_attempts=2))

    committer.commit = AsyncMock(side_effect=ConflictException(open_ticket.id, 2, 3))

    with pytest.raises(ConflictException):
        await service.reply(open_ticket.id, "hello", Actor.USER)
    assert committer.commit.await_count == 2


# ========== Lifecycle Committer ==========

@pytest.mark.asyncio
async def test_committer_retries_audit_append(ticket_repo, audit_log, open_ticket):
    calls = []
    original = audit_log.append_many

    async def flaky(events):
        calls.append(len(events))
        if len(calls) == 1:
            raise OSError("transient")
        return await original(events)

    audit_log.append_many = flaky
    committer = LifecycleCommitter(ticket_repo, audit_log, RetryPolicy.immediate(max_attempts=3))
    event = AuditEvent(ticket_id=open_ticket.id, action=AuditAction.REPLY_SENT, actor=Actor.USER)

    updated, stored = await committer.commit(open_ticket, TicketPatch(), [event])

    assert len(calls) == 2
    assert updated.version == 2
    assert stored[0].sequence is not None


@pytest.mark.asyncio
async def test_committer_reverts_ticket_when_audit_fails(ticket_repo, audit_log, open_ticket):
    audit_log.append_many = AsyncMock(side_effect=OSError("down"))
    committer = LifecycleCommitter(ticket_repo, audit_log, RetryPolicy.immediate(max_attempts=2))
    event = AuditEvent(ticket_id=open_ticket.id, action=AuditAction.ASSIGNED_TO_HUMAN, actor=Actor.SYSTEM)

    with pytest.raises(AuditAppendException):
        await committer.commit(
            open_ticket,
            TicketPatch(status=TicketStatus.WAITING_HUMAN, assigned_agent_id="agent-1"),
            [event],
        )

    ticket = await ticket_repo.get(open_ticket.id)
    assert ticket.status == TicketStatus.OPEN
    assert ticket.assigned_agent_id is None
    assert audit_log.append_many.await_count == 2


@pytest.mark.asyncio
async def test_committer_create_removes_ticket_when_audit_fails(ticket_repo, audit_log):
    audit_log.append_many = AsyncMock(side_effect=OSError("down"))
    service = TicketService(
        ticket_repo,
        LifecycleCommitter(ticket_repo, audit_log, RetryPolicy.immediate(max_attempts=1)),
    )

    with pytest.raises(AuditAppendException):
        await service.create_ticket(title="Hi", description="There")

    assert await ticket_repo.list() == []


@pytest.mark.asyncio
async def test_committer_conflict_writes_nothing(ticket_repo, audit_log, committer, open_ticket):
    await ticket_repo.update_with_version(open_ticket.id, 1, TicketPatch())
    event = AuditEvent(ticket_id=open_ticket.id, action=AuditAction.REPLY_SENT, actor=Actor.USER)

    with pytest.raises(ConflictException):
        await committer.commit(open_ticket, TicketPatch(), [event])

    assert len(await audit_log.list_by_ticket(open_ticket.id)) == 1
