import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from supportdesk.config import AuditAction, TicketStatus
from supportdesk.policy.domain import PolicyPatch
from supportdesk.sla.application import SLAMonitor
from supportdesk.sla.domain import SLACalculator, breach_dedup_key

from tests.fakes import StubClassifier


async def escalated(make_engine, audit_log, ticket_id):
    """Triage a ticket to a human and return the assignment event."""
    await make_engine(StubClassifier(confidence=0.1)).triage(ticket_id)
    events = await audit_log.list_by_ticket(ticket_id)
    return SLACalculator.last_assignment(events)


def breach_events(events):
    return [e for e in events if e.action == AuditAction.SLA_BREACH]


# ========== Calculator ==========

@pytest.mark.asyncio
async def test_breach_only_after_deadline(make_engine, ticket_repo, audit_log, open_ticket):
    assignment = await escalated(make_engine, audit_log, open_ticket.id)
    ticket = await ticket_repo.get(open_ticket.id)
    events = await audit_log.list_by_ticket(open_ticket.id)
    deadline = assignment.timestamp + timedelta(hours=24)

    assert SLACalculator.evaluate(ticket, events, 24, deadline) is None

    breach = SLACalculator.evaluate(ticket, events, 24, deadline + timedelta(seconds=1))
    assert breach.assignment_sequence == assignment.sequence
    assert breach.agent_id == "agent-1"
    assert breach.dedup_key == breach_dedup_key(ticket.id, assignment.sequence)
    assert breach.overdue_by(deadline + timedelta(seconds=1)) == timedelta(seconds=1)


@pytest.mark.asyncio
async def test_no_breach_without_assignment_or_outside_waiting(make_engine, ticket_repo, audit_log, open_ticket):
    events = await audit_log.list_by_ticket(open_ticket.id)
    far_future = open_ticket.created_at + timedelta(days=30)

    assert SLACalculator.evaluate(open_ticket, events, 1, far_future) is None

    await make_engine(StubClassifier(confidence=0.99)).triage(open_ticket.id)
    resolved = await ticket_repo.get(open_ticket.id)
    assert SLACalculator.evaluate(resolved, await audit_log.list_by_ticket(open_ticket.id), 1, far_future) is None


# ========== Monitor ==========

@pytest.mark.asyncio
async def test_breach_recorded_once_across_runs(make_engine, ticket_repo, audit_log, policy_cache, open_ticket):
    assignment = await escalated(make_engine, audit_log, open_ticket.id)
    notifier = AsyncMock()
    notifier.notify_breach.return_value = True
    monitor = SLAMonitor(ticket_repo, audit_log, policy_cache, notifier=notifier)
    now = assignment.timestamp + timedelta(hours=25)

    first = await monitor.run_once(now)
    second = await monitor.run_once(now + timedelta(minutes=1))

    assert first == {"evaluated": 1, "breached": 1, "recorded": 1, "notified": 1, "force_closed": 0, "errors": 0}
    assert second["breached"] == 1
    assert second["recorded"] == 0
    assert notifier.notify_breach.await_count == 1

    breaches = breach_events(await audit_log.list_by_ticket(open_ticket.id))
    assert len(breaches) == 1
    assert breaches[0].dedup_key == breach_dedup_key(open_ticket.id, assignment.sequence)
    assert breaches[0].meta["assignment_sequence"] == assignment.sequence
    assert breaches[0].timestamp == now


@pytest.mark.asyncio
async def test_concurrent_runs_record_one_breach(make_engine, ticket_repo, audit_log, policy_cache, open_ticket):
    assignment = await escalated(make_engine, audit_log, open_ticket.id)
    monitors = [SLAMonitor(ticket_repo, audit_log, policy_cache) for _ in range(4)]
    now = assignment.timestamp + timedelta(hours=30)

    summaries = await asyncio.gather(*(m.run_once(now) for m in monitors))

    assert sum(s["recorded"] for s in summaries) == 1
    assert len(breach_events(await audit_log.list_by_ticket(open_ticket.id))) == 1


@pytest.mark.asyncio
async def test_reassignment_restarts_sla_clock(
    make_engine, ticket_service, ticket_repo, audit_log, policy_cache, open_ticket
):
    assignment = await escalated(make_engine, audit_log, open_ticket.id)
    monitor = SLAMonitor(ticket_repo, audit_log, policy_cache)
    await monitor.run_once(assignment.timestamp + timedelta(hours=25))

    await ticket_service.assign_ticket(open_ticket.id, "agent-9")
    reassignment = SLACalculator.last_assignment(await audit_log.list_by_ticket(open_ticket.id))

    quiet = await monitor.run_once(reassignment.timestamp + timedelta(hours=1))
    assert quiet["breached"] == 0

    summary = await monitor.run_once(reassignment.timestamp + timedelta(hours=25))
    assert summary["recorded"] == 1
    breaches = breach_events(await audit_log.list_by_ticket(open_ticket.id))
    assert len(breaches) == 2
    assert breaches[1].meta["agent_id"] == "agent-9"


@pytest.mark.asyncio
async def test_sla_hours_come_from_current_policy(
    make_engine, ticket_repo, audit_log, config_store, policy_cache, open_ticket
):
    assignment = await escalated(make_engine, audit_log, open_ticket.id)
    monitor = SLAMonitor(ticket_repo, audit_log, policy_cache)
    now = assignment.timestamp + timedelta(hours=3)

    assert (await monitor.run_once(now))["breached"] == 0

    await config_store.update(PolicyPatch(sla_hours=2))
    assert (await monitor.run_once(now))["recorded"] == 1


@pytest.mark.asyncio
async def test_force_close_after_breach(make_engine, committer, ticket_repo, audit_log, policy_cache, open_ticket):
    assignment = await escalated(make_engine, audit_log, open_ticket.id)
    monitor = SLAMonitor(
        ticket_repo, audit_log, policy_cache, committer=committer, force_close_enabled=True
    )

    summary = await monitor.run_once(assignment.timestamp + timedelta(hours=25))

    assert summary["force_closed"] == 1
    ticket = await ticket_repo.get(open_ticket.id)
    assert ticket.status == TicketStatus.CLOSED
    events = await audit_log.list_by_ticket(open_ticket.id)
    assert [e.action for e in events][-2:] == [AuditAction.SLA_BREACH, AuditAction.TICKET_CLOSED]
    assert events[-1].meta["reason"] == "sla_breach"


def test_force_close_requires_committer(ticket_repo, audit_log, policy_cache):
    with pytest.raises(ValueError):
        SLAMonitor(ticket_repo, audit_log, policy_cache, force_close_enabled=True)


@pytest.mark.asyncio
async def test_failures_are_counted_not_raised(make_engine, ticket_repo, audit_log, policy_cache, open_ticket):
    assignment = await escalated(make_engine, audit_log, open_ticket.id)
    notifier = AsyncMock()
    notifier.notify_breach.side_effect = RuntimeError("slack down")
    monitor = SLAMonitor(ticket_repo, audit_log, policy_cache, notifier=notifier)
    now = assignment.timestamp + timedelta(hours=25)

    summary = await monitor.run_once(now)
    assert summary["recorded"] == 1
    assert summary["notified"] == 0
    assert summary["errors"] == 0

    audit_log.list_by_ticket = AsyncMock(side_effect=OSError("db down"))
    summary = await monitor.run_once(now)
    assert summary["errors"] == 1


@pytest.mark.asyncio
async def test_monitor_pages_through_waiting_tickets(make_engine, ticket_service, ticket_repo, audit_log, policy_cache):
    for i in range(5):
        ticket = await ticket_service.create_ticket(title=f"Ticket {i}", description="Needs a human")
        await escalated(make_engine, audit_log, ticket.id)
    monitor = SLAMonitor(ticket_repo, audit_log, policy_cache, page_size=2)

    summary = await monitor.run_once()

    assert summary["evaluated"] == 5
    assert summary["breached"] == 0
