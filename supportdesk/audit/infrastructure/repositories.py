"""
Audit Infrastructure Repositories
=================================

Concrete implementations of the audit log.

- SQLAlchemyAuditLog: PostgreSQL-backed, one transaction per append call
- InMemoryAuditLog: process-local, for tests and single-process deployments
"""

import threading
from collections import defaultdict
from typing import Dict, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from supportdesk.audit.application import IAuditLog
from supportdesk.audit.domain import AuditEvent
from supportdesk.audit.infrastructure.models import AuditEventModel
from supportdesk.core import RepositoryException
from supportdesk.infrastructure.database import as_utc
from supportdesk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


def _to_model(event: AuditEvent) -> AuditEventModel:
    return AuditEventModel(
        id=event.id,
        ticket_id=event.ticket_id,
        action=event.action.value,
        actor=event.actor.value,
        meta=dict(event.meta),
        timestamp=event.timestamp,
        dedup_key=event.dedup_key,
    )


def _to_entity(model: AuditEventModel) -> AuditEvent:
    return AuditEvent(
        id=model.id,
        ticket_id=model.ticket_id,
        action=model.action,
        actor=model.actor,
        meta=model.meta or {},
        timestamp=as_utc(model.timestamp),
        sequence=model.sequence,
        dedup_key=model.dedup_key,
    )


class SQLAlchemyAuditLog(IAuditLog):
    """
    SQLAlchemy implementation of the audit log.

    Each call opens its own session and transaction, so a batch is committed
    (or rolled back) as a unit regardless of what the caller does next.
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker

    async def append(self, event: AuditEvent) -> int:
        sequences = await self.append_many([event])
        return sequences[0]

    async def append_many(self, events: Sequence[AuditEvent]) -> List[int]:
        if not events:
            return []

        models = [_to_model(event) for event in events]
        try:
            async with self._session_maker() as session:
                async with session.begin():
                    # Insertion order within one flush is preserved
                    session.add_all(models)
                    await session.flush()
                    sequences = [model.sequence for model in models]
        except SQLAlchemyError as e:
            raise RepositoryException(
                "Failed to append audit events",
                {"ticket_ids": sorted({event.ticket_id for event in events}), "error": str(e)}
            ) from e

        return sequences

    async def append_if_absent(self, event: AuditEvent) -> Optional[int]:
        if not event.dedup_key:
            raise RepositoryException("append_if_absent requires a dedup_key")

        model = _to_model(event)
        try:
            async with self._session_maker() as session:
                async with session.begin():
                    session.add(model)
                    await session.flush()
                    sequence = model.sequence
        except IntegrityError:
            logger.debug(
                "Audit event already recorded",
                extra={"ticket_id": event.ticket_id, "dedup_key": event.dedup_key}
            )
            return None
        except SQLAlchemyError as e:
            raise RepositoryException(
                "Failed to append audit event",
                {"ticket_id": event.ticket_id, "error": str(e)}
            ) from e

        return sequence

    async def list_by_ticket(self, ticket_id: str) -> List[AuditEvent]:
        stmt = (
            select(AuditEventModel)
            .where(AuditEventModel.ticket_id == ticket_id)
            .order_by(AuditEventModel.sequence)
        )
        async with self._session_maker() as session:
            result = await session.execute(stmt)
            return [_to_entity(model) for model in result.scalars().all()]


class InMemoryAuditLog(IAuditLog):
    """
    In-memory audit log.

    A single lock covers sequencing, dedup checks and storage; nothing awaits
    while holding it.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._next_sequence = 1
        self._by_ticket: Dict[str, List[AuditEvent]] = defaultdict(list)
        self._dedup_keys: Dict[str, int] = {}

    def _store(self, event: AuditEvent) -> int:
        sequence = self._next_sequence
        self._next_sequence += 1
        self._by_ticket[event.ticket_id].append(event.with_sequence(sequence))
        if event.dedup_key:
            self._dedup_keys[event.dedup_key] = sequence
        return sequence

    async def append(self, event: AuditEvent) -> int:
        sequences = await self.append_many([event])
        return sequences[0]

    async def append_many(self, events: Sequence[AuditEvent]) -> List[int]:
        keys = [event.dedup_key for event in events if event.dedup_key]
        with self._lock:
            if len(keys) != len(set(keys)) or any(key in self._dedup_keys for key in keys):
                raise RepositoryException("Duplicate audit dedup_key", {"dedup_keys": keys})
            return [self._store(event) for event in events]

    async def append_if_absent(self, event: AuditEvent) -> Optional[int]:
        if not event.dedup_key:
            raise RepositoryException("append_if_absent requires a dedup_key")

        with self._lock:
            if event.dedup_key in self._dedup_keys:
                return None
            return self._store(event)

    async def list_by_ticket(self, ticket_id: str) -> List[AuditEvent]:
        with self._lock:
            return list(self._by_ticket.get(ticket_id, ()))
