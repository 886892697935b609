"""
Ticket Infrastructure Repositories
==================================

Concrete implementations of ITicketRepository.

- SQLAlchemyTicketRepository: conditional `UPDATE ... WHERE version = :expected`
- InMemoryTicketRepository: dict guarded by a threading.Lock
"""

import threading
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Sequence

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from supportdesk.config import TicketCategory, TicketStatus
from supportdesk.core import ConflictException, RepositoryException, ResourceNotFoundException
from supportdesk.infrastructure.database import as_utc
from supportdesk.tickets.application import ITicketRepository
from supportdesk.tickets.domain import Ticket, TicketPatch
from supportdesk.tickets.infrastructure.models import TicketModel


def _to_entity(model: TicketModel) -> Ticket:
    return Ticket(
        id=model.id,
        title=model.title,
        description=model.description,
        category=TicketCategory(model.category),
        status=TicketStatus(model.status),
        created_at=as_utc(model.created_at),
        updated_at=as_utc(model.updated_at),
        created_by=model.created_by,
        assigned_agent_id=model.assigned_agent_id,
        version=model.version,
    )


def _column_values(patch: TicketPatch) -> dict:
    return {
        key: value.value if isinstance(value, Enum) else value
        for key, value in patch.changes().items()
    }


class SQLAlchemyTicketRepository(ITicketRepository):
    """
    SQLAlchemy implementation of ticket repository.

    Each call runs in its own short transaction. The version check and the
    write are one UPDATE statement, so no row lock is held between the
    caller's read and its write.
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker

    async def get(self, ticket_id: str) -> Ticket:
        async with self._session_maker() as session:
            model = await session.get(TicketModel, ticket_id)
            if model is None:
                raise ResourceNotFoundException("Ticket", ticket_id)
            return _to_entity(model)

    async def create(self, ticket: Ticket) -> Ticket:
        model = TicketModel(
            id=ticket.id,
            title=ticket.title,
            description=ticket.description,
            category=ticket.category.value,
            status=ticket.status.value,
            assigned_agent_id=ticket.assigned_agent_id,
            created_by=ticket.created_by,
            version=ticket.version,
            created_at=ticket.created_at,
            updated_at=ticket.updated_at,
        )
        try:
            async with self._session_maker() as session:
                async with session.begin():
                    session.add(model)
                    await session.flush()
        except IntegrityError as e:
            raise RepositoryException(f"Ticket {ticket.id} already exists") from e

        return ticket

    async def update_with_version(
        self,
        ticket_id: str,
        expected_version: int,
        patch: TicketPatch
    ) -> Ticket:
        stmt = (
            update(TicketModel)
            .where(TicketModel.id == ticket_id, TicketModel.version == expected_version)
            .values(
                **_column_values(patch),
                version=TicketModel.version + 1,
                updated_at=datetime.now(timezone.utc),
            )
            .returning(TicketModel)
            .execution_options(synchronize_session=False)
        )

        async with self._session_maker() as session:
            async with session.begin():
                result = await session.execute(stmt)
                model = result.scalar_one_or_none()
                if model is not None:
                    return _to_entity(model)

                current = await session.get(TicketModel, ticket_id)

        if current is None:
            raise ResourceNotFoundException("Ticket", ticket_id)
        raise ConflictException(ticket_id, expected_version, current.version)

    async def list(
        self,
        status: Optional[TicketStatus] = None,
        limit: int = 100,
        offset: int = 0
    ) -> List[Ticket]:
        stmt = select(TicketModel)
        if status is not None:
            stmt = stmt.where(TicketModel.status == TicketStatus(status).value)
        stmt = stmt.order_by(TicketModel.created_at.desc()).limit(limit).offset(offset)

        async with self._session_maker() as session:
            result = await session.execute(stmt)
            return [_to_entity(model) for model in result.scalars().all()]

    async def delete(self, ticket_id: str) -> None:
        async with self._session_maker() as session:
            async with session.begin():
                await session.execute(delete(TicketModel).where(TicketModel.id == ticket_id))

    async def count_assigned(self, agent_ids: Sequence[str]) -> Dict[str, int]:
        counts = {agent_id: 0 for agent_id in agent_ids}
        if not counts:
            return counts

        stmt = (
            select(TicketModel.assigned_agent_id, func.count())
            .where(
                TicketModel.status == TicketStatus.WAITING_HUMAN.value,
                TicketModel.assigned_agent_id.in_(list(counts)),
            )
            .group_by(TicketModel.assigned_agent_id)
        )
        async with self._session_maker() as session:
            result = await session.execute(stmt)
            for agent_id, count in result.all():
                counts[agent_id] = count
        return counts


class InMemoryTicketRepository(ITicketRepository):
    """
    In-memory ticket repository.

    Compare-and-swap under a lock reproduces the SQL version check; nothing
    awaits while the lock is held.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._tickets: Dict[str, Ticket] = {}

    async def get(self, ticket_id: str) -> Ticket:
        with self._lock:
            ticket = self._tickets.get(ticket_id)
        if ticket is None:
            raise ResourceNotFoundException("Ticket", ticket_id)
        return ticket

    async def create(self, ticket: Ticket) -> Ticket:
        with self._lock:
            if ticket.id in self._tickets:
                raise RepositoryException(f"Ticket {ticket.id} already exists")
            self._tickets[ticket.id] = ticket
        return ticket

    async def update_with_version(
        self,
        ticket_id: str,
        expected_version: int,
        patch: TicketPatch
    ) -> Ticket:
        with self._lock:
            current = self._tickets.get(ticket_id)
            if current is None:
                raise ResourceNotFoundException("Ticket", ticket_id)
            if current.version != expected_version:
                raise ConflictException(ticket_id, expected_version, current.version)

            updated = patch.apply(current)
            self._tickets[ticket_id] = updated
            return updated

    async def list(
        self,
        status: Optional[TicketStatus] = None,
        limit: int = 100,
        offset: int = 0
    ) -> List[Ticket]:
        with self._lock:
            tickets = list(self._tickets.values())
        if status is not None:
            tickets = [t for t in tickets if t.status == TicketStatus(status)]
        tickets.sort(key=lambda t: t.created_at, reverse=True)
        return tickets[offset:offset + limit]

    async def delete(self, ticket_id: str) -> None:
        with self._lock:
            self._tickets.pop(ticket_id, None)

    async def count_assigned(self, agent_ids: Sequence[str]) -> Dict[str, int]:
        counts = {agent_id: 0 for agent_id in agent_ids}
        with self._lock:
            for ticket in self._tickets.values():
                if ticket.status == TicketStatus.WAITING_HUMAN and ticket.assigned_agent_id in counts:
                    counts[ticket.assigned_agent_id] += 1
        return counts
