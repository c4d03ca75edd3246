"""
Ticket Infrastructure Repositories
==================================

SQLAlchemy and in-memory implementations of the ticket repository.
"""

from dataclasses import replace
from datetime import datetime, timezone
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from eventdesk.core import RepositoryException
from eventdesk.tickets.application import ITicketRepository
from eventdesk.tickets.domain import Ticket
from eventdesk.tickets.infrastructure.models import TicketModel

_MUTABLE_COLUMNS = (
    "status", "auto_answer", "auto_answer_score", "answer",
    "answered_at", "flagged_at", "closed_at", "updated_at",
)


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SQLAlchemyTicketRepository(ITicketRepository):
    """
    SQLAlchemy implementation of the ticket repository.

    Handles persistence of Ticket entities using async SQLAlchemy.
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker

    @staticmethod
    def _to_entity(model: TicketModel) -> Ticket:
        return Ticket(
            id=model.id,
            event_id=model.event_id,
            question=model.question,
            status=model.status,
            auto_answer=model.auto_answer,
            auto_answer_score=model.auto_answer_score,
            answer=model.answer,
            created_at=_aware(model.created_at),
            answered_at=_aware(model.answered_at),
            flagged_at=_aware(model.flagged_at),
            closed_at=_aware(model.closed_at),
            updated_at=_aware(model.updated_at),
        )

    async def get(self, ticket_id: str) -> Optional[Ticket]:
        async with self._session_maker() as session:
            model = await session.get(TicketModel, ticket_id)
            return self._to_entity(model) if model else None

    async def create(self, ticket: Ticket) -> Ticket:
        model = TicketModel(
            id=ticket.id,
            event_id=ticket.event_id,
            question=ticket.question,
            created_at=ticket.created_at,
            **{column: getattr(ticket, column) for column in _MUTABLE_COLUMNS}
        )
        try:
            async with self._session_maker() as session:
                session.add(model)
                await session.commit()
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to create ticket {ticket.id}: {e}")
        return ticket

    async def save(self, ticket: Ticket) -> Ticket:
        try:
            async with self._session_maker() as session:
                model = await session.get(TicketModel, ticket.id)
                if model is None:
                    raise RepositoryException(f"Ticket {ticket.id} not found")
                for column in _MUTABLE_COLUMNS:
                    setattr(model, column, getattr(ticket, column))
                await session.commit()
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to save ticket {ticket.id}: {e}")
        return ticket

    async def list_by_event(self, event_id: str, status: Optional[str] = None) -> List[Ticket]:
        stmt = select(TicketModel).where(TicketModel.event_id == event_id)
        if status is not None:
            stmt = stmt.where(TicketModel.status == status)
        stmt = stmt.order_by(TicketModel.created_at.desc(), TicketModel.id)

        async with self._session_maker() as session:
            result = await session.execute(stmt)
            return [self._to_entity(m) for m in result.scalars().all()]


class InMemoryTicketRepository(ITicketRepository):
    """Dict-backed ticket store. Returns copies so callers cannot mutate state."""

    def __init__(self):
        self._tickets: Dict[str, Ticket] = {}

    async def get(self, ticket_id: str) -> Optional[Ticket]:
        ticket = self._tickets.get(ticket_id)
        return replace(ticket) if ticket else None

    async def create(self, ticket: Ticket) -> Ticket:
        if ticket.id in self._tickets:
            raise RepositoryException(f"Ticket {ticket.id} already exists")
        self._tickets[ticket.id] = replace(ticket)
        return replace(ticket)

    async def save(self, ticket: Ticket) -> Ticket:
        if ticket.id not in self._tickets:
            raise RepositoryException(f"Ticket {ticket.id} not found")
        self._tickets[ticket.id] = replace(ticket)
        return replace(ticket)

    async def list_by_event(self, event_id: str, status: Optional[str] = None) -> List[Ticket]:
        tickets = [
            t for t in self._tickets.values()
            if t.event_id == event_id and (status is None or t.status == status)
        ]
        tickets.sort(key=lambda t: t.id)
        tickets.sort(key=lambda t: t.created_at, reverse=True)
        return [replace(t) for t in tickets]
