"""
Ticket Infrastructure Layer
===========================

Infrastructure implementations for the ticket module.

Contains:
- Models: SQLAlchemy ORM models
- Repositories: SQLAlchemy and in-memory data access
- External: answer-engine bridge and webhook notifier
"""

from eventdesk.tickets.infrastructure.models import TicketModel
from eventdesk.tickets.infrastructure.repositories import (
    SQLAlchemyTicketRepository,
    InMemoryTicketRepository,
)
from eventdesk.tickets.infrastructure.external import (
    AnswerEngineProvider,
    CircuitBreaker,
    CircuitState,
    WebhookTicketNotifier,
)

__all__ = [
    "TicketModel",
    "SQLAlchemyTicketRepository",
    "InMemoryTicketRepository",
    "AnswerEngineProvider",
    "CircuitBreaker",
    "CircuitState",
    "WebhookTicketNotifier",
]
