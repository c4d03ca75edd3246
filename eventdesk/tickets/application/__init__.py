"""
Ticket Application Layer
========================

Application layer for the ticket module.

Contains:
- Services: TicketService
- Interfaces: ticket repository, answer provider, notifier
- DTOs: Pydantic models for callers
"""

from eventdesk.tickets.application.dto import CreateTicketRequest, ReplyRequest, TicketDTO
from eventdesk.tickets.application.services import (
    ITicketRepository,
    IAnswerProvider,
    ITicketNotifier,
    AnswerSuggestion,
    NullTicketNotifier,
    TicketService,
)

__all__ = [
    # DTOs
    "CreateTicketRequest",
    "ReplyRequest",
    "TicketDTO",
    # Interfaces
    "ITicketRepository",
    "IAnswerProvider",
    "ITicketNotifier",
    "AnswerSuggestion",
    # Services
    "NullTicketNotifier",
    "TicketService",
]
