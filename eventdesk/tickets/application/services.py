"""
Ticket Application Services
===========================

Application services orchestrate the ticket state machine and coordinate
with the ticket repository, the answer provider and the notifier.

Following SOLID principles:
- Single Responsibility: TicketService owns ticket lifecycle operations only
- Dependency Inversion: answering and notification are interfaces, so the
  knowledge module and the webhook transport stay swappable
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional
from uuid import uuid4

from eventdesk.config import VALID_TICKET_STATUSES
from eventdesk.core import NotificationException, ResourceNotFoundException, ValidationException
from eventdesk.shared.infrastructure.logging import get_context_logger, get_logger
from eventdesk.tickets.domain import Ticket

logger = get_logger(__name__)


# ========== Repository Interfaces (Dependency Inversion) ==========

class ITicketRepository(ABC):
    """Interface for ticket data access."""

    @abstractmethod
    async def get(self, ticket_id: str) -> Optional[Ticket]:
        """Get ticket by ID."""

    @abstractmethod
    async def create(self, ticket: Ticket) -> Ticket:
        """Persist a new ticket."""

    @abstractmethod
    async def save(self, ticket: Ticket) -> Ticket:
        """Persist the current state of an existing ticket."""

    @abstractmethod
    async def list_by_event(self, event_id: str, status: Optional[str] = None) -> List[Ticket]:
        """List an event's tickets, newest first."""


@dataclass(frozen=True)
class AnswerSuggestion:
    """Automatic answer offered for a new ticket; both fields None when declined."""

    auto_answer: Optional[str] = None
    score: Optional[float] = None


class IAnswerProvider(ABC):
    """Interface for automatic answering."""

    @property
    @abstractmethod
    def min_confidence(self) -> float:
        """Score required before a suggestion answers a ticket."""

    @abstractmethod
    async def answer(self, event_id: str, question: str) -> AnswerSuggestion:
        """Suggest an answer for a question."""


class ITicketNotifier(ABC):
    """Delivers answers back to the attendee's channel."""

    @abstractmethod
    async def notify_answered(self, ticket: Ticket) -> bool:
        """Announce that a ticket has an answer. Returns False if not delivered."""

    async def close(self) -> None:
        """Release transport resources."""


class NullTicketNotifier(ITicketNotifier):
    """Notifier used when no outbound channel is configured."""

    async def notify_answered(self, ticket: Ticket) -> bool:
        logger.debug("No notifier configured", extra={"ticket_id": ticket.id})
        return False


# ========== Application Services ==========

class TicketService:
    """
    Ticket lifecycle operations.

    Ticket creation never fails because automatic answering failed; the
    ticket simply stays open.
    """

    def __init__(
        self,
        ticket_repository: ITicketRepository,
        answer_provider: IAnswerProvider,
        notifier: Optional[ITicketNotifier] = None
    ):
        self._ticket_repo = ticket_repository
        self._answer_provider = answer_provider
        self._notifier = notifier or NullTicketNotifier()

    async def create_ticket(self, event_id: str, question: str) -> Ticket:
        """
        Create a ticket and try to answer it automatically.

        Returns:
            Ticket with status ``answered`` or ``open``
        """
        if not event_id:
            raise ValidationException("event_id is required")

        ticket = await self._ticket_repo.create(Ticket(
            id=str(uuid4()),
            event_id=event_id,
            question=(question or "").strip(),
        ))
        log = get_context_logger(__name__, ticket.id)
        log.info("Ticket created", extra={"ticket_id": ticket.id, "event_id": event_id})

        try:
            suggestion = await self._answer_provider.answer(event_id, ticket.question)
        except Exception:
            log.warning(
                "Answer provider failed, ticket left open",
                extra={"ticket_id": ticket.id, "event_id": event_id},
                exc_info=True
            )
            return ticket

        answered = ticket.apply_auto_answer(
            suggestion.auto_answer,
            suggestion.score,
            self._answer_provider.min_confidence
        )
        if not answered:
            return ticket

        ticket = await self._ticket_repo.save(ticket)
        log.info(
            "Ticket transitioned",
            extra={
                "ticket_id": ticket.id,
                "from_status": "open",
                "to_status": ticket.status,
                "action": "auto_answer",
                "score": round(ticket.auto_answer_score, 4),
            }
        )
        await self._notify(ticket)
        return ticket

    async def reply_to_ticket(self, ticket_id: str, answer_text: str) -> Ticket:
        """Record a human reply. Raises TicketClosed on a closed ticket."""
        ticket = await self.get_ticket(ticket_id)
        previous = ticket.status
        ticket.reply(answer_text)
        ticket = await self._ticket_repo.save(ticket)
        self._log_transition(ticket, previous, "reply")
        await self._notify(ticket)
        return ticket

    async def flag_ticket(self, ticket_id: str) -> Ticket:
        """Escalate an open ticket."""
        ticket = await self.get_ticket(ticket_id)
        previous = ticket.status
        ticket.flag()
        ticket = await self._ticket_repo.save(ticket)
        self._log_transition(ticket, previous, "flag")
        return ticket

    async def close_ticket(self, ticket_id: str) -> Ticket:
        ticket = await self.get_ticket(ticket_id)
        previous = ticket.status
        ticket.close()
        ticket = await self._ticket_repo.save(ticket)
        self._log_transition(ticket, previous, "close")
        return ticket

    async def get_ticket(self, ticket_id: str) -> Ticket:
        ticket = await self._ticket_repo.get(ticket_id)
        if ticket is None:
            raise ResourceNotFoundException("Ticket", ticket_id)
        return ticket

    async def list_tickets(self, event_id: str, status: Optional[str] = None) -> List[Ticket]:
        if status is not None and status not in VALID_TICKET_STATUSES:
            raise ValidationException(f"Unknown ticket status: {status}")
        return await self._ticket_repo.list_by_event(event_id, status)

    async def _notify(self, ticket: Ticket) -> None:
        try:
            await self._notifier.notify_answered(ticket)
        except NotificationException as e:
            logger.warning(
                "Ticket notification failed",
                extra={"ticket_id": ticket.id, "error": e.message}
            )
        except Exception:
            logger.exception("Ticket notifier crashed", extra={"ticket_id": ticket.id})

    @staticmethod
    def _log_transition(ticket: Ticket, previous: str, action: str) -> None:
        logger.info(
            "Ticket transitioned",
            extra={
                "ticket_id": ticket.id,
                "event_id": ticket.event_id,
                "from_status": previous,
                "to_status": ticket.status,
                "action": action,
            }
        )
