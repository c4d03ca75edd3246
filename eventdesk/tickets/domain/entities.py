"""
Ticket Domain Entities
======================

Pure Python domain entity for attendee support tickets.

The Ticket owns its state machine:

    open -> answered (auto or human reply)
    open -> flagged
    open | answered -> closed
    flagged -> answered (human reply)
    flagged -> closed (only once a human answer exists)

Nothing leaves ``closed``.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from eventdesk.config import TicketStatus
from eventdesk.core import DomainException, InvalidTicketTransition, TicketClosed, ValidationException


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Ticket:
    """
    Ticket entity representing an attendee question for an event.

    ``answer`` is written only by a human reply and takes precedence over
    ``auto_answer`` wherever the ticket is displayed.
    """

    # Core attributes
    id: str
    event_id: str
    question: str
    status: str = TicketStatus.OPEN

    # Automatic answer (written at most once, right after creation)
    auto_answer: Optional[str] = None
    auto_answer_score: Optional[float] = None

    # Human answer
    answer: Optional[str] = None

    # Timestamps
    created_at: datetime = field(default_factory=_now)
    answered_at: Optional[datetime] = None
    flagged_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if not self.question or not self.question.strip():
            raise ValidationException("question must not be empty")

    @property
    def is_closed(self) -> bool:
        return self.status == TicketStatus.CLOSED

    @property
    def is_auto_answered(self) -> bool:
        return self.status == TicketStatus.ANSWERED and self.answer is None

    @property
    def display_answer(self) -> Optional[str]:
        """Human answer when present, otherwise the automatic one."""
        return self.answer if self.answer is not None else self.auto_answer

    def _ensure_open_for_changes(self) -> None:
        if self.is_closed:
            raise TicketClosed(self.id)

    def apply_auto_answer(
        self,
        auto_answer: Optional[str],
        score: Optional[float],
        min_confidence: float,
        timestamp: Optional[datetime] = None
    ) -> bool:
        """
        Record the answer engine result.

        Returns True if the ticket moved to ``answered``.
        """
        self._ensure_open_for_changes()
        if self.auto_answer is not None or self.auto_answer_score is not None:
            raise DomainException(f"Ticket {self.id} already has an automatic answer")
        if self.status != TicketStatus.OPEN:
            raise InvalidTicketTransition(self.id, self.status, "auto-answer")

        if auto_answer is None or score is None or score < min_confidence:
            return False

        self.auto_answer = auto_answer
        self.auto_answer_score = score
        self.status = TicketStatus.ANSWERED
        self.answered_at = timestamp or _now()
        self.updated_at = self.answered_at
        return True

    def reply(self, answer_text: str, timestamp: Optional[datetime] = None) -> None:
        """Human reply; allowed from any status except closed."""
        self._ensure_open_for_changes()
        if not answer_text or not answer_text.strip():
            raise ValidationException("answer must not be empty")

        self.answer = answer_text.strip()
        self.status = TicketStatus.ANSWERED
        self.answered_at = timestamp or _now()
        self.updated_at = self.answered_at

    def flag(self, timestamp: Optional[datetime] = None) -> None:
        """Escalate an unanswered ticket for an organizer."""
        self._ensure_open_for_changes()
        if self.status != TicketStatus.OPEN:
            raise InvalidTicketTransition(self.id, self.status, "flag")

        self.status = TicketStatus.FLAGGED
        self.flagged_at = timestamp or _now()
        self.updated_at = self.flagged_at

    def close(self, timestamp: Optional[datetime] = None) -> None:
        """Close the ticket; a flagged ticket needs a human answer first."""
        self._ensure_open_for_changes()
        if self.status == TicketStatus.FLAGGED and self.answer is None:
            raise InvalidTicketTransition(self.id, self.status, "close")

        self.status = TicketStatus.CLOSED
        self.closed_at = timestamp or _now()
        self.updated_at = self.closed_at
