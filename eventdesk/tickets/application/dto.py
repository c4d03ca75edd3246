"""
Ticket Application DTOs
=======================

Pydantic models for ticket requests and responses.
"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from eventdesk.tickets.domain import Ticket

TicketStatusStr = Literal["open", "answered", "flagged", "closed"]


# ========== Request DTOs ==========

class CreateTicketRequest(BaseModel):
    """Request model for an attendee question."""
    event_id: str = Field(..., min_length=1, description="Event the question is about")
    question: str = Field(..., min_length=1, description="Attendee question")

    @field_validator("question")
    @classmethod
    def validate_question(cls, v: str) -> str:
        """Reject blank and overly long questions."""
        v = v.strip()
        if not v:
            raise ValueError("question must not be blank")
        if len(v) > 4000:
            raise ValueError("Question too long (max 4000 characters)")
        return v


class ReplyRequest(BaseModel):
    """Request model for an organizer reply."""
    ticket_id: str = Field(..., min_length=1)
    answer: str = Field(..., min_length=1, max_length=8000)

    @field_validator("answer")
    @classmethod
    def validate_answer(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("answer must not be blank")
        return v.strip()


# ========== Response DTOs ==========

class TicketDTO(BaseModel):
    """Ticket as returned to callers and dashboards."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    event_id: str
    question: str
    status: TicketStatusStr
    auto_answer: Optional[str] = None
    auto_answer_score: Optional[float] = None
    answer: Optional[str] = None
    display_answer: Optional[str] = None
    created_at: datetime
    answered_at: Optional[datetime] = None
    flagged_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None

    @classmethod
    def from_entity(cls, ticket: Ticket) -> "TicketDTO":
        return cls.model_validate(ticket)
