"""Tests for the ticket state machine and TicketService."""
import logging
from datetime import datetime, timedelta, timezone

import pytest

from eventdesk.config import TicketStatus
from eventdesk.core import (
    DomainException,
    InvalidTicketTransition,
    NotificationException,
    ResourceNotFoundException,
    TicketClosed,
    ValidationException,
)
from eventdesk.tickets.application import (
    AnswerSuggestion,
    IAnswerProvider,
    ITicketNotifier,
    TicketService,
)
from eventdesk.tickets.domain import Ticket

from conftest import EVENT_ID


class StubProvider(IAnswerProvider):
    def __init__(self, suggestion=None, error=None, min_confidence=0.75):
        self.suggestion = suggestion or AnswerSuggestion()
        self.error = error
        self._min_confidence = min_confidence
        self.calls = []

    @property
    def min_confidence(self) -> float:
        return self._min_confidence

    async def answer(self, event_id, question):
        self.calls.append((event_id, question))
        if self.error is not None:
            raise self.error
        return self.suggestion


class RecordingNotifier(ITicketNotifier):
    def __init__(self, error=None):
        self.error = error
        self.notified = []

    async def notify_answered(self, ticket):
        self.notified.append(ticket)
        if self.error is not None:
            raise self.error
        return True


def new_ticket(**kwargs) -> Ticket:
    kwargs.setdefault("id", "t-1")
    kwargs.setdefault("event_id", EVENT_ID)
    kwargs.setdefault("question", "Where is parking?")
    return Ticket(**kwargs)


class TestTicketEntity:
    """Tests for Ticket transitions."""

    def test_new_ticket_is_open(self):
        ticket = new_ticket()

        assert ticket.status == TicketStatus.OPEN
        assert ticket.display_answer is None

    def test_empty_question_rejected(self):
        with pytest.raises(ValidationException):
            new_ticket(question="   ")

    def test_confident_auto_answer(self):
        ticket = new_ticket()

        moved = ticket.apply_auto_answer("Lot B.", 0.91, min_confidence=0.75)

        assert moved
        assert ticket.status == TicketStatus.ANSWERED
        assert ticket.auto_answer == "Lot B."
        assert ticket.auto_answer_score == 0.91
        assert ticket.answered_at is not None
        assert ticket.is_auto_answered

    def test_low_confidence_auto_answer_ignored(self):
        ticket = new_ticket()

        moved = ticket.apply_auto_answer("Maybe Lot B.", 0.5, min_confidence=0.75)

        assert not moved
        assert ticket.status == TicketStatus.OPEN
        assert ticket.auto_answer is None
        assert ticket.auto_answer_score is None

    def test_declined_auto_answer_ignored(self):
        ticket = new_ticket()

        assert not ticket.apply_auto_answer(None, None, min_confidence=0.75)
        assert ticket.status == TicketStatus.OPEN

    def test_auto_answer_written_once(self):
        ticket = new_ticket()
        ticket.apply_auto_answer("Lot B.", 0.9, min_confidence=0.75)

        with pytest.raises(DomainException):
            ticket.apply_auto_answer("Lot C.", 0.95, min_confidence=0.75)

    def test_reply_from_open(self):
        ticket = new_ticket()

        ticket.reply("  Use Lot B.  ")

        assert ticket.status == TicketStatus.ANSWERED
        assert ticket.answer == "Use Lot B."
        assert not ticket.is_auto_answered

    def test_reply_overrides_auto_answer_for_display(self):
        ticket = new_ticket()
        ticket.apply_auto_answer("Lot B.", 0.9, min_confidence=0.75)

        ticket.reply("Lot B is full, use Lot C.")

        assert ticket.auto_answer == "Lot B."
        assert ticket.display_answer == "Lot B is full, use Lot C."

    def test_reply_from_flagged(self):
        ticket = new_ticket()
        ticket.flag()

        ticket.reply("Organizer answer.")

        assert ticket.status == TicketStatus.ANSWERED

    def test_empty_reply_rejected(self):
        with pytest.raises(ValidationException):
            new_ticket().reply("  ")

    def test_flag_from_open(self):
        ticket = new_ticket()
        stamp = datetime(2026, 5, 1, 10, tzinfo=timezone.utc)

        ticket.flag(timestamp=stamp)

        assert ticket.status == TicketStatus.FLAGGED
        assert ticket.flagged_at == stamp

    @pytest.mark.parametrize("prepare", ["answered", "flagged"])
    def test_flag_only_from_open(self, prepare):
        ticket = new_ticket()
        if prepare == "answered":
            ticket.reply("Done.")
        else:
            ticket.flag()

        with pytest.raises(InvalidTicketTransition) as exc_info:
            ticket.flag()

        assert exc_info.value.from_status == prepare

    def test_close_from_open_and_answered(self):
        opened = new_ticket(id="t-1")
        answered = new_ticket(id="t-2")
        answered.reply("Done.")

        opened.close()
        answered.close()

        assert opened.status == answered.status == TicketStatus.CLOSED
        assert opened.closed_at is not None

    def test_close_flagged_requires_human_answer(self):
        ticket = new_ticket()
        ticket.flag()

        with pytest.raises(InvalidTicketTransition):
            ticket.close()

    @pytest.mark.parametrize("action", [
        lambda t: t.reply("Late answer."),
        lambda t: t.flag(),
        lambda t: t.close(),
        lambda t: t.apply_auto_answer("x", 0.99, min_confidence=0.75),
    ])
    def test_closed_ticket_is_terminal(self, action):
        ticket = new_ticket()
        ticket.close()

        with pytest.raises(TicketClosed):
            action(ticket)

        assert ticket.status == TicketStatus.CLOSED


class TestTicketService:
    """Tests for TicketService."""

    async def test_confident_suggestion_answers_ticket(self, ticket_repo):
        provider = StubProvider(AnswerSuggestion(auto_answer="Lot B.", score=0.9))
        notifier = RecordingNotifier()
        service = TicketService(ticket_repo, provider, notifier)

        ticket = await service.create_ticket(EVENT_ID, "  Where is parking?  ")

        assert ticket.status == TicketStatus.ANSWERED
        assert ticket.question == "Where is parking?"
        assert ticket.auto_answer == "Lot B."
        assert provider.calls == [(EVENT_ID, "Where is parking?")]
        assert [t.id for t in notifier.notified] == [ticket.id]
        stored = await ticket_repo.get(ticket.id)
        assert stored.status == TicketStatus.ANSWERED

    async def test_declined_suggestion_leaves_ticket_open(self, ticket_repo):
        notifier = RecordingNotifier()
        service = TicketService(ticket_repo, StubProvider(), notifier)

        ticket = await service.create_ticket(EVENT_ID, "Is there a cloakroom?")

        assert ticket.status == TicketStatus.OPEN
        assert ticket.auto_answer is None
        assert notifier.notified == []
        assert (await ticket_repo.get(ticket.id)).status == TicketStatus.OPEN

    async def test_low_score_leaves_ticket_open(self, ticket_repo):
        provider = StubProvider(AnswerSuggestion(auto_answer="Guess.", score=0.4))
        service = TicketService(ticket_repo, provider)

        ticket = await service.create_ticket(EVENT_ID, "Anything?")

        assert ticket.status == TicketStatus.OPEN
        assert ticket.auto_answer_score is None

    async def test_provider_failure_leaves_ticket_open(self, ticket_repo, caplog):
        service = TicketService(ticket_repo, StubProvider(error=RuntimeError("index offline")))

        with caplog.at_level(logging.WARNING):
            ticket = await service.create_ticket(EVENT_ID, "Where is parking?")

        assert ticket.status == TicketStatus.OPEN
        assert await ticket_repo.get(ticket.id) is not None
        assert any(r.getMessage() == "Answer provider failed, ticket left open" for r in caplog.records)

    async def test_empty_question_rejected(self, ticket_repo):
        service = TicketService(ticket_repo, StubProvider())

        with pytest.raises(ValidationException):
            await service.create_ticket(EVENT_ID, "   ")

    async def test_notifier_failure_does_not_fail_creation(self, ticket_repo, caplog):
        provider = StubProvider(AnswerSuggestion(auto_answer="Lot B.", score=0.9))
        notifier = RecordingNotifier(error=NotificationException("webhook rejected"))
        service = TicketService(ticket_repo, provider, notifier)

        with caplog.at_level(logging.WARNING):
            ticket = await service.create_ticket(EVENT_ID, "Where is parking?")

        assert ticket.status == TicketStatus.ANSWERED
        assert any(r.getMessage() == "Ticket notification failed" for r in caplog.records)

    async def test_notifier_crash_is_contained(self, ticket_repo):
        service = TicketService(ticket_repo, StubProvider(), RecordingNotifier(error=RuntimeError("bug")))
        ticket = await service.create_ticket(EVENT_ID, "Where is parking?")

        replied = await service.reply_to_ticket(ticket.id, "Lot B.")

        assert replied.status == TicketStatus.ANSWERED

    async def test_reply_flag_close_flow(self, ticket_repo):
        notifier = RecordingNotifier()
        service = TicketService(ticket_repo, StubProvider(), notifier)
        ticket = await service.create_ticket(EVENT_ID, "Can I bring a guest?")

        flagged = await service.flag_ticket(ticket.id)
        replied = await service.reply_to_ticket(ticket.id, "Yes, register them at the desk.")
        closed = await service.close_ticket(ticket.id)

        assert flagged.status == TicketStatus.FLAGGED
        assert replied.status == TicketStatus.ANSWERED
        assert closed.status == TicketStatus.CLOSED
        assert closed.display_answer == "Yes, register them at the desk."
        assert [t.status for t in notifier.notified] == [TicketStatus.ANSWERED]

        with pytest.raises(TicketClosed):
            await service.reply_to_ticket(ticket.id, "Too late.")
        assert (await service.get_ticket(ticket.id)).status == TicketStatus.CLOSED

    async def test_flag_answered_ticket_rejected(self, ticket_repo):
        provider = StubProvider(AnswerSuggestion(auto_answer="Lot B.", score=0.95))
        service = TicketService(ticket_repo, provider)
        ticket = await service.create_ticket(EVENT_ID, "Where is parking?")

        with pytest.raises(InvalidTicketTransition):
            await service.flag_ticket(ticket.id)

    async def test_unknown_ticket(self, ticket_repo):
        service = TicketService(ticket_repo, StubProvider())

        with pytest.raises(ResourceNotFoundException):
            await service.reply_to_ticket("missing", "Hello")
        with pytest.raises(ResourceNotFoundException):
            await service.flag_ticket("missing")

    async def test_list_newest_first_with_status_filter(self, ticket_repo):
        base = datetime(2026, 5, 1, tzinfo=timezone.utc)
        for n, status in enumerate([TicketStatus.OPEN, TicketStatus.ANSWERED, TicketStatus.OPEN]):
            await ticket_repo.create(new_ticket(
                id=f"t-{n}", status=status, created_at=base + timedelta(minutes=n)
            ))
        await ticket_repo.create(new_ticket(id="t-other", event_id="evt-2"))
        service = TicketService(ticket_repo, StubProvider())

        everything = await service.list_tickets(EVENT_ID)
        open_only = await service.list_tickets(EVENT_ID, status=TicketStatus.OPEN)

        assert [t.id for t in everything] == ["t-2", "t-1", "t-0"]
        assert [t.id for t in open_only] == ["t-2", "t-0"]

    async def test_list_rejects_unknown_status(self, ticket_repo):
        service = TicketService(ticket_repo, StubProvider())

        with pytest.raises(ValidationException):
            await service.list_tickets(EVENT_ID, status="archived")
