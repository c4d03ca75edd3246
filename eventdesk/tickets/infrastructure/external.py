"""
Ticket External Service Integrations
====================================

- Bridge from the knowledge module's AnswerEngine to IAnswerProvider
- Webhook notifier delivering answers to the attendee's channel
"""

import asyncio
import time
from typing import Any, Dict, Optional

import httpx

from eventdesk.core import NotificationException
from eventdesk.knowledge.application import AnswerEngine
from eventdesk.shared.infrastructure.logging import get_logger
from eventdesk.tickets.application import AnswerSuggestion, IAnswerProvider, ITicketNotifier
from eventdesk.tickets.domain import Ticket

logger = get_logger(__name__)


class AnswerEngineProvider(IAnswerProvider):
    """Adapter exposing the knowledge AnswerEngine to the ticket module."""

    def __init__(self, engine: AnswerEngine):
        self._engine = engine

    @property
    def min_confidence(self) -> float:
        return self._engine.min_confidence

    async def answer(self, event_id: str, question: str) -> AnswerSuggestion:
        result = await self._engine.answer(event_id, question)
        return AnswerSuggestion(auto_answer=result.auto_answer, score=result.score)


class CircuitState:
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Stops calling a failing webhook for a while.

    States:
    - CLOSED: calls pass through
    - OPEN: after N consecutive failed deliveries, calls are skipped
    - HALF_OPEN: after the recovery timeout, one call is let through
    """

    def __init__(self, failure_threshold: int = 5, recovery_timeout: float = 60.0):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._opened_at: Optional[float] = None

    @property
    def state(self) -> str:
        if self._state == CircuitState.OPEN and self._opened_at is not None:
            if time.monotonic() - self._opened_at >= self.recovery_timeout:
                self._state = CircuitState.HALF_OPEN
        return self._state

    def allow_request(self) -> bool:
        return self.state in (CircuitState.CLOSED, CircuitState.HALF_OPEN)

    def record_success(self) -> None:
        self._failure_count = 0
        self._state = CircuitState.CLOSED

    def record_failure(self) -> None:
        self._failure_count += 1
        if self._failure_count >= self.failure_threshold or self._state == CircuitState.HALF_OPEN:
            self._state = CircuitState.OPEN
            self._opened_at = time.monotonic()
            logger.warning(
                "Circuit breaker opened",
                extra={
                    "failure_count": self._failure_count,
                    "recovery_timeout": self.recovery_timeout
                }
            )


class WebhookTicketNotifier(ITicketNotifier):
    """
    Posts answered tickets to a webhook with retry and circuit breaker.

    Handles:
    - Exponential backoff between attempts
    - Timeout handling
    - Skipping delivery while the circuit is open
    """

    def __init__(
        self,
        webhook_url: str,
        timeout_seconds: float = 5.0,
        max_retries: int = 3,
        backoff_base: float = 1.0,
        http_client: Optional[httpx.AsyncClient] = None,
        circuit_breaker: Optional[CircuitBreaker] = None
    ):
        self._webhook_url = webhook_url
        self._timeout = timeout_seconds
        self._max_retries = max_retries
        self._backoff_base = backoff_base
        self._http_client = http_client
        self._owns_client = http_client is None
        self._circuit_breaker = circuit_breaker or CircuitBreaker()

    async def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._timeout)
        return self._http_client

    @staticmethod
    def build_payload(ticket: Ticket) -> Dict[str, Any]:
        return {
            "ticket_id": ticket.id,
            "event_id": ticket.event_id,
            "question": ticket.question,
            "answer": ticket.display_answer,
            "status": ticket.status,
            "source": "human" if ticket.answer is not None else "auto",
        }

    async def notify_answered(self, ticket: Ticket) -> bool:
        """
        Send the ticket's answer to the webhook.

        Returns:
            True if delivered, False if retries ran out or the circuit is open

        Raises:
            NotificationException: The webhook permanently rejected the payload (4xx)
        """
        if not self._circuit_breaker.allow_request():
            logger.warning(
                "Circuit breaker open, skipping ticket notification",
                extra={"ticket_id": ticket.id}
            )
            return False

        payload = self.build_payload(ticket)

        for attempt in range(self._max_retries):
            try:
                client = await self._get_client()
                response = await client.post(self._webhook_url, json=payload, timeout=self._timeout)

                if response.is_success:
                    self._circuit_breaker.record_success()
                    logger.info(
                        "Ticket notification sent",
                        extra={"ticket_id": ticket.id, "attempt": attempt + 1}
                    )
                    return True

                logger.warning(
                    "Webhook returned non-success status",
                    extra={
                        "ticket_id": ticket.id,
                        "status_code": response.status_code,
                        "attempt": attempt + 1
                    }
                )
                if response.is_client_error and response.status_code != 429:
                    self._circuit_breaker.record_failure()
                    raise NotificationException(
                        f"Webhook rejected notification with status {response.status_code}",
                        {"ticket_id": ticket.id, "status_code": response.status_code}
                    )

            except httpx.HTTPError as e:
                logger.warning(
                    "Ticket notification failed",
                    extra={
                        "ticket_id": ticket.id,
                        "error": str(e),
                        "attempt": attempt + 1
                    }
                )

            if attempt < self._max_retries - 1:
                await asyncio.sleep(self._backoff_base * (2 ** attempt))

        self._circuit_breaker.record_failure()
        return False

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client is not None and self._owns_client:
            await self._http_client.aclose()
        self._http_client = None
