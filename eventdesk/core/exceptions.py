"""
Core Exceptions
================

Custom exceptions for the application following clean architecture principles.

These exceptions define domain-specific errors that can be caught and handled
appropriately at the application boundaries.
"""

from typing import Optional, Any


class ApplicationException(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class DomainException(ApplicationException):
    """Base exception for domain logic violations."""


class RepositoryException(ApplicationException):
    """Base exception for repository/data access errors."""


class ValidationException(ApplicationException):
    """Exception for validation errors."""


class ResourceNotFoundException(ApplicationException):
    """Exception when a requested resource is not found."""

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[str] = None,
        details: Optional[dict] = None
    ):
        self.resource_type = resource_type
        self.resource_id = resource_id
        message = f"{resource_type}"
        if resource_id:
            message += f" with id '{resource_id}'"
        message += " not found"
        super().__init__(message, details)


class ConfigurationException(ApplicationException):
    """Exception for configuration errors."""


# ========== Ingestion ==========

class UnsupportedFormat(DomainException):
    """Raised when a document format is not one of pdf, docx, txt."""

    def __init__(self, declared_format: Optional[str], details: Optional[dict] = None):
        self.declared_format = declared_format
        super().__init__(
            f"Unsupported document format: {declared_format!r}",
            details or {"declared_format": declared_format}
        )


class CorruptDocument(DomainException):
    """Raised when parsing yields no recoverable text."""

    def __init__(self, reason: str, details: Optional[dict] = None):
        self.reason = reason
        super().__init__(f"Corrupt document: {reason}", details)


class InvalidChunkConfig(DomainException):
    """Raised when the chunk window/overlap pair is unusable."""

    def __init__(self, window_size: int, overlap: int):
        self.window_size = window_size
        self.overlap = overlap
        super().__init__(
            f"Invalid chunk config: window={window_size}, overlap={overlap} "
            "(need window > 0, 0 <= overlap < window)",
            {"window_size": window_size, "overlap": overlap}
        )


class AlreadyInProgress(DomainException):
    """Raised when a document is already being ingested."""

    def __init__(self, document_id: str):
        self.document_id = document_id
        super().__init__(
            f"Ingestion already in progress for document {document_id}",
            {"document_id": document_id}
        )


class EncoderVersionMismatch(DomainException):
    """Raised when a query vector and stored chunks come from different encoders."""

    def __init__(self, expected: str, found: str, event_id: Optional[str] = None):
        self.expected = expected
        self.found = found
        super().__init__(
            f"Encoder version mismatch: query uses {expected!r}, corpus has {found!r}",
            {"expected": expected, "found": found, "event_id": event_id}
        )


# ========== Tickets ==========

class TicketClosed(DomainException):
    """Raised on any mutation of a closed ticket."""

    def __init__(self, ticket_id: str):
        self.ticket_id = ticket_id
        super().__init__(f"Ticket {ticket_id} is closed", {"ticket_id": ticket_id})


class InvalidTicketTransition(DomainException):
    """Raised when an action is not allowed from the ticket's current status."""

    def __init__(self, ticket_id: str, from_status: str, action: str):
        self.ticket_id = ticket_id
        self.from_status = from_status
        self.action = action
        super().__init__(
            f"Cannot {action} ticket {ticket_id} from status '{from_status}'",
            {"ticket_id": ticket_id, "from_status": from_status, "action": action}
        )


# ========== External Services ==========

class ExternalServiceException(ApplicationException):
    """Base exception for external service failures."""

    def __init__(
        self,
        service_name: str,
        message: str,
        details: Optional[dict] = None
    ):
        self.service_name = service_name
        super().__init__(f"{service_name}: {message}", details)


class LLMException(ExternalServiceException):
    """Exception for LLM API failures."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__("LLM Service", message, details)


class GenerationUnavailable(ExternalServiceException):
    """Answer generation failed; callers downgrade to no automatic answer."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__("Answer Generation", message, details)


class BlobStoreException(ExternalServiceException):
    """Exception for blob storage failures."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__("Blob Store", message, details)


class NotificationException(ExternalServiceException):
    """Exception for outbound notification failures."""

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__("Notifier", message, details)
