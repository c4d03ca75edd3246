"""
Core Module
============

Shared core utilities and abstractions used across the application.

This module contains framework-agnostic code that defines the fundamental
building blocks of the system.
"""

from eventdesk.core.exceptions import (
    ApplicationException,
    DomainException,
    RepositoryException,
    ValidationException,
    ResourceNotFoundException,
    ConfigurationException,
    UnsupportedFormat,
    CorruptDocument,
    InvalidChunkConfig,
    AlreadyInProgress,
    EncoderVersionMismatch,
    TicketClosed,
    InvalidTicketTransition,
    ExternalServiceException,
    LLMException,
    GenerationUnavailable,
    BlobStoreException,
    NotificationException,
)

__all__ = [
    "ApplicationException",
    "DomainException",
    "RepositoryException",
    "ValidationException",
    "ResourceNotFoundException",
    "ConfigurationException",
    "UnsupportedFormat",
    "CorruptDocument",
    "InvalidChunkConfig",
    "AlreadyInProgress",
    "EncoderVersionMismatch",
    "TicketClosed",
    "InvalidTicketTransition",
    "ExternalServiceException",
    "LLMException",
    "GenerationUnavailable",
    "BlobStoreException",
    "NotificationException",
]
