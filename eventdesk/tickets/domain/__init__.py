"""
Ticket Domain Layer
===================

Domain layer for the ticket module.

Contains:
- Entities: Ticket with its lifecycle transitions
"""

from eventdesk.tickets.domain.entities import Ticket

__all__ = ["Ticket"]
