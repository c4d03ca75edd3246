"""
EventDesk
=========

Event support desk: retrieval-based automatic answers for attendee
questions, backed by organizer-supplied documents.
"""

__version__ = "1.0.0"
