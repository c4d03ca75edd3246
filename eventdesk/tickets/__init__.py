"""
Tickets Module
==============

Bounded context for attendee questions: ticket lifecycle, automatic
answers and organizer replies.
"""
