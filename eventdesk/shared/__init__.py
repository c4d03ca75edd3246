"""
Shared Kernel Module
====================

Shared infrastructure used across the bounded contexts (Knowledge and Tickets).

Architecture Pattern: Modular Monolith
- Each module (knowledge, tickets) is a bounded context
- Shared kernel contains only generic infrastructure

DO NOT add business logic from Knowledge or Tickets to shared kernel.
"""

__version__ = "1.0.0"
