"""
Infrastructure Layer
====================

Technical adapters shared by the bounded contexts:
- database: async SQLAlchemy engine and sessions
- llm: embedding and chat-completion clients
- storage: blob storage for raw uploads
"""
