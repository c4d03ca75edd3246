"""
Knowledge Module
================

Bounded context for event reference documents: extraction, chunking,
embedding, corpus search and automatic answers.
"""
