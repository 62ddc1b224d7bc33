"""Conversation checkpoint store and hybrid retrieval engine for a personal knowledge assistant."""

__version__ = "0.1.0"
