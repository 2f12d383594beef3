"""Retrieval over conversation memory."""

from .relevance_search import RelevanceSearchEngine

__all__ = ["RelevanceSearchEngine"]
