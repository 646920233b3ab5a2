"""Query suggestions."""

from .service import SuggestionService

__all__ = ["SuggestionService"]
