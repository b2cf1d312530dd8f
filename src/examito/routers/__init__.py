"""Router package exports."""

from . import cards, health, review

__all__ = [
    "cards",
    "health",
    "review",
]
