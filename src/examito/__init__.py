"""Spaced-repetition flashcard review service."""
