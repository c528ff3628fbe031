"""Draft validation package."""

from emi_tracker.validation.validator import EntryValidator

__all__ = ["EntryValidator"]
