"""
Services layer - Scheduling mutations and read-only calendar projection.
"""

from .presentation import CalendarEvent, PresentationAdapter
from .schedule_mutator import MutationResult, ScheduleMutator

__all__ = ["CalendarEvent", "MutationResult", "PresentationAdapter", "ScheduleMutator"]
