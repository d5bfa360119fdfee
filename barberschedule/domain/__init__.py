"""
Domain layer - Pure scheduling logic without external dependencies.
"""

from .calendar import BusinessCalendar
from .conflict_resolver import ConflictResolver
from .interval_store import IntervalStore
from .models import (
    ActorRole,
    AppointmentStatus,
    BusinessHours,
    Candidate,
    Holiday,
    Interval,
    IntervalKind,
    RejectReason,
    Rejection,
    TimeRange,
    ValidationResult,
    Weekday,
)
from .slot_calculator import SlotCalculator

__all__ = [
    "ActorRole",
    "AppointmentStatus",
    "BusinessCalendar",
    "BusinessHours",
    "Candidate",
    "ConflictResolver",
    "Holiday",
    "Interval",
    "IntervalKind",
    "IntervalStore",
    "RejectReason",
    "Rejection",
    "SlotCalculator",
    "TimeRange",
    "ValidationResult",
    "Weekday",
]
