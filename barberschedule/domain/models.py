"""
Domain models for business hours, occupied intervals and validation results.
"""

from dataclasses import dataclass, replace
from datetime import date, time
from enum import Enum
from typing import Dict, FrozenSet, Iterable, Tuple

from pendulum import DateTime

from .exceptions import ConfigurationError

ALLOWED_SLOT_DURATIONS = (15, 30, 60)


@dataclass(frozen=True)
class TimeRange:
    """
    Represents an immutable half-open time range [start, end).

    Invariant: start must be before end.
    """
    start: DateTime
    end: DateTime

    def __post_init__(self):
        if self.start >= self.end:
            raise ValueError(f"Start time {self.start} must be before end time {self.end}")

    def duration_minutes(self) -> int:
        """Return the duration in minutes."""
        return int((self.end - self.start).total_seconds() / 60)

    def overlaps(self, other: "TimeRange") -> bool:
        """Check if this range overlaps with another. Touching endpoints do not overlap."""
        return self.start < other.end and self.end > other.start

    def contains(self, other: "TimeRange") -> bool:
        """Check if ``other`` lies entirely within this range."""
        return self.start <= other.start and other.end <= self.end

    def __str__(self) -> str:
        return f"{self.start.format('DD.MM.YYYY HH:mm')} - {self.end.format('HH:mm')}"


class Weekday(str, Enum):
    """Days of the week, declared in ``date.weekday()`` order (Monday first)."""
    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"
    SUNDAY = "sunday"

    @classmethod
    def of(cls, day: date) -> "Weekday":
        """Return the weekday of a calendar date (or datetime)."""
        return list(cls)[day.weekday()]


@dataclass(frozen=True)
class Holiday:
    """A closed calendar date."""
    date: date
    name: str


@dataclass(frozen=True)
class BusinessHours:
    """
    The single shared operating schedule.

    Only same-day windows are supported: closing_time must be strictly after
    opening_time. Malformed values raise ``ConfigurationError`` on construction.
    """
    opening_time: time
    closing_time: time
    slot_duration_minutes: int = 30
    active_weekdays: FrozenSet[Weekday] = frozenset(
        {
            Weekday.MONDAY,
            Weekday.TUESDAY,
            Weekday.WEDNESDAY,
            Weekday.THURSDAY,
            Weekday.FRIDAY,
            Weekday.SATURDAY,
        }
    )
    holidays: Tuple[Holiday, ...] = ()

    def __post_init__(self):
        if self.closing_time <= self.opening_time:
            raise ConfigurationError(
                f"Closing time {self.closing_time:%H:%M} must be after "
                f"opening time {self.opening_time:%H:%M}"
            )
        if self.slot_duration_minutes not in ALLOWED_SLOT_DURATIONS:
            raise ConfigurationError(
                f"Slot duration must be one of {ALLOWED_SLOT_DURATIONS}, "
                f"got {self.slot_duration_minutes}"
            )
        if not self.active_weekdays:
            raise ConfigurationError("At least one weekday must be active")
        # Accept any iterable of weekdays/holidays but store them immutably and ordered.
        object.__setattr__(self, "active_weekdays", frozenset(Weekday(d) for d in self.active_weekdays))
        object.__setattr__(self, "holidays", tuple(sorted(self.holidays, key=lambda h: h.date)))

    @classmethod
    def default(cls) -> "BusinessHours":
        """Monday to Saturday, 08:00 - 20:00, 30 minute slots."""
        return cls(opening_time=time(8, 0), closing_time=time(20, 0))

    def holiday_on(self, day: date) -> Holiday | None:
        for holiday in self.holidays:
            if holiday.date == day:
                return holiday
        return None


class IntervalKind(str, Enum):
    APPOINTMENT = "appointment"
    BLOCKED_TIME = "blocked_time"


class AppointmentStatus(str, Enum):
    """
    Appointment lifecycle.

    scheduled -> confirmed -> completed, and scheduled|confirmed -> cancelled.
    Completed and cancelled are terminal.
    """
    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED)

    @property
    def occupies_capacity(self) -> bool:
        """Only scheduled and confirmed appointments block the professional's time."""
        return self in (AppointmentStatus.SCHEDULED, AppointmentStatus.CONFIRMED)

    def can_transition_to(self, target: "AppointmentStatus") -> bool:
        return target in _STATUS_TRANSITIONS[self]


_STATUS_TRANSITIONS: Dict[AppointmentStatus, FrozenSet[AppointmentStatus]] = {
    AppointmentStatus.SCHEDULED: frozenset({AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED}),
    AppointmentStatus.CONFIRMED: frozenset({AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED}),
    AppointmentStatus.COMPLETED: frozenset(),
    AppointmentStatus.CANCELLED: frozenset(),
}


@dataclass(frozen=True)
class Interval:
    """
    A half-open range [start, end) occupied in one professional's lane.

    Appointments carry a status; blocked time carries a title and the all-day flag.
    """
    id: str
    professional_id: str
    start: DateTime
    end: DateTime
    kind: IntervalKind
    status: AppointmentStatus | None = None
    is_all_day: bool = False
    client_id: str | None = None
    service_id: str | None = None
    title: str = ""
    description: str | None = None
    notes: str | None = None

    def __post_init__(self):
        if self.start >= self.end:
            raise ValueError(f"Start time {self.start} must be before end time {self.end}")
        if self.kind == IntervalKind.APPOINTMENT and self.status is None:
            raise ValueError("Appointments require a status")
        if self.kind == IntervalKind.BLOCKED_TIME and self.status is not None:
            raise ValueError("Blocked time has no status")

    @property
    def time_range(self) -> TimeRange:
        return TimeRange(start=self.start, end=self.end)

    @property
    def is_appointment(self) -> bool:
        return self.kind == IntervalKind.APPOINTMENT

    @property
    def is_active(self) -> bool:
        """Anything but a cancelled appointment."""
        return self.status != AppointmentStatus.CANCELLED

    @property
    def occupies_capacity(self) -> bool:
        """Whether this interval takes part in overlap checks."""
        if self.kind == IntervalKind.BLOCKED_TIME:
            return True
        return self.status.occupies_capacity

    def overlaps(self, start: DateTime, end: DateTime) -> bool:
        return self.start < end and start < self.end

    def with_status(self, status: AppointmentStatus) -> "Interval":
        return replace(self, status=status)

    def moved_to(self, start: DateTime, end: DateTime) -> "Interval":
        return replace(self, start=start, end=end)


class RejectReason(str, Enum):
    """Closed set of reasons a proposed change can be rejected for."""
    INVALID_RANGE = "invalid_range"
    TOO_SOON = "too_soon"
    OUTSIDE_BUSINESS_HOURS = "outside_business_hours"
    OVERLAP = "overlap"
    INVALID_STATE_TRANSITION = "invalid_state_transition"


@dataclass(frozen=True)
class Rejection:
    reason: RejectReason
    message: str
    conflicting_interval_id: str | None = None

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True)
class ValidationResult:
    """ACCEPT when ``rejection`` is None, otherwise REJECT(rejection)."""
    rejection: Rejection | None = None

    @property
    def accepted(self) -> bool:
        return self.rejection is None

    @classmethod
    def accept(cls) -> "ValidationResult":
        return cls()

    @classmethod
    def reject(
        cls,
        reason: RejectReason,
        message: str,
        conflicting_interval_id: str | None = None,
    ) -> "ValidationResult":
        return cls(
            rejection=Rejection(
                reason=reason,
                message=message,
                conflicting_interval_id=conflicting_interval_id,
            )
        )


@dataclass(frozen=True)
class Candidate:
    """A proposed interval awaiting validation."""
    professional_id: str
    start: DateTime
    end: DateTime
    kind: IntervalKind
    exclude_interval_id: str | None = None
    client_id: str | None = None


class ActorRole(str, Enum):
    CLIENT = "client"
    PROFESSIONAL = "professional"
    ADMIN = "admin"


def active_weekdays_from(names: Iterable[str]) -> FrozenSet[Weekday]:
    """Build a weekday set from lower-case English names."""
    return frozenset(Weekday(name.lower()) for name in names)
