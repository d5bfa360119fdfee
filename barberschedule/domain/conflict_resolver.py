"""
Decides whether a proposed appointment or blocked time may exist.

Checks run in a fixed order and the first failing one wins:

1. the range is non-empty (end > start)
2. appointments respect the minimum lead time, when one is configured
3. appointments fit inside business hours (blocked time is exempt)
4. nothing active overlaps in the professional's lane

Validation is a pure function of the calendar and the interval store; it never
mutates either.
"""

from datetime import timedelta
from typing import Callable, Tuple

import pendulum
from pendulum import DateTime

from .calendar import BusinessCalendar
from .interval_store import IntervalStore
from .models import Candidate, Interval, IntervalKind, RejectReason, ValidationResult


class ConflictResolver:
    """
    Validates candidates against ``BusinessCalendar`` and ``IntervalStore``.

    An appointment conflicts with any appointment or blocked time of the same
    professional. Blocked time only conflicts with other blocked time; it is
    allowed to cover existing appointments, which are left untouched.
    """

    def __init__(
        self,
        calendar: BusinessCalendar,
        store: IntervalStore,
        minimum_lead_time: timedelta | None = None,
        prevent_client_double_booking: bool = True,
        clock: Callable[[], DateTime] = pendulum.now,
    ):
        self.calendar = calendar
        self.store = store
        self.minimum_lead_time = minimum_lead_time
        self.prevent_client_double_booking = prevent_client_double_booking
        self._clock = clock

    def validate(self, candidate: Candidate) -> ValidationResult:
        """
        Validate a proposed interval.

        Args:
            candidate: Proposed professional/start/end/kind, optionally naming an
                interval to ignore (the one being moved or edited)

        Returns:
            ValidationResult.accept() or a rejection carrying the reason, a
            human-readable message and, for overlaps, the conflicting interval id
        """
        if candidate.end <= candidate.start:
            return ValidationResult.reject(
                RejectReason.INVALID_RANGE,
                f"End time {self._fmt(candidate.end)} must be after "
                f"start time {self._fmt(candidate.start)}.",
            )

        is_appointment = candidate.kind == IntervalKind.APPOINTMENT

        if is_appointment and self.is_too_soon(candidate.start):
            return ValidationResult.reject(
                RejectReason.TOO_SOON,
                f"Appointments must be booked at least "
                f"{int(self.minimum_lead_time.total_seconds() // 60)} minutes in advance.",
            )

        if is_appointment and not self.calendar.is_operating_window(candidate.start, candidate.end):
            return ValidationResult.reject(
                RejectReason.OUTSIDE_BUSINESS_HOURS,
                self._outside_hours_message(candidate),
            )

        conflict = self.find_lane_conflict(candidate)
        if conflict is not None:
            return ValidationResult.reject(
                RejectReason.OVERLAP,
                self._overlap_message(conflict),
                conflicting_interval_id=conflict.id,
            )

        if is_appointment and self.prevent_client_double_booking and candidate.client_id:
            client_conflict = self.store.find_client_conflict(
                candidate.client_id,
                candidate.start,
                candidate.end,
                exclude_interval_id=candidate.exclude_interval_id,
            )
            if client_conflict is not None:
                return ValidationResult.reject(
                    RejectReason.OVERLAP,
                    f"Client already has an appointment from "
                    f"{self._fmt(client_conflict.start)} to {self._fmt(client_conflict.end)} "
                    f"(appointment {client_conflict.id}).",
                    conflicting_interval_id=client_conflict.id,
                )

        return ValidationResult.accept()

    def is_too_soon(self, start: DateTime) -> bool:
        """Lead-time policy; disabled when no positive lead time is configured."""
        if not self.minimum_lead_time or self.minimum_lead_time <= timedelta(0):
            return False
        return start < self._clock() + self.minimum_lead_time

    @staticmethod
    def appointment_end(start: DateTime, duration: timedelta) -> DateTime:
        """Derive an appointment's end from its service duration."""
        if duration <= timedelta(0):
            raise ValueError(f"Service duration must be positive, got {duration}")
        return start + duration

    def expand_all_day(self, start: DateTime, end: DateTime) -> Tuple[DateTime, DateTime]:
        """
        Stretch [start, end) to cover every local calendar day it touches.

        A single date (end <= start on the same day) becomes that whole day.
        An end exactly at midnight is already a day boundary and is kept.
        """
        local_start = self.calendar.local(start)
        local_end = self.calendar.local(end)

        first_day = self.calendar.day_range(local_start.date()).start
        last_day = self.calendar.day_range(local_end.date()).start
        if local_end > last_day or last_day <= first_day:
            last_day = last_day.add(days=1)

        return first_day, last_day

    def find_lane_conflict(self, candidate: Candidate) -> Interval | None:
        """Earliest interval in the candidate's lane it may not overlap; blocked time only sees blocked time."""
        predicate = None
        if candidate.kind == IntervalKind.BLOCKED_TIME:
            predicate = _is_blocked_time

        return self.store.find_conflict(
            candidate.professional_id,
            candidate.start,
            candidate.end,
            exclude_interval_id=candidate.exclude_interval_id,
            predicate=predicate,
        )

    def _outside_hours_message(self, candidate: Candidate) -> str:
        local_start = self.calendar.local(candidate.start)
        day = local_start.date()
        holiday = self.calendar.holiday_name(day)
        if holiday:
            return f"{day.isoformat()} is a holiday ({holiday}); the shop is closed."
        if not self.calendar.is_operating_day(day):
            return f"The shop is closed on {local_start.format('dddd')}s."

        hours = self.calendar.hours
        return (
            f"{self._fmt(candidate.start)} - {self._fmt(candidate.end)} is outside business hours "
            f"({hours.opening_time:%H:%M} - {hours.closing_time:%H:%M})."
        )

    def _overlap_message(self, conflict: Interval) -> str:
        what = "appointment" if conflict.is_appointment else f"blocked time '{conflict.title}'"
        return (
            f"Overlaps existing {what} from {self._fmt(conflict.start)} "
            f"to {self._fmt(conflict.end)} (id {conflict.id})."
        )

    def _fmt(self, instant: DateTime) -> str:
        return self.calendar.local(instant).format("DD.MM.YYYY HH:mm")


def _is_blocked_time(interval: Interval) -> bool:
    return interval.kind == IntervalKind.BLOCKED_TIME
