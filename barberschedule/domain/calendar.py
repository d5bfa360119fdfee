"""
Business calendar: the weekly operating schedule plus holiday exceptions.

All wall-clock decisions are made in the configured timezone, so instants
coming from any zone are converted before their date and time-of-day are read.
"""

import math
from datetime import date, time
from typing import List

import pendulum
from pendulum import DateTime

from .models import BusinessHours, Holiday, TimeRange, Weekday


class BusinessCalendar:
    """
    Answers "is the shop open at this instant" and "where are the slot boundaries".

    The schedule is shared by every professional; ``professional_id`` arguments
    are accepted so callers can ask per lane without caring about that.
    """

    def __init__(self, hours: BusinessHours | None = None, timezone: str = "America/Sao_Paulo"):
        self._hours = hours or BusinessHours.default()
        self.timezone = timezone

    @property
    def hours(self) -> BusinessHours:
        return self._hours

    def update(self, hours: BusinessHours) -> None:
        """Swap in a new schedule. ``BusinessHours`` validates itself on construction."""
        self._hours = hours

    def local(self, instant: DateTime) -> DateTime:
        """Convert an instant to the calendar's timezone."""
        return pendulum.instance(instant).in_timezone(self.timezone)

    def is_holiday(self, day: date) -> bool:
        return self._hours.holiday_on(day) is not None

    def holiday_name(self, day: date) -> str | None:
        holiday: Holiday | None = self._hours.holiday_on(day)
        return holiday.name if holiday else None

    def is_operating_day(self, day: date) -> bool:
        """True for an active weekday that is not a holiday."""
        if self.is_holiday(day):
            return False
        return Weekday.of(day) in self._hours.active_weekdays

    def operating_range(self, day: date) -> TimeRange | None:
        """
        Get the opening hours of a specific day.
        Returns None if the shop is closed that day.
        """
        if not self.is_operating_day(day):
            return None

        return TimeRange(
            start=self._at(day, self._hours.opening_time),
            end=self._at(day, self._hours.closing_time),
        )

    def is_operating_at(self, professional_id: str | None, instant: DateTime) -> bool:
        """
        Check whether ``instant`` falls inside business hours.

        True iff the local date is not a holiday, its weekday is active and the
        local time-of-day lies in [opening_time, closing_time).
        """
        local = self.local(instant)
        window = self.operating_range(local.date())
        if window is None:
            return False
        return window.start <= local < window.end

    def is_operating_window(self, start: DateTime, end: DateTime) -> bool:
        """
        Check whether every instant of [start, end) is inside business hours.

        Opening hours are a single same-day window, so a range that crosses
        midnight can never fit. ``end`` may coincide with closing time.
        """
        if end <= start:
            return False

        local_start = self.local(start)
        window = self.operating_range(local_start.date())
        if window is None:
            return False

        return window.start <= local_start and self.local(end) <= window.end

    def next_valid_slot_boundary(self, instant: DateTime) -> DateTime:
        """
        Round ``instant`` up to the next slot boundary of its day.

        Boundaries are opening_time + k * slot_duration. Instants before opening
        round up to opening time. Weekdays and holidays are not consulted.
        """
        local = self.local(instant)
        opening = self._at(local.date(), self._hours.opening_time)
        if local <= opening:
            return opening

        step = self._hours.slot_duration_minutes * 60
        elapsed = (local - opening).total_seconds()
        slots = math.ceil(elapsed / step)

        return opening.add(seconds=slots * step)

    def slot_boundaries(self, day: date) -> List[DateTime]:
        """All slot start times of a day, empty when the shop is closed."""
        window = self.operating_range(day)
        if window is None:
            return []

        boundaries: List[DateTime] = []
        current = window.start
        while current < window.end:
            boundaries.append(current)
            current = current.add(minutes=self._hours.slot_duration_minutes)

        return boundaries

    def day_range(self, day: date) -> TimeRange:
        """The full local calendar day [00:00, next day 00:00)."""
        start = self._at(day, time(0, 0))
        return TimeRange(start=start, end=start.add(days=1))

    def _at(self, day: date, time_of_day: time) -> DateTime:
        return pendulum.datetime(
            day.year,
            day.month,
            day.day,
            time_of_day.hour,
            time_of_day.minute,
            tz=self.timezone,
        )
