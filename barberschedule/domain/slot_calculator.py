"""
Free-slot search for a professional's day.

Pure domain logic without any external dependencies (no API calls, no
database, no I/O): the busy times come from the ``IntervalStore`` cache.
"""

from datetime import date, timedelta
from typing import List

from pendulum import DateTime

from .calendar import BusinessCalendar
from .conflict_resolver import ConflictResolver
from .interval_store import IntervalStore
from .models import TimeRange


class SlotCalculator:
    """
    Calculates bookable start times based on busy intervals and business hours.

    Algorithm:
    1. Take the day's opening hours as the working block
    2. Subtract every interval that occupies the professional's capacity
    3. Keep slot-aligned starts whose [start, start + duration) fits in a free range
    4. Drop starts that violate the minimum lead time
    """

    def __init__(self, calendar: BusinessCalendar, store: IntervalStore, resolver: ConflictResolver):
        self.calendar = calendar
        self.store = store
        self.resolver = resolver

    def free_ranges(self, professional_id: str, day: date) -> List[TimeRange]:
        """Free time within the day's business hours for one professional."""
        working_block = self.calendar.operating_range(day)
        if working_block is None:
            return []

        busy = [
            interval.time_range
            for interval in self.store.query(professional_id, working_block.start, working_block.end)
            if interval.occupies_capacity
        ]
        if not busy:
            return [working_block]

        return self._subtract_busy_from_block(working_block, busy)

    def available_slots(
        self,
        professional_id: str,
        day: date,
        duration: timedelta,
    ) -> List[TimeRange]:
        """
        Find every bookable slot of ``duration`` for a professional on ``day``.

        Args:
            professional_id: Lane to search
            day: Local calendar date
            duration: Service duration

        Returns:
            Slot-aligned TimeRanges in chronological order
        """
        if duration <= timedelta(0):
            raise ValueError(f"Duration must be positive, got {duration}")

        free = self.free_ranges(professional_id, day)
        slots: List[TimeRange] = []

        for start in self.calendar.slot_boundaries(day):
            candidate = TimeRange(start=start, end=start + duration)
            if self.resolver.is_too_soon(start):
                continue
            if any(free_range.contains(candidate) for free_range in free):
                slots.append(candidate)

        return slots

    def next_available_start(
        self,
        professional_id: str,
        after: DateTime,
        duration: timedelta,
        horizon_days: int = 14,
    ) -> DateTime | None:
        """
        First bookable slot start at or after ``after`` within ``horizon_days``.

        Returns None when nothing is free in the horizon.
        """
        current = self.calendar.local(after).date()

        for _ in range(horizon_days):
            for slot in self.available_slots(professional_id, current, duration):
                if slot.start >= after:
                    return slot.start
            current = current + timedelta(days=1)

        return None

    def _subtract_busy_from_block(
        self,
        working_block: TimeRange,
        busy_ranges: List[TimeRange]
    ) -> List[TimeRange]:
        """
        Subtract busy times from a working block, yielding free time ranges.

        Example:
        Working: 08:00 - 20:00
        Busy: [10:00-11:00, 14:00-15:00]
        Result: [08:00-10:00, 11:00-14:00, 15:00-20:00]
        """
        free_ranges: List[TimeRange] = []
        current_start = working_block.start

        for busy in sorted(busy_ranges, key=lambda r: r.start):
            # Clip busy range to working block
            clipped_busy_start = max(busy.start, working_block.start)
            clipped_busy_end = min(busy.end, working_block.end)

            if current_start < clipped_busy_start:
                free_ranges.append(
                    TimeRange(start=current_start, end=clipped_busy_start)
                )

            current_start = max(current_start, clipped_busy_end)

        if current_start < working_block.end:
            free_ranges.append(
                TimeRange(start=current_start, end=working_block.end)
            )

        return free_ranges
