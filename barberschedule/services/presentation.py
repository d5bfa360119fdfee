"""
Read-only projection of the interval store into calendar events.

Nothing here decides whether an interval may exist; it only labels and colors
what the store holds.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Sequence

from pendulum import DateTime

from ..domain.calendar import BusinessCalendar
from ..domain.interval_store import IntervalStore
from ..domain.models import AppointmentStatus, Interval, IntervalKind, Weekday

STATUS_COLORS = {
    AppointmentStatus.SCHEDULED: "#FCD34D",
    AppointmentStatus.CONFIRMED: "#34D399",
    AppointmentStatus.COMPLETED: "#60A5FA",
    AppointmentStatus.CANCELLED: "#F87171",
}

STATUS_LABELS = {
    AppointmentStatus.SCHEDULED: "Scheduled",
    AppointmentStatus.CONFIRMED: "Confirmed",
    AppointmentStatus.COMPLETED: "Completed",
    AppointmentStatus.CANCELLED: "Cancelled",
}

BLOCKED_BACKGROUND = "#F87171"
BLOCKED_BORDER = "#EF4444"
BLOCKED_TEXT = "#FFFFFF"
DEFAULT_TEXT = "#000000"

LANE_COLORS = ("#3B82F6", "#EF4444", "#10B981", "#8B5CF6", "#F59E0B", "#06B6D4")


@dataclass(frozen=True)
class CalendarEvent:
    """One rendered entry of the schedule view."""
    id: str
    lane: str
    label: str
    start: DateTime
    end: DateTime
    color: str
    lane_color: str
    border_color: str
    text_color: str
    all_day: bool
    kind: IntervalKind
    status_label: str | None = None


@dataclass(frozen=True)
class BusinessHoursView:
    """What a calendar widget needs to shade open hours."""
    opening_time: str
    closing_time: str
    slot_duration_minutes: int
    weekdays: List[int]
    holidays: Dict[str, str]


class PresentationAdapter:
    """
    Maps intervals to ``CalendarEvent`` values.

    Lane colors follow the order professionals are listed and cycle when
    there are more professionals than colors. Professionals not listed come
    after them, in sorted id order among the lanes being rendered.
    """

    def __init__(
        self,
        professional_ids: Sequence[str] = (),
        client_names: Mapping[str, str] | None = None,
        service_names: Mapping[str, str] | None = None,
    ):
        self._client_names = dict(client_names or {})
        self._service_names = dict(service_names or {})
        self._lane_index: Dict[str, int] = {}
        for professional_id in professional_ids:
            self._lane_index.setdefault(professional_id, len(self._lane_index))

    def lane_color(self, professional_id: str, lanes: Iterable[str] = ()) -> str:
        """Color of a lane; ``lanes`` are the lane ids on screen, used to place unlisted ones."""
        index = self._lane_index.get(professional_id)
        if index is None:
            unlisted = sorted({lane for lane in lanes if lane not in self._lane_index} | {professional_id})
            index = len(self._lane_index) + unlisted.index(professional_id)
        return LANE_COLORS[index % len(LANE_COLORS)]

    def render(
        self,
        intervals: Iterable[Interval],
        include_cancelled: bool = False,
        lanes: Iterable[str] | None = None,
    ) -> List[CalendarEvent]:
        """Render intervals in (start, lane) order, hiding cancelled ones unless asked."""
        intervals = list(intervals)
        if lanes is None:
            lanes = [interval.professional_id for interval in intervals]
        lanes = sorted(set(lanes))
        events = [
            self._to_event(interval, lanes)
            for interval in intervals
            if include_cancelled or interval.is_active
        ]
        return sorted(events, key=lambda event: (event.start, event.lane, event.id))

    def render_range(
        self,
        store: IntervalStore,
        range_start: DateTime,
        range_end: DateTime,
        professional_ids: Sequence[str] | None = None,
        include_cancelled: bool = False,
    ) -> List[CalendarEvent]:
        known_lanes = store.professional_ids()
        lanes = professional_ids if professional_ids is not None else known_lanes
        intervals: List[Interval] = []
        for professional_id in lanes:
            intervals.extend(
                store.query(professional_id, range_start, range_end, include_cancelled=include_cancelled)
            )
        return self.render(intervals, include_cancelled=include_cancelled, lanes=[*known_lanes, *lanes])

    @staticmethod
    def business_hours_view(calendar: BusinessCalendar) -> BusinessHoursView:
        """Opening hours with weekdays as 0 = Sunday .. 6 = Saturday, as calendar widgets expect."""
        hours = calendar.hours
        return BusinessHoursView(
            opening_time=f"{hours.opening_time:%H:%M}",
            closing_time=f"{hours.closing_time:%H:%M}",
            slot_duration_minutes=hours.slot_duration_minutes,
            weekdays=sorted((list(Weekday).index(day) + 1) % 7 for day in hours.active_weekdays),
            holidays={holiday.date.isoformat(): holiday.name for holiday in hours.holidays},
        )

    def _to_event(self, interval: Interval, lanes: Sequence[str]) -> CalendarEvent:
        lane_color = self.lane_color(interval.professional_id, lanes)

        if interval.kind == IntervalKind.BLOCKED_TIME:
            return CalendarEvent(
                id=f"block-{interval.id}",
                lane=interval.professional_id,
                label=interval.title or "Blocked",
                start=interval.start,
                end=interval.end,
                color=BLOCKED_BACKGROUND,
                lane_color=lane_color,
                border_color=BLOCKED_BORDER,
                text_color=BLOCKED_TEXT,
                all_day=interval.is_all_day,
                kind=interval.kind,
            )

        client = self._client_names.get(interval.client_id, interval.client_id or "?")
        service = self._service_names.get(interval.service_id, interval.service_id or "?")
        color = STATUS_COLORS[interval.status]
        return CalendarEvent(
            id=interval.id,
            lane=interval.professional_id,
            label=f"{client} - {service}",
            start=interval.start,
            end=interval.end,
            color=color,
            lane_color=lane_color,
            border_color=color,
            text_color=DEFAULT_TEXT,
            all_day=False,
            kind=interval.kind,
            status_label=STATUS_LABELS[interval.status],
        )
