"""
Mapping between persisted records and domain objects.

Record layout follows the hosted database tables: ``appointments``,
``blocked_times``, ``services`` and the ``settings`` key/value table. Timestamps
travel as ISO-8601 strings in UTC.
"""

from dataclasses import dataclass, field
from datetime import date, time, timedelta
from typing import Any, Dict, Mapping

import pendulum
from pendulum import DateTime

from ..domain.models import (
    AppointmentStatus,
    BusinessHours,
    Holiday,
    Interval,
    IntervalKind,
    Weekday,
    active_weekdays_from,
)

APPOINTMENTS_TABLE = "appointments"
BLOCKED_TIMES_TABLE = "blocked_times"
SERVICES_TABLE = "services"
SETTINGS_TABLE = "settings"

BUSINESS_HOURS_KEY = "business_hours"

TIMESTAMP_COLUMNS = frozenset({"start_time", "end_time"})

Record = Dict[str, Any]


@dataclass(frozen=True)
class QueryFilter:
    """
    Conjunction of simple column predicates.

    ``equals`` -> column == value, ``less_than`` -> column < value,
    ``greater_than`` -> column > value. ``order_by`` sorts ascending.
    """
    equals: Mapping[str, Any] = field(default_factory=dict)
    less_than: Mapping[str, Any] = field(default_factory=dict)
    greater_than: Mapping[str, Any] = field(default_factory=dict)
    order_by: str | None = None

    @classmethod
    def by_id(cls, record_id: str) -> "QueryFilter":
        return cls(equals={"id": record_id})


def overlap_filter(
    range_start: DateTime,
    range_end: DateTime,
    professional_id: str | None = None,
) -> QueryFilter:
    """Records whose [start_time, end_time) intersects the range."""
    equals = {"barber_id": professional_id} if professional_id else {}
    return QueryFilter(
        equals=equals,
        less_than={"start_time": format_timestamp(range_end)},
        greater_than={"end_time": format_timestamp(range_start)},
        order_by="start_time",
    )


def format_timestamp(instant: DateTime) -> str:
    return pendulum.instance(instant).in_timezone("UTC").to_iso8601_string()


def parse_timestamp(value: str) -> DateTime:
    parsed = pendulum.parse(value)
    if not isinstance(parsed, DateTime):
        raise ValueError(f"Not a timestamp: {value!r}")
    return parsed


def parse_duration(value: Any) -> timedelta:
    """
    Parse a service duration.

    Accepts "HH:MM", "HH:MM:SS" (the services table format) or a number of minutes.
    """
    if isinstance(value, (int, float)):
        return timedelta(minutes=value)

    parts = str(value).strip().split(":")
    if len(parts) not in (2, 3) or not all(p.isdigit() for p in parts):
        raise ValueError(f"Invalid duration: {value!r}")

    hours, minutes = int(parts[0]), int(parts[1])
    seconds = int(parts[2]) if len(parts) == 3 else 0
    return timedelta(hours=hours, minutes=minutes, seconds=seconds)


def table_for(kind: IntervalKind) -> str:
    if kind == IntervalKind.APPOINTMENT:
        return APPOINTMENTS_TABLE
    return BLOCKED_TIMES_TABLE


def interval_to_record(interval: Interval) -> Record:
    record: Record = {
        "id": interval.id,
        "barber_id": interval.professional_id,
        "start_time": format_timestamp(interval.start),
        "end_time": format_timestamp(interval.end),
    }
    if interval.kind == IntervalKind.APPOINTMENT:
        record.update(
            client_id=interval.client_id,
            service_id=interval.service_id,
            status=interval.status.value,
            notes=interval.notes,
        )
    else:
        record.update(
            title=interval.title,
            description=interval.description,
            is_all_day=interval.is_all_day,
        )
    return record


def record_to_interval(table: str, record: Mapping[str, Any]) -> Interval:
    """
    Decode a row of ``appointments`` or ``blocked_times``.

    Raises:
        ValueError: If the table is unknown or the row is malformed
    """
    common = dict(
        id=str(record["id"]),
        professional_id=str(record["barber_id"]),
        start=parse_timestamp(record["start_time"]),
        end=parse_timestamp(record["end_time"]),
    )

    if table == APPOINTMENTS_TABLE:
        return Interval(
            kind=IntervalKind.APPOINTMENT,
            status=AppointmentStatus(record.get("status") or AppointmentStatus.SCHEDULED.value),
            client_id=record.get("client_id"),
            service_id=record.get("service_id"),
            notes=record.get("notes"),
            **common,
        )

    if table == BLOCKED_TIMES_TABLE:
        return Interval(
            kind=IntervalKind.BLOCKED_TIME,
            is_all_day=bool(record.get("is_all_day", False)),
            title=record.get("title") or "",
            description=record.get("description"),
            **common,
        )

    raise ValueError(f"Table {table!r} does not hold intervals")


def business_hours_to_record(hours: BusinessHours) -> Record:
    """Encode business hours as the ``settings`` row value."""
    return {
        "id": BUSINESS_HOURS_KEY,
        "key": BUSINESS_HOURS_KEY,
        "value": {
            "weekdays": [day.value for day in Weekday if day in hours.active_weekdays],
            "openingTime": f"{hours.opening_time:%H:%M}",
            "closingTime": f"{hours.closing_time:%H:%M}",
            "slotDuration": hours.slot_duration_minutes,
            "holidays": [
                {"date": holiday.date.isoformat(), "name": holiday.name}
                for holiday in hours.holidays
            ],
        },
    }


def business_hours_from_record(record: Mapping[str, Any]) -> BusinessHours:
    """
    Decode the ``settings`` row holding business hours.

    Raises:
        ConfigurationError: If the stored schedule is invalid
        ValueError: If the stored value is malformed
    """
    value = record["value"]
    return BusinessHours(
        opening_time=time.fromisoformat(value["openingTime"]),
        closing_time=time.fromisoformat(value["closingTime"]),
        slot_duration_minutes=int(value.get("slotDuration", 30)),
        active_weekdays=active_weekdays_from(value["weekdays"]),
        holidays=tuple(
            Holiday(date=date.fromisoformat(h["date"]), name=h["name"])
            for h in value.get("holidays", [])
        ),
    )
