"""
Tests for domain models.
"""

from datetime import date, time

import pendulum
import pytest

from barberschedule.domain.exceptions import ConfigurationError
from barberschedule.domain.models import (
    AppointmentStatus,
    BusinessHours,
    Holiday,
    Interval,
    IntervalKind,
    RejectReason,
    TimeRange,
    ValidationResult,
    Weekday,
    active_weekdays_from,
)

TZ = "America/Sao_Paulo"


class TestTimeRange:
    """Tests for TimeRange model."""

    def test_create_valid_time_range(self):
        """Test creating a valid time range."""
        start = pendulum.parse("2024-06-10 08:00", tz=TZ)
        end = pendulum.parse("2024-06-10 20:00", tz=TZ)

        tr = TimeRange(start=start, end=end)

        assert tr.start == start
        assert tr.end == end
        assert tr.duration_minutes() == 720

    def test_empty_time_range_raises_error(self):
        """A range must not be empty."""
        start = pendulum.parse("2024-06-10 09:00", tz=TZ)

        with pytest.raises(ValueError, match="Start time .* must be before end time"):
            TimeRange(start=start, end=start)

    def test_touching_ranges_do_not_overlap(self):
        """Half-open ranges: [09:00, 09:30) and [09:30, 10:00) are disjoint."""
        first = TimeRange(
            start=pendulum.parse("2024-06-10 09:00", tz=TZ),
            end=pendulum.parse("2024-06-10 09:30", tz=TZ)
        )
        second = TimeRange(
            start=pendulum.parse("2024-06-10 09:30", tz=TZ),
            end=pendulum.parse("2024-06-10 10:00", tz=TZ)
        )
        overlapping = TimeRange(
            start=pendulum.parse("2024-06-10 09:15", tz=TZ),
            end=pendulum.parse("2024-06-10 09:45", tz=TZ)
        )

        assert not first.overlaps(second)
        assert not second.overlaps(first)
        assert first.overlaps(overlapping)
        assert overlapping.overlaps(second)

    def test_contains(self):
        """A free range holds a slot only when the slot fits inside it, ends included."""
        morning = TimeRange(
            start=pendulum.parse("2024-06-10 08:00", tz=TZ),
            end=pendulum.parse("2024-06-10 12:00", tz=TZ)
        )
        last_slot = TimeRange(
            start=pendulum.parse("2024-06-10 11:30", tz=TZ),
            end=pendulum.parse("2024-06-10 12:00", tz=TZ)
        )
        spilling = TimeRange(
            start=pendulum.parse("2024-06-10 11:30", tz=TZ),
            end=pendulum.parse("2024-06-10 12:30", tz=TZ)
        )

        assert morning.contains(morning)
        assert morning.contains(last_slot)
        assert not morning.contains(spilling)


class TestBusinessHours:
    """Tests for BusinessHours model."""

    def test_default_schedule(self):
        """Default is Monday to Saturday, 08:00 - 20:00, 30 minute slots."""
        hours = BusinessHours.default()

        assert hours.opening_time == time(8, 0)
        assert hours.closing_time == time(20, 0)
        assert hours.slot_duration_minutes == 30
        assert Weekday.SUNDAY not in hours.active_weekdays
        assert len(hours.active_weekdays) == 6

    def test_closing_before_opening_rejected(self):
        with pytest.raises(ConfigurationError, match="must be after"):
            BusinessHours(opening_time=time(20, 0), closing_time=time(8, 0))

    def test_equal_opening_and_closing_rejected(self):
        with pytest.raises(ConfigurationError):
            BusinessHours(opening_time=time(9, 0), closing_time=time(9, 0))

    def test_slot_duration_must_be_supported(self):
        with pytest.raises(ConfigurationError, match="Slot duration"):
            BusinessHours(opening_time=time(8, 0), closing_time=time(20, 0), slot_duration_minutes=45)

    def test_no_active_weekday_rejected(self):
        with pytest.raises(ConfigurationError, match="weekday"):
            BusinessHours(opening_time=time(8, 0), closing_time=time(20, 0), active_weekdays=frozenset())

    def test_holidays_are_sorted_and_looked_up(self):
        """Holidays are stored by date and found by date."""
        christmas = Holiday(date=date(2024, 12, 25), name="Christmas")
        tiradentes = Holiday(date=date(2024, 4, 21), name="Tiradentes")
        hours = BusinessHours(
            opening_time=time(8, 0),
            closing_time=time(20, 0),
            holidays=[christmas, tiradentes],
        )

        assert hours.holidays == (tiradentes, christmas)
        assert hours.holiday_on(date(2024, 12, 25)) == christmas
        assert hours.holiday_on(date(2024, 12, 24)) is None

    def test_weekdays_from_names(self):
        assert active_weekdays_from(["Monday", "friday"]) == frozenset({Weekday.MONDAY, Weekday.FRIDAY})

    def test_weekday_of_date(self):
        """2024-06-09 is a Sunday, 2024-06-10 a Monday."""
        assert Weekday.of(date(2024, 6, 9)) == Weekday.SUNDAY
        assert Weekday.of(date(2024, 6, 10)) == Weekday.MONDAY


class TestAppointmentStatus:
    """Tests for the appointment status machine."""

    @pytest.mark.parametrize(
        "current, target",
        [
            (AppointmentStatus.SCHEDULED, AppointmentStatus.CONFIRMED),
            (AppointmentStatus.SCHEDULED, AppointmentStatus.CANCELLED),
            (AppointmentStatus.CONFIRMED, AppointmentStatus.COMPLETED),
            (AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED),
        ],
    )
    def test_legal_transitions(self, current, target):
        assert current.can_transition_to(target)

    @pytest.mark.parametrize(
        "current, target",
        [
            (AppointmentStatus.SCHEDULED, AppointmentStatus.COMPLETED),
            (AppointmentStatus.CANCELLED, AppointmentStatus.CONFIRMED),
            (AppointmentStatus.CANCELLED, AppointmentStatus.SCHEDULED),
            (AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED),
            (AppointmentStatus.CONFIRMED, AppointmentStatus.SCHEDULED),
        ],
    )
    def test_illegal_transitions(self, current, target):
        assert not current.can_transition_to(target)

    def test_terminal_states_free_capacity(self):
        assert AppointmentStatus.CANCELLED.is_terminal
        assert AppointmentStatus.COMPLETED.is_terminal
        assert not AppointmentStatus.COMPLETED.occupies_capacity
        assert AppointmentStatus.CONFIRMED.occupies_capacity


class TestInterval:
    """Tests for Interval model."""

    def test_appointment_requires_status(self):
        with pytest.raises(ValueError, match="status"):
            Interval(
                id="a1",
                professional_id="P1",
                start=pendulum.parse("2024-06-10 09:00", tz=TZ),
                end=pendulum.parse("2024-06-10 09:30", tz=TZ),
                kind=IntervalKind.APPOINTMENT,
            )

    def test_blocked_time_occupies_capacity(self):
        blocked = Interval(
            id="b1",
            professional_id="P1",
            start=pendulum.parse("2024-06-10 12:00", tz=TZ),
            end=pendulum.parse("2024-06-10 13:00", tz=TZ),
            kind=IntervalKind.BLOCKED_TIME,
            title="Lunch",
        )

        assert blocked.occupies_capacity
        assert blocked.is_active
        assert not blocked.is_appointment

    def test_cancelled_appointment_is_inactive(self):
        appointment = Interval(
            id="a1",
            professional_id="P1",
            start=pendulum.parse("2024-06-10 09:00", tz=TZ),
            end=pendulum.parse("2024-06-10 09:30", tz=TZ),
            kind=IntervalKind.APPOINTMENT,
            status=AppointmentStatus.SCHEDULED,
        )

        cancelled = appointment.with_status(AppointmentStatus.CANCELLED)

        assert appointment.is_active
        assert not cancelled.is_active
        assert not cancelled.occupies_capacity
        assert appointment.status == AppointmentStatus.SCHEDULED


class TestValidationResult:
    def test_accept(self):
        result = ValidationResult.accept()

        assert result.accepted
        assert result.rejection is None

    def test_reject_carries_reason_and_conflict(self):
        result = ValidationResult.reject(RejectReason.OVERLAP, "Overlaps", conflicting_interval_id="a1")

        assert not result.accepted
        assert result.rejection.reason == RejectReason.OVERLAP
        assert result.rejection.conflicting_interval_id == "a1"
        assert str(result.rejection) == "Overlaps"
