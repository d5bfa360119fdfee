"""
Tests for ConflictResolver.
"""

from datetime import timedelta

import pendulum
import pytest

from barberschedule.domain.conflict_resolver import ConflictResolver
from barberschedule.domain.models import AppointmentStatus, Candidate, IntervalKind, RejectReason


def _appointment(at, start, end, professional_id="P1", day="2024-06-10", **kwargs):
    return Candidate(
        professional_id=professional_id,
        start=at(start, day),
        end=at(end, day),
        kind=IntervalKind.APPOINTMENT,
        **kwargs,
    )


class TestValidationOrder:
    """The first failing check decides the reason."""

    def test_accepts_free_slot(self, resolver, at):
        assert resolver.validate(_appointment(at, "09:00", "09:30")).accepted

    def test_empty_range_is_invalid(self, resolver, at):
        result = resolver.validate(_appointment(at, "09:30", "09:30"))

        assert result.rejection.reason == RejectReason.INVALID_RANGE

    def test_reversed_range_is_invalid_even_for_blocked_time(self, resolver, at):
        result = resolver.validate(
            Candidate(professional_id="P1", start=at("10:00"), end=at("09:00"), kind=IntervalKind.BLOCKED_TIME)
        )

        assert result.rejection.reason == RejectReason.INVALID_RANGE

    def test_start_at_closing_is_outside_hours(self, resolver, at):
        result = resolver.validate(_appointment(at, "20:00", "20:30"))

        assert result.rejection.reason == RejectReason.OUTSIDE_BUSINESS_HOURS
        assert "08:00 - 20:00" in result.rejection.message

    def test_closed_weekday_message_names_the_day(self, resolver, at):
        result = resolver.validate(_appointment(at, "09:00", "09:30", day="2024-06-09"))

        assert result.rejection.reason == RejectReason.OUTSIDE_BUSINESS_HOURS
        assert "Sunday" in result.rejection.message

    def test_outside_hours_reported_before_overlap(self, resolver, store, appointment, at):
        store.insert(appointment("a1", "19:30", "20:00"))

        result = resolver.validate(_appointment(at, "19:45", "20:15"))

        assert result.rejection.reason == RejectReason.OUTSIDE_BUSINESS_HOURS

    def test_too_soon_reported_before_outside_hours(self, calendar, store, at):
        resolver = ConflictResolver(
            calendar,
            store,
            minimum_lead_time=timedelta(hours=2),
            clock=lambda: at("19:00"),
        )

        result = resolver.validate(_appointment(at, "20:00", "20:30"))

        assert result.rejection.reason == RejectReason.TOO_SOON
        assert "120 minutes" in result.rejection.message


class TestOverlap:
    """Lane overlap and client double-booking."""

    def test_overlap_names_conflicting_interval(self, resolver, store, appointment, at):
        store.insert(appointment("a1", "09:00", "09:30"))

        result = resolver.validate(_appointment(at, "09:15", "09:45"))

        assert result.rejection.reason == RejectReason.OVERLAP
        assert result.rejection.conflicting_interval_id == "a1"
        assert "a1" in result.rejection.message

    def test_touching_boundary_accepted(self, resolver, store, appointment, at):
        store.insert(appointment("a1", "09:00", "09:30"))

        assert resolver.validate(_appointment(at, "09:30", "10:00", client_id="C2")).accepted

    def test_moving_interval_does_not_conflict_with_itself(self, resolver, store, appointment, at):
        store.insert(appointment("a1", "09:00", "09:30"))

        result = resolver.validate(_appointment(at, "09:15", "09:45", exclude_interval_id="a1", client_id="C1"))

        assert result.accepted

    def test_cancelled_appointment_frees_slot(self, resolver, store, appointment, at):
        store.insert(appointment("a1", "09:00", "09:30", status=AppointmentStatus.CANCELLED))

        assert resolver.validate(_appointment(at, "09:00", "09:30")).accepted

    def test_appointment_conflicts_with_blocked_time(self, resolver, store, blocked, at):
        store.insert(blocked("lunch", "12:00", "13:00"))

        result = resolver.validate(_appointment(at, "12:30", "13:00"))

        assert result.rejection.reason == RejectReason.OVERLAP
        assert result.rejection.conflicting_interval_id == "lunch"
        assert "Lunch" in result.rejection.message

    def test_blocked_time_ignores_appointments(self, resolver, store, appointment, at):
        store.insert(appointment("a1", "09:00", "09:30"))

        result = resolver.validate(
            Candidate(professional_id="P1", start=at("08:00"), end=at("12:00"), kind=IntervalKind.BLOCKED_TIME)
        )

        assert result.accepted

    def test_blocked_time_conflicts_with_blocked_time(self, resolver, store, blocked, at):
        store.insert(blocked("lunch", "12:00", "13:00"))

        result = resolver.validate(
            Candidate(professional_id="P1", start=at("12:30"), end=at("14:00"), kind=IntervalKind.BLOCKED_TIME)
        )

        assert result.rejection.reason == RejectReason.OVERLAP
        assert result.rejection.conflicting_interval_id == "lunch"

    def test_blocked_time_outside_hours_accepted(self, resolver, at):
        result = resolver.validate(
            Candidate(
                professional_id="P1",
                start=at("00:00", "2024-06-09"),
                end=at("00:00", "2024-06-10"),
                kind=IntervalKind.BLOCKED_TIME,
            )
        )

        assert result.accepted

    def test_client_double_booking_rejected(self, resolver, store, appointment, at):
        store.insert(appointment("a1", "09:00", "09:30", professional_id="P2", client_id="C1"))

        result = resolver.validate(_appointment(at, "09:00", "09:30", client_id="C1"))

        assert result.rejection.reason == RejectReason.OVERLAP
        assert result.rejection.conflicting_interval_id == "a1"
        assert "Client" in result.rejection.message

    def test_client_double_booking_can_be_disabled(self, calendar, store, appointment, at):
        resolver = ConflictResolver(calendar, store, prevent_client_double_booking=False)
        store.insert(appointment("a1", "09:00", "09:30", professional_id="P2", client_id="C1"))

        assert resolver.validate(_appointment(at, "09:00", "09:30", client_id="C1")).accepted

    def test_validate_does_not_mutate(self, resolver, store, appointment, at):
        store.insert(appointment("a1", "09:00", "09:30"))
        before = store.all()

        resolver.validate(_appointment(at, "09:15", "09:45"))
        resolver.validate(_appointment(at, "10:00", "10:30"))

        assert store.all() == before


class TestHelpers:
    def test_lead_time_disabled_by_default(self, resolver, at):
        assert not resolver.is_too_soon(pendulum.datetime(2000, 1, 1, tz="UTC"))

    def test_appointment_end_from_duration(self, at):
        assert ConflictResolver.appointment_end(at("09:00"), timedelta(minutes=45)) == at("09:45")

    def test_non_positive_duration_rejected(self, at):
        with pytest.raises(ValueError):
            ConflictResolver.appointment_end(at("09:00"), timedelta(0))

    def test_all_day_single_date(self, resolver, at):
        start, end = resolver.expand_all_day(at("00:00", "2024-06-09"), at("00:00", "2024-06-09"))

        assert start == at("00:00", "2024-06-09")
        assert end == at("00:00", "2024-06-10")

    def test_all_day_covers_every_touched_day(self, resolver, at):
        start, end = resolver.expand_all_day(at("15:00", "2024-06-09"), at("10:00", "2024-06-11"))

        assert start == at("00:00", "2024-06-09")
        assert end == at("00:00", "2024-06-12")

    def test_all_day_keeps_midnight_end(self, resolver, at):
        start, end = resolver.expand_all_day(at("00:00", "2024-06-09"), at("00:00", "2024-06-11"))

        assert end == at("00:00", "2024-06-11")
