"""
Shared fixtures for the scheduling tests.

Every test runs against the default shop: Monday to Saturday, 08:00 - 20:00,
30 minute slots, in America/Sao_Paulo. 2024-06-10 is a Monday.
"""

import pendulum
import pytest

from barberschedule.adapters.memory_store import InMemoryRecordStore
from barberschedule.adapters.service_catalog import RecordStoreServiceCatalog
from barberschedule.domain.calendar import BusinessCalendar
from barberschedule.domain.conflict_resolver import ConflictResolver
from barberschedule.domain.interval_store import IntervalStore
from barberschedule.domain.models import AppointmentStatus, BusinessHours, Interval, IntervalKind
from barberschedule.services.schedule_mutator import ScheduleMutator

TZ = "America/Sao_Paulo"
MONDAY = "2024-06-10"

SERVICES = [
    {"id": "haircut", "name": "Haircut", "duration": "00:30", "active": True},
    {"id": "beard", "name": "Beard trim", "duration": "00:15", "active": True},
    {"id": "full", "name": "Haircut and beard", "duration": "01:00", "active": True},
    {"id": "retired", "name": "Old service", "duration": "00:30", "active": False},
]


@pytest.fixture
def at():
    """Build a local timestamp: at("09:00") or at("09:00", "2024-06-11")."""
    def build(clock: str, day: str = MONDAY):
        return pendulum.parse(f"{day} {clock}", tz=TZ)
    return build


@pytest.fixture
def calendar():
    return BusinessCalendar(BusinessHours.default(), timezone=TZ)


@pytest.fixture
def store():
    return IntervalStore()


@pytest.fixture
def resolver(calendar, store):
    return ConflictResolver(calendar, store)


@pytest.fixture
def appointment(at):
    """Factory for appointments on P1, scheduled by default."""
    def build(interval_id, start, end, professional_id="P1", status=AppointmentStatus.SCHEDULED, client_id="C1"):
        return Interval(
            id=interval_id,
            professional_id=professional_id,
            start=at(start) if isinstance(start, str) else start,
            end=at(end) if isinstance(end, str) else end,
            kind=IntervalKind.APPOINTMENT,
            status=status,
            client_id=client_id,
            service_id="haircut",
        )
    return build


@pytest.fixture
def blocked(at):
    """Factory for blocked time on P1."""
    def build(interval_id, start, end, professional_id="P1", title="Lunch"):
        return Interval(
            id=interval_id,
            professional_id=professional_id,
            start=at(start) if isinstance(start, str) else start,
            end=at(end) if isinstance(end, str) else end,
            kind=IntervalKind.BLOCKED_TIME,
            title=title,
        )
    return build


@pytest.fixture
def record_store():
    return InMemoryRecordStore(seed={"services": SERVICES})


@pytest.fixture
def make_mutator(record_store):
    """Build a ScheduleMutator over the in-memory store; keyword arguments are passed through."""
    def build(record_store=record_store, **kwargs):
        catalog = RecordStoreServiceCatalog(record_store, read_retries=1, retry_delay=0)
        kwargs.setdefault("calendar", BusinessCalendar(BusinessHours.default(), timezone=TZ))
        kwargs.setdefault("read_retries", 1)
        kwargs.setdefault("retry_delay", 0)
        return ScheduleMutator(record_store, catalog, **kwargs)
    return build

