"""
In-memory collection of occupied intervals, bucketed per professional.

This is a local cache of the persisted schedule. Mutations are plain data
operations; validation belongs to ``ConflictResolver`` and must happen first.
"""

from typing import Callable, Dict, Iterable, Iterator, List

from pendulum import DateTime

from .exceptions import IntervalNotFoundError
from .models import AppointmentStatus, Interval


class IntervalStore:
    """
    Occupied intervals (appointments and blocked time) keyed by id.

    Every read builds a new list from the current state, so results are never
    stale after a mutation and re-running a query yields a fresh snapshot.
    """

    def __init__(self, intervals: Iterable[Interval] = ()):
        self._by_professional: Dict[str, Dict[str, Interval]] = {}
        self._professional_of: Dict[str, str] = {}
        for interval in intervals:
            self.insert(interval)

    def __len__(self) -> int:
        return len(self._professional_of)

    def __contains__(self, interval_id: object) -> bool:
        return interval_id in self._professional_of

    def __iter__(self) -> Iterator[Interval]:
        return iter(self.all())

    def get(self, interval_id: str) -> Interval | None:
        professional_id = self._professional_of.get(interval_id)
        if professional_id is None:
            return None
        return self._by_professional[professional_id][interval_id]

    def require(self, interval_id: str) -> Interval:
        """Like ``get`` but raises ``IntervalNotFoundError`` for unknown ids."""
        interval = self.get(interval_id)
        if interval is None:
            raise IntervalNotFoundError(interval_id)
        return interval

    def all(self) -> List[Interval]:
        intervals = [
            interval
            for bucket in self._by_professional.values()
            for interval in bucket.values()
        ]
        return sorted(intervals, key=_start_key)

    def professional_ids(self) -> List[str]:
        return sorted(pid for pid, bucket in self._by_professional.items() if bucket)

    def query(
        self,
        professional_id: str,
        range_start: DateTime,
        range_end: DateTime,
        include_cancelled: bool = False,
    ) -> List[Interval]:
        """
        Return the professional's intervals intersecting [range_start, range_end).

        Cancelled appointments are left out unless ``include_cancelled`` is set.
        Completed appointments are included for historical display.
        Ordered by start ascending.
        """
        bucket = self._by_professional.get(professional_id, {})
        found = [
            interval
            for interval in bucket.values()
            if interval.overlaps(range_start, range_end)
            and (include_cancelled or interval.is_active)
        ]
        return sorted(found, key=_start_key)

    def overlaps(
        self,
        professional_id: str,
        start: DateTime,
        end: DateTime,
        exclude_interval_id: str | None = None,
    ) -> bool:
        """True iff an interval occupying capacity, other than the excluded one, intersects [start, end)."""
        return self.find_conflict(professional_id, start, end, exclude_interval_id) is not None

    def find_conflict(
        self,
        professional_id: str,
        start: DateTime,
        end: DateTime,
        exclude_interval_id: str | None = None,
        predicate: Callable[[Interval], bool] | None = None,
    ) -> Interval | None:
        """
        Return the earliest interval in conflict with [start, end), or None.

        Only intervals that occupy capacity are considered (blocked time and
        scheduled/confirmed appointments). ``predicate`` narrows the candidates
        further, e.g. to blocked time only.
        """
        conflicts = [
            interval
            for interval in self._by_professional.get(professional_id, {}).values()
            if interval.id != exclude_interval_id
            and interval.occupies_capacity
            and interval.overlaps(start, end)
            and (predicate is None or predicate(interval))
        ]
        if not conflicts:
            return None
        return min(conflicts, key=_start_key)

    def find_client_conflict(
        self,
        client_id: str,
        start: DateTime,
        end: DateTime,
        exclude_interval_id: str | None = None,
    ) -> Interval | None:
        """Earliest active appointment of ``client_id`` (any professional) overlapping [start, end)."""
        conflicts = [
            interval
            for bucket in self._by_professional.values()
            for interval in bucket.values()
            if interval.is_appointment
            and interval.client_id == client_id
            and interval.id != exclude_interval_id
            and interval.occupies_capacity
            and interval.overlaps(start, end)
        ]
        if not conflicts:
            return None
        return min(conflicts, key=_start_key)

    def insert(self, interval: Interval) -> None:
        """Add an interval, replacing any previous entry with the same id."""
        if interval.id in self._professional_of:
            self._discard(interval.id)
        self._by_professional.setdefault(interval.professional_id, {})[interval.id] = interval
        self._professional_of[interval.id] = interval.professional_id

    def remove(self, interval_id: str) -> Interval:
        self.require(interval_id)
        return self._discard(interval_id)

    def update_status(self, interval_id: str, status: AppointmentStatus) -> Interval:
        updated = self.require(interval_id).with_status(status)
        self.insert(updated)
        return updated

    def move(self, interval_id: str, new_start: DateTime, new_end: DateTime) -> Interval:
        moved = self.require(interval_id).moved_to(new_start, new_end)
        self.insert(moved)
        return moved

    def replace_range(
        self,
        range_start: DateTime,
        range_end: DateTime,
        intervals: Iterable[Interval],
        professional_id: str | None = None,
    ) -> None:
        """
        Replace everything cached for a window with a freshly fetched set.

        Entries intersecting [range_start, range_end) (for ``professional_id``,
        or every lane when None) are dropped before ``intervals`` are inserted.
        """
        stale = [
            interval.id
            for interval in self.all()
            if interval.overlaps(range_start, range_end)
            and (professional_id is None or interval.professional_id == professional_id)
        ]
        for interval_id in stale:
            self._discard(interval_id)
        for interval in intervals:
            self.insert(interval)

    def _discard(self, interval_id: str) -> Interval:
        professional_id = self._professional_of.pop(interval_id)
        return self._by_professional[professional_id].pop(interval_id)


def _start_key(interval: Interval):
    return (interval.start, interval.end, interval.id)
