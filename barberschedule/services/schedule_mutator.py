"""
Application service owning a scheduling session.

``ScheduleMutator`` is the only mutation surface of the scheduling core. Every
operation validates through ``ConflictResolver`` immediately before it writes,
persists through the record store, and applies the stored result to the local
``IntervalStore`` only after the write succeeded. The record store's exclusion
constraint is the authoritative backstop against concurrent bookings; its
rejections come back as ordinary Overlap rejections.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import timedelta
from typing import Awaitable, Callable, List, Protocol, Set

import pendulum
from pendulum import DateTime

from ..adapters.records import (
    APPOINTMENTS_TABLE,
    BLOCKED_TIMES_TABLE,
    BUSINESS_HOURS_KEY,
    SETTINGS_TABLE,
    QueryFilter,
    Record,
    business_hours_from_record,
    business_hours_to_record,
    format_timestamp,
    interval_to_record,
    overlap_filter,
    record_to_interval,
    table_for,
)
from ..adapters.retry import async_retry
from ..domain.calendar import BusinessCalendar
from ..domain.conflict_resolver import ConflictResolver
from ..domain.exceptions import (
    AuthorizationError,
    ConstraintViolationError,
    IntervalNotFoundError,
    PersistenceError,
    RecordNotFoundError,
)
from ..domain.interval_store import IntervalStore
from ..domain.models import (
    ActorRole,
    AppointmentStatus,
    BusinessHours,
    Candidate,
    Interval,
    IntervalKind,
    RejectReason,
    Rejection,
)
from ..domain.slot_calculator import SlotCalculator

logger = logging.getLogger(__name__)

DEFAULT_BLOCK_TITLE = "Blocked"

_TRANSITION_VERBS = {
    AppointmentStatus.CONFIRMED: "confirm",
    AppointmentStatus.COMPLETED: "complete",
    AppointmentStatus.CANCELLED: "cancel",
}


class RecordStoreProtocol(Protocol):
    """Request/response operations of the hosted record store."""

    async def insert(self, table: str, record: Record) -> Record:
        """Insert a row and return the stored representation."""

    async def update(self, table: str, record_id: str, patch: Record) -> Record:
        """Patch a row and return the stored representation."""

    async def query(self, table: str, record_filter: QueryFilter | None = None) -> List[Record]:
        """Return rows matching the filter."""

    async def delete(self, table: str, record_id: str) -> None:
        """Delete a row."""


class ServiceCatalogProtocol(Protocol):
    """Owner of service durations."""

    async def get_duration(self, service_id: str) -> timedelta:
        """Return the positive duration of a service."""


class IdentityProtocol(Protocol):
    """Who is asking. Only used to gate which operations may be requested."""

    def current_actor_role(self) -> ActorRole:
        """Role of the current actor."""

    def current_actor_id(self) -> str | None:
        """Profile/client id of the current actor."""


@dataclass(frozen=True)
class MutationResult:
    """Outcome of a mutation: the stored interval on ACCEPT, the rejection otherwise."""
    interval: Interval | None = None
    rejection: Rejection | None = None

    @property
    def accepted(self) -> bool:
        return self.rejection is None


class ScheduleMutator:
    """
    Creates, moves and cancels appointments and blocked time.

    The mutator owns the session's ``BusinessCalendar`` and ``IntervalStore``;
    other components read them but never write to them.
    """

    def __init__(
        self,
        record_store: RecordStoreProtocol,
        service_catalog: ServiceCatalogProtocol,
        calendar: BusinessCalendar | None = None,
        intervals: IntervalStore | None = None,
        *,
        identity: IdentityProtocol | None = None,
        minimum_lead_time: timedelta | None = None,
        prevent_client_double_booking: bool = True,
        clock: Callable[[], DateTime] = pendulum.now,
        read_retries: int = 3,
        retry_delay: float = 1.0,
    ) -> None:
        self._record_store = record_store
        self._service_catalog = service_catalog
        self._identity = identity
        self.calendar = calendar if calendar is not None else BusinessCalendar()
        self.intervals = intervals if intervals is not None else IntervalStore()
        self.resolver = ConflictResolver(
            self.calendar,
            self.intervals,
            minimum_lead_time=minimum_lead_time,
            prevent_client_double_booking=prevent_client_double_booking,
            clock=clock,
        )
        self.slots = SlotCalculator(self.calendar, self.intervals, self.resolver)
        self._read = async_retry(max_attempts=read_retries, delay=retry_delay)(record_store.query)
        self._in_flight: Set[asyncio.Future] = set()

    # Reads

    async def load(
        self,
        range_start: DateTime,
        range_end: DateTime,
        professional_id: str | None = None,
    ) -> List[Interval]:
        """
        Refresh the interval cache for a window from the record store.

        Reads are idempotent and retried on ``PersistenceUnavailableError``.

        Args:
            range_start: Window start
            range_end: Window end (exclusive)
            professional_id: Limit the refresh to one lane

        Returns:
            The intervals fetched for the window
        """
        record_filter = overlap_filter(range_start, range_end, professional_id)
        fetched: List[Interval] = []

        for table in (APPOINTMENTS_TABLE, BLOCKED_TIMES_TABLE):
            rows = await self._read(table, record_filter)
            fetched.extend(record_to_interval(table, row) for row in rows)

        self.intervals.replace_range(range_start, range_end, fetched, professional_id)
        logger.debug(
            "Loaded %s intervals for %s - %s (professional=%s)",
            len(fetched),
            range_start,
            range_end,
            professional_id or "all",
        )
        return fetched

    async def load_business_hours(self) -> BusinessHours:
        """Read the stored business hours; keep the current ones when none are stored."""
        rows = await self._read(SETTINGS_TABLE, QueryFilter(equals={"key": BUSINESS_HOURS_KEY}))
        if not rows:
            logger.info("No stored business hours, keeping the configured schedule")
            return self.calendar.hours

        hours = business_hours_from_record(rows[0])
        self.calendar.update(hours)
        return hours

    # Appointments

    async def create_appointment(
        self,
        professional_id: str,
        client_id: str,
        service_id: str,
        start: DateTime,
        *,
        notes: str | None = None,
        idempotency_key: str | None = None,
    ) -> MutationResult:
        """
        Book a service for a client.

        The end time is start + the service's duration. Pass the same
        ``idempotency_key`` when retrying a create whose outcome is unknown.

        Raises:
            ServiceNotFoundError: If the service cannot be resolved
            PersistenceUnavailableError: If the write could not be completed
        """
        self._authorize_client(client_id, "book for another client")

        duration = await self._service_catalog.get_duration(service_id)
        end = self.resolver.appointment_end(start, duration)

        candidate = Candidate(
            professional_id=professional_id,
            start=start,
            end=end,
            kind=IntervalKind.APPOINTMENT,
            exclude_interval_id=idempotency_key,
            client_id=client_id,
        )
        replayed = self._already_created(idempotency_key, candidate)
        if replayed is not None:
            return MutationResult(interval=replayed)

        validation = self.resolver.validate(candidate)
        if not validation.accepted:
            return self._rejected("create appointment", validation.rejection)

        appointment = Interval(
            id=idempotency_key or _new_id(),
            professional_id=professional_id,
            start=start,
            end=end,
            kind=IntervalKind.APPOINTMENT,
            status=AppointmentStatus.SCHEDULED,
            client_id=client_id,
            service_id=service_id,
            notes=notes,
        )
        return await self._run_to_completion(self._commit_insert(appointment))

    async def move_appointment(self, interval_id: str, new_start: DateTime, new_end: DateTime) -> MutationResult:
        """
        Reschedule an appointment.

        The appointment is excluded from its own overlap check. On rejection
        nothing changes and the caller must undo any optimistic display move.

        Raises:
            IntervalNotFoundError: If no such appointment is known
        """
        current = self._require_appointment(interval_id)
        self._authorize_client(current.client_id, "move another client's appointment")

        if current.status.is_terminal:
            return self._rejected(
                "move appointment",
                Rejection(
                    RejectReason.INVALID_STATE_TRANSITION,
                    f"Cannot move an appointment that is {current.status.value}.",
                ),
            )

        validation = self.resolver.validate(
            Candidate(
                professional_id=current.professional_id,
                start=new_start,
                end=new_end,
                kind=IntervalKind.APPOINTMENT,
                exclude_interval_id=current.id,
                client_id=current.client_id,
            )
        )
        if not validation.accepted:
            return self._rejected("move appointment", validation.rejection)

        patch = {"start_time": format_timestamp(new_start), "end_time": format_timestamp(new_end)}
        return await self._run_to_completion(
            self._commit_update(current, patch, attempted=current.moved_to(new_start, new_end))
        )

    async def cancel_appointment(self, interval_id: str) -> MutationResult:
        return await self._transition(interval_id, AppointmentStatus.CANCELLED)

    async def confirm_appointment(self, interval_id: str) -> MutationResult:
        return await self._transition(interval_id, AppointmentStatus.CONFIRMED)

    async def complete_appointment(self, interval_id: str) -> MutationResult:
        return await self._transition(interval_id, AppointmentStatus.COMPLETED)

    # Blocked time

    async def create_blocked_time(
        self,
        professional_id: str,
        start: DateTime,
        end: DateTime,
        is_all_day: bool = False,
        *,
        title: str = DEFAULT_BLOCK_TITLE,
        description: str | None = None,
        idempotency_key: str | None = None,
    ) -> MutationResult:
        """
        Block a professional's time.

        All-day blocks are stretched to cover every calendar day they touch.
        Business hours are not checked, and existing appointments inside the
        block are left as they are.
        """
        self._authorize_lane(professional_id, "block time")

        if is_all_day:
            start, end = self.resolver.expand_all_day(start, end)

        candidate = Candidate(
            professional_id=professional_id,
            start=start,
            end=end,
            kind=IntervalKind.BLOCKED_TIME,
            exclude_interval_id=idempotency_key,
        )
        replayed = self._already_created(idempotency_key, candidate)
        if replayed is not None:
            return MutationResult(interval=replayed)

        validation = self.resolver.validate(candidate)
        if not validation.accepted:
            return self._rejected("create blocked time", validation.rejection)

        blocked = Interval(
            id=idempotency_key or _new_id(),
            professional_id=professional_id,
            start=start,
            end=end,
            kind=IntervalKind.BLOCKED_TIME,
            is_all_day=is_all_day,
            title=title,
            description=description,
        )
        return await self._run_to_completion(self._commit_insert(blocked))

    async def update_blocked_time(
        self,
        interval_id: str,
        start: DateTime,
        end: DateTime,
        is_all_day: bool = False,
        *,
        title: str | None = None,
        description: str | None = None,
    ) -> MutationResult:
        """Edit a blocked time's range and labels, re-validating the new range."""
        current = self._require_blocked_time(interval_id)
        self._authorize_lane(current.professional_id, "edit blocked time")

        if is_all_day:
            start, end = self.resolver.expand_all_day(start, end)

        validation = self.resolver.validate(
            Candidate(
                professional_id=current.professional_id,
                start=start,
                end=end,
                kind=IntervalKind.BLOCKED_TIME,
                exclude_interval_id=current.id,
            )
        )
        if not validation.accepted:
            return self._rejected("update blocked time", validation.rejection)

        patch: Record = {
            "start_time": format_timestamp(start),
            "end_time": format_timestamp(end),
            "is_all_day": is_all_day,
        }
        if title is not None:
            patch["title"] = title
        if description is not None:
            patch["description"] = description

        return await self._run_to_completion(
            self._commit_update(current, patch, attempted=current.moved_to(start, end))
        )

    async def delete_blocked_time(self, interval_id: str) -> MutationResult:
        """Hard-delete a blocked time."""
        current = self._require_blocked_time(interval_id)
        self._authorize_lane(current.professional_id, "delete blocked time")
        return await self._run_to_completion(self._commit_delete(current))

    # Business hours

    async def update_business_hours(self, hours: BusinessHours) -> BusinessHours:
        """
        Persist a new operating schedule and start using it.

        ``BusinessHours`` rejects malformed schedules on construction, so an
        invalid configuration never reaches the store or the calendar.
        """
        self._require_role(ActorRole.ADMIN, "update business hours")
        record = business_hours_to_record(hours)

        async def write() -> BusinessHours:
            try:
                await self._record_store.update(SETTINGS_TABLE, BUSINESS_HOURS_KEY, {"value": record["value"]})
            except RecordNotFoundError:
                await self._record_store.insert(SETTINGS_TABLE, record)
            self.calendar.update(hours)
            logger.info(
                "Business hours updated: %s - %s, %s min slots",
                f"{hours.opening_time:%H:%M}",
                f"{hours.closing_time:%H:%M}",
                hours.slot_duration_minutes,
            )
            return hours

        return await self._run_to_completion(write())

    async def drain(self) -> None:
        """Wait for writes that outlived a cancelled caller."""
        if self._in_flight:
            await asyncio.gather(*list(self._in_flight), return_exceptions=True)

    # Internals

    async def _transition(self, interval_id: str, target: AppointmentStatus) -> MutationResult:
        current = self._require_appointment(interval_id)
        verb = _TRANSITION_VERBS[target]

        if target == AppointmentStatus.CANCELLED:
            self._authorize_client(current.client_id, "cancel another client's appointment")
        else:
            self._require_staff(f"{verb} appointments")

        if not current.status.can_transition_to(target):
            return self._rejected(
                f"{verb} appointment",
                Rejection(
                    RejectReason.INVALID_STATE_TRANSITION,
                    f"Cannot {verb} an appointment that is {current.status.value}.",
                ),
            )

        # Cancelled/completed free capacity, confirmed keeps the same range:
        # none of these transitions needs an overlap re-check.
        return await self._run_to_completion(
            self._commit_update(current, {"status": target.value}, attempted=current.with_status(target))
        )

    async def _commit_insert(self, interval: Interval) -> MutationResult:
        table = table_for(interval.kind)

        try:
            stored = await self._record_store.insert(table, interval_to_record(interval))
        except ConstraintViolationError as exc:
            return await self._constraint_rejection(interval, exc)

        persisted = record_to_interval(table, stored)
        self.intervals.insert(persisted)
        logger.info(
            "Created %s %s for %s (%s - %s)",
            persisted.kind.value,
            persisted.id,
            persisted.professional_id,
            persisted.start,
            persisted.end,
        )
        return MutationResult(interval=persisted)

    async def _commit_update(self, current: Interval, patch: Record, attempted: Interval) -> MutationResult:
        table = table_for(current.kind)

        try:
            stored = await self._record_store.update(table, current.id, patch)
        except ConstraintViolationError as exc:
            return await self._constraint_rejection(attempted, exc)
        except RecordNotFoundError as exc:
            self._forget(current.id)
            raise IntervalNotFoundError(current.id) from exc

        persisted = record_to_interval(table, stored)
        self.intervals.insert(persisted)
        logger.info("Updated %s %s: %s", persisted.kind.value, persisted.id, sorted(patch))
        return MutationResult(interval=persisted)

    async def _commit_delete(self, current: Interval) -> MutationResult:
        try:
            await self._record_store.delete(table_for(current.kind), current.id)
        except RecordNotFoundError as exc:
            self._forget(current.id)
            raise IntervalNotFoundError(current.id) from exc

        self.intervals.remove(current.id)
        logger.info("Deleted %s %s", current.kind.value, current.id)
        return MutationResult(interval=current)

    async def _constraint_rejection(self, attempted: Interval, exc: ConstraintViolationError) -> MutationResult:
        """
        Turn a store-side constraint violation into an Overlap rejection.

        The local cache missed whatever the store collided with, so the window
        is re-read before naming the conflicting interval.
        """
        logger.warning("Record store rejected %s %s: %s", attempted.kind.value, attempted.id, exc)

        conflicting_id = exc.conflicting_id
        try:
            await self.load(attempted.start, attempted.end, attempted.professional_id)
        except PersistenceError as refresh_error:
            logger.warning("Could not refresh %s after conflict: %s", attempted.professional_id, refresh_error)
        else:
            conflict = self.resolver.find_lane_conflict(
                Candidate(
                    professional_id=attempted.professional_id,
                    start=attempted.start,
                    end=attempted.end,
                    kind=attempted.kind,
                    exclude_interval_id=attempted.id,
                )
            )
            if conflict is not None:
                conflicting_id = conflict.id

        message = "The time slot was taken by another booking."
        if conflicting_id:
            message = f"The time slot was taken by another booking (id {conflicting_id})."

        return self._rejected(
            f"commit {attempted.kind.value}",
            Rejection(RejectReason.OVERLAP, message, conflicting_interval_id=conflicting_id),
        )

    def _already_created(self, idempotency_key: str | None, candidate: Candidate) -> Interval | None:
        """The cached interval a retried create already produced, if it matches the request."""
        if idempotency_key is None:
            return None

        cached = self.intervals.get(idempotency_key)
        if (
            cached is None
            or cached.kind != candidate.kind
            or cached.professional_id != candidate.professional_id
            or cached.start != candidate.start
            or cached.end != candidate.end
        ):
            return None

        logger.info("Create %s %s was already applied", cached.kind.value, cached.id)
        return cached

    async def _run_to_completion(self, write: Awaitable):
        """
        Await a persist-then-apply sequence without letting cancellation cut it short.

        If the caller is cancelled after the write was issued, the write keeps
        running and its outcome still reaches the interval store.
        """
        task = asyncio.ensure_future(write)
        self._in_flight.add(task)
        task.add_done_callback(self._write_finished)
        return await asyncio.shield(task)

    def _write_finished(self, task: asyncio.Future) -> None:
        self._in_flight.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.debug("Write finished with %r", task.exception())

    def _rejected(self, action: str, rejection: Rejection) -> MutationResult:
        logger.info("Rejected %s: %s (%s)", action, rejection.reason.value, rejection.message)
        return MutationResult(rejection=rejection)

    def _forget(self, interval_id: str) -> None:
        if interval_id in self.intervals:
            self.intervals.remove(interval_id)

    def _require_appointment(self, interval_id: str) -> Interval:
        interval = self.intervals.require(interval_id)
        if not interval.is_appointment:
            raise IntervalNotFoundError(interval_id, f"No appointment with id {interval_id}")
        return interval

    def _require_blocked_time(self, interval_id: str) -> Interval:
        interval = self.intervals.require(interval_id)
        if interval.is_appointment:
            raise IntervalNotFoundError(interval_id, f"No blocked time with id {interval_id}")
        return interval

    # Role gating

    def _actor(self):
        if self._identity is None:
            return None, None
        return self._identity.current_actor_role(), self._identity.current_actor_id()

    def _require_role(self, role: ActorRole, action: str) -> None:
        actor_role, _ = self._actor()
        if actor_role is not None and actor_role != role:
            raise AuthorizationError(f"Only {role.value}s may {action}")

    def _require_staff(self, action: str) -> None:
        actor_role, _ = self._actor()
        if actor_role == ActorRole.CLIENT:
            raise AuthorizationError(f"Clients may not {action}")

    def _authorize_lane(self, professional_id: str, action: str) -> None:
        actor_role, actor_id = self._actor()
        if actor_role == ActorRole.CLIENT:
            raise AuthorizationError(f"Clients may not {action}")
        if actor_role == ActorRole.PROFESSIONAL and actor_id != professional_id:
            raise AuthorizationError(f"Professionals may only {action} in their own schedule")

    def _authorize_client(self, client_id: str | None, action: str) -> None:
        actor_role, actor_id = self._actor()
        if actor_role == ActorRole.CLIENT and actor_id != client_id:
            raise AuthorizationError(f"Clients may not {action}")


def _new_id() -> str:
    return str(uuid.uuid4())
