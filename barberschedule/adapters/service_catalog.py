"""
Service duration lookup backed by the ``services`` table.
"""

import logging
from datetime import timedelta
from typing import Any, Dict, List, Protocol

from ..domain.exceptions import ServiceNotFoundError
from .records import SERVICES_TABLE, QueryFilter, Record, parse_duration
from .retry import async_retry

logger = logging.getLogger(__name__)


class RecordQueryProtocol(Protocol):
    """The read side of the record store, which is all the catalog needs."""

    async def query(self, table: str, record_filter: QueryFilter | None = None) -> List[Record]:
        """Return rows of ``table`` matching the filter."""


class RecordStoreServiceCatalog:
    """
    Resolves service ids to durations.

    Rows are cached per id once read; service durations change rarely and a
    stale value only affects the end time of bookings made afterwards.
    """

    def __init__(self, record_store: RecordQueryProtocol, read_retries: int = 3, retry_delay: float = 1.0):
        self._record_store = record_store
        self._query = async_retry(max_attempts=read_retries, delay=retry_delay)(record_store.query)
        self._cache: Dict[str, Record] = {}

    async def get_duration(self, service_id: str) -> timedelta:
        """
        Look up a service's duration.

        Raises:
            ServiceNotFoundError: If the service does not exist, is inactive
                or has an unreadable duration
        """
        service = await self.get_service(service_id)

        if not service.get("active", True):
            raise ServiceNotFoundError(service_id, f"Service {service_id} is not active")

        try:
            duration = parse_duration(service["duration"])
        except (KeyError, ValueError) as exc:
            raise ServiceNotFoundError(
                service_id, f"Service {service_id} has no valid duration: {exc}"
            ) from exc

        if duration <= timedelta(0):
            raise ServiceNotFoundError(
                service_id, f"Service {service_id} has no valid duration: {duration} is not positive"
            )
        return duration

    async def get_service(self, service_id: str) -> Record:
        if service_id in self._cache:
            return self._cache[service_id]

        rows = await self._query(SERVICES_TABLE, QueryFilter.by_id(service_id))
        if not rows:
            raise ServiceNotFoundError(service_id)

        self._cache[service_id] = rows[0]
        return rows[0]

    async def service_names(self) -> Dict[str, Any]:
        """Map of service id -> display name, used for calendar labels."""
        rows = await self._query(SERVICES_TABLE, None)
        return {str(row["id"]): row.get("name", str(row["id"])) for row in rows}
