"""
Record store client for the hosted database's generated REST API.
"""

import asyncio
import logging
from typing import Any, Dict, List

import requests

from ..domain.exceptions import (
    ConstraintViolationError,
    PersistenceUnavailableError,
    RecordNotFoundError,
    RecordRejectedError,
)
from .records import QueryFilter, Record

logger = logging.getLogger(__name__)

# Postgres error codes surfaced in the REST error body.
EXCLUSION_VIOLATION = "23P01"
UNIQUE_VIOLATION = "23505"


class RestRecordStore:
    """
    Client for a PostgREST-style CRUD API (``/rest/v1/<table>``).

    Calls are blocking ``requests`` calls run in a worker thread so the
    scheduling services can await them.
    """

    def __init__(self, base_url: str, api_key: str, timeout: float = 30, session: requests.Session | None = None):
        """
        Initialize the REST client.

        Args:
            base_url: Project URL, e.g. https://xyz.supabase.co
            api_key: API key sent as ``apikey`` and bearer token
            timeout: Per-request timeout in seconds
            session: Optional pre-configured requests session
        """
        self.endpoint = f"{base_url.rstrip('/')}/rest/v1"
        self.timeout = timeout
        self.session = session or requests.Session()
        self.headers = {
            "apikey": api_key,
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
            "Prefer": "return=representation",
        }

    async def insert(self, table: str, record: Record) -> Record:
        try:
            rows = await self._call("POST", table, json=[record], read=False)
        except ConstraintViolationError as exc:
            # A retried insert with the same client-generated id hits the primary key.
            if exc.code == UNIQUE_VIOLATION and "id" in record:
                existing = await self.query(table, QueryFilter.by_id(record["id"]))
                if existing:
                    logger.info("Insert into %s with id %s already applied", table, record["id"])
                    return existing[0]
            raise
        return rows[0]

    async def update(self, table: str, record_id: str, patch: Record) -> Record:
        rows = await self._call("PATCH", table, params={"id": f"eq.{record_id}"}, json=patch, read=False)
        if not rows:
            raise RecordNotFoundError(table, record_id)
        return rows[0]

    async def query(self, table: str, record_filter: QueryFilter | None = None) -> List[Record]:
        return await self._call("GET", table, params=self._build_params(record_filter), read=True)

    async def delete(self, table: str, record_id: str) -> None:
        rows = await self._call("DELETE", table, params={"id": f"eq.{record_id}"}, read=False)
        if not rows:
            raise RecordNotFoundError(table, record_id)

    @staticmethod
    def _build_params(record_filter: QueryFilter | None) -> Dict[str, str]:
        params = {"select": "*"}
        if record_filter is None:
            return params

        for column, value in record_filter.equals.items():
            params[column] = f"eq.{value}"
        for column, value in record_filter.less_than.items():
            params[column] = f"lt.{value}"
        for column, value in record_filter.greater_than.items():
            # Same column may carry both bounds; PostgREST wants and=(...) then.
            if column in params:
                params["and"] = f"({column}.{params.pop(column)},{column}.gt.{value})"
            else:
                params[column] = f"gt.{value}"
        if record_filter.order_by:
            params["order"] = f"{record_filter.order_by}.asc"
        return params

    async def _call(self, method: str, table: str, *, read: bool, **kwargs) -> List[Record]:
        return await asyncio.to_thread(self._request, method, table, read, **kwargs)

    def _request(self, method: str, table: str, read: bool, **kwargs) -> List[Record]:
        url = f"{self.endpoint}/{table}"

        try:
            response = self.session.request(
                method,
                url,
                headers=self.headers,
                timeout=self.timeout,
                **kwargs,
            )
        except requests.exceptions.RequestException as e:
            raise PersistenceUnavailableError(
                f"Record store unreachable ({method} {table}): {e}",
                retryable=read,
            ) from e

        error_code = self._error_code(response) if response.status_code >= 400 else None
        if error_code in (EXCLUSION_VIOLATION, UNIQUE_VIOLATION):
            raise ConstraintViolationError(
                f"Constraint violation on {table}: {self._error_message(response)}",
                code=error_code,
            )
        if response.status_code == 409:
            raise RecordRejectedError(
                f"Record store refused {method} {table}: {self._error_message(response)}",
                code=error_code,
            )

        if response.status_code == 404:
            raise PersistenceUnavailableError(f"Unknown table {table!r}", retryable=False)

        try:
            response.raise_for_status()
        except requests.exceptions.HTTPError as e:
            raise PersistenceUnavailableError(
                f"Record store error ({method} {table}): {self._error_message(response)}",
                retryable=read and response.status_code >= 500,
            ) from e

        if not response.content:
            return []
        data: Any = response.json()
        return data if isinstance(data, list) else [data]

    @staticmethod
    def _error_code(response: requests.Response) -> str | None:
        try:
            body = response.json()
        except ValueError:
            return None
        return body.get("code") if isinstance(body, dict) else None

    @staticmethod
    def _error_message(response: requests.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text or str(response.status_code)
        if isinstance(body, dict):
            return body.get("message") or body.get("details") or str(body)
        return str(body)
