"""
One backend session per query invocation.

PgSession owns a psycopg AsyncConnection and the single driver task that runs
the query's wire I/O on it. The driver task never outlives the session: on
close it is cancelled (if still pending), awaited, and only then is the
connection closed.
"""

import asyncio
import logging
from typing import Any, NamedTuple

import psycopg

from sqlpane.core.config import settings

_log = logging.getLogger(__name__)


class Column(NamedTuple):
    name: str
    type_oid: int


class QueryOutcome(NamedTuple):
    columns: list[Column]
    rows: list[tuple[Any, ...]]


class CancelHandle:
    """Out-of-band cancel request for the statement running on one connection."""

    def __init__(self, conn: psycopg.AsyncConnection[Any]) -> None:
        self._conn = conn

    async def cancel(self) -> bool:
        """
        Ask the backend to cancel the running statement. Best-effort: a failing
        cancel request is logged and reported as False, never raised.
        """
        try:
            await self._conn.cancel_safe(timeout=settings.QUERY_CANCEL_TIMEOUT)
            return True
        except (psycopg.Error, OSError) as e:
            _log.warning("Backend cancel request failed: %s", e)
            return False


class PgSession:
    """A live connection plus the driver task running the current statement."""

    def __init__(self, conn: psycopg.AsyncConnection[Any]) -> None:
        self._conn = conn
        self._driver: asyncio.Task[QueryOutcome] | None = None

    @property
    def connection(self) -> psycopg.AsyncConnection[Any]:
        return self._conn

    @property
    def broken(self) -> bool:
        """True when the wire connection was lost (as opposed to a statement error)."""
        return bool(self._conn.broken)

    def cancel_handle(self) -> CancelHandle:
        return CancelHandle(self._conn)

    def submit(self, sql: str) -> "asyncio.Task[QueryOutcome]":
        """Start driving *sql* on this connection and return the driver task."""
        if self._driver is not None and not self._driver.done():
            raise RuntimeError("a statement is already running on this session")
        self._driver = asyncio.create_task(self._drive(sql))
        self._driver.add_done_callback(self._report_io_failure)
        return self._driver

    async def _drive(self, sql: str) -> QueryOutcome:
        async with self._conn.cursor() as cur:
            await cur.execute(sql)
            if cur.description is None:
                # Statement returned no result set (DDL/DML)
                return QueryOutcome([], [])
            columns = [Column(d.name, d.type_code) for d in cur.description]
            rows = await cur.fetchall()
            return QueryOutcome(columns, rows)

    def _report_io_failure(self, task: "asyncio.Task[QueryOutcome]") -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None and self.broken:
            _log.error("connection error: %s", exc)

    async def close(self) -> None:
        driver = self._driver
        if driver is not None:
            if not driver.done():
                driver.cancel()
            # Outcome was already consumed (or abandoned) by the caller
            await asyncio.gather(driver, return_exceptions=True)
        await self._conn.close()

    async def __aenter__(self) -> "PgSession":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()
