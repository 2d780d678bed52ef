"""
Execute a SQL statement on a fresh backend session, racing it against the
invocation's cancel token.

- run_query: returns the encoded rows (list of rows, each a list of TypedValue).
- execute_query: run_query + render_result -> JSON text
  ``[[["col", "tag", "value"], ...], ...]``.
- cancel_query: request cancellation of one query (or of the only one running).

Exactly one outcome per invocation: rows, ConnectError, QueryError,
QueryCancelledError or SerializationError. The cancel path never returns rows.
"""

import asyncio
import json
import logging

import psycopg

from sqlpane.core.cancellation import CancellationBroker, get_cancellation_broker
from sqlpane.core.errors import (
    ConnectError,
    QueryCancelledError,
    QueryError,
    SerializationError,
)
from sqlpane.core.session import PgSession, QueryOutcome, open_session
from sqlpane.engines.sql.encoder import TypedValue, default_registry, encode_row

_log = logging.getLogger(__name__)

ResultSet = list[list[TypedValue]]


async def run_query(
    connection_string: str,
    sql: str,
    *,
    query_id: str | None = None,
    broker: CancellationBroker | None = None,
) -> ResultSet:
    """
    Open a session, run *sql* and encode every row.

    The query races the cancel token registered under *query_id*: if the
    cancel signal resolves first, a backend cancel request is sent and
    QueryCancelledError is raised. If both are ready at once the completed
    query wins.
    """
    broker = broker or get_cancellation_broker()
    with broker.listen(query_id) as token:
        async with open_session(
            connection_string, raw_text_oids=default_registry.raw_text_oids()
        ) as session:
            cancel_handle = session.cancel_handle()
            query_task = session.submit(sql)
            cancel_wait = asyncio.create_task(token.wait())
            try:
                done, _ = await asyncio.wait(
                    {query_task, cancel_wait}, return_when=asyncio.FIRST_COMPLETED
                )
            finally:
                cancel_wait.cancel()
                await asyncio.gather(cancel_wait, return_exceptions=True)

            if query_task not in done:
                _log.info("Query %s cancelled before completion", token.query_id)
                await cancel_handle.cancel()
                raise QueryCancelledError()

            outcome = _query_outcome(query_task, session)

    _log.debug(
        "Query %s returned %d row(s), %d column(s)",
        token.query_id,
        len(outcome.rows),
        len(outcome.columns),
    )
    return [encode_row(outcome.columns, row) for row in outcome.rows]


def _query_outcome(
    query_task: "asyncio.Task[QueryOutcome]", session: PgSession
) -> QueryOutcome:
    try:
        return query_task.result()
    except psycopg.Error as e:
        if session.broken:
            raise ConnectError(str(e)) from e
        raise QueryError(str(e)) from e


def render_result(rows: ResultSet) -> str:
    """Serialize encoded rows; TypedValue tuples become 3-element JSON arrays."""
    try:
        return json.dumps(rows, ensure_ascii=False)
    except (TypeError, ValueError) as e:
        raise SerializationError(f"Result serialization failed: {e}") from e


async def execute_query(
    connection_string: str,
    query: str,
    *,
    query_id: str | None = None,
    broker: CancellationBroker | None = None,
) -> str:
    """Run *query* and return the wire JSON for the GUI."""
    rows = await run_query(
        connection_string, query, query_id=query_id, broker=broker
    )
    return render_result(rows)


def cancel_query(
    query_id: str | None = None, *, broker: CancellationBroker | None = None
) -> bool:
    """
    Fire-and-forget cancel. With a query_id, cancels that query; without one,
    cancels the only query in flight (AmbiguousCancelError if several are).
    Returns whether an in-flight query was targeted.
    """
    broker = broker or get_cancellation_broker()
    if query_id is not None:
        return broker.cancel(query_id)
    return broker.cancel_sole() is not None


def active_queries(*, broker: CancellationBroker | None = None) -> list[str]:
    return (broker or get_cancellation_broker()).active()
