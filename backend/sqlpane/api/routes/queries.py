"""
Query execution and cancellation.

Endpoints: execute, cancel (sole in-flight query), cancel by id, active, test-connection.
Errors are flattened to {"detail": "<message>"} with a status per error kind.
"""

import uuid
from typing import Any

from fastapi import APIRouter, HTTPException, Response

from sqlpane.core.cancellation import get_cancellation_broker
from sqlpane.core.errors import (
    AmbiguousCancelError,
    ConnectError,
    DuplicateQueryError,
    ExecutorError,
    QueryCancelledError,
    QueryError,
    SerializationError,
)
from sqlpane.core.session import check_connection
from sqlpane.engines.sql import active_queries, cancel_query, execute_query
from sqlpane.schemas import (
    ConnectionTestIn,
    ConnectionTestResult,
    QueryCancelOut,
    QueryExecuteIn,
)

router = APIRouter(prefix="/queries", tags=["queries"])

QUERY_ID_HEADER = "X-Query-Id"

_ERROR_STATUS: dict[type[ExecutorError], int] = {
    ConnectError: 502,
    QueryError: 400,
    QueryCancelledError: 409,
    DuplicateQueryError: 409,
    AmbiguousCancelError: 409,
    SerializationError: 500,
}


def _http_error(e: ExecutorError) -> HTTPException:
    return HTTPException(status_code=_ERROR_STATUS.get(type(e), 500), detail=str(e))


@router.post("/execute", response_class=Response)
async def execute(body: QueryExecuteIn) -> Response:
    """
    Run the query and return ``[[[name, tag, value], ...], ...]`` as JSON.

    The query id (given or generated) is echoed in the X-Query-Id header.
    """
    query_id = body.query_id or str(uuid.uuid4())
    try:
        content = await execute_query(
            body.connection_string, body.query, query_id=query_id
        )
    except ExecutorError as e:
        raise _http_error(e) from e
    return Response(
        content=content,
        media_type="application/json",
        headers={QUERY_ID_HEADER: query_id},
    )


@router.post("/cancel", response_model=QueryCancelOut)
def cancel_sole() -> Any:
    """Cancel the only running query; 409 when several are running."""
    try:
        query_id = get_cancellation_broker().cancel_sole()
    except AmbiguousCancelError as e:
        raise _http_error(e) from e
    return QueryCancelOut(query_id=query_id, cancelled=query_id is not None)


@router.get("/active", response_model=list[str])
def list_active() -> Any:
    """Ids of queries currently in flight."""
    return active_queries()


@router.post("/test-connection", response_model=ConnectionTestResult)
async def test_connection(body: ConnectionTestIn) -> Any:
    """Open a session, run SELECT 1, close."""
    ok, message = await check_connection(body.connection_string)
    return ConnectionTestResult(ok=ok, message=message)


@router.post("/{query_id}/cancel", response_model=QueryCancelOut)
def cancel_by_id(query_id: str) -> Any:
    """Cancel one query by id. Unknown or finished ids are a no-op (cancelled=false)."""
    return QueryCancelOut(query_id=query_id, cancelled=cancel_query(query_id))
