"""
Pydantic schemas for the query API.
"""

from pydantic import Field
from sqlmodel import SQLModel


class QueryExecuteIn(SQLModel):
    """Body for POST /queries/execute."""

    connection_string: str = Field(
        ...,
        min_length=1,
        description="libpq connection string or postgresql:// URI.",
    )
    query: str = Field(..., description="SQL text, executed as-is (no parameters).")
    query_id: str | None = Field(
        default=None,
        min_length=1,
        max_length=128,
        description="Caller-chosen id used to cancel this query; generated when omitted.",
    )


class QueryCancelOut(SQLModel):
    """Response for the cancel endpoints."""

    query_id: str | None = None
    cancelled: bool


class ConnectionTestIn(SQLModel):
    """Body for POST /queries/test-connection."""

    connection_string: str = Field(..., min_length=1)


class ConnectionTestResult(SQLModel):
    """Response for POST /queries/test-connection."""

    ok: bool
    message: str
