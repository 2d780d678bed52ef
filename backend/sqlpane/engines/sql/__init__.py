"""
SQL engine: run a statement on a fresh session and encode its rows.

Exports: execute_query, run_query, cancel_query, render_result, encode, encode_row.
"""

from sqlpane.engines.sql.encoder import (
    NULL_SENTINEL,
    UNSUPPORTED_SENTINEL,
    DecoderRegistry,
    Tag,
    TypedValue,
    encode,
    encode_row,
)
from sqlpane.engines.sql.executor import (
    active_queries,
    cancel_query,
    execute_query,
    render_result,
    run_query,
)

__all__ = [
    "NULL_SENTINEL",
    "UNSUPPORTED_SENTINEL",
    "DecoderRegistry",
    "Tag",
    "TypedValue",
    "encode",
    "encode_row",
    "active_queries",
    "cancel_query",
    "execute_query",
    "render_result",
    "run_query",
]
