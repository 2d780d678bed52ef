"""
Backend sessions for query invocations: one psycopg connection per query, with
its driver task bound to the session's lifetime.
"""

from .connect import RawTextLoader, configure_loaders, connect, open_session
from .health import check_connection, health_check
from .session import CancelHandle, Column, PgSession, QueryOutcome

__all__ = [
    "configure_loaders",
    "connect",
    "open_session",
    "check_connection",
    "health_check",
    "CancelHandle",
    "Column",
    "PgSession",
    "QueryOutcome",
    "RawTextLoader",
]
