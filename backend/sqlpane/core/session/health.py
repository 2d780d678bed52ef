"""
Connection health checks for external DBs.
"""

import logging

import psycopg

from sqlpane.core.errors import ConnectError

from .connect import open_session
from .session import PgSession

_log = logging.getLogger(__name__)


async def health_check(session: PgSession) -> bool:
    """
    Run SELECT 1 on the session and return True if no exception.
    """
    try:
        outcome = await session.submit("SELECT 1")
        return len(outcome.rows) == 1
    except psycopg.Error:
        return False


async def check_connection(connection_string: str) -> tuple[bool, str]:
    """Connect, run SELECT 1, close. Returns (ok, message)."""
    try:
        async with open_session(connection_string) as session:
            if await health_check(session):
                return True, "Connection successful"
            return False, "Connection opened but SELECT 1 failed"
    except ConnectError as e:
        _log.debug("Connection test failed: %s", e)
        return False, str(e)
