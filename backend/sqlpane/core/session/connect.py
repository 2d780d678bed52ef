"""
Open backend sessions for query invocations.

A fresh psycopg AsyncConnection per call: no pooling, no reuse. The connection
string may be a libpq keyword/value string or a postgresql:// URI.
"""

import logging
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from typing import Any

import psycopg
from psycopg.abc import Buffer
from psycopg.adapt import AdaptersMap, Loader
from psycopg.errors import Diagnostic
from psycopg.types.datetime import (
    DateLoader,
    TimeLoader,
    TimestampLoader,
    TimestamptzLoader,
    TimetzLoader,
)

from sqlpane.core.config import settings
from sqlpane.core.errors import ConnectError

from .session import PgSession

_log = logging.getLogger(__name__)

# psycopg falls back to the loader registered for OID 0 when a column's type
# has no loader of its own (enums, domains over unknown types, extensions).
_UNKNOWN_OID = 0


class RawTextLoader(Loader):
    """Load values of unknown types as raw bytes; decoding is left to the encoder."""

    def load(self, data: Buffer) -> bytes:
        return bytes(data)


class _ServerTextOnDataError(Loader):
    """
    Keep the server's text when the value has no Python equivalent:
    'infinity', BC dates, '24:00:00' and the like load as str.
    """

    def load(self, data: Buffer) -> Any:
        try:
            return super().load(data)
        except psycopg.DataError:
            return bytes(data).decode("utf-8", errors="replace")


class DateTextLoader(_ServerTextOnDataError, DateLoader):
    pass


class TimeTextLoader(_ServerTextOnDataError, TimeLoader):
    pass


class TimetzTextLoader(_ServerTextOnDataError, TimetzLoader):
    pass


class TimestampTextLoader(_ServerTextOnDataError, TimestampLoader):
    pass


class TimestamptzTextLoader(_ServerTextOnDataError, TimestamptzLoader):
    pass


# Array loaders look their element loader up in the same map, so these
# cover date[], timestamp[] etc. too.
TEMPORAL_LOADERS: dict[str, type[Loader]] = {
    "date": DateTextLoader,
    "time": TimeTextLoader,
    "timetz": TimetzTextLoader,
    "timestamp": TimestampTextLoader,
    "timestamptz": TimestamptzTextLoader,
}


def configure_loaders(adapters: AdaptersMap, raw_text_oids: Iterable[int] = ()) -> None:
    """
    Set up result loading on a connection's adapters map.

    Unknown OIDs and every OID in *raw_text_oids* load as raw bytes. Date and
    time types fall back to the server text instead of raising DataError.
    """
    adapters.register_loader(_UNKNOWN_OID, RawTextLoader)
    for oid in raw_text_oids:
        adapters.register_loader(oid, RawTextLoader)
    for type_name, loader in TEMPORAL_LOADERS.items():
        adapters.register_loader(type_name, loader)


def _log_notice(diag: Diagnostic) -> None:
    _log.info("server %s: %s", diag.severity, diag.message_primary)


async def connect(
    connection_string: str, *, raw_text_oids: Iterable[int] = ()
) -> psycopg.AsyncConnection[Any]:
    """Open an autocommit connection configured for generic result decoding."""
    try:
        conn = await psycopg.AsyncConnection.connect(
            connection_string,
            autocommit=True,
            connect_timeout=settings.EXTERNAL_DB_CONNECT_TIMEOUT,
            application_name=settings.EXTERNAL_DB_APPLICATION_NAME,
        )
    except psycopg.Error as e:
        raise ConnectError(str(e)) from e
    configure_loaders(conn.adapters, raw_text_oids)
    conn.add_notice_handler(_log_notice)
    return conn


@asynccontextmanager
async def open_session(
    connection_string: str, *, raw_text_oids: Iterable[int] = ()
) -> AsyncIterator[PgSession]:
    """
    Yield a PgSession on a new connection; the session (driver task included)
    is torn down when the block exits, whatever the outcome.
    """
    conn = await connect(connection_string, raw_text_oids=raw_text_oids)
    async with PgSession(conn) as session:
        yield session
