"""
Cancellation broker: per-query cancel tokens.

Every query invocation registers its own CancelToken under a query_id, so a
cancel request always targets one specific query. Concurrent queries never
share a cancel channel and never wait behind each other to listen for one.

A token is a single-slot signal: the first request() fills the slot, later
requests are no-ops. Senders never block and may call from any thread; the
signal is handed to the token's event loop with call_soon_threadsafe.
"""

import asyncio
import logging
import threading
import uuid
from collections.abc import Iterator
from contextlib import contextmanager

from sqlpane.core.errors import AmbiguousCancelError, DuplicateQueryError

_log = logging.getLogger(__name__)


class CancelToken:
    """Single-slot cancellation signal bound to one query invocation."""

    def __init__(self, query_id: str, loop: asyncio.AbstractEventLoop) -> None:
        self.query_id = query_id
        self._loop = loop
        self._event = asyncio.Event()
        self._requested = False
        self._lock = threading.Lock()

    @property
    def requested(self) -> bool:
        return self._requested

    def request(self) -> bool:
        """Place the signal in the slot. Returns False if it was already full."""
        with self._lock:
            if self._requested:
                return False
            self._requested = True
        if self._loop.is_closed():
            return True
        self._loop.call_soon_threadsafe(self._event.set)
        return True

    async def wait(self) -> None:
        """Suspend until the signal is available."""
        await self._event.wait()


class CancellationBroker:
    """Registry of in-flight queries and their cancel tokens."""

    def __init__(self) -> None:
        self._tokens: dict[str, CancelToken] = {}
        self._lock = threading.Lock()

    def register(self, query_id: str | None = None) -> CancelToken:
        """
        Create the token for a new invocation. Must be called from the event
        loop that will await it. A generated UUID is used when query_id is None.
        """
        qid = query_id or str(uuid.uuid4())
        token = CancelToken(qid, asyncio.get_running_loop())
        with self._lock:
            if qid in self._tokens:
                raise DuplicateQueryError(f"Query {qid!r} is already running")
            self._tokens[qid] = token
        return token

    def release(self, token: CancelToken) -> None:
        with self._lock:
            if self._tokens.get(token.query_id) is token:
                del self._tokens[token.query_id]

    @contextmanager
    def listen(self, query_id: str | None = None) -> Iterator[CancelToken]:
        token = self.register(query_id)
        try:
            yield token
        finally:
            self.release(token)

    def cancel(self, query_id: str) -> bool:
        """Request cancellation of *query_id*. Inert (False) if it is not in flight."""
        with self._lock:
            token = self._tokens.get(query_id)
        if token is None:
            _log.debug("Cancel for unknown query %s ignored", query_id)
            return False
        placed = token.request()
        if placed:
            _log.info("Cancel requested for query %s", query_id)
        return placed

    def cancel_sole(self) -> str | None:
        """
        Cancel the only in-flight query and return its id.

        - No query in flight: inert, returns None.
        - More than one in flight: raises AmbiguousCancelError rather than
          picking one; callers must cancel by id.
        """
        with self._lock:
            tokens = list(self._tokens.values())
        if not tokens:
            return None
        if len(tokens) > 1:
            raise AmbiguousCancelError(
                f"{len(tokens)} queries are running; cancel one by its query id"
            )
        token = tokens[0]
        token.request()
        _log.info("Cancel requested for query %s", token.query_id)
        return token.query_id

    def active(self) -> list[str]:
        """In-flight query ids, in registration order."""
        with self._lock:
            return list(self._tokens)


_broker: CancellationBroker | None = None
_broker_lock = threading.Lock()


def get_cancellation_broker() -> CancellationBroker:
    """Return the process-wide CancellationBroker (thread-safe double-checked locking)."""
    global _broker
    if _broker is None:
        with _broker_lock:
            if _broker is None:
                _broker = CancellationBroker()
    return _broker
