"""
Error taxonomy for query execution.

Every failure of an invocation is exactly one of these. They are flattened to
their message string before crossing the HTTP boundary; nothing is retried.
"""


class ExecutorError(Exception):
    """Base class for errors surfaced by a query invocation."""

    pass


class ConnectError(ExecutorError):
    """The backend session could not be established or was lost."""

    pass


class QueryError(ExecutorError):
    """The backend rejected or failed the statement."""

    pass


class QueryCancelledError(ExecutorError):
    """A user-requested cancel won the race against the query."""

    def __init__(self, message: str = "Query was cancelled") -> None:
        super().__init__(message)


class SerializationError(ExecutorError):
    """Assembling the response JSON failed."""

    pass


class DuplicateQueryError(ExecutorError):
    """A query with the same id is already in flight."""

    pass


class AmbiguousCancelError(ExecutorError):
    """A cancel without a query id was sent while several queries are in flight."""

    pass
