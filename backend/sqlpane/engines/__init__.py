"""
Engines: SQL execution with cancellation and generic value encoding.
"""

from sqlpane.engines.sql import cancel_query, execute_query, run_query

__all__ = [
    "cancel_query",
    "execute_query",
    "run_query",
]
