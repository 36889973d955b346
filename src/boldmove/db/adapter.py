"""
Database Adapter Protocol.

JourneyStore is written against the PostgREST fluent builder the Supabase
client exposes, not against supabase itself, so tests can hand it an
in-memory table store.
"""

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class DatabaseAdapter(Protocol):
    """
    Anything with a Supabase-style table() entry point.

    The builder returned by table() must support select / insert / upsert /
    update / delete, the eq and in_ filters, order, limit and execute(),
    where execute() yields an object with .data (and .count for selects
    made with count="exact").
    """

    def table(self, name: str) -> Any:
        ...
