"""
BoldMove - Request Context.

Carries the authenticated user's identity through a request (API route or
CLI command) so the database layer can act as that user without threading
the token through every call.
"""

from contextvars import ContextVar
from dataclasses import dataclass


@dataclass(frozen=True)
class RequestContext:
    access_token: str | None = None
    user_id: str | None = None


_context: ContextVar[RequestContext] = ContextVar("boldmove_request", default=RequestContext())


def set_request_context(access_token: str | None = None, user_id: str | None = None) -> RequestContext:
    """
    Bind the caller for the current request.

    Call before touching the store. Values left as None keep what is
    already bound.
    """
    current = _context.get()
    bound = RequestContext(
        access_token=access_token or current.access_token,
        user_id=user_id or current.user_id,
    )
    _context.set(bound)
    return bound


def get_request_context() -> RequestContext:
    return _context.get()


def get_access_token() -> str | None:
    return _context.get().access_token


def clear_request_context() -> None:
    _context.set(RequestContext())
