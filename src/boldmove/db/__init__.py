"""
BoldMove - Database access.

Supabase clients plus the adapter protocol the journey store is written against.
"""

from boldmove.db.adapter import DatabaseAdapter
from boldmove.db.client import get_authenticated_client, get_client, get_service_client

__all__ = [
    "DatabaseAdapter",
    "get_client",
    "get_service_client",
    "get_authenticated_client",
]
