"""
BoldMove - Supabase Client.

Low-level database access. Three flavours:
- get_client(): anon key, shared singleton
- get_service_client(): service role, bypasses RLS (server-side jobs, token checks)
- get_authenticated_client(token): anon key + user JWT so RLS sees the user
"""

from supabase import Client, create_client

from boldmove.config import settings
from boldmove.db.request_context import get_access_token

# Singleton client instances
_client: Client | None = None
_service_client: Client | None = None


def get_client() -> Client:
    """
    Get the Supabase client.

    Uses singleton pattern to reuse connection.
    """
    global _client

    if _client is None:
        _client = create_client(
            settings.supabase_url,
            settings.supabase_anon_key,
        )

    return _client


def get_service_client() -> Client:
    """Get the service-role Supabase client."""
    global _service_client

    if _service_client is None:
        _service_client = create_client(
            settings.supabase_url,
            settings.supabase_service_role_key,
        )

    return _service_client


def get_authenticated_client(access_token: str | None = None) -> Client:
    """
    Get a client that acts as the given user.

    Falls back to the token in the request context. A new client is built
    per call because the PostgREST session carries the user's JWT.
    """
    token = access_token or get_access_token()
    if not token:
        return get_client()

    client = create_client(settings.supabase_url, settings.supabase_anon_key)
    client.postgrest.auth(token)
    return client
