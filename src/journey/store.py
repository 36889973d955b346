"""
Journey Store - Supabase persistence for the pipeline.

All writes are targeted field updates keyed by id, never full-row
overwrites, so concurrent edits elsewhere in the app (name change,
subscription flags) are not clobbered.

Every PostgREST failure is re-raised as StoreError carrying the
Postgres error code when one is available (e.g. 42501 for an RLS
violation, 23505 for a unique violation).
"""

import logging
from typing import Any

from boldmove.core.errors import StoreError
from boldmove.db.adapter import DatabaseAdapter
from journey.models import (
    Action,
    DeepDive,
    Dream,
    Profile,
    ReflectionExchange,
    ReflectionSession,
    Roadmap,
    SessionStatus,
    utc_now,
)

logger = logging.getLogger(__name__)

PROFILES = "users"
DREAMS = "dreams"
SESSIONS = "five_whys_sessions"
EXCHANGES = "five_whys_responses"
ROADMAPS = "action_roadmaps"
ACTIONS = "roadmap_actions"
DEEP_DIVES = "deep_dives"

RLS_VIOLATION = "42501"
UNIQUE_VIOLATION = "23505"


def _execute(query: Any, what: str) -> Any:
    """Run a built query, mapping client errors to StoreError."""
    try:
        return query.execute()
    except Exception as e:
        code = getattr(e, "code", None)
        logger.error(f"Store error during {what}: {e}")
        raise StoreError(f"{what} failed: {e}", code=str(code) if code else None) from e


def _rows(result: Any) -> list[dict]:
    if result is None or not result.data:
        return []
    if isinstance(result.data, dict):
        return [result.data]
    return list(result.data)


def _first(result: Any) -> dict | None:
    rows = _rows(result)
    return rows[0] if rows else None


class JourneyStore:
    """Table-level operations used by the journey components."""

    def __init__(self, db: DatabaseAdapter):
        self.db = db

    # =========================================================================
    # Profiles
    # =========================================================================

    async def get_profile(self, user_id: str) -> Profile | None:
        result = _execute(
            self.db.table(PROFILES).select("*").eq("id", user_id).limit(1),
            "get_profile",
        )
        row = _first(result)
        return Profile.from_dict(row) if row else None

    async def create_profile_if_absent(self, user_id: str, fields: dict) -> None:
        """
        Idempotent create keyed by the identity id.

        ON CONFLICT DO NOTHING, so a row created meanwhile by the auth
        trigger (or a parallel request) is left untouched.
        """
        _execute(
            self.db.table(PROFILES).upsert(
                {"id": user_id, **fields},
                on_conflict="id",
                ignore_duplicates=True,
            ),
            "create_profile",
        )

    async def update_profile(self, user_id: str, fields: dict) -> None:
        _execute(
            self.db.table(PROFILES).update(fields).eq("id", user_id),
            "update_profile",
        )

    # =========================================================================
    # Dreams
    # =========================================================================

    async def find_active_dream(self, user_id: str) -> Dream | None:
        result = _execute(
            self.db.table(DREAMS)
            .select("*")
            .eq("user_id", user_id)
            .eq("is_active", True)
            .limit(1),
            "find_active_dream",
        )
        row = _first(result)
        return Dream.from_dict(row) if row else None

    async def create_dream(self, user_id: str, title: str, category: str) -> Dream:
        result = _execute(
            self.db.table(DREAMS).insert({
                "user_id": user_id,
                "title": title,
                "category": category,
                "is_active": True,
            }),
            "create_dream",
        )
        row = _first(result)
        if row is None:
            raise StoreError("create_dream returned no row")
        return Dream.from_dict(row)

    async def update_active_dream(self, user_id: str, fields: dict) -> int:
        """Update the active dream. Returns the number of rows touched."""
        result = _execute(
            self.db.table(DREAMS)
            .update(fields)
            .eq("user_id", user_id)
            .eq("is_active", True),
            "update_active_dream",
        )
        return len(_rows(result))

    # =========================================================================
    # Reflection sessions & exchanges
    # =========================================================================

    async def create_session(self, user_id: str, dream_id: str | None) -> ReflectionSession:
        result = _execute(
            self.db.table(SESSIONS).insert({
                "user_id": user_id,
                "dream_id": dream_id,
                "status": SessionStatus.IN_PROGRESS.value,
                "current_why_number": 1,
            }),
            "create_session",
        )
        row = _first(result)
        if row is None:
            raise StoreError("create_session returned no row")
        return ReflectionSession.from_dict(row)

    async def get_session(self, session_id: str) -> ReflectionSession | None:
        result = _execute(
            self.db.table(SESSIONS).select("*").eq("id", session_id).limit(1),
            "get_session",
        )
        row = _first(result)
        return ReflectionSession.from_dict(row) if row else None

    async def get_latest_session(self, user_id: str) -> ReflectionSession | None:
        result = _execute(
            self.db.table(SESSIONS)
            .select("*")
            .eq("user_id", user_id)
            .order("created_at", desc=True)
            .limit(1),
            "get_latest_session",
        )
        row = _first(result)
        return ReflectionSession.from_dict(row) if row else None

    async def update_session(self, session_id: str, fields: dict) -> None:
        _execute(
            self.db.table(SESSIONS).update(fields).eq("id", session_id),
            "update_session",
        )

    async def list_exchanges(self, session_id: str) -> list[ReflectionExchange]:
        result = _execute(
            self.db.table(EXCHANGES)
            .select("*")
            .eq("session_id", session_id)
            .order("why_number"),
            "list_exchanges",
        )
        return [ReflectionExchange.from_dict(row) for row in _rows(result)]

    async def insert_exchange(self, exchange: ReflectionExchange) -> ReflectionExchange:
        """
        Append one exchange.

        A unique violation on (session_id, why_number) means this round was
        already written (e.g. a retried request); the stored row is returned.
        """
        data = exchange.to_dict()
        data["created_at"] = data["created_at"] or utc_now()
        try:
            result = _execute(self.db.table(EXCHANGES).insert(data), "insert_exchange")
        except StoreError as e:
            if e.code != UNIQUE_VIOLATION:
                raise
            logger.info(
                f"Exchange {exchange.why_number} already stored for session {exchange.session_id}"
            )
            for existing in await self.list_exchanges(exchange.session_id):
                if existing.why_number == exchange.why_number:
                    return existing
            raise

        row = _first(result)
        return ReflectionExchange.from_dict(row) if row else exchange

    # =========================================================================
    # Roadmaps
    # =========================================================================

    async def find_roadmap(self, user_id: str, dream: str) -> Roadmap | None:
        """Latest active roadmap for this dream, actions in order."""
        result = _execute(
            self.db.table(ROADMAPS)
            .select("*")
            .eq("user_id", user_id)
            .eq("dream", dream)
            .eq("status", "active")
            .order("created_at", desc=True)
            .limit(1),
            "find_roadmap",
        )
        row = _first(result)
        if row is None:
            return None
        roadmap = Roadmap.from_dict(row)
        roadmap.actions = await self.list_actions(roadmap.id)
        return roadmap

    async def create_roadmap(
        self,
        user_id: str,
        dream: str,
        root_motivation: str | None,
        title: str,
    ) -> Roadmap:
        result = _execute(
            self.db.table(ROADMAPS).insert({
                "user_id": user_id,
                "dream": dream,
                "root_motivation": root_motivation,
                "roadmap_title": title,
                "status": "active",
            }),
            "create_roadmap",
        )
        row = _first(result)
        if row is None:
            raise StoreError("create_roadmap returned no row")
        return Roadmap.from_dict(row)

    async def insert_actions(self, roadmap_id: str, actions: list[Action]) -> list[Action]:
        """Insert all actions in one request; returns them in order."""
        rows = [
            {
                "roadmap_id": roadmap_id,
                "title": action.title,
                "description": action.description,
                "why_it_matters": action.why_it_matters,
                "duration_minutes": action.duration_minutes,
                "category": action.category,
                "order_index": action.order_index,
                "is_completed": False,
            }
            for action in actions
        ]
        result = _execute(self.db.table(ACTIONS).insert(rows), "insert_actions")
        stored = [Action.from_dict(row) for row in _rows(result)]
        return sorted(stored, key=lambda a: a.order_index)

    async def list_actions(self, roadmap_id: str) -> list[Action]:
        result = _execute(
            self.db.table(ACTIONS)
            .select("*")
            .eq("roadmap_id", roadmap_id)
            .order("order_index"),
            "list_actions",
        )
        return [Action.from_dict(row) for row in _rows(result)]

    # =========================================================================
    # Actions
    # =========================================================================

    async def get_action(self, action_id: str) -> Action | None:
        result = _execute(
            self.db.table(ACTIONS).select("*").eq("id", action_id).limit(1),
            "get_action",
        )
        row = _first(result)
        return Action.from_dict(row) if row else None

    async def mark_action_completed(self, action_id: str, completed_at: str) -> bool:
        """
        Flip is_completed false → true.

        The filter on is_completed = false makes the write conditional, so
        only one of two racing callers sees a touched row.
        """
        result = _execute(
            self.db.table(ACTIONS)
            .update({"is_completed": True, "completed_at": completed_at})
            .eq("id", action_id)
            .eq("is_completed", False),
            "mark_action_completed",
        )
        return len(_rows(result)) > 0

    async def list_completed_actions(self, user_id: str) -> list[Action]:
        roadmaps = _execute(
            self.db.table(ROADMAPS).select("id").eq("user_id", user_id),
            "list_roadmaps",
        )
        roadmap_ids = [row["id"] for row in _rows(roadmaps)]
        if not roadmap_ids:
            return []

        result = _execute(
            self.db.table(ACTIONS)
            .select("*")
            .in_("roadmap_id", roadmap_ids)
            .eq("is_completed", True),
            "list_completed_actions",
        )
        return [Action.from_dict(row) for row in _rows(result)]

    # =========================================================================
    # Deep dives (tiny step progress)
    # =========================================================================

    async def get_deep_dive(self, action_id: str) -> DeepDive | None:
        result = _execute(
            self.db.table(DEEP_DIVES).select("*").eq("action_id", action_id).limit(1),
            "get_deep_dive",
        )
        row = _first(result)
        if not row:
            return None
        return DeepDive.from_dict(row["state"])

    async def save_deep_dive(self, user_id: str, dive: DeepDive) -> None:
        """Persist the whole deep dive state (JSONB) keyed by action id."""
        _execute(
            self.db.table(DEEP_DIVES).upsert(
                {
                    "action_id": dive.action_id,
                    "user_id": user_id,
                    "state": dive.to_dict(),
                    "updated_at": utc_now(),
                },
                on_conflict="action_id",
            ),
            "save_deep_dive",
        )
