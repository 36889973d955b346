"""
Pytest configuration and fixtures for BoldMove tests.

The Supabase client is replaced by FakeSupabase, an in-memory table store
implementing the PostgREST builder subset the journey store uses. Text
generation is replaced by FakeGenerator, which replays scripted outputs.
"""

import itertools
import os
import uuid
from types import SimpleNamespace
from typing import Any

import pytest

# Set test environment before importing boldmove modules
os.environ["BOLDMOVE_ENV"] = "development"
os.environ.setdefault("OPENAI_API_KEY", "test-key-not-real")
os.environ["BOLDMOVE_LOG_PROMPTS"] = "0"
os.environ["GENERATION_BACKOFF_SECONDS"] = "0"
os.environ["PROFILE_POLL_BACKOFF_SECONDS"] = "0"

from journey.models import Identity, OnboardingDraft  # noqa: E402
from journey.store import JourneyStore  # noqa: E402


# ---------------------------------------------------------------------------
# FakeSupabase
# ---------------------------------------------------------------------------


class FakeAPIError(Exception):
    """Mimics postgrest.exceptions.APIError (carries a Postgres code)."""

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.code = code


# Unique keys per table, checked on insert/upsert
UNIQUE_KEYS: dict[str, list[tuple[str, ...]]] = {
    "users": [("id",)],
    "dreams": [("id",)],
    "five_whys_sessions": [("id",)],
    "five_whys_responses": [("session_id", "why_number")],
    "action_roadmaps": [("id",)],
    "roadmap_actions": [("id",)],
    "deep_dives": [("action_id",)],
}

# Tables keyed by something other than a generated id
NATURAL_KEYS = {"deep_dives": "action_id"}


class FakeQuery:
    """One PostgREST request under construction."""

    def __init__(self, db: "FakeSupabase", table: str):
        self.db = db
        self.table_name = table
        self.op = "select"
        self.payload: Any = None
        self.filters: list = []
        self.order_by: tuple[str, bool] | None = None
        self.limit_n: int | None = None
        self.on_conflict: str | None = None
        self.ignore_duplicates = False

    # Builders ---------------------------------------------------------------

    def select(self, columns: str = "*", count: str | None = None):
        self.op = "select"
        return self

    def insert(self, data):
        self.op, self.payload = "insert", data
        return self

    def upsert(self, data, on_conflict: str = "id", ignore_duplicates: bool = False):
        self.op, self.payload = "upsert", data
        self.on_conflict = on_conflict
        self.ignore_duplicates = ignore_duplicates
        return self

    def update(self, data):
        self.op, self.payload = "update", data
        return self

    def delete(self):
        self.op = "delete"
        return self

    def eq(self, column: str, value):
        self.filters.append(lambda row: row.get(column) == value)
        return self

    def in_(self, column: str, values):
        allowed = list(values)
        self.filters.append(lambda row: row.get(column) in allowed)
        return self

    def order(self, column: str, desc: bool = False):
        self.order_by = (column, desc)
        return self

    def limit(self, n: int):
        self.limit_n = n
        return self

    # Execution --------------------------------------------------------------

    def _matches(self, row: dict) -> bool:
        return all(f(row) for f in self.filters)

    def execute(self):
        self.db.calls.append((self.table_name, self.op))
        self.db.maybe_fail(self.table_name, self.op)
        rows = self.db.tables.setdefault(self.table_name, [])

        if self.op == "select":
            if self.db.consume_invisible(self.table_name):
                return SimpleNamespace(data=[], count=0)
            found = [dict(r) for r in rows if self._matches(r)]
            if self.order_by:
                column, desc = self.order_by
                found.sort(key=lambda r: (r.get(column) is not None, r.get(column)), reverse=desc)
            if self.limit_n is not None:
                found = found[: self.limit_n]
            return SimpleNamespace(data=found, count=len(found))

        if self.op == "insert":
            payload = self.payload if isinstance(self.payload, list) else [self.payload]
            created = [self.db.insert_row(self.table_name, dict(p)) for p in payload]
            return SimpleNamespace(data=created, count=len(created))

        if self.op == "upsert":
            data = dict(self.payload)
            keys = [k.strip() for k in (self.on_conflict or "id").split(",")]
            existing = self.db.find(self.table_name, {k: data.get(k) for k in keys})
            if existing is None:
                return SimpleNamespace(data=[self.db.insert_row(self.table_name, data)], count=1)
            if self.ignore_duplicates:
                return SimpleNamespace(data=[], count=0)
            existing.update(data)
            return SimpleNamespace(data=[dict(existing)], count=1)

        if self.op == "update":
            touched = []
            for row in rows:
                if self._matches(row):
                    row.update(self.payload)
                    touched.append(dict(row))
            return SimpleNamespace(data=touched, count=len(touched))

        if self.op == "delete":
            removed = [r for r in rows if self._matches(r)]
            self.db.tables[self.table_name] = [r for r in rows if not self._matches(r)]
            return SimpleNamespace(data=removed, count=len(removed))

        raise AssertionError(f"Unsupported op {self.op}")


class FakeSupabase:
    """In-memory stand-in for the Supabase client."""

    def __init__(self):
        self.tables: dict[str, list[dict]] = {}
        self.calls: list[tuple[str, str]] = []
        self._failures: list[dict] = []
        self._invisible: dict[str, int] = {}
        self._clock = itertools.count(1)

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    # Helpers for tests ------------------------------------------------------

    def fail(self, table: str, op: str, code: str | None = None, times: int = 1) -> None:
        """Make the next `times` calls of `op` on `table` raise."""
        self._failures.append({"table": table, "op": op, "code": code, "times": times})

    def hide_rows(self, table: str, reads: int) -> None:
        """Make the next `reads` selects on `table` return nothing (replication lag)."""
        self._invisible[table] = reads

    def seed(self, table: str, *rows: dict) -> list[dict]:
        return [self.insert_row(table, dict(r)) for r in rows]

    def rows(self, table: str, **where) -> list[dict]:
        return [r for r in self.tables.get(table, []) if all(r.get(k) == v for k, v in where.items())]

    def count_calls(self, table: str, op: str) -> int:
        return self.calls.count((table, op))

    # Internals --------------------------------------------------------------

    def maybe_fail(self, table: str, op: str) -> None:
        for failure in self._failures:
            if failure["table"] == table and failure["op"] == op and failure["times"] > 0:
                failure["times"] -= 1
                raise FakeAPIError(f"{op} on {table} failed", code=failure["code"])

    def consume_invisible(self, table: str) -> bool:
        remaining = self._invisible.get(table, 0)
        if remaining > 0:
            self._invisible[table] = remaining - 1
            return True
        return False

    def find(self, table: str, key: dict) -> dict | None:
        for row in self.tables.get(table, []):
            if all(row.get(k) == v for k, v in key.items()):
                return row
        return None

    def insert_row(self, table: str, data: dict) -> dict:
        if table not in NATURAL_KEYS:
            data.setdefault("id", str(uuid.uuid4()))
        data.setdefault("created_at", f"2025-01-01T00:00:00.{next(self._clock):06d}+00:00")
        for key in UNIQUE_KEYS.get(table, []):
            if self.find(table, {k: data.get(k) for k in key}) is not None:
                raise FakeAPIError(f"duplicate key on {table} {key}", code="23505")
        self.tables.setdefault(table, []).append(data)
        return dict(data)


# ---------------------------------------------------------------------------
# FakeGenerator
# ---------------------------------------------------------------------------

DEFAULT_TEXT = {
    "greeting": "Alex, I love that you want to run a marathon. Why does it matter to you?",
    "synthesis": "At your core, you seek proof that you can become someone who keeps promises to yourself.",
    "celebration": "✨ Alex, that is the fire beneath your dream.",
    "permission": "You have permission to chase this with your whole heart.",
    "decompose": (
        "1. Put on your running shoes: Just get them on your feet\n"
        "2. Step outside: Open the door and walk out\n"
        "3. Walk for 2 minutes: Warm up at an easy pace\n"
        "4. Jog one block - Keep it slow and easy"
    ),
}

DEFAULT_STRUCTURED = {
    "roadmap": {
        "roadmap_title": "The Road to 26.2",
        "actions": [
            {"title": "Lay out your running kit", "description": "Put shoes and socks by the door.",
             "why_it_matters": "Keeping a promise starts with being ready.", "duration_minutes": 5,
             "category": "planning"},
            {"title": "Walk around the block", "description": "Ten easy minutes, no watch.",
             "why_it_matters": "Proof you show up.", "duration_minutes": 10, "category": "action"},
            {"title": "Find a beginner plan", "description": "Bookmark one couch-to-5k plan.",
             "why_it_matters": "A path makes the promise concrete.", "duration_minutes": 10,
             "category": "research"},
            {"title": "Tell one friend", "description": "Text a friend that you are training.",
             "why_it_matters": "Promises grow stronger when shared.", "duration_minutes": 2,
             "category": "connection"},
        ],
    },
}


class FakeGenerator:
    """
    Scripted TextGenerationClient.

    Queue outputs (or exceptions) per node in `texts`, and structured turns
    in `turns`; other structured outputs (dicts, validated into the
    requested model) per node in `plans`. Anything unscripted gets a
    sensible default.
    """

    def __init__(self):
        self.texts: dict[str, list] = {}
        self.turns: list = []
        self.plans: dict[str, list] = {}
        self.transcript = "Because I want to prove something to myself"
        self.calls: list[tuple[str, str]] = []
        self.structured_calls: list[str] = []

    async def generate_text(self, prompt, *, system_prompt=None, node="text", complexity="medium"):
        self.calls.append((node, prompt))
        queue = self.texts.get(node)
        if queue:
            item = queue.pop(0)
            if isinstance(item, Exception):
                raise item
            return item
        return DEFAULT_TEXT.get(node, f"{node} output")

    async def generate_structured(
        self, *, response_model, system_prompt, user_prompt, node="structured", complexity="medium"
    ):
        if node != "question":
            self.calls.append((node, system_prompt))
            queue = self.plans.get(node)
            item = queue.pop(0) if queue else DEFAULT_STRUCTURED[node]
            if isinstance(item, Exception):
                raise item
            return response_model.model_validate(item)

        self.structured_calls.append(system_prompt)
        if self.turns:
            item = self.turns.pop(0)
            if isinstance(item, Exception):
                raise item
            return item
        n = len(self.structured_calls)
        return response_model(reflection=f"Reflection {n}.", question=f"Deeper question {n}?")

    async def transcribe_audio(self, path):
        return self.transcript

    def nodes(self) -> list[str]:
        return [node for node, _ in self.calls]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def fake_db() -> FakeSupabase:
    return FakeSupabase()


@pytest.fixture
def store(fake_db) -> JourneyStore:
    return JourneyStore(fake_db)


@pytest.fixture
def generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture
def identity() -> Identity:
    return Identity(id="user-alex", email="alex@example.com", access_token="token-alex")


@pytest.fixture
def alex_draft() -> OnboardingDraft:
    return OnboardingDraft(name="Alex", dream="Run a marathon", stuck_point="wellness")


@pytest.fixture
def roadmap_action(fake_db, identity) -> dict:
    """One incomplete action on a roadmap owned by the test identity."""
    (roadmap,) = fake_db.seed("action_roadmaps", {"user_id": identity.id, "dream": "Run a marathon"})
    (action,) = fake_db.seed("roadmap_actions", {
        "roadmap_id": roadmap["id"],
        "title": "Go for a first run",
        "description": "Ten easy minutes around the block",
        "duration_minutes": 10,
        "category": "wellness",
        "is_completed": False,
        "completed_at": None,
    })
    return action
