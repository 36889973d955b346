"""
Journey Data Model.

Records mirror the Supabase rows the pipeline reads and writes. Each record
round-trips through to_dict()/from_dict(); from_dict() ignores columns the
record does not model (created_at, updated_at, ...).
"""

from dataclasses import asdict, dataclass, field, fields
from datetime import UTC, date, datetime
from enum import Enum
from typing import Any

DEFAULT_CATEGORY = "personal-growth"

# Readable titles for stuck-point category ids
CATEGORY_TITLES = {
    "career": "career growth",
    "travel": "travel & adventure",
    "finance": "financial freedom",
    "creative": "creative pursuits",
    "wellness": "wellness & habits",
    "personal-growth": "personal growth",
}


def utc_now() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


def _pick(cls, data: dict) -> dict:
    """Keep only the keys that are fields of `cls`."""
    names = {f.name for f in fields(cls)}
    return {k: v for k, v in data.items() if k in names}


class SessionStatus(Enum):
    """Persisted reflection session status."""
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class InterviewState(Enum):
    """In-memory Five Whys engine state."""
    IDLE = "idle"
    AWAITING_ANSWER = "awaiting_answer"
    GENERATING = "generating"
    COMPLETE = "complete"


class StepStatus(Enum):
    """Derived tiny step status."""
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"


@dataclass
class Identity:
    """An already-authenticated user handle."""
    id: str
    email: str | None = None
    access_token: str | None = None


@dataclass
class OnboardingDraft:
    """Values captured before sign-up and cached on the device."""
    name: str | None = None
    dream: str | None = None
    stuck_point: str | None = None
    stuck_point_title: str | None = None

    @property
    def category(self) -> str:
        return self.stuck_point or DEFAULT_CATEGORY

    @property
    def category_title(self) -> str:
        return (
            self.stuck_point_title
            or CATEGORY_TITLES.get(self.category)
            or CATEGORY_TITLES[DEFAULT_CATEGORY]
        )

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "OnboardingDraft":
        return cls(**_pick(cls, data))


@dataclass
class Profile:
    """Row in `users`."""
    id: str
    name: str | None = None
    dream: str | None = None
    stuck_point: str | None = None
    onboarding_completed: bool = False

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "Profile":
        record = cls(**_pick(cls, data))
        record.onboarding_completed = bool(record.onboarding_completed)
        return record


@dataclass
class Dream:
    """Row in `dreams`. At most one per user has is_active = true."""
    id: str
    user_id: str
    title: str
    category: str = DEFAULT_CATEGORY
    is_active: bool = True
    core_motivation: str | None = None
    five_whys_completed: bool = False

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "Dream":
        record = cls(**_pick(cls, data))
        record.five_whys_completed = bool(record.five_whys_completed)
        return record


@dataclass
class ReflectionSession:
    """Row in `five_whys_sessions`."""
    id: str
    user_id: str
    dream_id: str | None = None
    status: SessionStatus = SessionStatus.IN_PROGRESS
    current_why_number: int = 0
    root_motivation: str | None = None
    completed_at: str | None = None

    @property
    def is_completed(self) -> bool:
        return self.status == SessionStatus.COMPLETED

    def to_dict(self) -> dict:
        data = asdict(self)
        data["status"] = self.status.value
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "ReflectionSession":
        data = _pick(cls, data)
        if "status" in data:
            data["status"] = SessionStatus(data["status"])
        return cls(**data)


@dataclass
class ReflectionExchange:
    """Row in `five_whys_responses`. Immutable once written."""
    session_id: str
    why_number: int
    question: str
    user_response: str
    ai_reflection: str | None = None
    created_at: str = ""

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "ReflectionExchange":
        return cls(**_pick(cls, data))


@dataclass
class Action:
    """Row in `roadmap_actions`. Completion only moves false → true."""
    id: str
    title: str
    description: str = ""
    duration_minutes: int | None = None
    category: str | None = None
    roadmap_id: str | None = None
    order_index: int = 0
    why_it_matters: str | None = None
    is_completed: bool = False
    completed_at: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "Action":
        record = cls(**_pick(cls, data))
        record.description = record.description or ""
        record.order_index = record.order_index or 0
        record.is_completed = bool(record.is_completed)
        return record


@dataclass
class Roadmap:
    """Row in `action_roadmaps`, with its actions in order."""
    id: str
    user_id: str
    dream: str = ""
    root_motivation: str | None = None
    roadmap_title: str = "Your Golden Path"
    status: str = "active"
    source: str = "stored"  # "generated" | "fallback" when just created; not a column
    actions: list[Action] = field(default_factory=list)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["actions"] = [a.to_dict() for a in self.actions]
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Roadmap":
        data = _pick(cls, data)
        data["actions"] = [
            Action.from_dict(a) if isinstance(a, dict) else a
            for a in data.get("actions", [])
        ]
        return cls(**data)


@dataclass
class TinyStep:
    """One sub-two-minute unit of an action."""
    index: int
    title: str
    description: str = ""
    is_completed: bool = False
    completed_at: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "TinyStep":
        return cls(**_pick(cls, data))


@dataclass
class DeepDive:
    """
    Persisted breakdown of one action into tiny steps.

    Stored in `deep_dives` keyed by action_id so reopening the breakdown
    restores the same steps and pointer.
    """
    action_id: str
    action_title: str
    steps: list[TinyStep] = field(default_factory=list)
    current_step_index: int = 0
    source: str = "parsed"  # "parsed" | "fallback"
    action_completed: bool = False
    started_at: str = ""
    completed_at: str | None = None

    def __post_init__(self):
        if not self.started_at:
            self.started_at = utc_now()

    @property
    def all_complete(self) -> bool:
        return bool(self.steps) and all(s.is_completed for s in self.steps)

    @property
    def active_step(self) -> TinyStep | None:
        """The first incomplete step in index order."""
        for step in self.steps:
            if not step.is_completed:
                return step
        return None

    def status_of(self, index: int) -> StepStatus:
        step = self.steps[index]
        if step.is_completed:
            return StepStatus.COMPLETED
        active = self.active_step
        if active is not None and active.index == step.index:
            return StepStatus.ACTIVE
        return StepStatus.PENDING

    def copy(self) -> "DeepDive":
        """Independent copy (steps included) for staged changes."""
        return DeepDive.from_dict(self.to_dict())

    def to_dict(self) -> dict:
        data = asdict(self)
        data["steps"] = [s.to_dict() for s in self.steps]
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "DeepDive":
        data = _pick(cls, data)
        data["steps"] = [
            TinyStep.from_dict(s) if isinstance(s, dict) else s
            for s in data.get("steps", [])
        ]
        return cls(**data)


@dataclass
class ProgressSnapshot:
    """Aggregates derived from action completion timestamps."""
    completed_count: int = 0
    current_streak: int = 0
    longest_streak: int = 0
    last_completed_on: date | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["last_completed_on"] = (
            self.last_completed_on.isoformat() if self.last_completed_on else None
        )
        return data
