"""
Roadmap Planner.

Turns the dream and its root motivation into an ordered list of concrete
roadmap actions, once per dream, after the interview is finalized. Each
action can later be broken into tiny steps by the decomposer.

The plan comes back as a structured object (Instructor); a failed call or
a plan with fewer than three usable actions is replaced by a fixed plan,
so a roadmap is always created.
"""

import logging
from dataclasses import dataclass

from pydantic import BaseModel, Field

from boldmove.config import settings
from boldmove.core.errors import GenerationError
from boldmove.core.retry import retry_with_backoff
from boldmove.core.single_flight import SingleFlight
from boldmove.llm.client import TextGenerationClient
from journey import prompts
from journey.models import Action, Roadmap
from journey.store import JourneyStore

logger = logging.getLogger(__name__)

MIN_ACTIONS = 3
MAX_ACTIONS = 7
MIN_MINUTES = 2
MAX_MINUTES = 15
CATEGORIES = ("research", "planning", "action", "reflection", "connection")
DEFAULT_CATEGORY = "action"


class PlannedAction(BaseModel):
    title: str
    description: str = ""
    why_it_matters: str = ""
    duration_minutes: int = 5
    category: str = DEFAULT_CATEGORY


class RoadmapDraft(BaseModel):
    """Structured output of the roadmap call."""
    roadmap_title: str = ""
    actions: list[PlannedAction] = Field(default_factory=list)


@dataclass
class RoadmapPlan:
    """Unsaved actions plus where they came from."""
    title: str
    actions: list[Action]
    source: str  # "generated" | "fallback"
    reason: str | None = None


def normalize_actions(drafts: list[PlannedAction], motivation: str | None = None) -> list[Action]:
    """
    Clean generated actions into roadmap order.

    Blank titles are dropped, durations clamped to 2-15 minutes, unknown
    categories become "action", and at most seven actions are kept.
    """
    actions: list[Action] = []
    for draft in drafts:
        title = draft.title.strip().strip("\"'").strip()
        if not title:
            continue
        category = draft.category.strip().lower()
        actions.append(Action(
            id="",
            title=title,
            description=draft.description.strip(),
            why_it_matters=draft.why_it_matters.strip() or motivation,
            duration_minutes=min(max(draft.duration_minutes, MIN_MINUTES), MAX_MINUTES),
            category=category if category in CATEGORIES else DEFAULT_CATEGORY,
            order_index=len(actions),
        ))
        if len(actions) == MAX_ACTIONS:
            break
    return actions


def fallback_plan(dream: str, motivation: str | None, reason: str) -> RoadmapPlan:
    actions = [
        Action(
            id="",
            title=title,
            description=description.format(dream=dream),
            why_it_matters=motivation,
            duration_minutes=minutes,
            category=category,
            order_index=i,
        )
        for i, (title, description, category, minutes) in enumerate(prompts.FALLBACK_ROADMAP_ACTIONS)
    ]
    return RoadmapPlan(
        title=prompts.FALLBACK_ROADMAP_TITLE,
        actions=actions,
        source="fallback",
        reason=reason,
    )


class RoadmapPlanner:
    """Creates the action roadmap for a user's dream."""

    def __init__(
        self,
        store: JourneyStore,
        generator: TextGenerationClient,
        user_id: str,
        *,
        retries: int | None = None,
        backoff_seconds: float | None = None,
    ):
        self.store = store
        self.generator = generator
        self.user_id = user_id
        self.retries = retries if retries is not None else settings.generation_retries
        self.backoff_seconds = (
            backoff_seconds if backoff_seconds is not None else settings.generation_backoff_seconds
        )
        self._flight = SingleFlight()

    async def plan(self, dream: str, motivation: str | None) -> RoadmapPlan:
        """Generate and clean a plan; never raises on bad output."""
        system_prompt = prompts.ROADMAP_SYSTEM_PROMPT.format(
            dream=dream,
            motivation=motivation or "not named yet",
            min_actions=MIN_ACTIONS + 1,
            max_actions=MAX_ACTIONS - 1,
        )
        result = await retry_with_backoff(
            lambda: self.generator.generate_structured(
                response_model=RoadmapDraft,
                system_prompt=system_prompt,
                user_prompt=prompts.ROADMAP_USER_PROMPT,
                node="roadmap",
            ),
            attempts=self.retries + 1,
            backoff_seconds=self.backoff_seconds,
            retry_on=(GenerationError,),
            label=f"roadmap '{dream}'",
        )
        if not result.ok:
            return self._fallback(dream, motivation, "generation_error")

        actions = normalize_actions(result.value.actions, motivation)
        if len(actions) < MIN_ACTIONS:
            return self._fallback(dream, motivation, f"too_few_actions ({len(actions)})")

        title = result.value.roadmap_title.strip() or "Your Golden Path"
        logger.info(f"Planned {len(actions)} actions for '{dream}'")
        return RoadmapPlan(title=title, actions=actions, source="generated")

    def _fallback(self, dream: str, motivation: str | None, reason: str) -> RoadmapPlan:
        logger.warning(f"Using fallback roadmap for '{dream}': {reason}")
        return fallback_plan(dream, motivation, reason)

    async def create(self, dream: str, motivation: str | None) -> Roadmap:
        """
        Return the dream's roadmap, generating it on first call.

        A roadmap row left without actions by an earlier failed insert is
        reused and filled.

        Raises:
            StoreError: the roadmap or its actions could not be written
            OperationInProgressError: already creating this roadmap
        """
        with self._flight.guard("roadmap", "roadmap creation"):
            existing = await self.store.find_roadmap(self.user_id, dream)
            if existing is not None and existing.actions:
                logger.info(f"Roadmap {existing.id} already exists for '{dream}'")
                return existing

            plan = await self.plan(dream, motivation)
            roadmap = existing or await self.store.create_roadmap(
                self.user_id, dream, motivation, plan.title
            )
            roadmap.actions = await self.store.insert_actions(roadmap.id, plan.actions)
            roadmap.source = plan.source
            logger.info(f"Created roadmap {roadmap.id} with {len(roadmap.actions)} actions")
            return roadmap
