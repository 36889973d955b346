"""
Journey Pipeline - wires the components for one authenticated user.

    ensure_profile → interview (resumable) → finalize → roadmap
                   → per action: deep dive → completion → progress

The pipeline owns no persistence of its own beyond the device-local resume
pointer; every durable fact lives in the store. A long-lived pipeline (the
API keeps one per user) is pointed at each request's store with rebind().
"""

import logging
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from typing import Any

from boldmove.core.errors import InvalidSessionStateError
from boldmove.llm.client import TextGenerationClient
from journey.draft_cache import DraftCache
from journey.five_whys import Completion, FiveWhysEngine, InterviewContext, Turn
from journey.models import DeepDive, Dream, Identity, OnboardingDraft, Profile, Roadmap
from journey.profile import ProfileReconciler
from journey.progress import ProgressTracker
from journey.roadmap import RoadmapPlanner
from journey.store import JourneyStore
from journey.synthesis import WRITE_SESSION, RootMotivationSynthesizer, SynthesisResult
from journey.tiny_steps import TinyStepDecomposer

logger = logging.getLogger(__name__)


@dataclass
class JourneyProgress:
    """Everything a client needs to render where the user is."""
    session_id: str | None
    status: str
    round: int
    depth: int
    question: str | None = None
    reflection: str | None = None
    motivation: str | None = None
    celebration: str | None = None
    pending_writes: list[str] = field(default_factory=list)
    steps: list[dict] = field(default_factory=list)
    snapshot: dict | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "status": self.status,
            "round": self.round,
            "depth": self.depth,
            "question": self.question,
            "reflection": self.reflection,
            "motivation": self.motivation,
            "celebration": self.celebration,
            "pending_writes": list(self.pending_writes),
            "steps": list(self.steps),
            "snapshot": self.snapshot,
        }


def describe_steps(dive: DeepDive) -> list[dict]:
    """Steps with their derived PENDING/ACTIVE/COMPLETED status."""
    return [
        {**step.to_dict(), "status": dive.status_of(i).value}
        for i, step in enumerate(dive.steps)
    ]


class JourneyPipeline:
    """The guided discovery and action flow for one identity."""

    def __init__(
        self,
        identity: Identity,
        store: JourneyStore,
        generator: TextGenerationClient,
        draft_cache: DraftCache | None = None,
        *,
        depth: int | None = None,
        timezone: str | None = None,
        reconciler: ProfileReconciler | None = None,
    ):
        self.identity = identity
        self.store = store
        self.generator = generator
        self.draft_cache = draft_cache

        self.reconciler = reconciler or ProfileReconciler(store)
        self.engine = FiveWhysEngine(store, generator, depth=depth)
        self.synthesizer = RootMotivationSynthesizer(store, generator, depth=self.engine.depth)
        self.tracker = ProgressTracker(store, identity.id, timezone)
        self.decomposer = TinyStepDecomposer(store, generator, identity.id, tracker=self.tracker)
        self.planner = RoadmapPlanner(store, generator, identity.id)

        self.profile: Profile | None = None
        self.dream: Dream | None = None
        self.draft = OnboardingDraft()
        self.synthesis: SynthesisResult | None = None
        self.celebration: str | None = None
        self.roadmap: Roadmap | None = None
        self.deep_dive: DeepDive | None = None
        self.last_active_at = datetime.now(UTC)

    def rebind(
        self,
        store: JourneyStore,
        generator: TextGenerationClient,
        access_token: str | None = None,
    ) -> None:
        """Point every component at a new store and generator (e.g. a fresh token)."""
        self.store = store
        self.generator = generator
        if access_token:
            self.identity.access_token = access_token
        for component in (
            self.reconciler, self.engine, self.synthesizer,
            self.tracker, self.decomposer, self.planner,
        ):
            component.store = store
        for component in (self.engine, self.synthesizer, self.decomposer, self.planner):
            component.generator = generator
        self.last_active_at = datetime.now(UTC)

    # =========================================================================
    # Discovery
    # =========================================================================

    async def begin(
        self,
        draft: OnboardingDraft | None = None,
        session_id: str | None = None,
    ) -> Turn | Completion:
        """
        Reconcile the profile, then start or resume the interview.

        The resume pointer defaults to the one in the draft cache.

        Raises:
            ProfileUnavailableError: the profile row could not be confirmed
        """
        if draft is None and self.draft_cache is not None:
            draft = self.draft_cache.load_draft()
        self.draft = draft or OnboardingDraft()

        self.profile = await self.reconciler.ensure_profile(self.identity, self.draft)
        self.dream = await self.store.find_active_dream(self.identity.id)

        if session_id is None and self.draft_cache is not None:
            session_id = self.draft_cache.get_resume_session_id()

        context = InterviewContext.from_draft(
            self.identity.id,
            OnboardingDraft(
                name=self.draft.name or self.profile.name,
                dream=self.draft.dream or self.profile.dream or (self.dream.title if self.dream else None),
                stuck_point=self.draft.stuck_point or self.profile.stuck_point,
                stuck_point_title=self.draft.stuck_point_title,
            ),
            dream_id=self.dream.id if self.dream else None,
        )
        result = await self.engine.start(context, session_id)

        if self.draft_cache is not None:
            self.draft_cache.set_resume_session_id(self.engine.session.id)
        return result

    async def answer(self, text: str) -> Turn | Completion:
        return await self.engine.submit_answer(text)

    async def retry(self) -> Turn:
        return await self.engine.retry_generation()

    async def finalize(self) -> SynthesisResult:
        """
        Synthesize the root motivation once every round is answered.

        Raises:
            InvalidSessionStateError: the interview is not complete
        """
        if self.engine.session is None or not self.engine.is_complete:
            raise InvalidSessionStateError("Interview is not complete yet")

        context = self.engine.context
        self.synthesis = await self.synthesizer.finalize(self.engine.session.id, dream=context.dream)
        self.celebration = await self.synthesizer.celebration_message(
            context.name, context.dream, self.synthesis.motivation
        )

        if self.draft_cache is not None and WRITE_SESSION not in self.synthesis.pending_writes:
            self.draft_cache.set_resume_session_id(None)
        return self.synthesis

    async def reconcile(self) -> SynthesisResult | None:
        """Retry finalization writes that failed earlier."""
        if self.synthesis is None or self.synthesis.is_settled:
            return self.synthesis
        self.synthesis = await self.synthesizer.reconcile(self.synthesis)
        return self.synthesis

    async def permission_statement(self) -> str:
        if self.synthesis is None:
            raise InvalidSessionStateError("Finalize the interview first")
        context = self.engine.context
        return await self.synthesizer.permission_statement(
            context.name, context.dream, self.synthesis.motivation, self.engine.exchanges
        )

    # =========================================================================
    # Roadmap
    # =========================================================================

    async def create_roadmap(self) -> Roadmap:
        """
        The action roadmap for the finalized dream, created on first call.

        Uses this run's synthesis when there is one, otherwise the active
        dream's stored motivation (e.g. after a restart).

        Raises:
            InvalidSessionStateError: no root motivation has been found yet
        """
        if self.synthesis is not None:
            dream, motivation = self.engine.context.dream, self.synthesis.motivation
        else:
            stored = await self.store.find_active_dream(self.identity.id)
            if stored is None or not stored.core_motivation:
                raise InvalidSessionStateError("Finish the interview before planning the roadmap")
            dream, motivation = stored.title, stored.core_motivation

        self.roadmap = await self.planner.create(dream, motivation)
        return self.roadmap

    # =========================================================================
    # Action
    # =========================================================================

    async def open_action(self, action_id: str) -> DeepDive:
        action = await self.store.get_action(action_id)
        if action is None:
            raise InvalidSessionStateError(f"Action {action_id} not found")
        self.deep_dive = await self.decomposer.open(action)
        return self.deep_dive

    async def complete_step(self, action_id: str, index: int | None = None) -> DeepDive:
        """Complete the active step (or `index`, which must be the active one)."""
        if index is None:
            self.deep_dive = await self.decomposer.complete_current_step(action_id)
        else:
            self.deep_dive = await self.decomposer.complete_step(action_id, index)
        return self.deep_dive

    async def quick_complete(self, action_id: str) -> bool:
        """Complete an action without a deep dive."""
        return await self.tracker.record_completion(action_id)

    # =========================================================================
    # Output
    # =========================================================================

    async def progress(self, today: date | None = None) -> JourneyProgress:
        turn = self.engine.current_turn
        snapshot = await self.tracker.snapshot(today)
        return JourneyProgress(
            session_id=self.engine.session.id if self.engine.session else None,
            status=self.engine.state.value,
            round=min(self.engine.current_round, self.engine.depth),
            depth=self.engine.depth,
            question=turn.question if turn else None,
            reflection=turn.reflection if turn else None,
            motivation=self.synthesis.motivation if self.synthesis else None,
            celebration=self.celebration,
            pending_writes=list(self.synthesis.pending_writes) if self.synthesis else [],
            steps=describe_steps(self.deep_dive) if self.deep_dive else [],
            snapshot=snapshot.to_dict(),
        )
