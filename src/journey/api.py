"""
Journey API Endpoints.

Thin HTTP layer over JourneyPipeline. One pipeline is kept in memory per
user and rebound to each request's store, so it always acts with the
caller's current token. Pipelines idle longer than pipeline_idle_minutes,
or whose interview is finalized, are dropped; the next session request
resumes from the store (the pending question is regenerated from the
stored exchanges).
"""

import logging
from datetime import UTC, datetime, timedelta
from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from boldmove.config import settings
from boldmove.core.errors import (
    BoldMoveError,
    GenerationError,
    InvalidSessionStateError,
    OperationInProgressError,
    ProfileUnavailableError,
    StepOrderError,
    StoreError,
)
from boldmove.db.client import get_authenticated_client
from boldmove.db.request_context import set_request_context
from boldmove.llm.client import TextGenerationClient
from boldmove.web.auth import AuthenticatedUser, get_current_user
from journey.five_whys import Completion, Turn
from journey.models import DeepDive, Identity, InterviewState, OnboardingDraft
from journey.pipeline import JourneyPipeline, describe_steps
from journey.store import JourneyStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/journey", tags=["journey"])

# In-memory pipelines (keyed by user_id)
pipelines: dict[str, JourneyPipeline] = {}

# Checked in order: subclasses before their bases
ERROR_STATUS: list[tuple[type[Exception], int]] = [
    (ProfileUnavailableError, 503),
    (InvalidSessionStateError, 409),
    (StepOrderError, 409),
    (OperationInProgressError, 429),
    (GenerationError, 502),
    (StoreError, 503),
    (ValueError, 400),
]


def status_for(error: Exception) -> int:
    """HTTP status for a pipeline error."""
    for error_type, status in ERROR_STATUS:
        if isinstance(error, error_type):
            return status
    return 500


def http_error(error: Exception) -> HTTPException:
    status = status_for(error)
    if status >= 500:
        logger.error(f"Journey request failed ({status}): {error}")
    return HTTPException(status_code=status, detail=str(error))


# =============================================================================
# Dependencies
# =============================================================================


def get_journey_store(user: AuthenticatedUser = Depends(get_current_user)) -> JourneyStore:
    """Store acting as the user so row-level security applies."""
    set_request_context(access_token=user.access_token, user_id=user.id)
    return JourneyStore(get_authenticated_client(user.access_token))


def get_generator() -> TextGenerationClient:
    return TextGenerationClient()


def evict_idle_pipelines(now: datetime | None = None) -> int:
    """Drop pipelines not used within pipeline_idle_minutes. Returns how many."""
    cutoff = (now or datetime.now(UTC)) - timedelta(minutes=settings.pipeline_idle_minutes)
    idle = [user_id for user_id, p in pipelines.items() if p.last_active_at < cutoff]
    for user_id in idle:
        del pipelines[user_id]
    if idle:
        logger.info(f"Evicted {len(idle)} idle journey pipeline(s)")
    return len(idle)


def new_pipeline(
    user: AuthenticatedUser,
    store: JourneyStore,
    generator: TextGenerationClient,
) -> JourneyPipeline:
    pipeline = JourneyPipeline(
        Identity(id=user.id, email=user.email, access_token=user.access_token),
        store,
        generator,
    )
    pipelines[user.id] = pipeline
    return pipeline


def cached_pipeline(
    user: AuthenticatedUser,
    store: JourneyStore,
    generator: TextGenerationClient,
) -> JourneyPipeline | None:
    """The user's live pipeline, rebound to this request's store."""
    evict_idle_pipelines()
    pipeline = pipelines.get(user.id)
    if pipeline is not None:
        pipeline.rebind(store, generator, user.access_token)
    return pipeline


async def pipeline_for_session(
    session_id: str,
    user: AuthenticatedUser,
    store: JourneyStore,
    generator: TextGenerationClient,
) -> JourneyPipeline:
    """The user's pipeline positioned on `session_id`, resuming it if needed."""
    pipeline = cached_pipeline(user, store, generator)
    if pipeline is not None and pipeline.engine.session and pipeline.engine.session.id == session_id:
        return pipeline

    session = await store.get_session(session_id)
    if session is None or session.user_id != user.id:
        raise HTTPException(status_code=404, detail="Session not found")

    pipeline = new_pipeline(user, store, generator)
    await pipeline.begin(OnboardingDraft(), session_id=session_id)
    return pipeline


# =============================================================================
# Request/Response Models
# =============================================================================


class StartRequest(BaseModel):
    """Onboarding draft captured before sign-up."""
    name: str | None = None
    dream: str | None = None
    stuck_point: str | None = None
    stuck_point_title: str | None = None
    session_id: str | None = None  # Resume pointer held by the client


class AnswerRequest(BaseModel):
    text: str = Field(min_length=1)


class TurnResponse(BaseModel):
    session_id: str
    status: str
    round: int
    depth: int
    question: str | None = None
    reflection: str | None = None
    is_fallback: bool = False
    is_complete: bool = False
    exchanges: list[dict] = Field(default_factory=list)


class FinalizeResponse(BaseModel):
    session_id: str
    motivation: str
    is_fallback: bool
    celebration: str | None = None
    pending_writes: list[str] = Field(default_factory=list)


class RoadmapResponse(BaseModel):
    roadmap_id: str
    title: str
    dream: str
    source: str
    actions: list[dict] = Field(default_factory=list)


class CompleteStepRequest(BaseModel):
    index: int | None = None  # Must be the active step when given


class DeepDiveResponse(BaseModel):
    action_id: str
    action_title: str
    source: str
    current_step_index: int
    action_completed: bool
    steps: list[dict] = Field(default_factory=list)


class CompleteActionResponse(BaseModel):
    action_id: str
    newly_completed: bool
    progress: dict


def turn_response(pipeline: JourneyPipeline, result: Turn | Completion | None = None) -> TurnResponse:
    engine = pipeline.engine
    turn = engine.current_turn
    return TurnResponse(
        session_id=engine.session.id,
        status=engine.state.value,
        round=min(engine.current_round, engine.depth),
        depth=engine.depth,
        question=turn.question if turn else None,
        reflection=turn.reflection if turn else None,
        is_fallback=turn.is_fallback if turn else False,
        is_complete=isinstance(result, Completion) or engine.is_complete,
        exchanges=[ex.to_dict() for ex in engine.exchanges],
    )


def deep_dive_response(dive: DeepDive) -> DeepDiveResponse:
    return DeepDiveResponse(
        action_id=dive.action_id,
        action_title=dive.action_title,
        source=dive.source,
        current_step_index=dive.current_step_index,
        action_completed=dive.action_completed,
        steps=describe_steps(dive),
    )


# =============================================================================
# Endpoints: Discovery
# =============================================================================


@router.post("/start", response_model=TurnResponse)
async def start_journey(
    request: StartRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    store: JourneyStore = Depends(get_journey_store),
    generator: TextGenerationClient = Depends(get_generator),
) -> TurnResponse:
    """Reconcile the profile from the draft, then start or resume the interview."""
    evict_idle_pipelines()
    pipeline = new_pipeline(user, store, generator)
    draft = OnboardingDraft(
        name=request.name,
        dream=request.dream,
        stuck_point=request.stuck_point,
        stuck_point_title=request.stuck_point_title,
    )
    try:
        result = await pipeline.begin(draft, session_id=request.session_id)
    except BoldMoveError as e:
        raise http_error(e)
    return turn_response(pipeline, result)


@router.get("/session/{session_id}", response_model=TurnResponse)
async def get_session_progress(
    session_id: str,
    user: AuthenticatedUser = Depends(get_current_user),
    store: JourneyStore = Depends(get_journey_store),
    generator: TextGenerationClient = Depends(get_generator),
) -> TurnResponse:
    try:
        pipeline = await pipeline_for_session(session_id, user, store, generator)
    except BoldMoveError as e:
        raise http_error(e)
    return turn_response(pipeline)


@router.post("/session/{session_id}/answer", response_model=TurnResponse)
async def submit_answer(
    session_id: str,
    request: AnswerRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    store: JourneyStore = Depends(get_journey_store),
    generator: TextGenerationClient = Depends(get_generator),
) -> TurnResponse:
    """Record the answer; returns the next question or completion."""
    try:
        pipeline = await pipeline_for_session(session_id, user, store, generator)
        result = await pipeline.answer(request.text)
    except (BoldMoveError, ValueError) as e:
        raise http_error(e)
    return turn_response(pipeline, result)


@router.post("/session/{session_id}/retry", response_model=TurnResponse)
async def retry_generation(
    session_id: str,
    user: AuthenticatedUser = Depends(get_current_user),
    store: JourneyStore = Depends(get_journey_store),
    generator: TextGenerationClient = Depends(get_generator),
) -> TurnResponse:
    """Retry generating the pending question after a 502."""
    try:
        pipeline = await pipeline_for_session(session_id, user, store, generator)
        if pipeline.engine.state != InterviewState.GENERATING:
            # Nothing pending (resuming may already have regenerated it)
            return turn_response(pipeline)
        result = await pipeline.retry()
    except BoldMoveError as e:
        raise http_error(e)
    return turn_response(pipeline, result)


@router.post("/session/{session_id}/finalize", response_model=FinalizeResponse)
async def finalize_session(
    session_id: str,
    user: AuthenticatedUser = Depends(get_current_user),
    store: JourneyStore = Depends(get_journey_store),
    generator: TextGenerationClient = Depends(get_generator),
) -> FinalizeResponse:
    """Synthesize the root motivation and finalize records."""
    try:
        pipeline = await pipeline_for_session(session_id, user, store, generator)
        result = await pipeline.finalize()
    except BoldMoveError as e:
        raise http_error(e)
    if result.is_settled:
        # Nothing left to reconcile; later calls resume from the store
        pipelines.pop(user.id, None)
    return FinalizeResponse(
        session_id=result.session_id,
        motivation=result.motivation,
        is_fallback=result.is_fallback,
        celebration=pipeline.celebration,
        pending_writes=result.pending_writes,
    )


# =============================================================================
# Endpoints: Action
# =============================================================================


def action_pipeline(
    user: AuthenticatedUser = Depends(get_current_user),
    store: JourneyStore = Depends(get_journey_store),
    generator: TextGenerationClient = Depends(get_generator),
) -> JourneyPipeline:
    """Deep dives don't need an interview; reuse or create the user's pipeline."""
    return cached_pipeline(user, store, generator) or new_pipeline(user, store, generator)


@router.post("/roadmap", response_model=RoadmapResponse)
async def create_roadmap(pipeline: JourneyPipeline = Depends(action_pipeline)) -> RoadmapResponse:
    """Plan the action roadmap for the finalized dream (returns the existing one if any)."""
    try:
        roadmap = await pipeline.create_roadmap()
    except BoldMoveError as e:
        raise http_error(e)
    return RoadmapResponse(
        roadmap_id=roadmap.id,
        title=roadmap.roadmap_title,
        dream=roadmap.dream,
        source=roadmap.source,
        actions=[action.to_dict() for action in roadmap.actions],
    )


@router.post("/actions/{action_id}/deep-dive", response_model=DeepDiveResponse)
async def open_deep_dive(
    action_id: str,
    pipeline: JourneyPipeline = Depends(action_pipeline),
) -> DeepDiveResponse:
    """Break an action into tiny steps, or restore the saved breakdown."""
    try:
        dive = await pipeline.open_action(action_id)
    except BoldMoveError as e:
        raise http_error(e)
    return deep_dive_response(dive)


@router.post("/actions/{action_id}/deep-dive/complete-step", response_model=DeepDiveResponse)
async def complete_step(
    action_id: str,
    request: CompleteStepRequest | None = None,
    pipeline: JourneyPipeline = Depends(action_pipeline),
) -> DeepDiveResponse:
    """Complete the active tiny step."""
    index = request.index if request else None
    try:
        dive = await pipeline.complete_step(action_id, index)
    except BoldMoveError as e:
        raise http_error(e)
    return deep_dive_response(dive)


@router.post("/actions/{action_id}/complete", response_model=CompleteActionResponse)
async def complete_action(
    action_id: str,
    pipeline: JourneyPipeline = Depends(action_pipeline),
) -> CompleteActionResponse:
    """Quick-complete an action without a deep dive."""
    try:
        flipped = await pipeline.quick_complete(action_id)
        snapshot = await pipeline.tracker.snapshot()
    except BoldMoveError as e:
        raise http_error(e)
    return CompleteActionResponse(
        action_id=action_id,
        newly_completed=flipped,
        progress=snapshot.to_dict(),
    )


@router.get("/progress")
async def get_progress(pipeline: JourneyPipeline = Depends(action_pipeline)) -> dict[str, Any]:
    """Completed count and streaks, recomputed from completion timestamps."""
    try:
        snapshot = await pipeline.tracker.snapshot()
    except BoldMoveError as e:
        raise http_error(e)
    return snapshot.to_dict()
