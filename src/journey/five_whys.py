"""
Five Whys Engine - the reflective interview.

A fixed-depth interview (five rounds by default). Each round's question is
generated from the whole conversation so far, and every answer is persisted
as a ReflectionExchange before the engine moves on.

## States

    IDLE → AWAITING_ANSWER(1) → GENERATING(1) → AWAITING_ANSWER(2) → ... → COMPLETE

- AWAITING_ANSWER(n): question n is shown, exchanges 1..n-1 are stored
- GENERATING(n): exchange n is stored, question n+1 is being generated
- COMPLETE: all rounds answered, hand off to the synthesizer

A failed generation leaves the engine in GENERATING with the exchange kept;
the caller retries with retry_generation(). Rounds are never skipped.

## Resume

Exchanges are the source of truth: after a restart the current round is
count(exchanges) + 1 and the pending question is regenerated from history.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path

from pydantic import BaseModel, Field

from boldmove.config import settings
from boldmove.core.errors import GenerationError, InvalidSessionStateError
from boldmove.core.retry import retry_with_backoff
from boldmove.core.single_flight import SingleFlight
from boldmove.llm.client import TextGenerationClient
from journey import prompts
from journey.models import (
    InterviewState,
    OnboardingDraft,
    ReflectionExchange,
    ReflectionSession,
)
from journey.store import JourneyStore

logger = logging.getLogger(__name__)


# =============================================================================
# Response Models
# =============================================================================

class CoachTurn(BaseModel):
    """One generated interview turn."""
    reflection: str = Field(default="", description="1-2 warm sentences on what they just shared")
    question: str = Field(description="The next question, ending with '?'")


@dataclass
class InterviewContext:
    """What the interview knows about the person before it starts."""
    user_id: str
    name: str
    dream: str
    category: str
    category_title: str
    dream_id: str | None = None

    @classmethod
    def from_draft(
        cls,
        user_id: str,
        draft: OnboardingDraft,
        dream_id: str | None = None,
    ) -> "InterviewContext":
        return cls(
            user_id=user_id,
            name=draft.name or "Bold Explorer",
            dream=draft.dream or "achieving your dream",
            category=draft.category,
            category_title=draft.category_title,
            dream_id=dream_id,
        )


@dataclass
class Turn:
    """A question waiting for an answer."""
    round: int
    question: str
    reflection: str = ""
    is_fallback: bool = False

    @property
    def message(self) -> str:
        """Reflection and question as one chat message."""
        if self.reflection:
            return f"{self.reflection}\n\n{self.question}"
        return self.question


@dataclass
class Completion:
    """Signal that every round has been answered."""
    session_id: str
    exchanges: list[ReflectionExchange] = field(default_factory=list)


def format_history(exchanges: list[ReflectionExchange]) -> str:
    """Format prior exchanges, in round order, for the question prompt."""
    if not exchanges:
        return "(No answers yet - this is the first question)"

    lines = []
    for ex in sorted(exchanges, key=lambda e: e.why_number):
        lines.append(f"Round {ex.why_number}")
        lines.append(f"Q: {ex.question}")
        lines.append(f"A: {ex.user_response}")
        lines.append("")
    return "\n".join(lines).strip()


# =============================================================================
# Engine
# =============================================================================

class FiveWhysEngine:
    """State machine for one reflection session."""

    def __init__(
        self,
        store: JourneyStore,
        generator: TextGenerationClient,
        *,
        depth: int | None = None,
        retries: int | None = None,
        backoff_seconds: float | None = None,
        allow_fallback_questions: bool | None = None,
    ):
        self.store = store
        self.generator = generator
        self.depth = depth if depth is not None else settings.five_whys_depth
        self.retries = retries if retries is not None else settings.generation_retries
        self.backoff_seconds = (
            backoff_seconds if backoff_seconds is not None else settings.generation_backoff_seconds
        )
        self.allow_fallback_questions = (
            allow_fallback_questions
            if allow_fallback_questions is not None
            else settings.allow_fallback_questions
        )
        if self.depth < 1:
            raise ValueError("Interview depth must be at least 1")

        self.state = InterviewState.IDLE
        self.context: InterviewContext | None = None
        self.session: ReflectionSession | None = None
        self.exchanges: list[ReflectionExchange] = []
        self.current_turn: Turn | None = None
        self._flight = SingleFlight()

    # -------------------------------------------------------------------------
    # Introspection
    # -------------------------------------------------------------------------

    @property
    def current_round(self) -> int:
        """The round whose answer is pending (count of exchanges + 1)."""
        return len(self.exchanges) + 1

    @property
    def is_complete(self) -> bool:
        return self.state == InterviewState.COMPLETE

    @property
    def is_busy(self) -> bool:
        return self._flight.is_running("interview")

    def progress(self) -> dict:
        """Snapshot for UI rendering."""
        return {
            "session_id": self.session.id if self.session else None,
            "state": self.state.value,
            "current_round": min(self.current_round, self.depth),
            "depth": self.depth,
            "answered": len(self.exchanges),
            "question": self.current_turn.question if self.current_turn else None,
            "reflection": self.current_turn.reflection if self.current_turn else None,
            "message": self.current_turn.message if self.current_turn else None,
            "is_complete": self.is_complete,
            "is_generating": self.state == InterviewState.GENERATING,
        }

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(
        self,
        context: InterviewContext,
        session_id: str | None = None,
    ) -> Turn | Completion:
        """
        Start a new session or resume `session_id`.

        A resume pointer that no longer resolves to this user's session
        starts a fresh one.

        Raises:
            InvalidSessionStateError: stored exchanges are not gapless from round 1
        """
        with self._flight.guard("interview", "start"):
            if self.state != InterviewState.IDLE:
                raise InvalidSessionStateError(f"Engine already started ({self.state.value})")

            self.context = context
            session = None
            if session_id:
                session = await self.store.get_session(session_id)
                if session is None or session.user_id != context.user_id:
                    logger.warning(f"Resume pointer {session_id} not usable, starting a new session")
                    session = None

            if session is None:
                session = await self.store.create_session(context.user_id, context.dream_id)
                logger.info(f"Created reflection session {session.id} for {context.user_id}")
                self.session = session
                self.exchanges = []
            else:
                self.session = session
                self.exchanges = await self._load_exchanges(session)
                logger.info(
                    f"Resuming session {session.id} at round {self.current_round} "
                    f"({len(self.exchanges)} answered)"
                )

            if len(self.exchanges) >= self.depth or session.is_completed:
                self.state = InterviewState.COMPLETE
                self.current_turn = None
                return Completion(session_id=session.id, exchanges=list(self.exchanges))

            if not self.exchanges:
                self.current_turn = await self._opening_turn()
                self.state = InterviewState.AWAITING_ANSWER
                return self.current_turn

            # Resumed mid-interview: the pending question was never stored
            self.state = InterviewState.GENERATING
            return await self._advance()

    async def submit_answer(self, text: str) -> Turn | Completion:
        """
        Record the answer for the current round and move on.

        Returns the next Turn, or a Completion after the final round.

        Raises:
            ValueError: empty answer
            InvalidSessionStateError: not waiting for an answer
            OperationInProgressError: another call is still running
            GenerationError: next question failed after retries (exchange kept,
                call retry_generation())
        """
        answer = (text or "").strip()
        if not answer:
            raise ValueError("Answer must not be empty")

        with self._flight.guard("interview", "submit_answer"):
            if self.state != InterviewState.AWAITING_ANSWER or self.current_turn is None:
                raise InvalidSessionStateError(
                    f"Cannot accept an answer in state {self.state.value}"
                )

            round_number = self.current_round
            if round_number > self.depth:
                raise InvalidSessionStateError(f"Round {round_number} exceeds depth {self.depth}")

            exchange = ReflectionExchange(
                session_id=self.session.id,
                why_number=round_number,
                question=self.current_turn.question,
                user_response=answer,
                ai_reflection=self.current_turn.reflection or None,
            )
            # Persist first: a failure here leaves the state untouched
            stored = await self.store.insert_exchange(exchange)
            self.exchanges.append(stored)
            self.state = InterviewState.GENERATING
            await self._record_round(round_number + 1)

            if round_number >= self.depth:
                self.state = InterviewState.COMPLETE
                self.current_turn = None
                logger.info(f"Session {self.session.id} answered all {self.depth} rounds")
                return Completion(session_id=self.session.id, exchanges=list(self.exchanges))

            return await self._advance()

    async def retry_generation(self) -> Turn:
        """Retry generating the pending question after a GenerationError."""
        with self._flight.guard("interview", "retry_generation"):
            if self.state != InterviewState.GENERATING:
                raise InvalidSessionStateError(
                    f"Nothing to retry in state {self.state.value}"
                )
            return await self._advance()

    async def transcribe(self, audio_path: str | Path) -> str:
        """Turn a recorded voice answer into text (the caller submits it)."""
        return await self.generator.transcribe_audio(audio_path)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    async def _load_exchanges(self, session: ReflectionSession) -> list[ReflectionExchange]:
        exchanges = await self.store.list_exchanges(session.id)
        rounds = [ex.why_number for ex in exchanges]
        if rounds != list(range(1, len(rounds) + 1)):
            raise InvalidSessionStateError(
                f"Session {session.id} has non-contiguous rounds {rounds}"
            )
        return exchanges

    async def _record_round(self, next_round: int) -> None:
        """
        Mirror the round pointer onto the session row.

        Best effort: resume derives the round from stored exchanges.
        """
        try:
            await self.store.update_session(
                self.session.id, {"current_why_number": min(next_round, self.depth)}
            )
        except Exception as e:
            logger.warning(f"Could not update round pointer for {self.session.id}: {e}")

    async def _advance(self) -> Turn:
        """Generate the question for the current round; GENERATING → AWAITING_ANSWER."""
        round_number = self.current_round
        turn = await self._generate_question(round_number)
        self.current_turn = turn
        self.state = InterviewState.AWAITING_ANSWER
        return turn

    async def _opening_turn(self) -> Turn:
        """Personalized first question, templated greeting on failure."""
        ctx = self.context
        prompt = prompts.GREETING_PROMPT.format(
            coach_identity=prompts.COACH_IDENTITY,
            name=ctx.name,
            category_title=ctx.category_title,
            dream=ctx.dream,
        )
        result = await retry_with_backoff(
            lambda: self.generator.generate_text(prompt, node="greeting"),
            attempts=self.retries + 1,
            backoff_seconds=self.backoff_seconds,
            retry_on=(GenerationError,),
            label="greeting",
        )
        if result.ok and result.value and result.value.strip():
            return Turn(round=1, question=result.value.strip())

        logger.warning("Opening question generation failed, using templated greeting")
        return Turn(
            round=1,
            question=prompts.FALLBACK_GREETING.format(name=ctx.name, dream=ctx.dream),
            is_fallback=True,
        )

    async def _ask(self, round_number: int) -> CoachTurn:
        ctx = self.context
        system_prompt = prompts.QUESTION_SYSTEM_PROMPT.format(
            coach_identity=prompts.COACH_IDENTITY,
            name=ctx.name,
            category_title=ctx.category_title,
            dream=ctx.dream,
            depth_guidance=prompts.DEPTH_GUIDANCE.get(round_number, prompts.FINAL_DEPTH_GUIDANCE),
            history=format_history(self.exchanges),
        )
        turn = await self.generator.generate_structured(
            response_model=CoachTurn,
            system_prompt=system_prompt,
            user_prompt=prompts.QUESTION_USER_PROMPT,
            node="question",
        )
        if not turn.question or not turn.question.strip():
            raise GenerationError(f"Empty question for round {round_number}")
        return turn

    async def _generate_question(self, round_number: int) -> Turn:
        result = await retry_with_backoff(
            lambda: self._ask(round_number),
            attempts=self.retries + 1,
            backoff_seconds=self.backoff_seconds,
            retry_on=(GenerationError,),
            label=f"question round {round_number}",
        )
        if result.ok:
            return Turn(
                round=round_number,
                question=result.value.question.strip(),
                reflection=result.value.reflection.strip(),
            )

        if not self.allow_fallback_questions:
            logger.error(
                f"Question for round {round_number} of {self.session.id} failed, awaiting retry"
            )
            raise result.error

        logger.warning(f"Using fallback question for round {round_number}")
        template = prompts.FALLBACK_QUESTIONS.get(round_number, prompts.FALLBACK_QUESTION_DEFAULT)
        return Turn(
            round=round_number,
            question=template.format(dream=self.context.dream),
            reflection=prompts.FALLBACK_REFLECTION if round_number > 1 else "",
            is_fallback=True,
        )
