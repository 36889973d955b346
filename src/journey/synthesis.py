"""
Root Motivation Synthesizer.

Closes a finished interview: one sentence naming what drives the person,
written to the session, mirrored onto the active dream, and the profile is
marked as onboarded.

The three writes are separate targeted updates. A failure after the
session write does not lose the motivation: the result lists what is still
pending and reconcile() re-applies it later.
"""

import logging
from dataclasses import dataclass, field

from boldmove.config import settings
from boldmove.core.errors import GenerationError, InvalidSessionStateError, StoreError
from boldmove.core.retry import retry_with_backoff
from boldmove.llm.client import TextGenerationClient
from journey import prompts
from journey.models import ReflectionExchange, ReflectionSession, SessionStatus, utc_now
from journey.store import JourneyStore

logger = logging.getLogger(__name__)

WRITE_SESSION = "session"
WRITE_DREAM = "dream"
WRITE_PROFILE = "profile"

# Application order for finalization writes
WRITE_ORDER = (WRITE_SESSION, WRITE_DREAM, WRITE_PROFILE)


@dataclass
class SynthesisResult:
    """Outcome of finalize()."""
    session_id: str
    user_id: str
    motivation: str
    is_fallback: bool = False
    completed_at: str = ""
    pending_writes: list[str] = field(default_factory=list)

    @property
    def is_settled(self) -> bool:
        return not self.pending_writes

    def to_dict(self) -> dict:
        return {
            "session_id": self.session_id,
            "motivation": self.motivation,
            "is_fallback": self.is_fallback,
            "completed_at": self.completed_at,
            "pending_writes": list(self.pending_writes),
        }


def format_answers(exchanges: list[ReflectionExchange]) -> str:
    return "\n".join(
        f"Why {ex.why_number}: {ex.user_response}"
        for ex in sorted(exchanges, key=lambda e: e.why_number)
    )


def key_insights(exchanges: list[ReflectionExchange], last: int = 3) -> str:
    """The deepest answers, joined for the permission prompt."""
    ordered = sorted(exchanges, key=lambda e: e.why_number)
    return "; ".join(ex.user_response for ex in ordered[-last:])


class RootMotivationSynthesizer:
    """Finalizes completed reflection sessions."""

    def __init__(
        self,
        store: JourneyStore,
        generator: TextGenerationClient,
        *,
        depth: int | None = None,
        retries: int | None = None,
        backoff_seconds: float | None = None,
    ):
        self.store = store
        self.generator = generator
        self.depth = depth if depth is not None else settings.five_whys_depth
        self.retries = retries if retries is not None else settings.generation_retries
        self.backoff_seconds = (
            backoff_seconds if backoff_seconds is not None else settings.generation_backoff_seconds
        )

    # -------------------------------------------------------------------------
    # Finalize
    # -------------------------------------------------------------------------

    async def finalize(self, session_id: str, dream: str | None = None) -> SynthesisResult:
        """
        Synthesize the root motivation and finalize records.

        Args:
            session_id: A session with every round answered
            dream: Dream title for the prompt (defaults to the active dream)

        Raises:
            InvalidSessionStateError: unknown session or unanswered rounds
        """
        session = await self.store.get_session(session_id)
        if session is None:
            raise InvalidSessionStateError(f"Session {session_id} not found")

        if session.is_completed and session.root_motivation:
            return await self._resume_completed(session)

        exchanges = await self.store.list_exchanges(session_id)
        if len(exchanges) != self.depth:
            raise InvalidSessionStateError(
                f"Session {session_id} has {len(exchanges)} of {self.depth} answers"
            )

        if dream is None:
            active = await self.store.find_active_dream(session.user_id)
            dream = active.title if active else ""

        motivation, is_fallback = await self._synthesize(dream, exchanges)
        result = SynthesisResult(
            session_id=session.id,
            user_id=session.user_id,
            motivation=motivation,
            is_fallback=is_fallback,
            completed_at=utc_now(),
            pending_writes=list(WRITE_ORDER),
        )
        return await self.reconcile(result)

    async def _synthesize(
        self, dream: str, exchanges: list[ReflectionExchange]
    ) -> tuple[str, bool]:
        prompt = prompts.MOTIVATION_PROMPT.format(
            dream=dream or "their dream",
            answers=format_answers(exchanges),
        )
        result = await retry_with_backoff(
            lambda: self.generator.generate_text(prompt, node="synthesis"),
            attempts=self.retries + 1,
            backoff_seconds=self.backoff_seconds,
            retry_on=(GenerationError,),
            label="root motivation",
        )
        if result.ok and result.value and result.value.strip():
            return result.value.strip().strip('"'), False

        logger.warning("Root motivation synthesis failed, using generic statement")
        return prompts.FALLBACK_MOTIVATION, True

    async def _resume_completed(self, session: ReflectionSession) -> SynthesisResult:
        """Already finalized: return the stored motivation, re-apply missing mirrors."""
        logger.info(f"Session {session.id} already completed, checking mirrored fields")
        result = SynthesisResult(
            session_id=session.id,
            user_id=session.user_id,
            motivation=session.root_motivation,
            completed_at=session.completed_at or "",
        )

        dream = await self.store.find_active_dream(session.user_id)
        if dream is not None and (
            not dream.five_whys_completed or dream.core_motivation != session.root_motivation
        ):
            result.pending_writes.append(WRITE_DREAM)

        profile = await self.store.get_profile(session.user_id)
        if profile is not None and not profile.onboarding_completed:
            result.pending_writes.append(WRITE_PROFILE)

        if result.pending_writes:
            return await self.reconcile(result)
        return result

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    async def reconcile(self, result: SynthesisResult) -> SynthesisResult:
        """
        Apply every pending write, in order, keeping the ones that fail.

        Safe to call repeatedly; each write sets absolute values.
        """
        still_pending = []
        for name in WRITE_ORDER:
            if name not in result.pending_writes:
                continue
            try:
                await self._apply(name, result)
            except StoreError as e:
                logger.warning(f"Finalization write '{name}' for {result.session_id} failed: {e}")
                still_pending.append(name)

        result.pending_writes = still_pending
        if still_pending:
            logger.error(f"Session {result.session_id} finalized with pending writes {still_pending}")
        else:
            logger.info(f"Session {result.session_id} finalized")
        return result

    async def _apply(self, name: str, result: SynthesisResult) -> None:
        if name == WRITE_SESSION:
            await self.store.update_session(result.session_id, {
                "status": SessionStatus.COMPLETED.value,
                "root_motivation": result.motivation,
                "completed_at": result.completed_at or utc_now(),
            })
        elif name == WRITE_DREAM:
            touched = await self.store.update_active_dream(result.user_id, {
                "core_motivation": result.motivation,
                "five_whys_completed": True,
            })
            if not touched:
                logger.info(f"No active dream for {result.user_id}, motivation kept on session")
        elif name == WRITE_PROFILE:
            await self.store.update_profile(result.user_id, {"onboarding_completed": True})
        else:
            raise ValueError(f"Unknown finalization write: {name}")

    # -------------------------------------------------------------------------
    # Closing texts
    # -------------------------------------------------------------------------

    async def _text_or_fallback(self, prompt: str, node: str, fallback: str) -> str:
        result = await retry_with_backoff(
            lambda: self.generator.generate_text(prompt, node=node),
            attempts=self.retries + 1,
            backoff_seconds=self.backoff_seconds,
            retry_on=(GenerationError,),
            label=node,
        )
        if result.ok and result.value and result.value.strip():
            return result.value.strip()
        logger.warning(f"{node} generation failed, using fallback text")
        return fallback

    async def celebration_message(self, name: str, dream: str, motivation: str) -> str:
        """Closing chat message shown after the last answer."""
        prompt = prompts.CELEBRATION_PROMPT.format(name=name, dream=dream, motivation=motivation)
        fallback = prompts.FALLBACK_CELEBRATION.format(name=name, motivation=motivation)
        return await self._text_or_fallback(prompt, "celebration", fallback)

    async def permission_statement(
        self,
        name: str,
        dream: str,
        motivation: str,
        exchanges: list[ReflectionExchange],
    ) -> str:
        """The "permission slip" keepsake text."""
        prompt = prompts.PERMISSION_PROMPT.format(
            name=name,
            dream=dream,
            motivation=motivation,
            insights=key_insights(exchanges),
        )
        fallback = prompts.FALLBACK_PERMISSION.format(dream=dream)
        return await self._text_or_fallback(prompt, "permission", fallback)
