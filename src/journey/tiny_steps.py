"""
Tiny Step Decomposer.

Breaks one roadmap action into 3-5 steps of under two minutes each and
walks the user through them in order.

Generation output is parsed leniently; anything that does not yield at
least three steps is replaced by a fixed four-step plan, so a breakdown is
always available. The breakdown and the step pointer are persisted per
action, and completing the last step completes the action exactly once.
"""

import logging
import re
from dataclasses import dataclass

from boldmove.config import settings
from boldmove.core.errors import GenerationError, InvalidSessionStateError, StepOrderError
from boldmove.core.retry import retry_with_backoff
from boldmove.core.single_flight import SingleFlight
from boldmove.llm.client import TextGenerationClient
from journey import prompts
from journey.models import Action, DeepDive, TinyStep, utc_now
from journey.progress import ProgressTracker
from journey.store import JourneyStore

logger = logging.getLogger(__name__)

MIN_STEPS = 3
MAX_STEPS = 5

# "1. Title: description" / "2) **Title** - description" / "3.Title: description"
_NUMBERED_LINE = re.compile(r"^\s*(\d+)\s*[.)]\s*(.+?)\s*$")
# Hyphen or dash with whitespace on both sides, so "5-minute" is left alone
_DASH_SEPARATOR = re.compile(r"\s+[-–—]\s+")
_EMPHASIS = re.compile(r"(\*\*|__|\*|_|`)")


# =============================================================================
# Result types
# =============================================================================

@dataclass
class Parsed:
    """Steps taken from the generated text."""
    steps: list[TinyStep]

    source = "parsed"


@dataclass
class Fallback:
    """The fixed plan, and why the generated text was not used."""
    steps: list[TinyStep]
    reason: str

    source = "fallback"


DecompositionResult = Parsed | Fallback


# =============================================================================
# Parsing
# =============================================================================

def _clean(text: str) -> str:
    return _EMPHASIS.sub("", text).strip().strip("\"'").strip()


def _split_title(body: str) -> tuple[str, str]:
    if ":" in body:
        title, _, description = body.partition(":")
        return _clean(title), _clean(description)

    parts = _DASH_SEPARATOR.split(body, maxsplit=1)
    if len(parts) == 2:
        return _clean(parts[0]), _clean(parts[1])
    return _clean(body), ""


def parse_tiny_steps(text: str) -> list[TinyStep]:
    """
    Extract numbered steps in the order they appear.

    Lines that are not numbered are ignored. Results are capped at five
    steps; validity (at least three) is checked by the caller.
    """
    steps: list[TinyStep] = []
    for line in (text or "").splitlines():
        match = _NUMBERED_LINE.match(line)
        if not match:
            continue
        title, description = _split_title(match.group(2))
        if not title:
            continue
        steps.append(TinyStep(index=len(steps), title=title, description=description))
        if len(steps) == MAX_STEPS:
            break
    return steps


def fallback_steps(action_title: str) -> list[TinyStep]:
    """The fixed four-step plan used when generation is unusable."""
    return [
        TinyStep(index=i, title=title, description=description.format(action_title=action_title))
        for i, (title, description) in enumerate(prompts.FALLBACK_STEPS)
    ]


# =============================================================================
# Decomposer
# =============================================================================

class TinyStepDecomposer:
    """Per-user breakdowns of actions into tiny steps."""

    def __init__(
        self,
        store: JourneyStore,
        generator: TextGenerationClient,
        user_id: str,
        *,
        tracker: ProgressTracker | None = None,
        retries: int | None = None,
        backoff_seconds: float | None = None,
    ):
        self.store = store
        self.generator = generator
        self.user_id = user_id
        self.tracker = tracker or ProgressTracker(store, user_id)
        self.retries = retries if retries is not None else settings.generation_retries
        self.backoff_seconds = (
            backoff_seconds if backoff_seconds is not None else settings.generation_backoff_seconds
        )
        self._dives: dict[str, DeepDive] = {}
        self._flight = SingleFlight()

    async def decompose(self, action_title: str, description: str = "") -> DecompositionResult:
        """Generate and parse steps for an action; never raises on bad output."""
        context = f"Details: {description}\n" if description else ""
        prompt = prompts.DECOMPOSE_PROMPT.format(action_title=action_title, action_context=context)

        result = await retry_with_backoff(
            lambda: self.generator.generate_text(prompt, node="decompose"),
            attempts=self.retries + 1,
            backoff_seconds=self.backoff_seconds,
            retry_on=(GenerationError,),
            label=f"decompose '{action_title}'",
        )
        if not result.ok:
            return self._fallback(action_title, "generation_error")

        text = (result.value or "").strip()
        if not text:
            return self._fallback(action_title, "empty_output")

        steps = parse_tiny_steps(text)
        if len(steps) < MIN_STEPS:
            return self._fallback(action_title, f"too_few_steps ({len(steps)})")

        logger.info(f"Decomposed '{action_title}' into {len(steps)} steps")
        return Parsed(steps=steps)

    def _fallback(self, action_title: str, reason: str) -> Fallback:
        logger.warning(f"Using fallback steps for '{action_title}': {reason}")
        return Fallback(steps=fallback_steps(action_title), reason=reason)

    # -------------------------------------------------------------------------
    # Deep dive lifecycle
    # -------------------------------------------------------------------------

    async def open(self, action: Action) -> DeepDive:
        """
        Return the breakdown for an action, restoring a persisted one.

        Raises:
            OperationInProgressError: already opening or completing this action
        """
        with self._flight.guard(action.id, "deep dive"):
            dive = self._dives.get(action.id) or await self.store.get_deep_dive(action.id)
            if dive is not None:
                logger.info(
                    f"Restored deep dive for {action.id} at step {dive.current_step_index + 1}"
                )
                self._dives[action.id] = dive
                return dive

            result = await self.decompose(action.title, action.description)
            dive = DeepDive(
                action_id=action.id,
                action_title=action.title,
                steps=result.steps,
                source=result.source,
                action_completed=action.is_completed,
            )
            await self.store.save_deep_dive(self.user_id, dive)
            self._dives[action.id] = dive
            return dive

    async def _load(self, action_id: str) -> DeepDive:
        dive = self._dives.get(action_id) or await self.store.get_deep_dive(action_id)
        if dive is None:
            raise InvalidSessionStateError(f"No deep dive open for action {action_id}")
        self._dives[action_id] = dive
        return dive

    async def _commit(self, dive: DeepDive) -> DeepDive:
        """Persist, then publish to the in-memory cache."""
        await self.store.save_deep_dive(self.user_id, dive)
        self._dives[dive.action_id] = dive
        return dive

    async def complete_current_step(self, action_id: str) -> DeepDive:
        """
        Complete the active step and advance the pointer.

        Changes are made on a copy; if the save fails the cached dive is
        untouched and the same step is still active on the next call.
        """
        with self._flight.guard(action_id, "step completion"):
            current = await self._load(action_id)
            step = current.active_step
            if step is None:
                # Everything done; only make sure the action itself was recorded
                return await self._complete_action(current)

            dive = current.copy()
            done = dive.steps[step.index]
            done.is_completed = True
            done.completed_at = utc_now()
            dive.current_step_index = done.index + 1
            await self._commit(dive)
            logger.info(f"Completed step {done.index + 1}/{len(dive.steps)} of {action_id}")

            if dive.all_complete:
                return await self._complete_action(dive)
            return dive

    async def complete_step(self, action_id: str, index: int) -> DeepDive:
        """
        Complete step `index`, which must be the active one.

        Raises:
            StepOrderError: `index` is not the active step (state unchanged)
        """
        dive = await self._load(action_id)
        active = dive.active_step
        if active is None or active.index != index:
            expected = active.index if active else None
            raise StepOrderError(
                f"Step {index} of {action_id} cannot be completed now (active step: {expected})"
            )
        return await self.complete_current_step(action_id)

    async def _complete_action(self, dive: DeepDive) -> DeepDive:
        """Record the owning action's completion once, then latch it."""
        if dive.action_completed:
            return dive
        await self.tracker.record_completion(dive.action_id)
        latched = dive.copy()
        latched.action_completed = True
        latched.completed_at = utc_now()
        await self._commit(latched)
        logger.info(f"Deep dive for {dive.action_id} finished, action completed")
        return latched
