"""
Progress Tracker.

Records action completions and derives the user's progress from them.
Nothing here is cached: the snapshot is recomputed from every completion
timestamp each time, so a duplicate or late write can never skew a counter.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Iterable
from zoneinfo import ZoneInfo

from boldmove.config import settings
from boldmove.core.errors import InvalidSessionStateError
from journey.models import Action, ProgressSnapshot, utc_now
from journey.store import JourneyStore

logger = logging.getLogger(__name__)


def to_local_date(timestamp: str, tz: ZoneInfo) -> date:
    """Calendar day of an ISO timestamp in the user's zone (naive = UTC)."""
    moment = datetime.fromisoformat(timestamp.replace("Z", "+00:00"))
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=ZoneInfo("UTC"))
    return moment.astimezone(tz).date()


def compute_streaks(days: Iterable[date], today: date) -> tuple[int, int]:
    """
    Current and longest run of consecutive days.

    The current streak ends today, or yesterday when nothing has been
    completed yet today.

        >>> d = date(2025, 3, 1)
        >>> compute_streaks([d, d + timedelta(1), d + timedelta(2), d + timedelta(5)], d + timedelta(5))
        (1, 3)
    """
    unique = sorted(set(days))
    if not unique:
        return 0, 0

    longest = run = 1
    for prev, cur in zip(unique, unique[1:]):
        run = run + 1 if cur - prev == timedelta(days=1) else 1
        longest = max(longest, run)

    present = set(unique)
    if today in present:
        anchor = today
    elif today - timedelta(days=1) in present:
        anchor = today - timedelta(days=1)
    else:
        return 0, longest

    current = 0
    day = anchor
    while day in present:
        current += 1
        day -= timedelta(days=1)
    return current, longest


class ProgressTracker:
    """Completion recording and progress snapshots for one user."""

    def __init__(self, store: JourneyStore, user_id: str, timezone: str | None = None):
        self.store = store
        self.user_id = user_id
        self.tz = ZoneInfo(timezone or settings.user_timezone)

    async def record_completion(self, action_id: str) -> bool:
        """
        Mark an action completed.

        Returns True only when this call flipped it. Repeated calls (double
        tap, retried request, deep dive plus quick-complete) return False.

        Raises:
            InvalidSessionStateError: unknown action
        """
        action = await self.store.get_action(action_id)
        if action is None:
            raise InvalidSessionStateError(f"Action {action_id} not found")
        if action.is_completed:
            logger.info(f"Action {action_id} already completed")
            return False

        flipped = await self.store.mark_action_completed(action_id, utc_now())
        if flipped:
            logger.info(f"Action {action_id} completed by {self.user_id}")
        return flipped

    async def snapshot(self, today: date | None = None) -> ProgressSnapshot:
        """Recompute progress from every completed action."""
        actions = await self.store.list_completed_actions(self.user_id)
        today = today or datetime.now(self.tz).date()
        return self.summarize(actions, today)

    def summarize(self, actions: list[Action], today: date) -> ProgressSnapshot:
        days = []
        for action in actions:
            if not action.completed_at:
                continue
            try:
                days.append(to_local_date(action.completed_at, self.tz))
            except ValueError:
                logger.warning(f"Skipping unparseable completed_at on {action.id}: {action.completed_at!r}")

        current, longest = compute_streaks(days, today)
        return ProgressSnapshot(
            completed_count=len(actions),
            current_streak=current,
            longest_streak=longest,
            last_completed_on=max(days) if days else None,
        )
