"""
Profile Reconciler.

Moves the device-cached onboarding draft into Supabase once the user is
authenticated. The `users` row is normally created by an auth trigger, so
right after sign-up it may not be visible yet, and the access token may be
a moment stale. We poll with a fixed backoff, creating the row ourselves
with an idempotent upsert when it is missing, then apply the draft as a
separate targeted update.

Exhausting the attempts is fatal: nothing downstream (sessions, dreams,
finalization) can be written without a profile row.
"""

import logging

from boldmove.config import settings
from boldmove.core.errors import (
    ProfileNotVisibleError,
    ProfileUnavailableError,
    StoreError,
)
from boldmove.core.retry import retry_with_backoff
from journey.models import Dream, Identity, OnboardingDraft, Profile
from journey.store import RLS_VIOLATION, JourneyStore

logger = logging.getLogger(__name__)


class ProfileReconciler:
    """Ensures a profile row (and at most one active dream) exists."""

    def __init__(
        self,
        store: JourneyStore,
        *,
        attempts: int | None = None,
        backoff_seconds: float | None = None,
    ):
        self.store = store
        self.attempts = attempts if attempts is not None else settings.profile_poll_attempts
        self.backoff_seconds = (
            backoff_seconds
            if backoff_seconds is not None
            else settings.profile_poll_backoff_seconds
        )

    async def ensure_profile(self, identity: Identity, draft: OnboardingDraft) -> Profile:
        """
        Confirm the profile row exists, then apply the draft to it.

        Raises:
            ProfileUnavailableError: row not confirmed after all attempts,
                or creation was refused by row-level security
        """
        result = await retry_with_backoff(
            lambda: self._confirm_profile(identity, draft),
            attempts=self.attempts,
            backoff_seconds=self.backoff_seconds,
            retry_on=(ProfileNotVisibleError, StoreError),
            label=f"ensure_profile({identity.id})",
        )
        if not result.ok:
            raise ProfileUnavailableError(
                f"Profile for {identity.id} unavailable after {result.attempts} attempts"
            ) from result.error

        profile = result.value
        profile = await self._apply_draft(profile, draft)
        await self.ensure_active_dream(identity.id, draft)
        return profile

    async def _confirm_profile(self, identity: Identity, draft: OnboardingDraft) -> Profile:
        """One polling attempt: read, create if absent, re-read."""
        try:
            profile = await self.store.get_profile(identity.id)
            if profile is not None:
                return profile

            logger.info(f"Profile {identity.id} not visible yet, creating it")
            await self.store.create_profile_if_absent(
                identity.id,
                {"name": draft.name, "onboarding_completed": False},
            )
            profile = await self.store.get_profile(identity.id)
        except StoreError as e:
            if e.code == RLS_VIOLATION:
                # Retrying cannot fix a policy refusal
                raise ProfileUnavailableError(
                    f"Profile creation for {identity.id} refused by row-level security"
                ) from e
            raise

        if profile is None:
            raise ProfileNotVisibleError(f"Profile {identity.id} still not visible")
        return profile

    async def _apply_draft(self, profile: Profile, draft: OnboardingDraft) -> Profile:
        """Write only the draft fields that differ from the stored row."""
        updates = {}
        if draft.name and draft.name != profile.name:
            updates["name"] = draft.name
        if draft.dream and draft.dream != profile.dream:
            updates["dream"] = draft.dream
        if draft.stuck_point and draft.stuck_point != profile.stuck_point:
            updates["stuck_point"] = draft.stuck_point

        if not updates:
            return profile

        await self.store.update_profile(profile.id, updates)
        for key, value in updates.items():
            setattr(profile, key, value)
        logger.info(f"Applied onboarding draft to profile {profile.id}: {sorted(updates)}")
        return profile

    async def ensure_active_dream(self, user_id: str, draft: OnboardingDraft) -> Dream | None:
        """
        Return the active dream, creating it from the draft only if none exists.

        Creation is conditional on absence so there is never more than one
        active dream per user.
        """
        existing = await self.store.find_active_dream(user_id)
        if existing is not None or not draft.dream:
            return existing

        dream = await self.store.create_dream(user_id, draft.dream, draft.category)
        logger.info(f"Created active dream {dream.id} for {user_id}")
        return dream
