"""
End-to-end tests for JourneyPipeline against the in-memory store.
"""

import asyncio
from datetime import date

import pytest

from boldmove.core.errors import InvalidSessionStateError, ProfileUnavailableError
from journey.draft_cache import FileDraftCache
from journey.five_whys import Completion, Turn
from journey.pipeline import JourneyPipeline
from journey.profile import ProfileReconciler


def _run(coro):
    """Run an async coroutine synchronously (no pytest-asyncio needed)."""
    return asyncio.run(coro)


@pytest.fixture
def cache(tmp_path, alex_draft):
    cache = FileDraftCache(tmp_path / "draft.json")
    cache.save_draft(alex_draft)
    return cache


def make_pipeline(identity, store, generator, cache, **kwargs):
    return JourneyPipeline(
        identity,
        store,
        generator,
        cache,
        reconciler=ProfileReconciler(store, attempts=3, backoff_seconds=0),
        **kwargs,
    )


class TestDiscovery:
    def test_alex_end_to_end(self, identity, store, generator, cache, fake_db):
        pipeline = make_pipeline(identity, store, generator, cache)

        async def scenario():
            turn = await pipeline.begin()
            assert isinstance(turn, Turn)

            # After reconciliation: profile exists, onboarding not done, active dream created
            (profile,) = fake_db.rows("users")
            assert profile["name"] == "Alex"
            assert profile["onboarding_completed"] is False
            (dream,) = fake_db.rows("dreams")
            assert dream["title"] == "Run a marathon"
            assert dream["category"] == "wellness"
            assert dream["is_active"] is True
            assert dream.get("core_motivation") is None

            result = None
            for i in range(5):
                result = await pipeline.answer(f"Because of reason {i + 1}")
            assert isinstance(result, Completion)

            return await pipeline.finalize()

        synthesis = _run(scenario())

        assert synthesis.motivation
        assert synthesis.pending_writes == []
        (dream,) = fake_db.rows("dreams")
        assert dream["core_motivation"] == synthesis.motivation
        assert dream["five_whys_completed"] is True
        assert fake_db.rows("users")[0]["onboarding_completed"] is True
        (session,) = fake_db.rows("five_whys_sessions")
        assert session["status"] == "completed"
        assert session["dream_id"] == dream["id"]
        assert len(fake_db.rows("five_whys_responses")) == 5
        assert pipeline.celebration
        # Finished sessions are no longer resumed
        assert cache.get_resume_session_id() is None

    def test_restart_resumes_from_cached_pointer(self, identity, store, generator, cache, fake_db):
        first = make_pipeline(identity, store, generator, cache)

        async def before_restart():
            await first.begin()
            for i in range(3):
                await first.answer(f"Answer {i + 1}")

        _run(before_restart())
        session_id = first.engine.session.id
        assert cache.get_resume_session_id() == session_id

        second = make_pipeline(identity, store, generator, cache)
        turn = _run(second.begin())

        assert second.engine.session.id == session_id
        assert turn.round == 4
        assert len(fake_db.rows("five_whys_sessions")) == 1
        assert len(fake_db.rows("dreams")) == 1
        assert len(fake_db.rows("users")) == 1

    def test_finalize_before_complete_rejected(self, identity, store, generator, cache):
        pipeline = make_pipeline(identity, store, generator, cache)
        _run(pipeline.begin())

        with pytest.raises(InvalidSessionStateError):
            _run(pipeline.finalize())

    def test_profile_unavailable_stops_pipeline(self, identity, store, generator, cache, fake_db):
        fake_db.fail("users", "upsert", code="42501", times=5)
        pipeline = make_pipeline(identity, store, generator, cache)

        with pytest.raises(ProfileUnavailableError):
            _run(pipeline.begin())

        assert fake_db.rows("five_whys_sessions") == []

    def test_permission_statement_after_finalize(self, identity, store, generator, cache):
        pipeline = make_pipeline(identity, store, generator, cache, depth=2)

        async def scenario():
            await pipeline.begin()
            await pipeline.answer("one")
            await pipeline.answer("two")
            await pipeline.finalize()
            return await pipeline.permission_statement()

        assert _run(scenario()).startswith("You have permission")


class TestAction:
    def test_deep_dive_to_progress(self, identity, store, generator, cache, roadmap_action):
        pipeline = make_pipeline(identity, store, generator, cache)

        async def scenario():
            dive = await pipeline.open_action(roadmap_action["id"])
            for _ in dive.steps:
                await pipeline.complete_step(roadmap_action["id"])
            return await pipeline.progress()

        progress = _run(scenario())

        assert progress.snapshot["completed_count"] == 1
        assert progress.snapshot["current_streak"] == 1
        assert all(step["status"] == "completed" for step in progress.steps)

    def test_quick_complete_after_deep_dive_counts_once(self, identity, store, generator, cache, roadmap_action):
        pipeline = make_pipeline(identity, store, generator, cache)

        async def scenario():
            dive = await pipeline.open_action(roadmap_action["id"])
            for _ in dive.steps:
                await pipeline.complete_step(roadmap_action["id"])
            flipped = await pipeline.quick_complete(roadmap_action["id"])
            return flipped, await pipeline.tracker.snapshot(today=date.today())

        flipped, snapshot = _run(scenario())

        assert flipped is False
        assert snapshot.completed_count == 1

    def test_unknown_action(self, identity, store, generator, cache):
        pipeline = make_pipeline(identity, store, generator, cache)

        with pytest.raises(InvalidSessionStateError):
            _run(pipeline.open_action("missing"))
