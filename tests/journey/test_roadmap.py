"""
Tests for roadmap planning and creation.
"""

import asyncio

import pytest

from boldmove.core.errors import GenerationError, InvalidSessionStateError, StoreError
from journey.pipeline import JourneyPipeline
from journey.profile import ProfileReconciler
from journey.roadmap import PlannedAction, RoadmapPlanner, normalize_actions

DREAM = "Run a marathon"
MOTIVATION = "Proof that I keep promises to myself."


def _run(coro):
    """Run an async coroutine synchronously (no pytest-asyncio needed)."""
    return asyncio.run(coro)


@pytest.fixture
def planner(store, generator, identity):
    return RoadmapPlanner(store, generator, identity.id, retries=2, backoff_seconds=0)


class TestNormalizeActions:
    def test_cleans_and_clamps(self):
        actions = normalize_actions(
            [
                PlannedAction(title='  "Call a running coach" ', duration_minutes=45, category="Connection"),
                PlannedAction(title="   "),
                PlannedAction(title="Read one article", duration_minutes=0, category="homework"),
            ],
            MOTIVATION,
        )

        assert [a.title for a in actions] == ["Call a running coach", "Read one article"]
        assert [a.duration_minutes for a in actions] == [15, 2]
        assert [a.category for a in actions] == ["connection", "action"]
        assert [a.order_index for a in actions] == [0, 1]
        assert actions[1].why_it_matters == MOTIVATION

    def test_capped_at_seven(self):
        drafts = [PlannedAction(title=f"Action {n}") for n in range(10)]

        assert len(normalize_actions(drafts)) == 7


class TestPlan:
    def test_generated_plan(self, planner, generator):
        plan = _run(planner.plan(DREAM, MOTIVATION))

        assert plan.source == "generated"
        assert plan.title == "The Road to 26.2"
        assert [a.category for a in plan.actions] == ["planning", "action", "research", "connection"]
        node, system_prompt = generator.calls[-1]
        assert node == "roadmap"
        assert DREAM in system_prompt
        assert MOTIVATION in system_prompt

    def test_generation_error_falls_back(self, planner, generator):
        generator.plans["roadmap"] = [GenerationError("timeout")] * 3

        plan = _run(planner.plan(DREAM, MOTIVATION))

        assert plan.source == "fallback"
        assert plan.reason == "generation_error"
        assert len(plan.actions) == 5
        assert any(DREAM in a.description for a in plan.actions)
        assert all(a.why_it_matters == MOTIVATION for a in plan.actions)

    def test_too_few_actions_falls_back(self, planner, generator):
        generator.plans["roadmap"] = [
            {"roadmap_title": "Tiny", "actions": [{"title": "Buy shoes"}, {"title": "  "}]}
        ]

        plan = _run(planner.plan(DREAM, MOTIVATION))

        assert plan.source == "fallback"
        assert plan.reason == "too_few_actions (1)"


class TestCreate:
    def test_actions_inserted_in_order(self, planner, fake_db, identity):
        roadmap = _run(planner.create(DREAM, MOTIVATION))

        assert roadmap.source == "generated"
        (row,) = fake_db.rows("action_roadmaps")
        assert row["user_id"] == identity.id
        assert row["roadmap_title"] == "The Road to 26.2"
        assert row["status"] == "active"
        assert row["root_motivation"] == MOTIVATION
        rows = fake_db.rows("roadmap_actions", roadmap_id=roadmap.id)
        assert sorted(r["order_index"] for r in rows) == [0, 1, 2, 3]
        assert all(r["is_completed"] is False for r in rows)
        assert [a.order_index for a in roadmap.actions] == [0, 1, 2, 3]
        assert all(a.id for a in roadmap.actions)

    def test_second_create_returns_existing(self, planner, generator, fake_db):
        first = _run(planner.create(DREAM, MOTIVATION))
        calls = len(generator.calls)

        second = _run(planner.create(DREAM, MOTIVATION))

        assert second.id == first.id
        assert second.source == "stored"
        assert [a.id for a in second.actions] == [a.id for a in first.actions]
        assert len(generator.calls) == calls
        assert fake_db.count_calls("roadmap_actions", "insert") == 1

    def test_empty_roadmap_reused(self, planner, fake_db, identity):
        (empty,) = fake_db.seed("action_roadmaps", {
            "user_id": identity.id,
            "dream": DREAM,
            "roadmap_title": "Left behind",
            "status": "active",
        })

        roadmap = _run(planner.create(DREAM, MOTIVATION))

        assert roadmap.id == empty["id"]
        assert len(fake_db.rows("action_roadmaps")) == 1
        assert len(fake_db.rows("roadmap_actions", roadmap_id=empty["id"])) == 4

    def test_failed_insert_retried_on_same_roadmap(self, planner, fake_db):
        fake_db.fail("roadmap_actions", "insert", code="08006")

        with pytest.raises(StoreError):
            _run(planner.create(DREAM, MOTIVATION))

        roadmap = _run(planner.create(DREAM, MOTIVATION))

        assert len(fake_db.rows("action_roadmaps")) == 1
        assert len(roadmap.actions) == 4

    def test_fallback_roadmap_saved(self, planner, generator, fake_db):
        generator.plans["roadmap"] = [GenerationError("timeout")] * 3

        roadmap = _run(planner.create(DREAM, MOTIVATION))

        assert roadmap.source == "fallback"
        assert roadmap.roadmap_title == "Your First Bold Steps"
        assert len(fake_db.rows("roadmap_actions")) == 5


class TestPipelineRoadmap:
    def make_pipeline(self, identity, store, generator):
        return JourneyPipeline(
            identity,
            store,
            generator,
            reconciler=ProfileReconciler(store, attempts=3, backoff_seconds=0),
        )

    async def interview(self, pipeline, draft):
        await pipeline.begin(draft)
        for i in range(5):
            await pipeline.answer(f"Because of reason {i + 1}")

    def test_roadmap_before_finalize_rejected(self, identity, store, generator, alex_draft):
        pipeline = self.make_pipeline(identity, store, generator)

        async def scenario():
            await self.interview(pipeline, alex_draft)
            await pipeline.create_roadmap()

        with pytest.raises(InvalidSessionStateError):
            _run(scenario())

    def test_roadmap_after_finalize(self, identity, store, generator, alex_draft, fake_db):
        pipeline = self.make_pipeline(identity, store, generator)

        async def scenario():
            await self.interview(pipeline, alex_draft)
            synthesis = await pipeline.finalize()
            return synthesis, await pipeline.create_roadmap()

        synthesis, roadmap = _run(scenario())

        assert roadmap.dream == DREAM
        assert roadmap.root_motivation == synthesis.motivation
        assert pipeline.roadmap is roadmap
        assert len(fake_db.rows("roadmap_actions", roadmap_id=roadmap.id)) == 4

    def test_roadmap_from_stored_motivation_after_restart(self, identity, store, generator, alex_draft, fake_db):
        first = self.make_pipeline(identity, store, generator)

        async def before_restart():
            await self.interview(first, alex_draft)
            await first.finalize()

        _run(before_restart())

        # New pipeline, as after a server restart: no synthesis in memory
        second = self.make_pipeline(identity, store, generator)
        roadmap = _run(second.create_roadmap())

        (dream,) = fake_db.rows("dreams")
        assert roadmap.dream == dream["title"]
        assert roadmap.root_motivation == dream["core_motivation"]
        assert roadmap.source == "generated"
