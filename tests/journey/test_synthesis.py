"""
Tests for RootMotivationSynthesizer: finalization and its side effects.
"""

import asyncio

import pytest

from boldmove.core.errors import GenerationError, InvalidSessionStateError
from journey import prompts
from journey.synthesis import RootMotivationSynthesizer, key_insights
from journey.models import ReflectionExchange


def _run(coro):
    """Run an async coroutine synchronously (no pytest-asyncio needed)."""
    return asyncio.run(coro)


@pytest.fixture
def synthesizer(store, generator):
    return RootMotivationSynthesizer(store, generator, depth=5, retries=2, backoff_seconds=0)


@pytest.fixture
def answered_session(fake_db, identity):
    """Profile, active dream and a session with all five rounds answered."""
    fake_db.seed("users", {"id": identity.id, "name": "Alex", "dream": "Run a marathon", "onboarding_completed": False})
    fake_db.seed("dreams", {"user_id": identity.id, "title": "Run a marathon", "category": "wellness", "is_active": True})
    (session,) = fake_db.seed("five_whys_sessions", {"user_id": identity.id, "status": "in_progress", "current_why_number": 5})
    fake_db.seed("five_whys_responses", *[
        {"session_id": session["id"], "why_number": n, "question": f"Q{n}?", "user_response": f"Because {n}"}
        for n in range(1, 6)
    ])
    return session


class TestFinalize:
    def test_writes_session_dream_and_profile(self, synthesizer, fake_db, answered_session, generator):
        result = _run(synthesizer.finalize(answered_session["id"]))

        assert result.motivation.startswith("At your core")
        assert not result.is_fallback
        assert result.pending_writes == []

        (session,) = fake_db.rows("five_whys_sessions")
        assert session["status"] == "completed"
        assert session["root_motivation"] == result.motivation
        assert session["completed_at"]

        (dream,) = fake_db.rows("dreams")
        assert dream["core_motivation"] == result.motivation
        assert dream["five_whys_completed"] is True

        assert fake_db.rows("users")[0]["onboarding_completed"] is True

        _, prompt = generator.calls[0]
        assert "Run a marathon" in prompt
        assert "Why 5: Because 5" in prompt

    def test_generation_failure_falls_back(self, synthesizer, fake_db, answered_session, generator):
        generator.texts["synthesis"] = [GenerationError("down")] * 3

        result = _run(synthesizer.finalize(answered_session["id"]))

        assert result.is_fallback
        assert result.motivation == prompts.FALLBACK_MOTIVATION
        assert fake_db.rows("five_whys_sessions")[0]["status"] == "completed"

    def test_empty_output_falls_back(self, synthesizer, answered_session, generator):
        generator.texts["synthesis"] = [""]

        result = _run(synthesizer.finalize(answered_session["id"]))

        assert result.is_fallback

    def test_incomplete_session_rejected(self, synthesizer, fake_db, identity):
        (session,) = fake_db.seed("five_whys_sessions", {"user_id": identity.id, "status": "in_progress"})
        fake_db.seed("five_whys_responses", {
            "session_id": session["id"], "why_number": 1, "question": "Q1?", "user_response": "A1",
        })

        with pytest.raises(InvalidSessionStateError):
            _run(synthesizer.finalize(session["id"]))

        assert fake_db.rows("five_whys_sessions")[0]["status"] == "in_progress"

    def test_unknown_session_rejected(self, synthesizer):
        with pytest.raises(InvalidSessionStateError):
            _run(synthesizer.finalize("missing"))

    def test_failed_downstream_write_is_pending(self, synthesizer, fake_db, answered_session):
        fake_db.fail("dreams", "update", code="08006")

        result = _run(synthesizer.finalize(answered_session["id"]))

        assert result.pending_writes == ["dream"]
        assert fake_db.rows("five_whys_sessions")[0]["status"] == "completed"
        assert fake_db.rows("users")[0]["onboarding_completed"] is True
        assert fake_db.rows("dreams")[0].get("five_whys_completed") is not True

        result = _run(synthesizer.reconcile(result))

        assert result.pending_writes == []
        assert fake_db.rows("dreams")[0]["five_whys_completed"] is True

    def test_idempotent_on_completed_session(self, synthesizer, fake_db, answered_session, generator):
        first = _run(synthesizer.finalize(answered_session["id"]))
        calls = len(generator.calls)

        second = _run(synthesizer.finalize(answered_session["id"]))

        assert second.motivation == first.motivation
        assert len(generator.calls) == calls
        assert second.pending_writes == []

    def test_completed_session_repairs_missing_mirrors(self, synthesizer, fake_db, answered_session):
        fake_db.fail("users", "update", code="08006")
        first = _run(synthesizer.finalize(answered_session["id"]))
        assert first.pending_writes == ["profile"]

        # A later call (e.g. after restart) re-applies only what is missing
        second = _run(synthesizer.finalize(answered_session["id"]))

        assert second.pending_writes == []
        assert fake_db.rows("users")[0]["onboarding_completed"] is True
        assert fake_db.count_calls("five_whys_sessions", "update") == 1

    def test_no_active_dream_is_not_a_failure(self, synthesizer, fake_db, answered_session, identity):
        fake_db.tables["dreams"] = []

        result = _run(synthesizer.finalize(answered_session["id"]))

        assert result.pending_writes == []


class TestClosingTexts:
    def test_celebration_generated(self, synthesizer):
        text = _run(synthesizer.celebration_message("Alex", "Run a marathon", "Freedom"))

        assert text.startswith("✨")

    def test_celebration_fallback(self, synthesizer, generator):
        generator.texts["celebration"] = [GenerationError("down")] * 3

        text = _run(synthesizer.celebration_message("Alex", "Run a marathon", "Freedom"))

        assert text == prompts.FALLBACK_CELEBRATION.format(name="Alex", motivation="Freedom")

    def test_permission_uses_last_three_answers(self, synthesizer, generator):
        exchanges = [
            ReflectionExchange(session_id="s", why_number=n, question="Q?", user_response=f"A{n}")
            for n in range(1, 6)
        ]

        _run(synthesizer.permission_statement("Alex", "Run a marathon", "Freedom", exchanges))

        node, prompt = generator.calls[-1]
        assert node == "permission"
        assert "A3; A4; A5" in prompt
        assert "A2" not in prompt

    def test_permission_fallback(self, synthesizer, generator):
        generator.texts["permission"] = [GenerationError("down")] * 3

        text = _run(synthesizer.permission_statement("Alex", "Run a marathon", "Freedom", []))

        assert text == prompts.FALLBACK_PERMISSION.format(dream="Run a marathon")

    def test_key_insights_order(self):
        exchanges = [
            ReflectionExchange(session_id="s", why_number=n, question="Q?", user_response=f"A{n}")
            for n in (5, 1, 4, 2, 3)
        ]

        assert key_insights(exchanges) == "A3; A4; A5"
