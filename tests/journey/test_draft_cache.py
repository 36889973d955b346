"""
Tests for the device-local onboarding draft cache.
"""

from journey.draft_cache import DraftCache, FileDraftCache
from journey.models import OnboardingDraft


def test_empty_cache(tmp_path):
    cache = FileDraftCache(tmp_path / "draft.json")

    assert isinstance(cache, DraftCache)
    assert cache.load_draft() is None
    assert cache.get_resume_session_id() is None


def test_resume_pointer_kept_separately_from_draft(tmp_path):
    cache = FileDraftCache(tmp_path / "nested" / "draft.json")
    cache.save_draft(OnboardingDraft(name="Alex", dream="Run a marathon", stuck_point="wellness"))

    cache.set_resume_session_id("session-1")
    reopened = FileDraftCache(tmp_path / "nested" / "draft.json")

    assert reopened.load_draft().dream == "Run a marathon"
    assert reopened.get_resume_session_id() == "session-1"

    reopened.set_resume_session_id(None)
    assert cache.get_resume_session_id() is None
    assert cache.load_draft().name == "Alex"


def test_corrupt_file_ignored(tmp_path):
    path = tmp_path / "draft.json"
    path.write_text("{not json", encoding="utf-8")

    assert FileDraftCache(path).load_draft() is None
