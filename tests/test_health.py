"""
Basic health check tests.
"""

from fastapi.testclient import TestClient


def test_imports():
    """Verify core modules can be imported."""
    from boldmove import __version__
    from boldmove.config import Settings
    from journey.pipeline import JourneyPipeline

    assert __version__ == "1.0.0"
    assert Settings is not None
    assert JourneyPipeline is not None


def test_settings_defaults():
    """Journey tuning values have product defaults."""
    from boldmove.config import Settings

    settings = Settings(_env_file=None)

    assert settings.five_whys_depth == 5
    assert settings.profile_poll_attempts == 5
    assert settings.allow_fallback_questions is False
    assert settings.user_timezone == "UTC"


def test_health_endpoint():
    from boldmove.web.app import app

    response = TestClient(app).get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
