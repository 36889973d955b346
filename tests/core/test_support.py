"""
Tests for prompt logging and the request context.
"""

import json

import pytest

from boldmove.db.request_context import (
    clear_request_context,
    get_access_token,
    get_request_context,
    set_request_context,
)
from boldmove.llm import prompt_logger


@pytest.fixture
def log_dir(tmp_path, monkeypatch):
    monkeypatch.setattr(prompt_logger, "LOG_DIR", tmp_path / "prompt_logs")
    prompt_logger.reset_run()
    yield tmp_path / "prompt_logs"
    prompt_logger.reset_run()


class TestPromptLogger:
    def test_disabled_writes_nothing(self, log_dir):
        prompt_logger.enable_prompt_logging(False)

        path = prompt_logger.log_prompt(node="question", model="m", system_prompt=None, user_prompt="hi")

        assert path is None
        assert not log_dir.exists()

    def test_calls_appended_to_one_run_file(self, log_dir):
        prompt_logger.enable_prompt_logging(True)

        first = prompt_logger.log_prompt(
            node="greeting", model="gpt-4.1-mini", system_prompt=None,
            user_prompt="Say hello", response="Hello Alex", config={"temperature": 0.7},
        )
        second = prompt_logger.log_prompt(
            node="question", model="gpt-4.1-mini", system_prompt="coach",
            user_prompt="Next", error="timeout",
        )

        assert first == second
        records = [json.loads(line) for line in first.read_text(encoding="utf-8").splitlines()]
        assert [r["seq"] for r in records] == [1, 2]
        assert records[0]["response"] == "Hello Alex"
        assert records[0]["config"] == {"temperature": 0.7}
        assert records[1]["error"] == "timeout"
        assert prompt_logger.get_session_log_dir() == first


class TestRequestContext:
    def test_set_keeps_unspecified_values(self):
        try:
            set_request_context(access_token="token-1", user_id="user-1")
            set_request_context(access_token="token-2")

            assert get_access_token() == "token-2"
            assert get_request_context().user_id == "user-1"
        finally:
            clear_request_context()

        assert get_access_token() is None
