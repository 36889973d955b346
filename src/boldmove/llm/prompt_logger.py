"""
BoldMove - Prompt Logger.

Appends every generation call (prompts, sampling config, output or error)
to a JSON Lines file per run under prompt_logs/, so the wording of the
coach questions, the synthesis and the tiny-step breakdowns can be
reviewed after an interview.

Enabled via BOLDMOVE_LOG_PROMPTS=1 or the --log-prompts CLI flag.
"""

import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

LOG_DIR = Path("prompt_logs")

_enabled: bool | None = None
_run_file: Path | None = None
_sequence: int = 0


def _env_enabled() -> bool:
    return os.getenv("BOLDMOVE_LOG_PROMPTS", "0").lower() in ("1", "true", "yes")


def is_enabled() -> bool:
    if _enabled is None:
        return _env_enabled()
    return _enabled


def enable_prompt_logging(enabled: bool = True) -> None:
    """Override the environment setting for this process."""
    global _enabled
    _enabled = enabled


def _current_run_file() -> Path:
    global _run_file
    if _run_file is None:
        LOG_DIR.mkdir(parents=True, exist_ok=True)
        stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        _run_file = LOG_DIR / f"run_{stamp}.jsonl"
    return _run_file


def _jsonable(response: Any) -> Any:
    if response is None or isinstance(response, str):
        return response
    if hasattr(response, "model_dump"):
        return response.model_dump()
    return str(response)


def log_prompt(
    *,
    node: str,
    model: str,
    system_prompt: str | None,
    user_prompt: str,
    response: Any = None,
    error: str | None = None,
    config: dict | None = None,
) -> Path | None:
    """
    Record one generation call.

    Args:
        node: Which generation node made this call (question, decompose, ...)
        model: The model used
        system_prompt: The system prompt, if any
        user_prompt: The user prompt
        response: Generated text or parsed model (optional)
        error: Any error that occurred (optional)
        config: Sampling config used for the call

    Returns:
        Path to the run's log file, or None if logging is disabled
    """
    if not is_enabled():
        return None

    global _sequence
    _sequence += 1

    record = {
        "seq": _sequence,
        "at": datetime.now(timezone.utc).isoformat(),
        "node": node,
        "model": model,
        "config": config or {},
        "system_prompt": system_prompt,
        "user_prompt": user_prompt,
        "response": _jsonable(response),
        "error": error,
    }

    path = _current_run_file()
    try:
        with path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(record, default=str, ensure_ascii=False) + "\n")
    except OSError as e:
        # Never let debug logging break an interview
        logger.warning(f"Could not write prompt log {path}: {e}")
        return None
    return path


def get_session_log_dir() -> Path | None:
    """The current run's log file, if anything was logged."""
    if not is_enabled():
        return None
    return _run_file


def get_logging_status() -> dict:
    """Report prompt logging state for startup logs."""
    return {
        "file_logging": is_enabled(),
        "env_BOLDMOVE_LOG_PROMPTS": os.getenv("BOLDMOVE_LOG_PROMPTS", "0"),
    }


def reset_run() -> None:
    """Start a fresh log file on the next call."""
    global _enabled, _run_file, _sequence
    _enabled = None
    _run_file = None
    _sequence = 0
