"""
Onboarding Draft Cache.

Pre-authentication onboarding values (name, dream, stuck point) and the
"resume session" pointer live on the device, not in Supabase. The pipeline
reads them once at start and writes only the resume pointer.
"""

import json
import logging
from pathlib import Path
from typing import Protocol, runtime_checkable

from journey.models import OnboardingDraft

logger = logging.getLogger(__name__)


@runtime_checkable
class DraftCache(Protocol):
    """Device-local storage owned by the onboarding UI."""

    def load_draft(self) -> OnboardingDraft | None: ...

    def save_draft(self, draft: OnboardingDraft) -> None: ...

    def get_resume_session_id(self) -> str | None: ...

    def set_resume_session_id(self, session_id: str | None) -> None: ...


class FileDraftCache:
    """DraftCache backed by a small JSON file."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def _read(self) -> dict:
        if not self.path.exists():
            return {}
        try:
            return json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            logger.warning(f"Ignoring unreadable draft cache {self.path}: {e}")
            return {}

    def _write(self, data: dict) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data, indent=2), encoding="utf-8")

    def load_draft(self) -> OnboardingDraft | None:
        draft = self._read().get("draft")
        return OnboardingDraft.from_dict(draft) if draft else None

    def save_draft(self, draft: OnboardingDraft) -> None:
        data = self._read()
        data["draft"] = draft.to_dict()
        self._write(data)

    def get_resume_session_id(self) -> str | None:
        return self._read().get("current_session")

    def set_resume_session_id(self, session_id: str | None) -> None:
        data = self._read()
        if session_id:
            data["current_session"] = session_id
        else:
            data.pop("current_session", None)
        self._write(data)
