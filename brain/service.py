"""Save, resume and browse work notes.

BrainService ties the git collector, the note store and the interpretation
client together. It never prints; the CLI renders results and decides which
failures end the invocation.
"""

from __future__ import annotations

import json
import logging
import random
import string
import time
from dataclasses import dataclass
from datetime import datetime, timezone

from brain.ai.client import AIClient, AIClientError
from brain.config import Config
from brain.git.analyzer import GitAnalyzer, GitError
from brain.storage.models import RepositoryInfo, Settings, WorkNote
from brain.storage.store import Storage

logger = logging.getLogger(__name__)

CONFIG_KEYS = ("openai-key", "max-commits", "ai-model", "enable-ai")
_ID_ALPHABET = string.ascii_lowercase + string.digits


class ConfigValueError(ValueError):
    """Raised for unknown config keys or malformed values."""


@dataclass
class SaveResult:
    note: WorkNote
    ai_error: str | None = None  # set when the interpretation was skipped after a failure


def generate_note_id() -> str:
    suffix = "".join(random.choices(_ID_ALPHABET, k=9))
    return f"note-{int(time.time() * 1000)}-{suffix}"


def mask_api_key(key: str | None) -> str:
    return "***" + key[-4:] if key else "(not set)"


class BrainService:
    """Collaborator-facing operations over git, storage and the AI client."""

    def __init__(
        self,
        config: Config,
        storage: Storage | None = None,
        git_analyzer: GitAnalyzer | None = None,
        ai_client: AIClient | None = None,
    ) -> None:
        self.config = config
        self.storage = storage or Storage(config.storage_path)
        self.git = git_analyzer or GitAnalyzer()
        self._ai_client = ai_client
        self._ai_client_injected = ai_client is not None

    def initialize(self) -> int:
        """Load storage and build the AI client. Returns the migration count."""
        migrated = self.storage.initialize()
        self._refresh_ai_client()
        return migrated

    def _api_key(self, settings: Settings) -> str:
        return settings.openai_api_key or self.config.openai_api_key

    def _refresh_ai_client(self) -> None:
        if self._ai_client_injected:
            return
        settings = self.storage.get_settings()
        key = self._api_key(settings)
        if key and settings.enable_ai:
            self._ai_client = AIClient(
                key, settings.ai_model, base_url=self.config.openai_base_url or None
            )
        else:
            self._ai_client = None

    @property
    def ai_available(self) -> bool:
        # injected clients skip _refresh_ai_client, so the toggle is checked here too
        return self._ai_client is not None and self.storage.get_settings().enable_ai

    def current_repository(self) -> RepositoryInfo | None:
        """Descriptor for the repository we are standing in, if any."""
        try:
            return RepositoryInfo.from_path(self.git.get_repository_path())
        except GitError:
            return None

    # -- save / resume / list -------------------------------------------

    def save(self, message: str, use_ai: bool = True) -> SaveResult:
        """Capture the current git state with the user's message and persist it.

        Git failures propagate. Interpretation failures are logged and the note
        is saved without one.
        """
        if not message or not message.strip():
            raise ValueError("message must not be empty")

        settings = self.storage.get_settings()
        git_context = self.git.analyze(settings.max_commits)

        interpretation = None
        ai_error = None
        if use_ai and self.ai_available:
            try:
                interpretation = self._ai_client.analyze_context(message, git_context)
            except AIClientError as e:
                logger.warning(f"AI analysis failed, saving without interpretation: {e}")
                ai_error = str(e)

        note = WorkNote(
            id=generate_note_id(),
            message=message,
            timestamp=datetime.now(timezone.utc).isoformat(),
            git_context=git_context,
            repository_info=RepositoryInfo.from_path(git_context.repository_path),
            ai_interpretation=interpretation,
        )
        self.storage.save_work_note(note)
        return SaveResult(note=note, ai_error=ai_error)

    def _scope(self, all_repositories: bool) -> str | None:
        if all_repositories:
            return None
        repository = self.current_repository()
        return repository.identifier if repository else None

    def resume(self, all_repositories: bool = False) -> WorkNote | None:
        """Most recent note for this repository, or overall outside a repository."""
        return self.storage.get_latest_work_note(self._scope(all_repositories))

    def list_notes(
        self, count: int = 5, branch: str | None = None, all_repositories: bool = False
    ) -> list[WorkNote]:
        if count < 1:
            raise ValueError("count must be a positive number")
        if branch:
            return self.storage.get_work_notes_by_branch(branch)[:count]
        return self.storage.get_recent_work_notes(count, self._scope(all_repositories))

    def delete(self, note_id: str) -> bool:
        return self.storage.delete_work_note(note_id)

    def stats(self) -> dict:
        return self.storage.get_storage_stats()

    def export(self, all_repositories: bool = False) -> str:
        """JSON array of notes, newest first, scoped like resume()."""
        scope = self._scope(all_repositories)
        notes = (
            self.storage.get_work_notes_by_repository(scope)
            if scope
            else self.storage.get_all_work_notes()
        )
        return json.dumps([n.to_dict() for n in notes], indent=2)

    def check_ai(self) -> bool:
        """Explicit connectivity check. Raises AIClientError on failure."""
        settings = self.storage.get_settings()
        client = self._ai_client or AIClient(
            self._api_key(settings),
            settings.ai_model,
            base_url=self.config.openai_base_url or None,
        )
        return client.check_connection()

    # -- config ---------------------------------------------------------

    def list_config(self) -> dict[str, str]:
        settings = self.storage.get_settings()
        return {
            "openai-key": mask_api_key(self._api_key(settings)),
            "max-commits": str(settings.max_commits),
            "ai-model": settings.ai_model,
            "enable-ai": str(settings.enable_ai).lower(),
            "storage-path": settings.storage_path,
        }

    def get_config(self, key: str) -> str:
        if key not in CONFIG_KEYS:
            raise ConfigValueError(f"Unknown config key: {key}")
        return self.list_config()[key]

    def set_config(self, key: str, value: str) -> Settings:
        updates = self._parse_config_value(key, value)
        settings = self.storage.update_settings(**updates)
        self._refresh_ai_client()
        return settings

    @staticmethod
    def _parse_config_value(key: str, value: str) -> dict:
        if key == "openai-key":
            if not value.startswith("sk-") or len(value) < 20:
                raise ConfigValueError(
                    "Invalid OpenAI API key format: keys start with 'sk-' and are much longer"
                )
            return {"openai_api_key": value}
        if key == "max-commits":
            try:
                max_commits = int(value)
            except ValueError:
                max_commits = 0
            if max_commits < 1:
                raise ConfigValueError("max-commits must be a positive number")
            return {"max_commits": max_commits}
        if key == "ai-model":
            if not value.strip():
                raise ConfigValueError("ai-model must not be empty")
            return {"ai_model": value.strip()}
        if key == "enable-ai":
            if value not in ("true", "false"):
                raise ConfigValueError("enable-ai must be 'true' or 'false'")
            return {"enable_ai": value == "true"}
        raise ConfigValueError(
            f"Unknown config key: {key} (available: {', '.join(CONFIG_KEYS)})"
        )
