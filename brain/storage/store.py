"""JSON-backed storage for work notes and settings.

Two documents live in the storage directory:

    config.json    user settings (API key, model, commit depth, AI toggle)
    contexts.json  {"workNotes": {<note id>: <work note>}}

The whole notes document is read on initialize() and rewritten after every
write. Concurrent invocations can race; the last writer wins.
"""

from __future__ import annotations

import copy
import json
import logging
from dataclasses import fields, replace
from datetime import datetime, timezone
from pathlib import Path

from brain.storage.models import UNKNOWN_REPOSITORY, Settings, WorkNote

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "config.json"
DATA_FILENAME = "contexts.json"

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


class StorageError(RuntimeError):
    """Raised when the storage directory cannot be used."""


def parse_or_default(text: str | None) -> dict:
    """Parse a notes document, falling back to an empty one.

    Missing files, invalid JSON and documents of the wrong shape all yield
    {"workNotes": {}}.
    """
    if not text:
        return {"workNotes": {}}
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        logger.warning("Notes file is not valid JSON, starting with an empty store")
        return {"workNotes": {}}
    if not isinstance(data, dict) or not isinstance(data.get("workNotes"), dict):
        logger.warning("Notes file has an unexpected shape, starting with an empty store")
        return {"workNotes": {}}
    return data


def migrate(data: dict) -> tuple[dict, int]:
    """Give every legacy note a repositoryInfo derived from its snapshot.

    Returns the migrated document and how many notes were changed. The input
    is left untouched; already-migrated data comes back equal with a count of 0.
    """
    migrated = copy.deepcopy(data)
    count = 0

    for note in migrated.get("workNotes", {}).values():
        if not isinstance(note, dict) or note.get("repositoryInfo"):
            continue

        git_context = note.get("gitContext") or {}
        repository_path = git_context.get("repositoryPath") or UNKNOWN_REPOSITORY
        note["repositoryInfo"] = {
            "path": repository_path,
            "identifier": repository_path,
        }
        count += 1

    return migrated, count


def _timestamp_key(note: WorkNote) -> datetime:
    try:
        parsed = datetime.fromisoformat(note.timestamp.replace("Z", "+00:00"))
    except (ValueError, TypeError, AttributeError):
        return _EPOCH
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _newest_first(notes: list[WorkNote]) -> list[WorkNote]:
    return sorted(notes, key=_timestamp_key, reverse=True)


class Storage:
    """Repository-scoped store for work notes."""

    def __init__(self, storage_path: Path) -> None:
        self.storage_path = Path(storage_path)
        self.config_path = self.storage_path / CONFIG_FILENAME
        self.data_path = self.storage_path / DATA_FILENAME
        self._settings: Settings | None = None
        self._notes: dict[str, WorkNote] = {}
        self._unreadable: dict[str, dict] = {}  # raw entries kept as stored

    def initialize(self) -> int:
        """Prepare the storage directory and load both documents.

        Returns the number of legacy notes migrated during the load.
        """
        try:
            self.storage_path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to create storage path: {e}") from e

        self._load_settings()
        return self._load_notes()

    # -- settings --------------------------------------------------------

    def _load_settings(self) -> None:
        try:
            raw = json.loads(self.config_path.read_text())
            if not isinstance(raw, dict):
                raise ValueError("config.json is not an object")
            self._settings = Settings.from_dict(raw, storage_path=str(self.storage_path))
        except (OSError, ValueError, TypeError):
            logger.info(f"Creating default settings at {self.config_path}")
            self._settings = Settings(storage_path=str(self.storage_path))
            self._save_settings()

    def _save_settings(self) -> None:
        self.config_path.write_text(json.dumps(self._require_settings().to_dict(), indent=2))

    def _require_settings(self) -> Settings:
        if self._settings is None:
            raise StorageError("Storage not initialized")
        return self._settings

    def get_settings(self) -> Settings:
        return replace(self._require_settings())

    def update_settings(self, **updates) -> Settings:
        """Shallow-merge the given fields into the settings and persist them."""
        known = {f.name for f in fields(Settings)}
        unknown = set(updates) - known
        if unknown:
            raise ValueError(f"Unknown settings field(s): {', '.join(sorted(unknown))}")

        self._settings = replace(self._require_settings(), **updates)
        self._save_settings()
        return self.get_settings()

    # -- notes -----------------------------------------------------------

    def _load_notes(self) -> int:
        try:
            text = self.data_path.read_text()
        except OSError:
            text = None

        data = parse_or_default(text)
        data, migrated_count = migrate(data)

        self._notes = {}
        self._unreadable = {}
        for note_id, raw in data["workNotes"].items():
            try:
                self._notes[note_id] = WorkNote.from_dict(raw)
            except (KeyError, TypeError, ValueError, AttributeError):
                logger.warning(f"Skipping unreadable work note {note_id}")
                self._unreadable[note_id] = raw

        if migrated_count > 0:
            logger.info(
                f"Migrated {migrated_count} legacy context(s) to include repository information"
            )
            self._save_notes()
        elif not self._notes and not self._unreadable and text != self._serialize_notes():
            # missing or unreadable file
            self._save_notes()

        return migrated_count

    def _serialize_notes(self) -> str:
        stored = dict(self._unreadable)
        stored.update((note_id, note.to_dict()) for note_id, note in self._notes.items())
        document = {"workNotes": stored}
        return json.dumps(document, indent=2)

    def _save_notes(self) -> None:
        self.data_path.write_text(self._serialize_notes())

    def save_work_note(self, note: WorkNote) -> None:
        """Insert or replace a note and persist the whole collection."""
        self._unreadable.pop(note.id, None)
        self._notes[note.id] = note
        self._save_notes()

    def get_work_note(self, note_id: str) -> WorkNote | None:
        return self._notes.get(note_id)

    def delete_work_note(self, note_id: str) -> bool:
        if note_id not in self._notes and note_id not in self._unreadable:
            return False
        self._notes.pop(note_id, None)
        self._unreadable.pop(note_id, None)
        self._save_notes()
        return True

    def _scoped(self, repository_id: str | None) -> list[WorkNote]:
        notes = list(self._notes.values())
        if repository_id:
            notes = [n for n in notes if n.repository_info.identifier == repository_id]
        return notes

    def get_latest_work_note(self, repository_id: str | None = None) -> WorkNote | None:
        """Most recent note overall, or within one repository."""
        notes = _newest_first(self._scoped(repository_id))
        return notes[0] if notes else None

    def get_recent_work_notes(
        self, limit: int = 5, repository_id: str | None = None
    ) -> list[WorkNote]:
        return _newest_first(self._scoped(repository_id))[:limit]

    def get_all_work_notes(self) -> list[WorkNote]:
        return _newest_first(list(self._notes.values()))

    def get_work_notes_by_repository(self, repository_id: str) -> list[WorkNote]:
        return _newest_first(
            [n for n in self._notes.values() if n.repository_info.identifier == repository_id]
        )

    def get_work_notes_by_branch(self, branch: str) -> list[WorkNote]:
        return _newest_first(
            [n for n in self._notes.values() if n.git_context.current_branch == branch]
        )

    def get_storage_stats(self) -> dict:
        """Summary statistics about the stored notes."""
        storage_size = 0
        for path in (self.config_path, self.data_path):
            try:
                storage_size += path.stat().st_size
            except OSError:
                continue

        notes = sorted(self._notes.values(), key=_timestamp_key)
        return {
            "total_notes": len(notes),
            "storage_size": storage_size,
            "oldest_note": notes[0].timestamp if notes else None,
            "newest_note": notes[-1].timestamp if notes else None,
        }
