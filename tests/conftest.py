"""Shared test fixtures for brain."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from brain.config import Config
from brain.git.analyzer import GitAnalyzer
from brain.service import BrainService
from brain.storage.models import (
    AIInterpretation,
    GitCommit,
    GitContext,
    RepositoryInfo,
    WorkingDirectoryChanges,
    WorkNote,
)
from brain.storage.store import Storage


@pytest.fixture
def storage_path(tmp_path: Path) -> Path:
    return tmp_path / "brain"


@pytest.fixture
def storage(storage_path: Path) -> Storage:
    store = Storage(storage_path)
    store.initialize()
    return store


@pytest.fixture
def sample_git_context() -> GitContext:
    return GitContext(
        current_branch="feature/auth",
        recent_commits=[
            GitCommit(
                hash="a1b2c3d4e5f6a7b8c9d0",
                message="Add token refresh",
                timestamp="2025-01-15 10:00:00 +0000",
                author="Dana Dev",
                files_changed=["src/auth.py", "tests/test_auth.py"],
            ),
            GitCommit(
                hash="0f9e8d7c6b5a49382716",
                message="Initial auth middleware",
                timestamp="2025-01-14 09:00:00 +0000",
                author="Dana Dev",
                files_changed=["src/middleware.py"],
            ),
        ],
        working_directory_changes=WorkingDirectoryChanges(
            staged=["src/auth.py"],
            unstaged=["src/middleware.py"],
            untracked=["notes.txt"],
        ),
        repository_path="/home/dana/webapp",
    )


@pytest.fixture
def sample_interpretation() -> AIInterpretation:
    return AIInterpretation(
        summary="Debugging token expiry in the auth middleware",
        technical_context="Refresh tokens are validated against a stale clock",
        suggested_next_steps=["Add a clock skew allowance", "Write a regression test"],
        related_files=["src/auth.py"],
        confidence_score=0.8,
    )


def make_note(
    note_id: str,
    message: str = "working on it",
    timestamp: str = "2025-01-15T10:00:00+00:00",
    repository_path: str = "/home/dana/webapp",
    branch: str = "main",
    ai_interpretation: AIInterpretation | None = None,
) -> WorkNote:
    return WorkNote(
        id=note_id,
        message=message,
        timestamp=timestamp,
        git_context=GitContext(
            current_branch=branch,
            recent_commits=[],
            working_directory_changes=WorkingDirectoryChanges(),
            repository_path=repository_path,
        ),
        repository_info=RepositoryInfo.from_path(repository_path),
        ai_interpretation=ai_interpretation,
    )


@pytest.fixture
def note_factory():
    return make_note


@pytest.fixture
def mock_git(sample_git_context: GitContext) -> MagicMock:
    git = MagicMock(spec=GitAnalyzer)
    git.analyze.return_value = sample_git_context
    git.get_repository_path.return_value = sample_git_context.repository_path
    return git


@pytest.fixture
def service(storage_path: Path, storage: Storage, mock_git: MagicMock) -> BrainService:
    config = Config(storage_path=storage_path, openai_api_key="")
    svc = BrainService(config, storage=storage, git_analyzer=mock_git)
    svc.initialize()
    return svc
