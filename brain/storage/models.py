"""Core data models for brain.

Records serialize to the camelCase JSON layout used by contexts.json and
config.json, so data files written by earlier releases load unchanged.
"""

from __future__ import annotations

from dataclasses import dataclass, field

UNKNOWN_REPOSITORY = "unknown"


@dataclass(frozen=True)
class GitCommit:
    hash: str
    message: str
    timestamp: str  # ISO-like, as printed by git's %ai
    author: str
    files_changed: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "hash": self.hash,
            "message": self.message,
            "timestamp": self.timestamp,
            "author": self.author,
            "filesChanged": list(self.files_changed),
        }

    @classmethod
    def from_dict(cls, data: dict) -> GitCommit:
        return cls(
            hash=data.get("hash", ""),
            message=data.get("message", ""),
            timestamp=data.get("timestamp", ""),
            author=data.get("author", ""),
            files_changed=list(data.get("filesChanged", [])),
        )


@dataclass(frozen=True)
class WorkingDirectoryChanges:
    staged: list[str] = field(default_factory=list)
    unstaged: list[str] = field(default_factory=list)
    untracked: list[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.staged) + len(self.unstaged) + len(self.untracked)

    def to_dict(self) -> dict:
        return {
            "staged": list(self.staged),
            "unstaged": list(self.unstaged),
            "untracked": list(self.untracked),
        }

    @classmethod
    def from_dict(cls, data: dict) -> WorkingDirectoryChanges:
        return cls(
            staged=list(data.get("staged", [])),
            unstaged=list(data.get("unstaged", [])),
            untracked=list(data.get("untracked", [])),
        )


@dataclass(frozen=True)
class RepositoryInfo:
    path: str
    identifier: str  # currently the textual path; see DESIGN.md

    @classmethod
    def from_path(cls, path: str | None) -> RepositoryInfo:
        path = path or UNKNOWN_REPOSITORY
        return cls(path=path, identifier=path)

    def to_dict(self) -> dict:
        return {"path": self.path, "identifier": self.identifier}

    @classmethod
    def from_dict(cls, data: dict) -> RepositoryInfo:
        path = data.get("path") or UNKNOWN_REPOSITORY
        return cls(path=path, identifier=data.get("identifier") or path)


@dataclass(frozen=True)
class GitContext:
    current_branch: str
    recent_commits: list[GitCommit]  # most recent first
    working_directory_changes: WorkingDirectoryChanges
    repository_path: str

    def to_dict(self) -> dict:
        return {
            "currentBranch": self.current_branch,
            "recentCommits": [c.to_dict() for c in self.recent_commits],
            "workingDirectoryChanges": self.working_directory_changes.to_dict(),
            "repositoryPath": self.repository_path,
        }

    @classmethod
    def from_dict(cls, data: dict) -> GitContext:
        return cls(
            current_branch=data.get("currentBranch", ""),
            recent_commits=[GitCommit.from_dict(c) for c in data.get("recentCommits", [])],
            working_directory_changes=WorkingDirectoryChanges.from_dict(
                data.get("workingDirectoryChanges", {})
            ),
            repository_path=data.get("repositoryPath", ""),
        )


@dataclass(frozen=True)
class AIInterpretation:
    summary: str
    technical_context: str
    suggested_next_steps: list[str] = field(default_factory=list)
    related_files: list[str] = field(default_factory=list)
    confidence_score: float = 0.0  # 0.0 - 1.0

    def to_dict(self) -> dict:
        return {
            "summary": self.summary,
            "technicalContext": self.technical_context,
            "suggestedNextSteps": list(self.suggested_next_steps),
            "relatedFiles": list(self.related_files),
            "confidenceScore": self.confidence_score,
        }

    @classmethod
    def from_dict(cls, data: dict) -> AIInterpretation:
        return cls(
            summary=data.get("summary", ""),
            technical_context=data.get("technicalContext", ""),
            suggested_next_steps=list(data.get("suggestedNextSteps", [])),
            related_files=list(data.get("relatedFiles", [])),
            confidence_score=float(data.get("confidenceScore", 0.0)),
        )


@dataclass(frozen=True)
class WorkNote:
    id: str  # "note-<epoch ms>-<random>"
    message: str
    timestamp: str  # ISO 8601 creation time
    git_context: GitContext
    repository_info: RepositoryInfo
    ai_interpretation: AIInterpretation | None = None

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "message": self.message,
            "timestamp": self.timestamp,
            "gitContext": self.git_context.to_dict(),
            "repositoryInfo": self.repository_info.to_dict(),
        }
        if self.ai_interpretation is not None:
            data["aiInterpretation"] = self.ai_interpretation.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict) -> WorkNote:
        """Build a note from its stored form.

        Raises KeyError when the id, message or timestamp is absent and
        TypeError when the message or timestamp is not a string. Notes
        without a repositoryInfo fall back to the snapshot's repository path;
        the storage layer migrates those before they get here.
        """
        for key in ("message", "timestamp"):
            if not isinstance(data[key], str):
                raise TypeError(f"{key} must be a string, got {type(data[key]).__name__}")
        git_context = GitContext.from_dict(data.get("gitContext") or {})
        repo_info = data.get("repositoryInfo")
        ai = data.get("aiInterpretation")
        return cls(
            id=data["id"],
            message=data["message"],
            timestamp=data["timestamp"],
            git_context=git_context,
            repository_info=(
                RepositoryInfo.from_dict(repo_info)
                if repo_info
                else RepositoryInfo.from_path(git_context.repository_path)
            ),
            ai_interpretation=AIInterpretation.from_dict(ai) if ai else None,
        )


@dataclass
class Settings:
    """User settings persisted in config.json."""

    openai_api_key: str | None = None
    max_commits: int = 10
    ai_model: str = "gpt-4"
    storage_path: str = ""
    enable_ai: bool = True

    def to_dict(self) -> dict:
        data = {
            "maxCommits": self.max_commits,
            "aiModel": self.ai_model,
            "storagePath": self.storage_path,
            "enableAI": self.enable_ai,
        }
        if self.openai_api_key:
            data["openaiApiKey"] = self.openai_api_key
        return data

    @classmethod
    def from_dict(cls, data: dict, storage_path: str = "") -> Settings:
        defaults = cls()
        return cls(
            openai_api_key=data.get("openaiApiKey") or None,
            max_commits=int(data.get("maxCommits", defaults.max_commits)),
            ai_model=data.get("aiModel", defaults.ai_model),
            storage_path=data.get("storagePath", storage_path),
            enable_ai=bool(data.get("enableAI", defaults.enable_ai)),
        )
