"""Collects git facts for a work note by shelling out to `git`.

Four independent queries make up a snapshot: current branch, recent commits,
working tree status and repository root. `analyze()` runs them on a small
thread pool and assembles a GitContext once all of them have finished.

Commit history is requested with a custom field-delimited format:

    <hash>§<subject>§<author date>§<author name>§
    path/one.py
    path/two.py

    <hash>§...

Test fixtures sometimes flatten that to one line per commit with the changed
files comma-joined in the fifth field. Both shapes go through parse_git_log().
"""

from __future__ import annotations

import logging
import subprocess
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path

from brain.storage.models import GitCommit, GitContext, WorkingDirectoryChanges

logger = logging.getLogger(__name__)

FIELD_DELIMITER = "§"
LOG_FORMAT = f"%H{FIELD_DELIMITER}%s{FIELD_DELIMITER}%ai{FIELD_DELIMITER}%an{FIELD_DELIMITER}"
NO_COMMITS_MARKERS = ("does not have any commits", "bad default revision")


class GitError(RuntimeError):
    """Raised when a git command fails."""


class NotAGitRepositoryError(GitError):
    """Raised when the working directory is not inside a git repository."""


@dataclass
class CommandResult:
    stdout: str
    stderr: str
    success: bool


def normalize_repository_path(path: str) -> str:
    """Trim whitespace and trailing separators so equivalent paths compare equal."""
    normalized = path.strip()
    while len(normalized) > 1 and normalized[-1] in ("/", "\\"):
        normalized = normalized[:-1]
    return normalized


def _has_inline_files(fields: list[str]) -> bool:
    """True when a header carries its changed files comma-joined in the fifth field."""
    return len(fields) > 4 and bool(fields[4].strip())


def parse_git_log(output: str) -> list[GitCommit]:
    """Parse `git log` output in either the multi-line or single-line form."""
    commits: list[GitCommit] = []
    header: list[str] | None = None
    files: list[str] = []

    def flush() -> None:
        if header is None:
            return
        hash_, message, timestamp, author = (f.strip() for f in header[:4])
        if _has_inline_files(header):
            changed = [f.strip() for f in header[4].split(",") if f.strip()]
        else:
            changed = files
        commits.append(
            GitCommit(
                hash=hash_,
                message=message,
                timestamp=timestamp,
                author=author,
                files_changed=list(changed),
            )
        )

    for line in output.splitlines():
        if not line.strip():
            continue
        if FIELD_DELIMITER in line:
            flush()
            fields = line.split(FIELD_DELIMITER)
            if len(fields) < 4:
                header = None
                logger.debug(f"Skipping malformed log header: {line!r}")
            else:
                header = fields
            files = []
        elif header is not None:
            files.append(line.strip())
    flush()

    return commits


def parse_status(output: str) -> WorkingDirectoryChanges:
    """Parse `git status --porcelain` output into staged/unstaged/untracked paths.

    The first status column is the index, the second the work tree; `??` marks
    an untracked path.
    """
    staged: list[str] = []
    unstaged: list[str] = []
    untracked: list[str] = []

    for line in output.splitlines():
        if len(line) < 3 or not line.strip():
            continue

        index_status, work_tree_status = line[0], line[1]
        filename = line[3:]
        if " -> " in filename:
            filename = filename.split(" -> ", 1)[1]

        if index_status not in (" ", "?"):
            staged.append(filename)

        if work_tree_status == "?":
            untracked.append(filename)
        elif work_tree_status != " ":
            unstaged.append(filename)

    return WorkingDirectoryChanges(staged=staged, unstaged=unstaged, untracked=untracked)


class GitAnalyzer:
    """Reads branch, history and status from a local git repository."""

    def __init__(self, repo_dir: Path | None = None) -> None:
        self.repo_dir = repo_dir

    def get_current_branch(self) -> str:
        result = self._git("branch", "--show-current")
        if result.success and result.stdout.strip():
            return result.stdout.strip()

        # Older git versions lack --show-current; detached HEAD prints nothing
        listing = self._git("branch")
        if not listing.success:
            raise NotAGitRepositoryError(
                f"Not a git repository: {listing.stderr.strip()}"
            )

        for line in listing.stdout.splitlines():
            if line.startswith("*"):
                return line[1:].strip()

        raise GitError("Could not determine current branch")

    def get_recent_commits(self, max_commits: int) -> list[GitCommit]:
        if not isinstance(max_commits, int) or max_commits <= 0:
            raise ValueError("max_commits must be a positive integer")

        result = self._git(
            "log",
            f"--max-count={max_commits}",
            f"--pretty=format:{LOG_FORMAT}",
            "--name-only",
        )

        if not result.success:
            if any(marker in result.stderr for marker in NO_COMMITS_MARKERS):
                return []
            raise GitError(f"Git log command failed: {result.stderr.strip()}")

        if not result.stdout.strip():
            return []

        return parse_git_log(result.stdout)[:max_commits]

    def get_working_directory_changes(self) -> WorkingDirectoryChanges:
        result = self._git("status", "--porcelain")
        if not result.success:
            raise GitError(f"Git status command failed: {result.stderr.strip()}")
        return parse_status(result.stdout)

    def get_repository_path(self) -> str:
        result = self._git("rev-parse", "--show-toplevel")
        if not result.success or not result.stdout.strip():
            raise NotAGitRepositoryError(
                f"Not a git repository: {result.stderr.strip()}"
            )
        return normalize_repository_path(result.stdout)

    def is_git_repository(self) -> bool:
        result = self._git("rev-parse", "--is-inside-work-tree")
        return result.success and result.stdout.strip() == "true"

    def analyze(self, max_commits: int = 10) -> GitContext:
        """Collect a full snapshot. Any failing query fails the whole snapshot."""
        if not isinstance(max_commits, int) or max_commits <= 0:
            raise ValueError("max_commits must be a positive integer")

        with ThreadPoolExecutor(max_workers=4) as pool:
            branch = pool.submit(self.get_current_branch)
            commits = pool.submit(self.get_recent_commits, max_commits)
            changes = pool.submit(self.get_working_directory_changes)
            repo_path = pool.submit(self.get_repository_path)

            return GitContext(
                current_branch=branch.result(),
                recent_commits=commits.result(),
                working_directory_changes=changes.result(),
                repository_path=repo_path.result(),
            )

    def _git(self, *args: str) -> CommandResult:
        """Run a git command in the repo directory."""
        try:
            result = subprocess.run(
                ["git", *args],
                cwd=self.repo_dir,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
            )
        except FileNotFoundError as e:
            raise GitError("git executable not found on PATH") from e

        if result.returncode != 0:
            logger.debug(f"git {' '.join(args)} failed: {result.stderr.strip()}")
        return CommandResult(
            stdout=result.stdout,
            stderr=result.stderr,
            success=result.returncode == 0,
        )
